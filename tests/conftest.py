import struct

import dns.message
import dns.rdataclass
import dns.rdatatype
import pytest


def encode_name(name):
    wire = b''
    for label in name.split('.'):
        wire += bytes([len(label)]) + label.encode('ascii')
    return wire + b'\x00'


def raw_query(name='example.com', qtype=1, qclass=1, id=0x1234, flags=0x0100,
              qdcount=1, ancount=0, nscount=0, arcount=0):
    header = struct.pack('!HHHHHH', id, flags, qdcount, ancount, nscount, arcount)
    return header + encode_name(name) + struct.pack('!HH', qtype, qclass)


def wire_query(name='example.com', rdtype='A', rdclass='IN', id=0x1234):
    msg = dns.message.make_query(name, dns.rdatatype.from_text(rdtype), dns.rdataclass.from_text(rdclass))
    msg.id = id
    return msg.to_wire()


class FakeTransport:
    def __init__(self, sockname=('127.0.0.1', 5300), fail=False):
        self.sent = []
        self.closed = False
        self.sockname = sockname
        self.fail = fail

    def sendto(self, data, addr=None):
        if self.fail:
            raise OSError("network unreachable")
        self.sent.append((bytes(data), addr))

    def close(self):
        self.closed = True

    def get_extra_info(self, name, default=None):
        if name == 'sockname':
            return self.sockname
        return default


@pytest.fixture
def query():
    return raw_query


@pytest.fixture
def dns_query():
    return wire_query


@pytest.fixture
def fake_transport():
    return FakeTransport
