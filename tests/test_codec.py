import struct

import pytest

from core import codec


def test_decode_header_fields(query):
    data = query('example.com', id=0xBEEF, arcount=2)
    header = codec.decode_header(data)
    assert header.id == 0xBEEF
    assert header.qdcount == 1
    assert header.ancount == 0
    assert header.arcount == 2
    assert not header.qr and not header.z and not header.cd
    assert header.rcode == 0


def test_decode_header_too_short():
    with pytest.raises(codec.TruncatedHeader):
        codec.decode_header(b'\x12\x34\x01\x00\x00\x01')


def test_decode_full_question(dns_query):
    msg = codec.decode(dns_query('ads.example.com', id=77))
    assert msg.header.id == 77
    assert msg.qname == 'ads.example.com'
    assert (msg.qtype, msg.qclass) == (1, 1)


def test_decode_reads_type_and_class(query):
    name, qtype, qclass = codec.decode_question(query('mail.example.org', qtype=15, qclass=3))
    assert name == 'mail.example.org'
    assert qtype == 15
    assert qclass == 3


def test_root_name_decodes_empty():
    data = struct.pack('!HHHHHH', 1, 0, 1, 0, 0, 0) + b'\x00' + struct.pack('!HH', 1, 1)
    assert codec.decode_question(data) == ('', 1, 1)


def test_compression_pointer_rejected():
    data = struct.pack('!HHHHHH', 1, 0, 1, 0, 0, 0) + b'\xc0\x0c' + struct.pack('!HH', 1, 1)
    with pytest.raises(codec.UnsupportedNameEncoding):
        codec.decode_question(data)


def test_extended_label_type_rejected():
    data = struct.pack('!HHHHHH', 1, 0, 1, 0, 0, 0) + b'\x41' + b'a' * 65 + b'\x00' + struct.pack('!HH', 1, 1)
    with pytest.raises(codec.UnsupportedNameEncoding):
        codec.decode_question(data)


def test_name_length_bounded(query):
    data = query('abcdefgh.example.com')
    with pytest.raises(codec.NameTooLong):
        codec.decode_question(data, max_name_length=10)
    assert codec.decode_question(query('abc.de'), max_name_length=6)[0] == 'abc.de'


def test_header_only_datagram_has_no_question(query):
    with pytest.raises(codec.TruncatedQuestion):
        codec.decode_question(query()[:12])


def test_label_past_end(query):
    with pytest.raises(codec.TruncatedQuestion):
        codec.decode_question(query('example.com')[:16])


def test_missing_type_and_class(query):
    data = query('example.com')
    with pytest.raises(codec.TruncatedQuestion):
        codec.decode_question(data[:-2])


def test_codec_errors_share_base():
    for exc in (codec.TruncatedHeader, codec.TruncatedQuestion, codec.UnsupportedNameEncoding, codec.NameTooLong):
        assert issubclass(exc, codec.CodecError)


def test_encode_header_in_place_keeps_question(query):
    data = bytearray(query('example.com', id=9))
    tail = bytes(data[12:])
    header = codec.decode_header(data)
    header.flags = 0x8180
    header.ancount = 3
    out = codec.encode_header_in_place(data, header)
    assert out is data
    assert bytes(data[12:]) == tail
    assert struct.unpack('!HHHHHH', bytes(data[:12])) == (9, 0x8180, 1, 3, 0, 0)


def test_encode_header_needs_room():
    with pytest.raises(codec.TruncatedHeader):
        codec.encode_header_in_place(bytearray(4), codec.DNSHeader())


def test_error_response_rewrites_header_only(query):
    data = query('example.com', id=0x4242, flags=0x0110, ancount=2, nscount=1, arcount=1)
    reply = codec.make_error_response(data, 1)
    assert len(reply) == len(data)
    assert reply[12:] == data[12:]
    rid, flags, qd, an, ns, ar = struct.unpack('!HHHHHH', bytes(reply[:12]))
    assert rid == 0x4242
    assert flags & 0x8000
    assert flags & 0x0400
    assert flags & 0x0080
    # RD and CD are carried over from the query
    assert flags & 0x0100
    assert flags & 0x0010
    assert flags & 0x000F == 1
    assert (qd, an, ns, ar) == (1, 0, 0, 1)


def test_error_response_replaces_previous_rcode(query):
    data = query(flags=0x0003)
    reply = codec.make_error_response(data, 5)
    assert codec.decode_header(reply).rcode == 5


def test_rcode_text():
    assert codec.rcode_text(5) == 'REFUSED'
