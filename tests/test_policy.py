import struct

import pytest

from core import codec, policy
from core.blacklist import Blacklist


@pytest.fixture
def blacklist():
    return Blacklist.from_lines(["ads\n", "tracker\n"])


def rcode_of(data):
    return struct.unpack('!H', bytes(data[2:4]))[0] & 0x000F


def test_valid_query_is_forwarded(dns_query, blacklist):
    decision = policy.evaluate(dns_query('example.com'), blacklist)
    assert decision.action == policy.FORWARD
    assert decision.rcode is None
    assert decision.qname == 'example.com'


@pytest.mark.parametrize('kwargs', [
    {'flags': 0x8100},          # response bit
    {'flags': 0x0140},          # reserved Z bit
    {'flags': 0x0110},          # checking disabled
    {'qdcount': 0},
    {'ancount': 1},
])
def test_bad_header_is_format_error(query, blacklist, kwargs):
    decision = policy.evaluate(query('example.com', **kwargs), blacklist)
    assert decision.action == policy.FORMAT_ERROR
    assert decision.rcode == 1
    # no name decode for a rejected header
    assert decision.message is None


def test_answer_count_reply_keeps_question(query, blacklist):
    data = query('example.com', ancount=1)
    decision = policy.evaluate(data, blacklist)
    reply = policy.error_response(data, decision)
    assert rcode_of(reply) == 1
    assert reply[12:] == data[12:]


def test_header_only_datagram_is_format_error(query, blacklist):
    data = query()[:12]
    decision = policy.evaluate(data, blacklist)
    assert decision.action == policy.FORMAT_ERROR
    reply = policy.error_response(data, decision)
    assert len(reply) == 12
    assert rcode_of(reply) == 1


def test_short_datagram_cannot_be_answered(blacklist):
    with pytest.raises(codec.TruncatedHeader):
        policy.evaluate(b'\x00\x01\x00', blacklist)


def test_compressed_name_is_format_error(blacklist):
    data = struct.pack('!HHHHHH', 3, 0x0100, 1, 0, 0, 0) + b'\xc0\x0c' + struct.pack('!HH', 1, 1)
    assert policy.evaluate(data, blacklist).action == policy.FORMAT_ERROR


def test_zero_type_or_class_is_format_error(query, blacklist):
    assert policy.evaluate(query(qtype=0), blacklist).action == policy.FORMAT_ERROR
    assert policy.evaluate(query(qclass=0), blacklist).action == policy.FORMAT_ERROR


def test_name_too_long_is_format_error(query, blacklist):
    decision = policy.evaluate(query('a' * 40 + '.example.com'), blacklist, max_name_length=20)
    assert decision.action == policy.FORMAT_ERROR


def test_mx_is_not_implemented(dns_query, blacklist):
    data = dns_query('example.com', rdtype='MX')
    decision = policy.evaluate(data, blacklist)
    assert decision.action == policy.NOT_IMPLEMENTED
    assert rcode_of(policy.error_response(data, decision)) == 4


def test_chaos_class_is_not_implemented(dns_query, blacklist):
    decision = policy.evaluate(dns_query('version.bind', rdtype='TXT', rdclass='CH'), blacklist)
    assert decision.action == policy.NOT_IMPLEMENTED
    assert decision.rcode == 4


def test_unsupported_type_wins_over_blacklist(dns_query, blacklist):
    decision = policy.evaluate(dns_query('ads.example.com', rdtype='AAAA'), blacklist)
    assert decision.action == policy.NOT_IMPLEMENTED


@pytest.mark.parametrize('name', ['ads.example.com', 'myads.example.com', 'cdn.tracker.io'])
def test_blacklisted_name_is_refused(dns_query, blacklist, name):
    data = dns_query(name, id=0x0A0B)
    decision = policy.evaluate(data, blacklist)
    assert decision.action == policy.REFUSED
    reply = policy.error_response(data, decision)
    assert rcode_of(reply) == 5
    assert reply[:2] == data[:2]
    assert reply[12:] == data[12:]


def test_forward_has_no_error_response(dns_query, blacklist):
    data = dns_query('example.com')
    with pytest.raises(ValueError):
        policy.error_response(data, policy.evaluate(data, blacklist))
