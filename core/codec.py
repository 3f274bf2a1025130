import struct
from typing import Optional, Tuple

import dns.flags
import dns.rcode


HEADER_SIZE = 12
DEFAULT_MAX_NAME_LENGTH = 255

# reserved bit between RA and AD, not exposed by dns.flags
Z_FLAG = 0x0040
RCODE_MASK = 0x000F

_HEADER_FMT = '!HHHHHH'


class CodecError(Exception):
    """Base class for everything the codec refuses to decode."""


class TruncatedHeader(CodecError):
    pass


class TruncatedQuestion(CodecError):
    pass


class UnsupportedNameEncoding(CodecError):
    pass


class NameTooLong(CodecError):
    pass


class DNSHeader:
    """Fixed 12 octet DNS header: ID, flags word and the four section counts."""

    __slots__ = ('id', 'flags', 'qdcount', 'ancount', 'nscount', 'arcount')

    def __init__(self, id: int = 0, flags: int = 0, qdcount: int = 0, ancount: int = 0,
                 nscount: int = 0, arcount: int = 0):
        self.id = id
        self.flags = flags
        self.qdcount = qdcount
        self.ancount = ancount
        self.nscount = nscount
        self.arcount = arcount

    @property
    def qr(self) -> bool:
        return bool(self.flags & dns.flags.QR)

    @property
    def z(self) -> bool:
        return bool(self.flags & Z_FLAG)

    @property
    def cd(self) -> bool:
        return bool(self.flags & dns.flags.CD)

    @property
    def rcode(self) -> int:
        return self.flags & RCODE_MASK

    def set_rcode(self, rcode: int):
        self.flags = (int(self.flags) & ~RCODE_MASK) | (int(rcode) & RCODE_MASK)

    def __repr__(self):
        return (f"DNSHeader(id={self.id}, flags=0x{self.flags:04x}, qd={self.qdcount}, "
                f"an={self.ancount}, ns={self.nscount}, ar={self.arcount})")


class DNSMessage:
    """Decoded view of a datagram: header plus the first question."""

    __slots__ = ('header', 'qname', 'qtype', 'qclass')

    def __init__(self, header: DNSHeader, qname: str, qtype: int, qclass: int):
        self.header = header
        self.qname = qname
        self.qtype = qtype
        self.qclass = qclass

    def __repr__(self):
        return f"DNSMessage({self.header!r}, qname={self.qname!r}, qtype={self.qtype}, qclass={self.qclass})"


def decode_header(data: bytes) -> DNSHeader:
    if len(data) < HEADER_SIZE:
        raise TruncatedHeader(f"datagram is {len(data)} octets, header needs {HEADER_SIZE}")
    return DNSHeader(*struct.unpack_from(_HEADER_FMT, data, 0))


def decode_question(data: bytes, max_name_length: int = DEFAULT_MAX_NAME_LENGTH) -> Tuple[str, int, int]:
    """Read the question name, type and class that follow the header.

    Only sequential literal labels are understood. Each label is copied octet for
    octet (latin-1, so the text maps back to the wire bytes one to one) and joined
    with dots. A length octet with either high bit set is a compression pointer or
    an extended label type and is refused rather than followed.
    """
    offset = HEADER_SIZE
    end = len(data)
    parts = []
    length = 0
    while True:
        if offset >= end:
            raise TruncatedQuestion("question name runs past end of datagram")
        label_len = data[offset]
        offset += 1
        if label_len == 0:
            break
        if label_len & 0xC0:
            raise UnsupportedNameEncoding(f"label length octet 0x{label_len:02x} at offset {offset - 1}")
        if offset + label_len > end:
            raise TruncatedQuestion("label runs past end of datagram")
        grown = length + label_len + (1 if parts else 0)
        if grown > max_name_length:
            raise NameTooLong(f"name exceeds {max_name_length} characters")
        parts.append(data[offset:offset + label_len].decode('latin-1'))
        length = grown
        offset += label_len
    if offset + 4 > end:
        raise TruncatedQuestion("question type/class missing")
    qtype, qclass = struct.unpack_from('!HH', data, offset)
    return '.'.join(parts), qtype, qclass


def decode(data: bytes, max_name_length: int = DEFAULT_MAX_NAME_LENGTH) -> DNSMessage:
    header = decode_header(data)
    qname, qtype, qclass = decode_question(data, max_name_length)
    return DNSMessage(header, qname, qtype, qclass)


def encode_header_in_place(buffer: bytearray, header: DNSHeader) -> bytearray:
    """Overwrite the first 12 octets of ``buffer`` with ``header``; the rest is untouched."""
    if len(buffer) < HEADER_SIZE:
        raise TruncatedHeader("buffer too short to hold a header")
    struct.pack_into(_HEADER_FMT, buffer, 0, header.id, header.flags, header.qdcount,
                     header.ancount, header.nscount, header.arcount)
    return buffer


def make_error_response(data: bytes, rcode: int, header: Optional[DNSHeader] = None) -> bytearray:
    """Turn a received query into an error answer carrying ``rcode``.

    QR, AA and RA are raised, the answer and authority counts are zeroed and the
    question section is echoed back byte for byte.
    """
    buffer = bytearray(data)
    if header is None:
        header = decode_header(buffer)
    reply = DNSHeader(header.id, header.flags, header.qdcount, 0, 0, header.arcount)
    reply.flags = int(reply.flags) | int(dns.flags.QR | dns.flags.AA | dns.flags.RA)
    reply.set_rcode(rcode)
    return encode_header_in_place(buffer, reply)


def rcode_text(rcode: int) -> str:
    return dns.rcode.to_text(rcode)
