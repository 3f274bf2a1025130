from typing import Optional

import dns.rcode
import dns.rdataclass
import dns.rdatatype

from core import codec
from core.blacklist import Blacklist


FORWARD = 'FORWARD'
FORMAT_ERROR = 'FORMAT_ERROR'
NOT_IMPLEMENTED = 'NOT_IMPLEMENTED'
REFUSED = 'REFUSED'

RCODES = {
    FORMAT_ERROR: dns.rcode.FORMERR,
    NOT_IMPLEMENTED: dns.rcode.NOTIMP,
    REFUSED: dns.rcode.REFUSED,
}


class Decision:
    """Outcome of evaluating one client datagram.

    ``header`` is set whenever the datagram held a full header; ``message`` only
    when the question decoded as well. ``reason`` is a short human note for logs.
    """

    __slots__ = ('action', 'header', 'message', 'reason')

    def __init__(self, action: str, header: Optional[codec.DNSHeader] = None,
                 message: Optional[codec.DNSMessage] = None, reason: str = ''):
        self.action = action
        self.header = header
        self.message = message
        self.reason = reason

    @property
    def rcode(self) -> Optional[int]:
        rcode = RCODES.get(self.action)
        return int(rcode) if rcode is not None else None

    @property
    def qname(self) -> Optional[str]:
        return self.message.qname if self.message else None

    def __repr__(self):
        return f"Decision({self.action}, qname={self.qname!r}, reason={self.reason!r})"


def header_is_query(header: codec.DNSHeader) -> bool:
    if header.qr or header.z or header.cd:
        return False
    return header.qdcount > 0 and header.ancount == 0


def evaluate(data: bytes, blacklist: Blacklist,
             max_name_length: int = codec.DEFAULT_MAX_NAME_LENGTH) -> Decision:
    """Classify a client datagram as forward, format error, not implemented or refused.

    Raises codec.TruncatedHeader when ``data`` is shorter than a header; such a
    datagram has no transaction ID to answer, so the server drops it instead of
    echoing a rewritten header built from whatever the runt happened to contain.
    """
    header = codec.decode_header(data)
    if not header_is_query(header):
        return Decision(FORMAT_ERROR, header, reason='bad header')
    try:
        qname, qtype, qclass = codec.decode_question(data, max_name_length)
    except codec.CodecError as e:
        return Decision(FORMAT_ERROR, header, reason=str(e))
    message = codec.DNSMessage(header, qname, qtype, qclass)
    if qtype <= 0 or qclass <= 0:
        return Decision(FORMAT_ERROR, header, message, reason='zero type or class')
    if qtype != dns.rdatatype.A or qclass != dns.rdataclass.IN:
        return Decision(NOT_IMPLEMENTED, header, message,
                        reason=f"{dns.rdatatype.to_text(qtype)}/{dns.rdataclass.to_text(qclass)}")
    if blacklist.is_blacklisted(qname):
        return Decision(REFUSED, header, message, reason='blacklisted')
    return Decision(FORWARD, header, message)


def error_response(data: bytes, decision: Decision) -> bytearray:
    """Rewrite ``data`` into the error answer for a non-forward ``decision``."""
    if decision.rcode is None:
        raise ValueError(f"{decision.action} has no response code")
    return codec.make_error_response(data, decision.rcode, decision.header)
