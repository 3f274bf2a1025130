from typing import List, Optional, Tuple


CORRELATION_SLOTS = 32


class CorrelationTable:
    """Fixed ring of (transaction ID, client port, client IP) slots.

    The write cursor wraps back to 0 when it reaches ``capacity - 1``, so the last
    slot is never written and at most ``capacity - 1`` queries are tracked at a
    time. Older entries are silently overwritten; an answer whose entry has been
    overwritten is dropped by the caller.
    """

    def __init__(self, capacity: int = CORRELATION_SLOTS):
        if capacity < 2:
            raise ValueError("correlation table needs at least 2 slots")
        self.capacity = capacity
        self._slots: List[Optional[Tuple[int, int, str]]] = [None] * capacity
        self._cursor = 0

    @property
    def cursor(self) -> int:
        return self._cursor

    def record(self, txid: int, client_port: int, client_ip: str):
        self._slots[self._cursor] = (txid, client_port, client_ip)
        self._cursor += 1
        if self._cursor == self.capacity - 1:
            self._cursor = 0

    def resolve(self, txid: int) -> Optional[Tuple[int, str]]:
        """Return (client_port, client_ip) of the lowest slot holding ``txid``, or None."""
        for slot in self._slots:
            if slot is not None and slot[0] == txid:
                return slot[1], slot[2]
        return None

    def __len__(self) -> int:
        return sum(1 for slot in self._slots if slot is not None)
