import logging
from typing import Iterable, List, Optional, Union


logger = logging.getLogger("sentineld.blacklist")


def normalize_line(line: Union[str, bytes]) -> Optional[str]:
    """Normalize one raw filter line. Returns None for comments and empty lines.

    The entry ends at the first control character (this drops the trailing
    newline and any carriage return), trailing spaces are trimmed and every
    remaining character is masked to 7 bits.
    """
    if isinstance(line, bytes):
        line = line.decode('latin-1')
    if line.startswith('#'):
        return None
    for idx, ch in enumerate(line):
        if ch < ' ':
            line = line[:idx]
            break
    line = line.rstrip(' ')
    if not line:
        return None
    return ''.join(chr(ord(ch) & 0x7F) for ch in line)


class Blacklist:
    """Immutable list of filter substrings.

    A name is blacklisted when any entry occurs anywhere inside it, so the entry
    ``ads`` blocks ``myads.example.com`` as well as ``ads.example.com``. This is
    plain substring containment, not label or suffix matching.
    """

    __slots__ = ('_entries',)

    def __init__(self, entries: Iterable[str] = ()):
        self._entries = tuple(entries)

    @classmethod
    def from_lines(cls, lines: Iterable[Union[str, bytes]]) -> 'Blacklist':
        entries: List[str] = []
        try:
            for raw in lines:
                entry = normalize_line(raw)
                if entry is None:
                    continue
                entries.append(entry)
        except MemoryError:
            logger.warning("Not enough memory to grow the blacklist, continuing with %d entries", len(entries))
        return cls(entries)

    @property
    def entries(self) -> tuple:
        return self._entries

    def is_blacklisted(self, name: str) -> bool:
        for entry in self._entries:
            if entry in name:
                return True
        return False

    def __contains__(self, name: str) -> bool:
        return self.is_blacklisted(name)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self):
        return f"Blacklist({len(self._entries)} entries)"
