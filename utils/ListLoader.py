import logging
import requests

from urllib.parse import urlparse

from core.blacklist import Blacklist


logger = logging.getLogger("sentineld.ListLoader")


class BlacklistSourceError(Exception):
    pass


def read_source_lines(source, timeout=30):
    """Return the raw lines of one blacklist source (local path or http(s) URL)."""
    parsed = urlparse(source)
    if parsed.scheme in ('http', 'https'):
        try:
            resp = requests.get(source, timeout=timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            raise BlacklistSourceError(f"Failed to fetch {source}: {e}")
        return resp.content.splitlines(keepends=True)
    if parsed.scheme in ('', 'file'):
        path = parsed.path if parsed.scheme == 'file' else source
        try:
            with open(path, 'rb') as f:
                return f.readlines()
        except OSError as e:
            raise BlacklistSourceError(f"Error opening filter file: {path} ({e})")
    raise BlacklistSourceError(f"Unsupported blacklist source scheme: {source}")


def load_blacklist(sources, timeout=30):
    """Build one Blacklist from every source, in order.

    Any source that cannot be read is fatal; the caller decides what an empty
    result means.
    """
    if isinstance(sources, str):
        sources = [s.strip() for s in sources.split(',') if s.strip()]
    lines = []
    for source in sources:
        got = read_source_lines(source, timeout=timeout)
        logger.debug("Loaded %d lines from %s", len(got), source)
        lines.extend(got)
    blacklist = Blacklist.from_lines(lines)
    logger.info("Blacklist loaded with %d entries from %d source(s)", len(blacklist), len(sources))
    return blacklist
