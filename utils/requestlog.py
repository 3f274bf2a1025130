import logging
import os
from logging.handlers import TimedRotatingFileHandler
from typing import Optional


REQUEST_LOGGER_NAME = "sentineld.DNSRequests"
REQUEST_LOG_FILE = "dns-requests.log"


def setup_request_log(log_dir: str, retention_days: int = 7) -> Optional[logging.Logger]:
    """Attach a midnight-rotating file handler for per-query events.

    Returns the logger, or None when the directory or file cannot be created;
    the proxy keeps running with console logging only in that case.
    """
    try:
        os.makedirs(log_dir, exist_ok=True)
        fh = TimedRotatingFileHandler(os.path.join(log_dir, REQUEST_LOG_FILE), when="midnight",
                                      backupCount=retention_days)
    except OSError as e:
        logging.getLogger("sentineld").warning("Failed to init request log in %s: %s", log_dir, e)
        return None
    fh.setFormatter(logging.Formatter("%(asctime)s %(message)s"))
    flog = logging.getLogger(REQUEST_LOGGER_NAME)
    flog.setLevel(logging.INFO)
    flog.propagate = False
    if not any(isinstance(h, TimedRotatingFileHandler) for h in flog.handlers):
        flog.addHandler(fh)
    else:
        fh.close()
    return flog


def close_request_log(flog: Optional[logging.Logger]):
    if flog is None:
        return
    for h in list(flog.handlers):
        flog.removeHandler(h)
        h.close()
