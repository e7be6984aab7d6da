"""
Logging setup shared by the API process and the admin CLI.

Records go to stderr and, when ``LOG_FILE`` is set, to a file as well.
HTTP client and access logs are kept at WARNING unless the application
itself runs at DEBUG, so Paystack calls and per-request lines do not
drown the business events logged by the services.
"""

import logging
import sys
from pathlib import Path
from typing import Optional


LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

# Third party loggers that are noisy at INFO
CHATTY_LOGGERS = ("httpx", "httpcore", "uvicorn.access")

_configured = False


def setup_logging(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """Install handlers on the root logger and return it.

    Calling it again (tests build the app more than once) only adjusts
    the level.

    Parameters
    ----------
    level : str
        Level name such as ``"DEBUG"`` or ``"warning"``; unknown names
        mean ``INFO``.
    log_file : Optional[str]
        Extra destination for the same records; parent directories are
        created.
    """
    global _configured
    root = logging.getLogger()
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO
    root.setLevel(numeric_level)

    for name in CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if numeric_level <= logging.DEBUG else logging.WARNING)

    if _configured:
        return root

    formatter = logging.Formatter(LOG_FORMAT, DATE_FORMAT)
    stream = logging.StreamHandler(sys.stderr)
    stream.setFormatter(formatter)
    root.addHandler(stream)

    if log_file:
        path = Path(log_file).expanduser().resolve()
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    _configured = True
    return root
