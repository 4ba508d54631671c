# =============================================================================
# Logging Setup
# =============================================================================
#
# Every module logs through `logging.getLogger(__name__)`; this module only
# installs the root handler once at startup and sets the level from
# Settings.log_level.
# =============================================================================

import logging

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# The handler this module installed, if any
_handler: logging.Handler | None = None


def configure_logging(level: str = "INFO") -> None:
    """Install a single stream handler on the root logger.

    Safe to call more than once (e.g. on every app startup in tests); the
    handler is only added the first time, later calls just adjust the level.
    """
    global _handler

    resolved = getattr(logging, str(level).upper().strip(), logging.INFO)

    root = logging.getLogger()
    if _handler is None or _handler not in root.handlers:
        _handler = logging.StreamHandler()
        _handler.setFormatter(logging.Formatter(_FORMAT))
        root.addHandler(_handler)

    root.setLevel(resolved)

    # Chatty third-party loggers
    for name in ("httpx", "chromadb", "aiohttp.access"):
        logging.getLogger(name).setLevel(max(resolved, logging.WARNING))
