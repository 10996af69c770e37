import logging
from circulation.config import settings

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_configured = False

def configure_logging(level: str | None = None) -> None:
    """Apply LOG_LEVEL to the root logger. Safe to call more than once."""
    global _configured
    lvl = (level or settings.LOG_LEVEL or "INFO").upper()
    if not _configured:
        logging.basicConfig(level=lvl, format=_FORMAT)
        _configured = True
    logging.getLogger().setLevel(lvl)
