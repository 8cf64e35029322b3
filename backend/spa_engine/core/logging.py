"""Process-wide logging configuration."""

import logging

from .config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_configured = False


def setup_logging(level: str | None = None) -> None:
    """Configure the root logger once; later calls only adjust the level."""
    global _configured
    resolved = getattr(logging, (level or settings.log_level).upper(), logging.INFO)
    if not _configured:
        logging.basicConfig(level=resolved, format=LOG_FORMAT)
        _configured = True
    logging.getLogger().setLevel(resolved)
    # SQLAlchemy engine logging is controlled by DATABASE_ECHO instead
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
