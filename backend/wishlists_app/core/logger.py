import logging
from pathlib import Path

from wishlists_app.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

# link previews fetch arbitrary shop pages; one INFO line per request is noise
QUIET_LOGGERS = ("httpx", "httpcore", "aiosqlite")


def _has_file_handler(root: logging.Logger, log_path: Path) -> bool:
    return any(
        isinstance(handler, logging.FileHandler) and handler.baseFilename == str(log_path.resolve())
        for handler in root.handlers
    )


def configure_logging() -> logging.Logger:
    """Install the stream and optional file handlers once; safe to call again."""
    level = getattr(logging, (settings.log_level or "INFO").upper(), logging.INFO)
    root = logging.getLogger()
    formatter = logging.Formatter(LOG_FORMAT)

    new_handlers: list[logging.Handler] = []
    if not root.handlers:
        new_handlers.append(logging.StreamHandler())
    if settings.log_file:
        log_path = Path(settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        if not _has_file_handler(root, log_path):
            new_handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    for handler in new_handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    root.setLevel(level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    logger = logging.getLogger("wishlists")
    logger.setLevel(level)
    return logger
