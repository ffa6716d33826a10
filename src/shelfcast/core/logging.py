import logging
import os
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

# Third-party loggers that log every request at INFO.
NOISY_LOGGERS = ("httpx", "httpcore")


def _env_level() -> Optional[int]:
    if os.environ.get("SHELFCAST_DEBUG", "false").lower() == "true":
        return logging.DEBUG
    name = os.environ.get("SHELFCAST_LOG_LEVEL", "").upper()
    return logging.getLevelName(name) if name in ("DEBUG", "INFO", "WARNING", "ERROR") else None


def setup_logging(debug: bool = False) -> None:
    """
    Routes log records to stderr through rich, so warnings about failing
    sources never end up inside the result tables on stdout.
    """
    level = logging.DEBUG if debug else (_env_level() or logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if level == logging.DEBUG else logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Return a logger instance with the given name."""
    return logging.getLogger(name)
