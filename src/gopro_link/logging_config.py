"""Rich console logging for gopro-link."""

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

# Libraries that flood DEBUG output during scans and polling
NOISY_LOGGERS = ("bleak", "aiohttp", "asyncio")

FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def setup_logging(
    level: int = logging.INFO,
    log_file: Path | None = None,
    console: Console | None = None,
    radio_debug: bool = False,
    file_level: int = logging.DEBUG,
) -> None:
    """
    Route all log records to a rich console, optionally mirrored to a file.

    Args:
        level: Console level (default: INFO)
        log_file: Optional plain-text log, handy for field sessions without a terminal
        console: Console to render on (a new one by default)
        radio_debug: Keep bleak/aiohttp/asyncio at ``level`` instead of WARNING
        file_level: Level of the file log (default: DEBUG)
    """
    console_handler = RichHandler(
        console=console or Console(),
        rich_tracebacks=True,
        show_path=level <= logging.DEBUG,
        markup=False,
    )
    console_handler.setLevel(level)
    handlers: list[logging.Handler] = [console_handler]

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(file_level)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        handlers.append(file_handler)

    root_level = min(level, file_level) if log_file is not None else level
    logging.basicConfig(level=root_level, format="%(message)s", datefmt="[%X]", handlers=handlers, force=True)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(level if radio_debug else max(level, logging.WARNING))


def get_logger(name: str) -> logging.Logger:
    """Module logger; same as ``logging.getLogger(name)``."""
    return logging.getLogger(name)
