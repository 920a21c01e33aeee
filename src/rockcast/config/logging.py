"""Logging setup for the CLI."""

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Third-party loggers that are chatty at DEBUG
NOISY_LOGGERS = ("httpx", "httpcore", "asyncio")


def setup_logging(
    verbose: bool = False,
    log_file: Path | None = None,
    level: str | None = None,
) -> None:
    """Configure the root logger.

    Console output goes through Rich on stderr. When ``log_file`` is given,
    records are also appended there with timestamps and logger names.

    Args:
        verbose: Log at DEBUG regardless of ``level``
        log_file: Optional file to append log records to
        level: Level name from configuration (default INFO)
    """
    effective = logging.DEBUG if verbose else getattr(logging, level or "INFO", logging.INFO)

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console_handler = RichHandler(
        console=Console(stderr=True),
        show_path=verbose,
        rich_tracebacks=verbose,
    )
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    root.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        root.addHandler(file_handler)

    root.setLevel(effective)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(effective, logging.WARNING))
