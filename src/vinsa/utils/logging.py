"""Logging setup for the ``vinsa`` command.

The terminal belongs to the agent's answers, so records always go to a rotating
file under ``~/.vinsa/logs`` (``VINSA_LOG_DIR`` moves it) and reach stderr only
in debug mode.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import sys
from pathlib import Path

__all__ = ["LOG_FILENAME", "setup_logging"]

LOG_FILENAME = "vinsa.log"
LOG_DIR_ENV = "VINSA_LOG_DIR"

_DEFAULT_LOG_DIR = Path.home() / ".vinsa" / "logs"
_FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_CONSOLE_FORMAT = "%(levelname)s %(name)s: %(message)s"
# Transport chatter; request payloads are logged by the client itself.
_TRANSPORT_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore", "openai")

_active_path: Path | None = None


def setup_logging(
    debug: bool = False,
    *,
    log_dir: Path | str | None = None,
    force: bool = False,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
) -> Path:
    """Route records to the rotating log file, plus stderr when ``debug`` is set.

    Repeated calls are no-ops unless ``force`` is given, which is how the CLI
    upgrades to debug output once persisted settings have been read.

    Returns:
        The path of the active log file.
    """

    global _active_path
    if _active_path is not None and not force:
        return _active_path

    level = logging.DEBUG if debug else logging.INFO
    directory = Path(log_dir or os.environ.get(LOG_DIR_ENV) or _DEFAULT_LOG_DIR).expanduser()
    directory.mkdir(parents=True, exist_ok=True)
    log_path = directory / LOG_FILENAME

    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    handlers: list[logging.Handler] = [file_handler]

    if debug:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
        handlers.append(console_handler)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    logging.captureWarnings(True)
    for name in _TRANSPORT_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    _active_path = log_path
    return log_path
