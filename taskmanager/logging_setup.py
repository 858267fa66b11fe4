# taskmanager/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

PROJECT_LOGGERS = ("taskmanager", "tasks", "chat", "console")


class _ConsoleNoiseFilter(logging.Filter):
    """
    Keep the console readable:
    - project logs pass
    - django.request / django.server pass at INFO+ (access and error lines)
    - any other third-party logger only at WARNING+
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name.split(".", 1)[0] in PROJECT_LOGGERS:
            return True
        if name in ("django.request", "django.server"):
            return record.levelno >= logging.INFO
        return record.levelno >= logging.WARNING


def setup_logging(
    *,
    log_dir: str | Path | None = ".local/taskmanager",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    log_name: str = "taskmanager.log",
) -> None:
    """
    Configure logging with:
    - Console handler: filtered, on stderr
    - File handler (only when log_dir is set): full logs for debugging

    Django's own LOGGING_CONFIG is disabled, so this is the single place
    handlers are installed. Call it once, before the first logger.info.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # Remove any pre-existing handlers to avoid duplicates.
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(console_level)
    ch.setFormatter(fmt)
    ch.addFilter(_ConsoleNoiseFilter())
    root.addHandler(ch)

    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(str(log_dir / log_name), encoding="utf-8")
        fh.setLevel(file_level)
        fh.setFormatter(fmt)
        root.addHandler(fh)

    logging.captureWarnings(True)

    # httpx logs every request line at INFO; keep it out of the file too.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
