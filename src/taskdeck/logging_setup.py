from __future__ import annotations

import logging
import sys
from pathlib import Path


class _NoiseFilter(logging.Filter):
    """
    Keep our own records; let third-party libraries through only at ERROR+.
    googleapiclient and urllib3 log every request at INFO/DEBUG.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name.startswith("taskdeck."):
            return True
        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: str | Path,
    level: int = logging.INFO,
    console: bool = False,
) -> Path:
    """
    Configure logging with:
    - File handler: full logs for debugging
    - Optional stderr handler (off while the TUI owns the terminal)

    Call this ONCE, before the app starts. Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "taskdeck.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # Remove any pre-existing handlers to avoid duplicates.
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(threadName)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    fh = logging.FileHandler(str(log_file), encoding="utf-8")
    fh.setLevel(level)
    fh.setFormatter(fmt)
    fh.addFilter(_NoiseFilter())
    root.addHandler(fh)

    if console:
        ch = logging.StreamHandler(sys.stderr)
        ch.setLevel(max(level, logging.WARNING))
        ch.setFormatter(fmt)
        ch.addFilter(_NoiseFilter())
        root.addHandler(ch)

    logging.captureWarnings(True)
    return log_file
