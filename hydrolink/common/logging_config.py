# hydrolink/common/logging_config.py
from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str | int = "INFO", log_file: Optional[str | Path] = None) -> None:
    """
    Attach a stderr handler and, optionally, a file handler to the root logger.

    Idempotent: calling again adjusts the level but never duplicates handlers.
    """
    root = logging.getLogger()
    numeric = level if isinstance(level, int) else logging.getLevelName(str(level).upper())
    if not isinstance(numeric, int):
        numeric = logging.INFO
    root.setLevel(numeric)

    formatter = logging.Formatter(LOG_FORMAT)

    if not any(getattr(h, "_hydrolink_stream", False) for h in root.handlers):
        sh = logging.StreamHandler(sys.stderr)
        sh.setFormatter(formatter)
        sh._hydrolink_stream = True  # type: ignore[attr-defined]
        root.addHandler(sh)

    if log_file is None:
        return

    path = Path(log_file)
    path.parent.mkdir(parents=True, exist_ok=True)
    target = str(path.resolve())

    for h in root.handlers:
        if isinstance(h, logging.FileHandler) and getattr(h, "baseFilename", None) == target:
            return

    fh = logging.FileHandler(path, encoding="utf-8", delay=True)
    fh.setFormatter(formatter)
    root.addHandler(fh)
