from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FORMAT = "[%(levelname)s] %(asctime)s %(name)s: %(message)s"


def configure_logging(level_name: str = "INFO", log_path: Optional[Path] = None) -> None:
    """
    Idempotent: Streamlit re-runs page scripts on every interaction, so this
    only adds the file handler once per path and otherwise adjusts the level.
    """
    level = getattr(logging, str(level_name).upper(), logging.INFO)
    root = logging.getLogger()

    if not root.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    root.setLevel(level)

    if log_path is None:
        return

    target = str(Path(log_path).resolve())
    for h in root.handlers:
        if isinstance(h, RotatingFileHandler) and h.baseFilename == target:
            h.setLevel(level)
            return

    handler = RotatingFileHandler(target, maxBytes=1_000_000, backupCount=3, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
