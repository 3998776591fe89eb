# =============================================
# File: kitchen_dss/utils/logging.py
# Purpose: Logging configuration
# =============================================
import os
from typing import Optional

from loguru import logger

_file_sink_id: Optional[int] = None


def configure_file_logging(path: Optional[str] = None) -> Optional[int]:
    """Add a rotating loguru file sink (DSS_LOG_FILE). Idempotent; returns the sink id."""
    global _file_sink_id
    path = path or os.getenv("DSS_LOG_FILE", "").strip()
    if not path or _file_sink_id is not None:
        return _file_sink_id
    _file_sink_id = logger.add(path, rotation="10 MB", enqueue=False)
    logger.info(f"[logging] file sink at {path}")
    return _file_sink_id


def remove_file_logging() -> None:
    global _file_sink_id
    if _file_sink_id is not None:
        logger.remove(_file_sink_id)
        _file_sink_id = None
