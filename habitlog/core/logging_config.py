from __future__ import annotations

import logging
from typing import Optional

from habitlog.core.config import settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """Configure the root logger once for the process."""
    name = (level or settings.LOG_LEVEL).upper()
    logging.basicConfig(level=getattr(logging, name, logging.INFO), format=LOG_FORMAT)
    return logging.getLogger("habitlog")
