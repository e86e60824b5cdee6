"""
Workpaper Configuration

Environment-driven settings. Values are read once at import time after
loading an optional .env file.
"""

import os
import logging

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid integer for {name}: {raw!r}, using {default}")
        return default


ENVIRONMENT = os.environ.get("ENVIRONMENT", "development")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
VERSION = "1.0.0"

# Analytics
ANALYTICS_SAMPLE_CAP = _int_env("ANALYTICS_SAMPLE_CAP", 100)
ANALYTICS_PARALLEL_THRESHOLD = _int_env("ANALYTICS_PARALLEL_THRESHOLD", 50000)
ANALYTICS_MAX_WORKERS = _int_env("ANALYTICS_MAX_WORKERS", 4)

# Uploads
MAX_UPLOAD_MB = _int_env("MAX_UPLOAD_MB", 10)
MAX_UPLOAD_BYTES = MAX_UPLOAD_MB * 1024 * 1024

# CORS
CORS_ORIGINS = [
    o.strip() for o in os.environ.get("CORS_ORIGINS", "").split(",") if o.strip()
]
