# ffnews/config.py
from __future__ import annotations
import logging
import os
from typing import Optional


def get_int(name: str, default: Optional[int] = None) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def get_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


# Storage
DB_PATH = os.environ.get("FFNEWS_DB_PATH", "ffnews.db")
SOURCES_FILE = os.environ.get("FFNEWS_SOURCES_FILE", os.path.join("data", "sources.yaml"))

# Outbound HTTP
HTTP_TIMEOUT = get_float("FFNEWS_HTTP_TIMEOUT", 15.0)
HTTP_RETRIES = get_int("FFNEWS_HTTP_RETRIES", 2)
HTTP_BACKOFF = get_float("FFNEWS_HTTP_BACKOFF", 0.25)  # seconds, multiplied by attempt
USER_AGENT = os.environ.get(
    "FFNEWS_USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36",
)

# Meta-tag (og:image) page reads
OG_FETCH_TIMEOUT = get_float("FFNEWS_OG_TIMEOUT", 4.0)
OG_MAX_BYTES = get_int("FFNEWS_OG_MAX_BYTES", 400_000)

# Image verification
IMAGE_HEAD_TIMEOUT = get_float("FFNEWS_IMAGE_HEAD_TIMEOUT", 3.5)
IMAGE_HEAD_CONCURRENCY = get_int("FFNEWS_IMAGE_HEAD_CONCURRENCY", 4)
IMAGE_MIN_BYTES = get_int("FFNEWS_IMAGE_MIN_BYTES", 2000)
ENABLE_HEADSHOTS = get_bool("FFNEWS_ENABLE_HEADSHOTS", True)

# Ingest
FETCH_BATCH_SIZE = get_int("FFNEWS_FETCH_BATCH", 6)
INGEST_WORKERS = max(1, min(8, get_int("FFNEWS_INGEST_WORKERS", 4) or 4))
DEFAULT_ITEM_LIMIT = get_int("FFNEWS_ITEM_LIMIT", 50)
PREVIEW_CAP = 50


def setup_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
