# ffnews/sources.py
# Seed/refresh the sources table from a YAML file.
# The table is the source of truth at run time; the file is only a convenient way to fill it.
from __future__ import annotations
import logging
import os
from typing import Any, Dict, List, Optional, Tuple

import yaml  # pip install pyyaml
from pydantic import ValidationError

from ffnews import db
from ffnews.config import SOURCES_FILE
from ffnews.errors import ConfigurationError
from ffnews.models import Source

logger = logging.getLogger(__name__)


class _FileCache:
    def __init__(self) -> None:
        self._cache: Dict[str, Tuple[float, Any]] = {}

    def load_yaml(self, path: str) -> Any:
        abspath = os.path.abspath(path)
        mtime = os.path.getmtime(abspath)
        cached = self._cache.get(abspath)
        if cached and cached[0] == mtime:
            return cached[1]
        with open(abspath, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        self._cache[abspath] = (mtime, data)
        return data


_cache = _FileCache()


def load_sources_file(path: Optional[str] = None) -> List[Source]:
    """Parse and validate every entry. A bad entry fails the whole file."""
    path = path or SOURCES_FILE
    try:
        data = _cache.load_yaml(path)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"cannot read sources file {path}: {e}") from e
    entries = data.get("sources", []) if isinstance(data, dict) else []
    out: List[Source] = []
    for i, entry in enumerate(entries):
        try:
            out.append(Source.model_validate(entry))
        except ValidationError as e:
            raise ConfigurationError(f"{path}: entry {i} is invalid: {e}") from e
    return out


def seed_sources(path: Optional[str] = None, db_path: Optional[str] = None) -> int:
    """Upsert every file entry, keeping only the method fields its fetch_mode uses."""
    db.ensure_schema(db_path)
    sources = load_sources_file(path)
    for src in sources:
        db.save_source(src.exclusive(), db_path)
    logger.info("seeded %d sources from %s", len(sources), path or SOURCES_FILE)
    return len(sources)
