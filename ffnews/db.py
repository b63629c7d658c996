# ffnews/db.py
from __future__ import annotations
import json
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ffnews.config import DB_PATH
from ffnews.errors import PersistenceError
from ffnews.models import NormalizedArticle, Source

SCHEMA = """
CREATE TABLE IF NOT EXISTS sources (
    id              INTEGER PRIMARY KEY,
    name            TEXT NOT NULL DEFAULT '',
    homepage_url    TEXT,
    rss_url         TEXT,
    sitemap_url     TEXT,
    scrape_selector TEXT,
    scrape_path     TEXT,
    adapter         TEXT,
    adapter_config  TEXT,
    fetch_mode      TEXT NOT NULL DEFAULT 'auto',
    allowed         INTEGER NOT NULL DEFAULT 1,
    priority        INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS articles (
    id              INTEGER PRIMARY KEY,
    canonical_url   TEXT NOT NULL UNIQUE,
    url             TEXT,
    domain          TEXT,
    title           TEXT,
    cleaned_title   TEXT,
    topics          TEXT,
    primary_topic   TEXT,
    secondary_topic TEXT,
    week            INTEGER,
    published_at    TEXT,
    image_url       TEXT,
    is_player_page  INTEGER NOT NULL DEFAULT 0,
    players         TEXT,
    fingerprint     TEXT,
    source_id       INTEGER,
    first_write_id  TEXT NOT NULL,
    created_at      TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_articles_fingerprint ON articles(fingerprint);
CREATE INDEX IF NOT EXISTS idx_articles_published ON articles(published_at);

CREATE TABLE IF NOT EXISTS image_cache (
    url          TEXT PRIMARY KEY,
    ok           INTEGER NOT NULL,
    content_type TEXT,
    bytes        INTEGER,
    checked_at   TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS player_images (
    key         TEXT PRIMARY KEY,
    url         TEXT NOT NULL,
    source      TEXT,
    source_rank INTEGER NOT NULL DEFAULT 100,
    updated_at  TEXT NOT NULL
);
"""

# Every column except identity and write bookkeeping merges with COALESCE,
# so a pass that knows less never erases what an earlier pass stored.
_MERGE_COLUMNS = [
    "url", "domain", "title", "cleaned_title", "topics", "primary_topic", "secondary_topic",
    "week", "published_at", "image_url", "players", "fingerprint", "source_id",
]


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def get_conn(db_path: Optional[str] = None) -> sqlite3.Connection:
    # check_same_thread=False: ingest workers open their own handles but share this helper.
    conn = sqlite3.connect(db_path or DB_PATH, timeout=30, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def ensure_schema(db_path: Optional[str] = None) -> None:
    conn = get_conn(db_path)
    try:
        conn.execute("PRAGMA journal_mode=WAL")
        conn.executescript(SCHEMA)
        conn.commit()
    finally:
        conn.close()


# --- Articles -------------------------------------------------------------------

def _json_set(values: List[str]) -> Optional[str]:
    vals = sorted({v for v in values or [] if v})
    return json.dumps(vals) if vals else None


def article_row(article: NormalizedArticle) -> Dict[str, Any]:
    return {
        "canonical_url": article.canonical_url,
        "url": article.url or None,
        "domain": article.domain or None,
        "title": article.title or None,
        "cleaned_title": article.cleaned_title or None,
        "topics": _json_set(article.topics),
        "primary_topic": article.primary_topic or None,
        "secondary_topic": article.secondary_topic,
        "week": article.week,
        "published_at": article.published_at,
        "image_url": article.image_url,
        "is_player_page": 1 if article.is_player_page else 0,
        "players": _json_set(article.players),
        "fingerprint": article.fingerprint or None,
        "source_id": article.source_id,
    }


def _upsert_sql() -> str:
    cols = ["canonical_url"] + _MERGE_COLUMNS + ["is_player_page", "first_write_id", "created_at"]
    placeholders = ", ".join(f":{c}" for c in cols)
    merges = ",\n    ".join(f"{c} = COALESCE(excluded.{c}, articles.{c})" for c in _MERGE_COLUMNS)
    return f"""
INSERT INTO articles ({", ".join(cols)})
VALUES ({placeholders})
ON CONFLICT(canonical_url) DO UPDATE SET
    {merges},
    is_player_page = MAX(articles.is_player_page, excluded.is_player_page)
RETURNING first_write_id
"""


_UPSERT_ARTICLE = _upsert_sql()


def upsert_article(article: NormalizedArticle, db_path: Optional[str] = None) -> bool:
    """Insert or merge by canonical_url. Returns True when this call created the row.

    The answer comes from the write itself: first_write_id is only set on
    insert, so it matches this call's token only if this call inserted.
    """
    token = uuid.uuid4().hex
    params = article_row(article)
    params["first_write_id"] = token
    params["created_at"] = _utc_now_iso()
    conn = get_conn(db_path)
    try:
        rows = conn.execute(_UPSERT_ARTICLE, params).fetchall()
        conn.commit()
    except sqlite3.Error as e:
        raise PersistenceError(f"upsert failed for {article.canonical_url}: {e}") from e
    finally:
        conn.close()
    return bool(rows) and rows[0]["first_write_id"] == token


def _article_from_row(row: sqlite3.Row) -> Dict[str, Any]:
    d = dict(row)
    for key in ("topics", "players"):
        d[key] = json.loads(d[key]) if d.get(key) else []
    d["is_player_page"] = bool(d.get("is_player_page"))
    d.pop("first_write_id", None)
    return d


def get_article(canonical_url: str, db_path: Optional[str] = None) -> Optional[Dict[str, Any]]:
    conn = get_conn(db_path)
    try:
        row = conn.execute("SELECT * FROM articles WHERE canonical_url = ?", (canonical_url,)).fetchone()
        return _article_from_row(row) if row else None
    finally:
        conn.close()


def count_articles(db_path: Optional[str] = None) -> int:
    conn = get_conn(db_path)
    try:
        return conn.execute("SELECT COUNT(*) FROM articles").fetchone()[0]
    finally:
        conn.close()


# --- Sources --------------------------------------------------------------------

def _source_from_row(row: sqlite3.Row) -> Source:
    d = dict(row)
    d["adapter_config"] = json.loads(d["adapter_config"]) if d.get("adapter_config") else {}
    d["allowed"] = bool(d.get("allowed"))
    return Source(**d)


def get_source(source_id: int, db_path: Optional[str] = None) -> Optional[Source]:
    conn = get_conn(db_path)
    try:
        row = conn.execute("SELECT * FROM sources WHERE id = ?", (source_id,)).fetchone()
        return _source_from_row(row) if row else None
    finally:
        conn.close()


def list_sources(allowed_only: bool = True, db_path: Optional[str] = None) -> List[Source]:
    conn = get_conn(db_path)
    try:
        sql = "SELECT * FROM sources"
        if allowed_only:
            sql += " WHERE allowed = 1"
        sql += " ORDER BY priority DESC, id"
        return [_source_from_row(r) for r in conn.execute(sql).fetchall()]
    finally:
        conn.close()


def save_source(source: Source, db_path: Optional[str] = None) -> None:
    """Write a source as given. Callers pass Source.exclusive() to keep one method populated."""
    d = source.model_dump()
    d["adapter_config"] = json.dumps(d["adapter_config"]) if d["adapter_config"] else None
    d["allowed"] = 1 if d["allowed"] else 0
    cols = list(d.keys())
    updates = ", ".join(f"{c} = excluded.{c}" for c in cols if c != "id")
    conn = get_conn(db_path)
    try:
        conn.execute(
            f"INSERT INTO sources ({', '.join(cols)}) VALUES ({', '.join(':' + c for c in cols)}) "
            f"ON CONFLICT(id) DO UPDATE SET {updates}",
            d,
        )
        conn.commit()
    except sqlite3.Error as e:
        raise PersistenceError(f"saving source {source.id} failed: {e}") from e
    finally:
        conn.close()


# --- Image verification cache ---------------------------------------------------

def get_image_check(url: str, db_path: Optional[str] = None) -> Optional[Dict[str, Any]]:
    conn = get_conn(db_path)
    try:
        row = conn.execute(
            "SELECT url, ok, content_type, bytes, checked_at FROM image_cache WHERE url = ?", (url,)
        ).fetchone()
        if not row:
            return None
        d = dict(row)
        d["ok"] = bool(d["ok"])
        return d
    finally:
        conn.close()


def save_image_check(
    url: str,
    ok: bool,
    content_type: Optional[str],
    size: Optional[int],
    db_path: Optional[str] = None,
) -> None:
    conn = get_conn(db_path)
    try:
        conn.execute(
            """
            INSERT INTO image_cache (url, ok, content_type, bytes, checked_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(url) DO UPDATE SET
                ok = excluded.ok,
                content_type = excluded.content_type,
                bytes = excluded.bytes,
                checked_at = excluded.checked_at
            """,
            (url, 1 if ok else 0, content_type or None, size, _utc_now_iso()),
        )
        conn.commit()
    except sqlite3.Error as e:
        raise PersistenceError(f"image cache write failed for {url}: {e}") from e
    finally:
        conn.close()


def purge_image_checks(older_than_iso: str, db_path: Optional[str] = None) -> int:
    """Forget verifications older than the cutoff so they are probed again."""
    conn = get_conn(db_path)
    try:
        cur = conn.execute("DELETE FROM image_cache WHERE checked_at < ?", (older_than_iso,))
        conn.commit()
        return cur.rowcount or 0
    finally:
        conn.close()


# --- Player headshots -----------------------------------------------------------

def upsert_player_image(key: str, url: str, source: str, source_rank: int = 100, db_path: Optional[str] = None) -> None:
    """Keep the headshot from the best-ranked source (lower rank wins, ties refresh)."""
    conn = get_conn(db_path)
    try:
        conn.execute(
            """
            INSERT INTO player_images (key, url, source, source_rank, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                url = excluded.url,
                source = excluded.source,
                source_rank = excluded.source_rank,
                updated_at = excluded.updated_at
            WHERE excluded.source_rank <= player_images.source_rank
            """,
            (key, url, source, source_rank, _utc_now_iso()),
        )
        conn.commit()
    except sqlite3.Error as e:
        raise PersistenceError(f"player image write failed for {key}: {e}") from e
    finally:
        conn.close()


def get_player_image(key: str, db_path: Optional[str] = None) -> Optional[str]:
    conn = get_conn(db_path)
    try:
        row = conn.execute("SELECT url FROM player_images WHERE key = ?", (key,)).fetchone()
        return row["url"] if row else None
    finally:
        conn.close()
