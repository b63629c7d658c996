# ffnews/ingest.py
"""Source -> candidates -> normalized articles -> store.

A run never raises at the batch level: every outcome lands in the returned
IngestSummary so partial runs are visible and can simply be re-run.
"""
from __future__ import annotations
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Set, Tuple, Union

import httpx

from ffnews import db
from ffnews.classify import player_key
from ffnews.config import DEFAULT_ITEM_LIMIT, ENABLE_HEADSHOTS, FETCH_BATCH_SIZE, INGEST_WORKERS
from ffnews.content_filter import allow_item, looks_like_non_article
from ffnews.dispatch import dispatch
from ffnews.errors import ConfigurationError, IngestError, PersistenceError
from ffnews.headshots import find_wikipedia_headshot
from ffnews.image_cache import ImageUsabilityCache
from ffnews.models import CandidateItem, IngestSummary, NormalizedArticle, PreviewItem, Source
from ffnews.net import make_client
from ffnews.normalize import Enricher, to_utc_iso
from ffnews.probe import to_preview
from ffnews.urls import canonicalize, is_likely_dead_redirect, unwrap_redirect

logger = logging.getLogger(__name__)

# player_images.source_rank: lower wins
RANK_PUBLISHER = 10
RANK_WIKIPEDIA = 50


class IngestContext:
    """The collaborators one process shares across sources and workers.

    Owns the HTTP client (unless one is passed in) and the image usability
    cache, so its semaphore and in-flight map live exactly as long as this
    object does.
    """

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        db_path: Optional[str] = None,
        headshots: bool = ENABLE_HEADSHOTS,
        image_cache: Optional[ImageUsabilityCache] = None,
    ):
        self._owns_client = client is None
        self.client = client or make_client()
        self.db_path = db_path
        db.ensure_schema(db_path)
        self.images = image_cache or ImageUsabilityCache(self.client, db_path=db_path)
        self.enricher = Enricher(
            self.client,
            self.images,
            headshot_lookup=find_wikipedia_headshot if headshots else None,
        )

    def close(self) -> None:
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> "IngestContext":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def resolve_source(source: Union[int, Source], db_path: Optional[str] = None) -> Source:
    if isinstance(source, Source):
        return source
    found = db.get_source(int(source), db_path)
    if found is None:
        raise ConfigurationError(f"unknown source {source}")
    return found


# --- Per-item rules ---------------------------------------------------------------

def skip_reason(item: CandidateItem, seen: Set[str]) -> Tuple[Optional[str], Optional[str]]:
    """(reason, canonical). A None reason means the item goes on to enrichment."""
    link = (item.link or "").strip()
    if not link:
        return "empty link", None
    link = unwrap_redirect(link)
    if is_likely_dead_redirect(link):
        return "dead redirect", None
    if looks_like_non_article(link):
        return "non-article", None
    if not allow_item(link, item.title, item.description or ""):
        return "filtered", None
    canonical = canonicalize(link)
    if canonical in seen:
        return "duplicate", canonical
    return None, canonical


def _chunks(seq: List, size: int) -> Iterable[List]:
    for i in range(0, len(seq), size):
        yield seq[i:i + size]


def _store_player_image(article: NormalizedArticle, db_path: Optional[str]) -> None:
    if not (article.is_player_page and article.image_url and article.players):
        return
    headshot = "wikimedia.org" in article.image_url or "wikipedia.org" in article.image_url
    db.upsert_player_image(
        player_key(article.players[0]),
        article.image_url,
        source="wikipedia" if headshot else article.domain,
        source_rank=RANK_WIKIPEDIA if headshot else RANK_PUBLISHER,
        db_path=db_path,
    )


# --- Orchestration ----------------------------------------------------------------

def ingest_source(
    ctx: IngestContext,
    source: Union[int, Source],
    limit: int = DEFAULT_ITEM_LIMIT,
    method: Optional[str] = None,
) -> IngestSummary:
    """Fetch one source and upsert what survives.

    ConfigurationError (unknown source, explicit method without its config)
    propagates; everything else is counted.
    """
    src = resolve_source(source, ctx.db_path)
    result = dispatch(ctx.client, src, limit=limit, method=method)
    summary = IngestSummary(source_id=src.id, method=result.method, fetched=len(result.items))
    summary.errors += len(result.errors)
    summary.error_messages.extend(result.errors)

    seen: Set[str] = set()
    todo: List[Tuple[CandidateItem, str]] = []
    for item in result.items:
        reason, canonical = skip_reason(item, seen)
        if reason:
            logger.debug("skip %s (%s)", item.link, reason)
            summary.skipped += 1
            continue
        seen.add(canonical)
        todo.append((item, canonical))

    def _enrich(job: Tuple[CandidateItem, str]):
        item, canonical = job
        try:
            return ctx.enricher.enrich(item, src, canonical_url=canonical), None
        except (IngestError, httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            return None, f"{item.link}: {e}"

    with ThreadPoolExecutor(max_workers=FETCH_BATCH_SIZE) as pool:
        for batch in _chunks(todo, FETCH_BATCH_SIZE):
            for article, err in pool.map(_enrich, batch):
                if err:
                    logger.warning("enrich failed %s", err)
                    summary.errors += 1
                    summary.error_messages.append(err)
                    continue
                summary.extracted += 1
                try:
                    if db.upsert_article(article, ctx.db_path):
                        summary.inserted += 1
                    else:
                        summary.updated += 1
                    _store_player_image(article, ctx.db_path)
                except PersistenceError as e:
                    logger.warning("store failed for %s: %s", article.canonical_url, e)
                    summary.errors += 1
                    summary.error_messages.append(str(e))

    logger.info(
        "source %s via %s: fetched=%d extracted=%d inserted=%d updated=%d skipped=%d errors=%d",
        src.id, result.method, summary.fetched, summary.extracted, summary.inserted,
        summary.updated, summary.skipped, summary.errors,
    )
    return summary


def ingest_all(
    ctx: IngestContext,
    workers: int = INGEST_WORKERS,
    limit: int = DEFAULT_ITEM_LIMIT,
    source_ids: Optional[List[int]] = None,
) -> IngestSummary:
    """Every allowed source (or the given ids) on a bounded pool. One source failing never stops the rest."""
    if source_ids:
        sources = [resolve_source(sid, ctx.db_path) for sid in source_ids]
    else:
        sources = db.list_sources(allowed_only=True, db_path=ctx.db_path)
    workers = max(1, min(8, int(workers or 1)))
    total = IngestSummary()

    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = {pool.submit(ingest_source, ctx, s, limit): s for s in sources}
        for fut in as_completed(futures):
            src = futures[fut]
            try:
                total.absorb(fut.result())
            except Exception as e:
                logger.exception("source %s failed", src.id)
                failed = IngestSummary(source_id=src.id, errors=1, error_messages=[str(e) or e.__class__.__name__])
                total.absorb(failed)
                total.error_messages.append(f"source {src.id}: {e}")

    total.sources.sort(key=lambda s: s.source_id or 0)
    logger.info(
        "ingest all: sources=%d inserted=%d updated=%d skipped=%d errors=%d",
        len(sources), total.inserted, total.updated, total.skipped, total.errors,
    )
    return total


def preview_source(
    ctx: IngestContext,
    source: Union[int, Source],
    limit: int = DEFAULT_ITEM_LIMIT,
    method: Optional[str] = None,
) -> Tuple[Optional[str], List[PreviewItem]]:
    """Dry-run dispatch for a configured source. Nothing is written."""
    src = resolve_source(source, ctx.db_path)
    result = dispatch(ctx.client, src, limit=limit, method=method)
    return result.method, to_preview(result.items)[:limit]


def recheck_images(older_than_days: int = 7, db_path: Optional[str] = None, now: Optional[datetime] = None) -> int:
    """Drop image verifications older than the threshold so the next ingest probes them again."""
    now = now or datetime.now(timezone.utc)
    cutoff = to_utc_iso(now - timedelta(days=older_than_days))
    purged = db.purge_image_checks(cutoff, db_path)
    logger.info("purged %d image checks older than %s", purged, cutoff)
    return purged
