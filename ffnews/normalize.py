# ffnews/normalize.py
from __future__ import annotations
import logging
import re
from datetime import datetime, timezone
from html import unescape
from typing import Callable, Optional, Tuple

import httpx

from ffnews.classify import Classification, classify, extract_likely_name
from ffnews.images import resolve_image
from ffnews.models import CandidateItem, NormalizedArticle, Source
from ffnews.urls import canonicalize, domain_of, fingerprint, unwrap_redirect

logger = logging.getLogger(__name__)

# --- Dates ------------------------------------------------------------------------

def to_utc_iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_date_guess(text: Optional[str]) -> Optional[datetime]:
    """RFC 822 first (feeds), then anything dateutil understands."""
    if not text:
        return None
    try:
        import email.utils as eut
        tup = eut.parsedate_tz(text)
        if tup:
            return datetime.fromtimestamp(eut.mktime_tz(tup), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        pass
    try:
        from dateutil import parser as du
        dt = du.parse(text)
    except (ValueError, OverflowError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def normalize_published(text: Optional[str]) -> Optional[str]:
    dt = parse_date_guess(text)
    return to_utc_iso(dt) if dt else None


# --- Titles -----------------------------------------------------------------------

_PUBLISHER_SUFFIXES = [
    re.compile(r"\s*[-–—]\s*fantasypros.*$", re.IGNORECASE),
    re.compile(r"\s*[-–—]\s*cbs sports.*$", re.IGNORECASE),
    re.compile(r"\s*[-–—]\s*yahoo sports.*$", re.IGNORECASE),
    re.compile(r"\s*[-–—]\s*rotowire.*$", re.IGNORECASE),
    re.compile(r"\s*[-–—]\s*numberfire.*$", re.IGNORECASE),
    re.compile(r"\s*[-–—]\s*nbc sports.*$", re.IGNORECASE),
    re.compile(r"\s*\|\s*[^|]*$"),
]
_LIST_GLYPH_PREFIX = re.compile(r"^\s*[»›•·▸▶]\s*")


def _normalize_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def clean_title(title: str, publisher: Optional[str] = None) -> str:
    """Decoded, single-spaced title without a NEWS tag, list glyph or publisher suffix."""
    t = _normalize_whitespace(unescape(title or ""))
    if not t:
        return ""
    t = _LIST_GLYPH_PREFIX.sub("", t)
    t = re.sub(r"^NEWS[:\s-]+", "", t)
    t = re.sub(r"^NEWS(?=[A-Z])", "", t)
    for rx in _PUBLISHER_SUFFIXES:
        stripped = rx.sub("", t).strip()
        if stripped:
            t = stripped
    if publisher:
        stripped = re.sub(rf"\s*[-|–—:]\s*{re.escape(publisher)}\s*$", "", t, flags=re.IGNORECASE).strip()
        if stripped:
            t = stripped
    return t


# --- Week -------------------------------------------------------------------------

_WEEK_RE = re.compile(r"\b(?:week|wk)\s*[-._]?\s*(\d{1,2})\b", re.IGNORECASE)
PRESEASON_MONTHS = (7, 8)


def infer_week(title: str, url: Optional[str] = None, now: Optional[datetime] = None) -> Optional[int]:
    for text in (title or "", (url or "").replace("-", " ")):
        m = _WEEK_RE.search(text)
        if m:
            return min(18, max(1, int(m.group(1))))
    now = now or datetime.now(timezone.utc)
    if now.month in PRESEASON_MONTHS:
        return 0
    return None


# --- Article assembly -------------------------------------------------------------

def build_article(
    item: CandidateItem,
    source: Optional[Source] = None,
    canonical_url: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Tuple[NormalizedArticle, Classification]:
    """Everything except the lead image. No I/O."""
    link = unwrap_redirect(item.link)
    canonical = canonical_url or canonicalize(link)
    publisher = source.name if source else None

    cls = classify(item.title, link, item.description, source_name=publisher)
    cleaned = cls.display_title or clean_title(item.title, publisher)

    players = []
    if cls.is_player_page:
        players = [cleaned]
    else:
        name = extract_likely_name(cleaned)
        if name:
            players = [name]

    article = NormalizedArticle(
        canonical_url=canonical,
        url=link,
        domain=domain_of(canonical),
        title=_normalize_whitespace(unescape(item.title or "")),
        cleaned_title=cleaned,
        topics=list(cls.topics),
        primary_topic=cls.primary_topic,
        secondary_topic=cls.secondary_topic,
        week=infer_week(cleaned, link, now=now),
        published_at=normalize_published(item.published_at),
        image_url=None,
        is_player_page=cls.is_player_page,
        players=players,
        fingerprint=fingerprint(canonical, cleaned),
        source_id=source.id if source else None,
    )
    return article, cls


class Enricher:
    """Normalizes a candidate and resolves its lead image."""

    def __init__(
        self,
        client: httpx.Client,
        is_usable: Callable[[str], bool],
        headshot_lookup: Optional[Callable[[httpx.Client, str], Optional[str]]] = None,
    ):
        self.client = client
        self.is_usable = is_usable
        self.headshot_lookup = headshot_lookup

    def enrich(
        self,
        item: CandidateItem,
        source: Optional[Source] = None,
        canonical_url: Optional[str] = None,
    ) -> NormalizedArticle:
        article, cls = build_article(item, source, canonical_url=canonical_url)
        player_name = article.players[0] if cls.is_player_page and article.players else None
        image = resolve_image(
            self.client,
            self.is_usable,
            article.url or article.canonical_url,
            feed_image=item.image_url,
            player_name=player_name,
            headshot_lookup=self.headshot_lookup,
        )
        if image is None:
            logger.debug("no usable image for %s", article.canonical_url)
        return article.model_copy(update={"image_url": image})
