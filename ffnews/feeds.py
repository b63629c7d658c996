# ffnews/feeds.py
from __future__ import annotations
import logging
import re
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin

import feedparser
import httpx
from bs4 import BeautifulSoup

from ffnews.errors import ParseError
from ffnews.models import CandidateItem
from ffnews.net import http_get_text
from ffnews.urls import is_http_url, origin_of

logger = logging.getLogger(__name__)

FEED_PATHS = ["/feed", "/rss", "/rss.xml", "/atom.xml", "/index.xml", "/feed.xml"]

_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_BARE_AMP = re.compile(r"&(?!#\d+;|#x[0-9a-fA-F]+;|[A-Za-z][A-Za-z0-9]*;)")


def sanitize_feed_text(text: str) -> str:
    """Strip control characters and escape ampersands that are not entities."""
    text = _CONTROL_CHARS.sub("", text or "")
    return _BARE_AMP.sub("&amp;", text)


def parse_feed_text(text: str):
    """feedparser result; one sanitize-and-retry pass before giving up."""
    d = feedparser.parse(text)
    if d.entries or not d.get("bozo"):
        return d
    logger.debug("feed malformed (%s); retrying sanitized", d.get("bozo_exception"))
    d = feedparser.parse(sanitize_feed_text(text))
    if d.entries or not d.get("bozo"):
        return d
    raise ParseError(f"unparseable feed: {d.get('bozo_exception')}")


def _entry_image(e: Dict[str, Any]) -> Optional[str]:
    for key in ("media_content", "media_thumbnail"):
        media = e.get(key) or []
        if isinstance(media, list):
            for m in media:
                if m.get("url") and (m.get("medium") in (None, "image") or "image" in (m.get("type") or "image")):
                    return m["url"]
    for enc in e.get("enclosures") or []:
        href = enc.get("href") or enc.get("url")
        if href and (enc.get("type") or "image/").startswith("image/"):
            return href
    for link in e.get("links") or []:
        if link.get("rel") == "enclosure" and (link.get("type") or "").startswith("image/") and link.get("href"):
            return link["href"]
    return None


def entries_to_items(d, feed_url: str, limit: Optional[int] = None) -> List[CandidateItem]:
    base = (d.get("feed") or {}).get("link") or feed_url
    out: List[CandidateItem] = []
    for e in d.entries:
        raw_link = (e.get("link") or e.get("id") or "").strip()
        link = urljoin(base, raw_link) if raw_link else ""
        if not is_http_url(link):
            continue
        title = (e.get("title") or "").strip()
        published = e.get("published") or e.get("updated") or e.get("pubDate") or e.get("created")
        out.append(CandidateItem(
            title=title,
            link=link,
            published_at=published,
            image_url=_entry_image(e),
            author=(e.get("author") or None),
            description=(e.get("summary") or e.get("subtitle") or None),
        ))
        if limit and len(out) >= limit:
            break
    return out


def fetch_feed(client: httpx.Client, feed_url: str, limit: Optional[int] = None, retries: int = 2) -> List[CandidateItem]:
    """Fetch and parse one feed. Raises TransientFetchError / ParseError."""
    text = http_get_text(client, feed_url, retries=retries, headers={
        "Accept": "application/rss+xml, application/atom+xml, application/xml;q=0.9, text/xml;q=0.8, */*;q=0.5",
    })
    return entries_to_items(parse_feed_text(text), feed_url, limit)


def discover_feed_links(html: str, base_url: str) -> List[str]:
    """Alternate-feed <link> tags declared by a page."""
    if not html:
        return []
    soup = BeautifulSoup(html, "lxml")
    out: List[str] = []
    for link in soup.find_all("link", href=True):
        rel = [r.lower() for r in (link.get("rel") or [])]
        ctype = (link.get("type") or "").lower()
        if "alternate" not in rel:
            continue
        if "rss" in ctype or "atom" in ctype or ctype.endswith("xml"):
            url = urljoin(base_url, link["href"].strip())
            if is_http_url(url) and url not in out:
                out.append(url)
    return out


def feed_candidates(base_url: str, html: Optional[str] = None) -> List[str]:
    """Conventional feed paths plus anything the homepage advertises, deduped, in order."""
    root = origin_of(base_url)
    out = [root + p for p in FEED_PATHS]
    for url in discover_feed_links(html or "", base_url):
        if url not in out:
            out.append(url)
    return out
