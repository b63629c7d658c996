# ffnews/dispatch.py
"""Fetch dispatch for a configured source.

A fetch method is one of a closed set of variants, each carrying only the
fields it needs. An explicitly chosen method runs alone; auto mode walks a
cascade and stops at the first stage that yields items.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup

from ffnews.adapters import get_adapter
from ffnews.config import DEFAULT_ITEM_LIMIT
from ffnews.content_filter import allow_item, looks_like_non_article
from ffnews.errors import ConfigurationError, IngestError
from ffnews.feeds import discover_feed_links, fetch_feed
from ffnews.models import CandidateItem, Source
from ffnews.net import http_get_text
from ffnews.scrape import DEFAULT_SCRAPE_SELECTORS, collect_sitemap_urls, enrich_with_og, extract_links
from ffnews.urls import is_http_url

logger = logging.getLogger(__name__)

EXPLICIT_METHODS = ("rss", "scrape", "adapter")


@dataclass(frozen=True)
class RssMethod:
    feed_url: str


@dataclass(frozen=True)
class ScrapeMethod:
    page_url: str
    selector: Optional[str] = None


@dataclass(frozen=True)
class AdapterMethod:
    key: str
    homepage_url: str
    config: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SitemapMethod:
    homepage_url: str
    sitemap_url: Optional[str] = None


@dataclass(frozen=True)
class DiscoveredFeedMethod:
    homepage_url: str


FetchMethod = Union[RssMethod, ScrapeMethod, AdapterMethod, SitemapMethod, DiscoveredFeedMethod]


def method_name(m: FetchMethod) -> str:
    match m:
        case RssMethod():
            return "rss"
        case ScrapeMethod():
            return "scrape"
        case AdapterMethod():
            return "adapter"
        case SitemapMethod():
            return "sitemap"
        case DiscoveredFeedMethod():
            return "feed-discovery"
    raise TypeError(f"unknown fetch method {m!r}")


@dataclass
class FetchResult:
    method: Optional[str]
    items: List[CandidateItem] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    attempted: List[str] = field(default_factory=list)


def effective_homepage(source: Source) -> Optional[str]:
    """homepage_url with scrape_path applied."""
    home = (source.homepage_url or "").strip()
    if not home:
        return None
    if source.scrape_path:
        return urljoin(home if home.endswith("/") else home + "/", source.scrape_path.lstrip("/"))
    return home


# --- Method resolution ------------------------------------------------------------

def explicit_method(source: Source, name: str) -> FetchMethod:
    """The variant for an explicitly requested method. Missing configuration is a hard error."""
    if name == "rss":
        if not source.rss_url:
            raise ConfigurationError(f"source {source.id} has no rss_url")
        return RssMethod(source.rss_url)
    if name == "scrape":
        page = effective_homepage(source)
        if not page:
            raise ConfigurationError(f"source {source.id} has no homepage_url to scrape")
        return ScrapeMethod(page, source.scrape_selector)
    if name == "adapter":
        if not source.adapter or get_adapter(source.adapter) is None:
            raise ConfigurationError(f"source {source.id} has no known adapter ({source.adapter!r})")
        if not source.homepage_url:
            raise ConfigurationError(f"source {source.id} has no homepage_url for adapter {source.adapter}")
        return AdapterMethod(source.adapter, source.homepage_url, dict(source.adapter_config or {}))
    raise ConfigurationError(f"unknown fetch method {name!r}")


def auto_plan(source: Source) -> List[FetchMethod]:
    """Cascade for auto mode. Stages whose configuration is missing are left out."""
    plan: List[FetchMethod] = []
    home = source.homepage_url
    if source.adapter and home and get_adapter(source.adapter) is not None:
        plan.append(AdapterMethod(source.adapter, home, dict(source.adapter_config or {})))
    if source.rss_url:
        plan.append(RssMethod(source.rss_url))
    page = effective_homepage(source)
    if page:
        plan.append(ScrapeMethod(page, source.scrape_selector))
    if home or source.sitemap_url:
        plan.append(SitemapMethod(home or source.sitemap_url, source.sitemap_url))
    if home:
        plan.append(DiscoveredFeedMethod(home))
    return plan


# --- Stage runners ----------------------------------------------------------------

def _allowed(items: List[CandidateItem]) -> List[CandidateItem]:
    return [it for it in items if allow_item(it.link, it.title, it.description or "")]


def _scrape(client: httpx.Client, m: ScrapeMethod, limit: int) -> List[CandidateItem]:
    html = http_get_text(client, m.page_url)
    soup = BeautifulSoup(html, "lxml")
    selectors = [m.selector] if m.selector else DEFAULT_SCRAPE_SELECTORS
    for sel in selectors:
        links = [(u, t) for u, t in extract_links(soup, m.page_url, sel) if not looks_like_non_article(u)]
        items = _allowed([CandidateItem(title=t, link=u) for u, t in links])
        if items:
            logger.debug("scrape %s: %d links via %r", m.page_url, len(items), sel)
            return items[:limit]
    return []


def _discovered_feeds(client: httpx.Client, m: DiscoveredFeedMethod, limit: int) -> List[CandidateItem]:
    html = http_get_text(client, m.homepage_url)
    for feed_url in discover_feed_links(html, m.homepage_url):
        try:
            items = fetch_feed(client, feed_url, limit)
        except IngestError as e:
            logger.debug("declared feed %s failed: %s", feed_url, e)
            continue
        if items:
            return items
    return []


def run_method(client: httpx.Client, m: FetchMethod, limit: int) -> List[CandidateItem]:
    """Execute one method. Raises on fetch/parse failure; callers decide whether to fall back."""
    match m:
        case RssMethod(feed_url=feed_url):
            return [it for it in fetch_feed(client, feed_url, limit) if is_http_url(it.link)][:limit]
        case ScrapeMethod():
            return _scrape(client, m, limit)
        case AdapterMethod(key=key, homepage_url=home, config=config):
            adapter = get_adapter(key)
            if adapter is None:
                raise ConfigurationError(f"unknown adapter {key!r}")
            return _allowed(adapter.preview(client, home, config))[:limit]
        case SitemapMethod(homepage_url=home, sitemap_url=sitemap_url):
            urls = collect_sitemap_urls(client, home, sitemap_url=sitemap_url, limit=limit)
            return _allowed(enrich_with_og(client, urls, home))[:limit]
        case DiscoveredFeedMethod():
            return _discovered_feeds(client, m, limit)
    raise TypeError(f"unknown fetch method {m!r}")


def _attempt(client: httpx.Client, m: FetchMethod, limit: int, result: FetchResult) -> List[CandidateItem]:
    name = method_name(m)
    result.attempted.append(name)
    try:
        return run_method(client, m, limit)
    except ConfigurationError:
        raise
    except (IngestError, httpx.HTTPError) as e:
        logger.warning("%s stage failed: %s", name, e)
        result.errors.append(f"{name}: {e}")
    except Exception as e:
        # anything an adapter raises degrades to an empty stage
        logger.warning("%s stage crashed: %s", name, e)
        result.errors.append(f"{name}: {e!r}")
    return []


def dispatch(
    client: httpx.Client,
    source: Source,
    limit: int = DEFAULT_ITEM_LIMIT,
    method: Optional[str] = None,
) -> FetchResult:
    """Candidate items for a source.

    An explicit `method` (or the source's non-auto fetch_mode) runs alone; if it
    fails or comes back empty that empty result is returned as-is. Auto mode
    cascades adapter, feed, homepage scrape, sitemap, discovered feeds.
    """
    requested = method or (source.fetch_mode if source.fetch_mode != "auto" else None)
    if requested:
        m = explicit_method(source, requested)
        result = FetchResult(method=method_name(m))
        result.items = _attempt(client, m, limit, result)
        logger.info("source %s: %s (explicit) -> %d items", source.id, result.method, len(result.items))
        return result

    result = FetchResult(method=None)
    for m in auto_plan(source):
        items = _attempt(client, m, limit, result)
        if items:
            result.method = method_name(m)
            result.items = items
            break
    logger.info("source %s: auto via %s -> %d items", source.id, result.method or "nothing", len(result.items))
    return result
