# ffnews/adapters.py
"""Per-publisher fetch plugins.

An adapter answers four questions about a site: does it handle this URL,
what would a preview of its articles look like, which article URLs are on
its first N listing pages, and what is the metadata of one article. ADAPTERS
is ordered; site-specific adapters come before the generic ones.
Adapters hold no state between calls.
"""
from __future__ import annotations
import json
import logging
import re
from typing import Any, Dict, List, Optional
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

from ffnews.models import CandidateItem
from ffnews.net import fetch_text_or_none, http_get_text
from ffnews.scrape import (
    collect_sitemap_urls,
    enrich_with_og,
    extract_links,
    is_wordpress_permalink,
    jsonld_urls,
    page_metadata,
    walk_json_strings,
)
from ffnews.urls import absolutize, origin_of, same_host

logger = logging.getLogger(__name__)

PREVIEW_LIMIT = 40


class Adapter:
    key = ""
    label = ""

    def matches(self, url: str) -> bool:
        return True

    def index(self, client: httpx.Client, url: str, pages: int = 1, config: Optional[Dict[str, Any]] = None) -> List[str]:
        raise NotImplementedError

    def article(self, client: httpx.Client, url: str, config: Optional[Dict[str, Any]] = None) -> Optional[CandidateItem]:
        html = fetch_text_or_none(client, url, headers=_headers(config))
        return page_metadata(html, url) if html else None

    def preview(self, client: httpx.Client, url: str, config: Optional[Dict[str, Any]] = None) -> List[CandidateItem]:
        limit = int((config or {}).get("limit") or PREVIEW_LIMIT)
        urls = self.index(client, url, pages=int((config or {}).get("pages") or 1), config=config)
        return enrich_with_og(client, urls[:limit], url)


def _headers(config: Optional[Dict[str, Any]]) -> Optional[Dict[str, str]]:
    hdrs = (config or {}).get("headers")
    return dict(hdrs) if isinstance(hdrs, dict) else None


def _host(url: str) -> str:
    return (urlparse(url).hostname or "").lower()


# --- Site-specific --------------------------------------------------------------

_NFL_FANTASY_ARTICLE = re.compile(r"^/(news/[^/]+|articles?/[^/]+|players/news/[^/]+)", re.IGNORECASE)


class FantasyNflAdapter(Adapter):
    key = "fantasy-nfl"
    label = "NFL Fantasy (site)"

    def matches(self, url: str) -> bool:
        return _host(url).endswith("fantasy.nfl.com")

    def index(self, client, url, pages=1, config=None):
        origin = origin_of(url)
        listing = [url, origin + "/news"] + [f"{origin}/news?page={p}" for p in range(2, max(1, pages) + 1)]
        out: List[str] = []
        for page in dict.fromkeys(listing):
            html = fetch_text_or_none(client, page, headers=_headers(config))
            if not html:
                continue
            soup = BeautifulSoup(html, "lxml")
            for link, _title in extract_links(
                soup, page, "a[href*='/news/'], a[href*='/articles/'], article a",
                site_url=url, path_filters=[_NFL_FANTASY_ARTICLE],
            ):
                if link not in out:
                    out.append(link)
            if not out:
                out.extend(_next_data_urls(soup, page, [_NFL_FANTASY_ARTICLE]))
        if not out:
            out = [u for u in collect_sitemap_urls(client, url, limit=PREVIEW_LIMIT)
                   if _NFL_FANTASY_ARTICLE.search(urlparse(u).path)]
        return out


FFT_AUTHORS = ["schwarz", "orth", "mack", "hecox", "eakin", "hutchins"]


class FFTodayAdapter(Adapter):
    key = "fftoday"
    label = "FFToday (authors)"

    def matches(self, url: str) -> bool:
        return _host(url).endswith("fftoday.com")

    def index(self, client, url, pages=1, config=None):
        origin = origin_of(url)
        limit = int((config or {}).get("limit") or PREVIEW_LIMIT)
        authors = (config or {}).get("authors") or FFT_AUTHORS
        out: List[str] = []
        for author in authors:
            # some author indexes are .html, others .htm
            html = (fetch_text_or_none(client, f"{origin}/articles/{author}/index.html", headers=_headers(config))
                    or fetch_text_or_none(client, f"{origin}/articles/{author}/index.htm", headers=_headers(config)))
            if not html:
                continue
            soup = BeautifulSoup(html, "lxml")
            for a in soup.select('a[href^="/articles/"]'):
                href = (a.get("href") or "").strip()
                if not re.search(r"\.html?$", href, re.IGNORECASE) or re.search(r"/index\.html?$", href, re.IGNORECASE):
                    continue
                link = urljoin(origin + "/", href)
                if link not in out:
                    out.append(link)
            if len(out) >= limit:
                break
        return out[:limit]


# --- Generic ----------------------------------------------------------------------

def _is_wordpress(html: str, soup: BeautifulSoup) -> bool:
    gen = soup.find("meta", attrs={"name": "generator"})
    if gen and "wordpress" in (gen.get("content") or "").lower():
        return True
    if "/wp-content/" in html or "/wp-json" in html:
        return True
    return soup.find("link", rel="shortlink") is not None


class WordPressAdapter(Adapter):
    key = "wordpress-generic"
    label = "WordPress (generic)"
    selectors = [".entry-title a", "article h2 a, article h3 a", "h2 a[rel='bookmark']", "a[rel='bookmark']"]

    def index(self, client, url, pages=1, config=None):
        html = http_get_text(client, url, headers=_headers(config))
        soup = BeautifulSoup(html, "lxml")
        if not _is_wordpress(html, soup):
            return []
        out: List[str] = []
        for sel in self.selectors:
            for link, _title in extract_links(soup, url, sel):
                if is_wordpress_permalink(urlparse(link).path) and link not in out:
                    out.append(link)
        return out


class JsonLdListAdapter(Adapter):
    key = "jsonld-list"
    label = "JSON-LD (ItemList/NewsArticle)"

    def index(self, client, url, pages=1, config=None):
        html = http_get_text(client, url, headers=_headers(config))
        return jsonld_urls(BeautifulSoup(html, "lxml"), url)


def _next_data_urls(soup: BeautifulSoup, page_url: str, path_filters=None) -> List[str]:
    script = soup.find("script", id="__NEXT_DATA__")
    if script is None:
        return []
    try:
        data = json.loads(script.string or script.get_text() or "")
    except ValueError:
        return []
    out: List[str] = []
    for s in walk_json_strings(data):
        if not s.startswith("/") or s.startswith("//"):
            continue
        link = absolutize(s, page_url)
        if not link or not same_host(link, page_url):
            continue
        if path_filters and not any(rx.search(urlparse(link).path) for rx in path_filters):
            continue
        if link not in out:
            out.append(link)
    return out


class NextDataAdapter(Adapter):
    key = "next-data"
    label = "Next.js data"

    def index(self, client, url, pages=1, config=None):
        html = http_get_text(client, url, headers=_headers(config))
        return _next_data_urls(BeautifulSoup(html, "lxml"), url)


class SitemapAdapter(Adapter):
    key = "sitemap-generic"
    label = "Sitemap (generic)"

    def index(self, client, url, pages=1, config=None):
        limit = int((config or {}).get("limit") or PREVIEW_LIMIT)
        return collect_sitemap_urls(client, url, sitemap_url=(config or {}).get("sitemap_url"), limit=limit)


ADAPTERS: List[Adapter] = [
    FantasyNflAdapter(),
    FFTodayAdapter(),
    WordPressAdapter(),
    JsonLdListAdapter(),
    NextDataAdapter(),
    SitemapAdapter(),
]


def get_adapter(key: Optional[str]) -> Optional[Adapter]:
    for adapter in ADAPTERS:
        if adapter.key == key:
            return adapter
    return None


def matching_adapters(url: str) -> List[Adapter]:
    return [a for a in ADAPTERS if a.matches(url)]
