# ffnews/scrape.py
from __future__ import annotations
import json
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Pattern, Tuple
from urllib.parse import unquote, urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

from ffnews.config import FETCH_BATCH_SIZE
from ffnews.models import CandidateItem
from ffnews.net import fetch_text_or_none
from ffnews.normalize import normalize_published, parse_date_guess
from ffnews.urls import absolutize, canonicalize, is_http_url, normalize_link, origin_of, same_host

logger = logging.getLogger(__name__)

# --- Selector heuristics ----------------------------------------------------------

GENERIC_SELECTORS = ["article a", "h2 a, h3 a", "main a"]

# Tried in order when a configured source has no selector of its own
DEFAULT_SCRAPE_SELECTORS = [
    'h2 a[href^="/"]',
    'h3 a[href^="/"]',
    'article a[href^="/"]',
    'a.card[href^="/"]',
    'a[href*="/fantasy-football"]',
    'a[href*="/nfl/"]',
    'a[href^="/articles/"]',
]

# Hub pages that are never articles (videos, galleries, tags, bylines, team pages)
NON_ARTICLE_HUB = re.compile(r"/(videos?|photos?|galleries|tags?|authors?|teams?)/", re.IGNORECASE)

_WP_PERMALINK = [
    re.compile(r"^/\d{4}/\d{2}/[A-Za-z0-9-]+/?$"),
    re.compile(r"^/\d{4}/[A-Za-z0-9-]+/?$"),
]


@dataclass(frozen=True)
class SelectorProfile:
    host: str
    selectors: List[str]
    article_paths: List[Pattern] = field(default_factory=list)
    second_page: bool = False


HOST_PROFILES = [
    SelectorProfile(
        host="nfl.com",
        selectors=[
            "main a[href^='/news/']",
            "a[href^='https://www.nfl.com/news/']",
            "section a[href^='/news/']",
            "article a[href^='/news/']",
        ],
        article_paths=[re.compile(r"/news/")],
    ),
    SelectorProfile(
        host="rotowire.com",
        selectors=[
            "main a[href^='/football/article/']",
            "a[href^='https://www.rotowire.com/football/article/']",
            "main a[href*='/football/article/']",
        ],
        article_paths=[re.compile(r"^/football/article/[A-Za-z0-9-]+"), re.compile(r"^/football/article\.php\b")],
    ),
    SelectorProfile(
        host="fantasypros.com",
        selectors=["main article a", "main h2 a, main h3 a", "article h2 a, article h3 a"],
        article_paths=_WP_PERMALINK + [re.compile(r"^/nfl/news/[A-Za-z0-9-]+/?$")],
        second_page=True,
    ),
]


def profile_for(url: str) -> Optional[SelectorProfile]:
    host = (urlparse(url).hostname or "").lower()
    for prof in HOST_PROFILES:
        if host == prof.host or host.endswith("." + prof.host):
            return prof
    return None


def is_wordpress_permalink(path: str) -> bool:
    return any(rx.match(path) for rx in _WP_PERMALINK)


# --- Link extraction ----------------------------------------------------------------

def slug_title(url: str) -> str:
    try:
        parts = [p for p in urlparse(url).path.split("/") if p]
    except ValueError:
        return url
    if not parts:
        return url
    last = re.sub(r"\.(html?|php|aspx?)$", "", unquote(parts[-1]))
    text = re.sub(r"[-_]+", " ", last).strip()
    return text[:1].upper() + text[1:] if text else url


def _anchor_title(a) -> str:
    text = a.get_text(" ", strip=True)
    if not text:
        text = (a.get("title") or a.get("aria-label") or "").strip()
    if not text:
        img = a.find("img")
        if img is not None:
            text = (img.get("alt") or "").strip()
    return re.sub(r"\s+", " ", text)


def extract_links(
    soup: BeautifulSoup,
    page_url: str,
    selector: str,
    site_url: Optional[str] = None,
    path_filters: Optional[List[Pattern]] = None,
) -> List[Tuple[str, str]]:
    """(url, title) pairs for one selector: absolute, same-site, deduped by canonical URL."""
    site_url = site_url or page_url
    out: List[Tuple[str, str]] = []
    seen = set()
    try:
        anchors = soup.select(selector)
    except Exception as e:  # soupsieve.SelectorSyntaxError
        logger.warning("bad selector %r: %s", selector, e)
        return out
    for a in anchors:
        if a.name != "a":
            a = a.find("a", href=True)
            if a is None:
                continue
        url = absolutize(a.get("href"), page_url)
        if not url or not same_host(url, site_url):
            continue
        url = normalize_link(url)
        path = urlparse(url).path or "/"
        if path_filters and not any(rx.search(path) for rx in path_filters):
            continue
        key = canonicalize(url)
        if key in seen:
            continue
        seen.add(key)
        out.append((url, _anchor_title(a) or slug_title(url)))
    return out


def walk_json_strings(node) -> Iterable[str]:
    if isinstance(node, str):
        yield node
    elif isinstance(node, list):
        for it in node:
            yield from walk_json_strings(it)
    elif isinstance(node, dict):
        for v in node.values():
            yield from walk_json_strings(v)


def jsonld_urls(soup: BeautifulSoup, page_url: str, path_filters: Optional[List[Pattern]] = None) -> List[str]:
    out: List[str] = []
    for script in soup.find_all("script", type="application/ld+json"):
        txt = script.string or script.get_text() or ""
        try:
            data = json.loads(txt)
        except ValueError:
            continue
        for s in walk_json_strings(data):
            if not (s.startswith("http") or s.startswith("/")):
                continue
            url = absolutize(s, page_url)
            if not url or not same_host(url, page_url):
                continue
            if path_filters and not any(rx.search(urlparse(url).path) for rx in path_filters):
                continue
            if url not in out:
                out.append(url)
    return out


# --- Open Graph enrichment ----------------------------------------------------------

def _meta(soup: BeautifulSoup, *keys: Tuple[str, str]) -> Optional[str]:
    for attr, key in keys:
        el = soup.find("meta", attrs={attr: key})
        if el and el.get("content") and el["content"].strip():
            return el["content"].strip()
    return None


def page_metadata(html: str, url: str) -> CandidateItem:
    soup = BeautifulSoup(html, "lxml")
    h1 = soup.find("h1")
    title = (
        _meta(soup, ("property", "og:title"), ("name", "twitter:title"))
        or (h1.get_text(" ", strip=True) if h1 else "")
        or (soup.title.get_text(strip=True) if soup.title else "")
        or slug_title(url)
    )
    author = _meta(soup, ("name", "author"), ("property", "article:author"))
    if not author:
        el = soup.select_one('[rel="author"], a[href*="/author/"], a[href*="/authors/"]')
        author = el.get_text(strip=True) if el else None
    t = soup.find("time", attrs={"datetime": True})
    published = (
        (t["datetime"] if t else None)
        or _meta(soup, ("property", "article:published_time"), ("name", "article:published_time"))
    )
    image = _meta(soup, ("property", "og:image"), ("name", "twitter:image"))
    description = _meta(soup, ("property", "og:description"), ("name", "description"))
    return CandidateItem(
        title=title,
        link=url,
        published_at=normalize_published(published),
        image_url=urljoin(url, image) if image else None,
        author=author or None,
        description=description,
    )


def enrich_with_og(client: httpx.Client, urls: List[str], site_url: str, batch_size: int = FETCH_BATCH_SIZE) -> List[CandidateItem]:
    """Fetch each page (at most batch_size at once) and read its Open Graph metadata.

    Pages that fail to load are dropped. Output keeps input order.
    """
    urls = list(dict.fromkeys(urls))
    if not urls:
        return []
    referer = {"Referer": origin_of(site_url) + "/"}

    def _one(u: str) -> Optional[CandidateItem]:
        html = fetch_text_or_none(client, u, headers=referer, retries=1)
        return page_metadata(html, u) if html else None

    with ThreadPoolExecutor(max_workers=max(1, min(batch_size, len(urls)))) as pool:
        results = list(pool.map(_one, urls))
    return [r for r in results if r is not None]


# --- Sitemaps -----------------------------------------------------------------------

SITEMAP_PATHS = ["/sitemap.xml", "/sitemap_index.xml", "/sitemap-index.xml"]
SITEMAP_MAX_CHILDREN = 6
SITEMAP_MAX_AGE_DAYS = 14


def discover_sitemaps(client: httpx.Client, site_url: str) -> List[str]:
    """Conventional sitemap locations plus robots.txt Sitemap: lines."""
    origin = origin_of(site_url)
    candidates = [origin + p for p in SITEMAP_PATHS]
    robots = fetch_text_or_none(client, origin + "/robots.txt", retries=0)
    if robots:
        for line in robots.splitlines():
            m = re.match(r"^\s*sitemap:\s*(\S+)\s*$", line, re.IGNORECASE)
            if m:
                sm = urljoin(origin + "/", m.group(1))
                if is_http_url(sm) and sm not in candidates:
                    candidates.append(sm)
    return candidates


def parse_sitemap(xml_text: str) -> Tuple[List[Tuple[str, Optional[str]]], List[str]]:
    """(urlset entries [(loc, lastmod)], child sitemaps [loc])."""
    urls: List[Tuple[str, Optional[str]]] = []
    maps: List[str] = []
    soup = BeautifulSoup(xml_text, "xml")
    for sm in soup.find_all("sitemap"):
        loc = sm.find("loc")
        if loc and loc.get_text(strip=True):
            maps.append(loc.get_text(strip=True))
    for u in soup.find_all("url"):
        loc_el = u.find("loc")
        if not loc_el:
            continue
        loc = loc_el.get_text(strip=True)
        lastmod_el = u.find("lastmod")
        if loc:
            urls.append((loc, lastmod_el.get_text(strip=True) if lastmod_el else None))
    return urls, maps


def collect_sitemap_urls(
    client: httpx.Client,
    site_url: str,
    sitemap_url: Optional[str] = None,
    limit: int = 50,
    max_age_days: Optional[int] = SITEMAP_MAX_AGE_DAYS,
    now: Optional[datetime] = None,
) -> List[str]:
    """Recent same-host URLs from the site's sitemaps, newest entries first where dated."""
    cutoff = None
    if max_age_days:
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=max_age_days)
    maps = [sitemap_url] if sitemap_url else discover_sitemaps(client, site_url)

    dated: List[Tuple[datetime, str]] = []
    undated: List[str] = []
    seen = set()

    def _take(entries: List[Tuple[str, Optional[str]]]) -> None:
        for loc, lastmod in entries:
            if loc in seen or not same_host(loc, site_url):
                continue
            seen.add(loc)
            dt = parse_date_guess(lastmod) if lastmod else None
            if dt is None:
                undated.append(loc)
            elif cutoff is None or dt >= cutoff:
                dated.append((dt, loc))

    for sm in maps:
        xml = fetch_text_or_none(client, sm, retries=1)
        if not xml:
            continue
        entries, children = parse_sitemap(xml)
        _take(entries)
        # prefer post/news children of an index
        children.sort(key=lambda c: 0 if any(k in c.lower() for k in ("post", "news", "article", "blog")) else 1)
        for child in children[:SITEMAP_MAX_CHILDREN]:
            child_xml = fetch_text_or_none(client, child, retries=1)
            if child_xml:
                _take(parse_sitemap(child_xml)[0])
        if len(dated) + len(undated) >= limit * 3:
            break

    dated.sort(key=lambda pair: pair[0], reverse=True)
    ordered = [u for _, u in dated] + undated
    return ordered[:limit]
