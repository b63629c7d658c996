# ffnews/probe.py
"""Dry-run evaluation of every fetch strategy for an unconfigured site.

Nothing here writes to the store; the caller decides whether to commit the
recommendation to a source row.
"""
from __future__ import annotations
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Tuple
from urllib.parse import urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

from ffnews.adapters import matching_adapters
from ffnews.config import FETCH_BATCH_SIZE, PREVIEW_CAP
from ffnews.content_filter import allow_item, looks_like_non_article
from ffnews.errors import IngestError
from ffnews.feeds import feed_candidates, fetch_feed
from ffnews.models import (
    AdapterCandidate,
    CandidateItem,
    FeedCandidate,
    PreviewItem,
    ProbeResult,
    Recommendation,
    ScrapeCandidate,
)
from ffnews.net import fetch_text_or_none
from ffnews.scrape import (
    GENERIC_SELECTORS,
    NON_ARTICLE_HUB,
    enrich_with_og,
    extract_links,
    jsonld_urls,
    profile_for,
    slug_title,
)
from ffnews.urls import canonicalize, normalize_base

logger = logging.getLogger(__name__)

JSONLD_SELECTOR = "jsonld"
SAMPLE_SIZE = 24
PREVIEW_ENRICH = 30


# --- Feeds ------------------------------------------------------------------------

def try_feeds(client: httpx.Client, base: str, homepage_html: Optional[str]) -> Tuple[List[FeedCandidate], Dict[str, List[CandidateItem]]]:
    def _one(feed_url: str) -> Tuple[FeedCandidate, List[CandidateItem]]:
        cand = FeedCandidate(feed_url=feed_url)
        try:
            items = fetch_feed(client, feed_url, retries=0)
        except (IngestError, httpx.HTTPError) as e:
            cand.error = str(e)
            return cand, []
        cand.ok = len(items) > 0
        cand.item_count = len(items)
        cand.sample_titles = [it.title for it in items if it.title][:5]
        return cand, items

    urls = feed_candidates(base, homepage_html)
    with ThreadPoolExecutor(max_workers=min(FETCH_BATCH_SIZE, len(urls))) as pool:
        results = list(pool.map(_one, urls))
    return [c for c, _ in results], {c.feed_url: items for c, items in results if items}


# --- Scrape -----------------------------------------------------------------------

def _pages_for(base: str) -> List[str]:
    pages = [base]
    prof = profile_for(base)
    if prof and prof.second_page:
        root = base if base.endswith("/") else base + "/"
        pages.append(urljoin(root, "page/2/"))
    return pages


def try_scrape(client: httpx.Client, base: str, homepage_html: Optional[str]) -> List[ScrapeCandidate]:
    prof = profile_for(base)
    selectors = prof.selectors if prof else GENERIC_SELECTORS
    path_filters = prof.article_paths if prof else None

    soups: List[Tuple[str, BeautifulSoup]] = []
    if homepage_html:
        soups.append((base, BeautifulSoup(homepage_html, "lxml")))
    for extra in _pages_for(base)[1:]:
        html = fetch_text_or_none(client, extra, retries=0)
        if html:
            soups.append((extra, BeautifulSoup(html, "lxml")))
    if not soups:
        return [ScrapeCandidate(selector=s, error="homepage unavailable") for s in selectors + [JSONLD_SELECTOR]]

    out: List[ScrapeCandidate] = []
    for sel in selectors:
        urls: List[str] = []
        for page_url, soup in soups:
            for link, _title in extract_links(soup, page_url, sel, site_url=base, path_filters=path_filters):
                if NON_ARTICLE_HUB.search(urlparse(link).path):
                    continue
                if link not in urls:
                    urls.append(link)
        out.append(ScrapeCandidate(selector=sel, ok=bool(urls), link_count=len(urls), sample_urls=urls[:SAMPLE_SIZE]))

    ld: List[str] = []
    for page_url, soup in soups:
        for link in jsonld_urls(soup, page_url, path_filters):
            if link not in ld and not NON_ARTICLE_HUB.search(urlparse(link).path) and urlparse(link).path not in ("", "/"):
                ld.append(link)
    out.append(ScrapeCandidate(selector=JSONLD_SELECTOR, ok=bool(ld), link_count=len(ld), sample_urls=ld[:SAMPLE_SIZE]))
    return out


# --- Adapters ---------------------------------------------------------------------

def try_adapters(client: httpx.Client, base: str) -> Tuple[List[AdapterCandidate], Dict[str, List[CandidateItem]]]:
    cands: List[AdapterCandidate] = []
    outputs: Dict[str, List[CandidateItem]] = {}
    for adapter in matching_adapters(base):
        cand = AdapterCandidate(key=adapter.key, label=adapter.label)
        try:
            items = adapter.preview(client, base)
        except Exception as e:
            # adapter failures only cost that adapter its candidacy
            logger.warning("adapter %s failed on %s: %s", adapter.key, base, e)
            cand.error = str(e) or e.__class__.__name__
            items = []
        cand.ok = len(items) > 0
        cand.item_count = len(items)
        outputs[adapter.key] = items
        cands.append(cand)
    return cands, outputs


# --- Recommendation ---------------------------------------------------------------

def pick_best(
    base: str,
    feeds: List[FeedCandidate],
    adapters: List[AdapterCandidate],
    scrapes: List[ScrapeCandidate],
) -> Recommendation:
    """Feed, then adapter, then CSS selector, each ranked by yield; else ask for a selector."""
    ok_feeds = sorted((f for f in feeds if f.ok), key=lambda f: f.item_count, reverse=True)
    if ok_feeds:
        best = ok_feeds[0]
        return Recommendation(
            method="rss",
            rationale=f"Valid feed ({best.item_count} items)",
            feed_url=best.feed_url,
            suggested_url=best.feed_url,
        )

    ok_adapters = sorted((a for a in adapters if a.ok), key=lambda a: a.item_count, reverse=True)
    if ok_adapters:
        best = ok_adapters[0]
        return Recommendation(
            method="adapter",
            rationale=f"Adapter {best.label or best.key} produced {best.item_count} items",
            adapter_key=best.key,
            suggested_url=base,
        )

    ok_scrapes = sorted(
        (s for s in scrapes if s.ok and s.selector != JSONLD_SELECTOR),
        key=lambda s: s.link_count,
        reverse=True,
    )
    if ok_scrapes:
        best = ok_scrapes[0]
        suggested = base
        p = urlparse(base)
        if (p.hostname or "").endswith("nfl.com") and p.path in ("", "/"):
            suggested = urljoin(base, "/news")
        return Recommendation(
            method="scrape",
            rationale=f"Matched {best.link_count} links via selector {best.selector}",
            selector=best.selector,
            suggested_url=suggested,
        )

    return Recommendation(
        method="scrape",
        rationale="No feed or adapter match and no selector yielded links; a custom selector is needed.",
        suggested_url=base,
    )


# --- Preview ----------------------------------------------------------------------

def to_preview(items: List[CandidateItem]) -> List[PreviewItem]:
    out: List[PreviewItem] = []
    seen = set()
    for it in items:
        if not it.link or looks_like_non_article(it.link) or not allow_item(it.link, it.title, it.description or ""):
            continue
        key = canonicalize(it.link)
        if key in seen:
            continue
        seen.add(key)
        out.append(PreviewItem(
            title=it.title or slug_title(it.link),
            url=it.link,
            author=it.author,
            published_at=it.published_at,
            image_url=it.image_url,
        ))
        if len(out) >= PREVIEW_CAP:
            break
    return out


def build_preview(
    client: httpx.Client,
    base: str,
    rec: Recommendation,
    feed_items: Dict[str, List[CandidateItem]],
    adapter_items: Dict[str, List[CandidateItem]],
    scrapes: List[ScrapeCandidate],
    homepage_html: Optional[str],
) -> List[PreviewItem]:
    items: List[CandidateItem] = []
    if rec.method == "rss" and rec.feed_url:
        items = feed_items.get(rec.feed_url, [])
    elif rec.method == "adapter" and rec.adapter_key:
        items = adapter_items.get(rec.adapter_key, [])
    elif rec.selector:
        urls = next((s.sample_urls for s in scrapes if s.selector == rec.selector), [])
        items = enrich_with_og(client, urls[:PREVIEW_ENRICH], base)
        if not items:
            items = [CandidateItem(title=slug_title(u), link=u) for u in urls]

    preview = to_preview(items)
    if preview or not homepage_html:
        return preview

    # nothing recommended produced rows; show whatever the generic selectors see
    soup = BeautifulSoup(homepage_html, "lxml")
    crude: List[CandidateItem] = []
    for sel in GENERIC_SELECTORS:
        crude.extend(CandidateItem(title=t, link=u) for u, t in extract_links(soup, base, sel)
                     if not NON_ARTICLE_HUB.search(urlparse(u).path))
    return to_preview(crude)


def probe(client: httpx.Client, raw_url: str) -> ProbeResult:
    base = normalize_base(raw_url)
    logger.info("probing %s", base)
    homepage_html = fetch_text_or_none(client, base)

    feeds, feed_items = try_feeds(client, base, homepage_html)
    scrapes = try_scrape(client, base, homepage_html)
    adapters, adapter_items = try_adapters(client, base)

    rec = pick_best(base, feeds, adapters, scrapes)
    preview = build_preview(client, base, rec, feed_items, adapter_items, scrapes, homepage_html)
    logger.info("probe %s -> %s (%s)", base, rec.method, rec.rationale)
    return ProbeResult(
        base_url=base,
        feeds=feeds,
        scrapes=scrapes,
        adapters=adapters,
        recommendation=rec,
        preview=preview,
    )
