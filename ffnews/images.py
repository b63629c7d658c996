# ffnews/images.py
"""Lead-image selection.

Raw candidates pass a chain of small predicates before anything touches the
network; survivors are verified through the ImageUsabilityCache. Tiers:
feed media, page meta tags, page scrape (JSON-LD and body), player headshot.
"""
from __future__ import annotations
import json
import logging
import re
from typing import Callable, Iterable, List, Optional, Tuple
from urllib.parse import parse_qs, unquote, urljoin, urlparse

import httpx
from bs4 import BeautifulSoup

from ffnews.config import ENABLE_HEADSHOTS
from ffnews.net import fetch_html_head

logger = logging.getLogger(__name__)

# --- Candidate predicates ---------------------------------------------------------

_WEAK_PATH_WORDS = ("favicon", "apple-touch-icon", "sprite", "logo", "placeholder", "stock-image", "spacer", "blank.gif")
_AUTHOR_WORDS = (
    "authoring-images", "/byline/", "/profile/", "/profiles/", "avatar", "/authors/",
    "/wp-content/uploads/avatars/", "gravatar.com",
)
# only on article tiers; the player tier is made of headshots
_ARTICLE_ONLY_AUTHOR_WORDS = ("headshot",)
_SIZE_SUFFIX = re.compile(r"[-_](\d{2,4})x(\d{2,4})\.(?:jpe?g|png|webp|gif)$", re.IGNORECASE)
_SIGNED_RESIZERS = (
    re.compile(r"://[^/]*masslive\.com/resizer/", re.IGNORECASE),
    re.compile(r"://[^/]*advance\.digital/resizer/", re.IGNORECASE),
    re.compile(r"://[^/]*gannett-?cdn\.com/.*width=", re.IGNORECASE),
)
MIN_IMAGE_EDGE = 120
AVATAR_MAX_EDGE = 200


def unwrap_image_proxy(url: str) -> str:
    """Next.js /_next/image?url=... and similar optimizer URLs point at the real asset."""
    try:
        p = urlparse(url)
    except ValueError:
        return url
    if p.path.endswith("/_next/image") or p.path.endswith("/image-proxy"):
        raw = (parse_qs(p.query).get("url") or [None])[0]
        if raw:
            target = unquote(raw)
            if target.startswith("//"):
                target = "https:" + target
            if target.startswith("/"):
                target = f"{p.scheme}://{p.netloc}{target}"
            if re.match(r"^https?://", target, re.IGNORECASE):
                return target
    return url


def is_signed_resizer(url: str) -> bool:
    return any(rx.search(url) for rx in _SIGNED_RESIZERS)


def is_svg(url: str) -> bool:
    return bool(re.search(r"\.svg(\?|#|$)", url, re.IGNORECASE))


def is_weak_image(url: str) -> bool:
    path = (urlparse(url).path or "").lower()
    return path == "/favicon.ico" or any(w in path for w in _WEAK_PATH_WORDS)


def parse_dimensions(url: str) -> Tuple[Optional[int], Optional[int]]:
    """Width/height from query (w, h, width, height) or a NNNxNNN filename suffix."""
    p = urlparse(url)
    q = {k.lower(): v for k, v in parse_qs(p.query).items()}

    def _num(*keys: str) -> Optional[int]:
        for k in keys:
            vals = q.get(k)
            if vals and vals[0].isdigit():
                return int(vals[0])
        return None

    w, h = _num("w", "width"), _num("h", "height")
    if w is None and h is None:
        m = _SIZE_SUFFIX.search(p.path)
        if m:
            w, h = int(m.group(1)), int(m.group(2))
    return w, h


def is_author_image(url: str, article_tier: bool = True) -> bool:
    u = url.lower()
    if any(w in u for w in _AUTHOR_WORDS):
        return True
    if article_tier and any(w in u for w in _ARTICLE_ONLY_AUTHOR_WORDS):
        return True
    w, h = parse_dimensions(url)
    if w and h and w < AVATAR_MAX_EDGE and h < AVATAR_MAX_EDGE:
        ratio = w / float(h)
        return 0.8 <= ratio <= 1.25
    return False


def is_undersized(url: str) -> bool:
    w, h = parse_dimensions(url)
    return (w is not None and w < MIN_IMAGE_EDGE) or (h is not None and h < MIN_IMAGE_EDGE)


def sanitize_candidate(raw: Optional[str], base_url: Optional[str] = None, article_tier: bool = True) -> Optional[str]:
    """Unwrap, absolutize and reject a raw image URL; None when it cannot be a lead image."""
    if not raw:
        return None
    s = raw.strip()
    if not s or s.startswith("data:"):
        return None
    try:
        if s.startswith("//"):
            s = "https:" + s
        elif base_url and not re.match(r"^https?://", s, re.IGNORECASE):
            s = urljoin(base_url, s)
        s = unwrap_image_proxy(s)
        if not re.match(r"^https?://", s, re.IGNORECASE):
            return None
        if (
            is_signed_resizer(s)
            or is_weak_image(s)
            or is_svg(s)
            or is_author_image(s, article_tier=article_tier)
            or is_undersized(s)
        ):
            return None
    except ValueError as e:
        logger.debug("malformed image url %r: %s", raw, e)
        return None
    return s


# --- Candidate extraction from markup ------------------------------------------------

_META_IMAGE_KEYS = [
    ("property", "og:image:secure_url"),
    ("property", "og:image:url"),
    ("property", "og:image"),
    ("name", "twitter:image:src"),
    ("name", "twitter:image"),
    ("itemprop", "image"),
]


def meta_image_candidates(soup: BeautifulSoup) -> List[str]:
    out: List[str] = []
    for attr, key in _META_IMAGE_KEYS:
        for el in soup.find_all("meta", attrs={attr: key}):
            val = el.get("content")
            if val and val.strip():
                out.append(val.strip())
        # some sites put og:* on name= instead of property=
        if attr == "property":
            el = soup.find("meta", attrs={"name": key})
            if el and el.get("content"):
                out.append(el["content"].strip())
    link = soup.find("link", rel="image_src")
    if link and link.get("href"):
        out.append(link["href"].strip())
    return out


def _jsonld_images(node) -> Iterable[str]:
    if isinstance(node, str):
        return
    if isinstance(node, list):
        for it in node:
            yield from _jsonld_images(it)
        return
    if not isinstance(node, dict):
        return
    img = node.get("image") or node.get("thumbnailUrl")
    if isinstance(img, str):
        yield img
    elif isinstance(img, dict) and isinstance(img.get("url"), str):
        yield img["url"]
    elif isinstance(img, list):
        for it in img:
            if isinstance(it, str):
                yield it
            elif isinstance(it, dict) and isinstance(it.get("url"), str):
                yield it["url"]
    for key in ("@graph", "mainEntity", "mainEntityOfPage"):
        if key in node:
            yield from _jsonld_images(node[key])


def scraped_image_candidates(soup: BeautifulSoup) -> List[str]:
    """JSON-LD image fields, then images inside the article body."""
    out: List[str] = []
    for script in soup.find_all("script", type="application/ld+json"):
        txt = script.string or script.get_text() or ""
        if not txt.strip():
            continue
        try:
            data = json.loads(txt)
        except ValueError:
            continue
        out.extend(_jsonld_images(data))
    body = soup.find("article") or soup.find("main") or soup.find("div", {"role": "main"}) or soup.body
    if body is not None:
        for img in body.find_all("img"):
            for key in ("data-src", "data-original", "data-lazy-src", "src"):
                val = img.get(key)
                if val and not val.startswith("data:"):
                    out.append(val)
                    break
            else:
                srcset = img.get("srcset") or img.get("data-srcset") or ""
                first = srcset.split(",")[0].strip().split(" ")[0] if srcset else ""
                if first:
                    out.append(first)
    return out


# --- Cascade ------------------------------------------------------------------------

def _first_usable(
    candidates: Iterable[Optional[str]],
    base_url: Optional[str],
    is_usable: Callable[[str], bool],
    article_tier: bool = True,
) -> Optional[str]:
    seen = set()
    for raw in candidates:
        cand = sanitize_candidate(raw, base_url, article_tier=article_tier)
        if not cand or cand in seen:
            continue
        seen.add(cand)
        if is_usable(cand):
            return cand
    return None


def resolve_image(
    client: httpx.Client,
    is_usable: Callable[[str], bool],
    page_url: str,
    feed_image: Optional[str] = None,
    player_name: Optional[str] = None,
    headshot_lookup: Optional[Callable[[httpx.Client, str], Optional[str]]] = None,
) -> Optional[str]:
    """Walk the tiers; the first candidate that survives the filters and verifies wins.

    Returns None when nothing qualifies. A missing image is a normal outcome.
    """
    hit = _first_usable([feed_image], page_url, is_usable)
    if hit:
        return hit

    html = fetch_html_head(client, page_url)
    if html:
        soup = BeautifulSoup(html, "lxml")
        hit = _first_usable(meta_image_candidates(soup), page_url, is_usable)
        if hit:
            return hit
        hit = _first_usable(scraped_image_candidates(soup), page_url, is_usable)
        if hit:
            return hit

    if player_name and ENABLE_HEADSHOTS and headshot_lookup is not None:
        try:
            shot = headshot_lookup(client, player_name)
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            logger.debug("headshot lookup failed for %s: %s", player_name, e)
            shot = None
        hit = _first_usable([shot], None, is_usable, article_tier=False)
        if hit:
            return hit
    return None
