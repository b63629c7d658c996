"""URL helpers: canonical identity, redirect unwrapping, fingerprints."""

from __future__ import annotations
import hashlib
import re
from typing import Optional
from urllib.parse import parse_qsl, unquote, urlencode, urljoin, urlparse, urlunparse

TRACKING_PARAMS = {
    "gclid", "fbclid", "mc_cid", "mc_eid", "igshid", "_hsenc", "_hsmi",
    "spm", "sr", "ref", "ref_src", "cmp", "cmpid", "cn", "eid", "mibextid",
    "guccounter", "src",
}
TRACKING_PREFIXES = ("utm_", "vero_", "guce_")

_REDIRECT_HOSTS = (
    "l.facebook.com", "lm.facebook.com", "out.reddit.com", "news.google.com",
    "flip.it", "apple.news", "r.zemanta.com", "lnkd.in", "yhoo.it",
    "feedproxy.google.com", "google.com",
)
_REDIRECT_KEYS = ("url", "u", "q", "dest", "destination", "redirect", "redirect_url", "target", "to")


def _is_tracking(key: str) -> bool:
    k = key.lower()
    return k in TRACKING_PARAMS or k.startswith(TRACKING_PREFIXES)


def _host(netloc: str) -> str:
    host = netloc.lower()
    while host.startswith("www."):
        host = host[4:]
    return host


def canonicalize(url: str) -> str:
    """Identity form of an article URL.

    - lower-case scheme and host, drop a leading "www."
    - drop the fragment and known tracking parameters (other params keep their order)
    - remove trailing slashes except on the root path
    """
    if not url:
        return ""
    p = urlparse(url.strip())
    if not p.netloc:
        return url.strip()
    path = p.path or "/"
    if len(path) > 1:
        path = path.rstrip("/") or "/"
    kept = [(k, v) for k, v in parse_qsl(p.query, keep_blank_values=True) if not _is_tracking(k)]
    query = urlencode(kept, doseq=True)
    return urlunparse(((p.scheme or "https").lower(), _host(p.netloc), path, p.params, query, ""))


def domain_of(url: str) -> str:
    try:
        return _host(urlparse(url or "").netloc)
    except ValueError:
        return ""


def same_host(a: Optional[str], b: Optional[str]) -> bool:
    ha, hb = domain_of(a or ""), domain_of(b or "")
    return bool(ha) and ha == hb


def normalize_base(url: str) -> str:
    """https, no query, no fragment. Bare hosts are accepted."""
    raw = (url or "").strip()
    if not re.match(r"^[a-z][a-z0-9+.-]*://", raw, re.IGNORECASE):
        raw = "https://" + raw
    p = urlparse(raw)
    return urlunparse(("https", p.netloc.lower(), p.path or "/", "", "", ""))


def origin_of(url: str) -> str:
    p = urlparse(url)
    return f"{p.scheme}://{p.netloc}"


def is_http_url(url: Optional[str]) -> bool:
    if not url:
        return False
    p = urlparse(url)
    return p.scheme in ("http", "https") and bool(p.netloc)


def absolutize(href: Optional[str], base: str) -> Optional[str]:
    if not href:
        return None
    href = href.strip()
    if not href or href.lower().startswith(("javascript:", "mailto:", "tel:", "#")):
        return None
    try:
        abs_url = urljoin(base, href)
    except ValueError:
        return None
    return abs_url if is_http_url(abs_url) else None


def normalize_link(url: str) -> str:
    """Drop fragment and an AMP suffix so listing links point at the article itself."""
    p = urlparse(url)
    path = p.path
    if path.endswith("/amp") or path.endswith("/amp/"):
        path = path[: path.rfind("/amp")] or "/"
    return urlunparse((p.scheme, p.netloc, path, p.params, p.query, ""))


# --- Redirect wrappers --------------------------------------------------------

def unwrap_once(url: str) -> Optional[str]:
    try:
        p = urlparse(url)
    except ValueError:
        return None
    host = p.netloc.lower()
    known = any(host == h or host.endswith("." + h) for h in _REDIRECT_HOSTS)
    if not known:
        return None
    params = dict(parse_qsl(p.query))
    for key in _REDIRECT_KEYS:
        target = params.get(key)
        if target and is_http_url(target):
            return target
    # some wrappers carry the target in the path
    m = re.search(r"https?://.+$", unquote(p.path))
    if m:
        return m.group(0)
    return None


def unwrap_redirect(url: str, max_hops: int = 3) -> str:
    cur = url
    for _ in range(max_hops):
        nxt = unwrap_once(cur)
        if not nxt or nxt == cur:
            break
        cur = nxt
    return cur


def is_likely_dead_redirect(url: str) -> bool:
    p = urlparse(url or "")
    return (p.path or "/") == "/"


def fingerprint(canonical_url: str, cleaned_title: str) -> str:
    return hashlib.sha1(f"{canonical_url}|{cleaned_title}".encode("utf-8")).hexdigest()
