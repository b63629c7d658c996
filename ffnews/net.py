# ffnews/net.py
from __future__ import annotations
import logging
import time
from typing import Dict, Optional

import httpx

from ffnews.config import HTTP_BACKOFF, HTTP_RETRIES, HTTP_TIMEOUT, OG_FETCH_TIMEOUT, OG_MAX_BYTES, USER_AGENT
from ffnews.errors import TransientFetchError

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}


def make_client(timeout: float = HTTP_TIMEOUT, transport: Optional[httpx.BaseTransport] = None) -> httpx.Client:
    """Shared client for one run. Tests pass an httpx.MockTransport."""
    kwargs = {}
    if transport is not None:
        kwargs["transport"] = transport
    return httpx.Client(headers=DEFAULT_HEADERS, timeout=timeout, follow_redirects=True, **kwargs)


def _retryable(status: int) -> bool:
    return status == 429 or status >= 500


def http_get_text(
    client: httpx.Client,
    url: str,
    *,
    retries: int = HTTP_RETRIES,
    timeout: float = HTTP_TIMEOUT,
    headers: Optional[Dict[str, str]] = None,
    backoff: float = HTTP_BACKOFF,
) -> str:
    last_status: Optional[int] = None
    last_reason = ""
    for attempt in range(retries + 1):
        try:
            r = client.get(url, timeout=timeout, headers=headers)
        except httpx.TimeoutException as e:
            last_status, last_reason = None, f"timeout: {e}"
        except httpx.HTTPError as e:
            last_status, last_reason = None, str(e)
        except httpx.InvalidURL as e:
            last_status, last_reason = None, f"invalid url: {e}"
            break
        else:
            if 200 <= r.status_code < 300:
                return r.text
            last_status, last_reason = r.status_code, r.reason_phrase
            if not _retryable(r.status_code):
                break
        if attempt < retries:
            time.sleep(backoff * (attempt + 1))
    raise TransientFetchError(url, last_status, last_reason)


def fetch_text_or_none(client: httpx.Client, url: str, **kwargs) -> Optional[str]:
    try:
        return http_get_text(client, url, **kwargs)
    except TransientFetchError as e:
        logger.debug("soft fetch failure: %s", e)
        return None


def fetch_html_head(
    client: httpx.Client,
    url: str,
    timeout: float = OG_FETCH_TIMEOUT,
    max_bytes: int = OG_MAX_BYTES,
) -> Optional[str]:
    """Read at most max_bytes of an HTML page. Enough for <head> meta tags."""
    try:
        with client.stream("GET", url, timeout=timeout) as r:
            if not (200 <= r.status_code < 300):
                return None
            ctype = (r.headers.get("content-type") or "").lower()
            if "html" not in ctype:
                return None
            buf = bytearray()
            for chunk in r.iter_bytes():
                buf.extend(chunk)
                if len(buf) >= max_bytes:
                    break
            encoding = r.charset_encoding or "utf-8"
            try:
                return bytes(buf[:max_bytes]).decode(encoding, errors="replace")
            except LookupError:
                return bytes(buf[:max_bytes]).decode("utf-8", errors="replace")
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        logger.debug("meta fetch failed for %s: %s", url, e)
        return None
