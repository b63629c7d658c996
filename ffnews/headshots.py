# ffnews/headshots.py
from __future__ import annotations
import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

WIKI_API = "https://en.wikipedia.org/w/api.php"
HEADSHOT_TIMEOUT = 5.0


def find_wikipedia_headshot(client: httpx.Client, name: str) -> Optional[str]:
    """Thumbnail of the best Wikipedia match for '<name> American football'."""
    if not name or not name.strip():
        return None
    r = client.get(WIKI_API, params={
        "action": "query",
        "list": "search",
        "format": "json",
        "srlimit": 1,
        "srsearch": f"{name.strip()} American football",
    }, timeout=HEADSHOT_TIMEOUT)
    if r.status_code != 200:
        return None
    hits = ((r.json() or {}).get("query") or {}).get("search") or []
    if not hits or not hits[0].get("pageid"):
        return None
    page_id = hits[0]["pageid"]

    r = client.get(WIKI_API, params={
        "action": "query",
        "pageids": page_id,
        "prop": "pageimages|info",
        "piprop": "thumbnail|name",
        "pithumbsize": 800,
        "inprop": "url",
        "format": "json",
    }, timeout=HEADSHOT_TIMEOUT)
    if r.status_code != 200:
        return None
    page = (((r.json() or {}).get("query") or {}).get("pages") or {}).get(str(page_id)) or {}
    src = (page.get("thumbnail") or {}).get("source")
    if src:
        logger.debug("headshot for %s -> %s", name, src)
    return src or None
