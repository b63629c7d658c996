# ffnews/image_cache.py
from __future__ import annotations
import logging
import threading
from collections import deque
from concurrent.futures import Future
from typing import Deque, Dict, Optional, Tuple

import httpx

from ffnews import db
from ffnews.config import IMAGE_HEAD_CONCURRENCY, IMAGE_HEAD_TIMEOUT, IMAGE_MIN_BYTES
from ffnews.errors import PersistenceError

logger = logging.getLogger(__name__)


class FifoSemaphore:
    """Counting semaphore that hands slots to waiters strictly in arrival order."""

    def __init__(self, value: int):
        if value < 1:
            raise ValueError("semaphore needs at least one slot")
        self._lock = threading.Lock()
        self._free = value
        self._waiters: Deque[threading.Event] = deque()

    def acquire(self, timeout: Optional[float] = None) -> bool:
        with self._lock:
            if self._free > 0 and not self._waiters:
                self._free -= 1
                return True
            ev = threading.Event()
            self._waiters.append(ev)
        if ev.wait(timeout):
            return True
        with self._lock:
            try:
                self._waiters.remove(ev)
            except ValueError:
                # granted between the timeout and taking the lock
                return True
        return False

    def release(self) -> None:
        with self._lock:
            if self._waiters:
                # hand the slot straight to the oldest waiter
                self._waiters.popleft().set()
            else:
                self._free += 1


def _content_size(headers: httpx.Headers) -> Optional[int]:
    """Full object size: Content-Range total for ranged replies, else Content-Length."""
    cr = headers.get("content-range") or ""
    if "/" in cr:
        total = cr.rsplit("/", 1)[1].strip()
        if total.isdigit():
            return int(total)
    cl = headers.get("content-length")
    if cl and cl.strip().isdigit():
        return int(cl.strip())
    return None


class ImageUsabilityCache:
    """Verifies that an image URL serves a real, adequately sized image.

    One instance per process, shared by every ingest worker. Verified-good
    URLs are trusted from the image_cache table until something purges them;
    concurrent checks of one URL share a single probe; at most
    `max_concurrency` probes are on the wire at once.
    """

    def __init__(
        self,
        client: httpx.Client,
        db_path: Optional[str] = None,
        max_concurrency: int = IMAGE_HEAD_CONCURRENCY,
        timeout: float = IMAGE_HEAD_TIMEOUT,
        min_bytes: int = IMAGE_MIN_BYTES,
    ):
        self.client = client
        self.db_path = db_path
        self.timeout = timeout
        self.min_bytes = min_bytes
        self._slots = FifoSemaphore(max_concurrency)
        self._lock = threading.Lock()
        self._in_flight: Dict[str, Future] = {}

    def __call__(self, url: Optional[str]) -> bool:
        return self.is_usable(url)

    def is_usable(self, url: Optional[str]) -> bool:
        if not url:
            return False
        cached = db.get_image_check(url, self.db_path)
        if cached and cached["ok"]:
            return True

        with self._lock:
            pending = self._in_flight.get(url)
            if pending is None:
                pending = Future()
                self._in_flight[url] = pending
                owner = True
            else:
                owner = False
        if not owner:
            return pending.result()

        ok = False
        try:
            ok, content_type, size = self._probe(url)
            try:
                db.save_image_check(url, ok, content_type, size, self.db_path)
            except PersistenceError as e:
                logger.warning("%s", e)
        finally:
            pending.set_result(ok)
            with self._lock:
                self._in_flight.pop(url, None)
        return ok

    def _acceptable(self, r: httpx.Response, size: Optional[int], ranged: bool) -> bool:
        ctype = (r.headers.get("content-type") or "").lower()
        if not (200 <= r.status_code < 300) or not ctype.startswith("image/"):
            return False
        if size is None:
            # HEAD without a length is inconclusive; a ranged GET that says image/* is enough
            return ranged
        return size > self.min_bytes

    def _probe(self, url: str) -> Tuple[bool, Optional[str], Optional[int]]:
        content_type: Optional[str] = None
        size: Optional[int] = None
        # each request below has its own timeout
        if not self._slots.acquire(timeout=self.timeout * 4):
            logger.warning("image probe queue timed out for %s", url)
            return False, None, None
        try:
            try:
                r = self.client.head(url, timeout=self.timeout, follow_redirects=True)
                content_type = r.headers.get("content-type")
                size = _content_size(r.headers)
                if self._acceptable(r, size, ranged=False):
                    return True, content_type, size
            except (httpx.HTTPError, httpx.InvalidURL) as e:
                logger.debug("HEAD %s failed: %s", url, e)

            # some hosts reject HEAD; ask for the first byte instead
            get_timeout = max(2.5, self.timeout - 0.5)
            try:
                with self.client.stream(
                    "GET", url, headers={"Range": "bytes=0-0"}, timeout=get_timeout, follow_redirects=True
                ) as r:
                    content_type = r.headers.get("content-type") or content_type
                    ranged_size = _content_size(r.headers)
                    if r.status_code == 206 or ranged_size is not None:
                        size = ranged_size
                    return self._acceptable(r, size, ranged=True), content_type, size
            except (httpx.HTTPError, httpx.InvalidURL) as e:
                logger.debug("ranged GET %s failed: %s", url, e)
                return False, content_type, size
        finally:
            self._slots.release()
