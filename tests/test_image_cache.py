import os
import tempfile
import threading
import time
import unittest

import httpx

from ffnews import db
from ffnews.image_cache import FifoSemaphore, ImageUsabilityCache

IMAGE = "https://cdn.site.com/hero.jpg"


class _TempDb(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self._tmp.name, "test.db")
        db.ensure_schema(self.db_path)

    def tearDown(self):
        self._tmp.cleanup()

    def cache(self, handler, **kwargs) -> ImageUsabilityCache:
        client = httpx.Client(transport=httpx.MockTransport(handler))
        self.addCleanup(client.close)
        return ImageUsabilityCache(client, db_path=self.db_path, **kwargs)


class TestImageUsabilityCache(_TempDb):
    def test_concurrent_checks_share_one_request(self):
        calls = []
        entered = threading.Event()
        release = threading.Event()

        def handler(request):
            calls.append(request.method)
            entered.set()
            release.wait(5)
            return httpx.Response(200, headers={"content-type": "image/jpeg", "content-length": "48000"})

        cache = self.cache(handler)
        results = []
        first = threading.Thread(target=lambda: results.append(cache.is_usable(IMAGE)))
        second = threading.Thread(target=lambda: results.append(cache.is_usable(IMAGE)))
        first.start()
        self.assertTrue(entered.wait(5))
        second.start()
        time.sleep(0.2)
        release.set()
        first.join(5)
        second.join(5)

        self.assertEqual(results, [True, True])
        self.assertEqual(calls, ["HEAD"])

    def test_head_rejected_falls_back_to_ranged_get(self):
        seen = []

        def handler(request):
            seen.append((request.method, request.headers.get("range")))
            if request.method == "HEAD":
                return httpx.Response(405)
            return httpx.Response(
                206,
                headers={"content-type": "image/jpeg", "content-range": "bytes 0-0/48000", "content-length": "1"},
                content=b"\xff",
            )

        cache = self.cache(handler)
        self.assertTrue(cache.is_usable(IMAGE))
        self.assertEqual(seen, [("HEAD", None), ("GET", "bytes=0-0")])

        row = db.get_image_check(IMAGE, self.db_path)
        self.assertTrue(row["ok"])
        self.assertEqual(row["bytes"], 48000)
        self.assertEqual(row["content_type"], "image/jpeg")

    def test_tiny_image_is_rejected_and_persisted(self):
        def handler(request):
            if request.method == "HEAD":
                return httpx.Response(200, headers={"content-type": "image/png", "content-length": "500"})
            return httpx.Response(206, headers={"content-type": "image/png", "content-range": "bytes 0-0/500"}, content=b"x")

        cache = self.cache(handler)
        self.assertFalse(cache.is_usable(IMAGE))
        row = db.get_image_check(IMAGE, self.db_path)
        self.assertFalse(row["ok"])
        self.assertEqual(row["bytes"], 500)

    def test_html_is_not_an_image(self):
        def handler(request):
            return httpx.Response(200, headers={"content-type": "text/html"}, text="<html></html>")

        self.assertFalse(self.cache(handler)(IMAGE))

    def test_verified_url_is_trusted_from_store(self):
        calls = []

        def handler(request):
            calls.append(request.method)
            return httpx.Response(200, headers={"content-type": "image/jpeg", "content-length": "9000"})

        cache = self.cache(handler)
        self.assertTrue(cache.is_usable(IMAGE))
        self.assertTrue(cache.is_usable(IMAGE))
        self.assertEqual(calls, ["HEAD"])

        fresh = self.cache(handler)
        self.assertTrue(fresh.is_usable(IMAGE))
        self.assertEqual(calls, ["HEAD"])

    def test_failed_url_is_probed_again(self):
        calls = []

        def handler(request):
            calls.append(request.method)
            raise httpx.ConnectTimeout("slow host", request=request)

        cache = self.cache(handler)
        self.assertFalse(cache.is_usable(IMAGE))
        self.assertFalse(cache.is_usable(IMAGE))
        self.assertEqual(calls, ["HEAD", "GET", "HEAD", "GET"])
        self.assertFalse(db.get_image_check(IMAGE, self.db_path)["ok"])

    def test_empty_url(self):
        self.assertFalse(self.cache(lambda r: httpx.Response(500)).is_usable(None))

    def test_probes_are_bounded(self):
        lock = threading.Lock()
        active = [0]
        peak = [0]

        def handler(request):
            with lock:
                active[0] += 1
                peak[0] = max(peak[0], active[0])
            time.sleep(0.05)
            with lock:
                active[0] -= 1
            return httpx.Response(200, headers={"content-type": "image/jpeg", "content-length": "9000"})

        cache = self.cache(handler, max_concurrency=2)
        threads = [
            threading.Thread(target=cache.is_usable, args=(f"https://cdn.site.com/{i}.jpg",)) for i in range(8)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join(10)
        self.assertLessEqual(peak[0], 2)
        self.assertEqual(db.get_image_check("https://cdn.site.com/7.jpg", self.db_path)["ok"], True)


class TestFifoSemaphore(unittest.TestCase):
    def test_waiters_are_served_in_arrival_order(self):
        sem = FifoSemaphore(1)
        self.assertTrue(sem.acquire())
        order = []

        def worker(name):
            sem.acquire()
            order.append(name)
            sem.release()

        threads = []
        for name in ("a", "b", "c"):
            t = threading.Thread(target=worker, args=(name,))
            t.start()
            threads.append(t)
            time.sleep(0.05)
        sem.release()
        for t in threads:
            t.join(5)
        self.assertEqual(order, ["a", "b", "c"])

    def test_acquire_times_out(self):
        sem = FifoSemaphore(1)
        self.assertTrue(sem.acquire())
        self.assertFalse(sem.acquire(timeout=0.05))
        sem.release()
        self.assertTrue(sem.acquire(timeout=0.05))

    def test_needs_a_slot(self):
        with self.assertRaises(ValueError):
            FifoSemaphore(0)


if __name__ == "__main__":
    unittest.main()
