import unittest

import httpx

from ffnews.probe import pick_best, probe
from ffnews.models import AdapterCandidate, FeedCandidate, ScrapeCandidate

HOME = """
<html><head><title>Example Fantasy</title></head><body>
  <nav><a href="/tag/waivers/">Waivers</a></nav>
  <h2><a href="/nfl/week-5-start-sit">Week 5 Start/Sit Decisions</a></h2>
  <h3><a href="/nfl/injury-report-week-5">NFL Injury Report: Week 5</a></h3>
</body></html>
"""

ARTICLE = """
<html><head>
<meta property="og:title" content="{title}">
<meta property="og:image" content="https://cdn.example.com/hero-1200x630.jpg">
</head><body><h1>{title}</h1></body></html>
"""

RSS = """<?xml version="1.0"?>
<rss version="2.0"><channel><title>x</title><link>https://www.example.com/</link>
<item><title>Week 5 Waiver Wire Targets</title><link>https://www.example.com/nfl/week-5-waiver-wire</link></item>
<item><title>MLB playoff preview</title><link>https://www.example.com/mlb/playoff-preview</link></item>
</channel></rss>
"""


def site_handler(feed: bool):
    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/":
            return httpx.Response(200, text=HOME, headers={"content-type": "text/html"})
        if path.startswith("/nfl/"):
            title = "Opened: " + path.rsplit("/", 1)[-1]
            return httpx.Response(200, text=ARTICLE.format(title=title), headers={"content-type": "text/html"})
        if feed and path == "/feed":
            return httpx.Response(200, text=RSS, headers={"content-type": "application/rss+xml"})
        return httpx.Response(404)
    return handler


class TestProbe(unittest.TestCase):
    def test_recommends_scrape_when_only_selectors_work(self):
        with httpx.Client(transport=httpx.MockTransport(site_handler(feed=False))) as client:
            result = probe(client, "www.example.com")

        self.assertEqual(result.base_url, "https://www.example.com/")
        self.assertFalse(any(f.ok for f in result.feeds))
        self.assertTrue(all(f.error for f in result.feeds))
        self.assertFalse(any(a.ok for a in result.adapters))

        rec = result.recommendation
        self.assertEqual(rec.method, "scrape")
        self.assertEqual(rec.selector, "h2 a, h3 a")
        self.assertEqual(rec.rationale, "Matched 2 links via selector h2 a, h3 a")

        self.assertEqual(
            [p.url for p in result.preview],
            ["https://www.example.com/nfl/week-5-start-sit", "https://www.example.com/nfl/injury-report-week-5"],
        )
        self.assertEqual(result.preview[0].title, "Opened: week-5-start-sit")
        self.assertEqual(result.preview[0].image_url, "https://cdn.example.com/hero-1200x630.jpg")

    def test_recommends_feed_when_one_validates(self):
        with httpx.Client(transport=httpx.MockTransport(site_handler(feed=True))) as client:
            result = probe(client, "https://www.example.com/?ref=home")

        rec = result.recommendation
        self.assertEqual(rec.method, "rss")
        self.assertEqual(rec.feed_url, "https://www.example.com/feed")
        self.assertEqual(rec.rationale, "Valid feed (2 items)")
        feed = next(f for f in result.feeds if f.feed_url == rec.feed_url)
        self.assertEqual(feed.sample_titles, ["Week 5 Waiver Wire Targets", "MLB playoff preview"])
        # the shared allow-list drops the other-league item from the preview
        self.assertEqual([p.url for p in result.preview], ["https://www.example.com/nfl/week-5-waiver-wire"])


class TestPickBest(unittest.TestCase):
    def test_adapter_beats_selector(self):
        rec = pick_best(
            "https://www.example.com/",
            [FeedCandidate(feed_url="https://www.example.com/feed", error="404")],
            [AdapterCandidate(key="wordpress-generic", label="WordPress (generic)", ok=True, item_count=12)],
            [ScrapeCandidate(selector="h2 a, h3 a", ok=True, link_count=30)],
        )
        self.assertEqual(rec.method, "adapter")
        self.assertEqual(rec.adapter_key, "wordpress-generic")
        self.assertEqual(rec.rationale, "Adapter WordPress (generic) produced 12 items")

    def test_nfl_root_suggests_news_section(self):
        rec = pick_best(
            "https://www.nfl.com/",
            [],
            [],
            [ScrapeCandidate(selector="main a[href^='/news/']", ok=True, link_count=8)],
        )
        self.assertEqual(rec.suggested_url, "https://www.nfl.com/news")

    def test_nothing_works(self):
        rec = pick_best("https://www.example.com/", [], [], [ScrapeCandidate(selector="jsonld", ok=True, link_count=3)])
        self.assertEqual(rec.method, "scrape")
        self.assertIsNone(rec.selector)


if __name__ == "__main__":
    unittest.main()
