import os
import tempfile
import unittest
from datetime import datetime, timedelta, timezone

import httpx

from ffnews import db
from ffnews.errors import ConfigurationError
from ffnews.ingest import IngestContext, ingest_all, ingest_source, preview_source, recheck_images
from ffnews.models import CandidateItem, Source
from ffnews.ingest import skip_reason

RSS = """<?xml version="1.0"?>
<rss version="2.0"><channel><title>Example</title><link>https://www.example.com/</link>
<item>
  <title>Week 5 Waiver Wire Targets</title>
  <link>https://www.example.com/nfl/week-5-waiver-wire</link>
  <pubDate>Tue, 01 Oct 2024 12:00:00 GMT</pubDate>
  <enclosure url="https://cdn.example.com/w5-1200x630.jpg" type="image/jpeg" length="0" />
</item>
<item>
  <title>Week 5 Waiver Wire Targets</title>
  <link>https://www.example.com/nfl/week-5-waiver-wire?utm_source=rss</link>
</item>
<item>
  <title>Home</title>
  <link>https://www.example.com/</link>
</item>
<item>
  <title>Waivers archive</title>
  <link>https://www.example.com/tag/waivers</link>
</item>
<item>
  <title>Christian McCaffrey ruled out for Week 5</title>
  <link>https://www.example.com/nfl/christian-mccaffrey-ruled-out</link>
</item>
<item>
  <title>» Christian McCaffrey</title>
  <link>https://www.example.com/players/christian-mccaffrey</link>
  <enclosure url="https://cdn.example.com/cmc-800x1000.jpg" type="image/jpeg" length="0" />
</item>
</channel></rss>
"""

ARTICLE = """<html><head>
<meta property="og:image" content="https://cdn.example.com/cmc-news-1200x630.jpg">
</head><body></body></html>"""


def handler(request: httpx.Request) -> httpx.Response:
    url = request.url
    if url.host == "cdn.example.com":
        return httpx.Response(200, headers={"content-type": "image/jpeg", "content-length": "50000"})
    if url.path == "/feed.xml":
        return httpx.Response(200, text=RSS, headers={"content-type": "application/rss+xml"})
    if url.path == "/nfl/christian-mccaffrey-ruled-out":
        return httpx.Response(200, text=ARTICLE, headers={"content-type": "text/html"})
    return httpx.Response(404)


class TestIngest(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self._tmp.name, "test.db")
        self.client = httpx.Client(transport=httpx.MockTransport(handler))
        self.ctx = IngestContext(client=self.client, db_path=self.db_path, headshots=False)
        db.save_source(
            Source(id=1, name="Example", homepage_url="https://www.example.com/", rss_url="https://www.example.com/feed.xml"),
            self.db_path,
        )

    def tearDown(self):
        self.ctx.close()
        self.client.close()
        self._tmp.cleanup()

    def test_summary_counts_and_rerun(self):
        first = ingest_source(self.ctx, 1)
        self.assertEqual(first.method, "rss")
        self.assertEqual(first.fetched, 6)
        self.assertEqual(first.skipped, 3)
        self.assertEqual(first.extracted, 3)
        self.assertEqual(first.inserted, 3)
        self.assertEqual(first.updated, 0)
        self.assertEqual(first.errors, 0)
        self.assertEqual(db.count_articles(self.db_path), 3)

        again = ingest_source(self.ctx, 1)
        self.assertEqual((again.inserted, again.updated), (0, 3))
        self.assertEqual(db.count_articles(self.db_path), 3)

    def test_articles_are_enriched(self):
        ingest_source(self.ctx, 1)
        waiver = db.get_article("https://example.com/nfl/week-5-waiver-wire", self.db_path)
        self.assertEqual(waiver["primary_topic"], "waiver-wire")
        self.assertEqual(waiver["week"], 5)
        self.assertEqual(waiver["image_url"], "https://cdn.example.com/w5-1200x630.jpg")
        self.assertEqual(waiver["published_at"], "2024-10-01T12:00:00Z")
        self.assertEqual(waiver["source_id"], 1)

        news = db.get_article("https://example.com/nfl/christian-mccaffrey-ruled-out", self.db_path)
        self.assertEqual(news["image_url"], "https://cdn.example.com/cmc-news-1200x630.jpg")
        self.assertEqual(news["players"], ["Christian McCaffrey"])
        self.assertFalse(news["is_player_page"])

        player = db.get_article("https://example.com/players/christian-mccaffrey", self.db_path)
        self.assertTrue(player["is_player_page"])
        self.assertEqual(player["cleaned_title"], "Christian McCaffrey")
        self.assertEqual(
            db.get_player_image("nfl:name:christian-mccaffrey", self.db_path),
            "https://cdn.example.com/cmc-800x1000.jpg",
        )

    def test_unknown_source(self):
        with self.assertRaises(ConfigurationError):
            ingest_source(self.ctx, 42)

    def test_one_bad_source_does_not_stop_the_rest(self):
        db.save_source(Source(id=2, name="Broken", homepage_url="https://www.example.com/", adapter="missing",
                              fetch_mode="adapter"), self.db_path)
        total = ingest_all(self.ctx, workers=2)
        self.assertEqual(total.inserted, 3)
        self.assertEqual(total.errors, 1)
        self.assertEqual([s.source_id for s in total.sources], [1, 2])
        self.assertTrue(any("source 2" in m for m in total.error_messages))

    def test_preview_writes_nothing(self):
        method, items = preview_source(self.ctx, 1, limit=10)
        self.assertEqual(method, "rss")
        self.assertEqual(items[0].url, "https://www.example.com/nfl/week-5-waiver-wire")
        self.assertEqual(db.count_articles(self.db_path), 0)

    def test_recheck_images_purges_old_checks(self):
        ingest_source(self.ctx, 1)
        self.assertIsNotNone(db.get_image_check("https://cdn.example.com/w5-1200x630.jpg", self.db_path))
        purged = recheck_images(0, db_path=self.db_path, now=datetime.now(timezone.utc) + timedelta(days=1))
        self.assertEqual(purged, 3)
        self.assertIsNone(db.get_image_check("https://cdn.example.com/w5-1200x630.jpg", self.db_path))


MALFORMED_IMAGE_RSS = """<?xml version="1.0"?>
<rss version="2.0" xmlns:media="http://search.yahoo.com/mrss/"><channel><title>Example</title>
<link>https://www.example.com/</link>
<item>
  <title>Week 5 Waiver Wire Targets</title>
  <link>https://www.example.com/nfl/week-5-waiver-wire</link>
  <media:content url="https://cdn.example.com:abc/hero.jpg" medium="image" />
</item>
<item>
  <title>Week 5 DFS Lineups</title>
  <link>https://www.example.com/nfl/week-5-dfs-lineups</link>
  <media:content url="http://[broken/hero.jpg" medium="image" />
</item>
<item>
  <title>Week 5 Rankings</title>
  <link>https://www.example.com/nfl/week-5-rankings</link>
  <enclosure url="https://cdn.example.com/rankings-1200x630.jpg" type="image/jpeg" length="0" />
</item>
</channel></rss>
"""


class TestMalformedImageUrls(unittest.TestCase):
    def setUp(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.host == "cdn.example.com":
                return httpx.Response(200, headers={"content-type": "image/jpeg", "content-length": "50000"})
            if request.url.path == "/feed.xml":
                return httpx.Response(200, text=MALFORMED_IMAGE_RSS, headers={"content-type": "application/rss+xml"})
            return httpx.Response(404)

        self._tmp = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self._tmp.name, "test.db")
        self.client = httpx.Client(transport=httpx.MockTransport(handler))
        self.ctx = IngestContext(client=self.client, db_path=self.db_path, headshots=False)
        db.save_source(
            Source(id=1, name="Example", homepage_url="https://www.example.com/", rss_url="https://www.example.com/feed.xml"),
            self.db_path,
        )

    def tearDown(self):
        self.ctx.close()
        self.client.close()
        self._tmp.cleanup()

    def test_bad_image_urls_only_drop_the_image(self):
        summary = ingest_source(self.ctx, 1)
        self.assertEqual(summary.errors, 0)
        self.assertEqual(summary.inserted, 3)
        self.assertEqual(db.count_articles(self.db_path), 3)

        bad_port = db.get_article("https://example.com/nfl/week-5-waiver-wire", self.db_path)
        self.assertIsNone(bad_port["image_url"])
        bad_host = db.get_article("https://example.com/nfl/week-5-dfs-lineups", self.db_path)
        self.assertIsNone(bad_host["image_url"])
        clean = db.get_article("https://example.com/nfl/week-5-rankings", self.db_path)
        self.assertEqual(clean["image_url"], "https://cdn.example.com/rankings-1200x630.jpg")

    def test_bad_port_is_not_usable(self):
        self.assertFalse(self.ctx.images.is_usable("https://cdn.example.com:abc/hero.jpg"))


class TestSkipRules(unittest.TestCase):
    def test_reasons(self):
        seen = {"https://example.com/nfl/a"}
        self.assertEqual(skip_reason(CandidateItem(title="x", link=""), seen)[0], "empty link")
        self.assertEqual(skip_reason(CandidateItem(title="x", link="https://example.com/"), seen)[0], "dead redirect")
        self.assertEqual(skip_reason(CandidateItem(title="x", link="https://example.com/tag/nfl"), seen)[0], "non-article")
        self.assertEqual(skip_reason(CandidateItem(title="MLB notes", link="https://example.com/mlb/notes"), seen)[0], "filtered")
        self.assertEqual(skip_reason(CandidateItem(title="x", link="https://www.example.com/nfl/a/"), seen)[0], "duplicate")
        self.assertEqual(
            skip_reason(CandidateItem(title="x", link="https://example.com/nfl/b"), seen),
            (None, "https://example.com/nfl/b"),
        )


if __name__ == "__main__":
    unittest.main()
