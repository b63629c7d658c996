import unittest

import httpx

from ffnews.adapters import get_adapter, matching_adapters

ARTICLE = """<html><head>
<meta property="og:title" content="Week 6 Start/Sit: Running Backs">
<meta property="og:image" content="/img/week6-rbs-1200x630.jpg">
<meta name="description" content="Who to start at RB this week.">
<meta property="article:published_time" content="2024-10-08T14:30:00Z">
</head><body><h1>Ignored heading</h1></body></html>"""


class TestAdapterArticle(unittest.TestCase):
    def setUp(self):
        self.seen_headers = []

        def handler(request: httpx.Request) -> httpx.Response:
            self.seen_headers.append(dict(request.headers))
            if request.url.path == "/articles/week-6-start-sit-rbs":
                return httpx.Response(200, text=ARTICLE, headers={"content-type": "text/html"})
            return httpx.Response(404)

        self.client = httpx.Client(transport=httpx.MockTransport(handler))

    def tearDown(self):
        self.client.close()

    def test_article_reads_page_metadata(self):
        adapter = get_adapter("fantasy-nfl")
        url = "https://fantasy.nfl.com/articles/week-6-start-sit-rbs"
        item = adapter.article(self.client, url, config={"headers": {"X-Client": "ffnews"}})

        self.assertIsNotNone(item)
        self.assertEqual(item.title, "Week 6 Start/Sit: Running Backs")
        self.assertEqual(item.link, url)
        self.assertEqual(item.image_url, "https://fantasy.nfl.com/img/week6-rbs-1200x630.jpg")
        self.assertEqual(item.description, "Who to start at RB this week.")
        self.assertTrue(item.published_at.startswith("2024-10-08"))
        self.assertEqual(self.seen_headers[0].get("x-client"), "ffnews")

    def test_article_missing_page_is_none(self):
        adapter = get_adapter("fftoday")
        self.assertIsNone(adapter.article(self.client, "https://www.fftoday.com/articles/gone.html"))


class TestRegistry(unittest.TestCase):
    def test_site_adapters_match_their_host_only(self):
        keys = [a.key for a in matching_adapters("https://fantasy.nfl.com/news")]
        self.assertIn("fantasy-nfl", keys)
        self.assertNotIn("fftoday", keys)

    def test_unknown_key(self):
        self.assertIsNone(get_adapter("no-such-adapter"))


if __name__ == "__main__":
    unittest.main()
