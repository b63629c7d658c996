import unittest

import httpx

from ffnews.images import (
    is_author_image,
    is_undersized,
    parse_dimensions,
    resolve_image,
    sanitize_candidate,
    unwrap_image_proxy,
)

ARTICLE_HTML = """
<html><head>
<meta property="og:image" content="https://cdn.site.com/hero-1200x630.jpg">
<meta name="twitter:image" content="https://cdn.site.com/twitter.jpg">
</head><body><article><img src="/body.jpg"></article></body></html>
"""


def _client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


class TestCandidatePredicates(unittest.TestCase):
    def test_protocol_relative_is_upgraded(self):
        self.assertEqual(sanitize_candidate("//cdn.x.com/img/hero.jpg"), "https://cdn.x.com/img/hero.jpg")

    def test_rejections(self):
        for raw in (
            "https://x.com/favicon.ico",
            "https://x.com/static/site-logo.png",
            "https://x.com/img/chart.svg",
            "https://x.com/uploads/photo-150x150.jpg",
            "https://x.com/p.jpg?w=100&h=60",
            "https://www.gravatar.com/avatar/abc",
            "data:image/png;base64,AAAA",
            "",
            None,
        ):
            self.assertIsNone(sanitize_candidate(raw, "https://x.com/a"), raw)

    def test_malformed_url_is_rejected(self):
        self.assertIsNone(sanitize_candidate("http://[broken/hero.jpg"))

    def test_headshot_keyword_only_rejects_article_tiers(self):
        url = "https://cdn.x.com/headshots/puka-nacua.jpg"
        self.assertIsNone(sanitize_candidate(url))
        self.assertEqual(sanitize_candidate(url, article_tier=False), url)
        self.assertIsNone(sanitize_candidate("https://cdn.x.com/avatar/puka.jpg", article_tier=False))

    def test_next_image_proxy_is_unwrapped(self):
        raw = "/_next/image?url=%2Fimages%2Fhero.jpg&w=1200&q=75"
        self.assertEqual(sanitize_candidate(raw, "https://site.com/nfl/a"), "https://site.com/images/hero.jpg")
        self.assertEqual(unwrap_image_proxy("https://site.com/a.jpg"), "https://site.com/a.jpg")

    def test_dimensions(self):
        self.assertEqual(parse_dimensions("https://x.com/a-640x360.jpg"), (640, 360))
        self.assertEqual(parse_dimensions("https://x.com/a.jpg?width=90"), (90, None))
        self.assertTrue(is_undersized("https://x.com/a.jpg?width=90"))
        self.assertFalse(is_author_image("https://x.com/a-640x360.jpg"))
        self.assertTrue(is_author_image("https://x.com/a-96x96.jpg"))


class TestResolveImage(unittest.TestCase):
    def test_meta_tier_after_weak_feed_image(self):
        def handler(request):
            return httpx.Response(200, text=ARTICLE_HTML, headers={"content-type": "text/html; charset=utf-8"})

        with _client(handler) as client:
            got = resolve_image(
                client,
                lambda u: True,
                "https://site.com/nfl/article",
                feed_image="https://site.com/logo.png",
            )
        self.assertEqual(got, "https://cdn.site.com/hero-1200x630.jpg")

    def test_feed_image_wins_without_page_fetch(self):
        calls = []

        def handler(request):
            calls.append(str(request.url))
            return httpx.Response(500)

        with _client(handler) as client:
            got = resolve_image(client, lambda u: True, "https://site.com/a", feed_image="https://cdn.site.com/a.jpg")
        self.assertEqual(got, "https://cdn.site.com/a.jpg")
        self.assertEqual(calls, [])

    def test_unverified_candidates_fall_through_to_scrape_tier(self):
        def handler(request):
            return httpx.Response(200, text=ARTICLE_HTML, headers={"content-type": "text/html"})

        good = "https://site.com/body.jpg"
        with _client(handler) as client:
            got = resolve_image(client, lambda u: u == good, "https://site.com/nfl/article")
        self.assertEqual(got, good)

    def test_headshot_tier_for_player_pages(self):
        def handler(request):
            return httpx.Response(404)

        shot = "https://upload.wikimedia.org/wikipedia/commons/thumb/a/ab/CMC.jpg/800px-CMC.jpg"
        with _client(handler) as client:
            got = resolve_image(
                client,
                lambda u: True,
                "https://site.com/players/christian-mccaffrey",
                player_name="Christian McCaffrey",
                headshot_lookup=lambda c, name: shot,
            )
        self.assertEqual(got, shot)

    def test_headshot_named_file_is_kept_on_player_tier(self):
        def handler(request):
            return httpx.Response(404)

        shot = "https://static.example.com/headshots/christian-mccaffrey.png"
        with _client(handler) as client:
            got = resolve_image(
                client,
                lambda u: True,
                "https://site.com/players/christian-mccaffrey",
                feed_image="https://site.com/img/writer-headshot.jpg",
                player_name="Christian McCaffrey",
                headshot_lookup=lambda c, name: shot,
            )
        self.assertEqual(got, shot)

    def test_malformed_candidates_do_not_raise(self):
        def handler(request):
            return httpx.Response(404)

        with _client(handler) as client:
            got = resolve_image(client, lambda u: True, "https://site.com/nfl/a", feed_image="http://[broken/hero.jpg")
        self.assertIsNone(got)

    def test_nothing_usable_is_none(self):
        def handler(request):
            return httpx.Response(200, text=ARTICLE_HTML, headers={"content-type": "text/html"})

        with _client(handler) as client:
            self.assertIsNone(resolve_image(client, lambda u: False, "https://site.com/nfl/article"))


if __name__ == "__main__":
    unittest.main()
