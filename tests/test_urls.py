import unittest

from ffnews.urls import (
    canonicalize,
    fingerprint,
    is_likely_dead_redirect,
    normalize_base,
    unwrap_redirect,
)


class TestCanonicalize(unittest.TestCase):
    def test_strips_tracking_and_fragment(self):
        raw = "https://WWW.Example.com/nfl/week-5-rankings/?utm_source=x&id=3&fbclid=AAA#comments"
        self.assertEqual(canonicalize(raw), "https://example.com/nfl/week-5-rankings?id=3")

    def test_is_idempotent(self):
        samples = [
            "https://www.example.com/a/b/?utm_medium=y&page=2",
            "http://www.www.example.com/a//",
            "https://example.com?utm_campaign=z",
            "HTTPS://Example.com/News/Story?b=2&a=1",
            "not a url",
            "https://example.com/",
        ]
        for url in samples:
            once = canonicalize(url)
            self.assertEqual(canonicalize(once), once, url)

    def test_keeps_non_tracking_param_order(self):
        self.assertEqual(
            canonicalize("https://example.com/x?b=2&utm_source=q&a=1"),
            "https://example.com/x?b=2&a=1",
        )

    def test_bare_host_gets_root_path(self):
        self.assertEqual(canonicalize("https://example.com"), "https://example.com/")


class TestRedirects(unittest.TestCase):
    def test_unwraps_facebook_wrapper(self):
        wrapped = "https://l.facebook.com/l.php?u=https%3A%2F%2Fwww.rotoballer.com%2Fwaiver-wire%2F123&h=abc"
        self.assertEqual(unwrap_redirect(wrapped), "https://www.rotoballer.com/waiver-wire/123")

    def test_leaves_ordinary_links_alone(self):
        url = "https://www.rotoballer.com/waiver-wire/123?url=https://elsewhere.com/"
        self.assertEqual(unwrap_redirect(url), url)

    def test_root_path_is_dead_redirect(self):
        self.assertTrue(is_likely_dead_redirect("https://site.com/"))
        self.assertFalse(is_likely_dead_redirect("https://site.com/nfl/a"))

    def test_normalize_base(self):
        self.assertEqual(normalize_base("www.fantasypros.com/nfl?x=1#top"), "https://www.fantasypros.com/nfl")
        self.assertEqual(normalize_base("http://example.com"), "https://example.com/")

    def test_fingerprint_depends_on_title(self):
        a = fingerprint("https://site.com/a", "Title")
        self.assertEqual(a, fingerprint("https://site.com/a", "Title"))
        self.assertNotEqual(a, fingerprint("https://site.com/a", "Other title"))
        self.assertEqual(len(a), 40)


if __name__ == "__main__":
    unittest.main()
