# ffnews/content_filter.py
from __future__ import annotations
import re
from dataclasses import dataclass, field
from typing import List, Optional, Pattern
from urllib.parse import urlparse

from ffnews.urls import domain_of

# --- League signals -------------------------------------------------------------
_NFL_RE = re.compile(r"\bnfl\b|fantasy[ -]?football", re.IGNORECASE)
_NON_NFL_RE = re.compile(
    r"\b(mlb|nba|nhl|wnba|mls|premier league|la liga|ufc|nascar|baseball|basketball|"
    r"hockey|soccer|cricket|rugby|tennis|golf)\b",
    re.IGNORECASE,
)

# --- Paths that are never articles ------------------------------------------------
_NON_ARTICLE_PATH = re.compile(
    r"/(tags?|category|categories|authors?|login|signin|signup|register|subscribe|store|shop|"
    r"videos|photos|teams)(/|$)|/page/\d+/?$|/fantasy/?$",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class FilterRule:
    forbidden: List[Pattern] = field(default_factory=list)  # tested on text and path
    path_allow: List[Pattern] = field(default_factory=list)
    path_deny: List[Pattern] = field(default_factory=list)
    required_any: List[Pattern] = field(default_factory=list)


_DEFAULT_RULE = FilterRule(
    forbidden=[re.compile(
        r"/(about|privacy|terms|contact|subscribe|gift|advertis|affiliate|login|signin|signup|careers)\b",
        re.IGNORECASE,
    )],
    path_deny=[
        re.compile(r"/scoreboard\b", re.IGNORECASE),
        re.compile(r"/scores?\b", re.IGNORECASE),
        re.compile(r"/schedule\b", re.IGNORECASE),
    ],
)

_DOMAIN_RULES = {
    "fantasypros.com": FilterRule(
        forbidden=[re.compile(r"^»"), re.compile(r"/nfl/(players|stats|news)/[a-z0-9-]+\.php$", re.IGNORECASE)],
        path_allow=[re.compile(r"^/nfl/", re.IGNORECASE), re.compile(r"^/20\d\d/", re.IGNORECASE)],
        path_deny=[re.compile(r"^/(mlb|nba|nhl|college)/", re.IGNORECASE)],
    ),
    "espn.com": FilterRule(
        path_allow=[
            re.compile(r"^/nfl/", re.IGNORECASE),
            re.compile(r"^/fantasy/football/", re.IGNORECASE),
            re.compile(r"^/(story|blog|article)\b", re.IGNORECASE),
        ],
        path_deny=[re.compile(r"/watch\b", re.IGNORECASE), re.compile(r"/(?:login|account)\b", re.IGNORECASE)],
    ),
    "nbcsports.com": FilterRule(
        forbidden=[
            re.compile(r"/nfl/[a-z0-9-]+/\d+/?$", re.IGNORECASE),
            re.compile(r"^[A-Z][A-Za-z.'\-]+( [A-Z][A-Za-z.'\-]+){0,3}$"),
        ],
        path_allow=[re.compile(r"^/nfl/", re.IGNORECASE), re.compile(r"^/fantasy/football", re.IGNORECASE)],
        path_deny=[re.compile(r"^/watch/", re.IGNORECASE), re.compile(r"/soccer/", re.IGNORECASE)],
    ),
}


def _rule_for(host: str) -> Optional[FilterRule]:
    for domain, rule in _DOMAIN_RULES.items():
        if host == domain or host.endswith("." + domain):
            return rule
    return None


def league_of(title: str, url: str, description: str = "") -> str:
    """NFL, OTHER (clearly another sport) or UNKNOWN."""
    blob = f"{title} {description} {url}"
    if _NFL_RE.search(blob):
        return "NFL"
    if _NON_NFL_RE.search(blob):
        return "OTHER"
    return "UNKNOWN"


def looks_like_non_article(url: str) -> bool:
    try:
        path = urlparse(url).path or "/"
    except ValueError:
        return True
    return path == "/" or bool(_NON_ARTICLE_PATH.search(path))


def allow_item(url: str, title: str = "", description: str = "") -> bool:
    """Shared allow-list applied to every fetched candidate before ingest."""
    try:
        path = urlparse(url).path or "/"
    except ValueError:
        return False
    title = title or ""
    text = f"{title}\n{description}\n{url}"

    rules = [_DEFAULT_RULE]
    site_rule = _rule_for(domain_of(url))
    if site_rule:
        rules.append(site_rule)

    for rule in rules:
        for rx in rule.forbidden:
            if rx.search(text) or rx.search(path) or rx.search(title.strip()):
                return False
        if any(rx.search(path) for rx in rule.path_deny):
            return False
        if rule.path_allow and not any(rx.search(path) for rx in rule.path_allow):
            return False
        if rule.required_any and not any(rx.search(text) for rx in rule.required_any):
            return False

    return league_of(title, url, description) != "OTHER"
