# ffnews/classify.py
"""Topic tagging and player-page detection.

Pure functions only: same (title, url, snippet, source) in, same result out.
Each rule is a small named predicate; `classify` composes them.
"""
from __future__ import annotations
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple
from urllib.parse import unquote, urlparse

# --- Categories -----------------------------------------------------------------
CATEGORY_ORDER = ["start-sit", "waiver-wire", "injury", "dfs", "rankings", "advice", "news"]

_WHITELIST = {
    "start-sit": re.compile(
        r"\b(start\s*/\s*sit|start[- ]sit|sit\s*/\s*start|start(?:s)?\s+(?:and|&)\s+sit(?:s)?|who\s+to\s+start|who\s+to\s+sit)\b",
        re.IGNORECASE,
    ),
    "waiver-wire": re.compile(
        r"\b(waiver\s*wire|waivers|pick\s*ups?|adds?|streamers?|deep\s*adds?|stash(?:es)?|faab|sleepers?|targets?|"
        r"spec\s*adds?|roster\s*moves?)\b",
        re.IGNORECASE,
    ),
    "injury": re.compile(
        r"\b(injury|injuries|injured|out\s+for|placed\s+on\s+ir|tore|ruptured|sidelined|inactives?|questionable|"
        r"doubtful|hamstring|acl|mcl|concussion|practice\s+report)\b",
        re.IGNORECASE,
    ),
    "dfs": re.compile(
        r"\b(dfs|draftkings|fan\s?duel|lineups?|cash\s*games?|gpp|value\s*plays?|daily\s+fantasy)\b",
        re.IGNORECASE,
    ),
    "rankings": re.compile(r"\b(rankings?|top\s*\d+(\s*(rbs?|wrs?|tes?|qbs?|dst|k))?|tiers?|ecr)\b", re.IGNORECASE),
    "advice": re.compile(r"\b(advice|tips?|guide|strategy|strategies|help|cheat\s*sheets?)\b", re.IGNORECASE),
}

# A whitelist hit is demoted when the text reads like a different kind of story
_BLACKLIST = {
    "waiver-wire": re.compile(
        r"\b(practice|camp|training\s*camp|beat\s*report|press\s*conference|injury|injured|trade|transaction|"
        r"signs?|re-signs?|agrees\s+to|extension|arrested|suspended)\b",
        re.IGNORECASE,
    ),
}

# Extra tags that never compete for primary_topic
_EXTRA_TAGS = {
    "trade": re.compile(r"\b(trade(?:s|d)?|buy\s*low|sell\s*high|buy\s*/\s*sell|rest[- ]of[- ]season|ros)\b", re.IGNORECASE),
    "draft-prep": re.compile(
        r"\b(mock\s+drafts?|adp|draft\s+(?:kit|guide|strategy|plan|tips|targets|values|board)|cheat\s*sheets?)\b",
        re.IGNORECASE,
    ),
}

_HIT_WEIGHT = {"advice": 0.8}
_BLACKLIST_PENALTY = 0.6
_MATCH_THRESHOLD = 0.5

# Small per-publisher nudges (matched against the source name, case-insensitive)
SOURCE_PRIORS: Dict[str, Dict[str, float]] = {
    "sharp football": {"rankings": 0.2, "dfs": 0.2, "advice": 0.2},
    "razzball": {"waiver-wire": 0.2, "rankings": 0.2, "advice": 0.2},
    "rotoballer": {"waiver-wire": 0.2, "rankings": 0.2, "advice": 0.2},
}


@dataclass(frozen=True)
class Classification:
    topics: Tuple[str, ...]
    primary_topic: str
    secondary_topic: Optional[str]
    is_player_page: bool
    display_title: Optional[str] = None  # set when the title is rebuilt from a player slug


def _priors_for(source_name: Optional[str]) -> Dict[str, float]:
    if not source_name:
        return {}
    s = source_name.lower()
    for key, prior in SOURCE_PRIORS.items():
        if key in s:
            return prior
    return {}


def category_scores(text: str, source_name: Optional[str] = None) -> Dict[str, float]:
    scores: Dict[str, float] = {}
    priors = _priors_for(source_name)
    for cat, rx in _WHITELIST.items():
        if not rx.search(text):
            continue
        score = _HIT_WEIGHT.get(cat, 1.0)
        black = _BLACKLIST.get(cat)
        if black is not None and black.search(text):
            score -= _BLACKLIST_PENALTY
        scores[cat] = score + priors.get(cat, 0.0)
    return scores


def matched_categories(text: str, source_name: Optional[str] = None) -> List[str]:
    scores = category_scores(text, source_name)
    return [c for c in CATEGORY_ORDER if scores.get(c, 0.0) >= _MATCH_THRESHOLD]


def extra_tags(text: str) -> List[str]:
    return [tag for tag, rx in _EXTRA_TAGS.items() if rx.search(text)]


# --- Player pages ---------------------------------------------------------------
_ARTICLE_WORDS = re.compile(
    r"\b(?:fantasy|waivers?|rank(?:s|ings?)?|start(?:s|ers?)?|sits?|news|injur(?:y|ies)|mocks?|sleepers?|weeks?|"
    r"trades?|odds|lines|scores?|highlights|reports?|rumou?rs?|notes|cheat|sheets?|targets|snaps|analysis|"
    r"previews?|recaps?|podcasts?|videos?|live|bonus|codes?)\b|\bvs\.|@",
    re.IGNORECASE,
)
_NAME_TITLE = re.compile(r"^[A-Za-z][A-Za-z'.-]+( [A-Za-z][A-Za-z'.-]+){1,3}\s*(Jr\.|Sr\.|II|III|IV)?$")
_LIST_GLYPH = re.compile(r"^\s*[»›•·▸▶]")
_SLUG_NAME = re.compile(r"^[a-z]+(?:-[a-z]+){1,3}$")
_ALPHA_SEGMENT = re.compile(r"^[a-z][a-z-]*$")
_GENERIC_SEGMENTS = {
    "news", "story", "article", "articles", "id", "nfl", "football", "sports", "team", "teams", "player",
    "players", "bio", "athlete", "people", "video", "videos", "podcast", "bonus", "code", "codes", "odds",
    "lines", "score", "preview", "recap", "fantasy",
}
_SUFFIXES = {"ii": "II", "iii": "III", "iv": "IV", "jr": "Jr.", "sr": "Sr."}


def looks_like_name_title(title: str) -> bool:
    t = (title or "").strip()
    if not (3 <= len(t) <= 48):
        return False
    if _ARTICLE_WORDS.search(t):
        return False
    if not _NAME_TITLE.match(t):
        return False
    # every token capitalized (suffixes excepted)
    return all(tok[0].isupper() for tok in t.split())


def starts_with_list_glyph(title: str) -> bool:
    return bool(_LIST_GLYPH.match(title or ""))


def rightmost_alpha_slug(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    try:
        path = urlparse(url).path
    except ValueError:
        return None
    for seg in reversed([s for s in path.split("/") if s]):
        seg = unquote(seg).lower()
        seg = re.sub(r"\.(html?|php|aspx?)$", "", seg)
        if seg in _GENERIC_SEGMENTS or not _ALPHA_SEGMENT.match(seg):
            continue
        return seg
    return None


def slug_is_name(slug: Optional[str]) -> bool:
    return bool(slug and _SLUG_NAME.match(slug))


def pretty_from_slug(slug: str) -> str:
    words = []
    for part in slug.split("-"):
        if part in _SUFFIXES:
            words.append(_SUFFIXES[part])
        elif part.startswith("mc") and len(part) > 3:
            words.append("Mc" + part[2:3].upper() + part[3:])
        else:
            words.append(part[:1].upper() + part[1:])
    return " ".join(words)


def detect_player_page(title: str, url: Optional[str]) -> Tuple[bool, Optional[str]]:
    """(is_player_page, display_title). display_title is only set for glyph-prefixed slug pages."""
    if looks_like_name_title(title):
        return True, None
    if starts_with_list_glyph(title):
        slug = rightmost_alpha_slug(url)
        if slug_is_name(slug):
            return True, pretty_from_slug(slug)
    return False, None


# --- Names ----------------------------------------------------------------------
_NAME_STOP_WORDS = {
    "diagnosed", "with", "out", "vs", "at", "ruled", "placed", "signs", "agrees", "trade", "injury", "injured",
    "activated", "reinstated", "questionable", "doubtful", "probable", "update", "news", "notes", "expected",
    "likely", "season", "game", "practice", "status", "listed", "concussion", "hamstring", "ankle", "knee",
    "groin", "back", "fracture", "tear", "is", "will", "to", "has", "returns", "leaves", "suffers", "misses",
}


def extract_likely_name(title: str) -> Optional[str]:
    """First run of 2-3 capitalized words, accepted only when a news verb follows or the title ends."""
    t = re.sub(r"^[A-Za-z ]+:\s+", "", title or "")
    t = t.replace("’", "'")
    t = re.sub(r"'s?\b", "", t)
    words = [re.sub(r"[^\w'.-]", "", w) for w in t.split()]
    words = [w for w in words if w]
    parts: List[str] = []
    for i, w in enumerate(words):
        if re.match(r"^[A-Z][a-z]*[A-Za-z'.-]*[a-z]$|^[A-Z]\.[A-Z]\.$", w) and not _ARTICLE_WORDS.search(w):
            parts.append(w.rstrip("."))
            if len(parts) == 3:
                nxt = words[i + 1].lower() if i + 1 < len(words) else None
                return " ".join(parts) if nxt is None or nxt in _NAME_STOP_WORDS else None
            continue
        if parts:
            if len(parts) >= 2 and w.lower() in _NAME_STOP_WORDS:
                return " ".join(parts)
            return None
    return " ".join(parts) if len(parts) >= 2 else None


def player_key(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (name or "").strip().lower()).strip("-")
    return f"nfl:name:{slug}"


# --- Entry point ----------------------------------------------------------------

def classify(
    title: str,
    url: Optional[str] = None,
    snippet: Optional[str] = None,
    source_name: Optional[str] = None,
) -> Classification:
    title = title or ""
    text = "\n".join(x for x in (title, snippet or "") if x)

    cats = matched_categories(text, source_name)
    primary = cats[0] if cats else "news"
    secondary = cats[1] if len(cats) > 1 else None

    topics = set(cats) | set(extra_tags(text))
    topics.add(primary)

    is_player, display = detect_player_page(title, url)
    return Classification(
        topics=tuple(sorted(topics)),
        primary_topic=primary,
        secondary_topic=secondary,
        is_player_page=is_player,
        display_title=display,
    )
