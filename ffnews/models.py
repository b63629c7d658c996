# ffnews/models.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

FetchMode = Literal["auto", "rss", "scrape", "adapter"]


class Source(BaseModel):
    id: int
    name: str = ""
    homepage_url: Optional[str] = None
    rss_url: Optional[str] = None
    sitemap_url: Optional[str] = None
    scrape_selector: Optional[str] = None
    scrape_path: Optional[str] = None
    adapter: Optional[str] = None
    adapter_config: Dict[str, Any] = Field(default_factory=dict)
    fetch_mode: FetchMode = "auto"
    allowed: bool = True
    priority: int = 0

    def exclusive(self) -> "Source":
        """Copy with only the method fields that fetch_mode uses.

        In auto mode the heuristic order decides which one survives
        (adapter, then feed, then selector).
        """
        mode = self.fetch_mode
        if mode == "auto":
            if self.adapter:
                mode = "adapter"
            elif self.rss_url:
                mode = "rss"
            elif self.scrape_selector:
                mode = "scrape"
            else:
                return self.model_copy()
        update: Dict[str, Any] = {}
        if mode != "rss":
            update["rss_url"] = None
        if mode != "scrape":
            update["scrape_selector"] = None
        if mode != "adapter":
            update["adapter"] = None
            update["adapter_config"] = {}
        return self.model_copy(update=update)


@dataclass
class CandidateItem:
    title: str
    link: str
    published_at: Optional[str] = None
    image_url: Optional[str] = None  # feed media/enclosure, first image tier
    author: Optional[str] = None
    description: Optional[str] = None


class NormalizedArticle(BaseModel):
    canonical_url: str
    url: str
    domain: str
    title: str
    cleaned_title: str
    topics: List[str] = Field(default_factory=list)
    primary_topic: str = "news"
    secondary_topic: Optional[str] = None
    week: Optional[int] = None
    published_at: Optional[str] = None
    image_url: Optional[str] = None
    is_player_page: bool = False
    players: List[str] = Field(default_factory=list)
    fingerprint: str
    source_id: Optional[int] = None


# --- Probe ----------------------------------------------------------------------

class FeedCandidate(BaseModel):
    feed_url: str
    ok: bool = False
    item_count: int = 0
    sample_titles: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class ScrapeCandidate(BaseModel):
    selector: str
    ok: bool = False
    link_count: int = 0
    sample_urls: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class AdapterCandidate(BaseModel):
    key: str
    label: str
    ok: bool = False
    item_count: int = 0
    error: Optional[str] = None


class Recommendation(BaseModel):
    method: Literal["rss", "adapter", "scrape"]
    rationale: str
    feed_url: Optional[str] = None
    selector: Optional[str] = None
    adapter_key: Optional[str] = None
    suggested_url: Optional[str] = None


class PreviewItem(BaseModel):
    title: str
    url: str
    author: Optional[str] = None
    published_at: Optional[str] = None
    image_url: Optional[str] = None


class ProbeResult(BaseModel):
    base_url: str
    feeds: List[FeedCandidate] = Field(default_factory=list)
    scrapes: List[ScrapeCandidate] = Field(default_factory=list)
    adapters: List[AdapterCandidate] = Field(default_factory=list)
    recommendation: Recommendation
    preview: List[PreviewItem] = Field(default_factory=list)


# --- Ingest ---------------------------------------------------------------------

class IngestSummary(BaseModel):
    source_id: Optional[int] = None
    method: Optional[str] = None
    fetched: int = 0
    extracted: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    error_messages: List[str] = Field(default_factory=list)
    sources: List["IngestSummary"] = Field(default_factory=list)

    def absorb(self, other: "IngestSummary") -> None:
        self.fetched += other.fetched
        self.extracted += other.extracted
        self.inserted += other.inserted
        self.updated += other.updated
        self.skipped += other.skipped
        self.errors += other.errors
        self.sources.append(other)


IngestSummary.model_rebuild()
