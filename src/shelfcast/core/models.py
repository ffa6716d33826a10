# shelfcast/core/models.py

from dataclasses import dataclass, field, asdict, replace
from typing import List, Optional, Dict, Any

@dataclass
class ItemFlags:
    """Provenance badges shown next to an item."""
    is_original: bool = False
    is_educational: bool = False
    is_full_cast: bool = False
    is_podcast: bool = False

@dataclass
class Item:
    """
    A normalized catalog record. Every source adapter maps its own record
    shape onto this one.
    """
    id: str  # "{source}-{source local id}"
    title: str = "Untitled"
    author: str = "Unknown"
    description: str = ""
    language: str = "en"
    genre: str = "General"
    duration: int = 0  # seconds, 0 when unknown
    source: str = ""
    source_label: str = ""
    details_url: str = ""
    raw_source_id: Optional[str] = None  # needed for secondary lookups
    audio_url: Optional[str] = None  # None means "requires resolution"
    cover_url: Optional[str] = None
    section_count: int = 0
    flags: ItemFlags = field(default_factory=ItemFlags)
    downloads: int = 0
    published: Optional[str] = None
    feed_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Item":
        data = dict(data)
        flags = data.pop("flags", None) or {}
        known = {name for name in cls.__dataclass_fields__}
        kwargs = {k: v for k, v in data.items() if k in known}
        return cls(flags=ItemFlags(**flags), **kwargs)

    def snapshot(self) -> "Item":
        """A detached copy, safe to store while the live record changes."""
        return replace(self, flags=replace(self.flags))

@dataclass
class Chapter:
    """Represents a single playable segment (a chapter or an episode)."""
    id: str
    number: int  # 1-based
    title: str
    url: str  # Direct URL to the segment's audio file
    duration: int = 0
    reader: Optional[str] = None

@dataclass
class Manifest:
    """Ordered chapters for one item. An empty manifest means nothing is playable."""
    chapters: List[Chapter] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def total_duration(self) -> int:
        return sum(chapter.duration for chapter in self.chapters)

    @property
    def success(self) -> bool:
        return bool(self.chapters)

    def __len__(self) -> int:
        return len(self.chapters)

@dataclass
class SearchResult:
    """What a single source returns from a search."""
    source: str
    success: bool = True
    items: List[Item] = field(default_factory=list)
    total: int = 0
    error: Optional[str] = None

    @classmethod
    def failed(cls, source: str, error: str) -> "SearchResult":
        return cls(source=source, success=False, error=error)

@dataclass
class SourceReport:
    """Per-source outcome inside an aggregated search."""
    source: str
    count: int
    success: bool = True
    error: Optional[str] = None

@dataclass
class AggregateResult:
    """Merged and deduplicated results from several sources."""
    success: bool
    items: List[Item] = field(default_factory=list)
    total: int = 0
    sources: List[SourceReport] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def per_source_counts(self) -> Dict[str, int]:
        return {report.source: report.count for report in self.sources}
