# shelfcast/core/aggregator.py

import asyncio
from typing import Dict, Iterable, List, Optional, Sequence

import httpx

from .config import Settings
from .feeds import RssFeedSource, PodcastSource
from .models import AggregateResult, Item, SearchResult, SourceReport
from .sources import (
    AudioSource, LibriVoxSource, InternetArchiveSource, OpenLibrarySource,
    GutenbergSource, BBCRadioSource, Lit2GoSource,
)
from .text import dedup_key
from .logging import get_logger

logger = get_logger(__name__)

INVALID_SOURCE = "Invalid source"


def deduplicate(items: Iterable[Item]) -> List[Item]:
    """
    Keeps the first item seen for each normalized title+author key.

    Two editions of the same book by the same author collapse into one entry.
    """
    seen = set()
    unique = []
    for item in items:
        key = dedup_key(item.title, item.author)
        if key in seen:
            continue
        seen.add(key)
        unique.append(item)
    return unique


def get_all_sources(settings: Settings, client: httpx.AsyncClient) -> Dict[str, AudioSource]:
    """
    Builds every known source around one shared client, keyed by source key.
    Sources whose upstream tends to refuse direct requests get the relay.
    """
    relay = settings.relay_url or None
    sources: List[AudioSource] = [
        LibriVoxSource(client, relay_url=relay),
        InternetArchiveSource(client, relay_url=relay),
        OpenLibrarySource(client),
        GutenbergSource(client),
        BBCRadioSource(client),
        Lit2GoSource(client),
        PodcastSource(client),
    ]
    sources.extend(RssFeedSource(feed, client, relay_url=relay) for feed in settings.feeds)
    return {source.key: source for source in sources}


class Aggregator:
    """
    Fans a query out to a fixed subset of sources, then merges and
    deduplicates what comes back. Nothing here raises on upstream failure:
    a broken source shows up as a failed SourceReport.
    """

    def __init__(
        self,
        sources: Dict[str, AudioSource],
        aggregate_keys: Sequence[str] = ("librivox", "archive"),
        featured_key: str = "archive",
        timeout: Optional[float] = None,
    ):
        self.sources = sources
        self.aggregate_keys = [key for key in aggregate_keys if key in sources]
        self.featured_key = featured_key
        self.timeout = timeout

        missing = [key for key in aggregate_keys if key not in sources]
        if missing:
            logger.warning(f"Ignoring unknown aggregate sources: {missing}")

    @classmethod
    def from_settings(cls, settings: Settings, client: httpx.AsyncClient) -> "Aggregator":
        return cls(
            get_all_sources(settings, client),
            aggregate_keys=settings.aggregate_sources,
            featured_key=settings.featured_source,
        )

    async def _search_one(self, key: str, query: str, limit: int, timeout: Optional[float]) -> SearchResult:
        source = self.sources[key]
        try:
            if timeout:
                return await asyncio.wait_for(source.search(query, limit=limit), timeout)
            return await source.search(query, limit=limit)
        except asyncio.TimeoutError:
            logger.error(f"{source.label} timed out after {timeout}s")
            return SearchResult.failed(key, "timed out")
        except Exception as e:
            # Sources are not supposed to raise; treat it like any other failure.
            logger.exception(f"{source.label} raised during search")
            return SearchResult.failed(key, str(e) or e.__class__.__name__)

    async def search_all(self, query: str = "", limit: int = 50, timeout: Optional[float] = None) -> AggregateResult:
        """
        Searches every aggregate source concurrently. Each gets an equal share
        of `limit`. Output order is source order, then each source's own order.
        """
        if not self.aggregate_keys:
            return AggregateResult(success=False, error="No sources configured")

        per_source = limit // len(self.aggregate_keys)
        timeout = timeout if timeout is not None else self.timeout
        results = await asyncio.gather(
            *(self._search_one(key, query, per_source, timeout) for key in self.aggregate_keys)
        )

        merged = [item for result in results if result.success for item in result.items]
        unique = deduplicate(merged)
        reports = [
            SourceReport(source=result.source, count=len(result.items), success=result.success, error=result.error)
            for result in results
        ]
        success = any(result.success for result in results)

        logger.info(
            f"Aggregated search for '{query}': {len(unique)} unique items "
            f"({', '.join(f'{r.source}={r.count}' for r in reports)})"
        )
        return AggregateResult(
            success=success,
            items=unique,
            total=len(unique),
            sources=reports,
            error=None if success else "All sources failed",
        )

    async def search_source(self, source_key: str, query: str = "", limit: int = 50, offset: int = 0) -> SearchResult:
        source = self.sources.get(source_key)
        if source is None:
            return SearchResult.failed(source_key, INVALID_SOURCE)
        return await source.search(query, limit=limit, offset=offset)

    async def get_featured(self, limit: int = 20) -> SearchResult:
        """Popular items from the one source considered most dependable."""
        return await self.search_source(self.featured_key, "", limit=limit)

    async def resolve_audio_url(self, item: Item) -> Optional[str]:
        """
        The item's own audio URL if it has one, otherwise a secondary lookup
        through its source. None means nothing playable was found.
        """
        if item.audio_url:
            return item.audio_url
        source = self.sources.get(item.source)
        if source is None or not item.raw_source_id:
            return None
        try:
            return await source.get_audio_resolution(item.raw_source_id)
        except Exception:
            logger.exception(f"Audio resolution failed for {item.id}")
            return None

    async def close(self):
        """Closes the clients of all sources (shared clients are closed once)."""
        closed = set()
        for source in self.sources.values():
            if id(source.client) not in closed:
                closed.add(id(source.client))
                await source.close()
