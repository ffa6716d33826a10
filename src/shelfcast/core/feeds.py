# shelfcast/core/feeds.py
"""
RSS feed collections and the iTunes podcast directory.

Feeds are parsed with ElementTree; free-text fields go through
`strip_html` because feed descriptions are usually HTML fragments.
"""

import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import List, Optional, Dict, Any, Tuple

import httpx

from .config import FeedConfig
from .models import Item, ItemFlags, Chapter, SearchResult
from .network import fetch_with_fallback, fetch_json
from .sources import AudioSource, FETCH_ERRORS
from .text import strip_html, parse_duration, stable_id, first_id, to_int
from .logging import get_logger

logger = get_logger(__name__)

ITUNES_NS = "{http://www.itunes.com/dtds/podcast-1.0.dtd}"
_SIMPLE_ID_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


@dataclass
class FeedEntry:
    """One <item> of an RSS feed, before normalization."""
    title: str = ""
    description: str = ""
    link: str = ""
    guid: str = ""
    pub_date: str = ""
    audio_url: Optional[str] = None
    duration: int = 0
    image_url: Optional[str] = None
    category: str = ""


def _text(node: Optional[ET.Element], path: str) -> str:
    child = node.find(path) if node is not None else None
    return (child.text or "").strip() if child is not None else ""


def parse_feed(content: bytes) -> Tuple[List[FeedEntry], Optional[str]]:
    """
    Parses RSS 2.0 content into entries plus the channel's cover image.

    Raises:
        ET.ParseError: the content is not well-formed XML.
    """
    root = ET.fromstring(content)
    channel = root.find("channel")
    channel_image = None
    if channel is not None:
        itunes_image = channel.find(f"{ITUNES_NS}image")
        if itunes_image is not None and itunes_image.get("href"):
            channel_image = itunes_image.get("href")
        else:
            channel_image = _text(channel, "image/url") or None

    entries = []
    for node in root.iter("item"):
        enclosure = node.find("enclosure")
        image = node.find(f"{ITUNES_NS}image")
        entries.append(FeedEntry(
            title=strip_html(_text(node, "title")),
            description=strip_html(_text(node, "description") or _text(node, f"{ITUNES_NS}summary")),
            link=_text(node, "link"),
            guid=_text(node, "guid"),
            pub_date=_text(node, "pubDate"),
            audio_url=enclosure.get("url") if enclosure is not None and enclosure.get("url") else None,
            duration=parse_duration(_text(node, f"{ITUNES_NS}duration")),
            image_url=image.get("href") if image is not None else None,
            category=strip_html(_text(node, "category")),
        ))
    return entries, channel_image


def entry_local_id(entry: FeedEntry) -> str:
    """
    A stable identifier for a feed entry: the last path segment of its link,
    then its guid, then a hash of title, publish date and enclosure URL.
    """
    slug = [part for part in entry.link.split("?")[0].split("/") if part]
    if len(slug) > 2:  # more than just "https:" and the host
        return slug[-1]
    if entry.guid:
        return entry.guid if _SIMPLE_ID_RE.match(entry.guid) else stable_id(entry.guid)
    return stable_id(entry.title, entry.pub_date, entry.audio_url)


class RssFeedSource(AudioSource):
    """
    A single RSS collection. Search downloads the feed and filters entries
    whose title or description contains the query.
    """

    def __init__(self, feed: FeedConfig, client: Optional[httpx.AsyncClient] = None, relay_url: Optional[str] = None):
        super().__init__(client=client, relay_url=feed.relay_url or relay_url)
        self.feed = feed
        self.key = feed.key
        self.label = feed.label

    async def fetch_entries(self) -> Tuple[List[FeedEntry], Optional[str]]:
        response = await fetch_with_fallback(self.client, self.feed.url, relay_url=self.relay_url)
        return parse_feed(response.content)

    async def _search(self, query: str, limit: int, offset: int) -> Tuple[List[Item], int]:
        entries, channel_image = await self.fetch_entries()
        needle = query.lower()
        items = []
        for entry in entries:
            if needle and needle not in entry.title.lower() and needle not in entry.description.lower():
                continue
            items.append(self.normalize(entry, channel_image))
        items = items[offset:offset + limit]
        return items, len(items)

    def clean_title(self, title: str) -> str:
        prefix = re.escape(self.feed.author)
        return re.sub(rf"^{prefix}\s*[-:]\s*", "", title, flags=re.IGNORECASE).strip() or "Untitled"

    def normalize(self, entry: FeedEntry, channel_image: Optional[str] = None) -> Item:
        flags = ItemFlags(**{k: v for k, v in self.feed.flags.items() if k in ItemFlags.__dataclass_fields__})
        return Item(
            id=f"{self.key}-{entry_local_id(entry)}",
            raw_source_id=None,
            title=self.clean_title(entry.title),
            author=self.feed.author or "Unknown",
            description=entry.description,
            genre=entry.category or self.feed.genre or "General",
            duration=entry.duration,
            audio_url=entry.audio_url,
            cover_url=entry.image_url or channel_image,
            details_url=entry.link or self.feed.url,
            published=entry.pub_date or None,
            source=self.key,
            source_label=self.label,
            flags=flags,
        )


def itunes_search_params(query: str, limit: int) -> Dict[str, str]:
    return {"term": query or "podcast", "media": "podcast", "entity": "podcast", "limit": str(limit)}


class PodcastSource(AudioSource):
    """Podcast search and episode lookup through the public iTunes API."""
    key = "podcast"
    label = "Podcast"
    SEARCH_URL = "https://itunes.apple.com/search"
    LOOKUP_URL = "https://itunes.apple.com/lookup"

    POPULAR_TERMS = {
        "all": "podcast",
        "comedy": "comedy podcast",
        "education": "educational podcast",
        "fiction": "fiction podcast",
        "history": "history podcast",
        "news": "news daily",
        "science": "science podcast",
        "society": "society culture",
        "sports": "sports podcast",
        "technology": "tech podcast",
        "true-crime": "true crime",
    }

    async def _search(self, query: str, limit: int, offset: int) -> Tuple[List[Item], int]:
        data = await fetch_json(self.client, self.SEARCH_URL, params=itunes_search_params(query, limit + offset), relay_url=self.relay_url)
        results = (data.get("results") or [])[offset:]
        items = [self.normalize(result) for result in results]
        return items, len(items)

    async def get_top_podcasts(self, genre: str = "all", limit: int = 50) -> SearchResult:
        """iTunes has no free chart endpoint, so this searches a popular term per genre."""
        return await self.search(self.POPULAR_TERMS.get(genre, "podcast"), limit=limit)

    async def get_episodes(self, podcast_id: str) -> List[Chapter]:
        """Episodes of one show, in the order the directory lists them."""
        params = {"id": str(podcast_id), "entity": "podcastEpisode", "limit": "100"}
        data = await fetch_json(self.client, self.LOOKUP_URL, params=params, relay_url=self.relay_url)
        # The first result describes the show itself.
        episodes = [ep for ep in (data.get("results") or [])[1:] if ep.get("episodeUrl")]
        return [self.normalize_episode(ep, number) for number, ep in enumerate(episodes, 1)]

    async def get_feed_episodes(self, feed_url: str) -> List[Chapter]:
        response = await fetch_with_fallback(self.client, feed_url, relay_url=self.relay_url)
        entries, _ = parse_feed(response.content)
        playable = [entry for entry in entries if entry.audio_url]
        return [
            Chapter(
                id=f"episode-{entry_local_id(entry)}",
                number=number,
                title=entry.title or "Untitled Episode",
                url=entry.audio_url,
                duration=entry.duration,
            )
            for number, entry in enumerate(playable, 1)
        ]

    async def get_audio_resolution(self, raw_source_id: str) -> Optional[str]:
        try:
            episodes = await self.get_episodes(raw_source_id)
        except FETCH_ERRORS as e:
            logger.error(f"Could not resolve podcast audio for {raw_source_id}: {e}")
            return None
        return episodes[0].url if episodes else None

    @staticmethod
    def high_res_cover(url: str) -> Optional[str]:
        return re.sub(r"/\d+x\d+", "/600x600", url) if url else None

    def normalize(self, podcast: Dict[str, Any]) -> Item:
        raw_id = first_id(podcast.get("collectionId"), podcast.get("trackId")) or stable_id(podcast.get("collectionName"), podcast.get("feedUrl"))
        return Item(
            id=f"{self.key}-{raw_id}",
            raw_source_id=raw_id,
            title=podcast.get("collectionName") or podcast.get("trackName") or "Untitled",
            author=podcast.get("artistName") or "Unknown",
            description=strip_html(podcast.get("description")),
            genre=podcast.get("primaryGenreName") or "General",
            cover_url=self.high_res_cover(podcast.get("artworkUrl600") or podcast.get("artworkUrl100") or ""),
            details_url=podcast.get("collectionViewUrl") or podcast.get("trackViewUrl") or "",
            feed_url=podcast.get("feedUrl") or None,
            section_count=to_int(podcast.get("trackCount")),
            published=podcast.get("releaseDate") or None,
            source=self.key,
            source_label=self.label,
            flags=ItemFlags(is_podcast=True),
        )

    @staticmethod
    def normalize_episode(episode: Dict[str, Any], number: int) -> Chapter:
        return Chapter(
            id=f"episode-{first_id(episode.get('trackId')) or number}",
            number=number,
            title=episode.get("trackName") or "Untitled Episode",
            url=episode["episodeUrl"],
            duration=to_int(episode.get("trackTimeMillis")) // 1000,
        )
