# shelfcast/core/chapters.py

from typing import Dict, Any, List, Optional

from .models import Item, Chapter, Manifest
from .feeds import PodcastSource
from .sources import (
    AudioSource, ArchiveSearchSource, LibriVoxSource, FETCH_ERRORS,
    select_audio_files, archive_download_url,
)
from .text import natural_sort_key, chapter_title_from_filename, parse_duration, first_id
from .logging import get_logger

logger = get_logger(__name__)


def librivox_chapters(book: Dict[str, Any]) -> List[Chapter]:
    """Maps a LibriVox extended record's sections onto chapters, in order."""
    sections = [s for s in book.get("sections") or [] if isinstance(s, dict) and s.get("listen_url")]
    chapters = []
    for number, section in enumerate(sections, 1):
        readers = section.get("readers") or []
        reader = readers[0].get("display_name") if readers and isinstance(readers[0], dict) else None
        chapters.append(Chapter(
            id=first_id(section.get("id")) or f"{book.get('id')}-{number}",
            number=number,
            title=section.get("title") or f"Chapter {number}",
            url=section["listen_url"],
            duration=parse_duration(section.get("playtime") or section.get("totaltimesecs")),
            reader=reader or None,
        ))
    return chapters


def archive_chapters(identifier: str, metadata: Dict[str, Any]) -> List[Chapter]:
    """Audio files of an archive.org item, ordered by filename with numbers compared numerically."""
    audio_files = sorted(select_audio_files(metadata.get("files")), key=lambda f: natural_sort_key(f["name"]))
    return [
        Chapter(
            id=f"{identifier}-{number - 1}",
            number=number,
            title=chapter_title_from_filename(file_info["name"], number),
            url=archive_download_url(identifier, file_info["name"]),
            duration=parse_duration(file_info.get("length")),
        )
        for number, file_info in enumerate(audio_files, 1)
    ]


def single_chapter(item: Item) -> Manifest:
    return Manifest(chapters=[Chapter(id=item.id, number=1, title=item.title, url=item.audio_url, duration=item.duration)])


class ChapterResolver:
    """
    Produces the ordered list of playable chapters for an item, dispatching on
    the kind of source the item came from. Never raises and never caches:
    failures return an empty manifest, repeated calls fetch again.
    """

    def __init__(self, sources: Dict[str, AudioSource]):
        self.sources = sources

    async def fetch_chapters(self, item: Optional[Item]) -> Manifest:
        if item is None:
            return Manifest(error="No item")

        source = self.sources.get(item.source)
        chapters: List[Chapter] = []
        error = None
        try:
            chapters = await self._structured_chapters(item, source)
        except FETCH_ERRORS as e:
            logger.error(f"Error fetching chapters for {item.id}: {e}")
            error = str(e) or e.__class__.__name__

        if chapters:
            return Manifest(chapters=chapters)
        if item.audio_url:
            return single_chapter(item)
        return Manifest(error=error or "No playable audio")

    async def _structured_chapters(self, item: Item, source: Optional[AudioSource]) -> List[Chapter]:
        raw_id = item.raw_source_id
        if isinstance(source, LibriVoxSource) and raw_id:
            book = await source.lookup(raw_id)
            return librivox_chapters(book) if book else []

        if isinstance(source, ArchiveSearchSource) and raw_id:
            metadata = await source.fetch_metadata(raw_id)
            return archive_chapters(raw_id, metadata)

        if isinstance(source, PodcastSource):
            episodes: List[Chapter] = []
            if raw_id:
                try:
                    episodes = await source.get_episodes(raw_id)
                except FETCH_ERRORS as e:
                    logger.warning(f"Episode lookup failed for {item.id}, trying its feed: {e}")
            if not episodes and item.feed_url:
                episodes = await source.get_feed_episodes(item.feed_url)
            return episodes

        return []
