import abc
import re
import xml.etree.ElementTree as ET
from typing import List, Optional, Dict, Any, Tuple
from urllib.parse import quote

import httpx

from .models import Item, ItemFlags, SearchResult
from .network import SourceError, build_client, fetch_json
from .config import DEFAULT_USER_AGENT
from .text import strip_html, parse_runtime, first_of, first_id, to_int, language_code, stable_id
from .logging import get_logger

logger = get_logger(__name__)

# Everything a malformed or unreachable upstream can raise while we fetch and
# normalize. Caught at the adapter boundary and turned into a failed result.
FETCH_ERRORS = (httpx.HTTPError, SourceError, ValueError, KeyError, TypeError, AttributeError, ET.ParseError)

# Archive.org file formats we can hand to a player, in order of preference.
AUDIO_FORMATS = ("VBR MP3", "Ogg Vorbis", "64Kbps MP3", "MP3")
# Encoding suffix and extension, stripped to group one chapter's files.
_AUDIO_STEM_RE = re.compile(r"(_\d+kb)?\.[A-Za-z0-9]+$", re.IGNORECASE)

ARCHIVE_SEARCH_URL = "https://archive.org/advancedsearch.php"
ARCHIVE_METADATA_URL = "https://archive.org/metadata/{identifier}"
ARCHIVE_DOWNLOAD_URL = "https://archive.org/download/{identifier}/{name}"
ARCHIVE_FIELDS = ("identifier", "title", "creator", "description", "date", "downloads", "runtime", "subject", "language")


class AudioSource(abc.ABC):
    """
    The contract for all sources. `search` never raises: network and parse
    failures come back as a failed SearchResult.
    """
    key: str = ""
    label: str = ""

    def __init__(self, client: Optional[httpx.AsyncClient] = None, relay_url: Optional[str] = None):
        self.client = client if client else build_client(DEFAULT_USER_AGENT)
        self.relay_url = relay_url

    async def search(self, query: str = "", limit: int = 50, offset: int = 0) -> SearchResult:
        """
        Searches the source and returns at most `limit` normalized items.
        An empty query returns the source's default (most popular) set.
        """
        if limit <= 0:
            return SearchResult(source=self.key)
        try:
            items, total = await self._search(query.strip() if query else "", limit, max(0, offset))
        except FETCH_ERRORS as e:
            logger.error(f"Error searching {self.label}: {e}")
            return SearchResult.failed(self.key, str(e) or e.__class__.__name__)
        items = items[:limit]
        logger.debug(f"{self.label} returned {len(items)} items for '{query}'")
        return SearchResult(source=self.key, items=items, total=total or len(items))

    @abc.abstractmethod
    async def _search(self, query: str, limit: int, offset: int) -> Tuple[List[Item], int]:
        """Fetches and normalizes one page. May raise; `search` catches."""

    async def get_audio_resolution(self, raw_source_id: str) -> Optional[str]:
        """Looks up a playable URL for an item whose search record had none."""
        return None

    async def close(self):
        """Closes the underlying HTTP client."""
        await self.client.aclose()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(key='{self.key}')>"


# --- Query builders -------------------------------------------------------

def librivox_params(query: str, limit: int, offset: int) -> Dict[str, str]:
    params = {"format": "json", "limit": str(limit), "offset": str(offset), "extended": "1"}
    if query:
        # LibriVox treats a leading caret as "title starts with".
        params["title"] = f"^{query}"
    return params

def archive_query(query: str) -> str:
    base = "mediatype:audio AND (subject:audiobook OR subject:librivox)"
    return f"({query}) AND {base}" if query else base

def bbc_query(query: str) -> str:
    base = "(BBC AND radio AND (drama OR comedy OR documentary))"
    return f"{base} AND ({query}) AND mediatype:audio" if query else f"{base} AND mediatype:audio"

def lit2go_query(query: str) -> str:
    base = '(lit2go OR "lit 2 go" OR "lit-2-go")'
    return f"{base} AND ({query}) AND mediatype:audio" if query else f"{base} AND mediatype:audio"

def archive_params(q: str, limit: int, offset: int) -> List[Tuple[str, str]]:
    page = offset // limit + 1 if limit else 1
    params = [("q", q)]
    params.extend(("fl[]", name) for name in ARCHIVE_FIELDS)
    params.extend([
        ("rows", str(limit)),
        ("page", str(page)),
        ("output", "json"),
        ("sort[]", "downloads desc"),
    ])
    return params

def openlibrary_params(query: str, limit: int, offset: int) -> Dict[str, str]:
    return {
        "q": query or OpenLibrarySource.DEFAULT_QUERY,
        "limit": str(limit),
        "offset": str(offset),
        "fields": "key,title,author_name,first_publish_year,cover_i,subject,language",
    }

def gutenberg_params(query: str, offset: int) -> Dict[str, str]:
    params = {}
    if query:
        params["search"] = query
    page = offset // GutenbergSource.PAGE_SIZE + 1
    if page > 1:
        params["page"] = str(page)
    return params


# --- Archive.org helpers --------------------------------------------------

def archive_download_url(identifier: str, file_name: str) -> str:
    return ARCHIVE_DOWNLOAD_URL.format(identifier=identifier, name=quote(file_name))

def audio_files(files: Any) -> List[Dict[str, Any]]:
    """Files whose format is in the allowlist, in manifest order."""
    if not isinstance(files, list):
        return []
    return [f for f in files if isinstance(f, dict) and f.get("name") and f.get("format") in AUDIO_FORMATS]

def select_audio_files(files: Any) -> List[Dict[str, Any]]:
    """
    One file per chapter. Archive items usually carry every chapter in several
    encodings ("01.mp3", "01_64kb.mp3", "01.ogg"); files are grouped by name
    stem and the most preferred format of each group is kept.
    """
    chosen: Dict[str, Dict[str, Any]] = {}
    for file_info in audio_files(files):
        stem = _AUDIO_STEM_RE.sub("", file_info["name"]).lower()
        current = chosen.get(stem)
        if current is None or AUDIO_FORMATS.index(file_info["format"]) < AUDIO_FORMATS.index(current["format"]):
            chosen[stem] = file_info
    return list(chosen.values())


class LibriVoxSource(AudioSource):
    """LibriVox's own JSON feed of public-domain audiobooks."""
    key = "librivox"
    label = "LibriVox"
    API_URL = "https://librivox.org/api/feed/audiobooks"

    async def _search(self, query: str, limit: int, offset: int) -> Tuple[List[Item], int]:
        data = await fetch_json(self.client, self.API_URL, params=librivox_params(query, limit, offset), relay_url=self.relay_url)
        books = data.get("books") or []
        items = [self.normalize(book) for book in books]
        return items, len(items)

    async def lookup(self, book_id: str) -> Optional[Dict[str, Any]]:
        """Returns the extended record (with sections) for one book, or None."""
        params = {"id": str(book_id), "format": "json", "extended": "1"}
        data = await fetch_json(self.client, self.API_URL, params=params, relay_url=self.relay_url)
        books = data.get("books") or []
        return books[0] if books else None

    async def get_audio_resolution(self, raw_source_id: str) -> Optional[str]:
        try:
            book = await self.lookup(raw_source_id)
        except FETCH_ERRORS as e:
            logger.error(f"Could not resolve LibriVox audio for {raw_source_id}: {e}")
            return None
        for section in (book or {}).get("sections") or []:
            if section.get("listen_url"):
                return section["listen_url"]
        return None

    def normalize(self, book: Dict[str, Any]) -> Item:
        raw_id = first_id(book.get("id")) or stable_id(book.get("title"), book.get("url_librivox"))
        authors = book.get("authors") or []
        author = ""
        if authors and isinstance(authors[0], dict):
            author = f"{authors[0].get('first_name') or ''} {authors[0].get('last_name') or ''}".strip()
        genres = book.get("genres") or []
        genre = genres[0].get("name") if genres and isinstance(genres[0], dict) else None

        return Item(
            id=f"librivox-{raw_id}",
            raw_source_id=raw_id,
            title=book.get("title") or "Untitled",
            author=author or "Unknown",
            description=strip_html(book.get("description")),
            language=language_code(book.get("language")),
            genre=genre or "General",
            duration=to_int(book.get("totaltimesecs")),
            section_count=to_int(book.get("num_sections")),
            # The zip download is not streamable; chapters come from `sections`.
            audio_url=None,
            cover_url=book.get("url_cover") or None,
            details_url=book.get("url_librivox") or f"https://librivox.org/book/{raw_id}",
            source=self.key,
            source_label=self.label,
            published=str(book["copyright_year"]) if book.get("copyright_year") else None,
        )


class ArchiveSearchSource(AudioSource):
    """
    Base for every source backed by archive.org's advanced search. Subclasses
    only change the query and how a search document is normalized.
    """
    key = "archive"
    label = "Internet Archive"

    def build_query(self, query: str) -> str:
        return archive_query(query)

    async def _search(self, query: str, limit: int, offset: int) -> Tuple[List[Item], int]:
        params = archive_params(self.build_query(query), limit, offset)
        data = await fetch_json(self.client, ARCHIVE_SEARCH_URL, params=params, relay_url=self.relay_url)
        response = data.get("response") or {}
        items = [self.normalize(doc) for doc in response.get("docs") or [] if doc.get("identifier")]
        return items, to_int(response.get("numFound"), len(items))

    async def fetch_metadata(self, identifier: str) -> Dict[str, Any]:
        metadata_url = ARCHIVE_METADATA_URL.format(identifier=identifier)
        data = await fetch_json(self.client, metadata_url, relay_url=self.relay_url)
        if not isinstance(data, dict):
            raise SourceError(f"Unexpected metadata payload for {identifier}")
        return data

    async def get_audio_resolution(self, raw_source_id: str) -> Optional[str]:
        try:
            metadata = await self.fetch_metadata(raw_source_id)
        except FETCH_ERRORS as e:
            logger.error(f"Could not resolve audio for {raw_source_id}: {e}")
            return None
        playable = audio_files(metadata.get("files"))
        if not playable:
            return None
        return archive_download_url(raw_source_id, playable[0]["name"])

    def _base_fields(self, doc: Dict[str, Any]) -> Dict[str, Any]:
        identifier = str(doc.get("identifier"))
        return dict(
            id=f"{self.key}-{identifier}",
            raw_source_id=identifier,
            description=strip_html(first_of(doc.get("description"), "")),
            language=language_code(doc.get("language")),
            duration=parse_runtime(doc.get("runtime")),
            audio_url=None,  # fetched on demand
            cover_url=f"https://archive.org/services/img/{identifier}",
            details_url=f"https://archive.org/details/{identifier}",
            downloads=to_int(first_of(doc.get("downloads"))),
            published=first_of(doc.get("date")),
            source=self.key,
            source_label=self.label,
        )

    def normalize(self, doc: Dict[str, Any]) -> Item:
        return Item(
            title=first_of(doc.get("title"), "Untitled"),
            author=first_of(doc.get("creator"), "Unknown"),
            genre=first_of(doc.get("subject"), "General"),
            **self._base_fields(doc),
        )


class InternetArchiveSource(ArchiveSearchSource):
    """General-purpose archive.org audiobook search."""


class BBCRadioSource(ArchiveSearchSource):
    """BBC radio drama, comedy and documentary uploads on archive.org."""
    key = "bbc"
    label = "BBC Radio Drama"

    CATEGORY_QUERIES = {
        "drama": "(BBC AND radio AND drama) AND mediatype:audio",
        "comedy": "(BBC AND radio AND comedy) AND mediatype:audio",
        "documentary": "(BBC AND radio AND documentary) AND mediatype:audio",
        "scifi": '(BBC AND radio AND ("science fiction" OR sci-fi)) AND mediatype:audio',
    }

    GENRE_RULES = (
        (("drama",), "Drama"),
        (("comedy",), "Comedy"),
        (("documentary",), "Documentary"),
        (("science fiction", "sci-fi"), "Science Fiction"),
        (("mystery", "detective"), "Mystery"),
        (("horror",), "Horror"),
        (("history",), "History"),
    )

    def build_query(self, query: str) -> str:
        return bbc_query(query)

    async def get_by_category(self, category: str, limit: int = 100) -> SearchResult:
        q = self.CATEGORY_QUERIES.get(category, self.CATEGORY_QUERIES["drama"])
        try:
            data = await fetch_json(self.client, ARCHIVE_SEARCH_URL, params=archive_params(q, limit, 0), relay_url=self.relay_url)
            docs = (data.get("response") or {}).get("docs") or []
            items = [self.normalize(doc) for doc in docs if doc.get("identifier")]
        except FETCH_ERRORS as e:
            logger.error(f"Error fetching BBC category '{category}': {e}")
            return SearchResult.failed(self.key, str(e))
        return SearchResult(source=self.key, items=items[:limit], total=len(items))

    @staticmethod
    def clean_title(title: str) -> str:
        title = re.sub(r"^BBC\s*(Radio\s*)?[-:]\s*", "", title, flags=re.IGNORECASE)
        title = re.sub(r"^Radio\s+[-:]\s*", "", title, flags=re.IGNORECASE)
        return title.strip() or "Untitled"

    @classmethod
    def determine_genre(cls, subjects: List[str], title: str = "") -> str:
        combined = f"{' '.join(subjects)} {title}".lower()
        for keywords, genre in cls.GENRE_RULES:
            if any(keyword in combined for keyword in keywords):
                return genre
        return "Drama"

    def normalize(self, doc: Dict[str, Any]) -> Item:
        subjects = _as_list(doc.get("subject"))
        title = first_of(doc.get("title"), "Untitled")
        return Item(
            title=self.clean_title(str(title)),
            author="BBC Radio",
            genre=self.determine_genre(subjects, str(title)),
            flags=ItemFlags(is_full_cast=True),
            **self._base_fields(doc),
        )


class Lit2GoSource(ArchiveSearchSource):
    """Lit2Go educational recordings mirrored on archive.org."""
    key = "lit2go"
    label = "Lit2Go (Educational)"

    GENRE_RULES = (
        (("poetry",), "Poetry"),
        (("drama", "play"), "Drama"),
        (("fiction",), "Fiction"),
        (("children",), "Children's Literature"),
        (("history",), "History"),
        (("philosophy",), "Philosophy"),
        (("science",), "Science"),
    )

    def build_query(self, query: str) -> str:
        return lit2go_query(query)

    @staticmethod
    def clean_title(title: str) -> str:
        return re.sub(r"^Lit2Go\s*[-:]\s*", "", title, flags=re.IGNORECASE).strip() or "Untitled"

    @classmethod
    def determine_genre(cls, subjects: List[str]) -> str:
        subject_str = " ".join(subjects).lower()
        for keywords, genre in cls.GENRE_RULES:
            if any(keyword in subject_str for keyword in keywords):
                return genre
        return "Educational"

    def normalize(self, doc: Dict[str, Any]) -> Item:
        return Item(
            title=self.clean_title(str(first_of(doc.get("title"), "Untitled"))),
            author=first_of(doc.get("creator"), "Lit2Go"),
            genre=self.determine_genre(_as_list(doc.get("subject"))),
            flags=ItemFlags(is_educational=True),
            **self._base_fields(doc),
        )


class OpenLibrarySource(AudioSource):
    """Open Library catalog search. Metadata only; nothing here is playable."""
    key = "openlibrary"
    label = "Open Library"
    API_URL = "https://openlibrary.org/search.json"
    DEFAULT_QUERY = "subject:classics"

    async def _search(self, query: str, limit: int, offset: int) -> Tuple[List[Item], int]:
        data = await fetch_json(self.client, self.API_URL, params=openlibrary_params(query, limit, offset), relay_url=self.relay_url)
        items = [self.normalize(doc) for doc in data.get("docs") or []]
        return items, to_int(data.get("numFound"), len(items))

    def normalize(self, doc: Dict[str, Any]) -> Item:
        key = doc.get("key") or ""
        work_id = key.rsplit("/", 1)[-1] or stable_id(doc.get("title"), first_of(doc.get("author_name")))
        cover_id = doc.get("cover_i")
        year = doc.get("first_publish_year")
        return Item(
            id=f"{self.key}-{work_id}",
            raw_source_id=work_id,
            title=doc.get("title") or "Untitled",
            author=first_of(doc.get("author_name"), "Unknown"),
            language=language_code(doc.get("language")),
            genre=first_of(doc.get("subject"), "General"),
            cover_url=f"https://covers.openlibrary.org/b/id/{cover_id}-L.jpg" if cover_id else None,
            details_url=f"https://openlibrary.org{key}" if key else "https://openlibrary.org",
            published=str(year) if year else None,
            source=self.key,
            source_label=self.label,
        )


class GutenbergSource(AudioSource):
    """Project Gutenberg texts through the Gutendex API."""
    key = "gutenberg"
    label = "Project Gutenberg (Text)"
    API_URL = "https://gutendex.com/books"
    PAGE_SIZE = 32  # fixed by Gutendex

    async def _search(self, query: str, limit: int, offset: int) -> Tuple[List[Item], int]:
        data = await fetch_json(self.client, self.API_URL, params=gutenberg_params(query, offset), relay_url=self.relay_url)
        results = (data.get("results") or [])[offset % self.PAGE_SIZE:]
        items = [self.normalize(book) for book in results[:limit]]
        return items, to_int(data.get("count"), len(items))

    def normalize(self, book: Dict[str, Any]) -> Item:
        raw_id = first_id(book.get("id")) or stable_id(book.get("title"))
        authors = book.get("authors") or []
        author = authors[0].get("name") if authors and isinstance(authors[0], dict) else None
        subjects = [s for s in book.get("subjects") or [] if isinstance(s, str)]
        genre = next((s for s in subjects if "--" not in s), None)
        return Item(
            id=f"{self.key}-{raw_id}",
            raw_source_id=raw_id,
            title=book.get("title") or "Untitled",
            author=author or "Unknown",
            description="; ".join(subjects[:3]) or "Classic literature from Project Gutenberg",
            language=language_code(book.get("languages")),
            genre=genre or "General",
            audio_url=None,  # text only
            cover_url=(book.get("formats") or {}).get("image/jpeg"),
            details_url=f"https://www.gutenberg.org/ebooks/{raw_id}",
            downloads=to_int(book.get("download_count")),
            source=self.key,
            source_label=self.label,
        )


def _as_list(value: Any) -> List[str]:
    if isinstance(value, list):
        return [str(v) for v in value if v]
    return [str(value)] if value else []
