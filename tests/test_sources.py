import httpx
import pytest

from shelfcast.core.sources import (
    LibriVoxSource, InternetArchiveSource, OpenLibrarySource, GutenbergSource,
    BBCRadioSource, Lit2GoSource, librivox_params, archive_query, bbc_query,
    lit2go_query, archive_params, openlibrary_params, gutenberg_params,
    select_audio_files, archive_download_url,
)

from shelfcast.core.config import FeedConfig
from shelfcast.core.feeds import FeedEntry, PodcastSource, RssFeedSource

from helpers import make_client, json_response

RELAY = "https://relay.test/raw?url="


def assert_complete(item):
    """Every field of a normalized item is present and typed."""
    assert item.id
    assert isinstance(item.title, str) and item.title
    assert isinstance(item.author, str) and item.author
    assert isinstance(item.description, str)
    assert isinstance(item.genre, str) and item.genre
    assert isinstance(item.duration, int)
    assert item.language == "en"
    assert isinstance(item.details_url, str)
    assert item.source and item.source_label


# --- Query builders -------------------------------------------------------

def test_librivox_params_anchor_title_search():
    assert librivox_params("Emma", 10, 20) == {"format": "json", "limit": "10", "offset": "20", "extended": "1", "title": "^Emma"}
    assert "title" not in librivox_params("", 10, 0)


def test_archive_query_restricts_media_type():
    assert archive_query("") == "mediatype:audio AND (subject:audiobook OR subject:librivox)"
    assert archive_query("dracula") == "(dracula) AND mediatype:audio AND (subject:audiobook OR subject:librivox)"
    assert bbc_query("").endswith("AND mediatype:audio")
    assert "(hitchhiker) AND mediatype:audio" in bbc_query("hitchhiker")
    assert lit2go_query("").startswith('(lit2go OR "lit 2 go"')


def test_archive_params_page_from_offset():
    params = dict((k, v) for k, v in archive_params("q", 25, 50) if k != "fl[]")
    assert params == {"q": "q", "rows": "25", "page": "3", "output": "json", "sort[]": "downloads desc"}
    assert ("fl[]", "runtime") in archive_params("q", 25, 0)


def test_openlibrary_and_gutenberg_params():
    assert openlibrary_params("", 5, 0)["q"] == OpenLibrarySource.DEFAULT_QUERY
    assert openlibrary_params("dune", 5, 10)["offset"] == "10"
    assert gutenberg_params("", 0) == {}
    assert gutenberg_params("austen", 64) == {"search": "austen", "page": "3"}


# --- Normalization --------------------------------------------------------

def test_minimal_records_normalize_to_defaults():
    for source, record in [
        (LibriVoxSource(), {"id": 1}),
        (InternetArchiveSource(), {"identifier": "x"}),
        (OpenLibrarySource(), {"key": "/works/OL1W"}),
        (GutenbergSource(), {"id": 7}),
    ]:
        item = source.normalize(record)
        assert_complete(item)
        assert item.title == "Untitled"
        assert item.author == "Unknown"
        assert item.genre == "General"
        assert item.duration == 0


def test_minimal_branded_records_use_their_own_defaults():
    bbc = BBCRadioSource().normalize({"identifier": "x"})
    lit2go = Lit2GoSource().normalize({"identifier": "x"})
    podcast = PodcastSource().normalize({})
    plain_feed = RssFeedSource(FeedConfig(key="f", label="F", url="https://feeds.test/f")).normalize(FeedEntry())
    branded_feed = RssFeedSource(
        FeedConfig(key="g", label="G", url="https://feeds.test/g", author="Storyteller", genre="Folk Tales")
    ).normalize(FeedEntry())

    for item in (bbc, lit2go, podcast, plain_feed, branded_feed):
        assert_complete(item)
        assert item.title == "Untitled"
        assert item.duration == 0

    assert (bbc.author, bbc.genre, bbc.flags.is_full_cast) == ("BBC Radio", "Drama", True)
    assert (lit2go.author, lit2go.genre, lit2go.flags.is_educational) == ("Lit2Go", "Educational", True)
    assert (podcast.author, podcast.genre, podcast.flags.is_podcast) == ("Unknown", "General", True)
    assert podcast.details_url == ""
    assert (plain_feed.author, plain_feed.genre) == ("Unknown", "General")
    assert plain_feed.details_url == "https://feeds.test/f"
    assert (branded_feed.author, branded_feed.genre) == ("Storyteller", "Folk Tales")


def test_zero_is_a_real_id():
    assert LibriVoxSource().normalize({"id": 0}).id == "librivox-0"
    assert GutenbergSource().normalize({"id": 0}).id == "gutenberg-0"
    assert PodcastSource().normalize({"collectionId": 0}).id == "podcast-0"


def test_malformed_counters_do_not_sink_the_record():
    lv = LibriVoxSource().normalize({"id": 1, "totaltimesecs": "n/a", "num_sections": "?"})
    assert (lv.duration, lv.section_count) == (0, 0)
    assert GutenbergSource().normalize({"id": 2, "download_count": "many"}).downloads == 0
    assert InternetArchiveSource().normalize({"identifier": "x", "downloads": ["1,000"]}).downloads == 0
    assert InternetArchiveSource().normalize({"identifier": "x", "downloads": "12"}).downloads == 12


def test_blank_archive_creator_falls_back_to_unknown():
    assert InternetArchiveSource().normalize({"identifier": "x", "creator": [""]}).author == "Unknown"
    assert InternetArchiveSource().normalize({"identifier": "x", "creator": "  "}).author == "Unknown"


def test_records_without_ids_still_get_one():
    assert LibriVoxSource().normalize({}).id.startswith("librivox-")
    assert OpenLibrarySource().normalize({}).id.startswith("openlibrary-")
    assert GutenbergSource().normalize({}).id.startswith("gutenberg-")


def test_librivox_normalize():
    item = LibriVoxSource().normalize({
        "id": "52",
        "title": "The Adventures of Sherlock Holmes",
        "description": "<p>Twelve stories &amp; more</p>",
        "language": "English",
        "authors": [{"first_name": "Arthur Conan", "last_name": "Doyle"}],
        "genres": [{"name": "Detective Fiction"}],
        "totaltimesecs": 36000,
        "num_sections": 12,
        "url_zip_file": "https://archive.org/x.zip",
        "url_cover": "https://covers.test/52.jpg",
    })
    assert item.id == "librivox-52"
    assert item.raw_source_id == "52"
    assert item.author == "Arthur Conan Doyle"
    assert item.description == "Twelve stories & more"
    assert item.genre == "Detective Fiction"
    assert item.duration == 36000
    assert item.section_count == 12
    assert item.audio_url is None
    assert item.details_url == "https://librivox.org/book/52"


def test_archive_normalize_handles_list_fields():
    item = InternetArchiveSource().normalize({
        "identifier": "sherlock_0812",
        "title": "Sherlock Holmes",
        "creator": ["Arthur Conan Doyle", "Reader"],
        "subject": ["mystery", "librivox"],
        "runtime": "5:03:10",
        "language": "eng",
        "downloads": 1200,
    })
    assert item.id == "archive-sherlock_0812"
    assert item.author == "Arthur Conan Doyle"
    assert item.genre == "mystery"
    assert item.duration == 5 * 3600 + 3 * 60 + 10
    assert item.audio_url is None
    assert item.cover_url == "https://archive.org/services/img/sherlock_0812"
    assert item.downloads == 1200


def test_bbc_normalize():
    item = BBCRadioSource().normalize({
        "identifier": "hhgttg",
        "title": "BBC Radio - The Hitchhiker's Guide",
        "subject": "comedy; science fiction",
    })
    assert item.id == "bbc-hhgttg"
    assert item.title == "The Hitchhiker's Guide"
    assert item.author == "BBC Radio"
    assert item.genre == "Comedy"
    assert item.flags.is_full_cast
    assert BBCRadioSource().normalize({"identifier": "x"}).genre == "Drama"
    assert BBCRadioSource.clean_title("BBC: Sherlock") == "Sherlock"
    assert BBCRadioSource.determine_genre([], "A Detective Story") == "Mystery"


def test_lit2go_normalize():
    item = Lit2GoSource().normalize({"identifier": "l2g", "title": "Lit2Go: Aesop's Fables", "subject": ["Children"]})
    assert item.title == "Aesop's Fables"
    assert item.author == "Lit2Go"
    assert item.genre == "Children's Literature"
    assert item.flags.is_educational
    assert Lit2GoSource().normalize({"identifier": "x"}).genre == "Educational"


def test_openlibrary_and_gutenberg_normalize():
    ol = OpenLibrarySource().normalize({
        "key": "/works/OL45883W", "title": "Dune", "author_name": ["Frank Herbert"],
        "cover_i": 123, "first_publish_year": 1965, "subject": ["Science fiction"],
    })
    assert ol.id == "openlibrary-OL45883W"
    assert ol.cover_url == "https://covers.openlibrary.org/b/id/123-L.jpg"
    assert ol.details_url == "https://openlibrary.org/works/OL45883W"
    assert ol.published == "1965"

    gb = GutenbergSource().normalize({
        "id": 1342, "title": "Pride and Prejudice", "authors": [{"name": "Austen, Jane"}],
        "subjects": ["England -- Fiction", "Courtship", "Sisters"], "languages": ["en"],
        "formats": {"image/jpeg": "https://gutenberg.test/cover.jpg"}, "download_count": 50000,
    })
    assert gb.genre == "Courtship"
    assert gb.description == "England -- Fiction; Courtship; Sisters"
    assert gb.audio_url is None
    assert gb.details_url == "https://www.gutenberg.org/ebooks/1342"
    assert GutenbergSource().normalize({"id": 1}).description == "Classic literature from Project Gutenberg"


# --- Searching ------------------------------------------------------------

@pytest.mark.asyncio
async def test_archive_search_success():
    def handler(request):
        assert request.url.path == "/advancedsearch.php"
        assert request.url.params["q"].startswith("(sherlock)")
        assert request.url.params["rows"] == "2"
        return json_response({"response": {"numFound": 40, "docs": [
            {"identifier": "a", "title": "A"},
            {"identifier": "b", "title": "B"},
            {"title": "no identifier"},
        ]}})

    async with make_client(handler) as client:
        result = await InternetArchiveSource(client).search("sherlock", limit=2)

    assert result.success
    assert [i.id for i in result.items] == ["archive-a", "archive-b"]
    assert result.total == 40


@pytest.mark.asyncio
async def test_search_failure_is_reported_not_raised():
    async with make_client(lambda request: httpx.Response(503)) as client:
        result = await LibriVoxSource(client).search("emma")

    assert not result.success
    assert result.items == []
    assert result.error


@pytest.mark.asyncio
async def test_malformed_payload_is_reported_not_raised():
    async with make_client(lambda request: json_response(["not", "a", "dict"])) as client:
        result = await OpenLibrarySource(client).search("emma")

    assert not result.success
    assert result.error


@pytest.mark.asyncio
async def test_librivox_search_uses_relay_after_direct_failure():
    hosts = []

    def handler(request):
        hosts.append(request.url.host)
        if request.url.host == "librivox.org":
            raise httpx.ConnectError("refused", request=request)
        return json_response({"books": [{"id": 1, "title": "Emma"}]})

    async with make_client(handler) as client:
        result = await LibriVoxSource(client, relay_url=RELAY).search("Emma", limit=5)

    assert result.success
    assert result.items[0].title == "Emma"
    assert hosts == ["librivox.org", "relay.test"]


@pytest.mark.asyncio
async def test_limit_bounds_items_and_zero_limit_skips_network():
    def handler(request):
        return json_response({"results": [{"id": n, "title": f"Book {n}"} for n in range(32)], "count": 70000})

    async with make_client(handler) as client:
        source = GutenbergSource(client)
        result = await source.search("", limit=5)
        assert len(result.items) == 5
        assert result.total == 70000

    async with make_client(lambda request: pytest.fail("no request expected")) as client:
        empty = await GutenbergSource(client).search("x", limit=0)
    assert empty.success and empty.items == []


@pytest.mark.asyncio
async def test_bbc_get_by_category_defaults_to_drama():
    queries = []

    def handler(request):
        queries.append(request.url.params["q"])
        return json_response({"response": {"docs": [{"identifier": "p1", "title": "Play"}]}})

    async with make_client(handler) as client:
        source = BBCRadioSource(client)
        comedy = await source.get_by_category("comedy", limit=5)
        unknown = await source.get_by_category("opera", limit=5)

    assert comedy.success and comedy.items[0].id == "bbc-p1"
    assert queries == [BBCRadioSource.CATEGORY_QUERIES["comedy"], BBCRadioSource.CATEGORY_QUERIES["drama"]]
    assert unknown.success


# --- Audio resolution -----------------------------------------------------

def test_select_audio_files_keeps_one_file_per_chapter():
    files = [
        {"name": "01.ogg", "format": "Ogg Vorbis"},
        {"name": "cover.jpg", "format": "JPEG"},
        {"name": "01.mp3", "format": "VBR MP3"},
        {"name": "02.mp3", "format": "VBR MP3"},
        {"name": "01_64kb.mp3", "format": "64Kbps MP3"},
    ]
    assert [f["name"] for f in select_audio_files(files)] == ["01.mp3", "02.mp3"]
    assert select_audio_files([{"name": "a.flac", "format": "Flac"}]) == []
    assert select_audio_files(None) == []


def test_select_audio_files_keeps_chapters_only_present_in_another_format():
    files = [
        {"name": "1.mp3", "format": "VBR MP3"},
        {"name": "2.mp3", "format": "VBR MP3"},
        {"name": "10.ogg", "format": "Ogg Vorbis"},
    ]
    assert [f["name"] for f in select_audio_files(files)] == ["1.mp3", "2.mp3", "10.ogg"]


def test_archive_download_url_quotes_names():
    assert archive_download_url("id", "Part 1.mp3") == "https://archive.org/download/id/Part%201.mp3"


@pytest.mark.asyncio
async def test_archive_audio_resolution():
    def handler(request):
        assert request.url.path == "/metadata/book_id"
        return json_response({"files": [
            {"name": "book.pdf", "format": "Text PDF"},
            {"name": "part1.ogg", "format": "Ogg Vorbis"},
        ]})

    async with make_client(handler) as client:
        url = await InternetArchiveSource(client).get_audio_resolution("book_id")

    assert url == "https://archive.org/download/book_id/part1.ogg"


@pytest.mark.asyncio
async def test_archive_audio_resolution_takes_first_playable_file_in_manifest_order():
    payload = {"files": [
        {"name": "1.ogg", "format": "Ogg Vorbis"},
        {"name": "zz_bonus.mp3", "format": "VBR MP3"},
    ]}
    async with make_client(lambda request: json_response(payload)) as client:
        url = await InternetArchiveSource(client).get_audio_resolution("book")

    assert url == "https://archive.org/download/book/1.ogg"


@pytest.mark.asyncio
async def test_archive_audio_resolution_none_when_nothing_matches_or_lookup_fails():
    async with make_client(lambda request: json_response({"files": [{"name": "a.pdf", "format": "Text PDF"}]})) as client:
        assert await InternetArchiveSource(client).get_audio_resolution("x") is None

    async with make_client(lambda request: httpx.Response(404)) as client:
        assert await InternetArchiveSource(client).get_audio_resolution("x") is None


@pytest.mark.asyncio
async def test_librivox_audio_resolution_uses_first_section():
    payload = {"books": [{"id": 9, "sections": [{"listen_url": ""}, {"listen_url": "https://lv.test/1.mp3"}]}]}
    async with make_client(lambda request: json_response(payload)) as client:
        assert await LibriVoxSource(client).get_audio_resolution("9") == "https://lv.test/1.mp3"
