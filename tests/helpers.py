"""Shared test helpers: a stubbed HTTP client and in-memory sources."""

import asyncio
import json
from typing import Callable, Dict, List, Optional

import httpx

from shelfcast.core.models import Item
from shelfcast.core.sources import AudioSource


def json_response(data, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, content=json.dumps(data).encode("utf-8"), headers={"Content-Type": "application/json"})


def make_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    """An AsyncClient whose every request is answered by `handler`."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class StubSource(AudioSource):
    """A source answering from a fixed list, or failing with `error`."""

    def __init__(self, key: str, items: Optional[List[Item]] = None, error: Optional[Exception] = None, delay: float = 0.0):
        super().__init__(client=make_client(lambda request: httpx.Response(500)))
        self.key = key
        self.label = key.title()
        self.items = items or []
        self.error = error
        self.delay = delay
        self.calls: List[Dict] = []

    async def _search(self, query, limit, offset):
        self.calls.append({"query": query, "limit": limit, "offset": offset})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return list(self.items), len(self.items)


def item(source: str, local_id: str, title: str, author: str = "Unknown", **kwargs) -> Item:
    return Item(id=f"{source}-{local_id}", source=source, raw_source_id=local_id, title=title, author=author, **kwargs)


SAMPLE_FEED = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:itunes="http://www.itunes.com/dtds/podcast-1.0.dtd">
  <channel>
    <title>Storynory</title>
    <itunes:image href="https://stories.test/channel.jpg"/>
    <item>
      <title>Storynory - The Snow Queen</title>
      <link>https://www.storynory.com/the-snow-queen/</link>
      <description><![CDATA[<p>A classic &amp; chilly tale</p>]]></description>
      <pubDate>Mon, 01 Jan 2024 10:00:00 +0000</pubDate>
      <enclosure url="https://stories.test/snow-queen.mp3" type="audio/mpeg" length="1"/>
      <itunes:duration>25:30</itunes:duration>
      <category>Fairy Tales</category>
    </item>
    <item>
      <title>The Tinderbox</title>
      <guid>tinderbox-2023</guid>
      <description>A soldier and a witch</description>
      <itunes:image href="https://stories.test/tinderbox.jpg"/>
    </item>
  </channel>
</rss>
"""
