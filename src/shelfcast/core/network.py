# shelfcast/core/network.py
"""
HTTP helpers shared by every source.

Some upstream APIs reject cross-origin requests or are unreachable from
certain networks; those sources go through a relay endpoint instead.
`fetch_with_fallback` tries the direct URL first and, on any failure,
retries exactly once through the relay.
"""

from typing import Any, Optional, Sequence, Tuple, Union, Mapping
from urllib.parse import quote

import httpx

from .logging import get_logger

logger = get_logger(__name__)

Params = Union[Mapping[str, Any], Sequence[Tuple[str, Any]], None]


class SourceError(Exception):
    """Raised when a source cannot produce a usable response."""


def build_client(user_agent: str, timeout: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None) -> httpx.AsyncClient:
    """Creates the shared async client. `transport` lets tests stub the network."""
    headers = {"User-Agent": user_agent}
    return httpx.AsyncClient(headers=headers, timeout=timeout, follow_redirects=True, transport=transport)


def build_url(url: str, params: Params = None) -> str:
    return str(httpx.URL(url, params=params)) if params else url


def relay_url_for(url: str, relay_url: str) -> str:
    """
    Wraps `url` for the relay. Query-style relays ("...?url=") get the target
    percent-encoded; path-style relays ("https://relay/") get it appended as is.
    """
    if "{url}" in relay_url:
        return relay_url.format(url=quote(url, safe=""))
    if relay_url.endswith("="):
        return f"{relay_url}{quote(url, safe='')}"
    return f"{relay_url}{url}"


async def fetch_with_fallback(
    client: httpx.AsyncClient,
    url: str,
    params: Params = None,
    relay_url: Optional[str] = None,
) -> httpx.Response:
    """
    GETs `url`, falling back to a single attempt through `relay_url`.

    Raises:
        httpx.HTTPError: the direct request failed and no relay is configured.
        SourceError: both the direct and the relayed request failed.
    """
    target = build_url(url, params)

    try:
        return await _get(client, target)
    except httpx.HTTPError as e:
        if not relay_url:
            raise
        logger.warning(f"Direct fetch of {target} failed ({e!r}); retrying through relay")

    try:
        return await _get(client, relay_url_for(target, relay_url))
    except httpx.HTTPError as e:
        raise SourceError(f"Direct and relayed fetch failed for {target}: {e}") from e


async def fetch_json(
    client: httpx.AsyncClient,
    url: str,
    params: Params = None,
    relay_url: Optional[str] = None,
) -> Any:
    response = await fetch_with_fallback(client, url, params=params, relay_url=relay_url)
    try:
        return response.json()
    except ValueError as e:
        raise SourceError(f"Invalid JSON from {response.url}: {e}") from e


async def _get(client: httpx.AsyncClient, url: str) -> httpx.Response:
    logger.debug(f"Fetching URL: {url}")
    response = await client.get(url)
    response.raise_for_status()
    return response
