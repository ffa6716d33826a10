# shelfcast/core/config.py

import os
from dataclasses import dataclass, field
from typing import List, Dict, Any, Optional

import yaml

from .logging import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = "shelfcast.yaml"
DEFAULT_RELAY_URL = "https://api.allorigins.win/raw?url="
DEFAULT_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"

@dataclass
class FeedConfig:
    """One RSS collection exposed as its own source."""
    key: str
    label: str
    url: str
    author: str = "Unknown"
    genre: str = "General"
    relay_url: Optional[str] = None
    flags: Dict[str, bool] = field(default_factory=dict)

DEFAULT_FEEDS = [
    FeedConfig(
        key="storynory",
        label="Storynory (Original)",
        url="https://www.storynory.com/feed/",
        author="Storynory",
        genre="Children's Stories",
        relay_url="https://cors.eu.org/",
        flags={"is_original": True},
    ),
    FeedConfig(
        key="loyalbooks",
        label="Loyal Books",
        url="https://www.loyalbooks.com/feed/new_releases",
        genre="Classics",
    ),
    FeedConfig(
        key="librivox_new",
        label="LibriVox New Releases",
        url="https://librivox.org/rss/latest_releases",
        author="LibriVox Volunteers",
    ),
]

@dataclass
class Settings:
    relay_url: str = DEFAULT_RELAY_URL
    timeout: float = 10.0
    user_agent: str = DEFAULT_USER_AGENT
    aggregate_sources: List[str] = field(default_factory=lambda: ["librivox", "archive"])
    featured_source: str = "archive"
    feeds: List[FeedConfig] = field(default_factory=lambda: list(DEFAULT_FEEDS))


def load_config_from_yaml(filepath: str) -> Dict[str, Any]:
    """
    Loads and parses the YAML configuration file.

    Args:
        filepath: The path to the shelfcast.yaml file.

    Returns:
        The top-level mapping of the file. Returns an empty dict if the file
        is not found, is empty or cannot be parsed.
    """
    try:
        with open(filepath, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
            if isinstance(data, dict):
                return data
    except FileNotFoundError:
        logger.error(f"Configuration file not found at '{filepath}'")
    except yaml.YAMLError as e:
        logger.error(f"Error parsing YAML file: {e}")

    return {}


def _feed_from_config(raw: Dict[str, Any]) -> Optional[FeedConfig]:
    if not isinstance(raw, dict) or not raw.get("key") or not raw.get("url"):
        logger.error(f"Feed config missing required fields: {raw}")
        return None
    return FeedConfig(
        key=str(raw["key"]),
        label=str(raw.get("label") or raw["key"]),
        url=str(raw["url"]),
        author=str(raw.get("author") or "Unknown"),
        genre=str(raw.get("genre") or "General"),
        relay_url=raw.get("relay_url"),
        flags={k: bool(v) for k, v in (raw.get("flags") or {}).items()},
    )


def load_settings(filepath: Optional[str] = None) -> Settings:
    """
    Builds Settings from the YAML file at `filepath` (or $SHELFCAST_CONFIG),
    keeping the defaults for anything the file leaves out.
    """
    path = filepath or os.environ.get("SHELFCAST_CONFIG", DEFAULT_CONFIG_PATH)
    data = load_config_from_yaml(path) if os.path.exists(path) or filepath else {}

    settings = Settings()
    if "relay_url" in data:
        settings.relay_url = str(data["relay_url"] or "")
    if "timeout" in data:
        try:
            settings.timeout = float(data["timeout"])
        except (TypeError, ValueError):
            logger.warning(f"Ignoring invalid timeout: {data['timeout']!r}")
    if data.get("user_agent"):
        settings.user_agent = str(data["user_agent"])
    if isinstance(data.get("aggregate_sources"), list):
        settings.aggregate_sources = [str(key) for key in data["aggregate_sources"]]
    if data.get("featured_source"):
        settings.featured_source = str(data["featured_source"])
    if isinstance(data.get("feeds"), list):
        feeds = [_feed_from_config(raw) for raw in data["feeds"]]
        settings.feeds = [feed for feed in feeds if feed]

    return settings
