# shelfcast/core/library.py
"""
Bookmarks, recently played items, playback positions and settings, kept in
any key-value store with a get/set contract. Stored items are snapshots:
later changes to a live Item never reach a saved copy.
"""

import json
import os
import time
from typing import Any, Dict, List, Optional, Protocol

from .models import Item
from .logging import get_logger

logger = get_logger(__name__)

BOOKMARKS_KEY = "bookmarks"
RECENT_KEY = "recent"
POSITIONS_KEY = "positions"
SETTINGS_KEY = "settings"

MAX_RECENT = 50
DEFAULT_SETTINGS = {"playback_speed": 1.0, "auto_play": False, "sleep_timer": None}


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[Any]: ...
    def set(self, key: str, value: Any) -> None: ...


class MemoryStore:
    """In-process store, mostly for tests and one-off sessions."""

    def __init__(self, data: Optional[Dict[str, Any]] = None):
        self._data = dict(data or {})

    def get(self, key: str) -> Optional[Any]:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value


class JsonFileStore:
    """Keeps every key in one JSON file, rewritten on each set."""

    def __init__(self, path: str = ".shelfcast_library.json"):
        self.path = path

    def _load(self) -> Dict[str, Any]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
                return data if isinstance(data, dict) else {}
        except (FileNotFoundError, json.JSONDecodeError):
            return {}

    def get(self, key: str) -> Optional[Any]:
        return self._load().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = value
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f)


class Library:
    def __init__(self, store: KeyValueStore):
        self.store = store

    def _list(self, key: str) -> List[Dict[str, Any]]:
        value = self.store.get(key)
        return [entry for entry in value if isinstance(entry, dict)] if isinstance(value, list) else []

    def _dict(self, key: str) -> Dict[str, Any]:
        value = self.store.get(key)
        return dict(value) if isinstance(value, dict) else {}

    # Bookmarks

    def bookmarks(self) -> List[Item]:
        return [Item.from_dict(entry["item"]) for entry in self._list(BOOKMARKS_KEY) if "item" in entry]

    def is_bookmarked(self, item_id: str) -> bool:
        return any(entry.get("item", {}).get("id") == item_id for entry in self._list(BOOKMARKS_KEY))

    def add_bookmark(self, item: Item) -> List[Item]:
        if not self.is_bookmarked(item.id):
            entries = self._list(BOOKMARKS_KEY)
            entries.insert(0, {"item": item.snapshot().to_dict(), "bookmarked_at": time.time()})
            self.store.set(BOOKMARKS_KEY, entries)
        return self.bookmarks()

    def remove_bookmark(self, item_id: str) -> List[Item]:
        entries = [e for e in self._list(BOOKMARKS_KEY) if e.get("item", {}).get("id") != item_id]
        self.store.set(BOOKMARKS_KEY, entries)
        return self.bookmarks()

    # Recently played

    def recent(self) -> List[Item]:
        return [Item.from_dict(entry["item"]) for entry in self._list(RECENT_KEY) if "item" in entry]

    def add_recent(self, item: Item) -> List[Item]:
        entries = [e for e in self._list(RECENT_KEY) if e.get("item", {}).get("id") != item.id]
        entries.insert(0, {"item": item.snapshot().to_dict(), "played_at": time.time()})
        self.store.set(RECENT_KEY, entries[:MAX_RECENT])
        return self.recent()

    # Playback positions

    def get_position(self, item_id: str) -> float:
        position = self._dict(POSITIONS_KEY).get(item_id, 0)
        return float(position) if isinstance(position, (int, float)) else 0.0

    def set_position(self, item_id: str, seconds: float) -> None:
        positions = self._dict(POSITIONS_KEY)
        positions[item_id] = max(0.0, float(seconds))
        self.store.set(POSITIONS_KEY, positions)

    # Settings

    def settings(self) -> Dict[str, Any]:
        return {**DEFAULT_SETTINGS, **self._dict(SETTINGS_KEY)}

    def update_settings(self, **changes: Any) -> Dict[str, Any]:
        updated = {**self.settings(), **changes}
        self.store.set(SETTINGS_KEY, updated)
        return updated
