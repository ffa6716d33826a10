# shelfcast/core/playback.py

from typing import Optional, Protocol, Tuple

from .library import Library
from .models import Chapter, Item, Manifest
from .logging import get_logger

logger = get_logger(__name__)

SAVE_INTERVAL = 5.0  # seconds of playback between position saves


class PlaybackDevice(Protocol):
    """Whatever actually plays audio: a native player, mpv, a browser element."""
    def load(self, url: str) -> None: ...
    def play(self) -> None: ...
    def pause(self) -> None: ...
    def seek(self, seconds: float) -> None: ...
    def set_volume(self, volume: float) -> None: ...
    def set_rate(self, rate: float) -> None: ...


class PlaybackQueue:
    """
    Feeds a manifest to a playback device one chapter at a time. The device
    reports progress through `on_time` and the end of a file through
    `on_ended`, which moves on to the next chapter until the last one.

    With a library attached, the item is recorded as recently played and the
    position (seconds from the start of the whole item) is saved and restored.
    """

    def __init__(self, device: PlaybackDevice, manifest: Manifest, library: Optional[Library] = None, item: Optional[Item] = None):
        self.device = device
        self.manifest = manifest
        self.library = library
        self.item = item
        self.index = -1
        self.position = 0.0
        self.is_playing = False
        self._last_saved = 0.0

    @property
    def current(self) -> Optional[Chapter]:
        if 0 <= self.index < len(self.manifest.chapters):
            return self.manifest.chapters[self.index]
        return None

    @property
    def offset(self) -> float:
        """Seconds from the start of the first chapter to the current position."""
        before = sum(chapter.duration for chapter in self.manifest.chapters[:max(self.index, 0)])
        return before + self.position

    def locate(self, offset: float) -> Tuple[int, float]:
        """Chapter index and in-chapter position for an absolute offset."""
        for index, chapter in enumerate(self.manifest.chapters):
            if chapter.duration <= 0 or offset < chapter.duration:
                return index, offset
            offset -= chapter.duration
        return max(len(self.manifest.chapters) - 1, 0), 0.0

    def start(self, index: Optional[int] = None) -> bool:
        """
        Starts playback at chapter `index`, or at the saved position when no
        index is given. Returns False when there is nothing to play.
        """
        if not self.manifest.chapters:
            logger.warning("Nothing playable in this manifest")
            return False

        position = 0.0
        if index is None:
            index = 0
            if self.library and self.item:
                index, position = self.locate(self.library.get_position(self.item.id))
        if self.library:
            self.device.set_rate(float(self.library.settings().get("playback_speed") or 1.0))
            if self.item:
                self.library.add_recent(self.item)

        self._load(index, position)
        return True

    def _load(self, index: int, position: float = 0.0):
        self.index = max(0, min(index, len(self.manifest.chapters) - 1))
        self.position = position
        chapter = self.manifest.chapters[self.index]
        logger.debug(f"Loading chapter {chapter.number}: {chapter.title}")
        self.device.load(chapter.url)
        if position:
            self.device.seek(position)
        self.device.play()
        self.is_playing = True

    def toggle(self):
        if self.current is None:
            return
        if self.is_playing:
            self.device.pause()
            self._save(force=True)
        else:
            self.device.play()
        self.is_playing = not self.is_playing

    def next(self) -> bool:
        if self.index + 1 >= len(self.manifest.chapters):
            return False
        self._load(self.index + 1)
        self._save(force=True)
        return True

    def previous(self) -> bool:
        if self.index <= 0:
            return False
        self._load(self.index - 1)
        self._save(force=True)
        return True

    def seek(self, seconds: float):
        chapter = self.current
        if chapter is None:
            return
        seconds = max(0.0, seconds)
        if chapter.duration:
            seconds = min(seconds, float(chapter.duration))
        self.position = seconds
        self.device.seek(seconds)

    def set_speed(self, rate: float):
        self.device.set_rate(rate)
        if self.library:
            self.library.update_settings(playback_speed=rate)

    # Device notifications

    def on_time(self, seconds: float):
        self.position = seconds
        self._save()

    def on_ended(self):
        """End of the current file: advance, or stop after the last chapter."""
        if not self.next():
            self.is_playing = False
            self.position = 0.0
            # Finished items start over next time.
            if self.library and self.item:
                self.library.set_position(self.item.id, 0)
                self._last_saved = 0.0

    def _save(self, force: bool = False):
        if not (self.library and self.item):
            return
        offset = self.offset
        if force or abs(offset - self._last_saved) >= SAVE_INTERVAL:
            self.library.set_position(self.item.id, offset)
            self._last_saved = offset
