"""Board layout cache — persisted card positions per screen resolution.

Keeps the last learned set of card regions (positions only, no identities)
together with the resolution they were computed for, so later cycles can
check whether the board geometry is unchanged.

Storage layout (keys are relative to the backend namespace)::

    layout:enabled          bool, persisted independently of any layout
    layout:current          "WxH" of the layout that is current
    layout:resolutions      ["WxH", ...] every resolution with a record
    layout:<W>x<H>          {"regions": [[x, y, w, h], ...],
                             "screen_width": W, "screen_height": H,
                             "saved_at": <epoch seconds>}

Maintainer notes
-----------------
* Persistence is best effort.  Any backend error is logged and swallowed;
  the in-memory layout stays authoritative for the rest of the process.
* A save replaces the layout as one immutable :class:`BoardLayout`.  There
  is no merge path.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from utils.config import LayoutCacheConfig
from utils.region_utils import Region, dedupe_regions, parse_regions, sort_regions
from workflows.protocol import SupportsMemory

_log = logging.getLogger("flipmatch.memory.layout_store")

ENABLED_KEY = "layout:enabled"
CURRENT_KEY = "layout:current"
RESOLUTIONS_KEY = "layout:resolutions"


def _record_key(resolution: str) -> str:
    return f"layout:{resolution}"


def _resolution(screen_width: int, screen_height: int) -> str:
    return f"{int(screen_width)}x{int(screen_height)}"


@dataclass(frozen=True, slots=True)
class BoardLayout:
    """Immutable snapshot of the card grid for one screen resolution."""

    regions: tuple[Region, ...]
    screen_width: int
    screen_height: int
    saved_at: float

    @property
    def position_count(self) -> int:
        return len(self.regions)

    @property
    def resolution(self) -> str:
        return _resolution(self.screen_width, self.screen_height)

    def to_payload(self) -> dict[str, Any]:
        return {
            "regions": [region.as_list() for region in self.regions],
            "screen_width": self.screen_width,
            "screen_height": self.screen_height,
            "saved_at": self.saved_at,
        }

    @classmethod
    def from_payload(cls, payload: Any) -> BoardLayout | None:
        """Decode a persisted record; ``None`` when it is unusable."""
        if not isinstance(payload, dict):
            return None
        width = payload.get("screen_width")
        height = payload.get("screen_height")
        saved_at = payload.get("saved_at", 0.0)
        if not isinstance(width, int) or not isinstance(height, int):
            return None
        if not isinstance(saved_at, (int, float)):
            saved_at = 0.0
        regions = parse_regions(payload.get("regions"))
        if not regions:
            return None
        return cls(tuple(regions), width, height, float(saved_at))


@dataclass(slots=True)
class LayoutCacheStats:
    """Read-only summary of the cache for dashboards and reports."""

    enabled: bool
    has_layout: bool
    position_count: int
    saved_at: float | None
    screen_resolution: str | None


class LayoutStore:
    """Enable-able cache of the current :class:`BoardLayout`."""

    def __init__(
        self,
        storage: SupportsMemory,
        config: LayoutCacheConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.storage = storage
        self.config = config or LayoutCacheConfig()
        self.tolerance = max(0, int(self.config.position_tolerance))
        self._clock = clock
        self._layout: BoardLayout | None = None
        self._enabled = self._load_enabled()
        if self._enabled:
            self._layout = self._load_current()

    # ── Loading ─────────────────────────────────────────────────────

    def _load_enabled(self) -> bool:
        try:
            value = self.storage.get(ENABLED_KEY, None)
        except Exception as exc:
            _log.error("failed to read cache flag: %s", exc)
            return bool(self.config.enabled)
        if isinstance(value, bool):
            return value
        return bool(self.config.enabled)

    def _load_record(self, resolution: str) -> BoardLayout | None:
        try:
            payload = self.storage.get(_record_key(resolution), None)
        except Exception as exc:
            _log.error("failed to load layout %s: %s", resolution, exc)
            return None
        if payload is None:
            return None
        layout = BoardLayout.from_payload(payload)
        if layout is None:
            _log.warning("ignoring malformed layout record for %s", resolution)
        else:
            _log.debug("loaded layout %s with %d positions", resolution, layout.position_count)
        return layout

    def _load_current(self) -> BoardLayout | None:
        try:
            pointer = self.storage.get(CURRENT_KEY, None)
        except Exception as exc:
            _log.error("failed to read current layout pointer: %s", exc)
            return None
        if not isinstance(pointer, str) or not pointer:
            return None
        return self._load_record(pointer)

    def _known_resolutions(self) -> list[str]:
        value = self.storage.get(RESOLUTIONS_KEY, [])
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, str)]

    # ── Toggle ──────────────────────────────────────────────────────

    def is_enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        """Toggle the cache.  Disabling drops every stored layout."""
        self._enabled = bool(enabled)
        try:
            self.storage.set(ENABLED_KEY, self._enabled, ttl=0)
        except Exception as exc:
            _log.error("failed to persist cache flag: %s", exc)
        if not self._enabled:
            self.clear()
        _log.info("position cache %s", "enabled" if self._enabled else "disabled")

    # ── Reads ───────────────────────────────────────────────────────

    def current_layout(self) -> BoardLayout | None:
        if not self._enabled:
            return None
        return self._layout

    def layout_for(self, screen_width: int, screen_height: int) -> BoardLayout | None:
        """Layout for this resolution, switching to its persisted record if needed."""
        if not self._enabled:
            return None
        resolution = _resolution(screen_width, screen_height)
        if self._layout is not None and self._layout.resolution == resolution:
            return self._layout
        layout = self._load_record(resolution)
        if layout is not None:
            self._layout = layout
        return layout

    def is_layout_valid(self, screen_width: int, screen_height: int) -> bool:
        layout = self.current_layout()
        return layout is not None and layout.resolution == _resolution(screen_width, screen_height)

    def cache_stats(self) -> LayoutCacheStats:
        layout = self.current_layout()
        return LayoutCacheStats(
            enabled=self._enabled,
            has_layout=layout is not None,
            position_count=layout.position_count if layout is not None else 0,
            saved_at=layout.saved_at if layout is not None else None,
            screen_resolution=layout.resolution if layout is not None else None,
        )

    # ── Writes ──────────────────────────────────────────────────────

    def save(
        self,
        regions: Iterable[Region],
        screen_width: int,
        screen_height: int,
    ) -> BoardLayout | None:
        """Dedup, sort and store *regions* as the current layout.

        Returns the stored layout, or ``None`` when the cache is disabled or
        no usable region was given.
        """
        if not self._enabled:
            return None

        candidates = parse_regions(list(regions))
        filtered = sort_regions(dedupe_regions(candidates, self.tolerance))
        if not filtered:
            _log.warning("refusing to save an empty layout")
            return None

        layout = BoardLayout(
            regions=tuple(filtered),
            screen_width=int(screen_width),
            screen_height=int(screen_height),
            saved_at=float(self._clock()),
        )
        self._layout = layout
        _log.info(
            "saved layout %s: %d -> %d positions",
            layout.resolution, len(candidates), layout.position_count,
        )

        try:
            resolutions = self._known_resolutions()
            if layout.resolution not in resolutions:
                resolutions.append(layout.resolution)
            self.storage.set(_record_key(layout.resolution), layout.to_payload(), ttl=0)
            self.storage.set(RESOLUTIONS_KEY, resolutions, ttl=0)
            self.storage.set(CURRENT_KEY, layout.resolution, ttl=0)
        except Exception as exc:
            _log.error("failed to persist layout %s: %s", layout.resolution, exc)
        return layout

    def clear(self) -> None:
        """Drop the in-memory layout and every persisted layout record."""
        self._layout = None
        try:
            for resolution in self._known_resolutions():
                self.storage.delete(_record_key(resolution))
            pointer = self.storage.get(CURRENT_KEY, None)
            if isinstance(pointer, str) and pointer:
                self.storage.delete(_record_key(pointer))
            self.storage.delete(RESOLUTIONS_KEY)
            self.storage.delete(CURRENT_KEY)
        except Exception as exc:
            _log.error("failed to clear persisted layouts: %s", exc)
        _log.debug("layout cache cleared")
