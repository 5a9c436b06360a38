"""Board region geometry helpers.

A :class:`Region` is an axis-aligned rectangle in source screen pixels.  It
is the key for every per-card record, so it has value equality and is
hashable.

This module is the **single source of truth** for the tolerance comparator
shared by layout dedup and layout validation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable


@dataclass(frozen=True, slots=True)
class Region:
    """Axis-aligned rectangle ``(x, y, width, height)``."""

    x: int
    y: int
    width: int
    height: int

    def center(self) -> tuple[int, int]:
        """Integer centre point, used as the tap target."""
        return self.x + self.width // 2, self.y + self.height // 2

    def as_list(self) -> list[int]:
        return [self.x, self.y, self.width, self.height]


# ── Comparison ────────────────────────────────────────────────────


def is_similar(a: Region, b: Region, tolerance: int) -> bool:
    """``True`` when every one of ``|dx|, |dy|, |dw|, |dh|`` is ``<= tolerance``."""
    return (
        abs(a.x - b.x) <= tolerance
        and abs(a.y - b.y) <= tolerance
        and abs(a.width - b.width) <= tolerance
        and abs(a.height - b.height) <= tolerance
    )


def dedupe_regions(regions: Iterable[Region], tolerance: int) -> list[Region]:
    """Drop near-duplicates, keeping the first region of each similar group."""
    kept: list[Region] = []
    for region in regions:
        if not any(is_similar(region, existing, tolerance) for existing in kept):
            kept.append(region)
    return kept


def sort_regions(regions: Iterable[Region]) -> list[Region]:
    """Row-major order: top-left to bottom-right (``y`` then ``x``)."""
    return sorted(regions, key=lambda r: (r.y, r.x))


# ── Parsing ───────────────────────────────────────────────────────


def parse_region(raw: Any) -> Region:
    """Build a :class:`Region` from a region, ``[x, y, w, h]`` or a dict.

    Raises ``ValueError`` for anything that is not a positive-size rectangle.
    """
    if isinstance(raw, Region):
        values = raw.as_list()
    elif isinstance(raw, dict):
        try:
            values = [raw["x"], raw["y"], raw["width"], raw["height"]]
        except KeyError as exc:
            raise ValueError(f"Region dict missing key {exc}: {raw!r}") from None
    elif isinstance(raw, (list, tuple)) and len(raw) == 4:
        values = list(raw)
    else:
        raise ValueError(f"Invalid region: {raw!r}")

    if any(isinstance(v, bool) or not isinstance(v, (int, float)) for v in values):
        raise ValueError(f"Invalid region: {raw!r}")
    x, y, w, h = (int(round(v)) for v in values)
    if w <= 0 or h <= 0:
        raise ValueError(f"Region must have positive size: {raw!r}")
    return Region(x, y, w, h)


def parse_regions(raw_regions: Any) -> list[Region]:
    """Decode a list of raw regions, silently skipping invalid entries."""
    if not isinstance(raw_regions, (list, tuple)):
        return []
    parsed: list[Region] = []
    for raw in raw_regions:
        try:
            parsed.append(parse_region(raw))
        except ValueError:
            continue
    return parsed
