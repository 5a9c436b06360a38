"""Replay recognizer and dry-run tapper for offline sessions.

Drives the session loop from a recorded capture file instead of a live
device, so the whole pipeline can be exercised without an emulator.

Capture file format (JSON)::

    {"frames": [
        {"width": 1080, "height": 1920,
         "cards": [{"identity": 5, "face_up": true,
                    "region": [100, 100, 50, 80], "confidence": 0.93}]}
    ]}

A bare list of frames is accepted too.  Once the frames are exhausted the
last one is repeated.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from core.board_memory import CardObservation
from utils.region_utils import parse_region

_log = logging.getLogger("flipmatch.orchestrator.replay")


def _parse_card(raw: Any) -> CardObservation | None:
    if not isinstance(raw, dict):
        return None
    try:
        region = parse_region(raw.get("region"))
    except ValueError:
        return None
    return CardObservation(
        identity=raw.get("identity", -1),
        is_face_up=bool(raw.get("face_up", False)),
        region=region,
        confidence=raw.get("confidence", 1.0),
        name=str(raw.get("name", "")),
    )


def _parse_frame(raw: Any) -> tuple[list[CardObservation], int, int] | None:
    if not isinstance(raw, dict):
        return None
    width = raw.get("width")
    height = raw.get("height")
    if not isinstance(width, int) or not isinstance(height, int):
        return None
    cards = raw.get("cards", [])
    if not isinstance(cards, list):
        return None
    observations = [card for card in (_parse_card(item) for item in cards) if card is not None]
    return observations, width, height


class ReplayRecognizer:
    """Plays back recorded frames, one per :meth:`detect` call."""

    def __init__(self, frames: list[tuple[list[CardObservation], int, int]]) -> None:
        self.frames = frames
        self._cursor = 0

    @classmethod
    def from_payload(cls, payload: Any) -> ReplayRecognizer:
        raw_frames = payload.get("frames", []) if isinstance(payload, dict) else payload
        if not isinstance(raw_frames, list):
            raw_frames = []
        frames = []
        for index, raw in enumerate(raw_frames):
            frame = _parse_frame(raw)
            if frame is None:
                _log.warning("skipping malformed frame #%d", index)
                continue
            frames.append(frame)
        return cls(frames)

    @classmethod
    def from_file(cls, path: str | Path) -> ReplayRecognizer:
        with open(path, "r", encoding="utf-8") as capture_file:
            return cls.from_payload(json.load(capture_file))

    def detect(self) -> tuple[list[CardObservation], int, int]:
        if not self.frames:
            raise RuntimeError("capture file has no usable frames")
        frame = self.frames[min(self._cursor, len(self.frames) - 1)]
        self._cursor += 1
        observations, width, height = frame
        return list(observations), width, height


class DryRunTapper:
    """Logs taps instead of injecting them."""

    def __init__(self) -> None:
        self.taps: list[tuple[int, int]] = []

    def tap(self, x: int, y: int) -> None:
        self.taps.append((x, y))
        _log.info("tap x=%d y=%d", x, y)
