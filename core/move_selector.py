"""Move selection — which card to tap next.

Pure function of the current :class:`core.board_memory.BoardMemory`; it
never mutates the memory.  Priority order:

1. Commit the first available match (ascending identity, discovery order).
2. Wait (``None``) while two or more cards are face-up without a pair.
3. Wait when no face-down card is left to flip.
4. With exactly one card revealed, flip a face-down card already known to
   carry the same identity (``"strategic"``), else the first face-down card.
5. With nothing revealed, flip the first face-down card (``"unknown"``).

"First" always means row-major ``(y, x)`` order so that runs are
reproducible for the same board.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from core.board_memory import BoardMemory
from utils.region_utils import Region

STRATEGIC = "strategic"
UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class Commit:
    """Tap both regions of a known pair."""

    region_a: Region
    region_b: Region
    identity: Any


@dataclass(frozen=True, slots=True)
class Flip:
    """Turn over a single face-down card."""

    region: Region
    reason: str


Action = Commit | Flip


def next_move(memory: BoardMemory) -> Action | None:
    """Return the next action, or ``None`` when the host should wait."""
    matches = memory.available_matches()
    if matches:
        first = matches[0]
        return Commit(first.region_a, first.region_b, first.identity)

    revealed = memory.revealed()
    if len(revealed) >= 2:
        return None

    face_down = memory.face_down()
    if not face_down:
        return None

    if len(revealed) == 1:
        target = revealed[0]
        for state in face_down:
            if state.region != target.region and state.known_identity == target.identity:
                return Flip(state.region, STRATEGIC)

    return Flip(face_down[0].region, UNKNOWN)
