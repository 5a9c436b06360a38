"""Board memory — what card has been seen where, and what changed.

Absorbs observation batches from the card recognizer and keeps one
:class:`CardState` per board region.  Every :meth:`BoardMemory.ingest` call
returns the diff it caused (:class:`BoardEvent` list) together with the
cards currently face-up and the pairs that can be committed right now.

Per-region state machine::

    (absent) ──discovered──▶ FACE_DOWN | FACE_UP
    FACE_DOWN ──flipped_up──▶ FACE_UP        (added to the reveal index)
    FACE_UP ──flipped_down──▶ FACE_DOWN      (purged from the reveal index)
    FACE_UP ──relabeled──▶ FACE_UP           (identity changed, bucket moved)
    any ──match committed──▶ (removed, never tracked again this session)

A repeat observation in the same state only refreshes ``confidence`` and
``last_seen_at``.

Maintainer notes
-----------------
* The reveal index (identity → face-up regions) is updated in the same
  step as the state it mirrors.  Empty buckets are deleted immediately and
  the unknown-identity sentinel is never indexed.
* ``known_identity`` survives a card being turned back over; the move
  selector uses it for strategic flips.
* Not thread-safe.  The host must serialise ingest → select → confirm.
"""

from __future__ import annotations

import itertools
import logging
import math
import time
from dataclasses import dataclass, replace
from typing import Any, Callable, Iterable

from utils.config import BoardConfig
from utils.region_utils import Region, sort_regions

_log = logging.getLogger("flipmatch.core.board_memory")

DISCOVERED = "discovered"
FLIPPED_UP = "flipped_up"
FLIPPED_DOWN = "flipped_down"
RELABELED = "relabeled"


# ── Value types ─────────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class CardObservation:
    """One detector output for a single capture.

    Attributes:
        identity:   Opaque card label; the board's ``unknown_identity``
                    sentinel means "card back / not recognised".
        is_face_up: Orientation reported by the detector.
        region:     Bounding box in screen pixels.
        confidence: Detector confidence, clamped to ``[0, 1]`` on ingest.
        name:       Optional template name (diagnostics only).
    """

    identity: Any
    is_face_up: bool
    region: Region
    confidence: float = 1.0
    name: str = ""


@dataclass(slots=True)
class CardState:
    """Last known state of one board region."""

    region: Region
    identity: Any
    is_face_up: bool
    confidence: float
    last_seen_at: float
    known_identity: Any
    sequence: int


@dataclass(frozen=True, slots=True)
class BoardEvent:
    """A state transition caused by an ingest.

    ``kind`` is one of ``discovered``, ``flipped_up``, ``flipped_down`` or
    ``relabeled``.
    """

    kind: str
    region: Region
    identity: Any
    is_face_up: bool
    previous_identity: Any = None


@dataclass(frozen=True, slots=True)
class MatchCandidate:
    """Two face-up regions showing the same identity."""

    region_a: Region
    region_b: Region
    identity: Any


@dataclass(slots=True)
class IngestResult:
    transitions: list[BoardEvent]
    revealed: list[CardState]
    available_matches: list[MatchCandidate]


@dataclass(slots=True)
class BoardStats:
    total_moves: int
    matches_made: int
    cards_remaining: int
    revealed_count: int
    known_identity_count: int


def _identity_order(identity: Any) -> tuple[int, Any]:
    """Sort key: numeric identities ascending first, then by string form."""
    if isinstance(identity, (int, float)) and not isinstance(identity, bool):
        return 0, identity
    return 1, str(identity)


def _clamp_confidence(value: Any) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(confidence):
        return 0.0
    return min(max(confidence, 0.0), 1.0)


# ── Board memory ────────────────────────────────────────────────────

class BoardMemory:
    """Authoritative map from region to last observed card state."""

    def __init__(
        self,
        unknown_identity: Any = -1,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.unknown_identity = unknown_identity
        self._clock = clock
        self._states: dict[Region, CardState] = {}
        self._revealed: dict[Any, list[Region]] = {}
        self._matched: set[Region] = set()
        self._sequence = itertools.count()
        self.total_moves = 0
        self.matches_made = 0

    @classmethod
    def from_config(cls, config: BoardConfig | None = None) -> BoardMemory:
        config = config or BoardConfig()
        return cls(unknown_identity=config.unknown_identity)

    # ── Reveal index ────────────────────────────────────────────────

    def _is_indexed(self, state: CardState) -> bool:
        return state.is_face_up and state.identity != self.unknown_identity

    def _index(self, identity: Any, region: Region) -> None:
        bucket = self._revealed.setdefault(identity, [])
        if region not in bucket:
            bucket.append(region)

    def _unindex(self, identity: Any, region: Region) -> None:
        bucket = self._revealed.get(identity)
        if bucket is None:
            return
        if region in bucket:
            bucket.remove(region)
        if not bucket:
            del self._revealed[identity]

    # ── Ingest ──────────────────────────────────────────────────────

    @staticmethod
    def _is_well_formed(observation: Any) -> bool:
        if not isinstance(observation, CardObservation):
            return False
        region = observation.region
        if not isinstance(region, Region) or region.width <= 0 or region.height <= 0:
            return False
        try:
            hash(observation.identity)
        except TypeError:
            return False
        return True

    def _apply(self, observation: CardObservation, now: float) -> BoardEvent | None:
        region = observation.region
        identity = observation.identity
        face_up = bool(observation.is_face_up)
        confidence = _clamp_confidence(observation.confidence)
        state = self._states.get(region)

        if state is None:
            known = identity if identity != self.unknown_identity else self.unknown_identity
            state = CardState(
                region=region,
                identity=identity,
                is_face_up=face_up,
                confidence=confidence,
                last_seen_at=now,
                known_identity=known,
                sequence=next(self._sequence),
            )
            self._states[region] = state
            if self._is_indexed(state):
                self._index(identity, region)
            return BoardEvent(DISCOVERED, region, identity, face_up)

        was_indexed = self._is_indexed(state)
        was_face_up = state.is_face_up
        previous_identity = state.identity

        state.identity = identity
        state.is_face_up = face_up
        state.confidence = confidence
        state.last_seen_at = now
        if identity != self.unknown_identity:
            state.known_identity = identity

        now_indexed = self._is_indexed(state)
        identity_changed = previous_identity != identity
        if was_indexed and (not now_indexed or identity_changed):
            self._unindex(previous_identity, region)
        if now_indexed and (not was_indexed or identity_changed):
            self._index(identity, region)

        if was_face_up != face_up:
            kind = FLIPPED_UP if face_up else FLIPPED_DOWN
            return BoardEvent(kind, region, identity, face_up, previous_identity)
        if face_up and identity_changed:
            return BoardEvent(RELABELED, region, identity, face_up, previous_identity)
        return None

    def ingest(self, observations: Iterable[CardObservation]) -> IngestResult:
        """Absorb one observation batch and report what changed.

        Malformed entries are skipped; two observations of the same region
        resolve last-write-wins.  Regions whose pair was already committed
        are ignored.
        """
        batch: dict[Region, CardObservation] = {}
        for observation in observations:
            if not self._is_well_formed(observation):
                _log.warning("skipping malformed observation: %r", observation)
                continue
            if observation.region in self._matched:
                continue
            if observation.region in batch:
                _log.warning("duplicate observation for %s in one batch, keeping the last", observation.region)
            batch[observation.region] = observation

        now = self._clock()
        transitions: list[BoardEvent] = []
        for observation in batch.values():
            event = self._apply(observation, now)
            if event is not None:
                transitions.append(event)

        for identity, bucket in self._revealed.items():
            if len(bucket) > 2:
                _log.warning(
                    "%d face-up cards share identity %r, probable detector error",
                    len(bucket), identity,
                )

        return IngestResult(
            transitions=transitions,
            revealed=self.revealed(),
            available_matches=self.available_matches(),
        )

    # ── Reads ───────────────────────────────────────────────────────

    def revealed(self) -> list[CardState]:
        """Face-up cards with a known identity, in discovery order."""
        return [replace(state) for state in self._states.values() if self._is_indexed(state)]

    def available_matches(self) -> list[MatchCandidate]:
        """Every committable pair: ascending identity, then discovery order."""
        matches: list[MatchCandidate] = []
        for identity in sorted(self._revealed, key=_identity_order):
            bucket = self._revealed[identity]
            if len(bucket) < 2:
                continue
            members = sorted(bucket, key=lambda region: self._states[region].sequence)
            for region_a, region_b in itertools.combinations(members, 2):
                matches.append(MatchCandidate(region_a, region_b, identity))
        return matches

    def face_down(self) -> list[CardState]:
        """Face-down cards in row-major ``(y, x)`` order."""
        regions = sort_regions(region for region, state in self._states.items() if not state.is_face_up)
        return [replace(self._states[region]) for region in regions]

    def state_of(self, region: Region) -> CardState | None:
        state = self._states.get(region)
        return replace(state) if state is not None else None

    def reveal_index(self) -> dict[Any, list[Region]]:
        """Copy of the identity → face-up regions index."""
        return {identity: list(bucket) for identity, bucket in self._revealed.items()}

    def is_matched(self, region: Region) -> bool:
        return region in self._matched

    def is_complete(self) -> bool:
        """``True`` once no tracked region has a known identity."""
        return not any(
            state.known_identity != self.unknown_identity for state in self._states.values()
        )

    def stats(self) -> BoardStats:
        known = {
            state.known_identity
            for state in self._states.values()
            if state.known_identity != self.unknown_identity
        }
        return BoardStats(
            total_moves=self.total_moves,
            matches_made=self.matches_made,
            cards_remaining=len(self._states),
            revealed_count=sum(1 for state in self._states.values() if self._is_indexed(state)),
            known_identity_count=len(known),
        )

    # ── Completion reports ──────────────────────────────────────────

    def record_match_committed(self, region_a: Region, region_b: Region) -> None:
        """Both cards of a pair were tapped: forget them for good."""
        for region in (region_a, region_b):
            state = self._states.pop(region, None)
            if state is not None and self._is_indexed(state):
                self._unindex(state.identity, region)
            self._matched.add(region)
        self.matches_made += 1
        self.total_moves += 1
        _log.debug("match committed at %s / %s", region_a, region_b)

    def record_move_made(self) -> None:
        self.total_moves += 1

    def reset(self) -> None:
        """Start a new game: drop every state, index entry and counter."""
        self._states.clear()
        self._revealed.clear()
        self._matched.clear()
        self._sequence = itertools.count()
        self.total_moves = 0
        self.matches_made = 0
        _log.debug("board memory reset")
