"""Match cycle workflow — one observe → validate → remember → select pass.

Receives the observations of a single capture and drives the engine:

1. Validate the observed regions against the cached layout for the
   current resolution.
2. Apply the cache policy (replace on mismatch, baseline on first sight).
3. Snap observations onto the cells of the layout this cycle kept or
   stored (or onto the deduplicated batch when there is none), so two
   detections of one card never become two board regions.
4. Ingest into :class:`core.board_memory.BoardMemory`.
5. Select the next action via :func:`core.move_selector.next_move`.

The host executes the action and reports it back with :meth:`confirm`.

Cache actions reported in :class:`CycleOutcome`
-----------------------------------------------
``kept``       cached layout matched (fully or partially) and stays.
``replaced``   mismatch; the observation became the new layout.
``baseline``   no cache yet; the observation was stored as the first layout.
``none``       nothing was written (cache disabled or observation too small).
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Sequence

from core.board_memory import BoardEvent, BoardMemory, CardObservation, CardState, MatchCandidate
from core.layout_validator import MATCH, MISMATCH, PARTIAL_MATCH, LayoutValidator
from core.move_selector import Action, Commit, Flip, next_move
from memory.layout_store import BoardLayout, LayoutStore
from memory.redis_memory import RedisMemory
from utils.config import BoardConfig, LayoutCacheConfig, StoreConfig, ValidatorConfig
from utils.region_utils import Region, dedupe_regions, is_similar

CACHE_KEPT = "kept"
CACHE_REPLACED = "replaced"
CACHE_BASELINE = "baseline"
CACHE_NONE = "none"


@dataclass(slots=True)
class CycleOutcome:
    """Everything one cycle decided, for the host and for reporting."""

    validation: str
    cache_action: str
    transitions: list[BoardEvent]
    revealed: list[CardState]
    available_matches: list[MatchCandidate]
    action: Action | None


@dataclass(slots=True)
class MatchCycleWorkflow:
    """Glue between the layout cache, the board memory and the selector.

    Attributes:
        store:                Persisted layout cache.
        validator:            Cached-vs-observed comparator.
        memory:               Per-region card state.
        min_baseline_regions: Smallest observation stored as a first layout.
    """

    store: LayoutStore
    validator: LayoutValidator
    memory: BoardMemory
    min_baseline_regions: int = 2

    @classmethod
    def build(
        cls,
        layout_config: LayoutCacheConfig | None = None,
        validator_config: ValidatorConfig | None = None,
        board_config: BoardConfig | None = None,
        store_config: StoreConfig | None = None,
    ) -> MatchCycleWorkflow:
        """Wire a workflow from configuration (Redis or in-memory backend)."""
        layout_config = layout_config or LayoutCacheConfig()
        storage = RedisMemory.from_config(store_config, namespace=layout_config.key_prefix)
        return cls(
            store=LayoutStore(storage, layout_config),
            validator=LayoutValidator.from_config(validator_config),
            memory=BoardMemory.from_config(board_config),
            min_baseline_regions=max(1, layout_config.min_baseline_regions),
        )

    # ── Cache policy ────────────────────────────────────────────────

    def _apply_cache_policy(
        self,
        validation: str,
        regions: list[Region],
        cached: BoardLayout | None,
        screen_width: int,
        screen_height: int,
    ) -> tuple[str, BoardLayout | None]:
        """Return the cache action and the layout this cycle's cards belong to."""
        if validation in (MATCH, PARTIAL_MATCH):
            return CACHE_KEPT, cached
        if validation == MISMATCH:
            saved = self.store.save(regions, screen_width, screen_height)
            return (CACHE_REPLACED, saved) if saved is not None else (CACHE_NONE, None)
        if self.store.is_enabled() and len(regions) >= self.min_baseline_regions:
            saved = self.store.save(regions, screen_width, screen_height)
            return (CACHE_BASELINE, saved) if saved is not None else (CACHE_NONE, None)
        return CACHE_NONE, None

    def _snap_to_cells(
        self,
        observations: Sequence[CardObservation],
        cells: Sequence[Region],
    ) -> list[CardObservation]:
        """Re-key each observation to the first cell it resembles.

        Cells are pairwise dissimilar, so two detections of one card end up
        on the same region and collapse in ingest.
        """
        snapped: list[CardObservation] = []
        for observation in observations:
            if isinstance(observation, CardObservation) and isinstance(observation.region, Region):
                for cell in cells:
                    if is_similar(cell, observation.region, self.store.tolerance):
                        observation = replace(observation, region=cell)
                        break
            snapped.append(observation)
        return snapped

    # ── Cycle ───────────────────────────────────────────────────────

    def run_cycle(
        self,
        observations: Sequence[CardObservation],
        screen_width: int,
        screen_height: int,
    ) -> CycleOutcome:
        observations = list(observations)
        regions = [
            obs.region
            for obs in observations
            if isinstance(obs, CardObservation) and isinstance(obs.region, Region)
        ]

        cached = self.store.layout_for(screen_width, screen_height)
        validation = self.validator.validate(regions, cached.regions if cached is not None else None)
        cache_action, layout = self._apply_cache_policy(
            validation, regions, cached, screen_width, screen_height
        )

        # Without a layout the batch is deduplicated against itself.
        cells = layout.regions if layout is not None else dedupe_regions(regions, self.store.tolerance)
        observations = self._snap_to_cells(observations, cells)

        result = self.memory.ingest(observations)
        return CycleOutcome(
            validation=validation,
            cache_action=cache_action,
            transitions=result.transitions,
            revealed=result.revealed,
            available_matches=result.available_matches,
            action=next_move(self.memory),
        )

    def confirm(self, action: Action) -> None:
        """Report that *action* was carried out on the device."""
        if isinstance(action, Commit):
            self.memory.record_match_committed(action.region_a, action.region_b)
        elif isinstance(action, Flip):
            self.memory.record_move_made()

    def new_game(self) -> None:
        self.memory.reset()


__all__ = [
    "CACHE_BASELINE",
    "CACHE_KEPT",
    "CACHE_NONE",
    "CACHE_REPLACED",
    "CycleOutcome",
    "MatchCycleWorkflow",
]
