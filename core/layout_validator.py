"""Layout validation — is the cached card grid still the one on screen?

Compares freshly observed regions against the cached layout and classifies
the relationship as one of:

* ``"match"``          enough cached cells were observed again,
* ``"partial_match"``  most cells were observed (transient misses),
* ``"mismatch"``       the board geometry has drifted,
* ``"no_cache"``       there is nothing to compare against.

A cached region counts as matched when *any* observed region is similar to
it under the per-axis tolerance of :func:`utils.region_utils.is_similar`.

Maintainer notes
-----------------
* The cutoffs are policy, not constants.  Defaults are ``0.8`` / ``0.5``;
  earlier tuning used ``0.9`` / ``0.7`` together with an exact count check,
  which is available as ``require_equal_count``.
* The validator only classifies.  What to do with the cache afterwards is
  the caller's decision (see ``workflows.match_cycle_workflow``).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from utils.config import ValidatorConfig
from utils.region_utils import Region, is_similar

_log = logging.getLogger("flipmatch.core.layout_validator")

MATCH = "match"
PARTIAL_MATCH = "partial_match"
MISMATCH = "mismatch"
NO_CACHE = "no_cache"

VALIDATION_RESULTS = (MATCH, PARTIAL_MATCH, MISMATCH, NO_CACHE)


@dataclass(slots=True)
class ValidationReport:
    """Outcome of one comparison.

    Attributes:
        result:         One of :data:`VALIDATION_RESULTS`.
        matched:        Cached regions that found an observed counterpart.
        expected:       Number of cached regions.
        observed:       Number of observed regions.
        match_rate:     ``matched / expected`` (``0.0`` without a cache).
    """

    result: str
    matched: int
    expected: int
    observed: int
    match_rate: float


class LayoutValidator:
    """Tolerance-based comparator between observed and cached regions."""

    def __init__(
        self,
        tolerance: int = 30,
        match_threshold: float = 0.8,
        partial_threshold: float = 0.5,
        require_equal_count: bool = False,
    ) -> None:
        self.tolerance = max(0, int(tolerance))
        self.match_threshold = min(max(float(match_threshold), 0.0), 1.0)
        self.partial_threshold = min(max(float(partial_threshold), 0.0), self.match_threshold)
        self.require_equal_count = bool(require_equal_count)

    @classmethod
    def from_config(cls, config: ValidatorConfig | None = None) -> LayoutValidator:
        config = config or ValidatorConfig()
        return cls(
            tolerance=config.position_tolerance,
            match_threshold=config.match_threshold,
            partial_threshold=config.partial_threshold,
            require_equal_count=config.require_equal_count,
        )

    def classify(self, match_rate: float) -> str:
        """Map a match rate onto a result using the configured cutoffs."""
        if match_rate >= self.match_threshold:
            return MATCH
        if match_rate >= self.partial_threshold:
            return PARTIAL_MATCH
        return MISMATCH

    def evaluate(
        self,
        observed: Sequence[Region],
        cached: Sequence[Region] | None,
    ) -> ValidationReport:
        observed_count = len(observed)
        if not cached:
            return ValidationReport(NO_CACHE, 0, 0, observed_count, 0.0)

        expected = len(cached)
        if self.require_equal_count and observed_count != expected:
            _log.debug("region count changed: %d observed vs %d cached", observed_count, expected)
            return ValidationReport(MISMATCH, 0, expected, observed_count, 0.0)

        matched = 0
        for cached_region in cached:
            if any(is_similar(cached_region, region, self.tolerance) for region in observed):
                matched += 1

        match_rate = matched / expected
        result = self.classify(match_rate)
        _log.debug(
            "layout validation: %d/%d matched (%.0f%%) -> %s",
            matched, expected, match_rate * 100, result,
        )
        return ValidationReport(result, matched, expected, observed_count, match_rate)

    def validate(
        self,
        observed: Sequence[Region],
        cached: Sequence[Region] | None,
    ) -> str:
        """Return one of :data:`VALIDATION_RESULTS`."""
        return self.evaluate(observed, cached).result
