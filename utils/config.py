"""Runtime configuration dataclasses for the layout cache, validator,
board memory, persistence backend and session loop.

Each dataclass reads its defaults through :data:`utils.flip_config.cfg`
(``FLIPMATCH_*`` env > ``config.yaml`` > built-in default) at construction
time.  Override individual fields when constructing from code (e.g. in
tests).
"""

from __future__ import annotations

from dataclasses import dataclass, field

from utils.flip_config import cfg


@dataclass(slots=True)
class LayoutCacheConfig:
    """Board layout cache settings.

    Attributes:
        enabled:              Default cache toggle when nothing is persisted yet.
        position_tolerance:   Max per-axis difference (px) for two regions to
                              count as the same board cell.
        key_prefix:           Namespace for persisted keys.
        min_baseline_regions: Smallest observation accepted as a first layout.
    """

    enabled: bool = field(default_factory=lambda: cfg.layout.get_bool("enabled", True))
    position_tolerance: int = field(default_factory=lambda: cfg.layout.get_int("position_tolerance", 30))
    key_prefix: str = field(default_factory=lambda: cfg.layout.get_str("key_prefix", "flipmatch"))
    min_baseline_regions: int = field(default_factory=lambda: cfg.layout.get_int("min_baseline_regions", 2))


@dataclass(slots=True)
class ValidatorConfig:
    """Match-rate cutoffs for layout validation.

    ``require_equal_count`` restores the stricter early behaviour where a
    different region count is an immediate mismatch.
    """

    position_tolerance: int = field(default_factory=lambda: cfg.layout.get_int("position_tolerance", 30))
    match_threshold: float = field(default_factory=lambda: cfg.validator.get_float("match_threshold", 0.8))
    partial_threshold: float = field(default_factory=lambda: cfg.validator.get_float("partial_threshold", 0.5))
    require_equal_count: bool = field(default_factory=lambda: cfg.validator.get_bool("require_equal_count", False))


@dataclass(slots=True)
class BoardConfig:
    """Board memory settings."""

    unknown_identity: int = field(default_factory=lambda: cfg.board.get_int("unknown_identity", -1))


@dataclass(slots=True)
class StoreConfig:
    """Key-value backend settings (empty ``redis_url`` = in-process only)."""

    redis_url: str = field(default_factory=lambda: cfg.store.get_str("redis_url", ""))
    ttl_seconds: int = field(default_factory=lambda: cfg.store.get_int("ttl_seconds", 0))


@dataclass(slots=True)
class SessionConfig:
    """Host loop settings.

    Attributes:
        tick_seconds:     Sleep between observation cycles.
        commit_tap_delay: Pause between the two taps of a commit.
        max_ticks:        Stop after this many ticks (``None`` = no limit).
        report_dir:       Directory for JSON run reports (empty = don't write).
        log_level:        Console level installed by the replay entry point.
    """

    tick_seconds: float = field(default_factory=lambda: cfg.session.get_float("tick_seconds", 0.5))
    commit_tap_delay: float = field(default_factory=lambda: cfg.session.get_float("commit_tap_delay", 0.3))
    max_ticks: int | None = field(default_factory=lambda: cfg.session.get_int("max_ticks", 0) or None)
    report_dir: str = field(default_factory=lambda: cfg.session.get_str("report_dir", "").strip())
    log_level: str = field(default_factory=lambda: cfg.session.get_str("log_level", "INFO").upper())
