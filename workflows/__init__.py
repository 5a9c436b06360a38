from __future__ import annotations

from typing import Any

__all__ = ["CycleOutcome", "MatchCycleWorkflow"]


def __getattr__(name: str) -> Any:
	if name in {"CycleOutcome", "MatchCycleWorkflow"}:
		from .match_cycle_workflow import CycleOutcome, MatchCycleWorkflow

		return {"CycleOutcome": CycleOutcome, "MatchCycleWorkflow": MatchCycleWorkflow}[name]
	raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
