"""Session orchestrator — the host loop around the match cycle workflow.

Each tick captures one frame through the recognizer, runs
:meth:`MatchCycleWorkflow.run_cycle`, executes the chosen action through the
tapper and reports it back.  Accumulates telemetry (actions by kind,
validation results, cache actions) and writes a JSON report on exit.

Every engine call happens on this loop's thread, so ingest → select →
confirm is serialised for free.

Configuration (``FLIPMATCH_SESSION_*`` env or ``session:`` in config.yaml)
---------------------------------------------------------------------------
``tick_seconds``      Sleep between ticks (default ``0.5``).
``commit_tap_delay``  Pause between the two taps of a commit (default ``0.3``).
``max_ticks``         Maximum loop iterations (``0`` = infinite).
``report_dir``        Directory for JSON run reports.
``replay_file``       Capture file driven by :func:`main`.
``log_level``         Console level for :func:`main` (``DEBUG`` shows every tick).
"""

from __future__ import annotations

import json
import os
import time
from collections import Counter
from dataclasses import asdict
from typing import Any, Callable

from core.board_memory import BoardEvent
from core.move_selector import Action, Commit, Flip
from utils.config import SessionConfig
from utils.flip_config import cfg
from utils.logger import FlipLogger, install_console_handler
from workflows.match_cycle_workflow import CycleOutcome, MatchCycleWorkflow
from workflows.protocol import SupportsRecognizer, SupportsTapper

_log = FlipLogger("Session")


class Orchestrator:
    """Single-threaded observe → decide → tap loop."""

    def __init__(
        self,
        workflow: MatchCycleWorkflow,
        recognizer: SupportsRecognizer,
        tapper: SupportsTapper,
        config: SessionConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.workflow = workflow
        self.recognizer = recognizer
        self.tapper = tapper
        self.config = config or SessionConfig()
        self._sleep = sleep
        self._running = False

    # ── Single tick ─────────────────────────────────────────────────

    def _execute(self, action: Action) -> bool:
        """Tap *action* on the device.  ``True`` when every tap went through."""
        try:
            if isinstance(action, Commit):
                self.tapper.tap(*action.region_a.center())
                self._sleep(self.config.commit_tap_delay)
                self.tapper.tap(*action.region_b.center())
            else:
                self.tapper.tap(*action.region.center())
        except Exception as error:
            _log.error(f"tap_error={type(error).__name__}: {error}")
            return False
        return True

    def tick(self) -> CycleOutcome | None:
        """Run one cycle.  Returns ``None`` when the capture failed."""
        try:
            observations, screen_width, screen_height = self.recognizer.detect()
        except Exception as error:
            _log.error(f"recognizer_error={type(error).__name__}: {error}")
            return None

        outcome = self.workflow.run_cycle(observations, screen_width, screen_height)
        if outcome.action is not None and self._execute(outcome.action):
            self.workflow.confirm(outcome.action)
        return outcome

    @staticmethod
    def _format_action(action: Action | None) -> str:
        if isinstance(action, Commit):
            return f"commit identity={action.identity} a={action.region_a.center()} b={action.region_b.center()}"
        if isinstance(action, Flip):
            return f"flip reason={action.reason} at={action.region.center()}"
        return "wait"

    @staticmethod
    def _format_transitions(transitions: list[BoardEvent]) -> str:
        """Compact ``kind:count`` summary, e.g. ``flipped_up:1,discovered:4``."""
        if not transitions:
            return "-"
        counts = Counter(event.kind for event in transitions)
        return ",".join(f"{kind}:{count}" for kind, count in counts.items())

    # ── Reporting ───────────────────────────────────────────────────

    def _write_report_file(self, report: dict[str, Any]) -> str | None:
        """Persist *report* as JSON under ``report_dir``. Return path or ``None``."""
        report_dir = self.config.report_dir
        if not report_dir:
            return None

        try:
            os.makedirs(report_dir, exist_ok=True)
            timestamp = time.strftime("%Y%m%d_%H%M%S")
            millis = int((time.time() % 1) * 1000)
            filename = f"run_report_{timestamp}_{millis:03d}.json"
            file_path = os.path.join(report_dir, filename)
            with open(file_path, "w", encoding="utf-8") as report_file:
                json.dump(report, report_file, ensure_ascii=False, indent=2)
            return file_path
        except OSError as error:
            _log.error(f"report_write_error={error}")
            return None

    # ── Loop ────────────────────────────────────────────────────────

    def run(self) -> dict[str, Any]:
        """Enter the tick loop and return (and optionally write) the run report."""
        self._running = True
        _log.highlight("running match session")
        tick_count = 0
        failed_ticks = 0
        action_counts: dict[str, int] = {}
        validation_counts: dict[str, int] = {}
        cache_action_counts: dict[str, int] = {}
        completed = False
        started_at = time.perf_counter()

        try:
            while self._running:
                outcome = self.tick()
                tick_count += 1

                if outcome is None:
                    failed_ticks += 1
                else:
                    validation_counts[outcome.validation] = validation_counts.get(outcome.validation, 0) + 1
                    cache_action_counts[outcome.cache_action] = cache_action_counts.get(outcome.cache_action, 0) + 1
                    if isinstance(outcome.action, Commit):
                        kind = "commit"
                    elif isinstance(outcome.action, Flip):
                        kind = f"flip_{outcome.action.reason}"
                    else:
                        kind = "wait"
                    action_counts[kind] = action_counts.get(kind, 0) + 1
                    _log.status(
                        f"tick={tick_count} layout={outcome.validation} cache={outcome.cache_action} "
                        f"events={self._format_transitions(outcome.transitions)} "
                        f"revealed={len(outcome.revealed)} action={self._format_action(outcome.action)}"
                    )

                memory = self.workflow.memory
                if memory.matches_made > 0 and memory.stats().cards_remaining == 0:
                    _log.success(f"board cleared after {memory.matches_made} matches")
                    completed = True
                    self.stop()
                    break

                if self.config.max_ticks is not None and tick_count >= self.config.max_ticks:
                    _log.info(f"reached max ticks={self.config.max_ticks}. stopping loop")
                    self.stop()
                    break
                self._sleep(self.config.tick_seconds)
        except KeyboardInterrupt:
            _log.warn("interrupted by user. stopping loop")
            self.stop()

        duration_seconds = time.perf_counter() - started_at
        report = {
            "ticks": tick_count,
            "failed_ticks": failed_ticks,
            "completed": completed,
            "action_counts": action_counts,
            "validation_counts": validation_counts,
            "cache_action_counts": cache_action_counts,
            "board": asdict(self.workflow.memory.stats()),
            "layout_cache": asdict(self.workflow.store.cache_stats()),
            "duration_seconds": round(duration_seconds, 3),
        }
        _log.success(f"run_report={json.dumps(report, ensure_ascii=False)}")
        report_file = self._write_report_file(report)
        if report_file is not None:
            _log.info(f"run_report_file={report_file}")
        return report

    def stop(self) -> None:
        """Signal the tick loop to exit after the current iteration."""
        self._running = False


def main() -> None:
    """CLI entry-point: replay a capture file through a dry-run tapper."""
    from orchestrator.replay import DryRunTapper, ReplayRecognizer

    config = SessionConfig()
    install_console_handler(config.log_level)

    replay_file = cfg.session.get_str("replay_file")
    if not replay_file:
        _log.error("no capture file: set FLIPMATCH_SESSION_REPLAY_FILE or session.replay_file")
        return

    recognizer = ReplayRecognizer.from_file(replay_file)
    if config.max_ticks is None:
        config.max_ticks = len(recognizer.frames)
    Orchestrator(
        workflow=MatchCycleWorkflow.build(),
        recognizer=recognizer,
        tapper=DryRunTapper(),
        config=config,
    ).run()


if __name__ == "__main__":
    main()
