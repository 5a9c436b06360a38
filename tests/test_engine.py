from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Sequence

import pytest

from core.board_memory import BoardMemory, CardObservation
from core.layout_validator import LayoutValidator
from memory.layout_store import LayoutStore
from memory.redis_memory import RedisMemory
from orchestrator.engine import Orchestrator
from orchestrator.replay import DryRunTapper, ReplayRecognizer
from utils.config import LayoutCacheConfig, SessionConfig
from utils.region_utils import Region
from workflows.match_cycle_workflow import MatchCycleWorkflow

R1 = Region(100, 100, 50, 80)
R2 = Region(200, 100, 50, 80)


def obs(identity: int, face_up: bool, region: Region) -> CardObservation:
    return CardObservation(identity=identity, is_face_up=face_up, region=region)


class DummyRecognizer:
    def __init__(self, frames: list[Sequence[CardObservation]]) -> None:
        self._frames = frames
        self.calls = 0

    def detect(self) -> tuple[Sequence[CardObservation], int, int]:
        frame = self._frames[min(self.calls, len(self._frames) - 1)]
        self.calls += 1
        return frame, 1080, 1920


class BrokenRecognizer:
    def detect(self) -> tuple[Sequence[CardObservation], int, int]:
        raise RuntimeError("capture failed")


class DummyTapper:
    def __init__(self) -> None:
        self.taps: list[tuple[int, int]] = []

    def tap(self, x: int, y: int) -> None:
        self.taps.append((x, y))


class BrokenTapper:
    def tap(self, x: int, y: int) -> None:
        raise OSError("device offline")


class FakeSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def _make_workflow() -> MatchCycleWorkflow:
    config = LayoutCacheConfig(enabled=True, position_tolerance=30, key_prefix="test", min_baseline_regions=2)
    return MatchCycleWorkflow(
        store=LayoutStore(RedisMemory(namespace="test"), config),
        validator=LayoutValidator(),
        memory=BoardMemory(),
    )


def _session(max_ticks: int = 10, report_dir: str = "") -> SessionConfig:
    return SessionConfig(tick_seconds=0.0, commit_tap_delay=0.3, max_ticks=max_ticks, report_dir=report_dir)


class TestOrchestrator:
    def test_session_clears_board(self, tmp_path: Path) -> None:
        recognizer = DummyRecognizer([
            [obs(5, False, R1), obs(5, False, R2)],
            [obs(5, True, R1), obs(5, False, R2)],
            [obs(5, True, R1), obs(5, True, R2)],
        ])
        tapper = DummyTapper()
        sleep = FakeSleep()
        orchestrator = Orchestrator(
            _make_workflow(), recognizer, tapper, _session(report_dir=str(tmp_path)), sleep=sleep
        )

        report = orchestrator.run()

        assert report["ticks"] == 3
        assert report["completed"] is True
        assert report["action_counts"] == {"flip_unknown": 1, "flip_strategic": 1, "commit": 1}
        assert report["board"]["matches_made"] == 1
        assert report["layout_cache"]["position_count"] == 2
        assert tapper.taps == [R1.center(), R2.center(), R1.center(), R2.center()]
        assert 0.3 in sleep.calls

        files = list(tmp_path.glob("run_report_*.json"))
        assert len(files) == 1
        assert json.loads(files[0].read_text(encoding="utf-8"))["ticks"] == 3

    def test_early_match_does_not_end_session(self) -> None:
        r3 = Region(100, 300, 50, 80)
        r4 = Region(200, 300, 50, 80)
        backs = [obs(-1, False, r3), obs(-1, False, r4)]
        recognizer = DummyRecognizer([
            [obs(-1, False, R1), obs(-1, False, R2), *backs],
            [obs(5, True, R1), obs(-1, False, R2), *backs],
            [obs(5, True, R1), obs(5, True, R2), *backs],
            backs,
        ])
        orchestrator = Orchestrator(
            _make_workflow(), recognizer, DummyTapper(), _session(max_ticks=4), sleep=FakeSleep()
        )

        report = orchestrator.run()

        assert report["board"]["matches_made"] == 1
        assert report["board"]["cards_remaining"] == 2
        assert report["completed"] is False
        assert report["ticks"] == 4

    def test_recognizer_errors_skip_tick(self) -> None:
        orchestrator = Orchestrator(
            _make_workflow(), BrokenRecognizer(), DummyTapper(), _session(max_ticks=2), sleep=FakeSleep()
        )
        report = orchestrator.run()
        assert report["ticks"] == 2
        assert report["failed_ticks"] == 2

    def test_tap_errors_are_not_confirmed(self) -> None:
        workflow = _make_workflow()
        recognizer = DummyRecognizer([[obs(-1, False, R1), obs(-1, False, R2)]])
        orchestrator = Orchestrator(workflow, recognizer, BrokenTapper(), _session(max_ticks=1), sleep=FakeSleep())

        orchestrator.run()

        assert workflow.memory.stats().total_moves == 0

    def test_no_report_file_without_dir(self, tmp_path: Path) -> None:
        recognizer = DummyRecognizer([[obs(-1, False, R1)]])
        orchestrator = Orchestrator(_make_workflow(), recognizer, DummyTapper(), _session(max_ticks=1), sleep=FakeSleep())
        assert orchestrator._write_report_file({"ticks": 1}) is None


class TestReplay:
    def test_replay_payload(self) -> None:
        recognizer = ReplayRecognizer.from_payload({
            "frames": [
                {"width": 1080, "height": 1920, "cards": [
                    {"identity": 5, "face_up": True, "region": [100, 100, 50, 80]},
                    {"identity": 5, "face_up": True, "region": "junk"},
                ]},
                {"width": "bad"},
            ]
        })

        assert len(recognizer.frames) == 1
        observations, width, height = recognizer.detect()
        assert (width, height) == (1080, 1920)
        assert observations == [obs(5, True, R1)]
        # Exhausted captures repeat the last frame.
        assert recognizer.detect()[0] == observations

    def test_dry_run_tapper_records(self, caplog: pytest.LogCaptureFixture) -> None:
        tapper = DryRunTapper()
        with caplog.at_level(logging.INFO, logger="flipmatch"):
            tapper.tap(10, 20)
        assert tapper.taps == [(10, 20)]
        assert [(r.name, r.getMessage()) for r in caplog.records] == [
            ("flipmatch.orchestrator.replay", "tap x=10 y=20")
        ]


def test_transition_summary_counts_kinds() -> None:
    workflow = _make_workflow()
    outcome = workflow.run_cycle([obs(-1, False, R1), obs(5, True, R2)], 1080, 1920)
    assert Orchestrator._format_transitions(outcome.transitions) == "discovered:2"
    assert Orchestrator._format_transitions([]) == "-"
