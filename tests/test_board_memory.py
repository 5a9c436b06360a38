from __future__ import annotations

from core.board_memory import (
    DISCOVERED,
    FLIPPED_DOWN,
    FLIPPED_UP,
    RELABELED,
    BoardMemory,
    CardObservation,
)
from utils.region_utils import Region

R1 = Region(100, 100, 50, 80)
R2 = Region(200, 100, 50, 80)
R3 = Region(300, 100, 50, 80)
R4 = Region(100, 300, 50, 80)


def up(identity: object, region: Region, confidence: float = 0.9) -> CardObservation:
    return CardObservation(identity=identity, is_face_up=True, region=region, confidence=confidence)


def down(region: Region) -> CardObservation:
    return CardObservation(identity=-1, is_face_up=False, region=region)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        self.now += 1.0
        return self.now


class TestIngest:
    def test_discovery_events(self) -> None:
        memory = BoardMemory()
        result = memory.ingest([down(R1), up(5, R2)])

        assert [(e.kind, e.region) for e in result.transitions] == [(DISCOVERED, R1), (DISCOVERED, R2)]
        assert [s.region for s in result.revealed] == [R2]
        assert result.available_matches == []

    def test_flip_up_then_down(self) -> None:
        memory = BoardMemory()
        memory.ingest([down(R1)])

        result = memory.ingest([up(5, R1)])
        assert [e.kind for e in result.transitions] == [FLIPPED_UP]
        assert memory.reveal_index() == {5: [R1]}

        result = memory.ingest([down(R1)])
        assert [e.kind for e in result.transitions] == [FLIPPED_DOWN]
        assert memory.reveal_index() == {}
        state = memory.state_of(R1)
        assert state is not None
        assert state.known_identity == 5

    def test_repeat_observation_is_idempotent(self) -> None:
        clock = FakeClock()
        memory = BoardMemory(clock=clock)
        memory.ingest([up(5, R1, confidence=0.5)])

        result = memory.ingest([up(5, R1, confidence=0.8)])

        assert result.transitions == []
        state = memory.state_of(R1)
        assert state is not None
        assert state.confidence == 0.8
        assert state.last_seen_at == 2.0
        assert memory.reveal_index() == {5: [R1]}

    def test_relabel_moves_bucket(self) -> None:
        memory = BoardMemory()
        memory.ingest([up(5, R1)])

        result = memory.ingest([up(7, R1)])

        assert len(result.transitions) == 1
        event = result.transitions[0]
        assert event.kind == RELABELED
        assert event.previous_identity == 5
        assert memory.reveal_index() == {7: [R1]}

    def test_unknown_face_up_is_not_indexed(self) -> None:
        memory = BoardMemory()
        result = memory.ingest([up(-1, R1)])
        assert result.revealed == []
        assert memory.reveal_index() == {}

    def test_duplicate_region_last_write_wins(self) -> None:
        memory = BoardMemory()
        result = memory.ingest([up(5, R1), up(7, R1)])
        assert len(result.transitions) == 1
        assert memory.reveal_index() == {7: [R1]}

    def test_malformed_entries_are_skipped(self) -> None:
        memory = BoardMemory()
        bad_size = CardObservation(identity=5, is_face_up=True, region=Region(0, 0, 0, 10))
        unhashable = CardObservation(identity=[5], is_face_up=True, region=R2)
        result = memory.ingest([bad_size, unhashable, "junk", up(5, R1)])  # type: ignore[list-item]
        assert [e.region for e in result.transitions] == [R1]

    def test_confidence_is_clamped(self) -> None:
        memory = BoardMemory()
        memory.ingest([up(5, R1, confidence=3.0), up(6, R2, confidence=float("nan"))])
        first, second = memory.state_of(R1), memory.state_of(R2)
        assert first is not None and first.confidence == 1.0
        assert second is not None and second.confidence == 0.0

    def test_order_independent(self) -> None:
        a, b = BoardMemory(), BoardMemory()
        a.ingest([up(5, R1), down(R2), up(5, R3)])
        b.ingest([up(5, R3), down(R2), up(5, R1)])
        assert {s.region for s in a.revealed()} == {s.region for s in b.revealed()}
        assert len(a.available_matches()) == len(b.available_matches()) == 1


class TestMatches:
    def test_pair_is_available(self) -> None:
        memory = BoardMemory()
        result = memory.ingest([up(5, R1), up(5, R2)])
        assert len(result.available_matches) == 1
        match = result.available_matches[0]
        assert (match.region_a, match.region_b, match.identity) == (R1, R2, 5)

    def test_matches_sorted_by_identity(self) -> None:
        memory = BoardMemory()
        memory.ingest([up(9, R1), up(9, R2), up(3, R3), up(3, R4)])
        assert [m.identity for m in memory.available_matches()] == [3, 9]

    def test_three_of_a_kind_reports_all_pairs(self) -> None:
        memory = BoardMemory()
        memory.ingest([up(5, R1), up(5, R2), up(5, R3)])
        pairs = [(m.region_a, m.region_b) for m in memory.available_matches()]
        assert pairs == [(R1, R2), (R1, R3), (R2, R3)]

    def test_commit_removes_regions(self) -> None:
        memory = BoardMemory()
        memory.ingest([up(5, R1), up(5, R2), down(R3)])

        memory.record_match_committed(R1, R2)

        assert memory.available_matches() == []
        assert memory.reveal_index() == {}
        assert memory.state_of(R1) is None
        assert memory.is_matched(R1) is True
        stats = memory.stats()
        assert stats.matches_made == 1
        assert stats.total_moves == 1
        assert stats.cards_remaining == 1

    def test_matched_region_observations_are_ignored(self) -> None:
        memory = BoardMemory()
        memory.ingest([up(5, R1), up(5, R2)])
        memory.record_match_committed(R1, R2)

        result = memory.ingest([up(5, R1)])

        assert result.transitions == []
        assert memory.state_of(R1) is None


class TestLifecycle:
    def test_is_complete(self) -> None:
        memory = BoardMemory()
        assert memory.is_complete() is True
        memory.ingest([down(R3)])
        assert memory.is_complete() is True
        memory.ingest([up(5, R1)])
        assert memory.is_complete() is False

    def test_stats(self) -> None:
        memory = BoardMemory()
        memory.ingest([up(5, R1), down(R2), up(7, R3)])
        memory.ingest([down(R3)])
        memory.record_move_made()

        stats = memory.stats()
        assert stats.total_moves == 1
        assert stats.matches_made == 0
        assert stats.cards_remaining == 3
        assert stats.revealed_count == 1
        assert stats.known_identity_count == 2

    def test_reset(self) -> None:
        memory = BoardMemory()
        memory.ingest([up(5, R1), up(5, R2)])
        memory.record_match_committed(R1, R2)
        memory.reset()

        assert memory.stats().total_moves == 0
        assert memory.is_matched(R1) is False
        result = memory.ingest([up(5, R1)])
        assert [e.kind for e in result.transitions] == [DISCOVERED]

    def test_revealed_returns_copies(self) -> None:
        memory = BoardMemory()
        memory.ingest([up(5, R1)])
        memory.revealed()[0].identity = 99
        assert memory.reveal_index() == {5: [R1]}

    def test_from_config_sentinel(self) -> None:
        from utils.config import BoardConfig

        memory = BoardMemory.from_config(BoardConfig(unknown_identity=0))
        memory.ingest([up(0, R1)])
        assert memory.revealed() == []
