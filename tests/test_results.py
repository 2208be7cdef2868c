from __future__ import annotations

import pytest

from hearcheck.errors import InvariantError
from hearcheck.screening.results import (
    SKIPPED,
    Ear,
    GameResult,
    ResultKind,
    ResultsBundle,
    SpeechSummary,
    TestMatrix,
    ThresholdMap,
    VolumeScore,
)


def test_threshold_written_once():
    tm = ThresholdMap((1000, 2000))
    tm.record(Ear.RIGHT, 1000, 25)
    with pytest.raises(InvariantError):
        tm.record(Ear.RIGHT, 1000, 30)
    assert tm.get(Ear.RIGHT, 1000) == 25.0


@pytest.mark.parametrize("value", [-15, 105])
def test_threshold_out_of_range_rejected(value):
    tm = ThresholdMap((1000,))
    with pytest.raises(InvariantError):
        tm.record(Ear.LEFT, 1000, value)


def test_unknown_pair_rejected():
    tm = ThresholdMap((1000,))
    with pytest.raises(InvariantError):
        tm.record(Ear.RIGHT, 750, 10)
    with pytest.raises(InvariantError):
        tm.record(Ear.BOTH, 1000, 10)


def test_skipped_pairs_stay_out_of_numeric_values():
    tm = ThresholdMap((500, 1000))
    tm.record(Ear.RIGHT, 500, SKIPPED)
    tm.record(Ear.RIGHT, 1000, 20)
    assert tm.numeric(Ear.RIGHT) == {1000: 20.0}
    assert tm.skipped(Ear.RIGHT) == [500]
    assert not tm.complete


def test_bundle_entries_written_once_with_matching_type():
    bundle = ResultsBundle()
    assert bundle.is_empty()
    tm = ThresholdMap((1000,))
    bundle.record(ResultKind.PURETONE, tm)
    with pytest.raises(InvariantError):
        bundle.record(ResultKind.PURETONE, ThresholdMap((1000,)))
    with pytest.raises(InvariantError):
        bundle.record(ResultKind.SPEECH, tm)
    summary = SpeechSummary(language="en", by_volume={1.0: VolumeScore(5, 5)}, threshold=1.0)
    bundle.record(ResultKind.SPEECH, summary)
    assert bundle.kinds() == [ResultKind.PURETONE, ResultKind.SPEECH]
    assert ResultKind.GAMEMODE not in bundle
    assert bundle.puretone is tm
    assert bundle.speech is summary


def test_tone_results_order():
    bundle = ResultsBundle()
    game = GameResult(thresholds=ThresholdMap((1000,)), matrix=TestMatrix((1000,)))
    bundle.record(ResultKind.GAMEMODE, game)
    pure = ThresholdMap((1000,))
    bundle.record(ResultKind.PURETONE, pure)
    assert [kind for kind, _tm in bundle.tone_results()] == [ResultKind.PURETONE, ResultKind.GAMEMODE]


def test_volume_score_accuracy():
    assert VolumeScore(3, 4).accuracy == 0.75
    assert VolumeScore().accuracy == 0.0
