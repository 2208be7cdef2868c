from __future__ import annotations

import random
from collections import Counter

import pytest

from hearcheck.errors import InvariantError
from hearcheck.screening.game import GameConfig
from hearcheck.screening.puretone import PureToneConfig
from hearcheck.screening.staircase import (
    Staircase,
    StaircaseConfig,
    Termination,
    hughson_westlake,
    same_level_successes,
)


def run(staircase, listener, limit=200):
    for _ in range(limit):
        verdict = staircase.respond(listener(staircase.level))
        if verdict is not None:
            return verdict
    raise AssertionError("staircase did not terminate")


def hw():
    return Staircase(PureToneConfig().staircase_config())


def test_always_heard_descends_to_floor():
    staircase = hw()
    verdict = run(staircase, lambda level: True)
    assert verdict.threshold == -10
    assert verdict.termination is Termination.CONVERGED
    assert staircase.presented == [40, 30, 20, 10, 0, -10, -10, -10]


def test_never_heard_stops_at_ceiling():
    staircase = hw()
    verdict = run(staircase, lambda level: False)
    assert verdict.threshold == 100
    assert verdict.termination is Termination.CEILING
    assert staircase.presented == [float(level) for level in range(40, 101, 5)]


def test_fixed_listener_converges_on_its_threshold():
    staircase = hw()
    verdict = run(staircase, lambda level: level >= 25)
    assert verdict.threshold == 25
    assert verdict.termination is Termination.CONVERGED
    # two ascending hits at the threshold level
    hits = [obs for obs in staircase.history if obs.heard and obs.ascending and obs.level == 25]
    assert len(hits) >= 2


def test_fallback_picks_most_heard_level_lowest_on_ties():
    staircase = hw()
    verdict = None
    for heard in [False, True, False, True, False, True]:
        verdict = staircase.respond(heard)
    assert verdict.termination is Termination.FALLBACK
    assert verdict.threshold == 35


@pytest.mark.parametrize("seed", range(25))
def test_random_listener_terminates_inside_bounds(seed):
    r = random.Random(seed)
    staircase = hw()
    verdict = run(staircase, lambda level: r.random() < 0.5)
    assert all(-10 <= level <= 100 for level in staircase.presented)
    assert -10 <= verdict.threshold <= 100
    # heard responses closing an ascending run, or landing on the floor
    hits = Counter(obs.level for obs in staircase.history if obs.heard and (obs.ascending or obs.at_floor))
    qualifying = sorted(level for level, count in hits.items() if count >= 2)
    if verdict.termination is Termination.CONVERGED:
        assert qualifying[0] == verdict.threshold
    elif verdict.termination is Termination.FALLBACK:
        assert qualifying == []
    else:
        assert verdict.termination is Termination.CEILING
        assert staircase.presented[-1] == 100


def test_respond_after_finish_raises():
    staircase = hw()
    run(staircase, lambda level: False)
    with pytest.raises(InvariantError):
        staircase.respond(True)


def test_start_level_outside_bounds_rejected():
    with pytest.raises(ValueError):
        Staircase(StaircaseConfig(rule=hughson_westlake(), start_level=120))


def game():
    return Staircase(GameConfig().staircase_config())


def test_game_two_successes_at_same_level():
    staircase = game()
    assert staircase.respond(True) is None  # 40 -> 30
    assert staircase.respond(False) is None  # 30 -> 35
    assert staircase.respond(False) is None  # 35 -> 40
    verdict = staircase.respond(True)
    assert verdict.threshold == 40
    assert verdict.termination is Termination.CONVERGED
    assert staircase.successes_at(40) == 2


def test_game_always_correct_reaches_floor():
    staircase = game()
    verdict = run(staircase, lambda level: True)
    assert verdict.threshold == -10
    assert staircase.presented == [40, 30, 20, 10, 0, -10, -10]


@pytest.mark.parametrize("seed", range(25))
def test_game_threshold_recorded_only_on_two_successes_at_one_level(seed):
    r = random.Random(seed)
    staircase = game()
    verdict = None
    for _ in range(200):
        roll = r.random()
        if roll < 0.15:
            verdict = staircase.dont_know()
        else:
            verdict = staircase.respond(roll < 0.6)
        if verdict is not None:
            break
    assert verdict is not None
    successes = Counter(obs.level for obs in staircase.history if obs.heard)
    settled = [level for level, count in successes.items() if count >= 2]
    if verdict.termination is Termination.CONVERGED:
        assert settled == [verdict.threshold]
        assert staircase.history[-1].heard and staircase.history[-1].level == verdict.threshold
    else:
        assert settled == []
        assert verdict.termination in (Termination.MAX_ATTEMPTS, Termination.GAVE_UP)
        if verdict.termination is Termination.MAX_ATTEMPTS:
            assert staircase.failures == 8
        else:
            assert staircase.dont_knows == 3 or staircase.history[-1].level >= 100
    assert all(-10 <= level <= 100 for level in staircase.presented)


def test_game_eight_failures_force_exit():
    staircase = game()
    verdict = run(staircase, lambda level: False)
    assert verdict.termination is Termination.MAX_ATTEMPTS
    assert staircase.failures == 8
    assert verdict.threshold == 80


def test_game_three_dont_knows_give_up_at_ceiling():
    staircase = game()
    assert staircase.dont_know() is None
    assert staircase.level == 50
    assert staircase.dont_know() is None
    assert staircase.level == 60
    verdict = staircase.dont_know()
    assert verdict.threshold == 100
    assert verdict.termination is Termination.GAVE_UP


def test_game_dont_know_at_ceiling_gives_up_immediately():
    staircase = Staircase(StaircaseConfig(rule=same_level_successes(), start_level=100, finalize_at_ceiling=False))
    verdict = staircase.dont_know()
    assert verdict.threshold == 100
    assert verdict.termination is Termination.GAVE_UP


def test_game_miss_at_ceiling_is_clamped():
    staircase = Staircase(
        StaircaseConfig(rule=same_level_successes(), start_level=100, finalize_at_ceiling=False, max_failures=8)
    )
    assert staircase.respond(False) is None
    assert staircase.level == 100
    assert not staircase.finished
