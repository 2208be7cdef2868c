"""Adaptive up/down staircase shared by the tone-based tests.

One state machine, parameterized by step sizes, bounds, a convergence rule
and the exit policies. The clinical test plugs in the Hughson-Westlake rule;
the forced-choice game plugs in the same-level success rule with attempt caps.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence

from ..errors import InvariantError


class Termination(str, Enum):
    CONVERGED = "converged"
    FALLBACK = "fallback"
    CEILING = "ceiling"
    MAX_ATTEMPTS = "max_attempts"
    GAVE_UP = "gave_up"


@dataclass(frozen=True)
class Observation:
    level: float
    heard: bool
    ascending: bool  # response came after a not-heard step up
    at_floor: bool = False


@dataclass(frozen=True)
class Verdict:
    threshold: float
    termination: Termination


ConvergenceRule = Callable[[Sequence[Observation], Observation], Optional[Verdict]]


def hughson_westlake(
    min_hits: int = 2,
    min_points: int = 3,
    fallback_after: int = 6,
) -> ConvergenceRule:
    """Lowest level with *min_hits* heard responses from ascending runs.

    Counted points are every not-heard response plus every heard response that
    closes an ascending run (or lands on the floor, where no further descent is
    possible). Once *fallback_after* points pile up without a qualifying level,
    the level with the most heard points wins (lowest level on ties).
    """

    def counts(obs: Observation) -> bool:
        return (not obs.heard) or obs.ascending or obs.at_floor

    def rule(history: Sequence[Observation], latest: Observation) -> Optional[Verdict]:
        if not (latest.heard and counts(latest)):
            return None
        points = [obs for obs in history if counts(obs)]
        if len(points) < min_points:
            return None
        hits = Counter(obs.level for obs in points if obs.heard)
        levels = sorted({obs.level for obs in points})
        for level in levels:
            if hits[level] >= min_hits:
                return Verdict(level, Termination.CONVERGED)
        if len(points) >= fallback_after:
            best_level, best_hits = latest.level, 0
            for level in levels:
                if hits[level] > best_hits:
                    best_level, best_hits = level, hits[level]
            return Verdict(best_level, Termination.FALLBACK)
        return None

    return rule


def same_level_successes(needed: int = 2) -> ConvergenceRule:
    """Threshold once *needed* successes accumulate at one level."""

    def rule(history: Sequence[Observation], latest: Observation) -> Optional[Verdict]:
        if not latest.heard:
            return None
        successes = sum(1 for obs in history if obs.heard and obs.level == latest.level)
        if successes >= needed:
            return Verdict(latest.level, Termination.CONVERGED)
        return None

    return rule


@dataclass(frozen=True)
class StaircaseConfig:
    rule: ConvergenceRule
    start_level: float = 40.0
    floor: float = -10.0
    ceiling: float = 100.0
    step_down: float = 10.0
    step_up: float = 5.0
    # True: a not-heard response at the top ends the run at the ceiling.
    # False: the level is clamped and the run goes on.
    finalize_at_ceiling: bool = True
    max_failures: Optional[int] = None
    dont_know_step: float = 10.0
    dont_know_limit: int = 3


class Staircase:
    """State of one (ear, frequency) pair while it is under test."""

    def __init__(self, config: StaircaseConfig) -> None:
        if not config.floor <= config.start_level <= config.ceiling:
            raise ValueError("start_level must lie within [floor, ceiling]")
        self.config = config
        self.level = float(config.start_level)
        self.history: List[Observation] = []
        self.presented: List[float] = []
        self.ascending = False
        self.failures = 0
        self.dont_knows = 0
        self.verdict: Optional[Verdict] = None

    @property
    def finished(self) -> bool:
        return self.verdict is not None

    def successes_at(self, level: float) -> int:
        return sum(1 for obs in self.history if obs.heard and obs.level == float(level))

    def respond(self, heard: bool) -> Optional[Verdict]:
        """Apply one response at the current level; return the verdict if the run ended."""
        self._ensure_running()
        cfg = self.config
        level = self.level
        self.presented.append(level)
        obs = Observation(level=level, heard=bool(heard), ascending=self.ascending, at_floor=level <= cfg.floor)
        self.history.append(obs)

        if heard:
            verdict = cfg.rule(self.history, obs)
            if verdict is not None:
                return self._finish(verdict)
            self.ascending = False
            self.level = max(cfg.floor, level - cfg.step_down)
            return None

        self.failures += 1
        raised = level + cfg.step_up
        if raised > cfg.ceiling:
            if cfg.finalize_at_ceiling:
                return self._finish(Verdict(cfg.ceiling, Termination.CEILING))
            raised = cfg.ceiling
        self.level = raised
        self.ascending = True
        if cfg.max_failures is not None and self.failures >= cfg.max_failures:
            return self._finish(Verdict(self.level, Termination.MAX_ATTEMPTS))
        return None

    def dont_know(self) -> Optional[Verdict]:
        """Subject cannot tell: counts as a failure and raises the level by a larger step."""
        self._ensure_running()
        cfg = self.config
        level = self.level
        self.presented.append(level)
        self.history.append(Observation(level=level, heard=False, ascending=self.ascending, at_floor=level <= cfg.floor))
        self.failures += 1
        self.dont_knows += 1
        if self.dont_knows >= cfg.dont_know_limit or level >= cfg.ceiling:
            return self._finish(Verdict(cfg.ceiling, Termination.GAVE_UP))
        self.level = min(cfg.ceiling, level + cfg.dont_know_step)
        self.ascending = True
        if cfg.max_failures is not None and self.failures >= cfg.max_failures:
            return self._finish(Verdict(self.level, Termination.MAX_ATTEMPTS))
        return None

    def _finish(self, verdict: Verdict) -> Verdict:
        self.verdict = verdict
        return verdict

    def _ensure_running(self) -> None:
        if self.verdict is not None:
            raise InvariantError("Staircase already finished.")
