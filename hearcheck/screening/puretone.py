"""Pure-tone air-conduction test (Hughson-Westlake, 10 down / 5 up).

Pairs are tested right ear first, every frequency, then the left ear. Each
trial waits a random inter-stimulus delay, plays the tone and opens the
response window; silence until the window closes counts as not heard.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..audio.device import StimulusDevice
from ..errors import InvariantError
from ..scheduler import Scheduler
from .base import TimedController, Trial, channel_for, new_trial
from .results import EARS, FREQUENCIES, SKIPPED, Ear, Threshold, ThresholdMap
from .staircase import Staircase, StaircaseConfig, Verdict, hughson_westlake


@dataclass(frozen=True)
class PureToneConfig:
    frequencies: Tuple[int, ...] = FREQUENCIES
    ears: Tuple[Ear, ...] = EARS
    start_level: float = 40.0
    floor: float = -10.0
    ceiling: float = 100.0
    step_down: float = 10.0
    step_up: float = 5.0
    tone_duration_s: float = 1.5
    response_window_s: float = 3.5
    isi_min_s: float = 1.0
    isi_max_s: float = 3.0
    pair_pause_s: float = 2.0

    def staircase_config(self) -> StaircaseConfig:
        return StaircaseConfig(
            rule=hughson_westlake(),
            start_level=self.start_level,
            floor=self.floor,
            ceiling=self.ceiling,
            step_down=self.step_down,
            step_up=self.step_up,
            finalize_at_ceiling=True,
        )


class PureToneState(str, Enum):
    IDLE = "idle"
    WAITING = "waiting"  # inter-stimulus delay
    AWAITING_RESPONSE = "awaiting_response"
    BETWEEN_PAIRS = "between_pairs"
    DONE = "done"
    STOPPED = "stopped"


class PureToneController(TimedController):
    """Drives the staircase of every (ear, frequency) pair in order.

    Listener hooks (all optional): ``on_frequency_started(ear, freq)``,
    ``on_level_changed(ear, freq, level)``, ``on_response(trial, heard)``,
    ``on_threshold_captured(ear, freq, value)``, ``on_test_finished(thresholds)``.
    """

    def __init__(
        self,
        device: StimulusDevice,
        scheduler: Scheduler,
        *,
        on_complete: Callable[[ThresholdMap], None],
        config: Optional[PureToneConfig] = None,
        listener: Any = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        super().__init__(
            device,
            scheduler,
            on_complete=on_complete,
            listener=listener,
            rng=rng,
            logger_name="hearcheck.screening.puretone",
        )
        self.config = config or PureToneConfig()
        self.pairs: List[Tuple[Ear, int]] = [(ear, int(f)) for ear in self.config.ears for f in self.config.frequencies]
        self.state = PureToneState.IDLE
        self.thresholds = ThresholdMap(self.config.frequencies, self.config.ears)
        self.verdicts: Dict[Tuple[Ear, int], Optional[Verdict]] = {}
        self.trial: Optional[Trial] = None
        self._pair_index = 0
        self._staircase: Optional[Staircase] = None

    @property
    def current_pair(self) -> Optional[Tuple[Ear, int]]:
        if self._pair_index >= len(self.pairs):
            return None
        return self.pairs[self._pair_index]

    @property
    def staircase(self) -> Optional[Staircase]:
        return self._staircase

    def start(self) -> None:
        if self.state is not PureToneState.IDLE:
            raise InvariantError(f"Pure-tone test cannot start from state {self.state.value!r}.")
        self._log.info("Pure-tone test started: %d pairs", len(self.pairs))
        self._begin_pair()

    def respond(self, heard: bool = True) -> bool:
        """Subject's answer to the tone currently open for response.

        Returns False, with no effect, outside a response window.
        """
        if self.state is not PureToneState.AWAITING_RESPONSE:
            return False
        self._cancel_pending()
        self._apply(bool(heard))
        return True

    def skip(self) -> bool:
        """Abandon the pair under test; its threshold becomes SKIPPED."""
        if self.state not in (PureToneState.WAITING, PureToneState.AWAITING_RESPONSE):
            return False
        self._cancel_pending()
        ear, freq = self.pairs[self._pair_index]
        self._log.info("Pair %s %d Hz skipped", ear.value, freq)
        self.verdicts[(ear, freq)] = None
        self._finish_pair(SKIPPED)
        return True

    def teardown(self) -> None:
        if self.state not in (PureToneState.DONE, PureToneState.STOPPED):
            self.state = PureToneState.STOPPED
        self._staircase = None
        self.trial = None
        super().teardown()

    # ---------------- sequencing ----------------
    def _begin_pair(self) -> None:
        ear, freq = self.pairs[self._pair_index]
        self._staircase = Staircase(self.config.staircase_config())
        self._notify("on_frequency_started", ear, freq)
        self._schedule_trial()

    def _schedule_trial(self) -> None:
        cfg = self.config
        self.state = PureToneState.WAITING
        delay = cfg.isi_min_s + self.rng.random() * (cfg.isi_max_s - cfg.isi_min_s)
        self._schedule(delay, self._present)

    def _present(self) -> None:
        if self._staircase is None:
            raise InvariantError("No staircase for the pair under test.")
        ear, freq = self.pairs[self._pair_index]
        level = self._staircase.level
        self.trial = new_trial(freq, ear, level)
        self._notify("on_level_changed", ear, freq, level)
        self.device.play(freq, level, channel_for(ear), self.config.tone_duration_s)
        self.state = PureToneState.AWAITING_RESPONSE
        self._schedule(self.config.response_window_s, self._on_timeout)

    def _on_timeout(self) -> None:
        self.device.stop()
        self._apply(False)

    def _apply(self, heard: bool) -> None:
        if self._staircase is None or self.trial is None:
            raise InvariantError("Response without a pair under test.")
        trial = self.trial
        self.trial = None
        self._record_response(trial, heard)
        self._notify("on_response", trial, heard)
        verdict = self._staircase.respond(heard)
        if verdict is None:
            self._schedule_trial()
            return
        ear, freq = self.pairs[self._pair_index]
        self._log.info(
            "Threshold %s %d Hz: %.0f dB HL (%s)", ear.value, freq, verdict.threshold, verdict.termination.value
        )
        self.verdicts[(ear, freq)] = verdict
        self._finish_pair(verdict.threshold)

    def _finish_pair(self, value: Threshold) -> None:
        ear, freq = self.pairs[self._pair_index]
        self.thresholds.record(ear, freq, value)
        self._staircase = None
        self.trial = None
        self._notify("on_threshold_captured", ear, freq, value)
        self._pair_index += 1
        if self._pair_index >= len(self.pairs):
            self.state = PureToneState.DONE
            self.thresholds.mark_completed()
            self._log.info("Pure-tone test completed")
            self._notify("on_test_finished", self.thresholds)
            self._complete(self.thresholds)
            return
        self.state = PureToneState.BETWEEN_PAIRS
        self._schedule(self.config.pair_pause_s, self._begin_pair)


# ---------------- practice ----------------
PRACTICE_TONES: Tuple[Tuple[int, float, Ear], ...] = (
    (1000, 50.0, Ear.RIGHT),
    (2000, 45.0, Ear.LEFT),
    (500, 40.0, Ear.RIGHT),
    (4000, 50.0, Ear.LEFT),
)


@dataclass
class PracticeSummary:
    heard: int = 0
    total: int = 0
    skipped: bool = False
    responses: List[bool] = field(default_factory=list)


class PracticeRun(TimedController):
    """A few clearly audible tones so the subject learns the button. Not scored."""

    def __init__(
        self,
        device: StimulusDevice,
        scheduler: Scheduler,
        *,
        on_complete: Callable[[PracticeSummary], None],
        tones=PRACTICE_TONES,
        tone_duration_s: float = 1.5,
        response_window_s: float = 4.0,
        gap_s: float = 1.5,
        listener: Any = None,
    ) -> None:
        super().__init__(device, scheduler, on_complete=on_complete, listener=listener, logger_name="hearcheck.screening.practice")
        self.tones = tuple(tones)
        self.tone_duration_s = tone_duration_s
        self.response_window_s = response_window_s
        self.gap_s = gap_s
        self.summary = PracticeSummary(total=len(self.tones))
        self.awaiting = False
        self._index = 0
        self._started = False

    def start(self) -> None:
        if self._started:
            raise InvariantError("Practice run already started.")
        self._started = True
        self._schedule(self.gap_s, self._present)

    def respond(self) -> bool:
        if not self.awaiting:
            return False
        self._cancel_pending()
        self._advance(True)
        return True

    def skip(self) -> None:
        """Leave the practice run; the summary reports what was done so far."""
        if self._torn_down:
            return
        self.summary.skipped = True
        self._finish()

    def _present(self) -> None:
        freq, level, ear = self.tones[self._index]
        self._notify("on_practice_tone", self._index + 1, len(self.tones))
        self.device.play(freq, level, channel_for(ear), self.tone_duration_s)
        self.awaiting = True
        self._schedule(self.response_window_s, self._on_timeout)

    def _on_timeout(self) -> None:
        self.device.stop()
        self._advance(False)

    def _advance(self, heard: bool) -> None:
        self.awaiting = False
        self.summary.responses.append(heard)
        if heard:
            self.summary.heard += 1
        self._notify("on_practice_response", heard)
        self._index += 1
        if self._index >= len(self.tones):
            self._finish()
            return
        self._schedule(self.gap_s, self._present)

    def _finish(self) -> None:
        self.awaiting = False
        self._log.info("Practice finished: %d/%d heard", self.summary.heard, self.summary.total)
        self._complete(self.summary)
        self._torn_down = True
