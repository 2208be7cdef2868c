"""Game mode: the tone staircase as a three-option forced-choice puzzle.

The subject listens to tiles (only the correct one sounds, the others wait just as
long) and then confirms a tile. Two correct confirmations at the same level
settle the threshold.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..audio.device import StimulusDevice
from ..errors import InvariantError
from ..scheduler import Scheduler
from .base import TimedController, Trial, channel_for, new_trial
from .results import EARS, FREQUENCIES, Ear, GameResult, TestMatrix, ThresholdMap
from .scenes import SceneLayout, layout_for
from .staircase import Staircase, StaircaseConfig, Verdict, same_level_successes


@dataclass(frozen=True)
class GameConfig:
    frequencies: Tuple[int, ...] = FREQUENCIES
    ears: Tuple[Ear, ...] = EARS
    start_level: float = 40.0
    floor: float = -10.0
    ceiling: float = 100.0
    step_down: float = 10.0
    step_up: float = 5.0
    successes_needed: int = 2
    max_attempts: int = 8
    dont_know_step: float = 10.0
    dont_know_limit: int = 3
    tone_duration_s: float = 1.5
    listen_margin_s: float = 0.1
    feedback_pause_s: float = 1.5

    def staircase_config(self) -> StaircaseConfig:
        return StaircaseConfig(
            rule=same_level_successes(self.successes_needed),
            start_level=self.start_level,
            floor=self.floor,
            ceiling=self.ceiling,
            step_down=self.step_down,
            step_up=self.step_up,
            finalize_at_ceiling=False,
            max_failures=self.max_attempts,
            dont_know_step=self.dont_know_step,
            dont_know_limit=self.dont_know_limit,
        )


class GameState(str, Enum):
    IDLE = "idle"
    CHOOSING = "choosing"  # board shown, nothing played yet
    LISTENING = "listening"
    READY = "ready"  # at least one tile heard to the end, confirmation allowed
    FEEDBACK = "feedback"
    DONE = "done"
    STOPPED = "stopped"


class ForcedChoiceController(TimedController):
    """Listener hooks: ``on_frequency_started``, ``on_trial(layout)``,
    ``on_listen(slot)``, ``on_listen_finished(slot)``, ``on_answer(slot, correct)``,
    ``on_louder(level)``, ``on_threshold_captured``, ``on_test_finished``."""

    def __init__(
        self,
        device: StimulusDevice,
        scheduler: Scheduler,
        *,
        on_complete: Callable[[GameResult], None],
        config: Optional[GameConfig] = None,
        listener: Any = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        super().__init__(
            device,
            scheduler,
            on_complete=on_complete,
            listener=listener,
            rng=rng,
            logger_name="hearcheck.screening.game",
        )
        self.config = config or GameConfig()
        self.pairs: List[Tuple[Ear, int]] = [(ear, int(f)) for ear in self.config.ears for f in self.config.frequencies]
        self.state = GameState.IDLE
        self.thresholds = ThresholdMap(self.config.frequencies, self.config.ears)
        self.matrix = TestMatrix(self.config.frequencies, self.config.ears)
        self.verdicts: Dict[Tuple[Ear, int], Verdict] = {}
        self.layout: Optional[SceneLayout] = None
        self.trial: Optional[Trial] = None
        self._pair_index = 0
        self._scene_index = 0
        self._listening_slot: Optional[int] = None
        self._listen_count = 0
        self._staircase: Optional[Staircase] = None

    @property
    def current_pair(self) -> Optional[Tuple[Ear, int]]:
        if self._pair_index >= len(self.pairs):
            return None
        return self.pairs[self._pair_index]

    @property
    def staircase(self) -> Optional[Staircase]:
        return self._staircase

    @property
    def can_confirm(self) -> bool:
        return self.state is GameState.READY or (self.state is GameState.LISTENING and self._listen_count > 0)

    def start(self) -> None:
        if self.state is not GameState.IDLE:
            raise InvariantError(f"Game cannot start from state {self.state.value!r}.")
        self._log.info("Game test started: %d pairs", len(self.pairs))
        self._begin_pair()

    def listen(self, slot: int) -> bool:
        """Listen to a tile. Refused while another tile is still playing."""
        self._check_slot(slot)
        if self.state not in (GameState.CHOOSING, GameState.READY):
            return False
        self.device.stop()
        self.state = GameState.LISTENING
        self._listening_slot = slot
        self._notify("on_listen", slot)
        if slot == self.layout.correct_slot:
            ear, freq = self.pairs[self._pair_index]
            self.device.play(freq, self._staircase.level, channel_for(ear), self.config.tone_duration_s)
        self._schedule(self.config.tone_duration_s + self.config.listen_margin_s, self._listen_finished)
        return True

    def confirm(self, slot: int) -> bool:
        """Commit to a tile; needs at least one tile heard to the end in this trial."""
        self._check_slot(slot)
        if not self.can_confirm:
            return False
        self._cancel_pending()
        self._listening_slot = None
        correct = slot == self.layout.correct_slot
        level = self._staircase.level
        ear, freq = self.pairs[self._pair_index]
        self.matrix.mark(ear, freq, level, correct)
        self._record_response(self.trial, correct)
        self._notify("on_answer", slot, correct)
        self._after_answer(self._staircase.respond(correct))
        return True

    def dont_know(self) -> bool:
        """The subject cannot tell which tile sounds: louder next time."""
        if self.state not in (GameState.CHOOSING, GameState.READY):
            return False
        self._cancel_pending()
        level = self._staircase.level
        ear, freq = self.pairs[self._pair_index]
        self.matrix.mark(ear, freq, level, False)
        self._record_response(self.trial, False)
        verdict = self._staircase.dont_know()
        if verdict is None:
            self._notify("on_louder", self._staircase.level)
        self._after_answer(verdict)
        return True

    def teardown(self) -> None:
        if self.state not in (GameState.DONE, GameState.STOPPED):
            self.state = GameState.STOPPED
        self._staircase = None
        super().teardown()

    # ---------------- sequencing ----------------
    def _check_slot(self, slot: int) -> None:
        if slot not in (0, 1, 2):
            raise ValueError(f"slot must be 0, 1 or 2, got {slot!r}")

    def _begin_pair(self) -> None:
        ear, freq = self.pairs[self._pair_index]
        self._staircase = Staircase(self.config.staircase_config())
        self._notify("on_frequency_started", ear, freq)
        self._present_trial()

    def _present_trial(self) -> None:
        if self._staircase is None:
            raise InvariantError("No staircase for the pair under test.")
        ear, freq = self.pairs[self._pair_index]
        self.layout = layout_for(self._scene_index, self.rng)
        self._scene_index += 1
        self.trial = new_trial(freq, ear, self._staircase.level)
        self._listen_count = 0
        self.state = GameState.CHOOSING
        self._notify("on_trial", self.layout)

    def _listen_finished(self) -> None:
        slot = self._listening_slot
        self._listening_slot = None
        self._listen_count += 1
        self.state = GameState.READY
        self._notify("on_listen_finished", slot)

    def _after_answer(self, verdict: Optional[Verdict]) -> None:
        self.state = GameState.FEEDBACK
        if verdict is None:
            self._schedule(self.config.feedback_pause_s, self._present_trial)
            return
        ear, freq = self.pairs[self._pair_index]
        self._log.info(
            "Game threshold %s %d Hz: %.0f dB HL (%s)", ear.value, freq, verdict.threshold, verdict.termination.value
        )
        self.verdicts[(ear, freq)] = verdict
        self.thresholds.record(ear, freq, verdict.threshold)
        self._staircase = None
        self._notify("on_threshold_captured", ear, freq, verdict.threshold)
        self._schedule(self.config.feedback_pause_s, self._next_pair)

    def _next_pair(self) -> None:
        self._pair_index += 1
        if self._pair_index < len(self.pairs):
            self._begin_pair()
            return
        self.state = GameState.DONE
        self.layout = None
        self.trial = None
        self.thresholds.mark_completed()
        result = GameResult(thresholds=self.thresholds, matrix=self.matrix)
        self._log.info("Game test completed")
        self._notify("on_test_finished", self.thresholds)
        self._complete(result)
