"""Speech reception test: a fixed sweep from loud to quiet, four-way choice.

Every volume gets the same number of words and the sweep always runs to the
end; the threshold is derived once from the per-volume scores.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ..audio.device import DeviceState, StimulusDevice
from ..errors import InvariantError, VoiceUnavailableError
from ..scheduler import Scheduler
from .base import TimedController, Trial, new_trial
from .results import Ear, SpeechSummary, VolumeScore, speech_threshold
from .words import vocabulary

VOLUMES: Tuple[float, ...] = (1.0, 0.8, 0.6, 0.4, 0.3, 0.2, 0.15, 0.1)


@dataclass(frozen=True)
class SpeechConfig:
    volumes: Tuple[float, ...] = VOLUMES
    words_per_volume: int = 5
    option_count: int = 4
    speak_delay_s: float = 1.0
    answer_pause_s: float = 0.8
    # Answers open this long after the word starts, and only once the voice is quiet.
    answer_grace_s: float = 0.3
    speech_timeout_s: float = 4.0
    speech_poll_s: float = 0.1

    @property
    def total_words(self) -> int:
        return len(self.volumes) * self.words_per_volume


class SpeechState(str, Enum):
    IDLE = "idle"
    SHOWING = "showing"  # options visible, word not spoken yet
    SPEAKING = "speaking"
    AWAITING_ANSWER = "awaiting_answer"
    FEEDBACK = "feedback"
    DONE = "done"
    STOPPED = "stopped"


def build_options(
    target: str, words: Sequence[str], distractors: Sequence[str], rng: random.Random, count: int = 4
) -> List[str]:
    """Target plus ``count - 1`` other words, shuffled. Never repeats an option."""
    pool: List[str] = []
    for word in list(distractors) + list(words):
        if word != target and word not in pool:
            pool.append(word)
    options = [target] + rng.sample(pool, count - 1)
    rng.shuffle(options)
    return options


class SpeechController(TimedController):
    """Listener hooks: ``on_word(options, volume, index, total)``,
    ``on_spoken(volume)``, ``on_answer(index, correct)``, ``on_test_finished``."""

    def __init__(
        self,
        device: StimulusDevice,
        scheduler: Scheduler,
        *,
        on_complete: Callable[[SpeechSummary], None],
        config: Optional[SpeechConfig] = None,
        listener: Any = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        super().__init__(
            device,
            scheduler,
            on_complete=on_complete,
            listener=listener,
            rng=rng,
            logger_name="hearcheck.screening.speech",
        )
        self.config = config or SpeechConfig()
        self.state = SpeechState.IDLE
        self.language: Optional[str] = None
        self.by_volume: Dict[float, VolumeScore] = {}
        self.test_words: List[str] = []
        self.options: List[str] = []
        self.word: Optional[str] = None
        self.trial: Optional[Trial] = None
        self._index = 0
        self._spoken_at = 0.0
        self._distractors: Tuple[str, ...] = ()
        self._vocabulary: Tuple[str, ...] = ()

    @property
    def volume(self) -> float:
        return self.config.volumes[min(self._index // self.config.words_per_volume, len(self.config.volumes) - 1)]

    @property
    def progress(self) -> Tuple[int, int]:
        return self._index, self.config.total_words

    def start(self, language: str, allow_default_voice: bool = False) -> None:
        """Begin the sweep.

        Raises ``VoiceUnavailableError`` when no voice speaks *language* and the
        subject has not agreed to continue with the default voice.
        """
        if self.state is not SpeechState.IDLE:
            raise InvariantError(f"Speech test cannot start from state {self.state.value!r}.")
        try:
            words, distractors = vocabulary(language)
        except KeyError as exc:
            raise InvariantError(str(exc)) from exc
        if len(words) < self.config.total_words:
            raise InvariantError(f"{len(words)} words available, {self.config.total_words} needed.")
        if not self.device.has_voice(language):
            if not allow_default_voice:
                raise VoiceUnavailableError(language)
            self._log.warning("No %r voice installed, using the default voice", language)
        self.language = language
        self._vocabulary = words
        self._distractors = distractors
        self.test_words = self.rng.sample(list(words), self.config.total_words)
        self.by_volume = {v: VolumeScore() for v in self.config.volumes}
        self._log.info("Speech test started (%s, %d words)", language, self.config.total_words)
        self._next_word()

    def answer(self, index: int) -> bool:
        """Pick option *index*; only after the word has been spoken."""
        if self.state is not SpeechState.AWAITING_ANSWER:
            return False
        if not 0 <= index < len(self.options):
            raise ValueError(f"option index {index} out of range")
        self._cancel_pending()
        correct = self.options[index] == self.word
        score = self.by_volume[self.trial.level]
        score.total += 1
        if correct:
            score.correct += 1
        self._record_response(self.trial, correct)
        self._notify("on_answer", index, correct)
        self.state = SpeechState.FEEDBACK
        self._index += 1
        self._schedule(self.config.answer_pause_s, self._next_word)
        return True

    def replay(self) -> bool:
        """Say the word again at the same volume; answers close until it is over."""
        if self.state is not SpeechState.AWAITING_ANSWER:
            return False
        self._speak()
        return True

    def teardown(self) -> None:
        if self.state not in (SpeechState.DONE, SpeechState.STOPPED):
            self.state = SpeechState.STOPPED
        super().teardown()

    def _next_word(self) -> None:
        if self._index >= self.config.total_words:
            self._finish()
            return
        volume = self.volume
        self.word = self.test_words[self._index]
        self.options = build_options(self.word, self._vocabulary, self._distractors, self.rng, self.config.option_count)
        self.trial = new_trial(0.0, Ear.BOTH, volume)
        self.state = SpeechState.SHOWING
        self._notify("on_word", list(self.options), volume, self._index, self.config.total_words)
        self._schedule(self.config.speak_delay_s, self._speak)

    def _speak(self) -> None:
        self.device.speak(self.word, self.language, self.trial.level)
        self.state = SpeechState.SPEAKING
        self._spoken_at = self.scheduler.now()
        self._schedule(self.config.answer_grace_s, self._open_answers)

    def _open_answers(self) -> None:
        elapsed = self.scheduler.now() - self._spoken_at
        if self.device.state is DeviceState.PLAYING:
            if elapsed < self.config.speech_timeout_s:
                self._schedule(self.config.speech_poll_s, self._open_answers)
                return
            self._log.warning("Voice still busy after %.1f s, accepting answers anyway", elapsed)
        self.state = SpeechState.AWAITING_ANSWER
        self._notify("on_spoken", self.trial.level)

    def _finish(self) -> None:
        self.state = SpeechState.DONE
        self.word = None
        self.options = []
        self.trial = None
        by_volume = {v: VolumeScore(s.correct, s.total) for v, s in self.by_volume.items() if s.total > 0}
        summary = SpeechSummary(language=self.language, by_volume=by_volume, threshold=speech_threshold(by_volume))
        self._log.info("Speech test completed, threshold volume %s", summary.threshold)
        self._notify("on_test_finished", summary)
        self._complete(summary)
