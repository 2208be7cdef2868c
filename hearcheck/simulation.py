"""Headless sessions: a simulated listener on the virtual clock.

Used by ``main.py --simulate`` and by the end-to-end tests.
"""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set, Tuple

import numpy as np

from .app_controller import Mode, TestOrchestrator
from .audio.device import Channel, DeviceState
from .scheduler import VirtualScheduler
from .screening.game import ForcedChoiceController
from .screening.puretone import PureToneController
from .screening.results import ResultsBundle
from .screening.scenes import SceneLayout
from .screening.speech import SpeechController

logger = logging.getLogger("hearcheck.simulation")

SUBJECT_KINDS = ("always", "never", "threshold")

# Mild high-frequency sloping loss, dB HL.
DEFAULT_AUDIOGRAM: Dict[int, float] = {
    250: 10.0, 500: 10.0, 1000: 15.0, 2000: 20.0, 3000: 30.0, 4000: 35.0, 6000: 45.0, 8000: 50.0,
}


class SilentDevice:
    """Stimulus device that makes no sound and keeps a log of what it was asked."""

    def __init__(self, voices: Optional[Set[str]] = None) -> None:
        self.voices = set(voices) if voices is not None else {"en", "he"}
        self.plays: List[Tuple[float, float, Channel, float]] = []
        self.spoken: List[Tuple[str, str, float]] = []
        self.stops = 0
        self.on_play: Optional[Callable[[float, float, Channel], None]] = None
        self.on_speak: Optional[Callable[[str, float], None]] = None
        self._active = False

    @property
    def state(self) -> DeviceState:
        return DeviceState.PLAYING if self._active else DeviceState.IDLE

    def play(self, frequency_hz, level, channel, duration_s) -> None:
        self.stop()
        self._active = True
        self.plays.append((float(frequency_hz), float(level), Channel(channel), float(duration_s)))
        if self.on_play is not None:
            self.on_play(float(frequency_hz), float(level), Channel(channel))

    def stop(self) -> None:
        self.stops += 1
        self._active = False

    def speak(self, word, language, volume) -> None:
        # Words are said instantly: the device is idle again on return.
        self.stop()
        self.spoken.append((word, language, float(volume)))
        if self.on_speak is not None:
            self.on_speak(word, float(volume))

    def has_voice(self, language) -> bool:
        return language in self.voices


@dataclass
class SimulatedSubject:
    """Listener model: fixed answers, or a logistic psychometric function per pair."""

    kind: str = "threshold"
    audiogram: Dict[int, float] = field(default_factory=lambda: dict(DEFAULT_AUDIOGRAM))
    slope: float = 0.5  # per dB
    guess_rate: float = 0.01
    lapse_rate: float = 0.01
    speech_midpoint: float = 0.3  # volume fraction at 50 % words understood
    rng: random.Random = field(default_factory=random.Random)

    def __post_init__(self) -> None:
        if self.kind not in SUBJECT_KINDS:
            raise ValueError(f"kind must be one of {SUBJECT_KINDS}, got {self.kind!r}")

    def detection_probability(self, freq_hz: float, level: float) -> float:
        threshold = self.audiogram.get(int(freq_hz), 20.0)
        p = 1.0 / (1.0 + np.exp(-self.slope * (level - threshold)))
        return float(self.guess_rate + (1 - self.guess_rate - self.lapse_rate) * p)

    def hears(self, freq_hz: float, level: float) -> bool:
        if self.kind == "always":
            return True
        if self.kind == "never":
            return False
        return self.rng.random() < self.detection_probability(freq_hz, level)

    def understands(self, volume: float) -> bool:
        if self.kind == "always":
            return True
        if self.kind == "never":
            return False
        p = 1.0 / (1.0 + math.exp(-20.0 * (volume - self.speech_midpoint)))
        return self.rng.random() < p


class HeadlessSession:
    """Wires a simulated subject to the orchestrator through listener hooks."""

    reaction_s = 0.4

    def __init__(
        self,
        subject: SimulatedSubject,
        *,
        language: str = "en",
        seed: Optional[int] = None,
        device: Optional[SilentDevice] = None,
    ) -> None:
        self.subject = subject
        self.scheduler = VirtualScheduler()
        self.device = device or SilentDevice()
        self.device.on_play = self._on_tone
        self.rng = random.Random(seed)
        self.bundle: Optional[ResultsBundle] = None
        self.orchestrator = TestOrchestrator(
            self.device,
            self.scheduler,
            language=language,
            on_finished=self._on_finished,
            listener=self,
            rng=self.rng,
        )
        self._tile_heard = False

    def run(self, mode: Mode, allow_default_voice: bool = False) -> ResultsBundle:
        self.orchestrator.select_mode(mode, allow_default_voice=allow_default_voice)
        fired = self.scheduler.run_until_idle()
        logger.info("Headless %s run: %d timer callbacks, %.0f s virtual time", mode.value, fired, self.scheduler.now())
        if self.bundle is None:
            raise RuntimeError("Session ended without results.")
        return self.bundle

    def _on_finished(self, bundle: ResultsBundle) -> None:
        self.bundle = bundle

    def _later(self, callback: Callable[[], object]) -> None:
        self.scheduler.call_later(self.reaction_s, callback)

    # ---------------- device taps ----------------
    def _on_tone(self, freq_hz: float, level: float, channel: Channel) -> None:
        controller = self.orchestrator.controller
        heard = self.subject.hears(freq_hz, level)
        if isinstance(controller, PureToneController):
            if heard:
                self._later(lambda: controller.respond(True))
        elif isinstance(controller, ForcedChoiceController):
            self._tile_heard = heard

    # ---------------- listener hooks ----------------
    def on_trial(self, layout: SceneLayout) -> None:
        controller = self.orchestrator.controller
        self._later(lambda: controller.listen(0))

    def on_listen(self, slot: int) -> None:
        self._tile_heard = False

    def on_listen_finished(self, slot: int) -> None:
        controller = self.orchestrator.controller
        if not isinstance(controller, ForcedChoiceController):
            return
        if self._tile_heard:
            self._later(lambda: controller.confirm(slot))
        elif slot < 2:
            self._later(lambda: controller.listen(slot + 1))
        elif self.subject.kind == "never":
            self._later(controller.dont_know)
        else:
            guess = self.rng.randrange(3)
            self._later(lambda: controller.confirm(guess))

    def on_spoken(self, volume: float) -> None:
        controller = self.orchestrator.controller
        if not isinstance(controller, SpeechController):
            return
        options = list(controller.options)
        if self.subject.understands(volume):
            choice = options.index(controller.word)
        else:
            choice = self.rng.choice([i for i, w in enumerate(options) if w != controller.word])
        self._later(lambda: controller.answer(choice))

