from __future__ import annotations

import logging
import random
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .audio.device import StimulusDevice
from .errors import InvariantError, VoiceUnavailableError
from .scheduler import Scheduler, TimerHandle
from .screening.base import TimedController
from .screening.game import ForcedChoiceController, GameConfig
from .screening.puretone import PracticeRun, PracticeSummary, PureToneConfig, PureToneController
from .screening.results import ResultKind, ResultsBundle
from .screening.speech import SpeechConfig, SpeechController

logger = logging.getLogger("hearcheck.app")


class Mode(str, Enum):
    PURETONE = "puretone"
    SPEECH = "speech"
    BOTH = "both"
    GAMEMODE = "gamemode"

    @property
    def requires_speech(self) -> bool:
        return self in (Mode.SPEECH, Mode.BOTH)


MODE_PLAN: Dict[Mode, Tuple[ResultKind, ...]] = {
    Mode.PURETONE: (ResultKind.PURETONE,),
    Mode.SPEECH: (ResultKind.SPEECH,),
    Mode.BOTH: (ResultKind.PURETONE, ResultKind.SPEECH),
    Mode.GAMEMODE: (ResultKind.GAMEMODE,),
}


def parse_mode(value: Union[str, Mode]) -> Mode:
    try:
        return Mode(value)
    except ValueError as exc:
        raise InvariantError(f"Unknown test mode {value!r}.") from exc


class TestOrchestrator:
    """Runs the tests of the selected mode one after the other.

    Owns the ``ResultsBundle`` of the session and is its only writer;
    ``on_finished(bundle)`` fires once every test of the mode has reported.
    Selecting a mode again, or ``restart()``, tears the running test down.
    """

    __test__ = False  # not a pytest class

    def __init__(
        self,
        device: StimulusDevice,
        scheduler: Scheduler,
        *,
        language: str = "en",
        on_finished: Optional[Callable[[ResultsBundle], None]] = None,
        listener: Any = None,
        rng: Optional[random.Random] = None,
        puretone_config: Optional[PureToneConfig] = None,
        game_config: Optional[GameConfig] = None,
        speech_config: Optional[SpeechConfig] = None,
        between_tests_s: float = 1.5,
    ) -> None:
        self.device = device
        self.scheduler = scheduler
        self.language = language
        self.listener = listener
        self.rng = rng if rng is not None else random.Random()
        self.puretone_config = puretone_config or PureToneConfig()
        self.game_config = game_config or GameConfig()
        self.speech_config = speech_config or SpeechConfig()
        self.between_tests_s = between_tests_s
        self._on_finished = on_finished

        self.mode: Optional[Mode] = None
        self.bundle = ResultsBundle()
        self.controller: Optional[TimedController] = None
        self.finished = False
        self._plan: List[ResultKind] = []
        self._step = 0
        self._session = 0
        self._allow_default_voice = False
        self._between: Optional[TimerHandle] = None

    @property
    def current_kind(self) -> Optional[ResultKind]:
        if self.mode is None or self._step >= len(self._plan):
            return None
        return self._plan[self._step]

    def voice_available(self) -> bool:
        return self.device.has_voice(self.language)

    def select_mode(self, mode: Union[str, Mode], allow_default_voice: bool = False) -> None:
        """Start a fresh session in *mode*.

        Speech modes raise ``VoiceUnavailableError`` before anything starts when
        the language has no voice, unless the subject agreed to the default one.
        """
        mode = parse_mode(mode)
        self.teardown()
        if mode.requires_speech and not allow_default_voice and not self.voice_available():
            raise VoiceUnavailableError(self.language)
        self.mode = mode
        self.bundle = ResultsBundle()
        self.finished = False
        self._plan = list(MODE_PLAN[mode])
        self._step = 0
        self._session += 1
        self._allow_default_voice = allow_default_voice
        logger.info("Session %d: mode %s (%s)", self._session, mode.value, self.language)
        self._start_current()

    def restart(self) -> None:
        if self.mode is None:
            raise InvariantError("Nothing to restart: no mode selected.")
        self.select_mode(self.mode, allow_default_voice=self._allow_default_voice)

    def teardown(self) -> None:
        """Cancel whatever is running; safe to call at any time."""
        if self._between is not None:
            self._between.cancel()
            self._between = None
        if self.controller is not None:
            self.controller.teardown()
            self.controller = None
        self.device.stop()

    def start_practice(self, on_complete: Callable[[PracticeSummary], None]) -> PracticeRun:
        """Run the practice tones outside any scored session."""
        self.teardown()
        practice = PracticeRun(
            self.device,
            self.scheduler,
            on_complete=on_complete,
            tone_duration_s=self.puretone_config.tone_duration_s,
            listener=self.listener,
        )
        self.controller = practice
        practice.start()
        return practice

    # ---------------- sequencing ----------------
    def _start_current(self) -> None:
        self._between = None
        kind = self._plan[self._step]
        session = self._session

        def on_complete(result: Any) -> None:
            if session != self._session:
                logger.debug("Ignoring completion from a previous session")
                return
            self._on_test_complete(kind, result)

        controller = self._build(kind, on_complete)
        self.controller = controller
        callback = getattr(self.listener, "on_test_started", None)
        if callback is not None:
            callback(kind, controller)
        if isinstance(controller, SpeechController):
            controller.start(self.language, allow_default_voice=self._allow_default_voice)
        else:
            controller.start()

    def _build(self, kind: ResultKind, on_complete: Callable[[Any], None]) -> TimedController:
        common = dict(on_complete=on_complete, listener=self.listener, rng=self.rng)
        if kind is ResultKind.PURETONE:
            return PureToneController(self.device, self.scheduler, config=self.puretone_config, **common)
        if kind is ResultKind.GAMEMODE:
            return ForcedChoiceController(self.device, self.scheduler, config=self.game_config, **common)
        if kind is ResultKind.SPEECH:
            return SpeechController(self.device, self.scheduler, config=self.speech_config, **common)
        raise InvariantError(f"No controller for {kind!r}.")

    def _on_test_complete(self, kind: ResultKind, result: Any) -> None:
        self.bundle.record(kind, result)
        self.controller = None
        self._step += 1
        logger.info("%s finished (%d/%d)", kind.value, self._step, len(self._plan))
        if self._step < len(self._plan):
            self._between = self.scheduler.call_later(self.between_tests_s, self._start_current)
            return
        self.finished = True
        if self._on_finished is not None:
            self._on_finished(self.bundle)
