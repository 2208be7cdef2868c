from __future__ import annotations

import itertools
import logging
import random
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from ..audio.device import Channel, StimulusDevice
from ..scheduler import Scheduler, TimerHandle
from .results import Ear

_stimulus_ids = itertools.count(1)


@dataclass(frozen=True)
class Trial:
    frequency_hz: float
    ear: Ear
    level: float  # dB HL, or volume fraction for speech
    stimulus_id: int


@dataclass(frozen=True)
class Response:
    trial: Trial
    heard: bool
    timestamp: float


def new_trial(frequency_hz: float, ear: Ear, level: float) -> Trial:
    return Trial(float(frequency_hz), ear, float(level), next(_stimulus_ids))


def channel_for(ear: Ear) -> Channel:
    return {Ear.RIGHT: Channel.RIGHT, Ear.LEFT: Channel.LEFT, Ear.BOTH: Channel.BOTH}[ear]


class TimedController:
    """Common plumbing of the test controllers.

    Owns at most one pending timer. Every state change that abandons the
    current trial goes through ``_cancel_pending`` so that the timer and any
    playing stimulus are dropped together.
    """

    def __init__(
        self,
        device: StimulusDevice,
        scheduler: Scheduler,
        *,
        on_complete: Callable[[Any], None],
        listener: Any = None,
        rng: Optional[random.Random] = None,
        logger_name: str = "hearcheck.screening",
    ) -> None:
        self.device = device
        self.scheduler = scheduler
        self.listener = listener
        self.rng = rng if rng is not None else random.Random()
        self._on_complete = on_complete
        self._pending: Optional[TimerHandle] = None
        self._torn_down = False
        self.responses: List[Response] = []
        self._log = logging.getLogger(logger_name)

    def teardown(self) -> None:
        """Stop everything; the controller cannot be resumed afterwards."""
        self._torn_down = True
        self._cancel_pending()

    def _schedule(self, delay_s: float, callback: Callable[[], None]) -> None:
        if self._torn_down:
            return
        if self._pending is not None:
            self._pending.cancel()

        def _fire() -> None:
            self._pending = None
            callback()

        self._pending = self.scheduler.call_later(delay_s, _fire)

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
        self.device.stop()

    def _record_response(self, trial: Trial, heard: bool) -> Response:
        response = Response(trial=trial, heard=bool(heard), timestamp=self.scheduler.now())
        self.responses.append(response)
        return response

    def _complete(self, result: Any) -> None:
        self._cancel_pending()
        self._on_complete(result)

    def _notify(self, name: str, *args: Any) -> None:
        callback = getattr(self.listener, name, None)
        if callback is None:
            return
        callback(*args)
