from __future__ import annotations

import random

import pytest

from hearcheck.app_controller import Mode, TestOrchestrator, parse_mode
from hearcheck.errors import InvariantError, VoiceUnavailableError
from hearcheck.screening.game import ForcedChoiceController, GameConfig
from hearcheck.screening.puretone import PracticeRun, PureToneConfig, PureToneController, PureToneState
from hearcheck.screening.results import Ear, ResultKind
from hearcheck.screening.speech import SpeechConfig, SpeechController
from hearcheck.simulation import SilentDevice


class Subject:
    """Hears nothing, answers every word with the first option."""

    def __init__(self, scheduler):
        self.scheduler = scheduler
        self.orchestrator = None
        self.started = []

    def on_test_started(self, kind, controller):
        self.started.append((kind, self.scheduler.now()))

    def on_spoken(self, volume):
        ctrl = self.orchestrator.controller
        self.scheduler.call_later(0.2, lambda: ctrl.answer(0))

    def on_trial(self, layout):
        ctrl = self.orchestrator.controller
        self.scheduler.call_later(0.2, ctrl.dont_know)


def make(device, scheduler):
    finished = []
    subject = Subject(scheduler)
    orch = TestOrchestrator(
        device,
        scheduler,
        on_finished=finished.append,
        listener=subject,
        rng=random.Random(2),
        puretone_config=PureToneConfig(frequencies=(1000,)),
        game_config=GameConfig(frequencies=(1000,), ears=(Ear.RIGHT,)),
        speech_config=SpeechConfig(volumes=(1.0, 0.5), words_per_volume=2),
    )
    subject.orchestrator = orch
    return orch, subject, finished


def test_puretone_mode_records_one_result(device, scheduler):
    orch, subject, finished = make(device, scheduler)
    orch.select_mode(Mode.PURETONE)
    assert isinstance(orch.controller, PureToneController)
    scheduler.run_until_idle()
    assert len(finished) == 1
    assert finished[0].kinds() == [ResultKind.PURETONE]
    assert orch.finished
    assert orch.controller is None


def test_both_runs_puretone_then_speech(device, scheduler):
    orch, subject, finished = make(device, scheduler)
    orch.select_mode("both")
    scheduler.run_until_idle()
    bundle = finished[0]
    assert bundle.kinds() == [ResultKind.PURETONE, ResultKind.SPEECH]
    assert [kind for kind, _t in subject.started] == [ResultKind.PURETONE, ResultKind.SPEECH]
    assert bundle.puretone.completed_at is not None
    assert sum(s.total for s in bundle.speech.by_volume.values()) == 4


def test_gamemode_records_game_result(device, scheduler):
    orch, _subject, finished = make(device, scheduler)
    orch.select_mode(Mode.GAMEMODE)
    assert isinstance(orch.controller, ForcedChoiceController)
    scheduler.run_until_idle()
    assert finished[0].kinds() == [ResultKind.GAMEMODE]
    assert finished[0].gamemode.thresholds.get(Ear.RIGHT, 1000) == 100


def test_speech_modes_check_the_voice_first(scheduler):
    device = SilentDevice(voices=set())
    orch, _subject, finished = make(device, scheduler)
    for mode in (Mode.SPEECH, Mode.BOTH):
        with pytest.raises(VoiceUnavailableError):
            orch.select_mode(mode)
        assert orch.controller is None
        assert orch.mode is None
    orch.select_mode(Mode.SPEECH, allow_default_voice=True)
    assert isinstance(orch.controller, SpeechController)
    scheduler.run_until_idle()
    assert finished[0].kinds() == [ResultKind.SPEECH]


def test_switching_mode_tears_down_the_running_test(device, scheduler):
    orch, _subject, finished = make(device, scheduler)
    orch.select_mode(Mode.PURETONE)
    first = orch.controller
    scheduler.advance(3.0)
    orch.select_mode(Mode.GAMEMODE)
    assert first.state is PureToneState.STOPPED
    scheduler.run_until_idle()
    assert len(finished) == 1
    assert finished[0].kinds() == [ResultKind.GAMEMODE]


def test_restart_begins_a_fresh_bundle(device, scheduler):
    orch, _subject, finished = make(device, scheduler)
    with pytest.raises(InvariantError):
        orch.restart()
    orch.select_mode(Mode.PURETONE)
    scheduler.run_until_idle()
    first_bundle = finished[0]
    orch.restart()
    assert orch.bundle is not first_bundle
    assert orch.bundle.is_empty()
    scheduler.run_until_idle()
    assert len(finished) == 2


def test_teardown_between_tests_cancels_the_next_one(device, scheduler):
    orch, subject, finished = make(device, scheduler)
    orch.select_mode(Mode.BOTH)
    while ResultKind.PURETONE not in orch.bundle:
        scheduler.advance(1.0)
    orch.teardown()
    scheduler.run_until_idle()
    assert [kind for kind, _t in subject.started] == [ResultKind.PURETONE]
    assert finished == []


def test_practice_is_not_scored(device, scheduler):
    orch, _subject, _finished = make(device, scheduler)
    summaries = []
    practice = orch.start_practice(summaries.append)
    assert isinstance(practice, PracticeRun)
    scheduler.run_until_idle()
    assert summaries[0].heard == 0
    assert orch.bundle.is_empty()


def test_parse_mode():
    assert parse_mode("gamemode") is Mode.GAMEMODE
    assert Mode.BOTH.requires_speech and not Mode.PURETONE.requires_speech
    with pytest.raises(InvariantError):
        parse_mode("loud")
