from __future__ import annotations

import random

import pytest

from hearcheck.audio.device import Channel, DeviceState
from hearcheck.plotting.audiogram_plot import matrix_rows
from hearcheck.screening.game import ForcedChoiceController, GameConfig, GameState
from hearcheck.screening.results import CellState, Ear, GameResult
from hearcheck.screening.staircase import Termination


def make(device, scheduler, recorder=None):
    done = []
    ctrl = ForcedChoiceController(
        device,
        scheduler,
        on_complete=done.append,
        config=GameConfig(frequencies=(1000,), ears=(Ear.RIGHT,)),
        listener=recorder,
        rng=random.Random(3),
    )
    return ctrl, done


def answer(ctrl, scheduler, correct):
    slot = ctrl.layout.correct_slot
    assert ctrl.listen(slot)
    scheduler.advance(1.6)
    assert ctrl.confirm(slot if correct else (slot + 1) % 3)
    scheduler.advance(1.5)


def test_confirm_needs_a_finished_listen(device, scheduler):
    ctrl, _done = make(device, scheduler)
    ctrl.start()
    assert ctrl.state is GameState.CHOOSING
    assert ctrl.confirm(0) is False
    assert ctrl.listen(1) is True
    assert ctrl.state is GameState.LISTENING
    assert ctrl.confirm(1) is False
    assert ctrl.listen(2) is False
    scheduler.advance(1.6)
    assert ctrl.state is GameState.READY
    assert ctrl.can_confirm


def test_only_the_correct_tile_sounds(device, scheduler):
    ctrl, _done = make(device, scheduler)
    ctrl.start()
    correct = ctrl.layout.correct_slot
    ctrl.listen((correct + 1) % 3)
    assert device.plays == []
    scheduler.advance(1.6)
    ctrl.listen(correct)
    assert device.plays == [(1000.0, 40.0, Channel.RIGHT, 1.5)]


def test_confirm_during_a_later_listen_cancels_it(device, scheduler):
    ctrl, _done = make(device, scheduler)
    ctrl.start()
    slot = ctrl.layout.correct_slot
    ctrl.listen(slot)
    scheduler.advance(1.6)
    ctrl.listen(slot)
    assert ctrl.state is GameState.LISTENING
    assert ctrl.confirm(slot) is True
    assert ctrl.state is GameState.FEEDBACK
    assert device.state is DeviceState.IDLE
    assert scheduler.pending() == 1


def test_bad_slot_is_rejected(device, scheduler):
    ctrl, _done = make(device, scheduler)
    ctrl.start()
    with pytest.raises(ValueError):
        ctrl.listen(3)
    with pytest.raises(ValueError):
        ctrl.confirm(-1)


def test_two_successes_at_one_level_settle_the_threshold(device, scheduler, recorder):
    ctrl, done = make(device, scheduler, recorder)
    ctrl.start()
    for correct in (True, False, False):
        answer(ctrl, scheduler, correct)
    slot = ctrl.layout.correct_slot
    ctrl.listen(slot)
    scheduler.advance(1.6)
    ctrl.confirm(slot)
    assert ctrl.thresholds.get(Ear.RIGHT, 1000) == 40
    assert done == []  # completion waits for the feedback pause
    scheduler.advance(1.5)
    assert isinstance(done[0], GameResult)
    assert ctrl.state is GameState.DONE
    matrix = done[0].matrix
    assert matrix.cell(Ear.RIGHT, 1000, 40) is CellState.SUCCESS
    assert matrix.cell(Ear.RIGHT, 1000, 30) is CellState.FAIL
    assert matrix.cell(Ear.RIGHT, 1000, 35) is CellState.FAIL
    assert matrix.cell(Ear.RIGHT, 1000, 60) is CellState.UNKNOWN
    rows = dict(matrix_rows(matrix, Ear.RIGHT, (1000,)))
    assert rows[40.0] == ["✓"]
    assert rows[35.0] == ["✗"]
    assert rows[30.0] == ["✗"]
    assert rows[60.0] == ["?"]
    assert list(rows)[0] == -10.0
    assert [args[1] for args in recorder.named("on_answer")] == [True, False, False, True]


def test_eight_wrong_answers_end_the_pair(device, scheduler):
    ctrl, done = make(device, scheduler)
    ctrl.start()
    for _ in range(8):
        answer(ctrl, scheduler, False)
    assert ctrl.verdicts[(Ear.RIGHT, 1000)].termination is Termination.MAX_ATTEMPTS
    assert done[0].thresholds.get(Ear.RIGHT, 1000) == 80


def test_three_dont_knows_give_up(device, scheduler, recorder):
    ctrl, done = make(device, scheduler, recorder)
    ctrl.start()
    for _ in range(3):
        assert ctrl.dont_know() is True
        scheduler.advance(1.5)
    assert recorder.named("on_louder") == [(50.0,), (60.0,)]
    assert ctrl.verdicts[(Ear.RIGHT, 1000)].termination is Termination.GAVE_UP
    assert done[0].thresholds.get(Ear.RIGHT, 1000) == 100


def test_dont_know_refused_while_listening(device, scheduler):
    ctrl, _done = make(device, scheduler)
    ctrl.start()
    ctrl.listen(0)
    assert ctrl.dont_know() is False


def test_scenes_rotate_each_trial(device, scheduler, recorder):
    ctrl, _done = make(device, scheduler, recorder)
    ctrl.start()
    answer(ctrl, scheduler, True)
    answer(ctrl, scheduler, True)
    scenes = [layout.scene.id for (layout,) in recorder.named("on_trial")]
    assert scenes[:3] == ["dog_doorbell", "treasure_chest", "bird_nest"]
    for (layout,) in recorder.named("on_trial"):
        assert sorted(layout.slots()) == sorted(layout.scene.options)


def test_teardown_mid_listen(device, scheduler):
    ctrl, done = make(device, scheduler)
    ctrl.start()
    ctrl.listen(ctrl.layout.correct_slot)
    ctrl.teardown()
    assert ctrl.state is GameState.STOPPED
    assert scheduler.pending() == 0
    assert device.state is DeviceState.IDLE
    assert done == []
