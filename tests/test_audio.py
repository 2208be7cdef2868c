from __future__ import annotations

import threading
import time

import numpy as np
import pytest

import hearcheck.audio.engine as engine_module
from hearcheck.audio.device import AudioDevice, Channel, DeviceState
from hearcheck.audio.engine import MIN_GAIN, ToneEngine, level_to_gain
from hearcheck.audio.voice import VoiceSynth, voice_matches


def test_gain_rises_twenty_db_per_decade():
    assert level_to_gain(-10) == pytest.approx(MIN_GAIN)
    assert level_to_gain(10) == pytest.approx(MIN_GAIN * 10)
    assert level_to_gain(-40) == level_to_gain(-10)
    assert 0 < level_to_gain(100) <= 1.0
    gains = [level_to_gain(level) for level in range(-10, 101, 5)]
    assert gains == sorted(gains)


@pytest.fixture
def engine(monkeypatch):
    monkeypatch.setattr(engine_module, "sd", object())
    tone = ToneEngine(sample_rate=8000)
    monkeypatch.setattr(tone, "_ensure_stream", lambda: None)
    return tone


def block(tone, frames=400):
    out = np.zeros((frames, 2), dtype=np.float32)
    tone._callback(out, frames, None, None)
    return out


def test_tone_routed_to_one_side(engine):
    engine.play_tone(1000, 60, "left", 1.0)
    out = block(engine)
    assert np.abs(out[:, 0]).max() > 0
    assert np.abs(out[:, 1]).max() == 0


def test_stop_fades_out_and_goes_idle(engine):
    engine.play_tone(500, 60, "both", 5.0)
    block(engine)
    assert engine.is_playing()
    engine.stop()
    engine.stop()
    block(engine)
    assert not engine.is_playing()
    assert np.abs(block(engine)).max() == 0


def test_tone_ends_after_its_duration(engine):
    engine.play_tone(500, 60, "right", 0.1)
    for _ in range(5):
        block(engine)
    assert not engine.is_playing()


def test_play_without_backend_raises(monkeypatch):
    monkeypatch.setattr(engine_module, "sd", None)
    with pytest.raises(RuntimeError):
        ToneEngine().play_tone(1000, 40, "both", 1.0)


@pytest.mark.parametrize(
    "voice, language, expected",
    [
        ({"id": "x", "name": "Zira", "languages": ["en_US"]}, "en", True),
        ({"id": "x", "name": "Zira", "languages": ["en-GB"]}, "he", False),
        ({"id": "HKEY\\TTS_MS_HE-IL_ASAF_11.0", "name": "Asaf", "languages": []}, "he", True),
        ({"id": "com.apple.voice.compact.he-IL.Carmit", "name": "Carmit", "languages": []}, "he", True),
        ({"id": "hebrew", "name": "hebrew", "languages": []}, "he", True),
        ({"id": "german", "name": "German", "languages": ["de"]}, "en", False),
    ],
)
def test_voice_matches(voice, language, expected):
    assert voice_matches(voice, language) is expected


def test_voice_for_picks_the_first_match():
    synth = VoiceSynth()
    synth._voices = [
        {"id": "en-voice", "name": "David", "languages": ["en_US"]},
        {"id": "he-voice", "name": "Carmit", "languages": ["he_IL"]},
    ]
    assert synth.voice_for("he") == "he-voice"
    assert synth.has_voice("en")
    assert not synth.has_voice("fr")


def test_voice_list_is_queried_once_from_several_threads(monkeypatch):
    synth = VoiceSynth()
    calls = []

    def slow_query():
        calls.append(threading.current_thread().name)
        time.sleep(0.05)
        return [{"id": "en-voice", "name": "David", "languages": ["en_US"]}]

    monkeypatch.setattr(synth, "_query_voices", slow_query)
    assert not synth.voices_loaded
    workers = [threading.Thread(target=synth.voices) for _ in range(4)]
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join()
    assert len(calls) == 1
    assert synth.voices_loaded
    assert synth.has_voice("en")


class StubbornProcess:
    """A word process that ignores terminate()."""

    def __init__(self):
        self.terminated = False
        self.killed = False

    def poll(self):
        return 0 if self.killed else None

    def terminate(self):
        self.terminated = True

    def kill(self):
        self.killed = True

    def wait(self, timeout=None):
        raise AssertionError("stop() must not block on the voice process")


def test_voice_stop_returns_without_waiting():
    synth = VoiceSynth()
    proc = StubbornProcess()
    synth._proc = proc
    synth.stop()
    assert proc.terminated
    assert not proc.killed
    assert not synth.is_speaking()
    synth._reap(now=time.monotonic() + 10)
    assert proc.killed
    assert synth._dying == []


class FakeEngine:
    def __init__(self):
        self.tones = []
        self.playing = False
        self.closed = False

    def play_tone(self, freq, level, channel, duration):
        self.tones.append((freq, level, channel, duration))
        self.playing = True

    def stop(self):
        self.playing = False

    def is_playing(self):
        return self.playing

    def shutdown_stream(self):
        self.closed = True


class FakeVoice:
    def __init__(self):
        self.words = []
        self.stops = 0

    def has_voice(self, language):
        return language == "en"

    def speak(self, word, language, volume):
        self.words.append((word, language, volume))

    def is_speaking(self):
        return False

    def stop(self):
        self.stops += 1


def test_audio_device_routes_and_stops():
    tone, voice = FakeEngine(), FakeVoice()
    device = AudioDevice(tone, voice)
    device.play(1000, 40, Channel.RIGHT, 1.5)
    assert tone.tones == [(1000, 40, "right", 1.5)]
    assert device.state is DeviceState.PLAYING
    device.stop()
    device.stop()
    assert device.state is DeviceState.IDLE
    device.speak("cupcake", "en", 0.5)
    assert voice.words == [("cupcake", "en", 0.5)]
    device.play_headphone_check(Channel.LEFT)
    assert tone.tones[-1][2] == "left"
    device.close()
    assert tone.closed
    assert device.has_voice("en") and not device.has_voice("he")
