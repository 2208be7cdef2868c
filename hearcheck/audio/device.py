from __future__ import annotations

import logging
from enum import Enum
from typing import Optional, Protocol

from ..errors import AudioUnavailableError
from .engine import ToneEngine, sd
from .voice import VoiceSynth

logger = logging.getLogger("hearcheck.audio")


class Channel(str, Enum):
    LEFT = "left"
    RIGHT = "right"
    BOTH = "both"
    NONE = "none"


class DeviceState(str, Enum):
    IDLE = "idle"
    PLAYING = "playing"


class StimulusDevice(Protocol):
    """What the controllers need from the audio side."""

    @property
    def state(self) -> DeviceState:
        ...

    def play(self, frequency_hz: float, level: float, channel: Channel, duration_s: float) -> None:
        """Start a stimulus, stopping any previous one first."""

    def stop(self) -> None:
        """Silence whatever is playing; no-op when idle."""

    def speak(self, word: str, language: str, volume: float) -> None:
        ...

    def has_voice(self, language: str) -> bool:
        ...


class AudioDevice:
    """Headphone output: pure tones through sounddevice, words through pyttsx3."""

    CALIBRATION_TONE = (1000.0, 40.0, 2.0)
    HEADPHONE_CHECK_TONE = (1000.0, 50.0, 1.5)

    def __init__(self, engine: ToneEngine, voice: Optional[VoiceSynth] = None) -> None:
        self.engine = engine
        self.voice = voice if voice is not None else VoiceSynth()

    @property
    def state(self) -> DeviceState:
        if self.engine.is_playing() or self.voice.is_speaking():
            return DeviceState.PLAYING
        return DeviceState.IDLE

    def play(self, frequency_hz: float, level: float, channel: Channel, duration_s: float) -> None:
        self.stop()
        self.engine.play_tone(frequency_hz, level, Channel(channel).value, duration_s)

    def stop(self) -> None:
        self.engine.stop()
        self.voice.stop()

    def speak(self, word: str, language: str, volume: float) -> None:
        self.stop()
        self.voice.speak(word, language, volume)

    def has_voice(self, language: str) -> bool:
        return self.voice.has_voice(language)

    # Set-up helpers offered before a test: a comfortable reference tone on both
    # sides, then one tone per side to confirm the headphones are the right way round.
    def play_calibration_tone(self) -> None:
        freq, level, duration = self.CALIBRATION_TONE
        self.play(freq, level, Channel.BOTH, duration)

    def play_headphone_check(self, channel: Channel) -> None:
        freq, level, duration = self.HEADPHONE_CHECK_TONE
        self.play(freq, level, channel, duration)

    def close(self) -> None:
        self.stop()
        self.engine.shutdown_stream()


def open_audio_device(output_device: Optional[int] = None) -> AudioDevice:
    """Build the production device or raise ``AudioUnavailableError``."""
    if sd is None:
        raise AudioUnavailableError("sounddevice/PortAudio not available: audio output is not supported.")
    try:
        devices = sd.query_devices()
    except Exception as exc:
        raise AudioUnavailableError(f"Unable to query audio devices: {exc}") from exc
    outputs = [d for d in devices if d.get("max_output_channels", 0) > 0]
    if not outputs:
        raise AudioUnavailableError("No audio output device found.")
    engine = ToneEngine()
    engine.set_output_device(output_device)
    logger.info("Audio output ready (%d output devices, selected=%s)", len(outputs), output_device)
    return AudioDevice(engine)
