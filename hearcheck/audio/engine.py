from __future__ import annotations
from typing import Optional, Dict, Any
import logging
import math
import threading

import numpy as np

try:
    import sounddevice as sd
except Exception:  # pragma: no cover - PortAudio missing
    sd = None

logger = logging.getLogger("hearcheck.audio.engine")

FADE_SECONDS = 0.01
MIN_GAIN = 0.00003  # gain at -10 dB HL


def level_to_gain(level_db_hl: float) -> float:
    """Uncalibrated dB HL -> linear gain: 20 dB per decade above -10 dB HL."""
    level = max(-10.0, min(100.0, float(level_db_hl)))
    return float(min(1.0, MIN_GAIN * 10 ** ((level + 10.0) / 20.0)))


class ToneEngine:
    """Sine generator on a sounddevice output stream.

    The stream callback ramps the gain towards its target in FADE_SECONDS so
    that tone onset, offset and ``stop()`` never click. A tone stops by itself
    after its duration.
    """

    def __init__(self, sample_rate: int = 48000) -> None:
        self.sample_rate = int(sample_rate)
        self.output_device_index: Optional[int] = None
        self._stream: Optional[Any] = None
        self._lock = threading.Lock()
        self._phase = 0.0
        self._current_gain = 0.0
        self._target_gain = 0.0
        self._fade_step = 0.0
        self._current_freq = 0.0
        self._channel = "both"
        self._playing = False
        self._active = False
        self._samples_left = 0
        self._channel_map: Dict[str, int] = {"left": 0, "right": 1}
        self._channel_count = 2

    def set_output_device(self, device_index: Optional[int]) -> None:
        idx = None
        if device_index is not None:
            try:
                idx = int(device_index)
            except (TypeError, ValueError):
                idx = None
        if idx != self.output_device_index:
            self.shutdown_stream()
            self.output_device_index = idx

    def play_tone(self, freq_hz: float, level_db_hl: float, channel: str, duration_s: float) -> None:
        if sd is None:
            raise RuntimeError("sounddevice not available: install it to play audio.")
        gain = level_to_gain(level_db_hl)
        fade_samples = max(1, int(self.sample_rate * FADE_SECONDS))
        self._ensure_stream()
        with self._lock:
            self._current_freq = float(freq_hz)
            self._channel = str(channel)
            self._target_gain = gain
            self._fade_step = gain / fade_samples
            self._samples_left = int(self.sample_rate * max(0.0, float(duration_s)))
            self._playing = True
            self._active = True
        logger.debug("tone %.0f Hz %.1f dB HL (%s) for %.2fs", freq_hz, level_db_hl, channel, duration_s)

    def stop(self) -> None:
        with self._lock:
            if not self._playing and not self._active:
                return
            self._playing = False
            self._target_gain = 0.0
            if self._fade_step <= 0.0:
                self._current_gain = 0.0
                self._active = False

    def is_playing(self) -> bool:
        with self._lock:
            return self._active

    def shutdown_stream(self) -> None:
        if self._stream is not None:
            try:
                self._stream.stop()
                self._stream.close()
            except Exception as exc:
                logger.warning("Unable to close the audio stream cleanly: %s", exc)
            finally:
                self._stream = None
                with self._lock:
                    self._current_gain = 0.0
                    self._target_gain = 0.0
                    self._playing = False
                    self._active = False

    def _ensure_stream(self) -> None:
        if self._stream is not None:
            return
        kwargs = {
            'samplerate': int(self.sample_rate),
            'channels': int(self._channel_count),
            'dtype': 'float32',
            'callback': self._callback,
            'blocksize': 256,
            'latency': 'low',
        }
        if self.output_device_index is not None:
            kwargs['device'] = self.output_device_index
        self._stream = sd.OutputStream(**kwargs)
        self._stream.start()

    def _callback(self, outdata, frames, _time, status) -> None:  # pragma: no cover
        if status:
            logger.debug("output stream status: %s", status)
        fade_samples = max(1, int(self.sample_rate * FADE_SECONDS))
        with self._lock:
            if self._playing:
                self._samples_left -= frames
                if self._samples_left <= fade_samples:
                    self._playing = False
                    self._target_gain = 0.0
            freq = self._current_freq
            channel = self._channel
            target_gain = self._target_gain
            current_gain = self._current_gain
            step = self._fade_step
            active = self._active
        if freq <= 0 or not active:
            outdata[:] = 0.0
            return
        idx = np.arange(frames, dtype=np.float32)
        t = (idx + self._phase) / float(self.sample_rate)
        wave = np.sin(2 * math.pi * freq * t)
        if target_gain >= current_gain:
            gains = np.minimum(target_gain, current_gain + step * (idx + 1))
        else:
            gains = np.maximum(target_gain, current_gain - step * (idx + 1))
        current_gain = float(gains[-1])
        buffer = np.zeros((frames, int(self._channel_count)), dtype=np.float32)
        signal = (wave * gains).astype(np.float32)
        if channel in ("left", "both"):
            buffer[:, self._channel_map["left"]] = signal
        if channel in ("right", "both"):
            buffer[:, self._channel_map["right"]] = signal
        outdata[:] = buffer
        with self._lock:
            self._phase = (self._phase + frames) % self.sample_rate
            self._current_gain = current_gain
            if not self._playing and current_gain <= 1e-9:
                self._current_gain = 0.0
                self._active = False
