from __future__ import annotations

import importlib.util
import json
import logging
import subprocess
import sys
import threading
import time
from typing import Dict, List, Optional, Sequence, Tuple

logger = logging.getLogger("hearcheck.audio.voice")

# Slightly slower than the engine default so single words stay intelligible.
SPEECH_RATE_FACTOR = 0.9

# A terminated word process still alive after this long is killed.
KILL_GRACE_S = 0.5

_LIST_VOICES_SCRIPT = (
    "import json\n"
    "import pyttsx3\n"
    "e=pyttsx3.init()\n"
    "out=[]\n"
    "for v in e.getProperty('voices'):\n"
    "    langs=[l.decode('utf-8','ignore') if isinstance(l,bytes) else str(l) for l in (v.languages or [])]\n"
    "    out.append({'id':str(v.id),'name':str(v.name or ''),'languages':langs})\n"
    "print(json.dumps(out))\n"
)

_SPEAK_SCRIPT = (
    "import sys\n"
    "import pyttsx3\n"
    "voice_id, volume, factor, txt = sys.argv[1], float(sys.argv[2]), float(sys.argv[3]), sys.argv[4]\n"
    "e=pyttsx3.init()\n"
    "if voice_id:\n"
    "    e.setProperty('voice', voice_id)\n"
    "e.setProperty('rate', int(e.getProperty('rate') * factor))\n"
    "e.setProperty('volume', volume)\n"
    "e.say(txt)\n"
    "e.runAndWait()\n"
)

# Names of voices that ship without a usable language tag.
_VOICE_NAME_HINTS: Dict[str, Sequence[str]] = {
    "en": ("english",),
    "he": ("hebrew", "carmit"),
}


def voice_matches(voice: Dict[str, object], language: str) -> bool:
    """True when a voice description (id, name, languages) speaks *language*."""
    lang = language.lower().split("-")[0].split("_")[0]
    for tag in voice.get("languages") or []:
        code = str(tag).lower().replace("_", "-")
        if code == lang or code.startswith(lang + "-"):
            return True
    voice_id = str(voice.get("id", "")).lower()
    if f"{lang}_" in voice_id or f"{lang}-" in voice_id or voice_id.endswith("." + lang):
        return True
    name = str(voice.get("name", "")).lower()
    return any(hint in name or hint in voice_id for hint in _VOICE_NAME_HINTS.get(lang, ()))


class VoiceSynth:
    """Word synthesis through pyttsx3, one short-lived subprocess per word.

    The engine runs out of process so that a crashing platform driver cannot
    take the UI down, and so that ``stop()`` can cut a word off by terminating
    the process.
    """

    def __init__(self, python: Optional[str] = None) -> None:
        self._python = python or sys.executable
        self._proc: Optional[subprocess.Popen] = None
        self._voices: Optional[List[Dict[str, object]]] = None
        self._voices_lock = threading.Lock()
        self._dying: List[Tuple[subprocess.Popen, float]] = []
        self.available = importlib.util.find_spec("pyttsx3") is not None
        if not self.available:
            logger.warning("pyttsx3 not installed: speech test disabled")

    def voices(self) -> List[Dict[str, object]]:
        """Installed voices, listed once. Safe to call from a worker thread."""
        with self._voices_lock:
            if self._voices is None:
                self._voices = self._query_voices()
            return list(self._voices)

    @property
    def voices_loaded(self) -> bool:
        return self._voices is not None

    def voice_for(self, language: str) -> Optional[str]:
        for voice in self.voices():
            if voice_matches(voice, language):
                return str(voice.get("id"))
        return None

    def has_voice(self, language: str) -> bool:
        return self.voice_for(language) is not None

    def speak(self, word: str, language: str, volume: float) -> None:
        if not self.available:
            raise RuntimeError("pyttsx3 not available: install it to use the speech test.")
        self.stop()
        voice_id = self.voice_for(language) or ""
        volume = max(0.0, min(1.0, float(volume)))
        self._proc = subprocess.Popen(
            [self._python, "-c", _SPEAK_SCRIPT, voice_id, f"{volume:.3f}", str(SPEECH_RATE_FACTOR), word],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
        logger.debug("speaking %r (%s) at volume %.2f voice=%s", word, language, volume, voice_id or "default")

    def is_speaking(self) -> bool:
        return self._proc is not None and self._proc.poll() is None

    def stop(self) -> None:
        """Cut the current word off without waiting for the process to exit."""
        proc = self._proc
        self._proc = None
        if proc is not None and proc.poll() is None:
            try:
                proc.terminate()
            except OSError as exc:
                logger.debug("voice process already gone: %s", exc)
            else:
                self._dying.append((proc, time.monotonic() + KILL_GRACE_S))
        self._reap()

    def _reap(self, now: Optional[float] = None) -> None:
        now = time.monotonic() if now is None else now
        alive: List[Tuple[subprocess.Popen, float]] = []
        for proc, deadline in self._dying:
            if proc.poll() is not None:
                continue
            if now < deadline:
                alive.append((proc, deadline))
                continue
            try:
                proc.kill()
            except OSError as exc:
                logger.debug("voice process already gone: %s", exc)
        self._dying = alive

    def _query_voices(self) -> List[Dict[str, object]]:
        if not self.available:
            return []
        try:
            completed = subprocess.run(
                [self._python, "-c", _LIST_VOICES_SCRIPT],
                capture_output=True,
                text=True,
                timeout=15,
                check=True,
            )
            voices = json.loads(completed.stdout or "[]")
        except (subprocess.SubprocessError, OSError, ValueError) as exc:
            logger.warning("Unable to list synthesis voices: %s", exc)
            return []
        logger.info("Found %d synthesis voices", len(voices))
        return voices
