from __future__ import annotations


class HearcheckError(Exception):
    """Base class for the errors raised by hearcheck."""


class AudioUnavailableError(HearcheckError, RuntimeError):
    """No usable audio backend or output device: the test cannot start."""


class VoiceUnavailableError(HearcheckError):
    """No speech synthesis voice matches the requested language.

    Recoverable: the subject may accept the default voice or switch to a
    non-speech mode.
    """

    def __init__(self, language: str) -> None:
        super().__init__(f"No synthesis voice available for language {language!r}.")
        self.language = language


class InvariantError(HearcheckError, RuntimeError):
    """Internal state violated an invariant (programming error)."""
