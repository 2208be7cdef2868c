from __future__ import annotations

import random

import matplotlib

matplotlib.use("Agg")

import pytest

from hearcheck.scheduler import VirtualScheduler
from hearcheck.simulation import SilentDevice


class Recorder:
    """Listener that records every ``on_*`` hook it receives."""

    def __init__(self) -> None:
        self.calls = []

    def __getattr__(self, name):
        if not name.startswith("on_"):
            raise AttributeError(name)
        return lambda *args: self.calls.append((name, args))

    def named(self, name):
        return [args for call, args in self.calls if call == name]


@pytest.fixture(autouse=True)
def _isolated_data_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("HEARCHECK_DATA_DIR", str(tmp_path / "appdata"))
    monkeypatch.delenv("HEARCHECK_LANGUAGE", raising=False)
    monkeypatch.delenv("HEARCHECK_LOG_LEVEL", raising=False)


@pytest.fixture
def scheduler():
    return VirtualScheduler()


@pytest.fixture
def device():
    return SilentDevice()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def recorder():
    return Recorder()
