from __future__ import annotations

import csv
import os
from datetime import date

import pytest

from hearcheck.export.csv_export import bundle_to_rows, default_filename, export_csv
from hearcheck.export.png import export_graph_png
from hearcheck.screening.results import (
    FREQUENCIES,
    SKIPPED,
    Ear,
    ResultKind,
    ResultsBundle,
    SpeechSummary,
    ThresholdMap,
    VolumeScore,
)


def full_map(value=20.0):
    tm = ThresholdMap()
    for ear in (Ear.RIGHT, Ear.LEFT):
        for f in FREQUENCIES:
            tm.record(ear, f, value)
    return tm


def sample_bundle():
    tm = ThresholdMap()
    for f in FREQUENCIES:
        tm.record(Ear.RIGHT, f, SKIPPED if f == 3000 else 15)
        tm.record(Ear.LEFT, f, 35)
    bundle = ResultsBundle()
    bundle.record(ResultKind.PURETONE, tm)
    bundle.record(
        ResultKind.SPEECH,
        SpeechSummary(
            language="en",
            by_volume={1.0: VolumeScore(5, 5), 0.15: VolumeScore(1, 3)},
            threshold=1.0,
        ),
    )
    return bundle


def test_rows_layout():
    rows = bundle_to_rows(sample_bundle())
    assert rows[0] == ["Pure Tone Audiogram"]
    assert rows[1] == ["Frequency (Hz)", "Right Ear (dB HL)", "Left Ear (dB HL)"]
    assert rows[2] == ["250", "15", "35"]
    assert ["3000", "SKIP", "35"] in rows
    blank = rows.index([])
    assert blank == 2 + len(FREQUENCIES)
    assert rows[blank + 1] == ["Speech Recognition Test"]
    assert rows[blank + 2] == ["Speech Recognition Threshold", "100%"]
    assert rows[blank + 4] == ["Volume Level (%)", "Correct", "Total", "Accuracy (%)"]
    assert rows[blank + 5] == ["100", "5", "5", "100.0"]
    assert rows[blank + 6] == ["15", "1", "3", "33.3"]


def test_game_section_title():
    from hearcheck.screening.results import GameResult, TestMatrix

    bundle = ResultsBundle()
    bundle.record(ResultKind.GAMEMODE, GameResult(thresholds=full_map(), matrix=TestMatrix()))
    assert bundle_to_rows(bundle)[0] == ["Game Mode Audiogram"]


def test_empty_bundle_cannot_be_exported(tmp_path):
    with pytest.raises(ValueError):
        export_csv(ResultsBundle(), str(tmp_path / "out.csv"))


def test_export_to_directory_uses_dated_name(tmp_path):
    path = export_csv(sample_bundle(), str(tmp_path))
    assert os.path.basename(path) == default_filename("csv")
    with open(path, encoding="utf-8", newline="") as handle:
        rows = list(csv.reader(handle))
    assert rows[0] == ["Pure Tone Audiogram"]


def test_default_filename():
    assert default_filename("png", date(2024, 3, 9)) == "hearing-test-2024-03-09.png"


def test_png_export(tmp_path):
    out = export_graph_png(sample_bundle(), str(tmp_path / "charts" / "result.png"))
    assert os.path.getsize(out) > 0
    with open(out, "rb") as handle:
        assert handle.read(8) == b"\x89PNG\r\n\x1a\n"
