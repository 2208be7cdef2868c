from __future__ import annotations

import csv
import io
import logging
import os
from datetime import date
from typing import List, Optional, Sequence

from ..screening.results import FREQUENCIES, SKIPPED, Ear, ResultKind, ResultsBundle, SpeechSummary, ThresholdMap

logger = logging.getLogger("hearcheck.export")

SKIP_TOKEN = "SKIP"
TONE_HEADER = ["Frequency (Hz)", "Right Ear (dB HL)", "Left Ear (dB HL)"]
SPEECH_HEADER = ["Volume Level (%)", "Correct", "Total", "Accuracy (%)"]
SECTION_TITLES = {
    ResultKind.PURETONE: "Pure Tone Audiogram",
    ResultKind.GAMEMODE: "Game Mode Audiogram",
    ResultKind.SPEECH: "Speech Recognition Test",
}


def default_filename(ext: str, day: Optional[date] = None) -> str:
    day = day or date.today()
    return f"hearing-test-{day.isoformat()}.{ext}"


def _fmt_number(value: float) -> str:
    return f"{value:g}"


def _fmt_threshold(value) -> str:
    if value is None or value is SKIPPED:
        return SKIP_TOKEN
    return _fmt_number(float(value))


def _tone_rows(title: str, thresholds: ThresholdMap, freqs: Sequence[int]) -> List[List[str]]:
    rows = [[title], list(TONE_HEADER)]
    for f in freqs:
        rows.append([str(f), _fmt_threshold(thresholds.get(Ear.RIGHT, f)), _fmt_threshold(thresholds.get(Ear.LEFT, f))])
    return rows


def _speech_rows(summary: SpeechSummary) -> List[List[str]]:
    srt = "n/a" if summary.threshold is None else f"{round(summary.threshold * 100)}%"
    rows = [[SECTION_TITLES[ResultKind.SPEECH]], ["Speech Recognition Threshold", srt], [], list(SPEECH_HEADER)]
    for volume in sorted(summary.by_volume, reverse=True):
        score = summary.by_volume[volume]
        rows.append([
            _fmt_number(round(volume * 100, 1)),
            str(score.correct),
            str(score.total),
            f"{score.accuracy * 100:.1f}",
        ])
    return rows


def bundle_to_rows(bundle: ResultsBundle, freqs: Sequence[int] = FREQUENCIES) -> List[List[str]]:
    """One section per completed test, separated by an empty row.

    Raises ``ValueError`` when the bundle holds no result at all.
    """
    if bundle.is_empty():
        raise ValueError("No results to export.")
    sections: List[List[List[str]]] = []
    for kind, thresholds in bundle.tone_results():
        sections.append(_tone_rows(SECTION_TITLES[kind], thresholds, freqs))
    if bundle.speech is not None:
        sections.append(_speech_rows(bundle.speech))
    rows: List[List[str]] = []
    for i, section in enumerate(sections):
        if i:
            rows.append([])
        rows.extend(section)
    return rows


def bundle_to_csv(bundle: ResultsBundle, freqs: Sequence[int] = FREQUENCIES) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerows(bundle_to_rows(bundle, freqs))
    return buf.getvalue()


def export_csv(bundle: ResultsBundle, out_path: str) -> str:
    """Write the bundle to *out_path* (a directory gets the dated default name)."""
    if os.path.isdir(out_path):
        out_path = os.path.join(out_path, default_filename("csv"))
    text = bundle_to_csv(bundle)
    directory = os.path.dirname(out_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(out_path, "w", encoding="utf-8", newline="") as f:
        f.write(text)
    logger.info("Results exported to %s", out_path)
    return out_path
