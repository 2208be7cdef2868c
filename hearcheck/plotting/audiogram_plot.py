from __future__ import annotations

import os
from typing import Dict, List, Optional, Sequence, Tuple

import matplotlib.ticker as mticker
from matplotlib.figure import Figure

from ..screening.results import (
    FREQUENCIES,
    SKIPPED,
    CellState,
    Ear,
    ResultKind,
    ResultsBundle,
    SpeechSummary,
    TestMatrix,
    ThresholdMap,
)

# Hearing loss zones (dB HL)
BANDS = [
    (-10, 25, "Normal", "#c8e6c9"),
    (25, 40, "Mild", "#fff59d"),
    (40, 55, "Moderate", "#ffe082"),
    (55, 70, "Mod. severe", "#ffccbc"),
    (70, 90, "Severe", "#ef9a9a"),
    (90, 120, "Profound", "#e57373"),
]

SKIP_LEVEL = 50.0  # where SKIP labels sit, off the measured series
SKIP_COLOR = "#888888"

EAR_STYLE = {
    Ear.RIGHT: ("o", "#ff0000", "Right ear"),
    Ear.LEFT: ("x", "#0000ff", "Left ear"),
}

TITLES = {
    ResultKind.PURETONE: "Pure-tone audiogram",
    ResultKind.GAMEMODE: "Game mode audiogram",
}


def split_series(thresholds: ThresholdMap, ear: Ear, freqs: Sequence[int]) -> Tuple[List[List[Tuple[int, float]]], List[int]]:
    """Measured points as runs of consecutive frequencies, plus the skipped frequencies.

    A skipped or missing frequency ends the current run, so the line is broken
    around it instead of being drawn through.
    """
    segments: List[List[Tuple[int, float]]] = []
    skipped: List[int] = []
    current: List[Tuple[int, float]] = []
    for f in freqs:
        value = thresholds.get(ear, f)
        if value is None or value is SKIPPED:
            if value is SKIPPED:
                skipped.append(f)
            if current:
                segments.append(current)
                current = []
            continue
        current.append((f, float(value)))
    if current:
        segments.append(current)
    return segments, skipped


def _init_axes(ax, freqs: Sequence[int], title: Optional[str]) -> None:
    if title:
        ax.set_title(title, pad=14)
    for (y0, y1, label, color) in BANDS:
        ax.axhspan(y0, y1, facecolor=color, alpha=0.9, edgecolor='none')
        ax.text(freqs[0] * 0.9, (y0 + y1) / 2.0, label, va='center', ha='right', fontsize=9, fontweight='bold')
    ax.set_ylim(120, -10)  # -10 at the top
    ax.set_xlim(min(freqs) * 0.9, max(freqs) * 1.2)
    ax.set_xscale('log', base=10)
    ax.set_xticks(list(freqs))
    ax.get_xaxis().set_major_formatter(mticker.ScalarFormatter())
    ax.set_xlabel("Frequency (Hz)")
    ax.set_ylabel("Threshold (dB HL)")
    ax.yaxis.set_major_locator(mticker.MultipleLocator(10))
    ax.yaxis.set_minor_locator(mticker.MultipleLocator(5))
    ax.grid(True, which='major', linestyle='--', alpha=0.5)
    ax.grid(True, which='minor', linestyle=':', alpha=0.35)


def plot_audiogram(ax, thresholds: ThresholdMap, title: Optional[str] = None, freqs: Sequence[int] = FREQUENCIES):
    """Plot one threshold map into an existing Axes. Skipped pairs get a grey SKIP label."""
    _init_axes(ax, freqs, title)
    for offset, ear in enumerate((Ear.RIGHT, Ear.LEFT)):
        if ear not in thresholds.ears:
            continue
        marker, color, label = EAR_STYLE[ear]
        segments, skipped = split_series(thresholds, ear, freqs)
        for i, seg in enumerate(segments):
            xs = [f for f, _ in seg]
            ys = [db for _, db in seg]
            ax.plot(xs, ys, marker=marker, color=color, linewidth=1.5, label=label if i == 0 else None)
        for f in skipped:
            ax.text(f, SKIP_LEVEL + 6 * offset, "SKIP", color=SKIP_COLOR, ha='center', va='center',
                    fontsize=8, fontweight='bold')
    handles, _labels = ax.get_legend_handles_labels()
    if handles:
        ax.legend(loc='lower right')
    return ax


def plot_speech_accuracy(ax, summary: SpeechSummary):
    volumes = sorted(summary.by_volume, reverse=True)
    labels = [f"{v * 100:.0f}%" for v in volumes]
    acc = [summary.by_volume[v].accuracy * 100 for v in volumes]
    colors = ["#27ae60" if a >= 50 else "#e74c3c" for a in acc]
    ax.bar(labels, acc, color=colors)
    ax.axhline(50, linestyle='--', color='#555555', alpha=0.8)
    ax.set_ylim(0, 105)
    ax.set_xlabel("Volume level")
    ax.set_ylabel("Words correct (%)")
    title = "Speech recognition"
    if summary.threshold is not None:
        title += f" - threshold {summary.threshold * 100:.0f}% volume"
    ax.set_title(title, pad=14)
    ax.grid(True, axis='y', linestyle=':', alpha=0.5)
    return ax


def render_results_figure(bundle: ResultsBundle, freqs: Sequence[int] = FREQUENCIES, out_path: Optional[str] = None, dpi: int = 150) -> Figure:
    """One panel per completed test, side by side."""
    panels: List[Tuple[str, object]] = [(TITLES[kind], tm) for kind, tm in bundle.tone_results()]
    if bundle.speech is not None:
        panels.append(("speech", bundle.speech))
    count = max(1, len(panels))
    fig = Figure(figsize=(7.0 * count, 6.5))
    if not panels:
        ax = fig.add_subplot(1, 1, 1)
        ax.text(0.5, 0.5, "No results", ha='center', va='center')
        ax.set_axis_off()
    for i, (title, data) in enumerate(panels):
        ax = fig.add_subplot(1, count, i + 1)
        if isinstance(data, SpeechSummary):
            plot_speech_accuracy(ax, data)
        else:
            plot_audiogram(ax, data, title=title, freqs=freqs)
    fig.tight_layout()
    if out_path:
        directory = os.path.dirname(out_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        fig.savefig(out_path, dpi=dpi)
    return fig


def threshold_rows(thresholds: ThresholdMap, freqs: Sequence[int] = FREQUENCIES) -> Dict[int, Tuple[str, str]]:
    """Display strings per frequency for the result tables: dB value, 'SKIP' or '-'."""
    def fmt(value) -> str:
        if value is None:
            return "-"
        if value is SKIPPED:
            return "SKIP"
        return f"{value:.0f}"

    return {f: (fmt(thresholds.get(Ear.RIGHT, f)), fmt(thresholds.get(Ear.LEFT, f))) for f in freqs}


CELL_SYMBOLS = {
    CellState.SUCCESS: "✓",
    CellState.FAIL: "✗",
    CellState.UNKNOWN: "?",
}


def matrix_rows(matrix: TestMatrix, ear: Ear, freqs: Sequence[int] = FREQUENCIES) -> List[Tuple[float, List[str]]]:
    """One row per level, quietest first like the audiogram, one symbol per frequency."""
    rows: List[Tuple[float, List[str]]] = []
    cells = {f: matrix.row(ear, f) for f in freqs}
    for level in matrix.levels():
        rows.append((level, [CELL_SYMBOLS[cells[f].get(level, CellState.UNKNOWN)] for f in freqs]))
    return rows
