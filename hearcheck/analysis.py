from __future__ import annotations
from typing import Dict, List, Optional, Sequence

from .screening.results import Ear, SpeechSummary, ThresholdMap


SEVERITY = [
    (-10, 25, "normal"),
    (26, 40, "mild"),
    (41, 55, "moderate"),
    (56, 70, "moderately severe"),
    (71, 90, "severe"),
    (91, 999, "profound"),
]

PTA_BANDS = (500, 1000, 2000)


def classify(db: float) -> str:
    for lo, hi, lab in SEVERITY:
        if lo <= round(db) <= hi:
            return lab
    return SEVERITY[-1][2]


def pta(map_: Dict[int, float], bands: Sequence[int] = PTA_BANDS) -> Optional[float]:
    """Pure-tone average over *bands*; skipped frequencies are simply absent."""
    vals = [map_[f] for f in bands if f in map_]
    if not vals:
        return None
    return sum(vals) / len(vals)


def _slope(m: Dict[int, float]) -> str:
    low = m.get(500)
    high = m.get(4000)
    if low is None or high is None:
        return "slope not available"
    delta = high - low
    if delta >= 20:
        return "sloping down towards the high frequencies"
    if delta <= -20:
        return "rising towards the high frequencies"
    return "relatively flat"


def _asymmetry(a: Dict[int, float], b: Dict[int, float], freqs: Sequence[int]) -> str:
    consec = 0
    for f in freqs:
        if f in a and f in b:
            if abs(a[f] - b[f]) >= 15:
                consec += 1
                if consec >= 3:
                    return "Marked asymmetry between ears (>=15 dB on >=3 frequencies)."
            else:
                consec = 0
    return ""


def generate_analysis_text(thresholds: ThresholdMap, speech: Optional[SpeechSummary] = None) -> str:
    """Short descriptive summary of the audiogram (not a diagnosis)."""
    right = thresholds.numeric(Ear.RIGHT)
    left = thresholds.numeric(Ear.LEFT)
    text: List[str] = []
    for label, values in (("Right ear", right), ("Left ear", left)):
        avg = pta(values)
        if avg is None:
            text.append(f"{label}: no pure-tone average (500-2000 Hz not measured).")
        else:
            text.append(f"{label}: PTA {avg:.0f} dB HL ({classify(avg)}), {_slope(values)}.")
    asy = _asymmetry(right, left, thresholds.frequencies)
    if asy:
        text.append(asy)
    skipped = len(thresholds.skipped(Ear.RIGHT)) + len(thresholds.skipped(Ear.LEFT))
    if skipped:
        text.append(f"{skipped} frequency/ear pair(s) skipped and left out of the averages.")
    if speech is not None and speech.threshold is not None:
        text.append(f"Speech: 50 % words understood at {speech.threshold * 100:.0f} % volume.")
    text.append("Note: this screening is not diagnostic; see a hearing professional for a clinical assessment.")
    return " ".join(text)
