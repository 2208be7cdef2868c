from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from ..errors import InvariantError

FREQUENCIES: Tuple[int, ...] = (250, 500, 1000, 2000, 3000, 4000, 6000, 8000)
MIN_LEVEL_DBHL = -10.0
MAX_LEVEL_DBHL = 100.0


class Ear(str, Enum):
    RIGHT = "right"
    LEFT = "left"
    BOTH = "both"


# Right ear entirely before left.
EARS: Tuple[Ear, ...] = (Ear.RIGHT, Ear.LEFT)


class Skipped(Enum):
    """Terminal marker of a pair the subject chose to skip."""

    SKIPPED = "skipped"

    def __repr__(self) -> str:
        return "SKIPPED"


SKIPPED = Skipped.SKIPPED

Threshold = Union[float, Skipped]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


class ThresholdMap:
    """Threshold per (ear, frequency) for the tone-based tests.

    Each pair is written at most once; a value is either a dB HL level or
    ``SKIPPED``.
    """

    def __init__(self, frequencies: Sequence[int] = FREQUENCIES, ears: Sequence[Ear] = EARS) -> None:
        self.frequencies: Tuple[int, ...] = tuple(int(f) for f in frequencies)
        self.ears: Tuple[Ear, ...] = tuple(ears)
        self._values: Dict[Ear, Dict[int, Threshold]] = {ear: {} for ear in self.ears}
        self.started_at = _now_iso()
        self.completed_at: Optional[str] = None

    def record(self, ear: Ear, freq_hz: int, value: Threshold) -> None:
        if ear not in self._values:
            raise InvariantError(f"Ear {ear!r} is not part of this test.")
        freq = int(freq_hz)
        if freq not in self.frequencies:
            raise InvariantError(f"Frequency {freq} Hz is not part of this test.")
        if freq in self._values[ear]:
            raise InvariantError(f"Threshold for {ear.value} {freq} Hz already recorded.")
        if value is not SKIPPED:
            value = float(value)
            if not MIN_LEVEL_DBHL <= value <= MAX_LEVEL_DBHL:
                raise InvariantError(f"Threshold {value} dB HL outside [{MIN_LEVEL_DBHL}, {MAX_LEVEL_DBHL}].")
        self._values[ear][freq] = value

    def get(self, ear: Ear, freq_hz: int) -> Optional[Threshold]:
        return self._values.get(ear, {}).get(int(freq_hz))

    def numeric(self, ear: Ear) -> Dict[int, float]:
        """Measured levels only; skipped pairs are left out."""
        return {f: v for f, v in self._values.get(ear, {}).items() if v is not SKIPPED}

    def skipped(self, ear: Ear) -> List[int]:
        return [f for f, v in self._values.get(ear, {}).items() if v is SKIPPED]

    def items(self) -> Iterator[Tuple[Ear, int, Threshold]]:
        for ear in self.ears:
            for freq in self.frequencies:
                if freq in self._values[ear]:
                    yield ear, freq, self._values[ear][freq]

    def __len__(self) -> int:
        return sum(len(v) for v in self._values.values())

    @property
    def complete(self) -> bool:
        return len(self) == len(self.ears) * len(self.frequencies)

    def mark_completed(self) -> None:
        self.completed_at = _now_iso()


class CellState(str, Enum):
    UNKNOWN = "unknown"
    SUCCESS = "success"
    FAIL = "fail"


MATRIX_LEVELS: Tuple[int, ...] = tuple(range(-10, 101, 10))


class TestMatrix:
    """Every (ear, frequency, level) visited by the game, for display only."""

    __test__ = False  # not a pytest class

    def __init__(
        self,
        frequencies: Sequence[int] = FREQUENCIES,
        ears: Sequence[Ear] = EARS,
        levels: Sequence[int] = MATRIX_LEVELS,
    ) -> None:
        self._cells: Dict[Tuple[Ear, int], Dict[float, CellState]] = {}
        for ear in ears:
            for freq in frequencies:
                self._cells[(ear, int(freq))] = {float(level): CellState.UNKNOWN for level in levels}

    def mark(self, ear: Ear, freq_hz: int, level: float, success: bool) -> None:
        row = self._cells.setdefault((ear, int(freq_hz)), {})
        row[float(level)] = CellState.SUCCESS if success else CellState.FAIL

    def cell(self, ear: Ear, freq_hz: int, level: float) -> CellState:
        return self._cells.get((ear, int(freq_hz)), {}).get(float(level), CellState.UNKNOWN)

    def levels(self) -> List[float]:
        found = set()
        for row in self._cells.values():
            found.update(row)
        return sorted(found)

    def row(self, ear: Ear, freq_hz: int) -> Dict[float, CellState]:
        return dict(sorted(self._cells.get((ear, int(freq_hz)), {}).items()))


@dataclass(frozen=True)
class GameResult:
    thresholds: ThresholdMap
    matrix: TestMatrix


@dataclass
class VolumeScore:
    correct: int = 0
    total: int = 0

    @property
    def accuracy(self) -> float:
        return 0.0 if self.total == 0 else self.correct / self.total


def speech_threshold(by_volume: Mapping[float, VolumeScore]) -> Optional[float]:
    """Loudest volume whose accuracy reaches 50 %, scanning loud to quiet.

    Falls back to the quietest volume tested when no volume qualifies, and to
    ``None`` when nothing was tested.
    """
    volumes = sorted((v for v, s in by_volume.items() if s.total > 0), reverse=True)
    if not volumes:
        return None
    for volume in volumes:
        if by_volume[volume].accuracy >= 0.5:
            return volume
    return volumes[-1]


@dataclass(frozen=True)
class SpeechSummary:
    language: str
    by_volume: Mapping[float, VolumeScore]
    threshold: Optional[float]
    completed_at: str = field(default_factory=_now_iso)


class ResultKind(str, Enum):
    PURETONE = "puretone"
    GAMEMODE = "gamemode"
    SPEECH = "speech"


SessionResult = Union[ThresholdMap, GameResult, SpeechSummary]


class ResultsBundle:
    """Results of one session, keyed by test kind. Each entry is written once."""

    def __init__(self) -> None:
        self._results: Dict[ResultKind, SessionResult] = {}

    def record(self, kind: ResultKind, result: SessionResult) -> None:
        if kind in self._results:
            raise InvariantError(f"Results for {kind.value!r} already recorded.")
        expected = {
            ResultKind.PURETONE: ThresholdMap,
            ResultKind.GAMEMODE: GameResult,
            ResultKind.SPEECH: SpeechSummary,
        }[kind]
        if not isinstance(result, expected):
            raise InvariantError(f"{kind.value!r} expects {expected.__name__}, got {type(result).__name__}.")
        self._results[kind] = result

    def __contains__(self, kind: object) -> bool:
        return kind in self._results

    def kinds(self) -> List[ResultKind]:
        return [k for k in ResultKind if k in self._results]

    @property
    def puretone(self) -> Optional[ThresholdMap]:
        result = self._results.get(ResultKind.PURETONE)
        return result if isinstance(result, ThresholdMap) else None

    @property
    def gamemode(self) -> Optional[GameResult]:
        result = self._results.get(ResultKind.GAMEMODE)
        return result if isinstance(result, GameResult) else None

    @property
    def speech(self) -> Optional[SpeechSummary]:
        result = self._results.get(ResultKind.SPEECH)
        return result if isinstance(result, SpeechSummary) else None

    def tone_results(self) -> List[Tuple[ResultKind, ThresholdMap]]:
        """Tone-based threshold maps in display order (pure-tone first)."""
        out: List[Tuple[ResultKind, ThresholdMap]] = []
        if self.puretone is not None:
            out.append((ResultKind.PURETONE, self.puretone))
        if self.gamemode is not None:
            out.append((ResultKind.GAMEMODE, self.gamemode.thresholds))
        return out

    def is_empty(self) -> bool:
        return not self._results
