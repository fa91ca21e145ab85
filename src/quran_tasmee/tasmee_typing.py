"""
Shared data types for recitation alignment and scoring.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple


# Outcome kinds
CORRECT = "correct"
WRONG = "wrong"
MISSING = "missing"
EXTRA = "extra"

OUTCOME_KINDS = (CORRECT, WRONG, MISSING, EXTRA)


def _check_kind(kind: str, allowed=OUTCOME_KINDS) -> None:
    if kind not in allowed:
        raise ValueError(f"Unknown outcome kind: {kind!r}")


@dataclass(frozen=True)
class ReferenceUnit:
    """One verse of the reference text, in recitation order."""
    container_id: int
    index_in_container: int
    text: str


@dataclass(frozen=True)
class ReferenceToken:
    """A single word of a reference unit, in original and normalized form."""
    container_id: int
    index_in_container: int
    word_index: int
    original_word: str
    normalized_word: str


@dataclass(frozen=True)
class RecognizedToken:
    """A single word of a transcript."""
    raw_word: str
    normalized_word: str


@dataclass(frozen=True)
class Mistake:
    """A reportable mistake, positioned by word index in the expected text."""
    kind: str
    position: int
    expected: Optional[str] = None
    actual: Optional[str] = None

    def __post_init__(self):
        # A correct word is never a mistake
        _check_kind(self.kind, (WRONG, MISSING, EXTRA))

    def to_dict(self) -> Dict:
        data = {"kind": self.kind, "position": self.position}
        if self.expected is not None:
            data["expected"] = self.expected
        if self.actual is not None:
            data["actual"] = self.actual
        return data


@dataclass(frozen=True)
class ScoreResult:
    """Score out of 100 plus the ordered mistakes that produced it."""
    score: int
    mistakes: List[Mistake] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "score": self.score,
            "mistakes": [m.to_dict() for m in self.mistakes],
        }


@dataclass(frozen=True)
class MatchOutcome:
    """
    Judgement of one reference word produced by the incremental tracker.

    `position` is the flat word index across the whole passage, so outcomes
    can be turned into `Mistake` entries directly.
    """
    kind: str
    container_id: int
    unit_index: int
    word_index: int
    position: int
    expected: Optional[str] = None
    actual: Optional[str] = None

    def __post_init__(self):
        _check_kind(self.kind)

    def to_mistake(self) -> Mistake:
        return Mistake(
            kind=self.kind,
            position=self.position,
            expected=self.expected,
            actual=self.actual,
        )

    def to_dict(self) -> Dict:
        return {
            "kind": self.kind,
            "surah": self.container_id,
            "ayah": self.unit_index,
            "word_index": self.word_index,
            "position": self.position,
            "expected": self.expected,
            "actual": self.actual,
        }


@dataclass
class TrackerState:
    """Mutable cursor state of one recitation session."""
    current_unit_index: int = 0
    current_word_index: int = 0
    revealed: Set[Tuple[int, int]] = field(default_factory=set)
    consecutive_miss_count: int = 0
    error_count: int = 0

    @property
    def cursor(self) -> Tuple[int, int]:
        return (self.current_unit_index, self.current_word_index)
