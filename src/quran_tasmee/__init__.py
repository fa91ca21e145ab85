"""
Quran recitation checking: word-level alignment, live follow-along and verse detection.
"""

from .batch_aligner import align
from .correction_pipeline import CheckResult, RecitationChecker, VerseResult
from .incremental_tracker import IncrementalTracker, TrackerConfig
from .live_session import ErrorAlert, RecitationSession
from .tasmee_typing import MatchOutcome, Mistake, ReferenceUnit, ScoreResult
from .text_normalizer import TextNormalizer, normalize, tokenize
from .verse_locator import LocatedVerse, locate

__version__ = "1.0.0"

__all__ = [
    "CheckResult",
    "ErrorAlert",
    "IncrementalTracker",
    "LocatedVerse",
    "MatchOutcome",
    "Mistake",
    "RecitationChecker",
    "RecitationSession",
    "ReferenceUnit",
    "ScoreResult",
    "TextNormalizer",
    "TrackerConfig",
    "VerseResult",
    "align",
    "locate",
    "normalize",
    "tokenize",
]
