"""
Auto-detection of which verse a recognized utterance belongs to.
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from .tasmee_typing import ReferenceUnit
from .text_normalizer import tokenize


logger = logging.getLogger(__name__)

COVERAGE_WEIGHT = 0.7
SEQUENTIAL_WEIGHT = 0.3
MIN_CONFIDENCE = 30


@dataclass(frozen=True)
class LocatedVerse:
    """Best matching passage for an utterance."""
    container_id: int
    unit_index: int
    confidence_percent: int
    matched_text: str
    units: Sequence[ReferenceUnit] = ()

    def to_dict(self) -> Dict:
        return {
            "surah": self.container_id,
            "ayah": self.unit_index,
            "confidence": self.confidence_percent,
            "matched_text": self.matched_text,
        }


def sequential_bonus(input_words: Sequence[str], verse_words: Sequence[str]) -> float:
    """Share of verse words found in order, matching each input word greedily."""
    if not input_words or not verse_words:
        return 0.0

    last_match = -1
    matches = 0
    for word in input_words:
        for i in range(last_match + 1, len(verse_words)):
            if verse_words[i] == word:
                matches += 1
                last_match = i
                break
    return matches / len(verse_words)


def calculate_similarity(input_words: Sequence[str], verse_words: Sequence[str]) -> float:
    """Word coverage of the verse, plus a bonus for words appearing in order."""
    if not input_words or not verse_words:
        return 0.0

    verse_set = set(verse_words)
    coverage = len(set(input_words) & verse_set) / len(verse_set)
    return COVERAGE_WEIGHT * coverage + SEQUENTIAL_WEIGHT * sequential_bonus(input_words, verse_words)


def verse_candidates(units: Iterable[ReferenceUnit]) -> List[List[ReferenceUnit]]:
    """Treat every verse as a candidate passage of its own."""
    return [[unit] for unit in units]


def locate(
    recognized_text: str,
    corpus: Iterable[Sequence[ReferenceUnit]],
    restrict_to: Optional[int] = None,
    min_confidence: int = MIN_CONFIDENCE,
) -> Optional[LocatedVerse]:
    """
    Find the passage that best matches a recognized utterance.

    Args:
        recognized_text: Transcript of the recitation
        corpus: Candidate passages (each a list of consecutive verses) in search order
        restrict_to: Only consider passages of this surah
        min_confidence: Percentage below which no match is reported

    Returns:
        The best LocatedVerse, or None when nothing reaches `min_confidence`
    """
    input_words = tokenize(recognized_text)
    if not input_words:
        return None

    best: Optional[Sequence[ReferenceUnit]] = None
    best_score = 0.0
    for candidate in corpus:
        if not candidate:
            continue
        if restrict_to is not None and candidate[0].container_id != restrict_to:
            continue
        verse_words = tokenize(" ".join(unit.text for unit in candidate))
        score = calculate_similarity(input_words, verse_words)
        if score > best_score:
            best_score = score
            best = candidate

    if best is None or best_score * 100 < min_confidence:
        logger.debug(f"No verse reached {min_confidence}% (best {best_score:.2f})")
        return None

    first = best[0]
    logger.debug(f"Located {first.container_id}:{first.index_in_container} at {best_score:.2f}")
    return LocatedVerse(
        container_id=first.container_id,
        unit_index=first.index_in_container,
        confidence_percent=min(100, int(math.floor(best_score * 100 + 0.5))),
        matched_text=" ".join(unit.text for unit in best),
        units=tuple(best),
    )
