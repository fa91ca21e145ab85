"""
Word-level fuzzy matching tolerant of single-character transcription noise.
"""

import Levenshtein


# Tokens this short must match exactly
SHORT_TOKEN_LENGTH = 2
MAX_EDIT_DISTANCE = 1


def fuzzy_equals(spoken: str, expected: str, max_distance: int = MAX_EDIT_DISTANCE) -> bool:
    """
    Decide whether two normalized tokens denote the same word.

    Short function words (two letters or fewer) must match exactly, since a
    single edit turns them into a different word. Longer words may differ by
    one edit, which covers the usual single-letter mis-transcription.
    """
    if spoken == expected:
        return True
    if len(spoken) <= SHORT_TOKEN_LENGTH or len(expected) <= SHORT_TOKEN_LENGTH:
        return False
    return Levenshtein.distance(spoken, expected, score_cutoff=max_distance) <= max_distance


def tokens_match(spoken: str, expected: str, fuzzy: bool = True) -> bool:
    """Exact comparison when fuzzy matching is switched off."""
    if fuzzy:
        return fuzzy_equals(spoken, expected)
    return spoken == expected
