"""
Global alignment of one recognized utterance against one expected text.
"""

import logging
import math
from typing import List, Optional, Sequence, Tuple

from .tasmee_typing import EXTRA, MISSING, WRONG, Mistake, ScoreResult
from .text_normalizer import tokenize


logger = logging.getLogger(__name__)

MATCH = "match"

AlignmentOp = Tuple[str, Optional[int], Optional[int]]


def half_up_percent(part: int, whole: int) -> int:
    """Percentage rounded half up (62.5 -> 63), never below zero."""
    if whole <= 0:
        return 100
    return max(0, int(math.floor(100 * part / whole + 0.5)))


def align_sequences(recognized: Sequence[str], expected: Sequence[str]) -> List[AlignmentOp]:
    """
    LCS alignment returning a path of operations.

    Returns list of tuples: (op, expected_index, recognized_index)
      op in {"match", "missing", "extra"}.

    Tokens are compared exactly. When both directions keep the LCS length,
    the expected word is marked missing rather than the recognized word extra.
    """
    m, n = len(recognized), len(expected)
    dp = [[0] * (n + 1) for _ in range(m + 1)]

    for i in range(1, m + 1):
        for j in range(1, n + 1):
            if recognized[i - 1] == expected[j - 1]:
                dp[i][j] = dp[i - 1][j - 1] + 1
            else:
                dp[i][j] = max(dp[i - 1][j], dp[i][j - 1])

    # backtrack
    ops: List[AlignmentOp] = []
    i, j = m, n
    while i > 0 or j > 0:
        if i > 0 and j > 0 and recognized[i - 1] == expected[j - 1]:
            ops.append((MATCH, j - 1, i - 1))
            i -= 1
            j -= 1
        elif j > 0 and (i == 0 or dp[i][j - 1] >= dp[i - 1][j]):
            ops.append((MISSING, j - 1, None))
            j -= 1
        else:
            ops.append((EXTRA, None, i - 1))
            i -= 1
    ops.reverse()
    return ops


def _nearest_expected_position(ops: Sequence[AlignmentOp], current: int) -> int:
    """Closest expected index to an extra word: look backward, then forward."""
    for offset in range(1, len(ops)):
        before = current - offset
        if before >= 0 and ops[before][1] is not None:
            return ops[before][1] + 1
        after = current + offset
        if after < len(ops) and ops[after][1] is not None:
            return ops[after][1]
    return 0


def collect_mistakes(
    ops: Sequence[AlignmentOp], recognized: Sequence[str], expected: Sequence[str]
) -> List[Mistake]:
    """Turn an alignment path into mistakes, merging adjacent extra/missing into 'wrong'."""
    mistakes: List[Mistake] = []
    k = 0
    while k < len(ops):
        op, exp_idx, rec_idx = ops[k]
        next_op = ops[k + 1] if k + 1 < len(ops) else None

        if op == EXTRA and next_op is not None and next_op[0] == MISSING:
            # Substitution: a different word was said in place of the expected one
            mistakes.append(Mistake(
                kind=WRONG,
                position=next_op[1],
                expected=expected[next_op[1]],
                actual=recognized[rec_idx],
            ))
            k += 2
        elif op == MISSING and next_op is not None and next_op[0] == EXTRA:
            mistakes.append(Mistake(
                kind=WRONG,
                position=exp_idx,
                expected=expected[exp_idx],
                actual=recognized[next_op[2]],
            ))
            k += 2
        elif op == MISSING:
            mistakes.append(Mistake(kind=MISSING, position=exp_idx, expected=expected[exp_idx]))
            k += 1
        elif op == EXTRA:
            mistakes.append(Mistake(
                kind=EXTRA,
                position=_nearest_expected_position(ops, k),
                actual=recognized[rec_idx],
            ))
            k += 1
        else:
            k += 1
    return mistakes


def score_mistakes(expected_count: int, mistakes: Sequence[Mistake]) -> int:
    """Share of expected words recited correctly; extra words do not lower it."""
    if expected_count == 0:
        return 100
    missed = sum(1 for m in mistakes if m.kind != EXTRA)
    return half_up_percent(expected_count - missed, expected_count)


def align_tokens(recognized: Sequence[str], expected: Sequence[str]) -> ScoreResult:
    """Align already-normalized token sequences."""
    if not expected:
        return ScoreResult(score=100, mistakes=[])

    if not recognized:
        # Nothing recognized, every word is missing
        mistakes = [
            Mistake(kind=MISSING, position=i, expected=word)
            for i, word in enumerate(expected)
        ]
        return ScoreResult(score=0, mistakes=mistakes)

    ops = align_sequences(recognized, expected)
    mistakes = collect_mistakes(ops, recognized, expected)
    score = score_mistakes(len(expected), mistakes)
    logger.debug(
        f"Aligned {len(recognized)} recognized against {len(expected)} expected words: "
        f"score={score}, mistakes={len(mistakes)}"
    )
    return ScoreResult(score=score, mistakes=mistakes)


def align(recognized_text: str, expected_text: str) -> ScoreResult:
    """
    Compare a recognized recitation against the expected text.

    Args:
        recognized_text: Transcript of what was recited
        expected_text: Reference text, with or without diacritics

    Returns:
        ScoreResult with a 0-100 score and wrong/missing/extra mistakes
        positioned by word index in the expected text
    """
    return align_tokens(tokenize(recognized_text), tokenize(expected_text))
