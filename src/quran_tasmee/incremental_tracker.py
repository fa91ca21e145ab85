"""
Word-by-word follow-along tracking of a live recitation.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional, Sequence, Tuple

from .batch_aligner import half_up_percent
from .fuzzy_matcher import tokens_match
from .tasmee_typing import (
    CORRECT,
    MISSING,
    WRONG,
    MatchOutcome,
    ReferenceToken,
    ReferenceUnit,
    ScoreResult,
    TrackerState,
)
from .text_normalizer import TextNormalizer


Position = Tuple[int, int]


@dataclass
class TrackerConfig:
    """Tuning knobs of the incremental tracker."""
    fuzzy_matching: bool = True
    resync_window: int = 10
    miss_threshold: int = 3


class IncrementalTracker:
    """
    Advances a (verse, word) cursor through a passage as recognized words arrive.

    Every reference word is judged at most once, and the cursor never moves
    backwards until `reset()` is called.
    """

    def __init__(
        self,
        units: Sequence[ReferenceUnit],
        config: Optional[TrackerConfig] = None,
        normalizer: Optional[TextNormalizer] = None,
        on_error: Optional[Callable[[MatchOutcome], None]] = None,
        on_unmatched: Optional[Callable[[List[str]], None]] = None,
    ):
        """
        Args:
            units: Verses of the passage in recitation order
            config: Matching and recovery settings
            normalizer: Normalizer used to tokenize the reference verses
            on_error: Called for each outcome that should sound an error cue
            on_unmatched: Called with a batch of words that matched nothing
        """
        self.logger = logging.getLogger(__name__)
        self.config = config or TrackerConfig()
        self.normalizer = normalizer or TextNormalizer()
        self.units = list(units)
        self.words: List[List[ReferenceToken]] = [
            self.normalizer.reference_tokens(unit) for unit in self.units
        ]
        self._offsets: List[int] = []
        total = 0
        for unit_words in self.words:
            self._offsets.append(total)
            total += len(unit_words)
        self.total_words = total

        self.on_error = on_error
        self.on_unmatched = on_unmatched
        self.state = TrackerState()
        self.outcomes: List[MatchOutcome] = []

    def reset(self) -> None:
        """Start the passage over with fresh state."""
        self.state = TrackerState()
        self.outcomes = []

    @property
    def is_complete(self) -> bool:
        return not self._resolve_cursor()

    @property
    def progress(self) -> float:
        if self.total_words == 0:
            return 1.0
        return len(self.state.revealed) / self.total_words

    def advance(self, new_words: Sequence[str]) -> List[MatchOutcome]:
        """
        Judge newly recognized words against the passage.

        Args:
            new_words: Normalized tokens recognized since the previous call

        Returns:
            Outcomes produced by this batch, in passage order. Empty when the
            batch is empty, the passage is finished, or nothing matched yet.
        """
        words = [w.strip() for w in (new_words or []) if w and w.strip()]
        if not words:
            return []
        if not self._resolve_cursor():
            return []

        cursor = self.state.cursor
        first = words[0]
        if self._matches(first, cursor):
            return self._consume(words, cursor)

        skipped = self._resync(first, cursor)
        if skipped is None:
            return self._record_miss(words)

        outcomes: List[MatchOutcome] = []
        *missed, anchor = skipped
        self.logger.debug(f"Resynchronized on '{first}', skipping {len(missed)} word(s)")
        for position in missed:
            outcomes.append(self._judge(position, MISSING, None))
        outcomes.extend(self._consume(words, anchor))
        return outcomes

    def score(self) -> ScoreResult:
        """Score over the words judged so far, with the non-correct outcomes as mistakes."""
        correct = sum(1 for o in self.outcomes if o.kind == CORRECT)
        mistakes = [o.to_mistake() for o in self.outcomes if o.kind != CORRECT]
        return ScoreResult(score=half_up_percent(correct, len(self.outcomes)), mistakes=mistakes)

    def flat_position(self, position: Position) -> int:
        unit, word = position
        if unit >= len(self._offsets):
            return self.total_words
        return self._offsets[unit] + word

    # ------------------------------------------------------------------

    def _resolve_cursor(self) -> bool:
        """Move past finished verses. Returns False once the passage is exhausted."""
        state = self.state
        while (
            state.current_unit_index < len(self.words)
            and state.current_word_index >= len(self.words[state.current_unit_index])
        ):
            state.current_unit_index += 1
            state.current_word_index = 0
        return state.current_unit_index < len(self.words)

    def _positions_from(self, start: Position) -> Iterator[Position]:
        """Unrevealed positions from `start` onwards, crossing verse boundaries."""
        unit, word = start
        while unit < len(self.words):
            if word >= len(self.words[unit]):
                unit += 1
                word = 0
                continue
            if (unit, word) not in self.state.revealed:
                yield (unit, word)
            word += 1

    def _expected(self, position: Position) -> ReferenceToken:
        unit, word = position
        return self.words[unit][word]

    def _matches(self, spoken: str, position: Position) -> bool:
        expected = self._expected(position).normalized_word
        return tokens_match(spoken, expected, fuzzy=self.config.fuzzy_matching)

    def _resync(self, spoken: str, cursor: Position) -> Optional[List[Position]]:
        """
        Look ahead for the first word matching `spoken`.

        Returns the positions from the cursor up to and including the match,
        or None when nothing within the window matches.
        """
        window: List[Position] = []
        for position in self._positions_from(cursor):
            window.append(position)
            if len(window) == 1:
                # The cursor word itself already failed
                continue
            if self._matches(spoken, position):
                return window
            if len(window) > self.config.resync_window:
                break
        return None

    def _consume(self, words: Sequence[str], start: Position) -> List[MatchOutcome]:
        """Pair spoken words one-for-one with expected words from `start`."""
        outcomes: List[MatchOutcome] = []
        positions = self._positions_from(start)
        for spoken in words:
            position = next(positions, None)
            if position is None:
                break
            kind = CORRECT if self._matches(spoken, position) else WRONG
            outcomes.append(self._judge(position, kind, spoken))
        self.state.consecutive_miss_count = 0
        return outcomes

    def _record_miss(self, words: List[str]) -> List[MatchOutcome]:
        state = self.state
        state.consecutive_miss_count += 1
        if state.consecutive_miss_count < self.config.miss_threshold:
            self.logger.debug(
                f"No match for {words} ({state.consecutive_miss_count}/{self.config.miss_threshold})"
            )
            if self.on_unmatched:
                self.on_unmatched(list(words))
            return []

        # Too many failed attempts: give up on the current word
        state.consecutive_miss_count = 0
        self.logger.debug(f"Forcing past {state.cursor} after {self.config.miss_threshold} misses")
        return [self._judge(state.cursor, WRONG, " ".join(words))]

    def _judge(self, position: Position, kind: str, spoken: Optional[str]) -> MatchOutcome:
        token = self._expected(position)
        outcome = MatchOutcome(
            kind=kind,
            container_id=token.container_id,
            unit_index=token.index_in_container,
            word_index=token.word_index,
            position=self.flat_position(position),
            expected=token.normalized_word,
            actual=spoken,
        )
        self.state.revealed.add(position)
        self.outcomes.append(outcome)

        unit, word = position
        if (unit, word + 1) > self.state.cursor:
            self.state.current_unit_index = unit
            self.state.current_word_index = word + 1

        if kind == WRONG:
            self.state.error_count += 1
            if self.on_error:
                self.on_error(outcome)
        return outcome
