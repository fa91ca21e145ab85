"""
Live follow-along session fed by a stream of transcript segments.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from .incremental_tracker import IncrementalTracker, TrackerConfig
from .tasmee_typing import MatchOutcome, ReferenceUnit
from .text_normalizer import TextNormalizer


class ErrorAlert:
    """Audible error cue, emitted at most once per `min_interval_ms`."""

    def __init__(
        self,
        min_interval_ms: int = 300,
        callback: Optional[Callable[[], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.min_interval_ms = min_interval_ms
        self.callback = callback
        self.clock = clock
        self.emitted = 0
        self._last_emitted_at: Optional[float] = None

    def trigger(self) -> bool:
        """Emit the cue unless one went out too recently. Returns True if emitted."""
        now = self.clock()
        if self._last_emitted_at is not None and (now - self._last_emitted_at) * 1000 < self.min_interval_ms:
            return False
        self._last_emitted_at = now
        self.emitted += 1
        if self.callback:
            self.callback()
        return True

    def reset(self) -> None:
        self._last_emitted_at = None


@dataclass
class SessionUpdate:
    """What one transcript segment changed."""
    generation: int
    outcomes: List[MatchOutcome] = field(default_factory=list)
    unmatched: List[str] = field(default_factory=list)
    alert: bool = False
    stale: bool = False


class RecitationSession:
    """
    One recitation attempt over a passage.

    Owns its tracker, alert limiter and segment bookkeeping. Segments must be
    fed in arrival order; results from before the last `reset()` are dropped
    by comparing their generation.
    """

    def __init__(
        self,
        units: Sequence[ReferenceUnit],
        config: Optional[TrackerConfig] = None,
        alert_interval_ms: int = 300,
        on_alert: Optional[Callable[[], None]] = None,
        clock: Callable[[], float] = time.monotonic,
        normalizer: Optional[TextNormalizer] = None,
    ):
        self.logger = logging.getLogger(__name__)
        self.normalizer = normalizer or TextNormalizer()
        self.config = config or TrackerConfig()
        self.alert = ErrorAlert(alert_interval_ms, callback=on_alert, clock=clock)
        self.generation = 0
        self._units = list(units)
        self._pending_alert = False
        self._pending_unmatched: List[str] = []
        self._segment_id = None
        self._processed = 0
        self._held: List[str] = []
        self._last_final_segment = None
        self.tracker = self._build_tracker()

    def _build_tracker(self) -> IncrementalTracker:
        return IncrementalTracker(
            self._units,
            config=self.config,
            normalizer=self.normalizer,
            on_error=self._on_error,
            on_unmatched=self._on_unmatched,
        )

    def _on_error(self, outcome: MatchOutcome) -> None:
        if self.alert.trigger():
            self._pending_alert = True

    def _on_unmatched(self, words: List[str]) -> None:
        self._pending_unmatched = list(words)

    def reset(self, units: Optional[Sequence[ReferenceUnit]] = None) -> int:
        """
        Discard all progress, optionally switching to another passage.

        Returns:
            The new generation number; anything tagged with an older one is ignored
        """
        if units is not None:
            self._units = list(units)
        self.generation += 1
        self.tracker = self._build_tracker()
        self.alert.reset()
        self._segment_id = None
        self._processed = 0
        self._held = []
        self._last_final_segment = None
        self.logger.info(f"Session reset to generation {self.generation}")
        return self.generation

    def feed_words(self, tokens: Sequence[str]) -> SessionUpdate:
        """Forward already-normalized tokens to the tracker."""
        self._pending_alert = False
        self._pending_unmatched = []
        outcomes = self.tracker.advance(tokens)
        return SessionUpdate(
            generation=self.generation,
            outcomes=outcomes,
            unmatched=self._pending_unmatched,
            alert=self._pending_alert,
        )

    def feed_segment(
        self,
        text: str,
        segment_id=None,
        is_final: bool = False,
        generation: Optional[int] = None,
    ) -> SessionUpdate:
        """
        Process an interim or final transcript of one recognition turn.

        Speech engines resend the whole turn each time, so only the words
        beyond what was already processed for this `segment_id` are forwarded.
        Trailing words that may open a spoken-letter phrase wait for the next
        word or the final transcript.
        """
        if generation is not None and generation != self.generation:
            self.logger.debug(f"Dropping segment from generation {generation} (current {self.generation})")
            return SessionUpdate(generation=self.generation, stale=True)
        if segment_id is not None and segment_id == self._last_final_segment:
            return SessionUpdate(generation=self.generation)

        if segment_id != self._segment_id:
            self._segment_id = segment_id
            self._processed = 0

        # Counted in raw words: normalizing merges spoken letter names, so
        # the token count of a growing transcript can shrink
        words = (text or "").split()
        pending = self._held + words[self._processed:]
        self._processed = max(self._processed, len(words))

        held = 0 if is_final else self.normalizer.pending_phrase_length(pending)
        self._held = pending[len(pending) - held:] if held else []
        ready = pending[:len(pending) - held]

        if is_final:
            self._last_final_segment = segment_id
            self._segment_id = None
            self._processed = 0

        return self.feed_words(self.normalizer.tokenize(" ".join(ready)))

    def snapshot(self, update: Optional[SessionUpdate] = None) -> Dict:
        """JSON-ready view of the session, optionally with the latest update."""
        complete = self.tracker.is_complete
        state = self.tracker.state
        score = self.tracker.score()
        data = {
            "generation": self.generation,
            "cursor": {
                "unit_index": state.current_unit_index,
                "word_index": state.current_word_index,
            },
            "complete": complete,
            "progress": round(self.tracker.progress, 4),
            "score": score.score,
            "error_count": state.error_count,
        }
        if update is not None:
            data.update({
                "outcomes": [o.to_dict() for o in update.outcomes],
                "unmatched": update.unmatched,
                "alert": update.alert,
                "stale": update.stale,
            })
        return data
