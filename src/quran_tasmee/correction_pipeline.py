"""
Quran recitation check pipeline: transcript -> alignment -> per-verse mistakes.
"""

import bisect
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .api_clients import QuranAPIError
from .batch_aligner import align_tokens
from .config import Settings
from .tasmee_typing import Mistake, ReferenceUnit
from .text_normalizer import TextNormalizer
from .verse_locator import LocatedVerse, locate, verse_candidates


@dataclass
class VerseResult:
    """Mistakes attributed to one verse of the checked passage."""
    ayah: int
    expected: str
    mistakes: List[Mistake]
    is_correct: bool

    def to_dict(self) -> Dict:
        return {
            "ayah": self.ayah,
            "expected": self.expected,
            "mistakes": [m.to_dict() for m in self.mistakes],
            "is_correct": self.is_correct,
        }


@dataclass
class CheckResult:
    """Complete result of checking one recitation."""
    surah_number: int
    recognized: str
    expected: str
    score: int
    mistakes: List[Mistake]
    verse_results: List[VerseResult] = field(default_factory=list)
    detected_verse: Optional[LocatedVerse] = None
    processing_time: float = 0.0

    @property
    def total_words(self) -> int:
        return len(self.expected.split())

    def to_dict(self) -> Dict:
        return {
            "surah": self.surah_number,
            "recognized": self.recognized,
            "expected": self.expected,
            "score": self.score,
            "mistakes": [m.to_dict() for m in self.mistakes],
            "verse_results": [v.to_dict() for v in self.verse_results],
            "detected_verse": self.detected_verse.to_dict() if self.detected_verse else None,
            "processing_time": self.processing_time,
        }


class PassageNotFoundError(LookupError):
    """The requested surah or ayah does not exist in the reference text."""


class RecitationChecker:
    """Main class for checking a recitation against the reference text."""

    def __init__(self, reference_provider, transcriber=None, settings: Optional[Settings] = None,
                 normalizer: Optional[TextNormalizer] = None):
        """
        Initialize the recitation checker.

        Args:
            reference_provider: Source of verses (AlQuranAPIClient or LocalQuranStore)
            transcriber: Speech-to-text client, required only for audio checks
            settings: Runtime settings (thresholds)
            normalizer: Text normalizer shared by alignment and verse mapping
        """
        self.logger = logging.getLogger(__name__)
        self.reference_provider = reference_provider
        self.transcriber = transcriber
        self.settings = settings or Settings()
        self.normalizer = normalizer or TextNormalizer()

    def check_recitation(
        self,
        audio_bytes: bytes,
        surah_number: int,
        ayah_number: Optional[int] = None,
        filename: str = "recording.webm",
        detect: bool = False,
    ) -> CheckResult:
        """
        Transcribe a recording and check it.

        Provider failures (QuranAPIError, TranscriptionError) propagate to the caller.
        """
        if self.transcriber is None:
            raise RuntimeError("No transcriber configured for audio checks")

        start_time = time.time()
        units = self._get_units(surah_number, ayah_number)
        expected_words = [w for unit in units for w in unit.text.split()]

        self.logger.info(f"Transcribing recitation for Surah {surah_number}, Ayah {ayah_number or 'all'}")
        transcript = self.transcriber.transcribe(audio_bytes, filename=filename, expected_words=expected_words)

        result = self._check_units(transcript.text, surah_number, units, detect=detect and ayah_number is None)
        result.processing_time = time.time() - start_time
        return result

    def check_text(
        self,
        recognized_text: str,
        surah_number: int,
        ayah_number: Optional[int] = None,
        detect: bool = False,
    ) -> CheckResult:
        """
        Check an already transcribed recitation.

        Args:
            recognized_text: Transcript of the recitation
            surah_number: Surah number (1-114)
            ayah_number: Check this ayah only; the whole surah when None
            detect: Locate the recited ayah first when no ayah is given

        Returns:
            CheckResult with the score, mistakes and per-verse breakdown
        """
        start_time = time.time()
        units = self._get_units(surah_number, ayah_number)
        result = self._check_units(recognized_text, surah_number, units, detect=detect and ayah_number is None)
        result.processing_time = time.time() - start_time
        return result

    def detect_verse(self, recognized_text: str, surah_number: Optional[int] = None) -> Optional[LocatedVerse]:
        """Find the verse being recited, within one surah or across the whole text."""
        if surah_number is not None:
            units = self._get_units(surah_number, None)
        else:
            units = self.reference_provider.get_all_units()
        return locate(
            recognized_text,
            verse_candidates(units),
            restrict_to=surah_number,
            min_confidence=self.settings.locator_min_confidence,
        )

    def _get_units(self, surah_number: int, ayah_number: Optional[int]) -> List[ReferenceUnit]:
        if not 1 <= surah_number <= 114:
            raise PassageNotFoundError(f"Surah {surah_number} not found")

        if ayah_number is not None:
            unit = self.reference_provider.get_unit(surah_number, ayah_number)
            if unit is None:
                raise PassageNotFoundError(f"Ayah {surah_number}:{ayah_number} not found")
            return [unit]

        try:
            units = self.reference_provider.get_passage(surah_number)
        except QuranAPIError as e:
            if e.status_code == 404:
                raise PassageNotFoundError(f"Surah {surah_number} not found")
            raise
        if not units:
            raise PassageNotFoundError(f"Surah {surah_number} not found")
        return units

    def _check_units(
        self, recognized_text: str, surah_number: int, units: List[ReferenceUnit], detect: bool
    ) -> CheckResult:
        detected = None
        if detect:
            detected = locate(
                recognized_text,
                verse_candidates(units),
                restrict_to=surah_number,
                min_confidence=self.settings.locator_min_confidence,
            )
            if detected is not None:
                self.logger.info(
                    f"Detected Ayah {detected.unit_index} with {detected.confidence_percent}% confidence"
                )
                units = list(detected.units)
            else:
                self.logger.info("No verse detected, checking the whole surah")

        recognized_tokens = self.normalizer.tokenize(recognized_text)
        unit_tokens = [self.normalizer.tokenize(unit.text) for unit in units]
        expected_tokens = [w for tokens in unit_tokens for w in tokens]

        alignment = align_tokens(recognized_tokens, expected_tokens)
        verse_results = self._split_by_verse(units, unit_tokens, alignment.mistakes)

        self.logger.info(
            f"Checked Surah {surah_number}: score {alignment.score}, {len(alignment.mistakes)} mistake(s)"
        )
        return CheckResult(
            surah_number=surah_number,
            recognized=recognized_text,
            expected=" ".join(expected_tokens),
            score=alignment.score,
            mistakes=alignment.mistakes,
            verse_results=verse_results,
            detected_verse=detected,
        )

    def _split_by_verse(
        self, units: Sequence[ReferenceUnit], unit_tokens: Sequence[List[str]], mistakes: Sequence[Mistake]
    ) -> List[VerseResult]:
        """Attribute each mistake to the verse holding its word position."""
        starts: List[int] = []
        offset = 0
        for tokens in unit_tokens:
            starts.append(offset)
            offset += len(tokens)

        per_verse: List[List[Mistake]] = [[] for _ in units]
        for mistake in mistakes:
            # Extra words after the last expected word belong to the last verse
            position = min(mistake.position, max(offset - 1, 0))
            index = bisect.bisect_right(starts, position) - 1
            per_verse[max(index, 0)].append(mistake)

        return [
            VerseResult(
                ayah=unit.index_in_container,
                expected=unit.text,
                mistakes=verse_mistakes,
                is_correct=not verse_mistakes,
            )
            for unit, verse_mistakes in zip(units, per_verse)
        ]

    def get_correction_summary(self, result: CheckResult) -> str:
        """Generate a human-readable summary of the check results."""
        if not result.mistakes:
            return f"ممتاز! لا توجد أخطاء في تلاوة سورة رقم {result.surah_number}"

        labels = {"wrong": "كلمة خاطئة", "missing": "كلمة ناقصة", "extra": "كلمة زائدة"}
        summary = f"تم العثور على {len(result.mistakes)} خطأ في {result.total_words} كلمة:\n\n"
        for verse in result.verse_results:
            if verse.is_correct:
                continue
            summary += f"الآية {verse.ayah}:\n"
            for mistake in verse.mistakes:
                detail = mistake.expected or mistake.actual or ""
                if mistake.kind == "wrong":
                    detail = f"{mistake.actual} بدلا من {mistake.expected}"
                summary += f"  - {labels.get(mistake.kind, mistake.kind)}: {detail}\n"
            summary += "\n"

        summary += f"دقة التلاوة الإجمالية: {result.score}%"
        return summary


# Convenience functions
def check_recitation_text(reference_provider, recognized_text: str, surah_number: int,
                          ayah_number: Optional[int] = None) -> CheckResult:
    """
    Convenience function to check a transcript without building a checker.

    Raises:
        QuranAPIError: if the reference text cannot be fetched
    """
    checker = RecitationChecker(reference_provider)
    return checker.check_text(recognized_text, surah_number, ayah_number)


__all__ = [
    "CheckResult",
    "PassageNotFoundError",
    "RecitationChecker",
    "VerseResult",
    "check_recitation_text",
]
