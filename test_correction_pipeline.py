
import sys
import unittest
from pathlib import Path
from unittest.mock import MagicMock

sys.path.insert(0, str(Path(__file__).parent / "src"))

from quran_tasmee.api_clients import QuranAPIError, TranscriptionError, TranscriptionResult
from quran_tasmee.correction_pipeline import (
    PassageNotFoundError,
    RecitationChecker,
    check_recitation_text,
)
from quran_tasmee.tasmee_typing import EXTRA, MISSING, WRONG, ReferenceUnit

FATIHA = [
    ReferenceUnit(1, 1, "بِسْمِ اللَّهِ الرَّحْمَٰنِ الرَّحِيمِ"),
    ReferenceUnit(1, 2, "الْحَمْدُ لِلَّهِ رَبِّ الْعَالَمِينَ"),
    ReferenceUnit(1, 3, "الرَّحْمَٰنِ الرَّحِيمِ"),
    ReferenceUnit(1, 4, "مَالِكِ يَوْمِ الدِّينِ"),
]


def make_provider(units=FATIHA):
    provider = MagicMock()
    provider.get_passage.side_effect = lambda surah: [u for u in units if u.container_id == surah]
    provider.get_unit.side_effect = lambda surah, ayah: next(
        (u for u in units if u.container_id == surah and u.index_in_container == ayah), None
    )
    provider.get_all_units.return_value = list(units)
    return provider


class TestCheckText(unittest.TestCase):

    def setUp(self):
        self.provider = make_provider()
        self.checker = RecitationChecker(self.provider)

    def test_whole_surah_correct(self):
        recited = "بسم الله الرحمان الرحيم الحمد لله رب العالمين الرحمان الرحيم مالك يوم الدين"
        result = self.checker.check_text(recited, 1)
        self.assertEqual(result.score, 100)
        self.assertEqual(result.mistakes, [])
        self.assertEqual([v.ayah for v in result.verse_results], [1, 2, 3, 4])
        self.assertTrue(all(v.is_correct for v in result.verse_results))
        self.assertEqual(result.total_words, 13)

    def test_mistake_attributed_to_its_verse(self):
        recited = "بسم الله الرحمان الرحيم الحمد للا رب العالمين الرحمان الرحيم مالك يوم"
        result = self.checker.check_text(recited, 1)

        by_ayah = {v.ayah: v for v in result.verse_results}
        self.assertTrue(by_ayah[1].is_correct)
        self.assertEqual([m.kind for m in by_ayah[2].mistakes], [WRONG])
        self.assertEqual(by_ayah[2].mistakes[0].position, 5)
        self.assertTrue(by_ayah[3].is_correct)
        self.assertEqual([m.kind for m in by_ayah[4].mistakes], [MISSING])
        self.assertEqual(by_ayah[4].mistakes[0].expected, "الدين")
        self.assertEqual(result.score, 85)

    def test_trailing_extra_goes_to_last_verse(self):
        units = FATIHA[:2]
        checker = RecitationChecker(make_provider(units))
        result = checker.check_text("بسم الله الرحمان الرحيم الحمد لله رب العالمين امين", 1)
        self.assertEqual(result.score, 100)
        self.assertTrue(result.verse_results[0].is_correct)
        self.assertEqual([m.kind for m in result.verse_results[1].mistakes], [EXTRA])

    def test_single_ayah(self):
        result = self.checker.check_text("الحمد لله رب", 1, ayah_number=2)
        self.assertEqual(result.expected, "الحمد لله رب العالمين")
        self.assertEqual(result.score, 75)
        self.assertEqual(len(result.verse_results), 1)
        self.assertEqual(result.verse_results[0].ayah, 2)

    def test_empty_transcript(self):
        result = self.checker.check_text("", 1, ayah_number=4)
        self.assertEqual(result.score, 0)
        self.assertEqual([m.kind for m in result.mistakes], [MISSING] * 3)

    def test_unknown_ayah(self):
        with self.assertRaises(PassageNotFoundError):
            self.checker.check_text("شيء", 1, ayah_number=99)

    def test_unknown_surah(self):
        with self.assertRaises(PassageNotFoundError):
            self.checker.check_text("شيء", 115)
        with self.assertRaises(PassageNotFoundError):
            self.checker.check_text("شيء", 2)

    def test_provider_failure_propagates(self):
        self.provider.get_passage.side_effect = QuranAPIError("offline")
        with self.assertRaises(QuranAPIError):
            self.checker.check_text("شيء", 1)

    def test_provider_not_found_maps_to_lookup_error(self):
        self.provider.get_passage.side_effect = QuranAPIError("missing", status_code=404)
        with self.assertRaises(PassageNotFoundError):
            self.checker.check_text("شيء", 1)

    def test_convenience_function(self):
        result = check_recitation_text(self.provider, "مالك يوم الدين", 1, 4)
        self.assertEqual(result.score, 100)

    def test_to_dict(self):
        data = self.checker.check_text("الحمد رب العالمين", 1, ayah_number=2).to_dict()
        self.assertEqual(data["surah"], 1)
        self.assertEqual(data["score"], 75)
        self.assertEqual(data["mistakes"], [{"kind": "missing", "position": 1, "expected": "لله"}])
        self.assertIsNone(data["detected_verse"])


class TestDetection(unittest.TestCase):

    def setUp(self):
        self.provider = make_provider()
        self.checker = RecitationChecker(self.provider)

    def test_detect_then_check(self):
        result = self.checker.check_text("الحمد لله رب العالمين", 1, detect=True)
        self.assertEqual(result.detected_verse.unit_index, 2)
        self.assertEqual(result.detected_verse.confidence_percent, 100)
        self.assertEqual([v.ayah for v in result.verse_results], [2])
        self.assertEqual(result.score, 100)

    def test_detect_without_match_checks_whole_surah(self):
        result = self.checker.check_text("انا اعطيناك الكوثر", 1, detect=True)
        self.assertIsNone(result.detected_verse)
        self.assertEqual(len(result.verse_results), 4)

    def test_detect_ignored_when_ayah_given(self):
        result = self.checker.check_text("الحمد لله رب العالمين", 1, ayah_number=4, detect=True)
        self.assertIsNone(result.detected_verse)
        self.assertEqual(result.score, 0)

    def test_detect_verse_across_whole_text(self):
        located = self.checker.detect_verse("مالك يوم الدين")
        self.assertEqual((located.container_id, located.unit_index), (1, 4))
        self.provider.get_all_units.assert_called_once()

    def test_detect_verse_in_surah(self):
        located = self.checker.detect_verse("مالك يوم الدين", surah_number=1)
        self.assertEqual(located.unit_index, 4)
        self.provider.get_all_units.assert_not_called()


class TestCheckRecitation(unittest.TestCase):

    def setUp(self):
        self.transcriber = MagicMock()
        self.checker = RecitationChecker(make_provider(), transcriber=self.transcriber)

    def test_transcribes_and_checks(self):
        self.transcriber.transcribe.return_value = TranscriptionResult(text="مالك يوم الدين")
        result = self.checker.check_recitation(b"audio", 1, ayah_number=4, filename="a.wav")

        self.assertEqual(result.recognized, "مالك يوم الدين")
        self.assertEqual(result.score, 100)
        args, kwargs = self.transcriber.transcribe.call_args
        self.assertEqual(args[0], b"audio")
        self.assertEqual(kwargs["filename"], "a.wav")
        self.assertEqual(kwargs["expected_words"], FATIHA[3].text.split())

    def test_transcription_failure_propagates(self):
        self.transcriber.transcribe.side_effect = TranscriptionError("quota")
        with self.assertRaises(TranscriptionError):
            self.checker.check_recitation(b"audio", 1)

    def test_requires_transcriber(self):
        checker = RecitationChecker(make_provider())
        with self.assertRaises(RuntimeError):
            checker.check_recitation(b"audio", 1)


class TestSummary(unittest.TestCase):

    def setUp(self):
        self.checker = RecitationChecker(make_provider())

    def test_no_mistakes(self):
        result = self.checker.check_text("مالك يوم الدين", 1, ayah_number=4)
        self.assertIn("ممتاز", self.checker.get_correction_summary(result))

    def test_with_mistakes(self):
        result = self.checker.check_text("مالك الدين", 1, ayah_number=4)
        summary = self.checker.get_correction_summary(result)
        self.assertIn("الآية 4", summary)
        self.assertIn("يوم", summary)
        self.assertIn("67%", summary)


if __name__ == '__main__':
    unittest.main()
