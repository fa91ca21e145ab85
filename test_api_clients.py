
import json
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

import requests

sys.path.insert(0, str(Path(__file__).parent / "src"))

from quran_tasmee.api_clients import (
    AlQuranAPIClient,
    AssemblyAIClient,
    LocalQuranStore,
    QuranAPIError,
    TranscriptionError,
    WhisperAPIClient,
    build_reference_provider,
    build_transcriber,
    get_mime_type,
    strip_basmalah,
)
from quran_tasmee.config import Settings


def _response(payload=None, status_code=200, ok=True, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.ok = ok
    response.text = text
    response.json.return_value = payload
    if ok:
        response.raise_for_status.return_value = None
    else:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} error")
    return response


class TestAlQuranAPIClient(unittest.TestCase):

    def setUp(self):
        self.client = AlQuranAPIClient()
        self.client.session = MagicMock()

    def test_get_passage(self):
        self.client.session.get.return_value = _response({
            "code": 200,
            "status": "OK",
            "data": {"ayahs": [
                {"numberInSurah": 1, "text": "قُلْ هُوَ اللَّهُ أَحَدٌ"},
                {"numberInSurah": 2, "text": "اللَّهُ الصَّمَدُ"},
            ]},
        })

        units = self.client.get_passage(112)
        self.assertEqual([u.index_in_container for u in units], [1, 2])
        self.assertTrue(all(u.container_id == 112 for u in units))
        self.assertEqual(units[1].text, "اللَّهُ الصَّمَدُ")

        # Cached after the first fetch
        self.client.get_passage(112)
        self.client.session.get.assert_called_once()
        url = self.client.session.get.call_args[0][0]
        self.assertEqual(url, "https://api.alquran.cloud/v1/surah/112/quran-uthmani")

    def test_basmalah_removed_from_first_verse(self):
        self.client.session.get.return_value = _response({
            "code": 200,
            "data": {"ayahs": [{"numberInSurah": 1, "text": "بِسْمِ ٱللَّهِ ٱلرَّحْمَٰنِ ٱلرَّحِيمِ الٓمٓ"}]},
        })
        units = self.client.get_passage(2)
        self.assertEqual(units[0].text, "الٓمٓ")

    def test_get_unit(self):
        self.client.session.get.return_value = _response({
            "code": 200,
            "data": {"numberInSurah": 2, "text": "الْحَمْدُ لِلَّهِ رَبِّ الْعَالَمِينَ"},
        })
        unit = self.client.get_unit(1, 2)
        self.assertEqual((unit.container_id, unit.index_in_container), (1, 2))

    def test_get_unit_not_found(self):
        self.client.session.get.return_value = _response({"code": 404}, status_code=404)
        self.assertIsNone(self.client.get_unit(1, 99))

    def test_network_error(self):
        self.client.session.get.side_effect = requests.ConnectionError("offline")
        with self.assertRaises(QuranAPIError):
            self.client.get_passage(1)

    def test_api_error_code(self):
        self.client.session.get.return_value = _response({"code": 400, "status": "Bad Request"})
        with self.assertRaises(QuranAPIError) as ctx:
            self.client.get_passage(1)
        self.assertEqual(ctx.exception.status_code, 400)

    def test_malformed_payload(self):
        self.client.session.get.return_value = _response({"code": 200, "data": {"verses": []}})
        with self.assertRaises(QuranAPIError):
            self.client.get_passage(1)

    def test_list_surahs(self):
        self.client.session.get.return_value = _response({
            "code": 200,
            "data": [{"number": 1, "name": "سُورَةُ ٱلْفَاتِحَةِ", "englishName": "Al-Faatiha"}],
        })
        surahs = self.client.list_surahs()
        self.assertEqual(surahs[0].number, 1)
        self.assertEqual(surahs[0].to_dict()["englishName"], "Al-Faatiha")

    def test_get_all_units(self):
        self.client.session.get.return_value = _response({
            "code": 200,
            "data": {"surahs": [
                {"number": 1, "ayahs": [{"numberInSurah": 1, "text": "بسم الله الرحمن الرحيم"}]},
                {"number": 112, "ayahs": [{"numberInSurah": 1, "text": "قل هو الله احد"}]},
            ]},
        })
        units = self.client.get_all_units()
        self.assertEqual([(u.container_id, u.index_in_container) for u in units], [(1, 1), (112, 1)])
        # Surahs are cached from the full download
        self.assertEqual(self.client.get_passage(112), [units[1]])
        self.client.session.get.assert_called_once()


class TestStripBasmalah(unittest.TestCase):

    def test_fatiha_keeps_basmalah(self):
        text = "بسم الله الرحمن الرحيم"
        self.assertEqual(strip_basmalah(1, 1, text), text)

    def test_later_verses_untouched(self):
        text = "بسم الله الرحمن الرحيم الم"
        self.assertEqual(strip_basmalah(2, 2, text), text)

    def test_stripped(self):
        self.assertEqual(strip_basmalah(112, 1, "بسم الله الرحمن الرحيم قل هو الله احد"), "قل هو الله احد")


class TestLocalQuranStore(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        data_dir = Path(self.tmp.name)
        quran = {
            "112": [
                {"chapter": 112, "verse": 1, "text": "قل هو الله احد"},
                {"chapter": 112, "verse": 2, "text": "الله الصمد"},
            ],
            "1": [{"chapter": 1, "verse": 1, "text": "بسم الله الرحمن الرحيم"}],
        }
        surahs = [{"number": 1, "name": "الفاتحة", "englishName": "Al-Faatiha"}]
        (data_dir / "quran.json").write_text(json.dumps(quran, ensure_ascii=False), encoding="utf-8")
        (data_dir / "surahs.json").write_text(json.dumps(surahs, ensure_ascii=False), encoding="utf-8")
        self.store = LocalQuranStore(data_dir)

    def tearDown(self):
        self.tmp.cleanup()

    def test_passage_and_unit(self):
        self.assertEqual(len(self.store.get_passage(112)), 2)
        self.assertEqual(self.store.get_unit(112, 2).text, "الله الصمد")
        self.assertIsNone(self.store.get_unit(112, 9))
        self.assertEqual(self.store.get_passage(5), [])

    def test_all_units_in_surah_order(self):
        units = self.store.get_all_units()
        self.assertEqual([u.container_id for u in units], [1, 112, 112])

    def test_list_surahs(self):
        self.assertEqual(self.store.list_surahs()[0].name, "الفاتحة")

    def test_missing_files(self):
        store = LocalQuranStore(Path(self.tmp.name) / "missing")
        with self.assertRaises(QuranAPIError):
            store.get_passage(1)


class TestWhisperAPIClient(unittest.TestCase):

    def test_missing_key(self):
        with self.assertRaises(TranscriptionError):
            WhisperAPIClient(api_key=None).transcribe(b"audio")

    def test_transcribe(self):
        client = WhisperAPIClient(api_key="key")
        client.session = MagicMock()
        client.session.post.return_value = _response({"text": "قل هو الله احد"})

        result = client.transcribe(b"audio", filename="clip.mp3")
        self.assertEqual(result.text, "قل هو الله احد")
        kwargs = client.session.post.call_args[1]
        self.assertEqual(kwargs["files"]["file"], ("clip.mp3", b"audio", "audio/mpeg"))
        self.assertEqual(kwargs["data"]["language"], "ar")
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer key")

    def test_provider_error(self):
        client = WhisperAPIClient(api_key="key")
        client.session = MagicMock()
        client.session.post.return_value = _response(status_code=401, ok=False, text="bad key")
        with self.assertRaises(TranscriptionError):
            client.transcribe(b"audio")


class TestAssemblyAIClient(unittest.TestCase):

    def setUp(self):
        self.client = AssemblyAIClient(api_key="key", poll_interval=0.01)
        self.client.session = MagicMock()
        self.client.session.post.side_effect = [
            _response({"upload_url": "https://cdn/upload/1"}),
            _response({"id": "abc"}),
        ]

    @patch("quran_tasmee.api_clients.time.sleep")
    def test_transcribe_polls_until_complete(self, mock_sleep):
        self.client.session.get.side_effect = [
            _response({"status": "processing"}),
            _response({"status": "completed", "text": "الله الصمد"}),
        ]
        result = self.client.transcribe(b"audio", expected_words=["الله", "الصمد"])

        self.assertEqual(result.text, "الله الصمد")
        mock_sleep.assert_called_once_with(0.01)
        request = self.client.session.post.call_args_list[1][1]["json"]
        self.assertEqual(request["language_code"], "ar")
        self.assertEqual(request["word_boost"], ["الله", "الصمد"])

    @patch("quran_tasmee.api_clients.time.sleep")
    def test_job_error(self, mock_sleep):
        self.client.session.get.return_value = _response({"status": "error", "error": "bad audio"})
        with self.assertRaises(TranscriptionError):
            self.client.transcribe(b"audio")

    def test_missing_key(self):
        with self.assertRaises(TranscriptionError):
            AssemblyAIClient(api_key="").transcribe(b"audio")


class TestFactories(unittest.TestCase):

    def test_mime_type(self):
        self.assertEqual(get_mime_type("a.WAV"), "audio/wav")
        self.assertEqual(get_mime_type("noext"), "audio/webm")

    def test_builders(self):
        self.assertIsInstance(build_reference_provider(Settings()), AlQuranAPIClient)
        self.assertIsInstance(build_reference_provider(Settings(quran_data_dir="/data")), LocalQuranStore)
        self.assertIsInstance(build_transcriber(Settings()), WhisperAPIClient)
        self.assertIsInstance(
            build_transcriber(Settings(transcription_provider="assemblyai")), AssemblyAIClient
        )


if __name__ == '__main__':
    unittest.main()
