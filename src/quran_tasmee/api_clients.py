"""
API clients for external Quran text and speech-to-text resources.
"""

import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union
from urllib.parse import urljoin

import requests

from .config import Settings
from .tasmee_typing import ReferenceUnit
from .text_normalizer import normalize


class QuranAPIError(Exception):
    """Reference text could not be fetched or parsed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TranscriptionError(Exception):
    """The speech-to-text provider failed or is not configured."""


@dataclass
class Surah:
    """Catalogue entry for one surah."""
    number: int
    name: str
    english_name: str

    def to_dict(self) -> Dict:
        return {"number": self.number, "name": self.name, "englishName": self.english_name}


@dataclass
class TranscriptionResult:
    """Transcript returned by a speech-to-text provider."""
    text: str
    language: str = "ar"


# Verse 1 of every surah except Al-Fatiha and At-Tawba is prefixed with it
# in some editions.
BASMALAH_FORMS = {
    normalize("بسم الله الرحمن الرحيم"),
    normalize("بسم الله الرحم\u0670ن الرحيم"),
}


def strip_basmalah(surah_number: int, ayah_number: int, text: str) -> str:
    """Remove a Basmalah preamble glued to the first verse of a surah."""
    if surah_number in (1, 9) or ayah_number != 1:
        return text
    words = text.split()
    if len(words) > 4 and normalize(" ".join(words[:4])) in BASMALAH_FORMS:
        return " ".join(words[4:])
    return text


class AlQuranAPIClient:
    """Client for AlQuran Cloud API."""

    BASE_URL = "https://api.alquran.cloud/v1/"

    def __init__(self, edition: str = "quran-uthmani", timeout: int = 10):
        """
        Initialize AlQuran API client.

        Args:
            edition: Text edition identifier (diacritized editions are expected)
            timeout: Request timeout in seconds
        """
        self.edition = edition
        self.timeout = timeout
        self.session = requests.Session()
        self.logger = logging.getLogger(__name__)
        self._passages: Dict[int, List[ReferenceUnit]] = {}

    def list_surahs(self) -> List[Surah]:
        """Get the catalogue of all surahs."""
        data = self._make_request("surah")
        try:
            return [
                Surah(number=item["number"], name=item["name"], english_name=item["englishName"])
                for item in data
            ]
        except (KeyError, TypeError) as e:
            raise QuranAPIError(f"Unexpected surah list payload: {e}")

    def get_passage(self, surah_number: int) -> List[ReferenceUnit]:
        """
        Get every verse of a surah in recitation order.

        Args:
            surah_number: Surah number (1-114)

        Returns:
            List of ReferenceUnit, one per ayah
        """
        if surah_number in self._passages:
            return self._passages[surah_number]

        data = self._make_request(f"surah/{surah_number}/{self.edition}")
        try:
            units = [
                ReferenceUnit(
                    container_id=surah_number,
                    index_in_container=ayah["numberInSurah"],
                    text=strip_basmalah(surah_number, ayah["numberInSurah"], ayah["text"]),
                )
                for ayah in data["ayahs"]
            ]
        except (KeyError, TypeError) as e:
            raise QuranAPIError(f"Unexpected surah payload for {surah_number}: {e}")

        self._passages[surah_number] = units
        return units

    def get_unit(self, surah_number: int, ayah_number: int) -> Optional[ReferenceUnit]:
        """
        Get a single verse.

        Returns:
            The ReferenceUnit, or None if the ayah does not exist
        """
        try:
            data = self._make_request(f"ayah/{surah_number}:{ayah_number}/{self.edition}")
        except QuranAPIError as e:
            if e.status_code == 404:
                return None
            raise

        try:
            return ReferenceUnit(
                container_id=surah_number,
                index_in_container=data["numberInSurah"],
                text=strip_basmalah(surah_number, data["numberInSurah"], data["text"]),
            )
        except (KeyError, TypeError) as e:
            raise QuranAPIError(f"Unexpected ayah payload for {surah_number}:{ayah_number}: {e}")

    def get_all_units(self) -> List[ReferenceUnit]:
        """Get the whole text in one request."""
        data = self._make_request(f"quran/{self.edition}")
        units: List[ReferenceUnit] = []
        try:
            for surah in data["surahs"]:
                passage = [
                    ReferenceUnit(
                        container_id=surah["number"],
                        index_in_container=ayah["numberInSurah"],
                        text=strip_basmalah(surah["number"], ayah["numberInSurah"], ayah["text"]),
                    )
                    for ayah in surah["ayahs"]
                ]
                self._passages[surah["number"]] = passage
                units.extend(passage)
        except (KeyError, TypeError) as e:
            raise QuranAPIError(f"Unexpected Quran payload: {e}")
        return units

    def _make_request(self, endpoint: str):
        """Make a request to the AlQuran API and return its `data` field."""
        url = urljoin(self.BASE_URL, endpoint)
        self.logger.debug(f"Making request to: {url}")

        try:
            response = self.session.get(url, timeout=self.timeout)
            if response.status_code == 404:
                raise QuranAPIError(f"API Error (404): {url} not found", status_code=404)
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as e:
            self.logger.error(f"Network error accessing AlQuran API: {e}")
            raise QuranAPIError(f"Failed to fetch {endpoint}: {e}")
        except ValueError as e:
            raise QuranAPIError(f"Invalid JSON from AlQuran API: {e}")

        if payload.get("code") != 200:
            raise QuranAPIError(
                f"API Error ({payload.get('code')}): {payload.get('status', 'Unknown error')}",
                status_code=payload.get("code"),
            )
        return payload["data"]


class LocalQuranStore:
    """
    Reference text served from local JSON files.

    Expects `quran.json` shaped {"<surah>": [{"chapter", "verse", "text"}, ...]}
    and `surahs.json` shaped [{"number", "name", "englishName"}, ...].
    """

    def __init__(self, data_dir: Union[str, Path]):
        self.data_dir = Path(data_dir)
        self.logger = logging.getLogger(__name__)
        self._quran: Optional[Dict[str, List[Dict]]] = None
        self._surahs: Optional[List[Dict]] = None

    def _load(self, filename: str):
        path = self.data_dir / filename
        self.logger.debug(f"Loading {path}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            raise QuranAPIError(f"Failed to load {path}: {e}")

    @property
    def quran(self) -> Dict[str, List[Dict]]:
        if self._quran is None:
            self._quran = self._load("quran.json")
        return self._quran

    def list_surahs(self) -> List[Surah]:
        if self._surahs is None:
            self._surahs = self._load("surahs.json")
        return [
            Surah(number=s["number"], name=s["name"], english_name=s.get("englishName", ""))
            for s in self._surahs
        ]

    def get_passage(self, surah_number: int) -> List[ReferenceUnit]:
        verses = self.quran.get(str(surah_number), [])
        return [
            ReferenceUnit(container_id=v["chapter"], index_in_container=v["verse"], text=v["text"])
            for v in verses
        ]

    def get_unit(self, surah_number: int, ayah_number: int) -> Optional[ReferenceUnit]:
        return next(
            (u for u in self.get_passage(surah_number) if u.index_in_container == ayah_number),
            None,
        )

    def get_all_units(self) -> List[ReferenceUnit]:
        units: List[ReferenceUnit] = []
        for key in sorted(self.quran, key=int):
            units.extend(self.get_passage(int(key)))
        return units


MIME_TYPES = {
    "webm": "audio/webm",
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
    "m4a": "audio/mp4",
    "ogg": "audio/ogg",
    "mp4": "audio/mp4",
}


def get_mime_type(filename: str) -> str:
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    return MIME_TYPES.get(ext, "audio/webm")


class WhisperAPIClient:
    """Client for the OpenAI Whisper transcription endpoint."""

    URL = "https://api.openai.com/v1/audio/transcriptions"

    def __init__(self, api_key: Optional[str], model: str = "whisper-1", language: str = "ar", timeout: int = 60):
        self.api_key = api_key
        self.model = model
        self.language = language
        self.timeout = timeout
        self.session = requests.Session()
        self.logger = logging.getLogger(__name__)

    def transcribe(
        self,
        audio_bytes: bytes,
        filename: str = "recording.webm",
        expected_words: Optional[List[str]] = None,
    ) -> TranscriptionResult:
        """
        Transcribe a recording. The language is forced to Arabic.

        `expected_words` is accepted for interface parity; Whisper has no word boost.
        """
        if not self.api_key:
            raise TranscriptionError("OPENAI_API_KEY environment variable is not set")

        files = {"file": (filename, audio_bytes, get_mime_type(filename))}
        data = {"model": self.model, "language": self.language, "response_format": "json"}
        try:
            response = self.session.post(
                self.URL,
                headers={"Authorization": f"Bearer {self.api_key}"},
                files=files,
                data=data,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            self.logger.error(f"Network error accessing Whisper API: {e}")
            raise TranscriptionError(f"Whisper API request failed: {e}")

        if not response.ok:
            raise TranscriptionError(f"Whisper API error ({response.status_code}): {response.text}")

        text = response.json().get("text", "")
        self.logger.info(f"Whisper returned {len(text.split())} words")
        return TranscriptionResult(text=text, language=self.language)


class AssemblyAIClient:
    """Client for AssemblyAI upload-then-poll transcription."""

    BASE_URL = "https://api.assemblyai.com/v2/"

    def __init__(self, api_key: Optional[str], poll_interval: float = 2.0, max_wait: float = 300.0):
        self.api_key = api_key
        self.poll_interval = poll_interval
        self.max_wait = max_wait
        self.session = requests.Session()
        self.logger = logging.getLogger(__name__)

    def transcribe(
        self,
        audio_bytes: bytes,
        filename: str = "recording.webm",
        expected_words: Optional[List[str]] = None,
    ) -> TranscriptionResult:
        """
        Upload a recording, request an Arabic transcript and wait for it.

        Args:
            audio_bytes: Encoded audio
            filename: Original file name (unused by AssemblyAI, kept for parity)
            expected_words: Reference words to boost recognition of
        """
        if not self.api_key:
            raise TranscriptionError("ASSEMBLYAI_API_KEY environment variable is not set")
        headers = {"authorization": self.api_key}

        try:
            upload_response = self.session.post(urljoin(self.BASE_URL, "upload"), headers=headers, data=audio_bytes)
            upload_response.raise_for_status()
            audio_url = upload_response.json()["upload_url"]

            transcript_request = {"audio_url": audio_url, "language_code": "ar"}
            if expected_words:
                transcript_request["word_boost"] = expected_words
                transcript_request["boost_param"] = "high"
            transcript_response = self.session.post(
                urljoin(self.BASE_URL, "transcript"), json=transcript_request, headers=headers
            )
            transcript_response.raise_for_status()
            transcript_id = transcript_response.json()["id"]

            waited = 0.0
            while True:
                polling_response = self.session.get(urljoin(self.BASE_URL, f"transcript/{transcript_id}"), headers=headers)
                polling_response.raise_for_status()
                polling_json = polling_response.json()
                if polling_json["status"] == "completed":
                    text = polling_json.get("text") or ""
                    self.logger.info(f"Successfully retrieved transcript of {len(text.split())} words from AssemblyAI.")
                    return TranscriptionResult(text=text, language="ar")
                if polling_json["status"] == "error":
                    raise TranscriptionError(f"AssemblyAI transcription failed: {polling_json.get('error')}")
                if waited >= self.max_wait:
                    raise TranscriptionError(f"AssemblyAI transcription not ready after {self.max_wait:.0f}s")
                self.logger.debug("Transcription in progress, waiting...")
                time.sleep(self.poll_interval)
                waited += self.poll_interval
        except requests.RequestException as e:
            self.logger.error(f"API error during AssemblyAI transcription: {e}")
            raise TranscriptionError(f"AssemblyAI request failed: {e}")
        except (KeyError, ValueError) as e:
            raise TranscriptionError(f"Unexpected AssemblyAI response: {e}")


# Convenience functions
def build_reference_provider(settings: Settings):
    """Local JSON store when QURAN_DATA_DIR is set, the AlQuran Cloud API otherwise."""
    if settings.quran_data_dir:
        return LocalQuranStore(settings.quran_data_dir)
    return AlQuranAPIClient()


def build_transcriber(settings: Settings):
    if settings.transcription_provider == "assemblyai":
        return AssemblyAIClient(settings.assemblyai_api_key)
    return WhisperAPIClient(settings.openai_api_key)
