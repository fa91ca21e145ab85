"""
Runtime settings, read from the environment (and a .env file if present).
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _get_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    value = value.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"{name} must be a boolean, got {value!r}")


def _get_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


@dataclass
class Settings:
    """All configurable values of the service."""
    openai_api_key: Optional[str] = None
    assemblyai_api_key: Optional[str] = None
    transcription_provider: str = "whisper"
    quran_data_dir: Optional[str] = None
    max_audio_bytes: int = 10 * 1024 * 1024
    tracker_fuzzy_matching: bool = True
    tracker_resync_window: int = 10
    tracker_miss_threshold: int = 3
    alert_interval_ms: int = 300
    locator_min_confidence: int = 30
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        provider = os.getenv("TRANSCRIPTION_PROVIDER", "whisper").strip().lower()
        if provider not in ("whisper", "assemblyai"):
            raise ValueError(f"TRANSCRIPTION_PROVIDER must be 'whisper' or 'assemblyai', got {provider!r}")

        return cls(
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            assemblyai_api_key=os.getenv("ASSEMBLYAI_API_KEY"),
            transcription_provider=provider,
            quran_data_dir=os.getenv("QURAN_DATA_DIR") or None,
            max_audio_bytes=_get_int("MAX_AUDIO_BYTES", 10 * 1024 * 1024),
            tracker_fuzzy_matching=_get_bool("TRACKER_FUZZY_MATCHING", True),
            tracker_resync_window=_get_int("TRACKER_RESYNC_WINDOW", 10),
            tracker_miss_threshold=_get_int("TRACKER_MISS_THRESHOLD", 3),
            alert_interval_ms=_get_int("ALERT_INTERVAL_MS", 300),
            locator_min_confidence=_get_int("LOCATOR_MIN_CONFIDENCE", 30),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
