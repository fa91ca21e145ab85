"""
FastAPI backend for the Quran recitation checking system.
"""

import json
import logging
from typing import List, Optional

from fastapi import FastAPI, File, Form, HTTPException, Query, UploadFile, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
import uvicorn

from .api_clients import QuranAPIError, TranscriptionError, build_reference_provider, build_transcriber
from .config import Settings
from .correction_pipeline import CheckResult, PassageNotFoundError, RecitationChecker
from .incremental_tracker import TrackerConfig
from .live_session import RecitationSession


# Pydantic models for API requests/responses
class TextCheckRequest(BaseModel):
    """Request model for checking an already transcribed recitation."""
    surah: int = Field(..., description="Surah number (1-114)")
    ayah: Optional[int] = Field(None, ge=1, description="Ayah number; whole surah when omitted")
    recognized: str = Field(..., description="Transcript of the recitation")
    detect: bool = Field(False, description="Locate the recited ayah when none is given")


class DetectRequest(BaseModel):
    """Request model for verse detection."""
    text: str
    surah: Optional[int] = Field(None, description="Restrict the search to this surah")


class MistakeResponse(BaseModel):
    kind: str
    position: int
    expected: Optional[str] = None
    actual: Optional[str] = None


class VerseResultResponse(BaseModel):
    ayah: int
    expected: str
    mistakes: List[MistakeResponse]
    is_correct: bool


class DetectedVerseResponse(BaseModel):
    surah: int
    ayah: int
    confidence: int
    matched_text: str


class CheckResponse(BaseModel):
    """Response model for check results."""
    surah: int
    recognized: str
    expected: str
    score: int
    mistakes: List[MistakeResponse]
    verse_results: List[VerseResultResponse]
    detected_verse: Optional[DetectedVerseResponse] = None
    processing_time: float
    summary: str


class SurahResponse(BaseModel):
    number: int
    name: str
    englishName: str


class VerseResponse(BaseModel):
    chapter: int
    verse: int
    text: str


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    message: str
    checker_ready: bool


# Initialize FastAPI app
app = FastAPI(
    title="Quran Recitation Checking API",
    description="API for checking Quran recitation word by word against the reference text",
    version="1.0.0"
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Global checker instance
checker: Optional[RecitationChecker] = None
settings: Settings = Settings()
logger = logging.getLogger(__name__)


@app.on_event("startup")
async def startup_event():
    """Initialize the checking system on startup."""
    global checker, settings
    try:
        logger.info("Initializing Quran recitation checker...")
        settings = Settings.from_env()
        checker = RecitationChecker(
            build_reference_provider(settings),
            transcriber=build_transcriber(settings),
            settings=settings,
        )
        logger.info("Checker initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize checker: {e}")
        raise


def _require_checker() -> RecitationChecker:
    if checker is None:
        raise HTTPException(status_code=503, detail="Checking system not initialized")
    return checker


def _validate_surah(surah: Optional[int]) -> None:
    if surah is not None and not 1 <= surah <= 114:
        raise HTTPException(status_code=400, detail="Surah must be between 1 and 114")


def _run_check(func, *args, **kwargs):
    """Call a checker method and map its failures to HTTP errors."""
    try:
        return func(*args, **kwargs)
    except PassageNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (QuranAPIError, TranscriptionError) as e:
        logger.error(f"Provider error: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    except Exception as e:
        logger.error(f"Error processing recitation: {e}")
        raise HTTPException(status_code=500, detail=f"Processing failed: {str(e)}")


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(
        status="healthy" if checker is not None else "unhealthy",
        message="Quran recitation checking API is running",
        checker_ready=checker is not None
    )


@app.get("/surahs", response_model=List[SurahResponse])
async def get_surahs():
    """Get the catalogue of all surahs."""
    current = _require_checker()
    try:
        return [s.to_dict() for s in current.reference_provider.list_surahs()]
    except QuranAPIError as e:
        logger.error(f"Failed to list surahs: {e}")
        raise HTTPException(status_code=502, detail=str(e))


@app.get("/verses", response_model=List[VerseResponse])
async def get_verses(surah: int = Query(..., description="Surah number (1-114)")):
    """Get every verse of a surah."""
    current = _require_checker()
    _validate_surah(surah)
    try:
        units = current.reference_provider.get_passage(surah)
    except QuranAPIError as e:
        logger.error(f"Failed to get verses of Surah {surah}: {e}")
        raise HTTPException(status_code=502, detail=str(e))
    return [
        {"chapter": u.container_id, "verse": u.index_in_container, "text": u.text}
        for u in units
    ]


@app.post("/check-recitation", response_model=CheckResponse)
async def check_recitation(
    audio: UploadFile = File(..., description="Audio file of the recitation"),
    surah: int = Form(..., description="Surah number (1-114)"),
    ayah: Optional[int] = Form(None, ge=1, description="Ayah number"),
    detect: bool = Form(False, description="Locate the recited ayah when none is given"),
):
    """
    Check a Quran recitation from an uploaded audio file.

    The recording is transcribed, aligned word by word against the reference
    text and every mistake is attributed to its verse.
    """
    current = _require_checker()
    _validate_surah(surah)

    # Validate audio file
    if not audio.content_type or not audio.content_type.startswith("audio/"):
        raise HTTPException(status_code=400, detail="Invalid audio file format")
    content = await audio.read()
    if not content:
        raise HTTPException(status_code=400, detail="Empty audio file")
    if len(content) > settings.max_audio_bytes:
        raise HTTPException(status_code=400, detail="Audio file too large")

    logger.info(f"Processing recitation for Surah {surah}, Ayah {ayah or 'all'}")
    result = _run_check(
        current.check_recitation,
        content,
        surah,
        ayah_number=ayah,
        filename=audio.filename or "recording.webm",
        detect=detect,
    )
    return _convert_check_result(result)


@app.post("/check-text", response_model=CheckResponse)
async def check_text(request: TextCheckRequest):
    """Check an already transcribed recitation."""
    current = _require_checker()
    _validate_surah(request.surah)
    result = _run_check(
        current.check_text,
        request.recognized,
        request.surah,
        ayah_number=request.ayah,
        detect=request.detect,
    )
    return _convert_check_result(result)


@app.post("/detect-verse")
async def detect_verse(request: DetectRequest):
    """Find the verse a recognized utterance belongs to."""
    current = _require_checker()
    _validate_surah(request.surah)
    located = _run_check(current.detect_verse, request.text, request.surah)
    return {"detected_verse": located.to_dict() if located else None}


@app.websocket("/ws/recite/{surah}")
async def recite(websocket: WebSocket, surah: int):
    """
    Live follow-along over one surah.

    Each message is a transcript segment `{segment_id, text, is_final, generation?}`
    or `{"type": "reset"}`; every reply is the session snapshot.
    """
    await websocket.accept()
    if checker is None or not 1 <= surah <= 114:
        await websocket.close(code=1008)
        return

    try:
        units = checker.reference_provider.get_passage(surah)
    except QuranAPIError as e:
        logger.error(f"Failed to load Surah {surah} for live session: {e}")
        await websocket.close(code=1011)
        return

    session = RecitationSession(
        units,
        config=TrackerConfig(
            fuzzy_matching=settings.tracker_fuzzy_matching,
            resync_window=settings.tracker_resync_window,
            miss_threshold=settings.tracker_miss_threshold,
        ),
        alert_interval_ms=settings.alert_interval_ms,
        normalizer=checker.normalizer,
    )
    logger.info(f"Live session started for Surah {surah}")
    await websocket.send_json(session.snapshot())

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                message = json.loads(raw)
            except ValueError:
                message = None
            if not isinstance(message, dict) or not isinstance(message.get("text", ""), str):
                logger.warning(f"Ignoring malformed live message: {raw[:100]!r}")
                await websocket.send_json(session.snapshot())
                continue

            if message.get("type") == "reset":
                session.reset()
                await websocket.send_json(session.snapshot())
                continue

            update = session.feed_segment(
                message.get("text", ""),
                segment_id=message.get("segment_id"),
                is_final=bool(message.get("is_final", False)),
                generation=message.get("generation"),
            )
            await websocket.send_json(session.snapshot(update))
    except WebSocketDisconnect:
        logger.info(f"Live session for Surah {surah} closed")


def _convert_check_result(result: CheckResult) -> CheckResponse:
    """Convert CheckResult to API response format."""
    data = result.to_dict()
    if checker:
        summary = checker.get_correction_summary(result)
    else:
        summary = "Processing completed"
    return CheckResponse(summary=summary, **data)


# Development server function
def run_server(host: str = "127.0.0.1", port: int = 8000, reload: bool = False):
    """Run the FastAPI server."""
    uvicorn.run(
        "quran_tasmee.fastapi_server:app",
        host=host,
        port=port,
        reload=reload,
        log_level="info"
    )


if __name__ == "__main__":
    # Configure logging
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    # Run server
    run_server(reload=True)
