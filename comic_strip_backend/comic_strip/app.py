import asyncio, logging, uuid
from typing import Dict, List, Optional

import httpx
from fastapi import Body, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field, ValidationError

# Ensure .env is loaded before importing modules that read credentials
from . import settings
from .settings import has_all_keys, ALLOWED_ORIGINS, IMAGE_TIMEOUT_S
from .errors import ConfigurationError, describe_tts_status
from .elevenlabs_client import tts_to_bytes
from .fal_client import compose_grid
from .gemini_client import GeminiClient
from .layout_client import LayoutClient
from .models import ComicRequest, EncodedImage, DeviceSpeech
from .narration_client import NarrationClient
from .orchestrator import Orchestrator

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(title="Comic Strip Backend")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS or ["*"],
    allow_credentials=True,
    allow_methods=["POST", "GET", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Job runs reach /api/tts and /api/grid on this same app, in-process.
SELF_BASE_URL = "http://comic-strip"


class TTSRequest(BaseModel):
    text: str = ""
    voice_id: Optional[str] = None


class GridRequest(BaseModel):
    image_urls: List[str] = Field(default_factory=list)
    grid_cols: int = 2
    captions: Optional[List[str]] = None


class SuggestionsRequest(BaseModel):
    drawing: EncodedImage


@app.get("/health")
def health():
    keys_ok = has_all_keys()
    logger.info(f"Health check: API keys present = {keys_ok}")
    return {"ok": True, "has_keys": keys_ok}


# --- proxy endpoints: credentials stay on the server ---

@app.post("/api/tts")
async def tts(req: TTSRequest):
    if not req.text.strip():
        return JSONResponse(status_code=400, content={"error": "text is required"})
    if not settings.TTS_ENABLED:
        logger.info("TTS disabled; answering with a degraded notice")
        return {"success": True, "message": "TTS functionality temporarily disabled", "text": req.text}
    try:
        audio = await tts_to_bytes(req.text, voice_id=req.voice_id)
    except ConfigurationError as e:
        logger.error(f"TTS unavailable: {e}")
        return JSONResponse(status_code=500, content={"error": str(e)})
    except httpx.HTTPStatusError as e:
        status = e.response.status_code
        return JSONResponse(status_code=status, content={"error": describe_tts_status(status, e.response.text[:200])})
    except httpx.HTTPError as e:
        logger.error(f"TTS upstream unreachable: {e}")
        return JSONResponse(status_code=502, content={"error": f"tts failed: {e}"})
    return Response(content=audio, media_type="audio/mpeg")


@app.post("/api/grid")
async def grid(req: GridRequest):
    if not req.image_urls:
        return JSONResponse(status_code=400, content={"error": "No images provided"})
    try:
        result = await compose_grid(req.image_urls, req.grid_cols, req.captions)
    except ConfigurationError as e:
        logger.error(f"Grid unavailable: {e}")
        return JSONResponse(status_code=500, content={"error": str(e)})
    except httpx.HTTPStatusError as e:
        logger.error(f"Grid upstream failed {e.response.status_code}: {e.response.text[:200]}")
        return JSONResponse(status_code=e.response.status_code, content={"error": e.response.text[:200] or "grid failed"})
    except (httpx.HTTPError, ValueError) as e:
        logger.error(f"Grid upstream error: {e}")
        return JSONResponse(status_code=502, content={"error": f"grid failed: {e}"})
    if not result["images"]:
        return JSONResponse(status_code=502, content={"error": "grid service returned no image"})
    return result


# --- job registry driving the orchestrator ---

JOBS: Dict[str, Orchestrator] = {}
TASKS: Dict[str, asyncio.Task] = {}


def _self_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url=SELF_BASE_URL, timeout=IMAGE_TIMEOUT_S)


def build_orchestrator(http: httpx.AsyncClient) -> Orchestrator:
    return Orchestrator(
        GeminiClient(),
        NarrationClient(base_url=SELF_BASE_URL, http=http),
        LayoutClient(base_url=SELF_BASE_URL, http=http),
    )


async def _run_job(job_id: str, orchestrator: Orchestrator, req: ComicRequest, http: httpx.AsyncClient):
    try:
        async with http:
            final_state = await orchestrator.start(req)
        logger.info(f"Job {job_id} finished in phase {final_state.phase.value}")
    except Exception as e:
        logger.error(f"Job {job_id} crashed: {e}")
    finally:
        TASKS.pop(job_id, None)


def _job(job_id: str) -> Orchestrator:
    orchestrator = JOBS.get(job_id)
    if orchestrator is None:
        raise HTTPException(404, "job not found")
    return orchestrator


@app.post("/v1/comics:start")
async def start_comic(payload: dict = Body(...)):
    try:
        req = ComicRequest.model_validate(payload)
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first["loc"]) or "request"
        raise HTTPException(400, f"invalid {field}: {first['msg']}")
    logger.info(f"Starting comic for story: {req.story[:50]}...")
    http = _self_client()
    try:
        orchestrator = build_orchestrator(http)
    except ConfigurationError as e:
        await http.aclose()
        logger.error(f"Cannot start comic: {e}")
        raise HTTPException(500, f"Server configuration error: {e}")

    job_id = str(uuid.uuid4())
    JOBS[job_id] = orchestrator
    TASKS[job_id] = asyncio.create_task(_run_job(job_id, orchestrator, req, http))
    return {"job_id": job_id, "phase": orchestrator.state.phase.value}


@app.get("/v1/jobs/{job_id}")
async def job_status(job_id: str):
    state = _job(job_id).state
    return {
        "job_id": job_id,
        "phase": state.phase.value,
        "busy": state.busy,
        "status_message": state.status_message,
        "error": state.error.message if state.error else None,
        "error_stage": state.error.stage.value if state.error and state.error.stage else None,
        "title": state.storyboard.title if state.storyboard else None,
        "progress": {
            "panels_completed": state.panels_completed,
            "total_panels": len(state.panel_images),
        },
        "narration": [a.kind if a is not None else None for a in state.panel_audio],
        "has_layout": state.final_layout is not None,
    }


@app.get("/v1/jobs/{job_id}/panels/{index}")
async def job_panel(job_id: str, index: int):
    images = _job(job_id).state.panel_images
    if index < 0 or index >= len(images) or images[index] is None:
        raise HTTPException(404, "panel not ready")
    image = images[index]
    return Response(content=image.to_bytes(), media_type=image.mime_type)


@app.get("/v1/jobs/{job_id}/layout")
async def job_layout(job_id: str):
    layout = _job(job_id).state.final_layout
    if layout is None:
        raise HTTPException(404, "no composed layout; show the panels instead")
    return layout.model_dump()


@app.get("/v1/jobs/{job_id}/audio/{index}")
async def job_audio(job_id: str, index: int):
    audio = _job(job_id).state.panel_audio
    if index < 0 or index >= len(audio) or audio[index] is None:
        raise HTTPException(404, "no narration for this panel")
    handle = audio[index]
    if isinstance(handle, DeviceSpeech):
        raise HTTPException(409, "on-device narration cannot be downloaded")
    headers = {"Content-Disposition": f'attachment; filename="{handle.filename(index)}"'}
    return Response(content=handle.data, media_type=handle.mime_type, headers=headers)


@app.delete("/v1/jobs/{job_id}")
async def abandon_job(job_id: str):
    orchestrator = _job(job_id)
    orchestrator.reset()
    JOBS.pop(job_id, None)
    return {"job_id": job_id, "status": "abandoned"}


@app.post("/v1/suggestions")
async def suggestions(req: SuggestionsRequest):
    try:
        client = GeminiClient()
    except ConfigurationError as e:
        raise HTTPException(500, f"Server configuration error: {e}")
    return {"suggestions": await client.suggest_stories(req.drawing)}
