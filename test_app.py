"""
HTTP surface tests: proxy endpoints and the jobs API
"""
import asyncio, time

import httpx
import pytest
from fastapi.testclient import TestClient

from comic_strip import app as app_module
from comic_strip import settings
from comic_strip.app import app, JOBS
from comic_strip.models import DeviceSpeech, Phase, RemoteAudio

from test_orchestrator import DRAWING, STORY, FakeLayout, FakeNarration, make, request

client = TestClient(app)


@pytest.fixture(autouse=True)
def clean_jobs():
    JOBS.clear()
    yield
    JOBS.clear()


def _status_error(status, text):
    req = httpx.Request("POST", "https://upstream.test")
    return httpx.HTTPStatusError("upstream failed", request=req, response=httpx.Response(status, text=text, request=req))


def test_health():
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["ok"] is True


# --- /api/tts ---

def test_tts_requires_text():
    r = client.post("/api/tts", json={"text": "   "})
    assert r.status_code == 400
    assert r.json() == {"error": "text is required"}


def test_tts_missing_key(monkeypatch):
    monkeypatch.setattr(settings, "TTS_ENABLED", True)
    monkeypatch.delenv("ELEVENLABS_API_KEY", raising=False)
    r = client.post("/api/tts", json={"text": "Hello"})
    assert r.status_code == 500
    assert "ELEVENLABS_API_KEY" in r.json()["error"]


def test_tts_disabled_returns_notice(monkeypatch):
    monkeypatch.setattr(settings, "TTS_ENABLED", False)
    r = client.post("/api/tts", json={"text": "Hello"})
    assert r.status_code == 200
    assert r.json()["message"] == "TTS functionality temporarily disabled"


def test_tts_success(monkeypatch):
    monkeypatch.setattr(settings, "TTS_ENABLED", True)

    async def fake_tts(text, voice_id=None):
        assert text == "Hello"
        return b"ID3audio"

    monkeypatch.setattr(app_module, "tts_to_bytes", fake_tts)
    r = client.post("/api/tts", json={"text": "Hello"})
    assert r.status_code == 200
    assert r.headers["content-type"] == "audio/mpeg"
    assert r.content == b"ID3audio"


def test_tts_upstream_status_is_passed_through(monkeypatch):
    monkeypatch.setattr(settings, "TTS_ENABLED", True)

    async def fake_tts(text, voice_id=None):
        raise _status_error(429, "quota_exceeded")

    monkeypatch.setattr(app_module, "tts_to_bytes", fake_tts)
    r = client.post("/api/tts", json={"text": "Hello"})
    assert r.status_code == 429
    assert "quota" in r.json()["error"]


# --- /api/grid ---

def test_grid_requires_images():
    r = client.post("/api/grid", json={"image_urls": [], "grid_cols": 2})
    assert r.status_code == 400
    assert r.json() == {"error": "No images provided"}


def test_grid_missing_key(monkeypatch):
    monkeypatch.delenv("FAL_API_KEY", raising=False)
    r = client.post("/api/grid", json={"image_urls": ["data:image/png;base64,AAAA"], "grid_cols": 2})
    assert r.status_code == 500
    assert "FAL_API_KEY" in r.json()["error"]


def test_grid_success(monkeypatch):
    async def fake_grid(image_urls, grid_cols, captions=None):
        assert grid_cols == 3
        return {"images": [{"url": "https://cdn.test/grid.png", "width": 900, "height": 600}]}

    monkeypatch.setattr(app_module, "compose_grid", fake_grid)
    r = client.post("/api/grid", json={"image_urls": ["data:image/png;base64,AAAA"] * 5, "grid_cols": 3})
    assert r.status_code == 200
    assert r.json()["images"][0]["url"] == "https://cdn.test/grid.png"


def test_grid_upstream_error(monkeypatch):
    async def fake_grid(image_urls, grid_cols, captions=None):
        raise _status_error(503, "overloaded")

    monkeypatch.setattr(app_module, "compose_grid", fake_grid)
    r = client.post("/api/grid", json={"image_urls": ["data:image/png;base64,AAAA"], "grid_cols": 2})
    assert r.status_code == 503
    assert r.json() == {"error": "overloaded"}


# --- jobs ---

def _finished_job(narration=None, layout=None):
    orch = make(narration=narration, layout=layout)
    asyncio.run(orch.start(request()))
    JOBS["job-1"] = orch
    return orch


def test_start_rejects_invalid_input(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    r = client.post("/v1/comics:start", json={"drawing": DRAWING.model_dump(), "story": "  "})
    assert r.status_code == 400
    r = client.post("/v1/comics:start", json={"drawing": DRAWING.model_dump(), "story": STORY, "panel_count": 12})
    assert r.status_code == 400


def test_start_without_gemini_key(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    r = client.post("/v1/comics:start", json={"drawing": DRAWING.model_dump(), "story": STORY})
    assert r.status_code == 500
    assert "GEMINI_API_KEY" in r.json()["detail"]


def test_start_and_poll_until_ready(monkeypatch):
    monkeypatch.setattr(app_module, "build_orchestrator", lambda http: make())
    with TestClient(app) as live:
        r = live.post("/v1/comics:start", json={"drawing": DRAWING.model_dump(), "story": STORY, "panel_count": 4})
        assert r.status_code == 200
        job_id = r.json()["job_id"]

        deadline = time.time() + 5
        status = {}
        while time.time() < deadline:
            status = live.get(f"/v1/jobs/{job_id}").json()
            if status["phase"] == Phase.READY.value:
                break
            time.sleep(0.02)

        assert status["phase"] == "ready"
        assert status["busy"] is False
        assert status["title"] == "Hero Dog"
        assert status["progress"] == {"panels_completed": 4, "total_panels": 4}
        assert status["narration"] == ["remote-audio"] * 4
        assert status["has_layout"] is True


def test_job_not_found():
    assert client.get("/v1/jobs/nope").status_code == 404


def test_job_panels_and_layout():
    _finished_job()
    r = client.get("/v1/jobs/job-1/panels/0")
    assert r.status_code == 200
    assert r.headers["content-type"] == "image/png"
    assert client.get("/v1/jobs/job-1/panels/9").status_code == 404
    layout = client.get("/v1/jobs/job-1/layout").json()
    assert layout["url"] == "https://cdn.test/grid.png"


def test_layout_fallback_is_404():
    _finished_job(layout=FakeLayout(fail=True))
    assert client.get("/v1/jobs/job-1").json()["has_layout"] is False
    assert client.get("/v1/jobs/job-1/layout").status_code == 404
    assert client.get("/v1/jobs/job-1/panels/3").status_code == 200


def test_job_audio_download():
    orch = _finished_job(narration=FakeNarration(fail_texts={"Narration 1."}))
    audio = list(orch.state.panel_audio)
    audio[2] = DeviceSpeech(text="Narration 3.")
    orch._state = orch.state.model_copy(update={"panel_audio": audio})

    assert client.get("/v1/jobs/job-1/audio/0").status_code == 404
    r = client.get("/v1/jobs/job-1/audio/1")
    assert r.status_code == 200
    assert r.content == b"Narration 2."
    assert 'filename="panel-2.mp3"' in r.headers["content-disposition"]
    assert client.get("/v1/jobs/job-1/audio/2").status_code == 409
    assert isinstance(orch.state.panel_audio[3], RemoteAudio)


def test_abandon_job():
    _finished_job()
    r = client.delete("/v1/jobs/job-1")
    assert r.json() == {"job_id": "job-1", "status": "abandoned"}
    assert client.get("/v1/jobs/job-1").status_code == 404


def test_suggestions(monkeypatch):
    class FakeGemini:
        async def suggest_stories(self, drawing):
            assert drawing.data == DRAWING.data
            return ["A cat learns to fly"]

    monkeypatch.setattr(app_module, "GeminiClient", FakeGemini)
    r = client.post("/v1/suggestions", json={"drawing": DRAWING.model_dump()})
    assert r.json() == {"suggestions": ["A cat learns to fly"]}


def test_suggestions_without_key(monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    r = client.post("/v1/suggestions", json={"drawing": DRAWING.model_dump()})
    assert r.status_code == 500
