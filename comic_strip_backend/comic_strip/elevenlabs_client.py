import asyncio, logging
from typing import Optional

import httpx

from .settings import ELEVENLABS_VOICE_ID, ELEVENLABS_MODEL_ID, HTTP_TIMEOUT_S, require_key

logger = logging.getLogger(__name__)


def _headers():
    return {
        "xi-api-key": require_key("ELEVENLABS_API_KEY"),
        "Content-Type": "application/json",
        "Accept": "audio/mpeg",
    }


async def tts_to_bytes(text: str, voice_id: Optional[str] = None, max_retries: int = 3,
                       http: Optional[httpx.AsyncClient] = None) -> bytes:
    """Synthesize `text` with ElevenLabs; retries only on 429 with exponential backoff."""
    payload = {
        "text": text,
        "model_id": ELEVENLABS_MODEL_ID,
        "voice_settings": {"stability": 0.5, "similarity_boost": 0.75},
    }
    url = f"https://api.elevenlabs.io/v1/text-to-speech/{voice_id or ELEVENLABS_VOICE_ID}"
    headers = _headers()

    for attempt in range(max_retries + 1):
        try:
            if http is not None:
                r = await http.post(url, headers=headers, json=payload)
            else:
                async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_S) as client:
                    r = await client.post(url, headers=headers, json=payload)
            r.raise_for_status()
            return r.content
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 429 and attempt < max_retries:
                wait_time = 2 ** attempt
                logger.warning(f"ElevenLabs rate limited (429). Retrying in {wait_time} seconds... (attempt {attempt + 1}/{max_retries + 1})")
                await asyncio.sleep(wait_time)
                continue
            logger.error(f"ElevenLabs TTS failed {e.response.status_code}: {e.response.text[:200]}")
            raise
