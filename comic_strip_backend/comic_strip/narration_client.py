import logging
from typing import Optional, Union

import httpx

from .errors import NarrationError, describe_tts_status
from .models import RemoteAudio, DeviceSpeech
from .settings import PROXY_BASE_URL, HTTP_TIMEOUT_S

logger = logging.getLogger(__name__)


class NarrationClient:
    """
    Talks to the /api/tts proxy. Narration is an enhancement: failures never
    reach the caller, they turn into on-device speech or into silence.
    """

    def __init__(self, base_url: str = PROXY_BASE_URL, http: Optional[httpx.AsyncClient] = None,
                 device_speech: bool = True):
        self.base_url = base_url.rstrip("/")
        self.device_speech = device_speech
        self._http = http

    async def _request(self, text: str) -> RemoteAudio:
        url = f"{self.base_url}/api/tts"
        try:
            if self._http is not None:
                r = await self._http.post(url, json={"text": text})
            else:
                async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_S) as client:
                    r = await client.post(url, json={"text": text})
        except httpx.HTTPError as e:
            raise NarrationError(f"narration proxy unreachable: {e}") from e

        if r.status_code >= 400:
            try:
                body = r.json()
            except ValueError:
                body = None
            detail = body.get("error", "") if isinstance(body, dict) else r.text
            raise NarrationError(describe_tts_status(r.status_code, detail), status_code=r.status_code)

        content_type = r.headers.get("content-type", "")
        if "audio/" not in content_type:
            raise NarrationError(f"ElevenLabs API returned invalid audio response: {r.text[:200]}")
        return RemoteAudio(data=r.content, mime_type=content_type.split(";")[0].strip())

    async def synthesize(self, text: str) -> Optional[Union[RemoteAudio, DeviceSpeech]]:
        if not text or not text.strip():
            return None
        try:
            audio = await self._request(text)
            logger.info(f"Narration ready ({len(audio.data)} bytes)")
            return audio
        except NarrationError as e:
            logger.warning(f"Narration degraded: {e}")
            if self.device_speech:
                return DeviceSpeech(text=text)
            return None
