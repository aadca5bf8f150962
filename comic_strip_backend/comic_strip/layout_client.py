import logging
from typing import List, Optional

import httpx
from pydantic import ValidationError

from .errors import LayoutError
from .models import LayoutImage, LayoutPanel
from .settings import PROXY_BASE_URL, IMAGE_TIMEOUT_S

logger = logging.getLogger(__name__)


def grid_columns(panel_count: int) -> int:
    return 2 if panel_count <= 4 else 3


class LayoutClient:
    def __init__(self, base_url: str = PROXY_BASE_URL, http: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url.rstrip("/")
        self._http = http

    async def compose_layout(self, panels: List[LayoutPanel], column_hint: Optional[int] = None) -> LayoutImage:
        cols = column_hint or grid_columns(len(panels))
        payload = {
            "image_urls": [p.image.data_url() for p in panels],
            "grid_cols": cols,
            "captions": [p.caption for p in panels],
        }
        url = f"{self.base_url}/api/grid"
        logger.info(f"Composing {len(panels)} panels into a {cols}-column grid")
        try:
            if self._http is not None:
                r = await self._http.post(url, json=payload)
            else:
                async with httpx.AsyncClient(timeout=IMAGE_TIMEOUT_S) as client:
                    r = await client.post(url, json=payload)
        except httpx.HTTPError as e:
            raise LayoutError(f"grid proxy unreachable: {e}") from e

        if r.status_code >= 400:
            raise LayoutError(f"grid proxy failed {r.status_code}: {r.text[:200]}")
        try:
            images = r.json().get("images") or []
        except (ValueError, AttributeError) as e:
            raise LayoutError("grid proxy returned an invalid body") from e
        first = images[0] if images and isinstance(images[0], dict) else {}
        if not first.get("url"):
            raise LayoutError("grid proxy returned no image url")
        try:
            return LayoutImage(url=first["url"], width=first.get("width"), height=first.get("height"))
        except ValidationError as e:
            raise LayoutError(f"grid proxy returned an invalid image: {e}") from e
