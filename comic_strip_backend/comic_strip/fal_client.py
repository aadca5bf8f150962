import logging
from typing import List, Optional

import httpx

from .settings import FAL_GRID_URL, IMAGE_TIMEOUT_S, require_key

logger = logging.getLogger(__name__)


def _headers():
    return {"Authorization": f"Key {require_key('FAL_API_KEY')}", "Content-Type": "application/json"}


async def compose_grid(image_urls: List[str], grid_cols: int, captions: Optional[List[str]] = None,
                       http: Optional[httpx.AsyncClient] = None) -> dict:
    """Ask the Fal grid endpoint to lay panels out; returns {"images": [{url, width, height}]}."""
    body = {"image_urls": image_urls, "grid_cols": grid_cols}
    if captions and any(captions):
        body["captions"] = captions
    headers = _headers()
    logger.info(f"Requesting {grid_cols}-column grid of {len(image_urls)} images from {FAL_GRID_URL}")
    if http is not None:
        r = await http.post(FAL_GRID_URL, headers=headers, json=body)
    else:
        async with httpx.AsyncClient(timeout=IMAGE_TIMEOUT_S) as client:
            r = await client.post(FAL_GRID_URL, headers=headers, json=body)
    r.raise_for_status()
    result = r.json()
    images = []
    for img in result.get("images") or []:
        if isinstance(img, dict) and img.get("url"):
            images.append({"url": img["url"], "width": img.get("width"), "height": img.get("height")})
    return {"images": images}
