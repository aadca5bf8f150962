import asyncio, json, logging
from typing import Dict, List, Optional

import httpx
from pydantic import ValidationError

from .errors import GenerationError, Stage
from .models import EncodedImage, Storyboard
from .prompts import (
    POSES,
    CHARACTER_GENERATION_TEMPLATE,
    CHARACTER_CONSISTENCY_PROMPT,
    PANEL_RENDERING_TEMPLATE,
    STORYBOARD_SYSTEM_TEMPLATE,
    STORYBOARD_USER_TEMPLATE,
    DESCRIBE_CHARACTER_PROMPT,
    STORY_SUGGESTION_TEMPLATE,
    DEFAULT_STORY_SUGGESTIONS,
    SUGGESTIONS_SCHEMA,
    storyboard_schema,
)
from .settings import (
    GEMINI_API_BASE,
    GEMINI_IMAGE_MODEL,
    GEMINI_TEXT_MODEL,
    IMAGE_TIMEOUT_S,
    require_key,
)

logger = logging.getLogger(__name__)

IMAGE_CONFIG = {"responseModalities": ["IMAGE", "TEXT"]}


def _image_part(image: EncodedImage) -> dict:
    return {"inline_data": {"mime_type": image.mime_type, "data": image.data}}


def _text_part(text: str) -> dict:
    return {"text": text}


def _parts(body: dict) -> list:
    candidates = body.get("candidates") or []
    if not candidates:
        return []
    return ((candidates[0] or {}).get("content") or {}).get("parts") or []


def first_image(body: dict) -> Optional[EncodedImage]:
    for part in _parts(body):
        inline = part.get("inlineData") or part.get("inline_data")
        if inline and inline.get("data"):
            mime = inline.get("mimeType") or inline.get("mime_type") or "image/png"
            return EncodedImage(data=inline["data"], mime_type=mime)
    return None


def response_text(body: dict) -> str:
    return "".join(part.get("text", "") for part in _parts(body))


class GeminiClient:
    """
    Calls the Gemini generateContent REST endpoint for the three generation jobs:
    character cards, storyboard planning and panel illustration.
    """

    def __init__(self, api_key: Optional[str] = None, http: Optional[httpx.AsyncClient] = None,
                 poses: Dict[str, str] = POSES, image_model: str = GEMINI_IMAGE_MODEL,
                 text_model: str = GEMINI_TEXT_MODEL, base_url: str = GEMINI_API_BASE):
        self.api_key = api_key or require_key("GEMINI_API_KEY")
        self.poses = dict(poses)
        self.image_model = image_model
        self.text_model = text_model
        self.base_url = base_url.rstrip("/")
        self._http = http

    def _headers(self) -> dict:
        return {"x-goog-api-key": self.api_key, "Content-Type": "application/json"}

    async def _generate(self, stage: Stage, model: str, parts: list, config: dict,
                        system: Optional[str] = None, panel_index: Optional[int] = None) -> dict:
        body = {"contents": [{"role": "user", "parts": parts}], "generationConfig": config}
        if system:
            body["systemInstruction"] = {"parts": [_text_part(system)]}
        url = f"{self.base_url}/models/{model}:generateContent"

        async def _post(client: httpx.AsyncClient) -> httpx.Response:
            return await client.post(url, headers=self._headers(), json=body)

        try:
            if self._http is not None:
                r = await _post(self._http)
            else:
                async with httpx.AsyncClient(timeout=IMAGE_TIMEOUT_S) as client:
                    r = await _post(client)
        except httpx.HTTPError as e:
            logger.error(f"Gemini {stage.value} request failed: {e}")
            raise GenerationError(stage, f"request to {model} failed: {e}", panel_index=panel_index) from e

        if r.status_code >= 400:
            logger.error(f"Gemini {stage.value} failed {r.status_code}: {r.text[:500]}")
            raise GenerationError(stage, f"{model} returned {r.status_code}: {r.text[:200]}",
                                  panel_index=panel_index, status_code=r.status_code)
        try:
            return r.json()
        except ValueError as e:
            raise GenerationError(stage, f"{model} returned a non-JSON body", panel_index=panel_index) from e

    async def synthesize_character(self, drawing: EncodedImage, style: str) -> List[EncodedImage]:
        """Three pose cards from one drawing; all of them or none."""
        logger.info(f"Synthesizing character cards in {len(self.poses)} poses")

        async def _one(pose: str) -> EncodedImage:
            prompt = CHARACTER_GENERATION_TEMPLATE.format(style=style, pose=pose)
            body = await self._generate(Stage.CHARACTER, self.image_model,
                                        [_image_part(drawing), _text_part(prompt)], IMAGE_CONFIG)
            image = first_image(body)
            if image is None:
                raise GenerationError(Stage.CHARACTER, "API failed to return an image for the character card.")
            return image

        tasks = [asyncio.create_task(_one(pose)) for pose in self.poses.values()]
        try:
            cards = await asyncio.gather(*tasks)
        except Exception:
            for t in tasks:
                t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        logger.info("Character cards ready")
        return list(cards)

    async def plan_storyboard(self, story: str, panel_count: int) -> Storyboard:
        logger.info(f"Planning a {panel_count}-panel storyboard")
        config = {
            "responseMimeType": "application/json",
            "responseSchema": storyboard_schema(panel_count),
        }
        body = await self._generate(
            Stage.PLANNING,
            self.text_model,
            [_text_part(STORYBOARD_USER_TEMPLATE.format(story=story))],
            config,
            system=STORYBOARD_SYSTEM_TEMPLATE.format(panel_count=panel_count),
        )
        text = response_text(body)
        try:
            storyboard = Storyboard.model_validate(json.loads(text))
        except (ValueError, ValidationError) as e:
            logger.error(f"Invalid JSON from storyboard planner: {text[:500]!r}")
            raise GenerationError(Stage.PLANNING, "The AI failed to create a valid story plan. Please try a different story.") from e
        if len(storyboard.panels) != panel_count:
            logger.warning(f"Planner returned {len(storyboard.panels)} panels, {panel_count} were requested")
        logger.info(f"Storyboard '{storyboard.title}' with {len(storyboard.panels)} panels")
        return storyboard

    async def illustrate_panel(self, prompt: str, references: List[EncodedImage], style: str,
                               panel_index: Optional[int] = None) -> EncodedImage:
        text = PANEL_RENDERING_TEMPLATE.format(consistency=CHARACTER_CONSISTENCY_PROMPT, style=style, panel_prompt=prompt)
        parts = [_image_part(ref) for ref in references] + [_text_part(text)]
        body = await self._generate(Stage.ILLUSTRATION, self.image_model, parts, IMAGE_CONFIG, panel_index=panel_index)
        image = first_image(body)
        if image is None:
            raise GenerationError(Stage.ILLUSTRATION, "API failed to return a panel image.", panel_index=panel_index)
        return image

    async def suggest_stories(self, drawing: EncodedImage) -> List[str]:
        try:
            described = await self._generate(
                Stage.CHARACTER, self.image_model,
                [_image_part(drawing), _text_part(DESCRIBE_CHARACTER_PROMPT)],
                {"responseModalities": ["TEXT"]},
            )
            description = response_text(described).strip() or "A friendly character"
            body = await self._generate(
                Stage.PLANNING, self.text_model,
                [_text_part(STORY_SUGGESTION_TEMPLATE.format(description=description))],
                {"responseMimeType": "application/json", "responseSchema": SUGGESTIONS_SCHEMA},
            )
            suggestions = json.loads(response_text(body) or "{}").get("suggestions") or []
            suggestions = [s.strip() for s in suggestions if isinstance(s, str) and s.strip()]
        except (GenerationError, ValueError, AttributeError) as e:
            logger.warning(f"Story suggestions unavailable, using defaults: {e}")
            return list(DEFAULT_STORY_SUGGESTIONS)
        return suggestions or list(DEFAULT_STORY_SUGGESTIONS)
