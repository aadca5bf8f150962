import base64
from enum import Enum
from typing import Annotated, List, Optional, Union, Literal
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .errors import Stage
from .prompts import ART_STYLES, DEFAULT_STYLE, NARRATOR
from .settings import PANEL_COUNT_MIN, PANEL_COUNT_MAX, PANEL_COUNT_DEFAULT


class EncodedImage(BaseModel):
    model_config = ConfigDict(frozen=True)

    data: str = Field(..., description="Base64 payload, without a data: prefix")
    mime_type: str = "image/png"

    def to_bytes(self) -> bytes:
        return base64.b64decode(self.data)

    def data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"


class SpeechLine(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    speaker: str = Field(..., alias="who")
    text: str


class StoryboardPanel(BaseModel):
    id: str
    prompt: str
    speech: List[SpeechLine] = Field(default_factory=list)

    def narration_text(self) -> str:
        return " ".join(line.text.strip() for line in self.speech if line.text.strip())

    def caption(self) -> str:
        for line in self.speech:
            if line.speaker.strip() == NARRATOR:
                return line.text
        return ""


class Storyboard(BaseModel):
    title: str
    panels: List[StoryboardPanel]

    @model_validator(mode="after")
    def _check_panels(self):
        if not self.panels:
            raise ValueError("storyboard has no panels")
        ids = [p.id for p in self.panels]
        if len(set(ids)) != len(ids):
            raise ValueError(f"storyboard panel ids are not unique: {ids}")
        return self


class RemoteAudio(BaseModel):
    """Narration synthesized by the proxy; seekable and downloadable."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["remote-audio"] = "remote-audio"
    data: bytes
    mime_type: str = "audio/mpeg"

    @property
    def downloadable(self) -> bool:
        return True

    def filename(self, panel_index: int) -> str:
        ext = "mp3" if self.mime_type in ("audio/mpeg", "audio/mp3") else self.mime_type.split("/")[-1]
        return f"panel-{panel_index + 1}.{ext}"


class DeviceSpeech(BaseModel):
    """Fallback narration spoken by the local synthesizer when first played."""
    model_config = ConfigDict(frozen=True)

    kind: Literal["on-device-speech"] = "on-device-speech"
    text: str

    @property
    def downloadable(self) -> bool:
        return False


AudioHandle = Annotated[Union[RemoteAudio, DeviceSpeech], Field(discriminator="kind")]


class LayoutPanel(BaseModel):
    image: EncodedImage
    caption: str = ""


class LayoutImage(BaseModel):
    url: str
    width: Optional[int] = None
    height: Optional[int] = None


class ComicRequest(BaseModel):
    drawing: EncodedImage
    story: str
    panel_count: int = Field(PANEL_COUNT_DEFAULT, ge=PANEL_COUNT_MIN, le=PANEL_COUNT_MAX)
    art_style: Optional[str] = "disney"
    style: str = DEFAULT_STYLE

    @field_validator("story")
    @classmethod
    def _story_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("story is required")
        return v.strip()

    @field_validator("art_style")
    @classmethod
    def _known_style(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in ART_STYLES:
            raise ValueError(f"unknown art style '{v}', expected one of {sorted(ART_STYLES)}")
        return v

    @property
    def style_description(self) -> str:
        if self.art_style:
            return ART_STYLES[self.art_style]["prompt"]
        return self.style


class Phase(str, Enum):
    INPUT = "input"
    PLANNING_STORY = "planning_story"
    ILLUSTRATING_PANELS = "illustrating_panels"
    GENERATING_NARRATION = "generating_narration"
    COMPOSING_LAYOUT = "composing_layout"
    READY = "ready"
    FAILED = "failed"


class Notice(BaseModel):
    id: str
    message: str
    stage: Optional[Stage] = None


class PipelineState(BaseModel):
    """Read-only snapshot; the orchestrator publishes a new one for every change."""
    model_config = ConfigDict(frozen=True)

    run_id: str = ""
    phase: Phase = Phase.INPUT
    busy: bool = False
    status_message: str = ""
    error: Optional[Notice] = None
    request: Optional[ComicRequest] = None
    character_references: List[EncodedImage] = Field(default_factory=list)
    storyboard: Optional[Storyboard] = None
    panel_images: List[Optional[EncodedImage]] = Field(default_factory=list)
    panel_audio: List[Optional[AudioHandle]] = Field(default_factory=list)
    final_layout: Optional[LayoutImage] = None

    @property
    def panels_completed(self) -> int:
        return sum(1 for img in self.panel_images if img is not None)


class PlaybackState(BaseModel):
    model_config = ConfigDict(frozen=True)

    current_panel_index: int = 0
    is_playing: bool = False
    panel_count: int = 0
    active_kind: Optional[str] = None
