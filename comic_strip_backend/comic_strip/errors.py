"""
Error taxonomy for the comic pipeline.

Only GenerationError and ConfigurationError abort a run; narration and layout
failures are absorbed by the layers that call those services.
"""
from enum import Enum
from typing import Optional


class Stage(str, Enum):
    CHARACTER = "character"
    PLANNING = "planning"
    ILLUSTRATION = "illustration"
    NARRATION = "narration"
    LAYOUT = "layout"
    DEVICE = "device"


class ComicError(Exception):
    """Base class for every error raised by the comic_strip package."""


class ConfigurationError(ComicError):
    def __init__(self, key: str):
        self.key = key
        super().__init__(f"{key} is not set; please configure your .env")


class GenerationError(ComicError):
    def __init__(self, stage: Stage, message: str, panel_index: Optional[int] = None,
                 status_code: Optional[int] = None):
        self.stage = Stage(stage)
        self.panel_index = panel_index
        self.status_code = status_code
        super().__init__(message)

    @property
    def user_message(self) -> str:
        where = self.stage.value
        if self.panel_index is not None:
            where = f"{where}, panel {self.panel_index + 1}"
        if self.status_code == 429:
            detail = "Resource exhausted - the Gemini API quota has been reached. Please try again later."
        elif self.status_code in (401, 403):
            detail = "Authentication failed - please check your Gemini API key."
        else:
            detail = str(self)
        return f"Gemini API Error ({where}): {detail}"


class NarrationError(ComicError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class LayoutError(ComicError):
    pass


class DeviceError(ComicError):
    pass


class PlaybackError(ComicError):
    """Raised by an audio sink when a narration handle cannot be started."""


class PipelineBusyError(ComicError):
    pass


def describe_tts_status(status_code: int, body: str = "") -> str:
    message = f"ElevenLabs API Error ({status_code}): "
    if status_code == 429:
        message += "Resource exhausted - the ElevenLabs quota has been reached."
    elif status_code == 401:
        message += "Authentication failed - please check your ElevenLabs API key permissions."
    elif status_code == 400:
        message += "Bad request - the text might be too long or invalid."
    else:
        message += body or "Unknown error occurred."
    return message
