import os
from dotenv import load_dotenv
import logging

from .errors import ConfigurationError

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Load .env file if it exists (for local development)
env_path = os.path.join(os.path.dirname(__file__), "..", ".env")
if os.path.exists(env_path):
    load_dotenv(env_path)
    logger.info("Loaded .env file for local development")
else:
    logger.info("No .env file found, using environment variables")

GEMINI_API_BASE = os.getenv("GEMINI_API_BASE", "https://generativelanguage.googleapis.com/v1beta").rstrip("/")
GEMINI_IMAGE_MODEL = os.getenv("GEMINI_IMAGE_MODEL", "gemini-2.5-flash-image-preview")
GEMINI_TEXT_MODEL = os.getenv("GEMINI_TEXT_MODEL", "gemini-2.5-flash")

ELEVENLABS_VOICE_ID = os.getenv("ELEVENLABS_VOICE_ID", "21m00Tcm4TlvDq8ikWAM")
ELEVENLABS_MODEL_ID = os.getenv("ELEVENLABS_MODEL_ID", "eleven_multilingual_v2")
TTS_ENABLED = os.getenv("TTS_ENABLED", "1").strip().lower() not in ("0", "false", "no", "off")

FAL_GRID_URL = os.getenv("FAL_GRID_URL", "https://fal.run/fal-ai/image-grid").rstrip("/")

# Where the narration and layout clients find /api/tts and /api/grid
PROXY_BASE_URL = os.getenv("PROXY_BASE_URL", "http://localhost:8000").rstrip("/")

HTTP_TIMEOUT_S = float(os.getenv("HTTP_TIMEOUT_S", "60"))
IMAGE_TIMEOUT_S = float(os.getenv("IMAGE_TIMEOUT_S", "120"))

NOTICE_TTL_S = float(os.getenv("NOTICE_TTL_S", "5"))

PANEL_COUNT_MIN = 3
PANEL_COUNT_MAX = 8
PANEL_COUNT_DEFAULT = int(os.getenv("PANEL_COUNT_DEFAULT", "4"))

# Comma-separated list of allowed origins for CORS (e.g., "https://app.example.com,http://localhost:5173").
_allowed_origins_env = os.getenv("ALLOWED_ORIGINS", "").strip()
if _allowed_origins_env:
    ALLOWED_ORIGINS = [o.strip() for o in _allowed_origins_env.split(",") if o.strip()]
else:
    ALLOWED_ORIGINS = ["*"]

REQUIRED_KEYS = ("GEMINI_API_KEY", "ELEVENLABS_API_KEY", "FAL_API_KEY")


def require_key(name: str) -> str:
    """Read a credential at call time; a missing one is fatal for its capability."""
    value = os.getenv(name, "").strip()
    if not value:
        raise ConfigurationError(name)
    return value


def has_all_keys() -> bool:
    missing = [name for name in REQUIRED_KEYS if not os.getenv(name, "").strip()]
    if missing:
        logger.warning(f"Missing API keys: {', '.join(missing)}")
    return not missing
