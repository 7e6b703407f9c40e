# supportpilot/backend/app/config.py
import os

from dotenv import load_dotenv

# Load settings from .env at project root
load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./supportpilot.db")

# Key of the single JSON blob holding the whole ticket collection
STORAGE_KEY = "supportpilot:tickets:v1"

OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-5-nano")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "").rstrip("/")
OPENAI_TIMEOUT = float(os.getenv("OPENAI_TIMEOUT", "60"))

# Empty -> the app calls its own gateway in-process
AI_GATEWAY_URL = os.getenv("AI_GATEWAY_URL", "").rstrip("/")
AI_GATEWAY_PATH = "/api/ai/ticket-analysis"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


def get_openai_api_key() -> str:
    """Read at call time so a missing key is detected per request."""
    return os.getenv("OPENAI_API_KEY", "").strip()
