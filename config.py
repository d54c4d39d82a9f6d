"""
Configuration, constants, and service initialization.
"""

import os
import re
import logging
from pathlib import Path

from dotenv import load_dotenv
import google.generativeai as genai

# --- LOAD ENV ---
load_dotenv()

# --- LOGGING ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger("provenance_notes")


def log_event(level: int, message: str, **data):
    """Lightweight structured logging helper."""
    try:
        serialized = " | ".join(f"{k}={v}" for k, v in data.items())
        logger.log(level, f"{message}{' | ' + serialized if serialized else ''}")
    except Exception:
        logger.log(level, message)


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() not in ("0", "false", "no", "off", "")


# --- PATHS ---
DATA_DIR = Path(os.getenv("NOTES_DATA_DIR", str(Path(__file__).parent / "data")))
NOTES_DIR = DATA_DIR / "notes"
VOCABULARY_PATH = DATA_DIR / "vocabulary.json"

# --- CONSTANTS ---
# Quiescence window before an edited document is serialized and persisted
SAVE_DEBOUNCE_SECONDS = float(os.getenv("SAVE_DEBOUNCE_SECONDS", "1.5"))

# Minimum Jaccard word overlap for an old/new line pair to count as a modification
OVERLAP_THRESHOLD = float(os.getenv("OVERLAP_THRESHOLD", "0.3"))

MAX_SUGGESTIONS_PER_PAIR = int(os.getenv("MAX_SUGGESTIONS_PER_PAIR", "5"))
MAX_SUGGESTIONS_PER_REVISION = int(os.getenv("MAX_SUGGESTIONS_PER_REVISION", "5"))
MIN_CORRECTION_LENGTH = int(os.getenv("MIN_CORRECTION_LENGTH", "3"))
MAX_CORRECTION_LENGTH = int(os.getenv("MAX_CORRECTION_LENGTH", "30"))

# Deeper list indentation is flattened onto the deepest open list
MAX_NESTING_DEPTH = int(os.getenv("MAX_NESTING_DEPTH", "32"))

UNDO_LIMIT = int(os.getenv("UNDO_LIMIT", "100"))
WORD_SUGGESTIONS_ENABLED = _env_flag("WORD_SUGGESTIONS_ENABLED", True)
DEFAULT_DOCUMENT_LABEL = "Untitled"

# --- API KEYS ---
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")

# --- INITIALIZE SERVICES ---

# Gemini for note generation
gemini_model = None
if GEMINI_API_KEY:
    genai.configure(api_key=GEMINI_API_KEY)
    gemini_model = genai.GenerativeModel(GEMINI_MODEL)


# --- DOCUMENT HELPERS ---

def slugify_document_id(document_id: str) -> str:
    """Convert a document id to a filesystem-safe slug."""
    cleaned = document_id.strip().lower() if document_id else ""
    cleaned = re.sub(r"[^a-z0-9_-]+", "-", cleaned).strip("-")
    return cleaned or "default"


def get_notes_path(document_id: str, root: Path = None) -> Path:
    """Get the file path for a document's tagged notes."""
    slug = slugify_document_id(document_id)
    return (root or NOTES_DIR) / f"{slug}.md"
