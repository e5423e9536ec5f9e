import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()


def _env(name, default):
    return os.environ.get(name, default)

def _env_int(name, default):
    return int(os.environ.get(name, default))

def _env_float(name, default):
    return float(os.environ.get(name, default))

def _env_bool(name, default=False):
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


BASE_DIR   = Path(_env("SITEGEN_HOME", Path(__file__).resolve().parent.parent))
IDEAS_DIR  = BASE_DIR / "ideas"
PROD_DIR   = Path(_env("PROD_DIR", BASE_DIR / "production-ready"))
LOGS_DIR   = Path(_env("LOGS_DIR", BASE_DIR / "logs"))

OLLAMA_URL  = _env("OLLAMA_URL", "http://localhost:11434")
PLAN_MODEL  = _env("PLAN_MODEL", "llama3.1:8b")
BUILD_MODEL = _env("BUILD_MODEL", "qwen2.5-coder:14b")
EDIT_MODEL  = _env("EDIT_MODEL", BUILD_MODEL)

LLM_TIMEOUT = _env_float("LLM_TIMEOUT", 45)
LLM_RETRIES = _env_int("LLM_RETRIES", 2)

MAX_PROMPT_CHARS       = _env_int("MAX_PROMPT_CHARS", 10_000)
MAX_HISTORY            = _env_int("MAX_HISTORY", 50)
MAX_EDIT_FILES         = _env_int("MAX_EDIT_FILES", 5)
MAX_PATCH_CHANGE_RATIO = _env_float("MAX_PATCH_CHANGE_RATIO", 0.30)
PATCH_FUZZ             = _env_int("PATCH_FUZZ", 2)
RELEVANCE_SCAN_LIMIT   = _env_int("RELEVANCE_SCAN_LIMIT", 15)

# Product policy: upgrade every detected language mode to BILINGUAL.
FORCE_BILINGUAL = _env_bool("FORCE_BILINGUAL", False)

LOCK_STALE_AFTER = _env_int("LOCK_STALE_AFTER", 600)

UI_PORT = _env_int("UI_PORT", 7824)
WS_PORT = _env_int("WS_PORT", 7825)
