"""
Settings read from the environment (and a .env file when present).
"""
import os

from dotenv import load_dotenv

load_dotenv()


def _get_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


DATABASE_PATH = os.getenv("TASKFLOW_DB_PATH", "taskflow.db")

ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")
ENHANCE_MODEL = os.getenv("TASKFLOW_ENHANCE_MODEL", "claude-sonnet-4-5")
ENHANCE_TIMEOUT_SECONDS = float(os.getenv("TASKFLOW_ENHANCE_TIMEOUT", "10"))
ENHANCE_MAX_TOKENS = int(os.getenv("TASKFLOW_ENHANCE_MAX_TOKENS", "300"))

# Number of tasks shown by the "list" command (clamped to 1..10)
LIST_LIMIT = int(os.getenv("TASKFLOW_LIST_LIMIT", "10"))

# Whether "complete <title>" may match a task that is already completed.
# True makes a repeated complete succeed again; False makes it NotFound.
COMPLETE_INCLUDES_COMPLETED = _get_bool("TASKFLOW_COMPLETE_INCLUDES_COMPLETED", True)

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("TASKFLOW_CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]

LOG_FORMAT = os.getenv("TASKFLOW_LOG_FORMAT", "dev")
LOG_LEVEL = os.getenv("TASKFLOW_LOG_LEVEL", "INFO")
