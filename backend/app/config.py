"""Runtime configuration read from the environment (and `.env` when present)."""

from __future__ import annotations

import os
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()


def env(key: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip() or default


def env_int(key: str, default: int) -> int:
    raw = env(key)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


# Sampling settings for chart generation
LLM_TEMPERATURE = 0.3
LLM_MAX_TOKENS = 2000

# History persistence
CHART_HISTORY_PATH = env("CHART_HISTORY_PATH", "./data/chart-history.json")
CHART_MAX_HISTORY = env_int("CHART_MAX_HISTORY", 10)

# Uploads
CHART_MAX_UPLOAD_BYTES = env_int("CHART_MAX_UPLOAD_BYTES", 5 * 1024 * 1024)


def cors_origins() -> List[str]:
    raw = env("CORS_ALLOW_ORIGINS", "*") or "*"
    return [o.strip() for o in raw.split(",") if o.strip()]
