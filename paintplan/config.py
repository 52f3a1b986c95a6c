"""
config.py — Environment configuration and persisted backend settings.

Environment (.env is loaded on import):
  GEMINI_API_KEY             hosted backend key
  PAINTPLAN_GEMINI_MODELS    comma-separated model priority list
  PAINTPLAN_LOCAL_MODEL      model id sent to the local server
  PAINTPLAN_LOCAL_TIMEOUT    seconds per local request
  PAINTPLAN_HOME             where inventory.json / settings.json live
  PAINTPLAN_MATCH_THRESHOLD  read by color_matcher
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import List, Literal

from dotenv import load_dotenv
from pydantic import BaseModel, ValidationError

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_LOCAL_ENDPOINT = "http://localhost:1234/v1"

GEMINI_MODELS: List[str] = [
    m.strip() for m in os.getenv("PAINTPLAN_GEMINI_MODELS", "gemini-2.5-flash").split(",") if m.strip()
]
LOCAL_MODEL = os.getenv("PAINTPLAN_LOCAL_MODEL", "local-model")
LOCAL_TIMEOUT = float(os.getenv("PAINTPLAN_LOCAL_TIMEOUT", "300"))
PAINTPLAN_HOME = Path(os.getenv("PAINTPLAN_HOME", "~/.paintplan")).expanduser()

INVENTORY_PATH = PAINTPLAN_HOME / "inventory.json"
SETTINGS_PATH = PAINTPLAN_HOME / "settings.json"


class Settings(BaseModel):
    provider: Literal["gemini", "local"] = "gemini"
    local_endpoint: str = DEFAULT_LOCAL_ENDPOINT


def load_settings(path: Path = SETTINGS_PATH) -> Settings:
    """Saved settings, or defaults when the file is missing, unreadable or incomplete."""
    path = Path(path)
    if not path.exists():
        return Settings()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning(f"Could not read settings from {path}: {e}")
        return Settings()
    if not isinstance(data, dict):
        return Settings()
    # Accept the browser app's camelCase key as well
    if "localEndpoint" in data and "local_endpoint" not in data:
        data["local_endpoint"] = data.pop("localEndpoint")
    if not {"provider", "local_endpoint"} <= data.keys():
        return Settings()
    try:
        return Settings.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Invalid settings in {path}: {e}")
        return Settings()


def save_settings(settings: Settings, path: Path = SETTINGS_PATH) -> None:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(settings.model_dump(), indent=2), encoding="utf-8")
