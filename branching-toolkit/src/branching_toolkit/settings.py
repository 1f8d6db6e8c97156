"""
Application settings with a single load/save boundary.

'AppSettings' is constructed once (from a JSON file, the environment, or both)
and passed to the controller and sessions. Nothing else reads preferences from
ambient state. Credentials are not part of the settings: backends
read them from the environment when they are built.
"""

import json
import os
from pathlib import Path
from typing import Literal

from loguru import logger
from pydantic import BaseModel

from branching_toolkit.chat.prompts import DEFAULT_LOCALE, Locale

_TRUE_VALUES = {"1", "true", "yes", "on"}


class AppSettings(BaseModel):
    locale: Locale = DEFAULT_LOCALE
    backend: Literal["openai", "ollama"] = "openai"
    ai_model: str = "gpt-4o-mini"
    streaming: bool = True
    temperature: float = 0.7
    max_tokens: int = 1000
    # UI preferences: stored and returned for the client, not read by the core.
    theme: Literal["light", "dark", "auto"] = "auto"
    font_size: Literal["small", "medium", "large"] = "medium"
    tree_view_mode: Literal["auto", "simple", "advanced"] = "auto"
    debug_mode: bool = False
    last_conversation_id: str | None = None

    @classmethod
    def load(cls, path: Path) -> "AppSettings":
        """Read settings from 'path'; a missing or unreadable file yields defaults."""
        if not path.exists():
            return cls()
        try:
            return cls.model_validate(json.loads(path.read_text(encoding="utf-8")))
        except ValueError as exc:
            logger.warning(f"Ignoring unreadable settings file {path}: {exc}")
            return cls()

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.model_dump_json(indent=2), encoding="utf-8")

    @classmethod
    def from_env(cls, base: "AppSettings | None" = None) -> "AppSettings":
        """Overlay BACKEND, MODEL, LOCALE and STREAMING environment variables on 'base'."""
        updates: dict[str, object] = {}
        if backend := os.getenv("BACKEND"):
            updates["backend"] = backend.lower().strip()
        if model := os.getenv("MODEL"):
            updates["ai_model"] = model
        if locale := os.getenv("LOCALE"):
            updates["locale"] = locale
        if streaming := os.getenv("STREAMING"):
            updates["streaming"] = streaming.lower() in _TRUE_VALUES
        data = (base or cls()).model_dump()
        data.update(updates)
        return cls.model_validate(data)
