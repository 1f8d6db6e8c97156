"""
FastAPI application for the branching chat backend.

Usage
-----
Serve with the default OpenAI backend (requires OPENAI_API_KEY):

    python -m branch_chat_backend.app

Select a different LLM backend or model via environment variables:

    BACKEND=ollama MODEL=llama3.2 python -m branch_chat_backend.app

Settings are read from the JSON file named by SETTINGS_PATH (default
<project-root>/backend/settings.json) and overlaid with BACKEND, MODEL, LOCALE
and STREAMING. HOST and PORT set the bind address and CORS_ORIGINS the
comma-separated origins allowed to call the API. Conversations are kept in
memory for the lifetime of the process.

LLM backends
------------
openai  requires OPENAI_API_KEY environment variable
ollama  local Ollama server, OLLAMA_HOST or http://localhost:11434 (default)
"""

import os
from pathlib import Path

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from branching_toolkit.api.routes import build_router
from branching_toolkit.conversation_database.controller import BranchingChatController
from branching_toolkit.conversation_database.in_memory import InMemoryConversationDatabase, InMemoryMessageDatabase
from branching_toolkit.conversation_database.sync import TreeSync
from branching_toolkit.llms.base import LLM
from branching_toolkit.llms.ollama import OllamaLLM
from branching_toolkit.llms.openai import OpenAILLM
from branching_toolkit.settings import AppSettings

_ROOT = Path(__file__).parents[3]  # <project-root>/
SETTINGS_PATH = Path(os.getenv("SETTINGS_PATH", str(_ROOT / "backend" / "settings.json")))


def build_llm(settings: AppSettings) -> LLM:
    """Instantiate the LLM for the backend named in 'settings'.

    'settings.ai_model' defaults to an OpenAI model name; for Ollama a model
    starting with 'gpt-' falls back to 'mistral-nemo:12b'.
    Reads credentials from environment variables, see module docstring.
    """
    match settings.backend:
        case "openai":
            logger.info(f"LLM backend: OpenAI ({settings.ai_model})")
            return OpenAILLM(
                model_name=settings.ai_model,
                temperature=settings.temperature,
                max_tokens=settings.max_tokens,
                openai_api_key=os.environ.get("OPENAI_API_KEY", ""),
            )
        case "ollama":
            name = "mistral-nemo:12b" if settings.ai_model.startswith("gpt-") else settings.ai_model
            logger.info(f"LLM backend: Ollama ({name})")
            return OllamaLLM(
                model_name=name,
                temperature=settings.temperature,
                max_tokens=settings.max_tokens,
                host=os.getenv("OLLAMA_HOST"),  # default http://localhost:11434
            )
        case _:
            raise ValueError(f"Unsupported backend {settings.backend!r}. Choose 'openai' or 'ollama'.")


def build_controller(
    settings: AppSettings, llm: LLM | None = None, settings_path: Path | None = None
) -> BranchingChatController:
    sync = TreeSync(InMemoryConversationDatabase(), InMemoryMessageDatabase())
    return BranchingChatController(sync, llm or build_llm(settings), settings, settings_path=settings_path)


def create_app(
    settings: AppSettings | None = None, llm: LLM | None = None, settings_path: Path | None = None
) -> FastAPI:
    if settings is None:
        settings = AppSettings.from_env(AppSettings.load(SETTINGS_PATH))
        settings_path = settings_path or SETTINGS_PATH
    controller = build_controller(settings, llm=llm, settings_path=settings_path)

    app = FastAPI(
        title="Branch Chat",
        description="Branching conversations with an LLM",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=os.getenv("CORS_ORIGINS", "http://localhost:3000").split(","),
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.controller = controller
    app.include_router(build_router(controller), prefix="/api")
    logger.info(f"Branch chat backend ready (backend={settings.backend!r} locale={settings.locale!r})")
    return app


def main() -> None:
    host = os.getenv("HOST", "127.0.0.1")
    port = int(os.getenv("PORT", "8000"))
    logger.info(f"Starting server at http://{host}:{port}/docs")
    uvicorn.run(create_app(), host=host, port=port)


if __name__ == "__main__":
    main()
