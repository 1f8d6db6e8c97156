from pathlib import Path

import pytest

from branching_toolkit.conversation_database.controller import BranchingChatController
from branching_toolkit.conversation_database.in_memory import InMemoryConversationDatabase
from branching_toolkit.conversation_database.sync import TreeSync
from branching_toolkit.llms.base import Usage
from branching_toolkit.settings import AppSettings

from tests.helpers import FlakyMessageDatabase, ScriptedLLM


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings()


@pytest.fixture
def message_db() -> FlakyMessageDatabase:
    return FlakyMessageDatabase()


@pytest.fixture
def sync(message_db: FlakyMessageDatabase) -> TreeSync:
    return TreeSync(InMemoryConversationDatabase(), message_db)


@pytest.fixture
def llm() -> ScriptedLLM:
    return ScriptedLLM(chunks=["Hi", " there"], usage=Usage(prompt_tokens=12, completion_tokens=2, total_tokens=14))


@pytest.fixture
def settings_path(tmp_path: Path) -> Path:
    return tmp_path / "settings.json"


@pytest.fixture
def controller(sync: TreeSync, llm: ScriptedLLM, settings: AppSettings, settings_path: Path) -> BranchingChatController:
    return BranchingChatController(sync, llm, settings, settings_path=settings_path)
