"""Shared builders and scripted backends for the test suite."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator, Sequence
from itertools import count

from branching_toolkit.conversation_database.data_models.message import Message
from branching_toolkit.conversation_database.in_memory import InMemoryMessageDatabase
from branching_toolkit.llms.base import LLM, LLMMessage, Roles, Usage

_clock = count(1_700_000_000_000)


def make_message(
    message_id: str,
    parent_id: str | None = None,
    role: Roles = Roles.USER,
    content: str | None = None,
    conversation_id: str = "conv_1",
) -> Message:
    return Message(
        id=message_id,
        role=role,
        content=content if content is not None else f"Message {message_id}",
        conversation_id=conversation_id,
        create_timestamp=next(_clock),
        parent_id=parent_id,
    )


def make_chain(ids: Sequence[str], conversation_id: str = "conv_1") -> list[Message]:
    """A single linear thread alternating user and assistant roles."""
    messages = []
    parent: str | None = None
    for index, message_id in enumerate(ids):
        role = Roles.USER if index % 2 == 0 else Roles.ASSISTANT
        messages.append(make_message(message_id, parent, role, conversation_id=conversation_id))
        parent = message_id
    return messages


class ScriptedLLM(LLM):
    """
    Completion backend that replays a fixed list of chunks.

    With 'error' set, the error is raised after 'fail_after' chunks have been
    yielded (after all of them when 'fail_after' is None).
    """

    def __init__(
        self,
        chunks: Sequence[str] = ("Hi",),
        usage: Usage | None = None,
        error: Exception | None = None,
        fail_after: int | None = None,
        model_name: str = "scripted-model",
    ):
        super().__init__(model_name)
        self.chunks = list(chunks)
        self.usage = usage
        self.error = error
        self.fail_after = fail_after
        self.calls: list[list[LLMMessage]] = []

    @property
    def last_prompt(self) -> str:
        return self.calls[-1][-1].content

    async def generate(self, conversation: list[LLMMessage]) -> LLMMessage:
        self.calls.append(conversation)
        if self.error is not None:
            raise self.error
        return LLMMessage(role=Roles.ASSISTANT, content="".join(self.chunks), usage=self.usage)

    async def generate_stream(self, conversation: list[LLMMessage]) -> AsyncGenerator[LLMMessage, None]:
        self.calls.append(conversation)
        for index, chunk in enumerate(self.chunks):
            if self.error is not None and self.fail_after == index:
                raise self.error
            yield LLMMessage(role=Roles.ASSISTANT, content=chunk)
        if self.error is not None:
            raise self.error
        if self.usage is not None:
            yield LLMMessage(role=Roles.ASSISTANT, content="", usage=self.usage)


class FlakyMessageDatabase(InMemoryMessageDatabase):
    """
    In-memory message store whose writes fail while 'offline' is set.

    'failure' makes writes raise that exception instead, for store errors
    that are not connection problems.
    """

    def __init__(self) -> None:
        super().__init__()
        self.offline = False
        self.failure: Exception | None = None
        self.writes = 0

    async def upsert_message(self, message: Message) -> Message:
        if self.offline:
            raise ConnectionError("message store unreachable")
        if self.failure is not None:
            raise self.failure
        self.writes += 1
        return await super().upsert_message(message)


class GatedLLM(ScriptedLLM):
    """Streams the first chunk, then waits for 'release' before the rest.

    'started' is set once the first chunk has been consumed, so a test can act
    while the turn is suspended mid-stream.
    """

    def __init__(self, chunks: Sequence[str] = ("Hi", " there")):
        super().__init__(chunks)
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def generate_stream(self, conversation: list[LLMMessage]) -> AsyncGenerator[LLMMessage, None]:
        self.calls.append(conversation)
        first, *rest = self.chunks
        yield LLMMessage(role=Roles.ASSISTANT, content=first)
        self.started.set()
        await self.release.wait()
        for chunk in rest:
            yield LLMMessage(role=Roles.ASSISTANT, content=chunk)
