"""
Core LLM abstractions and message data models.

All concrete LLM backends ('OpenAILLM', 'OllamaLLM') implement the 'LLM' ABC.
The shared message format ('LLMMessage') is backend-agnostic so the session and
the controller never need to know which completion service is in use.

A streamed completion is an async sequence of 'LLMMessage' chunks whose
'content' holds the text delta of that chunk. The last chunk of a successful
stream carries 'usage'; failures are raised as 'ProviderError' or
'TransportError' from inside the iteration.
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncGenerator
from enum import StrEnum

from pydantic import BaseModel


class Roles(StrEnum):
    """Conversation roles as used by the OpenAI chat completions API."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class Usage(BaseModel):
    """Token accounting reported by the completion service."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class LLMMessage(BaseModel):
    """
    A single message in a conversation sent to or received from an LLM.

    When received as a stream chunk, 'content' is the delta for that chunk only
    and 'usage' is set on the terminating chunk.
    """

    content: str = ""
    role: Roles = Roles.ASSISTANT
    usage: Usage | None = None


class LLM(ABC):
    """
    Abstract base class for language model backends.

    Concrete implementations adapt a specific API client to a common interface
    and translate client exceptions into 'ProviderError' / 'TransportError'.

    Attributes:
        model_name: Identifier of the model used for generation. Recorded in
            the metadata of every assistant message the session commits.
    """

    def __init__(self, model_name: str) -> None:
        self.model_name = model_name

    @abstractmethod
    async def generate(self, conversation: list[LLMMessage]) -> LLMMessage:
        """Return a single complete response for the given conversation."""
        pass

    @abstractmethod
    def generate_stream(self, conversation: list[LLMMessage]) -> AsyncGenerator[LLMMessage, None]:
        """Yield response deltas as they arrive from the model."""
        pass

    async def complete(
        self, system_prompt: str, user_prompt: str, streaming: bool = True
    ) -> AsyncGenerator[LLMMessage, None]:
        """Run one completion and yield its chunks.

        With 'streaming' disabled the full response is yielded as one chunk,
        so callers consume both modes through the same loop.
        """
        conversation = [
            LLMMessage(role=Roles.SYSTEM, content=system_prompt),
            LLMMessage(role=Roles.USER, content=user_prompt),
        ]
        if not streaming:
            yield await self.generate(conversation)
            return
        async for chunk in self.generate_stream(conversation):
            yield chunk
