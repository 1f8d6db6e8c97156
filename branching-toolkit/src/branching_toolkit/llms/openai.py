"""
OpenAI chat completions backend.

Connection failures and timeouts surface as 'TransportError'; every other API
failure (authentication, rate limits, bad requests) as 'ProviderError'.
Streaming requests ask for usage in the final chunk so the session can store
token counts with the assistant message.
"""

from collections.abc import AsyncGenerator
from typing import Any

from openai import APIConnectionError, APIError, AsyncOpenAI

from branching_toolkit.errors import ProviderError, TransportError
from branching_toolkit.llms.base import LLM, LLMMessage, Roles, Usage


class OpenAILLM(LLM):
    def __init__(
        self,
        model_name: str = "gpt-4o-mini",
        temperature: float = 0.7,
        max_tokens: int = 1000,
        seed: int | None = None,
        openai_api_key: str = "",
        client: AsyncOpenAI | None = None,
    ):
        super().__init__(model_name)
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.seed = seed
        self.client = client or AsyncOpenAI(api_key=openai_api_key)

    def _request(self, conversation: list[LLMMessage]) -> dict[str, Any]:
        request: dict[str, Any] = {
            "model": self.model_name,
            "messages": [{"role": message.role.value, "content": message.content} for message in conversation],
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        if self.seed is not None:
            request["seed"] = self.seed
        return request

    async def generate(self, conversation: list[LLMMessage]) -> LLMMessage:
        try:
            completion = await self.client.chat.completions.create(**self._request(conversation))
        except APIConnectionError as exc:
            raise TransportError(f"OpenAI unreachable: {exc}") from exc
        except APIError as exc:
            raise ProviderError(f"OpenAI request failed: {exc}") from exc

        content = completion.choices[0].message.content if completion.choices else None
        if not content:
            raise ProviderError("OpenAI returned no content")
        return LLMMessage(role=Roles.ASSISTANT, content=content, usage=_usage(completion.usage))

    async def generate_stream(self, conversation: list[LLMMessage]) -> AsyncGenerator[LLMMessage, None]:
        try:
            stream = await self.client.chat.completions.create(
                **self._request(conversation), stream=True, stream_options={"include_usage": True}
            )
            async for chunk in stream:
                delta = chunk.choices[0].delta.content if chunk.choices else None
                usage = _usage(chunk.usage)
                if delta or usage:
                    yield LLMMessage(role=Roles.ASSISTANT, content=delta or "", usage=usage)
        except APIConnectionError as exc:
            raise TransportError(f"OpenAI stream interrupted: {exc}") from exc
        except APIError as exc:
            raise ProviderError(f"OpenAI stream failed: {exc}") from exc


def _usage(usage: Any) -> Usage | None:
    if usage is None:
        return None
    return Usage(
        prompt_tokens=usage.prompt_tokens or 0,
        completion_tokens=usage.completion_tokens or 0,
        total_tokens=usage.total_tokens or 0,
    )
