"""
Ollama backend for locally served models.

The Ollama client reports an unreachable server as 'ConnectionError' (or an
httpx transport error on older releases) and model-side failures as
'ResponseError'; these map to 'TransportError' and 'ProviderError'.
"""

from collections.abc import AsyncGenerator
from typing import Any

import httpx
from ollama import AsyncClient, ResponseError

from branching_toolkit.errors import ProviderError, TransportError
from branching_toolkit.llms.base import LLM, LLMMessage, Roles, Usage


class OllamaLLM(LLM):
    def __init__(
        self,
        model_name: str = "mistral-nemo:12b",
        temperature: float = 0.7,
        max_tokens: int = 1000,
        seed: int | None = None,
        host: str | None = None,
        client: AsyncClient | None = None,
    ):
        super().__init__(model_name)
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.seed = seed
        self.client = client or AsyncClient(host=host)

    def _options(self) -> dict[str, Any]:
        options: dict[str, Any] = {"temperature": self.temperature, "num_predict": self.max_tokens}
        if self.seed is not None:
            options["seed"] = self.seed
        return options

    @staticmethod
    def _messages(conversation: list[LLMMessage]) -> list[dict[str, str]]:
        return [{"role": message.role.value, "content": message.content} for message in conversation]

    async def generate(self, conversation: list[LLMMessage]) -> LLMMessage:
        try:
            response = await self.client.chat(
                model=self.model_name, messages=self._messages(conversation), options=self._options()
            )
        except (ConnectionError, httpx.TransportError) as exc:
            raise TransportError(f"Ollama unreachable: {exc}") from exc
        except ResponseError as exc:
            raise ProviderError(f"Ollama request failed: {exc}") from exc

        content = response["message"]["content"]
        if not content:
            raise ProviderError("Ollama returned no content")
        return LLMMessage(role=Roles.ASSISTANT, content=content, usage=_usage(response))

    async def generate_stream(self, conversation: list[LLMMessage]) -> AsyncGenerator[LLMMessage, None]:
        try:
            stream = await self.client.chat(
                model=self.model_name, messages=self._messages(conversation), options=self._options(), stream=True
            )
            async for part in stream:
                delta = part["message"]["content"]
                usage = _usage(part) if part["done"] else None
                if delta or usage:
                    yield LLMMessage(role=Roles.ASSISTANT, content=delta or "", usage=usage)
        except (ConnectionError, httpx.TransportError) as exc:
            raise TransportError(f"Ollama stream interrupted: {exc}") from exc
        except ResponseError as exc:
            raise ProviderError(f"Ollama stream failed: {exc}") from exc


def _usage(response: Any) -> Usage:
    prompt_tokens = response["prompt_eval_count"] or 0
    completion_tokens = response["eval_count"] or 0
    return Usage(
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=prompt_tokens + completion_tokens,
    )
