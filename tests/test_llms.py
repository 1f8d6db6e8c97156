"""Tests for the LLM backends with stubbed API clients.

Only the translation layer is exercised: request shape, chunk mapping, usage
extraction and the mapping of client exceptions onto ProviderError and
TransportError. No network access is needed.
"""

from types import SimpleNamespace

import httpx
import openai
import ollama
import pytest

from branching_toolkit.errors import ProviderError, TransportError
from branching_toolkit.llms.base import LLMMessage, Roles
from branching_toolkit.llms.ollama import OllamaLLM
from branching_toolkit.llms.openai import OpenAILLM

CONVERSATION = [
    LLMMessage(role=Roles.SYSTEM, content="system"),
    LLMMessage(role=Roles.USER, content="Hello"),
]
REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


async def _collect(stream) -> list[LLMMessage]:
    return [chunk async for chunk in stream]


# =============================================================================
# OpenAI
# =============================================================================


class _StubCompletions:
    def __init__(self, result=None, error: Exception | None = None):
        self.result = result
        self.error = error
        self.requests: list[dict] = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.result


def _openai(completions: _StubCompletions) -> OpenAILLM:
    client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return OpenAILLM(model_name="gpt-4o-mini", temperature=0.7, max_tokens=1000, client=client)


def _openai_chunk(content: str | None = None, usage=None):
    choices = [SimpleNamespace(delta=SimpleNamespace(content=content))] if content is not None else []
    return SimpleNamespace(choices=choices, usage=usage)


@pytest.mark.asyncio
async def test_openai_generate_maps_content_and_usage():
    completion = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content="Hi"))],
        usage=SimpleNamespace(prompt_tokens=5, completion_tokens=1, total_tokens=6),
    )
    completions = _StubCompletions(result=completion)

    message = await _openai(completions).generate(CONVERSATION)

    assert message.content == "Hi"
    assert message.usage.total_tokens == 6
    request = completions.requests[0]
    assert request["messages"] == [{"role": "system", "content": "system"}, {"role": "user", "content": "Hello"}]
    assert request["max_tokens"] == 1000
    assert "seed" not in request


@pytest.mark.asyncio
async def test_openai_stream_yields_deltas_then_usage():
    async def chunks():
        yield _openai_chunk("Hi")
        yield _openai_chunk("")
        yield _openai_chunk(" there")
        yield _openai_chunk(usage=SimpleNamespace(prompt_tokens=5, completion_tokens=2, total_tokens=7))

    completions = _StubCompletions(result=chunks())

    received = await _collect(_openai(completions).generate_stream(CONVERSATION))

    assert [chunk.content for chunk in received] == ["Hi", " there", ""]
    assert received[-1].usage.total_tokens == 7
    assert completions.requests[0]["stream"] is True
    assert completions.requests[0]["stream_options"] == {"include_usage": True}


@pytest.mark.asyncio
async def test_openai_empty_completion_is_a_provider_error():
    completion = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=None))], usage=None)
    with pytest.raises(ProviderError):
        await _openai(_StubCompletions(result=completion)).generate(CONVERSATION)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error, expected",
    [
        (openai.APIConnectionError(request=REQUEST), TransportError),
        (openai.APITimeoutError(request=REQUEST), TransportError),
        (
            openai.RateLimitError("rate limited", response=httpx.Response(429, request=REQUEST), body=None),
            ProviderError,
        ),
        (
            openai.AuthenticationError("bad key", response=httpx.Response(401, request=REQUEST), body=None),
            ProviderError,
        ),
    ],
)
async def test_openai_errors_are_translated(error, expected):
    llm = _openai(_StubCompletions(error=error))
    with pytest.raises(expected):
        await llm.generate(CONVERSATION)
    with pytest.raises(expected):
        await _collect(llm.generate_stream(CONVERSATION))


@pytest.mark.asyncio
async def test_openai_interrupted_stream_is_a_transport_error():
    async def chunks():
        yield _openai_chunk("Hi")
        raise openai.APIConnectionError(request=REQUEST)

    received = []
    with pytest.raises(TransportError):
        async for chunk in _openai(_StubCompletions(result=chunks())).generate_stream(CONVERSATION):
            received.append(chunk.content)
    assert received == ["Hi"]


@pytest.mark.asyncio
async def test_complete_without_streaming_yields_one_chunk():
    completion = SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content="Hi"))], usage=None)
    completions = _StubCompletions(result=completion)

    received = await _collect(_openai(completions).complete("system", "Hello", streaming=False))

    assert [chunk.content for chunk in received] == ["Hi"]
    assert "stream" not in completions.requests[0]


# =============================================================================
# Ollama
# =============================================================================


class _StubOllama:
    def __init__(self, result=None, error: Exception | None = None):
        self.result = result
        self.error = error
        self.requests: list[dict] = []

    async def chat(self, **kwargs):
        self.requests.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.result


def _ollama_part(content: str, done: bool = False, prompt_eval_count=None, eval_count=None) -> dict:
    return {
        "message": {"role": "assistant", "content": content},
        "done": done,
        "prompt_eval_count": prompt_eval_count,
        "eval_count": eval_count,
    }


@pytest.mark.asyncio
async def test_ollama_generate_maps_content_and_usage():
    stub = _StubOllama(result=_ollama_part("Hi", done=True, prompt_eval_count=4, eval_count=1))

    message = await OllamaLLM(model_name="llama3.2", seed=42, client=stub).generate(CONVERSATION)

    assert message.content == "Hi"
    assert message.usage.total_tokens == 5
    assert stub.requests[0]["options"] == {"temperature": 0.7, "num_predict": 1000, "seed": 42}


@pytest.mark.asyncio
async def test_ollama_stream_reports_usage_on_final_part():
    async def parts():
        yield _ollama_part("Hi")
        yield _ollama_part(" there")
        yield _ollama_part("", done=True, prompt_eval_count=4, eval_count=2)

    stub = _StubOllama(result=parts())

    received = await _collect(OllamaLLM(client=stub).generate_stream(CONVERSATION))

    assert [chunk.content for chunk in received] == ["Hi", " there", ""]
    assert received[0].usage is None
    assert received[-1].usage.total_tokens == 6
    assert stub.requests[0]["stream"] is True


@pytest.mark.asyncio
async def test_ollama_empty_completion_is_a_provider_error():
    stub = _StubOllama(result=_ollama_part("", done=True, prompt_eval_count=1, eval_count=0))
    with pytest.raises(ProviderError):
        await OllamaLLM(client=stub).generate(CONVERSATION)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error, expected",
    [
        (ConnectionError("Failed to connect to Ollama"), TransportError),
        (httpx.ConnectError("refused"), TransportError),
        (ollama.ResponseError("model 'x' not found", 404), ProviderError),
    ],
)
async def test_ollama_errors_are_translated(error, expected):
    llm = OllamaLLM(client=_StubOllama(error=error))
    with pytest.raises(expected):
        await llm.generate(CONVERSATION)
    with pytest.raises(expected):
        await _collect(llm.generate_stream(CONVERSATION))
