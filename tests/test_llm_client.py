"""Unit tests for the Ollama client and model capabilities."""
import json

import httpx
import pytest

from ragpipe.llm_client import (
    Embedder,
    OllamaClient,
    OllamaEmbedder,
    OllamaGenerator,
    TextGenerator,
)

BASE_URL = "http://ollama.test"


def make_client(handler) -> OllamaClient:
    return OllamaClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))


class Recorder:
    """Mock transport handler recording request bodies."""

    def __init__(self, response):
        self.response = response
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, request.url.path, body))
        return self.response(request) if callable(self.response) else self.response


@pytest.mark.unit
def test_backends_satisfy_capability_protocols():
    client = OllamaClient(base_url=BASE_URL)
    assert isinstance(OllamaEmbedder(client), Embedder)
    assert isinstance(OllamaGenerator(client), TextGenerator)


@pytest.mark.unit
@pytest.mark.asyncio
class TestOllamaClient:
    async def test_chat(self):
        handler = Recorder(httpx.Response(200, json={"message": {"content": "hi"}}))

        data = await make_client(handler).chat(
            [{"role": "user", "content": "hello"}], model="llama3", temperature=0.0
        )

        assert data["message"]["content"] == "hi"
        method, path, body = handler.requests[0]
        assert (method, path) == ("POST", "/api/chat")
        assert body["model"] == "llama3"
        assert body["stream"] is False
        assert body["options"] == {"temperature": 0.0}

    async def test_chat_without_temperature_sends_no_options(self):
        handler = Recorder(httpx.Response(200, json={"message": {"content": "hi"}}))
        await make_client(handler).chat([{"role": "user", "content": "hello"}])
        assert "options" not in handler.requests[0][2]

    async def test_chat_http_error(self):
        handler = Recorder(httpx.Response(500, json={"error": "boom"}))
        with pytest.raises(httpx.HTTPStatusError):
            await make_client(handler).chat([{"role": "user", "content": "hello"}])

    async def test_chat_stream_yields_pieces_until_done(self):
        lines = [
            {"message": {"content": "Lisa "}, "done": False},
            {"message": {"content": "Melton"}, "done": False},
            {"message": {"content": ""}, "done": True},
            {"message": {"content": "ignored"}, "done": False},
        ]
        content = "\n".join(json.dumps(line) for line in lines).encode()
        handler = Recorder(httpx.Response(200, content=content))

        pieces = [
            piece
            async for piece in make_client(handler).chat_stream(
                [{"role": "user", "content": "who?"}]
            )
        ]

        assert pieces == ["Lisa ", "Melton"]
        assert handler.requests[0][2]["stream"] is True

    async def test_embeddings(self):
        handler = Recorder(httpx.Response(200, json={"embedding": [0.1, 0.2, 0.3]}))

        data = await make_client(handler).embeddings("cats", model="all-minilm")

        assert data["embedding"] == [0.1, 0.2, 0.3]
        assert handler.requests[0][1] == "/api/embeddings"
        assert handler.requests[0][2] == {"model": "all-minilm", "prompt": "cats"}

    async def test_list_models(self):
        handler = Recorder(
            httpx.Response(200, json={"models": [{"name": "llama3"}, {"name": "all-minilm"}]})
        )
        assert await make_client(handler).list_models() == ["llama3", "all-minilm"]


@pytest.mark.unit
@pytest.mark.asyncio
class TestCapabilities:
    async def test_embedder_returns_vector(self):
        handler = Recorder(httpx.Response(200, json={"embedding": [1.0, 0.0]}))
        assert await OllamaEmbedder(make_client(handler), model="m").embed("x") == [1.0, 0.0]

    async def test_embedder_rejects_empty_embedding(self):
        handler = Recorder(httpx.Response(200, json={"embedding": []}))
        with pytest.raises(RuntimeError):
            await OllamaEmbedder(make_client(handler), model="m").embed("x")

    async def test_generator_strips_reply(self):
        handler = Recorder(httpx.Response(200, json={"message": {"content": " PASS\n"}}))
        generator = OllamaGenerator(make_client(handler), model="judge", temperature=0.0)

        assert await generator.invoke("judge this") == "PASS"
        body = handler.requests[0][2]
        assert body["messages"] == [{"role": "user", "content": "judge this"}]
        assert body["model"] == "judge"

    async def test_generator_rejects_empty_reply(self):
        handler = Recorder(httpx.Response(200, json={"message": {"content": ""}}))
        with pytest.raises(RuntimeError):
            await OllamaGenerator(make_client(handler), model="m").invoke("hello")

    async def test_generator_batch_keeps_order(self):
        def reply(request):
            prompt = json.loads(request.content)["messages"][0]["content"]
            return httpx.Response(200, json={"message": {"content": prompt.upper()}})

        generator = OllamaGenerator(make_client(Recorder(reply)), model="m")

        assert await generator.batch(["a", "b", "c"]) == ["A", "B", "C"]

    async def test_generator_stream(self):
        content = json.dumps({"message": {"content": "ok"}, "done": True}).encode()
        generator = OllamaGenerator(
            make_client(Recorder(httpx.Response(200, content=content))), model="m"
        )
        assert [piece async for piece in generator.stream("hello")] == ["ok"]
