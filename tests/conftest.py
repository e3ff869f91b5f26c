"""Pytest configuration and fakes for the model capabilities."""
from typing import Callable, List, Optional, Sequence, Union

import pytest

from ragpipe import config
from ragpipe.rag.models import Document
from ragpipe.rag.store import VectorIndex

# Toy vocabulary: one dimension per term, 1.0 when the term occurs in the text
VOCABULARY = ["cat", "dog", "rock", "mammal", "mineral"]
DIM = len(VOCABULARY)


def toy_vector(text: str) -> List[float]:
    lowered = text.lower()
    return [1.0 if term in lowered else 0.0 for term in VOCABULARY]


class ToyEmbedder:
    """Async keyword embedder that counts its calls."""

    def __init__(self, fail_on: Optional[str] = None):
        self.calls: List[str] = []
        self.fail_on = fail_on

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.fail_on and self.fail_on in text:
            raise ConnectionError("embedding backend unavailable")
        return toy_vector(text)


class SyncToyEmbedder:
    """Synchronous variant of ToyEmbedder."""

    def __init__(self):
        self.calls: List[str] = []

    def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        return toy_vector(text)


class FlakyEmbedder(ToyEmbedder):
    """Fails the first ``failures`` calls, then behaves like ToyEmbedder."""

    def __init__(self, failures: int):
        super().__init__()
        self.failures = failures

    async def embed(self, text: str) -> List[float]:
        if self.failures > 0:
            self.failures -= 1
            self.calls.append(text)
            raise TimeoutError("embedding timed out")
        return await super().embed(text)


class ScriptedGenerator:
    """Generator returning canned replies and recording every prompt."""

    def __init__(self, reply: Union[str, Callable[[str], str]] = "ok"):
        self.reply = reply
        self.prompts: List[str] = []

    async def invoke(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if callable(self.reply):
            return self.reply(prompt)
        return self.reply

    async def stream(self, prompt: str):
        for word in (await self.invoke(prompt)).split(" "):
            yield word

    async def batch(self, prompts: Sequence[str]) -> List[str]:
        return [await self.invoke(prompt) for prompt in prompts]


class FailingGenerator(ScriptedGenerator):
    async def invoke(self, prompt: str) -> str:
        self.prompts.append(prompt)
        raise ConnectionError("generator unavailable")


@pytest.fixture(autouse=True)
def no_retry_delay(monkeypatch):
    """Retry immediately so failure paths don't sleep."""
    monkeypatch.setattr(config, "RETRY_BACKOFF_SECONDS", 0.0)
    monkeypatch.setattr(config, "EXTERNAL_MAX_RETRIES", 2)


@pytest.fixture
def embedder() -> ToyEmbedder:
    return ToyEmbedder()


@pytest.fixture
def index() -> VectorIndex:
    return VectorIndex(dim=DIM, max_elements=100)


@pytest.fixture
def animal_documents() -> List[Document]:
    """Three single-chunk documents: two about mammals, one about minerals."""
    return [
        Document(id="A", content="cats are mammals", metadata={"topic": "animals"}),
        Document(id="B", content="dogs are mammals", metadata={"topic": "animals"}),
        Document(id="C", content="rocks are minerals", metadata={"topic": "geology"}),
    ]


@pytest.fixture
def populated_index(index, animal_documents) -> VectorIndex:
    """Index holding the animal documents in the 'zoo' namespace, ids A/B/C."""
    for document in animal_documents:
        index.insert(
            "zoo",
            document.id,
            toy_vector(document.content),
            {"content": document.content, **document.metadata},
        )
    return index
