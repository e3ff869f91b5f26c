"""Ollama client and the model capabilities built on it.

The pipeline only depends on two capabilities:

- ``Embedder``: ``embed(text) -> vector`` (sync or async)
- ``TextGenerator``: ``invoke(prompt) -> text``, ``stream(prompt)`` yielding
  text pieces, ``batch(prompts) -> [text]``

Any object with these methods works; ``OllamaEmbedder`` and
``OllamaGenerator`` are the bundled backends.
"""
import json
from typing import (
    AsyncIterator,
    Awaitable,
    Dict,
    List,
    Optional,
    Protocol,
    Sequence,
    Union,
    runtime_checkable,
)

import httpx
import structlog

from ragpipe import config

logger = structlog.get_logger()


@runtime_checkable
class Embedder(Protocol):
    """Maps text to a fixed-length vector. Same text gives the same vector."""

    def embed(self, text: str) -> Union[Sequence[float], Awaitable[Sequence[float]]]:
        ...


@runtime_checkable
class TextGenerator(Protocol):
    """Prompt-in, text-out model backend."""

    async def invoke(self, prompt: str) -> str:
        ...

    def stream(self, prompt: str) -> AsyncIterator[str]:
        ...

    async def batch(self, prompts: Sequence[str]) -> List[str]:
        ...


class OllamaClient:
    """Async client for interacting with Ollama API."""

    def __init__(
        self,
        base_url: str = None,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Ollama client.

        Args:
            base_url: Ollama API base URL (defaults to config.OLLAMA_BASE_URL)
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url or config.OLLAMA_BASE_URL
        self.timeout = timeout
        self.transport = transport

    def _client(self, timeout: float = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or self.timeout,
            transport=self.transport,
        )

    async def chat(
        self,
        messages: List[Dict[str, str]],
        model: str = None,
        temperature: Optional[float] = None,
    ) -> Dict:
        """Send a non-streaming chat completion request to Ollama.

        Args:
            messages: List of message dicts with 'role' and 'content'
            model: Model to use (defaults to config.CHAT_MODEL)
            temperature: Sampling temperature (0.0-2.0)

        Returns:
            Response dict with 'message' containing 'content'

        Raises:
            httpx.HTTPError: On API errors
            httpx.ConnectError: If Ollama service is unavailable
        """
        model = model or config.CHAT_MODEL
        payload = self._chat_payload(messages, model, False, temperature)

        try:
            async with self._client() as client:
                logger.info(
                    "ollama_chat_request",
                    model=model,
                    message_count=len(messages),
                )

                response = await client.post("/api/chat", json=payload)
                response.raise_for_status()

                data = response.json()

                logger.info(
                    "ollama_chat_response",
                    model=model,
                    response_length=len(data.get("message", {}).get("content", "")),
                )

                return data

        except httpx.ConnectError as e:
            logger.error("ollama_connection_error", error=str(e), base_url=self.base_url)
            raise
        except httpx.HTTPError as e:
            logger.error("ollama_http_error", error=str(e), status_code=getattr(getattr(e, "response", None), "status_code", None))
            raise

    async def chat_stream(
        self,
        messages: List[Dict[str, str]],
        model: str = None,
        temperature: Optional[float] = None,
    ) -> AsyncIterator[str]:
        """Stream a chat completion, yielding content pieces as they arrive.

        Raises:
            httpx.HTTPError: On API errors
        """
        model = model or config.CHAT_MODEL
        payload = self._chat_payload(messages, model, True, temperature)

        try:
            async with self._client() as client:
                logger.info("ollama_chat_stream_request", model=model)

                async with client.stream("POST", "/api/chat", json=payload) as response:
                    response.raise_for_status()
                    async for line in response.aiter_lines():
                        if not line.strip():
                            continue
                        data = json.loads(line)
                        piece = data.get("message", {}).get("content", "")
                        if piece:
                            yield piece
                        if data.get("done"):
                            break

        except httpx.HTTPError as e:
            logger.error("ollama_stream_error", error=str(e))
            raise

    @staticmethod
    def _chat_payload(
        messages: List[Dict[str, str]],
        model: str,
        stream: bool,
        temperature: Optional[float],
    ) -> Dict:
        payload = {
            "model": model,
            "messages": messages,
            "stream": stream,
        }

        if temperature is not None:
            payload["options"] = {"temperature": temperature}

        return payload

    async def embeddings(
        self,
        prompt: str,
        model: str = None,
    ) -> Dict:
        """Generate embeddings for a text prompt.

        Args:
            prompt: Text to embed
            model: Model to use (defaults to config.EMBEDDING_MODEL)

        Returns:
            Response dict with 'embedding' list

        Raises:
            httpx.HTTPError: On API errors
        """
        model = model or config.EMBEDDING_MODEL

        payload = {
            "model": model,
            "prompt": prompt,
        }

        try:
            async with self._client() as client:
                logger.debug(
                    "ollama_embedding_request",
                    model=model,
                    prompt_length=len(prompt),
                )

                response = await client.post("/api/embeddings", json=payload)
                response.raise_for_status()

                data = response.json()

                logger.debug(
                    "ollama_embedding_response",
                    model=model,
                    dimension=len(data.get("embedding", [])),
                )

                return data

        except httpx.HTTPError as e:
            logger.error("ollama_embedding_error", error=str(e))
            raise

    async def list_models(self) -> List[str]:
        """List all available Ollama models.

        Returns:
            List of model names

        Raises:
            httpx.HTTPError: On API errors
        """
        try:
            async with self._client(timeout=5.0) as client:
                response = await client.get("/api/tags")
                response.raise_for_status()
                data = response.json()
                return [m["name"] for m in data.get("models", [])]
        except httpx.HTTPError as e:
            logger.error("ollama_list_models_error", error=str(e))
            raise


class OllamaEmbedder:
    """Embedding capability backed by an Ollama embedding model."""

    def __init__(self, client: OllamaClient = None, model: str = None):
        self.client = client or OllamaClient()
        self.model = model or config.EMBEDDING_MODEL

    async def embed(self, text: str) -> List[float]:
        """Embed one text.

        Raises:
            RuntimeError: If Ollama returns an empty embedding
            httpx.HTTPError: On API errors
        """
        response = await self.client.embeddings(prompt=text, model=self.model)
        embedding = response.get("embedding", [])
        if not embedding:
            raise RuntimeError("Empty embedding returned from Ollama")
        return embedding


class OllamaGenerator:
    """Text generation capability backed by an Ollama chat model."""

    def __init__(
        self,
        client: OllamaClient = None,
        model: str = None,
        temperature: Optional[float] = None,
    ):
        self.client = client or OllamaClient()
        self.model = model or config.CHAT_MODEL
        self.temperature = temperature

    def _messages(self, prompt: str) -> List[Dict[str, str]]:
        return [{"role": "user", "content": prompt}]

    async def invoke(self, prompt: str) -> str:
        """Generate a full completion for one prompt.

        Raises:
            RuntimeError: If Ollama returns an empty message
        """
        response = await self.client.chat(
            self._messages(prompt), model=self.model, temperature=self.temperature
        )
        content = response.get("message", {}).get("content", "")
        if not content:
            raise RuntimeError("Empty response from Ollama")
        return content.strip()

    async def stream(self, prompt: str) -> AsyncIterator[str]:
        """Yield completion pieces as the model produces them."""
        async for piece in self.client.chat_stream(
            self._messages(prompt), model=self.model, temperature=self.temperature
        ):
            yield piece

    async def batch(self, prompts: Sequence[str]) -> List[str]:
        """Generate completions for several prompts, one after another."""
        results = []
        for prompt in prompts:
            results.append(await self.invoke(prompt))
        return results
