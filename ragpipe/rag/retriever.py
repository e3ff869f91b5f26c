"""Retriever for grounded question answering over the vector index.

Handles:
- Query embedding generation
- Vector index search
- Context assembly with a character cap
- Prompt construction and answer generation
"""
from typing import List, Optional

import structlog

from ragpipe import config
from ragpipe.errors import ConfigurationError
from ragpipe.llm_client import Embedder, TextGenerator
from ragpipe.rag.models import Answer, SearchResult
from ragpipe.rag.store import VectorIndex
from ragpipe.retry import call_with_retries

logger = structlog.get_logger()

CONTEXT_SEPARATOR = "\n\n"

ANSWER_PROMPT = """You are a helpful assistant. Use the following context to answer the question. If the context doesn't contain relevant information, say so.

Context:
{context}

Question: {question}

Answer:"""

NO_CONTEXT_PROMPT = """Question: {question}

You don't have any relevant information to answer this question. Please say so politely."""


def build_answer_prompt(question: str, context: Optional[str]) -> str:
    """Build the generator prompt, falling back to the no-information prompt.

    ``context`` of None (or blank) means nothing relevant was retrieved; the
    model is then told to say so instead of answering from its own knowledge.
    """
    if not context or not context.strip():
        return NO_CONTEXT_PROMPT.format(question=question)
    return ANSWER_PROMPT.format(context=context, question=question)


class Retriever:
    """Semantic retriever and answer generator for the RAG pipeline."""

    def __init__(
        self,
        embedder: Embedder,
        index: VectorIndex,
        generator: Optional[TextGenerator] = None,
        namespace: Optional[str] = None,
        top_k: Optional[int] = None,
        max_context_chars: Optional[int] = None,
        max_retries: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        """Initialize the retriever.

        Args:
            embedder: Embedding capability used for queries
            index: Vector index to search
            generator: Answer generation capability (required for ``answer``)
            namespace: Namespace to search (default from config)
            top_k: Number of results to retrieve (default from config)
            max_context_chars: Cap on assembled context length (default from config)
            max_retries: Retries per external call (default from config)
            timeout: Per-call timeout in seconds (default from config)
        """
        self.embedder = embedder
        self.index = index
        self.generator = generator
        self.namespace = config.NAMESPACE if namespace is None else namespace
        self.top_k = config.RETRIEVAL_TOP_K if top_k is None else top_k
        self.max_context_chars = (
            config.MAX_CONTEXT_CHARS if max_context_chars is None else max_context_chars
        )

        if self.top_k < 0:
            raise ConfigurationError(f"top_k must not be negative, got {self.top_k}")
        if self.max_context_chars < 0:
            raise ConfigurationError(
                f"Context cap must not be negative, got {self.max_context_chars}"
            )
        self.max_retries = max_retries
        self.timeout = config.EXTERNAL_TIMEOUT if timeout is None else timeout

        logger.info(
            "retriever_initialized",
            namespace=self.namespace,
            top_k=self.top_k,
            max_context_chars=self.max_context_chars,
        )

    async def retrieve(
        self,
        question: str,
        namespace: Optional[str] = None,
        k: Optional[int] = None,
    ) -> List[SearchResult]:
        """Retrieve the chunks most similar to a question.

        Args:
            question: User question text
            namespace: Namespace to search (overrides the default)
            k: Number of results to return (overrides the default)

        Returns:
            List of SearchResult objects, most similar first

        Raises:
            UnknownNamespaceError: If the namespace was never populated
            ExternalServiceError: If the query cannot be embedded
        """
        namespace = self.namespace if namespace is None else namespace
        k = self.top_k if k is None else k

        if not question or not question.strip():
            logger.warning("empty_query_provided")
            return []

        logger.info("retrieval_started", namespace=namespace, query_length=len(question), top_k=k)

        query_vector = await call_with_retries(
            self.embedder.embed,
            question,
            operation="embed_query",
            max_retries=self.max_retries,
            timeout=self.timeout,
        )
        results = self.index.search(namespace, query_vector, k)

        logger.info(
            "retrieval_completed",
            namespace=namespace,
            results_returned=len(results),
            top_similarity=results[0].similarity if results else None,
        )

        return results

    def assemble_context(self, results: List[SearchResult]) -> Optional[str]:
        """Concatenate result contents in the order given.

        Stops at ``max_context_chars``; the part that crosses the cap is
        truncated.

        Returns:
            Context string, or None when there are no results
        """
        if not results:
            return None

        parts = []
        total_chars = 0

        for result in results:
            content = result.content
            if not content:
                continue

            added = len(content) + (len(CONTEXT_SEPARATOR) if parts else 0)
            if total_chars + added > self.max_context_chars:
                remaining = self.max_context_chars - total_chars - (
                    len(CONTEXT_SEPARATOR) if parts else 0
                )
                if remaining > 0:
                    parts.append(content[:remaining])
                logger.debug("context_truncated", max_chars=self.max_context_chars)
                break

            parts.append(content)
            total_chars += added

        if not parts:
            return None

        context = CONTEXT_SEPARATOR.join(parts)

        logger.debug(
            "context_assembled",
            num_chunks=len(parts),
            total_chars=len(context),
        )

        return context

    async def answer(self, question: str, context: Optional[str]) -> str:
        """Generate an answer grounded on the given context.

        Raises:
            RuntimeError: If no generator was configured
            ExternalServiceError: If generation keeps failing
        """
        if self.generator is None:
            raise RuntimeError("No generator configured for this retriever")

        prompt = build_answer_prompt(question, context)
        used_context = bool(context and context.strip())

        logger.info("answer_requested", used_context=used_context, prompt_length=len(prompt))

        response = await call_with_retries(
            self.generator.invoke,
            prompt,
            operation="generate_answer",
            max_retries=self.max_retries,
            timeout=self.timeout,
        )
        return response.strip()

    async def ask(
        self,
        question: str,
        namespace: Optional[str] = None,
        k: Optional[int] = None,
    ) -> Answer:
        """Retrieve, assemble context and answer in one call."""
        results = await self.retrieve(question, namespace=namespace, k=k)
        context = self.assemble_context(results)
        text = await self.answer(question, context)

        return Answer(
            question=question,
            text=text,
            sources=results,
            used_context=bool(context and context.strip()),
        )
