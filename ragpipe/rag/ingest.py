"""Ingest pipeline for indexing documents.

Orchestrates:
- Chunking each document into traceable chunks
- Embedding chunks (skipping those already in the run's document cache)
- Inserting embeddings into a vector index namespace
- Per-chunk progress events for the caller to render
"""
import asyncio
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence, Tuple

import structlog

from ragpipe import config
from ragpipe.errors import (
    CapacityExceededError,
    ConfigurationError,
    DimensionMismatchError,
    ExternalServiceError,
)
from ragpipe.llm_client import Embedder
from ragpipe.rag.cache import DocumentCache
from ragpipe.rag.chunker import TextChunker
from ragpipe.rag.models import (
    Chunk,
    ChunkStatus,
    Document,
    Embedding,
    IngestProgress,
    IngestStats,
)
from ragpipe.rag.store import VectorIndex
from ragpipe.retry import call_with_retries

logger = structlog.get_logger()


class IngestPipeline:
    """Pipeline for ingesting documents into a vector index."""

    def __init__(
        self,
        embedder: Embedder,
        index: VectorIndex,
        cache: Optional[DocumentCache] = None,
        chunker: Optional[TextChunker] = None,
        namespace: Optional[str] = None,
        concurrency: Optional[int] = None,
        max_retries: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        """Initialize the ingest pipeline.

        Args:
            embedder: Embedding capability
            index: Vector index to populate
            cache: Document cache for this run (a fresh one if not provided)
            chunker: Text chunker (default settings from config)
            namespace: Target namespace (default from config)
            concurrency: Documents ingested in parallel (default from config)
            max_retries: Retries per embedding call (default from config)
            timeout: Per-call embedding timeout in seconds (default from config)
        """
        self.embedder = embedder
        self.index = index
        self.cache = cache if cache is not None else DocumentCache()
        self.chunker = chunker if chunker is not None else TextChunker()
        self.namespace = config.NAMESPACE if namespace is None else namespace
        self.concurrency = (
            config.INGEST_CONCURRENCY if concurrency is None else concurrency
        )

        if self.concurrency < 1:
            raise ConfigurationError(
                f"Concurrency must be at least 1, got {self.concurrency}"
            )
        self.max_retries = max_retries
        self.timeout = config.EXTERNAL_TIMEOUT if timeout is None else timeout

        self.stats = IngestStats()

        logger.info(
            "ingest_pipeline_initialized",
            namespace=self.namespace,
            chunk_size=self.chunker.chunk_size,
            chunk_overlap=self.chunker.chunk_overlap,
            concurrency=self.concurrency,
        )

    def chunk_document(self, document: Document) -> List[Chunk]:
        """Split a document into chunks with ids ``{document_id}_{index}``.

        Chunk metadata inherits the document metadata and adds the chunk id,
        its parent document id and its position.
        """
        chunks = []
        for text_chunk in self.chunker.chunk_text(document.content):
            chunk_id = f"{document.id}_{text_chunk.chunk_index}"
            metadata = {
                **document.metadata,
                "id": chunk_id,
                "document_id": document.id,
                "chunk_index": text_chunk.chunk_index,
                "char_start": text_chunk.char_start,
                "char_end": text_chunk.char_end,
            }
            chunks.append(
                Chunk(
                    id=chunk_id,
                    document_id=document.id,
                    chunk_index=text_chunk.chunk_index,
                    content=text_chunk.content,
                    char_start=text_chunk.char_start,
                    char_end=text_chunk.char_end,
                    metadata=metadata,
                )
            )

        logger.debug("document_chunked", document_id=document.id, chunk_count=len(chunks))
        return chunks

    async def embed_chunk(self, chunk: Chunk) -> Tuple[Embedding, bool]:
        """Embed a chunk, reusing the cached embedding when there is one.

        Returns:
            Tuple of (embedding, cache_hit)

        Raises:
            ExternalServiceError: If the embedder keeps failing
        """
        cached = self.cache.get(chunk.id)
        if cached is not None and cached.content == chunk.content:
            return cached, True

        vector = await call_with_retries(
            self.embedder.embed,
            chunk.content,
            operation="embed_chunk",
            max_retries=self.max_retries,
            timeout=self.timeout,
        )
        embedding = Embedding(
            id=chunk.id,
            content=chunk.content,
            metadata=chunk.metadata,
            vector=tuple(float(x) for x in vector),
        )
        self.cache.put(chunk.id, embedding)
        self.stats.embeddings_generated += 1
        return embedding, False

    async def ingest_chunk(self, chunk: Chunk, namespace: str) -> ChunkStatus:
        """Embed and index one chunk.

        Index errors are recoverable: the chunk is skipped and logged.

        Raises:
            ExternalServiceError: If embedding fails after all retries
        """
        if not chunk.content.strip():
            logger.info("chunk_skipped", chunk_id=chunk.id, reason="blank_content")
            return ChunkStatus.SKIPPED

        embedding, cache_hit = await self.embed_chunk(chunk)

        try:
            self.index.insert(
                namespace,
                embedding.id,
                embedding.vector,
                {"content": embedding.content, **embedding.metadata},
            )
        except (DimensionMismatchError, CapacityExceededError) as e:
            logger.warning(
                "chunk_skipped",
                chunk_id=chunk.id,
                namespace=namespace,
                reason=type(e).__name__,
                error=str(e),
            )
            return ChunkStatus.SKIPPED

        return ChunkStatus.CACHED if cache_hit else ChunkStatus.INDEXED

    async def _ingest_document(
        self,
        document: Document,
        chunks: List[Chunk],
        namespace: str,
        queue: "asyncio.Queue",
    ) -> None:
        """Ingest every chunk of one document, reporting each to the queue.

        An embedding failure fails the rest of this document only.
        """
        if not chunks:
            logger.warning("no_chunks_created", document_id=document.id)

        for position, chunk in enumerate(chunks):
            try:
                status = await self.ingest_chunk(chunk, namespace)
            except ExternalServiceError as e:
                logger.error(
                    "document_ingestion_failed",
                    document_id=document.id,
                    chunk_id=chunk.id,
                    error=str(e),
                )
                self.stats.documents_failed += 1
                for failed in chunks[position:]:
                    self._count(ChunkStatus.FAILED)
                    await queue.put((failed, ChunkStatus.FAILED))
                return

            self._count(status)
            await queue.put((chunk, status))

        self.stats.documents_processed += 1
        logger.info(
            "document_ingested",
            document_id=document.id,
            namespace=namespace,
            chunk_count=len(chunks),
        )

    def _count(self, status: ChunkStatus) -> None:
        if status is ChunkStatus.INDEXED:
            self.stats.chunks_indexed += 1
        elif status is ChunkStatus.CACHED:
            self.stats.chunks_cached += 1
        elif status is ChunkStatus.SKIPPED:
            self.stats.chunks_skipped += 1
        else:
            self.stats.chunks_failed += 1

    async def ingest(
        self, documents: Sequence[Document], namespace: Optional[str] = None
    ) -> AsyncIterator[IngestProgress]:
        """Ingest documents, yielding one progress event per chunk.

        Documents are processed concurrently (bounded by ``concurrency``);
        events arrive in completion order and ``processed`` counts up to
        ``total``.

        Args:
            documents: Documents to ingest
            namespace: Target namespace (overrides the pipeline default)

        Yields:
            IngestProgress events
        """
        namespace = self.namespace if namespace is None else namespace
        self.stats = IngestStats()

        plan = [(document, self.chunk_document(document)) for document in documents]
        total = sum(len(chunks) for _, chunks in plan)
        self.stats.chunks_created = total

        logger.info(
            "ingest_started",
            namespace=namespace,
            document_count=len(plan),
            chunk_count=total,
        )

        queue: asyncio.Queue = asyncio.Queue()
        semaphore = asyncio.Semaphore(self.concurrency)

        async def run(document: Document, chunks: List[Chunk]) -> None:
            async with semaphore:
                try:
                    await self._ingest_document(document, chunks, namespace, queue)
                except Exception as e:
                    await queue.put(e)

        tasks = [asyncio.create_task(run(document, chunks)) for document, chunks in plan]

        try:
            processed = 0
            while processed < total:
                item = await queue.get()
                if isinstance(item, Exception):
                    raise item

                chunk, status = item
                processed += 1
                logger.debug(
                    "chunk_processed",
                    chunk_id=chunk.id,
                    status=status.value,
                    processed=processed,
                    total=total,
                )
                yield IngestProgress(
                    processed=processed,
                    total=total,
                    chunk_id=chunk.id,
                    document_id=chunk.document_id,
                    status=status,
                )
        except BaseException:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        await asyncio.gather(*tasks)
        logger.info("ingest_completed", namespace=namespace, stats=self.stats.to_dict())

    async def ingest_all(
        self,
        documents: Sequence[Document],
        namespace: Optional[str] = None,
        progress_callback: Optional[Callable[[IngestProgress], Any]] = None,
    ) -> Dict[str, int]:
        """Ingest documents and return the run statistics.

        Args:
            documents: Documents to ingest
            namespace: Target namespace (overrides the pipeline default)
            progress_callback: Optional callback invoked with each IngestProgress

        Returns:
            Dictionary with ingestion statistics
        """
        async for progress in self.ingest(documents, namespace=namespace):
            if progress_callback:
                progress_callback(progress)

        return self.stats.to_dict()
