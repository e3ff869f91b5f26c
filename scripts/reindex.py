#!/usr/bin/env python
"""Index documents for the RAG pipeline.

Usage:
    python scripts/reindex.py                    # Add docs/ to the saved index
    python scripts/reindex.py --rebuild          # Start from an empty index
    python scripts/reindex.py --source book.pdf --split-pages
"""
import argparse
import asyncio
import sys
from datetime import datetime
from pathlib import Path

import structlog

from ragpipe import config
from ragpipe.llm_client import OllamaEmbedder
from ragpipe.log import configure_logging
from ragpipe.rag.cache import DocumentCache
from ragpipe.rag.chunker import TextChunker
from ragpipe.rag.ingest import IngestPipeline
from ragpipe.rag.loaders import DocumentLoader
from ragpipe.rag.models import IngestProgress
from ragpipe.rag.store import VectorIndex

logger = structlog.get_logger()


class ProgressReporter:
    """Simple progress reporter for CLI."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self.start_time = None

    def start(self, message: str):
        """Start progress reporting."""
        self.start_time = datetime.now()
        print(f"\n{'=' * 60}")
        print(f"  {message}")
        print(f"{'=' * 60}\n")

    def update(self, progress: IngestProgress):
        """Update progress."""
        bar_length = 40
        filled = int(bar_length * progress.processed / progress.total) if progress.total else bar_length
        bar = "█" * filled + "░" * (bar_length - filled)

        print(
            f"\r  [{bar}] {progress.percent:5.1f}% ({progress.processed}/{progress.total}) "
            f"{progress.chunk_id[:30]:<30}",
            end="",
            flush=True,
        )

        if self.verbose:
            print(f"  {progress.status.value}")

    def finish(self, stats: dict, index_path: Path):
        """Finish progress reporting."""
        print("\n")
        elapsed_seconds = (datetime.now() - self.start_time).total_seconds()

        print(f"{'=' * 60}")
        print(f"  Indexing Complete!")
        print(f"{'=' * 60}\n")
        print(f"  Documents processed:  {stats['documents_processed']}")
        print(f"  Files unreadable:     {stats['files_failed']}")
        print(f"  Documents failed:     {stats['documents_failed']}")
        print(f"  Chunks created:       {stats['chunks_created']}")
        print(f"  Chunks indexed:       {stats['chunks_indexed']}")
        print(f"  Chunks skipped:       {stats['chunks_skipped']}")
        print(f"  Embeddings generated: {stats['embeddings_generated']}")
        print(f"  Time elapsed:         {elapsed_seconds:.1f}s")

        if stats["chunks_created"] > 0 and elapsed_seconds > 0:
            rate = stats["chunks_created"] / elapsed_seconds
            print(f"  Indexing rate:        {rate:.1f} chunks/sec")

        print(f"\n{'=' * 60}\n")

        if stats["documents_failed"] > 0:
            print(f"Warning: {stats['documents_failed']} document(s) failed to index.")
            print(f"   Check logs for details.\n")

        print(f"Index saved to: {index_path}\n")


async def main():
    """Main entry point for reindex script."""
    parser = argparse.ArgumentParser(
        description="Index documents for the RAG pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--source",
        type=Path,
        default=None,
        help=f"File or directory to index (default: {config.DOCS_DIR})",
    )
    parser.add_argument(
        "--namespace",
        default=None,
        help=f"Index namespace (default: {config.NAMESPACE})",
    )
    parser.add_argument(
        "--rebuild",
        action="store_true",
        help="Ignore the saved index and start from scratch",
    )
    parser.add_argument(
        "--split-pages",
        action="store_true",
        help="Treat each PDF page as its own document",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show per-chunk status",
    )

    args = parser.parse_args()
    configure_logging("DEBUG" if args.verbose else "WARNING")

    source = args.source or config.DOCS_DIR
    namespace = args.namespace or config.NAMESPACE
    progress = ProgressReporter(verbose=args.verbose)

    try:
        print("\nConfiguration:")
        print(f"   Source:           {source}")
        print(f"   Namespace:        {namespace}")
        print(f"   Embedding model:  {config.EMBEDDING_MODEL} (dim={config.EMBEDDING_DIM})")
        print(f"   Chunk size:       {config.CHUNK_SIZE} chars")
        print(f"   Chunk overlap:    {config.CHUNK_OVERLAP} chars")

        if not args.rebuild and config.INDEX_PATH.exists():
            index = VectorIndex.load(config.INDEX_PATH)
        else:
            index = VectorIndex()

        loader = DocumentLoader(split_pages=args.split_pages)
        documents = loader.load(source)

        progress.start(f"Indexing {len(documents)} document(s)")

        with DocumentCache() as cache:
            pipeline = IngestPipeline(
                embedder=OllamaEmbedder(),
                index=index,
                cache=cache,
                chunker=TextChunker(),
                namespace=namespace,
            )
            stats = await pipeline.ingest_all(documents, progress_callback=progress.update)
        stats["files_failed"] = len(loader.files_failed)

        index.save(config.INDEX_PATH)
        progress.finish(stats, config.INDEX_PATH)

        if stats["documents_failed"] > 0 or stats["files_failed"] > 0:
            sys.exit(1)

    except KeyboardInterrupt:
        print("\n\nIndexing cancelled by user.\n")
        sys.exit(1)

    except FileNotFoundError as e:
        print(f"\nError: {e}\n")
        sys.exit(1)

    except Exception as e:
        print(f"\nError: {e}\n")
        logger.error("reindex_script_failed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
