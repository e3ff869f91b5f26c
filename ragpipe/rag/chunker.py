"""Text chunking with overlap for the RAG pipeline.

Splits text on a separator into tokens and greedily packs them into chunks of
at most ``chunk_size`` characters. Each new chunk re-includes trailing tokens
of the previous one, up to ``chunk_overlap`` characters, so adjacent chunks
share context.

Separator characters stay attached to the token they follow, which makes
every chunk an exact substring of the input and lets ``reassemble`` rebuild
the original text from the chunks alone.
"""
import re
from dataclasses import dataclass
from typing import List, Optional, Pattern, Tuple

import structlog

from ragpipe import config
from ragpipe.errors import ConfigurationError

logger = structlog.get_logger()

WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class TextChunk:
    """Represents a chunk of text with position information."""

    content: str
    char_start: int
    char_end: int
    chunk_index: int


class TextChunker:
    """Separator-aware character chunker with overlap support."""

    def __init__(
        self,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
        separator: Optional[str] = None,
    ):
        """Initialize the text chunker.

        Args:
            chunk_size: Maximum chunk length in characters (default from config)
            chunk_overlap: Characters shared with the previous chunk (default from config)
            separator: Literal token separator; None splits on any whitespace run
                (default from config)

        Raises:
            ConfigurationError: If sizes are invalid or the separator is empty
        """
        self.chunk_size = config.CHUNK_SIZE if chunk_size is None else chunk_size
        self.chunk_overlap = (
            config.CHUNK_OVERLAP if chunk_overlap is None else chunk_overlap
        )
        self.separator = config.CHUNK_SEPARATOR if separator is None else separator

        if self.chunk_size <= 0:
            raise ConfigurationError(
                f"Chunk size must be positive, got {self.chunk_size}"
            )
        if self.chunk_overlap < 0:
            raise ConfigurationError(
                f"Overlap must not be negative, got {self.chunk_overlap}"
            )
        if self.chunk_overlap >= self.chunk_size:
            raise ConfigurationError(
                f"Overlap ({self.chunk_overlap}) must be less than "
                f"chunk size ({self.chunk_size})"
            )
        if self.separator == "":
            raise ConfigurationError("Separator must not be empty")

        self._pattern: Pattern[str] = (
            WHITESPACE if self.separator is None else re.compile(re.escape(self.separator))
        )

        logger.info(
            "chunker_initialized",
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
            separator=self.separator,
        )

    def split_text(self, text: str) -> List[str]:
        """Split text into overlapping chunk strings."""
        return [chunk.content for chunk in self.chunk_text(text)]

    def chunk_text(self, text: str) -> List[TextChunk]:
        """Split text into overlapping chunks.

        Args:
            text: Text to chunk

        Returns:
            List of TextChunk objects in document order
        """
        if not text:
            return []

        spans = self._split_oversized(self._tokenize(text))

        chunks: List[TextChunk] = []
        window: List[Tuple[int, int]] = []
        window_length = 0

        for start, end in spans:
            length = end - start

            if window and window_length + length > self.chunk_size:
                chunks.append(self._make_chunk(text, window, len(chunks)))

                # Keep trailing tokens for overlap, leaving room for the next one
                while window and (
                    window_length > self.chunk_overlap
                    or window_length + length > self.chunk_size
                ):
                    dropped_start, dropped_end = window.pop(0)
                    window_length -= dropped_end - dropped_start

            window.append((start, end))
            window_length += length

        if window:
            chunks.append(self._make_chunk(text, window, len(chunks)))

        logger.debug(
            "text_chunked",
            text_length=len(text),
            chunk_count=len(chunks),
            avg_chunk_size=sum(len(c.content) for c in chunks) // len(chunks),
        )

        return chunks

    def _tokenize(self, text: str) -> List[Tuple[int, int]]:
        """Find token spans; each token owns the separator that follows it.

        A separator at the very start of the text is folded into the first
        token, so the spans tile the whole text without gaps.
        """
        spans = []
        start = 0
        for match in self._pattern.finditer(text):
            if match.start() == start:
                continue
            spans.append((start, match.end()))
            start = match.end()

        if start < len(text):
            spans.append((start, len(text)))

        return spans

    def _split_oversized(self, spans: List[Tuple[int, int]]) -> List[Tuple[int, int]]:
        """Hard-split tokens longer than chunk_size so no content is dropped."""
        result = []
        for start, end in spans:
            if end - start <= self.chunk_size:
                result.append((start, end))
                continue

            logger.debug(
                "oversized_token_split",
                token_length=end - start,
                chunk_size=self.chunk_size,
            )
            for piece_start in range(start, end, self.chunk_size):
                result.append((piece_start, min(piece_start + self.chunk_size, end)))

        return result

    @staticmethod
    def _make_chunk(
        text: str, window: List[Tuple[int, int]], chunk_index: int
    ) -> TextChunk:
        char_start = window[0][0]
        char_end = window[-1][1]
        return TextChunk(
            content=text[char_start:char_end],
            char_start=char_start,
            char_end=char_end,
            chunk_index=chunk_index,
        )

    def get_chunk_stats(self, chunks: List[TextChunk]) -> dict:
        """Get statistics about a set of chunks.

        Args:
            chunks: List of TextChunk objects

        Returns:
            Dictionary with chunk statistics
        """
        if not chunks:
            return {
                "chunk_count": 0,
                "total_chars": 0,
                "avg_chunk_size": 0,
                "min_chunk_size": 0,
                "max_chunk_size": 0,
            }

        chunk_sizes = [len(c.content) for c in chunks]

        return {
            "chunk_count": len(chunks),
            "total_chars": sum(chunk_sizes),
            "avg_chunk_size": sum(chunk_sizes) // len(chunks),
            "min_chunk_size": min(chunk_sizes),
            "max_chunk_size": max(chunk_sizes),
            "overlap": self.chunk_overlap,
        }


def reassemble(chunks: List[TextChunk]) -> str:
    """Rebuild the original text from its chunks.

    Concatenates every chunk's non-overlapping tail, i.e. the part that starts
    where the previous chunk ended.
    """
    parts = []
    position = 0
    for chunk in chunks:
        parts.append(chunk.content[max(position - chunk.char_start, 0):])
        position = chunk.char_end
    return "".join(parts)
