"""Unit tests for the overlap-aware text chunker."""
import pytest

from ragpipe.errors import ConfigurationError
from ragpipe.rag.chunker import TextChunker, reassemble

SAMPLE = (
    "Albert Einstein was born in Ulm in 1879.  He attended the Luitpold\n"
    "Gymnasium in Munich and later the Aargau cantonal school, where he\n\n"
    "passed his Matura with top grades in physics and mathematics. "
    "Supercalifragilisticexpialidocious words are hard-split when needed."
)


@pytest.mark.unit
class TestChunkerConfiguration:
    def test_overlap_equal_to_size_rejected(self):
        with pytest.raises(ConfigurationError):
            TextChunker(chunk_size=10, chunk_overlap=10)

    def test_overlap_larger_than_size_rejected(self):
        with pytest.raises(ConfigurationError):
            TextChunker(chunk_size=10, chunk_overlap=20)

    def test_negative_overlap_rejected(self):
        with pytest.raises(ConfigurationError):
            TextChunker(chunk_size=10, chunk_overlap=-1)

    def test_non_positive_size_rejected(self):
        with pytest.raises(ConfigurationError):
            TextChunker(chunk_size=0, chunk_overlap=0)

    def test_empty_separator_rejected(self):
        with pytest.raises(ConfigurationError):
            TextChunker(chunk_size=10, chunk_overlap=0, separator="")

    def test_configuration_error_is_a_value_error(self):
        with pytest.raises(ValueError):
            TextChunker(chunk_size=5, chunk_overlap=5)

    def test_explicit_zero_overlap_is_kept(self):
        assert TextChunker(chunk_size=10, chunk_overlap=0).chunk_overlap == 0


@pytest.mark.unit
class TestChunking:
    def test_empty_text_yields_no_chunks(self):
        assert TextChunker(chunk_size=10, chunk_overlap=2).chunk_text("") == []

    def test_short_text_is_one_chunk(self):
        chunker = TextChunker(chunk_size=100, chunk_overlap=10)
        assert chunker.split_text("cats are mammals") == ["cats are mammals"]

    def test_overlapping_windows(self):
        chunker = TextChunker(chunk_size=8, chunk_overlap=4)
        assert chunker.split_text("aaa bbb ccc ddd eee") == [
            "aaa bbb ",
            "bbb ccc ",
            "ccc ddd ",
            "ddd eee",
        ]

    def test_zero_overlap_windows(self):
        chunker = TextChunker(chunk_size=8, chunk_overlap=0)
        assert chunker.split_text("aaa bbb ccc ddd eee") == ["aaa bbb ", "ccc ddd ", "eee"]

    def test_oversized_token_is_hard_split(self):
        chunker = TextChunker(chunk_size=4, chunk_overlap=1)
        assert chunker.split_text("abcdefghij") == ["abcd", "efgh", "ij"]

    def test_literal_separator(self):
        chunker = TextChunker(chunk_size=20, chunk_overlap=0, separator="\n\n")
        text = "para one\n\npara two\n\npara three"
        assert chunker.split_text(text) == ["para one\n\npara two\n\n", "para three"]

    def test_leading_whitespace_is_kept(self):
        chunker = TextChunker(chunk_size=100, chunk_overlap=0)
        assert chunker.split_text("  hello world") == ["  hello world"]

    def test_chunks_are_exact_substrings(self):
        chunker = TextChunker(chunk_size=50, chunk_overlap=10)
        for chunk in chunker.chunk_text(SAMPLE):
            assert chunk.content == SAMPLE[chunk.char_start:chunk.char_end]

    def test_chunk_indexes_are_sequential(self):
        chunks = TextChunker(chunk_size=40, chunk_overlap=8).chunk_text(SAMPLE)
        assert [chunk.chunk_index for chunk in chunks] == list(range(len(chunks)))

    def test_no_chunk_exceeds_size(self):
        for size, overlap in [(10, 0), (25, 5), (60, 30)]:
            chunks = TextChunker(chunk_size=size, chunk_overlap=overlap).chunk_text(SAMPLE)
            assert all(len(chunk.content) <= size for chunk in chunks)

    def test_adjacent_chunks_overlap_by_at_most_the_configured_amount(self):
        chunks = TextChunker(chunk_size=40, chunk_overlap=12).chunk_text(SAMPLE)
        for previous, current in zip(chunks, chunks[1:]):
            assert current.char_start <= previous.char_end
            assert previous.char_end - current.char_start <= 12
            assert current.char_end > previous.char_end

    def test_deterministic(self):
        first = TextChunker(chunk_size=30, chunk_overlap=7).chunk_text(SAMPLE)
        second = TextChunker(chunk_size=30, chunk_overlap=7).chunk_text(SAMPLE)
        assert first == second

    @pytest.mark.parametrize(
        "size,overlap,separator",
        [(10, 0, None), (25, 5, None), (40, 39, None), (64, 16, " "), (30, 3, "\n")],
    )
    def test_reassemble_restores_original_text(self, size, overlap, separator):
        chunker = TextChunker(chunk_size=size, chunk_overlap=overlap, separator=separator)
        assert reassemble(chunker.chunk_text(SAMPLE)) == SAMPLE

    def test_chunk_stats(self):
        chunker = TextChunker(chunk_size=8, chunk_overlap=4)
        stats = chunker.get_chunk_stats(chunker.chunk_text("aaa bbb ccc ddd eee"))
        assert stats["chunk_count"] == 4
        assert stats["max_chunk_size"] == 8
        assert stats["min_chunk_size"] == 7
        assert chunker.get_chunk_stats([])["chunk_count"] == 0
