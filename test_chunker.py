#!/usr/bin/env python3
"""
Test script for document chunking
"""
import re
from unittest.mock import patch

from chatrag.rag.chunker import ChunkConfig, create_chunks_with_metadata, split_into_chunks


def _paragraph(letter: str, length: int = 82) -> str:
    words = []
    while len(" ".join(words)) < length:
        words.append(letter * 5)
    return " ".join(words)[:length]


def _no_whitespace(text: str) -> str:
    return re.sub(r"\s", "", text)


def test_short_text_is_single_chunk():
    """Text within max_chunk_size comes back unchanged as one chunk"""
    text = "  Short note about the resort.  "
    chunks = split_into_chunks(text, ChunkConfig(max_chunk_size=100, overlap_size=20))
    assert chunks == ["Short note about the resort."]


def test_blank_text_has_no_chunks():
    assert split_into_chunks("") == []
    assert split_into_chunks("   \n\n  ") == []


def test_paragraphs_with_overlap():
    """Three 82-char paragraphs, max 100, overlap 20"""
    text = "\n\n".join(_paragraph(c) for c in "abc")
    assert len(text) == 250

    chunks = split_into_chunks(text, ChunkConfig(max_chunk_size=100, min_chunk_size=10, overlap_size=20))
    print(f"Chunks: {[len(c) for c in chunks]}")

    assert len(chunks) == 3
    assert chunks[0] == _paragraph("a")
    assert chunks[1].startswith(chunks[0][-20:])
    assert chunks[2].startswith(chunks[1][-20:])
    assert chunks[2].endswith(_paragraph("c"))
    for chunk in chunks:
        assert len(chunk) <= 100 + 20 + 1


def test_chunks_respect_bound_and_keep_all_text():
    text = "\n\n".join(
        f"Section {i}. " + " ".join(f"word{i}_{j}" for j in range(30)) for i in range(12)
    )
    chunks = split_into_chunks(text, ChunkConfig(max_chunk_size=200, min_chunk_size=50, overlap_size=0))

    assert len(chunks) > 1
    assert all(len(c) <= 200 for c in chunks)
    assert _no_whitespace("".join(chunks)) == _no_whitespace(text)


def test_force_split_at_sentence_end():
    """A paragraph just over the limit is cut after its last full sentence in the window"""
    text = ("The quick brown fox jumps. " * 5).strip()
    chunks = split_into_chunks(text, ChunkConfig(max_chunk_size=100, min_chunk_size=20, overlap_size=0))

    assert len(chunks) == 2
    assert chunks[0].endswith("jumps.")
    assert len(chunks[0]) <= 100
    assert _no_whitespace("".join(chunks)) == _no_whitespace(text)


def test_force_split_at_sentence_ending_on_last_window_char():
    """A sentence ending exactly at max_chunk_size is preferred over an earlier word boundary"""
    first = "w" * 40 + " " + "v" * 58 + "."
    assert len(first) == 100
    text = first + " " + "z" * 30

    chunks = split_into_chunks(text, ChunkConfig(max_chunk_size=100, min_chunk_size=20, overlap_size=0))

    assert chunks == [first, "z" * 30]


def test_force_split_without_boundaries():
    chunks = split_into_chunks("x" * 250, ChunkConfig(max_chunk_size=100, min_chunk_size=10, overlap_size=0))
    assert [len(c) for c in chunks] == [100, 100, 50]


def test_long_segment_kept_when_splitting_disabled():
    chunks = split_into_chunks(
        "x" * 250,
        ChunkConfig(max_chunk_size=100, min_chunk_size=10, overlap_size=0, split_long_chunks=False),
    )
    assert chunks == ["x" * 250]


def test_japanese_sentences_split_without_spaces():
    text = "量子コンピュータは計算機です。" * 20
    chunks = split_into_chunks(text, ChunkConfig(max_chunk_size=100, min_chunk_size=10, overlap_size=0))

    assert len(chunks) == 4
    assert all(len(c) <= 100 for c in chunks)
    assert all(c.endswith("。") for c in chunks)


def test_keyword_overrides():
    text = "\n\n".join(_paragraph(c) for c in "abc")
    chunks = split_into_chunks(text, max_chunk_size=100, overlap_size=0)
    assert chunks == [_paragraph(c) for c in "abc"]


def test_failure_falls_back_to_whole_text():
    text = "y" * 500 + "  "
    with patch("chatrag.rag.chunker._segment_text", side_effect=RuntimeError("boom")):
        chunks = split_into_chunks(text, ChunkConfig(max_chunk_size=100))
    assert chunks == ["y" * 500]


def test_chunk_metadata():
    text = "\n\n".join(_paragraph(c) for c in "abc")
    chunks = create_chunks_with_metadata(
        text,
        {"title": "Pool hours", "source": "faq"},
        ChunkConfig(max_chunk_size=100, overlap_size=0),
        document_id="doc-1",
    )

    assert len(chunks) == 3
    for index, chunk in enumerate(chunks):
        assert chunk.chunk_index == index
        assert chunk.total_chunks == 3
        assert chunk.document_id == "doc-1"
        assert chunk.metadata["title"] == "Pool hours"
        assert chunk.metadata["source"] == "faq"
        assert chunk.metadata["chunk_index"] == index
        assert chunk.metadata["total_chunks"] == 3
        assert chunk.metadata["char_count"] == len(chunk.content) == chunk.char_count
        assert "created_at" in chunk.metadata


if __name__ == "__main__":
    test_short_text_is_single_chunk()
    test_blank_text_has_no_chunks()
    test_paragraphs_with_overlap()
    test_chunks_respect_bound_and_keep_all_text()
    test_force_split_at_sentence_end()
    test_force_split_at_sentence_ending_on_last_window_char()
    test_force_split_without_boundaries()
    test_long_segment_kept_when_splitting_disabled()
    test_japanese_sentences_split_without_spaces()
    test_keyword_overrides()
    test_failure_falls_back_to_whole_text()
    test_chunk_metadata()
    print("\n✅ All chunker tests passed")
