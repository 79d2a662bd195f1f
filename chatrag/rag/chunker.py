"""
Chunker module for splitting document text into bounded, overlapping chunks.

Text is normalized, segmented into paragraphs (and sentences for very long
paragraphs), then greedily merged into chunks of at most ``max_chunk_size``
characters. Segments that are still too long are force-split at the last
sentence end or word boundary. Finally each chunk after the first is
prefixed with the tail of the previous chunk so that context carries over
chunk boundaries.

Sizes are measured in characters, not tokens.
"""

import logging
import re
from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional

from chatrag import config
from chatrag.models.knowledge import Chunk, utc_now_iso

logger = logging.getLogger(__name__)

# Paragraphs longer than this multiple of max_chunk_size are split into sentences
LONG_PARAGRAPH_FACTOR = 1.5

_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
# ASCII terminators need trailing whitespace (keeps "3.14" intact); CJK terminators do not
_SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+|(?<=[。！？])\s*")
_SENTENCE_END = re.compile(r"[.!?](?=\s)|[。！？]")
_WHITESPACE = re.compile(r"\s")


@dataclass(frozen=True)
class ChunkConfig:
    """Chunking options.

    Attributes:
        max_chunk_size: Upper bound of a chunk's length before overlap is added.
        min_chunk_size: Lower bound of the window searched for a forced split point.
        overlap_size: Characters of the previous chunk prepended to each later chunk.
        split_long_chunks: Force-split segments longer than max_chunk_size.
    """
    max_chunk_size: int = config.CHUNK_SIZE
    min_chunk_size: int = config.MIN_CHUNK_SIZE
    overlap_size: int = config.CHUNK_OVERLAP
    split_long_chunks: bool = config.SPLIT_LONG_CHUNKS


DEFAULT_CHUNK_CONFIG = ChunkConfig()


def split_into_chunks(text: str, chunk_config: Optional[ChunkConfig] = None, **overrides: Any) -> List[str]:
    """Split text into bounded, optionally overlapping chunks.

    Args:
        text: Raw text to split.
        chunk_config: Chunking options. Defaults to the configured values.
        **overrides: Individual ChunkConfig fields to override for this call.

    Returns:
        Ordered list of chunk strings. Empty for blank input. On any internal
        failure the whole trimmed text is returned as a single chunk.
    """
    if not text or not text.strip():
        logger.warning("[CHUNKER] Empty text provided for chunking")
        return []

    try:
        cfg = replace(chunk_config or DEFAULT_CHUNK_CONFIG, **overrides)
        if cfg.max_chunk_size <= 0:
            raise ValueError(f"max_chunk_size must be positive, got {cfg.max_chunk_size}")

        text = _normalize_text(text)

        if len(text) <= cfg.max_chunk_size:
            logger.debug(f"[CHUNKER] Text is short enough ({len(text)} chars) to be a single chunk")
            return [text]

        segments = _segment_text(text, cfg)
        chunks = _merge_segments(segments, cfg)

        if cfg.overlap_size > 0 and len(chunks) > 1:
            chunks = _add_overlap(chunks, cfg.overlap_size)

        logger.debug(f"[CHUNKER] Split text ({len(text)} chars) into {len(chunks)} chunks")
        return chunks
    except Exception as e:
        logger.error(f"[CHUNKER] Failed to split text into chunks: {e}")
        return [text.strip()]


def create_chunks_with_metadata(
    text: str,
    metadata: Optional[Dict[str, Any]] = None,
    chunk_config: Optional[ChunkConfig] = None,
    document_id: Optional[str] = None,
) -> List[Chunk]:
    """Split text and attach per-chunk metadata.

    Every chunk inherits ``metadata`` and gains chunk_index, total_chunks,
    char_count and created_at.
    """
    pieces = split_into_chunks(text, chunk_config)
    created_at = utc_now_iso()
    base = dict(metadata or {})

    chunks = []
    for index, piece in enumerate(pieces):
        chunk_metadata = {
            **base,
            "chunk_index": index,
            "total_chunks": len(pieces),
            "char_count": len(piece),
            "created_at": created_at,
        }
        chunks.append(Chunk(
            content=piece,
            chunk_index=index,
            total_chunks=len(pieces),
            document_id=document_id,
            metadata=chunk_metadata,
        ))
    return chunks


def _normalize_text(text: str) -> str:
    normalized = text.replace("\r\n", "\n").replace("\r", "\n")
    normalized = re.sub(r"\n{3,}", "\n\n", normalized)
    return normalized.strip()


def _segment_text(text: str, cfg: ChunkConfig) -> List[str]:
    """Split into paragraphs, and very long paragraphs into sentences."""
    segments: List[str] = []
    for paragraph in _PARAGRAPH_BREAK.split(text):
        if len(paragraph) > cfg.max_chunk_size * LONG_PARAGRAPH_FACTOR:
            segments.extend(_SENTENCE_BREAK.split(paragraph))
        else:
            segments.append(paragraph)
    return [s.strip() for s in segments if s.strip()]


def _merge_segments(segments: List[str], cfg: ChunkConfig) -> List[str]:
    """Greedily merge consecutive segments into chunks of at most max_chunk_size."""
    chunks: List[str] = []
    current = ""

    for segment in segments:
        if len(segment) > cfg.max_chunk_size:
            if cfg.split_long_chunks:
                if current:
                    chunks.append(current)
                    current = ""
                chunks.extend(_force_split(segment, cfg))
                continue
            logger.warning(
                f"[CHUNKER] Segment exceeds max chunk size "
                f"({len(segment)} > {cfg.max_chunk_size}) but splitting is disabled"
            )

        if current and len(current) + len(segment) + 1 > cfg.max_chunk_size:
            chunks.append(current)
            current = segment
        else:
            current = f"{current}\n{segment}" if current else segment

    if current:
        chunks.append(current)
    return chunks


def _force_split(text: str, cfg: ChunkConfig) -> List[str]:
    """Cut an oversized segment at the last sentence end or word boundary
    inside [min_chunk_size, max_chunk_size], or at exactly max_chunk_size."""
    max_size = cfg.max_chunk_size
    min_size = max(0, min(cfg.min_chunk_size, max_size))
    pieces: List[str] = []
    remaining = text

    while remaining:
        if len(remaining) <= max_size:
            pieces.append(remaining)
            break

        split_index = max_size
        # endpos reaches one past the window so the lookahead can see the following space
        sentence_ends = [
            m for m in _SENTENCE_END.finditer(remaining, min_size, max_size + 1) if m.end() <= max_size
        ]
        if sentence_ends:
            split_index = sentence_ends[-1].end()
        else:
            spaces = list(_WHITESPACE.finditer(remaining, min_size, max_size))
            if spaces and spaces[-1].start() > min_size:
                split_index = spaces[-1].start()

        piece = remaining[:split_index].strip()
        if piece:
            pieces.append(piece)
        remaining = remaining[split_index:].strip()

    return pieces


def _add_overlap(chunks: List[str], overlap_size: int) -> List[str]:
    """Prefix each chunk after the first with the last overlap_size characters of its predecessor.

    The raw tail is used, so the overlap may start mid-word.
    """
    overlapped = [chunks[0]]
    for chunk in chunks[1:]:
        previous = overlapped[-1]
        tail = previous[-overlap_size:] if len(previous) > overlap_size else previous
        overlapped.append(f"{tail}\n{chunk}")
    return overlapped


if __name__ == "__main__":
    # Standalone check: chunk a file and print a summary
    import sys

    logging.basicConfig(level=logging.DEBUG)
    if len(sys.argv) < 2:
        print("Usage: python -m chatrag.rag.chunker <file>")
        sys.exit(1)

    with open(sys.argv[1], "r", encoding="utf-8") as f:
        result = split_into_chunks(f.read())

    print(f"\nTotal chunks: {len(result)}")
    for i, c in enumerate(result):
        print(f"  [{i}] {len(c):,} chars: {c[:60]!r}")
