"""Text chunking and change detection for the retrieval index.

Greedy sliding windows over raw characters:
- each window prefers to end on the last sentence terminator, then newline,
  then space, as long as that break lies past half the window
- otherwise the window is hard-cut at ``chunk_size``
- successive windows overlap by ``overlap`` characters and the start offset
  strictly increases, so splitting always terminates
"""

from __future__ import annotations

import zlib
from dataclasses import dataclass

import structlog

log = structlog.get_logger()

SENTENCE_TERMINATORS = (".", "!", "?")

# Break preference, most to least natural
_BREAK_CLASSES: tuple[tuple[str, ...], ...] = (SENTENCE_TERMINATORS, ("\n",), (" ",))


@dataclass(frozen=True)
class Chunk:
    """A window of source text ready for embedding.

    Attributes:
        content: The stripped chunk text
        chunk_index: Position among the document's chunks
        start_char: Start offset of the window in the source text
        end_char: End offset (exclusive) of the window in the source text
    """

    content: str
    chunk_index: int
    start_char: int
    end_char: int


def _find_break(window: str, min_break: float) -> int | None:
    """Offset just past the preferred break point inside ``window``, if any."""
    for candidates in _BREAK_CLASSES:
        position = max(window.rfind(c) for c in candidates)
        if position > min_break:
            return position + 1
    return None


class Chunker:
    """Deterministic character-window splitter."""

    def __init__(self, chunk_size: int = 1000, overlap: int = 200) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if overlap < 0:
            raise ValueError("overlap must not be negative")
        self.chunk_size = chunk_size
        self.overlap = overlap

    def split(self, text: str) -> list[Chunk]:
        """Split ``text`` into overlapping windows, dropping blank ones."""
        chunks: list[Chunk] = []
        length = len(text)
        start = 0

        while start < length:
            end = min(start + self.chunk_size, length)
            if end < length:
                cut = _find_break(text[start:end], self.chunk_size * 0.5)
                if cut is not None:
                    end = start + cut

            content = text[start:end].strip()
            if content:
                chunks.append(
                    Chunk(
                        content=content,
                        chunk_index=len(chunks),
                        start_char=start,
                        end_char=end,
                    )
                )

            if end >= length:
                break

            window_length = end - start
            step = window_length - self.overlap
            if step <= 0:
                step = window_length
            start += step

        log.debug(
            "Split text",
            length=length,
            chunk_count=len(chunks),
            chunk_size=self.chunk_size,
            overlap=self.overlap,
        )
        return chunks


def split_text(text: str, chunk_size: int = 1000, overlap: int = 200) -> list[str]:
    """Convenience function returning only the chunk texts."""
    return [c.content for c in Chunker(chunk_size, overlap).split(text)]


def content_hash(text: str) -> str:
    """Cheap non-cryptographic fingerprint used only to detect content changes.

    Never use this for integrity checks; a collision merely delays re-indexing.
    """
    data = text.encode("utf-8")
    return f"{zlib.crc32(data):08x}{zlib.adler32(data):08x}"
