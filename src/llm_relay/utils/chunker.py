"""Split long text into bounded chunks and merge them back.

Offsets and sizes count characters (code points), so a multi-byte character is
never cut in half. ``merge(split(text, k)) == text`` holds for any ``k > 0``
and every segmentation method.
"""

import re
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterable, List


class SegmentationMethod(str, Enum):
    """How a step's oversized input is cut into chunks."""
    SIMPLE = "simple"
    SEMANTIC = "semantic"
    RECURSIVE = "recursive"


@dataclass(frozen=True)
class ChunkInfo:
    """A contiguous slice of a longer text."""

    content: str
    start: int
    end: int
    order: int
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def with_content(self, content: str) -> "ChunkInfo":
        """Return a copy carrying different content but the same position."""
        return replace(self, content=content)


class Chunker:
    """Stateless character-based splitter."""

    def split(self, text: str, max_size: int) -> List[ChunkInfo]:
        """Split ``text`` into chunks of at most ``max_size`` characters.

        Args:
            text: Text to split.
            max_size: Maximum chunk length in characters. Must be positive.

        Returns:
            Chunks in emission order with ``order`` 0..n-1. Text that already
            fits comes back as a single chunk.

        Raises:
            ValueError: If ``max_size`` is not positive.
        """
        if max_size <= 0:
            raise ValueError(f"max_size must be positive, got {max_size}")

        total = len(text)
        if total <= max_size:
            return [ChunkInfo(content=text, start=0, end=total, order=0)]

        chunks = []
        for order, start in enumerate(range(0, total, max_size)):
            end = min(start + max_size, total)
            chunks.append(ChunkInfo(content=text[start:end], start=start, end=end, order=order))
        return chunks

    def merge(self, chunks: Iterable[ChunkInfo]) -> str:
        """Concatenate chunk contents ordered by ``order`` (stable)."""
        ordered = sorted(chunks, key=lambda chunk: chunk.order)
        if not ordered:
            return ""
        return "".join(chunk.content for chunk in ordered)


_SECTION_BREAK = re.compile(r"\n(?=#{1,6} )")
_PARAGRAPH_BREAK = re.compile(r"\n[ \t]*\n\s*")
_SENTENCE_END = re.compile(r"[.!?…。！？]+[\"'»”)\]]*\s+")
_WHITESPACE = re.compile(r"\s+")


class SemanticChunker(Chunker):
    """Cuts at the last paragraph break that fits, then a sentence end, then whitespace.

    A window with no boundary at all is cut at ``max_size`` like ``Chunker``.
    Chunks stay contiguous, so merging gives back the input unchanged.
    """

    boundaries = (_PARAGRAPH_BREAK, _SENTENCE_END, _WHITESPACE)

    def split(self, text: str, max_size: int) -> List[ChunkInfo]:
        if max_size <= 0:
            raise ValueError(f"max_size must be positive, got {max_size}")

        total = len(text)
        chunks = []
        start = 0
        while total - start > max_size:
            end = start + self._cut(text[start:start + max_size])
            chunks.append(ChunkInfo(content=text[start:end], start=start, end=end, order=len(chunks)))
            start = end
        chunks.append(ChunkInfo(content=text[start:], start=start, end=total, order=len(chunks)))
        return chunks

    def _cut(self, window: str) -> int:
        for pattern in self.boundaries:
            cut = 0
            for match in pattern.finditer(window):
                cut = match.end()
            if cut > 0:
                return cut
        return len(window)


class RecursiveChunker(SemanticChunker):
    """Like ``SemanticChunker`` but prefers cutting before a markdown heading."""

    boundaries = (_SECTION_BREAK,) + SemanticChunker.boundaries


def get_chunker(method: SegmentationMethod | str) -> Chunker:
    """Return the splitter for ``method``.

    Raises:
        ValueError: Unknown method name.
    """
    method = SegmentationMethod(method)
    if method == SegmentationMethod.SEMANTIC:
        return SemanticChunker()
    if method == SegmentationMethod.RECURSIVE:
        return RecursiveChunker()
    return Chunker()
