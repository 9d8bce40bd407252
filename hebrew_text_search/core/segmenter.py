"""Splitting text into searchable segments."""

import re
from dataclasses import dataclass
from typing import List, Optional


SENTENCE_BREAK = re.compile(r"(?<=[.?!:׃])\s+")


@dataclass(frozen=True)
class Segment:
    """A searchable unit of text."""

    index: int
    text: str
    line_number: int


class TextSegmenter:
    """Three-tier segmentation: lines, then sentences, then word-boundary chunks."""

    def __init__(
        self,
        max_line_length: int = 300,
        max_segment_length: int = 200,
        chunk_target_length: int = 150,
    ) -> None:
        """
        Initialize the segmenter.

        Args:
            max_line_length: Lines longer than this are split on sentence punctuation
            max_segment_length: Pieces longer than this are chunked at word boundaries
            chunk_target_length: Target chunk length when chunking
        """
        self.max_line_length = max_line_length
        self.max_segment_length = max_segment_length
        self.chunk_target_length = min(chunk_target_length, max_segment_length)

    def segment(self, text: Optional[str]) -> List[Segment]:
        """
        Split text into segments, skipping empty ones.

        Args:
            text: Input text

        Returns:
            Segments in document order
        """
        if not text:
            return []

        segments: List[Segment] = []
        for line_number, line in enumerate(text.splitlines(), start=1):
            line = line.strip()
            if not line:
                continue

            pieces = [line]
            if len(line) > self.max_line_length:
                pieces = [piece.strip() for piece in SENTENCE_BREAK.split(line) if piece.strip()]

            for piece in pieces:
                if len(piece) > self.max_segment_length:
                    chunks = self._chunk(piece)
                else:
                    chunks = [piece]
                for chunk in chunks:
                    segments.append(Segment(len(segments), chunk, line_number))

        return segments

    def _chunk(self, text: str) -> List[str]:
        chunks: List[str] = []
        current: List[str] = []
        current_length = 0

        for word in text.split():
            # A single word longer than the hard limit is cut.
            while len(word) > self.max_segment_length:
                if current:
                    chunks.append(" ".join(current))
                    current, current_length = [], 0
                chunks.append(word[:self.max_segment_length])
                word = word[self.max_segment_length:]
            if not word:
                continue

            added = len(word) + (1 if current else 0)
            if current and current_length + added > self.chunk_target_length:
                chunks.append(" ".join(current))
                current, current_length = [], 0
                added = len(word)
            current.append(word)
            current_length += added

        if current:
            chunks.append(" ".join(current))
        return chunks

    @staticmethod
    def context(segments: List[Segment], index: int, lines: int = 1) -> tuple:
        """
        Get the neighboring segment texts around a segment.

        Returns:
            Tuple of (context_before, context_after), None where there is no neighbor
        """
        if lines <= 0:
            return None, None
        before = [segment.text for segment in segments[max(0, index - lines):index]]
        after = [segment.text for segment in segments[index + 1:index + 1 + lines]]
        return ("\n".join(before) or None, "\n".join(after) or None)
