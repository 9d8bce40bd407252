"""Unit tests for text segmentation."""

import pytest
from hebrew_text_search.core.segmenter import Segment, TextSegmenter


class TestTextSegmenter:
    """Test cases for the TextSegmenter class."""

    @pytest.fixture
    def segmenter(self):
        """Create a segmenter with the default limits."""
        return TextSegmenter()

    def test_empty_text(self, segmenter):
        assert segmenter.segment("") == []
        assert segmenter.segment(None) == []

    def test_lines_become_segments(self, segmenter):
        """Short lines are kept whole; blank lines are skipped."""
        segments = segmenter.segment("first line\n\n   \nsecond line\n")
        assert segments == [Segment(0, "first line", 1), Segment(1, "second line", 4)]

    def test_long_line_split_on_sentences(self):
        segmenter = TextSegmenter(max_line_length=30, max_segment_length=200)
        text = "The first sentence is here. The second one follows! And a third?"
        segments = segmenter.segment(text)
        assert [segment.text for segment in segments] == [
            "The first sentence is here.",
            "The second one follows!",
            "And a third?",
        ]
        assert all(segment.line_number == 1 for segment in segments)

    def test_sof_pasuq_splits_sentences(self):
        segmenter = TextSegmenter(max_line_length=10)
        segments = segmenter.segment("בראשית ברא אלהים׃ והארץ היתה תהו")
        assert [segment.text for segment in segments] == ["בראשית ברא אלהים׃", "והארץ היתה תהו"]

    def test_long_piece_chunked_at_word_boundaries(self):
        segmenter = TextSegmenter(max_line_length=1000, max_segment_length=20, chunk_target_length=12)
        text = "aaaa bbbb cccc dddd eeee ffff"
        segments = segmenter.segment(text)
        assert [segment.text for segment in segments] == ["aaaa bbbb", "cccc dddd", "eeee ffff"]
        assert all(len(segment.text) <= 20 for segment in segments)

    def test_overlong_word_is_cut(self):
        segmenter = TextSegmenter(max_line_length=1000, max_segment_length=10, chunk_target_length=10)
        segments = segmenter.segment("x" * 25 + " tail")
        assert [segment.text for segment in segments] == ["x" * 10, "x" * 10, "x" * 5 + " tail"]

    def test_chunk_target_capped_by_segment_length(self):
        segmenter = TextSegmenter(max_segment_length=50, chunk_target_length=150)
        assert segmenter.chunk_target_length == 50

    def test_context(self, segmenter):
        segments = segmenter.segment("one\ntwo\nthree\nfour")
        assert TextSegmenter.context(segments, 0) == (None, "two")
        assert TextSegmenter.context(segments, 2) == ("two", "four")
        assert TextSegmenter.context(segments, 2, lines=2) == ("one\ntwo", "four")
        assert TextSegmenter.context(segments, 1, lines=0) == (None, None)
