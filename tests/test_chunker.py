import pytest

from llm_relay.utils.chunker import (
    ChunkInfo,
    Chunker,
    RecursiveChunker,
    SegmentationMethod,
    SemanticChunker,
    get_chunker,
)


@pytest.fixture
def chunker():
    return Chunker()


def test_short_text_is_single_chunk(chunker):
    chunks = chunker.split("hello", 10)
    assert len(chunks) == 1
    assert chunks[0].content == "hello"
    assert (chunks[0].start, chunks[0].end, chunks[0].order) == (0, 5, 0)


def test_text_exactly_max_size_is_single_chunk(chunker):
    assert len(chunker.split("abcd", 4)) == 1


def test_split_produces_contiguous_bounded_chunks(chunker):
    chunks = chunker.split("abcdefghij", 3)
    assert [c.content for c in chunks] == ["abc", "def", "ghi", "j"]
    assert [c.order for c in chunks] == [0, 1, 2, 3]
    assert [(c.start, c.end) for c in chunks] == [(0, 3), (3, 6), (6, 9), (9, 10)]
    assert len({c.id for c in chunks}) == 4


def test_split_counts_characters_not_bytes(chunker):
    text = "héllo wörld 你好世界 🎉🎉"
    chunks = chunker.split(text, 2)
    assert all(len(c.content) <= 2 for c in chunks)
    # Every chunk is valid text on its own
    for c in chunks:
        c.content.encode("utf-8")
    assert chunks[-1].end == len(text)


@pytest.mark.parametrize("max_size", [0, -1])
def test_split_rejects_non_positive_size(chunker, max_size):
    with pytest.raises(ValueError):
        chunker.split("text", max_size)


def test_empty_text_is_single_empty_chunk(chunker):
    chunks = chunker.split("", 5)
    assert len(chunks) == 1
    assert chunks[0].content == ""


@pytest.mark.parametrize("text", ["", "a", "hello world", "日本語のテキスト", "mixed ascii и кириллица 🎉" * 7])
@pytest.mark.parametrize("size", [1, 2, 7, 1000])
def test_merge_undoes_split(chunker, text, size):
    assert chunker.merge(chunker.split(text, size)) == text


def test_merge_empty_returns_empty_string(chunker):
    assert chunker.merge([]) == ""


def test_merge_orders_by_order_field(chunker):
    chunks = chunker.split("abcdef", 2)
    assert chunker.merge(reversed(chunks)) == "abcdef"


def test_merge_is_stable_for_equal_orders(chunker):
    chunks = [
        ChunkInfo(content="b", start=0, end=1, order=1),
        ChunkInfo(content="x", start=0, end=1, order=0),
        ChunkInfo(content="y", start=0, end=1, order=0),
    ]
    assert chunker.merge(chunks) == "xyb"


def test_merge_does_not_reorder_input(chunker):
    chunks = list(reversed(chunker.split("abcdef", 2)))
    before = list(chunks)
    chunker.merge(chunks)
    assert chunks == before


def test_with_content_keeps_position():
    chunk = ChunkInfo(content="abc", start=3, end=6, order=1)
    replaced = chunk.with_content("XYZ!")
    assert replaced.content == "XYZ!"
    assert (replaced.start, replaced.end, replaced.order, replaced.id) == (3, 6, 1, chunk.id)


class TestBoundarySegmentation:

    def test_cuts_after_paragraph_breaks(self):
        chunks = SemanticChunker().split("One two.\n\nThree four five.\n\nSix.", 20)
        assert [c.content for c in chunks] == ["One two.\n\n", "Three four five.\n\n", "Six."]
        assert [(c.start, c.end) for c in chunks] == [(0, 10), (10, 28), (28, 32)]

    def test_falls_back_to_sentence_end(self):
        chunks = SemanticChunker().split("Alpha beta. Gamma delta epsilon.", 20)
        assert [c.content for c in chunks] == ["Alpha beta. ", "Gamma delta epsilon."]

    def test_falls_back_to_whitespace(self):
        chunks = SemanticChunker().split("aaaa bbbb cccc", 7)
        assert [c.content for c in chunks] == ["aaaa ", "bbbb ", "cccc"]

    def test_unbroken_text_is_cut_at_max_size(self):
        chunks = SemanticChunker().split("abcdefghij", 3)
        assert [c.content for c in chunks] == ["abc", "def", "ghi", "j"]

    def test_recursive_prefers_headings(self):
        text = "# Intro\nOne. Two\n# Next\nThree four five"
        assert [c.content for c in RecursiveChunker().split(text, 30)] == ["# Intro\nOne. Two\n", "# Next\nThree four five"]
        assert SemanticChunker().split(text, 30)[0].content == "# Intro\nOne. "

    @pytest.mark.parametrize("method", list(SegmentationMethod))
    def test_chunks_are_bounded_and_merge_back(self, method):
        text = "# Title\nFirst sentence. Second one!\n\nNext paragraph, longer than most… 你好。世界！\n\n" * 4
        chunker = get_chunker(method)
        for size in (1, 9, 40):
            chunks = chunker.split(text, size)
            assert all(0 < len(c.content) <= size for c in chunks)
            assert [c.order for c in chunks] == list(range(len(chunks)))
            assert chunker.merge(chunks) == text

    def test_rejects_non_positive_size(self):
        with pytest.raises(ValueError):
            SemanticChunker().split("text", 0)

    def test_get_chunker(self):
        assert type(get_chunker("simple")) is Chunker
        assert type(get_chunker(SegmentationMethod.SEMANTIC)) is SemanticChunker
        assert type(get_chunker("recursive")) is RecursiveChunker
        with pytest.raises(ValueError):
            get_chunker("by-vibes")
