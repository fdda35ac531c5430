from langchain_text_splitters import TextSplitter

from config.settings import IndexingSettings
from infra.utils.text_splitters import ParagraphTextSplitter, get_text_splitter, split


def test_short_paragraphs_are_kept_whole_and_noise_is_dropped():
    text = (
        "  The first paragraph is long enough to keep.  \n\n"
        "Too short.\n\n\n\n"
        "Another paragraph that survives the filter."
    )

    chunks = ParagraphTextSplitter().split_text(text)

    assert chunks == [
        "The first paragraph is long enough to keep.",
        "Another paragraph that survives the filter.",
    ]


def test_minimum_length_is_strictly_greater_than():
    splitter = ParagraphTextSplitter(min_chunk_length=20)

    assert splitter.split_text("a" * 20) == []
    assert splitter.split_text("b" * 21) == ["b" * 21]


def test_long_paragraph_breaks_after_sentence_end_past_half_length():
    first = "A" * 39 + "."
    paragraph = first + "B" * 60

    chunks = ParagraphTextSplitter(chunk_size=50, chunk_overlap=10).split_text(paragraph)

    assert chunks == [
        first,
        "A" * 9 + "." + "B" * 40,
        "B" * 30,
    ]


def test_sentence_end_at_exactly_half_length_is_ignored():
    paragraph = "z" * 30 + "。" + "w" * 100

    chunks = split(paragraph, max_length=60, overlap=10)

    assert chunks[0] == paragraph[:60]
    assert chunks == split(paragraph, max_length=60, overlap=10)


def test_long_paragraph_without_punctuation_is_hard_cut_with_overlap():
    chunks = ParagraphTextSplitter(chunk_size=50, chunk_overlap=10).split_text("x" * 120)

    assert [len(c) for c in chunks] == [50, 50, 40]


def test_chinese_sentence_endings():
    paragraph = "甲" * 30 + "。" + "乙" * 30

    chunks = ParagraphTextSplitter(chunk_size=40, chunk_overlap=5).split_text(paragraph)

    assert chunks == ["甲" * 30 + "。", "甲" * 4 + "。" + "乙" * 30]


def test_blank_input_yields_nothing():
    splitter = ParagraphTextSplitter()

    assert splitter.split_text("") == []
    assert splitter.split_text("\n\n   \n\n") == []


def test_factory_uses_indexing_settings_and_plugs_into_langchain():
    splitter = get_text_splitter(IndexingSettings(chunk_size=60, chunk_overlap=5, min_chunk_length=3))
    text = "Short but kept.\n\n" + "y" * 100

    docs = splitter.create_documents([text])

    assert isinstance(splitter, TextSplitter)
    assert [d.page_content for d in docs] == ["Short but kept.", "y" * 60, "y" * 45]


def test_chunks_cover_the_paragraph_without_gaps():
    paragraph = "".join(f"第{n}句在此結束。" for n in range(60))
    overlap = 10

    chunks = ParagraphTextSplitter(chunk_size=50, chunk_overlap=overlap, min_chunk_length=0).split_text(paragraph)

    spans = []
    search_from = 0
    for chunk in chunks:
        start = paragraph.index(chunk, search_from)
        spans.append((start, start + len(chunk)))
        search_from = start + 1

    assert len(chunks) > 1
    assert spans[0][0] == 0
    assert spans[-1][1] == len(paragraph)
    for (_, previous_end), (next_start, _) in zip(spans, spans[1:]):
        assert next_start <= previous_end
        assert previous_end - next_start <= overlap
