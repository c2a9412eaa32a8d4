from __future__ import annotations

import pytest

from jobcrm.services.chunking import chunk_text, chunk_text_detailed, clean_text, has_sections, split_words


def test_short_paragraphs_share_a_chunk() -> None:
    assert chunk_text("First paragraph.\n\nSecond paragraph.") == ["First paragraph.\n\nSecond paragraph."]


def test_blocks_are_packed_up_to_the_limit() -> None:
    text = "a" * 30 + "\n\n" + "b" * 30
    assert chunk_text(text, 50) == ["a" * 30, "b" * 30]


def test_oversized_block_splits_on_sentences() -> None:
    chunks = chunk_text("One two three. Four five six. Seven eight nine.", 20)
    assert chunks == ["One two three.", "Four five six.", "Seven eight nine."]
    assert all(len(c) <= 20 for c in chunks)


def test_oversized_sentence_splits_on_words() -> None:
    assert chunk_text("alpha beta gamma delta", 12) == ["alpha beta", "gamma delta."]


def test_split_words_truncates_a_giant_word() -> None:
    assert split_words("abcdefghij", 4) == ["abcd"]


def test_context_prefix_is_prepended() -> None:
    result = chunk_text_detailed("Hello there.", context_prefix="[Acme] ")
    assert result.chunks == ["[Acme] Hello there."]
    assert result.total_chunks == 1


def test_clean_text() -> None:
    assert clean_text("a\x00b\r\nc   d\n\n\n\ne") == "a b\nc d\n\ne"
    assert clean_text("café ok", ascii_only=True) == "caf ok"
    assert clean_text("keep " + "x" * 120) == "keep"
    assert clean_text(None) == ""


def test_strategy_reflects_sections() -> None:
    assert has_sections("Requirements:\n- Python")
    assert chunk_text_detailed("## Role\nBuild demos").strategy == "section-aware"
    assert chunk_text_detailed("just text").strategy == "paragraph-aware"
    assert chunk_text_detailed("## Role", preserve_sections=False).strategy == "paragraph-aware"


def test_empty_text_has_no_chunks() -> None:
    result = chunk_text_detailed("   \n\n  ")
    assert result.chunks == []
    assert result.original_length == 7
    assert result.cleaned_length == 0


def test_limit_must_be_positive() -> None:
    with pytest.raises(ValueError):
        chunk_text("text", 0)
