"""Tests for Slack message chunking and mrkdwn conversion."""

import pytest

from threadmind.slack.blocks import (
    SECTION_BLOCK_LIMIT,
    TRUNCATION_NOTICE,
    chunk_message,
    to_section_blocks,
    to_slack_mrkdwn,
    truncate_message,
)


def _texts(blocks):
    return [block.text for block in blocks]


def test_short_message_is_one_block() -> None:
    blocks = chunk_message("Hello there")
    assert _texts(blocks) == ["Hello there"]
    assert blocks[0].limit == SECTION_BLOCK_LIMIT


def test_empty_message_yields_single_space() -> None:
    assert _texts(chunk_message("")) == [" "]


def test_exact_block_length_is_not_split() -> None:
    text = "a" * SECTION_BLOCK_LIMIT
    assert _texts(chunk_message(text)) == [text]


def test_blocks_cover_text_exactly_and_respect_limit() -> None:
    text = " ".join(f"word{i}" for i in range(2000))
    blocks = chunk_message(text, max_block=500)
    assert "".join(_texts(blocks)) == text
    assert all(len(block.text) <= 500 for block in blocks)
    assert len(blocks) > 1


def test_prefers_whitespace_cut_within_window() -> None:
    text = "a" * 95 + " " + "b" * 50
    blocks = chunk_message(text, max_block=100, window=10)
    assert _texts(blocks) == ["a" * 95 + " ", "b" * 50]


def test_hard_cut_without_whitespace() -> None:
    text = "x" * 250
    assert _texts(chunk_message(text, max_block=100)) == ["x" * 100, "x" * 100, "x" * 50]


def test_chunking_is_idempotent() -> None:
    text = "lorem ipsum dolor " * 400
    first = chunk_message(text, max_block=300)
    again = [b for block in first for b in chunk_message(block.text, max_block=300)]
    assert _texts(again) == _texts(first)


def test_over_limit_message_is_truncated_with_notice() -> None:
    text = "y" * 500
    truncated = truncate_message(text, max_total=200)
    assert truncated == "y" * 100 + TRUNCATION_NOTICE

    blocks = chunk_message(text, max_total=200, max_block=3000)
    assert "".join(_texts(blocks)) == truncated


def test_invalid_block_size() -> None:
    with pytest.raises(ValueError):
        chunk_message("abc", max_block=0)


def test_section_blocks_shape() -> None:
    blocks = to_section_blocks(chunk_message("hi"))
    assert blocks == [{"type": "section", "text": {"type": "mrkdwn", "text": "hi"}, "expand": True}]


def test_markdown_links_and_bold_to_mrkdwn() -> None:
    text = "See **this** [doc](https://example.com/a) and [b](https://b.io)"
    assert to_slack_mrkdwn(text) == "See *this* <https://example.com/a|doc> and <https://b.io|b>"
