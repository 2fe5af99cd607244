"""Unit tests for slug, excerpt and keyword dedup helpers."""

from contenthub_daemon.text import (
    extract_excerpt,
    keyword_hash,
    normalize_keyword,
    slugify,
)


def test_slugify_strips_punctuation_and_joins_words() -> None:
    assert slugify("Best Hiking Boots for Beginners!") == "best-hiking-boots-for-beginners"
    assert slugify("  Rock & Roll -- Guide  ") == "rock-roll-guide"
    assert slugify("snake_case_title") == "snake-case-title"


def test_slugify_truncates_without_trailing_dash() -> None:
    slug = slugify("word " * 100, max_length=12)
    assert len(slug) <= 12
    assert not slug.endswith("-")


def test_slugify_of_symbols_only_is_empty() -> None:
    assert slugify("!!! ???") == ""


def test_extract_excerpt_drops_markdown() -> None:
    content = "## Why boots matter\n\nGood **boots** keep you [safe](https://x.io) on the `trail`."
    assert extract_excerpt(content) == "Why boots matter Good boots keep you safe on the trail."


def test_extract_excerpt_truncates_long_content() -> None:
    excerpt = extract_excerpt("a" * 500)
    assert excerpt == "a" * 160 + "..."


def test_keyword_hash_normalizes_case_and_spacing() -> None:
    assert normalize_keyword("  Hiking   Boots ") == "hiking boots"
    assert keyword_hash("Hiking Boots", "site-1") == keyword_hash("hiking  boots ", "site-1")


def test_keyword_hash_is_per_website() -> None:
    assert keyword_hash("hiking boots", "site-1") != keyword_hash("hiking boots", "site-2")
