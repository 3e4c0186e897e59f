"""
Unit Tests for Keyword Filtering
================================
"""

import pytest

from maifead.database.models import Item
from maifead.processing.filters import apply_filters, filter_feed, item_passes, searchable_text


def _item(remote_id, title, source_id=1, **overrides):
    data = {
        "source_id": source_id,
        "remote_id": remote_id,
        "title": title,
        "canonical_link": f"https://example.com/{remote_id}",
    }
    data.update(overrides)
    return Item(**data)


@pytest.fixture
def items():
    return [
        _item("1", "Python 3.13 released"),
        _item("2", "Rust in the kernel"),
        _item("3", "Sponsored: Python hosting"),
        _item("4", "Weekly roundup", content_text="Includes a PYTHON tip"),
        _item("5", "Cooking", tags=["python"]),
    ]


class TestSearchableText:

    def test_fields_lowercased(self):
        item = _item("x", "Title", content_text="Body", excerpt="Excerpt", author="Jane", tags=["Tag"])

        assert searchable_text(item) == "title body excerpt jane tag"


class TestFilters:
    """Test whitelist, blacklist, and precedence."""

    def test_no_keywords_pass_everything(self, items, make_source):
        source = make_source(id=1)

        assert apply_filters(items, source) == items

    def test_whitelist_any_of(self, items, make_source):
        source = make_source(id=1, whitelist_keywords=["python", "kernel"])

        assert [item.remote_id for item in apply_filters(items, source)] == ["1", "2", "3", "4", "5"]

    def test_whitelist_matches_content_and_tags(self, items, make_source):
        source = make_source(id=1, whitelist_keywords=["Python"])

        assert [item.remote_id for item in apply_filters(items, source)] == ["1", "3", "4", "5"]

    def test_blacklist(self, items, make_source):
        source = make_source(id=1, blacklist_keywords=["sponsored", "rust"])

        assert [item.remote_id for item in apply_filters(items, source)] == ["1", "4", "5"]

    def test_blacklist_wins(self, items, make_source):
        """Test an item matching both lists is rejected."""
        source = make_source(id=1, whitelist_keywords=["python"], blacklist_keywords=["sponsored"])

        assert [item.remote_id for item in apply_filters(items, source)] == ["1", "4", "5"]
        assert not item_passes(items[2], source)

    def test_disabled_source_yields_nothing(self, items, make_source):
        source = make_source(id=1, is_enabled=False)

        assert apply_filters(items, source) == []
        assert not item_passes(items[0], source)


class TestFilterFeed:

    def test_each_item_uses_its_source(self, make_source):
        python_only = make_source(id=1, whitelist_keywords=["python"])
        no_rust = make_source(id=2, feed_url="https://two.example.com/feed", blacklist_keywords=["rust"])
        items = [
            _item("a", "Python news", source_id=1),
            _item("b", "Go news", source_id=1),
            _item("c", "Rust news", source_id=2),
            _item("d", "Go news", source_id=2),
            _item("e", "Rust news", source_id=3),
        ]

        kept = filter_feed(items, [python_only, no_rust])

        assert [item.remote_id for item in kept] == ["a", "d", "e"]
