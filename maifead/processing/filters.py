"""
Keyword Filter Engine
=====================

Read-time keyword filtering of items against their source's whitelist and
blacklist. Matching is case-insensitive substring search over the item's
title, plain-text content, excerpt, author, and tags.

- whitelist: if non-empty, at least one keyword must match
- blacklist: if any keyword matches, the item is rejected
- the blacklist wins over the whitelist
- a disabled source contributes no items
"""

from typing import Dict, Iterable, List

from ..database.models import Item, Source


def searchable_text(item: Item) -> str:
    """Lowercased concatenation of the fields keywords are matched against."""
    parts = [
        item.title,
        item.content_text,
        item.excerpt,
        item.author,
        " ".join(item.tags),
    ]
    return " ".join(part for part in parts if part).lower()


def item_passes(item: Item, source: Source) -> bool:
    """Check one item against its source's keyword rules."""
    if not source.is_enabled:
        return False

    whitelist = source.whitelist_keywords
    blacklist = source.blacklist_keywords
    if not whitelist and not blacklist:
        return True

    text = searchable_text(item)
    if any(keyword in text for keyword in blacklist):
        return False
    if whitelist and not any(keyword in text for keyword in whitelist):
        return False
    return True


def apply_filters(items: Iterable[Item], source: Source) -> List[Item]:
    """Items of one source that pass its keyword rules, order preserved."""
    if not source.is_enabled:
        return []
    return [item for item in items if item_passes(item, source)]


def filter_feed(items: Iterable[Item], sources: Iterable[Source]) -> List[Item]:
    """Filter a mixed-source item list, each item by its own source.

    Items whose source is not among ``sources`` pass through unchanged.
    """
    by_id: Dict[int, Source] = {source.id: source for source in sources}
    return [
        item for item in items
        if item.source_id not in by_id or item_passes(item, by_id[item.source_id])
    ]
