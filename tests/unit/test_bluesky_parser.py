"""
Unit Tests for Bluesky Parsing
==============================
"""

import json

import pytest
from datetime import datetime, timezone

from maifead.database.models import Platform
from maifead.ingestion.fetcher import FetchedDocument
from maifead.ingestion.parsers.bluesky import post_web_url
from maifead.utils.exceptions import ParseError


FEED_URL = (
    "https://public.api.bsky.app/xrpc/app.bsky.feed.getAuthorFeed"
    "?actor=alice.bsky.social&limit=50"
)

# Facet ranges are UTF-8 byte offsets; the emoji takes four bytes.
FACET_TEXT = "Hello \U0001F44B check example.com #python"

ALICE = {"did": "did:plc:alice", "handle": "alice.bsky.social", "displayName": "Alice"}
BOB = {"did": "did:plc:bob", "handle": "bob.bsky.social"}

IMAGES_EMBED = {
    "$type": "app.bsky.embed.images#view",
    "images": [
        {"thumb": "https://cdn.bsky.app/img/thumb/1.jpg", "fullsize": "https://cdn.bsky.app/img/full/1.jpg", "alt": "A cat"},
        {"thumb": "https://cdn.bsky.app/img/thumb/2.jpg", "fullsize": "https://cdn.bsky.app/img/full/2.jpg", "alt": ""},
    ],
}

QUOTED_RECORD = {
    "$type": "app.bsky.embed.record#viewRecord",
    "uri": "at://did:plc:carol/app.bsky.feed.post/3kquote",
    "author": {"did": "did:plc:carol", "handle": "carol.bsky.social"},
    "value": {"text": "Quoted words"},
}


def _feed_view(author, rkey, text, facets=None, embed=None, reason=None, created_at="2024-09-05T12:00:00.000Z"):
    view = {
        "post": {
            "uri": f"at://{author['did']}/app.bsky.feed.post/{rkey}",
            "cid": f"cid-{rkey}",
            "author": author,
            "record": {
                "$type": "app.bsky.feed.post",
                "text": text,
                "createdAt": created_at,
                "facets": facets or [],
            },
            "indexedAt": "2024-09-05T12:00:01.000Z",
        }
    }
    if embed is not None:
        view["post"]["embed"] = embed
    if reason is not None:
        view["reason"] = reason
    return view


FACET_POST = _feed_view(
    ALICE,
    "3kfacet",
    FACET_TEXT,
    facets=[
        {
            "index": {"byteStart": 17, "byteEnd": 28},
            "features": [{"$type": "app.bsky.richtext.facet#link", "uri": "https://example.com"}],
        },
        {
            "index": {"byteStart": 29, "byteEnd": 36},
            "features": [{"$type": "app.bsky.richtext.facet#tag", "tag": "python"}],
        },
    ],
    embed=IMAGES_EMBED,
)

REPOST = _feed_view(
    BOB,
    "3krepost",
    "",
    embed={
        "$type": "app.bsky.embed.external#view",
        "external": {
            "uri": "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
            "title": "Never Gonna Give You Up",
            "description": "Official video",
            "thumb": "https://cdn.bsky.app/img/ext/thumb.jpg",
        },
    },
    reason={"$type": "app.bsky.feed.defs#reasonRepost", "by": ALICE},
)


def _document(payload, url=FEED_URL):
    return FetchedDocument(
        url=url,
        status=200,
        content=json.dumps(payload).encode("utf-8"),
        content_type="application/json",
    )


@pytest.fixture
def bluesky_parser(parsers):
    return parsers[Platform.BLUESKY]


class TestBlueskyFeed:
    """Test feed-level parsing."""

    def test_post_entry(self, bluesky_parser, make_source):
        parsed = bluesky_parser.parse(_document({"feed": [FACET_POST]}), make_source("bluesky"))
        entry = parsed.entries[0]

        assert parsed.site_url == "https://bsky.app/profile/alice.bsky.social"
        assert entry.remote_id == "at://did:plc:alice/app.bsky.feed.post/3kfacet"
        assert entry.link == "https://bsky.app/profile/alice.bsky.social/post/3kfacet"
        assert entry.title == FACET_TEXT
        assert entry.author == "Alice"
        assert entry.tags == ["python"]
        assert entry.published_at == datetime(2024, 9, 5, 12, 0, tzinfo=timezone.utc)

    def test_repost(self, bluesky_parser):
        """Test reposts are tagged and empty text gets a fallback title."""
        entry = bluesky_parser.parse(_document({"feed": [REPOST]})).entries[0]

        assert entry.tags == ["repost"]
        assert entry.title == "Post by @bob.bsky.social"
        assert entry.author == "@bob.bsky.social"

    def test_malformed_views_dropped(self, bluesky_parser):
        parsed = bluesky_parser.parse(_document({"feed": [{"post": {}}, "garbage", FACET_POST]}))

        assert len(parsed.entries) == 1
        assert parsed.dropped_entries == 2

    @pytest.mark.parametrize("bad_view", [
        {"post": "oops"},
        {"post": ["not", "an", "object"]},
        {"post": {"uri": 42, "author": ALICE}},
        {"post": {"uri": "at://did:plc:alice/app.bsky.feed.post/3kbad", "author": "alice"}},
    ])
    def test_wrongly_typed_views_dropped(self, bluesky_parser, bad_view):
        """Test one badly shaped view is dropped without failing the feed."""
        parsed = bluesky_parser.parse(_document({"feed": [FACET_POST, bad_view]}))

        assert [entry.remote_id for entry in parsed.entries] == [FACET_POST["post"]["uri"]]
        assert parsed.dropped_entries == 1

    def test_wrongly_typed_fields_tolerated(self, bluesky_parser):
        view = _feed_view(ALICE, "3kodd", "placeholder")
        view["post"]["record"]["text"] = 5
        view["post"]["record"]["facets"] = ["junk", {"index": "x", "features": "y"}]
        view["post"]["author"] = dict(ALICE, displayName=99)
        view["post"]["embed"] = {"$type": "app.bsky.embed.images#view", "images": ["junk", {"fullsize": 7}]}
        view["reason"] = "repost"

        entry = bluesky_parser.parse(_document({"feed": [view]})).entries[0]

        assert entry.title == "Post by @alice.bsky.social"
        assert entry.author == "99"
        assert entry.image_url is None
        assert entry.tags == []

    def test_empty_feed(self, bluesky_parser):
        parsed = bluesky_parser.parse(_document({"feed": [], "cursor": "abc"}))

        assert parsed.entries == []

    @pytest.mark.parametrize("payload", [{"cursor": "x"}, {"feed": {}}, ["feed"]])
    def test_not_a_feed(self, bluesky_parser, payload):
        with pytest.raises(ParseError):
            bluesky_parser.parse(_document(payload))

    def test_long_first_line_truncated(self, bluesky_parser):
        text = " ".join(["word"] * 40) + "\nsecond line"

        entry = bluesky_parser.parse(_document({"feed": [_feed_view(ALICE, "3klong", text)]})).entries[0]

        assert len(entry.title) <= 103
        assert entry.title.endswith("...")
        assert "second line" not in entry.title

    def test_post_web_url(self):
        assert post_web_url("alice.bsky.social", "at://did:plc:alice/app.bsky.feed.post/3k") == (
            "https://bsky.app/profile/alice.bsky.social/post/3k"
        )


class TestRichText:
    """Test facet rendering."""

    def test_facets_become_links(self, bluesky_parser):
        entry = bluesky_parser.parse(_document({"feed": [FACET_POST]})).entries[0]

        assert 'href="https://example.com"' in entry.content_html
        assert ">example.com</a>" in entry.content_html
        assert 'href="https://bsky.app/hashtag/python"' in entry.content_html
        assert ">#python</a>" in entry.content_html

    def test_mention(self, bluesky_parser):
        html = bluesky_parser.render_text(
            "hi @bob.test",
            [{
                "index": {"byteStart": 3, "byteEnd": 12},
                "features": [{"$type": "app.bsky.richtext.facet#mention", "did": "did:plc:bob"}],
            }],
        )

        assert html == '<p>hi <a href="https://bsky.app/profile/did:plc:bob">@bob.test</a></p>'

    def test_invalid_ranges_ignored(self, bluesky_parser):
        html = bluesky_parser.render_text(
            "short",
            [{"index": {"byteStart": 2, "byteEnd": 99}, "features": [{"$type": "app.bsky.richtext.facet#tag", "tag": "x"}]}],
        )

        assert html == "<p>short</p>"

    def test_text_is_escaped(self, bluesky_parser):
        html = bluesky_parser.render_text(
            "<b>bold</b> x",
            [{"index": {"byteStart": 12, "byteEnd": 13}, "features": [{"$type": "app.bsky.richtext.facet#link", "uri": "https://x.test"}]}],
        )

        assert html.startswith("<p>&lt;b&gt;bold&lt;/b&gt; ")


class TestEmbeds:
    """Test rendering of post embeds."""

    def test_images(self, bluesky_parser):
        entry = bluesky_parser.parse(_document({"feed": [FACET_POST]})).entries[0]

        assert 'class="bsky-images"' in entry.content_html
        assert 'data-count="2"' in entry.content_html
        assert 'alt="A cat"' in entry.content_html
        assert entry.image_url == "https://cdn.bsky.app/img/full/1.jpg"

    def test_external_media_link_becomes_embed(self, bluesky_parser):
        entry = bluesky_parser.parse(_document({"feed": [REPOST]})).entries[0]

        assert 'class="bsky-external"' in entry.content_html
        assert 'data-embed-id="dQw4w9WgXcQ"' in entry.content_html
        assert entry.image_url == "https://cdn.bsky.app/img/ext/thumb.jpg"

    def test_quote(self, bluesky_parser):
        view = _feed_view(ALICE, "3kq", "Look at this", embed={"$type": "app.bsky.embed.record#view", "record": QUOTED_RECORD})

        entry = bluesky_parser.parse(_document({"feed": [view]})).entries[0]

        assert 'class="bsky-quote"' in entry.content_html
        assert 'cite="https://bsky.app/profile/carol.bsky.social/post/3kquote"' in entry.content_html
        assert "Quoted words" in entry.content_text

    def test_record_with_media(self, bluesky_parser):
        embed = {
            "$type": "app.bsky.embed.recordWithMedia#view",
            "media": IMAGES_EMBED,
            "record": {"record": QUOTED_RECORD},
        }
        view = _feed_view(ALICE, "3krm", "Both", embed=embed)

        entry = bluesky_parser.parse(_document({"feed": [view]})).entries[0]

        assert 'class="bsky-images"' in entry.content_html
        assert 'class="bsky-quote"' in entry.content_html
        assert entry.image_url == "https://cdn.bsky.app/img/full/1.jpg"

    def test_video(self, bluesky_parser):
        embed = {
            "$type": "app.bsky.embed.video#view",
            "playlist": "https://video.bsky.app/watch/abc/playlist.m3u8",
            "thumbnail": "https://video.bsky.app/watch/abc/thumbnail.jpg",
        }
        view = _feed_view(ALICE, "3kv", "Clip", embed=embed)

        entry = bluesky_parser.parse(_document({"feed": [view]})).entries[0]

        assert 'class="bsky-video"' in entry.content_html
        assert 'src="https://video.bsky.app/watch/abc/playlist.m3u8"' in entry.content_html
        assert entry.image_url == "https://video.bsky.app/watch/abc/thumbnail.jpg"
