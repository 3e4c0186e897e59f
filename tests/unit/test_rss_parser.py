"""
Unit Tests for RSS/Atom Parsing
===============================

Tests for RSS 2.0, Atom, and YouTube channel feed normalization.
"""

import pytest
from datetime import datetime, timezone

from maifead.database.models import Platform, ShortsFilter
from maifead.ingestion.fetcher import FetchedDocument
from maifead.utils.exceptions import ParseError


SAMPLE_RSS_FEED = '''<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:content="http://purl.org/rss/1.0/modules/content/" xmlns:dc="http://purl.org/dc/elements/1.1/">
    <channel>
        <title>Example Blog</title>
        <link>https://example.com/</link>
        <description>Posts about testing</description>
        <image>
            <url>https://example.com/logo.png</url>
            <title>Example Blog</title>
            <link>https://example.com/</link>
        </image>
        <item>
            <title>First post</title>
            <link>https://example.com/posts/first</link>
            <guid isPermaLink="false">post-1</guid>
            <dc:creator>Jane Doe</dc:creator>
            <category>Python</category>
            <category>Testing</category>
            <pubDate>Thu, 05 Sep 2024 12:00:00 GMT</pubDate>
            <description>Short summary</description>
            <content:encoded><![CDATA[<p>Full <b>body</b> with <img src="/img/cover.png"> inline.<script>alert(1)</script></p><p><a href="https://youtu.be/dQw4w9WgXcQ">video</a></p>]]></content:encoded>
        </item>
        <item>
            <link>https://example.com/posts/untitled</link>
            <description>No title here</description>
        </item>
        <item>
            <title>Summary only</title>
            <link>https://example.com/posts/summary</link>
            <description>Just a &lt;em&gt;summary&lt;/em&gt;</description>
        </item>
    </channel>
</rss>'''

SAMPLE_ATOM_FEED = '''<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
    <title>Atom Example</title>
    <link href="https://atom.example.com/"/>
    <id>urn:uuid:60a76c80-d399-11d9-b93C-0003939e0af6</id>
    <updated>2024-09-05T12:00:00Z</updated>
    <entry>
        <title>Atom entry</title>
        <link href="https://atom.example.com/2024/entry"/>
        <id>urn:uuid:1225c695-cfb8-4ebb-aaaa-80da344efa6a</id>
        <updated>2024-09-04T08:30:00Z</updated>
        <author><name>John Smith</name></author>
        <content type="html">&lt;p&gt;Atom &lt;strong&gt;content&lt;/strong&gt;&lt;/p&gt;</content>
    </entry>
</feed>'''

CHANNEL_ID = "UCexample1234567890abcd"

SAMPLE_YOUTUBE_FEED = f'''<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns:yt="http://www.youtube.com/xml/schemas/2015" xmlns:media="http://search.yahoo.com/mrss/" xmlns="http://www.w3.org/2005/Atom">
    <link rel="self" href="http://www.youtube.com/feeds/videos.xml?channel_id={CHANNEL_ID}"/>
    <id>yt:channel:{CHANNEL_ID}</id>
    <yt:channelId>{CHANNEL_ID}</yt:channelId>
    <title>Example Channel</title>
    <link rel="alternate" href="https://www.youtube.com/channel/{CHANNEL_ID}"/>
    <author><name>Example Channel</name><uri>https://www.youtube.com/channel/{CHANNEL_ID}</uri></author>
    <published>2020-01-01T00:00:00+00:00</published>
    <entry>
        <id>yt:video:dQw4w9WgXcQ</id>
        <yt:videoId>dQw4w9WgXcQ</yt:videoId>
        <yt:channelId>{CHANNEL_ID}</yt:channelId>
        <title>Regular video</title>
        <link rel="alternate" href="https://www.youtube.com/watch?v=dQw4w9WgXcQ"/>
        <author><name>Example Channel</name></author>
        <published>2024-09-05T12:00:00+00:00</published>
        <updated>2024-09-05T12:30:00+00:00</updated>
        <media:group>
            <media:title>Regular video</media:title>
            <media:content url="https://www.youtube.com/v/dQw4w9WgXcQ?version=3" type="application/x-shockwave-flash" width="640" height="390"/>
            <media:thumbnail url="https://i1.ytimg.com/vi/dQw4w9WgXcQ/hqdefault.jpg" width="480" height="360"/>
            <media:description>Video description line</media:description>
        </media:group>
    </entry>
    <entry>
        <id>yt:video:abcdefghijk</id>
        <yt:videoId>abcdefghijk</yt:videoId>
        <yt:channelId>{CHANNEL_ID}</yt:channelId>
        <title>A short</title>
        <link rel="alternate" href="https://www.youtube.com/shorts/abcdefghijk"/>
        <author><name>Example Channel</name></author>
        <published>2024-09-06T12:00:00+00:00</published>
        <media:group>
            <media:title>A short</media:title>
            <media:thumbnail url="https://i1.ytimg.com/vi/abcdefghijk/hqdefault.jpg" width="480" height="360"/>
            <media:description>Short description</media:description>
        </media:group>
    </entry>
</feed>'''

YOUTUBE_FEED_URL = f"https://www.youtube.com/feeds/videos.xml?channel_id={CHANNEL_ID}"


def _document(body, url="https://example.com/feed.xml", content_type="application/rss+xml"):
    return FetchedDocument(url=url, status=200, content=body.encode("utf-8"), content_type=content_type)


@pytest.fixture
def rss_parser(parsers):
    return parsers[Platform.RSS]


class TestRssParsing:
    """Test RSS 2.0 and Atom documents."""

    def test_feed_metadata(self, rss_parser):
        parsed = rss_parser.parse(_document(SAMPLE_RSS_FEED))

        assert parsed.title == "Example Blog"
        assert parsed.site_url == "https://example.com/"
        assert parsed.image_url == "https://example.com/logo.png"

    def test_entries_normalized(self, rss_parser):
        """Test the full-content entry is sanitized and enriched."""
        parsed = rss_parser.parse(_document(SAMPLE_RSS_FEED))
        entry = parsed.entries[0]

        assert entry.remote_id == "post-1"
        assert entry.title == "First post"
        assert entry.link == "https://example.com/posts/first"
        assert entry.author == "Jane Doe"
        assert entry.tags == ["Python", "Testing"]
        assert entry.published_at == datetime(2024, 9, 5, 12, 0, tzinfo=timezone.utc)
        assert "alert" not in entry.content_html
        assert "https://www.youtube-nocookie.com/embed/dQw4w9WgXcQ" in entry.content_html
        assert entry.image_url == "https://example.com/img/cover.png"
        assert entry.content_text.startswith("Full body with")
        assert entry.excerpt == entry.content_text

    def test_entry_without_title_dropped(self, rss_parser):
        parsed = rss_parser.parse(_document(SAMPLE_RSS_FEED))

        assert len(parsed.entries) == 2
        assert parsed.dropped_entries == 1

    def test_guid_falls_back_to_link(self, rss_parser):
        """Test entries without a guid are keyed by their link."""
        parsed = rss_parser.parse(_document(SAMPLE_RSS_FEED))
        entry = parsed.entries[1]

        assert entry.remote_id == "https://example.com/posts/summary"
        assert entry.content_text == "Just a summary"
        assert entry.published_at is None

    def test_atom_feed(self, rss_parser):
        parsed = rss_parser.parse(_document(SAMPLE_ATOM_FEED, content_type="application/atom+xml"))
        entry = parsed.entries[0]

        assert parsed.title == "Atom Example"
        assert entry.remote_id == "urn:uuid:1225c695-cfb8-4ebb-aaaa-80da344efa6a"
        assert entry.author == "John Smith"
        assert entry.content_text == "Atom content"
        assert entry.published_at == datetime(2024, 9, 4, 8, 30, tzinfo=timezone.utc)

    @pytest.mark.parametrize("body", [
        "<html><body>not a feed</body></html>",
        "garbage <<< not xml",
    ])
    def test_invalid_documents(self, rss_parser, body):
        with pytest.raises(ParseError):
            rss_parser.parse(_document(body))


class TestYouTubeFeeds:
    """Test YouTube channel feeds and the Shorts filter."""

    def test_video_entry(self, rss_parser, make_source):
        """Test the embed precedes the escaped description."""
        parsed = rss_parser.parse(
            _document(SAMPLE_YOUTUBE_FEED, url=YOUTUBE_FEED_URL, content_type="application/atom+xml"),
            make_source("youtube"),
        )
        entry = parsed.entries[0]

        assert entry.remote_id == "yt:video:dQw4w9WgXcQ"
        assert entry.link == "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
        assert entry.image_url == "https://i1.ytimg.com/vi/dQw4w9WgXcQ/hqdefault.jpg"
        assert entry.content_html.startswith('<div class="maifead-embed"')
        assert 'data-embed-orientation="landscape"' in entry.content_html
        assert "Video description line" in entry.content_text

    def test_short_is_portrait(self, rss_parser, make_source):
        parsed = rss_parser.parse(
            _document(SAMPLE_YOUTUBE_FEED, url=YOUTUBE_FEED_URL),
            make_source("youtube"),
        )

        assert len(parsed.entries) == 2
        assert 'data-embed-orientation="portrait"' in parsed.entries[1].content_html

    def test_detected_by_feed_url(self, rss_parser):
        """Test YouTube handling without a source."""
        parsed = rss_parser.parse(_document(SAMPLE_YOUTUBE_FEED, url=YOUTUBE_FEED_URL))

        assert parsed.entries[0].content_html.startswith('<div class="maifead-embed"')

    @pytest.mark.parametrize("shorts_filter, expected, filtered", [
        (ShortsFilter.ALL, ["Regular video", "A short"], 0),
        (ShortsFilter.EXCLUDE, ["Regular video"], 1),
        (ShortsFilter.ONLY, ["A short"], 1),
    ])
    def test_shorts_filter(self, rss_parser, make_source, shorts_filter, expected, filtered):
        parsed = rss_parser.parse(
            _document(SAMPLE_YOUTUBE_FEED, url=YOUTUBE_FEED_URL),
            make_source("youtube", youtube_shorts_filter=shorts_filter),
        )

        assert [entry.title for entry in parsed.entries] == expected
        assert parsed.filtered_entries == filtered
