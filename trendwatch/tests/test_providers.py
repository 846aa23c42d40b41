import unittest
from datetime import datetime, timezone
from unittest.mock import MagicMock

import requests

from trendwatch.errors import ProviderError, ValidationError
from trendwatch.models import FetchCriteria, ProviderType, normalize_record
from trendwatch.providers import (
    GdeltProvider,
    HttpClient,
    NewsApiProvider,
    ProviderFactory,
    ProviderRegistry,
    RedditProvider,
    RssProvider,
    build_providers,
)
from trendwatch.providers.rss import parse_feed_entries
from trendwatch.settings import Settings

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

RSS_FEED = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Example Wire</title>
    <item>
      <guid>wire-1</guid>
      <title>Flood warning issued for Delhi</title>
      <link>https://example.com/flood</link>
      <description>  Heavy rain expected overnight.  </description>
      <pubDate>Wed, 01 May 2024 10:30:00 GMT</pubDate>
    </item>
    <item>
      <title>Markets close higher</title>
      <link>https://example.com/markets</link>
    </item>
  </channel>
</rss>
"""


class NewsApiProviderTests(unittest.TestCase):
    def test_missing_key_is_unavailable_and_fetch_raises(self):
        http = MagicMock()
        for key in (None, "", "your_newsapi_key", "${NEWSAPI_API_KEY}"):
            provider = NewsApiProvider(api_key=key, http=http)
            self.assertFalse(provider.is_available())
        with self.assertRaises(ProviderError):
            NewsApiProvider(api_key=None, http=http).fetch(FetchCriteria(), now=NOW)
        http.get_json.assert_not_called()

    def test_articles_are_parsed(self):
        http = MagicMock()
        http.get_json.return_value = {
            "status": "ok",
            "articles": [
                {
                    "title": "Flood warning issued",
                    "description": "Residents told to move",
                    "url": "https://example.com/a",
                    "publishedAt": "2024-05-01T10:00:00Z",
                    "source": {"id": None, "name": "Example Times"},
                    "author": "Desk",
                },
                {"title": "[Removed]", "url": "https://removed.example.com"},
                {"title": ""},
            ],
        }
        provider = NewsApiProvider(api_key="abc123", country="in", http=http)

        records = provider.fetch(FetchCriteria(limit=10), now=NOW)

        self.assertEqual(len(records), 1)
        record = records[0]
        self.assertEqual(record.body, "Residents told to move")
        self.assertEqual(record.source_name, "Example Times")
        self.assertEqual(record.published_at, datetime(2024, 5, 1, 10, 0, tzinfo=timezone.utc))
        self.assertEqual(record.metadata, {"provider": "newsapi"})
        _, kwargs = http.get_json.call_args
        self.assertEqual(kwargs["params"], {"pageSize": 10, "country": "in"})
        self.assertEqual(kwargs["headers"], {"X-Api-Key": "abc123"})

    def test_error_payload_raises(self):
        http = MagicMock()
        http.get_json.return_value = {"status": "error", "message": "rateLimited"}
        provider = NewsApiProvider(api_key="abc123", http=http)

        with self.assertRaises(ProviderError) as ctx:
            provider.fetch(FetchCriteria(), now=NOW)

        self.assertEqual(ctx.exception.message, "rateLimited")
        self.assertEqual(ctx.exception.provider, "newsapi")


class RedditProviderTests(unittest.TestCase):
    def _listing(self, *posts):
        return {"data": {"children": [{"data": post} for post in posts]}}

    def test_posts_map_engagement_and_skip_stickied(self):
        http = MagicMock()
        http.get_json.return_value = self._listing(
            {
                "id": "abc",
                "title": "Bridge collapse caught on video",
                "selftext": "Posted from the scene",
                "permalink": "/r/india/comments/abc/bridge/",
                "url": "https://i.redd.it/image.jpg",
                "created_utc": 1714557600,
                "score": 1200,
                "num_comments": 340,
                "subreddit": "india",
                "upvote_ratio": 0.97,
            },
            {"id": "rules", "title": "Subreddit rules", "stickied": True},
        )
        provider = RedditProvider(["r/india"], http=http)

        records = provider.fetch(FetchCriteria(limit=25), now=NOW)

        self.assertEqual(len(records), 1)
        item = normalize_record(records[0], provider.provider_type, provider_name=provider.name)
        self.assertEqual(item.url, "https://reddit.com/r/india/comments/abc/bridge/")
        self.assertEqual(item.engagement.shares, 1200)
        self.assertEqual(item.engagement.comments, 340)
        self.assertEqual(item.source_name, "india")
        self.assertEqual(item.body, "Posted from the scene")
        self.assertEqual(item.metadata["upvote_ratio"], 0.97)
        self.assertEqual(item.published_at, datetime.fromtimestamp(1714557600, tz=timezone.utc))
        url = http.get_json.call_args[0][0]
        self.assertEqual(url, "https://www.reddit.com/r/india/hot.json")

    def test_all_subreddits_failing_raises(self):
        http = MagicMock()
        http.get_json.side_effect = ProviderError("reddit", "HTTP 429")
        provider = RedditProvider(["india", "news"], http=http)

        with self.assertRaises(ProviderError) as ctx:
            provider.fetch(FetchCriteria(), now=NOW)

        self.assertEqual(ctx.exception.message, "HTTP 429; HTTP 429")

    def test_one_failing_subreddit_is_tolerated(self):
        http = MagicMock()
        http.get_json.side_effect = [ProviderError("reddit", "HTTP 500"), self._listing({"id": "x", "title": "Storm"})]
        provider = RedditProvider(["india", "news"], http=http)

        records = provider.fetch(FetchCriteria(), now=NOW)

        self.assertEqual([record.title for record in records], ["Storm"])


class GdeltProviderTests(unittest.TestCase):
    def test_articles_are_parsed(self):
        http = MagicMock()
        http.get_json.return_value = {
            "articles": [
                {
                    "url": "https://news.example.org/quake",
                    "title": "Earthquake rattles region",
                    "seendate": "20240501T093000Z",
                    "domain": "news.example.org",
                    "language": "English",
                    "sourcecountry": "Japan",
                },
                "garbage",
            ]
        }
        provider = GdeltProvider(http=http)

        records = provider.fetch(FetchCriteria(limit=500), now=NOW)

        self.assertEqual(len(records), 1)
        record = records[0]
        self.assertEqual(record.published_at, datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc))
        self.assertEqual(record.author, "news.example.org")
        self.assertEqual(record.source_name, "news.example.org")
        self.assertEqual(record.metadata["sourcecountry"], "Japan")
        params = http.get_json.call_args.kwargs["params"]
        self.assertEqual(params["maxrecords"], 250)
        self.assertEqual(params["query"], "crisis OR emergency OR breaking")

    def test_non_mapping_payload_raises(self):
        http = MagicMock()
        http.get_json.return_value = ["unexpected"]

        with self.assertRaises(ProviderError):
            GdeltProvider(http=http).fetch(FetchCriteria(), now=NOW)


class RssProviderTests(unittest.TestCase):
    def test_parse_feed_entries(self):
        entries = parse_feed_entries(RSS_FEED, "Example Wire", limit=10)

        self.assertEqual(len(entries), 2)
        first = entries[0]
        self.assertEqual(first["id"], "wire-1")
        self.assertEqual(first["body"], "Heavy rain expected overnight.")
        self.assertEqual(first["published_at"], datetime(2024, 5, 1, 10, 30, tzinfo=timezone.utc))
        self.assertIsNone(entries[1]["published_at"])

    def test_fetch_tolerates_one_bad_feed(self):
        http = MagicMock()
        http.get_bytes.side_effect = [ProviderError("rss", "HTTP 404"), RSS_FEED]
        provider = RssProvider(["https://bad.example.com/rss", "https://good.example.com/rss"], http=http)

        records = provider.fetch(FetchCriteria(limit=1), now=NOW)

        self.assertEqual([record.title for record in records], ["Flood warning issued for Delhi"])
        self.assertEqual(records[0].source_name, "rss")

    def test_fetch_raises_when_every_feed_fails(self):
        http = MagicMock()
        http.get_bytes.side_effect = ProviderError("rss", "HTTP 404")
        provider = RssProvider(["https://bad.example.com/rss"], http=http)

        with self.assertRaises(ProviderError):
            provider.fetch(FetchCriteria(), now=NOW)
        self.assertFalse(RssProvider([], http=http).is_available())


class HttpClientTests(unittest.TestCase):
    def test_request_exception_is_redacted(self):
        session = MagicMock()
        session.get.side_effect = requests.ConnectionError("failed for /v2?apiKey=supersecret&q=x")
        client = HttpClient(name="newsapi", session=session)

        with self.assertRaises(ProviderError) as ctx:
            client.get_json("https://example.com/v2")

        self.assertNotIn("supersecret", ctx.exception.message)
        self.assertIn("***REDACTED***", ctx.exception.message)

    def test_non_200_and_bad_json_raise(self):
        session = MagicMock()
        session.get.return_value = MagicMock(status_code=401, text="invalid token=abc")
        client = HttpClient(name="newsapi", session=session)
        with self.assertRaises(ProviderError) as ctx:
            client.get_json("https://example.com")
        self.assertTrue(ctx.exception.message.startswith("HTTP 401"))
        self.assertNotIn("abc", ctx.exception.message)

        response = MagicMock(status_code=200)
        response.json.side_effect = ValueError("no json")
        session.get.return_value = response
        with self.assertRaises(ProviderError):
            client.get_json("https://example.com")

    def test_accept_header_and_timeout(self):
        session = MagicMock()
        session.get.return_value = MagicMock(status_code=200, json=MagicMock(return_value={"ok": True}))
        client = HttpClient(name="gdelt", timeout=7, session=session)

        self.assertEqual(client.get_json("https://example.com", params={"a": 1}), {"ok": True})

        session.get.assert_called_once_with(
            "https://example.com", params={"a": 1}, headers={"Accept": "application/json"}, timeout=7
        )


class ProviderRegistryTests(unittest.TestCase):
    def test_defaults_and_newsapi_key_injection(self):
        providers = build_providers({}, Settings(newsapi_api_key="abc123"))

        by_name = {provider.name: provider for provider in providers}
        self.assertEqual(set(by_name), {"newsapi", "reddit", "gdelt"})
        self.assertEqual(by_name["newsapi"].api_key, "abc123")
        self.assertEqual(by_name["newsapi"].country, "in")
        self.assertEqual(by_name["reddit"].provider_type, ProviderType.SOCIAL)

    def test_yaml_section_with_disabled_and_unknown_entries(self):
        config = {
            "providers": {
                "wire": {"type": "rss", "feeds": ["https://example.com/rss"]},
                "gdelt": {"enabled": False},
                "mystery": {"type": "carrier-pigeon"},
                "reddit": {"subreddits": ["worldnews"], "bogus_option": 1},
            }
        }

        providers = build_providers(config, Settings())

        self.assertEqual([provider.name for provider in providers], ["wire"])
        self.assertIsInstance(providers[0], RssProvider)

    def test_duplicate_registration_raises(self):
        registry = ProviderRegistry()
        registry.register("gdelt", ProviderFactory(GdeltProvider, {}))
        with self.assertRaises(ValidationError):
            registry.register("gdelt", ProviderFactory(GdeltProvider, {}))
        self.assertEqual(len(registry), 1)


if __name__ == "__main__":
    unittest.main()
