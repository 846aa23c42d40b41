import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from trendwatch.config_loader import expand_env, load_config
from trendwatch.security import is_configured_key, redact_secrets
from trendwatch.settings import Settings, load_settings


class SettingsTests(unittest.TestCase):
    def test_defaults(self):
        settings = load_settings(env={})

        self.assertEqual(settings, Settings())
        self.assertEqual(settings.interval_minutes, 5)
        self.assertEqual(settings.analysis_ttl_seconds, 300)
        self.assertEqual(settings.max_errors, 10)
        self.assertEqual(settings.config_path, Path("trendwatch.yaml"))
        self.assertIsNone(settings.newsapi_api_key)

    def test_env_overrides(self):
        settings = load_settings(
            env={
                "TRENDWATCH_INTERVAL_MINUTES": "15",
                "TRENDWATCH_ANALYSIS_TTL": "60",
                "TRENDWATCH_MAX_ERRORS": "3",
                "TRENDWATCH_CONFIG": "/etc/trendwatch.yaml",
                "NEWSAPI_API_KEY": "  abc123 ",
            }
        )

        self.assertEqual(settings.interval_minutes, 15)
        self.assertEqual(settings.analysis_ttl_seconds, 60)
        self.assertEqual(settings.max_errors, 3)
        self.assertEqual(settings.config_path, Path("/etc/trendwatch.yaml"))
        self.assertEqual(settings.newsapi_api_key, "abc123")

    def test_invalid_values_fall_back_with_warning(self):
        with self.assertLogs("trendwatch.settings", level="WARNING") as logs:
            settings = load_settings(env={"TRENDWATCH_INTERVAL_MINUTES": "soon", "TRENDWATCH_FETCH_LIMIT": "-4"})

        self.assertEqual(settings.interval_minutes, 5)
        self.assertEqual(settings.fetch_limit, 25)
        self.assertIn("TRENDWATCH_INTERVAL_MINUTES", logs.output[0])


class ConfigLoaderTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)

    def _write(self, text: str) -> Path:
        path = Path(self.tmp.name) / "trendwatch.yaml"
        path.write_text(text, encoding="utf-8")
        return path

    def test_env_placeholders_are_expanded(self):
        path = self._write(
            "providers:\n"
            "  newsapi:\n"
            "    api_key: \"${TW_TEST_KEY}\"\n"
            "  reddit:\n"
            "    subreddits: [india, \"${TW_TEST_SUB}\"]\n"
            "trending:\n"
            "  min_mention_count: 2\n"
        )

        with patch.dict(os.environ, {"TW_TEST_KEY": "k-123", "TW_TEST_SUB": "news"}):
            config = load_config(path)

        self.assertEqual(config["providers"]["newsapi"]["api_key"], "k-123")
        self.assertEqual(config["providers"]["reddit"]["subreddits"], ["india", "news"])
        self.assertEqual(config["trending"]["min_mention_count"], 2)

    def test_unset_placeholder_becomes_empty(self):
        path = self._write("providers:\n  newsapi:\n    api_key: \"${TW_TEST_UNSET_KEY}\"\n")

        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop("TW_TEST_UNSET_KEY", None)
            config = load_config(path)

        self.assertEqual(config["providers"]["newsapi"]["api_key"], "")

    def test_expand_env_inside_strings_with_fallback(self):
        env = {"TW_HOST": "api.example.com"}
        data = {"url": "https://${TW_HOST}/v2", "region": "${TW_REGION:-in}", "limit": 5, "tags": ["${TW_NONE}"]}

        self.assertEqual(
            expand_env(data, env),
            {"url": "https://api.example.com/v2", "region": "in", "limit": 5, "tags": [""]},
        )

    def test_missing_file_returns_empty_mapping(self):
        with self.assertLogs("trendwatch.config_loader", level="WARNING"):
            config = load_config(Path(self.tmp.name) / "absent.yaml")
        self.assertEqual(config, {})

    def test_non_mapping_top_level_is_ignored(self):
        path = self._write("- just\n- a list\n")
        with self.assertLogs("trendwatch.config_loader", level="WARNING"):
            self.assertEqual(load_config(path), {})

    def test_empty_file(self):
        self.assertEqual(load_config(self._write("")), {})


class SecurityTests(unittest.TestCase):
    def test_redact_secrets(self):
        text = "GET /v2?apiKey=abc&q=flood Authorization: Bearer tok.123 token=zzz"
        redacted = redact_secrets(text)

        self.assertNotIn("abc", redacted)
        self.assertNotIn("tok.123", redacted)
        self.assertNotIn("zzz", redacted)
        self.assertIn("q=flood", redacted)
        self.assertIsNone(redact_secrets(None))

    def test_is_configured_key(self):
        self.assertTrue(is_configured_key("abc123"))
        for value in (None, "", "   ", "your_api_key", "CHANGEME", "${NEWSAPI_API_KEY}"):
            self.assertFalse(is_configured_key(value))


if __name__ == "__main__":
    unittest.main()
