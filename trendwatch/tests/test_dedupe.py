import unittest

from trendwatch.errors import ValidationError
from trendwatch.models import ContentItem, Engagement, ProviderType
from trendwatch.dedupe import DedupConfig, Deduplicator


def _item(item_id, provider_type=ProviderType.NEWS, title="", body="", url="", crisis_score=0.0, shares=0):
    return ContentItem(
        id=item_id,
        provider_type=provider_type,
        title=title,
        body=body,
        url=url,
        crisis_score=crisis_score,
        engagement=Engagement(shares=shares),
    )


class DeduplicatorTests(unittest.TestCase):
    def setUp(self) -> None:
        self.dedupe = Deduplicator()

    def test_same_story_from_two_providers_keeps_news_copy(self):
        social = _item("s1", ProviderType.SOCIAL, "Earthquake hits Tokyo", "Strong tremors felt across the city")
        news = _item("n1", ProviderType.NEWS, "Earthquake hits Tokyo", "Strong tremors felt across the city")
        other = _item("b1", ProviderType.NEWS, "Local bakery opens", "Fresh bread every morning")

        result = self.dedupe.deduplicate([social, news, other])

        self.assertEqual([item.id for item in result.items], ["n1", "b1"])
        self.assertEqual(len(result.groups), 1)
        group = result.groups[0]
        self.assertEqual(group.strategy, "exact")
        self.assertEqual(group.group_id, "exact_1")
        self.assertIs(group.survivor, news)
        self.assertEqual(result.stats["duplicates_removed"], 1)
        self.assertEqual(result.stats["duplicates_found"], 2)
        self.assertEqual(result.stats["strategies"]["exact"], 1)

    def test_deduplicating_twice_changes_nothing(self):
        # exact duplicates only; the greedy title pass can drop more on a second run
        batch = [
            _item("a", ProviderType.SOCIAL, "Earthquake hits Tokyo", "Strong tremors"),
            _item("b", ProviderType.NEWS, "Earthquake hits Tokyo", "Strong tremors"),
            _item("c", ProviderType.NEWS, "Parliament passes budget", "Spending bill approved"),
        ]

        first = self.dedupe.deduplicate(batch)
        second = self.dedupe.deduplicate(first.items)

        self.assertEqual([item.id for item in second.items], [item.id for item in first.items])
        self.assertEqual(second.stats["duplicates_removed"], 0)

    def test_url_normalization_groups_links(self):
        first = _item("u1", title="Budget vote today", url="https://www.example.com/story/42/?utm=feed")
        second = _item("u2", title="Lawmakers approve spending", url="http://example.com/story/42#top")

        result = self.dedupe.deduplicate([first, second])

        self.assertEqual(len(result.items), 1)
        self.assertEqual(result.groups[0].strategy, "url")

    def test_short_urls_are_not_compared(self):
        first = _item("u1", title="Budget vote today", url="http://a.io")
        second = _item("u2", title="Lawmakers approve spending", url="https://a.io/")

        result = self.dedupe.deduplicate([first, second])

        self.assertEqual(len(result.items), 2)
        self.assertEqual(result.groups, [])

    def test_similar_titles_group(self):
        first = _item("t1", title="Major earthquake hits California coast today", body="Reports from Los Angeles")
        second = _item("t2", title="Major earthquake hits California coast", body="Residents shaken overnight")

        result = self.dedupe.deduplicate([first, second])

        self.assertEqual(len(result.items), 1)
        self.assertEqual(result.groups[0].strategy, "title")

    def test_fuzzy_pass_uses_body_similarity(self):
        body = "Rainfall records broken across the capital region"
        first = _item("f1", title="Heavy rain floods Delhi", body=body)
        second = _item("f2", title="Heavy rain floods", body=body)

        result = self.dedupe.deduplicate([first, second])

        self.assertEqual(len(result.items), 1)
        self.assertEqual(result.groups[0].strategy, "fuzzy")
        self.assertAlmostEqual(Deduplicator.fuzzy_similarity(first, second), 0.7 * 0.75 + 0.3)

    def test_disabled_passes_are_skipped(self):
        body = "Rainfall records broken across the capital region"
        batch = [_item("f1", title="Heavy rain floods Delhi", body=body), _item("f2", title="Heavy rain floods", body=body)]

        result = self.dedupe.deduplicate(batch, enable_fuzzy=False)

        self.assertEqual(len(result.items), 2)
        self.assertTrue(self.dedupe.config.enable_fuzzy)

    def test_survivor_prefers_crisis_score_then_earliest(self):
        low = _item("low", title="Flood warning issued", body="Evacuate now", crisis_score=0.2)
        high = _item("high", title="Flood warning issued", body="Evacuate now", crisis_score=0.8)
        result = self.dedupe.deduplicate([low, high])
        self.assertEqual([item.id for item in result.items], ["high"])

        first = _item("first", title="Flood warning issued", body="Evacuate now")
        second = _item("second", title="Flood warning issued", body="Evacuate now")
        result = self.dedupe.deduplicate([first, second])
        self.assertEqual([item.id for item in result.items], ["first"])

    def test_survivor_uses_engagement_as_last_tiebreak(self):
        quiet = _item("quiet", title="Flood warning issued", body="Evacuate now", shares=1)
        loud = _item("loud", title="Flood warning issued", body="Evacuate now", shares=50)

        result = self.dedupe.deduplicate([quiet, loud])

        self.assertEqual([item.id for item in result.items], ["loud"])

    def test_survivor_length_counts_title_and_body_without_separator(self):
        url = "https://example.com/news/dam-breach-alert"
        split = _item("split", title="Dam breach", body="Leave now", url=url, shares=90)
        single = _item("single", title="Dam breach downriver", url=url, shares=1)

        result = self.dedupe.deduplicate([split, single])

        self.assertEqual([item.id for item in result.items], ["single"])

    def test_empty_items_are_never_grouped(self):
        result = self.dedupe.deduplicate([_item("e1"), _item("e2"), _item("e3")])

        self.assertEqual(len(result.items), 3)
        self.assertEqual(result.stats["groups"], 0)

    def test_empty_batch(self):
        result = self.dedupe.deduplicate([])
        self.assertEqual(result.items, [])
        self.assertEqual(result.stats["processed"], 0)

    def test_recent_cache_counts_repeats_and_can_be_cleared(self):
        batch = [_item("a", title="Parliament passes budget"), _item("b", title="Local bakery opens")]

        self.dedupe.deduplicate(batch)
        repeat = self.dedupe.deduplicate(batch)

        self.assertEqual(repeat.stats["repeats_seen"], 2)
        self.assertEqual(self.dedupe.get_stats()["cache_size"], 2)
        self.dedupe.clear_caches()
        self.assertEqual(self.dedupe.get_stats()["cache_size"], 0)

    def test_stats_accumulate_and_reset(self):
        batch = [
            _item("a", ProviderType.SOCIAL, "Earthquake hits Tokyo"),
            _item("b", ProviderType.NEWS, "Earthquake hits Tokyo"),
        ]
        self.dedupe.deduplicate(batch)
        self.dedupe.deduplicate(batch)

        stats = self.dedupe.get_stats()
        self.assertEqual(stats["runs"], 2)
        self.assertEqual(stats["total_processed"], 4)
        self.assertEqual(stats["duplicates_removed"], 2)
        self.assertEqual(stats["duplicate_rate"], 0.5)

        self.dedupe.reset_stats()
        self.assertEqual(self.dedupe.get_stats()["runs"], 0)
        self.assertIsNone(self.dedupe.get_stats()["last_run"])

    def test_analyze_reports_without_removing(self):
        batch = [
            _item("a", ProviderType.SOCIAL, "Earthquake hits Tokyo"),
            _item("b", ProviderType.NEWS, "Earthquake hits Tokyo"),
        ]

        report = self.dedupe.analyze_for_duplicates(batch)

        self.assertEqual(report["total_items"], 2)
        self.assertEqual(report["duplicate_groups"], 1)
        self.assertEqual(report["groups"][0]["providers"], ["news", "social"])
        self.assertEqual(self.dedupe.get_stats()["runs"], 0)

    def test_config_validation(self):
        with self.assertRaises(ValidationError):
            self.dedupe.update_config(title_similarity_threshold=1.5)
        with self.assertRaises(ValidationError):
            self.dedupe.update_config(unknown_option=True)
        with self.assertRaises(ValidationError):
            self.dedupe.deduplicate([], min_url_length=-1)

        self.dedupe.update_config(platform_priority={"reddit": 5})
        config = self.dedupe.get_config()
        self.assertEqual(config["platform_priority"]["social"], 5)
        self.assertEqual(config["platform_priority"]["news"], 3)

    def test_platform_priority_override_changes_survivor(self):
        social = _item("s1", ProviderType.SOCIAL, "Earthquake hits Tokyo")
        news = _item("n1", ProviderType.NEWS, "Earthquake hits Tokyo")

        result = self.dedupe.deduplicate([news, social], platform_priority={ProviderType.SOCIAL: 9})

        self.assertEqual([item.id for item in result.items], ["s1"])
        self.assertEqual(DedupConfig().platform_priority[ProviderType.SOCIAL], 1)


if __name__ == "__main__":
    unittest.main()
