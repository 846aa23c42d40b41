"""
Recurring content cycle: fetch, score, dedupe, partition and analyze.
"""
from __future__ import annotations

import logging
import threading
import time
import traceback
from concurrent.futures import ThreadPoolExecutor, wait
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from apscheduler.schedulers.background import BackgroundScheduler

from trendwatch.config_loader import load_config
from trendwatch.dedupe import DedupConfig, Deduplicator
from trendwatch.errors import CycleInProgressError, ProviderError, StageError, ValidationError
from trendwatch.keywords import KeywordConfig
from trendwatch.models import (
    AnalysisResult,
    ContentCache,
    ContentItem,
    CycleResult,
    ErrorRecord,
    FetchCriteria,
    ProviderStatus,
    ProviderType,
    RunRecord,
    normalize_record,
    utcnow,
)
from trendwatch.providers import Provider, build_providers
from trendwatch.scoring import KeywordScorer
from trendwatch.sentiment import ToneAnalyzer
from trendwatch.settings import Settings, load_settings
from trendwatch.trending import TrendConfig, TrendEngine, analysis_to_dict

logger = logging.getLogger(__name__)

JOB_ID = "trendwatch-cycle"
CRISIS_ITEM_THRESHOLD = 0.7
TRENDING_ITEM_THRESHOLD = 0.6


class Scheduler:
    """
    Owns the run record and composes providers, KeywordScorer, Deduplicator
    and TrendEngine into one cycle. At most one cycle is in flight at a time.
    """

    def __init__(
        self,
        providers: Optional[Sequence[Provider]] = None,
        scorer: Optional[KeywordScorer] = None,
        deduplicator: Optional[Deduplicator] = None,
        trend_engine: Optional[TrendEngine] = None,
        tone_analyzer: Optional[ToneAnalyzer] = None,
        settings: Optional[Settings] = None,
        config: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.settings = settings or load_settings()
        if config is None and None in (providers, scorer, deduplicator, trend_engine):
            config = load_config(self.settings.config_path)
        config = config or {}

        self.providers: List[Provider] = list(providers) if providers is not None else build_providers(config, self.settings)
        self.scorer = scorer or KeywordScorer(KeywordConfig.from_mapping(config.get("keywords") or {}))
        self.deduplicator = deduplicator or Deduplicator(DedupConfig().validated(**(config.get("dedupe") or {})))
        if trend_engine is None:
            trend_config = TrendConfig(cache_ttl_seconds=self.settings.analysis_ttl_seconds)
            trend_engine = TrendEngine(trend_config.validated(**(config.get("trending") or {})))
        self.trend_engine = trend_engine
        self.tone_analyzer = tone_analyzer or ToneAnalyzer()

        self.interval_minutes = self.settings.interval_minutes
        self.record = RunRecord(max_errors=self.settings.max_errors)
        self._cycle_lock = threading.Lock()
        self._state_lock = threading.Lock()
        self._scheduler: Optional[BackgroundScheduler] = None
        self._provider_status: Dict[str, ProviderStatus] = {
            provider.name: ProviderStatus(
                name=provider.name,
                provider_type=provider.provider_type,
                state="fulfilled",
                available=self._check_available(provider)[0],
            )
            for provider in self.providers
        }
        self._summary: Dict[str, Any] = {}
        self._analysis: Optional[AnalysisResult] = None

    # -- lifecycle --------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self, interval_minutes: Optional[int] = None) -> None:
        if self.is_running:
            logger.warning("Scheduler already running; ignoring start()")
            return
        if interval_minutes is not None:
            self.interval_minutes = _positive_minutes(interval_minutes)
        scheduler = BackgroundScheduler(timezone="UTC")
        scheduler.add_job(
            self._timer_tick,
            "interval",
            minutes=self.interval_minutes,
            id=JOB_ID,
            next_run_time=datetime.now(tz=scheduler.timezone),
            max_instances=1,
            coalesce=True,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info("Scheduler started with a %d minute interval", self.interval_minutes)

    def stop(self) -> None:
        scheduler = self._scheduler
        if scheduler is None:
            logger.info("Scheduler not running")
            return
        self._scheduler = None
        if scheduler.running:
            scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped after %d runs", self.record.run_count)

    def update_interval(self, minutes: int) -> None:
        self.interval_minutes = _positive_minutes(minutes)
        if self.is_running and self._scheduler is not None:
            self._scheduler.reschedule_job(JOB_ID, trigger="interval", minutes=self.interval_minutes)
        logger.info("Scheduler interval set to %d minutes", self.interval_minutes)

    def _timer_tick(self) -> None:
        try:
            self.run_cycle()
        except CycleInProgressError:
            logger.warning("Skipping scheduled cycle: previous cycle still running")
        except StageError as exc:
            logger.error("Scheduled cycle failed: %s", exc)
        except Exception:
            logger.exception("Scheduled cycle raised an unexpected error")

    # -- cycle ------------------------------------------------------------

    def force_run(self) -> CycleResult:
        """Manual trigger. Also bypasses the trend analysis cache."""
        return self.run_cycle(force_refresh=True)

    def run_cycle(self, force_refresh: bool = False) -> CycleResult:
        if not self._cycle_lock.acquire(blocking=False):
            raise CycleInProgressError(self.record.run_count)
        try:
            return self._run_cycle(force_refresh)
        finally:
            self._cycle_lock.release()

    def _run_cycle(self, force_refresh: bool) -> CycleResult:
        started = time.perf_counter()
        now = utcnow()
        with self._state_lock:
            self.record.run_count += 1
            self.record.last_run_time = now
            run_count = self.record.run_count
        logger.info("Starting content cycle #%d", run_count)

        items, statuses = self.fetch_all(now)

        stage = "keywords"
        try:
            scored, spam_removed = self.scorer.score_batch(items)
            stage = "dedupe"
            deduped = self.deduplicator.deduplicate(scored)
            stage = "tone"
            survivors = self.tone_analyzer.analyze_batch(deduped.items)
            stage = "partition"
            cache = self._partition(survivors, now, deduped.stats)
            stage = "trending"
            analysis = self.trend_engine.detect_trending_topics(cache.buckets, force_refresh=force_refresh, now=now)
            stage = "summary"
            summary = self.summarize(cache)
        except Exception as exc:
            error = exc if isinstance(exc, StageError) else StageError(stage, str(exc), run_count)
            self._record_error(error, stage, run_count)
            logger.error("Cycle #%d failed in stage %s", run_count, stage, exc_info=True)
            if error is exc:
                raise
            raise error from exc

        with self._state_lock:
            self.record.content = cache
            self.record.keyword_stats = dict(self.scorer.get_stats(), spam_removed_last_run=spam_removed)
            self.record.dedup_stats = dict(deduped.stats)
            self._summary = summary
            self._analysis = analysis

        duration_ms = round((time.perf_counter() - started) * 1000, 3)
        logger.info(
            "Cycle #%d complete in %.0fms: %d items, %d crisis, %d trending topics",
            run_count,
            duration_ms,
            summary["total_items"],
            summary["crisis_items"],
            analysis.summary["trending_count"],
        )
        return CycleResult(
            success=True,
            run_count=run_count,
            duration_ms=duration_ms,
            analysis=dict(summary, trending=analysis_to_dict(analysis)),
            timestamp=now,
            providers=statuses,
        )

    def fetch_all(self, now: datetime) -> Tuple[List[ContentItem], List[ProviderStatus]]:
        """
        Fetch every provider concurrently; wait for all to settle.

        Returns:
            The merged normalized items and one status per provider.
        """
        criteria = FetchCriteria(limit=self.settings.fetch_limit)
        available = []
        statuses: Dict[str, ProviderStatus] = {}
        for provider in self.providers:
            is_up, error = self._check_available(provider)
            if error is not None:
                statuses[provider.name] = self._degraded(provider, error)
                statuses[provider.name].available = False
            elif is_up:
                available.append(provider)
            else:
                statuses[provider.name] = ProviderStatus(
                    name=provider.name,
                    provider_type=provider.provider_type,
                    state="skipped",
                    available=False,
                    last_error="provider unavailable",
                )

        items: List[ContentItem] = []
        if available:
            executor = ThreadPoolExecutor(max_workers=len(available), thread_name_prefix="trendwatch-fetch")
            try:
                futures = {executor.submit(self._fetch_one, provider, criteria, now): provider for provider in available}
                _, pending = wait(futures, timeout=self.settings.fetch_timeout_seconds)
                for future, provider in futures.items():
                    if future in pending:
                        future.cancel()
                        message = f"timed out after {self.settings.fetch_timeout_seconds}s"
                        logger.warning("Provider %s %s", provider.name, message)
                        statuses[provider.name] = self._degraded(provider, message)
                        continue
                    fetched, status = future.result()
                    items.extend(fetched)
                    statuses[provider.name] = status
            finally:
                executor.shutdown(wait=False)

        ordered = [statuses[provider.name] for provider in self.providers if provider.name in statuses]
        with self._state_lock:
            for status in ordered:
                previous = self._provider_status.get(status.name)
                if status.last_success is None and previous is not None:
                    status.last_success = previous.last_success
                self._provider_status[status.name] = status
        logger.info(
            "Fetched %d items from %d providers (%d degraded, %d skipped)",
            len(items),
            len(ordered),
            sum(1 for s in ordered if s.state == "degraded"),
            sum(1 for s in ordered if s.state == "skipped"),
        )
        return items, ordered

    def _fetch_one(self, provider: Provider, criteria: FetchCriteria, now: datetime) -> Tuple[List[ContentItem], ProviderStatus]:
        start = time.time()
        try:
            records = provider.fetch(criteria, now=now)
        except ProviderError as exc:
            logger.warning("Provider %s failed: %s", provider.name, exc.message)
            return [], self._degraded(provider, exc.message, latency_ms=(time.time() - start) * 1000)
        except Exception as exc:  # provider boundary
            logger.warning("Provider %s raised %s: %s", provider.name, type(exc).__name__, exc)
            return [], self._degraded(provider, str(exc), latency_ms=(time.time() - start) * 1000)

        items: List[ContentItem] = []
        for record in records or []:
            item = normalize_record(record, provider.provider_type, provider_name=provider.name, now=now)
            if item is not None:
                items.append(item)
        return items, ProviderStatus(
            name=provider.name,
            provider_type=provider.provider_type,
            state="fulfilled",
            available=True,
            last_success=now,
            items_last_fetch=len(items),
            latency_ms=(time.time() - start) * 1000,
        )

    @staticmethod
    def _check_available(provider: Provider) -> Tuple[bool, Optional[str]]:
        try:
            return bool(provider.is_available()), None
        except Exception as exc:  # provider boundary
            logger.warning("Provider %s availability check raised %s: %s", provider.name, type(exc).__name__, exc)
            return False, f"availability check failed: {exc}"

    @staticmethod
    def _degraded(provider: Provider, message: str, latency_ms: Optional[float] = None) -> ProviderStatus:
        return ProviderStatus(
            name=provider.name,
            provider_type=provider.provider_type,
            state="degraded",
            available=True,
            last_error=message,
            latency_ms=latency_ms,
        )

    @staticmethod
    def _partition(items: Iterable[ContentItem], now: datetime, dedup_stats: Dict[str, Any]) -> ContentCache:
        cache = ContentCache(last_updated=now, dedup_stats=dict(dedup_stats))
        for item in items:
            cache.buckets[item.provider_type].append(item)
        return cache

    def _record_error(self, error: StageError, stage: str, run_count: int) -> None:
        with self._state_lock:
            self.record.errors.append(
                ErrorRecord(
                    timestamp=utcnow(),
                    message=str(error),
                    stage=stage,
                    run_count=run_count,
                    traceback=traceback.format_exc(),
                )
            )

    # -- content summary --------------------------------------------------

    @staticmethod
    def is_trending_item(item: ContentItem) -> bool:
        if item.provider_type is ProviderType.SOCIAL:
            return (
                item.engagement.shares > 500
                or item.engagement.comments > 100
                or item.crisis_score >= TRENDING_ITEM_THRESHOLD
            )
        if item.provider_type is ProviderType.GLOBAL_EVENT:
            return item.crisis_score >= TRENDING_ITEM_THRESHOLD or abs(item.tone or 0.0) > 3
        return item.crisis_score >= TRENDING_ITEM_THRESHOLD

    @staticmethod
    def trending_item_score(item: ContentItem) -> float:
        score = item.crisis_score
        if item.provider_type is ProviderType.SOCIAL:
            score += min(item.engagement.shares / 1000, 0.5)
            score += min(item.engagement.comments / 200, 0.3)
        elif item.provider_type is ProviderType.GLOBAL_EVENT:
            score += min(abs(item.tone or 0.0) / 10, 0.2)
        return score

    def summarize(self, cache: ContentCache) -> Dict[str, Any]:
        everything = cache.all_items()
        crisis = sorted(
            (item for item in everything if item.crisis_score >= CRISIS_ITEM_THRESHOLD),
            key=lambda item: item.crisis_score,
            reverse=True,
        )
        trending = sorted(
            (item for item in everything if self.is_trending_item(item)),
            key=self.trending_item_score,
            reverse=True,
        )
        return {
            "total_items": cache.total_items,
            "crisis_items": len(crisis),
            "trending_items": len(trending),
            "top_crisis_alerts": [_item_brief(item) for item in crisis[:5]],
            "top_trending_items": [_item_brief(item) for item in trending[:5]],
            "source_breakdown": {ptype.value: len(cache.buckets.get(ptype, [])) for ptype in ProviderType},
            "tone": ToneAnalyzer.summarize(everything),
        }

    # -- read accessors ---------------------------------------------------

    def get_status(self) -> Dict[str, Any]:
        with self._state_lock:
            last_run = self.record.last_run_time
            next_run = (
                last_run + timedelta(minutes=self.interval_minutes) if self.is_running and last_run else None
            )
            return {
                "is_running": self.is_running,
                "interval_minutes": self.interval_minutes,
                "run_count": self.record.run_count,
                "last_run_time": last_run.isoformat() if last_run else None,
                "next_run_time": next_run.isoformat() if next_run else None,
                "total_content_items": self.record.content.total_items,
                "last_updated": self.record.content.last_updated.isoformat() if self.record.content.last_updated else None,
                "error_count": len(self.record.errors),
                "providers": {
                    name: {
                        "provider_type": status.provider_type.value,
                        "available": status.available,
                        "state": status.state,
                    }
                    for name, status in self._provider_status.items()
                },
            }

    def get_provider_status(self) -> List[ProviderStatus]:
        with self._state_lock:
            return list(self._provider_status.values())

    def get_latest_content(self) -> ContentCache:
        with self._state_lock:
            return self.record.content

    def get_latest_summary(self) -> Dict[str, Any]:
        with self._state_lock:
            return dict(self._summary)

    def get_latest_analysis(self) -> Optional[AnalysisResult]:
        with self._state_lock:
            return self._analysis

    def get_trending_topics(self):
        return self.trend_engine.get_current_trending_topics()

    def get_topic_history(self, keyword: Optional[str] = None):
        return self.trend_engine.get_topic_history(keyword)

    def get_trending_stats(self) -> Dict[str, Any]:
        return self.trend_engine.get_stats()

    def get_keyword_stats(self) -> Dict[str, Any]:
        return self.scorer.get_stats()

    def get_dedup_stats(self) -> Dict[str, Any]:
        return self.deduplicator.get_stats()

    def get_errors(self) -> List[ErrorRecord]:
        with self._state_lock:
            return list(self.record.errors)

    def clear_errors(self) -> None:
        with self._state_lock:
            self.record.errors.clear()
        logger.info("Error history cleared")

    # -- keyword / config mutation ---------------------------------------

    def add_keywords(self, category: str, terms: Iterable[str]) -> int:
        return self.scorer.add_keywords(category, terms)

    def remove_keywords(self, category: str, terms: Iterable[str]) -> int:
        return self.scorer.remove_keywords(category, terms)

    def get_keywords(self, category: Optional[str] = None) -> Dict[str, List[str]]:
        config = self.scorer.config
        if category is not None:
            if category not in config.categories:
                raise ValidationError(f"unknown keyword category '{category}'")
            return {category: config.get_terms(category)}
        return {name: config.get_terms(name) for name in config.categories}

    def get_keyword_categories(self) -> List[str]:
        return list(self.scorer.config.categories)

    def update_keyword_config(self, **options: Any) -> None:
        self.scorer.update_config(**options)

    def update_dedup_config(self, **options: Any) -> None:
        self.deduplicator.update_config(**options)

    def update_trend_config(self, **options: Any) -> None:
        self.trend_engine.update_config(**options)

    # -- content queries --------------------------------------------------

    def get_crisis_content(self, min_score: float = 0.3) -> List[ContentItem]:
        return self.scorer.get_crisis_content(self.get_latest_content().all_items(), min_score=min_score)

    def get_misinformation_content(self, min_score: float = 0.4) -> List[ContentItem]:
        return self.scorer.get_misinformation_content(self.get_latest_content().all_items(), min_score=min_score)

    def analyze_content_for_duplicates(self, items: Optional[Iterable[ContentItem]] = None) -> Dict[str, Any]:
        batch = list(items) if items is not None else self.get_latest_content().all_items()
        return self.deduplicator.analyze_for_duplicates(batch)

    def clear_dedup_caches(self) -> None:
        self.deduplicator.clear_caches()


def _positive_minutes(minutes: Any) -> float:
    if isinstance(minutes, bool) or not isinstance(minutes, (int, float)) or minutes <= 0:
        raise ValidationError(f"interval must be a positive number of minutes, got {minutes!r}")
    return minutes


def _item_brief(item: ContentItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "title": item.title,
        "url": item.url,
        "provider_type": item.provider_type.value,
        "provider_name": item.provider_name,
        "crisis_score": round(item.crisis_score, 4),
        "engagement": item.engagement_total,
        "tone": item.tone,
        "primary_category": item.primary_category,
        "published_at": item.published_at.isoformat(),
    }
