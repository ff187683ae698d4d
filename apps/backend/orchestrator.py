"""
Ingestion orchestrator: runs source adapters into the record store and
search index, one tracked run per source.
"""
import asyncio
import logging
from collections import Counter
from datetime import datetime, timedelta
from typing import Any, Callable, List, Optional

import metrics
from app.search import SearchIndex, to_search_document
from app.store import JobStore
from core.config import Settings
from core.errors import ConfigurationError, IngestionError, PersistenceError, RunCancelled, StageResult
from core.models import (
    CanonicalJobPosting,
    FetchOptions,
    JobStatus,
    RunRecord,
    RunStatus,
    utcnow,
)
from crawler.plugins.base import AdapterStats, SourceAdapter

logger = logging.getLogger(__name__)

SCHEDULER_INTERVAL_SECONDS = 3600
ERROR_SAMPLE_MAX_LENGTH = 500
DESCRIPTION_IMPROVEMENT_CHARS = 40


def _is_better_text(current: Optional[str], incoming: Optional[str]) -> bool:
    if not incoming or not incoming.strip():
        return False
    return not current or not current.strip() or len(incoming) > len(current) + DESCRIPTION_IMPROVEMENT_CHARS


def merge_tags(current: List[str], incoming: List[str]) -> List[str]:
    merged: List[str] = []
    for tag in list(current) + list(incoming):
        if not tag or not tag.strip():
            continue
        value = tag.strip().lower()
        if value not in merged:
            merged.append(value)
    return merged


def merge_posting(existing: CanonicalJobPosting, incoming: CanonicalJobPosting) -> bool:
    """
    Fold a re-observed posting into the stored one.

    Source reference and metadata always follow the latest observation.
    Content fields only move forward (longer description, richer salary,
    earlier posted_at). Returns True when any content field changed.
    """
    changed = False

    existing.source.vendor_type = incoming.source.vendor_type
    existing.source.name = incoming.source.name
    existing.source.url = incoming.source.url
    existing.source.source_job_id = incoming.source.source_job_id

    if _is_better_text(existing.description, incoming.description):
        existing.description = incoming.description
        changed = True

    tags = merge_tags(existing.tags, incoming.tags)
    if tags != existing.tags:
        existing.tags = tags
        changed = True

    if incoming.salary is not None:
        current_fields = existing.salary.populated_fields() if existing.salary else 0
        if incoming.salary.populated_fields() > current_fields:
            existing.salary = incoming.salary
            changed = True

    if incoming.posted_at is not None and (existing.posted_at is None or incoming.posted_at < existing.posted_at):
        existing.posted_at = incoming.posted_at
        changed = True

    fingerprint = incoming.dedupe.fingerprint
    if fingerprint and fingerprint.strip() and fingerprint != existing.dedupe.fingerprint:
        existing.dedupe.fingerprint = fingerprint
        changed = True

    if existing.captured_at != incoming.captured_at:
        existing.captured_at = incoming.captured_at
        changed = True

    existing.metadata = dict(incoming.metadata)
    return changed


class IngestionOrchestrator:
    """Runs adapters sequentially and keeps the record store in sync"""

    def __init__(
        self,
        store: JobStore,
        search_index: SearchIndex,
        settings: Settings,
        adapters: Optional[List[SourceAdapter]] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.search_index = search_index
        self.settings = settings
        self.adapters = list(adapters or [])
        self._clock = clock
        self.running = False
        self._stop_event = asyncio.Event()

    def _stage(self, name: str, fn: Callable, *args) -> StageResult:
        try:
            return StageResult.ok(fn(*args), stage=name)
        except Exception as e:
            return StageResult.fail(e, stage=name)

    def _require(self, result: StageResult) -> Any:
        if not result.is_success():
            error = result.error
            if isinstance(error, PersistenceError):
                raise error
            raise PersistenceError(f"{result.stage} failed: {error}") from error
        return result.value

    def resolve_options(self, options: Optional[FetchOptions] = None) -> FetchOptions:
        if options is not None:
            return options
        return FetchOptions(
            max_items_per_run=max(1, self.settings.default_max_items),
            max_detail_fetch=max(0, self.settings.default_max_detail),
        )

    async def run_once(
        self,
        adapter: SourceAdapter,
        options: Optional[FetchOptions] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> RunRecord:
        """
        One ingestion run for one adapter.

        Store failures abort the rest of the run (earlier items stay
        committed) and mark it Failed; the run record is always finalized.
        Raises PersistenceError only when the source or run record cannot be
        created at all.
        """
        now = self._clock()
        source = self._require(self._stage("ensure_source", self.store.ensure_source, adapter.name, adapter.vendor_type))

        run = RunRecord(source_id=source.id, started_at=now)
        self._require(self._stage("create_run", self.store.create_run, run))

        fetch_options = self.resolve_options(options)
        max_items = max(1, fetch_options.max_items_per_run)
        # the stream resets stats lazily; clear them here so an unstarted stream reports zero
        adapter.stats = AdapterStats()
        stream = adapter.fetch(fetch_options, cancel)

        try:
            self._require(self._stage("ensure_index", self.search_index.ensure_index))

            seen = 0
            async for posting in stream:
                if seen >= max_items:
                    break
                if cancel is not None and cancel.is_set():
                    raise RunCancelled("cancellation requested")
                seen += 1
                run.fetched += 1
                run.parsed += 1
                run.normalized += 1
                self._process(posting, run, now)

            run.expired = self._expire_stale(adapter, now)
            run.status = RunStatus.SUCCESS
        except RunCancelled:
            self._mark_cancelled(run)
        except asyncio.CancelledError:
            self._mark_cancelled(run)
            raise
        except Exception as e:
            run.status = RunStatus.FAILED
            run.errors += 1
            run.error_sample = str(e)[:ERROR_SAMPLE_MAX_LENGTH]
            logger.error(f"[orchestrator] Ingestion failed for {adapter.name}: {e}", exc_info=True)
        finally:
            await stream.aclose()
            run.errors += adapter.stats.parse_errors
            run.finished_at = self._clock()
            saved = self._stage("save_run", self.store.save_run, run)
            if not saved.is_success():
                logger.error(f"[orchestrator] Failed to persist run {run.id} for {adapter.name}: {saved.error}")
            counters = " ".join(f"{k}={v}" for k, v in run.counters().items())
            logger.info(f"[orchestrator] Run finished: source={adapter.name} status={run.status.value} {counters}")
            metrics.record_run(run, adapter.name)

        return run

    def _mark_cancelled(self, run: RunRecord):
        run.status = RunStatus.FAILED
        run.errors += 1
        run.error_sample = "cancelled"
        logger.warning(f"[orchestrator] Run {run.id} cancelled")

    def _find_existing(self, posting: CanonicalJobPosting) -> Optional[CanonicalJobPosting]:
        source = posting.source
        has_job_id = bool(source.source_job_id and source.source_job_id.strip())
        if has_job_id:
            found = self._require(self._stage(
                "find_by_source_job_id",
                self.store.find_by_source_job_id,
                source.vendor_type,
                source.name,
                source.source_job_id,
            ))
            if found is not None:
                return found

        found = self._require(self._stage("find_by_url", self.store.find_by_url, source.url))
        if found is not None:
            return found

        # a distinct source id is a distinct requisition, even with identical fields
        fingerprint = posting.dedupe.fingerprint
        if fingerprint and not has_job_id:
            return self._require(self._stage(
                "find_by_fingerprint",
                self.store.find_by_fingerprint,
                source.vendor_type,
                source.name,
                fingerprint,
            ))
        return None

    def _process(self, posting: CanonicalJobPosting, run: RunRecord, now: datetime):
        posting.captured_at = now
        posting.last_seen_at = now
        posting.status = JobStatus.ACTIVE

        existing = self._find_existing(posting)
        if existing is None:
            stored = self._require(self._stage("insert", self.store.insert, posting))
            self._require(self._stage("index", self.search_index.upsert, to_search_document(stored)))
            run.indexed += 1
            run.inserted += 1
            return

        changed = merge_posting(existing, posting)
        existing.last_seen_at = now
        existing.status = JobStatus.ACTIVE
        self._require(self._stage("update", self.store.update, existing))

        if changed:
            self._require(self._stage("index", self.search_index.upsert, to_search_document(existing)))
            run.indexed += 1
            run.updated += 1
        else:
            run.duplicates += 1

    def _expire_stale(self, adapter: SourceAdapter, now: datetime) -> int:
        cutoff = now - timedelta(days=max(1, self.settings.expire_after_days))
        stale = self._require(self._stage("find_stale", self.store.find_stale, adapter.vendor_type, adapter.name, cutoff))
        if not stale:
            return 0

        for posting in stale:
            posting.status = JobStatus.EXPIRED
            self._require(self._stage("expire", self.store.update, posting))

        for posting in stale:
            self._require(self._stage("index", self.search_index.upsert, to_search_document(posting)))

        logger.info(f"[orchestrator] {adapter.name} expired {len(stale)} stale job(s)")
        return len(stale)

    async def run_cycle(
        self,
        adapters: Optional[List[SourceAdapter]] = None,
        options: Optional[FetchOptions] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> List[RunRecord]:
        """Run every adapter once, sequentially."""
        runs: List[RunRecord] = []
        selected = self.adapters if adapters is None else adapters

        for adapter in selected:
            if cancel is not None and cancel.is_set():
                logger.info("[orchestrator] Cycle cancelled")
                break
            logger.info(f"[orchestrator] Running ingestion: {adapter.name}")
            try:
                runs.append(await self.run_once(adapter, options, cancel))
            except IngestionError as e:
                logger.error(f"[orchestrator] Could not start run for {adapter.name}: {e}")

        statuses = Counter(run.status.value for run in runs)
        summary = ", ".join(f"{status}={count}" for status, count in sorted(statuses.items())) or "none"
        logger.info(f"[orchestrator] Cycle finished: {len(runs)} run(s) ({summary})")
        return runs

    async def scheduler_loop(
        self,
        interval_seconds: float = SCHEDULER_INTERVAL_SECONDS,
        run_once_only: bool = False,
        options: Optional[FetchOptions] = None,
    ):
        """Repeat cycles until stop() is called (or once with run_once_only)."""
        logger.info("[orchestrator] Scheduler started")
        self.running = True

        while self.running and not self._stop_event.is_set():
            try:
                await self.run_cycle(options=options, cancel=self._stop_event)
            except Exception as e:
                logger.error(f"[orchestrator] Scheduler error: {e}", exc_info=True)

            if run_once_only:
                logger.info("[orchestrator] Single run finished (--run-once)")
                break

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval_seconds)
            except asyncio.TimeoutError:
                pass

        self.running = False
        logger.info("[orchestrator] Scheduler stopped")

    def request_stop(self):
        """Stop the loop and cancel the in-flight run. Safe from signal handlers."""
        self.running = False
        self._stop_event.set()

    async def stop(self):
        self.request_stop()
        logger.info("[orchestrator] Scheduler stopping...")


# Global instance
_orchestrator: Optional[IngestionOrchestrator] = None


def get_orchestrator(
    store: Optional[JobStore] = None,
    search_index: Optional[SearchIndex] = None,
    settings: Optional[Settings] = None,
    adapters: Optional[List[SourceAdapter]] = None,
) -> IngestionOrchestrator:
    """Get or create the orchestrator instance"""
    global _orchestrator
    if _orchestrator is None:
        if store is None or search_index is None or settings is None:
            raise ConfigurationError("Orchestrator is not initialized; store, search index and settings are required")
        _orchestrator = IngestionOrchestrator(store, search_index, settings, adapters)
    return _orchestrator


async def stop_scheduler():
    """Stop the running scheduler, if any"""
    if _orchestrator:
        await _orchestrator.stop()
