"""
Prometheus metrics for ingestion runs and source fetches.
"""
import logging
from typing import Dict

from prometheus_client import REGISTRY, Counter, Histogram

logger = logging.getLogger(__name__)

runs_total = Counter(
    'ingest_runs_total',
    'Ingestion runs by final status',
    ['source', 'status'],
)
items_total = Counter(
    'ingest_items_total',
    'Postings processed by outcome (inserted, updated, duplicate, expired)',
    ['source', 'outcome'],
)
run_errors_total = Counter(
    'ingest_run_errors_total',
    'Errors counted on ingestion runs',
    ['source'],
)
run_duration_seconds = Histogram(
    'ingest_run_duration_seconds',
    'Wall-clock duration of ingestion runs',
    ['source'],
)
fetch_total = Counter(
    'ingest_fetch_total',
    'Source fetches by result reason',
    ['reason'],
)


def record_fetch(reason: str):
    fetch_total.labels(reason=reason).inc()


def record_run(run, source_name: str):
    """Record a finished RunRecord."""
    status = run.status.value if hasattr(run.status, "value") else str(run.status)
    runs_total.labels(source=source_name, status=status).inc()

    for outcome, count in (
        ('inserted', run.inserted),
        ('updated', run.updated),
        ('duplicate', run.duplicates),
        ('expired', run.expired),
    ):
        if count:
            items_total.labels(source=source_name, outcome=outcome).inc(count)

    if run.errors:
        run_errors_total.labels(source=source_name).inc(run.errors)

    if run.finished_at and run.started_at:
        duration = (run.finished_at - run.started_at).total_seconds()
        run_duration_seconds.labels(source=source_name).observe(max(0.0, duration))


def get_metrics() -> Dict[str, float]:
    """
    Flat snapshot of the ingestion counters, keyed by sample name and labels.

    e.g. {'ingest_runs_total{source="InfoJobs",status="Success"}': 3.0}
    """
    snapshot: Dict[str, float] = {}
    for family in REGISTRY.collect():
        if not family.name.startswith('ingest_'):
            continue
        for sample in family.samples:
            if sample.name.endswith('_created'):
                continue
            labels = ",".join(f'{k}="{v}"' for k, v in sorted(sample.labels.items()))
            key = f"{sample.name}{{{labels}}}" if labels else sample.name
            snapshot[key] = sample.value
    return snapshot
