"""Prometheus metrics for the transcode pipeline."""

from __future__ import annotations

from fastapi import FastAPI
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest
from starlette.responses import Response

JOBS_SUBMITTED = Counter(
    "videoshare_transcode_submissions_total",
    "Transcode submissions grouped by whether a new job was created",
    labelnames=("outcome",),
)
JOBS_FINISHED = Counter(
    "videoshare_transcode_jobs_finished_total",
    "Transcode jobs that reached a terminal state",
    labelnames=("status",),
)
ENCODE_DURATION = Histogram(
    "videoshare_transcode_encode_duration_seconds",
    "Wall-clock duration of encode executions",
    buckets=(1, 5, 10, 30, 60, 120, 300, 600, 1800, 3600),
)
THUMBNAILS = Counter(
    "videoshare_thumbnails_total",
    "Thumbnail extractions grouped by outcome",
    labelnames=("outcome",),
)
QUEUE_DEPTH = Gauge(
    "videoshare_worker_queue_depth",
    "Work items waiting for a free worker",
)
BUSY_WORKERS = Gauge(
    "videoshare_worker_busy",
    "Workers currently executing a work item",
)


def setup_prometheus(app: FastAPI, path: str) -> None:
    """Expose the default registry on ``path``."""

    @app.get(path, include_in_schema=False)
    async def prometheus_metrics() -> Response:  # pragma: no cover - trivial
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
