"""Accepts transcode requests and hands new jobs to the worker pool."""

from __future__ import annotations

from pathlib import Path
from uuid import UUID

import structlog

from ..domain.errors import NotFound
from ..domain.jobs import JobCreate, Requester, SubmitResult, TargetFormat, TargetResolution
from ..repositories.assets import AssetsRepository
from ..repositories.jobs import JobsRepository
from ..telemetry import JOBS_SUBMITTED
from .access import coerce_id, ensure_can_read, parse_format, parse_resolution
from .encoding import build_output_path
from .tasks import TranscodeTask, WorkerPool

logger = structlog.get_logger(__name__)


class TranscodeOrchestrator:
    def __init__(
        self,
        jobs: JobsRepository,
        assets: AssetsRepository,
        pool: WorkerPool,
        video_dir: Path,
    ) -> None:
        self._jobs = jobs
        self._assets = assets
        self._pool = pool
        self._video_dir = Path(video_dir)

    async def submit(
        self,
        source_id: UUID | str,
        format: TargetFormat | str,
        resolution: TargetResolution | str | None,
        requester: Requester,
    ) -> SubmitResult:
        """Validate, deduplicate and enqueue one transcode.

        Returns as soon as the job record is persisted; the encode itself
        runs on the worker pool. Validation and access failures raise
        before any record is written.
        """

        target_format = parse_format(format)
        target_resolution = parse_resolution(resolution)
        source_id = coerce_id(source_id)

        asset = await self._assets.get(source_id)
        if asset is None:
            raise NotFound(f"video {source_id} not found")
        ensure_can_read(asset, requester)

        output_path = build_output_path(
            self._video_dir, source_id, target_format, target_resolution
        )
        job, created = await self._jobs.find_or_create(
            JobCreate(
                source_id=source_id,
                target_format=target_format,
                target_resolution=target_resolution,
                output_path=str(output_path),
            )
        )
        if not created:
            JOBS_SUBMITTED.labels(outcome="deduplicated").inc()
            logger.info(
                "transcode.deduplicated",
                job_id=str(job.id),
                source_id=str(source_id),
                status=job.status.value,
            )
            return SubmitResult(job_id=job.id, status=job.status, created=False)

        self._pool.enqueue(
            TranscodeTask(
                job_id=job.id,
                input_path=Path(asset.file_path),
                output_path=output_path,
                target_format=target_format,
                target_resolution=target_resolution,
            )
        )
        JOBS_SUBMITTED.labels(outcome="created").inc()
        logger.info(
            "transcode.submitted",
            job_id=str(job.id),
            source_id=str(source_id),
            requester=requester.identity,
            format=target_format.value,
            resolution=target_resolution.value if target_resolution else None,
        )
        return SubmitResult(job_id=job.id, status=job.status)
