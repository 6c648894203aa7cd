"""Read-only projections of job records for polling clients."""

from __future__ import annotations

from pathlib import Path
from uuid import UUID

from ..domain.errors import NotFound
from ..domain.jobs import (
    Job,
    JobStatus,
    JobStatusPayload,
    Requester,
    VideoVersion,
    VideoVersions,
)
from ..repositories.assets import AssetsRepository
from ..repositories.jobs import JobsRepository
from .access import coerce_id, ensure_can_manage, ensure_can_read


class StatusQuery:
    def __init__(self, jobs: JobsRepository, assets: AssetsRepository) -> None:
        self._jobs = jobs
        self._assets = assets

    async def get_job(self, job_id: UUID | str) -> Job:
        job = await self._jobs.get(coerce_id(job_id, kind="job"))
        if job is None:
            raise NotFound(f"job {job_id} not found")
        return job

    async def get_status(self, job_id: UUID | str) -> JobStatusPayload:
        return JobStatusPayload.from_job(await self.get_job(job_id))

    async def list_transcodes(
        self, source_id: UUID | str, requester: Requester
    ) -> list[Job]:
        """Every job recorded for one video, oldest first, failed ones included."""

        source_id = coerce_id(source_id)
        asset = await self._assets.get(source_id)
        if asset is None:
            raise NotFound(f"video {source_id} not found")
        ensure_can_manage(asset, requester)
        return await self._jobs.list_for_source(source_id)

    async def list_versions(
        self, source_id: UUID | str, requester: Requester
    ) -> VideoVersions:
        """The original upload plus every completed rendition still on disk."""

        source_id = coerce_id(source_id)
        asset = await self._assets.get(source_id)
        if asset is None:
            raise NotFound(f"video {source_id} not found")
        ensure_can_read(asset, requester)

        original = VideoVersion(
            id="original",
            format=Path(asset.file_path).suffix.lstrip(".").lower(),
            resolution="original",
            size=asset.size,
            status=JobStatus.DONE,
        )
        transcoded = []
        for job in await self._jobs.list_for_source(source_id):
            output = Path(job.output_path)
            if job.status is not JobStatus.DONE or not output.is_file():
                continue
            transcoded.append(
                VideoVersion(
                    id=str(job.id),
                    format=job.target_format.value,
                    resolution=job.target_resolution.value if job.target_resolution else "original",
                    size=output.stat().st_size,
                    status=job.status,
                )
            )
        return VideoVersions(original=original, transcoded=transcoded)
