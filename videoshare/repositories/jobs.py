from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..domain.errors import InvalidStateTransition
from ..domain.jobs import (
    Job,
    JobCreate,
    JobStatus,
    TargetFormat,
    TargetResolution,
    can_transition,
)
from ..models.job import TranscodeJobModel
from .base import KeyedLock, translate_store_errors


class JobsRepository(Protocol):
    async def create(self, payload: JobCreate) -> Job: ...

    async def get(self, job_id: UUID) -> Job | None: ...

    async def update_status(
        self,
        job_id: UUID,
        status: JobStatus,
        progress: int | None = None,
        error_detail: str | None = None,
    ) -> Job | None: ...

    async def find(
        self,
        source_id: UUID,
        target_format: TargetFormat,
        target_resolution: Optional[TargetResolution],
    ) -> list[Job]: ...

    async def find_or_create(self, payload: JobCreate) -> tuple[Job, bool]: ...

    async def list_for_source(self, source_id: UUID) -> list[Job]: ...


def _check_transition(job_id: UUID, current: JobStatus, target: JobStatus) -> None:
    if not can_transition(current, target):
        raise InvalidStateTransition(
            f"job {job_id} cannot move from {current.value} to {target.value}"
        )


def _pick_reusable(jobs: list[Job]) -> Job | None:
    live = [job for job in jobs if job.status is not JobStatus.ERROR]
    if not live:
        return None
    return min(live, key=lambda job: job.created_at)


class InMemoryJobsRepository:
    """Volatile job store; state is lost with the process."""

    def __init__(self) -> None:
        self._jobs: dict[UUID, Job] = {}
        self._locks = KeyedLock()

    async def create(self, payload: JobCreate) -> Job:
        job = Job(**payload.model_dump())
        self._jobs[job.id] = job
        return job

    async def get(self, job_id: UUID) -> Job | None:
        return self._jobs.get(job_id)

    async def update_status(
        self,
        job_id: UUID,
        status: JobStatus,
        progress: int | None = None,
        error_detail: str | None = None,
    ) -> Job | None:
        job = self._jobs.get(job_id)
        if job is None:
            return None
        _check_transition(job_id, job.status, status)
        update_data: dict[str, object] = {
            "status": status,
            "updated_at": datetime.utcnow(),
        }
        if progress is not None:
            update_data["progress"] = progress
        if error_detail is not None:
            update_data["error_detail"] = error_detail
        updated = job.model_copy(update=update_data)
        self._jobs[job_id] = updated
        return updated

    async def find(
        self,
        source_id: UUID,
        target_format: TargetFormat,
        target_resolution: Optional[TargetResolution],
    ) -> list[Job]:
        key = (source_id, target_format, target_resolution)
        return sorted(
            (job for job in self._jobs.values() if job.dedup_key == key),
            key=lambda job: job.created_at,
        )

    async def find_or_create(self, payload: JobCreate) -> tuple[Job, bool]:
        key = (payload.source_id, payload.target_format, payload.target_resolution)
        async with self._locks.hold(key):
            existing = _pick_reusable(await self.find(*key))
            if existing is not None:
                return existing, False
            return await self.create(payload), True

    async def list_for_source(self, source_id: UUID) -> list[Job]:
        return sorted(
            (job for job in self._jobs.values() if job.source_id == source_id),
            key=lambda job: job.created_at,
        )


class SqlAlchemyJobsRepository:
    """SQL-backed job store.

    Each call opens its own session so worker coroutines can update
    different jobs concurrently without sharing a connection.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._locks = KeyedLock()

    async def create(self, payload: JobCreate) -> Job:
        async with translate_store_errors("jobs.create"):
            async with self._session_factory() as session:
                model = TranscodeJobModel(
                    source_id=payload.source_id,
                    target_format=payload.target_format.value,
                    target_resolution=(
                        payload.target_resolution.value
                        if payload.target_resolution
                        else None
                    ),
                    output_path=payload.output_path,
                    status=JobStatus.PENDING.value,
                    progress=0,
                )
                session.add(model)
                await session.flush()
                await session.refresh(model)
                await session.commit()
                return Job.model_validate(model)

    async def get(self, job_id: UUID) -> Job | None:
        async with translate_store_errors("jobs.get"):
            async with self._session_factory() as session:
                model = await session.get(TranscodeJobModel, job_id)
                if not model:
                    return None
                return Job.model_validate(model)

    async def update_status(
        self,
        job_id: UUID,
        status: JobStatus,
        progress: int | None = None,
        error_detail: str | None = None,
    ) -> Job | None:
        async with translate_store_errors("jobs.update_status"):
            async with self._session_factory() as session:
                model = await session.get(TranscodeJobModel, job_id)
                if not model:
                    return None
                _check_transition(job_id, JobStatus(model.status), status)
                model.status = status.value
                model.updated_at = datetime.utcnow()
                if progress is not None:
                    model.progress = int(progress)
                if error_detail is not None:
                    model.error_detail = error_detail
                await session.commit()
                await session.refresh(model)
                return Job.model_validate(model)

    async def find(
        self,
        source_id: UUID,
        target_format: TargetFormat,
        target_resolution: Optional[TargetResolution],
    ) -> list[Job]:
        resolution_clause = (
            TranscodeJobModel.target_resolution.is_(None)
            if target_resolution is None
            else TranscodeJobModel.target_resolution == target_resolution.value
        )
        async with translate_store_errors("jobs.find"):
            async with self._session_factory() as session:
                result = await session.execute(
                    select(TranscodeJobModel)
                    .where(
                        TranscodeJobModel.source_id == source_id,
                        TranscodeJobModel.target_format == target_format.value,
                        resolution_clause,
                    )
                    .order_by(TranscodeJobModel.created_at.asc())
                )
                return [Job.model_validate(row) for row in result.scalars().all()]

    async def find_or_create(self, payload: JobCreate) -> tuple[Job, bool]:
        # Serialises check-then-create within this process only.
        key = (payload.source_id, payload.target_format, payload.target_resolution)
        async with self._locks.hold(key):
            existing = _pick_reusable(await self.find(*key))
            if existing is not None:
                return existing, False
            return await self.create(payload), True

    async def list_for_source(self, source_id: UUID) -> list[Job]:
        async with translate_store_errors("jobs.list_for_source"):
            async with self._session_factory() as session:
                result = await session.execute(
                    select(TranscodeJobModel)
                    .where(TranscodeJobModel.source_id == source_id)
                    .order_by(TranscodeJobModel.created_at.asc())
                )
                return [Job.model_validate(row) for row in result.scalars().all()]
