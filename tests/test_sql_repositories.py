"""SQL-backed stores exercised against in-memory SQLite."""

import asyncio
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from videoshare.db import get_engine, get_sessionmaker, init_db
from videoshare.domain.assets import MediaAssetCreate
from videoshare.domain.errors import InvalidStateTransition, StoreUnavailable
from videoshare.domain.jobs import JobCreate, JobStatus, TargetFormat, TargetResolution
from videoshare.repositories.assets import SqlAlchemyAssetsRepository
from videoshare.repositories.jobs import SqlAlchemyJobsRepository
from videoshare.services.runtime import build_runtime

from conftest import FakeEncoder


def create_test_engine():
    """Create an in-memory SQLite database engine for testing."""
    return create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


async def _stores():
    engine = create_test_engine()
    await init_db(engine)
    factory = get_sessionmaker(engine)
    return engine, SqlAlchemyJobsRepository(factory), SqlAlchemyAssetsRepository(factory)


def _job_payload(source_id, resolution=None) -> JobCreate:
    return JobCreate(
        source_id=source_id,
        target_format=TargetFormat.WEBM,
        target_resolution=resolution,
        output_path=f"/data/videos/{source_id}.webm",
    )


def test_asset_round_trip():
    async def scenario():
        engine, _, assets = await _stores()
        created = await assets.create(
            MediaAssetCreate(owner_identity="alice", title="clip", file_path="/x.mp4", is_public=False),
            size=2048,
        )
        updated = await assets.update_metadata(created.id, duration_seconds=12.5)
        fetched = await assets.get(created.id)
        await engine.dispose()
        return created, updated, fetched

    created, updated, fetched = asyncio.run(scenario())

    assert fetched.id == created.id
    assert fetched.is_public is False
    assert fetched.size == 2048
    assert updated.duration_seconds == fetched.duration_seconds == 12.5


def test_job_lifecycle_is_persisted():
    async def scenario():
        engine, jobs, assets = await _stores()
        asset = await assets.create(
            MediaAssetCreate(owner_identity="alice", title="clip", file_path="/x.mp4")
        )
        job = await jobs.create(_job_payload(asset.id, TargetResolution.P720))
        await jobs.update_status(job.id, JobStatus.PROCESSING, progress=0)
        await jobs.update_status(job.id, JobStatus.PROCESSING, progress=55)
        midway = await jobs.get(job.id)
        failed = await jobs.update_status(
            job.id, JobStatus.ERROR, error_detail="EncodeFailed: ffmpeg exited with code 1"
        )
        with pytest.raises(InvalidStateTransition):
            await jobs.update_status(job.id, JobStatus.DONE, progress=100)
        final = await jobs.get(job.id)
        await engine.dispose()
        return job, midway, failed, final

    job, midway, failed, final = asyncio.run(scenario())

    assert job.status is JobStatus.PENDING
    assert job.target_resolution is TargetResolution.P720
    assert (midway.status, midway.progress) == (JobStatus.PROCESSING, 55)
    assert failed.updated_at >= midway.updated_at
    assert final.status is JobStatus.ERROR
    assert final.error_detail == "EncodeFailed: ffmpeg exited with code 1"


def test_find_or_create_matches_null_resolution():
    async def scenario():
        engine, jobs, assets = await _stores()
        asset = await assets.create(
            MediaAssetCreate(owner_identity="alice", title="clip", file_path="/x.mp4")
        )
        results = await asyncio.gather(
            *(jobs.find_or_create(_job_payload(asset.id)) for _ in range(4))
        )
        hd, hd_created = await jobs.find_or_create(_job_payload(asset.id, TargetResolution.P1080))
        listed = await jobs.list_for_source(asset.id)
        await engine.dispose()
        return results, hd, hd_created, listed

    results, hd, hd_created, listed = asyncio.run(scenario())

    assert len({job.id for job, _ in results}) == 1
    assert sum(created for _, created in results) == 1
    assert hd_created
    assert [job.id for job in listed] == [results[0][0].id, hd.id]


def test_unreachable_database_raises_store_unavailable(tmp_path):
    async def scenario():
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/missing/dir/db.sqlite")
        jobs = SqlAlchemyJobsRepository(get_sessionmaker(engine))
        try:
            await jobs.list_for_source(uuid4())
        finally:
            await engine.dispose()

    with pytest.raises(StoreUnavailable):
        asyncio.run(scenario())


def test_runtime_uses_sql_stores_when_database_url_is_set(settings, tmp_path):
    sql_settings = settings.model_copy(
        update={"database_url": f"sqlite+aiosqlite:///{tmp_path}/jobs.db"}
    )
    runtime = build_runtime(sql_settings, encoder=FakeEncoder())

    async def scenario():
        await runtime.start()
        try:
            asset = await runtime.assets.create(
                MediaAssetCreate(owner_identity="alice", title="clip", file_path="/x.mp4")
            )
            return await runtime.assets.get(asset.id)
        finally:
            await runtime.stop()

    fetched = asyncio.run(scenario())

    assert isinstance(runtime.jobs, SqlAlchemyJobsRepository)
    assert fetched.owner_identity == "alice"


def test_engine_requires_database_url(settings):
    with pytest.raises(RuntimeError):
        get_engine(settings)
