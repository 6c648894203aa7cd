"""Tests for driving a single job through its encode."""

import asyncio
from pathlib import Path
from uuid import uuid4

import pytest

from videoshare.domain.errors import EncodeFailed, StoreUnavailable
from videoshare.domain.jobs import JobCreate, JobStatus, TargetFormat, TargetResolution
from videoshare.repositories.jobs import InMemoryJobsRepository
from videoshare.services.invoker import EncodeInvoker
from videoshare.services.tasks import TranscodeTask

from conftest import FakeEncoder


class RecordingJobsRepository(InMemoryJobsRepository):
    def __init__(self, fail_progress: bool = False) -> None:
        super().__init__()
        self.fail_progress = fail_progress
        self.writes: list[tuple[JobStatus, int | None]] = []

    async def update_status(self, job_id, status, progress=None, error_detail=None):
        if self.fail_progress and status is JobStatus.PROCESSING and progress:
            raise StoreUnavailable("database is locked")
        self.writes.append((status, progress))
        return await super().update_status(job_id, status, progress, error_detail)


async def _prepare(repo, source: Path, output: Path) -> TranscodeTask:
    job = await repo.create(
        JobCreate(
            source_id=uuid4(),
            target_format=TargetFormat.MP4,
            target_resolution=TargetResolution.P720,
            output_path=str(output),
        )
    )
    return TranscodeTask(
        job_id=job.id,
        input_path=source,
        output_path=output,
        target_format=TargetFormat.MP4,
        target_resolution=TargetResolution.P720,
    )


def test_successful_encode_reports_increasing_progress(source_file: Path, tmp_path: Path):
    repo = RecordingJobsRepository()
    encoder = FakeEncoder(steps=(0.1, 0.5, 0.4, 0.5, 0.9, 1.0))
    output = tmp_path / "videos" / "out.mp4"

    async def scenario():
        task = await _prepare(repo, source_file, output)
        return await EncodeInvoker(repo, encoder).run(task)

    job = asyncio.run(scenario())

    assert job.status is JobStatus.DONE
    assert job.progress == 100
    assert output.read_bytes()
    progress = [value for status, value in repo.writes if status is JobStatus.PROCESSING]
    assert progress == [0, 10, 50, 90, 100]
    assert repo.writes[-1] == (JobStatus.DONE, 100)


def test_missing_input_fails_job(tmp_path: Path):
    repo = InMemoryJobsRepository()
    encoder = FakeEncoder()

    async def scenario():
        task = await _prepare(repo, tmp_path / "gone.mp4", tmp_path / "out.mp4")
        return await EncodeInvoker(repo, encoder).run(task)

    job = asyncio.run(scenario())

    assert job.status is JobStatus.ERROR
    assert job.error_detail.startswith("SourceUnavailable:")
    assert encoder.calls == []


def test_encoder_failure_is_recorded(source_file: Path, tmp_path: Path):
    repo = InMemoryJobsRepository()
    encoder = FakeEncoder(steps=(0.25, 0.5))
    encoder.fail_with = EncodeFailed("ffmpeg exited with code 1: Unknown encoder")

    async def scenario():
        task = await _prepare(repo, source_file, tmp_path / "out.mp4")
        return await EncodeInvoker(repo, encoder).run(task)

    job = asyncio.run(scenario())

    assert job.status is JobStatus.ERROR
    assert job.error_detail == "EncodeFailed: ffmpeg exited with code 1: Unknown encoder"
    assert job.progress == 50


def test_unexpected_exception_becomes_encode_failure(source_file: Path, tmp_path: Path):
    repo = InMemoryJobsRepository()
    encoder = FakeEncoder()
    encoder.fail_with = RuntimeError("pipe closed")

    async def scenario():
        task = await _prepare(repo, source_file, tmp_path / "out.mp4")
        return await EncodeInvoker(repo, encoder).run(task)

    job = asyncio.run(scenario())

    assert job.status is JobStatus.ERROR
    assert job.error_detail == "EncodeFailed: pipe closed"


def test_missing_output_is_a_failure(source_file: Path, tmp_path: Path):
    repo = InMemoryJobsRepository()
    encoder = FakeEncoder()
    encoder.write_output = False

    async def scenario():
        task = await _prepare(repo, source_file, tmp_path / "out.mp4")
        return await EncodeInvoker(repo, encoder).run(task)

    job = asyncio.run(scenario())

    assert job.status is JobStatus.ERROR
    assert "was not written" in job.error_detail


def test_timeout_fails_job(source_file: Path, tmp_path: Path):
    repo = InMemoryJobsRepository()
    encoder = FakeEncoder()

    async def scenario():
        encoder.gate = asyncio.Event()
        task = await _prepare(repo, source_file, tmp_path / "out.mp4")
        return await EncodeInvoker(repo, encoder, timeout_seconds=0.05).run(task)

    job = asyncio.run(scenario())

    assert job.status is JobStatus.ERROR
    assert job.error_detail.startswith("Timeout:")


def test_progress_write_failures_do_not_fail_the_job(source_file: Path, tmp_path: Path):
    repo = RecordingJobsRepository(fail_progress=True)
    encoder = FakeEncoder()

    async def scenario():
        task = await _prepare(repo, source_file, tmp_path / "out.mp4")
        return await EncodeInvoker(repo, encoder).run(task)

    job = asyncio.run(scenario())

    assert job.status is JobStatus.DONE
    assert job.progress == 100


def test_job_already_finished_is_not_rerun(source_file: Path, tmp_path: Path):
    repo = InMemoryJobsRepository()
    encoder = FakeEncoder()

    async def scenario():
        task = await _prepare(repo, source_file, tmp_path / "out.mp4")
        invoker = EncodeInvoker(repo, encoder)
        await invoker.run(task)
        return await invoker.run(task)

    assert asyncio.run(scenario()) is None
    assert len(encoder.calls) == 1


class FlakyStatusRepository(InMemoryJobsRepository):
    """Raises StoreUnavailable for the first ``failures`` writes of one status."""

    def __init__(self, status: JobStatus, failures: int) -> None:
        super().__init__()
        self.status = status
        self.failures = failures

    async def update_status(self, job_id, status, progress=None, error_detail=None):
        if status is self.status and self.failures:
            self.failures -= 1
            raise StoreUnavailable("database is locked")
        return await super().update_status(job_id, status, progress, error_detail)


@pytest.mark.parametrize("status", [JobStatus.PROCESSING, JobStatus.DONE])
def test_transient_store_failure_on_lifecycle_write_is_retried(status, source_file: Path, tmp_path: Path):
    repo = FlakyStatusRepository(status, failures=2)
    encoder = FakeEncoder(steps=())

    async def scenario():
        task = await _prepare(repo, source_file, tmp_path / "out.mp4")
        invoker = EncodeInvoker(repo, encoder, write_retries=3, retry_delay_seconds=0)
        return await invoker.run(task), await repo.get(task.job_id)

    returned, stored = asyncio.run(scenario())

    assert repo.failures == 0
    assert returned.status is JobStatus.DONE
    assert (stored.status, stored.progress) == (JobStatus.DONE, 100)


def test_transient_store_failure_on_error_write_is_retried(tmp_path: Path):
    repo = FlakyStatusRepository(JobStatus.ERROR, failures=1)

    async def scenario():
        task = await _prepare(repo, tmp_path / "gone.mp4", tmp_path / "out.mp4")
        invoker = EncodeInvoker(repo, FakeEncoder(), retry_delay_seconds=0)
        await invoker.run(task)
        return await repo.get(task.job_id)

    job = asyncio.run(scenario())

    assert job.status is JobStatus.ERROR
    assert job.error_detail.startswith("SourceUnavailable:")


def test_done_write_hiccup_does_not_leave_job_processing(
    source_file: Path, tmp_path: Path
):
    repo = FlakyStatusRepository(JobStatus.DONE, failures=1)
    encoder = FakeEncoder()

    async def scenario():
        task = await _prepare(repo, source_file, tmp_path / "out.mp4")
        await EncodeInvoker(repo, encoder, retry_delay_seconds=0).run(task)
        job = await repo.get(task.job_id)
        _, created = await repo.find_or_create(
            JobCreate(
                source_id=job.source_id,
                target_format=job.target_format,
                target_resolution=job.target_resolution,
                output_path=job.output_path,
            )
        )
        return job, created

    job, created = asyncio.run(scenario())

    assert job.status is JobStatus.DONE
    assert not created
    assert len(encoder.calls) == 1


def test_store_outage_beyond_retries_gives_up(source_file: Path, tmp_path: Path):
    repo = FlakyStatusRepository(JobStatus.DONE, failures=5)

    async def scenario():
        task = await _prepare(repo, source_file, tmp_path / "out.mp4")
        invoker = EncodeInvoker(repo, FakeEncoder(), write_retries=2, retry_delay_seconds=0)
        return await invoker.run(task)

    assert asyncio.run(scenario()) is None
    assert repo.failures == 3
