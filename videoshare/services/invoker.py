"""Drives one transcode job from ``pending`` to ``done`` or ``error``."""

from __future__ import annotations

import asyncio
import time
from pathlib import Path

import structlog

from ..domain.errors import (
    EncodeFailed,
    EncodeTimeout,
    InvalidStateTransition,
    SourceUnavailable,
    StoreUnavailable,
    TranscodeError,
)
from ..domain.jobs import Job, JobStatus
from ..repositories.jobs import JobsRepository
from ..telemetry import ENCODE_DURATION, JOBS_FINISHED
from .encoding import Encoder, build_encode_parameters, percent_from_fraction
from .tasks import TranscodeTask

logger = structlog.get_logger(__name__)


def _verify_output(path: Path) -> None:
    if not path.is_file():
        raise EncodeFailed(f"encoder reported success but {path} was not written")
    if path.stat().st_size == 0:
        raise EncodeFailed(f"encoder reported success but {path} is empty")


class EncodeInvoker:
    """Single writer for the job it is running.

    Failures after the job has started are recorded on the job record and
    never raised to the caller. Lifecycle writes are retried with
    exponential backoff when the store is briefly unavailable; progress
    writes are not.
    """

    def __init__(
        self,
        jobs: JobsRepository,
        encoder: Encoder,
        *,
        timeout_seconds: float | None = None,
        write_retries: int = 3,
        retry_delay_seconds: float = 0.5,
    ) -> None:
        self._jobs = jobs
        self._encoder = encoder
        self._timeout_seconds = timeout_seconds
        self._write_retries = max(1, write_retries)
        self._retry_delay_seconds = retry_delay_seconds

    async def run(self, task: TranscodeTask) -> Job | None:
        log = logger.bind(job_id=str(task.job_id))
        log.info(
            "transcode.job_start",
            input=str(task.input_path),
            output=str(task.output_path),
            format=task.target_format.value,
            resolution=task.target_resolution.value if task.target_resolution else None,
        )
        try:
            job = await self._write_status(task, JobStatus.PROCESSING, progress=0)
        except (StoreUnavailable, InvalidStateTransition) as exc:
            log.error("transcode.start_write_failed", error=str(exc))
            return None
        if job is None:
            log.error("transcode.job_missing")
            return None

        last_percent = 0

        async def report(fraction: float) -> None:
            nonlocal last_percent
            percent = percent_from_fraction(fraction)
            if percent <= last_percent:
                return
            try:
                await self._jobs.update_status(
                    task.job_id, JobStatus.PROCESSING, progress=percent
                )
            except StoreUnavailable as exc:
                log.warning("transcode.progress_write_failed", progress=percent, error=str(exc))
                return
            last_percent = percent
            log.debug("transcode.progress", progress=percent)

        params = build_encode_parameters(task.target_format, task.target_resolution)
        started = time.perf_counter()
        try:
            if not task.input_path.is_file():
                raise SourceUnavailable(f"input file not found: {task.input_path}")
            encode = self._encoder.encode(
                task.input_path, task.output_path, params, report
            )
            if self._timeout_seconds is not None:
                await asyncio.wait_for(encode, timeout=self._timeout_seconds)
            else:
                await encode
            _verify_output(task.output_path)
        except asyncio.TimeoutError:
            return await self._fail(
                task,
                EncodeTimeout(f"encode exceeded {self._timeout_seconds:g} seconds"),
            )
        except TranscodeError as exc:
            return await self._fail(task, exc)
        except Exception as exc:
            log.exception("transcode.encoder_fault", error=str(exc))
            return await self._fail(task, EncodeFailed(str(exc) or type(exc).__name__))
        finally:
            ENCODE_DURATION.observe(time.perf_counter() - started)

        try:
            done = await self._write_status(task, JobStatus.DONE, progress=100)
        except StoreUnavailable as exc:
            log.error("transcode.final_write_failed", status=JobStatus.DONE.value, error=str(exc))
            return None
        JOBS_FINISHED.labels(status=JobStatus.DONE.value).inc()
        log.info("transcode.job_done", output=str(task.output_path))
        return done

    async def _fail(self, task: TranscodeTask, error: TranscodeError) -> Job | None:
        detail = f"{error.code}: {error.message}"
        log = logger.bind(job_id=str(task.job_id))
        log.error("transcode.job_failed", error=detail)
        try:
            failed = await self._write_status(task, JobStatus.ERROR, error_detail=detail)
        except StoreUnavailable as exc:
            log.error("transcode.final_write_failed", status=JobStatus.ERROR.value, error=str(exc))
            return None
        JOBS_FINISHED.labels(status=JobStatus.ERROR.value).inc()
        return failed

    async def _write_status(
        self,
        task: TranscodeTask,
        status: JobStatus,
        progress: int | None = None,
        error_detail: str | None = None,
    ) -> Job | None:
        delay = self._retry_delay_seconds
        for attempt in range(1, self._write_retries + 1):
            try:
                return await self._jobs.update_status(
                    task.job_id, status, progress=progress, error_detail=error_detail
                )
            except StoreUnavailable as exc:
                if attempt == self._write_retries:
                    raise
                logger.warning(
                    "transcode.status_write_retry",
                    job_id=str(task.job_id),
                    status=status.value,
                    attempt=attempt,
                    max_retries=self._write_retries,
                    error=str(exc),
                )
                await asyncio.sleep(delay)
                delay *= 2
        return None
