"""In-process work queue feeding a bounded pool of worker coroutines.

The orchestrator and asset registration only ``enqueue`` messages; each
worker owns exactly one work item at a time, so no job state is shared
between workers.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Union
from uuid import UUID

import structlog

from ..domain.jobs import TargetFormat, TargetResolution
from ..telemetry import BUSY_WORKERS, QUEUE_DEPTH

if TYPE_CHECKING:  # pragma: no cover - typing aid
    from .invoker import EncodeInvoker
    from .thumbnails import ThumbnailGenerator

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class TranscodeTask:
    """Start executing job ``job_id``."""

    job_id: UUID
    input_path: Path
    output_path: Path
    target_format: TargetFormat
    target_resolution: Optional[TargetResolution] = None


@dataclass(frozen=True)
class ThumbnailTask:
    source_id: UUID
    input_path: Path
    duration_seconds: float = 0.0


WorkItem = Union[TranscodeTask, ThumbnailTask]


class WorkerPool:
    """Fixed number of workers draining an unbounded backlog."""

    def __init__(
        self,
        invoker: "EncodeInvoker",
        thumbnails: "ThumbnailGenerator",
        size: int = 4,
    ) -> None:
        if size < 1:
            raise ValueError("worker pool size must be at least 1")
        self._invoker = invoker
        self._thumbnails = thumbnails
        self._size = size
        self._queue: asyncio.Queue[WorkItem] = asyncio.Queue()
        self._workers: list[asyncio.Task[None]] = []

    @property
    def size(self) -> int:
        return self._size

    @property
    def started(self) -> bool:
        return bool(self._workers)

    @property
    def backlog(self) -> int:
        return self._queue.qsize()

    def enqueue(self, item: WorkItem) -> None:
        """Queue ``item`` without waiting for a worker."""

        self._queue.put_nowait(item)
        QUEUE_DEPTH.inc()
        logger.debug("worker_pool.enqueued", item=type(item).__name__, backlog=self.backlog)

    def start(self) -> None:
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._work(index), name=f"transcode-worker-{index}")
            for index in range(self._size)
        ]
        logger.info("worker_pool.started", workers=self._size)

    async def join(self) -> None:
        """Wait until every queued item has been processed."""

        await self._queue.join()

    async def stop(self) -> None:
        """Cancel the workers; items still queued or running are abandoned."""

        workers, self._workers = self._workers, []
        for worker in workers:
            worker.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        if workers:
            logger.info("worker_pool.stopped", abandoned=self.backlog)

    async def _work(self, index: int) -> None:
        while True:
            item = await self._queue.get()
            QUEUE_DEPTH.dec()
            BUSY_WORKERS.inc()
            try:
                await self._handle(item)
            except Exception:
                logger.exception("worker_pool.item_failed", worker=index, item=repr(item))
            finally:
                BUSY_WORKERS.dec()
                self._queue.task_done()

    async def _handle(self, item: WorkItem) -> None:
        if isinstance(item, TranscodeTask):
            await self._invoker.run(item)
        elif isinstance(item, ThumbnailTask):
            await self._thumbnails.generate(
                item.source_id, item.input_path, item.duration_seconds
            )
        else:
            raise TypeError(f"Unsupported work item: {item!r}")
