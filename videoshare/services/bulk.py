"""Fan-out of one transcode request across many source videos."""

from __future__ import annotations

from collections.abc import Sequence
from itertools import cycle, islice
from uuid import UUID

import structlog

from ..domain.errors import InvalidArgument, TranscodeError
from ..domain.jobs import BulkItemResult, BulkResult, Requester, TargetFormat, TargetResolution
from .orchestrator import TranscodeOrchestrator

logger = structlog.get_logger(__name__)


class BulkDispatcher:
    def __init__(self, orchestrator: TranscodeOrchestrator) -> None:
        self._orchestrator = orchestrator

    async def submit_many(
        self,
        source_ids: Sequence[UUID | str],
        format: TargetFormat | str,
        resolution: TargetResolution | str | None,
        desired_count: int | None,
        requester: Requester,
    ) -> BulkResult:
        """Submit ``desired_count`` transcodes, cycling through ``source_ids``.

        Per-item failures are reported inline and never stop the batch.
        """

        if not source_ids:
            raise InvalidArgument("at least one video id is required")
        count = len(source_ids) if desired_count is None else desired_count
        if count < 0:
            raise InvalidArgument("count must not be negative")

        items: list[BulkItemResult] = []
        for source_id in islice(cycle(source_ids), count):
            try:
                result = await self._orchestrator.submit(
                    source_id, format, resolution, requester
                )
            except TranscodeError as exc:
                logger.info(
                    "bulk.item_failed",
                    source_id=str(source_id),
                    error=exc.code,
                )
                items.append(
                    BulkItemResult(source_id=str(source_id), error=f"{exc.code}: {exc.message}")
                )
                continue
            items.append(
                BulkItemResult(
                    source_id=str(source_id),
                    job_id=result.job_id,
                    status=result.status,
                    created=result.created,
                )
            )

        accepted = sum(1 for item in items if item.ok)
        started = sum(1 for item in items if item.created)
        logger.info("bulk.dispatched", requested=count, accepted=accepted, started=started)
        return BulkResult(items=items, accepted=accepted, started=started)
