from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, status

from ...domain.jobs import (
    BulkTranscodeRequest,
    Job,
    JobStatusPayload,
    Requester,
    SubmitResult,
    TranscodeRequest,
)
from ...services.runtime import TranscodeRuntime
from ..dependencies import get_requester, get_runtime

router = APIRouter(tags=["transcodes"])


@router.post(
    "/transcodes",
    response_model=SubmitResult,
    status_code=status.HTTP_202_ACCEPTED,
)
async def submit_transcode(
    payload: TranscodeRequest,
    runtime: TranscodeRuntime = Depends(get_runtime),
    requester: Requester = Depends(get_requester),
) -> SubmitResult:
    return await runtime.submit_transcode(
        payload.video_id, payload.format, payload.resolution, requester
    )


@router.get(
    "/transcodes/{job_id}",
    response_model=Job,
    dependencies=[Depends(get_requester)],
)
async def get_transcode(
    job_id: str,
    runtime: TranscodeRuntime = Depends(get_runtime),
) -> Job:
    return await runtime.get_job(job_id)


@router.get(
    "/transcodes/{job_id}/status",
    response_model=JobStatusPayload,
    dependencies=[Depends(get_requester)],
)
async def get_transcode_status(
    job_id: str,
    runtime: TranscodeRuntime = Depends(get_runtime),
) -> JobStatusPayload:
    return await runtime.get_transcode_status(job_id)


@router.post("/bulk-transcode", status_code=status.HTTP_202_ACCEPTED)
async def bulk_transcode(
    payload: BulkTranscodeRequest,
    runtime: TranscodeRuntime = Depends(get_runtime),
    requester: Requester = Depends(get_requester),
) -> dict[str, Any]:
    result = await runtime.submit_bulk(
        payload.video_ids,
        payload.format,
        payload.resolution,
        payload.count,
        requester,
    )
    return {
        "message": result.message,
        "started": result.started,
        "accepted": result.accepted,
        "jobs": [item.model_dump(mode="json") for item in result.items],
    }
