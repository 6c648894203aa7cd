from __future__ import annotations

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from ...domain.assets import MediaAsset, MediaAssetCreate
from ...domain.jobs import Job, Requester, VideoVersions
from ...services.runtime import TranscodeRuntime
from ..dependencies import get_requester, get_runtime

router = APIRouter(prefix="/videos", tags=["videos"])


class VideoRegisterRequest(BaseModel):
    title: str
    file_path: str
    is_public: bool = True


class ThumbnailResponse(BaseModel):
    thumbnail_path: str | None = None


@router.post("", response_model=MediaAsset, status_code=status.HTTP_201_CREATED)
async def register_video(
    payload: VideoRegisterRequest,
    runtime: TranscodeRuntime = Depends(get_runtime),
    requester: Requester = Depends(get_requester),
) -> MediaAsset:
    return await runtime.register_asset(
        MediaAssetCreate(
            owner_identity=requester.identity,
            title=payload.title,
            file_path=payload.file_path,
            is_public=payload.is_public,
        )
    )


@router.get("/{video_id}/versions", response_model=VideoVersions)
async def list_versions(
    video_id: str,
    runtime: TranscodeRuntime = Depends(get_runtime),
    requester: Requester = Depends(get_requester),
) -> VideoVersions:
    return await runtime.list_versions(video_id, requester)


@router.get("/{video_id}/transcodes", response_model=list[Job])
async def list_transcodes(
    video_id: str,
    runtime: TranscodeRuntime = Depends(get_runtime),
    requester: Requester = Depends(get_requester),
) -> list[Job]:
    return await runtime.list_transcodes(video_id, requester)


@router.post("/{video_id}/thumbnail", response_model=ThumbnailResponse)
async def generate_thumbnail(
    video_id: str,
    runtime: TranscodeRuntime = Depends(get_runtime),
    requester: Requester = Depends(get_requester),
) -> ThumbnailResponse:
    path = await runtime.generate_thumbnail(video_id, requester=requester)
    return ThumbnailResponse(thumbnail_path=str(path) if path else None)
