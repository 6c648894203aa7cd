from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


class MediaAssetCreate(BaseModel):
    owner_identity: str
    title: str
    file_path: str
    is_public: bool = True


class MediaAsset(BaseModel):
    """Source video referenced by transcode jobs; owned by the asset layer."""

    id: UUID = Field(default_factory=uuid4)
    owner_identity: str
    title: str
    file_path: str
    is_public: bool = True
    size: int = Field(default=0, ge=0)
    duration_seconds: float = Field(
        default=0.0,
        ge=0.0,
        description="Probed media duration; zero while unknown",
    )
    created_at: datetime = Field(default_factory=datetime.utcnow)

    model_config = ConfigDict(from_attributes=True)
