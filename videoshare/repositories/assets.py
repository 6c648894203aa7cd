from __future__ import annotations

from typing import Protocol
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..domain.assets import MediaAsset, MediaAssetCreate
from ..models.asset import MediaAssetModel
from .base import translate_store_errors


class AssetsRepository(Protocol):
    async def create(
        self,
        payload: MediaAssetCreate,
        *,
        size: int = 0,
        duration_seconds: float = 0.0,
    ) -> MediaAsset: ...

    async def get(self, asset_id: UUID) -> MediaAsset | None: ...

    async def update_metadata(
        self,
        asset_id: UUID,
        *,
        size: int | None = None,
        duration_seconds: float | None = None,
    ) -> MediaAsset | None: ...


class InMemoryAssetsRepository:
    """Ephemeral asset lookup for tests and single-process deployments."""

    def __init__(self) -> None:
        self._assets: dict[UUID, MediaAsset] = {}

    async def create(
        self,
        payload: MediaAssetCreate,
        *,
        size: int = 0,
        duration_seconds: float = 0.0,
    ) -> MediaAsset:
        asset = MediaAsset(
            size=size,
            duration_seconds=duration_seconds,
            **payload.model_dump(),
        )
        self._assets[asset.id] = asset
        return asset

    async def get(self, asset_id: UUID) -> MediaAsset | None:
        return self._assets.get(asset_id)

    async def update_metadata(
        self,
        asset_id: UUID,
        *,
        size: int | None = None,
        duration_seconds: float | None = None,
    ) -> MediaAsset | None:
        asset = self._assets.get(asset_id)
        if asset is None:
            return None
        update_data: dict[str, object] = {}
        if size is not None:
            update_data["size"] = size
        if duration_seconds is not None:
            update_data["duration_seconds"] = duration_seconds
        updated = asset.model_copy(update=update_data)
        self._assets[asset_id] = updated
        return updated


class SqlAlchemyAssetsRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create(
        self,
        payload: MediaAssetCreate,
        *,
        size: int = 0,
        duration_seconds: float = 0.0,
    ) -> MediaAsset:
        async with translate_store_errors("assets.create"):
            async with self._session_factory() as session:
                model = MediaAssetModel(
                    owner_identity=payload.owner_identity,
                    title=payload.title,
                    file_path=payload.file_path,
                    is_public=payload.is_public,
                    size=size,
                    duration_seconds=duration_seconds,
                )
                session.add(model)
                await session.flush()
                await session.refresh(model)
                await session.commit()
                return MediaAsset.model_validate(model)

    async def get(self, asset_id: UUID) -> MediaAsset | None:
        async with translate_store_errors("assets.get"):
            async with self._session_factory() as session:
                model = await session.get(MediaAssetModel, asset_id)
                if not model:
                    return None
                return MediaAsset.model_validate(model)

    async def update_metadata(
        self,
        asset_id: UUID,
        *,
        size: int | None = None,
        duration_seconds: float | None = None,
    ) -> MediaAsset | None:
        async with translate_store_errors("assets.update_metadata"):
            async with self._session_factory() as session:
                model = await session.get(MediaAssetModel, asset_id)
                if not model:
                    return None
                if size is not None:
                    model.size = size
                if duration_seconds is not None:
                    model.duration_seconds = duration_seconds
                await session.commit()
                await session.refresh(model)
                return MediaAsset.model_validate(model)
