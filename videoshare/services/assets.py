from __future__ import annotations

from pathlib import Path

import structlog

from ..domain.assets import MediaAsset, MediaAssetCreate
from ..domain.errors import InvalidArgument, SourceUnavailable
from ..repositories.assets import AssetsRepository
from .encoding import Encoder
from .tasks import ThumbnailTask, WorkerPool

logger = structlog.get_logger(__name__)


class AssetRegistrar:
    """Records an already-stored video and queues its thumbnail.

    Only files inside ``upload_dir`` are accepted; relative paths are taken
    relative to it.
    """

    def __init__(
        self,
        assets: AssetsRepository,
        encoder: Encoder,
        pool: WorkerPool,
        upload_dir: Path,
    ) -> None:
        self._assets = assets
        self._encoder = encoder
        self._pool = pool
        self._upload_dir = Path(upload_dir)

    def resolve_source(self, file_path: str) -> Path:
        root = self._upload_dir.resolve()
        path = (root / file_path).resolve()
        if not path.is_relative_to(root):
            raise InvalidArgument(f"file_path must be inside the upload directory: {file_path}")
        return path

    async def register(self, payload: MediaAssetCreate) -> MediaAsset:
        path = self.resolve_source(payload.file_path)
        if not path.is_file():
            raise SourceUnavailable(f"video file not found: {payload.file_path}")
        duration = await self._encoder.probe_duration(path)
        asset = await self._assets.create(
            payload.model_copy(update={"file_path": str(path)}),
            size=path.stat().st_size,
            duration_seconds=duration,
        )
        # thumbnail runs on the pool; registration does not wait for it
        self._pool.enqueue(
            ThumbnailTask(source_id=asset.id, input_path=path, duration_seconds=duration)
        )
        logger.info(
            "asset.registered",
            source_id=str(asset.id),
            owner=asset.owner_identity,
            size=asset.size,
            duration=duration,
        )
        return asset
