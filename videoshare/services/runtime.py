"""Wiring of stores, encoder and worker pool into one process-wide unit."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncEngine

from ..core.config import Settings, get_settings
from ..db.session import get_engine, get_sessionmaker, init_db
from ..domain.assets import MediaAsset, MediaAssetCreate
from ..domain.errors import NotFound
from ..domain.jobs import (
    BulkResult,
    Job,
    JobStatusPayload,
    Requester,
    SubmitResult,
    VideoVersions,
)
from ..repositories.assets import (
    AssetsRepository,
    InMemoryAssetsRepository,
    SqlAlchemyAssetsRepository,
)
from ..repositories.jobs import (
    InMemoryJobsRepository,
    JobsRepository,
    SqlAlchemyJobsRepository,
)
from .access import coerce_id, ensure_can_read
from .assets import AssetRegistrar
from .bulk import BulkDispatcher
from .encoding import Encoder, FfmpegEncoder
from .invoker import EncodeInvoker
from .orchestrator import TranscodeOrchestrator
from .status import StatusQuery
from .tasks import WorkerPool
from .thumbnails import ThumbnailGenerator

logger = structlog.get_logger(__name__)

_SYSTEM = Requester(identity="system", is_privileged=True)


@dataclass
class TranscodeRuntime:
    settings: Settings
    jobs: JobsRepository
    assets: AssetsRepository
    encoder: Encoder
    pool: WorkerPool
    invoker: EncodeInvoker
    orchestrator: TranscodeOrchestrator
    status: StatusQuery
    bulk: BulkDispatcher
    thumbnails: ThumbnailGenerator
    registrar: AssetRegistrar
    engine: Optional[AsyncEngine] = None

    async def start(self) -> None:
        self.settings.video_dir.mkdir(parents=True, exist_ok=True)
        self.settings.thumbnail_dir.mkdir(parents=True, exist_ok=True)
        self.settings.upload_dir.mkdir(parents=True, exist_ok=True)
        if self.engine is not None:
            await init_db(self.engine)
        self.pool.start()
        logger.info(
            "runtime.started",
            workers=self.pool.size,
            persistent=self.engine is not None,
        )

    async def stop(self) -> None:
        await self.pool.stop()
        if self.engine is not None:
            await self.engine.dispose()
        logger.info("runtime.stopped")

    async def submit_transcode(
        self,
        source_id: UUID | str,
        format: str,
        resolution: str | None,
        requester: Requester,
    ) -> SubmitResult:
        return await self.orchestrator.submit(source_id, format, resolution, requester)

    async def get_transcode_status(self, job_id: UUID | str) -> JobStatusPayload:
        return await self.status.get_status(job_id)

    async def get_job(self, job_id: UUID | str) -> Job:
        return await self.status.get_job(job_id)

    async def submit_bulk(
        self,
        source_ids: Sequence[UUID | str],
        format: str,
        resolution: str | None,
        desired_count: int | None,
        requester: Requester,
    ) -> BulkResult:
        return await self.bulk.submit_many(
            source_ids, format, resolution, desired_count, requester
        )

    async def register_asset(self, payload: MediaAssetCreate) -> MediaAsset:
        return await self.registrar.register(payload)

    async def list_transcodes(
        self, source_id: UUID | str, requester: Requester
    ) -> list[Job]:
        return await self.status.list_transcodes(source_id, requester)

    async def list_versions(
        self, source_id: UUID | str, requester: Requester
    ) -> VideoVersions:
        return await self.status.list_versions(source_id, requester)

    async def generate_thumbnail(
        self,
        source_id: UUID | str,
        input_path: Path | None = None,
        requester: Requester | None = None,
    ) -> Path | None:
        """Extract a thumbnail inline and return its path, or ``None`` on failure."""

        source_id = coerce_id(source_id)
        asset = await self.assets.get(source_id)
        if asset is None:
            raise NotFound(f"video {source_id} not found")
        ensure_can_read(asset, requester or _SYSTEM)

        path = Path(input_path or asset.file_path)
        duration = asset.duration_seconds
        if duration <= 0 and path.is_file():
            duration = await self.encoder.probe_duration(path)
            if duration > 0:
                await self.assets.update_metadata(source_id, duration_seconds=duration)
        return await self.thumbnails.generate(source_id, path, duration)


def build_runtime(
    settings: Settings | None = None,
    *,
    jobs_repo: JobsRepository | None = None,
    assets_repo: AssetsRepository | None = None,
    encoder: Encoder | None = None,
) -> TranscodeRuntime:
    """Assemble a runtime; explicit repositories override ``database_url``."""

    settings = settings or get_settings()
    engine: AsyncEngine | None = None
    if (jobs_repo is None or assets_repo is None) and settings.database_url:
        engine = get_engine(settings)
        session_factory = get_sessionmaker(engine)
        jobs_repo = jobs_repo or SqlAlchemyJobsRepository(session_factory)
        assets_repo = assets_repo or SqlAlchemyAssetsRepository(session_factory)
    jobs_repo = jobs_repo or InMemoryJobsRepository()
    assets_repo = assets_repo or InMemoryAssetsRepository()

    encoder = encoder or FfmpegEncoder(
        ffmpeg_bin=settings.ffmpeg_bin,
        ffprobe_bin=settings.ffprobe_bin,
        stderr_tail_lines=settings.stderr_tail_lines,
    )
    thumbnails = ThumbnailGenerator(
        encoder,
        settings.thumbnail_dir,
        size=settings.thumbnail_size,
        position=settings.thumbnail_position,
    )
    invoker = EncodeInvoker(
        jobs_repo,
        encoder,
        timeout_seconds=settings.encode_timeout_seconds,
        write_retries=settings.store_write_retries,
        retry_delay_seconds=settings.store_retry_delay_seconds,
    )
    pool = WorkerPool(invoker, thumbnails, size=settings.transcode_workers)
    orchestrator = TranscodeOrchestrator(jobs_repo, assets_repo, pool, settings.video_dir)
    return TranscodeRuntime(
        settings=settings,
        jobs=jobs_repo,
        assets=assets_repo,
        encoder=encoder,
        pool=pool,
        invoker=invoker,
        orchestrator=orchestrator,
        status=StatusQuery(jobs_repo, assets_repo),
        bulk=BulkDispatcher(orchestrator),
        thumbnails=thumbnails,
        registrar=AssetRegistrar(assets_repo, encoder, pool, settings.upload_dir),
        engine=engine,
    )
