"""Best-effort still-frame extraction for newly registered videos."""

from __future__ import annotations

from pathlib import Path
from uuid import UUID

import structlog

from ..domain.errors import EncodeFailed, SourceUnavailable
from ..telemetry import THUMBNAILS
from .encoding import Encoder

logger = structlog.get_logger(__name__)


class ThumbnailGenerator:
    def __init__(
        self,
        encoder: Encoder,
        thumbnail_dir: Path,
        *,
        size: str = "320x240",
        position: float = 0.1,
    ) -> None:
        self._encoder = encoder
        self._thumbnail_dir = Path(thumbnail_dir)
        self._size = size
        self._position = position

    def thumbnail_path(self, source_id: UUID) -> Path:
        return self._thumbnail_dir / f"{source_id}.jpg"

    async def generate(
        self,
        source_id: UUID,
        input_path: Path,
        duration: float | None = None,
    ) -> Path | None:
        """Extract one frame; failures are logged and reported as ``None``."""

        output_path = self.thumbnail_path(source_id)
        try:
            if not Path(input_path).is_file():
                raise SourceUnavailable(f"input file not found: {input_path}")
            if not duration or duration <= 0:
                duration = await self._encoder.probe_duration(Path(input_path))
            await self._encoder.extract_frame(
                Path(input_path), output_path, duration * self._position, self._size
            )
            if not output_path.is_file() or output_path.stat().st_size == 0:
                raise EncodeFailed(f"no thumbnail written to {output_path}")
        except Exception as exc:
            THUMBNAILS.labels(outcome="failed").inc()
            logger.warning(
                "thumbnail.failed",
                source_id=str(source_id),
                input=str(input_path),
                error=str(exc),
            )
            return None

        THUMBNAILS.labels(outcome="generated").inc()
        logger.info("thumbnail.generated", source_id=str(source_id), path=str(output_path))
        return output_path
