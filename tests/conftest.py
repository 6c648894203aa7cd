"""Pytest configuration and fixtures for transcode tests."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from videoshare.core.config import Settings
from videoshare.domain.assets import MediaAssetCreate
from videoshare.domain.errors import EncodeFailed
from videoshare.services.runtime import build_runtime


class FakeEncoder:
    """Stands in for ffmpeg: reports progress and writes a small output file."""

    def __init__(self, duration: float = 10.0, steps=(0.25, 0.5, 0.75, 1.0)) -> None:
        self.duration = duration
        self.steps = tuple(steps)
        self.fail_with: Exception | None = None
        self.fail_frames = False
        self.write_output = True
        self.gate: asyncio.Event | None = None
        self.calls: list[tuple[Path, Path, object]] = []
        self.frames: list[tuple[Path, Path, float, str]] = []

    async def encode(self, input_path, output_path, params, on_progress) -> None:
        self.calls.append((input_path, output_path, params))
        if self.gate is not None:
            await self.gate.wait()
        for fraction in self.steps:
            await on_progress(fraction)
            await asyncio.sleep(0)
        if self.fail_with is not None:
            raise self.fail_with
        if self.write_output:
            output_path.parent.mkdir(parents=True, exist_ok=True)
            output_path.write_bytes(b"encoded-" + output_path.suffix.encode())

    async def extract_frame(self, input_path, output_path, position_seconds, size) -> None:
        self.frames.append((input_path, output_path, position_seconds, size))
        if self.fail_frames:
            raise EncodeFailed("could not decode a frame")
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_bytes(b"\xff\xd8jpeg")

    async def probe_duration(self, path: Path) -> float:
        return self.duration


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        database_url=None,
        upload_dir=tmp_path / "uploads",
        video_dir=tmp_path / "videos",
        thumbnail_dir=tmp_path / "thumbnails",
        transcode_workers=2,
        enable_prometheus_metrics=False,
    )


@pytest.fixture
def encoder() -> FakeEncoder:
    return FakeEncoder()


@pytest.fixture
def source_file(tmp_path: Path) -> Path:
    path = tmp_path / "uploads" / "clip.mp4"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"\x00" * 2048)
    return path


@pytest.fixture
def runtime(settings: Settings, encoder: FakeEncoder):
    """In-memory runtime; start the pool inside the test's own event loop."""

    return build_runtime(settings, encoder=encoder)


@pytest.fixture
def make_asset(runtime, source_file: Path):
    """Insert a source asset directly, without queueing a thumbnail."""

    async def factory(owner: str = "alice", *, is_public: bool = True, file_path: Path | None = None):
        path = file_path or source_file
        return await runtime.assets.create(
            MediaAssetCreate(
                owner_identity=owner,
                title="clip",
                file_path=str(path),
                is_public=is_public,
            ),
            size=path.stat().st_size if path.exists() else 0,
            duration_seconds=10.0,
        )

    return factory
