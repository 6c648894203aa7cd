"""SQLAlchemy ORM models used by the job store."""

from .asset import MediaAssetModel
from .job import TranscodeJobModel

__all__ = [
    "MediaAssetModel",
    "TranscodeJobModel",
]
