from __future__ import annotations

from uuid import UUID

from ..domain.assets import MediaAsset
from ..domain.errors import AccessDenied, InvalidArgument, NotFound
from ..domain.jobs import Requester, TargetFormat, TargetResolution

_KEEP_ORIGINAL = {"", "original"}


def coerce_id(value: UUID | str, kind: str = "video") -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError as exc:
        raise NotFound(f"{kind} {value} not found") from exc


def parse_format(value: TargetFormat | str) -> TargetFormat:
    try:
        return TargetFormat(value)
    except ValueError as exc:
        valid = ", ".join(fmt.value for fmt in TargetFormat)
        raise InvalidArgument(f"Invalid format {value!r}. Valid formats: {valid}") from exc


def parse_resolution(value: TargetResolution | str | None) -> TargetResolution | None:
    """``None``, an empty string and ``"original"`` keep the source resolution."""

    if value is None or (isinstance(value, str) and value.lower() in _KEEP_ORIGINAL):
        return None
    try:
        return TargetResolution(value)
    except ValueError as exc:
        valid = ", ".join(res.value for res in TargetResolution)
        raise InvalidArgument(
            f"Invalid resolution {value!r}. Valid resolutions: {valid}"
        ) from exc


def ensure_can_read(asset: MediaAsset, requester: Requester) -> None:
    if requester.is_privileged or asset.is_public:
        return
    if asset.owner_identity == requester.identity:
        return
    raise AccessDenied(f"{requester.identity} may not access video {asset.id}")


def ensure_can_manage(asset: MediaAsset, requester: Requester) -> None:
    """Owner or privileged only; public visibility does not count."""

    if requester.is_privileged or asset.owner_identity == requester.identity:
        return
    raise AccessDenied(f"{requester.identity} may not manage video {asset.id}")
