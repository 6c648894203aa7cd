from __future__ import annotations

from fastapi import Header, HTTPException, Request, status

from ..domain.jobs import Requester
from ..services.runtime import TranscodeRuntime

_TRUTHY = {"1", "true", "yes", "on"}


async def get_runtime(request: Request) -> TranscodeRuntime:
    runtime = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Transcode runtime is not initialised",
        )
    return runtime


async def get_requester(
    x_user: str | None = Header(default=None, alias="X-User"),
    x_user_privileged: str | None = Header(default=None, alias="X-User-Privileged"),
) -> Requester:
    """Identity forwarded by the authenticating proxy."""

    if not x_user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    privileged = (x_user_privileged or "").strip().lower() in _TRUTHY
    return Requester(identity=x_user, is_privileged=privileged)
