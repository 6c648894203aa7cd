"""Typed failures surfaced by the transcode core.

Every error carries a stable ``code`` so outer layers can serialise it
without knowing the class hierarchy.
"""

from __future__ import annotations


class TranscodeError(Exception):
    """Base class for all failures raised by the transcode core."""

    code = "TranscodeError"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code)
        self.message = message or self.code


class InvalidArgument(TranscodeError):
    """A requested format, resolution or count is outside the allowed set."""

    code = "InvalidArgument"


class NotFound(TranscodeError):
    """Unknown source asset or job identifier."""

    code = "NotFound"


class AccessDenied(TranscodeError):
    """The requester may not read the source asset."""

    code = "AccessDenied"


class SourceUnavailable(TranscodeError):
    """The input media file is missing at execution time."""

    code = "SourceUnavailable"


class EncodeFailed(TranscodeError):
    """The encode engine failed or produced no usable output."""

    code = "EncodeFailed"


class EncodeTimeout(EncodeFailed):
    code = "Timeout"


class StoreUnavailable(TranscodeError):
    """The job or asset store failed transiently."""

    code = "StoreUnavailable"


class InvalidStateTransition(TranscodeError):
    """A status write would leave a terminal state or skip ``processing``."""

    code = "InvalidStateTransition"
