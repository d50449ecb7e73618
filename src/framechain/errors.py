"""Exception hierarchy shared by the services and the HTTP layer.

Each class carries the HTTP status the API maps it to, so services raise
domain errors and never build HTTP responses themselves.
"""

from typing import Optional


class FrameChainError(Exception):
    """Base class for all pipeline errors."""

    status_code = 500


class InvalidRequestError(FrameChainError, ValueError):
    """Input rejected before any state was changed."""

    status_code = 400


class ChainBrokenError(InvalidRequestError):
    """A chained segment has no usable upstream last frame."""


class NotFoundError(FrameChainError, LookupError):
    status_code = 404


class ForbiddenError(FrameChainError, PermissionError):
    status_code = 403


class ConflictError(FrameChainError):
    """The resource is busy (in-flight generation or orchestration run)."""

    status_code = 409


class InvalidTransitionError(ConflictError):
    """Enhancement job state change not allowed from its current state."""


class ProviderError(FrameChainError, RuntimeError):
    """An external collaborator (generation, frames, upscaling) failed."""

    status_code = 502

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status
