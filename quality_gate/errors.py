"""Exception types raised by collaborators and the generation service.

Gate rejections (complexity, fact-check, readability) are not exceptions:
they are returned as ``Rejected`` results. Only failures the pipeline cannot
act on are raised.
"""

from __future__ import annotations

from typing import Optional


class QualityGateError(Exception):
    """Base class for all errors raised by this package."""


class UpstreamFailure(QualityGateError):
    """A collaborator (LLM provider, search API, store) failed."""

    def __init__(self, cause: str, stage: Optional[str] = None):
        self.cause = cause
        self.stage = stage
        super().__init__(f"{stage}: {cause}" if stage else cause)


class DeadlineExceeded(UpstreamFailure):
    """The run deadline expired before or during a collaborator call."""


class AuthorizationError(QualityGateError):
    """The caller is not signed in (401) or does not own the topic (403)."""

    def __init__(self, message: str, status_code: int = 403):
        self.status_code = status_code
        super().__init__(message)


class NotFoundError(QualityGateError):
    """A user, topic or strategy does not exist."""


class StatusConflict(QualityGateError):
    """The topic could not be moved into "generating" (already running)."""
