from __future__ import annotations

from typing import Optional


class DeployManagerError(Exception):
    """Base class for every error raised by the deploy manager."""


class JobValidationError(DeployManagerError):
    """Raised before any remote call when a job is missing required fields."""


class UnsupportedJobError(DeployManagerError):
    """Raised when a job type or remediation sub type has no handler."""


class PollTimeoutError(DeployManagerError):
    """Raised when a work unit reports no condition before the deadline."""


class PollCancelledError(DeployManagerError):
    pass


class ManifestDecodeError(DeployManagerError):
    pass


class CommandParseError(DeployManagerError):
    pass


class FeedbackError(DeployManagerError):
    """Raised when a work unit carries no usable job feedback values."""


class WorkClientError(DeployManagerError):
    def __init__(self, message: str, status: Optional[int] = None, reason: Optional[str] = None) -> None:
        super().__init__(message)
        self.status = status
        self.reason = reason


class WorkNotFoundError(WorkClientError):
    pass


class CredentialError(DeployManagerError):
    """Raised when neither in-cluster nor kubeconfig credentials resolve."""


class JobSourceError(DeployManagerError):
    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


__all__ = [
    "CommandParseError",
    "CredentialError",
    "DeployManagerError",
    "FeedbackError",
    "JobSourceError",
    "JobValidationError",
    "ManifestDecodeError",
    "PollCancelledError",
    "PollTimeoutError",
    "UnsupportedJobError",
    "WorkClientError",
    "WorkNotFoundError",
]
