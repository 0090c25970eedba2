# errors.py
from __future__ import annotations

from dataclasses import dataclass


class BuilderError(Exception):
    """Base class for every error raised by the build worker."""
    pass


class ConfigurationError(BuilderError):
    """
    A required setting, directory or executable is missing.

    Raised before any process is spawned (per step) or at startup
    (for global settings).
    """
    pass


class ValidationError(BuilderError):
    """A fetched job is not acceptable for this worker."""
    pass


class APIError(BuilderError):
    """Raised when job API requests fail."""
    pass


class UploadError(BuilderError):
    """The remote store rejected an upload or could not be reached."""
    pass


class StreamingError(BuilderError):
    """The upload producer failed while streaming the request body."""
    pass


class JobCancelled(BuilderError):
    """The worker was asked to stop while a job was running."""
    pass


@dataclass
class ProcessError(BuilderError):
    """
    An external command ran but did not succeed.

    exit_code is None when the process could not be started or waited on.
    """
    command: str
    arguments: list[str]
    exit_code: int | None
    message: str
    output_tail: str = ""

    def __str__(self) -> str:
        line = f"{self.message}: {self.command}"
        if self.exit_code is not None:
            line = f"{self.message} (exit={self.exit_code}): {self.command}"
        if self.output_tail:
            line += f"\n{self.output_tail}"
        return line


class InvalidJobError(ValidationError):
    """A job was claimed but its payload could not be parsed."""

    def __init__(self, job_id: str, message: str):
        super().__init__(message)
        self.job_id = job_id


@dataclass
class StepFailure(BuilderError):
    """A build step failed; wraps the underlying error with the step name."""
    step: str
    cause: BaseException

    @property
    def exit_code(self) -> int | None:
        return getattr(self.cause, "exit_code", None)

    def __str__(self) -> str:
        return f"{self.step} failed: {self.cause}"
