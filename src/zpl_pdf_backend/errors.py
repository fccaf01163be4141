"""
Error taxonomy for the conversion service.

Input errors (InvalidInputError) are raised synchronously before a job exists.
Lookup errors (NotFoundError and subclasses) and AlreadyProcessedError are raised
to callers of the job API. ConversionError subclasses happen while a job is being
processed; the job manager records them as the job's failure message instead of
propagating them.
"""

from __future__ import annotations


class ZplServiceError(Exception):
    """Base class for every error raised by this package."""


class InvalidInputError(ZplServiceError):
    """Submitted content failed the structural pre-check."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class NotFoundError(ZplServiceError):
    pass


class JobNotFoundError(NotFoundError):
    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job {job_id} not found")
        self.job_id = job_id


class ArtifactNotFoundError(NotFoundError):
    def __init__(self, job_id: str, detail: str = "PDF not found or conversion not completed") -> None:
        super().__init__(detail)
        self.job_id = job_id


class InvalidTransitionError(ZplServiceError):
    """A job update would violate the job state machine."""


class AlreadyProcessedError(ZplServiceError):
    """Processing was requested for a job that is no longer pending."""

    def __init__(self, job_id: str, status: str) -> None:
        super().__init__(f"Job {job_id} is already {status}")
        self.job_id = job_id
        self.status = status


class ConversionError(ZplServiceError):
    """A failure while processing a job; recorded on the job as its terminal message."""

    kind = "conversion_error"


class MalformedInputError(ConversionError):
    kind = "malformed_input"


class UnsupportedInstructionError(ConversionError):
    kind = "unsupported_instruction"

    def __init__(self, instruction: str, label_index: int) -> None:
        super().__init__(f"label {label_index}: unsupported instruction {instruction}")
        self.instruction = instruction
        self.label_index = label_index


class StorageFailureError(ConversionError):
    kind = "storage_failure"


class RenderingError(ConversionError):
    kind = "rendering_error"
