from __future__ import annotations

from typing import Optional


class TaskflowError(Exception):
    """Base class for every error raised by the interpretation pipeline."""


class ConfigurationError(TaskflowError, ValueError):
    """Raised at startup when configuration values cannot be used."""


class CompletionError(TaskflowError):
    """Base class for failures talking to the text completion service."""


class CompletionServiceError(CompletionError):
    """Timeout, non-2xx status or malformed envelope from the completion service.

    Recoverable: the calling stage switches to its local fallback.
    """


class CompletionUnavailableError(CompletionError, ConnectionError):
    """The completion service cannot be reached at all (e.g. connection refused).

    Stages let this propagate so the orchestrator returns the degraded result.
    """


class ExtractionParseError(TaskflowError):
    """The extraction response held no usable JSON object."""


class AnalysisParseError(TaskflowError):
    """The priority analysis response held no usable JSON object."""


class PipelineFailure(TaskflowError):
    """An exception escaped one of the pipeline stages."""

    def __init__(self, stage: str, cause: Optional[BaseException] = None):
        self.stage = stage
        self.cause = cause
        detail = f"{type(cause).__name__}: {cause}" if cause is not None else "unknown error"
        super().__init__(f"stage '{stage}' failed ({detail})")
