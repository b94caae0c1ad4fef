"""
Exception types shared by the pipeline stages.

Per-item failures (DownloadError, SearchError, ClassificationError) are caught
at the item boundary and turned into a skip. MissingCredentialsError and
QuotaExhaustedError end a run early.
"""


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class MissingCredentialsError(PipelineError):
    """A required API key is not set in the environment."""

    def __init__(self, name: str):
        super().__init__(f"{name} is not set")
        self.name = name


class DownloadError(PipelineError):
    """An image could not be fetched (non-200, timeout, connection error)."""


class SearchError(PipelineError):
    """The image search provider returned an error."""


class ClassificationError(PipelineError):
    """The vision model call failed for a single image."""


class QuotaExhaustedError(PipelineError):
    """The vision model reported that the request quota is used up."""
