"""
Pipeline error types.

Missing readings inside a series are not errors; they stay NaN and are
handled by interpolation and the day filter. These exceptions cover the
failures that must stop a gage's run and be reported.
"""


class PipelineError(Exception):
    """Base class for all pipeline failures."""


class DataRetrievalError(PipelineError):
    """An upstream data service failed or returned an unusable payload."""

    def __init__(self, service, message):
        self.service = service
        super().__init__(f"{service}: {message}")


class SiteConfigurationError(PipelineError, ValueError):
    """A site number, coordinate pair, or date window is invalid."""


class EmptyResultError(PipelineError):
    """A service or pipeline stage produced no rows."""
