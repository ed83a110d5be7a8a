"""Fatal error classes. Any of these aborts the run with no document written."""

from __future__ import annotations


class SynthesisError(RuntimeError):
    """Base class for pipeline-aborting failures."""


class ServiceError(SynthesisError):
    """The content-understanding service failed or timed out."""


class ResponseParseError(SynthesisError):
    """A service response did not match the expected structure."""

    def __init__(self, message: str, raw_text: str = "") -> None:
        super().__init__(message)
        self.raw_text = raw_text
