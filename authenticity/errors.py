"""Typed errors raised by the verification core.

Scoring paths degrade instead of raising; these cover the cases that must
reach the caller.
"""


class AuthenticityError(Exception):
    """Base class for all service errors."""


class EvaluationDataError(AuthenticityError, ValueError):
    """Raised when a model evaluation batch is empty or unusable."""


class CapabilityMissingError(AuthenticityError, RuntimeError):
    """Raised when an optional backend library is not installed."""


class ClassifierUnavailableError(AuthenticityError):
    """Raised when no image classifier can run in this process."""


class OcrUnavailableError(AuthenticityError):
    """Raised when no OCR engine can run in this process."""


class ReportAlreadyReviewedError(AuthenticityError):
    """Raised when closing a false-positive report a second time."""
