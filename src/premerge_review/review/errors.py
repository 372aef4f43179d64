"""Exceptions raised by the review pipeline."""

# Substrings that mark a backend failure as "model not usable right now"
INACCESSIBLE_KEYWORDS = ("permission", "access", "denied", "disabled", "quota", "limit")


class ReviewError(Exception):
    """Base class for review pipeline failures."""


class ModelUnresolvedError(ReviewError):
    """No model could be resolved; raised before any generation call."""


class NoPartsProcessedError(ReviewError):
    """Every chunk failed or the run was cancelled before the first part."""


class BackendError(ReviewError):
    """Transport or protocol failure talking to a generation backend."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


class ModelInaccessibleError(BackendError):
    """The backend refused the model (permission, quota, disabled)."""


def is_inaccessible_error(error: BaseException) -> bool:
    """Whether a failure means the model is inaccessible rather than broken."""
    if isinstance(error, ModelInaccessibleError):
        return True
    message = str(error).lower()
    return any(keyword in message for keyword in INACCESSIBLE_KEYWORDS)
