# Overview: Domain exceptions shared by report and document services.

from backoffice.validation import FilterValidationError, ValidationError


class NotFoundError(LookupError):
    """Requested document does not exist."""


class StageTransitionError(ValueError):
    """Document stage does not allow the requested action."""


__all__ = [
    "FilterValidationError",
    "NotFoundError",
    "StageTransitionError",
    "ValidationError",
]
