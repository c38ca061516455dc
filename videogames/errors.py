"""Exceptions raised by the videogames client."""

from typing import Optional


class VideogamesError(Exception):
    """Base class for every error raised by this package."""


class BackendError(VideogamesError):
    """Raised when an upstream HTTP endpoint fails."""


class SubmissionError(BackendError):
    """Raised when the backend refuses or never answers a creation request."""

    def __init__(self, details: str, status_code: Optional[int] = None) -> None:
        super().__init__(details)
        self.details = details
        self.status_code = status_code


class CatalogError(BackendError):
    """Raised when the game catalog cannot be fetched."""


class FormError(VideogamesError):
    """Raised when a form is driven in a way its current state forbids."""


class UnknownFieldError(FormError):
    pass


class SubmissionInProgressError(FormError):
    pass


class InvalidFieldValueError(FormError):
    pass


class GenresUnavailableError(FormError):
    pass


class FormClosedError(FormError):
    pass


class FormNotFoundError(FormError):
    pass
