"""
Failure taxonomy for the gallery service.

Each failure carries the HTTP status the API layer answers with and a
client-safe message. Store failures are logged and answered with a generic 500
so their message never reaches the client.
"""

from typing import Any


class GalleryFailure(Exception):
    """
    Base class for every failure the service reports on purpose.

    Usage:
        raise NotFoundFailure("Photo not found", photo_id=photo_id)
    """

    status_code = 500

    def __init__(self, message: str, **context: Any) -> None:
        self.message = message
        self.context = context
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
        return f"{self.message} ({ctx_str})" if ctx_str else self.message

    def to_dict(self) -> dict[str, Any]:
        """For logs."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            **self.context,
        }


class ValidationFailure(GalleryFailure):
    """Bad or missing input."""

    status_code = 400


class AuthFailure(GalleryFailure):
    """Bad credentials, or a bearer token that is absent or unknown."""

    status_code = 401


class NotFoundFailure(GalleryFailure):
    """Unknown photo id."""

    status_code = 404


class StoreFailure(GalleryFailure):
    """The durable store could not be read or written."""

    status_code = 500


class CorruptStoreFailure(StoreFailure):
    """The stored collection document cannot be parsed."""


class StoreConflictFailure(StoreFailure):
    """The stored document changed between load and save."""
