# errors.py — Domain errors raised by the card engine
# Each error carries the HTTP status the API layer answers with.
from typing import Any, Dict, Optional


class FivetwoError(Exception):
    """Base class for errors surfaced to API callers"""
    http_status = 500
    code = "internal"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "code": self.code}


class NotFound(FivetwoError):
    http_status = 404
    code = "not_found"


class InvalidArgument(FivetwoError):
    http_status = 400
    code = "invalid_argument"


class AlreadyExists(FivetwoError):
    http_status = 409
    code = "already_exists"


class VersionConflict(FivetwoError):
    """Optimistic-lock mismatch. Callers re-fetch and retry with current_version."""
    http_status = 409
    code = "version_conflict"

    def __init__(self, current_version: int, message: Optional[str] = None):
        super().__init__(
            message or f"Version conflict: card is at version {current_version}"
        )
        self.current_version = current_version

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["current_version"] = self.current_version
        return data
