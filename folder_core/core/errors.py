"""Error kinds surfaced by the folder core."""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    UNAUTHORIZED = "unauthorized"
    RECORD_NOT_FOUND = "record_not_found"
    NETWORK = "network"
    INTERNAL = "internal"


class FolderError(RuntimeError):
    """Base error for every failure raised by folder operations."""

    code: ErrorCode = ErrorCode.INTERNAL

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code.value)
        self.message = message or self.code.value

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code.value!r}, message={self.message!r})"


class UnauthorizedError(FolderError):
    """Raised when an operation needs a user token and no session is active."""

    code = ErrorCode.UNAUTHORIZED


class RecordNotFoundError(FolderError):
    """Raised when a referenced id does not exist in persistence."""

    code = ErrorCode.RECORD_NOT_FOUND


class NetworkError(FolderError):
    """Raised when a cloud call fails."""

    code = ErrorCode.NETWORK


class InternalError(FolderError):
    """Raised on persistence invariant violations."""

    code = ErrorCode.INTERNAL
