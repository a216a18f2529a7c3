"""Closed error taxonomy for sealed key storage and response building.

Callers branch on ``kind`` (or the exception class), never on message text.
Messages carry the record role and path for diagnostics and never include
key material.
"""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path
from typing import ClassVar


class ErrorKind(StrEnum):
    not_initialized = "not_initialized"
    tamper_or_corruption = "tamper_or_corruption"
    configuration = "configuration"
    io_failure = "io_failure"
    serialization = "serialization"


class EnclaveError(Exception):
    """Base class for every failure surfaced by tonteeton."""

    kind: ClassVar[ErrorKind]

    def __init__(
        self,
        message: str,
        *,
        role: str | None = None,
        path: Path | str | None = None,
    ) -> None:
        super().__init__(message)
        self.role = role
        self.path = Path(path) if path is not None else None


class NotInitializedError(EnclaveError):
    """No key has been generated yet for this configuration."""

    kind = ErrorKind.not_initialized


class RecordNotFoundError(NotInitializedError):
    """A sealed record file does not exist."""


class TamperError(EnclaveError):
    """Sealed data failed authentication or has an unexpected shape."""

    kind = ErrorKind.tamper_or_corruption


class ConfigurationError(EnclaveError):
    kind = ErrorKind.configuration


class StorageError(EnclaveError):
    """Filesystem failure other than a missing file."""

    kind = ErrorKind.io_failure


class SerializationError(EnclaveError):
    kind = ErrorKind.serialization


__all__ = [
    "ConfigurationError",
    "EnclaveError",
    "ErrorKind",
    "NotInitializedError",
    "RecordNotFoundError",
    "SerializationError",
    "StorageError",
    "TamperError",
]
