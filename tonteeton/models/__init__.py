from __future__ import annotations

from tonteeton.models.response import EnclaveResponse, ResponseHeader
from tonteeton.models.sealing import CreationMarker, SealPolicy

__all__ = [
    "CreationMarker",
    "EnclaveResponse",
    "ResponseHeader",
    "SealPolicy",
]
