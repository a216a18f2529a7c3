from __future__ import annotations

import json
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class SealPolicy(StrEnum):
    """Which enclave identity a sealing key is bound to."""

    unique = "unique"
    """Bound to this exact enclave build. Unreadable after a rebuild."""
    product = "product"
    """Bound to the signer/product identity. Survives rebuilds by the same vendor."""


class CreationMarker(BaseModel):
    model_config = ConfigDict(frozen=True)

    version: str
    created_at: datetime

    def canonical_bytes(self) -> bytes:
        payload = {
            "created_at": self.created_at.isoformat(),
            "version": self.version,
        }
        return json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")


__all__ = ["CreationMarker", "SealPolicy"]
