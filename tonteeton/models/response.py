from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class EnclaveResponse(BaseModel):
    """Signed response artifact. Every field is standard padded base64."""

    model_config = ConfigDict(frozen=True)

    signature: str
    payload: str
    hash: str

    def to_json(self) -> str:
        return self.model_dump_json()


class ResponseHeader(BaseModel):
    """Fixed-width header fields of a packed response cell."""

    model_config = ConfigDict(frozen=True)

    op_code: int = Field(ge=0, lt=1 << 32)
    timestamp: int = Field(ge=0, lt=1 << 64)
    query_id: int = Field(ge=0, lt=1 << 64)


__all__ = ["EnclaveResponse", "ResponseHeader"]
