"""Signed enclave responses.

A response commits to the payload cell's representation hash: the hash is
signed as raw bytes, then emitted both as a JSON artifact and as a cell the
on-chain verifier consumes:

    op_code:uint32 | payload bits | payload refs | ^[signature:512]

The payload itself starts with ``timestamp:uint64 query_id:uint64``.
"""

from __future__ import annotations

import base64
import logging

from pytoniq_core import Cell, begin_cell

from tonteeton.config import ResponseConfig
from tonteeton.core.cells import BocCodec
from tonteeton.core.logging import operation_scope
from tonteeton.core.sealing import write_file
from tonteeton.core.signature import SignatureKey, SignatureService
from tonteeton.errors import ConfigurationError, SerializationError
from tonteeton.models.response import EnclaveResponse, ResponseHeader
from tonteeton.protocols.cells import CellCodec

logger = logging.getLogger(__name__)

_HEADER_BITS = 128
_MAX_OP_CODE = (1 << 32) - 1


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def build_response(
    payload: Cell,
    signing_key: SignatureKey | bytes,
    codec: CellCodec | None = None,
) -> EnclaveResponse:
    """Hash and sign ``payload``; identical inputs always give identical output."""
    codec = codec or BocCodec()
    key = signing_key if isinstance(signing_key, SignatureKey) else SignatureKey.from_bytes(signing_key)

    payload_boc = codec.serialize(payload)
    digest = codec.hash(payload)
    signature = key.sign(digest)
    return EnclaveResponse(
        signature=_b64(signature),
        payload=_b64(payload_boc),
        hash=_b64(digest),
    )


def read_header(payload: Cell, op_code: int) -> ResponseHeader:
    if not 0 <= op_code <= _MAX_OP_CODE:
        raise ConfigurationError(f"op code does not fit in 32 bits: {op_code}")
    body = payload.begin_parse()
    if body.remaining_bits < _HEADER_BITS:
        raise SerializationError(
            f"payload has {body.remaining_bits} bits, need at least {_HEADER_BITS} for the header"
        )
    timestamp = body.load_uint(64)
    query_id = body.load_uint(64)
    return ResponseHeader(op_code=op_code, timestamp=timestamp, query_id=query_id)


class ResponseBuilder:
    """Produces signed responses with the enclave's sealed signature key."""

    def __init__(
        self,
        config: ResponseConfig,
        signatures: SignatureService,
        codec: CellCodec | None = None,
    ) -> None:
        self._config = config
        self._signatures = signatures
        self._codec = codec or BocCodec()

    def build_response(self, payload: Cell) -> EnclaveResponse:
        return build_response(payload, self._signatures.get_signature_key(), self._codec)

    def save_response(self, payload: Cell) -> EnclaveResponse:
        """Build the response and write it as JSON to the configured path."""
        with operation_scope(operation="save_response", record_path=self._config.response_path):
            response = self.build_response(payload)
            path = self._config.response_path
            write_file(path, response.to_json().encode("utf-8"), mode=0o644)
            logger.info("Wrote enclave response to %s", path)
            return response

    def pack_response_to_cell(self, payload: Cell, op_code: int) -> Cell:
        with operation_scope(operation="pack_response"):
            header = read_header(payload, op_code)
            if len(payload.refs) > 3:
                raise SerializationError("payload uses all 4 refs, none left for the signature")
            response = self.build_response(payload)
            signature = base64.b64decode(response.signature)

            signature_cell = begin_cell().store_bytes(signature).end_cell()
            builder = begin_cell().store_uint(header.op_code, 32).store_bits(payload.bits)
            for ref in payload.refs:
                builder = builder.store_ref(ref)
            packed = builder.store_ref(signature_cell).end_cell()
            logger.info(
                "Packed response op=0x%08x timestamp=%d query_id=%d",
                header.op_code,
                header.timestamp,
                header.query_id,
            )
            return packed

    def pack_response_boc(self, payload: Cell, op_code: int) -> bytes:
        return self._codec.serialize(self.pack_response_to_cell(payload, op_code))


__all__ = ["ResponseBuilder", "build_response", "read_header"]
