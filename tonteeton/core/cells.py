"""Bag-of-cells codec backed by ``pytoniq-core``."""

from __future__ import annotations

import base64

from pytoniq_core import Cell

from tonteeton.errors import SerializationError


class BocCodec:
    """Serializes cells the way the on-chain verifier expects.

    BOCs carry a CRC32C checksum and no index (``b5ee9c72 41 ...``), which is
    what makes re-serializing a parsed payload reproduce the input bytes.
    """

    def serialize(self, cell: Cell) -> bytes:
        try:
            return cell.to_boc(has_idx=False, hash_crc32=True)
        except Exception as exc:  # noqa: BLE001
            raise SerializationError(f"failed to serialize cell: {exc}") from exc

    def deserialize(self, data: bytes) -> Cell:
        try:
            return Cell.one_from_boc(bytes(data))
        except Exception as exc:  # noqa: BLE001
            raise SerializationError(f"failed to parse BOC: {exc}") from exc

    def hash(self, cell: Cell) -> bytes:
        return cell.hash

    def from_base64(self, encoded: str) -> Cell:
        try:
            data = base64.b64decode(encoded, validate=True)
        except ValueError as exc:
            raise SerializationError("payload is not valid base64") from exc
        return self.deserialize(data)


__all__ = ["BocCodec"]
