from __future__ import annotations

from typing import Protocol, runtime_checkable

from pytoniq_core import Cell


@runtime_checkable
class CellCodec(Protocol):
    def serialize(self, cell: Cell) -> bytes: ...

    def deserialize(self, data: bytes) -> Cell: ...

    def hash(self, cell: Cell) -> bytes: ...


__all__ = ["CellCodec"]
