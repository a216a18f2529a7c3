from tonteeton.protocols.cells import CellCodec
from tonteeton.protocols.sealing import Sealer

__all__ = ["CellCodec", "Sealer"]
