from __future__ import annotations

from typing import Protocol, runtime_checkable

from tonteeton.models.sealing import SealPolicy


@runtime_checkable
class Sealer(Protocol):
    """Hardware sealing primitive.

    ``unseal`` must raise ``TamperError`` when authentication fails, including
    when ``context_tag`` differs from the one used at seal time.
    """

    def seal(self, plaintext: bytes, context_tag: bytes, policy: SealPolicy) -> bytes: ...

    def unseal(self, ciphertext: bytes, context_tag: bytes) -> bytes: ...


__all__ = ["Sealer"]
