"""Core module: lightweight re-exports only."""

from tonteeton.core.box import BoxKey, BoxKeyService
from tonteeton.core.cells import BocCodec
from tonteeton.core.key_manager import KeyManager
from tonteeton.core.response import ResponseBuilder, build_response
from tonteeton.core.sealing import SealedCodec, SoftwareSealer
from tonteeton.core.signature import SignatureKey, SignatureService

__all__ = [
    "BocCodec",
    "BoxKey",
    "BoxKeyService",
    "KeyManager",
    "ResponseBuilder",
    "SealedCodec",
    "SignatureKey",
    "SignatureService",
    "SoftwareSealer",
    "build_response",
]
