from __future__ import annotations

import logging
from dataclasses import dataclass, field

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from tonteeton.config import KeysConfig
from tonteeton.core.key_manager import KeyManager
from tonteeton.errors import ConfigurationError, TamperError

logger = logging.getLogger(__name__)

SEED_SIZE = 32
PUBLIC_KEY_SIZE = 32
PRIVATE_KEY_SIZE = SEED_SIZE + PUBLIC_KEY_SIZE
SIGNATURE_SIZE = 64


def _raw_public_bytes(public_key: Ed25519PublicKey) -> bytes:
    return public_key.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


def generate_signature_key() -> tuple[bytes, bytes]:
    """Generate an Ed25519 pair as ``(public_key, seed || public_key)``."""
    private_key = Ed25519PrivateKey.generate()
    seed = private_key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_key = _raw_public_bytes(private_key.public_key())
    return public_key, seed + public_key


@dataclass(frozen=True, slots=True)
class SignatureKey:
    """Ed25519 key held as 64 bytes: 32-byte seed followed by the public key."""

    material: bytes = field(repr=False)
    _private: Ed25519PrivateKey = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if len(self.material) != PRIVATE_KEY_SIZE:
            raise ConfigurationError(f"invalid keys size: {len(self.material)}")
        private = Ed25519PrivateKey.from_private_bytes(self.material[:SEED_SIZE])
        if _raw_public_bytes(private.public_key()) != self.material[SEED_SIZE:]:
            raise ConfigurationError("public key does not match the private key seed")
        object.__setattr__(self, "_private", private)

    @classmethod
    def from_bytes(cls, material: bytes) -> SignatureKey:
        return cls(bytes(material))

    @property
    def public_key(self) -> bytes:
        return self.material[SEED_SIZE:]

    @property
    def private_key(self) -> bytes:
        return self.material

    def sign(self, message: bytes) -> bytes:
        return self._private.sign(message)

    def verify(self, message: bytes, signature: bytes) -> bool:
        if len(signature) != SIGNATURE_SIZE:
            return False
        try:
            self._private.public_key().verify(signature, message)
        except InvalidSignature:
            return False
        return True


class SignatureService:
    """Ed25519 signing over a key kept sealed by a ``KeyManager``."""

    def __init__(self, config: KeysConfig, key_manager: KeyManager) -> None:
        if key_manager.config != config:
            raise ConfigurationError("key manager was built for a different key config")
        self._config = config
        self._key_manager = key_manager

    def get_signature_key(self) -> SignatureKey:
        material = self._key_manager.get_private_key(generate_signature_key)
        try:
            return SignatureKey.from_bytes(material)
        except ConfigurationError as exc:
            # Sealed material passed authentication, so a bad shape means it
            # was sealed by something other than this service.
            raise TamperError(
                f"stored private key is invalid: {exc}",
                role="private key",
                path=self._config.private_key_path,
            ) from exc

    def get_public_key(self) -> bytes:
        return self.get_signature_key().public_key

    def sign(self, message: bytes) -> bytes:
        return self.get_signature_key().sign(message)

    def verify(self, message: bytes, signature: bytes) -> bool:
        return self.get_signature_key().verify(message, signature)

    def save_key(self, private_key: bytes, public_key: bytes | None = None) -> SignatureKey:
        """Provision an operator-supplied key instead of an enclave-generated one."""
        key = SignatureKey.from_bytes(private_key)
        if public_key is not None and bytes(public_key) != key.public_key:
            raise ConfigurationError("supplied public key does not match the private key")
        self._key_manager.save(key.public_key, key.private_key)
        logger.info("Provisioned signature key for version %s", self._config.version)
        return key


__all__ = [
    "PRIVATE_KEY_SIZE",
    "PUBLIC_KEY_SIZE",
    "SIGNATURE_SIZE",
    "SignatureKey",
    "SignatureService",
    "generate_signature_key",
]
