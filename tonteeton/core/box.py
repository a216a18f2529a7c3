"""X25519 key agreement keys, sealed alongside the signature key.

Uses the ``encryption_keys`` layout (``box_key.*``) and the same
generate-once lifecycle as signing keys.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey, X25519PublicKey

from tonteeton.config import KeysConfig
from tonteeton.core.key_manager import KeyManager
from tonteeton.errors import ConfigurationError, TamperError

_SCALAR_SIZE = 32
_PUBLIC_KEY_SIZE = 32
BOX_KEY_SIZE = _SCALAR_SIZE + _PUBLIC_KEY_SIZE


def _raw_public_bytes(public_key: X25519PublicKey) -> bytes:
    return public_key.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


def generate_box_key() -> tuple[bytes, bytes]:
    private_key = X25519PrivateKey.generate()
    scalar = private_key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_key = _raw_public_bytes(private_key.public_key())
    return public_key, scalar + public_key


@dataclass(frozen=True, slots=True)
class BoxKey:
    material: bytes = field(repr=False)
    _private: X25519PrivateKey = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if len(self.material) != BOX_KEY_SIZE:
            raise ConfigurationError(f"invalid keys size: {len(self.material)}")
        private = X25519PrivateKey.from_private_bytes(self.material[:_SCALAR_SIZE])
        if _raw_public_bytes(private.public_key()) != self.material[_SCALAR_SIZE:]:
            raise ConfigurationError("public key does not match the private scalar")
        object.__setattr__(self, "_private", private)

    @classmethod
    def from_bytes(cls, material: bytes) -> BoxKey:
        return cls(bytes(material))

    @property
    def public_key(self) -> bytes:
        return self.material[_SCALAR_SIZE:]

    def exchange(self, peer_public_key: bytes) -> bytes:
        """Derive the shared secret with a peer's raw X25519 public key."""
        if len(peer_public_key) != _PUBLIC_KEY_SIZE:
            raise ConfigurationError(f"invalid peer public key size: {len(peer_public_key)}")
        peer = X25519PublicKey.from_public_bytes(bytes(peer_public_key))
        return self._private.exchange(peer)


class BoxKeyService:
    def __init__(self, config: KeysConfig, key_manager: KeyManager) -> None:
        if key_manager.config != config:
            raise ConfigurationError("key manager was built for a different key config")
        self._config = config
        self._key_manager = key_manager

    def get_box_key(self) -> BoxKey:
        material = self._key_manager.get_private_key(generate_box_key)
        try:
            return BoxKey.from_bytes(material)
        except ConfigurationError as exc:
            raise TamperError(
                f"stored private key is invalid: {exc}",
                role="private key",
                path=self._config.private_key_path,
            ) from exc

    def get_public_key(self) -> bytes:
        return self.get_box_key().public_key

    def save_key(self, private_key: bytes, public_key: bytes | None = None) -> BoxKey:
        key = BoxKey.from_bytes(private_key)
        if public_key is not None and bytes(public_key) != key.public_key:
            raise ConfigurationError("supplied public key does not match the private key")
        self._key_manager.save(key.public_key, key.material)
        return key


__all__ = ["BOX_KEY_SIZE", "BoxKey", "BoxKeyService", "generate_box_key"]
