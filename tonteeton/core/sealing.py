"""Sealed file storage.

``SealedCodec`` persists blobs sealed by an injected ``Sealer`` and maps
filesystem and authentication failures onto the error taxonomy.
``SoftwareSealer`` is the AES-GCM sealer used when no enclave hardware is
present; it derives one key per policy from a root secret and the
corresponding identity, the same way the hardware derives sealing keys from
the enclave or signer measurement.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from tonteeton.config import SealerConfig
from tonteeton.errors import (
    ConfigurationError,
    RecordNotFoundError,
    StorageError,
    TamperError,
)
from tonteeton.models.sealing import SealPolicy
from tonteeton.protocols.sealing import Sealer

logger = logging.getLogger(__name__)

_MAGIC = b"TSL1"
_NONCE_SIZE = 12
_KEY_SIZE = 32
_ROOT_KEY_SIZE = 32
_POLICY_BYTES: dict[SealPolicy, int] = {
    SealPolicy.unique: 0x01,
    SealPolicy.product: 0x02,
}
_POLICY_BY_BYTE = {value: policy for policy, value in _POLICY_BYTES.items()}
_HEADER_SIZE = len(_MAGIC) + 1
_ROOT_KEY_ROLE = "sealer root key"


class SoftwareSealer:
    """AES-256-GCM sealing keyed by policy-specific HKDF derivations.

    Blob layout: ``magic(4) | policy(1) | nonce(12) | ciphertext+tag``.
    The header and the context tag are both authenticated.
    """

    def __init__(self, root_key: bytes, unique_id: bytes, product_id: bytes) -> None:
        if len(root_key) != _ROOT_KEY_SIZE:
            raise ConfigurationError(f"sealer root key must be {_ROOT_KEY_SIZE} bytes")
        self._keys: dict[SealPolicy, bytes] = {
            SealPolicy.unique: self._derive_key(root_key, unique_id, b"tonteeton-seal-unique"),
            SealPolicy.product: self._derive_key(root_key, product_id, b"tonteeton-seal-product"),
        }

    @classmethod
    def from_config(cls, config: SealerConfig) -> SoftwareSealer:
        if config.root_key_path is None:
            raise ConfigurationError("sealer root key path is not configured")
        root_key = _load_or_create_root_key(config.root_key_path)
        return cls(
            root_key=root_key,
            unique_id=config.unique_id.encode("utf-8"),
            product_id=config.signer_id.encode("utf-8"),
        )

    def seal(self, plaintext: bytes, context_tag: bytes, policy: SealPolicy) -> bytes:
        header = _MAGIC + bytes([_POLICY_BYTES[policy]])
        nonce = os.urandom(_NONCE_SIZE)
        ciphertext = AESGCM(self._keys[policy]).encrypt(nonce, plaintext, header + context_tag)
        return header + nonce + ciphertext

    def unseal(self, ciphertext: bytes, context_tag: bytes) -> bytes:
        if len(ciphertext) < _HEADER_SIZE + _NONCE_SIZE or not ciphertext.startswith(_MAGIC):
            raise TamperError("sealed blob has an invalid header")
        policy = _POLICY_BY_BYTE.get(ciphertext[len(_MAGIC)])
        if policy is None:
            raise TamperError("sealed blob names an unknown sealing policy")

        header = ciphertext[:_HEADER_SIZE]
        nonce = ciphertext[_HEADER_SIZE : _HEADER_SIZE + _NONCE_SIZE]
        body = ciphertext[_HEADER_SIZE + _NONCE_SIZE :]
        try:
            return AESGCM(self._keys[policy]).decrypt(nonce, body, header + context_tag)
        except InvalidTag as exc:
            raise TamperError("sealed blob failed authentication") from exc

    @staticmethod
    def _derive_key(root_key: bytes, identity: bytes, info: bytes) -> bytes:
        hkdf = HKDF(
            algorithm=hashes.SHA256(),
            length=_KEY_SIZE,
            salt=identity,
            info=info,
        )
        return hkdf.derive(root_key)


def _load_or_create_root_key(path: Path) -> bytes:
    try:
        if path.exists():
            root_key = path.read_bytes()
        else:
            root_key = os.urandom(_ROOT_KEY_SIZE)
            path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
            _atomic_write(path, root_key)
            logger.info("Created software sealer root key at %s", path)
    except OSError as exc:
        raise StorageError(
            f"failed to load sealer root key {path}: {exc}",
            role=_ROOT_KEY_ROLE,
            path=path,
        ) from exc
    if len(root_key) != _ROOT_KEY_SIZE:
        raise ConfigurationError(
            f"sealer root key {path} must be {_ROOT_KEY_SIZE} bytes, found {len(root_key)}",
            role=_ROOT_KEY_ROLE,
            path=path,
        )
    return root_key


def _atomic_write(path: Path, data: bytes, mode: int = 0o600) -> None:
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class SealedCodec:
    """Reads and writes sealed records bound to a role context tag."""

    def __init__(self, sealer: Sealer, default_policy: SealPolicy = SealPolicy.unique) -> None:
        self._sealer = sealer
        self._default_policy = default_policy

    def write(
        self,
        path: Path,
        plaintext: bytes,
        context_tag: bytes,
        policy: SealPolicy | None = None,
    ) -> None:
        sealed = self._sealer.seal(plaintext, context_tag, policy or self._default_policy)
        write_file(path, sealed)

    def read(self, path: Path, context_tag: bytes) -> bytes:
        try:
            sealed = Path(path).read_bytes()
        except FileNotFoundError as exc:
            raise RecordNotFoundError(f"sealed record not found: {path}", path=path) from exc
        except OSError as exc:
            raise StorageError(f"failed to read sealed record {path}: {exc}", path=path) from exc
        try:
            return self._sealer.unseal(sealed, context_tag)
        except TamperError as exc:
            raise TamperError(f"failed to unseal {path}: {exc}", path=path) from exc


def write_file(path: Path, data: bytes, mode: int = 0o600) -> None:
    """Atomically replace ``path`` with ``data``, surfacing failures as ``StorageError``."""
    try:
        _atomic_write(Path(path), data, mode)
    except OSError as exc:
        raise StorageError(f"failed to write {path}: {exc}", path=path) from exc


__all__ = ["SealedCodec", "SoftwareSealer", "write_file"]
