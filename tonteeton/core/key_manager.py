from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import UTC, datetime

from pydantic import ValidationError

from tonteeton.config import KeysConfig
from tonteeton.core.logging import operation_scope
from tonteeton.core.sealing import SealedCodec, write_file
from tonteeton.errors import NotInitializedError, RecordNotFoundError, TamperError
from tonteeton.models.sealing import CreationMarker

logger = logging.getLogger(__name__)

PRIVATE_KEY_TAG = b"tonteeton:private-key"
CREATION_MARKER_TAG = b"tonteeton:creation-marker"

_PRIVATE_KEY_ROLE = "private key"
_MARKER_ROLE = "creation marker"

KeyGenerator = Callable[[], tuple[bytes, bytes]]
"""Returns a fresh ``(public_key, private_key)`` pair."""


class KeyManager:
    """Generate-once, sealed-at-rest lifecycle for a single key pair.

    The creation marker and the private key are separate sealed records. A
    missing marker means "never generated"; a private key that exists but
    cannot be unsealed is never replaced.
    """

    def __init__(self, config: KeysConfig, codec: SealedCodec) -> None:
        self._config = config
        self._codec = codec
        self._cached: bytes | None = None
        self._lock = threading.Lock()

    @property
    def config(self) -> KeysConfig:
        return self._config

    def load(self) -> bytes:
        """Read the sealed private key, requiring the creation marker first."""
        with operation_scope(operation="load_key"):
            self._read_marker()
            with operation_scope(key_role=_PRIVATE_KEY_ROLE, record_path=self._config.private_key_path):
                path = self._config.private_key_path
                try:
                    return self._codec.read(path, PRIVATE_KEY_TAG)
                except RecordNotFoundError as exc:
                    raise RecordNotFoundError(
                        f"private key record is missing: {path}",
                        role=_PRIVATE_KEY_ROLE,
                        path=path,
                    ) from exc
                except TamperError as exc:
                    logger.error("Sealed private key at %s failed verification", path)
                    raise TamperError(
                        f"invalid private key: {exc}",
                        role=_PRIVATE_KEY_ROLE,
                        path=path,
                    ) from exc

    def save(self, public_key: bytes, private_key: bytes) -> None:
        """Persist the public key, sealed private key and a fresh creation marker."""
        with self._lock:
            self._save_unlocked(public_key, private_key)

    def _save_unlocked(self, public_key: bytes, private_key: bytes) -> None:
        config = self._config
        with operation_scope(operation="save_key", record_path=config.private_key_path):
            write_file(config.public_key_path, public_key, mode=0o644)
            self._codec.write(
                config.private_key_path,
                private_key,
                PRIVATE_KEY_TAG,
                config.seal_policy,
            )
            marker = CreationMarker(version=config.version, created_at=datetime.now(UTC))
            self._codec.write(
                config.sealed_date_path,
                marker.canonical_bytes(),
                CREATION_MARKER_TAG,
                config.seal_policy,
            )
            self._cached = private_key
            logger.info("Saved key pair (version %s) to %s", config.version, config.private_key_path)

    def get_private_key(self, generator: KeyGenerator) -> bytes:
        """Return the persisted key, generating one only if none was ever created."""
        with self._lock:
            if self._cached is not None:
                return self._cached
            try:
                self._cached = self.load()
            except NotInitializedError as exc:
                logger.info("No usable key on record (%s); generating a new key pair", exc.role)
                public_key, private_key = generator()
                self._save_unlocked(public_key, private_key)
            return self._cached

    def _read_marker(self) -> CreationMarker:
        path = self._config.sealed_date_path
        with operation_scope(key_role=_MARKER_ROLE, record_path=path):
            try:
                raw = self._codec.read(path, CREATION_MARKER_TAG)
            except RecordNotFoundError as exc:
                if self._config.private_key_path.exists():
                    # The existing key is discarded on regeneration.
                    logger.warning(
                        "Creation marker %s is missing while a private key exists; "
                        "a new key will replace it",
                        path,
                    )
                raise NotInitializedError(
                    "failed to read creation info",
                    role=_MARKER_ROLE,
                    path=path,
                ) from exc
            except TamperError as exc:
                raise TamperError(
                    f"invalid creation marker: {exc}",
                    role=_MARKER_ROLE,
                    path=path,
                ) from exc

            try:
                marker = CreationMarker.model_validate_json(raw)
            except ValidationError as exc:
                raise TamperError("creation marker is malformed", role=_MARKER_ROLE, path=path) from exc
            if marker.version != self._config.version:
                logger.info(
                    "Key was created by version %s, running %s", marker.version, self._config.version
                )
            return marker


__all__ = [
    "CREATION_MARKER_TAG",
    "KeyGenerator",
    "KeyManager",
    "PRIVATE_KEY_TAG",
]
