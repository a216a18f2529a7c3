from __future__ import annotations

import os
import threading
from pathlib import Path

import pytest
from tonteeton.config import KeysConfig
from tonteeton.core.key_manager import CREATION_MARKER_TAG, PRIVATE_KEY_TAG, KeyManager
from tonteeton.core.sealing import SealedCodec, SoftwareSealer
from tonteeton.errors import (
    ErrorKind,
    NotInitializedError,
    RecordNotFoundError,
    StorageError,
    TamperError,
)
from tonteeton.models.sealing import CreationMarker, SealPolicy

from tests.fakes import FakeSealer


def generate_random_key() -> tuple[bytes, bytes]:
    return os.urandom(32), os.urandom(32)


class _CountingGenerator:
    def __init__(self) -> None:
        self.calls = 0

    def __call__(self) -> tuple[bytes, bytes]:
        self.calls += 1
        return generate_random_key()


def test_load_without_marker_is_not_initialized(key_manager: KeyManager) -> None:
    with pytest.raises(NotInitializedError) as exc_info:
        key_manager.load()

    assert type(exc_info.value) is NotInitializedError
    assert exc_info.value.kind is ErrorKind.not_initialized
    assert exc_info.value.role == "creation marker"
    assert str(exc_info.value) == "failed to read creation info"


def test_create_and_load_keys(key_manager: KeyManager, keys_config: KeysConfig) -> None:
    key_manager.save(b"testpub", b"testpriv")

    assert key_manager.load() == b"testpriv"
    assert keys_config.public_key_path.read_bytes() == b"testpub"
    assert b"testpriv" not in keys_config.private_key_path.read_bytes()


def test_save_writes_versioned_marker(key_manager: KeyManager, keys_config: KeysConfig, codec: SealedCodec) -> None:
    key_manager.save(b"pub", b"priv")

    raw = codec.read(keys_config.sealed_date_path, CREATION_MARKER_TAG)
    marker = CreationMarker.model_validate_json(raw)
    assert marker.version == "test"
    assert marker.created_at.tzinfo is not None


def test_key_loaded_and_reused(keys_config: KeysConfig, codec: SealedCodec) -> None:
    key1 = KeyManager(keys_config, codec).get_private_key(generate_random_key)
    assert keys_config.private_key_path.exists()

    key2 = KeyManager(keys_config, codec).get_private_key(generate_random_key)
    assert key1 == key2


def test_cached_key_skips_storage(key_manager: KeyManager, keys_config: KeysConfig) -> None:
    generator = _CountingGenerator()
    key1 = key_manager.get_private_key(generator)
    keys_config.private_key_path.unlink()

    assert key_manager.get_private_key(generator) == key1
    assert generator.calls == 1


def test_missing_private_key_record_regenerates(keys_config: KeysConfig, codec: SealedCodec) -> None:
    key1 = KeyManager(keys_config, codec).get_private_key(generate_random_key)
    keys_config.private_key_path.unlink()

    key3 = KeyManager(keys_config, codec).get_private_key(generate_random_key)
    assert key1 != key3
    assert KeyManager(keys_config, codec).load() == key3


def test_load_reports_missing_private_key_record(key_manager: KeyManager, keys_config: KeysConfig) -> None:
    key_manager.save(b"pub", b"priv")
    keys_config.private_key_path.unlink()

    with pytest.raises(RecordNotFoundError) as exc_info:
        key_manager.load()
    assert exc_info.value.role == "private key"
    assert exc_info.value.path == keys_config.private_key_path


def test_missing_marker_regenerates_even_with_valid_key(
    keys_config: KeysConfig,
    codec: SealedCodec,
    caplog: pytest.LogCaptureFixture,
) -> None:
    key1 = KeyManager(keys_config, codec).get_private_key(generate_random_key)
    keys_config.sealed_date_path.unlink()

    with caplog.at_level("WARNING", logger="tonteeton.core.key_manager"):
        key2 = KeyManager(keys_config, codec).get_private_key(generate_random_key)

    assert key1 != key2
    assert "Creation marker" in caplog.text


def test_invalid_key_not_used(keys_config: KeysConfig, codec: SealedCodec) -> None:
    KeyManager(keys_config, codec).get_private_key(generate_random_key)
    keys_config.private_key_path.write_bytes(b"modified")

    generator = _CountingGenerator()
    with pytest.raises(TamperError) as exc_info:
        KeyManager(keys_config, codec).get_private_key(generator)

    assert "private key" in str(exc_info.value)
    assert exc_info.value.role == "private key"
    assert exc_info.value.kind is ErrorKind.tamper_or_corruption
    assert generator.calls == 0
    assert keys_config.private_key_path.read_bytes() == b"modified"


def test_swapped_records_are_rejected(keys_config: KeysConfig, codec: SealedCodec) -> None:
    KeyManager(keys_config, codec).save(b"pub", b"priv")
    marker_blob = keys_config.sealed_date_path.read_bytes()
    keys_config.private_key_path.write_bytes(marker_blob)

    with pytest.raises(TamperError):
        KeyManager(keys_config, codec).load()


def test_corrupted_marker_is_tamper(keys_config: KeysConfig, codec: SealedCodec) -> None:
    KeyManager(keys_config, codec).save(b"pub", b"priv")
    keys_config.sealed_date_path.write_bytes(b"garbage")

    with pytest.raises(TamperError) as exc_info:
        KeyManager(keys_config, codec).get_private_key(generate_random_key)
    assert exc_info.value.role == "creation marker"


def test_malformed_marker_contents_are_tamper(keys_config: KeysConfig, codec: SealedCodec) -> None:
    KeyManager(keys_config, codec).save(b"pub", b"priv")
    codec.write(keys_config.sealed_date_path, b"not json", CREATION_MARKER_TAG)

    with pytest.raises(TamperError):
        KeyManager(keys_config, codec).load()


def test_records_use_configured_policy_and_role_tags(tmp_path: Path) -> None:
    config = KeysConfig(
        public_key_path=tmp_path / "key.pub",
        private_key_path=tmp_path / "key.priv.enc",
        sealed_date_path=tmp_path / "created.enc",
        version="test",
        seal_policy=SealPolicy.product,
    )
    fake = FakeSealer()
    KeyManager(config, SealedCodec(fake)).save(b"pub", b"priv")

    assert fake.sealed == [
        (PRIVATE_KEY_TAG, SealPolicy.product),
        (CREATION_MARKER_TAG, SealPolicy.product),
    ]


def test_failed_save_is_surfaced(tmp_path: Path, codec: SealedCodec) -> None:
    config = KeysConfig(
        public_key_path=tmp_path / "missing-dir" / "key.pub",
        private_key_path=tmp_path / "key.priv.enc",
        sealed_date_path=tmp_path / "created.enc",
        version="test",
    )
    manager = KeyManager(config, codec)

    with pytest.raises(StorageError):
        manager.get_private_key(generate_random_key)
    assert not config.sealed_date_path.exists()


def test_concurrent_first_use_generates_one_key(key_manager: KeyManager) -> None:
    generator = _CountingGenerator()
    results: list[bytes] = []
    barrier = threading.Barrier(8)

    def _worker() -> None:
        barrier.wait()
        results.append(key_manager.get_private_key(generator))

    threads = [threading.Thread(target=_worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert generator.calls == 1
    assert len(set(results)) == 1


class _GatedSealer:
    """Wraps a sealer and parks private-key unseals until released."""

    def __init__(self, inner: SoftwareSealer) -> None:
        self._inner = inner
        self.armed = False
        self.entered = threading.Event()
        self.release = threading.Event()

    def seal(self, plaintext: bytes, context_tag: bytes, policy: SealPolicy) -> bytes:
        return self._inner.seal(plaintext, context_tag, policy)

    def unseal(self, ciphertext: bytes, context_tag: bytes) -> bytes:
        if self.armed and context_tag == PRIVATE_KEY_TAG:
            self.entered.set()
            self.release.wait(timeout=5)
        return self._inner.unseal(ciphertext, context_tag)


def test_save_waits_for_in_flight_load(keys_config: KeysConfig, sealer: SoftwareSealer) -> None:
    gated = _GatedSealer(sealer)
    codec = SealedCodec(gated)
    KeyManager(keys_config, codec).save(b"p", b"old")

    manager = KeyManager(keys_config, codec)
    gated.armed = True
    loader = threading.Thread(target=manager.get_private_key, args=(generate_random_key,))
    loader.start()
    assert gated.entered.wait(timeout=5)

    saver = threading.Thread(target=manager.save, args=(b"p", b"new"))
    saver.start()
    saver.join(timeout=0.2)
    assert saver.is_alive()

    gated.release.set()
    loader.join()
    saver.join()
    gated.armed = False

    assert manager.get_private_key(generate_random_key) == b"new"
    assert KeyManager(keys_config, codec).load() == b"new"
