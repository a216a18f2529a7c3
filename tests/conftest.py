from __future__ import annotations

from pathlib import Path

import pytest
from tonteeton.config import KeysConfig, ResponseConfig
from tonteeton.core.key_manager import KeyManager
from tonteeton.core.sealing import SealedCodec, SoftwareSealer
from tonteeton.core.signature import SignatureService

from tests.fakes import ROOT_KEY


@pytest.fixture
def keys_config(tmp_path: Path) -> KeysConfig:
    return KeysConfig(
        public_key_path=tmp_path / "key.pub",
        private_key_path=tmp_path / "key.priv.enc",
        sealed_date_path=tmp_path / "created.enc",
        version="test",
    )


@pytest.fixture
def response_config(tmp_path: Path) -> ResponseConfig:
    return ResponseConfig(response_path=tmp_path / "response1.json")


@pytest.fixture
def sealer() -> SoftwareSealer:
    return SoftwareSealer(root_key=ROOT_KEY, unique_id=b"enclave-a", product_id=b"vendor")


@pytest.fixture
def codec(sealer: SoftwareSealer) -> SealedCodec:
    return SealedCodec(sealer)


@pytest.fixture
def key_manager(keys_config: KeysConfig, codec: SealedCodec) -> KeyManager:
    return KeyManager(keys_config, codec)


@pytest.fixture
def signature_service(keys_config: KeysConfig, key_manager: KeyManager) -> SignatureService:
    return SignatureService(keys_config, key_manager)
