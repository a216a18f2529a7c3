"""Tests for configuration loading and validation."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError
from tonteeton.config import KeysConfig, TonteetonSettings, default_settings, load_config
from tonteeton.errors import ConfigurationError, ErrorKind
from tonteeton.models.sealing import SealPolicy


class TestDefaultLayout:
    def test_default_settings_follow_mount_dir(self, tmp_path: Path) -> None:
        mount = tmp_path / "mount"
        settings = default_settings("1.2.3", mount)

        assert settings.response is not None
        assert settings.response.response_path == mount / "response.json"
        assert settings.signature_keys == KeysConfig(
            public_key_path=mount / "signature_key.pub",
            private_key_path=mount / "signature_key.priv.enc",
            sealed_date_path=mount / "signature_created.enc",
            version="1.2.3",
        )
        assert settings.encryption_keys is not None
        assert settings.encryption_keys.private_key_path == mount / "box_key.priv.enc"
        assert settings.encryption_keys.sealed_date_path == mount / "box_created.enc"
        assert settings.sealer.root_key_path == mount / ".sealer_root"

    def test_mount_dir_created_owner_only(self, tmp_path: Path) -> None:
        mount = tmp_path / "mount"
        default_settings("dev", mount)

        assert mount.is_dir()
        assert mount.stat().st_mode & 0o777 == 0o700

    def test_existing_mount_dir_permissions_tightened(self, tmp_path: Path) -> None:
        mount = tmp_path / "mount"
        mount.mkdir(mode=0o755)
        mount.chmod(0o755)

        default_settings("dev", mount)
        assert mount.stat().st_mode & 0o777 == 0o700

    def test_explicit_sections_are_kept(self, tmp_path: Path) -> None:
        keys = KeysConfig(
            public_key_path=tmp_path / "a.pub",
            private_key_path=tmp_path / "a.priv",
            sealed_date_path=tmp_path / "a.created",
            version="v",
        )
        settings = TonteetonSettings(mount_dir=tmp_path, signature_keys=keys)
        assert settings.signature_keys == keys


class TestKeysConfig:
    def test_duplicate_paths_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(ValidationError, match="distinct"):
            KeysConfig(
                public_key_path=tmp_path / "key",
                private_key_path=tmp_path / "key",
                sealed_date_path=tmp_path / "created",
                version="v",
            )

    def test_seal_policy_defaults_to_unique(self, keys_config: KeysConfig) -> None:
        assert keys_config.seal_policy is SealPolicy.unique


class TestLoadConfig:
    def _write(self, tmp_path: Path, body: str) -> Path:
        path = tmp_path / "tonteeton.yaml"
        path.write_text(body, encoding="utf-8")
        return path

    def test_loads_section_and_provisions_mount(self, tmp_path: Path) -> None:
        mount = tmp_path / "data"
        path = self._write(
            tmp_path,
            f"""
tonteeton:
  app_version: "0.9.0"
  mount_dir: "{mount}"
  signature_keys:
    public_key_path: "{mount}/sig.pub"
    private_key_path: "{mount}/sig.priv.enc"
    sealed_date_path: "{mount}/sig.created.enc"
    version: "0.9.0"
    seal_policy: "product"
""",
        )

        settings = load_config(path)

        assert settings.app_version == "0.9.0"
        assert settings.signature_keys is not None
        assert settings.signature_keys.seal_policy is SealPolicy.product
        assert settings.signature_keys.public_key_path == mount / "sig.pub"
        assert settings.encryption_keys is not None
        assert settings.encryption_keys.version == "0.9.0"
        assert mount.is_dir()

    def test_env_overrides_yaml(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = self._write(tmp_path, f'tonteeton:\n  mount_dir: "{tmp_path / "m"}"\n')
        monkeypatch.setenv("TONTEETON_APP_VERSION", "from-env")
        monkeypatch.setenv("TONTEETON_SEALER__UNIQUE_ID", "enclave-env")

        settings = load_config(path)

        assert settings.app_version == "from-env"
        assert settings.sealer.unique_id == "enclave-env"

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(tmp_path / "absent.yaml")
        assert exc_info.value.kind is ErrorKind.configuration

    def test_non_mapping_document(self, tmp_path: Path) -> None:
        path = self._write(tmp_path, "- just\n- a list\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            load_config(path)

    def test_invalid_values_become_configuration_error(self, tmp_path: Path) -> None:
        path = self._write(
            tmp_path,
            f'tonteeton:\n  mount_dir: "{tmp_path}"\n  signature_keys:\n    version: "x"\n',
        )
        with pytest.raises(ConfigurationError, match="invalid config"):
            load_config(path)
