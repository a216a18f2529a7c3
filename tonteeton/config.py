from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tonteeton.errors import ConfigurationError
from tonteeton.models.sealing import SealPolicy

logger = logging.getLogger(__name__)

_MOUNT_MODE = 0o700


class ResponseConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    response_path: Path


class KeysConfig(BaseModel):
    """Storage layout for one key pair.

    ``sealed_date_path`` holds the sealed creation marker; its presence is the
    only signal that a key has already been generated.
    """

    model_config = ConfigDict(frozen=True)

    public_key_path: Path
    private_key_path: Path
    sealed_date_path: Path
    version: str
    seal_policy: SealPolicy = SealPolicy.unique

    @model_validator(mode="after")
    def _validate_distinct_paths(self) -> KeysConfig:
        paths = {self.public_key_path, self.private_key_path, self.sealed_date_path}
        if len(paths) != 3:
            raise ValueError("public, private and marker paths must be distinct")
        return self


class SealerConfig(BaseModel):
    """Identity inputs for the software sealer."""

    model_config = ConfigDict(frozen=True)

    unique_id: str = "tonteeton-enclave"
    """Enclave measurement stand-in; changes with every build."""
    signer_id: str = "tonteeton-signer"
    """Vendor/product identity; stable across builds."""
    root_key_path: Path | None = None
    """Defaults to ``<mount_dir>/.sealer_root``."""


def _keys_config(mount_dir: Path, prefix: str, created: str, version: str) -> KeysConfig:
    return KeysConfig(
        public_key_path=mount_dir / f"{prefix}.pub",
        private_key_path=mount_dir / f"{prefix}.priv.enc",
        sealed_date_path=mount_dir / f"{created}.enc",
        version=version,
    )


class TonteetonSettings(BaseSettings):
    app_version: str = "dev"
    mount_dir: Path = Path("mount")
    response: ResponseConfig | None = None
    signature_keys: KeysConfig | None = None
    encryption_keys: KeysConfig | None = None
    sealer: SealerConfig = Field(default_factory=SealerConfig)

    model_config = SettingsConfigDict(
        env_prefix="TONTEETON_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    @model_validator(mode="after")
    def _fill_mount_layout(self) -> TonteetonSettings:
        # Sections left unset follow the mount directory and app version.
        if self.response is None:
            self.response = ResponseConfig(response_path=self.mount_dir / "response.json")
        if self.sealer.root_key_path is None:
            self.sealer = self.sealer.model_copy(
                update={"root_key_path": self.mount_dir / ".sealer_root"}
            )
        if self.signature_keys is None:
            self.signature_keys = _keys_config(
                self.mount_dir, "signature_key", "signature_created", self.app_version
            )
        if self.encryption_keys is None:
            self.encryption_keys = _keys_config(
                self.mount_dir, "box_key", "box_created", self.app_version
            )
        return self


def default_settings(app_version: str, mount_dir: str | Path = "mount") -> TonteetonSettings:
    """Build the standard ``mount/`` layout and provision the directory."""
    settings = TonteetonSettings(app_version=app_version, mount_dir=Path(mount_dir))
    provision_mount_dir(settings)
    return settings


def provision_mount_dir(settings: TonteetonSettings) -> Path:
    mount = settings.mount_dir
    mount.mkdir(mode=_MOUNT_MODE, parents=True, exist_ok=True)
    if mount.stat().st_mode & 0o777 != _MOUNT_MODE:
        os.chmod(mount, _MOUNT_MODE)
    return mount


def _coerce_env_value(value: str) -> object:
    parsed = yaml.safe_load(value)
    return value if parsed is None else parsed


def _set_nested(mapping: dict[str, object], path: list[str], value: object) -> None:
    current = mapping
    for key in path[:-1]:
        existing = current.get(key)
        if not isinstance(existing, dict):
            existing = {}
            current[key] = existing
        current = existing
    current[path[-1]] = value


def _apply_env_overrides(data: dict[str, object]) -> dict[str, object]:
    merged = dict(data)
    prefix = "TONTEETON_"
    for key, raw_value in os.environ.items():
        if not key.startswith(prefix):
            continue
        path = key[len(prefix) :].lower().split("__")
        _set_nested(merged, path, _coerce_env_value(raw_value))
    return merged


def load_config(path: str | Path = "config/tonteeton.yaml") -> TonteetonSettings:
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigurationError(f"config file not found: {config_path}", path=config_path)

    loaded = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    if not isinstance(loaded, dict):
        raise ConfigurationError("config file must contain a top-level mapping", path=config_path)

    raw = loaded.get("tonteeton", loaded)
    if not isinstance(raw, dict):
        raise ConfigurationError("tonteeton config section must be a mapping", path=config_path)

    merged = _apply_env_overrides(raw)
    try:
        settings = TonteetonSettings.model_validate(merged)
    except ValidationError as exc:
        raise ConfigurationError(f"invalid config: {exc}", path=config_path) from exc

    provision_mount_dir(settings)
    logger.info("Loaded config %s (version %s)", config_path, settings.app_version)
    return settings


__all__ = [
    "KeysConfig",
    "ResponseConfig",
    "SealerConfig",
    "TonteetonSettings",
    "default_settings",
    "load_config",
    "provision_mount_dir",
]
