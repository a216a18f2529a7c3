"""tonteeton CLI entry point and dependency wiring."""

from __future__ import annotations

import base64
from dataclasses import dataclass

import click

from tonteeton.config import TonteetonSettings, default_settings, load_config
from tonteeton.core.box import BoxKeyService
from tonteeton.core.cells import BocCodec
from tonteeton.core.key_manager import KeyManager
from tonteeton.core.logging import setup_logging
from tonteeton.core.response import ResponseBuilder
from tonteeton.core.sealing import SealedCodec, SoftwareSealer
from tonteeton.core.signature import SignatureService
from tonteeton.errors import ConfigurationError, EnclaveError
from tonteeton.protocols.sealing import Sealer


@dataclass(slots=True)
class Services:
    signatures: SignatureService
    boxes: BoxKeyService
    responses: ResponseBuilder


def build_services(settings: TonteetonSettings, sealer: Sealer | None = None) -> Services:
    """Wire one key manager per key config on top of a shared sealer."""
    if settings.signature_keys is None or settings.encryption_keys is None or settings.response is None:
        raise ConfigurationError("settings are missing key or response sections")
    sealer = sealer or SoftwareSealer.from_config(settings.sealer)

    signature_keys = settings.signature_keys
    signature_codec = SealedCodec(sealer, default_policy=signature_keys.seal_policy)
    signatures = SignatureService(signature_keys, KeyManager(signature_keys, signature_codec))

    encryption_keys = settings.encryption_keys
    box_codec = SealedCodec(sealer, default_policy=encryption_keys.seal_policy)
    boxes = BoxKeyService(encryption_keys, KeyManager(encryption_keys, box_codec))

    responses = ResponseBuilder(settings.response, signatures, BocCodec())
    return Services(signatures=signatures, boxes=boxes, responses=responses)


def _resolve_settings(config_path: str | None, app_version: str) -> TonteetonSettings:
    if config_path is None:
        return default_settings(app_version)
    return load_config(config_path)


@click.group()
@click.option("--config", "config_path", default=None, help="YAML config; defaults to ./mount layout.")
@click.option("--app-version", default="dev", show_default=True)
@click.option("--json-logs", is_flag=True, default=False)
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, app_version: str, json_logs: bool) -> None:
    """Sealed key and signed response tooling for enclaved applications."""
    setup_logging(json_output=json_logs)
    try:
        settings = _resolve_settings(config_path, app_version)
        ctx.obj = build_services(settings)
    except EnclaveError as exc:
        raise click.ClickException(f"{exc} [{exc.kind}]") from exc


@cli.command("public-key")
@click.option("--box", is_flag=True, default=False, help="Show the X25519 box key instead.")
@click.pass_obj
def public_key_command(services: Services, box: bool) -> None:
    """Print the public key as hex, generating the key pair on first use."""
    try:
        public_key = services.boxes.get_public_key() if box else services.signatures.get_public_key()
    except EnclaveError as exc:
        raise click.ClickException(f"{exc} [{exc.kind}]") from exc
    click.echo(public_key.hex())


@cli.command("import-key")
@click.argument("key_b64")
@click.pass_obj
def import_key_command(services: Services, key_b64: str) -> None:
    """Provision a 64-byte Ed25519 key (seed || public key, base64)."""
    try:
        material = base64.b64decode(key_b64, validate=True)
    except ValueError as exc:
        raise click.ClickException("key is not valid base64") from exc
    try:
        key = services.signatures.save_key(material)
    except EnclaveError as exc:
        raise click.ClickException(f"{exc} [{exc.kind}]") from exc
    click.echo(key.public_key.hex())


@cli.command("respond")
@click.argument("payload_b64")
@click.option("--op-code", type=str, default=None, help="Pack a response cell with this op (e.g. 0x9f89304e).")
@click.pass_obj
def respond_command(services: Services, payload_b64: str, op_code: str | None) -> None:
    """Sign a BOC payload, write response JSON and optionally print the packed cell."""
    codec = BocCodec()
    try:
        payload = codec.from_base64(payload_b64)
        response = services.responses.save_response(payload)
        if op_code is None:
            click.echo(response.to_json())
            return
        packed = services.responses.pack_response_boc(payload, _parse_op_code(op_code))
    except EnclaveError as exc:
        raise click.ClickException(f"{exc} [{exc.kind}]") from exc
    click.echo(base64.b64encode(packed).decode("ascii"))


def _parse_op_code(raw: str) -> int:
    try:
        return int(raw, 0)
    except ValueError as exc:
        raise ConfigurationError(f"op code is not an integer: {raw}") from exc


__all__ = ["Services", "build_services", "cli"]
