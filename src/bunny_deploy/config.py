"""Resolve the inline container list or the descriptor file into one AppSpec."""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import BaseModel, ConfigDict

from .errors import ConfigError
from .images import has_registry_prefix
from .models import (
    AppSpec,
    ConfigSource,
    ContainerSpec,
    EndpointSpec,
    EndpointType,
    PortMapping,
    RunSettings,
)

__all__ = [
    "FileSource",
    "InlineSource",
    "resolve_app_spec",
    "resolve_from_settings",
    "select_source",
]

logger = structlog.get_logger(__name__)


class InlineSource(BaseModel):
    """Container list passed as YAML text (no endpoint declarations)."""

    model_config = ConfigDict(frozen=True)

    text: str


class FileSource(BaseModel):
    """Checked-in TOML descriptor with an app name and container list."""

    model_config = ConfigDict(frozen=True)

    path: Path


Source = InlineSource | FileSource


def select_source(containers: str, config_path: str) -> Source:
    """
    Pick the configuration source.

    An existing descriptor file wins over the inline list; the two are never
    merged.
    """
    if config_path and Path(config_path).is_file():
        return FileSource(path=Path(config_path))
    if containers.strip():
        return InlineSource(text=containers)
    raise ConfigError(
        f"No descriptor found at {config_path!r} and no inline container list "
        "provided. Either add a descriptor file to the repository or pass "
        "the containers input."
    )


def resolve_app_spec(
    *,
    containers: str = "",
    config_path: str = "",
    app_name: str = "",
    registry: str = "",
    build_id: str = "latest",
    create_endpoint: bool = False,
    deployment_type: str = "default",
    region: str = "",
) -> AppSpec:
    """
    Produce the canonical AppSpec from whichever source is available.

    Raises ``ConfigError`` before any network call when the configuration
    cannot be resolved.
    """
    source = select_source(containers, config_path)
    defaults = _Defaults(registry=registry.rstrip("/"), build_id=build_id or "latest")

    if isinstance(source, FileSource):
        logger.info("config.source", source="file", path=str(source.path))
        document = _load_toml(source.path)
        name = app_name or _text(document.get("name"))
        if not name:
            raise ConfigError(
                "App name is required. Set the app name input or 'name' in "
                f"{source.path.name}."
            )
        entries = _entry_list(document.get("containers"), where=source.path.name)
        specs = [
            _container_from_entry(
                entry, i, app_name=name, defaults=defaults,
                with_endpoints=True, where=f" in {source.path.name}",
            )
            for i, entry in enumerate(entries)
        ]
        endpoints_enabled = any(c.endpoints for c in specs)
        kind = ConfigSource.FILE
    else:
        logger.info("config.source", source="inline")
        name = app_name
        if not name:
            raise ConfigError("App name is required when using the inline container list.")
        entries = _load_inline(source.text)
        specs = [
            _container_from_entry(
                entry, i, app_name=name, defaults=defaults,
                with_endpoints=False, where="",
            )
            for i, entry in enumerate(entries)
        ]
        endpoints_enabled = create_endpoint
        kind = ConfigSource.INLINE

    if not specs:
        raise ConfigError(f"App '{name}' declares no containers.")
    _check_unique_names(specs)

    return AppSpec(
        name=name,
        deployment_type=deployment_type,
        region=region,
        source=kind,
        create_endpoint=endpoints_enabled,
        containers=specs,
    )


def resolve_from_settings(settings: RunSettings) -> AppSpec:
    """Resolve the AppSpec using the run-level inputs."""
    return resolve_app_spec(
        containers=settings.containers,
        config_path=settings.config_path,
        app_name=settings.app_name,
        registry=settings.registry,
        build_id=settings.build_id,
        create_endpoint=settings.create_endpoint,
        deployment_type=settings.deployment_type,
        region=settings.region,
    )


# ------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------


class _Defaults(BaseModel):
    model_config = ConfigDict(frozen=True)

    registry: str
    build_id: str


def _load_toml(path: Path) -> dict[str, Any]:
    try:
        with open(path, "rb") as fh:
            return tomllib.load(fh)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid descriptor {path.name}: {exc}") from exc


def _load_inline(text: str) -> list[dict[str, Any]]:
    try:
        parsed = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"containers input is not valid YAML: {exc}") from exc
    if not isinstance(parsed, list):
        raise ConfigError(
            f"containers input must be a YAML list. Got: {type(parsed).__name__}"
        )
    return _entry_list(parsed, where="containers input")


def _entry_list(raw: Any, where: str) -> list[dict[str, Any]]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ConfigError(f"'containers' in {where} must be a list.")
    for i, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise ConfigError(f"Container at index {i} in {where} must be a mapping.")
    return raw


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _optional_int(value: Any, what: str) -> int | None:
    if value is None or value == "" or value == 0:
        return None
    if isinstance(value, bool):
        raise ConfigError(f"{what} must be a number, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{what} must be a number, got {value!r}") from exc


def _container_from_entry(
    entry: dict[str, Any],
    index: int,
    *,
    app_name: str,
    defaults: _Defaults,
    with_endpoints: bool,
    where: str,
) -> ContainerSpec:
    name = _text(entry.get("name"))
    if not name:
        raise ConfigError(f"Container at index {index}{where} missing 'name'")

    build = entry.get("build") is True
    image = _text(entry.get("image"))
    if not image and build:
        # Built images default to <registry>/<app name>.
        image = _qualify(app_name, name, defaults.registry)
    if not image:
        raise ConfigError(f"Container '{name}'{where} missing 'image'")
    if build and not has_registry_prefix(image):
        image = _qualify(image, name, defaults.registry)

    tag = _text(entry.get("tag")) or (defaults.build_id if build else "latest")

    raw_env = entry.get("env") or {}
    if not isinstance(raw_env, dict):
        raise ConfigError(f"Container '{name}'{where}: 'env' must be a mapping")
    env = {str(k): _text(v) for k, v in raw_env.items()}

    endpoints: list[EndpointSpec] = []
    if with_endpoints:
        endpoints = _endpoints_from_entry(entry.get("endpoints"), name)
    elif entry.get("endpoints"):
        logger.warning(
            "config.endpoints_ignored",
            container=name,
            reason="endpoints are only read from the descriptor file",
        )

    port = _optional_int(entry.get("port"), f"Container '{name}' port")
    if port is None and endpoints and endpoints[0].port_mappings:
        port = endpoints[0].port_mappings[0].container_port

    return ContainerSpec(
        name=name,
        image=image,
        tag=tag,
        build=build,
        context=_text(entry.get("context")) or ".",
        dockerfile=_text(entry.get("dockerfile")) or "Dockerfile",
        env=env,
        port=port,
        endpoints=endpoints,
    )


def _qualify(image: str, container: str, registry: str) -> str:
    if not registry:
        raise ConfigError(
            f"Container '{container}' is built but no push registry is "
            f"configured to qualify image {image!r}"
        )
    return f"{registry}/{image}"


def _endpoints_from_entry(raw: Any, container: str) -> list[EndpointSpec]:
    if not raw:
        return []
    if not isinstance(raw, list):
        raise ConfigError(f"Container '{container}': 'endpoints' must be a list")

    endpoints: list[EndpointSpec] = []
    for ep in raw:
        if not isinstance(ep, dict):
            raise ConfigError(f"Container '{container}': endpoint must be a table")
        type_name = (_text(ep.get("type")) or EndpointType.CDN.value).lower()
        try:
            ep_type = EndpointType(type_name)
        except ValueError as exc:
            raise ConfigError(
                f"Container '{container}': unknown endpoint type {type_name!r}"
            ) from exc

        mappings = _port_mappings(ep.get("ports"), container)
        endpoints.append(
            EndpointSpec(
                name=_text(ep.get("name")) or f"{container}-endpoint",
                type=ep_type,
                port_mappings=mappings,
            )
        )
    return endpoints


def _port_mappings(raw: Any, container: str) -> list[PortMapping]:
    if not raw:
        return []
    if not isinstance(raw, list):
        raise ConfigError(f"Container '{container}': endpoint 'ports' must be a list")

    mappings: list[PortMapping] = []
    for p in raw:
        if not isinstance(p, dict):
            raise ConfigError(f"Container '{container}': port mapping must be a table")
        protocols = p.get("protocols")
        if isinstance(protocols, str):
            protocols = [protocols]
        elif protocols and not isinstance(protocols, list):
            raise ConfigError(
                f"Container '{container}': 'protocols' must be a string or a list"
            )
        mappings.append(
            PortMapping(
                container_port=_optional_int(p.get("container"), "container port") or 80,
                exposed_port=_optional_int(p.get("exposed"), "exposed port"),
                protocols=[str(proto) for proto in protocols] if protocols else None,
            )
        )
    return mappings


def _check_unique_names(specs: list[ContainerSpec]) -> None:
    seen: set[str] = set()
    for spec in specs:
        if spec.name in seen:
            raise ConfigError(f"Duplicate container name '{spec.name}'")
        seen.add(spec.name)
