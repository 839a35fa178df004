"""Assemble the platform application-creation payload."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict

from .errors import ConfigError
from .images import parse_image_ref
from .models import (
    AppSpec,
    ContainerSpec,
    EndpointSpec,
    EndpointType,
    PortMapping,
    RegistryIds,
    RunSettings,
)

__all__ = [
    "EndpointDefaults",
    "build_app_descriptor",
    "exposed_container_name",
    "region_settings",
    "runtime_type",
]

_RESERVED_DEPLOYMENT_TYPE = "advanced"
_SINGLE_REGION_DEPLOYMENT_TYPE = "single"
_PULL_POLICY = "Always"
_ANYCAST_ADDRESS_TYPE = "IPv4"


class EndpointDefaults(BaseModel):
    """Run-level settings for the synthesized endpoint of the inline source."""

    model_config = ConfigDict(frozen=True)

    name: str = ""
    type: str = "CDN"
    container: str = ""

    @classmethod
    def from_settings(cls, settings: RunSettings) -> EndpointDefaults:
        return cls(
            name=settings.endpoint_name,
            type=settings.endpoint_type,
            container=settings.endpoint_container,
        )

    def resolved_type(self) -> EndpointType:
        value = (self.type or EndpointType.CDN.value).lower()
        try:
            return EndpointType(value)
        except ValueError as exc:
            raise ConfigError(f"Unknown endpoint type {self.type!r}") from exc


def runtime_type(deployment_type: str) -> str:
    return "Reserved" if deployment_type == _RESERVED_DEPLOYMENT_TYPE else "Shared"


def region_settings(deployment_type: str, region: str) -> dict[str, Any]:
    """Pin to one region for single-region deployments, else let the platform schedule."""
    if deployment_type == _SINGLE_REGION_DEPLOYMENT_TYPE and region:
        return {
            "requiredRegionIds": [region],
            "allowedRegionIds": [region],
            "maxAllowedRegions": 1,
        }
    return {"requiredRegionIds": [], "allowedRegionIds": []}


def exposed_container_name(app: AppSpec, explicit: str = "") -> str:
    """
    Name of the container that receives the synthesized endpoint.

    Explicitly named container first, else the first container declaring a
    port, else the first container overall.
    """
    if explicit:
        return explicit
    for container in app.containers:
        if container.port:
            return container.name
    return app.containers[0].name


def build_app_descriptor(
    app: AppSpec,
    registries: RegistryIds,
    endpoint_defaults: EndpointDefaults | None = None,
    autoscale_min: int = 1,
    autoscale_max: int = 3,
) -> dict[str, Any]:
    """
    Build the ``POST /apps`` body for *app*.

    Pure: no I/O, same inputs always yield the same payload.
    """
    defaults = endpoint_defaults or EndpointDefaults()
    synthesized_type = defaults.resolved_type() if app.create_endpoint else None
    exposed = exposed_container_name(app, defaults.container)

    templates: list[dict[str, Any]] = []
    for container in app.containers:
        template = _container_template(container, registries)

        if container.endpoints:
            template["endpoints"] = [_endpoint_payload(ep) for ep in container.endpoints]
        elif synthesized_type is not None and container.port and container.name == exposed:
            template["endpoints"] = [
                _endpoint_payload(
                    EndpointSpec(
                        name=defaults.name or f"{app.name}-endpoint",
                        type=synthesized_type,
                        port_mappings=[PortMapping(container_port=container.port)],
                    )
                )
            ]
        templates.append(template)

    return {
        "name": app.name,
        "runtimeType": runtime_type(app.deployment_type),
        "autoScaling": {"min": autoscale_min, "max": autoscale_max},
        "regionSettings": region_settings(app.deployment_type, app.region),
        "containerTemplates": templates,
    }


# ------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------


def _container_template(container: ContainerSpec, registries: RegistryIds) -> dict[str, Any]:
    parts = parse_image_ref(container.image)
    if container.build and registries.private_id:
        registry_id = registries.private_id
    else:
        registry_id = registries.public_id or ""

    template: dict[str, Any] = {
        "name": container.name,
        "image": container.reference,
        "imageName": parts.name,
        "imageNamespace": parts.namespace,
        "imageTag": container.tag,
        "imageRegistryId": registry_id,
        "imagePullPolicy": _PULL_POLICY,
    }
    if container.env:
        template["environmentVariables"] = [
            {"name": name, "value": value} for name, value in container.env.items()
        ]
    return template


def _port_mapping_payload(mapping: PortMapping) -> dict[str, Any]:
    payload: dict[str, Any] = {"containerPort": mapping.container_port}
    if mapping.exposed_port:
        payload["exposedPort"] = mapping.exposed_port
    if mapping.protocols:
        payload["protocols"] = list(mapping.protocols)
    return payload


def _endpoint_payload(endpoint: EndpointSpec) -> dict[str, Any]:
    mappings = [_port_mapping_payload(m) for m in endpoint.port_mappings]
    payload: dict[str, Any] = {"displayName": endpoint.name}
    if endpoint.type is EndpointType.CDN:
        payload["cdn"] = {"portMappings": mappings}
    else:
        payload["anycast"] = {"type": _ANYCAST_ADDRESS_TYPE, "portMappings": mappings}
    return payload
