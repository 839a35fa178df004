"""Pydantic models for bunny-deploy."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

__all__ = [
    "AppSpec",
    "ConfigSource",
    "ContainerSpec",
    "DeployResult",
    "DeploymentOutcome",
    "DeploymentState",
    "EndpointSpec",
    "EndpointType",
    "PortMapping",
    "RegistryIds",
    "RegistryRef",
    "ResolvedEndpoint",
    "RunSettings",
]


class EndpointType(str, Enum):
    """Endpoint kinds understood by the platform."""

    CDN = "cdn"
    ANYCAST = "anycast"


class ConfigSource(str, Enum):
    """Where the application specification was read from."""

    INLINE = "inline"
    FILE = "file"


class DeploymentState(str, Enum):
    """States of the deploy-and-poll state machine."""

    CREATED = "created"
    DEPLOYING = "deploying"
    ACTIVE = "active"
    TIMED_OUT = "timed_out"


class PortMapping(BaseModel):
    """Maps a container port to an (optional) externally exposed port."""

    model_config = ConfigDict(frozen=True)

    container_port: int = 80
    exposed_port: int | None = None
    protocols: list[str] | None = None


class EndpointSpec(BaseModel):
    """One externally reachable entry point of a container."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: EndpointType = EndpointType.CDN
    port_mappings: list[PortMapping] = Field(default_factory=list)


class ContainerSpec(BaseModel):
    """One deployable unit, fully defaulted."""

    model_config = ConfigDict(frozen=True)

    name: str
    image: str             # registry/namespace/name, no tag
    tag: str
    build: bool = False
    context: str = "."
    dockerfile: str = "Dockerfile"
    env: dict[str, str] = Field(default_factory=dict)
    port: int | None = None
    endpoints: list[EndpointSpec] = Field(default_factory=list)

    @property
    def reference(self) -> str:
        """Full ``image:tag`` reference."""
        return f"{self.image}:{self.tag}"


class AppSpec(BaseModel):
    """
    Canonical application specification.

    Built once per run by the config resolver; later stages never see the raw
    inline list or descriptor file.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    deployment_type: str = "default"
    region: str = ""
    source: ConfigSource
    create_endpoint: bool = False
    containers: list[ContainerSpec]

    @property
    def build_containers(self) -> list[ContainerSpec]:
        return [c for c in self.containers if c.build]

    @property
    def prebuilt_containers(self) -> list[ContainerSpec]:
        return [c for c in self.containers if not c.build]


class RegistryRef(BaseModel):
    """A registry credential record as reported by the platform."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    display_name: str = Field(default="", alias="displayName")
    host_name: str = Field(default="", alias="hostName")
    is_public: bool = Field(default=False, alias="isPublic")

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, value: Any) -> str:
        return str(value)

    @field_validator("display_name", "host_name", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("is_public", mode="before")
    @classmethod
    def _none_as_false(cls, value: Any) -> bool:
        return bool(value)


class RegistryIds(BaseModel):
    """Registry identifiers provisioned for this run."""

    model_config = ConfigDict(frozen=True)

    public_id: str | None = None   # pull registry for pre-built images
    private_id: str | None = None  # push registry for images built here


class DeploymentOutcome(BaseModel):
    """Result of triggering (and optionally waiting for) a deployment."""

    state: DeploymentState
    last_status: str = ""
    polls: int = 0


class ResolvedEndpoint(BaseModel):
    """Externally reachable address of a deployed application."""

    hostname: str = ""
    url: str = ""

    @property
    def provisioned(self) -> bool:
        return bool(self.url)


class RunSettings(BaseModel):
    """All run-level inputs, read once at start."""

    model_config = ConfigDict(frozen=True)

    api_key: str = ""
    api_base_url: str = "https://api.bunny.net/mc"
    app_name: str = ""
    config_path: str = "bunny.toml"
    containers: str = ""           # inline YAML container list
    deployment_type: str = "default"
    region: str = ""
    registry: str = "ghcr.io"
    registry_username: str = ""
    registry_password: str = ""
    create_endpoint: bool = True
    endpoint_type: str = "CDN"
    endpoint_name: str = ""
    endpoint_container: str = ""
    ensure_bunny_registry: bool = False
    bunny_registry_name: str = ""
    bunny_registry_pat: str = ""
    bunny_registry_type: str = "GitHub"
    wait_for_deployment: bool = True
    deployment_timeout: int = 300  # seconds
    build_id: str = "latest"
    autoscale_min: int = 1
    autoscale_max: int = 3
    skip_build: bool = False


class DeployResult(BaseModel):
    """Run-level outputs of a deployment."""

    app_id: str
    app: AppSpec
    outcome: DeploymentOutcome
    endpoint: ResolvedEndpoint = Field(default_factory=ResolvedEndpoint)

    def outputs(self) -> dict[str, str]:
        return {
            "app_id": self.app_id,
            "app_url": self.endpoint.url,
            "endpoint_hostname": self.endpoint.hostname,
        }
