"""Core deployment pipeline for bunny-deploy."""

from __future__ import annotations

import re
import time
import warnings
from typing import Any, Callable

import structlog
from pydantic import BaseModel, Field

from .build import ImageBuilder
from .config import resolve_from_settings
from .descriptor import EndpointDefaults, build_app_descriptor
from .errors import ConfigError, DeploymentTimeoutWarning
from .models import (
    AppSpec,
    DeployResult,
    DeploymentOutcome,
    DeploymentState,
    RegistryIds,
    ResolvedEndpoint,
    RunSettings,
)
from .platform import PlatformClient
from .registry import RegistryCredentials, RegistryProvisioner

__all__ = [
    "POLL_INTERVAL_SECONDS",
    "DeployContext",
    "DeployPipeline",
    "DeploymentOrchestrator",
    "describe_containers",
    "is_success_status",
    "read_status",
    "resolve_endpoint",
    "to_url",
]

logger = structlog.get_logger(__name__)

POLL_INTERVAL_SECONDS = 10.0

# Field names differ across API versions; first non-empty match wins.
_STATUS_FIELDS = ("status", "appStatus", "state")
_TOP_LEVEL_HOST_PATHS: tuple[tuple[str, ...], ...] = (
    ("displayEndpoint", "address"),
    ("displayEndpoint", "publicHost"),
    ("displayEndpoint", "hostName"),
    ("hostname",),
)
_TEMPLATE_FIELDS = ("containerTemplates", "containers")
_ENDPOINT_HOST_FIELDS = ("publicHost", "hostName", "address")
_URL_SCHEMES = ("http://", "https://")

_SUCCESS_STATUS = re.compile(r"^\s*(active|running)\s*$", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Status and endpoint readers
# ---------------------------------------------------------------------------


def read_status(detail: dict[str, Any]) -> str:
    """Return the application status from a detail record, or ``""``."""
    for field in _STATUS_FIELDS:
        value = detail.get(field)
        if value not in (None, ""):
            return str(value)
    return ""


def is_success_status(status: str) -> bool:
    return bool(_SUCCESS_STATUS.match(status))


def to_url(hostname: str) -> str:
    """Prefix a bare hostname with ``https://``; pass schemed values through."""
    if not hostname:
        return ""
    if hostname.startswith(_URL_SCHEMES):
        return hostname
    return f"https://{hostname}"


def _dig(record: Any, path: tuple[str, ...]) -> str:
    for key in path:
        if not isinstance(record, dict):
            return ""
        record = record.get(key)
    return record if isinstance(record, str) else ""


def resolve_endpoint(detail: dict[str, Any]) -> ResolvedEndpoint:
    """
    Find the externally reachable hostname of an application.

    The top-level convenience field wins; otherwise the first non-empty
    endpoint hostname across the container templates, in order. An empty
    result means the endpoint is not provisioned yet.
    """
    hostname = ""
    for path in _TOP_LEVEL_HOST_PATHS:
        hostname = _dig(detail, path)
        if hostname:
            break

    if not hostname:
        hostname = _first_template_hostname(detail)

    return ResolvedEndpoint(hostname=hostname, url=to_url(hostname))


def _first_template_hostname(detail: dict[str, Any]) -> str:
    templates: Any = []
    for field in _TEMPLATE_FIELDS:
        templates = detail.get(field)
        if templates:
            break
    for template in templates or []:
        if not isinstance(template, dict):
            continue
        for endpoint in template.get("endpoints") or []:
            for field in _ENDPOINT_HOST_FIELDS:
                hostname = _dig(endpoint, (field,))
                if hostname:
                    return hostname
    return ""


# ---------------------------------------------------------------------------
# Deployment orchestrator
# ---------------------------------------------------------------------------


class DeploymentOrchestrator:
    """
    Creates an application, triggers its deployment and optionally polls it.

    State machine: ``CREATED -> DEPLOYING -> {ACTIVE, TIMED_OUT}``. Running
    out of time is a warning, not an error: the deployment may still converge
    after the run ends.
    """

    def __init__(
        self,
        client: PlatformClient,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.poll_interval = poll_interval
        self._clock = clock
        self._sleep = sleep

    def create(self, payload: dict[str, Any]) -> str:
        """Submit the descriptor and return the application id."""
        app_id = self.client.create_app(payload)
        logger.info("app.created", app_name=payload.get("name"), app_id=app_id,
                    state=DeploymentState.CREATED.value)
        return app_id

    def deploy(self, app_id: str, wait: bool = True, timeout: float = 300) -> DeploymentOutcome:
        """Trigger a deployment; poll until active or *timeout* seconds pass if *wait*."""
        self.client.deploy_app(app_id)
        logger.info("app.deploy_triggered", app_id=app_id, state=DeploymentState.DEPLOYING.value)
        if not wait:
            return DeploymentOutcome(state=DeploymentState.DEPLOYING)
        return self.wait_until_active(app_id, timeout)

    def wait_until_active(self, app_id: str, timeout: float) -> DeploymentOutcome:
        deadline = self._clock() + timeout
        status = ""
        polls = 0
        while self._clock() < deadline:
            status = read_status(self.client.get_app(app_id))
            polls += 1
            logger.info("app.status", app_id=app_id, status=status, poll=polls)
            if is_success_status(status):
                return DeploymentOutcome(state=DeploymentState.ACTIVE, last_status=status, polls=polls)
            self._sleep(self.poll_interval)

        message = f"App did not become active within {timeout:g}s (last: {status})"
        logger.warning("app.deploy_timed_out", app_id=app_id, timeout=timeout, last_status=status)
        warnings.warn(message, DeploymentTimeoutWarning, stacklevel=2)
        return DeploymentOutcome(state=DeploymentState.TIMED_OUT, last_status=status, polls=polls)


# ---------------------------------------------------------------------------
# End-to-end pipeline
# ---------------------------------------------------------------------------


class DeployContext(BaseModel):
    """State handed from one pipeline stage to the next."""

    settings: RunSettings
    app: AppSpec | None = None
    registries: RegistryIds = Field(default_factory=RegistryIds)
    payload: dict[str, Any] = Field(default_factory=dict)
    app_id: str = ""
    outcome: DeploymentOutcome | None = None
    endpoint: ResolvedEndpoint = Field(default_factory=ResolvedEndpoint)

    def result(self) -> DeployResult:
        if self.app is None or self.outcome is None:
            raise RuntimeError("Pipeline has not completed.")
        return DeployResult(
            app_id=self.app_id,
            app=self.app,
            outcome=self.outcome,
            endpoint=self.endpoint,
        )


class DeployPipeline:
    """
    Runs one deployment from configuration to public URL.

    Stages run strictly in order and fail fast; nothing is rolled back when a
    later stage fails because every platform lookup is idempotent on re-run.
    """

    def __init__(
        self,
        settings: RunSettings,
        client: PlatformClient,
        builder: ImageBuilder | None = None,
        orchestrator: DeploymentOrchestrator | None = None,
    ) -> None:
        self.settings = settings
        self.client = client
        self.builder = builder or ImageBuilder()
        self.orchestrator = orchestrator or DeploymentOrchestrator(client)

    def run(self) -> DeployResult:
        ctx = DeployContext(settings=self.settings)
        self.resolve_config(ctx)
        self.build_images(ctx)
        self.provision_registries(ctx)
        self.create_app(ctx)
        self.deploy(ctx)
        self.resolve_url(ctx)
        return ctx.result()

    def resolve_config(self, ctx: DeployContext) -> None:
        settings = ctx.settings
        if not settings.api_key:
            raise ConfigError("An API access key is required.")
        app = resolve_from_settings(settings)
        if settings.ensure_bunny_registry and app.build_containers and not (
            settings.bunny_registry_name or settings.registry_username
        ):
            raise ConfigError(
                "Creating a private registry needs a registry name or username."
            )
        if app.create_endpoint:
            EndpointDefaults.from_settings(settings).resolved_type()
        ctx.app = app
        logger.info(
            "config.resolved",
            app_name=app.name,
            containers=len(app.containers),
            to_build=len(app.build_containers),
            prebuilt=len(app.prebuilt_containers),
        )

    def build_images(self, ctx: DeployContext) -> None:
        app = _require_app(ctx)
        if not app.build_containers:
            return
        if ctx.settings.skip_build:
            logger.info("build.skipped", containers=len(app.build_containers))
            return
        self.builder.build_and_push(
            app.containers,
            registry=ctx.settings.registry,
            username=ctx.settings.registry_username,
            password=ctx.settings.registry_password,
        )

    def provision_registries(self, ctx: DeployContext) -> None:
        ctx.registries = RegistryProvisioner(self.client).provision(
            _require_app(ctx).containers, RegistryCredentials.from_settings(ctx.settings)
        )

    def create_app(self, ctx: DeployContext) -> None:
        settings = ctx.settings
        ctx.payload = build_app_descriptor(
            _require_app(ctx),
            ctx.registries,
            EndpointDefaults.from_settings(settings),
            autoscale_min=settings.autoscale_min,
            autoscale_max=settings.autoscale_max,
        )
        ctx.app_id = self.orchestrator.create(ctx.payload)

    def deploy(self, ctx: DeployContext) -> None:
        ctx.outcome = self.orchestrator.deploy(
            ctx.app_id,
            wait=ctx.settings.wait_for_deployment,
            timeout=ctx.settings.deployment_timeout,
        )

    def resolve_url(self, ctx: DeployContext) -> None:
        if not _require_app(ctx).create_endpoint:
            return
        ctx.endpoint = resolve_endpoint(self.client.get_app(ctx.app_id))
        if ctx.endpoint.provisioned:
            logger.info("app.url", url=ctx.endpoint.url)
        else:
            logger.info("app.url_pending", reason="no endpoint hostname yet")


def _require_app(ctx: DeployContext) -> AppSpec:
    if ctx.app is None:
        raise RuntimeError("Configuration has not been resolved.")
    return ctx.app


def describe_containers(app: AppSpec) -> list[str]:
    """One summary line per container: ``name -> image:tag (port N) [built]``."""
    lines = []
    for c in app.containers:
        line = f"{c.name} -> {c.reference}"
        if c.port:
            line += f" (port {c.port})"
        line += " [built]" if c.build else " [pre-built]"
        lines.append(line)
    return lines
