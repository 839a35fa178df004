"""CLI entry point for bunny-deploy."""

from __future__ import annotations

import json
import os
import sys
import warnings
from typing import Any, Callable

import click

from .config import resolve_from_settings
from .core import DeployPipeline, describe_containers, read_status, resolve_endpoint
from .descriptor import EndpointDefaults, build_app_descriptor
from .errors import BunnyDeployError, DeploymentTimeoutWarning
from .logging import LOG_FORMATS, setup_logging
from .models import DeploymentState, RegistryIds, RunSettings
from .platform import DEFAULT_API_BASE, PlatformClient
from .registry import RegistryCredentials, needs_private_registry, needs_public_registry

_PUBLIC_PLACEHOLDER = "<public-registry>"
_PRIVATE_PLACEHOLDER = "<private-registry>"


def _input(name: str) -> str:
    """Environment variable a CI runner sets for the input *name*."""
    return f"INPUT_{name.upper()}"


def _config_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options shared by every command that resolves the app configuration."""
    options = [
        click.option("--app-name", envvar=_input("app_name"), default="",
                     help="Application name (overrides 'name' in the descriptor)."),
        click.option("--config", "config_path", envvar=_input("config"),
                     default="bunny.toml", show_default=True,
                     help="Path to the TOML app descriptor."),
        click.option("--containers", envvar=_input("containers"), default="",
                     help="Inline YAML container list (used when no descriptor exists)."),
        click.option("--deployment-type", envvar=_input("deployment_type"),
                     default="default", show_default=True,
                     help="'single' pins one region; 'advanced' uses reserved runtime."),
        click.option("--region", envvar=_input("region"), default="",
                     help="Region id for single-region deployments."),
        click.option("--registry", envvar=_input("registry"), default="ghcr.io",
                     show_default=True, help="Push registry prefix for built images."),
        click.option("--build-id", envvar="GITHUB_SHA", default="latest",
                     show_default=True, help="Default tag for built images."),
        click.option("--create-endpoint/--no-create-endpoint",
                     envvar=_input("create_endpoint"), default=True, show_default=True,
                     help="Create an endpoint for inline container lists."),
        click.option("--endpoint-type", envvar=_input("endpoint_type"), default="CDN",
                     show_default=True, help="CDN or Anycast."),
        click.option("--endpoint-name", envvar=_input("endpoint_name"), default="",
                     help="Endpoint display name (default: <app>-endpoint)."),
        click.option("--endpoint-container", envvar=_input("endpoint_container"),
                     default="", help="Container that receives the endpoint."),
        click.option("--autoscale-min", envvar=_input("autoscale_min"), default=1,
                     show_default=True, type=click.IntRange(min=0)),
        click.option("--autoscale-max", envvar=_input("autoscale_max"), default=3,
                     show_default=True, type=click.IntRange(min=1)),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _private_registry_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options deciding whether built images pull through a private registry."""
    func = click.option(
        "--bunny-registry-name", envvar=_input("bunny_registry_name"), default="",
        help="Display name of the private registry record.",
    )(func)
    return click.option(
        "--ensure-bunny-registry/--no-ensure-bunny-registry",
        envvar=_input("ensure_bunny_registry"), default=False,
        help="Create the private registry record when it does not exist.",
    )(func)


def _fail(exc: Exception) -> None:
    click.echo(f"Error: {exc}", err=True)
    sys.exit(1)


def _write_outputs(outputs: dict[str, str]) -> None:
    """Echo run outputs and append them to ``$GITHUB_OUTPUT`` when set."""
    for key, value in outputs.items():
        click.echo(f"  {key:<18}: {value}")
    output_file = os.environ.get("GITHUB_OUTPUT")
    if output_file:
        with open(output_file, "a", encoding="utf-8") as fh:
            for key, value in outputs.items():
                fh.write(f"{key}={value}\n")


@click.group()
@click.version_option(package_name="bunny-deploy")
@click.option("--log-level", envvar="BUNNY_DEPLOY_LOG_LEVEL", default="INFO",
              show_default=True, help="Minimum log level.")
@click.option("--log-format", envvar="BUNNY_DEPLOY_LOG_FORMAT",
              type=click.Choice(LOG_FORMATS), default="console", show_default=True)
def main(log_level: str, log_format: str) -> None:
    """bunny-deploy: deploy multi-container apps to Magic Containers."""
    setup_logging(log_level, log_format)


@main.command("deploy")
@click.option("--api-key", envvar=_input("api_key"), default="",
              help="Platform access key.")
@click.option("--api-base-url", envvar=_input("api_base_url"),
              default=DEFAULT_API_BASE, show_default=True)
@_config_options
@click.option("--registry-username", envvar=_input("registry_username"), default="")
@click.option("--registry-password", envvar=_input("registry_password"), default="")
@_private_registry_options
@click.option("--bunny-registry-pat", envvar=_input("bunny_registry_pat"), default="",
              help="Token stored in the private registry record.")
@click.option("--bunny-registry-type", envvar=_input("bunny_registry_type"),
              default="GitHub", show_default=True)
@click.option("--wait/--no-wait", "wait_for_deployment",
              envvar=_input("wait_for_deployment"), default=True, show_default=True,
              help="Poll until the app reports an active status.")
@click.option("--timeout", "deployment_timeout", envvar=_input("deployment_timeout"),
              default=300, show_default=True, type=click.IntRange(min=0),
              help="Seconds to wait for the deployment.")
@click.option("--skip-build", is_flag=True, default=False,
              help="Assume built images were already pushed.")
def deploy_command(**options: Any) -> None:
    """Build, provision registries, create the app and deploy it."""
    settings = RunSettings(**options)

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always", DeploymentTimeoutWarning)
        try:
            with PlatformClient(settings.api_key, settings.api_base_url) as client:
                result = DeployPipeline(settings, client).run()
        except BunnyDeployError as exc:
            _fail(exc)
            return

    for warning in caught:
        click.echo(f"Warning: {warning.message}", err=True)

    app = result.app
    click.echo(f"Deployed app: {app.name} ({result.app_id})")
    for line in describe_containers(app):
        click.echo(f"  Container: {line}")
    if result.outcome.state is DeploymentState.ACTIVE:
        click.echo("App is live on Magic Containers!")
    elif result.outcome.state is DeploymentState.DEPLOYING:
        click.echo("Deployment triggered (not waiting).")
    if app.create_endpoint and not result.endpoint.provisioned:
        click.echo("No endpoint URL found yet (may take a moment to provision).")
    _write_outputs(result.outputs())


@main.command("plan")
@_config_options
@_private_registry_options
def plan_command(**options: Any) -> None:
    """Print the application descriptor without contacting the platform."""
    settings = RunSettings(**options)
    try:
        app = resolve_from_settings(settings)
        credentials = RegistryCredentials.from_settings(settings)
        registries = RegistryIds(
            public_id=_PUBLIC_PLACEHOLDER if needs_public_registry(app.containers) else None,
            private_id=(
                _PRIVATE_PLACEHOLDER
                if needs_private_registry(app.containers, credentials)
                else None
            ),
        )
        payload = build_app_descriptor(
            app,
            registries,
            EndpointDefaults.from_settings(settings),
            autoscale_min=settings.autoscale_min,
            autoscale_max=settings.autoscale_max,
        )
    except BunnyDeployError as exc:
        _fail(exc)
        return

    click.echo(json.dumps(payload, indent=2))


@main.command("status")
@click.argument("app_id")
@click.option("--api-key", envvar=_input("api_key"), required=True,
              help="Platform access key.")
@click.option("--api-base-url", envvar=_input("api_base_url"),
              default=DEFAULT_API_BASE, show_default=True)
def status_command(app_id: str, api_key: str, api_base_url: str) -> None:
    """Show the status and public URL of an application."""
    try:
        with PlatformClient(api_key, api_base_url) as client:
            detail = client.get_app(app_id)
    except BunnyDeployError as exc:
        _fail(exc)
        return

    endpoint = resolve_endpoint(detail)
    click.echo(f"App    : {detail.get('name', '(unknown)')} ({app_id})")
    click.echo(f"Status : {read_status(detail) or '(unknown)'}")
    click.echo(f"URL    : {endpoint.url or '(not yet provisioned)'}")


if __name__ == "__main__":
    main()
