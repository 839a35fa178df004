"""Shared test fixtures for bunny-deploy."""

from __future__ import annotations

import json
import subprocess
from pathlib import Path
from typing import Any

import httpx
import pytest
import structlog

from bunny_deploy.models import RunSettings
from bunny_deploy.platform import PlatformClient

API_BASE = "https://api.test"


# ---------------------------------------------------------------------------
# Fake platform
# ---------------------------------------------------------------------------


class FakePlatform:
    """In-memory stand-in for the platform API, served via httpx.MockTransport."""

    def __init__(
        self,
        registries: list[dict[str, Any]] | None = None,
        statuses: list[str] | None = None,
        detail: dict[str, Any] | None = None,
        failures: dict[tuple[str, str], tuple[int, str]] | None = None,
    ) -> None:
        self.registries = list(registries or [])
        self.statuses = list(statuses or ["Active"])
        self.detail = dict(detail or {})
        self.failures = dict(failures or {})
        self.calls: list[tuple[str, str]] = []
        self.bodies: list[Any] = []
        self.access_keys: set[str] = set()
        self.app_payloads: list[dict[str, Any]] = []
        self._status_index = 0
        self._next_registry_id = 100

    def handler(self, request: httpx.Request) -> httpx.Response:
        method, path = request.method, request.url.path
        body = json.loads(request.content) if request.content else None
        self.calls.append((method, path))
        self.bodies.append(body)
        self.access_keys.add(request.headers.get("AccessKey", ""))

        if (method, path) in self.failures:
            status, text = self.failures[(method, path)]
            return httpx.Response(status, text=text)

        if method == "GET" and path == "/registries":
            return httpx.Response(200, json={"items": self.registries})
        if method == "POST" and path == "/registries":
            self._next_registry_id += 1
            created = {"id": self._next_registry_id, "displayName": body["displayName"]}
            self.registries.append(created)
            return httpx.Response(201, json=created)
        if method == "POST" and path == "/apps":
            self.app_payloads.append(body)
            return httpx.Response(201, json={"id": "app-1"})
        if method == "POST" and path.endswith("/deploy"):
            return httpx.Response(204)
        if method == "GET" and path.startswith("/apps/"):
            status = self.statuses[min(self._status_index, len(self.statuses) - 1)]
            self._status_index += 1
            return httpx.Response(200, json={"id": "app-1", "status": status, **self.detail})
        return httpx.Response(404, text=f"no route for {method} {path}")

    def count(self, method: str, path: str) -> int:
        return self.calls.count((method, path))

    def client(self, api_key: str = "test-key") -> PlatformClient:
        return PlatformClient(api_key, API_BASE, transport=httpx.MockTransport(self.handler))


class FakeClock:
    """Monotonic clock advanced only by ``sleep``."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class RecordingRunner:
    """Replacement for subprocess.run that records commands."""

    def __init__(self, fail_on: str | None = None, returncode: int = 1) -> None:
        self.commands: list[list[str]] = []
        self.inputs: list[bytes | None] = []
        self.fail_on = fail_on
        self.returncode = returncode

    def __call__(self, command: list[str], input: bytes | None = None, check: bool = False):
        self.commands.append(command)
        self.inputs.append(input)
        code = self.returncode if self.fail_on and self.fail_on in command else 0
        return subprocess.CompletedProcess(command, code)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    structlog.reset_defaults()


@pytest.fixture()
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def runner_recorder() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture()
def inline_containers() -> str:
    return (
        "- name: web\n"
        "  build: true\n"
        "  image: web\n"
        "  port: 8080\n"
        "  env:\n"
        "    MODE: prod\n"
        "- name: cache\n"
        "  image: redis\n"
    )


@pytest.fixture()
def descriptor_file(tmp_path: Path) -> Path:
    """A descriptor with one built container (with a CDN endpoint) and redis."""
    path = tmp_path / "bunny.toml"
    path.write_text(
        'name = "shop"\n'
        "\n"
        "[[containers]]\n"
        'name = "api"\n'
        "build = true\n"
        'dockerfile = "docker/Dockerfile.api"\n'
        "\n"
        "[containers.env]\n"
        'LOG_LEVEL = "debug"\n'
        "WORKERS = 4\n"
        "\n"
        "[[containers.endpoints]]\n"
        'name = "public"\n'
        'type = "CDN"\n'
        "\n"
        "[[containers.endpoints.ports]]\n"
        "container = 8080\n"
        "\n"
        "[[containers]]\n"
        'name = "cache"\n'
        'image = "redis"\n',
        encoding="utf-8",
    )
    return path


@pytest.fixture()
def settings(descriptor_file: Path) -> RunSettings:
    return RunSettings(
        api_key="test-key",
        config_path=str(descriptor_file),
        registry="ghcr.io/org",
        build_id="abc123",
        skip_build=True,
    )
