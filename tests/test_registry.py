"""Tests for bunny_deploy.registry."""

from __future__ import annotations

import pytest
from conftest import FakePlatform

from bunny_deploy.errors import PlatformError
from bunny_deploy.models import ContainerSpec
from bunny_deploy.registry import RegistryCredentials, RegistryProvisioner

BUILT = ContainerSpec(name="api", image="ghcr.io/org/api", tag="abc", build=True)
PREBUILT = ContainerSpec(name="cache", image="redis", tag="latest")


def _provision(platform: FakePlatform, containers, credentials=None):
    with platform.client() as client:
        return RegistryProvisioner(client).provision(
            containers, credentials or RegistryCredentials()
        )


class TestPublicRegistry:
    def test_reuses_registry_by_host(self) -> None:
        platform = FakePlatform(registries=[{"id": 5, "displayName": "Hub", "hostName": "docker.io"}])
        ids = _provision(platform, [PREBUILT])
        assert ids.public_id == "5"
        assert platform.count("POST", "/registries") == 0

    def test_reuses_registry_by_display_name(self) -> None:
        platform = FakePlatform(registries=[{"id": 6, "displayName": "My DOCKER mirror"}])
        assert _provision(platform, [PREBUILT]).public_id == "6"

    def test_creates_public_registry_on_miss(self, platform: FakePlatform) -> None:
        ids = _provision(platform, [PREBUILT])
        assert ids.public_id == "101"
        assert platform.bodies[-1]["type"] == "DockerHub"
        assert platform.bodies[-1]["passwordCredentials"] == {
            "userName": "public", "password": "public",
        }

    def test_second_run_does_not_duplicate(self, platform: FakePlatform) -> None:
        first = _provision(platform, [PREBUILT])
        second = _provision(platform, [PREBUILT])
        assert first.public_id == second.public_id
        assert platform.count("POST", "/registries") == 1


class TestPrivateRegistry:
    def test_existing_name_matches_case_insensitively(self) -> None:
        platform = FakePlatform(registries=[{"id": 9, "displayName": "GHCR-Org"}])
        ids = _provision(platform, [BUILT], RegistryCredentials(name="ghcr-org", ensure=True))
        assert ids.private_id == "9"
        assert platform.count("POST", "/registries") == 0

    def test_created_when_ensure_enabled(self, platform: FakePlatform) -> None:
        creds = RegistryCredentials(username="octo", password="pw", pat="pat",
                                    name="ghcr-org", ensure=True, registry_type="GitHub")
        ids = _provision(platform, [BUILT], creds)
        assert ids.private_id == "101"
        assert platform.bodies[-1] == {
            "displayName": "ghcr-org",
            "type": "GitHub",
            "passwordCredentials": {"userName": "octo", "password": "pat"},
        }

    def test_password_used_when_no_pat(self, platform: FakePlatform) -> None:
        creds = RegistryCredentials(username="octo", password="pw", ensure=True)
        _provision(platform, [BUILT], creds)
        body = platform.bodies[-1]
        assert body["displayName"] == "octo"
        assert body["passwordCredentials"]["password"] == "pw"

    def test_not_created_without_ensure(self, platform: FakePlatform) -> None:
        ids = _provision(platform, [BUILT], RegistryCredentials(name="ghcr-org"))
        assert ids.private_id is None
        assert platform.count("POST", "/registries") == 0

    def test_skipped_without_name_or_ensure(self, platform: FakePlatform) -> None:
        ids = _provision(platform, [BUILT], RegistryCredentials(username="octo"))
        assert ids.private_id is None
        assert platform.calls == []


class TestProvisioner:
    def test_one_list_call_for_both_registries(self, platform: FakePlatform) -> None:
        ids = _provision(platform, [BUILT, PREBUILT],
                         RegistryCredentials(username="octo", ensure=True))
        assert ids.public_id and ids.private_id
        assert ids.public_id != ids.private_id
        assert platform.count("GET", "/registries") == 1
        assert platform.count("POST", "/registries") == 2

    def test_list_failure_aborts(self) -> None:
        platform = FakePlatform(failures={("GET", "/registries"): (500, "down")})
        with pytest.raises(PlatformError, match="down"):
            _provision(platform, [PREBUILT])
