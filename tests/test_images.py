"""Tests for bunny_deploy.images."""

from __future__ import annotations

import pytest

from bunny_deploy.images import DEFAULT_NAMESPACE, has_registry_prefix, parse_image_ref


class TestParseImageRef:
    @pytest.mark.parametrize("image", ["redis", "nginx", "my-app"])
    def test_unqualified_name_is_library_image(self, image: str) -> None:
        parts = parse_image_ref(image)
        assert parts.namespace == DEFAULT_NAMESPACE
        assert parts.name == image

    def test_host_is_dropped(self) -> None:
        assert parse_image_ref("host.tld/a/b/name") == ("a/b", "name")

    def test_host_with_port_is_dropped(self) -> None:
        assert parse_image_ref("localhost:5000/team/api") == ("team", "api")

    def test_first_segment_without_dot_is_namespace(self) -> None:
        assert parse_image_ref("bitnami/redis") == ("bitnami", "redis")

    def test_host_only_prefix_defaults_namespace(self) -> None:
        assert parse_image_ref("ghcr.io/api") == ("library", "api")

    def test_docker_hub_qualified(self) -> None:
        assert parse_image_ref("docker.io/library/postgres") == ("library", "postgres")

    def test_never_raises_on_odd_input(self) -> None:
        parts = parse_image_ref("a/")
        assert parts.namespace == "a"
        assert parts.name == ""


class TestHasRegistryPrefix:
    def test_plain_name(self) -> None:
        assert has_registry_prefix("web") is False

    def test_qualified_name(self) -> None:
        assert has_registry_prefix("ghcr.io/org/web") is True
