"""Tests for bunny_deploy.build."""

from __future__ import annotations

import pytest
from conftest import RecordingRunner

from bunny_deploy.build import BUILD_PLATFORM, ImageBuilder
from bunny_deploy.errors import BuildError
from bunny_deploy.models import ContainerSpec


def _built(name: str = "api") -> ContainerSpec:
    return ContainerSpec(name=name, image=f"ghcr.io/org/{name}", tag="abc", build=True,
                         context="svc", dockerfile="svc/Dockerfile")


def _prebuilt() -> ContainerSpec:
    return ContainerSpec(name="cache", image="redis", tag="latest")


class TestImageBuilder:
    def test_login_build_push_sequence(self, runner_recorder: RecordingRunner) -> None:
        builder = ImageBuilder(runner=runner_recorder)
        builder.build_and_push([_built(), _prebuilt()], "ghcr.io", "octo", "s3cret")
        assert runner_recorder.commands == [
            ["docker", "login", "ghcr.io", "-u", "octo", "--password-stdin"],
            ["docker", "build", "-t", "ghcr.io/org/api:abc", "-f", "svc/Dockerfile",
             "--platform", BUILD_PLATFORM, "svc"],
            ["docker", "push", "ghcr.io/org/api:abc"],
        ]
        assert runner_recorder.inputs[0] == b"s3cret"

    def test_no_login_without_password(self, runner_recorder: RecordingRunner) -> None:
        ImageBuilder(runner=runner_recorder).build_and_push([_built()], "ghcr.io", "octo", "")
        assert [c[1] for c in runner_recorder.commands] == ["build", "push"]

    def test_nothing_to_build(self, runner_recorder: RecordingRunner) -> None:
        ImageBuilder(runner=runner_recorder).build_and_push([_prebuilt()], "r", "u", "p")
        assert runner_recorder.commands == []

    def test_failed_build_stops_the_run(self) -> None:
        runner = RecordingRunner(fail_on="build", returncode=2)
        builder = ImageBuilder(runner=runner)
        with pytest.raises(BuildError) as info:
            builder.build_and_push([_built("a"), _built("b")])
        assert info.value.returncode == 2
        assert info.value.command[1] == "build"
        assert len(runner.commands) == 1

    def test_missing_binary_is_a_build_error(self) -> None:
        def missing(command, input=None, check=False):
            raise FileNotFoundError(command[0])

        with pytest.raises(BuildError, match="Could not run"):
            ImageBuilder(docker="nodocker", runner=missing).push(_built())
