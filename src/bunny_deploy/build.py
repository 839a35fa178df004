"""Build and push container images with the docker CLI."""

from __future__ import annotations

import subprocess
from typing import Callable

import structlog

from .errors import BuildError
from .models import ContainerSpec

__all__ = [
    "BUILD_PLATFORM",
    "ImageBuilder",
]

logger = structlog.get_logger(__name__)

BUILD_PLATFORM = "linux/amd64"

Runner = Callable[..., "subprocess.CompletedProcess[bytes]"]


class ImageBuilder:
    """
    Runs ``docker login``, ``docker build`` and ``docker push``.

    Commands run one at a time; the first non-zero exit raises ``BuildError``
    and nothing after it is attempted.
    """

    def __init__(self, docker: str = "docker", runner: Runner | None = None) -> None:
        self.docker = docker
        self._run = runner or subprocess.run

    def login(self, registry: str, username: str, password: str) -> None:
        """Log in to *registry*, feeding the password on stdin."""
        logger.info("build.login", registry=registry, username=username)
        self._exec(
            [self.docker, "login", registry, "-u", username, "--password-stdin"],
            stdin=password.encode("utf-8"),
        )

    def build(self, container: ContainerSpec) -> None:
        logger.info("build.image", container=container.name, reference=container.reference)
        self._exec(
            [
                self.docker,
                "build",
                "-t",
                container.reference,
                "-f",
                container.dockerfile,
                "--platform",
                BUILD_PLATFORM,
                container.context,
            ]
        )

    def push(self, container: ContainerSpec) -> None:
        logger.info("build.push", reference=container.reference)
        self._exec([self.docker, "push", container.reference])

    def build_and_push(
        self,
        containers: list[ContainerSpec],
        registry: str = "",
        username: str = "",
        password: str = "",
    ) -> None:
        """Build and push every build-sourced container in declaration order."""
        targets = [c for c in containers if c.build]
        if not targets:
            return
        if password:
            self.login(registry, username, password)
        for container in targets:
            self.build(container)
            self.push(container)

    def _exec(self, command: list[str], stdin: bytes | None = None) -> None:
        try:
            result = self._run(command, input=stdin, check=False)
        except OSError as exc:
            raise BuildError(f"Could not run {command[0]!r}: {exc}", command, None) from exc
        if result.returncode != 0:
            # Never echo the login command's stdin.
            raise BuildError(
                f"'{' '.join(command[:2])}' exited with status {result.returncode}",
                command,
                result.returncode,
            )
