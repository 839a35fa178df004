"""Error taxonomy for bunny-deploy."""

from __future__ import annotations

__all__ = [
    "BunnyDeployError",
    "BuildError",
    "ConfigError",
    "DeploymentTimeoutWarning",
    "PlatformError",
]


class BunnyDeployError(Exception):
    """Base class for every fatal condition raised by bunny-deploy."""


class ConfigError(BunnyDeployError):
    """The application configuration is missing, malformed or inconsistent."""


class BuildError(BunnyDeployError):
    """The container build tool exited non-zero (or could not be started)."""

    def __init__(self, message: str, command: list[str], returncode: int | None) -> None:
        super().__init__(message)
        self.command = command
        self.returncode = returncode


class PlatformError(BunnyDeployError):
    """
    A platform API call failed.

    ``status_code`` is ``None`` when the request never produced a response
    (connection refused, DNS failure, timeout).
    """

    def __init__(
        self,
        method: str,
        path: str,
        status_code: int | None,
        body: str,
    ) -> None:
        if status_code is None:
            message = f"API {method} {path} failed: {body}"
        else:
            message = f"API {method} {path} failed ({status_code}): {body}"
        super().__init__(message)
        self.method = method
        self.path = path
        self.status_code = status_code
        self.body = body


class DeploymentTimeoutWarning(UserWarning):
    """The application did not report a running status before the deadline."""
