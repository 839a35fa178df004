"""Find-or-create the image registries an application pulls from."""

from __future__ import annotations

import structlog
from pydantic import BaseModel, ConfigDict

from .models import ContainerSpec, RegistryIds, RegistryRef, RunSettings
from .platform import PlatformClient

__all__ = [
    "PUBLIC_REGISTRY_HOST",
    "RegistryCredentials",
    "RegistryProvisioner",
    "find_public_registry",
    "find_registry_by_name",
    "needs_private_registry",
    "needs_public_registry",
]

logger = structlog.get_logger(__name__)

PUBLIC_REGISTRY_HOST = "docker.io"
_PUBLIC_REGISTRY_MARKER = "docker"
_PUBLIC_REGISTRY_NAME = "Docker Hub"
_PUBLIC_REGISTRY_TYPE = "DockerHub"
# Anonymous pulls; the platform only requires the fields to be present.
_PUBLIC_PLACEHOLDER_USER = "public"
_PUBLIC_PLACEHOLDER_PASSWORD = "public"


class RegistryCredentials(BaseModel):
    """Inputs controlling the private (push) registry record."""

    model_config = ConfigDict(frozen=True)

    username: str = ""
    password: str = ""
    pat: str = ""
    name: str = ""
    ensure: bool = False
    registry_type: str = "GitHub"

    @classmethod
    def from_settings(cls, settings: RunSettings) -> RegistryCredentials:
        return cls(
            username=settings.registry_username,
            password=settings.registry_password,
            pat=settings.bunny_registry_pat,
            name=settings.bunny_registry_name,
            ensure=settings.ensure_bunny_registry,
            registry_type=settings.bunny_registry_type,
        )

    @property
    def search_name(self) -> str:
        return self.name or self.username

    @property
    def secret(self) -> str:
        return self.pat or self.password


class RegistryProvisioner:
    """
    Idempotently provisions registry records on the platform.

    At most one list call and two create calls are issued. Lookup by name is
    authoritative: a record is only created after a verified miss.
    """

    def __init__(self, client: PlatformClient) -> None:
        self.client = client

    def provision(
        self,
        containers: list[ContainerSpec],
        credentials: RegistryCredentials,
    ) -> RegistryIds:
        needs_public = needs_public_registry(containers)
        needs_private = needs_private_registry(containers, credentials)
        if not (needs_public or needs_private):
            return RegistryIds()

        existing = self.client.list_registries()
        logger.info("registry.listed", count=len(existing))
        for ref in existing:
            logger.info(
                "registry.known",
                registry_id=ref.id,
                display_name=ref.display_name,
                host=ref.host_name or "n/a",
                public=ref.is_public,
            )

        public_id = self._ensure_public(existing) if needs_public else None
        private_id = self._ensure_private(existing, credentials) if needs_private else None
        return RegistryIds(public_id=public_id, private_id=private_id)

    def _ensure_public(self, existing: list[RegistryRef]) -> str:
        found = find_public_registry(existing)
        if found is not None:
            logger.info("registry.public_reused", registry_id=found.id, display_name=found.display_name)
            return found.id

        logger.info("registry.public_missing", action="create")
        created = self.client.create_registry(
            _PUBLIC_REGISTRY_NAME,
            _PUBLIC_REGISTRY_TYPE,
            _PUBLIC_PLACEHOLDER_USER,
            _PUBLIC_PLACEHOLDER_PASSWORD,
        )
        logger.info("registry.public_created", registry_id=created.id)
        return created.id

    def _ensure_private(
        self,
        existing: list[RegistryRef],
        credentials: RegistryCredentials,
    ) -> str | None:
        found = find_registry_by_name(existing, credentials.search_name)
        if found is not None:
            logger.info("registry.private_reused", registry_id=found.id, display_name=found.display_name)
            return found.id
        if not credentials.ensure:
            logger.warning("registry.private_missing", name=credentials.search_name)
            return None

        logger.info("registry.private_missing", name=credentials.search_name, action="create")
        created = self.client.create_registry(
            credentials.search_name,
            credentials.registry_type,
            credentials.username,
            credentials.secret,
        )
        logger.info("registry.private_created", registry_id=created.id)
        return created.id


def needs_public_registry(containers: list[ContainerSpec]) -> bool:
    """Pre-built images pull through the public registry record."""
    return any(not c.build for c in containers)


def needs_private_registry(
    containers: list[ContainerSpec], credentials: RegistryCredentials
) -> bool:
    """Built images use a private record only when one is named or ensured."""
    return any(c.build for c in containers) and bool(credentials.name or credentials.ensure)


def find_public_registry(registries: list[RegistryRef]) -> RegistryRef | None:
    """First record pointing at the public registry host or named after it."""
    for ref in registries:
        if ref.host_name == PUBLIC_REGISTRY_HOST or _PUBLIC_REGISTRY_MARKER in ref.display_name.lower():
            return ref
    return None


def find_registry_by_name(registries: list[RegistryRef], name: str) -> RegistryRef | None:
    """Case-insensitive display-name match."""
    if not name:
        return None
    wanted = name.lower()
    for ref in registries:
        if ref.display_name.lower() == wanted:
            return ref
    return None
