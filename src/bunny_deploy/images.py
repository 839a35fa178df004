"""Docker-style image reference decomposition."""

from __future__ import annotations

from typing import NamedTuple

__all__ = [
    "DEFAULT_NAMESPACE",
    "ImageParts",
    "has_registry_prefix",
    "parse_image_ref",
]

DEFAULT_NAMESPACE = "library"


class ImageParts(NamedTuple):
    namespace: str
    name: str


def _looks_like_host(segment: str) -> bool:
    return "." in segment or ":" in segment


def has_registry_prefix(image: str) -> bool:
    """Return True when *image* is qualified by at least one ``/``."""
    return "/" in image


def parse_image_ref(image: str) -> ImageParts:
    """
    Split *image* into namespace and name, dropping any registry host.

    ``redis`` -> ``("library", "redis")``;
    ``ghcr.io/org/team/api`` -> ``("org/team", "api")``.
    """
    parts = image.split("/")
    if len(parts) == 1:
        return ImageParts(DEFAULT_NAMESPACE, parts[0])

    path = parts[1:] if _looks_like_host(parts[0]) else parts
    name = path[-1]
    namespace = "/".join(path[:-1]) or DEFAULT_NAMESPACE
    return ImageParts(namespace, name)
