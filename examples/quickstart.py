"""
bunny-deploy quickstart: resolve a descriptor and render the app payload.

Run directly:

    python examples/quickstart.py

Nothing here talks to the platform or runs docker; the demos use a
temporary directory and clean up after themselves.
"""

from __future__ import annotations

import json
import pathlib
import tempfile


# ---------------------------------------------------------------------------
# Demo 1: Decompose image references
# ---------------------------------------------------------------------------

def demo_image_refs() -> None:
    """Show how image references map to namespace/name."""
    print("\n=== Demo 1: Image references ===")

    from bunny_deploy.images import parse_image_ref

    for image in ("redis", "bitnami/postgresql", "ghcr.io/acme/shop/api"):
        parts = parse_image_ref(image)
        print(f"  {image:<28} -> namespace={parts.namespace!r} name={parts.name!r}")


# ---------------------------------------------------------------------------
# Demo 2: Resolve a descriptor file and build the payload
# ---------------------------------------------------------------------------

def demo_descriptor() -> None:
    """Write a descriptor, resolve it and print the application payload."""
    print("\n=== Demo 2: Descriptor to application payload ===")

    from bunny_deploy.config import resolve_app_spec
    from bunny_deploy.core import describe_containers
    from bunny_deploy.descriptor import build_app_descriptor
    from bunny_deploy.models import RegistryIds

    with tempfile.TemporaryDirectory() as tmp:
        descriptor = pathlib.Path(tmp) / "bunny.toml"
        descriptor.write_text(
            'name = "shop"\n'
            "\n"
            "[[containers]]\n"
            'name = "api"\n'
            "build = true\n"
            "\n"
            "[containers.env]\n"
            'DATABASE_URL = "postgres://db:5432/shop"\n'
            "\n"
            "[[containers.endpoints]]\n"
            'name = "shop-web"\n'
            'type = "cdn"\n'
            "\n"
            "[[containers.endpoints.ports]]\n"
            "container = 8080\n"
            "\n"
            "[[containers]]\n"
            'name = "db"\n'
            'image = "postgres"\n'
            'tag = "16"\n',
            encoding="utf-8",
        )

        app = resolve_app_spec(
            config_path=str(descriptor),
            registry="ghcr.io/acme",
            build_id="3f2c1ab",
        )

    print(f"  App             : {app.name}")
    print(f"  Create endpoint : {app.create_endpoint}")
    for line in describe_containers(app):
        print(f"  Container       : {line}")

    payload = build_app_descriptor(
        app, RegistryIds(public_id="dockerhub-id", private_id="ghcr-id")
    )
    print("\n  Payload:")
    print("  " + json.dumps(payload, indent=2).replace("\n", "\n  "))


def main() -> None:
    demo_image_refs()
    demo_descriptor()


if __name__ == "__main__":
    main()
