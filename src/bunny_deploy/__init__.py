"""bunny-deploy: declarative multi-container deployments to Magic Containers."""

__version__ = "0.1.0"
