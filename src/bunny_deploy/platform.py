"""HTTP client for the Magic Containers REST API."""

from __future__ import annotations

import json
from typing import Any

import httpx
import structlog

from .errors import PlatformError
from .models import RegistryRef

__all__ = [
    "DEFAULT_API_BASE",
    "PlatformClient",
]

logger = structlog.get_logger(__name__)

DEFAULT_API_BASE = "https://api.bunny.net/mc"
_SECRET_FIELDS = frozenset({"password", "passwordCredentials"})


def _redacted(body: dict[str, Any]) -> dict[str, Any]:
    return {k: ("***" if k in _SECRET_FIELDS else v) for k, v in body.items()}


class PlatformClient:
    """
    Thin synchronous client for the platform API.

    Every call is a single request/response; calls are never retried and
    never issued concurrently. Any non-2xx response raises ``PlatformError``
    carrying the response body.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_API_BASE,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            api_key: Access key sent with every request
            base_url: API root, without trailing slash
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests pass a MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self.base_url,
            headers={
                "AccessKey": api_key,
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    def __enter__(self) -> PlatformClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the underlying HTTP connection pool."""
        self._client.close()

    def request(self, method: str, path: str, body: dict[str, Any] | None = None) -> Any:
        """
        Issue one API call and return the decoded JSON (``None`` when empty).

        Raises:
            PlatformError: On transport failure or a non-2xx status
        """
        logger.debug("platform.request", method=method, path=path)
        if body is not None:
            logger.debug("platform.request_body", body=json.dumps(_redacted(body), indent=2))

        try:
            response = self._client.request(method, path, json=body)
        except httpx.HTTPError as exc:
            raise PlatformError(method, path, None, str(exc)) from exc

        text = response.text
        if not response.is_success:
            raise PlatformError(method, path, response.status_code, text)
        if not text:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise PlatformError(
                method, path, response.status_code, f"invalid JSON response: {text}"
            ) from exc

    # ------------------------------------------------------------------
    # Registries
    # ------------------------------------------------------------------

    def list_registries(self) -> list[RegistryRef]:
        """Return every registry credential record known to the platform."""
        payload = self.request("GET", "/registries")
        if isinstance(payload, dict):
            items = payload.get("items") or []
        elif isinstance(payload, list):
            items = payload
        else:
            items = []
        return [RegistryRef.model_validate(item) for item in items if isinstance(item, dict)]

    def create_registry(
        self,
        display_name: str,
        registry_type: str,
        username: str,
        password: str,
    ) -> RegistryRef:
        """Create a registry credential record and return it."""
        created = self.request(
            "POST",
            "/registries",
            {
                "displayName": display_name,
                "type": registry_type,
                "passwordCredentials": {
                    "userName": username,
                    "password": password,
                },
            },
        )
        if not isinstance(created, dict) or created.get("id") in (None, ""):
            raise PlatformError(
                "POST", "/registries", None, f"response carried no registry id: {created}"
            )
        created.setdefault("displayName", display_name)
        return RegistryRef.model_validate(created)

    # ------------------------------------------------------------------
    # Applications
    # ------------------------------------------------------------------

    def create_app(self, payload: dict[str, Any]) -> str:
        """Submit an application descriptor; return the new application id."""
        created = self.request("POST", "/apps", payload)
        app_id = created.get("id") if isinstance(created, dict) else None
        if app_id in (None, ""):
            raise PlatformError("POST", "/apps", None, f"response carried no app id: {created}")
        return str(app_id)

    def deploy_app(self, app_id: str) -> None:
        """Trigger a deployment of *app_id*."""
        self.request("POST", f"/apps/{app_id}/deploy")

    def get_app(self, app_id: str) -> dict[str, Any]:
        """Fetch the application detail record (shape varies by API version)."""
        detail = self.request("GET", f"/apps/{app_id}")
        return detail if isinstance(detail, dict) else {}
