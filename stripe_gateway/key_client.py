"""Resolves the Stripe secret key to charge against for a given app."""
from typing import Optional

import httpx
import structlog

logger = structlog.get_logger(__name__)

DECRYPT_PATH = "/internal/app-keys/stripe/decrypt"


class KeyResolutionError(Exception):
    pass


class KeyResolver:
    def __init__(self, base_url: str, api_key: str, default_key: Optional[str] = None,
                 timeout: float = 10.0, transport: Optional[httpx.BaseTransport] = None):
        self._default_key = default_key
        self._client = httpx.Client(
            base_url=base_url,
            headers={"x-api-key": api_key or ""},
            timeout=timeout,
            transport=transport,
        )

    def resolve(self, app_id: Optional[str] = None) -> str:
        """Return the tenant key for ``app_id``, or the default key when no app is given.

        An explicit app id never falls back to the default key: charging the
        wrong tenant is worse than failing the request.
        """
        if app_id:
            return self.decrypt_app_key(app_id)
        if not self._default_key:
            raise KeyResolutionError("STRIPE_SECRET_KEY not configured")
        return self._default_key

    def decrypt_app_key(self, app_id: str) -> str:
        try:
            response = self._client.get(DECRYPT_PATH, params={"appId": app_id})
        except httpx.HTTPError as exc:
            raise KeyResolutionError(f"key-service unreachable: {exc}") from exc

        if response.status_code == 404:
            raise KeyResolutionError(f"No Stripe key configured for appId '{app_id}'")
        if response.is_error:
            raise KeyResolutionError(
                f"key-service GET {DECRYPT_PATH} failed: {response.status_code} - {response.text}"
            )

        try:
            data = response.json()
            key = data["key"]
        except (ValueError, KeyError, TypeError) as exc:
            raise KeyResolutionError(f"key-service returned no key for appId '{app_id}'") from exc

        logger.debug("stripe_key_resolved", app_id=app_id, provider=data.get("provider"))
        return key

    def close(self) -> None:
        self._client.close()
