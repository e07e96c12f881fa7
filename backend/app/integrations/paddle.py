"""Paddle Billing API client: checkout transactions and customer portal sessions.

Both calls are plain request/response proxies. Paddle wraps every response
in ``{"data": ..., "error": {"detail", "message"}}``.
"""

from typing import Any

import httpx

from app.core.config import get_settings
from app.core.exceptions import PaddleAPIError


class PaddleClient:
    """Client for the Paddle Billing REST API."""

    DEFAULT_BASE_URL = "https://api.paddle.com"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize Paddle client.

        Args:
            api_key: Paddle API key; defaults to settings.paddle_api_key
            base_url: API root; defaults to settings.paddle_api_base_url
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests inject a MockTransport)
        """
        settings = get_settings()
        self.api_key = (api_key if api_key is not None else settings.paddle_api_key).strip()
        base = (base_url if base_url is not None else settings.paddle_api_base_url).strip().rstrip("/")
        self.base_url = base or self.DEFAULT_BASE_URL
        self.timeout = timeout if timeout is not None else settings.paddle_http_timeout_seconds
        self._transport = transport

    async def create_checkout(self, price_id: str, custom_data: dict[str, str]) -> str:
        """Create a checkout transaction and return its hosted checkout URL."""
        data = await self._request(
            "POST",
            "/transactions",
            {
                "items": [{"price_id": price_id, "quantity": 1}],
                "custom_data": custom_data,
            },
        )
        checkout = data.get("checkout") if isinstance(data, dict) else None
        url = ""
        if isinstance(checkout, dict):
            url = checkout.get("url") or ""
        if not url and isinstance(data, dict):
            url = data.get("checkout_url") or ""
        if not url:
            raise PaddleAPIError("Paddle response missing checkout URL")
        return url

    async def create_portal_session(self, customer_id: str, return_url: str) -> str:
        """Create a customer portal session and return its URL."""
        data = await self._request(
            "POST",
            f"/customers/{customer_id}/portal-sessions",
            {"return_url": return_url},
        )
        url = ""
        if isinstance(data, dict):
            url = data.get("url") or ""
            if not url:
                general = (data.get("urls") or {}).get("general") or {}
                url = general.get("overview") or ""
        if not url:
            raise PaddleAPIError("Paddle response missing portal URL")
        return url

    async def _request(self, method: str, path: str, payload: dict[str, Any] | None = None) -> Any:
        if not self.api_key:
            raise PaddleAPIError("PADDLE_API_KEY is not configured")

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(method, f"{self.base_url}{path}", json=payload, headers=headers)
        except httpx.HTTPError as exc:
            raise PaddleAPIError(f"Paddle API request failed: {exc}") from exc

        envelope: dict[str, Any] = {}
        if response.content:
            try:
                envelope = response.json()
            except ValueError as exc:
                # Error bodies from proxies are often HTML; report the status instead
                if response.status_code < 300:
                    raise PaddleAPIError(
                        f"Failed to decode Paddle response: {exc}", status_code=response.status_code
                    ) from exc
            if not isinstance(envelope, dict):
                envelope = {}

        if response.status_code >= 300:
            error = envelope.get("error")
            if not isinstance(error, dict):
                error = {}
            message = error.get("detail") or error.get("message") or response.text or response.reason_phrase
            raise PaddleAPIError(
                f"Paddle API error ({response.status_code}): {message}",
                status_code=response.status_code,
            )

        return envelope.get("data")
