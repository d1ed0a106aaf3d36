"""WhatsApp Business Cloud API adapter (ChannelProvider)."""
from __future__ import annotations

from typing import Optional

import httpx

from src.messaging.domain.entities.message import Message
from src.messaging.domain.exceptions import PermanentProviderError, ProviderError
from src.shared.logging import get_logger, mask_phone

logger = get_logger(__name__)


class WhatsAppCloudProvider:
    """
    Sends pre-built payloads to POST {base_url}/{phone_number_id}/messages.

    Maps HTTP outcomes onto the retry taxonomy: 429, 5xx and transport
    errors are ProviderError (retryable); other 4xx are PermanentProviderError.
    """

    def __init__(
        self,
        *,
        base_url: str,
        phone_number_id: Optional[str],
        access_token: Optional[str],
        timeout_seconds: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.phone_number_id = phone_number_id
        self._access_token = access_token
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._owns_client = client is None

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def send(self, message: Message) -> str:
        if not self._access_token or not self.phone_number_id:
            raise PermanentProviderError("WhatsApp credentials are not configured")

        url = f"{self.base_url}/{self.phone_number_id}/messages"
        headers = {
            "Authorization": f"Bearer {self._access_token}",
            "Content-Type": "application/json",
        }
        try:
            response = await self._client.post(url, headers=headers, json=message.payload)
        except httpx.TimeoutException as e:
            raise ProviderError(f"WhatsApp API timeout: {e.__class__.__name__}") from e
        except httpx.HTTPError as e:
            raise ProviderError(f"WhatsApp API transport error: {e}") from e

        if response.is_success:
            try:
                return str(response.json()["messages"][0]["id"])
            except (ValueError, KeyError, IndexError, TypeError) as e:
                raise ProviderError("WhatsApp API returned an unexpected body") from e

        error_code: Optional[str] = None
        error_message = response.text[:200]
        try:
            error = response.json().get("error", {})
            error_code = str(error.get("code")) if error.get("code") is not None else None
            error_message = error.get("message") or error_message
        except (ValueError, AttributeError):
            pass

        logger.warning(
            "WhatsApp API error",
            status_code=response.status_code,
            error_code=error_code,
            to=mask_phone(message.to),
        )
        text = f"WhatsApp API error {response.status_code}: {error_message}"
        if response.status_code == 429 or response.status_code >= 500:
            raise ProviderError(text, status_code=response.status_code, error_code=error_code)
        raise PermanentProviderError(text, status_code=response.status_code, error_code=error_code)
