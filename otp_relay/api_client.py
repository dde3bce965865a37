"""
HTTP client for the external policy API.
"""

from typing import Any, Dict
import httpx
from loguru import logger

from .errors import DeliveryRejectedError, TransientFetchError


class PolicyApiClient:
    """Bearer-authenticated client for the policy API's OTP endpoints."""

    def __init__(self, base_url: str, api_key: str, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }

    async def submit_otp(
        self,
        request_id: str,
        encrypted_payload: str,
        source: str,
        metadata: Dict[str, Any],
    ) -> Dict[str, Any]:
        """
        Submit an encrypted OTP for a request.

        Args:
            request_id: Request the code was matched to
            encrypted_payload: JSON string of the EncryptedEnvelope
            source: "email" or "sms"
            metadata: Non-secret details about the source message

        Returns:
            Decoded JSON response body (empty dict if there was none)

        Raises:
            DeliveryRejectedError: On a non-2xx response or ``success: false``
            TransientFetchError: If the API could not be reached
        """
        url = f"{self.base_url}/v1/otp/{request_id}/receive"
        body = {
            "encryptedPayload": encrypted_payload,
            "source": source,
            "metadata": metadata,
        }

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    url, json=body, headers=self._headers(), timeout=self.timeout
                )
        except httpx.HTTPError as e:
            raise TransientFetchError(f"Policy API unreachable: {e}") from e

        if not 200 <= response.status_code < 300:
            raise DeliveryRejectedError(
                response.status_code,
                f"Policy API rejected OTP for {request_id}: {response.status_code} - {response.text}",
            )

        try:
            result = response.json()
        except ValueError:
            result = {}

        if isinstance(result, dict) and result.get("success") is False:
            raise DeliveryRejectedError(
                response.status_code,
                f"Policy API rejected OTP for {request_id}: {result.get('message', 'no reason given')}",
            )

        logger.debug(f"Policy API accepted OTP for {request_id}")
        return result if isinstance(result, dict) else {}
