"""Didit verification API client (httpx).

Only session creation is needed: the result of a verification arrives
later through the signed webhook.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

logger = logging.getLogger(__name__)

_SESSION_PATH = "/v2/session/"


class IdentityProviderError(Exception):
    """Didit rejected the request or returned an unusable response."""


@dataclass(frozen=True)
class VerificationSession:
    session_id: str
    verification_url: str


class DiditClient:
    """Thin synchronous client for the Didit REST API."""

    def __init__(
        self,
        api_key: str,
        base_url: str,
        timeout: float = 5.0,
        http_client: httpx.Client | None = None,
    ):
        self._api_key = api_key
        self._http = http_client or httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout)

    @classmethod
    def from_settings(cls, settings) -> DiditClient:
        return cls(
            api_key=settings.didit_api_key,
            base_url=settings.didit_api_base_url,
            timeout=settings.provider_timeout_seconds,
        )

    def create_session(self, workflow_id: str, vendor_data: str, callback: str) -> VerificationSession:
        """Create a hosted verification session for one user.

        Args:
            workflow_id: Didit workflow to run
            vendor_data: Our user id, echoed back by Didit
            callback: Absolute URL of our webhook endpoint

        Raises:
            IdentityProviderError: transport failure, non-2xx status,
                undecodable body, or missing session_id / url
        """
        try:
            response = self._http.post(
                _SESSION_PATH,
                json={"workflow_id": workflow_id, "vendor_data": vendor_data, "callback": callback},
                headers={"x-api-key": self._api_key},
            )
        except httpx.HTTPError as e:
            raise IdentityProviderError(f"didit request failed: {type(e).__name__}") from e

        if response.is_error:
            message = ""
            try:
                body = response.json()
                if isinstance(body, dict):
                    message = str(body.get("message", ""))
            except ValueError:
                pass
            raise IdentityProviderError(
                f"didit api error: status={response.status_code} message={message or response.text.strip()[:200]}"
            )

        try:
            body = response.json()
        except ValueError as e:
            raise IdentityProviderError("didit response is not JSON") from e

        session_id = body.get("session_id") if isinstance(body, dict) else None
        url = body.get("url") if isinstance(body, dict) else None
        if not session_id or not url:
            raise IdentityProviderError("didit response missing session_id or url")

        logger.info("Didit session created: %s (user=%s)", session_id, vendor_data)
        return VerificationSession(session_id=str(session_id), verification_url=str(url))

    def close(self) -> None:
        self._http.close()
