# aem_assets/auth/token_service.py
"""
Access token issuance for service accounts.

Turns long-lived service-account credentials into a short-lived bearer token
in two stages:

    1. build_assertion: sign a JWT assertion locally with the private key
       (the key never leaves this process)
    2. exchange_assertion_for_token: post client id, client secret and the
       assertion to the local token relay, which forwards them to
       ``https://<ims endpoint>/ims/exchange/jwt``

Usage:
    from aem_assets.auth.token_service import TokenService
    from aem_assets.config import load_settings

    settings = load_settings()
    async with TokenService(settings) as service:
        token = await service.issue_access_token(settings.service_account_credentials())

Errors:
    - AssertionBuildError (and subclasses): local problem, stage "assertion"
    - ExchangeError: relay/IMS rejected the assertion, stage "exchange"
    - NetworkError / RequestTimeoutError / RequestCancelledError: transport
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ..config import Settings
from ..errors import ExchangeError
from ..models import AccessToken, ServiceAccountCredentials
from ..transport import HttpTransport
from .assertion import build_assertion


class TokenService:
    """
    Issues IMS access tokens through the local token relay.

    Attributes:
        relay_url: Absolute URL of the relay's JWT exchange route
        timeout: Default timeout (s) for the exchange request
    """

    def __init__(self, settings: Settings, transport: Optional[HttpTransport] = None) -> None:
        self._logger = logging.getLogger("aem_assets.auth")
        self.relay_url = settings.token_relay_url
        self.timeout = settings.api_timeout
        self._owns_transport = transport is None
        self._transport = transport or HttpTransport(timeout=settings.api_timeout, verify=settings.verify_ssl)

    async def aclose(self) -> None:
        if self._owns_transport:
            await self._transport.aclose()

    async def __aenter__(self) -> "TokenService":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def exchange_assertion_for_token(
        self,
        client_id: str,
        client_secret: str,
        assertion: str,
        endpoint: str,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AccessToken:
        """
        Exchange a signed JWT assertion for an access token.

        Args:
            client_id: Service account client id (API key)
            client_secret: Service account client secret
            assertion: Compact signed JWT
            endpoint: IMS host the relay should forward to
            timeout: Per-call timeout override (s)
            cancel_event: Setting this event aborts the exchange

        Returns:
            AccessToken: bearer token with its reported lifetime

        Raises:
            ExchangeError: non-2xx response, non-JSON body, ``error`` field in
                the body, or no ``access_token`` in the body
        """
        form = {
            "client_id": client_id,
            "client_secret": client_secret,
            "jwt_token": assertion,
            "ims_endpoint": endpoint,
        }
        self._logger.info(f"Exchanging JWT assertion via relay {self.relay_url} (IMS: {endpoint})")

        response = await self._transport.request(
            "POST",
            self.relay_url,
            data=form,
            headers={"Accept": "application/json"},
            timeout=timeout if timeout is not None else self.timeout,
            cancel_event=cancel_event,
        )
        body = response.text

        if not response.is_success:
            raise ExchangeError(
                f"Token exchange failed: {response.status_code} - {body[:1000]}",
                status_code=response.status_code,
                body=body,
            )

        try:
            data = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ExchangeError(
                "Token exchange failed: response is not JSON",
                status_code=response.status_code,
                body=body,
            ) from exc

        if not isinstance(data, dict):
            raise ExchangeError(
                "Token exchange failed: unexpected response payload",
                status_code=response.status_code,
                body=body,
            )
        if data.get("error"):
            raise ExchangeError(
                f"Token exchange failed: {data['error']}: {data.get('error_description') or ''}".rstrip(),
                status_code=response.status_code,
                body=body,
            )
        if not data.get("access_token"):
            raise ExchangeError(
                "Token exchange failed: no access_token returned",
                status_code=response.status_code,
                body=body,
            )

        token = AccessToken(
            value=data["access_token"],
            token_type=str(data.get("token_type") or "bearer"),
            expires_in_seconds=_as_int(data.get("expires_in")),
            issued_at=datetime.now(timezone.utc),
            assertion=assertion,
        )
        self._logger.info(f"Access token issued (type: {token.token_type}, expires_in: {token.expires_in_seconds})")
        return token

    async def issue_access_token(
        self,
        credentials: ServiceAccountCredentials,
        *,
        timeout: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AccessToken:
        """Build the assertion, then exchange it. Errors from either stage propagate unchanged."""
        assertion = build_assertion(credentials)
        return await self.exchange_assertion_for_token(
            credentials.client_id,
            credentials.client_secret,
            assertion.token,
            credentials.auth_endpoint_host,
            timeout=timeout,
            cancel_event=cancel_event,
        )


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def token_summary(token: AccessToken) -> Dict[str, Any]:
    """Serializable description of a token, without the token value."""
    return {
        "token_type": token.token_type,
        "expires_in": token.expires_in_seconds,
        "issued_at": token.issued_at.isoformat(),
        "expires_at": token.expires_at.isoformat(),
    }
