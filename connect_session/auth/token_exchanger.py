"""
Token Exchanger
===============
Turns an SSO ticket, or a refresh token, into a bearer access token.

    - ``exchange_ticket(ticket)``         — fatal on failure
    - ``exchange_refresh_token(token)``   — returns None on rejection so the
                                            caller can fall back to a full login

When the server omits ``expires_in`` the grant gets the configured default
lifetime (one hour).
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional

import requests

from ..errors import ConnectSessionError
from ..run_config import SessionConfig
from ..utils import translate_request_error
from .base_auth import TokenGrant

logger = logging.getLogger(__name__)


class TokenExchanger:
    """POST-and-parse against the ticket and refresh endpoints."""

    def __init__(
        self,
        http: requests.Session,
        config: Optional[SessionConfig] = None,
        *,
        clock: Callable[[], float] = time.time,
    ):
        self.http = http
        self.config = config or SessionConfig()
        self._clock = clock

    # ── Public API ────────────────────────────────────────────────

    def exchange_ticket(self, ticket: str) -> TokenGrant:
        """Exchange an SSO ticket for access + refresh tokens.

        Raises:
            ConnectSessionError: ``AUTHENTICATION_FAILURE`` on a non-200
                response or unusable body, ``CONNECTION_FAILURE`` on
                network errors.
        """
        try:
            response = self.http.post(
                self.config.ticket_exchange_url,
                params={"ticket": ticket},
                timeout=self.config.timeout,
            )
        except requests.RequestException as exc:
            raise translate_request_error(exc, "ticket exchange") from exc

        if response.status_code != 200:
            logger.error(f"[TOKEN] Ticket exchange failed: HTTP {response.status_code}")
            raise ConnectSessionError.authentication_failure(
                f"Failed to exchange ticket for tokens: {response.status_code}",
                status_code=response.status_code,
            )

        payload = self._parse(response)
        if payload is None or not _non_empty_str(payload.get("access_token")):
            logger.error("[TOKEN] Ticket exchange response carries no access token")
            raise ConnectSessionError.authentication_failure(
                "Ticket exchange response did not contain an access token",
                status_code=response.status_code,
            )

        grant = self._grant_from(payload)
        logger.info(
            f"[TOKEN] Ticket exchanged; access token valid for "
            f"{grant.expires_at - self._clock():.0f}s"
        )
        return grant

    def exchange_refresh_token(self, refresh_token: str) -> Optional[TokenGrant]:
        """Mint a new access token from *refresh_token*.

        Returns:
            A ``TokenGrant``, or None if the server rejected the refresh
            token (the caller should fall back to a full login).

        Raises:
            ConnectSessionError: ``CONNECTION_FAILURE`` on network errors.
        """
        if not refresh_token:
            return None

        try:
            response = self.http.post(
                self.config.refresh_url,
                data={"refresh_token": refresh_token, "grant_type": "refresh_token"},
                timeout=self.config.timeout,
            )
        except requests.RequestException as exc:
            raise translate_request_error(exc, "token refresh") from exc

        if response.status_code != 200:
            logger.warning(
                f"[TOKEN] Refresh token rejected: HTTP {response.status_code}"
            )
            return None

        payload = self._parse(response)
        if payload is None or not _non_empty_str(payload.get("access_token")):
            logger.warning("[TOKEN] Refresh response carries no access token")
            return None

        grant = self._grant_from(payload)
        logger.info("[TOKEN] Access token refreshed")
        return grant

    # ── Internal ──────────────────────────────────────────────────

    @staticmethod
    def _parse(response: requests.Response) -> Optional[Dict[str, Any]]:
        try:
            payload = response.json()
        except ValueError:
            return None
        if not isinstance(payload, dict):
            return None
        return payload

    def _grant_from(self, payload: Dict[str, Any]) -> TokenGrant:
        lifetime = _positive_number(payload.get("expires_in"))
        if lifetime is None:
            logger.debug(
                f"[TOKEN] No expires_in; assuming {self.config.default_token_lifetime}s"
            )
            lifetime = self.config.default_token_lifetime

        refresh_token = payload.get("refresh_token")
        now = self._clock()
        return TokenGrant(
            access_token=payload["access_token"],
            expires_at=now + lifetime,
            refresh_token=refresh_token if _non_empty_str(refresh_token) else None,
            issued_at=now,
        )


def _non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and bool(value)


def _positive_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if value <= 0:
        return None
    return float(value)
