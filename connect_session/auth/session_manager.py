"""
Session Manager
===============
Owns the bearer session for one account and decides, on every request
for a token, whether to reuse, refresh, or fully re-authenticate.

States::

    UNAUTHENTICATED ──login──────────────▶ VALID
    UNAUTHENTICATED ──load (not expired)─▶ VALID
    VALID ──(now >= expires_at, lazily)──▶ EXPIRED
    EXPIRED ──REFRESHING (ok)────────────▶ VALID
    EXPIRED ──REFRESHING (rejected)──────▶ LOGGING_IN ──▶ VALID
    LOGGING_IN ──(any failure)───────────▶ UNAUTHENTICATED  (error raised)

A login rejected by the server (or impossible for lack of credentials)
also removes the saved record; a network failure leaves it in place.

Expiry is detected when a token is requested; there is no background
timer.  Every read-check-renew-write runs under one lock, so concurrent
callers that find the session expired share a single renewal.

This manager is the only writer of the session.  The credential store is
treated as a cache that may be stale, missing or corrupt.
"""

from __future__ import annotations

import logging
import threading
import time
from enum import Enum
from typing import Callable, Optional

import requests

from ..errors import ConnectSessionError, ErrorKind
from ..run_config import SessionConfig
from ..utils import create_http_session
from .base_auth import Credentials, Session, TokenGrant
from .credential_store import CredentialStore
from .sso_scraper import SSOScraper
from .token_exchanger import TokenExchanger

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    VALID = "valid"
    EXPIRED = "expired"
    REFRESHING = "refreshing"
    LOGGING_IN = "logging_in"


class SessionManager:
    """Hands out currently valid bearer tokens for one account.

    Lifecycle::

        1. ``ensure_valid_token()``
           → returns the in-memory token, or loads the saved session,
             refreshes it, or logs in from scratch.

        2. ``force_refresh(rejected_token)``
           → called after the API answered 401 to a token believed valid.

        3. ``logout()``
           → drops the in-memory session and the saved record.
    """

    def __init__(
        self,
        credentials: Credentials,
        config: Optional[SessionConfig] = None,
        *,
        http: Optional[requests.Session] = None,
        store: Optional[CredentialStore] = None,
        scraper: Optional[SSOScraper] = None,
        exchanger: Optional[TokenExchanger] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or SessionConfig()
        self._credentials = credentials
        self._clock = clock
        self.http = http if http is not None else create_http_session(self.config)
        self.store = store or CredentialStore(config=self.config)
        self.scraper = scraper or SSOScraper(self.http, self.config)
        self.exchanger = exchanger or TokenExchanger(self.http, self.config, clock=clock)

        self._lock = threading.RLock()
        self._session: Optional[Session] = None
        self._store_checked = False
        self._in_flight: Optional[SessionState] = None

    # ── Introspection ─────────────────────────────────────────────

    @property
    def account(self) -> str:
        return self._credentials.username

    @property
    def current_session(self) -> Optional[Session]:
        """Snapshot of the in-memory session (immutable)."""
        return self._session

    @property
    def state(self) -> SessionState:
        if self._in_flight is not None:
            return self._in_flight
        session = self._session
        if session is None or not session.is_authenticated:
            if session is not None and session.refresh_token:
                return SessionState.EXPIRED
            return SessionState.UNAUTHENTICATED
        if self._is_expired(session):
            return SessionState.EXPIRED
        return SessionState.VALID

    # ── Public API ────────────────────────────────────────────────

    def ensure_valid_token(self) -> str:
        """Return an access token that is not expired at call time.

        Raises:
            ConnectSessionError: ``INVALID_CREDENTIALS``,
                ``AUTHENTICATION_FAILURE`` or ``CONNECTION_FAILURE`` when
                no valid token can be obtained.
        """
        with self._lock:
            session = self._current()
            if session is not None and not self._is_expired(session):
                return session.access_token
            if session is not None and session.is_authenticated:
                logger.info("[SESSION] Access token expired, renewing")
            return self._renew(session).access_token

    def login(self) -> None:
        """Make sure a valid session exists (loads, refreshes or logs in)."""
        self.ensure_valid_token()

    def force_refresh(self, rejected_token: Optional[str] = None) -> str:
        """Renew the session even though it looks valid locally.

        Args:
            rejected_token: The token the server just refused.  If another
                caller has already replaced it, the current token is
                returned without a network call.

        Returns:
            The new access token.
        """
        with self._lock:
            session = self._current()
            if (
                rejected_token
                and session is not None
                and session.is_authenticated
                and session.access_token != rejected_token
                and not self._is_expired(session)
            ):
                logger.debug("[SESSION] Token already renewed by another caller")
                return session.access_token

            logger.info("[SESSION] Forced refresh after server rejected the token")
            if session is not None and session.is_authenticated:
                # Server-side revocation: keep only the refresh token.
                session = Session(
                    refresh_token=session.refresh_token,
                    account=session.account,
                )
                self._session = session
            return self._renew(session).access_token

    def logout(self) -> None:
        """Forget the session in memory and on disk.  Never raises."""
        with self._lock:
            self._session = None
            self._in_flight = None
            self._store_checked = True
            if not self.store.clear(self.account):
                logger.warning("[SESSION] Saved session could not be removed")
            logger.info("[SESSION] Logged out")

    # ── Internal ──────────────────────────────────────────────────

    def _is_expired(self, session: Session) -> bool:
        return session.is_expired(self._clock(), self.config.expiry_margin_seconds)

    def _current(self) -> Optional[Session]:
        """In-memory session, falling back to the store once per logout cycle."""
        if self._session is None and not self._store_checked:
            self._store_checked = True
            if self.account:
                loaded = self.store.load(self.account)
                if loaded is not None:
                    self._session = loaded
                    if self._is_expired(loaded):
                        logger.info("[SESSION] Saved session is expired")
                    else:
                        logger.info(
                            f"[SESSION] Reusing saved session "
                            f"({loaded.expires_in(self._clock()):.0f}s left)"
                        )
        return self._session

    def _renew(self, session: Optional[Session]) -> Session:
        """Refresh if possible, otherwise log in.  Caller holds the lock."""
        if session is not None and session.refresh_token:
            renewed = self._try_refresh(session)
            if renewed is not None:
                return renewed
            logger.info("[SESSION] Refresh failed, falling back to full login")
        return self._full_login()

    def _try_refresh(self, session: Session) -> Optional[Session]:
        self._in_flight = SessionState.REFRESHING
        try:
            grant = self.exchanger.exchange_refresh_token(session.refresh_token)
        except ConnectSessionError as exc:
            if exc.kind is ErrorKind.AUTHENTICATION_FAILURE:
                logger.warning(f"[SESSION] Refresh exchange failed: {exc}")
                return None
            raise
        finally:
            self._in_flight = None

        if grant is None:
            return None
        return self._install(grant, previous_refresh_token=session.refresh_token)

    def _full_login(self) -> Session:
        if not self._credentials.is_complete:
            self._discard()
            raise ConnectSessionError.invalid_credentials(
                "Username and password are required to log in"
            )

        logger.info("[SESSION] Performing full SSO login")
        self._in_flight = SessionState.LOGGING_IN
        try:
            ticket = self.scraper.fetch_ticket(self._credentials)
            grant = self.exchanger.exchange_ticket(ticket)
        except ConnectSessionError as exc:
            logger.error(f"[SESSION] Login failed: {exc}")
            if exc.kind is ErrorKind.CONNECTION_FAILURE:
                # Transient: keep the saved record.
                self._session = None
            else:
                self._discard()
            raise
        finally:
            self._in_flight = None

        return self._install(grant)

    def _discard(self) -> None:
        """Drop a session that can no longer be renewed, in memory and on disk."""
        self._session = None
        if not self.store.clear(self.account):
            logger.warning("[SESSION] Dead session could not be removed from the store")

    def _install(self, grant: TokenGrant, previous_refresh_token: str = "") -> Session:
        """Replace the session with *grant* and persist it."""
        session = grant.to_session(self.account, previous_refresh_token)
        self._session = session
        if not self.store.save(session):
            logger.warning("[SESSION] Continuing with an unsaved in-memory session")
        logger.info(
            f"[SESSION] Session valid for {session.expires_in(self._clock()):.0f}s"
        )
        return session
