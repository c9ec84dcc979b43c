"""
Auth Primitives
===============
Value types shared by every auth component, plus the contract for
pulling an SSO ticket out of a sign-in response.

    - ``Credentials``       — identifier + secret, in memory only
    - ``Session``           — bearer + refresh token with absolute expiry
    - ``TokenGrant``        — what a ticket / refresh exchange returns
    - ``TicketExtractor``   — abstract ticket extraction strategy
    - ``PatternTicketExtractor`` — default regex-based strategy

To support a changed sign-in endpoint:
    1. Subclass ``TicketExtractor`` and implement ``extract()``
    2. Pass an instance to ``SSOScraper(ticket_extractor=...)``
    3. No changes to the session manager are needed.
"""

from __future__ import annotations

import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import requests
from dotenv import load_dotenv

from ..run_config import CREDENTIAL_ENV_PREFIXES
from ..utils import mask_secret, search_pattern

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Credentials container
# ---------------------------------------------------------------------------

@dataclass
class Credentials:
    """Plain credential container — resolved once, never persisted."""
    username: str = ""
    password: str = field(default="", repr=False)

    @property
    def is_complete(self) -> bool:
        return bool(self.username and self.password)

    @classmethod
    def resolve(
        cls,
        username: Optional[str] = None,
        password: Optional[str] = None,
        *,
        env_prefixes: Sequence[str] = CREDENTIAL_ENV_PREFIXES,
        env_file: Optional[str] = None,
    ) -> "Credentials":
        """Build ``Credentials`` from explicit values, then env vars.

        Resolution order:
            1. Explicit *username* / *password*
            2. ``{PREFIX}_EMAIL`` / ``{PREFIX}_USERNAME`` and
               ``{PREFIX}_PASSWORD`` for each prefix in *env_prefixes*

        If *env_file* is given it is loaded first; variables already set in
        the process environment win over the file.

        Returns:
            A ``Credentials`` instance (may still be incomplete).
        """
        creds = cls(username=username or "", password=password or "")
        if creds.is_complete:
            return creds

        if env_file:
            load_dotenv(env_file)

        for prefix in env_prefixes:
            if not creds.username:
                creds.username = (
                    os.environ.get(f"{prefix}_EMAIL")
                    or os.environ.get(f"{prefix}_USERNAME", "")
                )
            if not creds.password:
                creds.password = os.environ.get(f"{prefix}_PASSWORD", "")

        if creds.is_complete:
            logger.info("[AUTH] Credentials resolved from environment")
        return creds


# ---------------------------------------------------------------------------
# Session + token grant
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Session:
    """Bearer credentials for one account.

    A session with an empty ``access_token`` is unauthenticated and must
    never be attached to a request.  Renewal replaces the whole object.
    """
    access_token: str = field(default="", repr=False)
    refresh_token: str = field(default="", repr=False)
    expires_at: float = 0.0
    """Absolute expiry as a Unix timestamp (seconds)."""
    account: str = ""
    issued_at: float = 0.0
    """When the token was minted; 0 if unknown (e.g. an older saved record)."""

    def __post_init__(self):
        if self.access_token and self.expires_at <= 0:
            raise ValueError("Session with an access token needs a positive expires_at")

    @property
    def is_authenticated(self) -> bool:
        return bool(self.access_token)

    def is_expired(self, now: Optional[float] = None, margin: float = 0.0) -> bool:
        """True once *now* is within *margin* seconds of the expiry.

        For a session with a known ``issued_at`` the margin is capped at half
        the token lifetime, so a short-lived grant is still usable when fresh.
        """
        if not self.access_token:
            return True
        now = time.time() if now is None else now
        if 0 < self.issued_at < self.expires_at:
            margin = min(margin, (self.expires_at - self.issued_at) / 2)
        return now + margin >= self.expires_at

    def expires_in(self, now: Optional[float] = None) -> float:
        now = time.time() if now is None else now
        return max(0.0, self.expires_at - now)

    def __repr__(self) -> str:
        return (
            f"Session(account={self.account!r}, "
            f"access_token={mask_secret(self.access_token)!r}, "
            f"refresh_token={mask_secret(self.refresh_token)!r}, "
            f"expires_at={self.expires_at!r})"
        )


@dataclass(frozen=True)
class TokenGrant:
    """Result of a ticket or refresh-token exchange."""
    access_token: str = field(repr=False)
    expires_at: float
    refresh_token: Optional[str] = field(default=None, repr=False)
    """None when the server did not rotate the refresh token."""
    issued_at: float = 0.0

    def to_session(self, account: str, previous_refresh_token: str = "") -> Session:
        return Session(
            access_token=self.access_token,
            refresh_token=self.refresh_token or previous_refresh_token,
            expires_at=self.expires_at,
            account=account,
            issued_at=self.issued_at,
        )


# ---------------------------------------------------------------------------
# Ticket extraction
# ---------------------------------------------------------------------------

class TicketExtractor(ABC):
    """Pulls the one-time SSO ticket out of the credential-submit response."""

    @abstractmethod
    def extract(self, response: requests.Response) -> Optional[str]:
        """Return the ticket, or None if the response carries none.

        Must not raise for a merely unexpected response shape; the scraper
        turns None into an ``AUTHENTICATION_FAILURE``.
        """
        ...


class PatternTicketExtractor(TicketExtractor):
    """Regex extraction over the ``Location`` header, then the body.

    Args:
        pattern:  Regex with one capture group holding the ticket.
        sources:  Where to look, in order: ``"location"`` and/or ``"body"``.
    """

    def __init__(self, pattern: str, sources: Sequence[str] = ("location", "body")):
        unknown = set(sources) - {"location", "body"}
        if unknown:
            raise ValueError(f"Unknown ticket sources: {sorted(unknown)}")
        self.pattern = pattern
        self.sources: List[str] = list(sources)

    def extract(self, response: requests.Response) -> Optional[str]:
        for source in self.sources:
            if source == "location":
                text = response.headers.get("Location", "")
            else:
                text = response.text
            ticket = search_pattern(self.pattern, text)
            if ticket:
                logger.debug(f"[SSO] Ticket found in {source}")
                return ticket
        return None
