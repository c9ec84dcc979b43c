"""
Authentication Module
=====================
Session subsystem for an SSO-protected web service.

Architecture:
    - ``Credentials``      — identifier + secret (env or explicit)
    - ``CredentialStore``  — persisted session record per account
    - ``SSOScraper``       — browser-emulating sign-in handshake → ticket
    - ``TokenExchanger``   — ticket / refresh token → bearer token
    - ``SessionManager``   — state machine handing out valid tokens

Extending:
    If the sign-in endpoint changes where it puts the ticket, subclass
    ``TicketExtractor`` and pass it to ``SSOScraper``.  No changes to the
    session manager are needed.

Usage::

    from connect_session.auth import Credentials, SessionManager

    manager = SessionManager(Credentials.resolve())
    token = manager.ensure_valid_token()
"""

from .base_auth import (
    Credentials,
    PatternTicketExtractor,
    Session,
    TicketExtractor,
    TokenGrant,
)
from .credential_store import CredentialStore
from .sso_scraper import SSOScraper
from .token_exchanger import TokenExchanger
from .session_manager import SessionManager, SessionState

__all__ = [
    "Credentials",
    "Session",
    "TokenGrant",
    "TicketExtractor",
    "PatternTicketExtractor",
    "CredentialStore",
    "SSOScraper",
    "TokenExchanger",
    "SessionManager",
    "SessionState",
]
