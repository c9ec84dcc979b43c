"""
Connect Session Package
Client-side session manager for the Garmin Connect web service: SSO
sign-in, token exchange, persisted sessions and authenticated requests.

Usage:
    from connect_session import ConnectClient, Credentials

    with ConnectClient(Credentials.resolve()) as client:
        client.login()
        profile = client.get_user_profile()

    Credentials are read from GARMIN_EMAIL / GARMIN_PASSWORD when not
    passed explicitly.
"""

from .auth import (
    CredentialStore,
    Credentials,
    PatternTicketExtractor,
    Session,
    SessionManager,
    SessionState,
    SSOScraper,
    TicketExtractor,
    TokenExchanger,
    TokenGrant,
)
from .client import ActivityFormat, ConnectClient
from .errors import ConnectSessionError, ErrorKind
from .request_executor import ApiRequest, AuthenticatedRequestExecutor
from .run_config import SessionConfig

__all__ = [
    # Configuration
    'SessionConfig',
    # Auth
    'Credentials',
    'Session',
    'TokenGrant',
    'TicketExtractor',
    'PatternTicketExtractor',
    'CredentialStore',
    'SSOScraper',
    'TokenExchanger',
    'SessionManager',
    'SessionState',
    # Requests
    'ApiRequest',
    'AuthenticatedRequestExecutor',
    'ConnectClient',
    'ActivityFormat',
    # Errors
    'ConnectSessionError',
    'ErrorKind',
]

__version__ = '1.0.0'
