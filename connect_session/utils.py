"""
Utility Functions
HTTP session construction, request error translation, pattern matching
and small helpers shared by the auth components.
"""

import hashlib
import logging
import platform
import re
from typing import Optional
from urllib.parse import urljoin, urlparse

import requests

from .errors import ConnectSessionError
from .run_config import SessionConfig

logger = logging.getLogger(__name__)


def _detect_platform() -> str:
    """Return the sec-ch-ua-platform value for the current OS."""
    system = platform.system()
    if system == "Darwin":
        return "macOS"
    elif system == "Windows":
        return "Windows"
    else:
        return "Linux"


def create_http_session(config: SessionConfig) -> requests.Session:
    """Create a ``requests.Session`` with realistic browser headers.

    The sign-in page is built for browsers, so the handshake goes out with
    the same headers a desktop Chrome would send.  Timeouts are not a
    session property in ``requests``; callers pass ``config.timeout`` on
    every call.
    """
    session = requests.Session()
    session.headers.update({
        'User-Agent': config.user_agent,
        'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
        'Accept-Language': 'en-US,en;q=0.9',
        'Accept-Encoding': 'gzip, deflate',
        'Connection': 'keep-alive',
        'sec-ch-ua': '"Chromium";v="122", "Not(A:Brand";v="24", "Google Chrome";v="122"',
        'sec-ch-ua-mobile': '?0',
        'sec-ch-ua-platform': f'"{_detect_platform()}"',
    })
    return session


def translate_request_error(exc: requests.RequestException, action: str) -> ConnectSessionError:
    """Map a ``requests`` exception to a ``CONNECTION_FAILURE``."""
    if isinstance(exc, requests.Timeout):
        message = f"Timed out during {action}"
    else:
        message = f"Connection error during {action}: {exc.__class__.__name__}"
    return ConnectSessionError.connection_failure(message, cause=exc)


def search_pattern(pattern: str, text: Optional[str]) -> Optional[str]:
    """Return the first capture group of *pattern* in *text*, or None."""
    if not text:
        return None
    match = re.search(pattern, text)
    if match is None:
        return None
    return match.group(1)


def account_key(identity: str) -> str:
    """Stable, filesystem-safe key for an account identity.

    The identity is usually an email address; hashing keeps it out of
    file names.
    """
    normalized = identity.strip().lower()
    return hashlib.sha256(normalized.encode('utf-8')).hexdigest()[:16]


def mask_secret(value: Optional[str], visible: int = 4) -> str:
    """Render a secret for logs: first few characters then ``***``."""
    if not value:
        return "<empty>"
    if len(value) <= visible:
        return "***"
    return f"{value[:visible]}***"


def resolve_url(base_url: str, url: str) -> str:
    """Join a relative API path onto *base_url*; absolute URLs pass through."""
    if urlparse(url).scheme in ('http', 'https'):
        return url
    return urljoin(base_url.rstrip('/') + '/', url.lstrip('/'))
