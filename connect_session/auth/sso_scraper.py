"""
SSO Scraper
===========
Obtains a one-time SSO ticket by replaying what a browser does on the
HTML sign-in page.

Flow (single pass, no retries):
    1. GET the sign-in page and pull the anti-forgery (``_csrf``) token
    2. POST username + password + token as a form
    3. Reject the attempt if the response body carries a failure marker
    4. Pull the ticket from the ``Location`` header or the body

Step 1 is the first thing to break when the remote markup changes, so a
missing token fails loudly with ``AUTHENTICATION_FAILURE`` and no
credentials are ever submitted.  A failure marker in step 3 means the
password was wrong and is reported as ``INVALID_CREDENTIALS``.

Security:
    - Credentials, the anti-forgery token and the ticket are never logged.
    - None of them outlive a single ``fetch_ticket()`` call.
"""

from __future__ import annotations

import logging
from typing import List, Optional

import requests
from bs4 import BeautifulSoup

from ..errors import ConnectSessionError
from ..run_config import SessionConfig
from ..utils import search_pattern, translate_request_error
from .base_auth import Credentials, PatternTicketExtractor, TicketExtractor

logger = logging.getLogger(__name__)

# Prefer lxml when installed, otherwise the stdlib parser.
try:
    import lxml  # noqa: F401
    _BS_PARSER = "lxml"
except ImportError:
    _BS_PARSER = "html.parser"

CSRF_FIELD = "_csrf"


class SSOScraper:
    """Runs the browser-emulating sign-in handshake.

    Usage::

        scraper = SSOScraper(http, config)
        ticket = scraper.fetch_ticket(Credentials("me@example.com", "secret"))
    """

    def __init__(
        self,
        http: requests.Session,
        config: Optional[SessionConfig] = None,
        *,
        ticket_extractor: Optional[TicketExtractor] = None,
    ):
        self.http = http
        self.config = config or SessionConfig()
        self.ticket_extractor = ticket_extractor or PatternTicketExtractor(
            self.config.ticket_pattern
        )

    # ── Public API ────────────────────────────────────────────────

    def fetch_ticket(self, creds: Credentials) -> str:
        """Perform the handshake and return the SSO ticket.

        Raises:
            ConnectSessionError: ``AUTHENTICATION_FAILURE`` when the page
                is unreachable or no token / ticket can be found,
                ``INVALID_CREDENTIALS`` when the sign-in is rejected,
                ``CONNECTION_FAILURE`` on network errors or timeouts.
        """
        logger.info(f"[SSO] Starting sign-in handshake at {self.config.signin_url}")

        csrf_token = self._fetch_csrf_token()
        response = self._submit_credentials(creds, csrf_token)

        marker = self._find_failure_marker(response.text)
        if marker is not None:
            logger.error(f"[SSO] Sign-in rejected (marker {marker!r} in response)")
            raise ConnectSessionError.invalid_credentials(
                "Invalid credentials or login failed"
            )

        ticket = self.ticket_extractor.extract(response)
        if not ticket:
            logger.error("[SSO] No ticket in sign-in response")
            raise ConnectSessionError.authentication_failure(
                "Failed to extract SSO ticket from sign-in response",
                status_code=response.status_code,
            )

        logger.info("[SSO] Sign-in handshake succeeded")
        return ticket

    # ── Steps ─────────────────────────────────────────────────────

    @property
    def _service_params(self) -> dict:
        return {"service": self.config.service_url}

    def _fetch_csrf_token(self) -> str:
        try:
            response = self.http.get(
                self.config.signin_url,
                params=self._service_params,
                timeout=self.config.timeout,
            )
        except requests.RequestException as exc:
            raise translate_request_error(exc, "sign-in page fetch") from exc

        if not response.ok:
            logger.error(f"[SSO] Sign-in page returned HTTP {response.status_code}")
            raise ConnectSessionError.authentication_failure(
                "Sign-in page unreachable; handshake protocol changed or page unavailable",
                status_code=response.status_code,
            )

        csrf_token = self._scrape_csrf_token(response.text)
        if not csrf_token:
            logger.error("[SSO] Anti-forgery token not found on sign-in page")
            raise ConnectSessionError.authentication_failure(
                "Failed to extract anti-forgery token; handshake protocol changed "
                "or page unreachable"
            )
        logger.debug("[SSO] Anti-forgery token extracted")
        return csrf_token

    def _submit_credentials(self, creds: Credentials, csrf_token: str) -> requests.Response:
        form = {
            "username": creds.username,
            "password": creds.password,
            "embed": "false",
            "_csrf": csrf_token,
        }
        try:
            response = self.http.post(
                self.config.signin_url,
                params=self._service_params,
                data=form,
                timeout=self.config.timeout,
                allow_redirects=False,
            )
        except requests.RequestException as exc:
            raise translate_request_error(exc, "credential submission") from exc

        logger.debug(f"[SSO] Credential submission returned HTTP {response.status_code}")
        return response

    def _find_failure_marker(self, body: str) -> Optional[str]:
        markers: List[str] = self.config.failure_markers
        for marker in markers:
            if marker and marker in (body or ""):
                return marker
        return None

    def _scrape_csrf_token(self, html: str) -> Optional[str]:
        """Read the hidden ``_csrf`` form field, then fall back to the regex.

        The regex covers pages that render the token outside an ``<input>``
        (for example inside an inline script).
        """
        if html:
            soup = BeautifulSoup(html, _BS_PARSER)
            field = soup.find("input", attrs={"name": CSRF_FIELD})
            if field is not None and field.get("value"):
                return field["value"]
        return search_pattern(self.config.csrf_pattern, html)
