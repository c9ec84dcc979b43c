"""
Authenticated Request Executor
==============================
Wraps one outbound API call with bearer-token injection and a bounded
retry on HTTP 401.

Policy:
    - Token comes from ``SessionManager.ensure_valid_token()``
    - 401 → ``force_refresh()`` once, then the identical request once more
    - A second 401 → ``AUTHENTICATION_FAILURE`` (no third attempt)
    - 429 → ``RATE_LIMITED`` (never retried here; back-off is the caller's job)
    - Any other 4xx / 5xx → ``REQUEST_FAILED`` with status and body
    - Network errors / timeouts → ``CONNECTION_FAILURE``
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests

from .auth.session_manager import SessionManager
from .errors import ConnectSessionError
from .run_config import SessionConfig
from .utils import resolve_url, translate_request_error

logger = logging.getLogger(__name__)


@dataclass
class ApiRequest:
    """One outbound API call, replayable as-is for the 401 retry."""
    url: str
    method: str = "GET"
    params: Optional[Dict[str, Any]] = None
    data: Optional[Any] = None
    json: Optional[Any] = None
    headers: Dict[str, str] = field(default_factory=dict)
    stream: bool = False


class AuthenticatedRequestExecutor:
    """Issues API requests on behalf of the data-access layer."""

    def __init__(
        self,
        session_manager: SessionManager,
        http: Optional[requests.Session] = None,
        config: Optional[SessionConfig] = None,
    ):
        self.session_manager = session_manager
        self.http = http if http is not None else session_manager.http
        self.config = config or session_manager.config

    # ── Public API ────────────────────────────────────────────────

    def perform(self, request: ApiRequest) -> str:
        """Execute *request* and return the response body as text."""
        return self.send(request).text

    def send(self, request: ApiRequest) -> requests.Response:
        """Execute *request* and return the successful ``Response``.

        Raises:
            ConnectSessionError: see module docstring for the mapping.
        """
        token = self.session_manager.ensure_valid_token()
        response = self._issue(request, token)

        if response.status_code == 401:
            logger.warning(
                f"[REQUEST] 401 from {request.method} {request.url}, forcing refresh"
            )
            response.close()
            token = self.session_manager.force_refresh(rejected_token=token)
            response = self._issue(request, token)
            if response.status_code == 401:
                logger.error("[REQUEST] 401 again after refresh, giving up")
                response.close()
                raise ConnectSessionError.authentication_failure(
                    "Request rejected as unauthorized after token refresh",
                    status_code=401,
                )

        self._raise_for_status(response)
        return response

    # ── Internal ──────────────────────────────────────────────────

    def _issue(self, request: ApiRequest, token: str) -> requests.Response:
        url = resolve_url(self.config.api_base_url, request.url)
        headers = {
            "Accept": "application/json",
            **request.headers,
            "Authorization": f"Bearer {token}",
        }
        logger.debug(f"[REQUEST] {request.method} {url}")
        try:
            return self.http.request(
                request.method,
                url,
                params=request.params,
                data=request.data,
                json=request.json,
                headers=headers,
                stream=request.stream,
                timeout=self.config.timeout,
            )
        except requests.RequestException as exc:
            raise translate_request_error(exc, f"{request.method} {url}") from exc

    @staticmethod
    def _raise_for_status(response: requests.Response) -> None:
        status = response.status_code
        if status == 429:
            retry_after = _parse_retry_after(response.headers.get("Retry-After"))
            response.close()
            logger.warning("[REQUEST] Rate limit exceeded")
            raise ConnectSessionError.rate_limited(
                "Rate limit exceeded", retry_after=retry_after
            )
        if status >= 400:
            body = response.text
            response.close()
            logger.error(f"[REQUEST] API request failed: HTTP {status}")
            raise ConnectSessionError.request_failed(
                status, body, f"API request failed: {status} - {body[:200]}"
            )


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None
