"""
Session Configuration
=====================
Single source of truth for ALL endpoint URLs, timeouts and scraping
patterns used by the session subsystem.

Every component (SSO scraper, token exchanger, credential store, request
executor) reads from one ``SessionConfig`` object that is built once and
passed in explicitly.  There is no module-level HTTP or config state.

The remote sign-in surface is an undocumented HTML page, so the patterns
used to scrape it live here too and can be overridden without touching
the scraper.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Canonical defaults: the ONLY place these numbers live
# ---------------------------------------------------------------------------
_DEFAULTS = {
    "sso_url": "https://sso.garmin.com/sso",
    "signin_path": "/signin",
    "service_url": "https://connect.garmin.com/modern",
    "ticket_exchange_url": "https://connect.garmin.com/modern/di-oauth/exchange",
    "refresh_url": "https://connect.garmin.com/modern/di-oauth/token",
    "api_base_url": "https://connect.garmin.com",
    "token_dir": "~/.garminconnect",
    "connect_timeout": 10.0,         # seconds to establish a connection
    "read_timeout": 30.0,            # seconds to wait for a response
    "default_token_lifetime": 3600,  # used when the server omits expires_in
    "expiry_margin_seconds": 30,     # renew this long before the recorded expiry
    "user_agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
    ),
    # Scraping patterns
    "csrf_pattern": r'name="_csrf"\s+value="([^"]+)"',
    "ticket_pattern": r'ticket=([^&"\'\s<>]+)',
}

# Literal markers the sign-in page embeds when the password is rejected
_FAILURE_MARKERS: List[str] = ["Invalid", "error"]

# Env var prefixes checked for credentials, in priority order
CREDENTIAL_ENV_PREFIXES: List[str] = ["GARMIN", "CONNECT"]


@dataclass
class SessionConfig:
    """
    Configuration consumed by every session component.

    Populate via:
      - ``SessionConfig()``                      → all defaults
      - ``SessionConfig(token_dir="/tmp/t")``    → override one value
      - ``SessionConfig.from_env()``             → defaults + ``CONNECT_*`` overrides
    """

    # ---- SSO / token endpoints ----
    sso_url: str = _DEFAULTS["sso_url"]
    signin_path: str = _DEFAULTS["signin_path"]
    service_url: str = _DEFAULTS["service_url"]
    ticket_exchange_url: str = _DEFAULTS["ticket_exchange_url"]
    refresh_url: str = _DEFAULTS["refresh_url"]

    # ---- Data API ----
    api_base_url: str = _DEFAULTS["api_base_url"]

    # ---- Persistence ----
    token_dir: str = _DEFAULTS["token_dir"]

    # ---- Timeouts (seconds) ----
    connect_timeout: float = _DEFAULTS["connect_timeout"]
    read_timeout: float = _DEFAULTS["read_timeout"]

    # ---- Token bookkeeping ----
    default_token_lifetime: int = _DEFAULTS["default_token_lifetime"]
    expiry_margin_seconds: int = _DEFAULTS["expiry_margin_seconds"]

    # ---- Identity ----
    user_agent: str = _DEFAULTS["user_agent"]

    # ---- Scraping ----
    csrf_pattern: str = _DEFAULTS["csrf_pattern"]
    ticket_pattern: str = _DEFAULTS["ticket_pattern"]
    failure_markers: List[str] = field(default_factory=lambda: list(_FAILURE_MARKERS))

    # -----------------------------------------------------------------------
    # Derived values
    # -----------------------------------------------------------------------
    @property
    def signin_url(self) -> str:
        return self.sso_url.rstrip("/") + self.signin_path

    @property
    def timeout(self) -> Tuple[float, float]:
        """``(connect, read)`` tuple passed to every ``requests`` call."""
        return (self.connect_timeout, self.read_timeout)

    @property
    def token_path(self) -> Path:
        return Path(self.token_dir).expanduser()

    # -----------------------------------------------------------------------
    # Factory helpers
    # -----------------------------------------------------------------------
    @classmethod
    def from_env(cls, env_file: Optional[str] = None, **overrides) -> "SessionConfig":
        """Build config from defaults, ``CONNECT_*`` env vars, then *overrides*.

        *env_file* (a ``.env`` path) is loaded first when given.

        Env vars:
            ``CONNECT_TOKEN_DIR``     — directory for persisted sessions
            ``CONNECT_TIMEOUT``       — read timeout in seconds
            ``CONNECT_API_BASE_URL``  — data API root
        """
        if env_file:
            load_dotenv(env_file)
        values = {}
        token_dir = os.environ.get("CONNECT_TOKEN_DIR")
        if token_dir:
            values["token_dir"] = token_dir
        timeout = os.environ.get("CONNECT_TIMEOUT")
        if timeout:
            try:
                values["read_timeout"] = float(timeout)
            except ValueError:
                logger.warning(f"[CONFIG] Ignoring non-numeric CONNECT_TIMEOUT={timeout!r}")
        api_base = os.environ.get("CONNECT_API_BASE_URL")
        if api_base:
            values["api_base_url"] = api_base
        values.update(overrides)
        return cls(**values)

    # -----------------------------------------------------------------------
    # Logging helper
    # -----------------------------------------------------------------------
    def log_summary(self, account: Optional[str] = None) -> None:
        """Emit a structured summary to the logger (no secrets)."""
        logger.info("=" * 60)
        logger.info("SESSION CONFIG")
        logger.info("=" * 60)
        if account:
            logger.info(f"  Account:          {account}")
        logger.info(f"  Sign-in URL:      {self.signin_url}")
        logger.info(f"  Ticket Exchange:  {self.ticket_exchange_url}")
        logger.info(f"  Refresh URL:      {self.refresh_url}")
        logger.info(f"  API Base:         {self.api_base_url}")
        logger.info(f"  Token Dir:        {self.token_path}")
        logger.info(f"  Timeouts:         {self.connect_timeout}s connect / {self.read_timeout}s read")
        logger.info(f"  Expiry Margin:    {self.expiry_margin_seconds}s")
        logger.info("=" * 60)
