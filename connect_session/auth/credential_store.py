"""
Credential Store
================
Persists bearer sessions across process restarts.

Responsibilities:
    1. Save a ``Session`` (access token, refresh token, expiry) after
       every successful login or refresh
    2. Load a saved session for an account
    3. Clear the saved session on logout

A saved record is only a cache.  Anything unusable (missing or unreadable
file, truncated JSON, wrong types) loads as "no session" and is never raised.
Write failures are logged and reported as ``False``; the in-memory
session stays usable for the current process.

Record format (JSON)::

    {
        "version": 1,
        "account": "user@example.com",
        "access_token": "...",
        "refresh_token": "...",
        "expires_at": 1735689600.0,
        "issued_at": 1735686000.0,
        "saved_at": 1735686000.0
    }

Unknown keys are ignored; ``refresh_token``, ``expires_at`` and
``issued_at`` default when absent.

Security:
    - Directory is created 0700, record files are 0600.
    - Token values are never logged.
"""

from __future__ import annotations

import json
import logging
import os
import stat
import tempfile
import time
from pathlib import Path
from typing import Any, Optional

from ..run_config import SessionConfig
from ..utils import account_key
from .base_auth import Session

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default settings
# ---------------------------------------------------------------------------

_RECORD_VERSION = 1
_FILE_SUFFIX = ".json"


class CredentialStore:
    """File-backed store, one JSON record per account under ``token_dir``."""

    def __init__(self, token_dir: Optional[os.PathLike] = None, *, config: Optional[SessionConfig] = None):
        """
        Args:
            token_dir: Directory holding the records.  Defaults to
                       ``config.token_dir``.
            config:    Session configuration (used only for the default dir).
        """
        if token_dir is None:
            token_dir = (config or SessionConfig()).token_path
        self.token_dir = Path(token_dir).expanduser()

    # ── Public API ────────────────────────────────────────────────

    def path_for(self, account: str) -> Path:
        return self.token_dir / f"{account_key(account)}{_FILE_SUFFIX}"

    def load(self, account: str) -> Optional[Session]:
        """Return the saved session for *account*, or None if unusable."""
        path = self.path_for(account)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.info("[STORE] No saved session found")
            return None
        except (UnicodeDecodeError, OSError) as exc:
            logger.warning(f"[STORE] Unreadable session file {path.name}: {exc}")
            return None

        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            logger.warning(f"[STORE] Corrupt session file {path.name}: {exc}")
            return None

        session = self._from_record(data, account)
        if session is None:
            logger.warning(f"[STORE] Session file {path.name} has no usable tokens")
            return None

        logger.info(f"[STORE] Loaded saved session from {path}")
        return session

    def save(self, session: Session) -> bool:
        """Write *session* atomically.  Returns False (and logs) on failure."""
        path = self.path_for(session.account)
        record = {
            "version": _RECORD_VERSION,
            "account": session.account,
            "access_token": session.access_token,
            "refresh_token": session.refresh_token,
            "expires_at": session.expires_at,
            "issued_at": session.issued_at,
            "saved_at": time.time(),
        }
        tmp_name = None
        try:
            self.token_dir.mkdir(parents=True, exist_ok=True)
            os.chmod(self.token_dir, stat.S_IRWXU)  # 0700

            fd, tmp_name = tempfile.mkstemp(
                prefix=".session-", suffix=".tmp", dir=str(self.token_dir)
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(record, fh, indent=2)
                fh.flush()
                os.fsync(fh.fileno())
            os.chmod(tmp_name, stat.S_IRUSR | stat.S_IWUSR)  # 0600
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as exc:
            logger.warning(f"[STORE] Failed to save session to {path}: {exc}")
            return False
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass

        logger.info(f"[STORE] Session saved to {path}")
        return True

    def clear(self, account: str) -> bool:
        """Delete the record for *account*.  Absence counts as success."""
        path = self.path_for(account)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning(f"[STORE] Failed to delete session file {path}: {exc}")
            return False
        logger.info("[STORE] Saved session cleared")
        return True

    # ── Internal ──────────────────────────────────────────────────

    @staticmethod
    def _from_record(data: Any, account: str) -> Optional[Session]:
        """Project a decoded record onto a ``Session``; None if unusable."""
        if not isinstance(data, dict):
            return None

        access_token = data.get("access_token") or ""
        refresh_token = data.get("refresh_token") or ""
        if not isinstance(access_token, str) or not isinstance(refresh_token, str):
            return None
        expires_at = _as_float(data.get("expires_at"))
        if expires_at is None or expires_at <= 0:
            # No usable expiry: keep only the refresh token.
            access_token = ""
            expires_at = 0.0
        issued_at = _as_float(data.get("issued_at"))
        if issued_at is None or not 0 < issued_at < expires_at:
            issued_at = 0.0

        if not access_token and not refresh_token:
            return None

        return Session(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
            account=account,
            issued_at=issued_at,
        )


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None
