"""Thin data-access client built on the authenticated request executor.

Responsibilities:
 - Wire config, HTTP session, credential store and session manager together.
 - Fetch raw JSON from the data API (no payload shape validation).
 - Stream binary exports (activity files) to disk.

Every call goes through ``AuthenticatedRequestExecutor`` so token renewal
and the single 401 retry apply uniformly, downloads included.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

import requests

from .auth.base_auth import Credentials
from .auth.credential_store import CredentialStore
from .auth.session_manager import SessionManager
from .errors import ConnectSessionError, ErrorKind
from .request_executor import ApiRequest, AuthenticatedRequestExecutor
from .run_config import SessionConfig
from .utils import create_http_session

logger = logging.getLogger(__name__)

PROXY_API = "/proxy"
MODERN_PROXY_API = "/modern/proxy"

_DOWNLOAD_CHUNK_SIZE = 1024 * 1024


class ActivityFormat(str, Enum):
    """Export formats offered by the download service."""
    TCX = "tcx"
    GPX = "gpx"
    FIT = "fit"
    ORIGINAL = "original"

    def path_for(self, activity_id: int) -> str:
        if self in (ActivityFormat.TCX, ActivityFormat.GPX):
            return f"{MODERN_PROXY_API}/download-service/export/{self.value}/activity/{activity_id}"
        return f"{MODERN_PROXY_API}/download-service/files/activity/{activity_id}"


class ConnectClient:
    """High-level helper for the data endpoints.

    Usage::

        with ConnectClient(Credentials.resolve()) as client:
            client.login()
            stats = client.get_stats("2024-05-01")
    """

    def __init__(
        self,
        credentials: Credentials,
        config: Optional[SessionConfig] = None,
        *,
        http: Optional[requests.Session] = None,
        store: Optional[CredentialStore] = None,
        session_manager: Optional[SessionManager] = None,
    ):
        self.config = config or SessionConfig()
        # One HTTP session shared by the handshake and the data calls.
        self.http = http if http is not None else create_http_session(self.config)
        self.session_manager = session_manager or SessionManager(
            credentials,
            self.config,
            http=self.http,
            store=store,
        )
        self.executor = AuthenticatedRequestExecutor(
            self.session_manager, self.http, self.config
        )

    # ── Session ───────────────────────────────────────────────────

    def login(self) -> None:
        """Establish a session (saved, refreshed or fresh)."""
        self.session_manager.login()
        logger.info("[CLIENT] Logged in")

    def logout(self) -> None:
        self.session_manager.logout()

    def close(self) -> None:
        self.http.close()

    def __enter__(self) -> "ConnectClient":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # ── Generic access ────────────────────────────────────────────

    def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET *path* and return the decoded JSON body as-is."""
        body = self.executor.perform(ApiRequest(url=path, params=params))
        try:
            return json.loads(body)
        except ValueError as exc:
            raise ConnectSessionError.request_failed(
                200, body, f"Response from {path} is not valid JSON"
            ) from exc

    def download(self, path: str, dest_path: str) -> str:
        """Stream a binary response to *dest_path* and return the path.

        The body goes to a temporary file beside *dest_path* and is moved
        into place only when complete; on any failure *dest_path* is left
        untouched.

        Raises:
            ConnectSessionError: ``CONNECTION_FAILURE`` if the stream breaks,
                ``REQUEST_FAILED`` if the file cannot be written.
        """
        response = self.executor.send(ApiRequest(url=path, stream=True))
        dest = Path(dest_path)
        tmp_name = None
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{dest.name}-", suffix=".part", dir=str(dest.parent)
            )
            with os.fdopen(fd, "wb") as f:
                for chunk in response.iter_content(chunk_size=_DOWNLOAD_CHUNK_SIZE):
                    if chunk:
                        f.write(chunk)
            os.replace(tmp_name, dest)
            tmp_name = None
        except requests.RequestException as exc:
            raise ConnectSessionError.connection_failure(
                f"Error downloading {path}", cause=exc
            ) from exc
        except OSError as exc:
            raise ConnectSessionError(
                ErrorKind.REQUEST_FAILED,
                f"Could not write {path} to {dest}: {exc}",
                cause=exc,
            ) from exc
        finally:
            response.close()
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass
        logger.info(f"[CLIENT] Downloaded {path} to {dest}")
        return str(dest)

    # ── Profile ───────────────────────────────────────────────────

    def get_user_profile(self) -> Any:
        return self.get_json(f"{PROXY_API}/userprofile-service/userprofile")

    def get_user_settings(self) -> Any:
        return self.get_json(f"{PROXY_API}/userprofile-service/userprofile/settings")

    # ── Daily wellness (date = YYYY-MM-DD) ────────────────────────

    def get_stats(self, date: str) -> Any:
        return self.get_json(f"{PROXY_API}/usersummary-service/stats/daily/{date}")

    def get_user_summary(self, date: str) -> Any:
        return self.get_json(f"{PROXY_API}/usersummary-service/usersummary/daily/{date}")

    def get_heart_rates(self, date: str) -> Any:
        return self.get_json(f"{PROXY_API}/wellness-service/wellness/dailyHeartRate/{date}")

    def get_sleep_data(self, date: str) -> Any:
        return self.get_json(f"{PROXY_API}/wellness-service/wellness/dailySleepData/{date}")

    def get_stress_data(self, date: str) -> Any:
        return self.get_json(f"{PROXY_API}/wellness-service/wellness/dailyStress/{date}")

    def get_steps_data(self, date: str) -> Any:
        return self.get_json(f"{PROXY_API}/wellness-service/wellness/dailySteps/{date}")

    def get_hydration_data(self, date: str) -> Any:
        return self.get_json(
            f"{PROXY_API}/usersummary-service/usersummary/hydration/daily/{date}"
        )

    def get_body_composition(self, date: str) -> Any:
        return self.get_json(
            f"{PROXY_API}/weight-service/weight/dateRange",
            params={"startDate": date, "endDate": date},
        )

    # ── Activities ────────────────────────────────────────────────

    def get_activities_by_date(self, start_date: str, end_date: str, limit: int = 20) -> Any:
        return self.get_json(
            f"{PROXY_API}/activitylist-service/activities/search/activities",
            params={"startDate": start_date, "endDate": end_date, "limit": limit},
        )

    def get_activity_details(self, activity_id: int) -> Any:
        return self.get_json(f"{PROXY_API}/activity-service/activity/{activity_id}")

    def download_activity(
        self, activity_id: int, fmt: ActivityFormat, dest_path: str
    ) -> str:
        return self.download(ActivityFormat(fmt).path_for(activity_id), dest_path)

    # ── Devices & achievements ────────────────────────────────────

    def get_devices(self) -> Any:
        return self.get_json(f"{PROXY_API}/device-service/deviceregistration/devices")

    def get_device_settings(self, device_id: int) -> Any:
        return self.get_json(
            f"{PROXY_API}/device-service/deviceservice/device-info/settings/{device_id}"
        )

    def get_personal_records(self) -> Any:
        return self.get_json(f"{PROXY_API}/personalrecord-service/personalrecord/prs")

    def get_badges(self) -> Any:
        return self.get_json(f"{PROXY_API}/badge-service/badge/available")
