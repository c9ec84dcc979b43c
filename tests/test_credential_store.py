"""
Tests for the persisted session record.

Covers:
  1. Save → load round-trip of all fields
  2. Tolerance: missing, corrupt, or oddly shaped records load as None
  3. Forward/backward compatibility (unknown keys, missing optional keys)
  4. Non-fatal write / delete failures
"""

import json
import os
import stat
import time
from pathlib import Path

import pytest

from connect_session.auth.base_auth import Session
from connect_session.auth.credential_store import CredentialStore

ACCOUNT = "runner@example.com"


@pytest.fixture
def store(tmp_path):
    return CredentialStore(tmp_path / "tokens")


def _write_raw(store, text):
    path = store.path_for(ACCOUNT)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


# ====================================================================
# 1. Round-trip
# ====================================================================

class TestRoundTrip:

    def test_saved_session_loads_back_identically(self, store):
        session = Session("A1", "R1", 1_700_003_600.5, ACCOUNT)
        assert store.save(session) is True

        loaded = store.load(ACCOUNT)
        assert loaded is not None
        assert loaded.access_token == "A1"
        assert loaded.refresh_token == "R1"
        assert loaded.expires_at == 1_700_003_600.5
        assert loaded.account == ACCOUNT

    def test_save_creates_missing_directory(self, tmp_path):
        store = CredentialStore(tmp_path / "a" / "b" / "c")
        assert store.save(Session("A1", "R1", time.time() + 60, ACCOUNT))
        assert store.path_for(ACCOUNT).exists()

    def test_save_overwrites_previous_record(self, store):
        store.save(Session("A1", "R1", 100.0, ACCOUNT))
        store.save(Session("A2", "R2", 200.0, ACCOUNT))
        loaded = store.load(ACCOUNT)
        assert (loaded.access_token, loaded.refresh_token) == ("A2", "R2")

    def test_no_temp_files_left_behind(self, store):
        store.save(Session("A1", "R1", 100.0, ACCOUNT))
        leftovers = [p for p in store.token_dir.iterdir() if p.suffix == ".tmp"]
        assert leftovers == []

    @pytest.mark.skipif(os.name != "posix", reason="POSIX permissions only")
    def test_record_is_owner_only(self, store):
        store.save(Session("A1", "R1", 100.0, ACCOUNT))
        mode = stat.S_IMODE(store.path_for(ACCOUNT).stat().st_mode)
        assert mode == 0o600

    def test_file_name_does_not_leak_account(self, store):
        assert "runner" not in store.path_for(ACCOUNT).name

    def test_account_key_is_case_insensitive(self, store):
        assert store.path_for("Runner@Example.com") == store.path_for(ACCOUNT)

    def test_accounts_are_kept_apart(self, store):
        store.save(Session("A1", "R1", 100.0, ACCOUNT))
        assert store.load("someone-else@example.com") is None


# ====================================================================
# 2. Tolerance of bad records
# ====================================================================

class TestTolerance:

    def test_missing_file_is_none(self, store):
        assert store.load(ACCOUNT) is None

    def test_truncated_json_is_none(self, store):
        _write_raw(store, '{"access_token": "A1", "refresh')
        assert store.load(ACCOUNT) is None

    def test_non_object_json_is_none(self, store):
        _write_raw(store, '["A1", "R1"]')
        assert store.load(ACCOUNT) is None

    def test_wrong_token_types_are_none(self, store):
        _write_raw(store, json.dumps({"access_token": 12, "refresh_token": "R1", "expires_at": 5}))
        assert store.load(ACCOUNT) is None

    def test_empty_record_is_none(self, store):
        _write_raw(store, "{}")
        assert store.load(ACCOUNT) is None

    def test_binary_garbage_is_none(self, store):
        path = store.path_for(ACCOUNT)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"\xff\xfe\x00garbage")
        assert store.load(ACCOUNT) is None

    def test_permission_denied_is_none(self, store, monkeypatch):
        store.save(Session("A1", "R1", 100.0, ACCOUNT))

        def denied(self, *args, **kwargs):
            raise PermissionError(13, "Permission denied")

        monkeypatch.setattr(Path, "read_text", denied)

        assert store.load(ACCOUNT) is None


# ====================================================================
# 3. Compatibility
# ====================================================================

class TestCompatibility:

    def test_unknown_fields_are_ignored(self, store):
        _write_raw(store, json.dumps({
            "access_token": "A1",
            "refresh_token": "R1",
            "expires_at": 1_700_000_000,
            "scope": "everything",
            "version": 99,
        }))
        loaded = store.load(ACCOUNT)
        assert loaded.access_token == "A1"
        assert loaded.expires_at == 1_700_000_000.0

    def test_missing_refresh_token_defaults_to_empty(self, store):
        _write_raw(store, json.dumps({"access_token": "A1", "expires_at": 1_700_000_000}))
        loaded = store.load(ACCOUNT)
        assert loaded.refresh_token == ""

    def test_missing_expiry_keeps_only_refresh_token(self, store):
        _write_raw(store, json.dumps({"access_token": "A1", "refresh_token": "R1"}))
        loaded = store.load(ACCOUNT)
        assert loaded is not None
        assert loaded.is_authenticated is False
        assert loaded.refresh_token == "R1"

    def test_missing_expiry_and_refresh_token_is_none(self, store):
        _write_raw(store, json.dumps({"access_token": "A1"}))
        assert store.load(ACCOUNT) is None

    def test_issue_time_round_trips(self, store):
        store.save(Session("A1", "R1", 1_700_000_020.0, ACCOUNT, issued_at=1_700_000_000.0))
        assert store.load(ACCOUNT).issued_at == 1_700_000_000.0

    def test_missing_or_bogus_issue_time_defaults_to_unknown(self, store):
        _write_raw(store, json.dumps({"access_token": "A1", "expires_at": 1_700_000_000}))
        assert store.load(ACCOUNT).issued_at == 0.0

        _write_raw(store, json.dumps({
            "access_token": "A1",
            "expires_at": 1_700_000_000,
            "issued_at": 1_800_000_000,
        }))
        assert store.load(ACCOUNT).issued_at == 0.0

    def test_string_expiry_is_accepted(self, store):
        _write_raw(store, json.dumps({"access_token": "A1", "expires_at": "1700000000.5"}))
        assert store.load(ACCOUNT).expires_at == 1_700_000_000.5


# ====================================================================
# 4. Failures are non-fatal
# ====================================================================

class TestFailures:

    def test_save_into_unwritable_location_returns_false(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x")
        store = CredentialStore(blocker)
        assert store.save(Session("A1", "R1", 100.0, ACCOUNT)) is False

    def test_save_failure_is_logged_as_warning(self, tmp_path, caplog):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x")
        with caplog.at_level("WARNING"):
            CredentialStore(blocker).save(Session("A1", "R1", 100.0, ACCOUNT))
        assert any("Failed to save session" in r.message for r in caplog.records)

    def test_clear_is_idempotent(self, store):
        store.save(Session("A1", "R1", 100.0, ACCOUNT))
        assert store.clear(ACCOUNT) is True
        assert store.clear(ACCOUNT) is True
        assert store.load(ACCOUNT) is None

    def test_tokens_never_logged(self, store, caplog):
        with caplog.at_level("DEBUG"):
            store.save(Session("SECRET-ACCESS", "SECRET-REFRESH", 100.0, ACCOUNT))
            store.load(ACCOUNT)
        assert "SECRET" not in caplog.text
