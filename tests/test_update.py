"""
Tests for the update checker.

PyPI is never contacted: requests.get and subprocess.run are patched.
"""

import json
import subprocess
import time

import pytest
import requests
from vaultenv import __version__
from vaultenv.core import update
from vaultenv.core.update import (
    Installer,
    check_for_update,
    clear_cache,
    compare_versions,
    detect_installer,
    get_cache_file,
    load_cache,
    pending_notification,
    perform_update,
    save_cache,
    skip_version,
)


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self.payload = payload

    def json(self):
        if self.payload is None:
            raise ValueError("no JSON")
        return self.payload


@pytest.fixture
def pypi(monkeypatch):
    """Patch requests.get; returns the list of requested URLs."""
    def install(version="9.9.9", status_code=200, error=None):
        requested = []

        def fake_get(url, timeout=None):
            requested.append(url)
            if error is not None:
                raise error
            return FakeResponse(status_code, {"info": {"version": version}})

        monkeypatch.setattr(update.requests, "get", fake_get)
        return requested
    return install


class TestCompareVersions:
    """Test dotted version comparison."""

    def test_ordering(self):
        assert compare_versions("1.0.0", "1.0.1") == -1
        assert compare_versions("1.2.0", "1.10.0") == -1
        assert compare_versions("2.0.0", "1.9.9") == 1
        assert compare_versions("1.0.0", "1.0.0") == 0

    def test_short_versions(self):
        assert compare_versions("1.0", "1.0.0") == 0

    def test_prerelease_suffix_ignored(self):
        assert compare_versions("1.0.0rc1", "1.0.0") == 0

    def test_prerelease_does_not_outrank_next_patch(self):
        """Digits after a suffix are not part of the part's number."""
        assert compare_versions("1.0.0rc2", "1.0.1") == -1
        assert compare_versions("1.0.0", "1.0.0rc1") == 0


class TestCache:
    """Test the on-disk cache."""

    def test_cache_dir_from_environment(self, tmp_path):
        assert get_cache_file() == tmp_path / "cache" / "update-check.json"

    def test_missing_cache(self):
        assert load_cache() == {"last_check": 0, "latest_version": None}

    def test_corrupt_cache(self):
        get_cache_file().parent.mkdir(parents=True)
        get_cache_file().write_text("{not json")
        assert load_cache()["latest_version"] is None

    def test_save_and_load(self):
        save_cache({"last_check": 1, "latest_version": "1.2.3"})
        assert load_cache() == {"last_check": 1, "latest_version": "1.2.3"}

    def test_clear_cache(self):
        save_cache({"last_check": 1, "latest_version": "1.2.3"})
        clear_cache()
        assert not get_cache_file().exists()
        clear_cache()


class TestCheckForUpdate:
    """Test the daily check."""

    def test_fetches_and_caches(self, pypi):
        requested = pypi("9.9.9")
        result = check_for_update()

        assert requested == [update.PYPI_URL]
        assert result.latest_version == "9.9.9"
        assert result.update_available
        assert not result.from_cache
        assert json.loads(get_cache_file().read_text())["latest_version"] == "9.9.9"

    def test_fresh_cache_used(self, pypi):
        requested = pypi("9.9.9")
        save_cache({"last_check": time.time(), "latest_version": "5.0.0"})

        result = check_for_update()

        assert requested == []
        assert result.from_cache
        assert result.latest_version == "5.0.0"

    def test_stale_cache_refreshed(self, pypi):
        requested = pypi("9.9.9")
        save_cache({"last_check": time.time() - update.CHECK_INTERVAL_SECONDS - 1, "latest_version": "5.0.0"})

        assert check_for_update().latest_version == "9.9.9"
        assert len(requested) == 1

    def test_force_check_ignores_cache(self, pypi):
        requested = pypi("9.9.9")
        save_cache({"last_check": time.time(), "latest_version": "5.0.0"})

        assert check_for_update(force_check=True).latest_version == "9.9.9"
        assert len(requested) == 1

    def test_network_error(self, pypi):
        pypi(error=requests.ConnectionError("offline"))
        result = check_for_update()
        assert result.latest_version is None
        assert not result.update_available

    def test_bad_status(self, pypi):
        pypi(status_code=404)
        assert check_for_update().latest_version is None

    def test_current_version_not_an_update(self, pypi):
        pypi(__version__)
        assert not check_for_update().update_available

    def test_skipped_version(self, pypi):
        pypi("9.9.9")
        skip_version("9.9.9")
        result = check_for_update()
        assert result.is_skipped
        assert load_cache()["skip_version"] == "9.9.9"


class TestPendingNotification:
    def test_disabled_by_environment(self, pypi):
        requested = pypi("9.9.9")
        assert pending_notification() is None
        assert requested == []

    def test_enabled(self, pypi, monkeypatch):
        monkeypatch.delenv("VAULTENV_NO_UPDATE_CHECK")
        pypi("9.9.9")
        assert pending_notification().latest_version == "9.9.9"

    def test_skipped_not_reported(self, pypi, monkeypatch):
        monkeypatch.delenv("VAULTENV_NO_UPDATE_CHECK")
        pypi("9.9.9")
        skip_version("9.9.9")
        assert pending_notification() is None


class TestInstaller:
    """Test installer detection and the upgrade command."""

    @pytest.mark.parametrize("executable, name", [
        ("/home/u/.local/pipx/venvs/vaultenv/bin/python", "pipx"),
        ("/home/u/.local/share/uv/tools/vaultenv/bin/python", "uv"),
        ("/opt/homebrew/Cellar/vaultenv/0.1.0/libexec/bin/python", "homebrew"),
        ("/usr/bin/python3", "pip"),
    ])
    def test_detect_installer(self, executable, name):
        assert detect_installer(executable).name == name

    def test_pip_uses_interpreter(self):
        installer = detect_installer("/venv/bin/python")
        assert installer.command == ["/venv/bin/python", "-m", "pip", "install", "--upgrade", "vaultenv"]

    def test_perform_update(self, monkeypatch):
        calls = []

        def fake_run(command, capture_output=True, text=True):
            calls.append(command)
            return subprocess.CompletedProcess(command, 0, "", "")

        monkeypatch.setattr(update.subprocess, "run", fake_run)
        outcome = perform_update(Installer("pipx", "pipx", ["pipx", "upgrade", "vaultenv"]))

        assert outcome.success
        assert calls == [["pipx", "upgrade", "vaultenv"]]

    def test_perform_update_failure(self, monkeypatch):
        monkeypatch.setattr(
            update.subprocess, "run",
            lambda command, **kwargs: subprocess.CompletedProcess(command, 1, "", "permission denied\n"),
        )
        outcome = perform_update(Installer("pip", "pip", ["pip", "install", "-U", "vaultenv"]))
        assert not outcome.success
        assert outcome.error == "permission denied"

    def test_perform_update_missing_tool(self, monkeypatch):
        def missing(command, **kwargs):
            raise FileNotFoundError("pipx")

        monkeypatch.setattr(update.subprocess, "run", missing)
        assert not perform_update(Installer("pipx", "pipx", ["pipx", "upgrade", "vaultenv"])).success
