"""
Update checking for vaultenv.

Looks up the latest release on PyPI at most once a day and caches the
answer under ~/.vaultenv. Network and cache errors are ignored; push and
pull never fail because of an update check.

Disabled when VAULTENV_NO_UPDATE_CHECK is set.
"""

import json
import os
import re
import subprocess
import sys
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests

from .. import __version__


PACKAGE_NAME = "vaultenv"
PYPI_URL = f"https://pypi.org/pypi/{PACKAGE_NAME}/json"
REQUEST_TIMEOUT = 3
CHECK_INTERVAL_SECONDS = 24 * 60 * 60
CACHE_FILE_NAME = "update-check.json"
LEADING_DIGITS = re.compile(r"\d+")


@dataclass
class UpdateCheckResult:
    current_version: str
    latest_version: Optional[str]
    update_available: bool
    is_skipped: bool
    from_cache: bool


@dataclass
class Installer:
    """How vaultenv was installed, and how to upgrade it."""
    name: str
    display_name: str
    command: List[str]


@dataclass
class UpdateOutcome:
    success: bool
    error: Optional[str] = None


def is_update_check_enabled() -> bool:
    return not os.getenv("VAULTENV_NO_UPDATE_CHECK")


def get_cache_dir() -> Path:
    override = os.getenv("VAULTENV_CACHE_DIR")
    if override:
        return Path(override)
    return Path.home() / ".vaultenv"


def get_cache_file() -> Path:
    return get_cache_dir() / CACHE_FILE_NAME


def load_cache() -> Dict[str, Any]:
    """Load the cache; a missing or corrupt file yields an empty cache."""
    cache_file = get_cache_file()
    try:
        with open(cache_file, 'r') as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError):
        return {'last_check': 0, 'latest_version': None}

    if not isinstance(data, dict):
        return {'last_check': 0, 'latest_version': None}
    return data


def save_cache(cache: Dict[str, Any]) -> None:
    cache_file = get_cache_file()
    try:
        cache_file.parent.mkdir(parents=True, exist_ok=True)
        with open(cache_file, 'w') as f:
            json.dump(cache, f, indent=2)
    except OSError:
        pass


def clear_cache() -> None:
    try:
        get_cache_file().unlink()
    except FileNotFoundError:
        pass


def compare_versions(v1: str, v2: str) -> int:
    """
    Compare dotted version strings.

    Returns:
        -1 if v1 < v2, 0 if equal, 1 if v1 > v2
    """
    def parts(version: str) -> List[int]:
        numbers = []
        for part in version.split(".")[:3]:
            match = LEADING_DIGITS.match(part)
            numbers.append(int(match.group()) if match else 0)
        return numbers + [0] * (3 - len(numbers))

    p1, p2 = parts(v1), parts(v2)
    if p1 < p2:
        return -1
    if p1 > p2:
        return 1
    return 0


def fetch_latest_version() -> Optional[str]:
    """Latest released version on PyPI, or None."""
    try:
        response = requests.get(PYPI_URL, timeout=REQUEST_TIMEOUT)
        if response.status_code != 200:
            return None
        return response.json().get('info', {}).get('version')
    except (requests.RequestException, ValueError):
        return None


def check_for_update(force_check: bool = False) -> UpdateCheckResult:
    """
    Check whether a newer release exists.

    Args:
        force_check: Ignore the cached answer and ask PyPI

    Returns:
        UpdateCheckResult
    """
    cache = load_cache()
    last_check = cache.get('last_check') or 0
    cached_version = cache.get('latest_version')
    skipped = cache.get('skip_version')

    fresh = time.time() - last_check < CHECK_INTERVAL_SECONDS
    if not force_check and fresh and cached_version:
        return UpdateCheckResult(
            current_version=__version__,
            latest_version=cached_version,
            update_available=compare_versions(__version__, cached_version) < 0,
            is_skipped=skipped == cached_version,
            from_cache=True,
        )

    latest = fetch_latest_version()
    cache['last_check'] = time.time()
    cache['latest_version'] = latest
    save_cache(cache)

    if not latest:
        return UpdateCheckResult(__version__, None, False, False, False)

    return UpdateCheckResult(
        current_version=__version__,
        latest_version=latest,
        update_available=compare_versions(__version__, latest) < 0,
        is_skipped=skipped == latest,
        from_cache=False,
    )


def skip_version(version: str) -> None:
    """Stop notifying about a specific version."""
    cache = load_cache()
    cache['skip_version'] = version
    save_cache(cache)


def detect_installer(executable: Optional[str] = None) -> Installer:
    """
    Guess how vaultenv was installed from the interpreter path.

    Args:
        executable: Interpreter path (defaults to sys.executable)

    Returns:
        Installer with the upgrade command to run
    """
    path = (executable or sys.executable).replace("\\", "/")

    if "/pipx/venvs/" in path:
        return Installer("pipx", "pipx", ["pipx", "upgrade", PACKAGE_NAME])
    if "/uv/tools/" in path:
        return Installer("uv", "uv tool", ["uv", "tool", "upgrade", PACKAGE_NAME])
    if "/Cellar/" in path or "/homebrew/" in path or "/linuxbrew/" in path:
        return Installer("homebrew", "Homebrew", ["brew", "upgrade", PACKAGE_NAME])

    return Installer(
        "pip",
        "pip",
        [executable or sys.executable, "-m", "pip", "install", "--upgrade", PACKAGE_NAME],
    )


def perform_update(installer: Optional[Installer] = None) -> UpdateOutcome:
    """Run the installer's upgrade command."""
    installer = installer or detect_installer()
    try:
        result = subprocess.run(installer.command, capture_output=True, text=True)
    except (FileNotFoundError, PermissionError) as exc:
        return UpdateOutcome(success=False, error=str(exc))

    if result.returncode != 0:
        return UpdateOutcome(
            success=False,
            error=result.stderr.strip() or f"Command exited with code {result.returncode}",
        )
    return UpdateOutcome(success=True)


def pending_notification() -> Optional[UpdateCheckResult]:
    """
    The update worth telling the user about after a command, if any.

    Uses the daily cache; returns None when checks are disabled, nothing
    newer exists, or the newer version was skipped.
    """
    if not is_update_check_enabled():
        return None

    result = check_for_update()
    if result.update_available and not result.is_skipped:
        return result
    return None
