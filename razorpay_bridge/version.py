"""
Version information for the Razorpay bridge.

The version comes from the installed package metadata (pyproject.toml),
with a fallback for source checkouts. Update checks query the latest
GitHub release of GITHUB_REPO_OWNER/GITHUB_REPO_NAME and are cached for
an hour.
"""

from __future__ import annotations

import os
import sys
import time
from datetime import UTC, datetime
from importlib.metadata import PackageNotFoundError, version as package_version
from typing import Any

import httpx

from razorpay_bridge.core.config import get_settings

_PACKAGE_NAME = "razorpay-bridge"
_FALLBACK_VERSION = "1.0.0"

GITHUB_API_BASE = "https://api.github.com"

_UPDATE_CHECK_CACHE_TTL = 3600
_RELEASE_NOTES_LIMIT = 500


def get_version() -> str:
    try:
        return package_version(_PACKAGE_NAME)
    except PackageNotFoundError:
        return _FALLBACK_VERSION


VERSION = get_version()


def version_info() -> dict[str, Any]:
    """Version, runtime and build metadata of the running service."""
    settings = get_settings()
    return {
        "version": VERSION,
        "name": settings.APP_NAME,
        "python_version": ".".join(str(part) for part in sys.version_info[:3]),
        "git_commit": os.environ.get("GIT_COMMIT"),
        "build_date": os.environ.get("BUILD_DATE"),
        "environment": settings.ENVIRONMENT,
        "payment_mode": settings.RAZORPAY_PAYMENT_MODE,
    }


def version_string() -> str:
    """Display string such as "v1.0.0 (abc1234)"."""
    commit = os.environ.get("GIT_COMMIT")
    return f"v{VERSION} ({commit[:8]})" if commit else f"v{VERSION}"


_cached_result: dict[str, Any] = {}
_cached_at: float = 0


def clear_update_cache() -> None:
    global _cached_result, _cached_at
    _cached_result = {}
    _cached_at = 0


async def _fetch_latest_release(owner: str, name: str) -> dict[str, Any]:
    """
    Latest release fields, or an `error` entry when GitHub can't answer.
    """
    url = f"{GITHUB_API_BASE}/repos/{owner}/{name}/releases/latest"
    headers = {"Accept": "application/vnd.github.v3+json", "User-Agent": f"razorpay-bridge/{VERSION}"}

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.get(url, headers=headers)
    except httpx.TimeoutException:
        return {"error": "GitHub API timeout"}
    except httpx.HTTPError as e:
        return {"error": f"Update check failed: {e}"}

    if response.status_code == 404:
        return {"error": "No releases found in repository"}
    if response.status_code != 200:
        return {"error": f"GitHub API error: {response.status_code}"}

    data = response.json()
    tag = (data.get("tag_name") or "").lstrip("v")
    return {
        "latest_version": tag or None,
        "release_url": data.get("html_url"),
        "release_notes": (data.get("body") or "")[:_RELEASE_NOTES_LIMIT],
    }


async def check_for_updates() -> dict[str, Any]:
    """
    Compare the running version with the latest GitHub release.

    Returns:
        dict with current_version, latest_version, update_available,
        release_url, release_notes, checked_at and error
    """
    global _cached_result, _cached_at

    now = time.time()
    if _cached_result and now - _cached_at < _UPDATE_CHECK_CACHE_TTL:
        return _cached_result

    settings = get_settings()
    result: dict[str, Any] = {
        "current_version": VERSION,
        "latest_version": None,
        "update_available": False,
        "release_url": None,
        "release_notes": None,
        "checked_at": datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "error": None,
    }

    if settings.GITHUB_REPO_OWNER and settings.GITHUB_REPO_NAME:
        result.update(await _fetch_latest_release(settings.GITHUB_REPO_OWNER, settings.GITHUB_REPO_NAME))
        latest = result["latest_version"]
        result["update_available"] = bool(latest) and _compare_versions(latest, VERSION) > 0
    else:
        result["error"] = "GitHub repository not configured (set GITHUB_REPO_OWNER and GITHUB_REPO_NAME)"

    _cached_result = result
    _cached_at = now
    return result


def _compare_versions(v1: str, v2: str) -> int:
    """
    Compare two semantic versions.

    Returns:
        1 if v1 > v2, -1 if v1 < v2, 0 if equal or unparseable. A final
        release ranks above a pre-release of the same number.
    """

    def parse(value: str) -> tuple[list[int], bool]:
        core, _, pre = value.lstrip("v").partition("-")
        return [int(part) for part in core.split(".")], bool(pre)

    try:
        (nums1, pre1), (nums2, pre2) = parse(v1), parse(v2)
    except ValueError:
        return 0

    width = max(len(nums1), len(nums2))
    nums1 += [0] * (width - len(nums1))
    nums2 += [0] * (width - len(nums2))

    if nums1 != nums2:
        return 1 if nums1 > nums2 else -1
    if pre1 != pre2:
        return -1 if pre1 else 1
    return 0
