"""Browser binary resolution for CDP automation.

Precedence:
  1. explicit override (``--browser-bin`` / settings)
  2. ``WEB_BROWSE_BROWSER_BIN``
  3. ``BRAVE_BIN`` (older name, still honoured)
  4. OS-specific defaults: macOS ``.app`` bundles, Windows install
     locations, or Linux binary names searched on ``PATH``
"""

from __future__ import annotations

import logging
import os
import re
import sys
from collections.abc import Mapping

from web_browse.exceptions import BinaryNotFoundError

logger = logging.getLogger(__name__)

BINARY_ENV_VARS: tuple[str, ...] = ("WEB_BROWSE_BROWSER_BIN", "BRAVE_BIN")

MACOS_BROWSER_PATHS: list[str] = [
    "/Applications/Brave Browser.app/Contents/MacOS/Brave Browser",
    "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
    "/Applications/Google Chrome Canary.app/Contents/MacOS/Google Chrome Canary",
    "/Applications/Chromium.app/Contents/MacOS/Chromium",
    "/Applications/Microsoft Edge.app/Contents/MacOS/Microsoft Edge",
]

LINUX_BROWSER_NAMES: list[str] = [
    "brave",
    "brave-browser",
    "google-chrome",
    "google-chrome-stable",
    "chromium",
    "chromium-browser",
]

# (env var holding the install root, path segments below it)
_WINDOWS_BROWSER_LOCATIONS: list[tuple[str, tuple[str, ...]]] = [
    ("LOCALAPPDATA", ("BraveSoftware", "Brave-Browser", "Application", "brave.exe")),
    ("PROGRAMFILES", ("BraveSoftware", "Brave-Browser", "Application", "brave.exe")),
    ("PROGRAMFILES(X86)", ("BraveSoftware", "Brave-Browser", "Application", "brave.exe")),
    ("LOCALAPPDATA", ("Google", "Chrome", "Application", "chrome.exe")),
    ("PROGRAMFILES", ("Google", "Chrome", "Application", "chrome.exe")),
    ("PROGRAMFILES(X86)", ("Google", "Chrome", "Application", "chrome.exe")),
    ("PROGRAMFILES", ("Microsoft", "Edge", "Application", "msedge.exe")),
    ("PROGRAMFILES(X86)", ("Microsoft", "Edge", "Application", "msedge.exe")),
    ("LOCALAPPDATA", ("Chromium", "Application", "chrome.exe")),
]

_WINDOWS_DRIVE_RE = re.compile(r"^[A-Za-z]:")


def _is_windows(system: str) -> bool:
    return system.startswith("win")


def windows_browser_paths(env: Mapping[str, str]) -> list[str]:
    """Expand the Windows install locations, skipping roots whose env var is unset."""
    paths: list[str] = []
    for root_var, parts in _WINDOWS_BROWSER_LOCATIONS:
        root = env.get(root_var)
        if root:
            paths.append(os.path.join(root, *parts))
    return paths


def is_executable_file(path: str, system: str | None = None) -> bool:
    """Return True if *path* is a file we may execute (existence only on Windows)."""
    system = system or sys.platform
    if _is_windows(system):
        return os.path.isfile(path)
    return os.path.isfile(path) and os.access(path, os.X_OK)


def find_executable_on_path(name: str, env: Mapping[str, str], system: str | None = None) -> str | None:
    """Locate *name* directly (if it looks like a path) or on ``PATH``."""
    system = system or sys.platform
    if not name:
        return None

    looks_like_path = "/" in name or (_is_windows(system) and ("\\" in name or _WINDOWS_DRIVE_RE.match(name)))
    if looks_like_path:
        return name if is_executable_file(name, system) else None

    path_env = env.get("PATH") or env.get("Path") or ""
    for directory in filter(None, path_env.split(os.pathsep)):
        candidate = os.path.join(directory, name)
        if is_executable_file(candidate, system):
            return candidate
        if _is_windows(system) and not name.lower().endswith(".exe"):
            candidate_exe = candidate + ".exe"
            if is_executable_file(candidate_exe, system):
                return candidate_exe
    return None


def resolve_browser_binary(
    preferred: str | None = None,
    env: Mapping[str, str] | None = None,
    system: str | None = None,
) -> str:
    """Resolve a Chromium-family browser binary.

    Args:
        preferred: Explicit override; always wins when it resolves.
        env: Environment mapping (defaults to ``os.environ``).
        system: ``sys.platform``-style name (defaults to the running platform).

    Returns:
        Path of the resolved executable.

    Raises:
        BinaryNotFoundError: Listing every candidate that was tried.
    """
    env = os.environ if env is None else env
    system = system or sys.platform

    overrides = [c for c in (preferred, *(env.get(var) for var in BINARY_ENV_VARS)) if c]
    for candidate in overrides:
        resolved = find_executable_on_path(candidate, env, system)
        if resolved:
            logger.debug("Browser binary resolved from override: %s", resolved)
            return resolved

    if system == "darwin":
        os_name, os_candidates = "macOS", MACOS_BROWSER_PATHS
    elif _is_windows(system):
        os_name, os_candidates = "Windows", windows_browser_paths(env)
    else:
        os_name, os_candidates = "Linux", LINUX_BROWSER_NAMES

    for candidate in os_candidates:
        if _is_windows(system):
            resolved = candidate if is_executable_file(candidate, system) else None
        else:
            resolved = find_executable_on_path(candidate, env, system)
        if resolved:
            logger.debug("Browser binary resolved from %s defaults: %s", os_name, resolved)
            return resolved

    raise BinaryNotFoundError(os_name, [*overrides, *os_candidates])
