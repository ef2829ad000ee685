"""Path and environment helpers shared by the detectors and validators."""

from __future__ import annotations

import glob
import os
import re
import stat
import sys
from collections.abc import Mapping

_PERCENT_VAR = re.compile(r"%([A-Za-z_][A-Za-z0-9_]*)%")
_BRACED_VAR = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")
_BARE_VAR = re.compile(r"\$([A-Za-z_][A-Za-z0-9_]*)")


def normalize_path(path: str) -> str:
    """Forward slashes, no repeated separators, no trailing slash."""
    if not path:
        return ""
    result = path.replace("\\", "/")
    result = re.sub(r"/{2,}", "/", result)
    if len(result) > 1 and result.endswith("/"):
        result = result.rstrip("/") or "/"
    return result


def is_windows(platform: str | None = None) -> bool:
    return (platform or sys.platform).startswith("win")


def executable_name(base: str, platform: str | None = None) -> str:
    """Return the platform-correct file name for an executable."""
    if is_windows(platform) and not base.lower().endswith(".exe"):
        return base + ".exe"
    return base


def build_executable_path(directory: str, base: str, platform: str | None = None) -> str:
    return os.path.join(directory, executable_name(base, platform))


def split_search_path(value: str | None) -> list[str]:
    """Split a PATH-style value, dropping quotes and empty entries."""
    if not value:
        return []
    entries = []
    for entry in value.split(os.pathsep):
        entry = entry.strip().strip('"').strip("'").strip()
        if entry:
            entries.append(entry)
    return entries


def _substitute(template: str, env: Mapping[str, str]) -> str:
    def lookup(match: re.Match) -> str:
        return env.get(match.group(1), match.group(0))

    result = _PERCENT_VAR.sub(lookup, template)
    result = _BRACED_VAR.sub(lookup, result)
    result = _BARE_VAR.sub(lookup, result)
    if result.startswith("~"):
        home = env.get("HOME") or env.get("USERPROFILE")
        if home:
            result = home + result[1:]
    return result


def expand_path(template: str, env: Mapping[str, str] | None = None) -> list[str]:
    """Expand variables and wildcards in a path template.

    ``%VAR%``, ``${VAR}``, ``$VAR`` and a leading ``~`` are taken from *env*
    (``os.environ`` when omitted). Unknown variables are left in place, so
    the resulting path simply won't exist. A template containing ``*``
    yields every existing match, newest version first (reverse lexical
    order); otherwise the single expanded path is returned.
    """
    if env is None:
        env = os.environ
    expanded = _substitute(template, env)
    if "*" not in expanded:
        return [expanded]
    return sorted(glob.glob(expanded), reverse=True)


def is_executable_file(path: str) -> bool:
    """Return True if *path* exists and is a regular file.

    Absence is not an error. Any other OS failure (permission denied on a
    parent directory, for example) propagates to the caller.
    """
    try:
        st = os.stat(path)
    except (FileNotFoundError, NotADirectoryError, ValueError):
        return False
    return stat.S_ISREG(st.st_mode)


def has_execute_permission(path: str) -> bool:
    if is_windows():
        return os.path.isfile(path)
    return os.access(path, os.X_OK)


def install_root_for(executable: str) -> str:
    """Return the install root of an executable living in ``<root>/bin``."""
    bin_dir = os.path.dirname(os.path.abspath(executable))
    if os.path.basename(bin_dir).lower() == "bin":
        return os.path.dirname(bin_dir)
    return bin_dir
