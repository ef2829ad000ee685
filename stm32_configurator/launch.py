"""Persist generated configurations into .vscode/launch.json."""

from __future__ import annotations

import json
import logging
import shutil
import time
from pathlib import Path

from stm32_configurator.generator import LaunchConfig

logger = logging.getLogger(__name__)

LAUNCH_VERSION = "0.2.0"


def launch_json_path(root: Path | str) -> Path:
    return Path(root) / ".vscode" / "launch.json"


def _load(path: Path) -> dict:
    if not path.exists():
        return {"version": LAUNCH_VERSION, "configurations": []}
    text = path.read_text().strip()
    if not text:
        return {"version": LAUNCH_VERSION, "configurations": []}
    data = json.loads(text)
    data.setdefault("version", LAUNCH_VERSION)
    data.setdefault("configurations", [])
    return data


def unique_name(name: str, existing: set[str]) -> str:
    """Return *name*, or ``name (2)``, ``name (3)``... if it is taken."""
    if name not in existing:
        return name
    counter = 2
    while f"{name} ({counter})" in existing:
        counter += 1
    return f"{name} ({counter})"


def save_launch_configuration(
    root: Path | str,
    config: LaunchConfig | dict,
    force_overwrite: bool = False,
) -> str:
    """Insert *config* first in launch.json and return the name it was saved under.

    A same-named entry is replaced when *force_overwrite* is set; otherwise
    the new entry gets a numbered suffix. Read and write errors propagate.
    """
    path = launch_json_path(root)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = _load(path)
    entry = config.to_dict() if isinstance(config, LaunchConfig) else dict(config)
    configs = [c for c in data["configurations"] if isinstance(c, dict)]

    names = {c.get("name") for c in configs}
    if entry["name"] in names:
        if force_overwrite:
            configs = [c for c in configs if c.get("name") != entry["name"]]
        else:
            entry["name"] = unique_name(entry["name"], names)

    data["configurations"] = [entry] + configs
    path.write_text(json.dumps(data, indent=4) + "\n")
    logger.info("Saved launch configuration %r to %s", entry["name"], path)
    return entry["name"]


def backup_launch_configuration(root: Path | str) -> Path | None:
    """Copy launch.json to ``launch.json.backup.<ms timestamp>``; None if absent."""
    path = launch_json_path(root)
    if not path.exists():
        return None
    backup = path.with_name(f"{path.name}.backup.{int(time.time() * 1000)}")
    shutil.copy2(path, backup)
    logger.debug("Backed up %s to %s", path, backup)
    return backup
