"""Submodule configuration discovery.

The committed configuration is the first JSON object, in any ``*.json`` file
of the config directory, that carries every required key. Per-developer
overrides come from ``*.local.json`` / ``.project_local.json`` and finally
from the environment.
"""

from __future__ import annotations

import json
import os
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from .errors import ConfigError

REQUIRED_KEYS = (
    "SUBMODULE_NAME",
    "SUBMODULE_PATH",
    "SUBMODULE_URL",
    "SUBMODULE_BRANCH",
    "PROJECT_TAG",
)
OVERRIDE_KEYS = ("SUBMODULE_URL", "SHARED_MIRROR_PATH")
LOCAL_SUFFIX = ".local.json"
PROJECT_LOCAL_FILE = ".project_local.json"


@dataclass(frozen=True)
class ResolvedConfig:
    """Fully resolved submodule configuration. Paths are absolute."""

    submodule_name: str
    submodule_path: Path
    submodule_path_relative: str
    submodule_url: str
    submodule_branch: str
    project_tag: str
    shared_mirror_path: Path | None
    config_file: Path
    work_repo: Path


def _json_files(config_dir: Path) -> list[Path]:
    return sorted(
        p for p in config_dir.iterdir()
        if p.is_file() and p.suffix.lower() == ".json"
    )


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"failed to read {path}: {e}")
    except json.JSONDecodeError as e:
        raise ConfigError(f"failed to parse {path} as JSON: {e}")


def _walk_objects(value: Any):
    """Yield every JSON object, breadth-first."""
    queue = deque([value])
    while queue:
        current = queue.popleft()
        if isinstance(current, dict):
            yield current
            queue.extend(current.values())
        elif isinstance(current, list):
            queue.extend(current)


def first_object_with_keys(value: Any, keys: tuple[str, ...]) -> dict | None:
    for obj in _walk_objects(value):
        if all(k in obj for k in keys):
            return obj
    return None


def first_value_for_key(value: Any, key: str) -> str | None:
    for obj in _walk_objects(value):
        found = obj.get(key)
        if isinstance(found, str):
            return found
    return None


def _get_string(obj: dict, key: str, source: Path) -> str:
    value = obj.get(key)
    if not isinstance(value, str) or not value:
        raise ConfigError(f"{source}: key {key} must be a non-empty string")
    return value


def _find_base(config_dir: Path) -> tuple[dict, Path]:
    for candidate in _json_files(config_dir):
        obj = first_object_with_keys(_read_json(candidate), REQUIRED_KEYS)
        if obj is not None:
            return obj, candidate
    raise ConfigError(
        f"no JSON file in {config_dir} contained all required submodule keys "
        f"({', '.join(REQUIRED_KEYS)})"
    )


def load_local_overrides(config_dir: Path) -> dict[str, str]:
    """Collect overrides from local JSON files; the first value per key wins."""
    candidates = [p for p in _json_files(config_dir) if p.name.endswith(LOCAL_SUFFIX)]
    project_local = config_dir / PROJECT_LOCAL_FILE
    if project_local.is_file() and project_local not in candidates:
        candidates.append(project_local)

    overrides: dict[str, str] = {}
    for candidate in sorted(candidates):
        data = _read_json(candidate)
        for key in OVERRIDE_KEYS:
            if key in overrides:
                continue
            value = first_value_for_key(data, key)
            if value:
                overrides[key] = value
    return overrides


def load_env_overrides(environ: Mapping[str, str] | None = None) -> dict[str, str]:
    environ = os.environ if environ is None else environ
    return {k: environ[k] for k in OVERRIDE_KEYS if environ.get(k)}


def _absolute(path: str | Path, base: Path) -> Path:
    path = Path(path).expanduser()
    if not path.is_absolute():
        path = base / path
    return path.resolve()


def load_config(config_dir: Path | str | None = None, environ: Mapping[str, str] | None = None) -> ResolvedConfig:
    """Load and resolve the submodule configuration found in ``config_dir``."""
    config_dir = Path(config_dir or ".")
    if not config_dir.is_dir():
        raise ConfigError(f"Not a directory: {config_dir}")
    config_dir = config_dir.resolve()

    base, config_file = _find_base(config_dir)
    values = {k: _get_string(base, k, config_file) for k in REQUIRED_KEYS}
    mirror = base.get("SHARED_MIRROR_PATH")
    if mirror is not None and not isinstance(mirror, str):
        raise ConfigError(f"{config_file}: key SHARED_MIRROR_PATH must be a string")
    if mirror:
        values["SHARED_MIRROR_PATH"] = mirror

    # local files first, environment last
    values.update(load_local_overrides(config_dir))
    values.update(load_env_overrides(environ))

    submodule_path = _absolute(values["SUBMODULE_PATH"], config_dir)
    try:
        relative = submodule_path.relative_to(config_dir).as_posix()
    except ValueError:
        raise ConfigError(
            f"unable to express submodule path {submodule_path} relative to {config_dir}"
        )
    if relative in ("", "."):
        raise ConfigError(f"submodule path {submodule_path} is the work repository itself")

    mirror_path = values.get("SHARED_MIRROR_PATH")
    return ResolvedConfig(
        submodule_name=values["SUBMODULE_NAME"],
        submodule_path=submodule_path,
        submodule_path_relative=relative,
        submodule_url=values["SUBMODULE_URL"],
        submodule_branch=values["SUBMODULE_BRANCH"],
        project_tag=values["PROJECT_TAG"],
        shared_mirror_path=_absolute(mirror_path, config_dir) if mirror_path else None,
        config_file=config_file,
        work_repo=config_dir,
    )
