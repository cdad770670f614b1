from __future__ import annotations

import json
import logging
import math
import tomllib
from collections.abc import Callable
from pathlib import Path
from typing import Any

import yaml

from taskrun.config.schema import ExecutionMode, RunConfig, TaskSpec
from taskrun.dag.validate import assert_acyclic, assert_dependencies_exist
from taskrun.util.errors import ConfigError, ConfigNotFoundError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAMES = (
    "task-runner.json",
    "task-runner.yaml",
    "task-runner.yml",
    "task-runner.toml",
)
_ALLOWED_ROOT_KEYS = {"env", "tasks", "default_timeout", "default_working_dir"}
_ALLOWED_TASK_KEYS = {
    "description",
    "commands",
    "dependencies",
    "env",
    "parallel",
    "sequential",
    "working_dir",
    "timeout",
    "continue_on_error",
    "hidden",
}


def _is_finite_real_number(value: object) -> bool:
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return False
    return math.isfinite(value)


def _is_non_blank_str(value: object) -> bool:
    return isinstance(value, str) and bool(value.strip()) and "\x00" not in value


def _is_valid_env_key(value: object) -> bool:
    return _is_non_blank_str(value) and "=" not in value


def _ensure_list_str(owner: str, name: str, value: Any) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(_is_non_blank_str(v) for v in value):
        raise ConfigError(f"{owner}: {name} must be a list of non-empty strings")
    return list(value)


def _ensure_env(owner: str, value: Any) -> dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict) or not all(
        _is_valid_env_key(k) and isinstance(v, str) for k, v in value.items()
    ):
        raise ConfigError(f"{owner}: env must be a mapping of string to string")
    return dict(value)


def _ensure_bool(owner: str, name: str, value: Any) -> bool:
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ConfigError(f"{owner}: {name} must be a boolean")
    return value


def _ensure_timeout(owner: str, name: str, value: Any) -> float | None:
    if value is None:
        return None
    if not _is_finite_real_number(value) or value <= 0:
        raise ConfigError(f"{owner}: {name} must be a number > 0")
    return float(value)


def _ensure_optional_str(owner: str, name: str, value: Any) -> str | None:
    if value is None:
        return None
    if not _is_non_blank_str(value):
        raise ConfigError(f"{owner}: {name} must be a non-empty string")
    return value


def _parse_task(name: Any, raw: Any) -> TaskSpec:
    if not _is_non_blank_str(name):
        raise ConfigError("task names must be non-empty strings")
    owner = f"task '{name}'"
    if not isinstance(raw, dict):
        raise ConfigError(f"{owner} must be a mapping")
    unknown = set(raw.keys()) - _ALLOWED_TASK_KEYS
    if unknown:
        raise ConfigError(f"{owner} has unknown fields: {sorted(unknown, key=str)}")

    commands = _ensure_list_str(owner, "commands", raw.get("commands"))
    dependencies = _ensure_list_str(owner, "dependencies", raw.get("dependencies"))
    if len(set(dependencies)) != len(dependencies):
        raise ConfigError(f"{owner} has duplicate dependencies")

    parallel = _ensure_bool(owner, "parallel", raw.get("parallel"))
    sequential = _ensure_bool(owner, "sequential", raw.get("sequential"))
    if parallel and sequential:
        raise ConfigError(f"Task '{name}' cannot be both parallel and sequential")
    mode: ExecutionMode = "parallel" if parallel else "sequential" if sequential else "auto"

    description = raw.get("description")
    if description is not None and not isinstance(description, str):
        raise ConfigError(f"{owner}: description must be a string")

    return TaskSpec(
        name=name,
        commands=commands,
        dependencies=dependencies,
        env=_ensure_env(owner, raw.get("env")),
        mode=mode,
        working_dir=_ensure_optional_str(owner, "working_dir", raw.get("working_dir")),
        timeout_sec=_ensure_timeout(owner, "timeout", raw.get("timeout")),
        continue_on_error=_ensure_bool(owner, "continue_on_error", raw.get("continue_on_error")),
        hidden=_ensure_bool(owner, "hidden", raw.get("hidden")),
        description=description,
    )


def parse_config(raw: Any) -> RunConfig:
    if not isinstance(raw, dict):
        raise ConfigError("config root must be a mapping")
    if any(not isinstance(key, str) for key in raw):
        raise ConfigError("config root keys must be strings")
    unknown_root = set(raw.keys()) - _ALLOWED_ROOT_KEYS
    if unknown_root:
        raise ConfigError(f"config contains unknown fields: {sorted(unknown_root)}")

    raw_tasks = raw.get("tasks")
    if not isinstance(raw_tasks, dict):
        raise ConfigError("config.tasks must be a mapping of task name to task")

    tasks = {name: _parse_task(name, task) for name, task in raw_tasks.items()}
    return RunConfig(
        tasks=tasks,
        env=_ensure_env("config", raw.get("env")),
        default_timeout_sec=_ensure_timeout("config", "default_timeout", raw.get("default_timeout")),
        default_working_dir=_ensure_optional_str(
            "config", "default_working_dir", raw.get("default_working_dir")
        ),
    )


def validate_config(config: RunConfig) -> None:
    for name, task in config.tasks.items():
        if not task.commands and not task.dependencies:
            raise ConfigError(f"Task '{name}' has no commands and no dependencies")

    deps = config.dependency_map()
    assert_acyclic(deps)
    assert_dependencies_exist(deps)


def _parse_json(content: str) -> Any:
    return json.loads(content)


def _parse_toml(content: str) -> Any:
    return tomllib.loads(content)


_PARSERS: dict[str, tuple[Callable[[str], Any], tuple[type[Exception], ...]]] = {
    ".json": (_parse_json, (json.JSONDecodeError,)),
    ".yaml": (yaml.safe_load, (yaml.YAMLError,)),
    ".yml": (yaml.safe_load, (yaml.YAMLError,)),
    ".toml": (_parse_toml, (tomllib.TOMLDecodeError,)),
}


def find_default_config(directory: Path) -> Path:
    for name in DEFAULT_CONFIG_NAMES:
        candidate = directory / name
        if candidate.is_file():
            return candidate
    raise ConfigNotFoundError(
        f"Configuration file not found in {directory} (looked for {', '.join(DEFAULT_CONFIG_NAMES)})"
    )


def load_config(path: Path) -> RunConfig:
    """Load, parse and validate a task configuration file."""
    parser = _PARSERS.get(path.suffix.lower())
    if parser is None:
        raise ConfigError(
            f"unsupported config format: {path.suffix or '(none)'}; "
            "use .json, .yaml, .yml, or .toml"
        )
    parse, parse_errors = parser

    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigNotFoundError(f"Configuration file not found: {path}") from exc
    except UnicodeError as exc:
        raise ConfigError(f"failed to decode config file as utf-8: {path}") from exc
    except OSError as exc:
        raise ConfigError(f"failed to read config file: {path}") from exc

    try:
        raw = parse(content)
    except parse_errors as exc:
        raise ConfigError(f"Failed to parse configuration file {path}: {exc}") from exc

    config = parse_config(raw)
    validate_config(config)
    logger.debug("loaded %d tasks from %s", len(config.tasks), path)
    return config
