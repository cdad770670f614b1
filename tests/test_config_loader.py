from __future__ import annotations

import json
from pathlib import Path

import pytest

from taskrun.config.loader import find_default_config, load_config, parse_config, validate_config
from taskrun.config.schema import RunConfig, TaskSpec
from taskrun.util.errors import (
    CircularDependencyError,
    ConfigError,
    ConfigNotFoundError,
    DependencyNotFoundError,
    TaskNotFoundError,
)


def _write(path: Path, body: str) -> Path:
    path.write_text(body.strip() + "\n", encoding="utf-8")
    return path


def test_load_config_parses_full_yaml_task_fields(tmp_path: Path) -> None:
    config_path = _write(
        tmp_path / "task-runner.yaml",
        """
env:
  GLOBAL: "1"
default_timeout: 30
default_working_dir: "$HOME/work"
tasks:
  lint:
    description: "Run the linter"
    commands: ["ruff check ."]
  build:
    commands: ["make build", "make package"]
    dependencies: ["lint"]
    env: {"KEY": "VALUE"}
    parallel: true
    working_dir: "./build"
    timeout: 1.5
    continue_on_error: true
    hidden: true
""",
    )

    config = load_config(config_path)
    assert list(config.tasks) == ["lint", "build"]
    assert config.env == {"GLOBAL": "1"}
    assert config.default_timeout_sec == 30.0
    assert config.default_working_dir == "$HOME/work"

    build = config.tasks["build"]
    assert build.name == "build"
    assert build.commands == ["make build", "make package"]
    assert build.dependencies == ["lint"]
    assert build.env == {"KEY": "VALUE"}
    assert build.mode == "parallel"
    assert build.working_dir == "./build"
    assert build.timeout_sec == 1.5
    assert build.continue_on_error is True
    assert build.hidden is True

    lint = config.tasks["lint"]
    assert lint.description == "Run the linter"
    assert lint.mode == "auto"
    assert lint.timeout_sec is None
    assert config.effective_timeout(lint) == 30.0
    assert config.effective_working_dir(lint) == "$HOME/work"
    assert config.visible_tasks() == ["lint"]


def test_load_config_parses_json(tmp_path: Path) -> None:
    config_path = tmp_path / "task-runner.json"
    config_path.write_text(
        json.dumps(
            {
                "tasks": {
                    "a": {"commands": ["echo a"]},
                    "b": {"commands": ["echo b"], "dependencies": ["a"], "sequential": True},
                }
            }
        ),
        encoding="utf-8",
    )

    config = load_config(config_path)
    assert config.tasks["b"].mode == "sequential"
    assert config.tasks["b"].dependencies == ["a"]


def test_load_config_parses_toml(tmp_path: Path) -> None:
    config_path = _write(
        tmp_path / "task-runner.toml",
        """
default_timeout = 10

[env]
CI = "true"

[tasks.test]
commands = ["pytest -q"]
timeout = 5

[tasks.all]
commands = []
dependencies = ["test"]
""",
    )

    config = load_config(config_path)
    assert config.env == {"CI": "true"}
    assert config.tasks["test"].timeout_sec == 5.0
    assert config.tasks["all"].is_orchestrator


def test_load_config_rejects_unsupported_extension(tmp_path: Path) -> None:
    config_path = _write(tmp_path / "tasks.ini", "[tasks]")
    with pytest.raises(ConfigError, match="unsupported config format"):
        load_config(config_path)


def test_load_config_missing_file_raises_not_found(tmp_path: Path) -> None:
    with pytest.raises(ConfigNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_load_config_rejects_invalid_yaml_syntax(tmp_path: Path) -> None:
    config_path = _write(tmp_path / "bad.yaml", "tasks: [")
    with pytest.raises(ConfigError, match="Failed to parse configuration file"):
        load_config(config_path)


def test_load_config_rejects_invalid_json_syntax(tmp_path: Path) -> None:
    config_path = _write(tmp_path / "bad.json", '{"tasks": ')
    with pytest.raises(ConfigError, match="Failed to parse configuration file"):
        load_config(config_path)


def test_load_config_rejects_non_utf8_file(tmp_path: Path) -> None:
    config_path = tmp_path / "bad_encoding.yaml"
    config_path.write_bytes(b"\xff\xfe\xfd")
    with pytest.raises(ConfigError, match="failed to decode config file as utf-8"):
        load_config(config_path)


def test_load_config_rejects_parallel_and_sequential(tmp_path: Path) -> None:
    config_path = _write(
        tmp_path / "both.yaml",
        """
tasks:
  t:
    commands: ["echo hi"]
    parallel: true
    sequential: true
""",
    )
    with pytest.raises(ConfigError, match="cannot be both parallel and sequential"):
        load_config(config_path)


def test_load_config_rejects_task_without_commands_or_dependencies(tmp_path: Path) -> None:
    config_path = _write(
        tmp_path / "empty.yaml",
        """
tasks:
  nothing:
    commands: []
""",
    )
    with pytest.raises(ConfigError, match="has no commands and no dependencies"):
        load_config(config_path)


def test_load_config_rejects_circular_dependencies(tmp_path: Path) -> None:
    config_path = _write(
        tmp_path / "cycle.yaml",
        """
tasks:
  a:
    commands: ["echo a"]
    dependencies: ["b"]
  b:
    commands: ["echo b"]
    dependencies: ["a"]
""",
    )
    with pytest.raises(CircularDependencyError):
        load_config(config_path)


def test_load_config_rejects_missing_dependency(tmp_path: Path) -> None:
    config_path = _write(
        tmp_path / "missing.yaml",
        """
tasks:
  a:
    commands: ["echo a"]
    dependencies: ["ghost"]
""",
    )
    with pytest.raises(DependencyNotFoundError, match="Dependency 'ghost' not found for task 'a'"):
        load_config(config_path)


@pytest.mark.parametrize(
    "task_body",
    [
        '{"commands": "echo a"}',
        '{"commands": ["echo a", 1]}',
        '{"commands": ["echo a"], "timeout": 0}',
        '{"commands": ["echo a"], "timeout": true}',
        '{"commands": ["echo a"], "env": {"A": 1}}',
        '{"commands": ["echo a"], "hidden": "yes"}',
        '{"commands": ["echo a"], "retries": 3}',
        '{"commands": ["echo a"], "working_dir": ""}',
    ],
)
def test_parse_config_rejects_malformed_task_fields(task_body: str) -> None:
    raw = json.loads(f'{{"tasks": {{"t": {task_body}}}}}')
    with pytest.raises(ConfigError):
        parse_config(raw)


def test_parse_config_rejects_unknown_root_fields() -> None:
    with pytest.raises(ConfigError, match="unknown fields"):
        parse_config({"tasks": {}, "plugins": []})


def test_parse_config_requires_tasks_mapping() -> None:
    with pytest.raises(ConfigError, match="config.tasks"):
        parse_config({"tasks": ["a", "b"]})


def test_validate_config_accepts_orchestrator_task() -> None:
    config = RunConfig(
        tasks={
            "a": TaskSpec(name="a", commands=["echo a"]),
            "all": TaskSpec(name="all", dependencies=["a"]),
        }
    )
    validate_config(config)


def test_find_default_config_prefers_json_then_yaml(tmp_path: Path) -> None:
    _write(tmp_path / "task-runner.toml", "[tasks]")
    _write(tmp_path / "task-runner.yaml", "tasks: {}")
    assert find_default_config(tmp_path) == tmp_path / "task-runner.yaml"
    _write(tmp_path / "task-runner.json", '{"tasks": {}}')
    assert find_default_config(tmp_path) == tmp_path / "task-runner.json"


def test_find_default_config_raises_when_nothing_found(tmp_path: Path) -> None:
    with pytest.raises(ConfigNotFoundError):
        find_default_config(tmp_path)


def test_get_task_raises_task_not_found() -> None:
    config = RunConfig(tasks={"a": TaskSpec(name="a", commands=["echo a"])})
    with pytest.raises(TaskNotFoundError, match="Task 'b' not found"):
        config.get_task("b")
