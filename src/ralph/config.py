from __future__ import annotations

import json
import tomllib
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import click

from ralph.errors import ConfigError

APP_NAME = "ralph"
CONFIG_FILE_NAME = "config.toml"
DEFAULT_MAX_ITERATIONS = 10


class ConfigKey(str, Enum):
    DEFAULT_TOOL = "default_tool"
    MAX_ITERATIONS = "max_iterations"
    AUTO_ARCHIVE = "auto_archive"

    @property
    def description(self) -> str:
        descriptions = {
            ConfigKey.DEFAULT_TOOL: "Default AI tool (amp, claude, codebuddy)",
            ConfigKey.MAX_ITERATIONS: "Default maximum iterations for task execution",
            ConfigKey.AUTO_ARCHIVE: "Auto archive history on branch switch",
        }
        return descriptions[self]

    @classmethod
    def parse(cls, raw: str) -> ConfigKey:
        try:
            return cls(raw.strip())
        except ValueError as exc:
            raise ConfigError(f"Unknown config key: {raw}") from exc


@dataclass(slots=True)
class RalphConfig:
    default_tool: str | None = None
    max_iterations: int | None = DEFAULT_MAX_ITERATIONS
    auto_archive: bool | None = True

    @classmethod
    def default(cls) -> RalphConfig:
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> RalphConfig:
        unknown = sorted(set(data) - {key.value for key in ConfigKey})
        if unknown:
            raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")

        default_tool = data.get("default_tool")
        if default_tool is not None and not isinstance(default_tool, str):
            raise ConfigError("default_tool must be a string")

        max_iterations = data.get("max_iterations", DEFAULT_MAX_ITERATIONS)
        if max_iterations is not None and (
            isinstance(max_iterations, bool)
            or not isinstance(max_iterations, int)
            or max_iterations < 1
        ):
            raise ConfigError("max_iterations must be a positive integer")

        auto_archive = data.get("auto_archive", True)
        if auto_archive is not None and not isinstance(auto_archive, bool):
            raise ConfigError("auto_archive must be true or false")

        return cls(
            default_tool=default_tool,
            max_iterations=max_iterations,
            auto_archive=auto_archive,
        )

    def to_dict(self) -> dict:
        payload = {
            "default_tool": self.default_tool,
            "max_iterations": self.max_iterations,
            "auto_archive": self.auto_archive,
        }
        return {key: value for key, value in payload.items() if value is not None}

    def get(self, key: ConfigKey) -> str | None:
        if key is ConfigKey.DEFAULT_TOOL:
            return self.default_tool
        if key is ConfigKey.MAX_ITERATIONS:
            return None if self.max_iterations is None else str(self.max_iterations)
        if self.auto_archive is None:
            return None
        return "true" if self.auto_archive else "false"

    def set(self, key: ConfigKey, value: str) -> None:
        if key is ConfigKey.DEFAULT_TOOL:
            if not value.strip():
                raise ConfigError("default_tool must not be empty")
            self.default_tool = value.strip()
            return
        if key is ConfigKey.MAX_ITERATIONS:
            try:
                parsed = int(value.strip())
            except ValueError as exc:
                raise ConfigError("max_iterations must be a positive integer") from exc
            if parsed < 1:
                raise ConfigError("max_iterations must be a positive integer")
            self.max_iterations = parsed
            return
        normalized = value.strip().lower()
        if normalized not in {"true", "false"}:
            raise ConfigError("auto_archive must be true or false")
        self.auto_archive = normalized == "true"


def default_config_path() -> Path:
    return Path(click.get_app_dir(APP_NAME)) / CONFIG_FILE_NAME


def _toml_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    return json.dumps(str(value), ensure_ascii=False)


def dumps_toml(config: RalphConfig) -> str:
    lines = [f"{key} = {_toml_value(value)}" for key, value in config.to_dict().items()]
    return "\n".join(lines) + "\n" if lines else ""


def load_config(path: Path) -> RalphConfig:
    if not path.exists():
        return RalphConfig.default()
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError) as exc:
        raise ConfigError(f"Failed to read config {path}: {exc}") from exc
    return RalphConfig.from_dict(data)


def save_config(path: Path, config: RalphConfig) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(dumps_toml(config), encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Failed to write config {path}: {exc.strerror or exc}") from exc
