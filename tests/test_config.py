import tomllib
from pathlib import Path

import pytest

from ralph import __version__
from ralph.config import ConfigKey, RalphConfig, dumps_toml, load_config, save_config
from ralph.errors import ConfigError


def test_config_roundtrip(tmp_path: Path) -> None:
    config_path = tmp_path / "nested" / "config.toml"
    config = RalphConfig.default()
    config.default_tool = "claude"
    config.max_iterations = 25
    config.auto_archive = False

    save_config(config_path, config)
    loaded = load_config(config_path)

    assert loaded.default_tool == "claude"
    assert loaded.max_iterations == 25
    assert loaded.auto_archive is False


def test_missing_config_file_uses_defaults(tmp_path: Path) -> None:
    loaded = load_config(tmp_path / "absent.toml")

    assert loaded.default_tool is None
    assert loaded.max_iterations == 10
    assert loaded.auto_archive is True


def test_toml_dump_omits_unset_keys() -> None:
    rendered = dumps_toml(RalphConfig.default())

    assert "default_tool" not in rendered
    assert "max_iterations = 10" in rendered
    assert "auto_archive = true" in rendered


def test_malformed_config_raises_config_error(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text("max_iterations = [", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(config_path)


def test_wrong_value_types_are_rejected(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_text('max_iterations = "ten"\n', encoding="utf-8")

    with pytest.raises(ConfigError, match="max_iterations"):
        load_config(config_path)


def test_set_and_get_validate_values() -> None:
    config = RalphConfig.default()

    config.set(ConfigKey.MAX_ITERATIONS, "7")
    config.set(ConfigKey.AUTO_ARCHIVE, "FALSE")
    config.set(ConfigKey.DEFAULT_TOOL, " amp ")

    assert config.get(ConfigKey.MAX_ITERATIONS) == "7"
    assert config.get(ConfigKey.AUTO_ARCHIVE) == "false"
    assert config.get(ConfigKey.DEFAULT_TOOL) == "amp"

    with pytest.raises(ConfigError):
        config.set(ConfigKey.MAX_ITERATIONS, "0")
    with pytest.raises(ConfigError):
        config.set(ConfigKey.MAX_ITERATIONS, "many")
    with pytest.raises(ConfigError):
        config.set(ConfigKey.AUTO_ARCHIVE, "yes")


def test_unknown_config_key() -> None:
    assert ConfigKey.parse("default_tool") is ConfigKey.DEFAULT_TOOL
    with pytest.raises(ConfigError, match="Unknown config key"):
        ConfigKey.parse("colour")


def test_package_version_constant_matches_pyproject() -> None:
    project_root = Path(__file__).resolve().parents[1]
    pyproject = tomllib.loads((project_root / "pyproject.toml").read_text(encoding="utf-8"))

    assert __version__ == pyproject["project"]["version"]


def test_config_with_invalid_utf8_raises_config_error(tmp_path: Path) -> None:
    config_path = tmp_path / "config.toml"
    config_path.write_bytes(b'default_tool = "\xff"\n')

    with pytest.raises(ConfigError, match="Failed to read config"):
        load_config(config_path)


def test_unwritable_config_raises_config_error(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")

    with pytest.raises(ConfigError, match="Failed to write config"):
        save_config(blocker / "config.toml", RalphConfig.default())
