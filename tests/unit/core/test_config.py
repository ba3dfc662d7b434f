"""Tests for stagegate.yaml loading and validation."""

from pathlib import Path

import pytest
import yaml

from stagegate.config import (
    CONFIG_FILENAME,
    DEFAULT_CONFIG_TEMPLATE,
    GateConfig,
    default_config,
    load_config,
    write_default_config,
)
from stagegate.errors import CONFIG_REASON_PARSE_ERROR, CONFIG_REASON_SCHEMA_INVALID, ConfigError


def test_missing_file_yields_defaults(tmp_path: Path):
    config = load_config(tmp_path)

    assert config == default_config()
    assert config.source_extensions == (".c", ".cpp", ".h", ".hpp")
    assert config.path is None


def test_overrides_merge_over_defaults(tmp_path: Path):
    (tmp_path / CONFIG_FILENAME).write_text(
        "source_extensions: ['.C', '.cc', '.cc']\n"
        "jobs: 4\n"
        "static_analysis:\n"
        "  file_suppressions:\n"
        "    - {key: knownConditionTrueFalse, path: src/a.c}\n"
    )

    config = load_config(tmp_path)

    assert config.source_extensions == (".c", ".cc")
    assert config.jobs == 4
    assert config.static_analysis.file_suppressions == (("knownConditionTrueFalse", "src/a.c"),)
    # untouched nested keys keep defaults
    assert config.static_analysis.suppressions == tuple(DEFAULT_CONFIG_TEMPLATE["static_analysis"]["suppressions"])
    assert config.format_scanner.skip_platforms == ("darwin",)
    assert config.path == tmp_path.resolve() / CONFIG_FILENAME


def test_empty_file_is_defaults(tmp_path: Path):
    (tmp_path / CONFIG_FILENAME).write_text("")
    assert load_config(tmp_path).jobs == 1


def test_unknown_key_is_schema_error():
    with pytest.raises(ConfigError) as excinfo:
        GateConfig.from_dict({"colour": True})
    assert excinfo.value.reason_code == CONFIG_REASON_SCHEMA_INVALID


def test_invalid_jobs_reports_path():
    with pytest.raises(ConfigError, match="jobs"):
        GateConfig.from_dict({"jobs": 0})


def test_invalid_function_name_rejected():
    with pytest.raises(ConfigError):
        GateConfig.from_dict({"dangerous_functions": ["str cpy"]})


def test_yaml_parse_error(tmp_path: Path):
    (tmp_path / CONFIG_FILENAME).write_text("jobs: [1, 2\n")
    with pytest.raises(ConfigError) as excinfo:
        load_config(tmp_path)
    assert excinfo.value.reason_code == CONFIG_REASON_PARSE_ERROR


def test_top_level_must_be_mapping(tmp_path: Path):
    (tmp_path / CONFIG_FILENAME).write_text("- a\n- b\n")
    with pytest.raises(ConfigError, match="mapping"):
        load_config(tmp_path)


def test_write_default_config_round_trips(tmp_path: Path):
    path = write_default_config(tmp_path)

    assert yaml.safe_load(path.read_text()) == DEFAULT_CONFIG_TEMPLATE
    assert load_config(tmp_path).dangerous_functions == default_config().dangerous_functions


def test_write_default_config_refuses_overwrite(tmp_path: Path):
    write_default_config(tmp_path)
    with pytest.raises(FileExistsError):
        write_default_config(tmp_path)
    write_default_config(tmp_path, force=True)


def test_disabled_stages_is_a_set():
    config = GateConfig.from_dict({"disabled_stages": ["style", "style"]})
    assert config.disabled_stages == frozenset({"style"})
