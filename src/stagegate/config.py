"""Load and validate the repository's ``stagegate.yaml`` configuration."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]
from jsonschema.validators import Draft202012Validator

from stagegate.errors import (
    CONFIG_REASON_PARSE_ERROR,
    CONFIG_REASON_SCHEMA_INVALID,
    ConfigError,
)

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "stagegate.yaml"

# Keep this literal deterministic and sorted in write path.
DEFAULT_CONFIG_TEMPLATE: dict[str, Any] = {
    "source_extensions": [".c", ".cpp", ".h", ".hpp"],
    "hook_excludes": [".githooks/*", CONFIG_FILENAME],
    "shell_scripts": [".githooks/pre-commit", "scripts/setup.sh"],
    "dictionary": ".aspell.en.pws",
    "dictionary_header": "personal_ws-1.1",
    "style_config": ".clang-format",
    "protected_manifest": ".protected.sha256",
    "dangerous_functions": ["strcpy", "strcat", "sprintf", "vsprintf", "gets"],
    "secure_coding_url": "https://wiki.sei.cmu.edu/confluence/display/c/STR07-C.+Use+the+bounds-checking+interfaces+for+string+manipulation",
    "format_scanner": {
        "path": "tools/fmtscan/fmtscan",
        "build": ["make", "-C", "tools/fmtscan"],
        "skip_platforms": ["darwin"],
    },
    "static_analysis": {
        "enable": ["warning", "style", "performance", "portability"],
        "suppressions": [
            "missingIncludeSystem",
            "unusedFunction",
            "checkersReport",
        ],
        "file_suppressions": [],
        "extra_args": [],
    },
    "tool_timeout": 300,
    "jobs": 1,
    "disabled_stages": [],
}

_STRING_LIST = {"type": "array", "items": {"type": "string"}}

CONFIG_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "source_extensions": {"type": "array", "items": {"type": "string", "pattern": r"^\.[A-Za-z0-9_+-]+$"}},
        "hook_excludes": _STRING_LIST,
        "shell_scripts": _STRING_LIST,
        "dictionary": {"type": "string", "minLength": 1},
        "dictionary_header": {"type": "string"},
        "style_config": {"type": "string", "minLength": 1},
        "protected_manifest": {"type": "string", "minLength": 1},
        "dangerous_functions": {"type": "array", "items": {"type": "string", "pattern": r"^[A-Za-z_][A-Za-z0-9_]*$"}},
        "secure_coding_url": {"type": "string"},
        "format_scanner": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "path": {"type": "string", "minLength": 1},
                "build": _STRING_LIST,
                "skip_platforms": _STRING_LIST,
            },
        },
        "static_analysis": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "enable": _STRING_LIST,
                "suppressions": _STRING_LIST,
                "file_suppressions": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "additionalProperties": False,
                        "required": ["key", "path"],
                        "properties": {
                            "key": {"type": "string", "minLength": 1},
                            "path": {"type": "string", "minLength": 1},
                        },
                    },
                },
                "extra_args": _STRING_LIST,
            },
        },
        "tool_timeout": {"type": "number", "exclusiveMinimum": 0},
        "jobs": {"type": "integer", "minimum": 1},
        "disabled_stages": _STRING_LIST,
    },
}


@dataclass(frozen=True)
class FormatScannerConfig:
    """Where the format-string scanner lives and how to build it."""

    path: str
    build: tuple[str, ...]
    skip_platforms: tuple[str, ...]


@dataclass(frozen=True)
class StaticAnalysisConfig:
    """Analyzer checks and the fixed suppression catalog."""

    enable: tuple[str, ...]
    suppressions: tuple[str, ...]
    file_suppressions: tuple[tuple[str, str], ...]
    extra_args: tuple[str, ...] = ()


@dataclass(frozen=True)
class GateConfig:
    """Normalized pipeline configuration."""

    source_extensions: tuple[str, ...]
    hook_excludes: tuple[str, ...]
    shell_scripts: tuple[str, ...]
    dictionary: str
    dictionary_header: str
    style_config: str
    protected_manifest: str
    dangerous_functions: tuple[str, ...]
    secure_coding_url: str
    format_scanner: FormatScannerConfig
    static_analysis: StaticAnalysisConfig
    tool_timeout: float
    jobs: int
    disabled_stages: frozenset[str] = field(default_factory=frozenset)
    path: Path | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: Path | None = None) -> GateConfig:
        """Validate a config mapping and merge it over the defaults."""
        errors = sorted(Draft202012Validator(CONFIG_SCHEMA).iter_errors(data), key=lambda e: list(e.path))
        if errors:
            rendered = "; ".join(
                f"{'.'.join(str(p) for p in e.path)}: {e.message}" if e.path else e.message
                for e in errors
            )
            raise ConfigError(f"invalid configuration: {rendered}", CONFIG_REASON_SCHEMA_INVALID)

        merged = {**DEFAULT_CONFIG_TEMPLATE, **data}
        scanner = {**DEFAULT_CONFIG_TEMPLATE["format_scanner"], **data.get("format_scanner", {})}
        analysis = {**DEFAULT_CONFIG_TEMPLATE["static_analysis"], **data.get("static_analysis", {})}

        return cls(
            source_extensions=tuple(_dedupe(e.lower() for e in merged["source_extensions"])),
            hook_excludes=tuple(merged["hook_excludes"]),
            shell_scripts=tuple(_dedupe(merged["shell_scripts"])),
            dictionary=merged["dictionary"],
            dictionary_header=merged["dictionary_header"],
            style_config=merged["style_config"],
            protected_manifest=merged["protected_manifest"],
            dangerous_functions=tuple(_dedupe(merged["dangerous_functions"])),
            secure_coding_url=merged["secure_coding_url"],
            format_scanner=FormatScannerConfig(
                path=scanner["path"],
                build=tuple(scanner["build"]),
                skip_platforms=tuple(p.lower() for p in scanner["skip_platforms"]),
            ),
            static_analysis=StaticAnalysisConfig(
                enable=tuple(analysis["enable"]),
                suppressions=tuple(_dedupe(analysis["suppressions"])),
                file_suppressions=tuple(
                    (entry["key"], entry["path"]) for entry in analysis["file_suppressions"]
                ),
                extra_args=tuple(analysis["extra_args"]),
            ),
            tool_timeout=float(merged["tool_timeout"]),
            jobs=int(merged["jobs"]),
            disabled_stages=frozenset(merged["disabled_stages"]),
            path=path,
        )


def _dedupe(items) -> list[str]:
    """Drop repeats while preserving declaration order."""
    seen: set[str] = set()
    out: list[str] = []
    for item in items:
        if item not in seen:
            seen.add(item)
            out.append(item)
    return out


def config_path_for_repo(repo_root: Path) -> Path:
    return repo_root.resolve() / CONFIG_FILENAME


def default_config() -> GateConfig:
    return GateConfig.from_dict({})


def load_config(repo_root: Path) -> GateConfig:
    """Load ``stagegate.yaml`` from the repo root, or defaults when absent.

    Raises:
        ConfigError: If the file is not valid YAML or fails schema validation.
    """
    path = config_path_for_repo(repo_root)
    if not path.exists():
        logger.debug("no %s at %s; using defaults", CONFIG_FILENAME, repo_root)
        return default_config()

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"{CONFIG_FILENAME} parse error: {exc}", CONFIG_REASON_PARSE_ERROR) from exc
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(
            f"{CONFIG_FILENAME} parse error: expected mapping at top level",
            CONFIG_REASON_PARSE_ERROR,
        )
    return GateConfig.from_dict(raw, path=path)


def write_default_config(repo_root: Path, *, force: bool = False) -> Path:
    """Create the default config file deterministically."""
    output_path = config_path_for_repo(repo_root)
    if output_path.exists() and not force:
        raise FileExistsError(f"Config file already exists: {output_path}")
    rendered = yaml.safe_dump(DEFAULT_CONFIG_TEMPLATE, sort_keys=True)
    output_path.write_text(rendered, encoding="utf-8")
    return output_path
