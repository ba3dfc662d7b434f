"""Error taxonomy for the verification pipeline."""

from __future__ import annotations

from stagegate.exec import ExecResult

REASON_STAGING_UNREADABLE = "STAGING_UNREADABLE"
REASON_TOOL_MISSING = "TOOL_MISSING"
REASON_TOOL_VERSION = "TOOL_VERSION"
REASON_RESOURCE_MISSING = "RESOURCE_MISSING"
REASON_RESOURCE_INVALID = "RESOURCE_INVALID"
REASON_WORKSPACE_PATH = "WORKSPACE_PATH"
REASON_SCANNER_BUILD = "SCANNER_BUILD"
REASON_MANIFEST_INVALID = "MANIFEST_INVALID"


class GateEnvironmentError(RuntimeError):
    """A required tool or resource is missing, malformed, or too old.

    Always fatal: the pipeline stops and reports the remediation hint.
    """

    reason_code: str
    remediation: str

    def __init__(self, message: str, reason_code: str, remediation: str = "") -> None:
        super().__init__(message)
        self.reason_code = reason_code
        self.remediation = remediation


class StageExecutionError(RuntimeError):
    """An external tool crashed or returned a status unrelated to its input."""

    def __init__(self, stage: str, message: str, result: ExecResult | None = None) -> None:
        super().__init__(f"{stage}: {message}")
        self.stage = stage
        self.result = result


class ToolTimeoutError(StageExecutionError):
    """An external tool did not finish within the configured timeout."""


CONFIG_REASON_PARSE_ERROR = "CONFIG_PARSE_ERROR"
CONFIG_REASON_SCHEMA_INVALID = "CONFIG_SCHEMA_INVALID"


class ConfigError(ValueError):
    """Repository configuration validation error."""

    reason_code: str

    def __init__(self, message: str, reason_code: str = CONFIG_REASON_SCHEMA_INVALID) -> None:
        super().__init__(message)
        self.reason_code = reason_code
