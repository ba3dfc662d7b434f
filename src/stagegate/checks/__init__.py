"""Check stages and their fixed execution order."""

from stagegate.checks.base import GIT, CheckStage, StageContext
from stagegate.checks.binary import BinaryContentCheck
from stagegate.checks.conflicts import ConflictMarkerCheck
from stagegate.checks.dangerous import DangerousFunctionCheck
from stagegate.checks.dictionary import DictionarySanityCheck
from stagegate.checks.format_strings import FormatStringCheck
from stagegate.checks.paths import NonAsciiPathCheck, check_workspace_path
from stagegate.checks.protected import ProtectedFileCheck
from stagegate.checks.shell_syntax import ShellSyntaxCheck
from stagegate.checks.static_analysis import StaticAnalysisCheck
from stagegate.checks.style import StyleConformanceCheck
from stagegate.config import GateConfig

__all__ = [
    "GIT",
    "BinaryContentCheck",
    "CheckStage",
    "ConflictMarkerCheck",
    "DangerousFunctionCheck",
    "DictionarySanityCheck",
    "FormatStringCheck",
    "NonAsciiPathCheck",
    "ProtectedFileCheck",
    "ShellSyntaxCheck",
    "StageContext",
    "StaticAnalysisCheck",
    "StyleConformanceCheck",
    "check_workspace_path",
    "default_stages",
    "stage_names",
]


def default_stages(config: GateConfig | None = None) -> list[CheckStage]:
    """Stages in execution order, minus any disabled in config."""
    stages: list[CheckStage] = [
        ConflictMarkerCheck(),
        StyleConformanceCheck(),
        ShellSyntaxCheck(),
        DictionarySanityCheck(),
        BinaryContentCheck(),
        NonAsciiPathCheck(),
        ProtectedFileCheck(),
        DangerousFunctionCheck(),
        FormatStringCheck(),
        StaticAnalysisCheck(),
    ]
    disabled = config.disabled_stages if config is not None else frozenset()
    return [stage for stage in stages if stage.name not in disabled]


def stage_names() -> list[str]:
    return [stage.name for stage in default_stages()]
