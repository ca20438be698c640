"""Error taxonomy for the DNAtax pipeline; each error carries its process exit code."""
from typing import Optional

from constants import (
    EXIT_AMBIGUOUS_LIBRARY,
    EXIT_CONFIG,
    EXIT_ENVIRONMENT,
    EXIT_INVALID_INVOCATION,
    EXIT_MISSING_DATABASE,
    EXIT_MISSING_HELPER,
    EXIT_MISSING_RESULT,
    EXIT_MISSING_TOOL,
    EXIT_MIXED_LIBRARY,
    EXIT_STAGE_FAILED,
    EXIT_TIMELOG,
    EXIT_UNRESOLVED_LAYOUT,
)


class PipelineError(Exception):
    """Base exception for all fatal pipeline errors."""

    exit_code = EXIT_STAGE_FAILED

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.stage = stage


class ConfigError(PipelineError):
    """Raised for missing or invalid run parameters."""

    exit_code = EXIT_CONFIG


class WorkspaceError(ConfigError):
    """Raised when a workspace path exists but is not a directory."""


class AmbiguousLibraryError(PipelineError):
    """Raised when a sample's reads are neither clearly single nor paired."""

    exit_code = EXIT_AMBIGUOUS_LIBRARY


class MixedLibraryError(PipelineError):
    """Raised when a run mixes single-end and paired-end samples."""

    exit_code = EXIT_MIXED_LIBRARY


class MissingDatabaseError(PipelineError):
    """Raised when no usable DIAMOND database is configured and downloads are off."""

    exit_code = EXIT_MISSING_DATABASE


class MissingDependencyError(PipelineError):
    """Raised when a mandatory helper script cannot be located."""

    exit_code = EXIT_MISSING_HELPER


class MissingToolError(PipelineError):
    """Raised when an external tool is not on the PATH."""

    exit_code = EXIT_MISSING_TOOL


class MissingResultError(PipelineError):
    """Raised when a stage needs an output an earlier stage did not produce."""

    exit_code = EXIT_MISSING_RESULT


class UnresolvedLayoutError(PipelineError):
    """Raised when the library layout is still unknown where it is required."""

    exit_code = EXIT_UNRESOLVED_LAYOUT


class InvalidInvocationError(PipelineError):
    """Raised for an unsupported invocation type."""

    exit_code = EXIT_INVALID_INVOCATION


class EnvironmentActivationError(PipelineError):
    """Raised when the required software environment is not active."""

    exit_code = EXIT_ENVIRONMENT


class TimelogError(PipelineError):
    """Raised when the run's timelog cannot be written."""

    exit_code = EXIT_TIMELOG


class StageFailedError(PipelineError):
    """Raised when a stage's external tool exits non-zero under the abort policy."""

    exit_code = EXIT_STAGE_FAILED

    def __init__(self, stage: str, exit_status: int):
        super().__init__(f"Stage {stage} failed with exit status {exit_status}", stage=stage)
        self.exit_status = exit_status
