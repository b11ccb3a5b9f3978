"""Error taxonomy shared by the core modules.

Every error raised on purpose by the console derives from WgfOpsError so the
CLI can tell an expected, operator-facing failure apart from a bug.
"""

from __future__ import annotations


class WgfOpsError(RuntimeError):
    """Base class for expected console failures."""


class ConfigError(WgfOpsError):
    """Raised when the env file is missing or incomplete."""

    def __init__(self, message: str, missing: list[str] | None = None):
        super().__init__(message)
        self.missing = missing or []


class ToolingUnavailable(WgfOpsError):
    """Raised when the kubectl executable cannot be found."""


class ClusterCommandFailed(WgfOpsError):
    """Raised when a kubectl invocation exits non-zero."""

    def __init__(self, message: str, diagnostics: str = ""):
        super().__init__(message)
        self.diagnostics = diagnostics


class SubmissionFailed(ClusterCommandFailed):
    """Raised when a Job manifest could not be applied."""


class TunnelError(WgfOpsError):
    """Base class for port-forward failures."""


class TunnelSetupFailed(TunnelError):
    """Raised when the port-forward process exits before the port is ready."""

    def __init__(self, message: str, diagnostics: str = ""):
        super().__init__(message)
        self.diagnostics = diagnostics


class TunnelTimeout(TunnelError):
    """Raised when the local port never accepts connections."""
