from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    OK = 0
    CONFIG_ERROR = 2
    MANIFEST_ERROR = 3
    RENDER_ERROR = 4
    RUNTIME_ERROR = 5


class GraphToolError(Exception):
    """Base error for the topology graph tool."""


class ConfigError(GraphToolError):
    """Raised for configuration or argument issues."""


class ManifestError(GraphToolError):
    """Raised when a resource manifest cannot be read or mapped to a resource."""


class RenderError(GraphToolError):
    """Raised when the Graphviz backend fails to render a diagram."""


class ExportError(GraphToolError):
    """Raised when writing graph artifacts fails."""


def as_exit_code(exc: BaseException) -> int:
    if isinstance(exc, (ConfigError, ValueError)):
        return int(ExitCode.CONFIG_ERROR)
    if isinstance(exc, ManifestError):
        return int(ExitCode.MANIFEST_ERROR)
    if isinstance(exc, RenderError):
        return int(ExitCode.RENDER_ERROR)
    if isinstance(exc, (ExportError, GraphToolError, OSError)):
        return int(ExitCode.RUNTIME_ERROR)
    return 1
