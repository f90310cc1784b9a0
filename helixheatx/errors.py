"""
HelixHeatX - Exceptions

All failures raised by the generator derive from HelixHeatXError.
Empty boolean operands are not errors and never raise.
"""


class HelixHeatXError(Exception):
    """Base class for generator errors."""


class InvalidGeometryParameter(HelixHeatXError, ValueError):
    """Degenerate geometric input (negative radius, zero-length axis, ...)."""


class ConfigError(HelixHeatXError):
    """Malformed or unknown parameter file content."""


class BuildCancelled(HelixHeatXError):
    """Raised from a cancellation check once the build has been cancelled."""


class TaskGraphError(HelixHeatXError):
    """Cycle, duplicate node or missing dependency in a task graph."""
