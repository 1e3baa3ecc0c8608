"""
Exception types raised by the GridLife core.

Only programmer errors raise: bad construction arguments and corrupt
serialized policies. Nothing that can happen inside a tick (deaths,
extinction, perception off the edge of the grid) is an error.
"""


class GridLifeError(Exception):
    """Base class for all GridLife errors."""


class ConfigurationError(GridLifeError, ValueError):
    """Invalid or mismatched sizes/arguments at construction time."""


class DeserializationError(GridLifeError, ValueError):
    """Malformed or architecturally incompatible serialized policy data."""
