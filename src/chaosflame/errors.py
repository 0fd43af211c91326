"""
Error taxonomy for the chaosflame engine.

Configuration and collective-protocol errors are fatal and propagate to the
caller. Numeric degeneracies are recovered per point by the sampler.
"""


class FlameError(Exception):
    """Base class for every error raised by chaosflame."""


class ConfigurationError(FlameError, ValueError):
    """Invalid transform set, transform or run configuration."""


class NumericDegeneracy(FlameError, ArithmeticError):
    """A variation produced a non-finite point."""


class SerializationError(FlameError):
    """Malformed or truncated histogram payload."""


class CollectiveStallError(FlameError, TimeoutError):
    """A worker did not arrive at a collective exchange in time, or aborted."""


class DegenerateBoundsWarning(UserWarning):
    """Orbit collapsed to a single value on an axis during normalization."""
