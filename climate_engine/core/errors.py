"""
Climate Engine — Exceptions
Failure types raised by the core, its components and value types.
"""


class ClimateEngineError(Exception):
    """Base class for every failure raised by the engine."""
    pass


# =============================================================================
# VALUE ERRORS
# =============================================================================

class UnitMismatchError(ClimateEngineError, ValueError):
    """Arithmetic or conversion between incompatible units."""
    pass


class UnknownUnitError(ClimateEngineError, ValueError):
    """A unit name that does not map to any known unit."""
    pass


class NegativePoolError(ClimateEngineError, ValueError):
    """A withdrawal larger than the contents of a pool."""
    pass


class InvalidFlowError(ClimateEngineError, ValueError):
    """A negative flow or a source attribution that does not add up."""
    pass


class MissingDataError(ClimateEngineError, KeyError):
    """Lookup of a time series date that was never set."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the message readable
        return str(self.args[0]) if self.args else ""


class InvalidMessageError(ClimateEngineError, ValueError):
    """A message envelope that a handler cannot accept."""
    pass


# =============================================================================
# ROUTING ERRORS
# =============================================================================

class UnknownCapabilityError(ClimateEngineError, LookupError):
    """No component declares the requested capability."""
    pass


class AmbiguousCapabilityError(ClimateEngineError, ValueError):
    """More than one component declares the same capability."""
    pass


class DuplicateComponentError(ClimateEngineError, ValueError):
    """Two components registered under the same name."""
    pass


class BiomeError(ClimateEngineError, ValueError):
    """Unknown or duplicate biome name."""
    pass


# =============================================================================
# LIFECYCLE ERRORS
# =============================================================================

class LifecycleError(ClimateEngineError, RuntimeError):
    """An operation called in a lifecycle state that does not allow it."""
    pass


class InstanceInvalidError(ClimateEngineError, RuntimeError):
    """Operation on a core that was shut down or never existed."""
    pass


class SpinupDivergenceError(ClimateEngineError, RuntimeError):
    """Spin-up did not stabilize within its step budget."""
    pass


class UnsupportedResetError(ClimateEngineError, ValueError):
    """The requested reset date cannot be reconstructed."""
    pass


__all__ = [
    "ClimateEngineError",
    "UnitMismatchError",
    "UnknownUnitError",
    "NegativePoolError",
    "MissingDataError",
    "InvalidMessageError",
    "UnknownCapabilityError",
    "AmbiguousCapabilityError",
    "DuplicateComponentError",
    "BiomeError",
    "LifecycleError",
    "InstanceInvalidError",
    "SpinupDivergenceError",
    "UnsupportedResetError",
]
