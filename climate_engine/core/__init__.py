"""
Climate Engine — Core Module
Value types, tracked pools, the component contract, and the simulation core.
"""

from .errors import (
    ClimateEngineError,
    UnitMismatchError,
    UnknownUnitError,
    NegativePoolError,
    InvalidFlowError,
    MissingDataError,
    InvalidMessageError,
    UnknownCapabilityError,
    AmbiguousCapabilityError,
    DuplicateComponentError,
    BiomeError,
    LifecycleError,
    InstanceInvalidError,
    SpinupDivergenceError,
    UnsupportedResetError,
)
from .units import Unit, UnitVal, UNDEFINED_VALUE, parse_units_name, convert
from .messages import MessageType, MessageData, split_biome
from .timeseries import TimeSeries
from .fluxpool import FluxPool, Flux, TrackingRecord, TrackingReport, transfer
from .component import Component, BiomeComponent, Capability
from .router import MessageRouter, Route
from .visitor import Visitor, FluxPoolVisitor, TimeSeriesVisitor
from .simulation import Core, CoreState, LifecycleState
from .registry import (
    CoreRegistry,
    REGISTRY,
    make_core,
    get_core,
    require_core,
    delete_core,
    live_cores,
)

__all__ = [
    # Units
    "Unit",
    "UnitVal",
    "UNDEFINED_VALUE",
    "parse_units_name",
    "convert",

    # Messages
    "MessageType",
    "MessageData",
    "split_biome",

    # Data
    "TimeSeries",
    "FluxPool",
    "Flux",
    "TrackingRecord",
    "TrackingReport",
    "transfer",

    # Components
    "Component",
    "BiomeComponent",
    "Capability",
    "MessageRouter",
    "Route",

    # Visitors
    "Visitor",
    "FluxPoolVisitor",
    "TimeSeriesVisitor",

    # Core
    "Core",
    "CoreState",
    "LifecycleState",
    "CoreRegistry",
    "REGISTRY",
    "make_core",
    "get_core",
    "require_core",
    "delete_core",
    "live_cores",

    # Errors
    "ClimateEngineError",
    "UnitMismatchError",
    "UnknownUnitError",
    "NegativePoolError",
    "InvalidFlowError",
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
