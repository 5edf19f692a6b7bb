"""
Climate Engine — Simple Climate Model Core
A multi-instance carbon cycle / forcing / temperature model driven by
string-addressed get and set messages.
"""

__version__ = "1.0.0"

from .config import (
    CORE,
    CARBON,
    FORCING,
    TEMPERATURE,
    CoreConfig,
    CarbonCycleConfig,
    BiomeParameters,
    BiomePools,
    ForcingConfig,
    TemperatureConfig,
)

from .core import (
    Unit,
    UnitVal,
    MessageType,
    MessageData,
    TimeSeries,
    FluxPool,
    TrackingReport,
    Component,
    Visitor,
    FluxPoolVisitor,
    TimeSeriesVisitor,
    Core,
    LifecycleState,
    make_core,
    get_core,
    require_core,
    delete_core,
    live_cores,
    ClimateEngineError,
)

from .components import CarbonCycle, Forcing, Temperature

__all__ = [
    # Version info
    "__version__",

    # Config
    "CORE",
    "CARBON",
    "FORCING",
    "TEMPERATURE",
    "CoreConfig",
    "CarbonCycleConfig",
    "BiomeParameters",
    "BiomePools",
    "ForcingConfig",
    "TemperatureConfig",

    # Core classes
    "Unit",
    "UnitVal",
    "MessageType",
    "MessageData",
    "TimeSeries",
    "FluxPool",
    "TrackingReport",
    "Component",
    "Visitor",
    "FluxPoolVisitor",
    "TimeSeriesVisitor",
    "Core",
    "LifecycleState",
    "make_core",
    "get_core",
    "require_core",
    "delete_core",
    "live_cores",
    "ClimateEngineError",

    # Components
    "CarbonCycle",
    "Forcing",
    "Temperature",
]
