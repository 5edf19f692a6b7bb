"""
Climate Engine — Built-in Components
Carbon cycle, radiative forcing, and temperature.
"""

from typing import List

from .carbon_cycle import CarbonCycle, CarbonCycleState
from .forcing import Forcing, ForcingState
from .temperature import Temperature, TemperatureState
from ..core.component import Component
from ..config import CoreConfig


def default_components(config: CoreConfig) -> List[Component]:
    """The built-in components, in registration order."""
    return [
        CarbonCycle(config.carbon),
        Forcing(config.forcing),
        Temperature(config.temperature),
    ]


__all__ = [
    "CarbonCycle",
    "CarbonCycleState",
    "Forcing",
    "ForcingState",
    "Temperature",
    "TemperatureState",
    "default_components",
]
