"""
Climate Engine — Temperature
One-box energy balance: C dT/dt = F - (F2x / ECS) T.
"""

from dataclasses import dataclass
from typing import Dict
import copy
import logging

from ..core.component import Component
from ..core.messages import MessageData, RF_TOTAL, GLOBAL_TAS, ECS, HEAT_CAPACITY
from ..core.units import Unit, UnitVal
from ..core.errors import InvalidMessageError
from ..config import TemperatureConfig, TEMPERATURE

logger = logging.getLogger(__name__)


@dataclass
class TemperatureState:
    """Global mean surface temperature anomaly (degC)."""
    tas: float = 0.0


class Temperature(Component):
    """Global temperature driven by total radiative forcing."""

    kind = "temperature"

    def __init__(self, config: TemperatureConfig = TEMPERATURE, name: str = "temperature"):
        super().__init__(name)
        self.config = copy.deepcopy(config)
        self.state = TemperatureState()

        self.depends_on(RF_TOTAL)

        self.provides(GLOBAL_TAS, lambda data: self.history_value(
            GLOBAL_TAS, data.time, lambda: UnitVal(self.state.tas, Unit.DEG_C)))
        self.provides(ECS, lambda data: UnitVal(self.config.ecs, Unit.DEG_C))
        self.accepts(ECS, self._set_ecs)
        self.provides(HEAT_CAPACITY, lambda data: UnitVal(self.config.heat_capacity, Unit.UNITLESS))
        self.accepts(HEAT_CAPACITY, self._set_heat_capacity)

    def _set_ecs(self, data: MessageData):
        if data.time is not None:
            raise InvalidMessageError(f"{ECS} is a parameter and takes no date")
        value = data.value_in(Unit.DEG_C)
        if value <= 0:
            raise InvalidMessageError(f"{ECS} must be positive, got {value}")
        self.config.ecs = value

    def _set_heat_capacity(self, data: MessageData):
        if data.time is not None:
            raise InvalidMessageError(f"{HEAT_CAPACITY} is a parameter and takes no date")
        value = data.value_in(Unit.UNITLESS)
        if value <= 0:
            raise InvalidMessageError(f"{HEAT_CAPACITY} must be positive, got {value}")
        self.config.heat_capacity = value

    @property
    def feedback(self) -> float:
        """Climate feedback parameter (W/m2 per degC)."""
        return self.config.f2x / self.config.ecs

    def run(self, date: float):
        forcing = self.get_data(RF_TOTAL).value(Unit.W_M2)
        dt = self.core.time_step
        tas = self.state.tas
        self.state.tas = tas + dt * (forcing - self.feedback * tas) / self.config.heat_capacity

    def record_outputs(self, date: float):
        self.record(GLOBAL_TAS, date, UnitVal(self.state.tas, Unit.DEG_C))

    def get_status(self) -> Dict:
        status = super().get_status()
        status.update({
            "tas": self.state.tas,
            "ecs": self.config.ecs,
            "heat_capacity": self.config.heat_capacity,
        })
        return status
