"""
Climate Engine — Radiative Forcing
CO2 forcing from atmospheric concentration plus prescribed other forcing.
"""

from dataclasses import dataclass
from typing import Dict
import copy
import logging
import math

from ..core.component import Component
from ..core.messages import (
    MessageData,
    ATMOSPHERIC_CO2,
    PREINDUSTRIAL_CO2,
    RF_CO2,
    RF_OTHER,
    RF_TOTAL,
)
from ..core.timeseries import TimeSeries
from ..core.units import Unit, UnitVal
from ..config import ForcingConfig, FORCING

logger = logging.getLogger(__name__)


@dataclass
class ForcingState:
    """Forcing of the last completed step (W/m2)."""
    rf_co2: float = 0.0
    rf_other: float = 0.0

    @property
    def rf_total(self) -> float:
        return self.rf_co2 + self.rf_other


class Forcing(Component):
    """
    RF_CO2 = a * ln(C / C0); RF_total = RF_CO2 + RF_other(date).
    """

    kind = "forcing"

    def __init__(self, config: ForcingConfig = FORCING, name: str = "forcing"):
        super().__init__(name)
        self.config = copy.deepcopy(config)
        self.state = ForcingState()
        self.rf_other = TimeSeries(RF_OTHER)

        self.depends_on(ATMOSPHERIC_CO2)

        self.provides(RF_CO2, lambda data: self.history_value(
            RF_CO2, data.time, lambda: UnitVal(self.state.rf_co2, Unit.W_M2)))
        self.provides(RF_TOTAL, lambda data: self.history_value(
            RF_TOTAL, data.time, lambda: UnitVal(self.state.rf_total, Unit.W_M2)))
        self.provides(RF_OTHER, self._get_rf_other)
        self.accepts(RF_OTHER, self._set_rf_other)

    def _get_rf_other(self, data: MessageData) -> UnitVal:
        if data.time is None:
            return UnitVal(self.state.rf_other, Unit.W_M2)
        return self.rf_other[data.time]

    def _set_rf_other(self, data: MessageData):
        # Negative forcing (aerosols) is allowed
        date = data.require_time(RF_OTHER)
        self.rf_other.set(date, UnitVal(data.value_in(Unit.W_M2), Unit.W_M2))

    def run(self, date: float):
        co2 = self.get_data(ATMOSPHERIC_CO2).value(Unit.PPMV_CO2)
        co2_0 = self.get_data(PREINDUSTRIAL_CO2).value(Unit.PPMV_CO2)

        self.state.rf_co2 = self.config.co2_coefficient * math.log(co2 / co2_0)
        other = self.rf_other.get(date)
        self.state.rf_other = other.value(Unit.W_M2) if other is not None else 0.0

    def record_outputs(self, date: float):
        self.record(RF_CO2, date, UnitVal(self.state.rf_co2, Unit.W_M2))
        self.record(RF_TOTAL, date, UnitVal(self.state.rf_total, Unit.W_M2))

    def get_status(self) -> Dict:
        status = super().get_status()
        status.update({
            "rf_co2": self.state.rf_co2,
            "rf_other": self.state.rf_other,
            "rf_total": self.state.rf_total,
        })
        return status
