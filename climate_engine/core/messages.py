"""
Climate Engine — Messages
Message types, the message envelope, and the capability names that
components answer to.
"""

from dataclasses import dataclass, replace
from typing import Optional, Union
from enum import Enum

from .units import UnitVal, Unit, UNDEFINED_VALUE
from .errors import InvalidMessageError


class MessageType(str, Enum):
    """Kinds of message the core can route."""
    GETDATA = "getdata"
    SETDATA = "setdata"

    @classmethod
    def parse(cls, msgtype: Union["MessageType", str]) -> "MessageType":
        if isinstance(msgtype, MessageType):
            return msgtype
        try:
            return cls(str(msgtype).strip().lower())
        except ValueError:
            raise InvalidMessageError(f"Unknown message type: {msgtype!r}") from None


@dataclass(frozen=True)
class MessageData:
    """
    Payload of a get or set message.

    ``time`` is None when the quantity does not vary with time. ``biome``
    is filled in by the router for ``<biome>.<capability>`` names.
    """
    time: Optional[float] = None
    value: UnitVal = UNDEFINED_VALUE
    biome: Optional[str] = None

    @property
    def has_time(self) -> bool:
        return self.time is not None

    def require_time(self, capability: str) -> float:
        """Return the date, failing if the message carries none."""
        if self.time is None:
            raise InvalidMessageError(f"{capability}: a date is required")
        return float(self.time)

    def value_in(self, unit: Unit) -> float:
        """Magnitude of the payload in ``unit``; raises UnitMismatchError."""
        return self.value.value(unit)

    def with_biome(self, biome: Optional[str]) -> "MessageData":
        return replace(self, biome=biome)


# =============================================================================
# CAPABILITY NAMES
# =============================================================================

# Carbon cycle outputs
ATMOSPHERIC_CO2 = "atmospheric_CO2"
ATMOS_CARBON = "atmos_carbon"
EARTH_CARBON = "earth_carbon"
OCEAN_CARBON = "ocean_carbon"
VEG_C = "veg_c"
DETRITUS_C = "detritus_c"
SOIL_C = "soil_c"
NPP = "npp"
RH = "rh"

# Carbon cycle inputs
FFI_EMISSIONS = "ffi_emissions"
LUC_EMISSIONS = "luc_emissions"
DACCS_UPTAKE = "daccs_uptake"
LUC_UPTAKE = "luc_uptake"

# Carbon cycle parameters
PREINDUSTRIAL_CO2 = "preindustrial_CO2"
OCEAN_EXCHANGE = "ocean_exchange"
NPP_FLUX0 = "npp_flux0"
BETA = "beta"
Q10_RH = "q10_rh"
F_NPPV = "f_nppv"
F_NPPD = "f_nppd"
F_LITTERD = "f_litterd"

# Forcing
RF_CO2 = "RF_CO2"
RF_OTHER = "RF_other"
RF_TOTAL = "RF_total"

# Temperature
GLOBAL_TAS = "global_tas"
ECS = "ECS"
HEAT_CAPACITY = "heat_capacity"

BIOME_SEPARATOR = "."


def split_biome(capability: str):
    """Split ``forest.beta`` into ``("forest", "beta")``; no biome gives None."""
    biome, sep, name = capability.rpartition(BIOME_SEPARATOR)
    if not sep or not biome or not name:
        return None, capability
    return biome, name
