"""
Climate Engine — Units
Scalar values tagged with a physical unit, and the unit table itself.

A ``UnitVal`` never silently changes dimension: adding PgC to W/m2 raises
``UnitMismatchError``. Units of the same dimension (PgC and TgC, degC and K
anomalies) are converted through a linear factor.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Union
from enum import Enum, auto
import math

from .errors import UnitMismatchError, UnknownUnitError


class Unit(Enum):
    """Units understood by the engine."""
    UNDEFINED = auto()

    # Dimensionless
    UNITLESS = auto()

    # Carbon mass
    PGC = auto()
    GTC = auto()
    TGC = auto()

    # Carbon flux
    PGC_YR = auto()
    GTC_YR = auto()

    # Concentration
    PPMV_CO2 = auto()

    # Radiative forcing
    W_M2 = auto()
    MW_M2 = auto()

    # Temperature anomaly
    DEG_C = auto()
    K = auto()

    # Time
    YEARS = auto()

    @property
    def units_name(self) -> str:
        return _UNIT_INFO[self].name

    @property
    def dimension(self) -> str:
        return _UNIT_INFO[self].dimension

    def is_compatible(self, other: "Unit") -> bool:
        """True if values in ``other`` can be converted to this unit."""
        return self.dimension == other.dimension

    @classmethod
    def parse(cls, name: str) -> "Unit":
        return parse_units_name(name)


@dataclass(frozen=True)
class UnitInfo:
    """Canonical name, dimension and scale of a unit."""
    name: str
    dimension: str
    factor: float  # Multiplier to the dimension's base unit


_UNIT_INFO: Dict[Unit, UnitInfo] = {
    Unit.UNDEFINED: UnitInfo("(undefined)", "undefined", 1.0),
    Unit.UNITLESS: UnitInfo("(unitless)", "unitless", 1.0),
    Unit.PGC: UnitInfo("PgC", "carbon", 1.0),
    Unit.GTC: UnitInfo("GtC", "carbon", 1.0),
    Unit.TGC: UnitInfo("TgC", "carbon", 1.0e-3),
    Unit.PGC_YR: UnitInfo("PgC/yr", "carbon_flux", 1.0),
    Unit.GTC_YR: UnitInfo("GtC/yr", "carbon_flux", 1.0),
    Unit.PPMV_CO2: UnitInfo("ppmv CO2", "co2_concentration", 1.0),
    Unit.W_M2: UnitInfo("W/m2", "forcing", 1.0),
    Unit.MW_M2: UnitInfo("mW/m2", "forcing", 1.0e-3),
    Unit.DEG_C: UnitInfo("degC", "temperature", 1.0),
    Unit.K: UnitInfo("K", "temperature", 1.0),  # Anomalies only
    Unit.YEARS: UnitInfo("Years", "time", 1.0),
}

_BY_NAME: Dict[str, Unit] = {info.name: unit for unit, info in _UNIT_INFO.items()}


def parse_units_name(name: str) -> Unit:
    """
    Map a canonical unit name to its ``Unit``.

    Raises:
        UnknownUnitError: if the name is not recognized.
    """
    try:
        return _BY_NAME[name.strip()]
    except (KeyError, AttributeError):
        raise UnknownUnitError(f"Unknown unit name: {name!r}") from None


def convert(magnitude: float, from_unit: Unit, to_unit: Unit) -> float:
    """Convert a magnitude between two units of the same dimension."""
    if from_unit == to_unit:
        return magnitude
    if not from_unit.is_compatible(to_unit):
        raise UnitMismatchError(
            f"Cannot convert {from_unit.units_name} to {to_unit.units_name}"
        )
    return magnitude * _UNIT_INFO[from_unit].factor / _UNIT_INFO[to_unit].factor


Number = Union[int, float]


@dataclass(frozen=True, eq=False)
class UnitVal:
    """
    An immutable magnitude with a unit.

    Arithmetic returns new values. The right-hand operand is converted to
    the unit of the left-hand one; incompatible units raise
    ``UnitMismatchError``.
    """

    magnitude: float = 0.0
    unit: Unit = Unit.UNDEFINED

    def __post_init__(self):
        object.__setattr__(self, "magnitude", float(self.magnitude))
        if not isinstance(self.unit, Unit):
            raise UnknownUnitError(f"Not a unit: {self.unit!r}")

    @classmethod
    def parse(cls, magnitude: Number, units_name: str) -> "UnitVal":
        return cls(magnitude, parse_units_name(units_name))

    @property
    def units_name(self) -> str:
        return self.unit.units_name

    def value(self, unit: Optional[Unit] = None) -> float:
        """Magnitude expressed in ``unit`` (own unit if omitted)."""
        if unit is None:
            return self.magnitude
        return convert(self.magnitude, self.unit, unit)

    def to(self, unit: Unit) -> "UnitVal":
        return UnitVal(self.value(unit), unit)

    def _other_magnitude(self, other: "UnitVal") -> float:
        if not isinstance(other, UnitVal):
            raise TypeError(f"Expected UnitVal, got {type(other).__name__}")
        return other.value(self.unit)

    # Arithmetic

    def __add__(self, other: "UnitVal") -> "UnitVal":
        return UnitVal(self.magnitude + self._other_magnitude(other), self.unit)

    def __sub__(self, other: "UnitVal") -> "UnitVal":
        return UnitVal(self.magnitude - self._other_magnitude(other), self.unit)

    def __neg__(self) -> "UnitVal":
        return UnitVal(-self.magnitude, self.unit)

    def __abs__(self) -> "UnitVal":
        return UnitVal(abs(self.magnitude), self.unit)

    def __mul__(self, factor: Number) -> "UnitVal":
        if isinstance(factor, UnitVal):
            return NotImplemented
        return UnitVal(self.magnitude * factor, self.unit)

    __rmul__ = __mul__

    def __truediv__(self, other):
        if isinstance(other, UnitVal):
            # Ratio of two compatible values is a plain number
            return self.magnitude / self._other_magnitude(other)
        return UnitVal(self.magnitude / other, self.unit)

    # Comparison

    def __eq__(self, other) -> bool:
        if not isinstance(other, UnitVal):
            return NotImplemented
        return self.magnitude == self._other_magnitude(other)

    def __lt__(self, other: "UnitVal") -> bool:
        return self.magnitude < self._other_magnitude(other)

    def __le__(self, other: "UnitVal") -> bool:
        return self.magnitude <= self._other_magnitude(other)

    def __gt__(self, other: "UnitVal") -> bool:
        return self.magnitude > self._other_magnitude(other)

    def __ge__(self, other: "UnitVal") -> bool:
        return self.magnitude >= self._other_magnitude(other)

    def __hash__(self) -> int:
        info = _UNIT_INFO[self.unit]
        return hash((info.dimension, self.magnitude * info.factor))

    def isclose(self, other: "UnitVal", rel_tol: float = 1e-9, abs_tol: float = 0.0) -> bool:
        return math.isclose(self.magnitude, self._other_magnitude(other),
                            rel_tol=rel_tol, abs_tol=abs_tol)

    def __str__(self) -> str:
        return f"{self.magnitude:g} {self.units_name}"

    def __repr__(self) -> str:
        return f"UnitVal({self.magnitude!r}, {self.units_name})"


UNDEFINED_VALUE = UnitVal(0.0, Unit.UNDEFINED)
