"""
Climate Engine — Flux Pools
Stocks of a quantity that optionally remember where every unit came from.

A tracked pool keeps a map from source name to the fraction of its current
contents that originated there. Withdrawals leave the map untouched and hand
a copy of it to the outgoing ``Flux``; deposits blend the map with the
incoming one, weighted by size. Fraction maps are copied at every boundary
so no two pools ever share one.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple, Union
import json
import logging

from .units import UnitVal, Unit
from .errors import NegativePoolError, InvalidFlowError

logger = logging.getLogger(__name__)

# Withdrawals that overdraw a pool by less than this (relative) amount are
# treated as rounding and clamp the pool to zero.
UNDERFLOW_TOLERANCE = 1e-9

# Fractions smaller than this are dropped from the source map.
FRACTION_EPSILON = 1e-15


Sources = Union[str, Mapping[str, float]]


@dataclass(frozen=True)
class Flux:
    """An amount in transit between pools, with its source mix."""
    amount: UnitVal
    fractions: Tuple[Tuple[str, float], ...] = ()
    origin: str = ""

    @property
    def tracked(self) -> bool:
        return bool(self.fractions)

    def fraction_map(self) -> Dict[str, float]:
        return dict(self.fractions)

    def value(self, unit: Optional[Unit] = None) -> float:
        return self.amount.value(unit)


@dataclass(frozen=True)
class TrackingRecord:
    """Source breakdown of one tracked pool on one date."""
    date: float
    pool_name: str
    value: float
    unit: str
    sources: Tuple[Tuple[str, float], ...]

    def to_dict(self) -> dict:
        return {
            "date": self.date,
            "pool_name": self.pool_name,
            "value": self.value,
            "unit": self.unit,
            "sources": [{"source_name": s, "fraction": f} for s, f in self.sources],
        }


@dataclass
class TrackingReport:
    """All tracking records produced by a core, in date order."""
    records: List[TrackingRecord] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self):
        return iter(self.records)

    def dates(self) -> List[float]:
        return sorted({r.date for r in self.records})

    def for_pool(self, pool_name: str) -> List[TrackingRecord]:
        return [r for r in self.records if r.pool_name == pool_name]

    def to_rows(self) -> List[dict]:
        """One flat row per (date, pool, source)."""
        rows = []
        for r in self.records:
            for source, fraction in r.sources:
                rows.append({
                    "year": r.date,
                    "pool_name": r.pool_name,
                    "pool_value": r.value,
                    "pool_units": r.unit,
                    "source_name": source,
                    "source_fraction": fraction,
                })
        return rows

    def to_json(self, **kwargs) -> str:
        return json.dumps([r.to_dict() for r in self.records], **kwargs)


def _normalize_sources(sources: Sources) -> Dict[str, float]:
    """Turn a source name or a mapping of relative weights into fractions summing to one."""
    if isinstance(sources, str):
        return {sources: 1.0}

    fractions = {}
    for name, frac in sources.items():
        if frac < 0.0:
            raise InvalidFlowError(f"Source weight for {name!r} is negative: {frac}")
        if frac > 0.0:
            fractions[name] = float(frac)

    total = sum(fractions.values())
    if total <= 0.0:
        raise InvalidFlowError("Source attribution must contain a positive weight")
    return {name: frac / total for name, frac in fractions.items()}


@dataclass
class FluxPool:
    """
    A named stock with optional source tracking.

    Supports:
    - Unit-checked deposits and withdrawals
    - Size-weighted blending of source fractions on deposit
    - Fraction-preserving withdrawals
    - Lifetime inflow/outflow totals
    """

    name: str
    amount: UnitVal
    tracking: bool = False
    fractions: Dict[str, float] = field(default_factory=dict)

    # Historical tracking
    total_inflow: float = 0.0
    total_outflow: float = 0.0

    def __post_init__(self):
        if not isinstance(self.amount, UnitVal):
            raise TypeError(f"{self.name}: pool amount must be a UnitVal")
        if self.amount.magnitude < 0:
            raise NegativePoolError(f"{self.name}: initial amount {self.amount} is negative")
        if self.tracking and not self.fractions:
            self.fractions = {self.name: 1.0}

    @property
    def unit(self) -> Unit:
        return self.amount.unit

    @property
    def magnitude(self) -> float:
        return self.amount.magnitude

    @property
    def units_name(self) -> str:
        return self.amount.units_name

    @property
    def is_empty(self) -> bool:
        return self.amount.magnitude <= 0.0

    def value(self, unit: Optional[Unit] = None) -> float:
        return self.amount.value(unit)

    def _flow_magnitude(self, flow) -> float:
        if isinstance(flow, Flux):
            flow = flow.amount
        if isinstance(flow, UnitVal):
            magnitude = flow.value(self.unit)
        else:
            magnitude = float(flow)
        if magnitude < 0:
            raise InvalidFlowError(f"{self.name}: flux values may not be negative ({magnitude})")
        return magnitude

    def add(self, flow, sources: Optional[Sources] = None) -> UnitVal:
        """
        Deposit a flow into the pool.

        Args:
            flow: A ``Flux``, a ``UnitVal`` or a bare number in the pool's unit.
            sources: Attribution of the flow. Defaults to the flux's own
                fractions, then to the pool the flux came from, then to this
                pool.

        Returns:
            The amount added, in the pool's unit.
        """
        magnitude = self._flow_magnitude(flow)
        old = self.amount.magnitude
        new = old + magnitude

        if self.tracking and magnitude > 0:
            if sources is not None:
                incoming = _normalize_sources(sources)
            elif isinstance(flow, Flux) and flow.tracked:
                incoming = flow.fraction_map()
            elif isinstance(flow, Flux) and flow.origin:
                incoming = {flow.origin: 1.0}
            else:
                incoming = {self.name: 1.0}

            blended = {}
            for source in set(self.fractions) | set(incoming):
                frac = (self.fractions.get(source, 0.0) * old
                        + incoming.get(source, 0.0) * magnitude) / new
                if frac > FRACTION_EPSILON:
                    blended[source] = frac
            self.fractions = blended

        self.amount = UnitVal(new, self.unit)
        self.total_inflow += magnitude
        return UnitVal(magnitude, self.unit)

    def subtract(self, flow) -> Flux:
        """
        Withdraw an amount from the pool.

        The returned flux carries a copy of the pool's current source mix;
        the mix left behind is unchanged.

        Raises:
            NegativePoolError: if the withdrawal exceeds the pool contents by
                more than rounding.
        """
        magnitude = self._flow_magnitude(flow)
        old = self.amount.magnitude
        new = old - magnitude

        if new < 0.0:
            if -new > UNDERFLOW_TOLERANCE * max(1.0, old):
                raise NegativePoolError(
                    f"{self.name}: cannot withdraw {magnitude:g} {self.units_name} "
                    f"from {old:g} {self.units_name}"
                )
            logger.debug(f"{self.name}: clamped rounding underflow {new:g} to zero")
            new = 0.0

        self.amount = UnitVal(new, self.unit)
        self.total_outflow += magnitude

        fractions = tuple(sorted(self.fractions.items())) if self.tracking else ()
        return Flux(UnitVal(magnitude, self.unit), fractions, self.name)

    def get_sources(self) -> List[str]:
        """Source names with a non-zero share, sorted by name."""
        if not self.tracking:
            return []
        return sorted(s for s, f in self.fractions.items() if f > 0.0)

    def get_fraction(self, source: str) -> float:
        return self.fractions.get(source, 0.0) if self.tracking else 0.0

    def enable_tracking(self):
        """Start tracking with the whole pool attributed to itself."""
        self.tracking = True
        self.fractions = {self.name: 1.0}

    def disable_tracking(self):
        self.tracking = False
        self.fractions = {}

    def copy(self) -> "FluxPool":
        return FluxPool(
            name=self.name,
            amount=self.amount,
            tracking=self.tracking,
            fractions=dict(self.fractions),
            total_inflow=self.total_inflow,
            total_outflow=self.total_outflow,
        )

    def renamed(self, name: str) -> "FluxPool":
        """Copy under a new name; a self-attributed share follows the rename."""
        pool = self.copy()
        pool.name = name
        if self.name in pool.fractions:
            pool.fractions[name] = pool.fractions.pop(self.name)
        return pool

    def rename_sources(self, names: Mapping[str, str]):
        """Re-key the source map after pools elsewhere were renamed."""
        self.fractions = {names.get(s, s): f for s, f in self.fractions.items()}

    def tracking_record(self, date: float) -> TrackingRecord:
        return TrackingRecord(
            date=date,
            pool_name=self.name,
            value=self.value(),
            unit=self.units_name,
            sources=tuple((s, self.fractions[s]) for s in self.get_sources()),
        )

    def get_status(self) -> dict:
        return {
            "name": self.name,
            "value": self.value(),
            "units": self.units_name,
            "tracking": self.tracking,
            "fractions": dict(self.fractions),
            "total_inflow": self.total_inflow,
            "total_outflow": self.total_outflow,
        }

    def __repr__(self) -> str:
        return f"FluxPool({self.name}: {self.magnitude:.3f} {self.units_name}, tracking={self.tracking})"


def transfer(source: FluxPool, destination: FluxPool, amount) -> Flux:
    """Move ``amount`` from one pool to another, carrying the source mix."""
    flux = source.subtract(amount)
    destination.add(flux)
    return flux
