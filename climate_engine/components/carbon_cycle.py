"""
Climate Engine — Carbon Cycle
Atmosphere, fossil reserve, ocean, and per-biome land pools.

Every step computes all flows from the stocks at the start of the step,
withdraws them, and only then deposits them, so total carbon is conserved
and the result does not depend on the order flows are listed in.
"""

from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Optional, Tuple
import copy
import logging
import math

from ..core.component import BiomeComponent, DATE_EPSILON
from ..core.fluxpool import FluxPool, TrackingRecord
from ..core.messages import (
    MessageData,
    BIOME_SEPARATOR,
    ATMOSPHERIC_CO2, ATMOS_CARBON, EARTH_CARBON, OCEAN_CARBON,
    VEG_C, DETRITUS_C, SOIL_C, NPP, RH,
    FFI_EMISSIONS, LUC_EMISSIONS, DACCS_UPTAKE, LUC_UPTAKE,
    PREINDUSTRIAL_CO2, OCEAN_EXCHANGE,
    NPP_FLUX0, BETA, Q10_RH, F_NPPV, F_NPPD, F_LITTERD,
    GLOBAL_TAS,
)
from ..core.timeseries import TimeSeries
from ..core.units import Unit, UnitVal
from ..core.errors import BiomeError, InvalidMessageError
from ..config import (
    CarbonCycleConfig,
    CARBON,
    BiomeParameters,
    BiomePools,
    PGC_PER_PPMV_CO2,
)

logger = logging.getLogger(__name__)


ATMOS_POOL = "atmos_c"
EARTH_POOL = "earth_c"
OCEAN_POOL = "ocean_c"
LAND_POOLS = (VEG_C, DETRITUS_C, SOIL_C)

# Dated inputs, PgC/yr
INPUTS = (FFI_EMISSIONS, LUC_EMISSIONS, DACCS_UPTAKE, LUC_UPTAKE)

# Capability -> (BiomeParameters attribute, unit)
BIOME_PARAMETERS = {
    NPP_FLUX0: ("npp_flux0", Unit.PGC_YR),
    BETA: ("beta", Unit.UNITLESS),
    Q10_RH: ("q10_rh", Unit.UNITLESS),
    F_NPPV: ("f_nppv", Unit.UNITLESS),
    F_NPPD: ("f_nppd", Unit.UNITLESS),
    F_LITTERD: ("f_litterd", Unit.UNITLESS),
}


def biome_key(biome: str, name: str) -> str:
    return f"{biome}{BIOME_SEPARATOR}{name}"


@dataclass
class Transfer:
    """A flow planned for this step."""
    source: FluxPool
    destination: FluxPool
    amount: float       # PgC over the step
    scalable: bool = True   # Model flows shrink to fit; prescribed inputs do not


@dataclass
class CarbonCycleState:
    """Everything the carbon cycle rewinds on reset."""
    atmos_c: FluxPool
    earth_c: FluxPool
    ocean_c: FluxPool
    land: Dict[str, Dict[str, FluxPool]]   # biome -> pool kind -> pool
    tracking: bool = False

    # Fluxes of the last step by biome (PgC/yr)
    npp: Dict[str, float] = field(default_factory=dict)
    rh: Dict[str, float] = field(default_factory=dict)

    def pools(self) -> List[FluxPool]:
        pools = [self.atmos_c, self.earth_c, self.ocean_c]
        for biome_pools in self.land.values():
            pools.extend(biome_pools.values())
        return pools

    def land_pools(self) -> List[FluxPool]:
        return [p for biome_pools in self.land.values() for p in biome_pools.values()]

    def total_carbon(self) -> float:
        return sum(p.value(Unit.PGC) for p in self.pools())


class CarbonCycle(BiomeComponent):
    """
    Box model of the global carbon cycle.

    Land carbon lives in one set of vegetation, detritus and soil pools per
    biome. Fossil emissions move carbon from the earth pool to the
    atmosphere; direct air capture moves it back. Once the tracking date is
    reached every pool records which pools its carbon came from.
    """

    kind = "carbon_cycle"

    def __init__(self, config: CarbonCycleConfig = CARBON, name: str = "carbon-cycle"):
        super().__init__(name)
        self.config = copy.deepcopy(config)

        if len(set(config.biomes)) != len(config.biomes):
            raise BiomeError(f"Duplicate biome names in {config.biomes}")
        for biome in config.biomes:
            self._check_biome_name(biome)

        # Parameters survive reset; only state is rewound
        self.preindustrial_co2 = config.preindustrial_co2_ppmv
        self.ocean_exchange = config.ocean_exchange
        self.parameters: Dict[str, BiomeParameters] = {
            biome: copy.deepcopy(config.parameters_for(biome)) for biome in config.biomes
        }
        self.inputs: Dict[str, TimeSeries] = {name: TimeSeries(name) for name in INPUTS}

        # Ocean stock in equilibrium with preindustrial CO2
        self.ocean_reference = config.ocean_c

        self.state = CarbonCycleState(
            atmos_c=FluxPool(ATMOS_POOL, UnitVal(self.c0, Unit.PGC)),
            earth_c=FluxPool(EARTH_POOL, UnitVal(config.earth_c, Unit.PGC)),
            ocean_c=FluxPool(OCEAN_POOL, UnitVal(config.ocean_c, Unit.PGC)),
            land={b: self._new_land_pools(b, config.pools_for(b)) for b in config.biomes},
        )
        self._tracking_records: List[TrackingRecord] = []

        self._register_capabilities()

    @property
    def c0(self) -> float:
        """Preindustrial atmospheric carbon (PgC)."""
        return self.preindustrial_co2 * PGC_PER_PPMV_CO2

    def _register_capabilities(self):
        for name in (ATMOSPHERIC_CO2, ATMOS_CARBON, EARTH_CARBON, OCEAN_CARBON):
            self.provides(name, self._output_getter(name))
        for name in (VEG_C, DETRITUS_C, SOIL_C, NPP, RH):
            self.provides(name, self._output_getter(name), biome_scoped=True)

        for name in INPUTS:
            self.provides(name, self._input_getter(name))
            self.accepts(name, self._input_setter(name))

        self.provides(PREINDUSTRIAL_CO2, self._get_preindustrial_co2)
        self.accepts(PREINDUSTRIAL_CO2, self._set_preindustrial_co2)
        self.provides(OCEAN_EXCHANGE, self._get_ocean_exchange)
        self.accepts(OCEAN_EXCHANGE, self._set_ocean_exchange)

        for name, (attr, unit) in BIOME_PARAMETERS.items():
            self.provides(name, self._parameter_getter(attr, unit), biome_scoped=True)
            self.accepts(name, self._parameter_setter(name, attr, unit), biome_scoped=True)

    # =========================================================================
    # BIOMES
    # =========================================================================

    @staticmethod
    def _check_biome_name(biome: str):
        if not isinstance(biome, str) or not biome or BIOME_SEPARATOR in biome:
            raise BiomeError(f"Invalid biome name: {biome!r}")

    @staticmethod
    def _new_land_pools(biome: str, pools: BiomePools) -> Dict[str, FluxPool]:
        return {
            VEG_C: FluxPool(biome_key(biome, VEG_C), UnitVal(pools.veg_c, Unit.PGC)),
            DETRITUS_C: FluxPool(biome_key(biome, DETRITUS_C), UnitVal(pools.detritus_c, Unit.PGC)),
            SOIL_C: FluxPool(biome_key(biome, SOIL_C), UnitVal(pools.soil_c, Unit.PGC)),
        }

    def _resolve_biome(self, biome: Optional[str]) -> str:
        """Named biome, or the first biome if none is named."""
        if biome is None:
            if not self.state.land:
                raise BiomeError("No biomes defined")
            return next(iter(self.state.land))
        if biome not in self.state.land:
            raise BiomeError(f"Unknown biome {biome!r}")
        return biome

    def get_biome_list(self) -> List[str]:
        return list(self.state.land)

    def check_biome_change(self, old_name: Optional[str], new_name: Optional[str]):
        super().check_biome_change(old_name, new_name)
        if new_name is not None:
            self._check_biome_name(new_name)
        elif len(self.state.land) == 1:
            raise BiomeError(f"Cannot delete {old_name!r}, the only biome")

    def create_biome(self, biome: str):
        self.check_biome_change(None, biome)

        pools = self._new_land_pools(biome, self.config.pools_for(biome))
        if self.state.tracking:
            for pool in pools.values():
                pool.enable_tracking()
        self.state.land[biome] = pools
        self.parameters[biome] = copy.deepcopy(self.config.parameters_for(biome))
        logger.info(f"{self.name}: Created biome {biome}")

    def delete_biome(self, biome: str):
        self.check_biome_change(biome, None)
        del self.state.land[biome]
        del self.parameters[biome]
        logger.info(f"{self.name}: Deleted biome {biome}")

    def rename_biome(self, old_name: str, new_name: str):
        """
        Rename a biome, keeping its position, parameters and stocks.

        The rename is applied to the live state, the initial state, every
        checkpoint, the output history and the tracking records, so stored
        dates stay readable and resettable under the new name.
        """
        self.check_biome_change(old_name, new_name)
        pool_names = {biome_key(old_name, kind): biome_key(new_name, kind) for kind in LAND_POOLS}

        def rename_state(state: CarbonCycleState) -> CarbonCycleState:
            state = copy.deepcopy(state)
            state.land = {
                (new_name if biome == old_name else biome): (
                    {kind: pool.renamed(pool_names[pool.name]) for kind, pool in pools.items()}
                    if biome == old_name else pools
                )
                for biome, pools in state.land.items()
            }
            for pool in state.pools():
                pool.rename_sources(pool_names)
            state.npp = {(new_name if b == old_name else b): v for b, v in state.npp.items()}
            state.rh = {(new_name if b == old_name else b): v for b, v in state.rh.items()}
            return state

        self.state = rename_state(self.state)
        if self._initial is not None:
            self._initial = rename_state(self._initial)
        self._checkpoints = {d: rename_state(s) for d, s in self._checkpoints.items()}

        self.parameters = {
            (new_name if biome == old_name else biome): params
            for biome, params in self.parameters.items()
        }

        prefix = f"{old_name}{BIOME_SEPARATOR}"
        history = {}
        for key, series in self.history.items():
            if key.startswith(prefix):
                key = biome_key(new_name, key[len(prefix):])
                series.name = f"{self.name}:{key}"
            history[key] = series
        self.history = history

        self._tracking_records = [
            replace(
                r,
                pool_name=pool_names.get(r.pool_name, r.pool_name),
                sources=tuple((pool_names.get(s, s), f) for s, f in r.sources),
            )
            for r in self._tracking_records
        ]
        logger.info(f"{self.name}: Renamed biome {old_name} to {new_name}")

    # =========================================================================
    # MESSAGE HANDLERS
    # =========================================================================

    def _current_outputs(self) -> Dict[str, UnitVal]:
        state = self.state
        outputs = {
            ATMOSPHERIC_CO2: UnitVal(state.atmos_c.value(Unit.PGC) / PGC_PER_PPMV_CO2, Unit.PPMV_CO2),
            ATMOS_CARBON: state.atmos_c.amount,
            EARTH_CARBON: state.earth_c.amount,
            OCEAN_CARBON: state.ocean_c.amount,
        }

        totals = {kind: 0.0 for kind in LAND_POOLS}
        for biome, pools in state.land.items():
            for kind, pool in pools.items():
                outputs[pool.name] = pool.amount
                totals[kind] += pool.value(Unit.PGC)
            outputs[biome_key(biome, NPP)] = UnitVal(state.npp.get(biome, 0.0), Unit.PGC_YR)
            outputs[biome_key(biome, RH)] = UnitVal(state.rh.get(biome, 0.0), Unit.PGC_YR)

        for kind, total in totals.items():
            outputs[kind] = UnitVal(total, Unit.PGC)
        outputs[NPP] = UnitVal(sum(state.npp.values()), Unit.PGC_YR)
        outputs[RH] = UnitVal(sum(state.rh.values()), Unit.PGC_YR)
        return outputs

    def _output_getter(self, name: str) -> Callable[[MessageData], UnitVal]:
        def getter(data: MessageData) -> UnitVal:
            key = name
            if data.biome is not None:
                key = biome_key(self._resolve_biome(data.biome), name)
            return self.history_value(key, data.time, lambda: self._current_outputs()[key])
        return getter

    def _input_getter(self, name: str) -> Callable[[MessageData], UnitVal]:
        def getter(data: MessageData) -> UnitVal:
            return self.inputs[name][data.require_time(name)]
        return getter

    def _input_setter(self, name: str) -> Callable[[MessageData], None]:
        def setter(data: MessageData):
            date = data.require_time(name)
            value = data.value_in(Unit.PGC_YR)
            if value < 0:
                raise InvalidMessageError(f"{name}: value must be non-negative, got {value}")
            self.inputs[name].set(date, UnitVal(value, Unit.PGC_YR))
        return setter

    def _input(self, name: str, date: float) -> float:
        """Prescribed input at ``date`` in PgC/yr; unset dates are zero."""
        value = self.inputs[name].get(date)
        return value.value(Unit.PGC_YR) if value is not None else 0.0

    @staticmethod
    def _reject_date(name: str, data: MessageData):
        if data.time is not None:
            raise InvalidMessageError(f"{name} is a parameter and takes no date")

    def _get_preindustrial_co2(self, data: MessageData) -> UnitVal:
        return UnitVal(self.preindustrial_co2, Unit.PPMV_CO2)

    def _set_preindustrial_co2(self, data: MessageData):
        self._reject_date(PREINDUSTRIAL_CO2, data)
        value = data.value_in(Unit.PPMV_CO2)
        if value <= 0:
            raise InvalidMessageError(f"{PREINDUSTRIAL_CO2} must be positive, got {value}")
        self.preindustrial_co2 = value

    def _get_ocean_exchange(self, data: MessageData) -> UnitVal:
        return UnitVal(self.ocean_exchange, Unit.UNITLESS)

    def _set_ocean_exchange(self, data: MessageData):
        self._reject_date(OCEAN_EXCHANGE, data)
        value = data.value_in(Unit.UNITLESS)
        if value < 0:
            raise InvalidMessageError(f"{OCEAN_EXCHANGE} must be non-negative, got {value}")
        self.ocean_exchange = value

    def _parameter_getter(self, attr: str, unit: Unit) -> Callable[[MessageData], UnitVal]:
        def getter(data: MessageData) -> UnitVal:
            biome = self._resolve_biome(data.biome)
            return UnitVal(getattr(self.parameters[biome], attr), unit)
        return getter

    def _parameter_setter(self, name: str, attr: str, unit: Unit) -> Callable[[MessageData], None]:
        def setter(data: MessageData):
            self._reject_date(name, data)
            biome = self._resolve_biome(data.biome)
            params = copy.copy(self.parameters[biome])
            setattr(params, attr, data.value_in(unit))
            self._validate_parameters(biome, params)
            self.parameters[biome] = params
        return setter

    @staticmethod
    def _validate_parameters(biome: str, params: BiomeParameters):
        if params.npp_flux0 < 0:
            raise InvalidMessageError(f"{biome}: npp_flux0 must be non-negative")
        if params.beta < 0:
            raise InvalidMessageError(f"{biome}: beta must be non-negative")
        if params.q10_rh <= 0:
            raise InvalidMessageError(f"{biome}: q10_rh must be positive")
        for attr in ("f_nppv", "f_nppd", "f_litterd"):
            value = getattr(params, attr)
            if value < 0 or value > 1:
                raise InvalidMessageError(f"{biome}: {attr} must be within [0, 1], got {value}")
        if params.f_nppv + params.f_nppd > 1 + 1e-12:
            raise InvalidMessageError(f"{biome}: f_nppv + f_nppd must not exceed 1")

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def prepare_to_run(self):
        for biome, params in self.parameters.items():
            self._validate_parameters(biome, params)
        logger.info(
            f"{self.name}: {len(self.state.land)} biome(s), "
            f"{self.state.total_carbon():.1f} PgC total"
        )

    def run_spinup(self, step: int) -> bool:
        """
        One spin-up step with the atmosphere held at preindustrial.

        Stable when no land or ocean pool moved by more than the tolerance.
        """
        before = {p.name: p.magnitude for p in self.state.pools()}

        self.state.atmos_c = FluxPool(ATMOS_POOL, UnitVal(self.c0, Unit.PGC))
        self._advance(self.core.start_date, temperature=0.0, spinup=True)
        self.state.atmos_c = FluxPool(ATMOS_POOL, UnitVal(self.c0, Unit.PGC))

        change = max(
            abs(p.magnitude - before[p.name])
            for p in self.state.pools() if p.name != ATMOS_POOL
        )
        return change < self.core.config.spinup_tolerance

    def run(self, date: float):
        if not self.state.tracking and date >= self.core.tracking_date - DATE_EPSILON:
            self._start_tracking(date)
        self._advance(date, self._temperature(), spinup=False)

    def _temperature(self) -> float:
        """Temperature of the previous step; zero without a temperature component."""
        if not self.core.router.has_capability(GLOBAL_TAS):
            return 0.0
        return self.get_data(GLOBAL_TAS).value(Unit.DEG_C)

    def _start_tracking(self, date: float):
        for pool in self.state.pools():
            pool.enable_tracking()
        self.state.tracking = True
        logger.info(f"{self.name}: Source tracking started at {date}")

    def _advance(self, date: float, temperature: float, spinup: bool):
        state = self.state
        dt = self.core.time_step
        atmos = state.atmos_c
        ca = atmos.value(Unit.PGC)
        transfers: List[Transfer] = []

        state.npp = {}
        state.rh = {}
        for biome, pools in state.land.items():
            p = self.parameters[biome]
            veg, det, soil = pools[VEG_C], pools[DETRITUS_C], pools[SOIL_C]

            co2_effect = 1.0 + p.beta * math.log(ca / self.c0) if ca > 0 else 0.0
            npp = max(0.0, p.npp_flux0 * co2_effect) * dt
            temp_factor = p.q10_rh ** (temperature / 10.0)

            litter = p.veg_turnover * veg.magnitude * dt
            det_rh = p.detritus_rh_rate * det.magnitude * temp_factor * dt
            det_soil = p.detritus_soil_rate * det.magnitude * dt
            soil_rh = p.soil_rh_rate * soil.magnitude * temp_factor * dt

            transfers.extend([
                Transfer(atmos, veg, npp * p.f_nppv),
                Transfer(atmos, det, npp * p.f_nppd),
                Transfer(atmos, soil, npp * (1.0 - p.f_nppv - p.f_nppd)),
                Transfer(veg, det, litter * p.f_litterd),
                Transfer(veg, soil, litter * (1.0 - p.f_litterd)),
                Transfer(det, atmos, det_rh),
                Transfer(det, soil, det_soil),
                Transfer(soil, atmos, soil_rh),
            ])
            state.npp[biome] = npp / dt
            state.rh[biome] = (det_rh + soil_rh) / dt

        ocean = state.ocean_c
        ocean_flux = self.ocean_exchange * (
            ca - self.c0 * ocean.magnitude / self.ocean_reference
        ) * dt
        if ocean_flux >= 0:
            transfers.append(Transfer(atmos, ocean, ocean_flux))
        else:
            transfers.append(Transfer(ocean, atmos, -ocean_flux))

        if not spinup:
            transfers.extend(self._prescribed_transfers(date, dt))

        self._apply(self._fit_to_stocks(transfers))

    def _prescribed_transfers(self, date: float, dt: float) -> List[Transfer]:
        state = self.state
        transfers = []

        ffi = self._input(FFI_EMISSIONS, date) * dt
        if ffi > 0:
            transfers.append(Transfer(state.earth_c, state.atmos_c, ffi, scalable=False))

        daccs = self._input(DACCS_UPTAKE, date) * dt
        if daccs > 0:
            transfers.append(Transfer(state.atmos_c, state.earth_c, daccs, scalable=False))

        # Land-use emissions come from every land pool in proportion to its size
        luc = self._input(LUC_EMISSIONS, date) * dt
        land = state.land_pools()
        land_total = sum(p.magnitude for p in land)
        if luc > 0 and land_total > 0:
            for pool in land:
                transfers.append(Transfer(pool, state.atmos_c, luc * pool.magnitude / land_total,
                                          scalable=False))

        # Land-use uptake goes to vegetation in proportion to its size
        uptake = self._input(LUC_UPTAKE, date) * dt
        if uptake > 0:
            vegetation = [pools[VEG_C] for pools in state.land.values()]
            veg_total = sum(p.magnitude for p in vegetation)
            for pool in vegetation:
                share = pool.magnitude / veg_total if veg_total > 0 else 1.0 / len(vegetation)
                transfers.append(Transfer(state.atmos_c, pool, uptake * share, scalable=False))

        return transfers

    @staticmethod
    def _fit_to_stocks(transfers: List[Transfer]) -> List[Transfer]:
        """
        Shrink model flows out of any pool they would overdraw.

        Prescribed flows are left alone; if they alone overdraw a pool the
        withdrawal raises NegativePoolError.
        """
        demands: Dict[str, Tuple[FluxPool, float, float]] = {}
        for t in transfers:
            pool, scalable, fixed = demands.get(t.source.name, (t.source, 0.0, 0.0))
            if t.scalable:
                scalable += t.amount
            else:
                fixed += t.amount
            demands[t.source.name] = (pool, scalable, fixed)

        factors = {}
        for name, (pool, scalable, fixed) in demands.items():
            room = max(0.0, pool.magnitude - fixed)
            if scalable > room:
                factors[name] = room / scalable
                logger.debug(f"Scaled flows out of {name} by {factors[name]:.4f}")

        if not factors:
            return transfers
        return [
            Transfer(t.source, t.destination, t.amount * factors[t.source.name], t.scalable)
            if t.scalable and t.source.name in factors else t
            for t in transfers
        ]

    @staticmethod
    def _apply(transfers: List[Transfer]):
        """Withdraw every flow, then deposit every flow."""
        in_transit = [
            (t.source.subtract(UnitVal(t.amount, Unit.PGC)), t.destination)
            for t in transfers if t.amount > 0
        ]
        for flux, destination in in_transit:
            destination.add(flux)

    # =========================================================================
    # OUTPUT
    # =========================================================================

    def record_outputs(self, date: float):
        for key, value in self._current_outputs().items():
            self.record(key, date, value)
        if self.state.tracking:
            self._tracking_records.extend(p.tracking_record(date) for p in self.state.pools())

    def truncate_history(self, date: float):
        super().truncate_history(date)
        self._tracking_records = [r for r in self._tracking_records if r.date <= date + DATE_EPSILON]

    def tracked_pools(self) -> List[FluxPool]:
        return self.state.pools() if self.state.tracking else []

    def get_tracking_data(self) -> List[TrackingRecord]:
        return list(self._tracking_records)

    def total_carbon(self) -> float:
        return self.state.total_carbon()

    def get_status(self) -> Dict:
        status = super().get_status()
        status.update({
            "biomes": self.get_biome_list(),
            "tracking": self.state.tracking,
            "pools": {p.name: p.value(Unit.PGC) for p in self.state.pools()},
            "total_carbon": self.total_carbon(),
        })
        return status
