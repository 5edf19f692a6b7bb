"""
Climate Engine — Configuration
Run settings, component parameters, and physical constants.
"""

from dataclasses import dataclass, field
from typing import Dict, List


# Physical constants
PGC_PER_PPMV_CO2 = 2.13      # PgC of atmospheric carbon per ppmv CO2
CO2_FORCING_COEFF = 5.35     # W/m2 per ln(C/C0)


@dataclass
class BiomeParameters:
    """Land carbon parameters of one biome."""
    npp_flux0: float = 56.2   # PgC/yr preindustrial net primary production
    beta: float = 0.36        # CO2 fertilization
    q10_rh: float = 2.0       # Heterotrophic respiration temperature sensitivity
    f_nppv: float = 0.35      # Fraction of NPP to vegetation
    f_nppd: float = 0.60      # Fraction of NPP to detritus (rest to soil)
    f_litterd: float = 0.98   # Fraction of litter to detritus (rest to soil)

    # Turnover rates (1/yr)
    veg_turnover: float = 0.035
    detritus_rh_rate: float = 0.25
    detritus_soil_rate: float = 0.6
    soil_rh_rate: float = 0.02


@dataclass
class BiomePools:
    """Initial land carbon stocks of one biome (PgC)."""
    veg_c: float = 550.0
    detritus_c: float = 55.0
    soil_c: float = 1782.0


@dataclass
class CarbonCycleConfig:
    """Carbon cycle initial conditions and parameters."""

    # Initial stocks (PgC)
    earth_c: float = 5500.0
    ocean_c: float = 38000.0

    # Atmosphere
    preindustrial_co2_ppmv: float = 277.15

    # Atmosphere-ocean exchange rate (1/yr)
    ocean_exchange: float = 0.01

    # Biomes in creation order; the first is the default biome
    biomes: List[str] = field(default_factory=lambda: ["global"])
    biome_pools: Dict[str, BiomePools] = field(default_factory=dict)
    biome_parameters: Dict[str, BiomeParameters] = field(default_factory=dict)

    def pools_for(self, biome: str) -> BiomePools:
        return self.biome_pools.get(biome, BiomePools())

    def parameters_for(self, biome: str) -> BiomeParameters:
        return self.biome_parameters.get(biome, BiomeParameters())


@dataclass
class ForcingConfig:
    """Radiative forcing parameters."""
    co2_coefficient: float = CO2_FORCING_COEFF


@dataclass
class TemperatureConfig:
    """One-box energy balance parameters."""
    ecs: float = 3.0              # degC per CO2 doubling
    heat_capacity: float = 8.0    # W yr m-2 K-1, ocean mixed layer

    @property
    def f2x(self) -> float:
        """Forcing of a CO2 doubling (W/m2)."""
        import math
        return CO2_FORCING_COEFF * math.log(2.0)


@dataclass
class CoreConfig:
    """Core run settings and the configuration of the built-in components."""

    # Dates (years)
    start_date: float = 1745.0
    end_date: float = 2300.0
    tracking_date: float = 9999.0   # Source tracking starts here
    time_step: float = 1.0

    # Spin-up
    do_spinup: bool = True
    max_spinup: int = 2000
    spinup_tolerance: float = 1.0e-6   # PgC change per step considered stable

    run_name: str = ""

    # Components whose output visitors should skip
    disabled_outputs: List[str] = field(default_factory=list)

    # Built-in components
    carbon: CarbonCycleConfig = field(default_factory=CarbonCycleConfig)
    forcing: ForcingConfig = field(default_factory=ForcingConfig)
    temperature: TemperatureConfig = field(default_factory=TemperatureConfig)

    @property
    def total_steps(self) -> int:
        return int(round((self.end_date - self.start_date) / self.time_step))

    def validate(self):
        """Raise ValueError for settings the core cannot run with."""
        if self.time_step <= 0:
            raise ValueError(f"time_step must be positive, got {self.time_step}")
        if self.end_date <= self.start_date:
            raise ValueError(
                f"end_date {self.end_date} must be after start_date {self.start_date}"
            )
        if self.max_spinup < 1:
            raise ValueError(f"max_spinup must be at least 1, got {self.max_spinup}")
        if not self.carbon.biomes:
            raise ValueError("At least one biome is required")


# Default configurations
CORE = CoreConfig()
CARBON = CORE.carbon
FORCING = CORE.forcing
TEMPERATURE = CORE.temperature
