"""
Tests for the carbon cycle component:
- Spin-up to steady state
- Carbon conservation
- Inputs and parameters through messages
- Biome creation, renaming and deletion
"""

import pytest
from climate_engine.core.simulation import Core, LifecycleState
from climate_engine.core.messages import (
    MessageType,
    MessageData,
    ATMOSPHERIC_CO2,
    EARTH_CARBON,
    VEG_C,
    SOIL_C,
    NPP,
    FFI_EMISSIONS,
    LUC_EMISSIONS,
    LUC_UPTAKE,
    DACCS_UPTAKE,
    BETA,
    F_NPPV,
    PREINDUSTRIAL_CO2,
    RF_TOTAL,
)
from climate_engine.core.units import Unit, UnitVal
from climate_engine.core.errors import (
    BiomeError,
    InvalidMessageError,
    MissingDataError,
    NegativePoolError,
    UnitMismatchError,
    UnknownCapabilityError,
)
from climate_engine.config import CoreConfig, PGC_PER_PPMV_CO2


def new_core(prepare=True, **settings):
    config = CoreConfig(**{"start_date": 1745.0, "end_date": 1850.0, **settings})
    core = Core(config)
    core.init()
    if prepare:
        core.prepare_to_run()
    return core


def get(core, capability, date=None):
    return core.send_message(MessageType.GETDATA, capability, MessageData(time=date))


def put(core, capability, value, unit, date=None):
    return core.send_message(
        MessageType.SETDATA, capability, MessageData(time=date, value=UnitVal(value, unit))
    )


def emit(core, capability, rate, first, last):
    for year in range(first, last + 1):
        put(core, capability, rate, Unit.PGC_YR, year)


# =============================================================================
# SPIN-UP
# =============================================================================

class TestSpinup:
    """Tests for spin-up to preindustrial steady state."""

    def test_atmosphere_held_at_preindustrial(self):
        core = new_core()
        core.run(1745)

        assert core.is_spun_up
        assert 1 < core.spinup_steps < core.config.max_spinup
        assert get(core, ATMOSPHERIC_CO2).value(Unit.PPMV_CO2) == pytest.approx(277.15, rel=1e-12)

    def test_steady_without_emissions(self):
        core = new_core()
        core.run(1800)

        assert get(core, ATMOSPHERIC_CO2).value() == pytest.approx(277.15, abs=0.01)
        assert get(core, RF_TOTAL).value() == pytest.approx(0.0, abs=1e-3)

    def test_land_near_equilibrium(self):
        core = new_core()
        core.run(1745)
        carbon = core.get_component("carbon-cycle")

        # NPP balances respiration once spun up
        npp = get(core, NPP).value()
        rh = carbon.state.rh["global"]
        assert npp == pytest.approx(56.2)
        assert rh == pytest.approx(npp, rel=1e-4)

    def test_preindustrial_co2_parameter(self):
        core = new_core()
        put(core, PREINDUSTRIAL_CO2, 285.0, Unit.PPMV_CO2)
        core.run(1745)
        assert get(core, ATMOSPHERIC_CO2).value() == pytest.approx(285.0)


# =============================================================================
# CONSERVATION
# =============================================================================

class TestConservation:
    """Tests that carbon only moves between pools."""

    def test_total_carbon_constant(self):
        core = new_core()
        emit(core, FFI_EMISSIONS, 5.0, 1746, 1850)
        emit(core, LUC_EMISSIONS, 1.0, 1746, 1850)
        emit(core, LUC_UPTAKE, 0.3, 1800, 1850)
        emit(core, DACCS_UPTAKE, 0.5, 1820, 1850)

        core.run(1745)
        carbon = core.get_component("carbon-cycle")
        initial = carbon.total_carbon()

        core.run()
        assert carbon.total_carbon() == pytest.approx(initial, rel=1e-10)

    def test_earth_pool_loses_emissions(self):
        core = new_core()
        emit(core, FFI_EMISSIONS, 5.0, 1746, 1755)
        core.run(1745)
        before = get(core, EARTH_CARBON).value()

        core.run(1755)
        assert get(core, EARTH_CARBON).value() == pytest.approx(before - 50.0)

    def test_emissions_warm_the_planet(self):
        core = new_core()
        emit(core, FFI_EMISSIONS, 5.0, 1746, 1850)
        core.run()

        assert get(core, ATMOSPHERIC_CO2).value() > 300.0
        assert get(core, RF_TOTAL).value() > 0.0
        assert get(core, "global_tas").value() > 0.0

    def test_overdrawn_earth_pool_stops_run(self):
        core = new_core()
        put(core, FFI_EMISSIONS, 10000.0, Unit.PGC_YR, 1750)

        with pytest.raises(NegativePoolError):
            core.run(1760)
        assert core.current_date == 1749.0

        put(core, FFI_EMISSIONS, 5.0, Unit.PGC_YR, 1750)
        core.run(1760)
        assert core.current_date == 1760.0


# =============================================================================
# INPUTS AND PARAMETERS
# =============================================================================

class TestMessages:
    """Tests for carbon cycle inputs and parameters."""

    def test_input_round_trip(self):
        core = new_core()
        put(core, FFI_EMISSIONS, 2.5, Unit.PGC_YR, 1800)
        assert get(core, FFI_EMISSIONS, 1800).value() == 2.5
        with pytest.raises(MissingDataError):
            get(core, FFI_EMISSIONS, 1801)

    def test_input_converted_to_pgc(self):
        core = new_core()
        put(core, FFI_EMISSIONS, 3.0, Unit.GTC_YR, 1800)
        assert get(core, FFI_EMISSIONS, 1800).value(Unit.PGC_YR) == 3.0

    def test_input_needs_date(self):
        core = new_core()
        with pytest.raises(InvalidMessageError):
            put(core, FFI_EMISSIONS, 1.0, Unit.PGC_YR)

    def test_input_rejects_negative(self):
        core = new_core()
        with pytest.raises(InvalidMessageError):
            put(core, FFI_EMISSIONS, -1.0, Unit.PGC_YR, 1800)

    def test_input_rejects_wrong_unit(self):
        core = new_core()
        with pytest.raises(UnitMismatchError):
            put(core, FFI_EMISSIONS, 1.0, Unit.W_M2, 1800)

    def test_set_returns_value(self):
        core = new_core()
        result = put(core, FFI_EMISSIONS, 1.0, Unit.PGC_YR, 1800)
        assert result == UnitVal(1.0, Unit.PGC_YR)

    def test_parameter_round_trip(self):
        core = new_core()
        assert get(core, BETA).value() == pytest.approx(0.36)
        put(core, BETA, 0.5, Unit.UNITLESS)
        assert get(core, BETA).value() == 0.5

    def test_parameter_rejects_date(self):
        core = new_core()
        with pytest.raises(InvalidMessageError):
            put(core, BETA, 0.5, Unit.UNITLESS, 1800)

    def test_parameter_validation(self):
        core = new_core()
        with pytest.raises(InvalidMessageError):
            put(core, F_NPPV, 0.9, Unit.UNITLESS)
        with pytest.raises(InvalidMessageError):
            put(core, BETA, -0.1, Unit.UNITLESS)
        assert get(core, F_NPPV).value() == pytest.approx(0.35)

    def test_dated_output(self):
        core = new_core()
        emit(core, FFI_EMISSIONS, 5.0, 1746, 1850)
        core.run(1760)

        co2_1750 = get(core, ATMOSPHERIC_CO2, 1750).value()
        assert 277.15 < co2_1750 < get(core, ATMOSPHERIC_CO2).value()
        assert get(core, ATMOSPHERIC_CO2, 1745).value() == pytest.approx(277.15)
        with pytest.raises(MissingDataError):
            get(core, ATMOSPHERIC_CO2, 1770)

    def test_atmospheric_carbon_units(self):
        core = new_core()
        core.run(1745)
        carbon = get(core, "atmos_carbon")
        assert carbon.unit == Unit.PGC
        assert carbon.value() == pytest.approx(277.15 * PGC_PER_PPMV_CO2)


# =============================================================================
# BIOMES
# =============================================================================

class TestBiomes:
    """Tests for per-biome land pools and parameters."""

    def test_default_biome(self):
        core = new_core()
        assert core.get_biome_list() == ["global"]
        assert get(core, "global.veg_c").value() == 550.0
        assert get(core, VEG_C).value() == 550.0

    def test_create_biome(self):
        core = new_core()
        core.create_biome("forest")

        assert core.get_biome_list() == ["global", "forest"]
        assert get(core, "forest.veg_c").value() == 550.0
        assert get(core, VEG_C).value() == 1100.0
        assert get(core, "forest.soil_c").value() == 1782.0
        assert get(core, SOIL_C).value() == 3564.0

    def test_biome_parameters_are_separate(self):
        core = new_core()
        core.create_biome("forest")
        put(core, "forest.beta", 0.5, Unit.UNITLESS)

        assert get(core, "forest.beta").value() == 0.5
        assert get(core, "global.beta").value() == pytest.approx(0.36)
        assert get(core, BETA).value() == pytest.approx(0.36)

    def test_rename_keeps_stocks_and_parameters(self):
        core = new_core()
        core.create_biome("forest")
        put(core, "forest.beta", 0.5, Unit.UNITLESS)
        veg = get(core, "forest.veg_c").value()

        core.rename_biome("forest", "boreal")

        assert core.get_biome_list() == ["global", "boreal"]
        assert get(core, "boreal.beta").value() == 0.5
        assert get(core, "boreal.veg_c").value() == veg
        with pytest.raises(BiomeError):
            get(core, "forest.veg_c")

    def test_rename_after_run_keeps_the_run(self):
        core = new_core(tracking_date=1760.0)
        emit(core, FFI_EMISSIONS, 5.0, 1746, 1850)
        put(core, "global.beta", 0.5, Unit.UNITLESS)
        core.run(1800)

        veg = get(core, "global.veg_c").value()
        veg_1790 = get(core, "global.veg_c", 1790).value()
        co2 = get(core, ATMOSPHERIC_CO2).value()

        core.rename_biome("global", "world")

        assert core.current_date == 1800.0
        assert core.is_spun_up
        assert get(core, "world.veg_c").value() == veg
        assert get(core, "world.veg_c", 1790).value() == veg_1790
        assert get(core, "world.beta").value() == 0.5
        assert get(core, ATMOSPHERIC_CO2).value() == co2
        with pytest.raises(BiomeError):
            get(core, "global.veg_c")

        # Tracking records follow the new pool names
        report = core.get_tracking_data()
        assert report.for_pool("world.veg_c")
        assert not report.for_pool("global.veg_c")
        assert "world.soil_c" in dict(report.for_pool("atmos_c")[-1].sources)
        assert not any(s.startswith("global.") for r in report for s, _ in r.sources)

        # Stored dates stay resettable under the new name
        core.reset(1790)
        assert get(core, "world.veg_c").value() == veg_1790

    def test_renamed_run_continues_unchanged(self):
        renamed = new_core()
        plain = new_core()
        for core in (renamed, plain):
            emit(core, FFI_EMISSIONS, 5.0, 1746, 1850)
            core.run(1800)

        renamed.rename_biome("global", "world")
        renamed.run()
        plain.run()

        assert get(renamed, "world.soil_c").value() == get(plain, "global.soil_c").value()
        assert get(renamed, ATMOSPHERIC_CO2).value() == get(plain, ATMOSPHERIC_CO2).value()

    def test_rejected_change_keeps_the_run(self):
        core = new_core()
        emit(core, FFI_EMISSIONS, 5.0, 1746, 1850)
        core.run(1800)
        co2 = get(core, ATMOSPHERIC_CO2).value()

        rejected = [
            lambda: core.create_biome("bad.name"),
            lambda: core.create_biome("global"),
            lambda: core.delete_biome("global"),
            lambda: core.delete_biome("tundra"),
            lambda: core.rename_biome("tundra", "taiga"),
            lambda: core.rename_biome("global", "bad.name"),
        ]
        for change in rejected:
            with pytest.raises(BiomeError):
                change()
            assert core.current_date == 1800.0
            assert core.is_spun_up
            assert core.lifecycle == LifecycleState.RUNNING

        assert core.get_biome_list() == ["global"]
        assert get(core, ATMOSPHERIC_CO2).value() == co2
        core.reset(1790)
        core.run(1810)
        assert core.current_date == 1810.0

    def test_delete_biome(self):
        core = new_core()
        core.create_biome("forest")
        core.delete_biome("forest")
        assert core.get_biome_list() == ["global"]

    def test_biome_errors(self):
        core = new_core()
        with pytest.raises(BiomeError):
            core.create_biome("global")
        with pytest.raises(BiomeError):
            core.create_biome("bad.name")
        with pytest.raises(BiomeError):
            core.delete_biome("tundra")
        with pytest.raises(BiomeError):
            core.delete_biome("global")
        with pytest.raises(BiomeError):
            core.rename_biome("tundra", "taiga")
        with pytest.raises(BiomeError):
            get(core, "tundra.veg_c")
        with pytest.raises(UnknownCapabilityError):
            get(core, "tundra.RF_total")

    def test_biomes_before_prepare(self):
        core = new_core(prepare=False)
        core.create_biome("forest")
        core.prepare_to_run()
        core.run(1760)
        assert get(core, "forest.veg_c").value() > 0.0

    def test_biome_change_rewinds(self):
        core = new_core()
        core.run(1760)

        core.create_biome("forest")
        assert core.current_date == 1745.0
        assert not core.is_spun_up
        assert core.lifecycle == LifecycleState.INITIALIZED

        core.run(1770)
        assert core.current_date == 1770.0
        assert get(core, "forest.npp").value() == pytest.approx(56.2, rel=1e-3)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
