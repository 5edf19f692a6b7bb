"""
Test: Full Model Runs
Drives the built-in components end to end: an emissions scenario run in
five-year chunks, reset and re-run, automatic reset after changed inputs,
source tracking, and visitors.
"""

import pytest
from climate_engine.core.registry import CoreRegistry
from climate_engine.core.simulation import Core
from climate_engine.core.messages import (
    MessageType,
    MessageData,
    ATMOSPHERIC_CO2,
    FFI_EMISSIONS,
    GLOBAL_TAS,
    RF_TOTAL,
    RF_OTHER,
    BETA,
    ECS,
)
from climate_engine.core.units import Unit, UnitVal
from climate_engine.core.visitor import FluxPoolVisitor, TimeSeriesVisitor
from climate_engine.config import CoreConfig


def get(core, capability, date=None):
    return core.send_message(MessageType.GETDATA, capability, MessageData(time=date)).value()


def put(core, capability, value, unit, date=None):
    core.send_message(MessageType.SETDATA, capability, MessageData(time=date, value=UnitVal(value, unit)))


def new_core(**settings):
    config = CoreConfig(**{"start_date": 1745.0, "end_date": 1850.0, **settings})
    core = Core(config)
    core.init()
    core.prepare_to_run()
    return core


def emit(core, rate, first, last):
    for year in range(first, last + 1):
        put(core, FFI_EMISSIONS, rate, Unit.PGC_YR, year)


# =============================================================================
# SCENARIO
# =============================================================================

def test_rising_emissions_scenario():
    """Emissions set every five years ahead of the run raise CO2 steadily."""
    registry = CoreRegistry()
    idx = registry.make(CoreConfig(start_date=1750.0, end_date=2100.0))
    core = registry.require(idx)
    core.prepare_to_run()

    co2 = []
    for t in range(1750, 2100, 5):
        for year in range(t + 1, t + 6):
            put(core, FFI_EMISSIONS, 0.05 * (year - 1750), Unit.PGC_YR, year)
        core.run(t + 5)
        assert not core.is_dirty
        co2.append(get(core, ATMOSPHERIC_CO2, t + 5))

    assert core.current_date == 2100.0
    assert all(later > earlier for earlier, later in zip(co2, co2[1:]))
    assert co2[-1] > 400.0
    assert get(core, RF_TOTAL) > 0.0
    assert get(core, GLOBAL_TAS) > 0.5

    # Re-running from the start reproduces the scenario
    core.reset(0)
    core.run(2100)
    assert get(core, ATMOSPHERIC_CO2) == pytest.approx(co2[-1], rel=1e-12)

    registry.delete(idx)
    assert registry.get(idx) is None


def test_reset_to_start_is_deterministic():
    core = new_core()
    emit(core, 5.0, 1746, 1850)
    core.run()
    co2 = get(core, ATMOSPHERIC_CO2)
    tas = get(core, GLOBAL_TAS)

    core.reset(1745)
    core.run()
    assert get(core, ATMOSPHERIC_CO2) == pytest.approx(co2, rel=1e-12)
    assert get(core, GLOBAL_TAS) == pytest.approx(tas, rel=1e-12)


def test_reset_midway_matches_history():
    core = new_core()
    emit(core, 5.0, 1746, 1850)
    core.run()
    co2_1800 = get(core, ATMOSPHERIC_CO2, 1800)

    core.reset(1800)
    assert core.current_date == 1800.0
    assert get(core, ATMOSPHERIC_CO2) == co2_1800


# =============================================================================
# CHANGED INPUTS
# =============================================================================

def test_past_input_change_marks_dirty():
    core = new_core()
    emit(core, 5.0, 1746, 1850)
    core.run(1800)
    assert not core.is_dirty

    put(core, FFI_EMISSIONS, 20.0, Unit.PGC_YR, 1760)
    assert core.is_dirty
    assert core.reset_date == 1759.0

    # Future inputs leave the flag alone
    put(core, FFI_EMISSIONS, 5.0, Unit.PGC_YR, 1820)
    assert core.reset_date == 1759.0


def test_auto_reset_matches_fresh_run():
    dirty = new_core()
    emit(dirty, 5.0, 1746, 1850)
    dirty.run(1800)
    put(dirty, FFI_EMISSIONS, 20.0, Unit.PGC_YR, 1760)
    dirty.run(1800)
    assert not dirty.is_dirty

    fresh = new_core()
    emit(fresh, 5.0, 1746, 1850)
    put(fresh, FFI_EMISSIONS, 20.0, Unit.PGC_YR, 1760)
    fresh.run(1800)

    assert get(dirty, ATMOSPHERIC_CO2) == pytest.approx(get(fresh, ATMOSPHERIC_CO2), rel=1e-12)
    assert get(dirty, GLOBAL_TAS) == pytest.approx(get(fresh, GLOBAL_TAS), rel=1e-12)


def test_parameter_change_reruns_spinup():
    dirty = new_core()
    emit(dirty, 5.0, 1746, 1850)
    dirty.run(1800)
    put(dirty, BETA, 0.5, Unit.UNITLESS)
    put(dirty, ECS, 4.0, Unit.DEG_C)
    assert dirty.is_dirty
    assert dirty.reset_date == 1744.0
    dirty.run(1800)

    fresh = new_core()
    emit(fresh, 5.0, 1746, 1850)
    put(fresh, BETA, 0.5, Unit.UNITLESS)
    put(fresh, ECS, 4.0, Unit.DEG_C)
    fresh.run(1800)

    assert get(dirty, ATMOSPHERIC_CO2) == pytest.approx(get(fresh, ATMOSPHERIC_CO2), rel=1e-12)


def test_explicit_reset_clears_dirty():
    core = new_core()
    core.run(1800)
    put(core, RF_OTHER, -0.5, Unit.W_M2, 1790)
    assert core.is_dirty

    core.reset(1780)
    assert not core.is_dirty
    core.run(1800)
    assert get(core, RF_TOTAL, 1795) == pytest.approx(get(core, "RF_CO2", 1795))
    assert get(core, RF_TOTAL, 1790) == pytest.approx(get(core, "RF_CO2", 1790) - 0.5)


# =============================================================================
# SOURCE TRACKING
# =============================================================================

def test_tracking_report():
    core = new_core(tracking_date=1760.0)
    emit(core, 5.0, 1746, 1850)
    core.run(1770)

    report = core.get_tracking_data()
    assert report.dates() == [float(y) for y in range(1760, 1771)]
    assert len(report) == 11 * 6

    for record in report:
        assert sum(f for _, f in record.sources) == pytest.approx(1.0)

    atmos = [r for r in report.for_pool("atmos_c") if r.date == 1770.0][0]
    sources = dict(atmos.sources)
    assert sources["earth_c"] > 0.0
    assert sources["atmos_c"] > 0.0
    assert sources["global.soil_c"] > 0.0

    rows = report.to_rows()
    assert set(rows[0]) == {
        "year", "pool_name", "pool_value", "pool_units", "source_name", "source_fraction"
    }


def test_tracking_truncated_on_reset():
    core = new_core(tracking_date=1760.0)
    core.run(1770)
    core.reset(1765)

    report = core.get_tracking_data()
    assert report.dates()[-1] == 1765.0
    assert len(report) == 6 * 6


def test_no_tracking_before_tracking_date():
    core = new_core()
    core.run(1770)
    assert len(core.get_tracking_data()) == 0


# =============================================================================
# VISITORS
# =============================================================================

def test_flux_pool_visitor():
    core = new_core(tracking_date=1760.0)
    visitor = FluxPoolVisitor()
    core.add_visitor(visitor)
    core.run(1770)

    assert len(visitor.records) == 11 * 6
    assert visitor.report().dates() == core.get_tracking_data().dates()


def test_flux_pool_visitor_honours_disabled_output():
    core = new_core(tracking_date=1760.0)
    core.disable_output("carbon-cycle")
    visitor = FluxPoolVisitor()
    core.add_visitor(visitor)
    core.run(1770)

    assert not core.output_enabled("carbon-cycle")
    assert visitor.records == []


def test_time_series_visitor():
    core = new_core()
    emit(core, 5.0, 1746, 1850)
    visitor = TimeSeriesVisitor([ATMOSPHERIC_CO2, GLOBAL_TAS])
    core.add_visitor(visitor)
    core.run(1760)

    co2 = visitor[ATMOSPHERIC_CO2]
    assert co2.dates() == [float(y) for y in range(1746, 1761)]
    assert co2[1760].value() == get(core, ATMOSPHERIC_CO2)
    assert len(visitor[GLOBAL_TAS]) == 15


def test_status_and_export(tmp_path):
    core = new_core(tracking_date=1750.0, run_name="export")
    core.run(1752)

    status = core.get_status()
    assert status["run_name"] == "export"
    assert status["current_date"] == 1752.0
    assert [c["name"] for c in status["components"]] == ["carbon-cycle", "forcing", "temperature"]

    path = tmp_path / "tracking.json"
    core.export_tracking(str(path))
    assert '"atmos_c"' in path.read_text()


def test_workbook_report(tmp_path):
    import openpyxl
    from climate_engine.report import write_workbook

    core = new_core(tracking_date=1750.0)
    emit(core, 5.0, 1746, 1850)
    visitor = TimeSeriesVisitor([ATMOSPHERIC_CO2, GLOBAL_TAS])
    core.add_visitor(visitor)
    core.run(1755)

    path = tmp_path / "run.xlsx"
    write_workbook(str(path), visitor.series, core.get_tracking_data())

    wb = openpyxl.load_workbook(str(path))
    assert wb.sheetnames == ["Outputs", "Source Tracking"]

    outputs = wb["Outputs"]
    assert outputs.cell(row=3, column=2).value == "atmospheric_CO2 (ppmv CO2)"
    assert outputs.cell(row=4, column=1).value == 1746.0
    assert outputs.cell(row=13, column=1).value == 1755.0
    assert outputs.cell(row=13, column=2).value == pytest.approx(get(core, ATMOSPHERIC_CO2))

    tracking = wb["Source Tracking"]
    assert tracking.cell(row=3, column=1).value == "year"
    assert tracking.cell(row=4, column=1).value == 1750.0


def test_run_summary_document(tmp_path):
    import docx
    from climate_engine.report import write_run_summary

    core = new_core(run_name="summary")
    emit(core, 5.0, 1746, 1850)
    visitor = TimeSeriesVisitor([ATMOSPHERIC_CO2])
    core.add_visitor(visitor)
    core.run(1760)

    path = tmp_path / "run.docx"
    write_run_summary(str(path), core, visitor.series)

    doc = docx.Document(str(path))
    text = "\n".join(p.text for p in doc.paragraphs)
    assert "CLIMATE ENGINE RUN SUMMARY" in text
    assert "summary" in text
    assert len(doc.tables) == 3

    components = doc.tables[1]
    assert [row.cells[0].text for row in components.rows[1:]] == ["carbon-cycle", "forcing", "temperature"]
    assert doc.tables[2].rows[1].cells[0].text == ATMOSPHERIC_CO2


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
