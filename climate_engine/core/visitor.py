"""
Climate Engine — Visitors
Read-only observers the core calls after every completed date.
"""

from typing import Dict, Iterable, List
import logging

from .messages import MessageType, MessageData
from .timeseries import TimeSeries
from .fluxpool import TrackingRecord, TrackingReport

logger = logging.getLogger(__name__)


class Visitor:
    """
    Base visitor.

    The core asks ``should_visit`` once per date; on True it calls
    ``visit_core`` and then lets every component ``accept`` the visitor.
    Visitors must not change model state.
    """

    def should_visit(self, in_spinup: bool, date: float) -> bool:
        return not in_spinup

    def visit_core(self, core):
        pass

    def visit_component(self, component):
        pass

    def visit_carbon_cycle(self, component):
        self.visit_component(component)

    def visit_forcing(self, component):
        self.visit_component(component)

    def visit_temperature(self, component):
        self.visit_component(component)


class FluxPoolVisitor(Visitor):
    """Collects the source breakdown of tracked carbon pools."""

    def __init__(self):
        self.records: List[TrackingRecord] = []
        self._core = None

    def visit_core(self, core):
        self._core = core

    def visit_carbon_cycle(self, component):
        core = self._core
        if core is None or not core.output_enabled(component.name):
            return
        if core.current_date < core.tracking_date:
            return
        for pool in component.tracked_pools():
            self.records.append(pool.tracking_record(core.current_date))

    def report(self) -> TrackingReport:
        return TrackingReport(list(self.records))

    def clear(self):
        self.records.clear()


class TimeSeriesVisitor(Visitor):
    """Records chosen capabilities into time series, one value per date."""

    def __init__(self, capabilities: Iterable[str]):
        self.series: Dict[str, TimeSeries] = {name: TimeSeries(name) for name in capabilities}

    def visit_core(self, core):
        date = core.current_date
        for name, series in self.series.items():
            value = core.send_message(MessageType.GETDATA, name, MessageData(time=date))
            series.set(date, value)

    def __getitem__(self, capability: str) -> TimeSeries:
        return self.series[capability]
