"""
Climate Engine — Core
Owns the components, routes messages between them, and drives the
init -> spin-up -> run -> reset -> shutdown lifecycle.
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Set, Union
from enum import Enum, auto
import copy
import json
import logging

from .component import Component, BiomeComponent, DATE_EPSILON
from .router import MessageRouter
from .messages import MessageType, MessageData
from .units import UnitVal
from .visitor import Visitor
from .fluxpool import TrackingReport
from .errors import (
    DuplicateComponentError,
    InstanceInvalidError,
    LifecycleError,
    SpinupDivergenceError,
    UnknownCapabilityError,
    UnsupportedResetError,
)
from ..config import CoreConfig, CORE

logger = logging.getLogger(__name__)


ComponentFactory = Callable[[CoreConfig], List[Component]]


class LifecycleState(Enum):
    """Where a core is in its lifecycle."""
    UNINITIALIZED = auto()
    INITIALIZED = auto()    # Components registered, not yet spun up
    SPINNING_UP = auto()
    RUNNING = auto()        # Spun up; at current_date
    RESETTING = auto()
    SHUT_DOWN = auto()


@dataclass
class CoreState:
    """Current state of a core."""
    lifecycle: LifecycleState = LifecycleState.UNINITIALIZED
    prepared: bool = False
    spun_up: bool = False
    in_spinup: bool = False
    current_date: float = 0.0
    spinup_steps: int = 0

    # Inputs changed for dates already computed
    dirty: bool = False
    reset_date: Optional[float] = None


class Core:
    """
    One independent model instance.

    Manages:
    - Component registration and message routing
    - Dependency ordering
    - Spin-up, stepping, and checkpointed reset
    - Visitors called after each completed date
    """

    def __init__(self, config: CoreConfig = CORE, index: Optional[int] = None,
                 component_factory: Optional[ComponentFactory] = None):
        self.config = copy.deepcopy(config)
        self.config.validate()
        self.index = index
        self._component_factory = component_factory

        self.router = MessageRouter()
        self._components: Dict[str, Component] = {}
        self._order: List[Component] = []
        self.visitors: List[Visitor] = []

        self.state = CoreState(current_date=self.config.start_date)
        self._disabled_outputs: Set[str] = set(self.config.disabled_outputs)
        self._warned_spinup_visitors: Set[int] = set()

    def __repr__(self) -> str:
        return f"Core(index={self.index}, {self.lifecycle.name}, date={self.current_date})"

    # =========================================================================
    # ACCESSORS
    # =========================================================================

    @property
    def lifecycle(self) -> LifecycleState:
        return self.state.lifecycle

    @property
    def is_valid(self) -> bool:
        return self.state.lifecycle != LifecycleState.SHUT_DOWN

    @property
    def start_date(self) -> float:
        return self.config.start_date

    @property
    def end_date(self) -> float:
        return self.config.end_date

    @property
    def tracking_date(self) -> float:
        return self.config.tracking_date

    @property
    def time_step(self) -> float:
        return self.config.time_step

    @property
    def current_date(self) -> float:
        return self.state.current_date

    @property
    def run_name(self) -> str:
        return self.config.run_name

    @property
    def in_spinup(self) -> bool:
        return self.state.in_spinup

    @property
    def is_spun_up(self) -> bool:
        return self.state.spun_up

    @property
    def is_dirty(self) -> bool:
        return self.state.dirty

    @property
    def reset_date(self) -> Optional[float]:
        return self.state.reset_date

    @property
    def spinup_steps(self) -> int:
        return self.state.spinup_steps

    @property
    def components(self) -> List[Component]:
        """Components in run order (registration order before prepare_to_run)."""
        if self._order:
            return list(self._order)
        return list(self._components.values())

    def get_component(self, name: str) -> Optional[Component]:
        return self._components.get(name)

    def _check_valid(self):
        if self.state.lifecycle == LifecycleState.SHUT_DOWN:
            raise InstanceInvalidError(f"Core {self.index} has been shut down")

    def _require_initialized(self, operation: str):
        self._check_valid()
        if self.state.lifecycle == LifecycleState.UNINITIALIZED:
            raise LifecycleError(f"{operation}() called before init()")

    def _require_prepared(self, operation: str):
        self._require_initialized(operation)
        if not self.state.prepared:
            raise LifecycleError(f"{operation}() called before prepare_to_run()")

    # =========================================================================
    # SETUP
    # =========================================================================

    def init(self):
        """Create and register the built-in components. Called once."""
        self._check_valid()
        if self.state.lifecycle != LifecycleState.UNINITIALIZED:
            raise LifecycleError("init() may only be called once")

        factory = self._component_factory
        if factory is None:
            from ..components import default_components
            factory = default_components

        for component in factory(self.config):
            self._register(component)

        self.state.lifecycle = LifecycleState.INITIALIZED
        logger.info(f"Core {self.index} initialized with {len(self._components)} components")

    def _register(self, component: Component):
        if component.name in self._components:
            raise DuplicateComponentError(f"Component {component.name!r} already registered")
        component.init(self)
        self.router.register(component)
        self._components[component.name] = component
        logger.debug(f"Added component {component.name}")

    def add_component(self, component: Component):
        """Register an extra component. Only allowed before prepare_to_run()."""
        self._require_initialized("add_component")
        if self.state.prepared:
            raise LifecycleError("Components cannot be added after prepare_to_run()")
        self._register(component)

    def add_visitor(self, visitor: Visitor):
        self._check_valid()
        self.visitors.append(visitor)

    def prepare_to_run(self):
        """
        Validate capabilities, fix the run order, and capture initial state.

        Raises:
            AmbiguousCapabilityError: two components provide one capability.
            UnknownCapabilityError: a dependency is not provided.
            LifecycleError: called twice, before init(), or on a dependency cycle.
        """
        self._require_initialized("prepare_to_run")
        if self.state.prepared:
            raise LifecycleError("prepare_to_run() may only be called once")

        self.router.validate(self._components.values())
        self._order = self._dependency_order()

        for component in self._order:
            component.prepare_to_run()
        for component in self._order:
            component.capture_initial()

        self.state.prepared = True
        self.state.current_date = self.start_date
        logger.info(
            f"Core {self.index} prepared; run order: "
            f"{', '.join(c.name for c in self._order)}"
        )

    def _dependency_order(self) -> List[Component]:
        """Order components so providers run before their dependents."""
        registered = list(self._components.values())
        needs: Dict[str, Set[str]] = {}
        for component in registered:
            providers = set()
            for dependency in component.dependencies:
                route = self.router.resolve(MessageType.GETDATA, dependency)
                providers.add(route.component.name)
            providers.discard(component.name)
            needs[component.name] = providers

        ordered: List[Component] = []
        placed: Set[str] = set()
        remaining = registered
        while remaining:
            ready = [c for c in remaining if needs[c.name] <= placed]
            if not ready:
                names = ", ".join(c.name for c in remaining)
                raise LifecycleError(f"Circular dependency among components: {names}")
            # Earliest registered first keeps the order stable
            chosen = ready[0]
            ordered.append(chosen)
            placed.add(chosen.name)
            remaining = [c for c in remaining if c is not chosen]
        return ordered

    # =========================================================================
    # MESSAGES
    # =========================================================================

    def send_message(self, msgtype: Union[MessageType, str], capability: str,
                     data: Optional[MessageData] = None) -> UnitVal:
        """
        Route a get or set message to the component that handles it.

        Returns:
            The requested value for GETDATA; the value sent for SETDATA.
        """
        self._require_initialized("send_message")
        msgtype = MessageType.parse(msgtype)
        if data is None:
            data = MessageData()

        result = self.router.dispatch(msgtype, capability, data)

        if msgtype == MessageType.SETDATA:
            self._mark_dirty(data.time)
            return data.value
        return result

    def _mark_dirty(self, time: Optional[float]):
        """Note that inputs changed for dates already computed."""
        if not self.state.spun_up:
            return

        if time is None:
            target = self.start_date - self.time_step
        elif time <= self.current_date + DATE_EPSILON:
            target = float(time) - self.time_step
        else:
            return

        if self.state.reset_date is None or target < self.state.reset_date:
            self.state.reset_date = target
        if not self.state.dirty:
            logger.debug(f"Core {self.index} marked dirty; reset pending to {self.state.reset_date}")
        self.state.dirty = True

    # =========================================================================
    # RUNNING
    # =========================================================================

    def _date_of_step(self, n: int) -> float:
        return self.start_date + n * self.time_step

    def _step_index(self, date: float) -> int:
        return int(round((date - self.start_date) / self.time_step))

    def run(self, to_date: Optional[float] = None):
        """
        Run forward to ``to_date`` (the end date if None or non-positive).

        Spins up first if needed, and first resets to the pending reset date
        if inputs changed for dates already computed.
        """
        self._require_prepared("run")

        target = self.end_date if to_date is None or to_date <= 0 else float(to_date)
        if target > self.end_date + DATE_EPSILON:
            raise LifecycleError(f"Run date {target} is after the end date {self.end_date}")

        if self.state.dirty:
            logger.info(f"Auto-resetting core {self.index} to {self.state.reset_date}")
            self.reset(self.state.reset_date)

        if not self.state.spun_up:
            self._spinup()

        if target < self.current_date - DATE_EPSILON:
            raise LifecycleError(
                f"Run date {target} is before the current date {self.current_date}; reset first"
            )

        self.state.lifecycle = LifecycleState.RUNNING
        logger.info(f"Core {self.index} running {self.current_date} -> {target}")

        n = self._step_index(self.current_date) + 1
        date = self._date_of_step(n)
        while date <= target + DATE_EPSILON:
            self._step(date)
            n += 1
            date = self._date_of_step(n)

    def _step(self, date: float):
        last = self.current_date
        try:
            for component in self._order:
                component.run(date)
        except Exception:
            logger.error(f"Core {self.index}: step to {date} failed; restoring {last}")
            for component in self._order:
                if component.can_restore(last):
                    component.restore(last)
                else:
                    logger.warning(f"{component.name}: cannot restore {last}")
            raise

        for component in self._order:
            component.checkpoint(date)
        self.state.current_date = date
        self._visit(date)

    def _visit(self, date: float):
        for visitor in self.visitors:
            if visitor.should_visit(False, date):
                visitor.visit_core(self)
                for component in self._order:
                    component.accept(visitor)

    def _spinup(self):
        """Run spin-up steps until every component is stable."""
        self.state.lifecycle = LifecycleState.SPINNING_UP
        self.state.in_spinup = True
        self.state.current_date = self.start_date

        step = 0
        if self.config.do_spinup:
            logger.info(f"Core {self.index} spinning up (max {self.config.max_spinup} steps)")
            stable = False
            while not stable and step < self.config.max_spinup:
                step += 1
                stable = True
                for component in self._order:
                    stable = component.run_spinup(step) and stable
                self._poll_spinup_visitors(step)

            if not stable:
                self._rewind_to_initial()
                logger.error(f"Core {self.index}: spin-up did not converge in {step} steps")
                raise SpinupDivergenceError(
                    f"Spin-up did not converge within {self.config.max_spinup} steps"
                )
            logger.info(f"Core {self.index} spun up in {step} steps")

        self.state.spinup_steps = step
        self.state.in_spinup = False
        self.state.spun_up = True
        for component in self._order:
            component.checkpoint(self.start_date)
        self.state.lifecycle = LifecycleState.RUNNING

    def _poll_spinup_visitors(self, step: int):
        for visitor in self.visitors:
            if visitor.should_visit(True, step) and id(visitor) not in self._warned_spinup_visitors:
                self._warned_spinup_visitors.add(id(visitor))
                logger.warning(
                    f"{type(visitor).__name__} asked to visit during spin-up; "
                    f"spin-up steps are never visited"
                )

    def _rewind_to_initial(self):
        for component in self._order:
            component.restore_initial()
        self.state.spun_up = False
        self.state.in_spinup = False
        self.state.spinup_steps = 0
        self.state.current_date = self.start_date
        self.state.lifecycle = LifecycleState.INITIALIZED

    # =========================================================================
    # RESET
    # =========================================================================

    def reset(self, date: float = 0.0):
        """
        Rewind the model.

        A date before the start date rewinds to the initial state and spins up
        again; the start date restores the post-spin-up state; a later date
        restores the nearest checkpoint at or before it.

        The default of 0 falls before any calendar-year start date, so a bare
        ``reset()`` is a full restart that reruns spin-up. Pass the start
        date to keep the spun-up state.

        Raises:
            UnsupportedResetError: ``date`` is after the current date, or a
                component cannot rewind that far.
        """
        self._require_prepared("reset")
        date = float(date)

        if date > self.current_date + DATE_EPSILON:
            raise UnsupportedResetError(
                f"Cannot reset to {date}: after the current date {self.current_date}"
            )

        if date >= self.start_date - DATE_EPSILON and self.state.spun_up:
            for component in self._order:
                if not component.can_restore(date):
                    raise UnsupportedResetError(f"{component.name} cannot reset to {date}")

        self.state.lifecycle = LifecycleState.RESETTING
        logger.info(f"Resetting core {self.index} to {date}")

        if date < self.start_date - DATE_EPSILON or not self.state.spun_up:
            self._rewind_to_initial()
            self._spinup()
        else:
            restored = [component.reset(date) for component in self._order]
            self.state.current_date = min(restored) if restored else self.start_date
            self.state.lifecycle = LifecycleState.RUNNING

        if self.state.dirty and date <= self.state.reset_date + DATE_EPSILON:
            self.state.dirty = False
            self.state.reset_date = None

    # =========================================================================
    # BIOMES
    # =========================================================================

    def _biome_components(self) -> List[BiomeComponent]:
        return [c for c in self._components.values() if isinstance(c, BiomeComponent)]

    def get_biome_list(self) -> List[str]:
        self._require_initialized("get_biome_list")
        components = self._biome_components()
        if not components:
            return []
        return components[0].get_biome_list()

    def create_biome(self, biome: str):
        components = self._checked_biome_components(None, biome)
        self._restructure_biomes(
            components, lambda c: c.create_biome(biome), f"Created biome {biome}"
        )

    def delete_biome(self, biome: str):
        components = self._checked_biome_components(biome, None)
        self._restructure_biomes(
            components, lambda c: c.delete_biome(biome), f"Deleted biome {biome}"
        )

    def rename_biome(self, old_name: str, new_name: str):
        """
        Rename a biome in place.

        Stocks, parameters, checkpoints and recorded outputs move to the new
        name; the current date and spin-up are kept.
        """
        components = self._checked_biome_components(old_name, new_name)
        for component in components:
            component.rename_biome(old_name, new_name)
        logger.info(f"Core {self.index}: Renamed biome {old_name} to {new_name}")

    def _checked_biome_components(self, old_name: Optional[str],
                                  new_name: Optional[str]) -> List[BiomeComponent]:
        """Biome components, once every one of them has accepted the change."""
        self._require_initialized("biome")
        components = self._biome_components()
        if not components:
            raise UnknownCapabilityError("No component keeps biomes")
        for component in components:
            component.check_biome_change(old_name, new_name)
        return components

    def _restructure_biomes(self, components: List[BiomeComponent],
                            change: Callable[[BiomeComponent], None], description: str):
        """Add or remove a biome; a prepared core is rewound to its pre-spin-up state."""
        if not self.state.prepared:
            for component in components:
                change(component)
            logger.info(description)
            return

        self._rewind_to_initial()
        try:
            for component in components:
                change(component)
        finally:
            # Stored checkpoints have the old structure; the changed state is the new start
            for component in self._order:
                component.capture_initial()
            self.state.dirty = False
            self.state.reset_date = None
        logger.info(f"{description}; core {self.index} rewound to its pre-spin-up state")

    # =========================================================================
    # OUTPUT
    # =========================================================================

    def output_enabled(self, component_name: str) -> bool:
        self._check_valid()
        return component_name not in self._disabled_outputs

    def disable_output(self, component_name: str):
        self._check_valid()
        self._disabled_outputs.add(component_name)

    def enable_output(self, component_name: str):
        self._check_valid()
        self._disabled_outputs.discard(component_name)

    def get_tracking_data(self) -> TrackingReport:
        """Source tracking records of every component, in date order."""
        self._require_initialized("get_tracking_data")
        records = []
        for component in self.components:
            records.extend(component.get_tracking_data())
        records.sort(key=lambda r: r.date)
        return TrackingReport(records)

    def get_status(self) -> Dict:
        """Get current core status."""
        self._check_valid()
        return {
            "index": self.index,
            "run_name": self.run_name,
            "lifecycle": self.lifecycle.name,
            "current_date": self.current_date,
            "start_date": self.start_date,
            "end_date": self.end_date,
            "spun_up": self.state.spun_up,
            "spinup_steps": self.state.spinup_steps,
            "dirty": self.state.dirty,
            "reset_date": self.state.reset_date,
            "components": [c.get_status() for c in self.components],
            "visitors": len(self.visitors),
        }

    def export_tracking(self, filepath: str):
        """Export the status and tracking records to a JSON file."""
        self._check_valid()
        report = {
            "status": self.get_status(),
            "tracking": [r.to_dict() for r in self.get_tracking_data()],
        }
        with open(filepath, 'w') as f:
            json.dump(report, f, indent=2, default=str)
        logger.info(f"Tracking data exported to {filepath}")

    # =========================================================================
    # SHUTDOWN
    # =========================================================================

    def shut_down(self):
        """Release every component. The core is unusable afterwards."""
        self._check_valid()
        for component in reversed(self.components):
            component.shut_down()
        self._components.clear()
        self._order.clear()
        self.visitors.clear()
        self.router.clear()
        self.state.lifecycle = LifecycleState.SHUT_DOWN
        logger.info(f"Core {self.index} shut down")
