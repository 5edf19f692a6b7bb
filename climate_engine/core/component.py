"""
Climate Engine — Component Base Class
Base class for all model components (carbon cycle, forcing, temperature...).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
import copy
import logging

from .units import UnitVal
from .messages import MessageType, MessageData
from .fluxpool import TrackingRecord
from .timeseries import TimeSeries
from .errors import BiomeError, UnsupportedResetError, LifecycleError, MissingDataError

logger = logging.getLogger(__name__)

# Dates closer than this are the same date
DATE_EPSILON = 1e-9

Handler = Callable[[MessageData], Optional[UnitVal]]


@dataclass
class Capability:
    """One handler a component registered for a message type."""
    name: str
    handler: Handler
    biome_scoped: bool = False  # Answers to "<biome>.<name>" as well


class Component(ABC):
    """
    Base class for all components.

    A component:
    - Registers the capabilities it answers to (get) and accepts (set)
    - Declares which capabilities it reads during the same step
    - Advances its ``state`` one step at a time
    - Snapshots ``state`` so the core can rewind it

    Everything a component needs to rewind must live in ``self.state``.
    """

    # Kind used by visitors; see accept()
    kind = "component"

    # False for components that can only rewind to the start date
    supports_reset = True

    def __init__(self, name: str):
        self.name = name
        self.core = None
        self.state: Any = None

        self._capabilities: Dict[MessageType, Dict[str, Capability]] = {
            MessageType.GETDATA: {},
            MessageType.SETDATA: {},
        }
        self.dependencies: List[str] = []

        self._initial: Any = None
        self._checkpoints: Dict[float, Any] = {}

        # Per-date outputs, kept outside state so checkpoints stay small
        self.history: Dict[str, TimeSeries] = {}

    # =========================================================================
    # CAPABILITIES
    # =========================================================================

    def provides(self, capability: str, handler: Handler, biome_scoped: bool = False):
        """Answer GETDATA messages for ``capability``."""
        self._capabilities[MessageType.GETDATA][capability] = Capability(
            capability, handler, biome_scoped
        )

    def accepts(self, capability: str, handler: Handler, biome_scoped: bool = False):
        """Accept SETDATA messages for ``capability``."""
        self._capabilities[MessageType.SETDATA][capability] = Capability(
            capability, handler, biome_scoped
        )

    def depends_on(self, capability: str):
        """Declare a capability read during the same step (orders components)."""
        if capability not in self.dependencies:
            self.dependencies.append(capability)

    def capabilities(self, msgtype: MessageType) -> Dict[str, Capability]:
        return dict(self._capabilities[msgtype])

    def get_data(self, capability: str, time: Optional[float] = None) -> UnitVal:
        """Read another component's output through the core."""
        if self.core is None:
            raise LifecycleError(f"{self.name}: not attached to a core")
        return self.core.send_message(MessageType.GETDATA, capability, MessageData(time=time))

    # =========================================================================
    # LIFECYCLE HOOKS
    # =========================================================================

    def init(self, core):
        """Attach to the owning core."""
        self.core = core

    def prepare_to_run(self):
        """Check inputs and build initial state. Called once."""
        pass

    def run_spinup(self, step: int) -> bool:
        """
        Advance one spin-up step.

        Returns:
            True once this component has reached steady state.
        """
        return True

    @abstractmethod
    def run(self, date: float):
        """Advance state to ``date``."""
        pass

    def reset(self, date: float) -> float:
        """Rewind to ``date``; the default restores the nearest checkpoint."""
        return self.restore(date)

    def shut_down(self):
        self._checkpoints.clear()
        self._initial = None
        self.core = None
        logger.debug(f"{self.name}: Shut down")

    # =========================================================================
    # SNAPSHOTS
    # =========================================================================

    def snapshot(self) -> Any:
        return copy.deepcopy(self.state)

    def capture_initial(self):
        """Remember the current state as the pre-spin-up state."""
        self._initial = self.snapshot()
        self._checkpoints.clear()

    def restore_initial(self):
        if self._initial is None:
            raise LifecycleError(f"{self.name}: no initial state captured")
        self.state = copy.deepcopy(self._initial)
        self._checkpoints.clear()
        self.truncate_history(float("-inf"))

    def checkpoint(self, date: float):
        """Record outputs for a completed date and snapshot state."""
        self.record_outputs(date)
        if not self.supports_reset and self._checkpoints:
            return
        self._checkpoints[float(date)] = self.snapshot()

    def record_outputs(self, date: float):
        """Store per-date output kept outside ``state``."""
        pass

    @property
    def checkpoint_dates(self) -> List[float]:
        return sorted(self._checkpoints)

    def can_restore(self, date: float) -> bool:
        eligible = [d for d in self._checkpoints if d <= date + DATE_EPSILON]
        if not eligible:
            return False
        if not self.supports_reset and date > min(self._checkpoints) + DATE_EPSILON:
            return False
        return True

    def restore(self, date: float) -> float:
        """
        Restore the nearest checkpoint at or before ``date``.

        Later checkpoints are dropped and ``truncate_history`` is called with
        the restored date.

        Returns:
            The date actually restored.
        """
        if not self.can_restore(date):
            raise UnsupportedResetError(f"{self.name}: cannot reset to {date}")

        restored = max(d for d in self._checkpoints if d <= date + DATE_EPSILON)
        self.state = copy.deepcopy(self._checkpoints[restored])
        for d in [d for d in self._checkpoints if d > restored]:
            del self._checkpoints[d]
        self.truncate_history(restored)
        logger.debug(f"{self.name}: Restored state at {restored}")
        return restored

    def truncate_history(self, date: float):
        """Drop output kept outside ``state`` for dates after ``date``."""
        for key in list(self.history):
            series = self.history[key]
            series.truncate(date + DATE_EPSILON)
            if not len(series):
                del self.history[key]

    def record(self, key: str, date: float, value: UnitVal):
        self.history.setdefault(key, TimeSeries(f"{self.name}:{key}")).set(date, value)

    def history_value(self, key: str, time: Optional[float],
                      current: Callable[[], UnitVal]) -> UnitVal:
        """
        Look up an output.

        Undated requests get the current value; dated ones get the value
        recorded for that date, or the current value if the date is the
        core's current date.

        Raises:
            MissingDataError: no value for that date.
        """
        if time is None:
            return current()
        series = self.history.get(key)
        if series is not None and time in series:
            return series[time]
        if self.core is not None and abs(time - self.core.current_date) < DATE_EPSILON:
            return current()
        raise MissingDataError(f"{self.name}: no {key} for date {time}")

    # =========================================================================
    # OUTPUT
    # =========================================================================

    def accept(self, visitor):
        """Hand this component to the visitor method for its kind."""
        method = getattr(visitor, f"visit_{self.kind}", None)
        if method is None:
            method = visitor.visit_component
        method(self)

    def get_tracking_data(self) -> List[TrackingRecord]:
        return []

    def get_status(self) -> Dict:
        """Get current component status."""
        return {
            "name": self.name,
            "kind": self.kind,
            "provides": sorted(self._capabilities[MessageType.GETDATA]),
            "accepts": sorted(self._capabilities[MessageType.SETDATA]),
            "depends_on": list(self.dependencies),
            "checkpoints": len(self._checkpoints),
        }


class BiomeComponent(Component):
    """
    A component that keeps per-biome state.

    The core calls ``check_biome_change`` on every biome component before it
    touches any of them, so a rejected change leaves the run as it was.
    """

    def check_biome_change(self, old_name: Optional[str], new_name: Optional[str]):
        """
        Raise ``BiomeError`` if a biome change cannot be made. Changes nothing.

        ``old_name`` alone is a delete, ``new_name`` alone a create, both a rename.
        """
        biomes = self.get_biome_list()
        if old_name is not None and old_name not in biomes:
            raise BiomeError(f"Biome {old_name!r} does not exist")
        if new_name is not None and new_name in biomes:
            raise BiomeError(f"Biome {new_name!r} already exists")

    @abstractmethod
    def get_biome_list(self) -> List[str]:
        pass

    @abstractmethod
    def create_biome(self, biome: str):
        pass

    @abstractmethod
    def delete_biome(self, biome: str):
        pass

    @abstractmethod
    def rename_biome(self, old_name: str, new_name: str):
        """
        Rename in place: live state, checkpoints and recorded outputs all move
        to the new name, so the core keeps the run.
        """
        pass
