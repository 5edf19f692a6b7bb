"""
Climate Engine — Core Registry
Integer handles for independent cores living in one process.
"""

from typing import Dict, List, Optional
import logging

from .simulation import Core, ComponentFactory
from .errors import InstanceInvalidError
from ..config import CoreConfig, CORE

logger = logging.getLogger(__name__)


class CoreRegistry:
    """
    Hands out cores by index.

    Indices are never reused, so a stale index can never reach a newer core.
    """

    def __init__(self):
        self._cores: Dict[int, Core] = {}
        self._next_index = 0

    def make(self, config: Optional[CoreConfig] = None, log_level: Optional[int] = None,
             component_factory: Optional[ComponentFactory] = None) -> int:
        """Create and init() a core; returns its index."""
        if log_level is not None:
            logging.getLogger("climate_engine").setLevel(log_level)

        index = self._next_index
        self._next_index += 1

        core = Core(config or CORE, index=index, component_factory=component_factory)
        core.init()
        self._cores[index] = core
        logger.info(f"Created core {index}")
        return index

    def get(self, index: int) -> Optional[Core]:
        """The core at ``index``, or None if unknown or shut down."""
        core = self._cores.get(index)
        if core is None or not core.is_valid:
            return None
        return core

    def require(self, index: int) -> Core:
        core = self.get(index)
        if core is None:
            raise InstanceInvalidError(f"No live core with index {index}")
        return core

    def delete(self, index: int):
        """Shut down a core and forget it."""
        core = self._cores.pop(index, None)
        if core is None:
            raise InstanceInvalidError(f"No core with index {index}")
        if core.is_valid:
            core.shut_down()
        logger.info(f"Deleted core {index}")

    def live(self) -> List[int]:
        return sorted(i for i, core in self._cores.items() if core.is_valid)

    def __len__(self) -> int:
        return len(self.live())


# Default registry
REGISTRY = CoreRegistry()


def make_core(config: Optional[CoreConfig] = None, log_level: Optional[int] = None,
              component_factory: Optional[ComponentFactory] = None) -> int:
    return REGISTRY.make(config, log_level, component_factory)


def get_core(index: int) -> Optional[Core]:
    return REGISTRY.get(index)


def require_core(index: int) -> Core:
    return REGISTRY.require(index)


def delete_core(index: int):
    REGISTRY.delete(index)


def live_cores() -> List[int]:
    return REGISTRY.live()
