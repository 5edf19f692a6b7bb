"""
Climate Engine — Message Router
Maps capability names to the component handlers that serve them.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional
import logging

from .component import Component, Capability
from .messages import MessageType, MessageData, split_biome
from .errors import AmbiguousCapabilityError, UnknownCapabilityError

logger = logging.getLogger(__name__)


@dataclass
class Route:
    """A resolved message destination."""
    component: Component
    capability: Capability
    biome: Optional[str] = None


class MessageRouter:
    """
    Routes get/set messages to components.

    Lookup tries the exact capability name first, then splits
    ``<biome>.<name>`` and routes to a biome-scoped handler for ``name``.
    """

    def __init__(self):
        self._tables: Dict[MessageType, Dict[str, List[Route]]] = {
            MessageType.GETDATA: {},
            MessageType.SETDATA: {},
        }

    def register(self, component: Component):
        """Add every capability of a component; duplicates are kept for validate()."""
        for msgtype, table in self._tables.items():
            for name, capability in component.capabilities(msgtype).items():
                table.setdefault(name, []).append(Route(component, capability))
        logger.debug(f"Registered capabilities of {component.name}")

    def clear(self):
        for table in self._tables.values():
            table.clear()

    def validate(self, components: Iterable[Component]):
        """
        Check that every capability has one provider and every declared
        dependency is provided.

        Raises:
            AmbiguousCapabilityError: two components serve the same name.
            UnknownCapabilityError: a dependency names no capability.
        """
        conflicts = []
        for msgtype, table in self._tables.items():
            for name, routes in sorted(table.items()):
                if len(routes) > 1:
                    owners = ", ".join(r.component.name for r in routes)
                    conflicts.append(f"{name} ({msgtype.value}: {owners})")
        if conflicts:
            raise AmbiguousCapabilityError(
                "Capabilities with more than one provider: " + "; ".join(conflicts)
            )

        for component in components:
            for dependency in component.dependencies:
                if not self.has_capability(dependency):
                    raise UnknownCapabilityError(
                        f"{component.name} depends on {dependency!r}, which no component provides"
                    )

    def resolve(self, msgtype: MessageType, capability: str) -> Route:
        table = self._tables[msgtype]

        routes = table.get(capability)
        biome = None
        if not routes:
            biome, name = split_biome(capability)
            if biome is not None:
                routes = [r for r in table.get(name, []) if r.capability.biome_scoped]

        if not routes:
            raise UnknownCapabilityError(
                f"No component handles {msgtype.value} for {capability!r}"
            )
        if len(routes) > 1:
            owners = ", ".join(r.component.name for r in routes)
            raise AmbiguousCapabilityError(f"{capability!r} is provided by {owners}")

        route = routes[0]
        return Route(route.component, route.capability, biome)

    def dispatch(self, msgtype: MessageType, capability: str, data: MessageData):
        """Deliver a message and return the handler's result."""
        route = self.resolve(msgtype, capability)
        if route.biome is not None:
            data = data.with_biome(route.biome)
        return route.capability.handler(data)

    def providers_of(self, capability: str,
                     msgtype: MessageType = MessageType.GETDATA) -> List[str]:
        return [r.component.name for r in self._tables[msgtype].get(capability, [])]

    def capabilities(self, msgtype: MessageType = MessageType.GETDATA) -> List[str]:
        return sorted(self._tables[msgtype])

    def has_capability(self, capability: str,
                       msgtype: MessageType = MessageType.GETDATA) -> bool:
        try:
            self.resolve(msgtype, capability)
        except UnknownCapabilityError:
            return False
        except AmbiguousCapabilityError:
            return True
        return True
