"""Visibility policy: one pluggable predicate per access type."""

from collections.abc import Callable

from echomap.core.logging import get_logger
from echomap.memory.base import AccessType, Memory

logger = get_logger("discovery.policy")

VisibilityPredicate = Callable[[Memory, str | None], bool]


def public_visibility(memory: Memory, viewer_id: str | None) -> bool:
    """Public memories are visible to any viewer."""
    return True


class VisibilityPolicy:
    """Maps access types to predicates deciding whether a viewer may see a memory.

    Access types without a registered predicate are excluded from discovery
    entirely. Only PUBLIC is registered by default; FRIENDS, EMOTION_MATCH and
    PRIVATE stay hidden until a predicate is registered for them.
    """

    def __init__(self, predicates: dict[AccessType, VisibilityPredicate] | None = None):
        if predicates is None:
            predicates = {AccessType.PUBLIC: public_visibility}
        self._predicates = dict(predicates)

    def register(self, access_type: AccessType, predicate: VisibilityPredicate) -> None:
        """Register (or replace) the predicate for an access type."""
        if access_type in self._predicates:
            logger.warning(f"Visibility predicate for {access_type.value} replaced")
        self._predicates[access_type] = predicate

    @property
    def discoverable_types(self) -> tuple[AccessType, ...]:
        """Access types that can appear in discovery results, in enum order."""
        return tuple(a for a in AccessType if a in self._predicates)

    @property
    def unconditional(self) -> bool:
        """True when every registered predicate admits any viewer."""
        return all(p is public_visibility for p in self._predicates.values())

    def admits(self, memory: Memory, viewer_id: str | None) -> bool:
        predicate = self._predicates.get(memory.access_type)
        if predicate is None:
            return False
        return predicate(memory, viewer_id)
