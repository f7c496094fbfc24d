"""Downstream record type and the collaborator protocols the engine consumes."""

from typing import Any, Dict, List, Optional, Protocol

from .roster import Kind


class DownstreamRecord:
    """An entity confirmed to exist downstream.

    Only ``name`` matters to the roster; ``id`` and ``attributes`` are
    carried through untouched for the caller.

    Args:
        name:        userName for users, displayName for groups.
        id:          Downstream identifier, if the service assigned one.
        attributes:  Raw resource representation returned by the service.
    """

    def __init__(self, name: str, id: Optional[str] = None,
                 attributes: Optional[Dict[str, Any]] = None):
        self.name = name
        self.id = id
        self.attributes = dict(attributes or {})

    def __eq__(self, other):
        if not isinstance(other, DownstreamRecord):
            return NotImplemented
        return self.name == other.name and self.id == other.id

    def __hash__(self):
        return hash((self.name, self.id))

    def __repr__(self):
        return f"DownstreamRecord({self.name!r}, id={self.id!r})"


class DownstreamLookup(Protocol):
    """Read side of the downstream service."""

    def find_by_name(self, kind: Kind, name: str) -> DownstreamRecord:
        """Exact-match lookup.  Raises ``NotFoundError`` when absent."""
        ...

    def list_all(self, kind: Kind) -> List[DownstreamRecord]:
        """Native listing call; may be capped and therefore incomplete."""
        ...


class DownstreamMutate(Protocol):
    """Write side of the downstream service."""

    def create(self, kind: Kind, record: DownstreamRecord) -> DownstreamRecord:
        ...

    def delete(self, kind: Kind, name: str) -> None:
        ...
