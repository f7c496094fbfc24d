"""In-memory roster of names known to exist downstream.

A roster holds one set of names per entity ``Kind``.  All mutations are
idempotent and purely in memory; persistence is the job of a backend from
``scim_roster.backends``.
"""

import enum
from typing import Dict, Iterable, List, Optional, Union

import structlog

from .errors import ValidationError


class Kind(str, enum.Enum):
    """Entity kinds tracked by the roster."""

    USER = "user"
    GROUP = "group"

    @property
    def label(self) -> str:
        """Plural label used in log output (``users`` / ``groups``)."""
        return f"{self.value}s"


def coerce_kind(kind: Union["Kind", str]) -> Kind:
    """Accept a ``Kind`` or its string form (``"user"``, ``"groups"``, ...)."""
    if isinstance(kind, Kind):
        return kind
    if isinstance(kind, str):
        value = kind.strip().lower()
        if value.endswith("s"):
            value = value[:-1]
        for member in Kind:
            if member.value == value:
                return member
    raise ValidationError(f"Unknown entity kind: {kind!r}")


def validate_name(name: Optional[str], kind: Optional[Kind] = None) -> str:
    """Reject ``None`` and blank names."""
    if name is None or not isinstance(name, str) or not name.strip():
        raise ValidationError(f"Invalid name: {name!r}", roster_kind=kind)
    return name


class RosterStore:
    """Set of names per kind.

    Not thread-safe; the engine serializes access.
    """

    def __init__(self, logger=None):
        self._names: Dict[Kind, Dict[str, bool]] = {k: {} for k in Kind}
        self._log = logger or structlog.get_logger(__name__)

    def add_name(self, kind: Union[Kind, str], name: str) -> None:
        kind = coerce_kind(kind)
        validate_name(name, kind)
        names = self._names[kind]
        if name not in names:
            self._log.debug("adding name to roster", kind=kind.value, name=name)
            names[name] = True

    def delete_name(self, kind: Union[Kind, str], name: str) -> None:
        kind = coerce_kind(kind)
        validate_name(name, kind)
        if self._names[kind].pop(name, None) is not None:
            self._log.debug("deleting name from roster", kind=kind.value, name=name)

    def list(self, kind: Union[Kind, str]) -> List[str]:
        """Return a copy of the names for ``kind``."""
        return list(self._names[coerce_kind(kind)])

    def count(self, kind: Union[Kind, str]) -> int:
        return len(self._names[coerce_kind(kind)])

    def contains(self, kind: Union[Kind, str], name: str) -> bool:
        return name in self._names[coerce_kind(kind)]

    def __contains__(self, item) -> bool:
        """``(kind, name) in roster``."""
        kind, name = item
        return self.contains(kind, name)

    def replace(self, kind: Union[Kind, str], names: Iterable[str]) -> None:
        """Swap the whole set for ``kind``, used when hydrating from a snapshot."""
        kind = coerce_kind(kind)
        fresh: Dict[str, bool] = {}
        for name in names:
            fresh[validate_name(name, kind)] = True
        self._names[kind] = fresh

    def snapshot(self, kind: Union[Kind, str]) -> Dict[str, bool]:
        """Return the serializable ``name -> True`` mapping for ``kind``."""
        return dict(self._names[coerce_kind(kind)])

    def __repr__(self):
        counts = ", ".join(f"{k.label}={len(v)}" for k, v in self._names.items())
        return f"RosterStore({counts})"
