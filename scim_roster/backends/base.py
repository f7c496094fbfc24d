"""Shared load/store bookkeeping for roster persistence backends.

A backend only has to say where each kind's snapshot lives and how to
read/write raw bytes there.  Decoding, partial-failure handling and logging
are done here once for every variant:

- ``_read`` returns ``None`` when the snapshot does not exist (first run),
  raw bytes otherwise, and raises ``TransientIOError`` when the store cannot
  be reached.
- ``_write`` raises ``TransientIOError`` on failure.

Each kind is loaded and stored independently, so a broken group snapshot
never prevents the user roster from loading (and vice versa).
"""

import json
from typing import Dict, Iterable, List, Optional

import structlog

from ..errors import CorruptStateError, RosterError
from ..roster import Kind, RosterStore


def encode_snapshot(snapshot: Dict[str, bool]) -> bytes:
    """Serialize a ``name -> True`` mapping.  Key order is irrelevant but sorted for stable diffs."""
    return json.dumps(snapshot, indent=4, sort_keys=True).encode("utf-8")


def decode_snapshot(raw: bytes, kind: Optional[Kind] = None, location: str = "") -> List[str]:
    """Decode a snapshot into the list of present names.

    ``{}`` is a valid empty roster.  Anything that is not a JSON object of
    non-blank names mapped to booleans (including an empty file) raises
    ``CorruptStateError``.  Names mapped to ``false`` are treated as absent.
    """
    try:
        data = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise CorruptStateError(
            f"Unparsable {kind.label if kind else 'roster'} snapshot: {exc}",
            roster_kind=kind, location=location,
        ) from exc

    if not isinstance(data, dict):
        raise CorruptStateError(
            f"Snapshot must be a JSON object, got {type(data).__name__}",
            roster_kind=kind, location=location,
        )

    names = []
    for name, present in data.items():
        if not name.strip():
            raise CorruptStateError("Snapshot contains a blank name",
                                    roster_kind=kind, location=location)
        if not isinstance(present, bool):
            raise CorruptStateError(
                f"Snapshot value for {name!r} must be a boolean",
                roster_kind=kind, location=location,
            )
        if present:
            names.append(name)
    return names


class LoadResult:
    """Outcome of ``PersistenceBackend.load()``.

    Kinds that loaded successfully are already applied to the roster;
    ``failures`` maps every kind that did not to the error it raised.
    """

    def __init__(self, failures: Optional[Dict[Kind, RosterError]] = None):
        self.failures: Dict[Kind, RosterError] = dict(failures or {})

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def loaded(self) -> List[Kind]:
        return [k for k in Kind if k not in self.failures]

    def raise_for_failures(self) -> None:
        """Raise the first failure, users before groups."""
        for kind in Kind:
            if kind in self.failures:
                raise self.failures[kind]

    def __repr__(self):
        failed = ", ".join(k.value for k in self.failures) or "none"
        return f"LoadResult(failed={failed})"


class PersistenceBackend:
    """Base class for roster backends.

    Args:
        user_obj:   Object/file name of the user snapshot.
        group_obj:  Object/file name of the group snapshot.
        logger:     structlog logger; defaults to this module's logger.
    """

    name = "base"

    def __init__(self, user_obj: str, group_obj: str, logger=None):
        self.objects = {Kind.USER: user_obj, Kind.GROUP: group_obj}
        self._log = (logger or structlog.get_logger(__name__)).bind(backend=self.name)

    # -- Variant hooks -------------------------------------------------------

    def location(self, kind: Kind) -> str:
        raise NotImplementedError

    def _read(self, kind: Kind) -> Optional[bytes]:
        raise NotImplementedError

    def _write(self, kind: Kind, data: bytes) -> None:
        raise NotImplementedError

    # -- Public API ----------------------------------------------------------

    def load(self, roster: RosterStore) -> LoadResult:
        """Hydrate ``roster`` from both snapshots, one kind at a time."""
        self._log.info("loading roster")
        failures: Dict[Kind, RosterError] = {}
        for kind in Kind:
            location = self.location(kind)
            log = self._log.bind(kind=kind.value, location=location)
            log.info("loading snapshot")
            try:
                raw = self._read(kind)
                if raw is None:
                    log.warning("snapshot does not exist, starting empty")
                    names: List[str] = []
                else:
                    names = decode_snapshot(raw, kind, location)
            except RosterError as exc:
                if exc.roster_kind is None:
                    exc.roster_kind = kind
                log.error("failed to load snapshot", error=str(exc), error_kind=exc.kind.value)
                failures[kind] = exc
                continue
            roster.replace(kind, names)
            log.info("loaded snapshot", count=len(names))
        return LoadResult(failures)

    def store(self, roster: RosterStore, kinds: Optional[Iterable[Kind]] = None) -> None:
        """Write the snapshots for ``kinds`` (both by default).

        Every selected kind is attempted; the first error is raised once
        the others have had their chance to be written.
        """
        wanted = set(Kind) if kinds is None else set(kinds)
        selected = [k for k in Kind if k in wanted]
        self._log.info("storing roster", kinds=[k.value for k in selected])
        errors: List[RosterError] = []
        for kind in selected:
            location = self.location(kind)
            log = self._log.bind(kind=kind.value, location=location)
            data = encode_snapshot(roster.snapshot(kind))
            try:
                self._write(kind, data)
            except RosterError as exc:
                if exc.roster_kind is None:
                    exc.roster_kind = kind
                log.error("failed to store snapshot", error=str(exc), error_kind=exc.kind.value)
                errors.append(exc)
                continue
            log.info("stored snapshot", count=roster.count(kind))
        if errors:
            raise errors[0]

    def __repr__(self):
        return f"{type(self).__name__}(users={self.location(Kind.USER)!r}, groups={self.location(Kind.GROUP)!r})"
