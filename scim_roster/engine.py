"""Roster reconciliation engine.

The downstream service only answers exact-match lookups reliably; its
listing call is capped and cannot be trusted to return everything.  The
engine compensates by validating every name in the persisted roster with a
point lookup, then merging in whatever the listing does return:

1. look up each roster name; prune the ones downstream reports missing,
   abort on any other error;
2. add every listed record that step 1 did not already cover;
3. apply the prunes and additions to the roster only once both steps have
   succeeded, so an aborted pass leaves the roster exactly as it was.

Creates record the name in the roster (and persist it) *before* calling
downstream, so an entity whose create response was lost is still tracked.
If the create really failed the entry is pruned by the next pass.  Deletes
touch the roster only after downstream confirms.
"""

import threading
from typing import Dict, List, Optional, Union

import structlog

from .backends import LoadResult, NullBackend, PersistenceBackend
from .errors import NotFoundError, RosterError
from .models import DownstreamLookup, DownstreamMutate, DownstreamRecord
from .roster import Kind, RosterStore, coerce_kind, validate_name


class ReconcileReport:
    """What a reconciliation pass did for one kind.

    Attributes:
        kind:        The kind reconciled.
        records:     De-duplicated downstream records (the membership list).
        kept:        Roster names confirmed by a point lookup.
        pruned:      Roster names downstream reported as missing.
        discovered:  Names found only through the listing call.
    """

    def __init__(self, kind: Kind):
        self.kind = kind
        self.records: List[DownstreamRecord] = []
        self.kept: List[str] = []
        self.pruned: List[str] = []
        self.discovered: List[str] = []

    @property
    def names(self) -> List[str]:
        return [r.name for r in self.records]

    def to_dict(self) -> Dict[str, object]:
        return {
            "kind": self.kind.value,
            "total": len(self.records),
            "kept": sorted(self.kept),
            "pruned": sorted(self.pruned),
            "discovered": sorted(self.discovered),
        }

    def __repr__(self):
        return (f"ReconcileReport({self.kind.value}: total={len(self.records)}, "
                f"pruned={len(self.pruned)}, discovered={len(self.discovered)})")


class ReconciliationEngine:
    """Keeps the roster consistent with downstream.

    Call ``load()`` once before anything else.  A kind whose snapshot failed
    to load stays unavailable: every operation on it raises the load error.

    Args:
        lookup:   Read-side collaborator (``find_by_name`` / ``list_all``).
        mutate:   Write-side collaborator (``create`` / ``delete``).  Defaults
                  to ``lookup`` when that object implements both.
        backend:  Persistence backend; ``NullBackend`` when omitted.
        roster:   Pre-built roster, mainly for tests.
        logger:   structlog logger.
    """

    def __init__(
        self,
        lookup: DownstreamLookup,
        mutate: Optional[DownstreamMutate] = None,
        backend: Optional[PersistenceBackend] = None,
        roster: Optional[RosterStore] = None,
        logger=None,
    ):
        self._log = logger or structlog.get_logger(__name__)
        self.lookup = lookup
        self.mutate = mutate if mutate is not None else lookup
        self.backend = backend if backend is not None else NullBackend(logger=self._log)
        self.roster = roster if roster is not None else RosterStore(logger=self._log)
        self._unavailable: Dict[Kind, RosterError] = {}
        self._lock = threading.RLock()

    # -- Lifecycle -----------------------------------------------------------

    def load(self, strict: bool = False) -> LoadResult:
        """Hydrate the roster from the backend.

        Kinds that fail to load are recorded as unavailable.  With
        ``strict=True`` the first failure is also raised.
        """
        with self._lock:
            result = self.backend.load(self.roster)
            self._unavailable = dict(result.failures)
            for kind, err in result.failures.items():
                self._log.error("roster unavailable for kind", kind=kind.value,
                                error=str(err), error_kind=err.kind.value)
            if strict:
                result.raise_for_failures()
            return result

    def store(self) -> None:
        """Persist the current roster.  Errors propagate.

        Kinds that failed to load are skipped so their snapshot is never
        overwritten with an empty roster.
        """
        with self._lock:
            self._persist()

    def names(self, kind: Union[Kind, str]) -> List[str]:
        """Copy of the roster names for ``kind``."""
        kind = self._available(kind)
        return self.roster.list(kind)

    # -- Reconciliation ------------------------------------------------------

    def get_all(self, kind: Union[Kind, str], persist: bool = False) -> List[DownstreamRecord]:
        """Return every entity of ``kind`` known to exist downstream."""
        return self.reconcile(kind, persist=persist).records

    def reconcile(self, kind: Union[Kind, str], persist: bool = False) -> ReconcileReport:
        """Run one reconciliation pass and report what changed.

        Args:
            kind:     ``Kind.USER`` or ``Kind.GROUP``.
            persist:  Store the healed roster once the pass succeeds.

        Raises:
            RosterError: any lookup/listing failure other than NotFound, with
                the roster left untouched; or a ``store()`` failure when
                ``persist`` is set (the in-memory roster is already healed).
        """
        kind = self._available(kind)
        log = self._log.bind(kind=kind.value)

        with self._lock:
            report = ReconcileReport(kind)
            found: Dict[str, DownstreamRecord] = {}

            for name in self.roster.list(kind):
                try:
                    record = self.lookup.find_by_name(kind, name)
                except NotFoundError:
                    log.info("roster name no longer exists downstream", name=name)
                    report.pruned.append(name)
                    continue
                except RosterError as exc:
                    log.error("lookup failed, aborting reconciliation", name=name,
                              error=str(exc), error_kind=exc.kind.value)
                    raise
                found[name] = record
                found.setdefault(record.name, record)
                report.kept.append(name)

            try:
                listed = self.lookup.list_all(kind)
            except RosterError as exc:
                log.error("listing failed, aborting reconciliation",
                          error=str(exc), error_kind=exc.kind.value)
                raise

            for record in listed:
                if not record.name or record.name in found:
                    continue
                log.info("discovered name missing from roster", name=record.name)
                found[record.name] = record
                report.discovered.append(record.name)

            for name in report.pruned:
                self.roster.delete_name(kind, name)
            for name in report.discovered:
                self.roster.add_name(kind, name)

            # Several roster names may resolve to one entity (case-insensitive
            # userName); the downstream id identifies it when present.
            seen = set()
            for record in found.values():
                key = ("id", record.id) if record.id else ("name", record.name)
                if key not in seen:
                    seen.add(key)
                    report.records.append(record)

            log.info("reconciled", total=len(report.records), pruned=len(report.pruned),
                     discovered=len(report.discovered))

            if persist:
                self._persist()
            return report

    # -- Mutation ------------------------------------------------------------

    def create(self, kind: Union[Kind, str], record: Union[DownstreamRecord, str]) -> DownstreamRecord:
        """Record ``record`` in the roster, persist, then create it downstream."""
        kind = self._available(kind)
        if isinstance(record, str) or record is None:
            record = DownstreamRecord(validate_name(record, kind))
        name = validate_name(record.name, kind)
        log = self._log.bind(kind=kind.value, name=name)

        with self._lock:
            self.roster.add_name(kind, name)
            try:
                self._persist()
            except RosterError as exc:
                log.error("create failed to persist roster", error=str(exc))
                raise

            try:
                created = self.mutate.create(kind, record)
            except RosterError as exc:
                log.error("downstream create failed, entry will be pruned on next pass",
                          error=str(exc), error_kind=exc.kind.value)
                raise
            log.info("created downstream", id=created.id)
            return created

    def delete(self, kind: Union[Kind, str], name: str) -> None:
        """Delete ``name`` downstream, then drop it from the roster and persist."""
        kind = self._available(kind)
        validate_name(name, kind)
        log = self._log.bind(kind=kind.value, name=name)

        with self._lock:
            try:
                self.mutate.delete(kind, name)
            except RosterError as exc:
                log.error("downstream delete failed, roster unchanged",
                          error=str(exc), error_kind=exc.kind.value)
                raise

            self.roster.delete_name(kind, name)
            try:
                self._persist()
            except RosterError as exc:
                log.error("delete failed to persist roster", error=str(exc))
                raise
            log.info("deleted downstream")

    # -- Internals -----------------------------------------------------------

    def _persist(self) -> None:
        writable = [k for k in Kind if k not in self._unavailable]
        self.backend.store(self.roster, kinds=writable)

    def _available(self, kind: Union[Kind, str]) -> Kind:
        kind = coerce_kind(kind)
        err = self._unavailable.get(kind)
        if err is not None:
            raise err
        return kind
