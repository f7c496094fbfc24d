"""No-op backend for ephemeral runs that keep no roster between invocations."""

from typing import Iterable, Optional

from ..roster import Kind, RosterStore
from .base import LoadResult, PersistenceBackend


class NullBackend(PersistenceBackend):

    name = "null"

    def __init__(self, logger=None):
        super().__init__("", "", logger=logger)

    def location(self, kind: Kind) -> str:
        return "null"

    def load(self, roster: RosterStore) -> LoadResult:
        return LoadResult()

    def store(self, roster: RosterStore, kinds: Optional[Iterable[Kind]] = None) -> None:
        pass
