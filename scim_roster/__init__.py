"""scim-roster: durable roster of users and groups provisioned to a SCIM service.

SCIM services that only answer exact-match filters reliably, and cap their
listing endpoint, cannot be trusted to enumerate everything that was
provisioned.  scim-roster keeps the names it knows about in a file, an S3
bucket or Consul KV, and reconciles that roster against the service on
every run.
"""

__version__ = "0.1.0"

from .backends import BackendKind, LoadResult, PersistenceBackend, new_backend
from .config import RosterConfig
from .engine import ReconcileReport, ReconciliationEngine
from .errors import (
    CorruptStateError,
    DownstreamError,
    ErrorKind,
    NotFoundError,
    RosterError,
    TransientIOError,
    ValidationError,
)
from .models import DownstreamLookup, DownstreamMutate, DownstreamRecord
from .roster import Kind, RosterStore

__all__ = [
    "__version__",
    "BackendKind",
    "CorruptStateError",
    "DownstreamError",
    "DownstreamLookup",
    "DownstreamMutate",
    "DownstreamRecord",
    "ErrorKind",
    "Kind",
    "LoadResult",
    "NotFoundError",
    "PersistenceBackend",
    "ReconcileReport",
    "ReconciliationEngine",
    "RosterConfig",
    "RosterError",
    "RosterStore",
    "TransientIOError",
    "ValidationError",
    "new_backend",
]
