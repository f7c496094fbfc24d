"""Roster persistence backends and the factory that selects one.

Entry point: ``new_backend(config)``.
"""

import enum
from typing import Union

from ..errors import ValidationError
from .base import LoadResult, PersistenceBackend, decode_snapshot, encode_snapshot
from .consul import ConsulBackend
from .file import FileBackend
from .null import NullBackend
from .s3 import S3Backend


class BackendKind(str, enum.Enum):
    """Closed set of backend variants."""

    FILE = "file"
    S3 = "s3"
    CONSUL = "consul"
    NULL = "null"

    @classmethod
    def parse(cls, value: Union["BackendKind", str, None]) -> "BackendKind":
        if isinstance(value, BackendKind):
            return value
        tag = (value or "").strip().lower()
        tag = _ALIASES.get(tag, tag)
        for member in cls:
            if member.value == tag:
                return member
        raise ValidationError(f"Unknown backend type: {value!r}")


_ALIASES = {
    "object-store": "s3",
    "distributed-kv": "consul",
    "none": "null",
}


def new_backend(config, logger=None, s3_client=None, session=None) -> PersistenceBackend:
    """Build the backend selected by ``config.backend``.

    Args:
        config:     A ``RosterConfig`` (anything with the same attributes works).
        logger:     structlog logger handed to the backend.
        s3_client:  Pre-built boto3 S3 client for the ``s3`` backend.
        session:    ``requests.Session`` for the ``consul`` backend.

    Raises:
        ValidationError: unknown backend tag or missing bucket, before any I/O.
    """
    kind = BackendKind.parse(config.backend)

    if kind is BackendKind.FILE:
        return FileBackend(config.prefix, config.user_obj, config.group_obj, logger=logger)
    if kind is BackendKind.S3:
        if not config.bucket:
            raise ValidationError("The s3 backend requires a bucket")
        return S3Backend(config.bucket, config.prefix, config.user_obj, config.group_obj,
                         client=s3_client, logger=logger)
    if kind is BackendKind.CONSUL:
        return ConsulBackend(config.prefix, config.user_obj, config.group_obj,
                             address=config.consul_address, token=config.consul_token,
                             timeout=config.timeout, session=session, logger=logger)
    return NullBackend(logger=logger)


__all__ = [
    "BackendKind",
    "ConsulBackend",
    "FileBackend",
    "LoadResult",
    "NullBackend",
    "PersistenceBackend",
    "S3Backend",
    "decode_snapshot",
    "encode_snapshot",
    "new_backend",
]
