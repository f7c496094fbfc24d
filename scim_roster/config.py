"""Runtime configuration for scim-roster."""

import dataclasses
import os
from typing import Any, Dict, Optional

from .backends import BackendKind
from .backends.consul import DEFAULT_ADDRESS as DEFAULT_CONSUL_ADDRESS
from .errors import ValidationError

DEFAULT_BACKEND = "file"
DEFAULT_PREFIX = "scim-roster-"
DEFAULT_USER_OBJ = "Users.json"
DEFAULT_GROUP_OBJ = "Groups.json"
DEFAULT_LOG_LEVEL = "info"
DEFAULT_LOG_FORMAT = "text"

LOG_LEVELS = ("debug", "info", "warning", "error", "critical")
LOG_FORMATS = ("text", "json")

_TRUTHY = ("1", "true", "yes", "on")


@dataclasses.dataclass(frozen=True)
class RosterConfig:
    """Configuration for the roster backend, logging and the SCIM endpoint.

    Attributes:
        backend:        ``file``, ``s3``, ``consul`` or ``null``.  The aliases
                        ``object-store`` and ``distributed-kv`` are accepted.
        prefix:         Path, key or namespace prefix for both snapshots.
        user_obj:       Name of the user snapshot file/object/key.
        group_obj:      Name of the group snapshot file/object/key.
        bucket:         S3 bucket (``s3`` backend only).
        consul_address: Consul agent address (``consul`` backend only).
        consul_token:   Consul ACL token.
        log_level:      One of ``LOG_LEVELS``.
        log_format:     ``text`` or ``json``.
        scim_endpoint:  Base URL of the downstream SCIM service.
        scim_token:     Bearer token for the SCIM service.
        scim_username:  HTTP Basic username, used when no token is set.
        scim_password:  HTTP Basic password.
        tls_no_verify:  Skip TLS certificate verification for the SCIM service.
        ca_bundle:      Path to a CA bundle for the SCIM service.
        proxy:          HTTP/HTTPS proxy URL for SCIM calls.
        page_size:      ``count`` sent with the listing call.
        timeout:        Per-request timeout in seconds for SCIM and Consul calls.
    """

    backend: str = DEFAULT_BACKEND
    prefix: str = DEFAULT_PREFIX
    user_obj: str = DEFAULT_USER_OBJ
    group_obj: str = DEFAULT_GROUP_OBJ
    bucket: Optional[str] = None
    consul_address: Optional[str] = DEFAULT_CONSUL_ADDRESS
    consul_token: Optional[str] = None
    log_level: str = DEFAULT_LOG_LEVEL
    log_format: str = DEFAULT_LOG_FORMAT
    scim_endpoint: Optional[str] = None
    scim_token: Optional[str] = None
    scim_username: Optional[str] = None
    scim_password: Optional[str] = None
    tls_no_verify: bool = False
    ca_bundle: Optional[str] = None
    proxy: Optional[str] = None
    page_size: Optional[int] = None
    timeout: float = 30

    @classmethod
    def from_env(cls, **overrides: Any) -> "RosterConfig":
        """Build a config from ``SCIM_ROSTER_*`` environment variables.

        ``CONSUL_HTTP_ADDR`` and ``CONSUL_HTTP_TOKEN`` are used when the
        roster-specific Consul variables are unset.  Keyword arguments whose
        value is not ``None`` take precedence over the environment.
        """
        env = os.environ

        env_map = {
            "SCIM_ROSTER_BACKEND": "backend",
            "SCIM_ROSTER_PREFIX": "prefix",
            "SCIM_ROSTER_USER_OBJ": "user_obj",
            "SCIM_ROSTER_GROUP_OBJ": "group_obj",
            "SCIM_ROSTER_BUCKET": "bucket",
            "SCIM_ROSTER_LOG_LEVEL": "log_level",
            "SCIM_ROSTER_LOG_FORMAT": "log_format",
            "SCIM_ROSTER_SCIM_ENDPOINT": "scim_endpoint",
            "SCIM_ROSTER_SCIM_TOKEN": "scim_token",
            "SCIM_ROSTER_SCIM_USERNAME": "scim_username",
            "SCIM_ROSTER_SCIM_PASSWORD": "scim_password",
            "SCIM_ROSTER_CA_BUNDLE": "ca_bundle",
            "SCIM_ROSTER_PROXY": "proxy",
        }
        kwargs: Dict[str, Any] = {}
        for env_key, field_name in env_map.items():
            val = env.get(env_key)
            if val is not None:
                kwargs[field_name] = val

        address = env.get("SCIM_ROSTER_CONSUL_ADDRESS") or env.get("CONSUL_HTTP_ADDR")
        if address:
            kwargs["consul_address"] = address
        token = env.get("SCIM_ROSTER_CONSUL_TOKEN") or env.get("CONSUL_HTTP_TOKEN")
        if token:
            kwargs["consul_token"] = token

        timeout_env = env.get("SCIM_ROSTER_TIMEOUT")
        if timeout_env is not None:
            try:
                kwargs["timeout"] = float(timeout_env)
            except ValueError as exc:
                raise ValidationError(f"SCIM_ROSTER_TIMEOUT is not a number: {timeout_env!r}") from exc

        page_size_env = env.get("SCIM_ROSTER_PAGE_SIZE")
        if page_size_env is not None:
            try:
                kwargs["page_size"] = int(page_size_env)
            except ValueError as exc:
                raise ValidationError(f"SCIM_ROSTER_PAGE_SIZE is not an integer: {page_size_env!r}") from exc

        no_verify_env = env.get("SCIM_ROSTER_TLS_NO_VERIFY")
        if no_verify_env is not None:
            kwargs["tls_no_verify"] = no_verify_env.strip().lower() in _TRUTHY

        kwargs.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**kwargs)

    def validate(self) -> "RosterConfig":
        """Check option values; returns ``self`` so calls can be chained."""
        kind = BackendKind.parse(self.backend)
        if kind is BackendKind.S3 and not self.bucket:
            raise ValidationError("The s3 backend requires a bucket")
        if not self.user_obj or not self.group_obj:
            raise ValidationError("Snapshot object names must not be empty")
        if self.user_obj == self.group_obj:
            raise ValidationError("User and group snapshots must use different object names")
        if self.log_level.lower() not in LOG_LEVELS:
            raise ValidationError(f"Unknown log level: {self.log_level!r}")
        if self.log_format.lower() not in LOG_FORMATS:
            raise ValidationError(f"Unknown log format: {self.log_format!r}")
        if self.timeout <= 0:
            raise ValidationError("Timeout must be positive")
        if self.page_size is not None and self.page_size <= 0:
            raise ValidationError("Page size must be positive")
        if bool(self.scim_username) != bool(self.scim_password):
            raise ValidationError("Basic auth needs both a username and a password")
        return self
