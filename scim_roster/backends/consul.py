"""Distributed key-value backend on top of the Consul HTTP KV API.

Keys are ``<prefix>/<user_obj>`` and ``<prefix>/<group_obj>``.  Reads use
``GET /v1/kv/<key>?raw`` (404 means the key does not exist) and writes use
``PUT /v1/kv/<key>``, which Consul acknowledges with a literal ``true``
body.  Consul serves KV reads from the leader by default, so a read that
follows a successful PUT observes it.
"""

import urllib.parse
from typing import Dict, Optional

import requests

from ..errors import TransientIOError
from ..roster import Kind
from .base import PersistenceBackend

DEFAULT_ADDRESS = "http://127.0.0.1:8500"


def normalize_address(address: Optional[str]) -> str:
    """Accept ``host:port`` as well as full URLs (``CONSUL_HTTP_ADDR`` allows both)."""
    address = (address or DEFAULT_ADDRESS).strip().rstrip("/")
    if "://" not in address:
        address = f"http://{address}"
    return address


def join_key(prefix: str, obj: str) -> str:
    prefix = prefix.strip("/")
    obj = obj.lstrip("/")
    return f"{prefix}/{obj}" if prefix else obj


class ConsulBackend(PersistenceBackend):
    """Stores snapshots as two Consul KV entries.

    Args:
        prefix:     Key namespace.
        user_obj:   User snapshot key name.
        group_obj:  Group snapshot key name.
        address:    Consul agent address (``http://127.0.0.1:8500`` by default).
        token:      ACL token sent as ``X-Consul-Token``.
        timeout:    Per-request timeout in seconds.
        session:    ``requests.Session`` to reuse; created when omitted.
    """

    name = "consul"

    def __init__(self, prefix: str, user_obj: str, group_obj: str,
                 address: Optional[str] = None, token: Optional[str] = None,
                 timeout: float = 10, session: Optional[requests.Session] = None,
                 logger=None):
        super().__init__(user_obj, group_obj, logger=logger)
        self.prefix = prefix
        self.address = normalize_address(address)
        self.token = token
        self.timeout = timeout
        self.session = session or requests.Session()

    def key(self, kind: Kind) -> str:
        return join_key(self.prefix, self.objects[kind])

    def location(self, kind: Kind) -> str:
        return f"consul:{self.key(kind)}"

    def _url(self, kind: Kind) -> str:
        return f"{self.address}/v1/kv/{urllib.parse.quote(self.key(kind))}"

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["X-Consul-Token"] = self.token
        return headers

    def _read(self, kind: Kind) -> Optional[bytes]:
        try:
            resp = self.session.get(f"{self._url(kind)}?raw", headers=self._headers(),
                                    timeout=self.timeout)
        except requests.RequestException as exc:
            raise TransientIOError(f"Error fetching {kind.label} from consul: {exc}",
                                   roster_kind=kind, location=self.location(kind)) from exc
        if resp.status_code == 404:
            return None
        if resp.status_code != 200:
            raise TransientIOError(
                f"Error fetching {kind.label} from consul: HTTP {resp.status_code}",
                roster_kind=kind, location=self.location(kind),
            )
        return resp.content

    def _write(self, kind: Kind, data: bytes) -> None:
        try:
            resp = self.session.put(self._url(kind), data=data, headers=self._headers(),
                                    timeout=self.timeout)
        except requests.RequestException as exc:
            raise TransientIOError(f"Failed to PUT {kind.label} in consul: {exc}",
                                   roster_kind=kind, location=self.location(kind)) from exc
        if resp.status_code != 200 or resp.text.strip() != "true":
            raise TransientIOError(
                f"Failed to PUT {kind.label} in consul: HTTP {resp.status_code} {resp.text.strip()}",
                roster_kind=kind, location=self.location(kind),
            )
