"""SCIM 2.0 implementation of the downstream lookup/mutate collaborators.

Status mapping:

- 404 ⇒ ``NotFoundError``
- 429 (after client retries), 5xx, or a transport failure ⇒ ``TransientIOError``
- any other 4xx, or an unparsable body ⇒ ``DownstreamError``

``find_by_name`` treats anything other than exactly one match as not found,
which is how exact-match filters report absence.
"""

from typing import Any, Dict, List, Optional

import requests
import structlog

from .errors import DownstreamError, NotFoundError, RosterError, TransientIOError
from .http_client import SCIMClient, SCIMResponse
from .models import DownstreamRecord
from .payload_factory import ENDPOINTS, filter_for, payload_for, record_from_resource
from .roster import Kind, coerce_kind, validate_name


class ScimDownstream:
    """Exact-match lookups, the capped listing call, create and delete.

    Args:
        client:     A configured ``SCIMClient``.
        page_size:  ``count`` sent with the listing call; ``None`` lets the
                    server pick its default (and cap).
    """

    def __init__(self, client: SCIMClient, page_size: Optional[int] = None, logger=None):
        self.client = client
        self.page_size = page_size
        self._log = logger or structlog.get_logger(__name__)

    # -- DownstreamLookup ----------------------------------------------------

    def find_by_name(self, kind: Kind, name: str) -> DownstreamRecord:
        kind = coerce_kind(kind)
        validate_name(name, kind)
        endpoint = ENDPOINTS[kind]
        resp = self._call(kind, "GET", endpoint, params={"filter": filter_for(kind, name)})
        data = self._json(kind, resp, endpoint)
        resources = data.get("Resources") or []
        if data.get("totalResults") != 1 or len(resources) != 1:
            raise NotFoundError(f"{kind.value} {name!r} not found", roster_kind=kind,
                                location=endpoint)
        return record_from_resource(kind, resources[0])

    def list_all(self, kind: Kind) -> List[DownstreamRecord]:
        kind = coerce_kind(kind)
        endpoint = ENDPOINTS[kind]
        params = {"count": str(self.page_size)} if self.page_size else None
        resp = self._call(kind, "GET", endpoint, params=params)
        data = self._json(kind, resp, endpoint)
        records = [record_from_resource(kind, r) for r in data.get("Resources") or []]
        total = data.get("totalResults")
        if isinstance(total, int) and total > len(records):
            self._log.warning("listing truncated by server", kind=kind.value,
                              returned=len(records), total=total)
        return records

    # -- DownstreamMutate ----------------------------------------------------

    def create(self, kind: Kind, record: DownstreamRecord) -> DownstreamRecord:
        kind = coerce_kind(kind)
        validate_name(record.name, kind)
        endpoint = ENDPOINTS[kind]
        resp = self._call(kind, "POST", endpoint, payload=payload_for(kind, record))
        created = record_from_resource(kind, self._json(kind, resp, endpoint))
        if not created.id:
            return self.find_by_name(kind, record.name)
        if not created.name:
            created.name = record.name
        return created

    def delete(self, kind: Kind, name: str) -> None:
        kind = coerce_kind(kind)
        record = self.find_by_name(kind, name)
        if not record.id:
            raise DownstreamError(f"{kind.value} {name!r} has no id", roster_kind=kind)
        self._call(kind, "DELETE", f"{ENDPOINTS[kind]}/{record.id}")

    # -- Internals -----------------------------------------------------------

    def _call(self, kind: Kind, method: str, path: str,
              params: Optional[Dict[str, str]] = None,
              payload: Optional[Dict[str, Any]] = None) -> SCIMResponse:
        try:
            if method == "GET":
                resp = self.client.get(path, params=params)
            elif method == "POST":
                resp = self.client.post(path, payload or {})
            else:
                resp = self.client.delete(path)
        except requests.RequestException as exc:
            raise TransientIOError(f"{method} {path} failed: {exc}", roster_kind=kind,
                                   location=path) from exc
        _raise_for_status(kind, method, path, resp)
        return resp

    def _json(self, kind: Kind, resp: SCIMResponse, path: str) -> Dict[str, Any]:
        try:
            data = resp.json()
        except ValueError as exc:
            raise DownstreamError(f"Unparsable response from {path}: {exc}", roster_kind=kind,
                                  location=path, status_code=resp.status_code) from exc
        if not isinstance(data, dict):
            raise DownstreamError(f"Unexpected response body from {path}", roster_kind=kind,
                                  location=path, status_code=resp.status_code)
        return data


def _raise_for_status(kind: Kind, method: str, path: str, resp: SCIMResponse) -> None:
    if resp.ok:
        return
    detail = _error_detail(resp)
    message = f"{method} {path} returned HTTP {resp.status_code}"
    if detail:
        message = f"{message}: {detail}"
    err: RosterError
    if resp.status_code == 404:
        err = NotFoundError(message, roster_kind=kind, location=path)
    elif resp.status_code == 429 or resp.status_code >= 500:
        err = TransientIOError(message, roster_kind=kind, location=path)
    else:
        err = DownstreamError(message, roster_kind=kind, location=path,
                              status_code=resp.status_code)
    raise err


def _error_detail(resp: SCIMResponse) -> str:
    """Pull ``detail`` out of a SCIM error body, if there is one."""
    try:
        data = resp.json()
    except ValueError:
        return ""
    if isinstance(data, dict):
        return str(data.get("detail") or "")
    return ""
