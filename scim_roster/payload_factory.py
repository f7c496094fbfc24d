"""Builds SCIM payloads for roster entities and maps resources back to names.

Users are identified by ``userName`` and groups by ``displayName``; those
are the attributes the downstream exact-match filter is run against and
the names stored in the roster.
"""

from typing import Any, Dict, Optional

from .models import DownstreamRecord
from .roster import Kind

USER_SCHEMA = "urn:ietf:params:scim:schemas:core:2.0:User"
GROUP_SCHEMA = "urn:ietf:params:scim:schemas:core:2.0:Group"

ENDPOINTS = {Kind.USER: "/Users", Kind.GROUP: "/Groups"}
NAME_ATTRIBUTES = {Kind.USER: "userName", Kind.GROUP: "displayName"}


def make_user(user_name: str, extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Generate a minimal User payload.

    ``displayName`` and ``active`` default to the userName and ``True``;
    anything in ``extra`` (name, emails, externalId, ...) overrides them.
    """
    payload: Dict[str, Any] = {
        "schemas": [USER_SCHEMA],
        "userName": user_name,
        "displayName": user_name,
        "active": True,
    }
    if extra:
        payload.update(extra)
    payload["userName"] = user_name
    return payload


def make_group(
    display_name: str, members: Optional[list] = None, extra: Optional[Dict[str, Any]] = None
) -> Dict[str, Any]:
    """Generate a minimal Group payload."""
    payload: Dict[str, Any] = {
        "schemas": [GROUP_SCHEMA],
        "displayName": display_name,
    }
    if members:
        payload["members"] = members
    if extra:
        payload.update(extra)
    payload["displayName"] = display_name
    return payload


def payload_for(kind: Kind, record: DownstreamRecord) -> Dict[str, Any]:
    """SCIM create payload for ``record``; server-managed fields are dropped."""
    extra = {k: v for k, v in record.attributes.items() if k not in ("id", "meta", "schemas")}
    if kind is Kind.USER:
        return make_user(record.name, extra)
    return make_group(record.name, extra=extra)


def filter_for(kind: Kind, name: str) -> str:
    """Exact-match SCIM filter, e.g. ``userName eq "alice@example.com"``."""
    escaped = name.replace("\\", "\\\\").replace('"', '\\"')
    return f'{NAME_ATTRIBUTES[kind]} eq "{escaped}"'


def record_from_resource(kind: Kind, resource: Dict[str, Any]) -> DownstreamRecord:
    """Wrap a SCIM resource; the name is empty if the attribute is missing."""
    name = resource.get(NAME_ATTRIBUTES[kind]) or ""
    return DownstreamRecord(name, id=resource.get("id"), attributes=resource)
