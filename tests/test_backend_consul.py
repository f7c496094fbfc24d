"""Tests for the Consul KV backend against an in-process KV server."""

import json

import pytest

from scim_roster.backends import ConsulBackend
from scim_roster.backends.consul import join_key, normalize_address
from scim_roster.errors import CorruptStateError, TransientIOError
from scim_roster.roster import Kind, RosterStore
from tests.mock_consul_server import MockConsulServer


@pytest.fixture
def consul():
    with MockConsulServer() as s:
        yield s


def _backend(server, **kwargs):
    return ConsulBackend("scim-roster", "Users.json", "Groups.json",
                         address=server.address, timeout=5, **kwargs)


class TestHelpers:

    @pytest.mark.parametrize("value,expected", [
        (None, "http://127.0.0.1:8500"),
        ("", "http://127.0.0.1:8500"),
        ("consul:8500", "http://consul:8500"),
        ("https://consul.example.com/", "https://consul.example.com"),
    ])
    def test_normalize_address(self, value, expected):
        assert normalize_address(value) == expected

    @pytest.mark.parametrize("prefix,obj,expected", [
        ("scim-roster", "Users.json", "scim-roster/Users.json"),
        ("/a/b/", "/Groups.json", "a/b/Groups.json"),
        ("", "Users.json", "Users.json"),
    ])
    def test_join_key(self, prefix, obj, expected):
        assert join_key(prefix, obj) == expected


def test_location(consul):
    assert _backend(consul).location(Kind.USER) == "consul:scim-roster/Users.json"


def test_missing_keys_load_as_empty(consul):
    roster = RosterStore()
    result = _backend(consul).load(roster)
    assert result.ok
    assert roster.list(Kind.USER) == []
    assert roster.list(Kind.GROUP) == []


def test_store_then_load_round_trip(consul):
    backend = _backend(consul)
    roster = RosterStore()
    roster.add_name(Kind.USER, "alice")
    roster.add_name(Kind.GROUP, "eng")
    backend.store(roster)

    assert json.loads(consul.kv["scim-roster/Users.json"]) == {"alice": True}
    assert json.loads(consul.kv["scim-roster/Groups.json"]) == {"eng": True}

    fresh = RosterStore()
    assert backend.load(fresh).ok
    assert fresh.list(Kind.USER) == ["alice"]
    assert fresh.list(Kind.GROUP) == ["eng"]


def test_corrupt_value(consul):
    consul.kv["scim-roster/Groups.json"] = b"not json"
    result = _backend(consul).load(RosterStore())
    assert isinstance(result.failures[Kind.GROUP], CorruptStateError)
    assert result.loaded == [Kind.USER]


def test_token_is_sent():
    with MockConsulServer(behaviours={"require_token": "s3cr3t"}) as server:
        backend = _backend(server, token="s3cr3t")
        backend.store(RosterStore())
        assert backend.load(RosterStore()).ok
        assert all(token == "s3cr3t" for _, _, token in server.requests)


def test_permission_denied_is_transient():
    with MockConsulServer(behaviours={"require_token": "s3cr3t"}) as server:
        result = _backend(server).load(RosterStore())
        err = result.failures[Kind.USER]
        assert isinstance(err, TransientIOError)
        assert "403" in str(err)


def test_server_error_on_read_is_transient():
    with MockConsulServer(behaviours={"fail_status": 500}) as server:
        result = _backend(server).load(RosterStore())
        assert set(result.failures) == {Kind.USER, Kind.GROUP}


def test_put_not_acknowledged_is_transient():
    with MockConsulServer(behaviours={"reject_put": True}) as server:
        with pytest.raises(TransientIOError) as exc_info:
            _backend(server).store(RosterStore())
        assert exc_info.value.roster_kind is Kind.USER
        assert server.kv == {}


def test_unreachable_agent_is_transient():
    with MockConsulServer() as server:
        address = server.address
    backend = ConsulBackend("scim-roster", "Users.json", "Groups.json",
                            address=address, timeout=2)
    result = backend.load(RosterStore())
    assert all(isinstance(e, TransientIOError) for e in result.failures.values())
    with pytest.raises(TransientIOError):
        backend.store(RosterStore())
