"""Tests for the scim-roster CLI using Click's CliRunner.

Every test runs against the file backend in a temporary directory and,
where SCIM calls are needed, the in-process mock SCIM server.
"""

import json

import pytest
from click.testing import CliRunner

from scim_roster import __version__
from scim_roster.cli import _build_engine, main
from scim_roster.config import RosterConfig
from tests.mock_scim_server import MockSCIMServer


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("SCIM_ROSTER_BACKEND", "SCIM_ROSTER_PREFIX", "SCIM_ROSTER_BUCKET",
                 "SCIM_ROSTER_SCIM_ENDPOINT", "SCIM_ROSTER_SCIM_TOKEN",
                 "SCIM_ROSTER_LOG_LEVEL", "SCIM_ROSTER_LOG_FORMAT", "SCIM_ROSTER_TIMEOUT",
                 "SCIM_ROSTER_SCIM_USERNAME", "SCIM_ROSTER_SCIM_PASSWORD", "SCIM_ROSTER_PROXY",
                 "SCIM_ROSTER_CA_BUNDLE", "SCIM_ROSTER_TLS_NO_VERIFY", "SCIM_ROSTER_PAGE_SIZE"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def state(tmp_path):
    return tmp_path


@pytest.fixture
def server():
    with MockSCIMServer() as s:
        yield s


def _base_args(state, server=None):
    args = ["--prefix", str(state) + "/", "--log-level", "critical"]
    if server is not None:
        args += ["--endpoint", server.base_url, "--timeout", "5"]
    return args


def _snapshot(state, obj="Users.json"):
    path = state / obj
    return json.loads(path.read_text()) if path.exists() else None


def test_version(runner):
    result = runner.invoke(main, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_help_lists_commands(runner):
    result = runner.invoke(main, ["--help"])
    assert result.exit_code == 0
    for command in ("show", "reconcile", "create", "delete"):
        assert command in result.output


# -- show -------------------------------------------------------------------


def test_show_empty_roster(runner, state):
    result = runner.invoke(main, _base_args(state) + ["show"])
    assert result.exit_code == 0, result.output
    assert "users (0)" in result.output
    assert "groups (0)" in result.output


def test_show_json(runner, state):
    (state / "Users.json").write_text('{"bob": true, "alice": true}')
    result = runner.invoke(main, _base_args(state) + ["show", "users", "--json"])
    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == {"users": ["alice", "bob"]}


def test_show_corrupt_snapshot_fails(runner, state):
    (state / "Users.json").write_text("garbage")
    result = runner.invoke(main, _base_args(state) + ["show", "users"])
    assert result.exit_code == 1
    assert "corrupt_state" in result.output


def test_show_other_kind_despite_corrupt_snapshot(runner, state):
    (state / "Users.json").write_text("garbage")
    (state / "Groups.json").write_text('{"eng": true}')
    result = runner.invoke(main, _base_args(state) + ["show", "groups"])
    assert result.exit_code == 0, result.output
    assert "eng" in result.output


# -- reconcile --------------------------------------------------------------


def test_reconcile_prunes_and_discovers(runner, state, server):
    server.add_user("u1")
    server.add_user("u2")
    (state / "Users.json").write_text('{"u2": true, "ghost": true}')

    result = runner.invoke(main, _base_args(state, server) + ["reconcile", "users"])

    assert result.exit_code == 0, result.output
    assert "users: 2 total, 1 kept, 1 pruned, 1 discovered" in result.output
    assert _snapshot(state) == {"u1": True, "u2": True}


def test_reconcile_dry_run_does_not_store(runner, state, server):
    server.add_group("eng")
    result = runner.invoke(main, _base_args(state, server) + ["reconcile", "--dry-run"])
    assert result.exit_code == 0, result.output
    assert "dry run" in result.output
    assert _snapshot(state, "Groups.json") is None


def test_reconcile_json(runner, state, server):
    server.add_group("eng")
    result = runner.invoke(main, _base_args(state, server) + ["reconcile", "groups", "--json"])
    assert result.exit_code == 0, result.output
    reports = json.loads(result.output)
    assert reports == [{"kind": "group", "total": 1, "kept": [], "pruned": [],
                        "discovered": ["eng"]}]


def test_reconcile_listing_failure_keeps_snapshot(runner, state):
    (state / "Users.json").write_text('{"ghost": true}')
    with MockSCIMServer(behaviours={"fail_list": True}) as server:
        result = runner.invoke(main, _base_args(state, server) + ["reconcile", "users"])
    assert result.exit_code == 1
    assert "transient_io" in result.output
    assert _snapshot(state) == {"ghost": True}


def test_reconcile_all_continues_past_corrupt_snapshot(runner, state, server):
    (state / "Users.json").write_text("garbage")
    (state / "Groups.json").write_text('{"ghost": true}')

    result = runner.invoke(main, _base_args(state, server) + ["reconcile", "all"])

    assert result.exit_code == 1
    assert "corrupt_state" in result.output
    assert "groups: 0 total, 0 kept, 1 pruned, 0 discovered" in result.output
    assert _snapshot(state, "Groups.json") == {}
    assert (state / "Users.json").read_text() == "garbage"


def test_reconcile_all_failed_listing_keeps_snapshots(runner, state):
    (state / "Groups.json").write_text('{"ghost": true}')
    with MockSCIMServer(behaviours={"fail_list": True}) as server:
        result = runner.invoke(main, _base_args(state, server) + ["reconcile", "all"])
    assert result.exit_code == 1
    assert "transient_io" in result.output
    assert _snapshot(state, "Groups.json") == {"ghost": True}


def test_reconcile_sends_page_size(runner, state, server):
    args = _base_args(state, server) + ["--page-size", "1", "--tls-no-verify", "reconcile", "users"]
    result = runner.invoke(main, args)
    assert result.exit_code == 0, result.output
    assert ("GET", "/Users?count=1") in server.requests


def test_build_engine_applies_client_options(state):
    config = RosterConfig(
        prefix=str(state) + "/",
        scim_endpoint="https://scim.example.com/scim/v2",
        scim_username="admin",
        scim_password="secret",
        tls_no_verify=True,
        proxy="http://proxy:3128",
        page_size=25,
    )
    downstream = _build_engine(config).lookup
    session = downstream.client.session
    assert downstream.page_size == 25
    assert session.auth == ("admin", "secret")
    assert session.verify is False
    assert session.proxies["https"] == "http://proxy:3128"


def test_ca_bundle_from_environment(state, monkeypatch):
    monkeypatch.setenv("SCIM_ROSTER_CA_BUNDLE", "/etc/ssl/roster-ca.pem")
    config = RosterConfig.from_env(prefix=str(state) + "/",
                                   scim_endpoint="https://scim.example.com")
    assert _build_engine(config).lookup.client.session.verify == "/etc/ssl/roster-ca.pem"


def test_reconcile_requires_endpoint(runner, state):
    result = runner.invoke(main, _base_args(state) + ["reconcile"])
    assert result.exit_code == 1
    assert "SCIM endpoint is required" in result.output


def test_endpoint_from_environment(runner, state, server, monkeypatch):
    monkeypatch.setenv("SCIM_ROSTER_SCIM_ENDPOINT", server.base_url)
    result = runner.invoke(main, _base_args(state) + ["reconcile", "users"])
    assert result.exit_code == 0, result.output


# -- create / delete --------------------------------------------------------


def test_create_and_delete_user(runner, state, server):
    result = runner.invoke(main, _base_args(state, server) + ["create", "user", "alice"])
    assert result.exit_code == 0, result.output
    assert "Created user alice" in result.output
    assert server.names("Users") == {"alice"}
    assert _snapshot(state) == {"alice": True}

    result = runner.invoke(main, _base_args(state, server) + ["delete", "user", "alice"])
    assert result.exit_code == 0, result.output
    assert "Deleted user alice" in result.output
    assert server.names("Users") == set()
    assert _snapshot(state) == {}


def test_create_group(runner, state, server):
    result = runner.invoke(main, _base_args(state, server) + ["create", "group", "eng"])
    assert result.exit_code == 0, result.output
    assert _snapshot(state, "Groups.json") == {"eng": True}


def test_delete_missing_fails(runner, state, server):
    result = runner.invoke(main, _base_args(state, server) + ["delete", "group", "nobody"])
    assert result.exit_code == 1
    assert "not_found" in result.output


def test_rejected_create_stays_in_roster(runner, state):
    with MockSCIMServer(behaviours={"reject_create": True}) as server:
        result = runner.invoke(main, _base_args(state, server) + ["create", "user", "alice"])
    assert result.exit_code == 1
    assert "downstream" in result.output
    assert _snapshot(state) == {"alice": True}


# -- configuration errors ---------------------------------------------------


def test_unknown_backend(runner, state):
    result = runner.invoke(main, _base_args(state) + ["--backend", "tape", "show"])
    assert result.exit_code == 1
    assert "Unknown backend type" in result.output


def test_s3_without_bucket(runner, state):
    result = runner.invoke(main, _base_args(state) + ["--backend", "s3", "show"])
    assert result.exit_code == 1
    assert "bucket" in result.output


def test_null_backend_show(runner):
    result = runner.invoke(main, ["--backend", "null", "--log-level", "critical", "show", "--json"])
    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == {"users": [], "groups": []}
