"""CLI interface for scim-roster using Click."""

import json
import sys
from typing import List

import click

from . import __version__
from .backends import new_backend
from .config import RosterConfig
from .downstream import ScimDownstream
from .engine import ReconciliationEngine
from .errors import RosterError, ValidationError
from .http_client import SCIMClient
from .log import configure_logging
from .roster import Kind, RosterStore, coerce_kind


def _print_error(message: str):
    """Print an error in red on stderr."""
    click.secho(f"❌ {message}", fg="red", err=True)


def _print_success(message: str):
    click.secho(f"✅ {message}", fg="green")


def _kinds(selection: str) -> List[Kind]:
    if selection == "all":
        return list(Kind)
    return [coerce_kind(selection)]


def _build_engine(config: RosterConfig) -> ReconciliationEngine:
    """Wire backend, SCIM client and engine together from ``config``."""
    if not config.scim_endpoint:
        raise ValidationError("A SCIM endpoint is required (--endpoint or SCIM_ROSTER_SCIM_ENDPOINT)")
    client = SCIMClient(
        config.scim_endpoint,
        token=config.scim_token,
        username=config.scim_username,
        password=config.scim_password,
        tls_no_verify=config.tls_no_verify,
        timeout=config.timeout,
        proxy=config.proxy,
        ca_bundle=config.ca_bundle,
    )
    downstream = ScimDownstream(client, page_size=config.page_size)
    return ReconciliationEngine(downstream, backend=new_backend(config))


def _describe(exc: RosterError) -> str:
    return f"{exc} [{exc.kind.value}]"


def _run(fn):
    """Invoke ``fn`` and turn a ``RosterError`` into exit code 1."""
    try:
        return fn()
    except RosterError as exc:
        _print_error(_describe(exc))
        sys.exit(1)


@click.group()
@click.option("--backend", help="Roster backend: file, s3, consul or null")
@click.option("--prefix", help="Path, key or namespace prefix for the snapshots")
@click.option("--user-obj", help="User snapshot name (default Users.json)")
@click.option("--group-obj", help="Group snapshot name (default Groups.json)")
@click.option("--bucket", help="S3 bucket for the s3 backend")
@click.option("--consul-address", help="Consul agent address for the consul backend")
@click.option("--endpoint", "scim_endpoint", help="Base URL of the SCIM service")
@click.option("--token", "scim_token", help="Bearer token for the SCIM service")
@click.option("--username", "scim_username", help="HTTP Basic username (when no token is given)")
@click.option("--password", "scim_password", help="HTTP Basic password")
@click.option("--tls-no-verify", is_flag=True, help="Skip TLS certificate verification")
@click.option("--ca-bundle", type=click.Path(dir_okay=False), help="Custom CA bundle file")
@click.option("--proxy", help="HTTP/HTTPS proxy URL for SCIM calls")
@click.option("--page-size", type=int, help="count sent with the SCIM listing call")
@click.option("--timeout", type=float, help="Per-request timeout in seconds")
@click.option("--log-level", type=click.Choice(["debug", "info", "warning", "error", "critical"],
                                               case_sensitive=False))
@click.option("--log-format", type=click.Choice(["text", "json"]))
@click.version_option(version=__version__)
@click.pass_context
def main(ctx: click.Context, **options):
    """Keep a durable roster of users and groups provisioned to a SCIM service.

    Every option also reads from a ``SCIM_ROSTER_*`` environment variable.

    Examples:

    \b
      scim-roster --endpoint https://scim.example.com/scim/v2 reconcile all
      scim-roster --backend s3 --bucket roster-state show users
      scim-roster create user alice@example.com
    """
    # An unset flag must not override SCIM_ROSTER_TLS_NO_VERIFY.
    if not options["tls_no_verify"]:
        options["tls_no_verify"] = None
    try:
        config = RosterConfig.from_env(**options).validate()
    except RosterError as exc:
        _print_error(str(exc))
        sys.exit(1)
    configure_logging(config.log_level, config.log_format)
    ctx.obj = config


@main.command()
@click.argument("kind", type=click.Choice(["users", "groups", "all"]), default="all")
@click.option("--json", "json_output", is_flag=True, help="Output names as JSON")
@click.pass_obj
def show(config: RosterConfig, kind: str, json_output: bool):
    """Print the names stored in the roster (no SCIM calls)."""

    def _show():
        roster = RosterStore()
        result = new_backend(config).load(roster)
        for k in _kinds(kind):
            if k in result.failures:
                raise result.failures[k]
        selected = {k.label: sorted(roster.list(k)) for k in _kinds(kind)}
        if json_output:
            click.echo(json.dumps(selected, indent=2))
            return
        for label, names in selected.items():
            click.secho(f"{label} ({len(names)})", bold=True)
            for name in names:
                click.echo(f"  {name}")

    _run(_show)


@main.command()
@click.argument("kind", type=click.Choice(["users", "groups", "all"]), default="all")
@click.option("--dry-run", is_flag=True, help="Reconcile without persisting the roster")
@click.option("--json", "json_output", is_flag=True, help="Output the reports as JSON")
@click.pass_obj
def reconcile(config: RosterConfig, kind: str, dry_run: bool, json_output: bool):
    """Validate, prune and extend the roster against the SCIM service.

    A kind whose snapshot cannot be loaded, or whose pass fails, is reported
    and skipped; the other kind is still reconciled and stored.  The exit
    code is 1 if any kind failed.
    """

    def _reconcile() -> List[RosterError]:
        engine = _build_engine(config)
        loaded = engine.load()
        reports = []
        failures: List[RosterError] = []
        for k in _kinds(kind):
            if k in loaded.failures:
                failures.append(loaded.failures[k])
                continue
            try:
                reports.append(engine.reconcile(k))
            except RosterError as exc:
                failures.append(exc)
        if reports and not dry_run:
            engine.store()

        if json_output:
            click.echo(json.dumps([r.to_dict() for r in reports], indent=2))
        else:
            for report in reports:
                _print_success(
                    f"{report.kind.label}: {len(report.records)} total, {len(report.kept)} kept, "
                    f"{len(report.pruned)} pruned, {len(report.discovered)} discovered"
                )
            if dry_run:
                click.echo("(dry run, roster not stored)")
        return failures

    failures = _run(_reconcile)
    for exc in failures:
        _print_error(_describe(exc))
    if failures:
        sys.exit(1)


@main.command()
@click.argument("kind", type=click.Choice(["user", "group"]))
@click.argument("name")
@click.pass_obj
def create(config: RosterConfig, kind: str, name: str):
    """Create a user or group downstream and record it in the roster."""

    def _create():
        engine = _build_engine(config)
        engine.load()
        record = engine.create(kind, name)
        _print_success(f"Created {kind} {record.name} (id {record.id})")

    _run(_create)


@main.command()
@click.argument("kind", type=click.Choice(["user", "group"]))
@click.argument("name")
@click.pass_obj
def delete(config: RosterConfig, kind: str, name: str):
    """Delete a user or group downstream and drop it from the roster."""

    def _delete():
        engine = _build_engine(config)
        engine.load()
        engine.delete(kind, name)
        _print_success(f"Deleted {kind} {name}")

    _run(_delete)


if __name__ == "__main__":
    main()
