"""GRC CLI — presentation layer.

Thin adapter: all business logic lives in core / modules.
The CLI only maps user intents to use-case calls and formats output.
Domain errors print ``ERROR: ...`` and exit 1; a missing repo root exits 2.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import date
from pathlib import Path

import structlog
import typer
from rich import print
from rich.table import Table

from grc.catalog import import_catalog, load_framework_catalog
from grc.core.audit import compute_hmac, export_audit, verify_chain
from grc.core.db import open_db
from grc.core.errors import AuditChainBroken, CatalogInvalid, CatalogNotFound, GRCError, RepoRootNotFound
from grc.core.logging import configure_logging
from grc.core.models import (
    AuditStatus,
    AuditType,
    FindingSeverity,
    FindingStatus,
    ImplementationStatus,
    PolicyStatus,
    PolicyType,
)
from grc.core.repository import get_finding, list_audits, list_controls, list_findings, list_policies
from grc.core.settings import Settings
from grc.core.state import TransitionEvent
from grc.modules import audits, compliance, policies

logger = structlog.get_logger()

app = typer.Typer(help="GRC core — frameworks, controls, policies and audits from the command line.")


# ── Callback (runs before every command) ────────────────────
@app.callback(invoke_without_command=True)
def _main_callback(  # pyright: ignore[reportUnusedFunction]
    ctx: typer.Context,
    log_level: str = typer.Option("INFO", "--log-level", envvar="GRC_LOG_LEVEL", help="Log level."),
    log_json: bool = typer.Option(True, "--log-json/--log-text", envvar="GRC_LOG_JSON", help="JSON or human logs."),
) -> None:
    """Configure logging + settings, then store in context for sub-commands."""
    configure_logging(level=log_level, json_output=log_json)
    try:
        settings = Settings(log_level=log_level, log_json=log_json)
    except RepoRootNotFound:
        print("[red]ERROR:[/red] could not find repo root (pyproject.toml not found in parents).")
        raise typer.Exit(code=2)
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings

    if ctx.invoked_subcommand is None:
        print(ctx.get_help())


def _settings(ctx: typer.Context) -> Settings:
    return ctx.obj["settings"]


def _db(ctx: typer.Context) -> sqlite3.Connection:
    """Return an open DB connection, caching it in the context."""
    if "db" not in ctx.obj:
        s = _settings(ctx)
        s.ensure_dirs()
        ctx.obj["db"] = open_db(s.db_path)
    return ctx.obj["db"]


def _fail(message: object) -> typer.Exit:
    print(f"[red]ERROR:[/red] {message}")
    return typer.Exit(code=1)


def _not_found(exc: KeyError) -> typer.Exit:
    # KeyError wraps its message in quotes.
    return _fail(exc.args[0] if exc.args else exc)


def _parse_date(value: str | None, *, option: str) -> date | None:
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise _fail(f"{option} must be an ISO date (YYYY-MM-DD), got {value!r}") from None


_STATUS_COLOURS = {
    "implemented": "green",
    "partially_implemented": "yellow",
    "not_implemented": "red",
    "not_applicable": "dim",
    "draft": "white",
    "review": "cyan",
    "approved": "yellow",
    "published": "green",
    "archived": "dim",
    "open": "red",
    "in_remediation": "yellow",
    "remediated": "cyan",
    "verified": "green",
    "accepted": "magenta",
    "deferred": "yellow",
    "closed": "dim",
}


def _coloured(value: str) -> str:
    color = _STATUS_COLOURS.get(value, "white")
    return f"[{color}]{value}[/{color}]"


def _report_transition(label: str, entity_id: str, event: TransitionEvent, entry_hash: str) -> None:
    print(
        f"[green]{label}:[/green] {entity_id}  "
        f"{event.from_status.value} → {event.to_status.value}  "
        f"hash={entry_hash[:12]}…"
    )


# ── System ──────────────────────────────────────────────────
@app.command()
def status(ctx: typer.Context) -> None:
    """Show current system status and directory health."""
    s = _settings(ctx)

    print("[bold]GRC core[/bold]  v0.1.0")
    print(f"  Repo root   : {s.repo_root}")
    print(f"  Catalogue   : {s.catalog_path}  {'[green]OK[/green]' if s.catalog_path.exists() else '[red]MISSING[/red]'}")
    print(f"  Database    : {s.db_path}  {'[green]OK[/green]' if s.db_path.exists() else '[yellow]NOT CREATED[/yellow]'}")

    dirs: list[tuple[str, Path | None]] = [
        ("Data", s.data_dir), ("Catalogs", s.catalogs_dir), ("Exports", s.exports_dir),
    ]
    for label, d in dirs:
        if d is None:
            print(f"  {label:<12}: [red]NOT CONFIGURED[/red]")
            continue
        print(f"  {label:<12}: {d}  {'[green]OK[/green]' if d.exists() else '[yellow]MISSING[/yellow]'}")

    if s.db_path.exists():
        conn = _db(ctx)
        summaries = compliance.list_framework_summaries(conn)
        print(f"\n  Frameworks  : {len(summaries)}")
        for fs in summaries:
            print(f"    {fs.framework_id:<20}: {fs.implementation_rate:.1f}% of {fs.total_controls} controls")
        print(f"  Policies    : {len(list_policies(conn))}")
        print(f"  Audits      : {len(list_audits(conn))}")
        print(f"  Findings    : {len(list_findings(conn))}")

    logger.info("status_checked", repo_root=str(s.repo_root))


@app.command()
def init(ctx: typer.Context) -> None:
    """Initialise GRC: create directories and database."""
    s = _settings(ctx)
    s.ensure_dirs()
    _db(ctx)  # creates the DB and schema
    print("[green]GRC initialised.[/green]  Directories + database ready.")
    logger.info("grc_initialised", repo_root=str(s.repo_root), db=str(s.db_path))


# ── Catalogue ───────────────────────────────────────────────
def _catalog_path(s: Settings, catalog: Path | None) -> Path:
    path = catalog if catalog else s.catalog_path
    if not path.is_absolute():
        assert s.repo_root is not None  # guaranteed by model_validator
        path = (s.repo_root / path).resolve()
    return path


@app.command(name="catalog-validate")
def catalog_validate(
    ctx: typer.Context,
    catalog: Path = typer.Option(
        None,
        "--catalog",
        help="Path to framework catalogue YAML (relative to repo root unless absolute).",
    ),
) -> None:
    """Validate the framework catalogue schema."""
    s = _settings(ctx)
    path = _catalog_path(s, catalog)
    try:
        frameworks = load_framework_catalog(path, max_size_bytes=s.catalog_max_size_bytes)
    except (CatalogNotFound, CatalogInvalid) as exc:
        raise _fail(exc)

    controls = sum(len(fw.controls) for fw in frameworks)
    print(f"[green]OK[/green] catalogue valid: {path} ({len(frameworks)} frameworks, {controls} controls)")


@app.command(name="catalog-import")
def catalog_import(
    ctx: typer.Context,
    catalog: Path = typer.Option(None, "--catalog", help="Path to framework catalogue YAML."),
) -> None:
    """Import frameworks and controls from the catalogue into the database."""
    s = _settings(ctx)
    path = _catalog_path(s, catalog)
    conn = _db(ctx)
    try:
        entries = load_framework_catalog(path, max_size_bytes=s.catalog_max_size_bytes)
        created = import_catalog(conn, entries)
    except (CatalogNotFound, CatalogInvalid, ValueError, KeyError) as exc:
        raise _fail(exc)
    except sqlite3.IntegrityError as exc:
        raise _fail(f"catalogue conflicts with existing data: {exc}")

    print(f"[green]Imported[/green] {len(created)} frameworks from {path}")


# ── Frameworks & controls ───────────────────────────────────
@app.command(name="framework-add")
def framework_add(
    ctx: typer.Context,
    framework_id: str = typer.Argument(help="Unique framework identifier (e.g. iso27001)."),
    name: str = typer.Option(..., "--name", help="Framework name."),
    version: str = typer.Option(..., "--version", help="Framework edition (e.g. 2022)."),
    description: str = typer.Option("", "--description", help="Free-text description."),
) -> None:
    """Register a compliance framework."""
    conn = _db(ctx)
    try:
        fw = compliance.create_framework(
            conn, framework_id=framework_id, name=name, version=version, description=description
        )
    except sqlite3.IntegrityError:
        raise _fail(f"Framework '{framework_id}' already exists.")
    except ValueError as exc:
        raise _fail(exc)
    print(f"[green]Added:[/green] {fw.framework_id} — {fw.name} {fw.version}")


@app.command()
def frameworks(
    ctx: typer.Context,
    active_only: bool = typer.Option(False, "--active-only", help="Hide inactive frameworks."),
) -> None:
    """List frameworks with their implementation rate."""
    conn = _db(ctx)
    rows = compliance.list_framework_summaries(conn, active_only=active_only)
    if not rows:
        print("[yellow]No frameworks yet.[/yellow] Run [bold]grc catalog-import[/bold] to start.")
        return

    table = Table(title="Frameworks", show_lines=False)
    table.add_column("ID", style="bold")
    table.add_column("Name")
    table.add_column("Version")
    table.add_column("Controls", justify="right")
    table.add_column("Implemented", justify="right")
    for fs in rows:
        table.add_row(fs.framework_id, fs.name, fs.version, str(fs.total_controls), f"{fs.implementation_rate:.1f}%")
    print(table)


@app.command(name="framework-update")
def framework_update(
    ctx: typer.Context,
    framework_id: str = typer.Argument(help="Framework to update."),
    description: str = typer.Option(None, "--description", help="New description."),
    active: bool | None = typer.Option(None, "--active/--inactive", help="Activate or deactivate the framework."),
) -> None:
    """Change a framework's description or active flag."""
    if description is None and active is None:
        raise _fail("Nothing to update: pass --description and/or --active/--inactive.")
    conn = _db(ctx)
    try:
        fw = compliance.update_framework(conn, framework_id, description=description, is_active=active)
    except KeyError as exc:
        raise _not_found(exc)
    except ValueError as exc:
        raise _fail(exc)
    state = "active" if fw.is_active else "inactive"
    print(f"[green]Updated:[/green] {fw.framework_id} — {fw.name} {fw.version}  {state}")


@app.command(name="framework-show")
def framework_show(
    ctx: typer.Context,
    framework_id: str = typer.Argument(help="Framework to show."),
) -> None:
    """Show a framework's control breakdown and its controls."""
    conn = _db(ctx)
    try:
        detail = compliance.get_framework_detail(conn, framework_id)
    except KeyError as exc:
        raise _not_found(exc)
    except ValueError as exc:
        raise _fail(exc)

    fw, counts = detail.framework, detail.counts
    print(f"[bold]{fw.name}[/bold] {fw.version}  ({fw.framework_id})")
    print(f"  Total           : {counts.total}")
    print(f"  Implemented     : {counts.implemented}")
    print(f"  Partial         : {counts.partially_implemented}")
    print(f"  Not implemented : {counts.not_implemented}")
    print(f"  Not applicable  : {counts.not_applicable}")
    print(f"  Rate            : {detail.implementation_rate:.2f}%")

    controls = list_controls(conn, fw.framework_id)
    if controls:
        table = Table(title="Controls", show_lines=False)
        table.add_column("Code", style="bold")
        table.add_column("Title")
        table.add_column("Status")
        for c in controls:
            table.add_row(c.code, c.title, _coloured(c.implementation_status.value))
        print(table)


@app.command(name="control-add")
def control_add(
    ctx: typer.Context,
    framework_id: str = typer.Argument(help="Framework the control belongs to."),
    code: str = typer.Option(..., "--code", help="Control code within the framework (e.g. A.5.1)."),
    title: str = typer.Option(..., "--title", help="Control title."),
    description: str = typer.Option("", "--description", help="Free-text description."),
    owner: str = typer.Option(None, "--owner", help="Owner user id."),
    control_id: str = typer.Option(None, "--id", help="Custom control id (default: <framework>.<code>)."),
) -> None:
    """Add a control to a framework (starts as not_implemented)."""
    conn = _db(ctx)
    try:
        ctl = compliance.add_control(
            conn,
            control_id=control_id or f"{framework_id}.{code.strip()}",
            framework_id=framework_id,
            code=code,
            title=title,
            description=description,
            owner_id=owner,
        )
    except KeyError as exc:
        raise _not_found(exc)
    except sqlite3.IntegrityError:
        raise _fail(f"Control '{code}' already exists in framework '{framework_id}'.")
    except ValueError as exc:
        raise _fail(exc)
    print(f"[green]Added:[/green] {ctl.control_id} — {ctl.title}  status={ctl.implementation_status.value}")


@app.command(name="control-status")
def control_status(
    ctx: typer.Context,
    control_id: str = typer.Argument(help="Control to update."),
    to: ImplementationStatus = typer.Option(..., "--to", "-t", help="New implementation status."),
    details: str = typer.Option(None, "--details", help="Implementation details."),
    notes: str = typer.Option("", "--notes", "-n", help="Audit note for this change."),
) -> None:
    """Set a control's implementation status (with audit trail)."""
    conn = _db(ctx)
    try:
        event, entry_hash = compliance.update_control_implementation(conn, control_id, to, details=details, notes=notes)
    except KeyError as exc:
        raise _not_found(exc)
    except (GRCError, ValueError) as exc:
        raise _fail(exc)
    _report_transition("Updated", control_id, event, entry_hash)


# ── Policies ────────────────────────────────────────────────
@app.command(name="policy-add")
def policy_add(
    ctx: typer.Context,
    name: str = typer.Argument(help="Policy name; a repeated name creates the next minor version."),
    policy_type: PolicyType = typer.Option(PolicyType.SECURITY, "--type", help="Policy type."),
    description: str = typer.Option(..., "--description", help="Policy description."),
    owner: str = typer.Option(..., "--owner", help="Owner user id."),
    control: list[str] = typer.Option([], "--control", "-c", help="Related control id (repeatable)."),
    policy_id: str = typer.Option(None, "--id", help="Custom policy id (auto-generated if omitted)."),
) -> None:
    """Create a draft policy."""
    conn = _db(ctx)
    try:
        p = policies.create_policy(
            conn,
            name=name,
            policy_type=policy_type,
            description=description,
            owner=owner,
            related_control_ids=control,
            policy_id=policy_id,
        )
    except KeyError as exc:
        raise _not_found(exc)
    except sqlite3.IntegrityError:
        raise _fail(f"Policy '{policy_id}' already exists.")
    except ValueError as exc:
        raise _fail(exc)
    print(f"[green]Added:[/green] {p.policy_id} — {p.name} v{p.version}  status={p.status.value}")


@app.command(name="policies")
def policies_cmd(
    ctx: typer.Context,
    status_filter: PolicyStatus = typer.Option(None, "--status", help="Only show policies in this status."),
) -> None:
    """List policies."""
    conn = _db(ctx)
    rows = list_policies(conn, status=status_filter)
    if not rows:
        print("[yellow]No policies yet.[/yellow] Run [bold]grc policy-add[/bold] to start.")
        return

    table = Table(title="Policies", show_lines=False)
    table.add_column("ID", style="bold")
    table.add_column("Name")
    table.add_column("Version")
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Approvers", justify="right")
    table.add_column("Effective")
    table.add_column("Review")
    table.add_column("Updated")
    today = date.today()
    for p in rows:
        effective = "[green]yes[/green]" if policies.is_effective(p, today) else "no"
        if p.review_date is None:
            review = "-"
        elif policies.is_review_due(p, today):
            review = f"[red]{p.review_date} (due)[/red]"
        else:
            review = p.review_date
        table.add_row(
            p.policy_id, p.name, str(p.version), p.policy_type.value,
            _coloured(p.status.value), str(len(p.approvers)), effective, review, p.updated_utc,
        )
    print(table)


@app.command(name="policy-approve")
def policy_approve(
    ctx: typer.Context,
    policy_id: str = typer.Argument(help="Policy to sign off."),
    user_id: str = typer.Option(..., "--user", help="Approver user id."),
    name: str = typer.Option(..., "--name", help="Approver display name."),
    title: str = typer.Option(..., "--title", help="Approver job title."),
    comments: str = typer.Option(None, "--comments", help="Approval comments."),
) -> None:
    """Add an approver to a draft or in-review policy."""
    conn = _db(ctx)
    try:
        p = policies.approve_policy(
            conn, policy_id, approver_user_id=user_id, approver_name=name, approver_title=title, comments=comments
        )
    except KeyError as exc:
        raise _not_found(exc)
    except (GRCError, ValueError) as exc:
        raise _fail(exc)
    print(f"[green]Approved by {user_id}:[/green] {p.policy_id}  status={p.status.value}  ({len(p.approvers)} approvers)")


@app.command(name="policy-transition")
def policy_transition(
    ctx: typer.Context,
    policy_id: str = typer.Argument(help="Policy to transition."),
    to: PolicyStatus = typer.Option(..., "--to", "-t", help="Target status."),
    notes: str = typer.Option("", "--notes", "-n", help="Audit note for this transition."),
) -> None:
    """Move a policy to a new status (guarded, with audit trail)."""
    conn = _db(ctx)
    try:
        event, entry_hash = policies.change_policy_status(conn, policy_id, to, notes=notes)
    except KeyError as exc:
        raise _not_found(exc)
    except (GRCError, ValueError) as exc:
        raise _fail(exc)
    _report_transition("Transitioned", policy_id, event, entry_hash)


@app.command(name="policy-publish")
def policy_publish(
    ctx: typer.Context,
    policy_id: str = typer.Argument(help="Approved policy to publish."),
    start: str = typer.Option(None, "--start", help="Effective start date (YYYY-MM-DD, default today)."),
    end: str = typer.Option(None, "--end", help="Effective end date (YYYY-MM-DD)."),
    review: str = typer.Option(None, "--review", help="Next review date (YYYY-MM-DD)."),
) -> None:
    """Publish an approved policy with its effective period."""
    effective_start = _parse_date(start, option="--start") or date.today()
    conn = _db(ctx)
    try:
        p = policies.publish_policy(
            conn,
            policy_id,
            effective_start=effective_start,
            effective_end=_parse_date(end, option="--end"),
            review_date=_parse_date(review, option="--review"),
        )
    except KeyError as exc:
        raise _not_found(exc)
    except (GRCError, ValueError) as exc:
        raise _fail(exc)
    print(f"[green]Published:[/green] {p.policy_id} v{p.version}  effective from {p.effective_start}")


@app.command(name="policy-archive")
def policy_archive(
    ctx: typer.Context,
    policy_id: str = typer.Argument(help="Policy to archive."),
    notes: str = typer.Option("", "--notes", "-n", help="Audit note."),
) -> None:
    """Archive a policy."""
    conn = _db(ctx)
    try:
        p = policies.archive_policy(conn, policy_id, notes=notes)
    except KeyError as exc:
        raise _not_found(exc)
    except (GRCError, ValueError) as exc:
        raise _fail(exc)
    print(f"[green]Archived:[/green] {p.policy_id}")


@app.command(name="policy-new-version")
def policy_new_version(
    ctx: typer.Context,
    policy_id: str = typer.Argument(help="Policy to revise."),
    new_id: str = typer.Option(None, "--id", help="Id of the new draft (auto-generated if omitted)."),
) -> None:
    """Start the next major version of a policy as a new draft."""
    conn = _db(ctx)
    try:
        p = policies.create_major_version(conn, policy_id, new_policy_id=new_id)
    except KeyError as exc:
        raise _not_found(exc)
    except sqlite3.IntegrityError:
        raise _fail(f"Policy '{new_id}' already exists.")
    except ValueError as exc:
        raise _fail(exc)
    print(f"[green]Created:[/green] {p.policy_id} — {p.name} v{p.version}  status={p.status.value}")


# ── Audits & findings ───────────────────────────────────────
@app.command(name="audit-add")
def audit_add(
    ctx: typer.Context,
    name: str = typer.Argument(help="Audit name."),
    audit_type: AuditType = typer.Option(AuditType.INTERNAL, "--type", help="Audit type."),
    framework_id: str = typer.Option(None, "--framework", help="Framework under audit."),
    lead: str = typer.Option(None, "--lead", help="Lead auditor user id."),
    scope: str = typer.Option(None, "--scope", help="Audit scope."),
    audit_id: str = typer.Option(None, "--id", help="Custom audit id (auto-generated if omitted)."),
) -> None:
    """Plan a new audit."""
    conn = _db(ctx)
    try:
        a = audits.create_audit(
            conn, name=name, audit_type=audit_type, framework_id=framework_id,
            lead_auditor=lead, scope=scope, audit_id=audit_id,
        )
    except KeyError as exc:
        raise _not_found(exc)
    except sqlite3.IntegrityError:
        raise _fail(f"Audit '{audit_id}' already exists.")
    except ValueError as exc:
        raise _fail(exc)
    print(f"[green]Added:[/green] {a.audit_id} — {a.name}  status={a.status.value}")


@app.command(name="audit-transition")
def audit_transition(
    ctx: typer.Context,
    audit_id: str = typer.Argument(help="Audit to transition."),
    to: AuditStatus = typer.Option(..., "--to", "-t", help="Target status."),
    notes: str = typer.Option("", "--notes", "-n", help="Audit note for this transition."),
) -> None:
    """Move an audit to a new status (guarded, with audit trail)."""
    conn = _db(ctx)
    try:
        event, entry_hash = audits.change_audit_status(conn, audit_id, to, notes=notes)
    except KeyError as exc:
        raise _not_found(exc)
    except (GRCError, ValueError) as exc:
        raise _fail(exc)
    _report_transition("Transitioned", audit_id, event, entry_hash)


@app.command(name="finding-add")
def finding_add(
    ctx: typer.Context,
    audit_id: str = typer.Argument(help="Audit the finding belongs to."),
    title: str = typer.Option(..., "--title", help="Finding title."),
    severity: FindingSeverity = typer.Option(FindingSeverity.MEDIUM, "--severity", help="Finding severity."),
    description: str = typer.Option("", "--description", help="Free-text description."),
    control_id: str = typer.Option(None, "--control", help="Related control id."),
    due: str = typer.Option(None, "--due", help="Due date (YYYY-MM-DD)."),
    finding_id: str = typer.Option(None, "--id", help="Custom finding id (auto-generated if omitted)."),
) -> None:
    """Raise a finding against an audit (starts open)."""
    due_date = _parse_date(due, option="--due")
    conn = _db(ctx)
    try:
        f = audits.create_finding(
            conn, audit_id=audit_id, title=title, severity=severity,
            description=description, control_id=control_id, finding_id=finding_id, due_date=due_date,
        )
    except KeyError as exc:
        raise _not_found(exc)
    except sqlite3.IntegrityError:
        raise _fail(f"Finding '{finding_id}' already exists.")
    except ValueError as exc:
        raise _fail(exc)
    print(f"[green]Added:[/green] {f.finding_id} — {f.title}  severity={f.severity.value} status={f.status.value}")


@app.command()
def findings(
    ctx: typer.Context,
    audit_id: str = typer.Option(None, "--audit", help="Only show findings of this audit."),
    overdue: bool = typer.Option(False, "--overdue", help="Only show unresolved findings past their due date."),
) -> None:
    """List findings."""
    conn = _db(ctx)
    try:
        rows = audits.overdue_findings(conn, audit_id=audit_id) if overdue else list_findings(conn, audit_id)
    except ValueError as exc:
        raise _fail(exc)

    if not rows:
        if overdue:
            print("[green]No overdue findings.[/green]")
        else:
            print("[yellow]No findings yet.[/yellow] Run [bold]grc finding-add[/bold] to start.")
        return

    table = Table(title="Overdue findings" if overdue else "Findings", show_lines=False)
    table.add_column("ID", style="bold")
    table.add_column("Audit")
    table.add_column("Title")
    table.add_column("Severity")
    table.add_column("Status")
    table.add_column("Due")
    table.add_column("Updated")
    for f in rows:
        due = f.due_date or "-"
        if audits.is_overdue(f):
            due = f"[red]{due} (overdue)[/red]"
        table.add_row(
            f.finding_id, f.audit_id, f.title, f.severity.value, _coloured(f.status.value), due, f.updated_utc,
        )
    print(table)


@app.command(name="finding-show")
def finding_show(
    ctx: typer.Context,
    finding_id: str = typer.Argument(help="Finding to show."),
) -> None:
    """Show a finding with its remediation plan."""
    conn = _db(ctx)
    try:
        f = get_finding(conn, finding_id)
    except ValueError as exc:
        raise _fail(exc)
    if f is None:
        raise _fail(f"Finding not found: {finding_id}")

    print(f"[bold]{f.title}[/bold]  ({f.finding_id})")
    print(f"  Audit       : {f.audit_id}")
    print(f"  Control     : {f.control_id or '-'}")
    print(f"  Severity    : {f.severity.value}")
    print(f"  Status      : {_coloured(f.status.value)}")
    print(f"  Due         : {f.due_date or '-'}{'  [red]OVERDUE[/red]' if audits.is_overdue(f) else ''}")
    plan = f.remediation_plan
    if plan is None:
        print("  Remediation : none")
        return
    print("  Remediation :")
    print(f"    Description : {plan.description}")
    print(f"    Assignee    : {plan.assignee}")
    print(f"    Due         : {plan.due_date}")
    print(f"    Status      : {_coloured(plan.status.value)}")
    print(f"    Updated     : {plan.last_updated} by {plan.updated_by}")


@app.command(name="finding-transition")
def finding_transition(
    ctx: typer.Context,
    finding_id: str = typer.Argument(help="Finding to transition."),
    to: FindingStatus = typer.Option(..., "--to", "-t", help="Target status."),
    notes: str = typer.Option("", "--notes", "-n", help="Audit note for this transition."),
) -> None:
    """Move a finding to a new status (guarded, with audit trail)."""
    conn = _db(ctx)
    try:
        event, entry_hash = audits.change_finding_status(conn, finding_id, to, notes=notes)
    except KeyError as exc:
        raise _not_found(exc)
    except (GRCError, ValueError) as exc:
        raise _fail(exc)
    _report_transition("Transitioned", finding_id, event, entry_hash)


@app.command(name="remediation-add")
def remediation_add(
    ctx: typer.Context,
    finding_id: str = typer.Argument(help="Finding to remediate."),
    description: str = typer.Option(..., "--description", help="What will be done."),
    due: str = typer.Option(..., "--due", help="Plan due date (YYYY-MM-DD)."),
    assignee: str = typer.Option(..., "--assignee", help="User id responsible for the plan."),
    by: str = typer.Option(..., "--by", help="User id recording the plan."),
    notes: str = typer.Option("", "--notes", "-n", help="Audit note for the status change."),
) -> None:
    """Attach a remediation plan; the finding moves to in_remediation."""
    due_date = _parse_date(due, option="--due")
    assert due_date is not None  # --due is required
    conn = _db(ctx)
    try:
        f = audits.add_remediation_plan(
            conn, finding_id, description=description, due_date=due_date,
            assignee=assignee, updated_by=by, notes=notes,
        )
    except KeyError as exc:
        raise _not_found(exc)
    except (GRCError, ValueError) as exc:
        raise _fail(exc)
    print(f"[green]Plan added:[/green] {f.finding_id}  status={f.status.value} due={due_date.isoformat()}")


@app.command(name="remediation-update")
def remediation_update(
    ctx: typer.Context,
    finding_id: str = typer.Argument(help="Finding whose plan changes."),
    by: str = typer.Option(..., "--by", help="User id making the change."),
    description: str = typer.Option(None, "--description", help="New plan description."),
    due: str = typer.Option(None, "--due", help="New due date (YYYY-MM-DD)."),
    assignee: str = typer.Option(None, "--assignee", help="New assignee."),
    to: FindingStatus = typer.Option(None, "--status", help="New plan status (a guarded finding transition)."),
    notes: str = typer.Option("", "--notes", "-n", help="Audit note for the status change."),
) -> None:
    """Update a finding's remediation plan."""
    due_date = _parse_date(due, option="--due")
    conn = _db(ctx)
    try:
        f = audits.update_remediation_plan(
            conn, finding_id, updated_by=by, description=description,
            due_date=due_date, assignee=assignee, status=to, notes=notes,
        )
    except KeyError as exc:
        raise _not_found(exc)
    except (GRCError, ValueError) as exc:
        raise _fail(exc)
    plan = f.remediation_plan
    assert plan is not None
    print(f"[green]Plan updated:[/green] {f.finding_id}  status={plan.status.value} due={plan.due_date}")


@app.command(name="audit-stats")
def audit_stats(ctx: typer.Context) -> None:
    """Summarise audits and findings by status, type and severity."""
    conn = _db(ctx)
    stats = audits.get_audit_statistics(conn)

    print("[bold]Audit statistics[/bold]")
    print(f"  Audits           : {stats.total_audits}")
    print(f"  Findings         : {stats.total_findings}")
    print(f"  Overdue findings : {stats.overdue_findings}")

    sections = [
        ("Audits by status", stats.audits_by_status),
        ("Audits by type", stats.audits_by_type),
        ("Findings by severity", stats.findings_by_severity),
        ("Findings by status", stats.findings_by_status),
    ]
    for title, counts in sections:
        table = Table(title=title, show_lines=False)
        table.add_column("Value")
        table.add_column("Count", justify="right")
        for member, count in counts.items():
            table.add_row(member.value, str(count))
        print(table)


# ── Audit trail ─────────────────────────────────────────────
@app.command(name="verify-chain")
def verify_chain_cmd(ctx: typer.Context) -> None:
    """Verify the integrity of the audit chain (tamper detection)."""
    conn = _db(ctx)
    try:
        count = verify_chain(conn)
    except AuditChainBroken as exc:
        print(f"[red bold]INTEGRITY FAILURE:[/red bold] {exc}")
        raise typer.Exit(code=1)

    print(f"[green]Chain OK[/green] — {count} events verified, no tampering detected.")


@app.command(name="export-audit")
def export_audit_cmd(
    ctx: typer.Context,
    output: Path | None = typer.Option(None, "--output", "-o", help="Output file path (default: exports/audit.json)."),
    entity: str = typer.Option(None, "--entity", help="Only export events of this entity id."),
    verify: bool = typer.Option(True, "--verify/--no-verify", help="Verify chain before exporting."),
) -> None:
    """Export the audit trail to JSON (HMAC-signed when GRC_EXPORT_KEY is set)."""
    s = _settings(ctx)
    conn = _db(ctx)

    if verify:
        try:
            verify_chain(conn)
        except AuditChainBroken as exc:
            print(f"[red bold]INTEGRITY FAILURE:[/red bold] {exc}")
            print("[yellow]Export aborted. Use --no-verify to force.[/yellow]")
            raise typer.Exit(code=1)

    events = export_audit(conn, entity_id=entity)

    if output is None:
        assert s.exports_dir is not None
        s.exports_dir.mkdir(parents=True, exist_ok=True)
        output = s.exports_dir / "audit.json"

    payload = json.dumps(events, indent=2, default=str)
    output.write_text(payload, encoding="utf-8")
    print(f"[green]Exported[/green] {len(events)} events → {output}")

    signature = compute_hmac(payload, env_var=s.export_key_env)
    if signature is not None:
        sig_path = output.with_name(output.name + ".hmac")
        sig_path.write_text(signature + "\n", encoding="utf-8")
        print(f"[green]Signed[/green] → {sig_path}")


# ── Entrypoint ──────────────────────────────────────────────
def main() -> None:  # noqa: D103
    app()
