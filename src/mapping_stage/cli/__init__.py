"""CLI module for the mapping staging workspace.

Provides commands to load the mapping tree from a server profile, edit it
offline, inspect pending changes and commit or revert them.

Usage:
    STAGE_PROFILE=prod mapping-stage load
    mapping-stage tree
    mapping-stage add-field 3 email --source-type varchar --target-type text
    mapping-stage move-field 12 up
    mapping-stage diff
    mapping-stage commit --dry-run
    mapping-stage commit
    mapping-stage revert --confirm

Commands:
    load          - Load the mapping tree from the active profile
    status        - Show profile and pending change counts
    tree          - Show the staged hierarchy with statuses
    validate      - Run pre-commit validation
    diff          - Print the pending change-set as JSON
    commit        - Send pending changes to the server
    revert        - Discard pending changes and reload
    add-service   - Add a service
    add-database  - Add a database to a service
    add-table     - Add a table to a database
    add-field     - Add a field to a table
    delete        - Delete a service, database, table or field
    move-field    - Move a field up or down
"""

import argparse
import asyncio
import logging
import sys
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from pathlib import Path

from rich.console import Console
from rich.table import Table

from mapping_stage.errors import MappingValidationError, ProfileNotFoundError, StageError
from mapping_stage.factory import (
    close_workspace,
    get_active_profile_name,
    open_workspace,
    read_profile_lock,
    write_profile_lock,
)
from mapping_stage.staging.diff import collect_changes
from mapping_stage.staging.validator import validate_before_commit
from mapping_stage.staging.workspace import StagingWorkspace
from mapping_stage.store.models import EntityKind, EntityStatus

console = Console()

_STATUS_STYLES = {
    EntityStatus.UNCHANGED: "dim",
    EntityStatus.ADDED: "green",
    EntityStatus.UPDATED: "yellow",
    EntityStatus.DELETED: "red",
}


# ============================================================================
# Helpers
# ============================================================================


@asynccontextmanager
async def _open(
    args: argparse.Namespace, profile_name: str | None = None
) -> AsyncIterator[StagingWorkspace]:
    workspace = await open_workspace(
        profile_name=profile_name,
        env_prefix=getattr(args, "env_prefix", ""),
        config_path=getattr(args, "config", None),
    )
    try:
        yield workspace
    finally:
        await close_workspace(workspace)


def _print_error(error: Exception) -> None:
    if isinstance(error, MappingValidationError):
        console.print("[bold red]x[/bold red] Validation failed:")
        for message in error.errors:
            console.print(f"  - {message}")
    elif isinstance(error, KeyError) and error.args:
        console.print(f"[red]Error: {error.args[0]}[/red]")
    else:
        console.print(f"[red]Error: {error}[/red]")


def _run(impl: Callable[[argparse.Namespace], Awaitable[int]], args: argparse.Namespace) -> int:
    """Run an async command, reporting config and staging errors as exit code 1."""
    try:
        return asyncio.run(impl(args))
    except (FileNotFoundError, KeyError, ValueError, StageError) as e:
        _print_error(e)
        return 1


def _styled_status(status: EntityStatus) -> str:
    style = _STATUS_STYLES[status]
    return f"[{style}]{status}[/{style}]"


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_load(args: argparse.Namespace) -> int:
    """Async implementation for load command.

    Writes the profile lock only after the load succeeded.
    """
    env_prefix = getattr(args, "env_prefix", "")
    try:
        profile_name = get_active_profile_name(env_prefix)
    except ProfileNotFoundError as e:
        console.print(f"[yellow]{e}[/yellow]")
        return 1

    previous_profile = read_profile_lock()
    console.print(f"Loading mappings from [bold cyan]{profile_name}[/bold cyan]...", style="dim")

    async with _open(args, profile_name) as workspace:
        summary = await workspace.load()

    write_profile_lock(profile_name)

    console.print()
    console.print(
        f"[bold green]v[/bold green] Loaded {summary.services} services, "
        f"{summary.databases} databases, {summary.tables} tables, {summary.fields} fields"
    )
    if summary.dropped_rows:
        console.print(f"  [yellow]Dropped {summary.dropped_rows} malformed row(s)[/yellow]")
    if previous_profile and previous_profile != profile_name:
        console.print(
            f"\n[dim]Switched from[/dim] [bold]{previous_profile}[/bold] "
            f"[dim]to[/dim] [bold cyan]{profile_name}[/bold cyan]"
        )
    return 0


async def _async_status(args: argparse.Namespace) -> int:
    async with _open(args) as workspace:
        changes = await workspace.pending_changes()

    table = Table(title="Pending Changes", show_header=True, header_style="bold")
    table.add_column("Section")
    table.add_column("Deleted", justify="right")
    table.add_column("Updated", justify="right")
    table.add_column("Added", justify="right")
    for section, buckets in changes.summary().items():
        table.add_row(
            section,
            str(buckets["deleted"]),
            str(buckets["updated"]),
            str(buckets.get("added", "-")),
        )

    console.print(f"Profile: [bold cyan]{read_profile_lock() or '-'}[/bold cyan]")
    console.print(table)
    if changes.is_empty:
        console.print("[dim]No pending changes.[/dim]")
    else:
        console.print(f"[bold]{changes.change_count}[/bold] pending change(s)")
    return 0


async def _async_tree(args: argparse.Namespace) -> int:
    table = Table(title="Staged Mappings", show_header=True, header_style="bold")
    table.add_column("Id", justify="right")
    table.add_column("Name")
    table.add_column("Details", style="dim")
    table.add_column("Status")

    async with _open(args) as workspace:
        for service in await workspace.services():
            table.add_row(
                str(service.id),
                f"[bold]{service.current_name}[/bold]",
                f"{service.target_db_type}, {service.database_count} database(s)",
                _styled_status(service.status),
            )
            for database in await workspace.databases(service.id):
                table.add_row(
                    str(database.id),
                    f"  {database.current_name}",
                    f"{database.source_db_type} -> {database.target_db_name}, "
                    f"{database.table_count} table(s)",
                    _styled_status(database.status),
                )
                for tbl in await workspace.tables(database.id):
                    table.add_row(
                        str(tbl.id),
                        f"    {tbl.current_name}",
                        f"-> {tbl.target_name}, {tbl.field_count} field(s)",
                        _styled_status(tbl.status),
                    )
                    for field in await workspace.fields(tbl.id):
                        key = " [cyan]PK[/cyan]" if field.is_primary_key else ""
                        table.add_row(
                            str(field.id),
                            f"      {field.row_order}. {field.source_name}{key}",
                            f"{field.source_type} -> {field.target_name} {field.target_type}",
                            _styled_status(field.status),
                        )

    console.print(table)
    return 0


async def _async_validate(args: argparse.Namespace) -> int:
    async with _open(args) as workspace:
        result = await workspace.validate()

    if result.valid:
        console.print("[bold green]v[/bold green] Mappings are valid")
        return 0
    console.print("[bold red]x[/bold red] " + result.format_report())
    return 1


async def _async_diff(args: argparse.Namespace) -> int:
    async with _open(args) as workspace:
        changes = await workspace.pending_changes()
    console.print_json(changes.model_dump_json())
    return 0


async def _async_commit(args: argparse.Namespace) -> int:
    """Async implementation for commit command.

    ``--dry-run`` validates and shows the change counts without sending.
    """
    async with _open(args) as workspace:
        if args.dry_run:
            validation = await validate_before_commit(workspace.store)
            if not validation.valid:
                console.print("[bold red]x[/bold red] " + validation.format_report())
                return 1
            changes = await collect_changes(workspace.store)
            for section, buckets in changes.summary().items():
                counts = ", ".join(f"{n} {bucket}" for bucket, n in buckets.items())
                console.print(f"  {section}: {counts}")
            console.print()
            console.print(
                f"[bold yellow]DRY RUN[/bold yellow] - {changes.change_count} change(s) "
                "would be sent."
            )
            return 0

        console.print("Committing...", style="dim")
        result = await workspace.commit()

    if result.outcome == "invalid":
        console.print("[bold red]x[/bold red] " + result.validation.format_report())
        return 1
    if result.outcome == "no_changes":
        console.print("[dim]No changes to commit.[/dim]")
        return 0
    if result.outcome == "failed":
        console.print(f"[bold red]x[/bold red] Commit failed: {result.error}")
        console.print("[dim]Local changes were kept; fix the problem and retry.[/dim]")
        return 1

    console.print(f"[bold green]v[/bold green] Committed {result.change_count} change(s)")
    if result.error:
        console.print(f"[yellow]{result.error}[/yellow]")
        console.print("[dim]Run[/dim] [cyan]mapping-stage revert --confirm[/cyan] [dim]to reload.[/dim]")
        return 1
    return 0


async def _async_revert(args: argparse.Namespace) -> int:
    if not args.confirm:
        console.print(
            "[yellow]Revert discards every local change.[/yellow] "
            "Re-run with [cyan]--confirm[/cyan] to proceed."
        )
        return 1

    async with _open(args) as workspace:
        summary = await workspace.revert()
    console.print(
        f"[bold green]v[/bold green] Reverted; reloaded {summary.fields} field(s) from the server"
    )
    return 0


async def _async_add_service(args: argparse.Namespace) -> int:
    async with _open(args) as workspace:
        record = await workspace.add_service(args.name, args.target_db_type)
    console.print(f"[bold green]v[/bold green] Added service {record.id} ({record.current_name})")
    return 0


async def _async_add_database(args: argparse.Namespace) -> int:
    async with _open(args) as workspace:
        record = await workspace.add_database(
            args.service_id,
            args.name,
            source_schema=args.source_schema,
            target_db_name=args.target_db_name,
            target_schema=args.target_schema,
            source_db_type=args.source_db_type,
        )
    console.print(f"[bold green]v[/bold green] Added database {record.id} ({record.current_name})")
    return 0


async def _async_add_table(args: argparse.Namespace) -> int:
    async with _open(args) as workspace:
        record = await workspace.add_table(
            args.database_id, args.name, target_name=args.target_name
        )
    console.print(f"[bold green]v[/bold green] Added table {record.id} ({record.current_name})")
    return 0


async def _async_add_field(args: argparse.Namespace) -> int:
    async with _open(args) as workspace:
        record = await workspace.add_field(
            args.table_id,
            args.name,
            source_type=args.source_type,
            target_name=args.target_name,
            target_type=args.target_type,
            target_default_value=args.default,
            is_primary_key=1 if args.primary_key else 0,
            row_order=args.row_order,
        )
    console.print(
        f"[bold green]v[/bold green] Added field {record.id} ({record.source_name}) "
        f"at position {record.row_order}"
    )
    return 0


async def _async_delete(args: argparse.Namespace) -> int:
    kind = EntityKind(args.kind)
    async with _open(args) as workspace:
        operations = {
            EntityKind.SERVICE: workspace.delete_service,
            EntityKind.DATABASE: workspace.delete_database,
            EntityKind.TABLE: workspace.delete_table,
            EntityKind.FIELD: workspace.delete_field,
        }
        steps = await operations[kind](args.id)
    console.print(f"[bold green]v[/bold green] Deleted {kind} {args.id} ({len(steps)} write(s))")
    return 0


async def _async_move_field(args: argparse.Namespace) -> int:
    async with _open(args) as workspace:
        changed = await workspace.move_field(args.id, args.direction)
    if not changed:
        console.print(f"[dim]Field {args.id} is already at the {'top' if args.direction == 'up' else 'bottom'}.[/dim]")
    else:
        console.print(f"[bold green]v[/bold green] Moved field {args.id} {args.direction}")
    return 0


# ============================================================================
# Command wrappers
# ============================================================================


def cmd_load(args: argparse.Namespace) -> int:
    """Load the mapping tree from the active profile.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return _run(_async_load, args)


def cmd_status(args: argparse.Namespace) -> int:
    return _run(_async_status, args)


def cmd_tree(args: argparse.Namespace) -> int:
    return _run(_async_tree, args)


def cmd_validate(args: argparse.Namespace) -> int:
    """Run pre-commit validation.

    Returns:
        0 when valid, 1 otherwise.
    """
    return _run(_async_validate, args)


def cmd_diff(args: argparse.Namespace) -> int:
    return _run(_async_diff, args)


def cmd_commit(args: argparse.Namespace) -> int:
    """Commit pending changes.

    Returns:
        0 on success or nothing to commit, 1 on failure.
    """
    return _run(_async_commit, args)


def cmd_revert(args: argparse.Namespace) -> int:
    return _run(_async_revert, args)


def cmd_add_service(args: argparse.Namespace) -> int:
    return _run(_async_add_service, args)


def cmd_add_database(args: argparse.Namespace) -> int:
    return _run(_async_add_database, args)


def cmd_add_table(args: argparse.Namespace) -> int:
    return _run(_async_add_table, args)


def cmd_add_field(args: argparse.Namespace) -> int:
    return _run(_async_add_field, args)


def cmd_delete(args: argparse.Namespace) -> int:
    return _run(_async_delete, args)


def cmd_move_field(args: argparse.Namespace) -> int:
    return _run(_async_move_field, args)


# ============================================================================
# Main entry point
# ============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mapping-stage",
        description="Offline staging and commit of ETL field mappings",
    )

    # Global options
    parser.add_argument(
        "--env-prefix",
        default="",
        help=(
            "Prefix for environment variable lookup "
            "(e.g., --env-prefix APP_ reads APP_STAGE_PROFILE)"
        ),
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to stage.toml (default: ./stage.toml)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("load", help="Load the mapping tree from the active profile").set_defaults(
        func=cmd_load
    )
    subparsers.add_parser("status", help="Show pending change counts").set_defaults(
        func=cmd_status
    )
    subparsers.add_parser("tree", help="Show the staged hierarchy").set_defaults(func=cmd_tree)
    subparsers.add_parser("validate", help="Run pre-commit validation").set_defaults(
        func=cmd_validate
    )
    subparsers.add_parser("diff", help="Print pending changes as JSON").set_defaults(
        func=cmd_diff
    )

    # commit command
    p_commit = subparsers.add_parser("commit", help="Send pending changes to the server")
    p_commit.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate and show what would be sent without sending",
    )
    p_commit.set_defaults(func=cmd_commit)

    # revert command
    p_revert = subparsers.add_parser("revert", help="Discard pending changes and reload")
    p_revert.add_argument(
        "--confirm",
        action="store_true",
        help="Actually discard local changes (required)",
    )
    p_revert.set_defaults(func=cmd_revert)

    # add-service command
    p_service = subparsers.add_parser("add-service", help="Add a service")
    p_service.add_argument("name", help="Service name")
    p_service.add_argument("--target-db-type", required=True, help="Target database type")
    p_service.set_defaults(func=cmd_add_service)

    # add-database command
    p_database = subparsers.add_parser("add-database", help="Add a database to a service")
    p_database.add_argument("service_id", type=int, help="Parent service id")
    p_database.add_argument("name", help="Source database name")
    p_database.add_argument("--source-schema", default="")
    p_database.add_argument("--target-db-name", default="")
    p_database.add_argument("--target-schema", default="")
    p_database.add_argument("--source-db-type", default="")
    p_database.set_defaults(func=cmd_add_database)

    # add-table command
    p_table = subparsers.add_parser("add-table", help="Add a table to a database")
    p_table.add_argument("database_id", type=int, help="Parent database id")
    p_table.add_argument("name", help="Source table name")
    p_table.add_argument("--target-name", default="")
    p_table.set_defaults(func=cmd_add_table)

    # add-field command
    p_field = subparsers.add_parser("add-field", help="Add a field to a table")
    p_field.add_argument("table_id", type=int, help="Parent table id")
    p_field.add_argument("name", help="Source field name")
    p_field.add_argument("--source-type", default="")
    p_field.add_argument("--target-name", default="")
    p_field.add_argument("--target-type", default="")
    p_field.add_argument("--default", default="", help="Target default value")
    p_field.add_argument("--primary-key", action="store_true", help="Mark as the table's key")
    p_field.add_argument("--row-order", type=int, default=None, help="Position (default: last)")
    p_field.set_defaults(func=cmd_add_field)

    # delete command
    p_delete = subparsers.add_parser("delete", help="Delete an entity and its descendants")
    p_delete.add_argument("kind", choices=[k.value for k in EntityKind])
    p_delete.add_argument("id", type=int)
    p_delete.set_defaults(func=cmd_delete)

    # move-field command
    p_move = subparsers.add_parser("move-field", help="Move a field up or down")
    p_move.add_argument("id", type=int, help="Field id")
    p_move.add_argument("direction", choices=["up", "down"])
    p_move.set_defaults(func=cmd_move_field)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Parses command line arguments and dispatches to appropriate handler.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
