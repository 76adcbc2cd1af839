"""
Main CLI entry point for the Profile Migration Assistant.

This module provides the command-line interface using Click
with Rich formatting.
"""

import asyncio
import json
import sys
import traceback
from typing import Optional

import click
import yaml
from rich.console import Console
from rich.prompt import Prompt
from rich.table import Table

from profile_migration import __version__
from profile_migration.core.exceptions import (
    ConfigurationError,
    DeviceNotFoundError,
    ProfileMigrationError,
)
from profile_migration.models.config import MigrationConfig, load_migration_config
from profile_migration.orchestrator.orchestrator import MigrationOrchestrator
from profile_migration.sccm.client import AdminServiceClient
from profile_migration.utils.helpers import generate_session_id, normalize_host_name, sanitize_dict
from profile_migration.utils.logging import setup_logging, transcript_path
from profile_migration.validation.connectivity import check_network_connectivity

console = Console()

EXIT_PRECONDITION = 1
EXIT_JOB_FAILED = 2

config_option = click.option(
    '--config', '-c', 'config_path',
    type=click.Path(dir_okay=False),
    default='profile_migration.yaml',
    envvar='PROFILE_MIGRATION_CONFIG',
    show_default=True,
    help='Configuration file path'
)


def _load_config(config_path: str) -> MigrationConfig:
    try:
        return load_migration_config(config_path)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        for error in e.details.get("errors", []):
            location = ".".join(str(part) for part in error.get("loc", ()))
            console.print(f"  • [red]{location}: {error.get('msg')}[/red]")
        sys.exit(EXIT_PRECONDITION)


def _ask_host(label: str) -> str:
    value = Prompt.ask(f"[cyan]{label}[/cyan]", console=console).strip()
    if not value:
        console.print(f"[red]{label} is required[/red]")
        sys.exit(EXIT_PRECONDITION)
    return value


@click.group(invoke_without_command=True)
@click.option('--version', is_flag=True, help='Show version information')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
@click.pass_context
def main(ctx: click.Context, version: bool, verbose: bool):
    """
    Profile Migration Assistant

    Captures user profiles from one domain machine and restores them onto
    another through a ConfigMgr site.
    """
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose

    if version:
        console.print(f"Profile Migration Assistant version {__version__}")
        sys.exit(0)

    if ctx.invoked_subcommand is None:
        console.print(f"[bold blue]Profile Migration Assistant[/bold blue] [dim]v{__version__}[/dim]")
        console.print("\n[yellow]Use --help to see available commands[/yellow]")
        console.print("\n[dim]Quick start:[/dim]")
        console.print("  [cyan]profile-migration migrate[/cyan]     - Migrate profiles between two machines")
        console.print("  [cyan]profile-migration status[/cyan]      - Show the deployment status of a host")
        console.print("  [cyan]profile-migration check-host[/cyan]  - Check a host is reachable")


@main.command()
@click.option('--source', '-s', help='Computer to capture profiles from')
@click.option('--target', '-t', help='Computer to restore profiles to')
@config_option
@click.option('--progress/--no-progress', default=True, help='Show start and result panels')
@click.pass_context
def migrate(ctx: click.Context, source: Optional[str], target: Optional[str],
            config_path: str, progress: bool):
    """Migrate user profiles from SOURCE to TARGET."""
    config = _load_config(config_path)

    source = source or _ask_host("Source computer name")
    target = target or _ask_host("Target computer name")

    session_id = generate_session_id()
    log_file = transcript_path(
        config.logging.log_dir, normalize_host_name(source), normalize_host_name(target), session_id
    )
    setup_logging(
        level="DEBUG" if ctx.obj.get('verbose', False) else config.logging.level,
        log_file=log_file,
        rich_console=config.logging.rich_console,
        structured_logging=config.logging.structured,
    )
    console.print(f"[dim]Transcript: {log_file}[/dim]")

    orchestrator = MigrationOrchestrator.from_config(config, console=console)

    async def _run():
        try:
            session = orchestrator.create_session(source, target, session_id=session_id)
            return await orchestrator.execute(session, show_progress=progress)
        finally:
            await orchestrator.close()

    try:
        asyncio.run(_run())
    except DeviceNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(EXIT_PRECONDITION)
    except ProfileMigrationError as e:
        console.print(f"[red]Migration failed: {e}[/red]")
        sys.exit(EXIT_JOB_FAILED)
    except KeyboardInterrupt:
        console.print("[yellow]Migration cancelled by user[/yellow]")
        sys.exit(EXIT_PRECONDITION)
    except Exception as e:
        console.print(f"[red]Migration failed with an unexpected error: {e}[/red]")
        if ctx.obj.get('verbose', False):
            console.print(traceback.format_exc())
        sys.exit(EXIT_JOB_FAILED)

    console.print("[green]✅ Profile migration completed[/green]")


@main.command()
@click.option('--host', '-h', 'host', required=True, help='Computer name')
@click.option('--job', '-j', type=click.Choice(['capture', 'restore']), default='capture',
              show_default=True, help='Job to report on')
@click.option('--format', '-f', 'output_format', type=click.Choice(['table', 'json']),
              default='table', help='Output format')
@config_option
def status(host: str, job: str, output_format: str, config_path: str):
    """Show the deployment status of a job on a host."""
    config = _load_config(config_path)
    job_config = config.capture if job == 'capture' else config.restore

    async def _query():
        async with AdminServiceClient(config.site) as client:
            device = await client.get_device(normalize_host_name(host))
            if device is None:
                return None, None
            return device, await client.get_deployment_status(job_config, device)

    try:
        device, deployment_status = asyncio.run(_query())
    except ProfileMigrationError as e:
        console.print(f"[red]Error querying status: {e}[/red]")
        sys.exit(EXIT_JOB_FAILED)

    if device is None:
        console.print(f"[red]Device not found in inventory: {normalize_host_name(host)}[/red]")
        sys.exit(EXIT_PRECONDITION)

    result = {
        "host": device.name,
        "resource_id": device.resource_id,
        "job": job_config.name,
        "collection_id": job_config.collection_id,
        "package_id": job_config.package_id,
        "status": deployment_status.label() if deployment_status else "NOT_FOUND",
        "description": deployment_status.description if deployment_status else "",
    }

    if output_format == 'json':
        console.print(json.dumps(result, indent=2), markup=False, highlight=False)
        return

    table = Table(title=f"{job_config.name} status")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for key, value in result.items():
        table.add_row(key, str(value))
    console.print(table)


@main.command('check-host')
@click.argument('host')
@config_option
def check_host(host: str, config_path: str):
    """Check whether HOST answers the reachability probe."""
    config = _load_config(config_path)
    check = asyncio.run(check_network_connectivity(
        host, config.remote.probe_port, config.remote.probe_timeout
    ))

    if check.reachable:
        console.print(f"[green]✓ {check.message}[/green]")
        return

    console.print(f"[red]✗ {check.message}[/red]")
    if check.remediation:
        console.print(f"[dim]{check.remediation}[/dim]")
    sys.exit(EXIT_PRECONDITION)


@main.command('show-config')
@config_option
def show_config(config_path: str):
    """Print the effective configuration with secrets masked."""
    config = _load_config(config_path)
    console.print(yaml.safe_dump(
        sanitize_dict(config.model_dump(mode='json')),
        default_flow_style=False,
        sort_keys=False
    ), markup=False, highlight=False)


if __name__ == '__main__':
    main()
