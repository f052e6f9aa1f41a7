#!/usr/bin/env python3
"""
ExcelVC Agent CLI
Command-line interface for configuration, history browsing and restore.
"""

import os
import sys
import threading
import click
from pathlib import Path
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from tabulate import tabulate

from excelvc_agent.config import Config, ConfigManager
from excelvc_agent.database import Database
from excelvc_agent.keychain import KeychainManager
from excelvc_agent.codec import ContentCodec, PayloadIntegrityError
from excelvc_agent.crypto import CryptoEnvelope, KeyConfigurationError, VALID_KEY_SIZES
from excelvc_agent.restore import RestoreResult, RestoreWorkflow
from excelvc_agent.retention import RetentionSweeper
from excelvc_agent.logger import LOG_FILE_NAME
from excelvc_agent.utils import format_bytes, format_timestamp

console = Console()


def _load() -> Config:
    try:
        return ConfigManager().load()
    except FileNotFoundError:
        console.print("[red]Agent not configured. Run: excelvc-agent setup[/red]")
        sys.exit(1)


def _open_db(config: Config) -> Database:
    db = Database(config.db_path)
    db.init()
    return db


@click.group()
@click.version_option(version="1.0.0")
def cli():
    """ExcelVC Agent - Spreadsheet Version History"""
    pass


@cli.command()
def setup():
    """Run interactive setup wizard."""
    console.print("\n[bold cyan]ExcelVC Agent Setup[/bold cyan]\n")

    config_manager = ConfigManager()

    roots = []
    while True:
        root = click.prompt("Folder to watch (empty to finish)", default="", show_default=False)
        if not root:
            break
        if not Path(root).expanduser().is_dir():
            console.print(f"[red]Not a directory: {root}[/red]")
            continue
        roots.append(root)

    retention_days = click.prompt("Keep versions for how many days", default=7, type=int)

    config = Config(watch_roots=roots, retention_days=retention_days)
    config_manager.save(config)
    console.print(f"\n[green]✓ Configuration saved to {config_manager.config_path}[/green]")

    if not os.environ.get(config.encryption_key_env):
        console.print(
            f"\n[yellow]{config.encryption_key_env} is not set. "
            "The key can be stored in the OS keychain instead.[/yellow]"
        )
        key = click.prompt("Encryption key (16, 24 or 32 characters)", hide_input=True)
        if len(key.encode('utf-8')) not in VALID_KEY_SIZES:
            console.print("[red]Key must be 16, 24 or 32 bytes long[/red]")
            sys.exit(1)
        KeychainManager().store_encryption_key(key)
        console.print("[green]✓ Encryption key stored in keychain[/green]")

    config_manager.ensure_directories()
    _open_db(config)
    console.print(f"[green]✓ Database initialized at {config.db_path}[/green]")

    console.print("\n[bold green]✓ Setup complete![/bold green]")
    console.print("Start the agent: [cyan]excelvc-daemon[/cyan]\n")


@cli.command()
@click.argument('path')
def watch(path):
    """Add a folder to the watch list."""
    if not Path(path).expanduser().is_dir():
        console.print(f"[red]Invalid folder: {path}[/red]")
        sys.exit(1)

    _load()
    if ConfigManager().add_watch_root(path):
        console.print(f"[green]✓ Now watching: {os.path.abspath(os.path.expanduser(path))}[/green]")
        console.print("A running daemon picks this up within a minute")
    else:
        console.print("[yellow]Already watching this folder[/yellow]")


@cli.command()
def files():
    """List tracked files."""
    db = _open_db(_load())
    rows = db.list_files()

    if not rows:
        console.print("[yellow]No files tracked yet[/yellow]")
        return

    table_data = [
        [row['id'], row['file_name'], row['version_count'], row['latest_version'], row['file_path']]
        for row in rows
    ]
    headers = ["ID", "Name", "Stored", "Latest", "Path"]
    print(tabulate(table_data, headers=headers, tablefmt="grid"))


@cli.command()
@click.argument('file_id', type=int)
def versions(file_id):
    """List stored versions of a file, newest first."""
    db = _open_db(_load())
    tracked = db.get_file(file_id)

    if tracked is None:
        console.print(f"[red]Unknown file id: {file_id}[/red]")
        sys.exit(1)

    rows = db.list_versions(file_id)
    console.print(f"\n[bold cyan]{escape(tracked['file_name'])}[/bold cyan] [dim]{escape(tracked['file_path'])}[/dim]\n")

    if not rows:
        console.print("[yellow]No versions stored[/yellow]")
        return

    table = Table(show_header=True)
    table.add_column("Version", justify="right", style="cyan")
    table.add_column("Created")
    table.add_column("Size", justify="right")
    table.add_column("Stored", justify="right", style="green")

    for row in rows:
        table.add_row(
            str(row['version_number']),
            format_timestamp(row['created_at']),
            format_bytes(row['original_size']),
            format_bytes(row['stored_size'])
        )

    console.print(table)


@cli.command()
@click.argument('file_id', type=int)
@click.argument('version', type=int)
def restore(file_id, version):
    """Restore a file to a stored version."""
    config = _load()
    db = _open_db(config)

    try:
        envelope = CryptoEnvelope.from_environment(config.encryption_key_env, keychain=KeychainManager())
    except KeyConfigurationError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    workflow = RestoreWorkflow(
        db=db,
        codec=ContentCodec(config.compression_level),
        envelope=envelope,
        capture_lock=threading.Lock()
    )

    try:
        result = workflow.restore(file_id, version)
    except PayloadIntegrityError as e:
        console.print(f"[bold red]Stored version is corrupt: {e}[/bold red]")
        sys.exit(2)

    if result is RestoreResult.SUCCESS:
        console.print(f"[green]✓ Restored to version {version}. Reopen the document.[/green]")
    elif result is RestoreResult.FILE_LOCKED:
        console.print("[yellow]File is open in another application or cannot be written. Close the document before restoring.[/yellow]")
        sys.exit(1)
    else:
        console.print(f"[red]File {file_id} version {version} not found[/red]")
        sys.exit(1)


@cli.command()
def sweep():
    """Delete versions older than the retention window now."""
    config = _load()
    db = _open_db(config)

    removed = RetentionSweeper(db, retention_days=config.retention_days).sweep()
    db.log_activity('retention_sweep', f"Removed {removed} version(s) (manual)")
    console.print(f"[green]✓ Removed {removed} version(s) older than {config.retention_days} days[/green]")


@cli.command()
def status():
    """Show agent status."""
    config = _load()
    db = _open_db(config)
    stats = db.get_stats()

    console.print("\n[bold cyan]ExcelVC Agent Status[/bold cyan]\n")

    table = Table(title="Version Store", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right", style="green")

    table.add_row("Files Tracked", str(stats['files_tracked']))
    table.add_row("Versions Stored", str(stats['versions_stored']))
    table.add_row("Original Size", format_bytes(stats['bytes_original']))
    table.add_row("Stored Size", format_bytes(stats['bytes_stored']))
    table.add_row("Retention", f"{config.retention_days} days")

    console.print(table)

    console.print("\n[bold]Watched folders:[/bold]")
    if not config.watch_roots:
        console.print("  [yellow]none[/yellow]")
    for root in config.watch_roots:
        console.print(f"  • {root}")


@cli.command()
@click.option('--limit', default=20, show_default=True, help='Number of entries')
def activity(limit):
    """Show recent activity."""
    db = _open_db(_load())

    console.print("\n[bold cyan]Recent Activity[/bold cyan]\n")

    for entry in db.get_recent_activity(limit=limit):
        timestamp = format_timestamp(entry['created_at'])
        label = escape(f"[{entry['activity_type']}]")
        console.print(f"[dim]{timestamp}[/dim] {label} {escape(entry['message'])}")


@cli.command()
def logs():
    """View agent logs."""
    config = _load()
    log_path = Path(config.log_dir).expanduser() / LOG_FILE_NAME

    if not log_path.exists():
        console.print("[yellow]No log file found[/yellow]")
        return

    console.print(f"\n[bold]Showing last 50 lines of {log_path}[/bold]\n")

    with open(log_path, 'r') as f:
        lines = f.readlines()
        for line in lines[-50:]:
            print(line.rstrip())


def main():
    """CLI entry point."""
    cli()


if __name__ == "__main__":
    main()
