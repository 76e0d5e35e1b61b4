"""Backup and restore commands: create, list, restore, clean."""

from __future__ import annotations

import click

from ._common import MILOU_HOME, console, fail_on_error, settings_for

from rich.panel import Panel
from rich.table import Table


def register_backup_commands(main: click.Group) -> None:
    """Register the backup command group."""

    def _manager(home: str):
        from ..backup import BackupManager

        return BackupManager(settings_for(home))

    @main.group()
    def backup():
        """Backup and restore: configuration, secrets and certificates.

        Snapshots are gzip-compressed tarballs under <home>/backups.
        """

    @backup.command("create")
    @click.argument("name", required=False)
    @click.option("--home", default=MILOU_HOME, type=click.Path(), help="Milou base directory.")
    @click.option("--force", is_flag=True, help="Overwrite an existing backup without asking.")
    @fail_on_error
    def backup_create(name: str, home: str, force: bool):
        """Create a backup of .env, ssl/ and compose files.

        Examples:

            milou backup create

            milou backup create nightly --force
        """
        from ..errors import ConflictRequiresConfirmation

        manager = _manager(home)
        console.print("\n[cyan]Creating backup...[/]")
        try:
            record = manager.create(name, confirm=force)
        except ConflictRequiresConfirmation as exc:
            if not click.confirm(f"Backup {exc.target} already exists. Overwrite?", default=False):
                console.print("[yellow]Backup cancelled[/]")
                raise SystemExit(1)
            record = manager.create(name, confirm=True)

        size_kb = record.size / 1024
        console.print(Panel(
            f"[bold green]Backup created[/]\n"
            f"Name: {record.name}\n"
            f"Size: {size_kb:.1f} KB\n"
            f"Path: [cyan]{record.path}[/]",
            title="Backup Complete",
            border_style="green",
        ))

    @backup.command("list")
    @click.option("--home", default=MILOU_HOME, type=click.Path(), help="Milou base directory.")
    @fail_on_error
    def backup_list(home: str):
        """List available backups, newest first."""
        backups = _manager(home).list()

        if not backups:
            console.print("\n[dim]No backups found.[/] Create one with: milou backup create\n")
            return

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("Name", style="cyan")
        table.add_column("Size", justify="right")
        table.add_column("Created", style="dim")

        for b in backups:
            table.add_row(b.name, f"{b.size / 1024:.1f} KB", b.created.isoformat()[:19])

        console.print(f"\n[bold]{len(backups)}[/] backup(s):\n")
        console.print(table)
        console.print()

    @backup.command("restore")
    @click.argument("name")
    @click.option("--home", default=MILOU_HOME, type=click.Path(), help="Milou base directory.")
    @click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
    @click.option("--no-safety-backup", is_flag=True, help="Skip the pre-restore snapshot.")
    @fail_on_error
    def backup_restore(name: str, home: str, yes: bool, no_safety_backup: bool):
        """Restore configuration and secrets from backup NAME.

        Files are replaced one at a time. If a replacement fails, files
        restored before it stay restored.
        """
        manager = _manager(home)
        manager.get(name)

        console.print("[yellow]This will replace your current configuration![/]")
        if not yes and not click.confirm("Continue with restore?", default=False):
            console.print("[yellow]Restore cancelled[/]")
            raise SystemExit(1)

        result = manager.restore(name, safety_backup=not no_safety_backup)

        safety = result.safety_backup or "[yellow]none[/]"
        console.print(Panel(
            f"[bold green]Restore complete[/]\n"
            f"Backup: {result.name}\n"
            f"Files: {', '.join(result.restored) or 'none'}\n"
            f"Safety backup: {safety}",
            title="Restore Complete",
            border_style="green",
        ))
        console.print("Next steps:")
        console.print("  1. Review configuration: milou config show")
        console.print("  2. Restart services")

    @backup.command("clean")
    @click.option("--home", default=MILOU_HOME, type=click.Path(), help="Milou base directory.")
    @click.option("--keep", "-k", default=None, type=click.IntRange(min=0), help="Backups to keep (default 10).")
    @fail_on_error
    def backup_clean(home: str, keep: int):
        """Delete all but the most recent backups."""
        removed = _manager(home).clean(keep)
        if not removed:
            console.print("[dim]Nothing to clean.[/]")
            return
        for record in removed:
            console.print(f"  Removed: [cyan]{record.name}[/]")
        console.print(f"[green]Removed {len(removed)} backup(s)[/]")

    main.add_command(backup)
