"""Configuration commands: get, set, generate, validate, migrate, show."""

from __future__ import annotations

import click

from ._common import MILOU_HOME, console, fail_on_error, settings_for

from rich.table import Table


def register_config_commands(main: click.Group) -> None:
    """Register the config command group."""

    def _store(home: str):
        from ..config_store import ConfigStore

        settings = settings_for(home)
        return settings, ConfigStore(settings.env_path, mode=settings.mode)

    @main.group()
    def config():
        """Configuration store: the deployment's .env file.

        Every change is written atomically with 600 permissions.
        """

    @config.command("get")
    @click.argument("key")
    @click.option("--home", default=MILOU_HOME, type=click.Path(), help="Milou base directory.")
    @fail_on_error
    def config_get(key: str, home: str):
        """Print the value of KEY."""
        _, store = _store(home)
        click.echo(store.get(key))

    @config.command("set")
    @click.argument("key")
    @click.argument("value")
    @click.option("--home", default=MILOU_HOME, type=click.Path(), help="Milou base directory.")
    @fail_on_error
    def config_set(key: str, value: str, home: str):
        """Set KEY to VALUE, keeping every other line as is."""
        if not value:
            raise click.BadParameter("Value cannot be empty", param_hint="VALUE")
        _, store = _store(home)
        store.set(key, value)
        console.print(f"[green]Set {key} successfully[/]")

    @config.command("generate")
    @click.option("--home", default=MILOU_HOME, type=click.Path(), help="Milou base directory.")
    @click.option("--template", "-t", default=None, type=click.Path(), help="Template file.")
    @click.option(
        "--mode",
        type=click.Choice(["production", "development"]),
        default=None,
        help="Deployment mode for mode-dependent values.",
    )
    @click.option("--force", is_flag=True, help="Overwrite an existing .env file.")
    @fail_on_error
    def config_generate(home: str, template: str, mode: str, force: bool):
        """Generate the .env file from a template with fresh secrets.

        Examples:

            milou config generate

            milou config generate --mode development --force
        """
        from ..templating import DeploymentMode

        settings, store = _store(home)
        template_path = template or settings.template_path
        store.generate_from_file(
            template_path,
            mode=DeploymentMode(mode) if mode else None,
            overwrite=force,
        )
        console.print(f"[green]Environment file generated:[/] [cyan]{store.path}[/]")
        console.print("[yellow]Secrets have been generated. Keep this file secure.[/]")

    @config.command("validate")
    @click.option("--home", default=MILOU_HOME, type=click.Path(), help="Milou base directory.")
    @fail_on_error
    def config_validate(home: str):
        """Check permissions and required keys."""
        from ..errors import ValidationError

        settings, store = _store(home)
        try:
            report = store.validate(settings.required_keys, settings.recommended_keys)
        except ValidationError as exc:
            console.print("[red]Missing required environment variables:[/]")
            for key in exc.missing_keys:
                console.print(f"  [red]- {key}[/]")
            raise SystemExit(1)

        for warning in report.warnings:
            console.print(f"[yellow]{warning}[/]")
        console.print("[green]Environment file validated successfully[/]")

    @config.command("migrate")
    @click.option("--home", default=MILOU_HOME, type=click.Path(), help="Milou base directory.")
    @fail_on_error
    def config_migrate(home: str):
        """Add keys introduced by newer releases."""
        _, store = _store(home)
        results = store.apply_migrations()

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("Key", style="cyan")
        table.add_column("Value")
        table.add_column("Result")
        for r in results:
            outcome = "[green]added[/]" if r.applied else "[dim]already present[/]"
            table.add_row(r.key, r.value, outcome)
        console.print(table)
        console.print("[green]Migration completed successfully[/]")

    @config.command("show")
    @click.option("--home", default=MILOU_HOME, type=click.Path(), help="Milou base directory.")
    @fail_on_error
    def config_show(home: str):
        """Print the .env file after checking its permissions."""
        _, store = _store(home)
        click.echo(store.show(), nl=False)

    main.add_command(config)
