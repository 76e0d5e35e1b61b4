"""
Milou CLI: configuration store and backup commands.

Each command group lives in its own module and is registered on the
main Click group here.

Entry point: milou.cli:main
"""

from __future__ import annotations

import logging

import click

from .. import __version__


@click.group()
@click.version_option(version=__version__, prog_name="milou")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
def main(verbose: bool):
    """Milou: secret-bearing configuration and backups.

    Every write is atomic. Every secret keeps its permissions.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# Register all command groups from modular files
# ---------------------------------------------------------------------------

from .config import register_config_commands
from .backup import register_backup_commands

register_config_commands(main)
register_backup_commands(main)
