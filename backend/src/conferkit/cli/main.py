"""ConferKit CLI entry point."""

import click


@click.group()
def cli():
    """ConferKit: query-driven reconciliation checklists."""
    pass


# Register subcommand groups
from conferkit.cli.template_cmd import template  # noqa: E402

cli.add_command(template)
