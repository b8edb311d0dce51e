"""Template CLI commands: validate, preview and export."""

from pathlib import Path

import click

from conferkit.engine.errors import ConfigurationError
from conferkit.engine.substitution import find_placeholders, substitute_preview
from conferkit.templates.document import export_template_json, load_template_file
from conferkit.templates.types import ChecklistTemplate


def _load_or_exit(path: Path) -> ChecklistTemplate:
    try:
        return load_template_file(path)
    except ConfigurationError as e:
        for issue in e.issues:
            click.echo(click.style(str(issue), fg="red"))
        click.echo(
            click.style(f"\n{len(e.issues)} error(s) found in {path}", fg="red", bold=True)
        )
        raise SystemExit(1)


def _parse_assignments(assignments: tuple[str, ...]) -> dict[str, str]:
    values = {}
    for assignment in assignments:
        key, sep, value = assignment.partition("=")
        if not sep or not key.strip():
            raise click.BadParameter(f"expected key=value, got '{assignment}'", param_hint="--set")
        values[key.strip()] = value
    return values


@click.group()
def template():
    """Checklist template commands."""
    pass


@template.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def validate(path: Path):
    """Validate a template document (JSON or YAML)."""
    checklist = _load_or_exit(path)

    item_count = sum(len(s.items) for s in checklist.sections)
    click.echo(f"{checklist.name} (version {checklist.version})")
    for section in checklist.sorted_sections():
        click.echo(f"  ✓ {section.key} ({len(section.items)} items)")
    click.echo(
        f"\n{len(checklist.sections)} section(s), {item_count} item(s), "
        f"{len(checklist.expected_inputs)} expected input(s)"
    )
    click.echo(click.style("\nTemplate is valid.", fg="green", bold=True))


@template.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--item", "item_key", required=True, help="Key of the item to preview.")
@click.option(
    "--set",
    "assignments",
    multiple=True,
    help="Override a sample value, e.g. --set store_id=42. Repeatable.",
)
def preview(path: Path, item_key: str, assignments: tuple[str, ...]):
    """Show an item's query with sample values substituted."""
    checklist = _load_or_exit(path)
    overrides = _parse_assignments(assignments)

    for item in checklist.iter_items():
        if item.key == item_key:
            break
    else:
        click.echo(f"Error: no item with key '{item_key}' in {path}", err=True)
        raise SystemExit(1)

    query = substitute_preview(item.query, overrides, checklist.expected_inputs)
    click.echo(query)

    unresolved = find_placeholders(query)
    if unresolved:
        names = ", ".join(f":{name}" for name in unresolved)
        click.echo(click.style(f"Unresolved placeholder(s): {names}", fg="yellow"), err=True)


@template.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def export(path: Path):
    """Print the normalized JSON document for a template file."""
    click.echo(export_template_json(_load_or_exit(path)))
