from typing import Optional

import typer

from app.db import DATABASE_URL, engine
from app.schema import DIALECTS, create_schema, drop_schema, ensure_database, render_ddl

cli = typer.Typer(help="Library schema tooling")


@cli.command("create")
def cli_create():
    """Create the database (where supported) and every missing table."""
    ensure_database(DATABASE_URL)
    created = create_schema(engine)
    if created:
        typer.echo(f"Created {len(created)} tables: {', '.join(created)}")
    else:
        typer.echo("Schema already up to date.")


@cli.command("drop")
def cli_drop(yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt")):
    """Drop every library table, dependents first."""
    if not yes:
        typer.confirm(f"Drop all library tables in {engine.url.render_as_string(hide_password=True)}?", abort=True)
    dropped = drop_schema(engine)
    typer.echo(f"Dropped {len(dropped)} tables.")


@cli.command("ddl")
def cli_ddl(
    dialect: str = typer.Option("mysql", "--dialect", "-d", help=f"One of: {', '.join(sorted(DIALECTS))}"),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Write the script to this file"),
):
    """Print the CREATE TABLE / CREATE INDEX script without touching a database."""
    try:
        script = render_ddl(dialect)
    except ValueError as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(code=2)
    if output:
        with open(output, "w", encoding="utf-8") as fh:
            fh.write(script)
        typer.echo(f"Wrote {output}")
    else:
        typer.echo(script)


if __name__ == "__main__":
    cli()
