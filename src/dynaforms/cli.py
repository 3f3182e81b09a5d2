"""Command-line interface for Dynaforms.

This module provides the CLI commands for running the server and working
with schema documents offline.
"""

import json
import sys
from typing import NoReturn

import click

from dynaforms.core.config import get_settings
from dynaforms.core.exceptions import SchemaCompileError
from dynaforms.core.logging import configure_logging, get_logger


@click.group()
@click.version_option(version="0.1.0", prog_name="Dynaforms")
def cli() -> None:
    """Dynaforms - CRUD endpoints generated from a schema document.

    Settings are loaded from DYNAFORMS_* environment variables and .env.
    """


@cli.command()
@click.option(
    "--host",
    type=str,
    default=None,
    help="Host to bind to (overrides config)",
)
@click.option(
    "--port",
    type=int,
    default=None,
    help="Port to bind to (overrides config)",
)
@click.option(
    "--workers",
    type=int,
    default=None,
    help="Number of worker processes (overrides config)",
)
@click.option(
    "--reload",
    is_flag=True,
    default=False,
    help="Enable auto-reload for development",
)
def serve(host: str | None, port: int | None, workers: int | None, reload: bool) -> None:
    """Start the Dynaforms server.

    The route registry lives in process memory, so every worker holds its
    own copy; schema updates reach only the worker that served them.
    """
    import uvicorn

    settings = get_settings()

    # Apply CLI overrides
    bind_host = host or settings.host
    bind_port = port or settings.port
    bind_workers = workers or settings.workers

    # Configure logging before starting server
    configure_logging(settings)

    logger = get_logger(__name__)
    logger.info(
        "Starting Dynaforms server",
        host=bind_host,
        port=bind_port,
        workers=bind_workers,
        reload=reload,
        environment=settings.environment,
    )
    if bind_workers > 1:
        logger.warning(
            "Multiple workers do not share schema updates",
            workers=bind_workers,
        )

    # Run the server
    uvicorn.run(
        "dynaforms.infrastructure.api.app:app",
        host=bind_host,
        port=bind_port,
        workers=1 if reload else bind_workers,
        reload=reload,
        log_level=settings.log_level.lower(),
        access_log=True,
    )


@cli.group()
def schema() -> None:
    """Inspect and validate schema documents."""
    # stdout is reserved for command output
    configure_logging(get_settings(), stream=sys.stderr)


@schema.command("validate")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
def validate_schema(path: str) -> None:
    """Compile a schema document without applying it.

    Prints each entity with its route and fields, or the first compile error.
    """
    from dynaforms.domain.services import EntityDescriptorCompiler

    try:
        with open(path, encoding="utf-8") as f:
            document = json.load(f)
    except json.JSONDecodeError as e:
        click.echo(f"Error: {path} is not valid JSON: {e}", err=True)
        raise SystemExit(1)

    try:
        descriptors = EntityDescriptorCompiler.compile_document(document)
    except SchemaCompileError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    click.echo(f"Schema is valid: {len(descriptors)} entities")
    for descriptor in descriptors.values():
        click.echo(f"  {descriptor.entity_name} ({descriptor.model_name}) -> {descriptor.route}")
        for field in descriptor.fields:
            flags = [flag for flag in ("required", "unique") if getattr(field, flag)]
            if field.default_now:
                flags.append("default=now")
            elif field.has_default:
                flags.append(f"default={field.default!r}")
            suffix = f" [{', '.join(flags)}]" if flags else ""
            click.echo(f"    - {field.name}: {field.kind.value}{suffix}")


@schema.command("show")
def show_schema() -> None:
    """Print the stored schema document."""
    from dynaforms.infrastructure.persistence.schema_store import SchemaStore

    settings = get_settings()
    document = SchemaStore(settings.schema_path).load()
    if document is None:
        click.echo(f"No stored schema document at {settings.schema_path}", err=True)
        raise SystemExit(1)
    click.echo(json.dumps(document, indent=2, ensure_ascii=False))


@cli.command()
def info() -> None:
    """Display Dynaforms configuration."""
    settings = get_settings()

    click.echo(f"""
Dynaforms v{settings.app_version}
{'=' * 40}

Configuration:
  Environment:  {settings.environment}
  Debug:        {settings.debug}
  Schema Path:  {settings.schema_path}

Server:
  Host:         {settings.host}
  Port:         {settings.port}
  Workers:      {settings.workers}

Database:
  URL:          {settings.database_url or "(none, fallback store only)"}
  Probe:        {settings.db_probe_timeout_seconds}s
  Timeout:      {settings.storage_timeout_seconds}s

Logging:
  Level:        {settings.log_level}
  Format:       {settings.log_format}
""")


def main() -> NoReturn:
    """Main entry point for the CLI.

    This function is called when the `dynaforms` command is run
    or when using `python -m dynaforms`.
    """
    cli()


if __name__ == "__main__":
    main()
