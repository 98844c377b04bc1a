import logging
import sys
from pathlib import Path
from typing import Annotated, Optional

import typer
from dotenv import load_dotenv

# Load environment variables BEFORE importing local modules that use them
load_dotenv()

from .cleanup import cleanup_stale_staging
from .config.settings import Config, ConfigurationError
from .pipeline.build import build_stops_database, log_build_summary
from .pipeline.validate import validate_stops_database
from .types import DatasetValidationError, StagingError
from .utils import setup_logging

app = typer.Typer(help="NaPTAN stops pipeline: Acquire -> Load -> Publish, then Validate")


def load_settings(env_file: Optional[Path], yaml_file: Optional[Path] = None) -> Config:
    """
    Load launcher configuration, exiting with a message if it is invalid.
    """
    try:
        return Config(env_file=env_file, yaml_file=yaml_file)
    except ConfigurationError as e:
        typer.echo(f"ERROR: {e}", err=True)
        raise typer.Exit(1)


@app.command("build")
def build_command(
    source: Annotated[Optional[str], typer.Option("--source", "-s", help="Access-nodes CSV: http(s) URL, local path or file:// URL")] = None,
    out: Annotated[Optional[Path], typer.Option("--out", "-o", help="Destination SQLite file")] = None,
    prefix: Annotated[Optional[str], typer.Option("--prefix", "--atco-prefix", help="Keep ATCO codes with this prefix; 'all' or '*' keeps everything")] = None,
    use_rtree: Annotated[Optional[bool], typer.Option("--rtree/--no-rtree", help="Build the stops_rtree spatial index if SQLite supports it")] = None,
    batch_size: Annotated[Optional[int], typer.Option("--batch-size", min=1, help="Stops per insert transaction")] = None,
    config: Annotated[Optional[Path], typer.Option("--config", "-c", help="YAML file with source/out/prefix/use_rtree/batch_size")] = None,
    env_file: Annotated[Optional[Path], typer.Option("--env-file", help="Explicit .env file")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable detailed logging output")] = False,
    log_to_file: Annotated[bool, typer.Option("--log-to-file", help="Create timestamped log files")] = False,
    json_output: Annotated[bool, typer.Option("--json", help="Print the build report as JSON")] = False,
):
    """
    Build the stops database from the NaPTAN access-nodes CSV.

    The CSV is streamed into a fresh staging database next to the output
    file, which is swapped into place only once the load has completed.
    A failed run leaves the previously published file untouched.

    Examples:
        naptan2sqlite build                                  # Sheffield (370) stops
        naptan2sqlite build --prefix all                     # Whole of Great Britain
        naptan2sqlite build --source ./access-nodes.csv      # Local file
        naptan2sqlite build --out ./tmp/stops.sqlite --no-rtree
    """
    setup_logging(verbose, "stops", "build", log_to_file, stream=sys.stderr if json_output else None)

    settings = load_settings(env_file, config)
    try:
        options = settings.build_options(
            source=source,
            out=out,
            prefix=prefix,
            use_rtree=use_rtree,
            batch_size=batch_size
        )
    except ConfigurationError as e:
        typer.echo(f"ERROR: {e}", err=True)
        raise typer.Exit(1)

    logging.debug(f"Load settings: {settings.get_load_settings()}")
    logging.info(f"Output file: {options.out_path}")

    try:
        report = build_stops_database(options)
    except StagingError as e:
        typer.echo(f"ERROR: {e}", err=True)
        raise typer.Exit(1)
    except Exception as e:
        typer.echo(f"ERROR: {e}", err=True)
        if verbose:
            import traceback
            logging.error(f"Full traceback: {traceback.format_exc()}")
        raise typer.Exit(1)

    if json_output:
        typer.echo(report.model_dump_json(indent=2))
    else:
        log_build_summary(report)


@app.command("validate")
def validate_command(
    db: Annotated[Optional[Path], typer.Option("--db", help="SQLite file to check (defaults to the configured output)")] = None,
    env_file: Annotated[Optional[Path], typer.Option("--env-file", help="Explicit .env file")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable detailed logging output")] = False,
    json_output: Annotated[bool, typer.Option("--json", help="Print the validation report as JSON")] = False,
):
    """
    Check a published stops database.

    Fails if the file is missing, has no stops, has coordinates outside
    Great Britain, or has WAL/SHM files beside it.
    """
    setup_logging(verbose, stream=sys.stderr if json_output else None)

    if db is None:
        db = load_settings(env_file).output.out_path

    try:
        report = validate_stops_database(db)
    except DatasetValidationError as e:
        typer.echo(f"ERROR: {e}", err=True)
        raise typer.Exit(1)

    if json_output:
        typer.echo(report.model_dump_json(indent=2))
    else:
        logging.info("Validation complete.")


@app.command("clean-staging")
def clean_staging(
    out: Annotated[Optional[Path], typer.Option("--out", "-o", help="Destination SQLite file whose directory is swept")] = None,
    retention_hours: Annotated[Optional[int], typer.Option("--retention-hours", min=0, help="Remove staging directories older than this")] = None,
    env_file: Annotated[Optional[Path], typer.Option("--env-file", help="Explicit .env file")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable detailed logging output")] = False,
):
    """
    Remove staging directories left beside the output by killed runs.
    """
    setup_logging(verbose)

    settings = None
    if out is None or retention_hours is None:
        settings = load_settings(env_file)

    out_path = out or settings.output.out_path
    hours = retention_hours if retention_hours is not None else settings.temp.retention_hours

    removed = cleanup_stale_staging(out_path, retention_hours=hours)
    typer.echo(f"Removed {removed} stale staging director{'y' if removed == 1 else 'ies'} from {out_path.parent}")


@app.command("version")
def version():
    """Display version information."""
    from . import __version__
    typer.echo(f"naptan2sqlite version: {__version__}")


if __name__ == "__main__":
    app()
