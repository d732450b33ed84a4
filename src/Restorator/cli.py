"""Command-line entry point: import a backup archive into a command endpoint.

Examples:
  restorator-import --infile backup.tar.gz
  restorator-import -i backup.tar.gz --host puppetdb.example.com --port 8080
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

import click
import structlog

from Restorator.archive import ArchiveError
from Restorator.config import load_settings
from Restorator.importer import run_import
from Restorator.logging import describe_settings, setup_logging
from Restorator.manifest import ManifestError

CLI_DESCRIPTION = "Import catalog, report and facts data from a backup file"

log = structlog.get_logger()


@click.command(help=CLI_DESCRIPTION)
@click.option(
    "-i",
    "--infile",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to backup file (required)",
)
@click.option("-H", "--host", default=None, help="Hostname of the command endpoint [default: localhost]")
@click.option(
    "-p",
    "--port",
    type=click.IntRange(1, 65535),
    default=None,
    help="Port of the command endpoint, HTTP only [default: 8080]",
)
def cli(infile: Path, host: str | None, port: int | None) -> int:
    settings = load_settings()
    setup_logging(settings)
    log.debug("settings.loaded", **describe_settings(settings))

    try:
        context = run_import(
            infile,
            host or settings.import_host,
            port or settings.import_port,
            export_root=settings.import_export_root,
            metadata_file=settings.import_metadata_file,
            commands_path=settings.import_commands_path,
            facts_use_manifest_version=settings.import_facts_use_manifest_version,
        )
    except (ArchiveError, ManifestError) as exc:
        log.error("import.aborted", archive=str(infile), error=str(exc))
        click.echo(f"Error: {exc}", err=True)
        return 1

    counts = context.summary_counts()
    click.echo(
        f"Imported {counts['submitted']} entries from '{infile}' "
        f"({counts['failed']} failed, {counts['skipped']} skipped)"
    )
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Run the CLI; usage errors exit 1, --help exits 0.

    Failures of individual entries never change the exit code.
    """
    try:
        rv = cli.main(args=list(argv) if argv is not None else None, standalone_mode=False)
    except click.UsageError as exc:
        exc.show()
        return 1
    except click.Abort:
        return 1
    return rv if isinstance(rv, int) else 0


if __name__ == "__main__":
    raise SystemExit(main())
