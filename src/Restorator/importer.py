"""Backup importer: replay an exported archive against a command endpoint.

The archive holds one metadata file plus one JSON document per node under
``catalogs/``, ``reports/`` and ``facts/``. Each entry is classified by path
and submitted as the matching command, using the version recorded in the
export metadata. Submission is best effort: a rejected or unreachable entry
is logged and recorded on the run context, and the import moves on to the
next entry. The endpoint enqueues commands asynchronously, so an accepted
submission says nothing about whether the command is eventually processed.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from functools import lru_cache
from pathlib import Path
from typing import Any

import httpx
import orjson
import structlog

from Restorator.archive import ArchiveEntry, normalize_entry_path, tarball_reader
from Restorator.commands import (
    DEFAULT_COMMANDS_PATH,
    STATUS_OK,
    CommandName,
    Ok,
    SubmissionFailure,
    SubmissionOutcome,
    submit_command_via_http,
)
from Restorator.importer_context import EntryCategory, EntryOutcome, ImportRunContext
from Restorator.logging import import_log_context
from Restorator.manifest import (
    DEFAULT_EXPORT_ROOT,
    DEFAULT_METADATA_FILE,
    ImportMetadata,
    read_metadata,
)
from Restorator.metrics import inc_counter
from Restorator.reports import sanitize_report

log = structlog.get_logger()

# Facts are always replayed at this version unless explicitly configured
# otherwise; the exporter's replace-facts version is kept on the metadata only.
FACTS_BASELINE_VERSION = 1


class PayloadError(ValueError):
    """Raised when an archive entry's content cannot be submitted."""

    pass


# --- Classification -----------------------------------------------------------


CategoryRule = tuple[EntryCategory, Callable[[str], bool]]


@lru_cache(maxsize=8)
def category_rules(export_root: str = DEFAULT_EXPORT_ROOT) -> tuple[CategoryRule, ...]:
    """Return the ``(category, predicate)`` table for an export root.

    Rules are mutually exclusive by directory, so evaluation order is irrelevant.
    """

    def under(subdir: str) -> Callable[[str], bool]:
        pattern = re.compile(rf"^{re.escape(export_root)}/{subdir}/.*\.json$")
        return lambda path: pattern.match(path) is not None

    return (
        (EntryCategory.CATALOG, under("catalogs")),
        (EntryCategory.REPORT, under("reports")),
        (EntryCategory.FACTS, under("facts")),
    )


def classify(entry_path: str, export_root: str = DEFAULT_EXPORT_ROOT) -> EntryCategory:
    path = normalize_entry_path(entry_path)
    for category, matches in category_rules(export_root):
        if matches(path):
            return category
    return EntryCategory.UNRECOGNIZED


# --- Submission ---------------------------------------------------------------


def _check_target(host: str, port: int) -> None:
    if not isinstance(host, str) or not host:
        raise ValueError(f"host must be a non-empty string, got {host!r}")
    if not isinstance(port, int) or isinstance(port, bool) or port <= 0:
        raise ValueError(f"port must be a positive integer, got {port!r}")


def _check_version(version: int) -> None:
    if not isinstance(version, int) or isinstance(version, bool) or version < 0:
        raise ValueError(f"command version must be a non-negative integer, got {version!r}")


def _parse_payload(payload: str | bytes) -> Any:
    if not payload or (isinstance(payload, str) and not payload.strip()):
        raise PayloadError("payload is empty")
    try:
        return orjson.loads(payload)
    except orjson.JSONDecodeError as exc:
        raise PayloadError(f"payload is not valid JSON: {exc}") from exc


def _submit(
    host: str,
    port: int,
    command: CommandName,
    version: int,
    document: Any,
    client: httpx.Client | None,
    commands_path: str,
) -> SubmissionOutcome:
    try:
        result = submit_command_via_http(
            host, port, command, version, document, client=client, commands_path=commands_path
        )
    except httpx.HTTPError as exc:
        return SubmissionFailure(f"{command.value} submission failed: {exc!r}")
    if result.status != STATUS_OK:
        return SubmissionFailure(
            f"{command.value} rejected with status {result.status}", result
        )
    return Ok(result)


def submit_catalog(
    host: str,
    port: int,
    command_version: int,
    payload: str | bytes,
    *,
    client: httpx.Client | None = None,
    commands_path: str = DEFAULT_COMMANDS_PATH,
) -> SubmissionOutcome:
    """Send a wire-format catalog, unmodified, as a ``replace catalog`` command.

    The payload is parsed only to reject malformed JSON; the original text is
    embedded in the envelope byte for byte.
    """
    _check_target(host, port)
    _check_version(command_version)
    try:
        _parse_payload(payload)
    except PayloadError as exc:
        return SubmissionFailure(f"catalog {exc}")
    return _submit(
        host,
        port,
        CommandName.REPLACE_CATALOG,
        command_version,
        orjson.Fragment(payload),
        client,
        commands_path,
    )


def submit_report(
    host: str,
    port: int,
    command_version: int,
    payload: str | bytes,
    *,
    client: httpx.Client | None = None,
    commands_path: str = DEFAULT_COMMANDS_PATH,
) -> SubmissionOutcome:
    """Sanitize a wire-format report and send it as a ``store report`` command."""
    _check_target(host, port)
    _check_version(command_version)
    try:
        document = _parse_payload(payload)
    except PayloadError as exc:
        return SubmissionFailure(f"report {exc}")
    if not isinstance(document, dict):
        return SubmissionFailure("report payload is not a JSON object")
    try:
        report = sanitize_report(document)
    except (TypeError, ValueError) as exc:
        return SubmissionFailure(f"report resource-events are malformed: {exc}")
    return _submit(
        host, port, CommandName.STORE_REPORT, command_version, report, client, commands_path
    )


def submit_facts(
    host: str,
    port: int,
    command_version: int,
    payload: str | bytes,
    *,
    client: httpx.Client | None = None,
    commands_path: str = DEFAULT_COMMANDS_PATH,
) -> SubmissionOutcome:
    """Send a wire-format fact set as a ``replace facts`` command.

    Callers normally pass ``FACTS_BASELINE_VERSION``; see ``resolve_version``.
    """
    _check_target(host, port)
    _check_version(command_version)
    try:
        _parse_payload(payload)
    except PayloadError as exc:
        return SubmissionFailure(f"facts {exc}")
    return _submit(
        host,
        port,
        CommandName.REPLACE_FACTS,
        command_version,
        orjson.Fragment(payload),
        client,
        commands_path,
    )


Submitter = Callable[..., SubmissionOutcome]

SUBMITTERS: dict[EntryCategory, tuple[CommandName, Submitter]] = {
    EntryCategory.CATALOG: (CommandName.REPLACE_CATALOG, submit_catalog),
    EntryCategory.REPORT: (CommandName.STORE_REPORT, submit_report),
    EntryCategory.FACTS: (CommandName.REPLACE_FACTS, submit_facts),
}


def resolve_version(
    category: EntryCategory,
    metadata: ImportMetadata,
    *,
    facts_use_manifest_version: bool = False,
) -> int | None:
    """Return the command version to submit ``category`` entries with."""
    command, _ = SUBMITTERS[category]
    if command is CommandName.REPLACE_FACTS and not facts_use_manifest_version:
        return FACTS_BASELINE_VERSION
    return metadata.version_for(command)


def warn_on_facts_version_mismatch(
    metadata: ImportMetadata, *, facts_use_manifest_version: bool = False
) -> None:
    exported = metadata.version_for(CommandName.REPLACE_FACTS)
    if facts_use_manifest_version or exported is None or exported == FACTS_BASELINE_VERSION:
        return
    log.warning(
        "import.facts.version_mismatch",
        exported_version=exported,
        submitted_version=FACTS_BASELINE_VERSION,
        hint="set import_facts_use_manifest_version to submit facts at the exported version",
    )


# --- Dispatch -----------------------------------------------------------------


def dispatch_entry(
    entry: ArchiveEntry,
    metadata: ImportMetadata,
    host: str,
    port: int,
    *,
    client: httpx.Client | None = None,
    export_root: str = DEFAULT_EXPORT_ROOT,
    commands_path: str = DEFAULT_COMMANDS_PATH,
    facts_use_manifest_version: bool = False,
) -> EntryOutcome:
    """Classify one archive entry and submit it; never raises for bad entries."""
    category = classify(entry.path, export_root)
    if category is EntryCategory.UNRECOGNIZED:
        inc_counter("importer.entry.skipped")
        log.debug("import.entry.skipped", path=entry.path)
        return EntryOutcome(entry.path, category)

    log.info("import.entry.importing", category=category.value, path=entry.path)
    inc_counter(f"importer.entry.{category.value}")
    command, submit = SUBMITTERS[category]
    version = resolve_version(
        category, metadata, facts_use_manifest_version=facts_use_manifest_version
    )
    if version is None:
        outcome: SubmissionOutcome = SubmissionFailure(
            f"export metadata has no version for '{command.manifest_key}'"
        )
    else:
        outcome = submit(
            host,
            port,
            version,
            entry.read(),
            client=client,
            commands_path=commands_path,
        )

    if isinstance(outcome, SubmissionFailure):
        inc_counter("importer.entry.failed")
        result = outcome.result
        log.error(
            "import.submission.failed",
            path=entry.path,
            command=command.value,
            version=version,
            reason=outcome.reason,
            status=result.status if result else None,
            body=result.body if result else None,
        )
    else:
        inc_counter("importer.entry.submitted")
    return EntryOutcome(entry.path, category, outcome)


def run_import(
    archive_path: str | Path,
    host: str = "localhost",
    port: int = 8080,
    *,
    export_root: str = DEFAULT_EXPORT_ROOT,
    metadata_file: str = DEFAULT_METADATA_FILE,
    commands_path: str = DEFAULT_COMMANDS_PATH,
    facts_use_manifest_version: bool = False,
    client: httpx.Client | None = None,
) -> ImportRunContext:
    """Import every recognized entry of ``archive_path``.

    Only archive and metadata problems are fatal; every other failure is
    isolated to its entry and recorded on the returned context.

    Raises:
        ValueError: If ``host``/``port`` are invalid
        ArchiveError: If the archive cannot be opened or read
        MissingManifest: If the archive has no export metadata
        ManifestError: If the export metadata cannot be parsed
    """
    _check_target(host, port)
    metadata = read_metadata(archive_path, export_root=export_root, file_name=metadata_file)
    warn_on_facts_version_mismatch(
        metadata, facts_use_manifest_version=facts_use_manifest_version
    )
    context = ImportRunContext(
        archive_path=str(archive_path), host=host, port=port, metadata=metadata
    )

    owns_client = client is None
    http = client if client is not None else httpx.Client()
    with import_log_context(str(archive_path), host, port):
        try:
            with tarball_reader(archive_path) as reader:
                for entry in reader.all_entries():
                    context.record(
                        dispatch_entry(
                            entry,
                            metadata,
                            host,
                            port,
                            client=http,
                            export_root=export_root,
                            commands_path=commands_path,
                            facts_use_manifest_version=facts_use_manifest_version,
                        )
                    )
        finally:
            if owns_client:
                http.close()

        log.info("import.completed", archive=str(archive_path), **context.summary_counts())
    return context


__all__ = [
    "FACTS_BASELINE_VERSION",
    "PayloadError",
    "category_rules",
    "classify",
    "dispatch_entry",
    "resolve_version",
    "run_import",
    "submit_catalog",
    "submit_facts",
    "submit_report",
    "warn_on_facts_version_mismatch",
]
