"""Export metadata (manifest) reading.

The exporter writes one JSON document into the archive recording which wire
format version each command was exported with, e.g.::

    {"command-versions": {"replace-catalog": 3, "store-report": 4, "replace-facts": 1}}
"""

from __future__ import annotations

import logging
import posixpath
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any

import orjson
from pydantic import BaseModel, Field, NonNegativeInt, ValidationError, field_validator

from Restorator.archive import tarball_reader
from Restorator.commands import CommandName

logger = logging.getLogger(__name__)

DEFAULT_EXPORT_ROOT = "puppetdb-bak"
DEFAULT_METADATA_FILE = "export-metadata.json"


class ManifestError(ValueError):
    """Raised when the export metadata is present but unusable."""

    pass


class MissingManifest(ManifestError):
    """Raised when the archive has no export metadata entry."""

    def __init__(self, metadata_path: str, archive_path: str | Path):
        self.metadata_path = metadata_path
        self.archive_path = str(archive_path)
        super().__init__(
            f"Unable to find export metadata file '{metadata_path}' "
            f"in archive '{self.archive_path}'"
        )


class ImportMetadata(BaseModel):
    """Parsed export metadata; read once per run and never mutated."""

    command_versions: Mapping[CommandName, NonNegativeInt] = Field(alias="command-versions")

    model_config = dict(populate_by_name=True, frozen=True, extra="allow")

    @field_validator("command_versions", mode="before")
    @classmethod
    def _canonical_command_keys(cls, v: Any) -> Any:
        if not isinstance(v, dict):
            return v
        out: dict[CommandName, Any] = {}
        for key, version in v.items():
            command = key if isinstance(key, CommandName) else CommandName.from_manifest_key(key)
            if command is None:
                logger.warning("Ignoring unknown command '%s' in export metadata", key)
                continue
            out[command] = version
        return out

    @field_validator("command_versions")
    @classmethod
    def _read_only(cls, v: Mapping[CommandName, int]) -> Mapping[CommandName, int]:
        return MappingProxyType(dict(v))

    def version_for(self, command: CommandName) -> int | None:
        return self.command_versions.get(command)


def metadata_path(
    export_root: str = DEFAULT_EXPORT_ROOT, file_name: str = DEFAULT_METADATA_FILE
) -> str:
    return posixpath.join(export_root, file_name)


def parse_metadata(content: str | bytes) -> ImportMetadata:
    try:
        return ImportMetadata.model_validate(orjson.loads(content))
    except orjson.JSONDecodeError as exc:
        raise ManifestError(f"Export metadata is not valid JSON: {exc}") from exc
    except ValidationError as exc:
        raise ManifestError(f"Export metadata is invalid: {exc}") from exc


def read_metadata(
    archive_path: str | Path,
    *,
    export_root: str = DEFAULT_EXPORT_ROOT,
    file_name: str = DEFAULT_METADATA_FILE,
) -> ImportMetadata:
    """Parse the export metadata file to determine which command versions to use.

    Raises:
        ArchiveError: If the archive cannot be opened
        MissingManifest: If the archive has no metadata entry
        ManifestError: If the metadata cannot be parsed
    """
    path = metadata_path(export_root, file_name)
    with tarball_reader(archive_path) as reader:
        entry = reader.find_entry(path)
        if entry is None:
            raise MissingManifest(path, archive_path)
        metadata = parse_metadata(entry.read())
    logger.info(
        "Read export metadata from %s: %s",
        archive_path,
        {c.manifest_key: v for c, v in metadata.command_versions.items()},
    )
    return metadata
