"""Command vocabulary and HTTP submission to the command-processing endpoint."""

from __future__ import annotations

import hashlib
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx
import orjson
import structlog

from Restorator.metrics import observe_histogram

log = structlog.get_logger()

STATUS_OK = 200
DEFAULT_COMMANDS_PATH = "/v3/commands"


class CommandName(str, Enum):
    """Commands understood by the remote endpoint, valued by their wire name."""

    REPLACE_CATALOG = "replace catalog"
    STORE_REPORT = "store report"
    REPLACE_FACTS = "replace facts"

    @property
    def manifest_key(self) -> str:
        """Key used for this command in the export metadata file."""
        return self.value.replace(" ", "-")

    @classmethod
    def from_manifest_key(cls, key: str) -> CommandName | None:
        for command in cls:
            if command.manifest_key == key:
                return command
        return None


@dataclass(frozen=True)
class SubmissionResult:
    status: int
    body: Any = None


@dataclass(frozen=True)
class Ok:
    result: SubmissionResult

    ok = True


@dataclass(frozen=True)
class SubmissionFailure:
    """A per-entry failure; never raised, only returned and logged."""

    reason: str
    result: SubmissionResult | None = None

    ok = False


SubmissionOutcome = Ok | SubmissionFailure


def command_url(host: str, port: int, path: str = DEFAULT_COMMANDS_PATH) -> str:
    return f"http://{host}:{port}/{path.lstrip('/')}"


def assemble_command(command: CommandName, version: int, payload: Any) -> dict[str, Any]:
    return {"command": command.value, "version": version, "payload": payload}


def _decode_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text or None


def submit_command_via_http(
    host: str,
    port: int,
    command: CommandName,
    version: int,
    payload: Any,
    *,
    client: httpx.Client | None = None,
    commands_path: str = DEFAULT_COMMANDS_PATH,
) -> SubmissionResult:
    """POST a command envelope and return the endpoint's status and body.

    ``payload`` may be an ``orjson.Fragment`` to embed pre-serialized JSON
    verbatim. Transport errors propagate as ``httpx.HTTPError``; callers
    decide whether they are fatal. Non-2xx statuses are returned, not raised.
    """
    body = orjson.dumps(assemble_command(command, version, payload))
    params = {"checksum": hashlib.sha1(body).hexdigest()}
    headers = {"Content-Type": "application/json", "Accept": "application/json"}
    url = command_url(host, port, commands_path)

    owns_client = client is None
    http = client if client is not None else httpx.Client()
    start = time.perf_counter()
    try:
        response = http.post(url, content=body, params=params, headers=headers)
    finally:
        observe_histogram(
            "importer.submit.latency_ms", int((time.perf_counter() - start) * 1000)
        )
        if owns_client:
            http.close()

    result = SubmissionResult(status=response.status_code, body=_decode_body(response))
    log.debug(
        "command.submitted",
        command=command.value,
        version=version,
        status=result.status,
    )
    return result
