# tests/conftest.py

import copy
import io
import json
import tarfile
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

import httpx
import pytest

from Restorator import metrics

EXPORT_ROOT = "puppetdb-bak"
METADATA_PATH = f"{EXPORT_ROOT}/export-metadata.json"

BASIC_REPORT: dict[str, Any] = {
    "certname": "foo.local",
    "puppet-version": "3.0.1",
    "report-format": 4,
    "transaction-uuid": "68b08e2a-eeb1-4322-b241-bfdf151d294b",
    "configuration-version": "123456789",
    "start-time": "2011-01-01T12:00:00-03:00",
    "end-time": "2011-01-01T12:10:00-03:00",
    "environment": "DEV",
    "status": "unchanged",
    "resource-events": [
        {
            "resource-type": "Notify",
            "resource-title": "notify, yo",
            "property": "message",
            "timestamp": "2011-01-01T12:00:01-03:00",
            "status": "success",
            "old-value": ["what", "the", "woah"],
            "new-value": "notify, yo",
            "message": "defined 'message' as 'notify, yo'",
            "file": "foo.pp",
            "line": 1,
            "containment-path": ["Foo", "", "Bar[Baz]"],
        },
        {
            "resource-type": "Notify",
            "resource-title": "notify, yar",
            "property": "message",
            "timestamp": "2011-01-01T12:00:03-03:00",
            "status": "success",
            "old-value": {"absent": True},
            "new-value": {"absent": False},
            "message": "defined 'message' as 'notify, yo'",
            "file": None,
            "line": None,
            "containment-path": None,
        },
        {
            "resource-type": "Notify",
            "resource-title": "hi",
            "property": None,
            "timestamp": "2011-01-01T12:00:02-03:00",
            "status": "skipped",
            "old-value": None,
            "new-value": None,
            "message": None,
            "file": "bar",
            "line": 2,
            "containment-path": ["Foo", ""],
        },
    ],
}


def _as_bytes(content: Any) -> bytes:
    if isinstance(content, bytes):
        return content
    if isinstance(content, str):
        return content.encode("utf-8")
    return json.dumps(content).encode("utf-8")


def build_archive(path: Path, files: Mapping[str, Any]) -> Path:
    """Write a .tar.gz at ``path`` holding ``files`` in insertion order."""
    with tarfile.open(path, mode="w:gz") as tar:
        for name, content in files.items():
            data = _as_bytes(content)
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return path


@pytest.fixture
def make_archive(tmp_path: Path) -> Callable[..., Path]:
    counter = {"n": 0}

    def _make(files: Mapping[str, Any], name: str | None = None) -> Path:
        counter["n"] += 1
        return build_archive(tmp_path / (name or f"backup-{counter['n']}.tar.gz"), files)

    return _make


@pytest.fixture
def basic_report() -> dict[str, Any]:
    return copy.deepcopy(BASIC_REPORT)


@pytest.fixture(autouse=True)
def _reset_metrics():
    metrics.reset_counters()
    yield
    metrics.reset_counters()


class FakeEndpoint:
    """Records command submissions and answers with scripted statuses."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.statuses: dict[str, int] = {}
        self.fail_on_call: set[int] = set()

    @property
    def commands(self) -> list[dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        call_no = len(self.requests)
        command = json.loads(request.content)["command"]
        if call_no in self.fail_on_call:
            return httpx.Response(503, json={"error": "queue unavailable"})
        status = self.statuses.get(command, 200)
        body = {"uuid": f"cmd-{call_no}"} if status == 200 else {"error": "rejected"}
        return httpx.Response(status, json=body)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))


@pytest.fixture
def endpoint() -> FakeEndpoint:
    return FakeEndpoint()


@pytest.fixture
def client(endpoint: FakeEndpoint):
    c = endpoint.client()
    try:
        yield c
    finally:
        c.close()
