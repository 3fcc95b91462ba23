"""Shared fixtures: a small catalog and an in-memory remote source."""

from __future__ import annotations

import threading
from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx
import pytest

from minekit.catalog import build_catalog
from minekit.fetcher import Fetcher, HttpTransport
from minekit.models import InstallTarget, ResourceCatalog
from minekit.orchestrator import SyncOrchestrator

SOURCE = "https://mine.example.test/main"


class FakeRemote:
    """Serves files by URL path and can be told to fail specific paths."""

    def __init__(self, files: dict[str, bytes] | None = None) -> None:
        self.files: dict[str, bytes] = dict(files or {})
        self.failures: dict[str, Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: list[str] = []
        self._lock = threading.Lock()

    def fail(self, path: str, status: int = 500) -> None:
        self.failures[path] = lambda request: httpx.Response(status, request=request)

    def timeout(self, path: str) -> None:
        def _raise(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        self.failures[path] = _raise

    def disconnect(self, path: str) -> None:
        def _raise(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        self.failures[path] = _raise

    def count(self, path: str) -> int:
        return sum(1 for p in self.requests if p == path)

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/main/")
        with self._lock:
            self.requests.append(path)
        if path in self.failures:
            return self.failures[path](request)
        if path in self.files:
            return httpx.Response(200, content=self.files[path], request=request)
        return httpx.Response(404, request=request)

    def fetcher(self, max_attempts: int = 3) -> Fetcher:
        client = httpx.Client(transport=httpx.MockTransport(self.handler))
        return Fetcher(
            HttpTransport(client),
            max_attempts=max_attempts,
            sleep=lambda _delay: None,
        )


def catalog_data() -> dict[str, Any]:
    return {
        "version": "3.5.0",
        "source_base": SOURCE,
        "groups": {
            "workflows": {
                "dest": "global_workflows",
                "source": "workflows",
                "items": [
                    {"name": "plan.md", "command": "/plan", "summary": "Design a feature"},
                    {"name": "code.md", "command": "/code", "summary": "Write code safely"},
                ],
            },
            "schemas": {
                "dest": "schemas",
                "source": "schemas",
                "items": [{"name": "brain.schema.json"}],
            },
            "skills": {
                "dest": "skills",
                "source": "skills",
                "skills": [
                    {"name": "demo-skill", "primary": "SKILL.md", "companions": ["AGENTS.md"]},
                ],
            },
        },
    }


REMOTE_FILES = {
    "workflows/plan.md": b"# Plan workflow\n",
    "workflows/code.md": b"# Code workflow\n",
    "schemas/brain.schema.json": b'{"type": "object"}\n',
    "skills/demo-skill/SKILL.md": b"# Demo skill\n",
    "skills/demo-skill/AGENTS.md": b"# Demo agents\n",
}


@pytest.fixture
def catalog() -> ResourceCatalog:
    """Catalog with two workflows, a schema, and one skill bundle."""
    return build_catalog(catalog_data())


@pytest.fixture
def remote() -> FakeRemote:
    """Remote serving every file the catalog declares."""
    return FakeRemote(REMOTE_FILES)


@pytest.fixture
def target(tmp_path: Path) -> InstallTarget:
    """Install target rooted in a temporary home."""
    return InstallTarget.from_base_root(tmp_path / ".gemini" / "antigravity")


@pytest.fixture
def make_orchestrator(
    catalog: ResourceCatalog,
    target: InstallTarget,
    remote: FakeRemote,
) -> Callable[..., SyncOrchestrator]:
    """Factory for orchestrators wired to the fake remote."""

    def _make(**kwargs: Any) -> SyncOrchestrator:
        kwargs.setdefault("catalog", catalog)
        kwargs.setdefault("target", target)
        kwargs.setdefault("fetcher", remote.fetcher())
        return SyncOrchestrator(**kwargs)

    return _make
