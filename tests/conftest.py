"""Shared test fixtures for fetchcache.

Provides mock transports, cache stores, isolated config environments and
output state management.  These fixtures are automatically discovered by
pytest and available to all test modules without explicit imports.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

import httpx
import pytest

from fetchcache.cache import CacheStore, DiskCacheBackend, MemoryBackend
from fetchcache.models import ClientConfig, RequestConfig
from fetchcache.output import OutputFormat, OutputManager, reset_output, set_output

BASE_URI = "https://api.example.com"


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time; CliRunner swaps those streams, so a fresh manager is
    needed for each test.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Mock transport
# ---------------------------------------------------------------------------


class RecordingTransport(httpx.MockTransport):
    """MockTransport that records every request it handles."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.requests: list[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(_record)

    @property
    def calls(self) -> int:
        return len(self.requests)


def json_response(data: Any, status_code: int = 200, **headers: str) -> httpx.Response:
    return httpx.Response(
        status_code,
        content=json.dumps(data).encode(),
        headers={"content-type": "application/json", **headers},
    )


@pytest.fixture
def fast_config() -> ClientConfig:
    """Client config with retries enabled and no backoff delay."""
    return ClientConfig(
        base_uri=BASE_URI,
        request=RequestConfig(retry_enabled=True, max_attempts=3, retry_delay=0),
    )


# ---------------------------------------------------------------------------
# Cache fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def memory_store() -> CacheStore:
    return CacheStore(MemoryBackend())


@pytest.fixture
def disk_backend(tmp_path: Path) -> DiskCacheBackend:
    backend = DiskCacheBackend(tmp_path / "responses")
    yield backend
    backend.close()


@pytest.fixture
def disk_store(disk_backend: DiskCacheBackend) -> CacheStore:
    return CacheStore(disk_backend)


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_CONFIG_HOME and XDG_CACHE_HOME to subdirectories of
    tmp_path, clears all FETCHCACHE_* environment variables and changes
    the working directory to tmp_path.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    for var in ["FETCHCACHE_BASE_URI", "FETCHCACHE_CACHE_DIR", "FETCHCACHE_CACHE_ENABLED"]:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def cli_runner():
    from typer.testing import CliRunner

    return CliRunner()
