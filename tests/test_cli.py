"""Tests for the fetchcache command line interface."""

from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest
from conftest import BASE_URI, RecordingTransport, json_response
from typer.testing import CliRunner

from fetchcache import __version__
from fetchcache.app import app
from fetchcache.cache import CacheStore, MemoryBackend
from fetchcache.exit_codes import EXIT_CACHE_ERROR, EXIT_INVALID_USAGE, EXIT_NOT_FOUND
from fetchcache.http import Http


def _routes(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path == "/posts":
        return json_response({"id": 1, "page": request.url.params.get("page")})
    if path == "/notes":
        return httpx.Response(200, text="plain notes")
    return httpx.Response(404, text="not found")


@pytest.fixture
def transport(isolated_config: Path, monkeypatch: pytest.MonkeyPatch) -> RecordingTransport:
    """Route the CLI's provider through a mock transport with a shared memory cache."""
    transport = RecordingTransport(_routes)
    store = CacheStore(MemoryBackend())

    def build_http(config, **kwargs):
        cache = store if config.cache.enabled else None
        return Http(config=config, client=httpx.Client(transport=transport), cache=cache)

    monkeypatch.setattr("fetchcache.app.build_http", build_http)
    return transport


def _invoke(runner: CliRunner, *args: str):
    return runner.invoke(app, ["--base-uri", BASE_URI, "--json", "--no-color", *args])


class TestVersion:
    def test_version(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"fetchcache {__version__}" in result.output


class TestGetCommand:
    def test_prints_decoded_body(self, cli_runner: CliRunner, transport: RecordingTransport) -> None:
        result = _invoke(cli_runner, "get", "posts", "-Q", "page=2")
        assert result.exit_code == 0, result.output
        assert '"page": "2"' in result.output
        assert "HTTP 200 OK" in result.output
        assert str(transport.requests[0].url) == f"{BASE_URI}/posts?page=2"

    def test_headers_sent(self, cli_runner: CliRunner, transport: RecordingTransport) -> None:
        result = _invoke(cli_runner, "get", "posts", "-H", "X-Api-Key: secret")
        assert result.exit_code == 0, result.output
        assert transport.requests[0].headers["x-api-key"] == "secret"

    def test_invalid_header(self, cli_runner: CliRunner, transport: RecordingTransport) -> None:
        result = _invoke(cli_runner, "get", "posts", "-H", "no-separator")
        assert result.exit_code == EXIT_INVALID_USAGE
        assert transport.calls == 0

    def test_cache_hit_reported(self, cli_runner: CliRunner, transport: RecordingTransport) -> None:
        first = _invoke(cli_runner, "--cache", "get", "posts")
        second = _invoke(cli_runner, "--cache", "get", "posts")
        assert first.exit_code == 0, first.output
        assert "cache hit" not in first.output
        assert "(cache hit, age 0s)" in second.output
        assert transport.calls == 1

    def test_undecodable_body_printed_raw(self, cli_runner: CliRunner, transport: RecordingTransport) -> None:
        result = _invoke(cli_runner, "get", "notes")
        assert result.exit_code == 0, result.output
        assert "Not decoded" in result.output
        assert "plain notes" in result.output

    def test_raw(self, cli_runner: CliRunner, transport: RecordingTransport) -> None:
        result = _invoke(cli_runner, "get", "posts", "--raw")
        assert result.exit_code == 0, result.output
        assert '"id": 1' in result.output

    def test_not_found(self, cli_runner: CliRunner, transport: RecordingTransport) -> None:
        result = _invoke(cli_runner, "get", "missing")
        assert result.exit_code == EXIT_NOT_FOUND
        assert "Error: Not Found HTTP error, HTTP status code 404" in result.output


class TestExistsCommand:
    def test_exists(self, cli_runner: CliRunner, transport: RecordingTransport) -> None:
        result = _invoke(cli_runner, "exists", "posts")
        assert result.exit_code == 0, result.output
        assert "exists" in result.output

    def test_missing(self, cli_runner: CliRunner, transport: RecordingTransport) -> None:
        result = _invoke(cli_runner, "exists", "missing")
        assert result.exit_code == EXIT_NOT_FOUND
        assert "does not exist" in result.output


class TestCacheCommands:
    def test_stats(self, cli_runner: CliRunner, isolated_config: Path) -> None:
        result = cli_runner.invoke(
            app, ["--json", "--no-color", "--cache-dir", str(isolated_config / "c"), "cache", "stats"]
        )
        assert result.exit_code == 0, result.output
        assert '"backend": "DiskCacheBackend"' in result.output
        assert '"size": 0' in result.output

    def test_clear(self, cli_runner: CliRunner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["--no-color", "cache", "clear"])
        assert result.exit_code == 0, result.output
        assert "Cache cleared" in result.output

    def test_prune(self, cli_runner: CliRunner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["--no-color", "cache", "prune"])
        assert result.exit_code == 0, result.output
        assert "Cache pruned" in result.output

    def test_prune_invalid_probability(self, cli_runner: CliRunner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["--no-color", "cache", "prune", "--probability", "2"])
        assert result.exit_code == EXIT_CACHE_ERROR

    def test_invalidate(self, cli_runner: CliRunner, isolated_config: Path) -> None:
        result = cli_runner.invoke(app, ["--no-color", "cache", "invalidate", "posts", "users"])
        assert result.exit_code == 0, result.output
        assert "Invalidated tag/s: posts, users" in result.output

    def test_invalidate_unsupported(self, cli_runner: CliRunner, isolated_config: Path) -> None:
        (isolated_config / "fetchcache.json").write_text(json.dumps({"cache": {"backend": "memory"}}))
        result = cli_runner.invoke(app, ["--no-color", "cache", "invalidate", "posts"])
        assert result.exit_code == EXIT_CACHE_ERROR
        assert "does not support tag invalidation" in result.output
