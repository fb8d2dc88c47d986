"""Typer application and CLI entry point for fetchcache.

The CLI is a thin shell over the library:

* ``fetchcache get URI`` -- fetch (from cache when possible) and print the
  decoded body.
* ``fetchcache exists URI`` -- exit 0 when the URI answers HTTP 200.
* ``fetchcache cache stats|clear|prune|invalidate`` -- manage the response
  cache described by the resolved configuration.

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``.  :class:`~fetchcache.exceptions.FetchError` instances
end the process with the error's ``exit_code``.

See Also:
    :mod:`fetchcache.config`: Configuration resolution.
    :mod:`fetchcache.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import logging
import signal
import sys
from typing import Any, Optional

import typer

from fetchcache import __version__
from fetchcache.config import build_cache, build_http, resolve_config
from fetchcache.events import LoggerSubscriber
from fetchcache.exceptions import DecoderError, FetchError, InvalidUsageError
from fetchcache.exit_codes import EXIT_GENERIC_FAILURE, EXIT_NOT_FOUND
from fetchcache.output import (
    OutputFormat,
    OutputManager,
    error,
    format_response,
    info,
    set_output,
    success,
)

app = typer.Typer(
    name="fetchcache",
    help="Cache-aware HTTP data client.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

cache_app = typer.Typer(no_args_is_help=True)
app.add_typer(cache_app, name="cache", help="Response cache management.")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"fetchcache {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show version and exit."
    ),
    base_uri: Optional[str] = typer.Option(None, "--base-uri", "-b", help="Base URI for relative URIs."),
    cache_dir: Optional[str] = typer.Option(None, "--cache-dir", help="Response cache directory."),
    use_cache: Optional[bool] = typer.Option(
        None, "--cache/--no-cache", help="Enable or disable the response cache."
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
) -> None:
    """Initialise output and logging, and keep config overrides for sub-commands."""
    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN
    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            stream=sys.stderr,
            format="%(levelname)s %(name)s: %(message)s",
        )

    ctx.ensure_object(dict)
    ctx.obj["base_uri"] = base_uri
    ctx.obj["cache_dir"] = cache_dir
    ctx.obj["use_cache"] = use_cache
    ctx.obj["verbose"] = verbose


def _config(ctx: typer.Context) -> Any:
    obj = ctx.obj or {}
    return resolve_config(
        cli_base_uri=obj.get("base_uri"),
        cli_cache_dir=obj.get("cache_dir"),
        cli_cache_enabled=obj.get("use_cache"),
    )


def _fail(exc: FetchError) -> typer.Exit:
    error(getattr(exc, "summary", None) or str(exc))
    return typer.Exit(code=exc.exit_code)


def _parse_pairs(values: Optional[list[str]], separator: str, label: str) -> dict[str, str]:
    pairs: dict[str, str] = {}
    for value in values or []:
        if separator not in value:
            raise InvalidUsageError(f"Invalid {label} '{value}', expected name{separator}value")
        name, _, item = value.partition(separator)
        pairs[name.strip()] = item.strip()
    return pairs


# ------------------------------------------------------------------ #
# Requests
# ------------------------------------------------------------------ #


@app.command("get")
def get_command(
    ctx: typer.Context,
    uri: str = typer.Argument(help="Absolute URI, or path relative to the base URI."),
    query: Optional[list[str]] = typer.Option(None, "--query", "-Q", help="Query parameter name=value."),
    header: Optional[list[str]] = typer.Option(None, "--header", "-H", help="Request header 'Name: value'."),
    raw: bool = typer.Option(False, "--raw", help="Print the body without decoding."),
) -> None:
    """Fetch a URI and print its decoded body.

    Example::

        fetchcache --base-uri https://api.example.com get posts -Q page=1
    """
    try:
        config = _config(ctx)
        options: dict[str, Any] = {}
        headers = _parse_pairs(header, ":", "header")
        if headers:
            options["headers"] = headers
        with build_http(config) as http:
            if ctx.obj and ctx.obj.get("verbose"):
                http.add_subscriber(LoggerSubscriber())
            response = http.get(uri, query=_parse_pairs(query, "=", "query"), options=options)
            status = f"HTTP {response.status_code} {response.response.reason_phrase or ''}".rstrip()
            if response.is_hit:
                status += f" (cache hit, age {response.age}s)"
            info(status)

            content_type = response.content_type or ""
            if raw:
                format_response(response.get_content(), content_type)
                return
            try:
                data = http.decode(response)
            except DecoderError as exc:
                info(f"Not decoded: {exc}")
                data = response.get_content()
            format_response(data, content_type)
    except FetchError as exc:
        raise _fail(exc) from exc


@app.command("exists")
def exists_command(
    ctx: typer.Context,
    uri: str = typer.Argument(help="Absolute URI, or path relative to the base URI."),
) -> None:
    """Exit 0 if the URI responds with HTTP 200, 4 otherwise."""
    try:
        with build_http(_config(ctx)) as http:
            found = http.exists(uri)
    except FetchError as exc:
        raise _fail(exc) from exc
    if not found:
        info(f"{uri} does not exist")
        raise typer.Exit(code=EXIT_NOT_FOUND)
    success(f"{uri} exists")


# ------------------------------------------------------------------ #
# Cache management
# ------------------------------------------------------------------ #


@cache_app.command("stats")
def cache_stats(ctx: typer.Context) -> None:
    """Show response cache statistics."""
    try:
        config = _config(ctx)
        store = build_cache(config)
        try:
            stats = store.stats()
        finally:
            store.close()
    except FetchError as exc:
        raise _fail(exc) from exc
    stats["enabled"] = config.cache.enabled
    stats["directory"] = config.cache.directory
    format_response(stats)


@cache_app.command("clear")
def cache_clear(ctx: typer.Context) -> None:
    """Remove every cached response."""
    try:
        store = build_cache(_config(ctx))
        try:
            store.clear()
        finally:
            store.close()
    except FetchError as exc:
        raise _fail(exc) from exc
    success("Cache cleared")


@cache_app.command("prune")
def cache_prune(
    ctx: typer.Context,
    probability: float = typer.Option(1.0, "--probability", "-p", help="Chance of pruning, in (0, 1]."),
) -> None:
    """Remove expired responses from the cache."""
    try:
        store = build_cache(_config(ctx))
        try:
            pruned = store.prune(probability)
        finally:
            store.close()
    except FetchError as exc:
        raise _fail(exc) from exc
    success("Cache pruned" if pruned else "Prune skipped")


@cache_app.command("invalidate")
def cache_invalidate(
    ctx: typer.Context,
    tags: list[str] = typer.Argument(help="Tags to invalidate."),
) -> None:
    """Remove every cached response stored under any of the given tags."""
    try:
        store = build_cache(_config(ctx))
        try:
            store.invalidate_tags(tags)
        finally:
            store.close()
    except FetchError as exc:
        raise _fail(exc) from exc
    success(f"Invalidated tag/s: {', '.join(tags)}")


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def main() -> None:
    """CLI entry point invoked by the ``fetchcache`` console script."""
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except FetchError as exc:
        error(str(exc))
        sys.exit(exc.exit_code)
    except Exception as exc:
        error(f"Unexpected error: {exc}")
        sys.exit(EXIT_GENERIC_FAILURE)
