"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles persistent configuration for fetchcache:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.fetchcache/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_cache_dir`.
* **User config** -- A single :class:`~fetchcache.models.ClientConfig`
  JSON file storing defaults (base URI, headers, request and cache settings).
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  environment variables, project-local config and user config into the
  effective configuration.
* **Builders** -- :func:`build_cache` and :func:`build_http` turn a
  resolved config into a cache store and an HTTP provider.

All file writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`) to prevent data loss on crash or power failure.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from fetchcache.cache import CacheStore, DiskCacheBackend, MemoryBackend
from fetchcache.exceptions import ConfigError
from fetchcache.http import Http
from fetchcache.models import ClientConfig

_APP_NAME = "fetchcache"
_CONFIG_FILENAME = "config.json"
_PROJECT_CONFIG_FILENAME = "fetchcache.json"

ENV_BASE_URI = "FETCHCACHE_BASE_URI"
ENV_CACHE_DIR = "FETCHCACHE_CACHE_DIR"
ENV_CACHE_ENABLED = "FETCHCACHE_CACHE_ENABLED"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform uses XDG Base Directory paths (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/fetchcache/`` (default ``~/.config/fetchcache/``).
    On macOS/Windows: ``~/.fetchcache/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cache_dir() -> Path:
    """Return the response cache directory, creating it if necessary.

    Cached data can be safely deleted at any time.

    On Linux/BSD: ``$XDG_CACHE_HOME/fetchcache/`` (default ``~/.cache/fetchcache/``).
    On macOS/Windows: ``~/.fetchcache/cache/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CACHE_HOME", (".cache",)) / _APP_NAME
    else:
        path = _fallback_base_dir() / "cache"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems.  On any failure
    the temp file is removed.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None
        os.replace(tmp_path, path)
    except BaseException:
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- User config ---


def _config_path() -> Path:
    return get_config_dir() / _CONFIG_FILENAME


def _read_json(path: Path, label: str) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        raise ConfigError(f"Invalid {label} at {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Invalid {label} at {path}: expected a JSON object")
    return data


def load_config() -> ClientConfig:
    """Load the user configuration from the config directory.

    Returns:
        The deserialised :class:`~fetchcache.models.ClientConfig`, or a
        default instance when the file does not exist.

    Raises:
        ConfigError: If the file contains invalid JSON or fails validation.
    """
    path = _config_path()
    if not path.is_file():
        return ClientConfig()
    data = _read_json(path, "config")
    try:
        return ClientConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid config at {path}: {exc}") from exc


def save_config(config: ClientConfig) -> Path:
    """Persist the user configuration atomically and return its path."""
    path = _config_path()
    data = config.model_dump(mode="json")
    data["cacheable_methods"] = sorted(data["cacheable_methods"])
    _atomic_write(path, json.dumps(data, indent=2) + "\n")
    return path


# --- Project-local config ---


def load_project_config() -> Optional[dict[str, Any]]:
    """Load project-local configuration from ``./fetchcache.json``.

    The file holds a partial config, layered over the user config.

    Returns:
        The parsed JSON as a dict, or ``None`` if the file does not exist.

    Raises:
        ConfigError: If the file exists but contains invalid JSON.
    """
    path = Path.cwd() / _PROJECT_CONFIG_FILENAME
    if not path.is_file():
        return None
    return _read_json(path, "project config")


# --- Precedence resolution ---


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _env_flag(name: str) -> Optional[bool]:
    value = os.environ.get(name)
    if value is None:
        return None
    value = value.strip().lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    raise ConfigError(f"Invalid boolean value for {name}: '{value}'")


def resolve_config(
    cli_base_uri: Optional[str] = None,
    cli_cache_dir: Optional[str] = None,
    cli_cache_enabled: Optional[bool] = None,
) -> ClientConfig:
    """Resolve config with full precedence chain.

    Precedence (high to low):
        1. CLI flags
        2. Environment variables (``FETCHCACHE_BASE_URI``,
           ``FETCHCACHE_CACHE_DIR``, ``FETCHCACHE_CACHE_ENABLED``)
        3. Project config (``./fetchcache.json``)
        4. User config (``~/.config/fetchcache/config.json``)
        5. Defaults

    Raises:
        ConfigError: If any layer is invalid.
    """
    data = load_config().model_dump()

    project = load_project_config()
    if project is not None:
        data = _deep_merge(data, project)

    env_base_uri = os.environ.get(ENV_BASE_URI)
    if env_base_uri:
        data["base_uri"] = env_base_uri
    env_cache_dir = os.environ.get(ENV_CACHE_DIR)
    if env_cache_dir:
        data["cache"]["directory"] = env_cache_dir
    env_cache_enabled = _env_flag(ENV_CACHE_ENABLED)
    if env_cache_enabled is not None:
        data["cache"]["enabled"] = env_cache_enabled

    if cli_base_uri is not None:
        data["base_uri"] = cli_base_uri
    if cli_cache_dir is not None:
        data["cache"]["directory"] = cli_cache_dir
    if cli_cache_enabled is not None:
        data["cache"]["enabled"] = cli_cache_enabled

    try:
        return ClientConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc


# --- Builders ---


def build_cache(config: ClientConfig) -> CacheStore:
    """Build the cache store described by ``config.cache``.

    The disk backend lives under ``config.cache.directory`` or, by default,
    ``<cache_dir>/responses``.
    """
    cache_config = config.cache
    if cache_config.backend == "memory":
        backend = MemoryBackend()
    else:
        directory = cache_config.directory or str(get_cache_dir() / "responses")
        backend = DiskCacheBackend(Path(directory).expanduser())
    return CacheStore(backend, default_lifetime=cache_config.default_lifetime_seconds)


def build_http(config: ClientConfig, **kwargs: Any) -> Http:
    """Build an :class:`~fetchcache.http.Http` provider from *config*.

    A cache is attached when ``config.cache.enabled`` is set.  *kwargs* are
    passed to the provider, e.g. ``client`` or ``dispatcher``.
    """
    if config.cache.enabled and "cache" not in kwargs:
        kwargs["cache"] = build_cache(config)
    return Http(config=config, **kwargs)
