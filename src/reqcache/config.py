"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for reqcache:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.reqcache/`` on macOS and Windows. See :func:`get_config_dir`,
  :func:`get_cache_dir`, :func:`get_data_dir`, :func:`get_store_dir`.
* **Global config** -- A single :class:`~reqcache.models.GlobalConfig`
  JSON file holding the cache settings, notification defaults, and output
  preferences.
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  environment variables, and the config file into the effective settings.

All file writes use an atomic temp-file-then-rename strategy
(:func:`atomic_write`), which the lifecycle controller also relies on to
swap the persisted generation pointer.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Optional

from reqcache.exceptions import ConfigError
from reqcache.models import CacheSettings, GlobalConfig

_APP_NAME = "reqcache"
_CONFIG_FILENAME = "config.json"


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform supports XDG Base Directory spec (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
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

    On Linux/BSD: ``$XDG_CONFIG_HOME/reqcache/`` (default ``~/.config/reqcache/``).
    On macOS/Windows: ``~/.reqcache/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cache_dir() -> Path:
    """Return the cache directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CACHE_HOME/reqcache/`` (default ``~/.cache/reqcache/``).
    On macOS/Windows: ``~/.reqcache/cache/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CACHE_HOME", (".cache",)) / _APP_NAME
    else:
        path = _fallback_base_dir() / "cache"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/reqcache/`` (default ``~/.local/share/reqcache/``).
    On macOS/Windows: ``~/.reqcache/logs/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_store_dir(settings: CacheSettings) -> Path:
    """Return the root directory holding every named store.

    ``settings.store_dir`` wins; otherwise ``<cache_dir>/stores``.
    """
    if settings.store_dir:
        path = Path(settings.store_dir).expanduser()
    else:
        path = get_cache_dir() / "stores"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems. On any failure the
    temp file is cleaned up and the original file is left untouched.
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
        fd = None  # prevent double-close in finally
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


# --- Global config ---


def _global_config_path() -> Path:
    """Path to the global config file."""
    return get_config_dir() / _CONFIG_FILENAME


def load_global_config() -> GlobalConfig:
    """Load the global configuration from the XDG config directory.

    Returns:
        The deserialised :class:`~reqcache.models.GlobalConfig`. If the
        file does not exist, a default instance is returned.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or fails
            Pydantic validation.
    """
    path = _global_config_path()
    if not path.is_file():
        return GlobalConfig()
    try:
        text = path.read_text(encoding="utf-8")
        data = json.loads(text)
        return GlobalConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid global config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    """Persist the global configuration atomically to disk."""
    data = config.model_dump(mode="json")
    atomic_write(_global_config_path(), json.dumps(data, indent=2) + "\n")


# --- Precedence resolution ---


def resolve_config(
    cli_origin: Optional[str] = None,
    cli_generation: Optional[int] = None,
) -> GlobalConfig:
    """Resolve config with full precedence chain.

    Precedence (high to low):
        1. CLI flags (``cli_origin``, ``cli_generation``)
        2. Environment variables (``REQCACHE_ORIGIN``, ``REQCACHE_GENERATION``,
           ``REQCACHE_STORE_DIR``)
        3. User config (``~/.config/reqcache/config.json``)
        4. Defaults

    Raises:
        ConfigError: If the file is invalid or an override does not validate.
    """
    config = load_global_config()
    overrides: dict[str, object] = {}

    env_origin = os.environ.get("REQCACHE_ORIGIN")
    if env_origin:
        overrides["origin"] = env_origin
    env_generation = os.environ.get("REQCACHE_GENERATION")
    if env_generation:
        overrides["generation"] = env_generation
    env_store_dir = os.environ.get("REQCACHE_STORE_DIR")
    if env_store_dir:
        overrides["store_dir"] = env_store_dir

    if cli_origin is not None:
        overrides["origin"] = cli_origin
    if cli_generation is not None:
        overrides["generation"] = cli_generation

    if overrides:
        data = config.cache.model_dump(mode="json")
        data.update(overrides)
        try:
            config.cache = CacheSettings.model_validate(data)
        except ValueError as exc:
            raise ConfigError(f"Invalid cache override: {exc}") from exc

    return config
