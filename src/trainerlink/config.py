"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for trainerlink:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.trainerlink/`` on macOS and Windows. See :func:`get_config_dir`,
  :func:`get_data_dir`, :func:`get_store_dir`.
* **Client config** -- A single :class:`~trainerlink.models.ClientConfig`
  JSON file storing the API base URL, the request timeout, and the
  token-renewal policy.
* **Precedence resolution** -- :func:`resolve_config` merges CLI flags,
  environment variables, and the config file into the effective
  configuration.

All file writes use an atomic temp-file-then-rename strategy
(:func:`_atomic_write`) to prevent data loss on crash or power failure.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Optional

from trainerlink.exceptions import ConfigError
from trainerlink.models import ClientConfig

_APP_NAME = "trainerlink"
_CONFIG_FILENAME = "config.json"

ENV_BASE_URL = "TRAINERLINK_API_URL"
ENV_TIMEOUT = "TRAINERLINK_TIMEOUT"


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

    On Linux/BSD: ``$XDG_CONFIG_HOME/trainerlink/`` (default ``~/.config/trainerlink/``).
    On macOS/Windows: ``~/.trainerlink/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (session store, crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/trainerlink/`` (default ``~/.local/share/trainerlink/``).
    On macOS/Windows: ``~/.trainerlink/data/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_store_dir(config: ClientConfig) -> Path:
    """Return the directory of the persistent key-value store for *config*.

    Uses ``config.store_dir`` when set, otherwise ``<data_dir>/store``.
    """
    if config.store_dir:
        return Path(config.store_dir).expanduser()
    return get_data_dir() / "store"


# --- Atomic file writes ---


def _atomic_write(path: Path, data: str) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems. On any failure the
    temp file is cleaned up.
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


# --- Client config ---


def _config_path() -> Path:
    """Path to the client config file."""
    return get_config_dir() / _CONFIG_FILENAME


def load_config() -> ClientConfig:
    """Load the client configuration from the XDG config directory.

    Returns:
        The deserialised :class:`~trainerlink.models.ClientConfig`. If the
        file does not exist, a default instance is returned.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or fails
            Pydantic validation.
    """
    path = _config_path()
    if not path.is_file():
        return ClientConfig()
    try:
        text = path.read_text(encoding="utf-8")
        data = json.loads(text)
        return ClientConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid config at {path}: {exc}") from exc


def save_config(config: ClientConfig) -> None:
    """Persist the client configuration atomically to disk."""
    data = config.model_dump(mode="json")
    _atomic_write(_config_path(), json.dumps(data, indent=2) + "\n")


# --- Precedence resolution ---


def resolve_config(
    cli_base_url: Optional[str] = None,
    cli_timeout: Optional[float] = None,
) -> ClientConfig:
    """Resolve the effective config with the full precedence chain.

    Precedence (high to low):
        1. CLI flags (``cli_base_url``, ``cli_timeout``)
        2. Environment variables (``TRAINERLINK_API_URL``, ``TRAINERLINK_TIMEOUT``)
        3. User config (``~/.config/trainerlink/config.json``)
        4. Defaults

    Raises:
        ConfigError: If the config file is invalid or ``TRAINERLINK_TIMEOUT``
            is not a positive number.
    """
    config = load_config()

    env_base_url = os.environ.get(ENV_BASE_URL)
    if cli_base_url is not None:
        config.base_url = cli_base_url
    elif env_base_url:
        config.base_url = env_base_url

    env_timeout = os.environ.get(ENV_TIMEOUT)
    if cli_timeout is not None:
        timeout: Optional[float] = cli_timeout
    elif env_timeout:
        try:
            timeout = float(env_timeout)
        except ValueError as exc:
            raise ConfigError(f"{ENV_TIMEOUT} must be a number, got {env_timeout!r}") from exc
    else:
        timeout = None

    if timeout is not None:
        if timeout <= 0:
            raise ConfigError(f"Timeout must be positive, got {timeout}")
        config.timeout = timeout

    config.base_url = config.base_url.rstrip("/")
    return config
