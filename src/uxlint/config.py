"""Configuration management with XDG paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for uxlint:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.uxlint/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **Global config** -- A single :class:`~uxlint.models.GlobalConfig`
  JSON file storing the cloud OAuth client settings, the credential
  backend, and the log level.
* **Precedence resolution** -- :func:`resolve_cloud_config` merges explicit
  overrides, environment variables, and the global config into the
  effective :class:`~uxlint.models.CloudConfig`.

All file writes use an atomic temp-file-then-rename strategy
(:func:`atomic_write`) to prevent data loss on crash or power failure.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from pathlib import Path
from typing import Any, Optional

from uxlint.exceptions import ConfigError
from uxlint.models import CloudConfig, GlobalConfig

_APP_NAME = "uxlint"
_CONFIG_FILENAME = "config.json"

ENV_CLIENT_ID = "UXLINT_CLOUD_CLIENT_ID"
ENV_BASE_URL = "UXLINT_CLOUD_API_BASE_URL"
ENV_REDIRECT_URI = "UXLINT_CLOUD_REDIRECT_URI"
ENV_CREDENTIAL_BACKEND = "UXLINT_CREDENTIAL_BACKEND"


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

    On Linux/BSD: ``$XDG_CONFIG_HOME/uxlint/`` (default ``~/.config/uxlint/``).
    On macOS/Windows: ``~/.uxlint/``.

    Returns:
        Absolute path to the configuration directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (logs, file-backed credentials), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/uxlint/`` (default ``~/.local/share/uxlint/``).
    On macOS/Windows: ``~/.uxlint/data/``.

    Returns:
        Absolute path to the data directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_log_dir() -> Path:
    """Return ``<data_dir>/logs``, creating it if necessary."""
    path = get_data_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


# --- Atomic file writes ---


def atomic_write(path: Path, data: str, mode: Optional[int] = None) -> None:
    """Write data to file atomically using temp file + rename.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is guaranteed to be an atomic rename on POSIX systems.
    On success the temp file is renamed over *path*; on any failure the temp
    file is cleaned up.

    Args:
        path: Destination file.
        data: Text to write.
        mode: Optional permission bits applied to the temp file before any
            content is written (e.g. ``0o600`` for secrets).
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
        if mode is not None:
            os.chmod(tmp_path, mode)
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close in the error path
        os.replace(tmp_path, path)
    except BaseException:
        # Clean up the temp file on any error (including KeyboardInterrupt).
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Global config ---


def global_config_path() -> Path:
    """Path to the global config file."""
    return get_config_dir() / _CONFIG_FILENAME


def load_global_config() -> GlobalConfig:
    """Load the global configuration from the config directory.

    Returns:
        The deserialised :class:`~uxlint.models.GlobalConfig`. If the
        file does not exist, a default instance is returned.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or fails
            Pydantic validation.
    """
    path = global_config_path()
    if not path.is_file():
        return GlobalConfig()
    try:
        text = path.read_text(encoding="utf-8")
        data = json.loads(text)
        return GlobalConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid global config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    """Persist the global configuration atomically to disk.

    Args:
        config: The configuration to save.
    """
    data = config.model_dump(mode="json")
    atomic_write(global_config_path(), json.dumps(data, indent=2) + "\n")


# --- Precedence resolution ---


def resolve_cloud_config(
    global_config: Optional[GlobalConfig] = None,
    **overrides: Any,
) -> CloudConfig:
    """Resolve the effective cloud OAuth settings.

    Precedence (high to low):
        1. Explicit keyword overrides (e.g. from CLI flags)
        2. Environment variables (``UXLINT_CLOUD_CLIENT_ID``,
           ``UXLINT_CLOUD_API_BASE_URL``, ``UXLINT_CLOUD_REDIRECT_URI``)
        3. User config (``~/.config/uxlint/config.json``)
        4. Defaults

    Args:
        global_config: Already-loaded global config. Loaded from disk when
            omitted.
        **overrides: Field values of :class:`~uxlint.models.CloudConfig`;
            ``None`` values are ignored.

    Returns:
        A new :class:`~uxlint.models.CloudConfig`.
    """
    if global_config is None:
        global_config = load_global_config()

    update: dict[str, Any] = {}
    env_map = {
        "client_id": ENV_CLIENT_ID,
        "base_url": ENV_BASE_URL,
        "redirect_uri": ENV_REDIRECT_URI,
    }
    for field, var in env_map.items():
        value = os.environ.get(var)
        if value:
            update[field] = value

    update.update({k: v for k, v in overrides.items() if v is not None})
    unknown = set(update) - set(CloudConfig.model_fields)
    if unknown:
        raise ConfigError(f"Unknown cloud config field(s): {', '.join(sorted(unknown))}")

    merged = global_config.cloud.model_dump()
    merged.update(update)
    try:
        return CloudConfig.model_validate(merged)
    except ValueError as exc:
        raise ConfigError(f"Invalid cloud config: {exc}") from exc


def resolve_credential_backend(global_config: Optional[GlobalConfig] = None) -> str:
    """Return the credential backend name (env var > config file > default)."""
    env_value = os.environ.get(ENV_CREDENTIAL_BACKEND)
    if env_value:
        return env_value
    if global_config is None:
        global_config = load_global_config()
    return global_config.credential_backend


def require_client_id(config: CloudConfig) -> str:
    """Return the configured OAuth client id.

    Raises:
        ConfigError: If the client id is blank.
    """
    if not config.client_id.strip():
        raise ConfigError(
            f"Missing OAuth client ID. Set {ENV_CLIENT_ID} in your environment "
            "or run: uxlint config set cloud.client_id <id>"
        )
    return config.client_id
