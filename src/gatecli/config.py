"""Filesystem layout, atomic writes, and built-in defaults.

This module resolves every on-disk location gatecli touches and provides
the low-level file primitives the storage layer builds on:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.gatecli/`` on macOS and Windows. See :func:`get_config_dir` and
  :func:`get_data_dir`.
* **Consuming application** -- :func:`get_claude_settings_path` locates
  the ``settings.json`` gatecli manages (``$CLAUDE_CONFIG_DIR`` or
  ``~/.claude``).
* **Atomic writes** -- :func:`atomic_write` writes a sibling temp file,
  fsyncs it and renames it over the target, so a reader never observes a
  partially written file.
* **Defaults** -- :func:`load_defaults` reads the packaged
  ``defaults.yaml`` into a :class:`~gatecli.models.Defaults`.

Only :func:`gatecli.services.build_services` calls the ``get_*`` path
helpers; every storage component receives its paths explicitly.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from importlib import resources
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from gatecli.exceptions import ErrorKind, GateError
from gatecli.models import Defaults

_APP_NAME = "gatecli"
_CONFIG_FILENAME = "config.json"
_DEFAULTS_RESOURCE = "defaults.yaml"
_CLAUDE_SETTINGS_FILENAME = "settings.json"


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

    On Linux/BSD: ``$XDG_CONFIG_HOME/gatecli/`` (default ``~/.config/gatecli/``).
    On macOS/Windows: ``~/.gatecli/``.

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
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/gatecli/`` (default ``~/.local/share/gatecli/``).
    On macOS/Windows: ``~/.gatecli/logs/``.
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_config_path() -> Path:
    """Path to the connection config file (``<config_dir>/config.json``)."""
    return get_config_dir() / _CONFIG_FILENAME


def get_claude_settings_path() -> Path:
    """Locate the consuming application's ``settings.json``.

    ``$CLAUDE_CONFIG_DIR`` wins when set; otherwise ``~/.claude``. The
    file itself may not exist yet.
    """
    env_dir = os.environ.get("CLAUDE_CONFIG_DIR", "")
    base = Path(env_dir).expanduser() if env_dir else Path.home() / ".claude"
    return base / _CLAUDE_SETTINGS_FILENAME


# --- Atomic file writes ---


def atomic_write(path: Path, data: str) -> None:
    """Write *data* to *path* atomically with ``0o600`` permissions.

    The temporary file is created in the same directory as *path* so that
    ``os.replace`` is an atomic rename on POSIX systems. Permissions are
    restricted before any content is written. On any failure (including
    ``KeyboardInterrupt``) the temp file is removed and the original error
    propagates; the previous content of *path* is left intact.

    Args:
        path: Destination file. Parent directories are created as needed.
        data: Full text content to write.
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
        os.chmod(tmp_path, 0o600)
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


def dump_json(data: Any) -> str:
    """Serialise *data* the way gatecli stores JSON: indent 2, trailing newline."""
    return json.dumps(data, indent=2) + "\n"


def read_json(path: Path) -> Any:
    """Read and decode a JSON file.

    Raises:
        OSError: If the file cannot be read.
        json.JSONDecodeError: If the content is not valid JSON.
    """
    return json.loads(path.read_text(encoding="utf-8"))


# --- Built-in defaults ---


def load_defaults(path: Optional[Path] = None) -> Defaults:
    """Load built-in defaults from YAML.

    Args:
        path: Alternate YAML file. ``None`` reads the packaged
            ``gatecli/defaults.yaml``.

    Returns:
        The validated :class:`~gatecli.models.Defaults`.

    Raises:
        GateError: ``CONFIGURATION`` if the YAML is unreadable or invalid.
    """
    try:
        if path is None:
            text = resources.files("gatecli").joinpath(_DEFAULTS_RESOURCE).read_text(
                encoding="utf-8"
            )
        else:
            text = path.read_text(encoding="utf-8")
        data = yaml.safe_load(text) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise GateError(
            ErrorKind.CONFIGURATION, f"Cannot load defaults: {exc}"
        ) from exc

    if not isinstance(data, dict):
        raise GateError(
            ErrorKind.CONFIGURATION,
            f"Defaults must be a mapping, got {type(data).__name__}",
        )
    try:
        return Defaults.model_validate(data)
    except ValidationError as exc:
        raise GateError(ErrorKind.CONFIGURATION, f"Invalid defaults: {exc}") from exc
