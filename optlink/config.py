"""Local JSON config: default backend and per-backend default options."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

_CONFIG_DIRNAME = ".optlink"
_CONFIG_FILENAME = "config.json"
_DEFAULT_BACKEND_KEY = "default_backend"
_BACKEND_OPTIONS_KEY = "backend_options"
_DEFAULT_BACKEND_ENV = "OPTLINK_DEFAULT_BACKEND"


def _config_dir() -> Path:
    override = os.environ.get("OPTLINK_HOME")
    if override:
        return Path(override).expanduser().resolve()
    return (Path.home() / _CONFIG_DIRNAME).resolve()


def _config_path() -> Path:
    return _config_dir() / _CONFIG_FILENAME


def _read_config() -> dict[str, Any]:
    path = _config_path()
    if not path.exists():
        return {}
    try:
        parsed = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _write_config(payload: dict[str, Any]) -> None:
    path = _config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2, sort_keys=True) + "\n", encoding="utf-8")


def get_default_backend() -> str | None:
    """Backend used by deferred models that never chose one.

    `OPTLINK_DEFAULT_BACKEND` wins over ~/.optlink/config.json.
    """
    value = os.environ.get(_DEFAULT_BACKEND_ENV) or _read_config().get(_DEFAULT_BACKEND_KEY)
    if not isinstance(value, str):
        return None
    cleaned = value.strip()
    return cleaned or None


def set_default_backend(name: str | None) -> None:
    """Persist the default backend name; `None` removes it."""
    data = _read_config()
    if name is None:
        if _DEFAULT_BACKEND_KEY in data:
            data.pop(_DEFAULT_BACKEND_KEY, None)
            _write_config(data)
        return
    cleaned = name.strip()
    if not cleaned:
        raise ValueError("backend name cannot be empty")
    data[_DEFAULT_BACKEND_KEY] = cleaned
    _write_config(data)


def get_backend_defaults(backend: str) -> dict[str, Any]:
    section = _read_config().get(_BACKEND_OPTIONS_KEY)
    if not isinstance(section, dict):
        return {}
    options = section.get(backend)
    return dict(options) if isinstance(options, dict) else {}


def set_backend_defaults(backend: str, options: dict[str, Any] | None) -> None:
    """Persist default options for `backend`; `None` or `{}` clears them."""
    data = _read_config()
    section = data.get(_BACKEND_OPTIONS_KEY)
    if not isinstance(section, dict):
        section = {}
    if options:
        section[backend] = dict(options)
    else:
        section.pop(backend, None)
    if section:
        data[_BACKEND_OPTIONS_KEY] = section
    else:
        data.pop(_BACKEND_OPTIONS_KEY, None)
    _write_config(data)
