"""Shared file utilities for doh-router.

Provides:
- get_app_dir: OS-appropriate application directory
- set_secure_permissions: Owner-only file/directory permissions
- load_validated_json: JSON file -> validated Pydantic model
"""

from __future__ import annotations

__all__ = [
    "get_app_dir",
    "load_validated_json",
    "set_secure_permissions",
]

import json
import sys
from pathlib import Path
from typing import TypeVar

import click
from pydantic import BaseModel, ValidationError

from doh_router.constants import APP_NAME

T = TypeVar("T", bound=BaseModel)


def get_app_dir() -> Path:
    """Get the OS-appropriate application directory.

    Uses click.get_app_dir() which returns:
    - macOS: ~/Library/Application Support/doh-router
    - Linux: ~/.config/doh-router (XDG compliant)
    - Windows: C:\\Users\\<user>\\AppData\\Roaming\\doh-router

    Returns:
        Path to the application directory.
    """
    return Path(click.get_app_dir(APP_NAME))


def set_secure_permissions(path: Path, *, is_directory: bool = False) -> None:
    """Restrict the config file, PID file or their directory to the current user.

    Files get 0o600 and directories 0o700. Skipped on Windows; a filesystem
    that refuses chmod leaves the mode unchanged.

    Args:
        path: config.json, the PID file, or the directory holding one.
        is_directory: Apply the directory mode.
    """
    if sys.platform == "win32":
        return

    try:
        mode = 0o700 if is_directory else 0o600
        path.chmod(mode)
    except OSError:
        pass  # e.g. FAT or network mounts


def load_validated_json(file_path: Path, model_class: type[T], file_type: str = "file") -> T:
    """Read a JSON file such as config.json into a pydantic model.

    Validation errors are flattened to one "  - field: message" line each so
    the CLI can print them under a single error heading.

    Args:
        file_path: JSON file to read.
        model_class: Model the document must satisfy (e.g., RouterConfig).
        file_type: Word used in error messages (e.g., "config").

    Returns:
        Validated Pydantic model instance.

    Raises:
        ValueError: If the file is unreadable, not JSON, or fails validation.
    """
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in {file_type} file {file_path}: {e}") from e
    except OSError as e:
        raise ValueError(f"Could not read {file_type} file {file_path}: {e}") from e

    try:
        return model_class.model_validate(data)
    except ValidationError as e:
        errors = []
        for error in e.errors():
            loc = ".".join(str(x) for x in error["loc"]) or "(root)"
            errors.append(f"  - {loc}: {error['msg']}")
        raise ValueError(f"Invalid {file_type} file {file_path}:\n" + "\n".join(errors)) from e
