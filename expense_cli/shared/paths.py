"""Utilities for resolving application paths."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping

DEFAULT_CONFIG_DIR = "~/.expensecli"
DEFAULT_DATABASE_PATH = "~/.expensecli/expenses.db"
DEFAULT_CONFIG_FILE = "config.yaml"

CONFIG_DIR_ENV = "EXPENSECLI_CONFIG_DIR"
CONFIG_FILE_ENV = "EXPENSECLI_CONFIG_PATH"
DATABASE_PATH_ENV = "EXPENSECLI_DATABASE_PATH"


def _expand(path_str: str) -> Path:
    """Return a Path with user and environment variables expanded."""
    return Path(os.path.expandvars(path_str)).expanduser()


def get_config_dir(create: bool = False, env: Mapping[str, str] | None = None) -> Path:
    """Return the configuration directory, optionally creating it."""
    env = env if env is not None else os.environ
    path = _expand(env.get(CONFIG_DIR_ENV, DEFAULT_CONFIG_DIR))
    if create:
        path.mkdir(parents=True, exist_ok=True)
    return path


def default_config_path(create_parents: bool = False, env: Mapping[str, str] | None = None) -> Path:
    """Return the config file path, honouring ``EXPENSECLI_CONFIG_PATH``."""
    env = env if env is not None else os.environ
    override = env.get(CONFIG_FILE_ENV)
    if override:
        path = _expand(override)
        if create_parents:
            path.parent.mkdir(parents=True, exist_ok=True)
        return path
    return get_config_dir(create=create_parents, env=env) / DEFAULT_CONFIG_FILE


def default_database_path(create_parents: bool = False, env: Mapping[str, str] | None = None) -> Path:
    """Return the SQLite store path, honouring ``EXPENSECLI_DATABASE_PATH``."""
    env = env if env is not None else os.environ
    override = env.get(DATABASE_PATH_ENV)
    path = _expand(override) if override else _expand(DEFAULT_DATABASE_PATH)
    if create_parents:
        path.parent.mkdir(parents=True, exist_ok=True)
    return path


def resolve_path(path_str: str | Path) -> Path:
    """Expand user and environment variables for arbitrary paths."""
    return _expand(str(path_str))
