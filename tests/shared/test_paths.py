from __future__ import annotations

from pathlib import Path

import pytest

from expense_cli.shared import paths


def test_get_config_dir_uses_env_override(tmp_path: Path) -> None:
    env = {paths.CONFIG_DIR_ENV: str(tmp_path / "config")}
    result = paths.get_config_dir(create=True, env=env)
    assert result == tmp_path / "config"
    assert result.exists()


def test_default_config_path_prefers_explicit_file(tmp_path: Path) -> None:
    config_file = tmp_path / "nested" / "expenses.yaml"
    env = {
        paths.CONFIG_DIR_ENV: str(tmp_path / "ignored"),
        paths.CONFIG_FILE_ENV: str(config_file),
    }
    resolved = paths.default_config_path(create_parents=True, env=env)
    assert resolved == config_file
    assert resolved.parent.exists()


def test_default_config_path_falls_back_to_config_dir(tmp_path: Path) -> None:
    env = {paths.CONFIG_DIR_ENV: str(tmp_path)}
    assert paths.default_config_path(env=env) == tmp_path / paths.DEFAULT_CONFIG_FILE


def test_default_database_path_uses_override(tmp_path: Path) -> None:
    db_path = tmp_path / "data" / "expenses.db"
    env = {paths.DATABASE_PATH_ENV: str(db_path)}
    resolved = paths.default_database_path(create_parents=True, env=env)
    assert resolved == db_path
    assert resolved.parent.exists()


def test_resolve_path_expands_user(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    fake_home = tmp_path / "home"
    fake_home.mkdir()
    monkeypatch.setenv("HOME", str(fake_home))
    result = paths.resolve_path("~/receipts.json")
    assert result == fake_home / "receipts.json"
