"""Tests for grc.core.settings — runtime settings resolution."""

from __future__ import annotations

from pathlib import Path

import pytest

from grc.core.settings import Settings


def test_settings_auto_resolves_paths(tmp_path: Path) -> None:
    """Given an explicit repo_root, all sub-dirs derive from it."""
    s = Settings(repo_root=tmp_path)

    assert s.repo_root == tmp_path
    assert s.data_dir == tmp_path / "data"
    assert s.catalogs_dir == tmp_path / "catalogs"
    assert s.exports_dir == tmp_path / "exports"


def test_settings_file_paths(tmp_path: Path) -> None:
    s = Settings(repo_root=tmp_path)
    assert s.db_path == tmp_path / "data" / "grc.db"
    assert s.catalog_path == tmp_path / "catalogs" / "frameworks.yaml"
    assert s.catalog_max_size_bytes == 512 * 1024


def test_settings_ensure_dirs_creates_directories(tmp_path: Path) -> None:
    s = Settings(repo_root=tmp_path)
    s.ensure_dirs()

    assert s.data_dir is not None and s.data_dir.is_dir()
    assert s.catalogs_dir is not None and s.catalogs_dir.is_dir()
    assert s.exports_dir is not None and s.exports_dir.is_dir()


def test_settings_override_individual_dir(tmp_path: Path) -> None:
    custom = tmp_path / "elsewhere"
    s = Settings(repo_root=tmp_path, data_dir=custom)
    assert s.data_dir == custom
    assert s.db_path == custom / "grc.db"


def test_settings_from_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GRC_REPO_ROOT", str(tmp_path))
    monkeypatch.setenv("GRC_DB_FILENAME", "audit.db")
    monkeypatch.setenv("GRC_CATALOG_MAX_SIZE_KB", "8")
    s = Settings()
    assert s.repo_root == tmp_path
    assert s.db_path == tmp_path / "data" / "audit.db"
    assert s.catalog_max_size_bytes == 8 * 1024


def test_settings_defaults_log(tmp_path: Path) -> None:
    s = Settings(repo_root=tmp_path)
    assert s.log_level == "INFO"
    assert s.log_json is True
    assert s.export_key_env == "GRC_EXPORT_KEY"
