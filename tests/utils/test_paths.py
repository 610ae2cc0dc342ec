"""Tests for data directory resolution."""

import sys
from pathlib import Path

from src.utils import paths
from src.utils.runtime import get_project_root, is_bundled


def test_dev_mode_uses_project_data_dir(monkeypatch):
    monkeypatch.delenv("FULFILLMENT_DATA_DIR", raising=False)
    assert paths.get_data_dir() == get_project_root() / "data"


def test_override_wins(monkeypatch, tmp_path: Path):
    monkeypatch.setenv("FULFILLMENT_DATA_DIR", str(tmp_path))
    assert paths.get_data_dir() == tmp_path
    assert paths.get_reports_dir() == tmp_path / "reports"
    assert paths.get_default_db_path() == tmp_path / "fulfillment.db"


def test_bundled_mode_uses_platform_dir(monkeypatch):
    monkeypatch.delenv("FULFILLMENT_DATA_DIR", raising=False)
    monkeypatch.setattr(sys, "frozen", True, raising=False)
    monkeypatch.setattr(
        paths.platformdirs, "user_data_dir", lambda *a, **kw: "/platform/data"
    )
    assert is_bundled()
    assert paths.get_data_dir() == Path("/platform/data")


def test_ensure_dirs_exist(monkeypatch, tmp_path: Path):
    monkeypatch.setenv("FULFILLMENT_DATA_DIR", str(tmp_path / "data"))
    paths.ensure_dirs_exist()
    assert (tmp_path / "data" / "reports").is_dir()


def test_project_root_holds_src():
    assert (get_project_root() / "src").is_dir()
