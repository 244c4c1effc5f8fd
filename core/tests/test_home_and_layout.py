from __future__ import annotations

from pathlib import Path

from archive_pmn.home import HOME_ENV_VAR, ensure_archive_layout, resolve_archive_home


def test_resolve_archive_home_from_env(tmp_path: Path) -> None:
    home = resolve_archive_home({HOME_ENV_VAR: str(tmp_path)})
    assert home == tmp_path.resolve()


def test_ensure_archive_layout_creates_required_dirs(tmp_path: Path) -> None:
    paths = ensure_archive_layout(tmp_path)

    assert paths.home.exists()
    assert paths.db_dir.is_dir()
    assert paths.storage_dir.is_dir()
    assert paths.logs_dir.is_dir()
    assert paths.config_dir.is_dir()
    assert paths.tmp_dir.is_dir()
    assert paths.core_config_path == paths.config_dir / "core.json"
