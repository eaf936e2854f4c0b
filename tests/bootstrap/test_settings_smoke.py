from __future__ import annotations

from pathlib import Path

from hotel_offline.bootstrap import settings


def test_resolve_log_dir_uses_env_path(monkeypatch, tmp_path) -> None:
    env_dir = tmp_path / "env_logs"
    monkeypatch.setenv(settings.LOG_DIR_ENV, str(env_dir))

    resolved = settings.resolve_log_dir()

    assert resolved == env_dir
    assert resolved.exists()


def test_resolve_log_dir_falls_back_to_project_root(monkeypatch, tmp_path) -> None:
    project_root = tmp_path / "project"
    data_dir = tmp_path / "data"
    monkeypatch.delenv(settings.LOG_DIR_ENV, raising=False)
    monkeypatch.setenv(settings.DATA_DIR_ENV, str(data_dir))
    monkeypatch.setattr(settings, "project_root", lambda: project_root)
    monkeypatch.setattr(settings.tempfile, "gettempdir", lambda: str(tmp_path / "tmpbase"))

    original_mkdir = Path.mkdir

    def failing_candidate_mkdir(self: Path, parents: bool = False, exist_ok: bool = False):
        if self in {data_dir / "logs", tmp_path / "tmpbase" / "HotelOffline" / "logs"}:
            raise OSError("cannot create candidate")
        return original_mkdir(self, parents=parents, exist_ok=exist_ok)

    monkeypatch.setattr(Path, "mkdir", failing_candidate_mkdir)

    resolved = settings.resolve_log_dir()

    assert resolved == project_root
    assert resolved.exists()


def test_store_settings_from_env(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv(settings.DATA_DIR_ENV, str(tmp_path))

    store_settings = settings.StoreSettings.from_env()

    assert store_settings.data_dir == tmp_path
    assert store_settings.blocks_dir == tmp_path / settings.BLOCKS_DIR_NAME
    assert store_settings.snapshot_key == settings.SNAPSHOT_KEY
