from __future__ import annotations

import os
from pathlib import Path

import pytest

from barbuddy.config import get_settings
from barbuddy.utils.env import load_env_file


@pytest.fixture(autouse=True)
def _fresh_settings():
  get_settings.cache_clear()
  yield
  get_settings.cache_clear()


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
  for name in ("BARBUDDY_STORAGE_PATH", "BARBUDDY_DB_DSN", "BARBUDDY_ALLOWED_ORIGINS", "BARBUDDY_PRIMARY_MODEL", "BARBUDDY_FALLBACK_MODEL", "BARBUDDY_JOB_DELAY_SECONDS"):
    monkeypatch.delenv(name, raising=False)

  settings = get_settings()

  assert settings.storage_path == Path("./uploads")
  assert settings.persistent_storage is False
  assert settings.db_dsn is None
  assert settings.allowed_origins == ("http://localhost:3000",)
  assert settings.job_delay_seconds == 3.0


def test_storage_volume_enables_persistence(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
  monkeypatch.setenv("BARBUDDY_STORAGE_PATH", str(tmp_path))
  settings = get_settings()
  assert settings.storage_path == tmp_path / "uploads"
  assert settings.persistent_storage is True


def test_wildcard_origin_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setenv("BARBUDDY_ALLOWED_ORIGINS", "https://app.example,*")
  with pytest.raises(ValueError, match="wildcard"):
    get_settings()


def test_invalid_number_names_the_variable(monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setenv("BARBUDDY_TOPIC_DELAY_SECONDS", "soon")
  with pytest.raises(ValueError, match="BARBUDDY_TOPIC_DELAY_SECONDS"):
    get_settings()


def test_env_file_does_not_override_real_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
  env_file = tmp_path / ".env"
  env_file.write_text('# local\nexport BARBUDDY_TEST_A="from file"\nBARBUDDY_TEST_B=file\nnot an assignment\n', encoding="utf-8")
  monkeypatch.setenv("BARBUDDY_TEST_B", "real")
  monkeypatch.delenv("BARBUDDY_TEST_A", raising=False)

  applied = load_env_file(env_file)

  assert applied == {"BARBUDDY_TEST_A": "from file"}
  assert os.environ["BARBUDDY_TEST_B"] == "real"
  monkeypatch.delenv("BARBUDDY_TEST_A")
