"""Tests for configuration loading."""

import pytest

from treesync.config import Config, load_config
from treesync.replica import ReloadStrategy


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Remove TREESYNC_ variables from the environment."""
    for key in (
        "DATABASE_URL",
        "AUTH_TOKEN",
        "TIMEOUT",
        "MIRROR_BACKEND",
        "MIRROR_DB_PATH",
        "RELOAD_STRATEGY",
        "AWAIT_MIRROR_WRITES",
        "AUTO_RENEW",
        "RENEW_DELAY",
    ):
        monkeypatch.delenv(f"TREESYNC_{key}", raising=False)


class TestLoadConfig:
    """Tests for load_config."""

    def test_defaults(self):
        """Test defaults without a config file."""
        config = load_config()

        assert isinstance(config, Config)
        assert config.remote.database_url == ""
        assert config.mirror.backend == "sqlite"
        assert config.mirror.reload_strategy == ReloadStrategy.COMPARE_KEY
        assert config.mirror.await_writes is False
        assert config.stream.auto_renew is True

    def test_missing_file_uses_defaults(self, tmp_path):
        """Test a nonexistent path falls back to defaults."""
        config = load_config(tmp_path / "nope.yaml")

        assert config.remote.timeout == 30.0

    def test_yaml_file(self, tmp_path):
        """Test every section is read from YAML."""
        path = tmp_path / "config.yaml"
        path.write_text(
            """
remote:
  database_url: https://db.example.com
  auth_token: token
  timeout: 5
mirror:
  backend: memory
  reload_strategy: compare_value
  await_writes: true
stream:
  auto_renew: false
  renew_delay_seconds: 0.5
"""
        )

        config = load_config(path)

        assert config.remote.database_url == "https://db.example.com"
        assert config.remote.auth_token == "token"
        assert config.remote.timeout == 5.0
        assert config.mirror.backend == "memory"
        assert config.mirror.reload_strategy == ReloadStrategy.COMPARE_VALUE
        assert config.mirror.await_writes is True
        assert config.stream.auto_renew is False
        assert config.stream.renew_delay_seconds == 0.5

    def test_env_overrides(self, tmp_path, monkeypatch):
        """Test environment variables win over the file."""
        path = tmp_path / "config.yaml"
        path.write_text("remote:\n  database_url: https://file.example.com\n")
        monkeypatch.setenv("TREESYNC_DATABASE_URL", "https://env.example.com")
        monkeypatch.setenv("TREESYNC_RELOAD_STRATEGY", "CLEAR")
        monkeypatch.setenv("TREESYNC_AWAIT_MIRROR_WRITES", "yes")
        monkeypatch.setenv("TREESYNC_MIRROR_BACKEND", "memory")

        config = load_config(path)

        assert config.remote.database_url == "https://env.example.com"
        assert config.mirror.reload_strategy == ReloadStrategy.CLEAR
        assert config.mirror.await_writes is True
        assert config.mirror.backend == "memory"

    def test_unknown_strategy(self, monkeypatch):
        """Test an unknown reload strategy is rejected."""
        monkeypatch.setenv("TREESYNC_RELOAD_STRATEGY", "sometimes")

        with pytest.raises(ValueError, match="sometimes") as exc_info:
            load_config()

        assert isinstance(exc_info.value.__cause__, ValueError)

    def test_renew_delay_override(self, tmp_path, monkeypatch):
        """Test the renew delay can be set from the environment."""
        path = tmp_path / "config.yaml"
        path.write_text("stream:\n  renew_delay_seconds: 3\n")
        monkeypatch.setenv("TREESYNC_RENEW_DELAY", "0.25")

        config = load_config(path)

        assert config.stream.renew_delay_seconds == 0.25

    def test_unknown_backend(self, tmp_path):
        """Test an unknown mirror backend is rejected."""
        path = tmp_path / "config.yaml"
        path.write_text("mirror:\n  backend: redis\n")

        with pytest.raises(ValueError, match="redis"):
            load_config(path)
