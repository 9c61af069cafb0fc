"""Unit tests for configuration loading."""

import pytest
from pydantic import ValidationError

from catalogsync.config import Config, SourceConfig, load_config


def _write(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text)
    return path


class TestLoading:
    """Test YAML loading."""

    def test_defaults_without_path(self):
        """Should build a default config."""
        config = load_config(None)

        assert config.sources == []
        assert config.scan.audio_cap_ratio == 0.30
        assert config.scan.container_overhead_ratio == 0.05
        assert config.api.port == 9494

    def test_empty_file_is_default(self, tmp_path):
        """Should accept an empty YAML document."""
        config = load_config(_write(tmp_path, ""))

        assert config.sources == []

    def test_missing_file(self, tmp_path):
        """Should raise FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_env_substitution(self, tmp_path, monkeypatch):
        """Should replace ${VAR} with the environment value."""
        monkeypatch.setenv("PLEX_TOKEN", "abc123")
        path = _write(
            tmp_path,
            """
sources:
  - source_id: plex
    source_type: plex
    server_url: http://plex:32400
    token: ${PLEX_TOKEN}
scan:
  checkpoint_interval: 10
logging:
  level: DEBUG
""",
        )

        config = load_config(path)

        assert config.get_source("plex").token == "abc123"
        assert config.get_source("plex").display_name == "plex"
        assert config.scan.checkpoint_interval == 10
        assert config.logging.level == "debug"

    def test_missing_env_var(self, tmp_path, monkeypatch):
        """Should fail loudly on an unset variable."""
        monkeypatch.delenv("CATALOGSYNC_UNSET", raising=False)
        path = _write(tmp_path, "store:\n  db_path: ${CATALOGSYNC_UNSET}\n")

        with pytest.raises(ValueError, match="CATALOGSYNC_UNSET"):
            load_config(path)


class TestValidation:
    """Test model validation."""

    @pytest.mark.parametrize(
        "fields",
        [
            {"source_type": "plex", "server_url": "http://plex"},
            {"source_type": "plex", "token": "t"},
            {"source_type": "jellyfin", "server_url": "http://jf"},
            {"source_type": "kodi"},
            {"source_type": "local"},
        ],
    )
    def test_incomplete_sources(self, fields):
        """Should reject sources missing connection settings."""
        with pytest.raises(ValidationError):
            SourceConfig(source_id="s", **fields)

    def test_unknown_source_type(self):
        """Should reject unsupported source types."""
        with pytest.raises(ValidationError):
            SourceConfig(source_id="s", source_type="ftp")

    def test_duplicate_source_ids(self):
        """Should reject two sources with one id."""
        source = {"source_id": "dup", "source_type": "local", "folder_path": "/media"}
        with pytest.raises(ValidationError, match="Duplicate source_id"):
            Config(sources=[source, source])

    def test_invalid_log_level(self):
        """Should reject unknown log levels."""
        with pytest.raises(ValidationError):
            Config(logging={"level": "loud"})

    def test_ratio_bounds(self):
        """Should keep the audio cap ratio within (0, 1]."""
        with pytest.raises(ValidationError):
            Config(scan={"audio_cap_ratio": 0})
        with pytest.raises(ValidationError):
            Config(scan={"audio_cap_ratio": 1.5})

    def test_get_source(self, default_config):
        """Should look sources up by id."""
        assert default_config.get_source("jf").source_type == "jellyfin"
        assert default_config.get_source("missing") is None
