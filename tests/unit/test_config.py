"""Unit tests for EchoesConfig."""

import pytest
from pathlib import Path

from echoes.config import DEFAULT_CONFIG, EchoesConfig


@pytest.mark.unit
class TestEchoesConfig:
    """Test cases for configuration loading."""

    def test_defaults_without_file(self):
        config = EchoesConfig()

        assert config.get('recorder.timeslice_ms') == 1000
        assert config.get('recorder.visualization.band_count') == 5
        assert config.get('transcription.server_url') == "http://127.0.0.1:8765"
        assert config.get('missing.key', 'fallback') == 'fallback'

    def test_defaults_are_not_shared(self):
        EchoesConfig().set('recorder.timeslice_ms', 5)

        assert DEFAULT_CONFIG['recorder']['timeslice_ms'] == 1000

    def test_file_overrides_defaults(self, temp_data_dir):
        path = Path(temp_data_dir) / "echoes.yaml"
        path.write_text("recorder:\n  timeslice_ms: 250\naudio:\n  tab_loopback_device: BlackHole\n")

        config = EchoesConfig(str(path))

        assert config.get('recorder.timeslice_ms') == 250
        assert config.get('recorder.finalize_timeout_seconds') == 0.1
        assert config.get('audio.tab_loopback_device') == "BlackHole"

    def test_relative_paths_resolve_against_config_file(self, temp_data_dir):
        path = Path(temp_data_dir) / "echoes.yaml"
        path.write_text("storage:\n  data_directory: recordings-data\n")

        config = EchoesConfig(str(path))

        assert config.get_data_directory() == str((Path(temp_data_dir) / "recordings-data").absolute())
        assert config.get('logging.file_path') == str(Path(temp_data_dir) / "data/logs/echoes.log")

    def test_missing_file(self, temp_data_dir):
        with pytest.raises(FileNotFoundError):
            EchoesConfig(str(Path(temp_data_dir) / "nope.yaml"))

    @pytest.mark.parametrize("content", ["", "recorder: [unclosed", "- just\n- a list\n"])
    def test_invalid_file(self, temp_data_dir, content):
        path = Path(temp_data_dir) / "echoes.yaml"
        path.write_text(content)

        with pytest.raises(ValueError):
            EchoesConfig(str(path))

    def test_set_creates_nested_keys(self):
        config = EchoesConfig()
        config.set('recorder.extra.value', 3)

        assert config.get('recorder.extra.value') == 3
