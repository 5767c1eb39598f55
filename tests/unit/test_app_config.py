"""Unit tests for the app_config module."""
import os
from unittest.mock import patch, MagicMock

import pytest

from l10n_editor.app_config import _load_yaml_config, load_app_config
from l10n_editor.models import SuggestionModel


def _load(yaml_config, env=None):
    with patch("l10n_editor.app_config._load_dotenv_files"):
        with patch("l10n_editor.app_config._load_yaml_config", return_value=yaml_config):
            with patch("l10n_editor.app_config.setup_logger", return_value=MagicMock()):
                with patch("l10n_editor.app_config.AsyncOpenAI") as mock_client_cls:
                    with patch.dict(os.environ, env or {}, clear=True):
                        return load_app_config(), mock_client_cls


class TestLoadAppConfig:
    """Test cases for the load_app_config function."""

    def test_defaults_without_config(self):
        config, mock_client_cls = _load({})

        assert config.model is SuggestionModel.GPT_4O_MINI
        assert config.suggestion_chunk_size == 10
        assert config.storage_key == 'l10n-editor-state'
        assert config.storage_dir == os.path.join(config.project_root, 'state')
        assert config.share_url_max_length == 2000
        assert config.openai_client is None
        mock_client_cls.assert_not_called()

    def test_values_from_yaml(self):
        config, _ = _load({
            "model_name": "gpt-4.1",
            "suggestion_chunk_size": 25,
            "storage_dir": "/tmp/l10n-state",
            "max_retries": 5,
            "show_progress": False,
            "share_base_url": "https://editor.example.com/",
        })

        assert config.model is SuggestionModel.GPT_4_1
        assert config.suggestion_chunk_size == 25
        assert config.storage_dir == "/tmp/l10n-state"
        assert config.max_retries == 5
        assert config.show_progress is False
        assert config.share_base_url == "https://editor.example.com/"

    def test_environment_overrides_yaml(self):
        config, mock_client_cls = _load(
            {"model_name": "gpt-4.1", "suggestion_chunk_size": 25},
            {
                "SUGGESTION_MODEL": "gpt-4o",
                "SUGGESTION_CHUNK_SIZE": "4",
                "OPENAI_API_KEY": "sk-test",
                "HOSTING_TOKEN": "ghp-token",
            }
        )

        assert config.model is SuggestionModel.GPT_4O
        assert config.suggestion_chunk_size == 4
        assert config.hosting_token == "ghp-token"
        assert config.openai_api_key == "sk-test"
        mock_client_cls.assert_called_once_with(api_key="sk-test")
        assert config.openai_client is mock_client_cls.return_value

    def test_unknown_model_falls_back_to_default(self):
        config, _ = _load({"model_name": "not-a-model"})

        assert config.model is SuggestionModel.GPT_4O_MINI

    def test_chunk_size_is_at_least_one(self):
        config, _ = _load({}, {"SUGGESTION_CHUNK_SIZE": "0"})

        assert config.suggestion_chunk_size == 1

    def test_logging_settings_are_passed_to_setup_logger(self):
        with patch("l10n_editor.app_config._load_dotenv_files"):
            with patch("l10n_editor.app_config._load_yaml_config",
                       return_value={"logging": {"log_level": "debug", "log_file_path": "", "log_to_console": False}}):
                with patch("l10n_editor.app_config.setup_logger", return_value=MagicMock()) as mock_setup:
                    with patch.dict(os.environ, {}, clear=True):
                        load_app_config()

        mock_setup.assert_called_once_with("DEBUG", "", False)


class TestLoadYamlConfig:

    def test_reads_file_named_by_environment(self, tmp_path):
        config_file = tmp_path / "custom.yaml"
        config_file.write_text("suggestion_chunk_size: 7\n", encoding="utf-8")

        with patch.dict(os.environ, {"L10N_EDITOR_CONFIG_FILE": str(config_file)}, clear=True):
            assert _load_yaml_config(str(tmp_path)) == {"suggestion_chunk_size": 7}

    def test_missing_file_gives_empty_config(self, tmp_path, capsys):
        with patch.dict(os.environ, {}, clear=True):
            assert _load_yaml_config(str(tmp_path)) == {}

        assert "not found" in capsys.readouterr().err

    @pytest.mark.parametrize("content", ["", "- just\n- a list\n", "key: [unclosed\n"])
    def test_unusable_file_gives_empty_config(self, tmp_path, content):
        (tmp_path / "config.yaml").write_text(content, encoding="utf-8")

        with patch.dict(os.environ, {}, clear=True):
            assert _load_yaml_config(str(tmp_path)) == {}
