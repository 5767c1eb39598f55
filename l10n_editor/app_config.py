"""Application configuration module for the localization editor."""
import logging
import os
import sys
from dataclasses import dataclass
from typing import Dict, Optional, Any

import yaml
from dotenv import load_dotenv
from openai import AsyncOpenAI

from l10n_editor.logging_config import setup_logger
from l10n_editor.models import DEFAULT_SUGGESTION_CHUNK_SIZE, DEFAULT_SUGGESTION_MODEL, SuggestionModel

DEFAULT_STORAGE_KEY = 'l10n-editor-state'
DEFAULT_SHARE_URL_MAX_LENGTH = 2000


@dataclass
class AppConfig:
    """Application configuration dataclass."""
    project_root: str

    # Persistence
    storage_dir: str
    storage_key: str

    # Credentials
    hosting_token: str
    openai_api_key: str

    # Suggestion settings
    model: SuggestionModel
    suggestion_chunk_size: int
    max_prompt_tokens: int
    requests_per_minute: int
    max_retries: int
    request_timeout: float
    show_progress: bool

    # Sharing
    share_base_url: str
    share_url_max_length: int

    # OpenAI client
    openai_client: Optional[AsyncOpenAI]


def _compute_project_root() -> str:
    """Compute the project root directory."""
    package_dir = os.path.dirname(os.path.realpath(__file__))
    return os.path.abspath(os.path.join(package_dir, os.pardir))


def _load_dotenv_files(project_root: str) -> None:
    """Load the .env file from the project root, if there is one."""
    dotenv_path = os.path.join(project_root, '.env')
    if os.path.exists(dotenv_path):
        load_dotenv(dotenv_path)


def _load_yaml_config(project_root: str) -> Dict[str, Any]:
    """Load the YAML configuration file, falling back to an empty config on any problem."""
    # L10N_EDITOR_CONFIG_FILE (possibly set in .env) overrides the default location.
    default_config_path = os.path.join(project_root, 'config.yaml')
    config_file = os.environ.get('L10N_EDITOR_CONFIG_FILE', default_config_path)

    if not os.path.isabs(config_file):
        config_file = os.path.abspath(config_file)

    config = {}
    try:
        if not os.path.exists(config_file):
            print(f"Warning: Configuration file '{config_file}' not found. Using default configuration.",
                  file=sys.stderr)
            return config

        if not os.access(config_file, os.R_OK):
            print(f"Error: Configuration file '{config_file}' exists but is not readable. Check file permissions.",
                  file=sys.stderr)
            return config

        with open(config_file, 'r', encoding='utf-8') as config_file_stream:
            loaded_config = yaml.safe_load(config_file_stream)
            if loaded_config is None:
                print(f"Warning: Configuration file '{config_file}' is empty. Using default configuration.",
                      file=sys.stderr)
            elif isinstance(loaded_config, dict):
                config = loaded_config
            else:
                print(f"Error: Configuration file '{config_file}' must contain a YAML dictionary. Using defaults.",
                      file=sys.stderr)

    except yaml.YAMLError as e:
        print(f"Error: Invalid YAML in configuration file '{config_file}': {e}", file=sys.stderr)
        print("Please check your YAML syntax. Using default configuration.", file=sys.stderr)
    except (OSError, IOError) as e:
        print(f"Error: Could not read configuration file '{config_file}': {e}", file=sys.stderr)
        print("Using default configuration.", file=sys.stderr)

    return config


def _setup_logger_from_config(config: Dict[str, Any]) -> logging.Logger:
    """Set up logger based on configuration."""
    log_config = config.get('logging') or {}
    log_level_str = log_config.get('log_level', 'INFO').upper()
    log_file_path = log_config.get('log_file_path', 'logs/l10n_editor.log')
    log_to_console = log_config.get('log_to_console', True)
    return setup_logger(log_level_str, log_file_path, log_to_console)


def _resolve_model(model_name: str, logger: logging.Logger) -> SuggestionModel:
    try:
        return SuggestionModel.from_id(model_name)
    except ValueError:
        logger.warning("Unknown model '%s'; falling back to '%s'.", model_name, DEFAULT_SUGGESTION_MODEL.model_id)
        return DEFAULT_SUGGESTION_MODEL


def _create_openai_client(api_key: str, logger: logging.Logger) -> Optional[AsyncOpenAI]:
    """Create the OpenAI client when a key is available; AI suggestions stay disabled otherwise."""
    if not api_key:
        logger.warning("OPENAI_API_KEY is not set. AI suggestions are disabled until a key is provided.")
        return None

    if not api_key.startswith('sk-'):
        logger.warning("Warning: OPENAI_API_KEY does not start with 'sk-'. This may be invalid.")

    client = AsyncOpenAI(api_key=api_key)
    logger.info("OpenAI client initialized successfully")
    return client


def load_app_config() -> AppConfig:
    """
    Load application configuration from the YAML file and environment variables.

    Environment variables win over the YAML file for credentials, the model and
    the suggestion chunk size.

    Returns:
        AppConfig: The loaded application configuration.
    """
    project_root = _compute_project_root()
    _load_dotenv_files(project_root)
    config = _load_yaml_config(project_root)
    logger = _setup_logger_from_config(config)

    model_name = os.environ.get('SUGGESTION_MODEL', config.get('model_name', DEFAULT_SUGGESTION_MODEL.model_id))
    model = _resolve_model(model_name, logger)

    default_chunk_size = config.get('suggestion_chunk_size', DEFAULT_SUGGESTION_CHUNK_SIZE)
    suggestion_chunk_size = max(1, int(os.environ.get('SUGGESTION_CHUNK_SIZE', default_chunk_size)))

    openai_api_key = os.environ.get('OPENAI_API_KEY', '')
    storage_dir = config.get('storage_dir', os.path.join(project_root, 'state'))

    return AppConfig(
        project_root=project_root,
        storage_dir=storage_dir,
        storage_key=config.get('storage_key', DEFAULT_STORAGE_KEY),
        hosting_token=os.environ.get('HOSTING_TOKEN', ''),
        openai_api_key=openai_api_key,
        model=model,
        suggestion_chunk_size=suggestion_chunk_size,
        max_prompt_tokens=config.get('max_prompt_tokens', 8000),
        requests_per_minute=config.get('requests_per_minute', 60),
        max_retries=config.get('max_retries', 3),
        request_timeout=float(config.get('request_timeout', 60.0)),
        show_progress=config.get('show_progress', True),
        share_base_url=config.get('share_base_url', 'http://localhost/'),
        share_url_max_length=config.get('share_url_max_length', DEFAULT_SHARE_URL_MAX_LENGTH),
        openai_client=_create_openai_client(openai_api_key, logger)
    )
