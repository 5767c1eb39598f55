"""Data models for localization projects."""
import enum
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from l10n_editor.errors import StructuralError

DEFAULT_SUGGESTION_CHUNK_SIZE = 10
DEFAULT_PROJECT_NAME = "Default Project"


class SuggestionModel(enum.Enum):
    """
    Chat models the suggestion provider may be asked to use.

    Each member carries its API identifier and whether the model accepts a
    JSON schema ``response_format``; models without that capability get the
    schema spelled out in the prompt instead.
    """
    GPT_4O = ('gpt-4o', True)
    GPT_4O_MINI = ('gpt-4o-mini', True)
    GPT_4_1 = ('gpt-4.1', True)
    GPT_4_1_MINI = ('gpt-4.1-mini', True)
    GPT_4 = ('gpt-4', False)
    GPT_35_TURBO = ('gpt-3.5-turbo', False)

    def __init__(self, model_id: str, supports_structured_output: bool):
        self.model_id = model_id
        self.supports_structured_output = supports_structured_output

    @classmethod
    def from_id(cls, model_id: str) -> 'SuggestionModel':
        for member in cls:
            if member.model_id == model_id:
                return member
        raise ValueError(f"Unsupported suggestion model '{model_id}'.")


DEFAULT_SUGGESTION_MODEL = SuggestionModel.GPT_4O_MINI


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class TranslationRow:
    """One translatable string, identified by its leaf path in the source document."""
    key: str
    source_value: str
    target_value: str
    original_target_value: str
    ai_suggestion: str = ''

    @property
    def is_modified(self) -> bool:
        return self.target_value != self.original_target_value

    def to_dict(self) -> Dict[str, str]:
        return {
            'key': self.key,
            'sourceValue': self.source_value,
            'targetValue': self.target_value,
            'originalTargetValue': self.original_target_value,
            'aiSuggestion': self.ai_suggestion,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TranslationRow':
        """
        Build a row from its export form. Missing or null text fields become ``''``.

        Raises:
            StructuralError: The key is not a non-empty string, or a text field
                holds something other than a string.
        """
        key = data.get('key')
        if not isinstance(key, str) or not key:
            raise StructuralError("Row key must be a non-empty string.", key=key)

        def text(field_name: str) -> str:
            value = data.get(field_name)
            if value is None:
                return ''
            if not isinstance(value, str):
                raise StructuralError(
                    f"Row field '{field_name}' must be a string.", path=key, field=field_name
                )
            return value

        return cls(
            key=key,
            source_value=text('sourceValue'),
            target_value=text('targetValue'),
            original_target_value=text('originalTargetValue'),
            ai_suggestion=text('aiSuggestion'),
        )


@dataclass
class HostingConfig:
    """Where the source and target documents of a project live."""
    owner: str = ''
    repo: str = ''
    branch: str = 'main'
    source_path: str = ''
    target_path: str = ''

    def to_dict(self) -> Dict[str, str]:
        return {
            'owner': self.owner,
            'repo': self.repo,
            'branch': self.branch,
            'sourcePath': self.source_path,
            'targetPath': self.target_path,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'HostingConfig':
        return cls(
            owner=data.get('owner', ''),
            repo=data.get('repo', ''),
            branch=data.get('branch') or 'main',
            source_path=data.get('sourcePath', ''),
            target_path=data.get('targetPath', ''),
        )


@dataclass
class GlobalSettings:
    hosting_token: str = ''
    ai_api_key: str = ''
    suggestion_chunk_size: int = DEFAULT_SUGGESTION_CHUNK_SIZE

    def to_dict(self) -> Dict[str, Any]:
        return {
            'hostingToken': self.hosting_token,
            'aiApiKey': self.ai_api_key,
            'suggestionChunkSize': self.suggestion_chunk_size,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'GlobalSettings':
        data = data or {}
        return cls(
            hosting_token=data.get('hostingToken', ''),
            ai_api_key=data.get('aiApiKey', ''),
            suggestion_chunk_size=int(data.get('suggestionChunkSize') or DEFAULT_SUGGESTION_CHUNK_SIZE),
        )
