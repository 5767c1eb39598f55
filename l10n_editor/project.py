"""Localization project and its export form."""
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict

from l10n_editor.models import (
    DEFAULT_SUGGESTION_MODEL,
    HostingConfig,
    SuggestionModel,
    TranslationRow,
    now_ms,
)
from l10n_editor.row_table import RowTable

logger = logging.getLogger(__name__)


def _model_from_id(model_id: str) -> SuggestionModel:
    try:
        return SuggestionModel.from_id(model_id)
    except ValueError:
        logger.warning("Unknown model '%s'; using '%s' instead.", model_id, DEFAULT_SUGGESTION_MODEL.model_id)
        return DEFAULT_SUGGESTION_MODEL


@dataclass
class Project:
    """
    Hosting settings, the row table and the raw target document last fetched.

    ``original_target_data`` is the base shape the target document is rebuilt
    on when it is serialized for a commit.
    """
    id: str
    name: str
    config: HostingConfig = field(default_factory=HostingConfig)
    rows: RowTable = field(default_factory=RowTable)
    selected_model: SuggestionModel = DEFAULT_SUGGESTION_MODEL
    last_updated: int = field(default_factory=now_ms)
    original_target_data: Any = field(default_factory=dict)

    @classmethod
    def create(cls, name: str) -> 'Project':
        return cls(id=str(uuid.uuid4()), name=name)

    def touch(self) -> None:
        self.last_updated = now_ms()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'config': self.config.to_dict(),
            'rows': [row.to_dict() for row in self.rows],
            'selectedModel': self.selected_model.model_id,
            'lastUpdated': self.last_updated,
            'originalTargetData': self.original_target_data,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Project':
        model_id = data.get('selectedModel')
        return cls(
            id=data['id'],
            name=data['name'],
            config=HostingConfig.from_dict(data.get('config') or {}),
            rows=RowTable(TranslationRow.from_dict(row) for row in data.get('rows') or []),
            selected_model=_model_from_id(model_id) if model_id else DEFAULT_SUGGESTION_MODEL,
            last_updated=int(data.get('lastUpdated') or now_ms()),
            original_target_data=data.get('originalTargetData') or {},
        )
