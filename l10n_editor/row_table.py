"""The ordered table of translation rows belonging to one project."""
import logging
from collections import OrderedDict
from typing import Dict, Iterable, Iterator, List, Optional

from l10n_editor.errors import StructuralError
from l10n_editor.models import TranslationRow

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ('target_value', 'original_target_value', 'ai_suggestion')


class RowTable:
    """
    Rows keyed by leaf path, kept in the order the keys first appeared in the
    source document. Keys are unique; adding a duplicate is a StructuralError.
    """

    def __init__(self, rows: Optional[Iterable[TranslationRow]] = None):
        self._rows: 'OrderedDict[str, TranslationRow]' = OrderedDict()
        for row in rows or ():
            self.add(row)

    def add(self, row: TranslationRow) -> None:
        if row.key in self._rows:
            raise StructuralError("Duplicate row key.", path=row.key)
        self._rows[row.key] = row

    def get(self, key: str) -> Optional[TranslationRow]:
        return self._rows.get(key)

    def __getitem__(self, key: str) -> TranslationRow:
        return self._rows[key]

    def __contains__(self, key: object) -> bool:
        return key in self._rows

    def __iter__(self) -> Iterator[TranslationRow]:
        return iter(self._rows.values())

    def __len__(self) -> int:
        return len(self._rows)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RowTable):
            return NotImplemented
        return list(self) == list(other)

    def __repr__(self):
        return f"RowTable({len(self)} rows, {self.modified_count()} modified)"

    def keys(self) -> List[str]:
        return list(self._rows)

    # ── Row edits ───────────────────────────────────────────────

    def set_row_field(self, key: str, field_name: str, value: str) -> TranslationRow:
        """Replace one editable field of the row at ``key``."""
        if field_name not in EDITABLE_FIELDS:
            raise ValueError(f"Field '{field_name}' is not editable.")
        row = self._rows.get(key)
        if row is None:
            raise KeyError(key)
        setattr(row, field_name, value)
        return row

    def set_target(self, key: str, value: str) -> TranslationRow:
        return self.set_row_field(key, 'target_value', value)

    def commit_suggestion(self, key: str) -> TranslationRow:
        """Copy the row's AI suggestion into its target value, if it has one."""
        row = self[key]
        if row.ai_suggestion:
            row.target_value = row.ai_suggestion
        return row

    def discard_suggestion(self, key: str) -> TranslationRow:
        return self.set_row_field(key, 'ai_suggestion', '')

    def revert_all(self) -> int:
        """Drop every local edit. Returns the number of rows reverted."""
        reverted = 0
        for row in self._rows.values():
            if row.is_modified:
                row.target_value = row.original_target_value
                reverted += 1
        logger.info("Reverted %d modified row(s).", reverted)
        return reverted

    def mark_committed(self) -> None:
        """Record that the current target values now match the remote document."""
        for row in self._rows.values():
            row.original_target_value = row.target_value

    # ── Queries ─────────────────────────────────────────────────

    def modified_rows(self) -> List[TranslationRow]:
        return [row for row in self._rows.values() if row.is_modified]

    def modified_count(self) -> int:
        return sum(1 for row in self._rows.values() if row.is_modified)

    def flat_target(self) -> Dict[str, str]:
        """Leaf path to current target value, ready for unflattening."""
        return {row.key: row.target_value for row in self._rows.values()}
