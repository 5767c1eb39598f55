import json
import logging
from typing import Any, Dict, Iterable

from l10n_editor.models import TranslationRow
from l10n_editor.row_table import RowTable

logger = logging.getLogger(__name__)


def _scalar_text(value: Any) -> str:
    """Text form of a non-null scalar target leaf (``true``, ``3``, ...)."""
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False)


def reconcile(
        existing_rows: Iterable[TranslationRow],
        flat_source: Dict[str, Any],
        flat_target: Dict[str, Any]
) -> RowTable:
    """
    Rebuild the row table from freshly fetched documents without losing local edits.

    A row is produced for every string-valued source leaf, in source order:
    - ``original_target_value`` is the fetched target value, or the source
      value when the target has no (non-null) leaf at that path;
    - ``target_value`` follows the new original unless the previous row had
      been edited, in which case the edit is kept verbatim;
    - ``ai_suggestion`` is carried over from the previous row.
    Keys missing from the new source are dropped. The inputs are not mutated.

    Args:
        existing_rows: Rows from before this fetch (may be empty).
        flat_source: Flattened source document.
        flat_target: Flattened target document.

    Returns:
        RowTable: The reconciled table.
    """
    previous = {row.key: row for row in existing_rows}
    table = RowTable()
    preserved_edits = 0

    for key, source_value in flat_source.items():
        if not isinstance(source_value, str):
            continue

        target_value = flat_target.get(key)
        original = _scalar_text(target_value) if target_value is not None else source_value

        old_row = previous.get(key)
        if old_row is None or not old_row.is_modified:
            current = original
        else:
            current = old_row.target_value
            preserved_edits += 1

        table.add(TranslationRow(
            key=key,
            source_value=source_value,
            target_value=current,
            original_target_value=original,
            ai_suggestion=old_row.ai_suggestion if old_row is not None else '',
        ))

    dropped = len(previous.keys() - table.keys())
    logger.info(
        "Reconciled %d row(s): %d local edit(s) preserved, %d stale row(s) dropped.",
        len(table), preserved_edits, dropped
    )
    return table
