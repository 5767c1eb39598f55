"""
Snapshot persistence and project export/import.

The whole editor state is saved as one JSON blob per storage key. A single
project can be exported to JSON text (for a file or a share URL) and imported
back under a fresh identity.
"""
import json
import logging
import os
import re
import uuid
from typing import Any, Dict, Optional
from urllib.parse import parse_qs, quote, urlsplit

from l10n_editor.errors import ShareLinkTooLongError, StructuralError
from l10n_editor.models import now_ms
from l10n_editor.project import Project

logger = logging.getLogger(__name__)

REQUIRED_PROJECT_FIELDS = ('id', 'name', 'config', 'rows')
SHARE_QUERY_PARAM = 'import'
EXPORT_SUFFIX = '.multiverse.json'


class SnapshotStore:
    """Stores one JSON snapshot per storage key inside ``storage_dir``."""

    def __init__(self, storage_dir: str):
        self.storage_dir = storage_dir

    def _path_for(self, storage_key: str) -> str:
        safe_key = re.sub(r'[^A-Za-z0-9_.-]', '_', storage_key)
        return os.path.join(self.storage_dir, f"{safe_key}.json")

    def load(self, storage_key: str) -> Optional[Dict[str, Any]]:
        """Return the saved snapshot, or None when nothing usable is stored."""
        path = self._path_for(storage_key)
        if not os.path.exists(path):
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except json.JSONDecodeError as json_exc:
            logger.error(f"Error decoding saved state '{path}': {json_exc}")
            return None

    def save(self, storage_key: str, snapshot: Dict[str, Any]) -> None:
        os.makedirs(self.storage_dir, exist_ok=True)
        path = self._path_for(storage_key)
        temp_path = f"{path}.tmp"
        with open(temp_path, 'w', encoding='utf-8') as f:
            json.dump(snapshot, f, ensure_ascii=False, indent=2)
        os.replace(temp_path, path)
        logger.debug("Saved state to '%s'.", path)


def export_project(project: Project) -> str:
    return json.dumps(project.to_dict(), ensure_ascii=False, indent=2)


def export_filename(project: Project) -> str:
    return f"{project.name}{EXPORT_SUFFIX}"


def import_project(content: str) -> Project:
    """
    Parse an exported project and give it a new identity.

    Raises:
        StructuralError: The text is not a JSON object, lacks one of
            ``id``, ``name``, ``config``, ``rows``, or holds a malformed field.
    """
    try:
        data = json.loads(content)
    except json.JSONDecodeError as json_exc:
        raise StructuralError(f"Invalid project file format: {json_exc}") from json_exc
    if not isinstance(data, dict):
        raise StructuralError("Invalid project file format: expected a JSON object.")

    missing = [name for name in REQUIRED_PROJECT_FIELDS if data.get(name) in (None, '')]
    if missing:
        raise StructuralError("Invalid project file format.", missing_fields=missing)

    if not isinstance(data['config'], dict):
        raise StructuralError("Invalid project file format: 'config' must be an object.", field='config')
    rows = data['rows']
    if not isinstance(rows, list) or not all(isinstance(row, dict) for row in rows):
        raise StructuralError("Invalid project file format: 'rows' must be a list of objects.", field='rows')

    try:
        project = Project.from_dict(data)
    except (KeyError, TypeError, ValueError) as exc:
        raise StructuralError(f"Invalid project file format: {exc}") from exc

    project.id = str(uuid.uuid4())
    project.last_updated = now_ms()
    logger.info("Imported project '%s' with %d row(s).", project.name, len(project.rows))
    return project


def build_share_url(project: Project, base_url: str, max_length: int) -> str:
    """Embed the exported project in ``base_url`` as the ``import`` query parameter."""
    url = f"{base_url}?{SHARE_QUERY_PARAM}={quote(export_project(project), safe='')}"
    if len(url) > max_length:
        raise ShareLinkTooLongError(len(url), max_length)
    return url


def import_share_url(url: str) -> Project:
    values = parse_qs(urlsplit(url).query).get(SHARE_QUERY_PARAM)
    if not values:
        raise StructuralError("URL does not contain a shared project.")
    return import_project(values[0])
