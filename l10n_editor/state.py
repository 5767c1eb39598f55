"""
The single container for editor state: projects, the active project, global
settings and the in-flight registry. Components receive values from here and
hand results back through its update operations.
"""
import logging
from typing import Any, Dict, List, Optional

from l10n_editor.batcher import InFlightRegistry
from l10n_editor.models import DEFAULT_PROJECT_NAME, GlobalSettings, TranslationRow
from l10n_editor.project import Project
from l10n_editor.row_table import RowTable

logger = logging.getLogger(__name__)


class AppState:

    def __init__(
            self,
            projects: Optional[List[Project]] = None,
            active_project_id: Optional[str] = None,
            settings: Optional[GlobalSettings] = None
    ):
        self.projects: List[Project] = list(projects or [])
        self.settings = settings or GlobalSettings()
        self.in_flight = InFlightRegistry()
        if not self.projects:
            self.projects.append(Project.create(DEFAULT_PROJECT_NAME))
        if active_project_id is None or self.get_project(active_project_id) is None:
            active_project_id = self.projects[0].id
        self.active_project_id = active_project_id

    # ── Projects ────────────────────────────────────────────────

    def get_project(self, project_id: str) -> Optional[Project]:
        return next((p for p in self.projects if p.id == project_id), None)

    def _require(self, project_id: str) -> Project:
        project = self.get_project(project_id)
        if project is None:
            raise KeyError(f"Unknown project '{project_id}'.")
        return project

    @property
    def active_project(self) -> Project:
        return self._require(self.active_project_id)

    def activate(self, project_id: str) -> Project:
        project = self._require(project_id)
        self.active_project_id = project_id
        return project

    def create_project(self, name: str) -> Project:
        project = Project.create(name.strip() or "New Project")
        return self.add_project(project)

    def add_project(self, project: Project) -> Project:
        """Add a project (e.g. an import) and make it active."""
        if self.get_project(project.id) is not None:
            raise ValueError(f"Project id '{project.id}' already exists.")
        self.projects.append(project)
        self.active_project_id = project.id
        logger.info("Added project '%s'.", project.name)
        return project

    def rename_project(self, project_id: str, name: str) -> Project:
        project = self._require(project_id)
        if name.strip():
            project.name = name.strip()
            project.touch()
        return project

    def delete_project(self, project_id: str) -> Project:
        """Remove a project and return the project that is active afterwards."""
        project = self._require(project_id)
        self.projects.remove(project)
        logger.info("Deleted project '%s'.", project.name)
        if not self.projects:
            self.projects.append(Project.create(DEFAULT_PROJECT_NAME))
        if self.active_project_id == project_id:
            self.active_project_id = self.projects[0].id
        return self.active_project

    # ── Table updates ───────────────────────────────────────────

    def replace_table(self, project_id: str, rows: RowTable, original_target_data: Any = None) -> Project:
        project = self._require(project_id)
        project.rows = rows
        if original_target_data is not None:
            project.original_target_data = original_target_data
        project.touch()
        return project

    def set_row_field(self, project_id: str, key: str, field_name: str, value: str) -> TranslationRow:
        project = self._require(project_id)
        row = project.rows.set_row_field(key, field_name, value)
        project.touch()
        return row

    # ── Snapshot ────────────────────────────────────────────────

    def to_snapshot(self) -> Dict[str, Any]:
        return {
            'projects': [project.to_dict() for project in self.projects],
            'activeProjectId': self.active_project_id,
            'settings': self.settings.to_dict(),
        }

    @classmethod
    def from_snapshot(cls, snapshot: Optional[Dict[str, Any]]) -> 'AppState':
        """Restore state; an empty or missing snapshot yields one default project."""
        snapshot = snapshot or {}
        return cls(
            projects=[Project.from_dict(p) for p in snapshot.get('projects') or []],
            active_project_id=snapshot.get('activeProjectId'),
            settings=GlobalSettings.from_dict(snapshot.get('settings')),
        )
