import unittest

from l10n_editor.models import DEFAULT_PROJECT_NAME, DEFAULT_SUGGESTION_MODEL, GlobalSettings, TranslationRow
from l10n_editor.project import Project
from l10n_editor.row_table import RowTable
from l10n_editor.state import AppState


class TestAppState(unittest.TestCase):

    def test_new_state_has_a_default_project(self):
        state = AppState()

        self.assertEqual(len(state.projects), 1)
        self.assertEqual(state.active_project.name, DEFAULT_PROJECT_NAME)

    def test_create_project_activates_it(self):
        state = AppState()

        project = state.create_project('  Mobile app ')

        self.assertEqual(project.name, 'Mobile app')
        self.assertIs(state.active_project, project)

    def test_blank_project_name(self):
        self.assertEqual(AppState().create_project('   ').name, 'New Project')

    def test_add_project_rejects_duplicate_id(self):
        state = AppState()

        with self.assertRaises(ValueError):
            state.add_project(Project(id=state.active_project.id, name='Copy'))

    def test_rename_ignores_blank_name(self):
        state = AppState()
        project = state.active_project

        state.rename_project(project.id, '  ')
        self.assertEqual(project.name, DEFAULT_PROJECT_NAME)

        state.rename_project(project.id, 'Website')
        self.assertEqual(project.name, 'Website')

    def test_delete_active_project_activates_another(self):
        state = AppState()
        first = state.active_project
        second = state.create_project('Second')

        active = state.delete_project(second.id)

        self.assertIs(active, first)
        self.assertEqual(state.projects, [first])

    def test_deleting_last_project_creates_a_default_one(self):
        state = AppState()
        only = state.active_project

        active = state.delete_project(only.id)

        self.assertNotEqual(active.id, only.id)
        self.assertEqual(active.name, DEFAULT_PROJECT_NAME)

    def test_unknown_project(self):
        with self.assertRaises(KeyError):
            AppState().activate('missing')

    def test_set_row_field_touches_project(self):
        state = AppState()
        project = state.active_project
        state.replace_table(project.id, RowTable([TranslationRow('a', 'A', 'A', 'A')]))
        project.last_updated = 0

        row = state.set_row_field(project.id, 'a', 'target_value', 'Un')

        self.assertEqual(row.target_value, 'Un')
        self.assertGreater(project.last_updated, 0)

    def test_replace_table_keeps_base_document_when_not_given(self):
        state = AppState()
        project = state.active_project
        state.replace_table(project.id, RowTable(), original_target_data={'a': 'x'})

        state.replace_table(project.id, RowTable())

        self.assertEqual(project.original_target_data, {'a': 'x'})

    def test_snapshot_round_trip(self):
        state = AppState(settings=GlobalSettings(hosting_token='t', ai_api_key='k', suggestion_chunk_size=3))
        project = state.create_project('Website')
        state.replace_table(project.id, RowTable([TranslationRow('a', 'A', 'Un', 'A', 'Une')]),
                            original_target_data={'a': 'A'})

        restored = AppState.from_snapshot(state.to_snapshot())

        self.assertEqual(restored.active_project_id, project.id)
        self.assertEqual(restored.settings, state.settings)
        self.assertEqual(restored.active_project.rows, project.rows)
        self.assertEqual(restored.active_project.original_target_data, {'a': 'A'})
        self.assertEqual(len(restored.in_flight), 0)

    def test_empty_snapshot(self):
        state = AppState.from_snapshot(None)

        self.assertEqual(state.active_project.name, DEFAULT_PROJECT_NAME)
        self.assertEqual(state.settings.suggestion_chunk_size, 10)

    def test_snapshot_with_retired_model_restores(self):
        state = AppState()
        snapshot = state.to_snapshot()
        snapshot['projects'][0]['selectedModel'] = 'retired-model'

        restored = AppState.from_snapshot(snapshot)

        self.assertIs(restored.active_project.selected_model, DEFAULT_SUGGESTION_MODEL)
        self.assertEqual(restored.active_project_id, state.active_project_id)


if __name__ == '__main__':
    unittest.main()
