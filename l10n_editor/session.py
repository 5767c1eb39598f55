"""
Editor workflows for the active project: fetch and reconcile documents, push
the edited target back, and request AI suggestions for the rows a query selects.
"""
import logging
import os
from typing import List, Optional, Set

from aiolimiter import AsyncLimiter

from l10n_editor.app_config import AppConfig
from l10n_editor.batcher import BatchResult, SuggestionBatcher, SuggestionContext
from l10n_editor.document import flatten_document, serialize_document, unflatten_document
from l10n_editor.errors import AuthError, ConfigurationError
from l10n_editor.models import TranslationRow
from l10n_editor.openai_provider import OpenAISuggestionProvider
from l10n_editor.project import Project
from l10n_editor.providers import DocumentCommitter, DocumentSource, LocalDocumentStore, SuggestionProvider
from l10n_editor.query import filter_rows
from l10n_editor.reconciler import reconcile
from l10n_editor.state import AppState
from l10n_editor.storage import SnapshotStore, build_share_url, import_share_url

logger = logging.getLogger(__name__)


def language_label(path: str, fallback: str) -> str:
    """``locales/fr.json`` -> ``fr``."""
    name = os.path.basename(path or '')
    if name.endswith('.json'):
        name = name[:-len('.json')]
    return name or fallback


class EditorSession:

    def __init__(
            self,
            state: AppState,
            source: DocumentSource,
            committer: DocumentCommitter,
            provider: SuggestionProvider,
            store: Optional[SnapshotStore] = None,
            storage_key: str = 'l10n-editor-state',
            show_progress: bool = False,
            share_base_url: str = 'http://localhost/',
            share_url_max_length: int = 2000
    ):
        self.state = state
        self.source = source
        self.committer = committer
        self.provider = provider
        self.store = store
        self.storage_key = storage_key
        self.show_progress = show_progress
        self.share_base_url = share_base_url
        self.share_url_max_length = share_url_max_length
        self._running_batchers: Set[SuggestionBatcher] = set()

    @classmethod
    def from_config(cls, config: AppConfig, document_root: str) -> 'EditorSession':
        """Build a session over a local document directory with the saved state restored."""
        store = SnapshotStore(config.storage_dir)
        snapshot = store.load(config.storage_key)
        state = AppState.from_snapshot(snapshot)
        if snapshot is None:
            state.active_project.selected_model = config.model
        if not state.settings.ai_api_key:
            state.settings.ai_api_key = config.openai_api_key
        if not state.settings.hosting_token:
            state.settings.hosting_token = config.hosting_token
        state.settings.suggestion_chunk_size = config.suggestion_chunk_size

        provider = OpenAISuggestionProvider(
            client=config.openai_client,
            rate_limiter=AsyncLimiter(max_rate=config.requests_per_minute, time_period=60),
            max_retries=config.max_retries,
            request_timeout=config.request_timeout,
            max_prompt_tokens=config.max_prompt_tokens
        )
        documents = LocalDocumentStore(document_root)
        return cls(
            state, documents, documents, provider,
            store=store,
            storage_key=config.storage_key,
            show_progress=config.show_progress,
            share_base_url=config.share_base_url,
            share_url_max_length=config.share_url_max_length
        )

    @property
    def project(self) -> Project:
        return self.state.active_project

    def save(self) -> None:
        if self.store is not None:
            self.store.save(self.storage_key, self.state.to_snapshot())

    # ── Documents ───────────────────────────────────────────────

    async def fetch(self) -> Project:
        """
        Fetch the source and target documents and reconcile them into the table.

        Local edits survive; keys no longer in the source are dropped.

        Raises:
            ConfigurationError: Owner, repository or source path is missing.
        """
        project = self.project
        config = project.config
        if not config.owner or not config.repo or not config.source_path:
            raise ConfigurationError(
                "Please provide the repository owner, name and source/target paths in the project settings.",
                {'project': project.name}
            )

        logger.info("Fetching '%s' and '%s' for project '%s'...", config.source_path, config.target_path, project.name)
        source = await self.source.fetch_document(config.source_path)
        target = await self.source.fetch_document(config.target_path)

        rows = reconcile(project.rows, flatten_document(source), flatten_document(target))
        self.state.replace_table(project.id, rows, original_target_data=target)
        self.save()
        return project

    def target_json(self) -> str:
        """The target document rebuilt from the current rows, as committed."""
        project = self.project
        document = unflatten_document(project.rows.flat_target(), project.original_target_data)
        return serialize_document(document)

    def default_commit_message(self) -> str:
        return f"Update {self.project.config.target_path} translations"

    async def push(self, commit_message: Optional[str] = None) -> str:
        """
        Commit the rebuilt target document and mark every row as committed.

        Returns the commit message used.

        Raises:
            AuthError: No hosting token is configured.
        """
        if not self.state.settings.hosting_token:
            raise AuthError("A hosting access token is required to push changes.")
        project = self.project
        message = commit_message or self.default_commit_message()
        content = self.target_json()

        path = project.config.target_path
        revision = await self.committer.get_revision(path)
        await self.committer.commit_document(path, content, message, revision)

        project.rows.mark_committed()
        project.touch()
        self.save()
        logger.info("Pushed %s for project '%s'.", path, project.name)
        return message

    # ── Queries & suggestions ───────────────────────────────────

    def visible_rows(self, query: str = '') -> List[TranslationRow]:
        return filter_rows(self.project.rows, query, self.state.in_flight)

    def language_labels(self):
        config = self.project.config
        return language_label(config.source_path, 'Source'), language_label(config.target_path, 'Target')

    def _batcher_for(self, project: Project, extra_instructions: str) -> SuggestionBatcher:
        source_lang, target_lang = self.language_labels()
        context = SuggestionContext(
            model=project.selected_model,
            api_key=self.state.settings.ai_api_key,
            source_lang=source_lang,
            target_lang=target_lang,
            extra_instructions=extra_instructions
        )
        return SuggestionBatcher(
            self.provider,
            context,
            current_table=lambda: project.rows,
            in_flight=self.state.in_flight,
            chunk_size=self.state.settings.suggestion_chunk_size,
            show_progress=self.show_progress
        )

    async def suggest_all(self, query: str = '', replace_existing: bool = False,
                          extra_instructions: str = '') -> BatchResult:
        """Request suggestions for every row matching ``query``."""
        project = self.project
        batcher = self._batcher_for(project, extra_instructions)
        self._running_batchers.add(batcher)
        try:
            return await batcher.suggest_all(self.visible_rows(query), replace_existing)
        finally:
            self._running_batchers.discard(batcher)
            project.touch()
            self.save()

    def cancel_suggestions(self) -> None:
        """Stop every running ``suggest_all`` before its next chunk."""
        for batcher in list(self._running_batchers):
            batcher.cancel()

    async def suggest_one(self, key: str, extra_instructions: str = '') -> Optional[str]:
        project = self.project
        row = project.rows[key]
        suggestion = await self._batcher_for(project, extra_instructions).suggest_one(row)
        if suggestion is not None:
            project.touch()
            self.save()
        return suggestion

    # ── Sharing ─────────────────────────────────────────────────

    def share_url(self) -> str:
        return build_share_url(self.project, self.share_base_url, self.share_url_max_length)

    def import_share_url(self, url: str) -> Project:
        project = self.state.add_project(import_share_url(url))
        self.save()
        return project
