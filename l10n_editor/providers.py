"""
Collaborators the editor talks to: where documents come from and go to, and
who produces translation suggestions.
"""
import hashlib
import json
import logging
import os
from typing import Any, Dict, List, Protocol

from l10n_editor.errors import ConflictError, NotFoundError, StructuralError, TransportError
from l10n_editor.models import SuggestionModel

logger = logging.getLogger(__name__)


class DocumentSource(Protocol):
    async def fetch_document(self, path: str) -> Any:
        """Return the parsed JSON document at ``path``; raise NotFoundError or TransportError."""
        ...


class DocumentCommitter(Protocol):
    async def get_revision(self, path: str) -> str:
        """Return the opaque revision marker of the document currently at ``path``."""
        ...

    async def commit_document(self, path: str, content: str, message: str, revision: str) -> None:
        """
        Replace the document at ``path``.

        Raises ConflictError when ``revision`` is no longer current and
        AuthError when credentials are missing or rejected.
        """
        ...


class SuggestionProvider(Protocol):
    async def suggest(
            self,
            model: SuggestionModel,
            api_key: str,
            source_lang: str,
            target_lang: str,
            items: List[Dict[str, str]],
            extra_instructions: str = ''
    ) -> Dict[str, str]:
        """
        Return suggested translations keyed by item key.

        Keys may be omitted (no suggestion). A failed call raises a single
        ProviderError for the whole request.
        """
        ...


def content_revision(content: bytes) -> str:
    return hashlib.sha1(content).hexdigest()


class LocalDocumentStore:
    """
    Documents stored as JSON files under a root directory.

    The revision of a document is the SHA-1 of its bytes; a commit against a
    stale revision raises ConflictError.
    """

    def __init__(self, root: str):
        self.root = os.path.abspath(root)

    def _resolve(self, path: str) -> str:
        full_path = os.path.abspath(os.path.join(self.root, path))
        if os.path.commonpath([self.root, full_path]) != self.root:
            raise NotFoundError("Path escapes the document root.", path=path)
        return full_path

    def _read_bytes(self, path: str) -> bytes:
        full_path = self._resolve(path)
        if not os.path.isfile(full_path):
            raise NotFoundError(f"Document '{path}' does not exist.", path=path)
        try:
            with open(full_path, 'rb') as f:
                return f.read()
        except OSError as e:
            raise TransportError(f"Could not read document '{path}': {e}", path=path) from e

    async def fetch_document(self, path: str) -> Any:
        raw = self._read_bytes(path)
        try:
            return json.loads(raw.decode('utf-8'))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise StructuralError(f"Document '{path}' is not valid JSON: {e}", path=path) from e

    async def get_revision(self, path: str) -> str:
        return content_revision(self._read_bytes(path))

    async def commit_document(self, path: str, content: str, message: str, revision: str) -> None:
        current = await self.get_revision(path)
        if current != revision:
            raise ConflictError(
                f"Document '{path}' changed since revision {revision[:7]}.",
                path=path, expected=revision, actual=current
            )
        full_path = self._resolve(path)
        try:
            with open(full_path, 'w', encoding='utf-8') as f:
                f.write(content)
        except OSError as e:
            raise TransportError(f"Could not write document '{path}': {e}", path=path) from e
        logger.info("Committed '%s': %s", path, message)
