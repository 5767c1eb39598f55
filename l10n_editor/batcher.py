"""
Bulk AI suggestion requests over a working set of rows.

Rows waiting for a response are tracked in an ``InFlightRegistry`` keyed by
row key. Keys are claimed synchronously before the first request is awaited
and released on every exit path, so no row stays "loading" after a batch
finishes, fails or is cancelled.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Set

from tqdm import tqdm

from l10n_editor.errors import ProviderError
from l10n_editor.models import DEFAULT_SUGGESTION_CHUNK_SIZE, SuggestionModel, TranslationRow
from l10n_editor.providers import SuggestionProvider
from l10n_editor.row_table import RowTable

logger = logging.getLogger(__name__)


class InFlightRegistry:
    """The set of row keys currently awaiting an AI suggestion."""

    def __init__(self):
        self._keys: Set[str] = set()

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def __iter__(self) -> Iterator[str]:
        return iter(set(self._keys))

    def __len__(self) -> int:
        return len(self._keys)

    def acquire(self, keys: Iterable[str]) -> List[str]:
        """Mark ``keys`` in flight. Returns the keys that were not already marked."""
        claimed = [key for key in dict.fromkeys(keys) if key not in self._keys]
        self._keys.update(claimed)
        return claimed

    def release(self, keys: Iterable[str]) -> None:
        self._keys.difference_update(keys)

    @contextmanager
    def claim(self, keys: Iterable[str]) -> Iterator['Claim']:
        """
        Acquire ``keys`` for the duration of the block.

        Keys can be handed back early through ``Claim.release``; whatever is
        still held when the block exits, normally or not, is released.
        """
        held = Claim(self, self.acquire(keys))
        try:
            yield held
        finally:
            held.release_all()


class Claim:
    def __init__(self, registry: InFlightRegistry, keys: List[str]):
        self._registry = registry
        self.keys = keys
        self._held = set(keys)

    @property
    def held(self) -> Set[str]:
        return set(self._held)

    def release(self, keys: Iterable[str]) -> None:
        keys = [key for key in keys if key in self._held]
        self._held.difference_update(keys)
        self._registry.release(keys)

    def release_all(self) -> None:
        self.release(list(self._held))


@dataclass
class SuggestionContext:
    """Everything the provider needs besides the rows themselves."""
    model: SuggestionModel
    api_key: str
    source_lang: str
    target_lang: str
    extra_instructions: str = ''


@dataclass
class BatchResult:
    requested: int = 0
    suggested: int = 0
    chunks_completed: int = 0
    chunks_total: int = 0
    missing_keys: List[str] = field(default_factory=list)
    cancelled: bool = False


def chunk_rows(rows: List[TranslationRow], chunk_size: int) -> List[List[TranslationRow]]:
    if chunk_size < 1:
        raise ValueError("chunk_size must be at least 1.")
    return [rows[i:i + chunk_size] for i in range(0, len(rows), chunk_size)]


class SuggestionBatcher:
    """
    Drives suggestion requests for one project's rows.

    Args:
        provider: The suggestion provider to call.
        context: Model, credentials and language labels for every request.
        current_table: Returns the project's current row table. It is looked
            up again at merge time, so a re-fetch that replaced the table while
            a request was outstanding is honoured.
        in_flight: Registry shared with anything else requesting suggestions
            for the same rows.
        chunk_size: Maximum number of rows per request.
        show_progress: Show a tqdm progress bar over chunks.
    """

    def __init__(
            self,
            provider: SuggestionProvider,
            context: SuggestionContext,
            current_table: Callable[[], RowTable],
            in_flight: Optional[InFlightRegistry] = None,
            chunk_size: int = DEFAULT_SUGGESTION_CHUNK_SIZE,
            show_progress: bool = False
    ):
        self.provider = provider
        self.context = context
        self.current_table = current_table
        self.in_flight = in_flight if in_flight is not None else InFlightRegistry()
        self.chunk_size = chunk_size
        self.show_progress = show_progress
        self._cancel_requested = False

    def cancel(self) -> None:
        """Stop a running ``suggest_all`` before its next chunk is sent."""
        self._cancel_requested = True

    def select_candidates(self, rows: Iterable[TranslationRow], replace_existing: bool) -> List[TranslationRow]:
        return [
            row for row in rows
            if row.key not in self.in_flight and (replace_existing or not row.ai_suggestion)
        ]

    async def _request_chunk(self, chunk: List[TranslationRow], chunk_index: int) -> Dict[str, str]:
        items = [{'key': row.key, 'value': row.source_value} for row in chunk]
        try:
            return await self.provider.suggest(
                self.context.model,
                self.context.api_key,
                self.context.source_lang,
                self.context.target_lang,
                items,
                self.context.extra_instructions
            )
        except ProviderError as provider_exc:
            provider_exc.chunk_index = chunk_index
            provider_exc.details['chunk_index'] = chunk_index
            logger.error("Suggestion request for chunk %d failed: %s", chunk_index + 1, provider_exc)
            raise

    def _merge(self, chunk: List[TranslationRow], suggestions: Dict[str, str], result: BatchResult) -> None:
        chunk_keys = [row.key for row in chunk]
        table = self.current_table()
        for key in chunk_keys:
            suggestion = suggestions.get(key)
            if not isinstance(suggestion, str) or not suggestion:
                result.missing_keys.append(key)
                continue
            if key not in table:
                logger.debug("Row '%s' disappeared before its suggestion arrived.", key)
                continue
            table.set_row_field(key, 'ai_suggestion', suggestion)
            result.suggested += 1

        unexpected = suggestions.keys() - set(chunk_keys)
        if unexpected:
            logger.debug("Ignoring %d suggestion(s) for keys outside the request.", len(unexpected))

    async def suggest_all(
            self,
            rows: Iterable[TranslationRow],
            replace_existing: bool = False,
            chunk_size: Optional[int] = None
    ) -> BatchResult:
        """
        Request suggestions for ``rows`` in sequential chunks.

        Rows already in flight are skipped, as are rows that already carry a
        suggestion unless ``replace_existing`` is set. A provider failure
        aborts the remaining chunks; suggestions merged from earlier chunks
        are kept and the ProviderError (with ``chunk_index``) propagates.

        Args:
            rows: The working set, typically the rows matching the current query.
            replace_existing: Also request rows that already have a suggestion.
            chunk_size: Overrides the batcher's chunk size for this run.

        Returns:
            BatchResult: Counts of requested, suggested and missing rows.
        """
        self._cancel_requested = False
        candidates = self.select_candidates(rows, replace_existing)
        chunks = chunk_rows(candidates, chunk_size or self.chunk_size)
        result = BatchResult(requested=len(candidates), chunks_total=len(chunks))
        if not candidates:
            logger.info("No rows need AI suggestions.")
            return result

        logger.info(
            "Requesting AI suggestions for %d row(s) in %d chunk(s).", len(candidates), len(chunks)
        )
        with self.in_flight.claim(row.key for row in candidates) as claim:
            with tqdm(total=len(chunks), desc="AI suggestions", unit="chunk",
                      disable=not self.show_progress) as progress:
                for index, chunk in enumerate(chunks):
                    if self._cancel_requested:
                        logger.info("Suggestion batch cancelled after %d of %d chunk(s).", index, len(chunks))
                        result.cancelled = True
                        break
                    logger.info("Requesting chunk %d/%d (%d rows)...", index + 1, len(chunks), len(chunk))
                    suggestions = await self._request_chunk(chunk, index)
                    self._merge(chunk, suggestions, result)
                    claim.release(row.key for row in chunk)
                    result.chunks_completed += 1
                    progress.update(1)

        if result.missing_keys:
            logger.warning("No suggestion returned for %d row(s).", len(result.missing_keys))
        logger.info("Merged %d AI suggestion(s).", result.suggested)
        return result

    async def suggest_one(self, row: TranslationRow) -> Optional[str]:
        """
        Request a suggestion for a single row, replacing any existing one.

        Returns the new suggestion, or None when the row is already in flight
        or the provider produced nothing for it.
        """
        if row.key in self.in_flight:
            logger.info("Row '%s' is already waiting for a suggestion.", row.key)
            return None

        result = BatchResult(requested=1, chunks_total=1)
        with self.in_flight.claim([row.key]):
            suggestions = await self._request_chunk([row], 0)
            self._merge([row], suggestions, result)
        if result.suggested:
            return suggestions[row.key]
        return None
