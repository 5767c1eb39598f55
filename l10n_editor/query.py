"""
Search query language for the row table.

A query is a list of clauses separated by ``||``; a row matches when any
clause matches. Within a clause the free text before the first ``#`` and
every ``#tag`` after it must all hold. Matching is case-insensitive.

    welcome                 key, source or target contains "welcome"
    ^auth\\..*#reg          regular expression search on the same fields
    error#key               only the key is searched
    #modified #ai           edited rows that also carry an AI suggestion
    #empty || #aifetching   rows without a target, or waiting for the AI
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Callable, Collection, Dict, FrozenSet, Iterable, List, Optional, Pattern

from l10n_editor.document import is_array_item_path
from l10n_editor.errors import PatternError, StructuralError
from l10n_editor.models import TranslationRow

logger = logging.getLogger(__name__)

CLAUSE_SEPARATOR = '||'
TAG_PATTERN = re.compile(r'#(\w+)')

TAG_REGEX = 'reg'
TAG_KEY_ONLY = 'key'


def _is_undone(row: TranslationRow) -> bool:
    return row.source_value == row.target_value or not row.target_value


def _in_array(row: TranslationRow) -> bool:
    try:
        return is_array_item_path(row.key)
    except StructuralError:
        return False


# Tag name -> predicate(row, in_flight_keys)
TAG_PREDICATES: Dict[str, Callable[[TranslationRow, Collection[str]], bool]] = {
    'modified': lambda row, in_flight: row.is_modified,
    'done': lambda row, in_flight: (
        row.source_value != row.original_target_value
        and row.target_value == row.original_target_value
    ),
    'undone': lambda row, in_flight: _is_undone(row),
    'doing': lambda row, in_flight: _is_undone(row) or row.is_modified,
    'ai': lambda row, in_flight: bool(row.ai_suggestion),
    'noai': lambda row, in_flight: not row.ai_suggestion,
    'empty': lambda row, in_flight: not row.target_value,
    'inarray': lambda row, in_flight: _in_array(row),
    'aifetching': lambda row, in_flight: row.key in in_flight,
}

KNOWN_TAGS = frozenset(TAG_PREDICATES) | {TAG_REGEX, TAG_KEY_ONLY}


@dataclass
class QueryClause:
    """One ``||`` branch of a query."""
    text: str = ''
    tags: FrozenSet[str] = field(default_factory=frozenset)
    pattern: Optional[Pattern] = None
    pattern_error: Optional[PatternError] = None

    @property
    def uses_regex(self) -> bool:
        return TAG_REGEX in self.tags

    @property
    def key_only(self) -> bool:
        return TAG_KEY_ONLY in self.tags

    def _text_matches(self, row: TranslationRow) -> bool:
        fields = [row.key] if self.key_only else [row.key, row.source_value, row.target_value]
        if self.uses_regex:
            return any(self.pattern.search(value.lower()) for value in fields)
        return any(self.text in value.lower() for value in fields)

    def matches(self, row: TranslationRow, in_flight: Collection[str] = frozenset()) -> bool:
        """
        Evaluate this clause against a row.

        Args:
            row: The row to test.
            in_flight: Keys currently waiting for an AI suggestion.

        Returns:
            bool: True when the text predicate and every tag predicate hold.
            A clause whose ``#reg`` pattern failed to compile never matches.
        """
        if self.pattern_error is not None:
            return False
        if not self._text_matches(row):
            return False
        return all(
            TAG_PREDICATES[tag](row, in_flight)
            for tag in self.tags
            if tag in TAG_PREDICATES
        )


def parse_clause(raw_clause: str) -> QueryClause:
    """Parse a single clause; see the module docstring for the syntax."""
    lowered = raw_clause.lower()
    hash_index = lowered.find('#')
    if hash_index == -1:
        return QueryClause(text=lowered.strip())

    text = lowered[:hash_index].strip()
    tags = frozenset(TAG_PATTERN.findall(lowered[hash_index:]))
    unknown = tags - KNOWN_TAGS
    if unknown:
        logger.debug("Ignoring unknown query tag(s): %s", ", ".join(sorted(unknown)))

    clause = QueryClause(text=text, tags=tags)
    if clause.uses_regex:
        try:
            clause.pattern = re.compile(text)
        except re.error as regex_exc:
            clause.pattern_error = PatternError(f"Invalid regular expression: {regex_exc}", pattern=text)
            logger.warning("Query clause '%s' will match nothing: %s", raw_clause.strip(), regex_exc)
    return clause


def parse_query(raw_query: str) -> List[QueryClause]:
    """Split a raw search string into its OR-ed clauses."""
    return [parse_clause(part) for part in (raw_query or '').split(CLAUSE_SEPARATOR)]


def row_matches(clauses: List[QueryClause], row: TranslationRow, in_flight: Collection[str] = frozenset()) -> bool:
    return any(clause.matches(row, in_flight) for clause in clauses)


def filter_rows(
        rows: Iterable[TranslationRow],
        raw_query: str,
        in_flight: Collection[str] = frozenset()
) -> List[TranslationRow]:
    """
    Return the rows matching ``raw_query``, in table order.

    An empty query matches every row.
    """
    clauses = parse_query(raw_query)
    return [row for row in rows if row_matches(clauses, row, in_flight)]
