import asyncio
import json
import os
from typing import Callable, Dict, List, Optional

import pytest

from l10n_editor.errors import ProviderError
from l10n_editor.models import TranslationRow
from l10n_editor.row_table import RowTable


class FakeSuggestionProvider:
    """
    In-memory suggestion provider.

    ``translate`` maps a source value to a suggestion (None means "no
    suggestion"). ``fail_on_call`` makes the n-th call (1-based) raise.
    ``on_call`` runs synchronously inside every call before it returns,
    which lets tests inspect shared state while a request is outstanding.
    """

    def __init__(
            self,
            translate: Optional[Callable[[str], Optional[str]]] = None,
            fail_on_call: Optional[int] = None,
            on_call: Optional[Callable[[List[Dict[str, str]]], None]] = None
    ):
        self.translate = translate or (lambda value: f"[fr] {value}")
        self.fail_on_call = fail_on_call
        self.on_call = on_call
        self.calls: List[List[Dict[str, str]]] = []
        self.call_args: List[tuple] = []

    async def suggest(self, model, api_key, source_lang, target_lang, items, extra_instructions=''):
        self.calls.append(list(items))
        self.call_args.append((model, api_key, source_lang, target_lang, extra_instructions))
        if self.on_call is not None:
            self.on_call(items)
        if self.fail_on_call is not None and len(self.calls) == self.fail_on_call:
            raise ProviderError("provider unavailable")
        suggestions = {}
        for item in items:
            suggestion = self.translate(item['value'])
            if suggestion is not None:
                suggestions[item['key']] = suggestion
        return suggestions


class GatedSuggestionProvider:
    """
    Suggestion provider whose requests for ``gated_keys`` wait on ``gate``.

    ``waiting`` is set once a gated request has started.
    """

    def __init__(self, gated_keys):
        self.gated_keys = set(gated_keys)
        self.gate = asyncio.Event()
        self.waiting = asyncio.Event()
        self.calls: List[List[str]] = []

    async def suggest(self, model, api_key, source_lang, target_lang, items, extra_instructions=''):
        keys = [item['key'] for item in items]
        self.calls.append(keys)
        if self.gated_keys.intersection(keys):
            self.waiting.set()
            await self.gate.wait()
        return {item['key']: f"[fr] {item['value']}" for item in items}


def make_row(key: str, source: str, target: Optional[str] = None, original: Optional[str] = None,
             ai_suggestion: str = '') -> TranslationRow:
    target = source if target is None else target
    original = target if original is None else original
    return TranslationRow(
        key=key,
        source_value=source,
        target_value=target,
        original_target_value=original,
        ai_suggestion=ai_suggestion,
    )


@pytest.fixture
def sample_table() -> RowTable:
    """A small table covering the row states the query tags distinguish."""
    return RowTable([
        # translated upstream, untouched
        make_row('auth.login.title', 'Sign in', 'Connexion'),
        # translated upstream, edited locally
        make_row('auth.login.button', 'Submit', 'Valider', original='Envoyer'),
        # untranslated (mirrors the source)
        make_row('auth.errors.0', 'Wrong password'),
        # empty target
        make_row('auth.errors.1', 'Account locked', ''),
        # carries an AI suggestion
        make_row('home.welcome', 'Welcome back', 'Welcome back', ai_suggestion='Bon retour'),
    ])


@pytest.fixture
def document_root(tmp_path):
    """A directory holding an English source and a partially translated French target."""
    source = {
        "auth": {
            "login": {"title": "Sign in", "button": "Submit"},
            "errors": ["Wrong password", "Account locked"]
        },
        "home": {"welcome": "Welcome back", "count": 3},
        "meta": {}
    }
    target = {
        "auth": {
            "login": {"title": "Connexion", "button": "Envoyer"},
            "errors": ["Mot de passe incorrect"]
        },
        "home": {"count": 3},
        "meta": {},
        "legacy": {"unused": "Ancien"}
    }
    locales = tmp_path / 'locales'
    locales.mkdir()
    for name, document in (('en.json', source), ('fr.json', target)):
        with open(os.path.join(locales, name), 'w', encoding='utf-8') as f:
            json.dump(document, f, ensure_ascii=False, indent=4)
    return str(tmp_path)


@pytest.fixture
def row_factory():
    return make_row


@pytest.fixture
def provider_factory():
    return FakeSuggestionProvider


@pytest.fixture
def gated_provider_factory():
    return GatedSuggestionProvider
