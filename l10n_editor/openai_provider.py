import asyncio
import json
import logging
import random
import re
import uuid
from typing import Dict, List, Optional, Tuple

import jsonschema
import tiktoken
from aiolimiter import AsyncLimiter
from openai import (
    APIConnectionError,
    APIStatusError,
    AuthenticationError,
    PermissionDeniedError,
    RateLimitError,
    APITimeoutError,
    OpenAIError
)
from openai import AsyncOpenAI
from openai.types.chat import (
    ChatCompletionSystemMessageParam,
    ChatCompletionUserMessageParam
)

from l10n_editor.errors import AuthError, ProviderError
from l10n_editor.models import SuggestionModel

logger = logging.getLogger(__name__)

# Every suggestion response must be a flat JSON object of strings.
SUGGESTION_RESPONSE_SCHEMA = {
    "type": "object",
    "patternProperties": {
        "^.*$": {"type": "string"}
    },
    "additionalProperties": False
}

DEFAULT_MAX_PROMPT_TOKENS = 8000
DEFAULT_REQUESTS_PER_MINUTE = 60

PLACEHOLDER_PATTERN = re.compile(r'(<[^<>]+>)|({[^{}]+})')
CODE_FENCE_PATTERN = re.compile(r'^```(?:json)?\s*|\s*```$')


def count_tokens(text: str, model_name: str = 'gpt-4o-mini') -> int:
    """Count the number of tokens in ``text`` for ``model_name``.

    ``tiktoken.encoding_for_model`` may try to download model data. When that
    fails the ``cl100k_base`` encoding is used, and as a last resort a
    whitespace split.
    """
    try:
        encoding = tiktoken.encoding_for_model(model_name)
    except Exception:
        try:
            encoding = tiktoken.get_encoding("cl100k_base")
        except Exception:
            return len(text.split())

    try:
        return len(encoding.encode(text))
    except Exception:
        return len(text.split())


def extract_placeholders(text: str) -> Tuple[str, Dict[str, str]]:
    """
    Replace placeholders such as ``{0}``, ``{name}`` and HTML-like tags with
    opaque tokens the model is told to leave alone.

    Returns:
        Tuple[str, Dict[str, str]]: The processed text and token-to-placeholder mapping.
    """
    if not isinstance(text, str):
        raise ValueError("Input text must be a string.")

    placeholder_mapping = {}

    def replace_placeholder(match):
        placeholder_token = f"__PH_{uuid.uuid4().hex}__"
        placeholder_mapping[placeholder_token] = match.group(0)
        return placeholder_token

    return PLACEHOLDER_PATTERN.sub(replace_placeholder, text), placeholder_mapping


def restore_placeholders(text: str, placeholder_mapping: Dict[str, str]) -> str:
    for token, placeholder in placeholder_mapping.items():
        text = text.replace(token, placeholder)
    return text


def clean_translated_text(translated_text: str, original_text: str) -> str:
    """
    Strip quotes or square brackets the model wrapped around a translation
    when the original text was not wrapped the same way.
    """
    translated_text = translated_text.strip()
    if translated_text.startswith('"') and translated_text.endswith('"') and len(translated_text) > 1 and not (
            original_text.startswith('"') and original_text.endswith('"')):
        translated_text = translated_text[1:-1]
    if translated_text.startswith('[') and translated_text.endswith(']') and not (
            original_text.startswith('[') and original_text.endswith(']')):
        translated_text = translated_text[1:-1]
    return translated_text


def build_request_schema(keys: List[str]) -> Dict:
    """JSON schema naming exactly the requested keys, all strings."""
    return {
        "type": "object",
        "properties": {key: {"type": "string"} for key in keys},
        "additionalProperties": False
    }


def strip_code_fences(text: str) -> str:
    return CODE_FENCE_PATTERN.sub('', text.strip())


def build_system_prompt(source_lang: str, target_lang: str, extra_instructions: str = '') -> str:
    prompt = f"""
You are an expert translator specializing in software localization. Translate the following {source_lang} strings to {target_lang}.

**Instructions**:
- Provide the translations in a JSON object whose keys exactly match the input keys.
- **Do not translate or modify placeholder tokens**: Any text enclosed within double underscores `__` (e.g., `__PH_abc123__`) must remain exactly as is.
- **Preserve formatting**: Keep special characters and escape sequences such as `\\n` and `\\t`.
- **Do not add** quotation marks, square brackets or any other characters around a translation.
- Be concise and context-aware; the key path of each string hints at where it is shown.
- You SHOULD NOT include any other text outside the JSON object.
"""
    if extra_instructions:
        prompt += f"\n**Additional Instructions**: [{extra_instructions}]\n"
    return prompt


def build_user_prompt(items: List[Dict[str, str]], schema: Optional[Dict] = None) -> str:
    prompt = ""
    if schema is not None:
        prompt += f"Output only JSON under this schema: {json.dumps(schema, ensure_ascii=False)}\n"
    prompt += f"Input: {json.dumps(items, ensure_ascii=False)}"
    return prompt


async def _handle_retry(attempt: int, max_retries: int, base_delay: float, label: str,
                        api_exc: Optional[Exception] = None) -> bool:
    """
    Sleep before the next attempt using exponential backoff with jitter, or the
    server's ``Retry-After`` header when the API sent one.

    Returns:
        bool: True if the caller should retry, False once attempts are exhausted.
    """
    if attempt >= max_retries:
        logger.error(f"Suggestion request '{label}' failed after {max_retries} attempts.")
        return False

    retry_after = None
    if api_exc is not None and isinstance(api_exc, OpenAIError):
        response = getattr(api_exc, "response", None)
        headers = getattr(response, "headers", None) or {}
        retry_after_header = headers.get("Retry-After")
        if retry_after_header:
            try:
                if retry_after_header.endswith("ms"):
                    retry_after = float(retry_after_header[:-2]) / 1000
                else:
                    retry_after = float(retry_after_header)
            except ValueError:
                logger.warning(f"Failed to parse Retry-After header '{retry_after_header}'. Falling back to exponential backoff.")
    if retry_after is None:
        retry_after = base_delay * (2 ** (attempt - 1)) + random.uniform(0, 1)

    logger.info(f"Retrying suggestion request in {retry_after:.2f} seconds (Attempt {attempt}/{max_retries})")
    await asyncio.sleep(retry_after)
    return True


class OpenAISuggestionProvider:
    """
    Suggestion provider backed by the OpenAI chat completions API.

    Args:
        client: Client to use for every call. When omitted a client is created
            per API key on first use.
        rate_limiter: Shared request rate limit.
        max_retries: Attempts per request for transient API errors and
            malformed responses.
        base_delay: Base of the exponential backoff, in seconds.
        request_timeout: HTTP timeout per call, in seconds.
        max_prompt_tokens: Refuse requests whose prompt is larger than this.
    """

    def __init__(
            self,
            client: Optional[AsyncOpenAI] = None,
            rate_limiter: Optional[AsyncLimiter] = None,
            max_retries: int = 3,
            base_delay: float = 1.0,
            request_timeout: float = 60.0,
            max_prompt_tokens: int = DEFAULT_MAX_PROMPT_TOKENS
    ):
        self._client = client
        self._clients_by_key: Dict[str, AsyncOpenAI] = {}
        self.rate_limiter = rate_limiter or AsyncLimiter(max_rate=DEFAULT_REQUESTS_PER_MINUTE, time_period=60)
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.request_timeout = request_timeout
        self.max_prompt_tokens = max_prompt_tokens

    def _client_for(self, api_key: str) -> AsyncOpenAI:
        if self._client is not None:
            return self._client
        if not api_key:
            raise AuthError("An OpenAI API key is required for AI suggestions.")
        if api_key not in self._clients_by_key:
            self._clients_by_key[api_key] = AsyncOpenAI(api_key=api_key)
        return self._clients_by_key[api_key]

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
        Ask the model for translations of ``items`` (``{"key", "value"}`` dicts).

        Returns:
            Dict[str, str]: Suggestions for the requested keys the model answered.

        Raises:
            AuthError: No API key, or the key was rejected.
            ProviderError: The prompt is too large, or the request kept failing.
        """
        if not items:
            return {}
        client = self._client_for(api_key)

        originals = {item['key']: item['value'] for item in items}
        mappings: Dict[str, Dict[str, str]] = {}
        protected_items = []
        for item in items:
            processed_text, mappings[item['key']] = extract_placeholders(item['value'])
            protected_items.append({'key': item['key'], 'value': processed_text})

        request_schema = build_request_schema(list(originals))
        system_prompt = build_system_prompt(source_lang, target_lang, extra_instructions)
        user_prompt = build_user_prompt(
            protected_items,
            None if model.supports_structured_output else request_schema
        )

        prompt_tokens = count_tokens(system_prompt + user_prompt, model.model_id)
        if prompt_tokens > self.max_prompt_tokens:
            raise ProviderError(
                "Suggestion request is too large; reduce the suggestion chunk size.",
                prompt_tokens=prompt_tokens, max_prompt_tokens=self.max_prompt_tokens
            )

        request_kwargs = {}
        if model.supports_structured_output:
            request_kwargs['response_format'] = {
                "type": "json_schema",
                "json_schema": {"name": "translations", "schema": request_schema, "strict": False}
            }

        label = f"{len(items)} item(s) -> {target_lang}"
        last_error: Optional[str] = None
        for attempt in range(1, self.max_retries + 1):
            response_text = ''
            try:
                async with self.rate_limiter:
                    response = await client.chat.completions.create(
                        model=model.model_id,
                        messages=[
                            ChatCompletionSystemMessageParam(role="system", content=system_prompt),
                            ChatCompletionUserMessageParam(role="user", content=user_prompt)
                        ],
                        temperature=0.3,
                        timeout=self.request_timeout,
                        **request_kwargs
                    )
                response_text = response.choices[0].message.content or ''
                if not model.supports_structured_output:
                    response_text = strip_code_fences(response_text)

                parsed_json = json.loads(response_text)
                jsonschema.validate(instance=parsed_json, schema=SUGGESTION_RESPONSE_SCHEMA)
                return self._restore(parsed_json, originals, mappings)

            except (AuthenticationError, PermissionDeniedError) as auth_exc:
                raise AuthError(f"OpenAI rejected the API key: {auth_exc}") from auth_exc
            except json.JSONDecodeError as json_exc:
                last_error = f"AI did not return valid JSON: {json_exc}"
                logger.error(f"Suggestion request failed: {last_error}")
                logger.debug(f"Invalid AI response (JSON Decode Error):\n---\n{response_text}\n---")
                api_exc = None
            except jsonschema.ValidationError as schema_exc:
                last_error = f"AI response did not match the required JSON schema: {schema_exc.message}"
                logger.error(f"Suggestion request failed: {last_error}")
                logger.debug(f"Invalid AI response (Schema Error):\n---\n{response_text}\n---")
                api_exc = None
            except (RateLimitError, APITimeoutError, APIConnectionError, APIStatusError, OpenAIError) as exc:
                last_error = f"{exc.__class__.__name__} - {exc}"
                logger.error(f"API error occurred: {last_error}")
                api_exc = exc

            should_retry = await _handle_retry(attempt, self.max_retries, self.base_delay, label, api_exc)
            if not should_retry:
                break

        raise ProviderError(f"Suggestion request failed: {last_error}", attempts=self.max_retries)

    @staticmethod
    def _restore(
            parsed_json: Dict[str, str],
            originals: Dict[str, str],
            mappings: Dict[str, Dict[str, str]]
    ) -> Dict[str, str]:
        suggestions: Dict[str, str] = {}
        for key, value in parsed_json.items():
            if key not in originals:
                continue
            restored = restore_placeholders(value, mappings[key])
            suggestions[key] = clean_translated_text(restored, originals[key])
        logger.debug(f"Received {len(suggestions)} of {len(originals)} suggestion(s).")
        return suggestions
