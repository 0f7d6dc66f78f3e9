"""Translation capability backed by the OpenAI chat completions API."""
import asyncio
import logging
import random
import re
import uuid
from typing import Dict, Optional, Protocol, Tuple

from aiolimiter import AsyncLimiter
from openai import (
    APIConnectionError,
    APIStatusError,
    RateLimitError,
    APITimeoutError,
    OpenAIError
)
from openai import AsyncOpenAI
from openai.types.chat import (
    ChatCompletionSystemMessageParam,
    ChatCompletionUserMessageParam
)

from locale_sync.translation_validator import check_placeholder_parity, make_error_placeholder

logger = logging.getLogger(__name__)

SOURCE_LANGUAGE_NAME = "English"


class Translator(Protocol):
    async def translate(self, text: str, language_name: str) -> str:
        ...


class TranslationResponseError(Exception):
    """The model answered, but the answer cannot be used as a translation."""


# `{0}` / `{name}` placeholders and HTML-like tags.
PROTECTED_SEGMENT_REGEX = re.compile(r'(<[^<>]+>)|({[^{}]+})')


def extract_placeholders(text: str) -> Tuple[str, Dict[str, str]]:
    """
    Swap placeholders and markup for opaque ``__PH_<hex>__`` tokens the model leaves alone.

    Returns:
        Tuple[str, Dict[str, str]]: The text to send, and token -> original segment.
    """
    if not isinstance(text, str):
        raise ValueError("Input text must be a string.")

    token_map: Dict[str, str] = {}

    def to_token(match):
        token = f"__PH_{uuid.uuid4().hex}__"
        token_map[token] = match.group(0)
        return token

    return PROTECTED_SEGMENT_REGEX.sub(to_token, text), token_map


def restore_placeholders(text: str, placeholder_mapping: Dict[str, str]) -> str:
    """Put back the segments replaced by ``extract_placeholders``."""
    for token, segment in placeholder_mapping.items():
        text = text.replace(token, segment)
    return text


def _wrapped_in(text: str, opening: str, closing: str) -> bool:
    return len(text) >= 2 and text.startswith(opening) and text.endswith(closing)


def clean_translated_text(translated_text: str, original_text: str) -> str:
    """
    Strip quotes or square brackets the model wrapped around its answer.

    A wrapper that the original text already had is kept.
    """
    for opening, closing in (('"', '"'), ('[', ']')):
        if _wrapped_in(translated_text, opening, closing) and not _wrapped_in(original_text, opening, closing):
            translated_text = translated_text[1:-1]
    return translated_text


def build_system_prompt(language_name: str) -> str:
    return f"""
You are an expert translator specializing in software localization. Translate the user's text from {SOURCE_LANGUAGE_NAME} to {language_name}.

**Instructions**:
- **Do not translate or modify placeholder tokens**: Any text enclosed within double underscores `__` (e.g., `__PH_abc123__`) and any text in braces or brackets (e.g., `{{name}}`) must remain exactly as is.
- **Preserve formatting**: Keep line breaks, special characters and surrounding whitespace.
- **Do not add** any additional characters or punctuation (no quotation marks, no square brackets).
- **Provide only** the translated text, with no commentary or explanation.
"""


async def _handle_retry(attempt: int, max_retries: int, base_delay: float, text: str,
                        api_exc: Optional[Exception] = None) -> bool:
    """
    Handle the retry mechanism with exponential backoff and jitter.

    Args:
        attempt (int): The current attempt number.
        max_retries (int): The maximum number of retry attempts.
        base_delay (float): The base delay in seconds.
        text (str): The text being translated, for the log line.
        api_exc (Optional[Exception]): The exception object from the API, if available.

    Returns:
        bool: True if the operation should retry, False otherwise.
    """
    if attempt < max_retries:
        retry_after = None
        if api_exc is not None and isinstance(api_exc, OpenAIError):
            response = getattr(api_exc, "response", None)
            headers = getattr(response, "headers", None) or {}
            retry_after_header = headers.get("Retry-After")
            if retry_after_header:
                try:
                    if retry_after_header.isdigit():
                        retry_after = float(retry_after_header)
                    elif retry_after_header.endswith("ms"):
                        retry_after = float(retry_after_header[:-2]) / 1000
                except ValueError as exc:
                    logger.warning(f"Failed to parse Retry-After header: {exc}. Falling back to exponential backoff.")
        if retry_after is None:
            retry_after = base_delay * (2 ** (attempt - 1)) + random.uniform(0, 1)
        logger.info(
            f"Retrying translation request in {retry_after:.2f} seconds (Attempt {attempt}/{max_retries})")
        await asyncio.sleep(retry_after)
        return True
    else:
        logger.error(f"Translation failed for text '{text}' after {max_retries} attempts.")
        return False


class OpenAITranslator:
    """
    Translates single strings through the chat completions API.

    Never raises for a failed translation: the caller receives a tagged error
    placeholder carrying the original text instead, so sibling keys keep going.
    """

    def __init__(
            self,
            client: AsyncOpenAI,
            model_name: str,
            request_timeout: float = 60.0,
            max_retries: int = 5,
            base_delay: float = 1.0,
            max_concurrent_api_calls: int = 1,
            requests_per_minute: int = 60
    ):
        self.client = client
        self.model_name = model_name
        self.request_timeout = request_timeout
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.semaphore = asyncio.Semaphore(max_concurrent_api_calls)
        self.rate_limiter = AsyncLimiter(max_rate=requests_per_minute, time_period=60)

    async def _request(self, processed_text: str, language_name: str) -> str:
        response = await self.client.chat.completions.create(
            model=self.model_name,
            messages=[
                ChatCompletionSystemMessageParam(role="system", content=build_system_prompt(language_name)),
                ChatCompletionUserMessageParam(role="user", content=processed_text)
            ],
            temperature=0.3,
            timeout=self.request_timeout,
        )
        if not response.choices or not response.choices[0].message.content:
            raise TranslationResponseError("Empty response from the model.")
        return response.choices[0].message.content.strip()

    async def translate(self, text: str, language_name: str) -> str:
        """
        Translate ``text`` into ``language_name``.

        Empty or whitespace-only text is returned unchanged without a request.
        """
        if not text.strip():
            return text

        processed_text, placeholder_mapping = extract_placeholders(text)

        async with self.semaphore, self.rate_limiter:
            for attempt in range(1, self.max_retries + 1):
                try:
                    logger.debug(f"Translating into {language_name}: '{text}'")
                    translated_text = await self._request(processed_text, language_name)
                    translated_text = restore_placeholders(translated_text, placeholder_mapping)
                    translated_text = clean_translated_text(translated_text, text)

                    if not check_placeholder_parity(text, translated_text):
                        raise TranslationResponseError("Placeholders were lost or altered in the translation.")

                    logger.debug(f"Translated '{text}' to '{translated_text}'")
                    return translated_text

                except (RateLimitError, APITimeoutError, APIConnectionError, APIStatusError, OpenAIError) as api_exc:
                    logger.error(f"API error occurred: {api_exc.__class__.__name__} - {api_exc}")
                    if not await _handle_retry(attempt, self.max_retries, self.base_delay, text, api_exc):
                        break
                except TranslationResponseError as response_exc:
                    logger.warning(f"Unusable translation for '{text}': {response_exc}")
                    if not await _handle_retry(attempt, self.max_retries, self.base_delay, text):
                        break
                except Exception as general_exc:
                    logger.error(f"An unexpected error occurred while translating '{text}': {general_exc}",
                                 exc_info=True)
                    break

        logger.error(f"ERROR during translation into {language_name} for text '{text}'. Storing error placeholder.")
        return make_error_placeholder(text)


class DryRunTranslator:
    """Stands in for the API in dry-run mode: logs the request and echoes the source text."""

    def __init__(self):
        self.requests = 0

    async def translate(self, text: str, language_name: str) -> str:
        if not text.strip():
            return text
        self.requests += 1
        logger.info(f"[Dry Run] Would translate into {language_name}: '{text}'")
        return text
