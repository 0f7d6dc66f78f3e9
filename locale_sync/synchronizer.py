"""
Incremental synchronization of per-locale YAML documents with a source document.

For every locale the synchronizer removes keys that no longer exist in the
source, translates the keys whose source text changed since the last
synchronized revision (or that the locale does not hold yet), reuses every
other existing translation, and writes the locale document only when its
content actually changed.
"""
import asyncio
import copy
import logging
import math
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from tqdm.asyncio import tqdm

from locale_sync.app_config import AppConfig, LocaleDescriptor
from locale_sync.document_model import (
    DocumentError,
    flatten,
    get_path,
    iter_leaves,
    load_document,
    read_document_file,
    set_path,
    write_document_file
)
from locale_sync.reconcile import diff, remove_deleted_keys
from locale_sync.revision_content import RevisionContentProvider
from locale_sync.state_tracker import RunState, read_run_state, save_run_state, should_persist_state
from locale_sync.translation_validator import check_key_coverage, find_error_placeholders, make_error_placeholder
from locale_sync.translator import Translator

logger = logging.getLogger(__name__)


class SourceDocumentError(RuntimeError):
    """Raised when the current source document cannot be read or parsed."""


@dataclass
class LocaleResult:
    locale: LocaleDescriptor
    target_path: str
    fresh: bool = False
    changed: bool = False
    written: bool = False
    removed_keys: bool = False
    translated_keys: List[str] = field(default_factory=list)
    updated_keys: List[str] = field(default_factory=list)
    reused_keys: int = 0
    error_keys: List[str] = field(default_factory=list)


@dataclass
class SyncReport:
    current_revision: str
    previous_revision: Optional[str]
    delta: Dict[str, str]
    locales: List[LocaleResult] = field(default_factory=list)
    state_persisted: bool = False

    @property
    def any_changed(self) -> bool:
        return any(result.changed for result in self.locales)


class TranslationMemo:
    """
    Per-run memo in front of a translator.

    Identical (text, language) requests share one call, so a key is never
    translated twice in a run even when several keys carry the same text or
    requests overlap in time.
    """

    def __init__(self, translator: Translator):
        self.translator = translator
        self._pending: Dict[Tuple[str, str], asyncio.Future] = {}

    @property
    def requests(self) -> int:
        return len(self._pending)

    async def translate(self, text: str, language_name: str) -> str:
        if not text.strip():
            return text
        memo_key = (language_name, text)
        future = self._pending.get(memo_key)
        if future is None:
            future = asyncio.ensure_future(self.translator.translate(text, language_name))
            self._pending[memo_key] = future
        return await future


def select_keys_to_translate(
        source_strings: Dict[str, str],
        delta: Dict[str, str],
        target: Dict
) -> Tuple[Dict[str, str], int]:
    """
    Decide, per source key, whether the locale's existing translation can be reused.

    A translation is reused when the source text did not change since the last
    synchronized revision and the target already holds a string at that path.
    Every other key is translated: changed keys, and keys the target is missing.

    Args:
        source_strings (Dict[str, str]): Flattened current source document.
        delta (Dict[str, str]): Keys whose source text changed, with their new text.
        target (Dict): The locale document, after deleted keys were removed.

    Returns:
        Tuple[Dict[str, str], int]: Keys to translate with their source text, in
        source order, and the number of reused translations.
    """
    to_translate: Dict[str, str] = {}
    reused = 0
    for key, text in source_strings.items():
        if key not in delta and isinstance(get_path(target, key), str):
            reused += 1
        else:
            to_translate[key] = text
    return to_translate, reused


def load_target_document(target_path: str) -> Tuple[Dict, bool]:
    """
    Load a locale document.

    Returns:
        Tuple[Dict, bool]: The document and whether the locale starts from
        nothing. A missing or unreadable document yields an empty one.
    """
    if not os.path.exists(target_path):
        logger.info(f"Target file '{target_path}' does not exist. Will create a new one.")
        return {}, True
    try:
        logger.info(f"Loading existing target file: {target_path}")
        return read_document_file(target_path), False
    except (OSError, UnicodeDecodeError, DocumentError) as e:
        logger.warning(f"Could not read target file '{target_path}': {e}. Translating this locale from scratch.")
        return {}, True


def _same_opaque_value(existing, value) -> bool:
    """Type-strict equality for opaque leaves. NaN matches NaN so a ``.nan`` leaf is stable across runs."""
    if type(existing) is not type(value):
        return False
    if isinstance(value, float) and math.isnan(value):
        return math.isnan(existing)
    if isinstance(value, list):
        return len(existing) == len(value) and all(
            _same_opaque_value(old, new) for old, new in zip(existing, value))
    if isinstance(value, dict):
        return existing.keys() == value.keys() and all(
            _same_opaque_value(existing[key], value[key]) for key in value)
    return existing == value


def _copy_opaque_leaves(source: Dict, target: Dict) -> bool:
    """Copy non-string source leaves (numbers, booleans, null, lists) into the target verbatim."""
    copied = False
    for path, value in iter_leaves(source):
        if isinstance(value, str):
            continue
        if not _same_opaque_value(get_path(target, path), value):
            set_path(target, path, copy.deepcopy(value))
            copied = True
    return copied


class LocaleSynchronizer:
    """Brings one locale document at a time in line with the source document."""

    def __init__(self, translator: Translator, dry_run: bool = False):
        self.memo = TranslationMemo(translator)
        self.dry_run = dry_run

    async def _resolve(self, key: str, text: str, language_name: str) -> Tuple[str, str]:
        try:
            return key, await self.memo.translate(text, language_name)
        except Exception as e:
            logger.error(f"Translation of key '{key}' into {language_name} failed: {e}", exc_info=True)
            return key, make_error_placeholder(text)

    async def _translate_keys(self, to_translate: Dict[str, str], locale: LocaleDescriptor) -> Dict[str, str]:
        tasks = [self._resolve(key, text, locale.name) for key, text in to_translate.items()]
        results: Dict[str, str] = {}
        for coro in tqdm.as_completed(tasks, desc=f"Translating {locale.folder}", unit="translation",
                                      disable=not tasks):
            key, translated = await coro
            results[key] = translated
        return results

    async def sync_locale(
            self,
            locale: LocaleDescriptor,
            target_path: str,
            current_source: Dict,
            delta: Dict[str, str]
    ) -> LocaleResult:
        """
        Synchronize one locale document with the current source document.

        Args:
            locale (LocaleDescriptor): The locale to synchronize.
            target_path (str): Where the locale document lives.
            current_source (Dict): The current source document.
            delta (Dict[str, str]): Source keys changed since the last synchronized revision.

        Returns:
            LocaleResult: What happened to the locale. The document is written
            only when ``changed`` is set and the run is not a dry run.
        """
        target, fresh = load_target_document(target_path)
        result = LocaleResult(locale=locale, target_path=target_path, fresh=fresh)

        logger.info(f"Checking for deleted keys in '{locale.folder}'...")
        if remove_deleted_keys(target, current_source):
            result.removed_keys = True
            result.changed = True

        source_strings = flatten(current_source)
        to_translate, result.reused_keys = select_keys_to_translate(source_strings, delta, target)
        result.translated_keys = list(to_translate)

        if to_translate:
            logger.info(f"Found {len(to_translate)} strings to translate/update for '{locale.folder}'.")
            logger.debug("Keys to translate: %s", ", ".join(to_translate))
        translations = await self._translate_keys(to_translate, locale)

        for key in to_translate:
            translated_text = translations[key]
            if get_path(target, key) != translated_text:
                set_path(target, key, translated_text)
                result.updated_keys.append(key)
                result.changed = True
                logger.debug(f"Updated translation for key '{key}'")
            else:
                logger.debug(f"No change in translated text for key '{key}', skipping update.")

        if _copy_opaque_leaves(current_source, target):
            result.changed = True

        missing_keys, extra_keys = check_key_coverage(set(source_strings), set(flatten(target)))
        if missing_keys or extra_keys:
            logger.warning(
                f"Locale '{locale.folder}' does not mirror the source: "
                f"missing={sorted(missing_keys)}, extra={sorted(extra_keys)}")

        result.error_keys = find_error_placeholders(target)
        if result.error_keys:
            logger.warning(f"{len(result.error_keys)} value(s) in '{locale.folder}' carry a translation error marker.")

        if not result.changed:
            logger.info(f"No content changes for '{locale.folder}'. No file write needed.")
        elif self.dry_run:
            logger.info(f"[Dry Run] Would write updated translations to '{target_path}'.")
        else:
            write_document_file(target_path, target)
            result.written = True
            logger.info(f"Successfully updated '{target_path}'")

        return result


def load_source_document(source_path: str) -> Dict:
    """
    Read the current source document.

    Raises:
        SourceDocumentError: If the file cannot be read or parsed.
    """
    logger.info(f"Reading current source file: {source_path}")
    try:
        return read_document_file(source_path)
    except (OSError, UnicodeDecodeError, DocumentError) as e:
        raise SourceDocumentError(f"Could not load source document '{source_path}': {e}") from e


def load_previous_source(
        source_path: str,
        previous_revision: Optional[str],
        revision_content: RevisionContentProvider
) -> Dict:
    """Load the source document as of ``previous_revision``; anything unavailable yields an empty baseline."""
    logger.info(
        f"Fetching previous source file content from revision: {previous_revision or 'none (no previous revision)'}")
    content = revision_content(source_path, previous_revision)
    if content is None:
        return {}
    try:
        return load_document(content)
    except DocumentError as e:
        logger.warning(f"Previous source document at '{previous_revision}' is unusable: {e}. Using an empty baseline.")
        return {}


def resolve_previous_revision(
        state: Optional[RunState],
        fallback: Optional[str],
        state_file_present: bool = False
) -> Optional[str]:
    """
    Pick the revision the current source is compared against.

    A damaged state file means the last synchronized revision is unknown: the
    configured fallback is ignored and the empty baseline forces a full
    retranslation of every locale.
    """
    if state is not None:
        return state.last_synchronized_revision
    if state_file_present:
        return None
    return fallback


async def run_sync(
        config: AppConfig,
        translator: Translator,
        revision_content: RevisionContentProvider,
        current_revision: str
) -> SyncReport:
    """
    Synchronize every configured locale and record the processed revision.

    Args:
        config (AppConfig): The run configuration.
        translator (Translator): Translation capability for cache misses.
        revision_content (RevisionContentProvider): Historical content lookup.
        current_revision (str): Revision identifier of the source being processed.

    Returns:
        SyncReport: Per-locale results and whether the run state was recorded.

    Raises:
        SourceDocumentError: If the current source document cannot be loaded.
        StatePersistenceError: If the run state cannot be recorded.
    """
    state, state_file_present = read_run_state(config.state_file_path)
    previous_revision = resolve_previous_revision(state, config.previous_revision, state_file_present)

    current_source = load_source_document(config.source_path)
    previous_source = load_previous_source(config.source_path, previous_revision, revision_content)

    logger.info("Identifying added/modified strings...")
    delta = diff(current_source, previous_source)
    logger.info(f"{len(delta)} source string(s) changed since {previous_revision or 'the empty baseline'}.")

    report = SyncReport(current_revision=current_revision, previous_revision=previous_revision, delta=delta)
    synchronizer = LocaleSynchronizer(translator, dry_run=config.dry_run)

    for locale in config.locales:
        logger.info(f"Processing locale '{locale.folder}' ({locale.name})...")
        result = await synchronizer.sync_locale(locale, config.target_path(locale), current_source, delta)
        report.locales.append(result)

    logger.info(f"Translation requests issued this run: {synchronizer.memo.requests}")

    if not should_persist_state(report.any_changed, state):
        logger.info("No locale changed. Run state left untouched.")
    elif config.dry_run:
        logger.info(f"[Dry Run] Would record revision '{current_revision}' in '{config.state_file_path}'.")
    else:
        save_run_state(config.state_file_path, current_revision)
        report.state_persisted = True

    return report
