import asyncio
import os

import pytest

from locale_sync.document_model import flatten, read_document_file, write_document_file
from locale_sync.reconcile import diff
from locale_sync.state_tracker import RunState
from locale_sync.synchronizer import (
    LocaleSynchronizer,
    TranslationMemo,
    load_target_document,
    resolve_previous_revision,
    select_keys_to_translate
)
from locale_sync.translation_validator import make_error_placeholder
from tests.fakes import FRENCH, FakeTranslator, write_text


class TestSelectKeysToTranslate:

    def test_unchanged_key_with_existing_translation_is_reused(self):
        source = {"a.b": "Hello", "c": "Bye"}
        target = {"a": {"b": "Bonjour"}, "c": "Au revoir"}
        to_translate, reused = select_keys_to_translate(source, {"c": "Bye"}, target)
        assert to_translate == {"c": "Bye"}
        assert reused == 1

    def test_unchanged_key_missing_from_target_is_translated(self):
        source = {"a.b": "Hello", "c": "Bye"}
        target = {"c": "Au revoir"}
        to_translate, reused = select_keys_to_translate(source, {}, target)
        assert to_translate == {"a.b": "Hello"}
        assert reused == 1

    def test_non_string_target_value_is_not_reused(self):
        source = {"a": "Hello"}
        target = {"a": {"stale": "mapping"}}
        to_translate, reused = select_keys_to_translate(source, {}, target)
        assert to_translate == {"a": "Hello"}
        assert reused == 0

    def test_fresh_locale_translates_everything_in_source_order(self):
        source = {"z": "Z", "a.b": "AB", "m": "M"}
        to_translate, reused = select_keys_to_translate(source, {}, {})
        assert list(to_translate) == ["z", "a.b", "m"]
        assert reused == 0


class SlowTranslator(FakeTranslator):
    async def translate(self, text, language_name):
        await asyncio.sleep(0)
        return await super().translate(text, language_name)


@pytest.mark.asyncio
async def test_translation_memo_shares_identical_requests():
    translator = SlowTranslator()
    memo = TranslationMemo(translator)

    results = await asyncio.gather(
        memo.translate("Save", "French"),
        memo.translate("Save", "French"),
        memo.translate("Save", "Spanish"),
    )

    assert results == ["French: Save", "French: Save", "Spanish: Save"]
    assert sorted(translator.calls) == [("Save", "French"), ("Save", "Spanish")]
    assert memo.requests == 2


@pytest.mark.asyncio
async def test_translation_memo_skips_blank_text(fake_translator):
    memo = TranslationMemo(fake_translator)
    assert await memo.translate("", "French") == ""
    assert await memo.translate("  \n", "French") == "  \n"
    assert fake_translator.calls == []


def test_load_target_document_missing(tmp_path):
    assert load_target_document(str(tmp_path / "none.yaml")) == ({}, True)


def test_load_target_document_unparsable(tmp_path):
    target_path = tmp_path / "broken.yaml"
    write_text(target_path, "a: [unclosed\n")
    assert load_target_document(str(target_path)) == ({}, True)


@pytest.mark.asyncio
async def test_changed_key_is_retranslated_and_untouched_key_kept(tmp_path, fake_translator):
    target_path = str(tmp_path / "fr-fr" / "global.yaml")
    write_document_file(target_path, {"a": {"b": "Bonjour (revu)"}, "c": "Au revoir"})
    current = {"a": {"b": "Hello"}, "c": "Bye"}
    previous = {"a": {"b": "Hello"}, "c": "Goodbye"}
    delta = diff(current, previous)
    assert delta == {"c": "Bye"}

    result = await LocaleSynchronizer(fake_translator).sync_locale(FRENCH, target_path, current, delta)

    assert fake_translator.calls == [("Bye", "French")]
    assert result.changed and result.written
    assert result.updated_keys == ["c"]
    assert read_document_file(target_path) == {"a": {"b": "Bonjour (revu)"}, "c": "French: Bye"}


@pytest.mark.asyncio
async def test_deleted_source_key_is_removed_from_target(tmp_path, fake_translator):
    target_path = str(tmp_path / "fr-fr" / "global.yaml")
    write_document_file(target_path, {"a": "A-fr", "d": "Vieux"})
    current = {"a": "A"}
    previous = {"a": "A", "d": "Old"}

    result = await LocaleSynchronizer(fake_translator).sync_locale(FRENCH, target_path, current, diff(current, previous))

    assert fake_translator.calls == []
    assert result.removed_keys and result.changed
    assert read_document_file(target_path) == {"a": "A-fr"}


@pytest.mark.asyncio
async def test_deletion_in_locale_without_key_is_not_a_change(tmp_path, fake_translator):
    target_path = str(tmp_path / "fr-fr" / "global.yaml")
    write_document_file(target_path, {"a": "A-fr"})
    mtime_before = os.path.getmtime(target_path)
    current = {"a": "A"}

    result = await LocaleSynchronizer(fake_translator).sync_locale(
        FRENCH, target_path, current, diff(current, {"a": "A", "d": "Old"}))

    assert not result.changed and not result.written
    assert os.path.getmtime(target_path) == mtime_before


@pytest.mark.asyncio
async def test_empty_source_value_is_never_sent(tmp_path, fake_translator):
    target_path = str(tmp_path / "fr-fr" / "global.yaml")
    current = {"e": "", "f": "Text"}

    result = await LocaleSynchronizer(fake_translator).sync_locale(FRENCH, target_path, current, diff(current, {}))

    assert fake_translator.calls == [("Text", "French")]
    assert result.fresh
    assert read_document_file(target_path) == {"e": "", "f": "French: Text"}


@pytest.mark.asyncio
async def test_fresh_locale_covers_every_source_string(tmp_path, fake_translator):
    target_path = str(tmp_path / "fr-fr" / "global.yaml")
    current = {"menu": {"open": "Open", "close": "Close", "sub": {"x": "X"}}, "title": "Title", "count": 3}

    # A fresh locale is fully translated even when the source did not change.
    result = await LocaleSynchronizer(fake_translator).sync_locale(FRENCH, target_path, current, {})

    written = read_document_file(target_path)
    assert set(flatten(written)) == set(flatten(current))
    assert written["count"] == 3
    assert result.translated_keys == ["menu.open", "menu.close", "menu.sub.x", "title"]


@pytest.mark.asyncio
async def test_one_failing_key_does_not_stop_the_others(tmp_path):
    translator = FakeTranslator(failing_texts={"Broken"})
    target_path = str(tmp_path / "fr-fr" / "global.yaml")
    current = {"a": "One", "b": "Broken", "c": "Three"}

    result = await LocaleSynchronizer(translator).sync_locale(FRENCH, target_path, current, diff(current, {}))

    assert read_document_file(target_path) == {
        "a": "French: One",
        "b": make_error_placeholder("Broken"),
        "c": "French: Three",
    }
    assert result.error_keys == ["b"]


@pytest.mark.asyncio
async def test_identical_translation_is_not_a_write(tmp_path):
    target_path = str(tmp_path / "fr-fr" / "global.yaml")
    write_document_file(target_path, {"a": "French: Hi"})
    translator = FakeTranslator()
    current = {"a": "Hi"}

    result = await LocaleSynchronizer(translator).sync_locale(FRENCH, target_path, current, {"a": "Hi"})

    assert translator.calls == [("Hi", "French")]
    assert not result.changed and not result.written


@pytest.mark.asyncio
async def test_opaque_leaves_are_copied_verbatim(tmp_path, fake_translator):
    target_path = str(tmp_path / "fr-fr" / "global.yaml")
    write_document_file(target_path, {"a": "A-fr", "limits": {"max": 1}})
    current = {"a": "A", "limits": {"max": 5, "flags": [True, "x"]}}

    result = await LocaleSynchronizer(fake_translator).sync_locale(FRENCH, target_path, current, {})

    assert fake_translator.calls == []
    assert result.changed
    assert read_document_file(target_path) == {"a": "A-fr", "limits": {"max": 5, "flags": [True, "x"]}}


@pytest.mark.asyncio
async def test_structural_change_from_leaf_to_mapping(tmp_path, fake_translator):
    target_path = str(tmp_path / "fr-fr" / "global.yaml")
    write_document_file(target_path, {"a": "Ancien"})
    current = {"a": {"b": "New"}}

    await LocaleSynchronizer(fake_translator).sync_locale(FRENCH, target_path, current, diff(current, {"a": "Old"}))

    assert read_document_file(target_path) == {"a": {"b": "French: New"}}


@pytest.mark.asyncio
async def test_dry_run_does_not_write(tmp_path, fake_translator):
    target_path = str(tmp_path / "fr-fr" / "global.yaml")
    current = {"a": "A"}

    result = await LocaleSynchronizer(fake_translator, dry_run=True).sync_locale(FRENCH, target_path, current, {})

    assert result.changed
    assert not result.written
    assert not os.path.exists(target_path)


@pytest.mark.asyncio
async def test_second_pass_is_a_no_op(tmp_path):
    target_path = str(tmp_path / "fr-fr" / "global.yaml")
    current = {"a": {"b": "Hello"}, "c": "Bye", "e": "", "n": [1, 2]}

    first = FakeTranslator()
    await LocaleSynchronizer(first).sync_locale(FRENCH, target_path, current, diff(current, {}))
    mtime_before = os.path.getmtime(target_path)

    second = FakeTranslator()
    result = await LocaleSynchronizer(second).sync_locale(FRENCH, target_path, current, diff(current, current))

    assert second.calls == []
    assert not result.changed and not result.written
    assert os.path.getmtime(target_path) == mtime_before


@pytest.mark.asyncio
async def test_nan_leaves_are_stable_across_passes(tmp_path):
    target_path = str(tmp_path / "fr-fr" / "global.yaml")
    current = {"a": "A", "ratio": float("nan"), "series": [1.5, float("nan")]}

    await LocaleSynchronizer(FakeTranslator()).sync_locale(FRENCH, target_path, current, diff(current, {}))
    result = await LocaleSynchronizer(FakeTranslator()).sync_locale(FRENCH, target_path, current, {})

    assert not result.changed and not result.written


@pytest.mark.parametrize("state, fallback, state_file_present, expected", [
    (RunState("abc"), "before", True, "abc"),
    (None, "before", False, "before"),
    (None, None, False, None),
    (None, "before", True, None),
])
def test_resolve_previous_revision(state, fallback, state_file_present, expected):
    assert resolve_previous_revision(state, fallback, state_file_present) == expected
