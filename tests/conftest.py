import pytest

from locale_sync.app_config import AppConfig
from tests.fakes import FRENCH, SPANISH, FakeTranslator


@pytest.fixture
def fake_translator():
    return FakeTranslator()


@pytest.fixture
def app_config_factory(tmp_path):
    """Builds an AppConfig rooted in a temporary directory."""

    def factory(**overrides) -> AppConfig:
        values = dict(
            repo_root=str(tmp_path),
            source_path=str(tmp_path / "src" / "global.yaml"),
            output_path_template="generated/{folder}/global.yaml",
            state_file_path=str(tmp_path / ".locale-sync-state.json"),
            report_file_path=None,
            previous_revision=None,
            current_revision=None,
            model_name="test-model",
            request_timeout=1.0,
            max_retries=1,
            dry_run=False,
            max_concurrent_api_calls=1,
            requests_per_minute=600,
            locales=(FRENCH, SPANISH),
            openai_client=None,
        )
        values.update(overrides)
        return AppConfig(**values)

    return factory
