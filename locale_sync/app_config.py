"""Application configuration for the locale synchronizer."""
import logging
import os
import sys
from dataclasses import dataclass
from typing import Dict, List, Optional, Any, Tuple

import yaml
from dotenv import load_dotenv
from openai import AsyncOpenAI, OpenAIError

from locale_sync.logging_config import setup_logger

DEFAULT_LOCALES = [
    {"folder": "es-es", "code": "es", "name": "Spanish"},
    {"folder": "fr-fr", "code": "fr", "name": "French"},
    {"folder": "jp-jp", "code": "ja", "name": "Japanese"},
    {"folder": "ko-kr", "code": "ko", "name": "Korean"},
    {"folder": "ar-sa", "code": "ar", "name": "Arabic"},
]


@dataclass(frozen=True)
class LocaleDescriptor:
    """One translation target: output folder, language code and language name."""
    folder: str
    code: str
    name: str


@dataclass(frozen=True)
class AppConfig:
    """Application configuration dataclass."""
    # Core paths
    repo_root: str
    source_path: str
    output_path_template: str
    state_file_path: str
    report_file_path: Optional[str]

    # Revisions
    previous_revision: Optional[str]
    current_revision: Optional[str]

    # Model configuration
    model_name: str
    request_timeout: float
    max_retries: int

    # Processing settings
    dry_run: bool
    max_concurrent_api_calls: int
    requests_per_minute: int

    # Language configuration
    locales: Tuple[LocaleDescriptor, ...]

    # OpenAI client
    openai_client: Optional[AsyncOpenAI]

    def target_path(self, locale: LocaleDescriptor) -> str:
        """Path of the translated document for ``locale``."""
        path = self.output_path_template.format(folder=locale.folder, code=locale.code)
        if not os.path.isabs(path):
            path = os.path.join(self.repo_root, path)
        return path


def _package_parent_dir() -> str:
    """Directory holding the locale_sync package, where config.yaml and .env are looked up."""
    package_dir = os.path.dirname(os.path.realpath(__file__))
    return os.path.dirname(package_dir)


def _load_env_file(project_root: str) -> Optional[str]:
    """
    Load the first .env file found, at the project root or under docker/.

    Variables already set in the process environment take precedence.

    Returns:
        Optional[str]: The file that was loaded, or None.
    """
    for candidate in (os.path.join(project_root, '.env'), os.path.join(project_root, 'docker', '.env')):
        if os.path.exists(candidate):
            load_dotenv(candidate)
            return candidate
    return None


def _read_config_file(project_root: str) -> Dict[str, Any]:
    """
    Read config.yaml, or the file named by LOCALE_SYNC_CONFIG_FILE.

    Runs before logging is configured, so problems are reported on stderr. A
    missing, unreadable or malformed file yields an empty configuration and the
    built-in defaults apply.
    """
    config_file = os.path.abspath(
        os.environ.get('LOCALE_SYNC_CONFIG_FILE', os.path.join(project_root, 'config.yaml')))

    if not os.path.exists(config_file):
        print(f"Config file '{config_file}' not found, using defaults "
              f"(set LOCALE_SYNC_CONFIG_FILE to point elsewhere).", file=sys.stderr)
        return {}

    try:
        with open(config_file, 'r', encoding='utf-8') as stream:
            loaded = yaml.safe_load(stream)
    except yaml.YAMLError as yaml_exc:
        print(f"Config file '{config_file}' is not valid YAML, using defaults: {yaml_exc}", file=sys.stderr)
        return {}
    except OSError as os_exc:
        print(f"Config file '{config_file}' could not be read, using defaults: {os_exc}", file=sys.stderr)
        return {}

    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        print(f"Config file '{config_file}' must hold a mapping at the top level, using defaults.", file=sys.stderr)
        return {}
    return loaded


def _configure_logging(config: Dict[str, Any]) -> logging.Logger:
    logging_section = config.get('logging') or {}
    return setup_logger(
        str(logging_section.get('log_level', 'INFO')),
        logging_section.get('log_file_path', 'logs/locale_sync.log'),
        logging_section.get('log_to_console', True)
    )


def _build_locales(locales_list: List[Dict[str, str]], logger: logging.Logger) -> Tuple[LocaleDescriptor, ...]:
    """Build locale descriptors from the supported locales list, keeping its order."""
    locales: List[LocaleDescriptor] = []
    seen_folders = set()

    for locale in locales_list:
        folder = locale.get('folder')
        code = locale.get('code')
        name = locale.get('name')
        if not (folder and code and name):
            logger.warning("Ignoring incomplete locale entry (folder, code and name are required): %s", locale)
            continue
        if folder in seen_folders:
            logger.warning("Ignoring duplicate locale folder '%s'.", folder)
            continue
        seen_folders.add(folder)
        locales.append(LocaleDescriptor(folder=folder, code=code, name=name))

    return tuple(locales)


def _resolve_path(path: str, base: str) -> str:
    return path if os.path.isabs(path) else os.path.abspath(os.path.join(base, path))


def _first_env(*names: str) -> Optional[str]:
    for name in names:
        value = os.environ.get(name)
        if value:
            return value
    return None


def _create_openai_client(dry_run: bool, logger: logging.Logger) -> Optional[AsyncOpenAI]:
    """Build the API client. Dry runs never talk to the API and get None."""
    if dry_run:
        logger.info("Dry run: no OpenAI client is created and no translation requests are sent.")
        return None

    api_key = os.environ.get('OPENAI_API_KEY')
    if not api_key:
        logger.critical("OPENAI_API_KEY is not set. Export it, put it in .env, or set 'dry_run: true'.")
        sys.exit(1)

    try:
        return AsyncOpenAI(api_key=api_key)
    except OpenAIError as client_exc:
        logger.critical(f"Could not create the OpenAI client: {client_exc}")
        sys.exit(1)


def load_app_config() -> AppConfig:
    """
    Load application configuration from the YAML file and environment variables.

    This is the only place that reads the process environment. Missing required
    settings (source path, locales, API key outside dry-run) end the process
    with exit status 1.

    Returns:
        AppConfig: The loaded application configuration.
    """
    project_root = _package_parent_dir()
    env_file = _load_env_file(project_root)
    config = _read_config_file(project_root)
    logger = _configure_logging(config)

    if env_file:
        logger.info("Environment loaded from %s", env_file)
    else:
        logger.info("No .env file under %s; using the process environment only.", project_root)

    repo_root = os.path.abspath(config.get('repo_root', os.getcwd()))

    source_path = os.environ.get('SOURCE_YAML_PATH', config.get('source_path'))
    if not source_path:
        logger.critical("No source document configured. Set SOURCE_YAML_PATH or 'source_path' in config.yaml.")
        sys.exit(1)

    locales = _build_locales(config.get('supported_locales', DEFAULT_LOCALES), logger)
    if not locales:
        logger.critical("No usable entries in 'supported_locales'. Nothing to synchronize.")
        sys.exit(1)

    state_file_path = os.environ.get('STATE_FILE_PATH', config.get('state_file_path', '.locale-sync-state.json'))
    report_file_path = config.get('report_file_path')

    dry_run = config.get('dry_run', False)
    model_name = os.environ.get('MODEL_NAME', config.get('model_name', 'gpt-4o-mini'))

    openai_client = _create_openai_client(dry_run, logger)

    return AppConfig(
        repo_root=repo_root,
        source_path=_resolve_path(source_path, repo_root),
        output_path_template=config.get('output_path_template', 'generated/{folder}/global.yaml'),
        state_file_path=_resolve_path(state_file_path, repo_root),
        report_file_path=_resolve_path(report_file_path, repo_root) if report_file_path else None,
        previous_revision=_first_env('PREVIOUS_REVISION', 'GITHUB_SHA_BEFORE') or config.get('previous_revision'),
        current_revision=_first_env('CURRENT_REVISION', 'GITHUB_SHA') or config.get('current_revision'),
        model_name=model_name,
        request_timeout=float(config.get('request_timeout', 60.0)),
        max_retries=int(config.get('max_retries', 5)),
        dry_run=dry_run,
        max_concurrent_api_calls=int(config.get('max_concurrent_api_calls', 1)),
        requests_per_minute=int(config.get('requests_per_minute', 60)),
        locales=locales,
        openai_client=openai_client
    )
