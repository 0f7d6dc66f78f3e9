import asyncio
import logging
import os
import sys

from locale_sync.app_config import AppConfig, load_app_config
from locale_sync.revision_content import GitRevisionContentProvider, RevisionError
from locale_sync.state_tracker import StatePersistenceError
from locale_sync.synchronizer import SourceDocumentError, SyncReport, run_sync
from locale_sync.translator import DryRunTranslator, OpenAITranslator, Translator

logger = logging.getLogger(__name__)


def build_translator(config: AppConfig) -> Translator:
    if config.dry_run or config.openai_client is None:
        return DryRunTranslator()
    return OpenAITranslator(
        client=config.openai_client,
        model_name=config.model_name,
        request_timeout=config.request_timeout,
        max_retries=config.max_retries,
        max_concurrent_api_calls=config.max_concurrent_api_calls,
        requests_per_minute=config.requests_per_minute
    )


def write_sync_report(report_path: str, report: SyncReport) -> None:
    """
    Write a Markdown summary of the run, suitable as a review request body.

    The report exists whenever the run leaves something to commit: a changed
    locale, or a newly recorded revision. Otherwise a stale report is removed.
    """
    if not (report.any_changed or report.state_persisted):
        if os.path.exists(report_path):
            os.remove(report_path)
        return

    report_dir = os.path.dirname(report_path)
    if report_dir:
        os.makedirs(report_dir, exist_ok=True)
    changed = [result for result in report.locales if result.changed]
    with open(report_path, 'w', encoding='utf-8') as f:
        f.write("## Locale synchronization\n\n")
        f.write(f"Source revision: `{report.current_revision}`\n")
        f.write(f"Compared against: `{report.previous_revision or 'empty baseline'}`\n\n")
        if not changed:
            f.write("No locale needed changes. This run only records the synchronized revision.\n")
            return
        f.write("| Locale | Language | Updated keys | Keys removed | Translation errors |\n")
        f.write("|---|---|---|---|---|\n")
        for result in changed:
            f.write(f"| `{result.locale.folder}` | {result.locale.name} | {len(result.updated_keys)} | "
                    f"{'yes' if result.removed_keys else 'no'} | {len(result.error_keys)} |\n")
        failed = [result for result in report.locales if result.error_keys]
        if failed:
            f.write("\n### ⚠️ Values needing manual review\n\n")
            f.write("These values carry a translation error marker. Edit the source text or fix them by hand.\n\n")
            for result in failed:
                f.write(f"#### `{result.locale.folder}`\n")
                for key in result.error_keys:
                    f.write(f"- `{key}`\n")
                f.write("\n")


async def main(config: AppConfig) -> SyncReport:
    """
    Main function to orchestrate one synchronization run.
    """
    revision_content = GitRevisionContentProvider(config.repo_root)
    current_revision = config.current_revision or revision_content.resolve_revision('HEAD')

    report = await run_sync(
        config=config,
        translator=build_translator(config),
        revision_content=revision_content,
        current_revision=current_revision
    )

    changed = [result.locale.folder for result in report.locales if result.changed]
    if changed:
        logger.info(f"Updated locales: {', '.join(changed)}")
    else:
        logger.info("No new, modified, or deleted strings required a locale update.")

    if config.report_file_path:
        write_sync_report(config.report_file_path, report)

    return report


def run() -> None:
    """Console entry point. Exits with status 1 on any fatal error."""
    config = load_app_config()
    try:
        asyncio.run(main(config))
    except (SourceDocumentError, StatePersistenceError, RevisionError) as fatal_exc:
        logger.critical(f"Fatal error in translation process: {fatal_exc}")
        sys.exit(1)


if __name__ == "__main__":
    run()
