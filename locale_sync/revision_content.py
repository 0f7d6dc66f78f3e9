"""Retrieval of file content as of a version-control revision."""
import logging
import os
import subprocess
from typing import Callable, Optional

logger = logging.getLogger(__name__)

# (path, revision) -> content at that revision, or None when unavailable.
RevisionContentProvider = Callable[[str, Optional[str]], Optional[str]]


class RevisionError(RuntimeError):
    """Raised when a revision identifier cannot be resolved."""


class GitRevisionContentProvider:
    """Reads historical file content with ``git show <revision>:<path>``."""

    def __init__(self, repo_root: str):
        self.repo_root = repo_root

    def _relative_path(self, file_path: str) -> str:
        if os.path.isabs(file_path):
            file_path = os.path.relpath(file_path, self.repo_root)
        return file_path.replace(os.sep, '/')

    def __call__(self, file_path: str, revision: Optional[str]) -> Optional[str]:
        """
        Return the content of ``file_path`` at ``revision``.

        Args:
            file_path (str): Path of the file, absolute or relative to the repository root.
            revision (Optional[str]): The revision to read. None means there is no
                previous revision to read from.

        Returns:
            Optional[str]: The file content, or None if the revision is None, the file
            did not exist at that revision, or git could not be run.
        """
        if not revision:
            return None
        rel_path = self._relative_path(file_path)
        try:
            result = subprocess.run(
                ['git', 'show', f'{revision}:{rel_path}'],
                cwd=self.repo_root,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding='utf-8',
                check=True
            )
        except subprocess.CalledProcessError as git_exc:
            logger.info(f"No content for '{rel_path}' at revision '{revision}': {(git_exc.stderr or '').strip()}")
            return None
        except OSError as os_exc:
            logger.warning(f"Could not run git to read '{rel_path}' at revision '{revision}': {os_exc}")
            return None
        return result.stdout

    def resolve_revision(self, ref: str = 'HEAD') -> str:
        """
        Resolve a ref name to a full revision identifier.

        Raises:
            RevisionError: If git cannot resolve the ref.
        """
        try:
            result = subprocess.run(
                ['git', 'rev-parse', ref],
                cwd=self.repo_root,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                check=True
            )
        except (subprocess.CalledProcessError, OSError) as git_exc:
            raise RevisionError(f"Could not resolve revision '{ref}' in '{self.repo_root}': {git_exc}") from git_exc
        return result.stdout.strip()
