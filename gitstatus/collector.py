"""
Fact collection for a single repository.

Gathers the working-tree status, unpushed commits, remote updates and
origin URL of one repository, plus its full commit history and language
statistics when asked for fresh detail. At the cached detail level history
and languages are carried over from the previous snapshot instead.

Problems talking to the remote are soft: they are logged and leave the
affected facts empty. Problems reading the repository itself are hard and
raise CollectionError for that repository only.
"""

import logging
import subprocess
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

from gitstatus.git import FetchOutcome, GitCollaborator, GitCommandError
from gitstatus.languages import LanguageCounter
from gitstatus.models import (
    CURRENT_SCHEMA,
    CommitRecord,
    DetailLevel,
    LanguageStats,
    RepositorySnapshot,
    canonical_path,
)
from gitstatus.schema import COMMITS_SINCE, LANGUAGES_SINCE, RecordCorruptedError
from gitstatus.store import CacheStore

logger = logging.getLogger(__name__)


class CollectionError(Exception):
    """A repository could not be read; its siblings are unaffected."""

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"{path}: {message}")


class FactCollector:
    """Builds a RepositorySnapshot for one repository root.

    Args:
        git: Git collaborator used for every repository query.
        store: Cache consulted for history and languages at the cached
            detail level. Without one those fields come back absent.
        languages: Language counter used at the fresh detail level.
    """

    def __init__(
        self,
        git: GitCollaborator,
        store: Optional[CacheStore] = None,
        languages: Optional[LanguageCounter] = None,
    ):
        self.git = git
        self.store = store
        self.languages = languages or LanguageCounter()

    def collect(
        self, path: Union[str, Path], detail_level: Union[int, DetailLevel] = DetailLevel.CACHED
    ) -> RepositorySnapshot:
        """Collect a snapshot of *path*.

        Raises:
            ConfigurationError: For an invalid detail level.
            CollectionError: If the repository cannot be read.
        """
        level = DetailLevel.parse(detail_level)
        key = canonical_path(path)
        repo = Path(key)

        try:
            origin_url = self._origin_url(repo)
            status = self.git.status(repo)
            unpushed, updates = self._remote_facts(repo, origin_url)

            if level is DetailLevel.FRESH:
                commits: Optional[Tuple[CommitRecord, ...]] = tuple(self.git.walk_history(repo))
                languages = self._count_languages(repo)
            else:
                commits, languages = self._cached_details(key)
        except GitCommandError as e:
            raise CollectionError(key, str(e)) from e
        except subprocess.TimeoutExpired as e:
            raise CollectionError(key, f"git timed out after {e.timeout}s") from e
        except OSError as e:
            raise CollectionError(key, f"cannot run git: {e}") from e

        return RepositorySnapshot(
            path=key,
            origin_url=origin_url,
            status=status,
            unpushed_commits=unpushed,
            remote_updates=updates,
            schema_version=CURRENT_SCHEMA,
            commits=commits,
            languages=languages,
        )

    def _origin_url(self, repo: Path) -> str:
        try:
            return self.git.origin_url(repo)
        except GitCommandError as e:
            logger.warning("%s: cannot read origin URL - %s", repo, e.stderr)
            return ""

    def _remote_facts(self, repo: Path, origin_url: str) -> Tuple[str, str]:
        """Unpushed commits and remote updates, after a best-effort fetch."""
        outcome = self.git.credential_less_fetch(repo, origin_url)
        if outcome is FetchOutcome.AUTH_REQUIRED:
            logger.warning(
                "%s: remote %s requires authentication, skipping unpushed and remote update checks",
                repo,
                origin_url,
            )
            return "", ""
        if outcome is FetchOutcome.FAILED:
            logger.warning("%s: using stale remote-tracking refs", repo)

        unpushed = self.git.local_only_commits(repo)

        try:
            updates = self.git.remote_ahead_commits(repo)
        except GitCommandError as e:
            logger.warning("%s: cannot list remote updates - %s", repo, e.stderr)
            updates = ""

        return unpushed, updates

    def _count_languages(self, repo: Path) -> Optional[Dict[str, LanguageStats]]:
        try:
            return self.languages.count(repo)
        except OSError as e:
            logger.warning("%s: language statistics unavailable - %s", repo, e)
            return None

    def _cached_details(
        self, key: str
    ) -> Tuple[Optional[Tuple[CommitRecord, ...]], Optional[Dict[str, LanguageStats]]]:
        if self.store is None:
            return None, None

        try:
            cached = self.store.get(key)
        except RecordCorruptedError as e:
            logger.warning("Ignoring unreadable cached snapshot: %s", e)
            return None, None

        if cached is None:
            logger.debug("%s: no cached snapshot, history not collected", key)
            return None, None

        commits = cached.commits if cached.schema_version >= COMMITS_SINCE else None
        languages = cached.languages if cached.schema_version >= LANGUAGES_SINCE else None
        return commits, languages
