"""
Repository inventory for gitstatus.

Ties discovery, collection and the cache together behind the three
operations the command line needs: collect a tree, read one cached
repository, and roll the cache up into summaries.

You point me at a directory, I tell you which repos in it need attention.
I also remember, so next time I can skip the slow part.
"""

import logging
from pathlib import Path
from typing import List, Optional, Union

from gitstatus.collector import FactCollector
from gitstatus.config import ConfigurationError, GitStatusConfig
from gitstatus.discovery import FileSystem, LocalFileSystem, discover_repositories
from gitstatus.git import GitCollaborator
from gitstatus.languages import LanguageCounter
from gitstatus.models import DetailLevel, RepositorySnapshot, RepositorySummary
from gitstatus.orchestrator import CollectionReport, ProgressCallback, collect_all
from gitstatus.store import CacheStore

logger = logging.getLogger(__name__)


class Inventory:
    """Collects repositories into the cache and reads them back.

    Collaborators default to the real ones built from configuration; pass
    fakes to test without git or a real filesystem.
    """

    def __init__(
        self,
        config: Optional[GitStatusConfig] = None,
        git: Optional[GitCollaborator] = None,
        store: Optional[CacheStore] = None,
        languages: Optional[LanguageCounter] = None,
        fs: Optional[FileSystem] = None,
    ):
        self.config = config or GitStatusConfig()
        self.git = git or GitCollaborator(
            command_timeout=self.config.command_timeout,
            fetch_timeout=self.config.fetch_timeout,
        )
        self.store = store or CacheStore(self.config.database_dir)
        self.fs = fs or LocalFileSystem()
        self.collector = FactCollector(
            self.git,
            store=self.store,
            languages=languages or LanguageCounter(
                skip_dirs=self.config.skip_dirs,
                max_file_size_kb=self.config.max_file_size_kb,
            ),
        )

    def discover(self, root_path: Union[str, Path]) -> List[Path]:
        """Repository roots under *root_path*.

        Raises:
            NoRepositoryFoundError: If there are none.
        """
        return discover_repositories(
            Path(root_path).resolve(), self.git.is_repository_root, self.fs
        )

    def collect(
        self,
        root_path: Union[str, Path],
        detail_level: Union[int, DetailLevel] = DetailLevel.CACHED,
        max_workers: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> CollectionReport:
        """Discover, collect and cache every repository under *root_path*.

        Every repository that was collected is saved, even when others
        failed; failures are listed in the report.

        Raises:
            ConfigurationError: For an invalid detail level or worker count,
                before any work.
            NoRepositoryFoundError: If no repository is under *root_path*.
            CacheStoreError: If the cache cannot be written.
        """
        level = DetailLevel.parse(detail_level)
        if max_workers is not None and (isinstance(max_workers, bool) or max_workers < 1):
            raise ConfigurationError(f"Invalid worker count: {max_workers!r} (must be at least 1)")
        workers = max_workers or self.config.max_workers

        roots = self.discover(root_path)
        logger.info("Found %d repositories under %s", len(roots), root_path)

        report = collect_all(
            roots, self.collector, level, max_workers=workers, on_progress=on_progress
        )

        for snapshot in report.snapshots:
            self.store.put(snapshot)

        return report

    def get(self, path: Union[str, Path]) -> Optional[RepositorySnapshot]:
        """The cached snapshot for *path*, or None if it was never collected."""
        return self.store.get(Path(path).resolve())

    def rebuild_and_list_summaries(self) -> List[RepositorySummary]:
        self.store.rebuild_summaries()
        return self.store.list_summaries()
