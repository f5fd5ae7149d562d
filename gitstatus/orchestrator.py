"""
Parallel collection across many repositories.

Each repository is one unit of work on a thread pool. By default the pool
has one worker per repository; a bound can be configured for very large
trees. Units share nothing but read access to the cache store, complete in
any order, and a failing unit never stops the others.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from gitstatus.collector import CollectionError, FactCollector
from gitstatus.config import ConfigurationError
from gitstatus.models import DetailLevel, RepositorySnapshot, canonical_path
from gitstatus.store import CacheStoreError

logger = logging.getLogger(__name__)

SLOWEST_REPORTED = 3

# (path, success, completed, total)
ProgressCallback = Callable[[str, bool, int, int], None]


@dataclass
class RepositoryError:
    path: str
    error: CollectionError

    def __str__(self) -> str:
        return str(self.error)


@dataclass
class CollectionReport:
    """Outcome of one collection run, in completion order."""

    snapshots: List[RepositorySnapshot] = field(default_factory=list)
    errors: List[RepositoryError] = field(default_factory=list)
    durations: Dict[str, float] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.snapshots) + len(self.errors)

    @property
    def first_error(self) -> Optional[RepositoryError]:
        return self.errors[0] if self.errors else None

    def slowest(self, n: int = SLOWEST_REPORTED) -> List[Tuple[str, float]]:
        ranked = sorted(self.durations.items(), key=lambda item: item[1], reverse=True)
        return ranked[:n]


def _run_unit(
    collector: FactCollector, root: str, level: DetailLevel
) -> Tuple[Optional[RepositorySnapshot], Optional[CollectionError], float]:
    started = time.monotonic()
    try:
        snapshot = collector.collect(root, level)
    except CollectionError as e:
        return None, e, time.monotonic() - started
    return snapshot, None, time.monotonic() - started


def collect_all(
    roots: Sequence[Union[str, Path]],
    collector: FactCollector,
    detail_level: Union[int, DetailLevel] = DetailLevel.CACHED,
    max_workers: Optional[int] = None,
    on_progress: Optional[ProgressCallback] = None,
) -> CollectionReport:
    """Collect every root concurrently.

    Args:
        roots: Repository roots from discovery.
        collector: Collector shared by all units.
        detail_level: 0 (cached) or 1 (fresh).
        max_workers: Pool bound; None runs every repository at once.
        on_progress: Called once per finished repository.

    Returns:
        Snapshots and per-repository errors, in completion order.

    Raises:
        ConfigurationError: For an invalid detail level or worker count,
            before any work.
    """
    level = DetailLevel.parse(detail_level)
    if max_workers is not None and max_workers < 1:
        raise ConfigurationError(f"Invalid worker count: {max_workers!r} (must be at least 1)")
    keys = [canonical_path(root) for root in roots]
    report = CollectionReport()

    if not keys:
        return report

    workers = min(max_workers or len(keys), len(keys))
    total = len(keys)
    completed = 0

    logger.debug("Collecting %d repositories with %d workers", total, workers)

    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {executor.submit(_run_unit, collector, key, level): key for key in keys}

        for future in as_completed(futures):
            key = futures[future]
            try:
                snapshot, error, elapsed = future.result()
            except CacheStoreError:
                raise
            except Exception as e:
                logger.exception("Unexpected failure collecting %s", key)
                snapshot, error, elapsed = None, CollectionError(key, str(e)), 0.0

            report.durations[key] = elapsed
            if snapshot is not None:
                report.snapshots.append(snapshot)
            else:
                logger.error("Failed to collect %s", error)
                report.errors.append(RepositoryError(key, error))

            completed += 1
            if on_progress:
                on_progress(key, snapshot is not None, completed, total)

    for path, elapsed in report.slowest():
        logger.info("Slow repository: %.2fs %s", elapsed, path)

    return report
