"""Shared fakes for gitstatus tests."""

import threading
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from gitstatus.git import FetchOutcome, GitCommandError
from gitstatus.models import CommitRecord, LanguageStats, canonical_path


class FakeRepo:
    def __init__(
        self,
        status: str = "",
        unpushed: str = "",
        updates: str = "",
        origin: str = "",
        fetch: FetchOutcome = FetchOutcome.SKIPPED,
        history: Optional[List[CommitRecord]] = None,
        broken: bool = False,
    ):
        self.status = status
        self.unpushed = unpushed
        self.updates = updates
        self.origin = origin
        self.fetch = fetch
        self.history = history or []
        self.broken = broken


class FakeGit:
    """In-memory stand-in for GitCollaborator."""

    def __init__(self):
        self.repos: Dict[str, FakeRepo] = {}
        self.calls: List[tuple] = []
        self._lock = threading.Lock()

    def add_repo(self, path, **facts) -> FakeRepo:
        repo = FakeRepo(**facts)
        self.repos[canonical_path(path)] = repo
        return repo

    def _record(self, name: str, path: Path) -> FakeRepo:
        with self._lock:
            self.calls.append((name, canonical_path(path)))
        repo = self.repos[canonical_path(path)]
        if repo.broken and name != "origin_url":
            raise GitCommandError([name], 128, "fatal: bad object HEAD")
        return repo

    def is_repository_root(self, path: Path) -> bool:
        return canonical_path(path) in self.repos

    def status(self, path: Path) -> str:
        return self._record("status", path).status

    def local_only_commits(self, path: Path) -> str:
        return self._record("local_only_commits", path).unpushed

    def remote_ahead_commits(self, path: Path) -> str:
        return self._record("remote_ahead_commits", path).updates

    def origin_url(self, path: Path) -> str:
        return self._record("origin_url", path).origin

    def credential_less_fetch(self, path: Path, origin_url: Optional[str] = None) -> FetchOutcome:
        return self._record("credential_less_fetch", path).fetch

    def walk_history(self, path: Path) -> List[CommitRecord]:
        return list(self._record("walk_history", path).history)

    def calls_for(self, path) -> List[str]:
        key = canonical_path(path)
        return [name for name, p in self.calls if p == key]


class FakeLanguages:
    def __init__(self, result: Optional[Dict[str, LanguageStats]] = None):
        self.result = result if result is not None else {"Python": LanguageStats(1, 10, 2, 3)}

    def count(self, root: Path) -> Dict[str, LanguageStats]:
        return dict(self.result)


def make_commit(n: int = 1, message: str = "Initial commit") -> CommitRecord:
    return CommitRecord(
        hash=f"{n:040x}",
        author_email="dev@example.com",
        time=1700000000 + n,
        message=message,
        files_changed=n,
        insertions=10 * n,
        deletions=n,
    )


@pytest.fixture
def fake_git():
    return FakeGit()


@pytest.fixture
def fake_languages():
    return FakeLanguages()
