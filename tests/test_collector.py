"""Tests for gitstatus.collector module."""

import logging

import pytest

from conftest import FakeLanguages, make_commit
from gitstatus.collector import CollectionError, FactCollector
from gitstatus.config import ConfigurationError
from gitstatus.git import FetchOutcome
from gitstatus.models import (
    CURRENT_SCHEMA,
    DetailLevel,
    LanguageStats,
    RepositorySnapshot,
    SchemaVersion,
)
from gitstatus.store import CacheStore

REPO = "/repos/app"


@pytest.fixture
def store(tmp_path):
    return CacheStore(tmp_path / "db")


@pytest.fixture
def collector(fake_git, store, fake_languages):
    return FactCollector(fake_git, store=store, languages=fake_languages)


class TestFreshCollection:
    def test_collects_every_fact(self, fake_git, collector):
        history = [make_commit(2, "Second"), make_commit(1)]
        fake_git.add_repo(
            REPO,
            status=" M app.py\n",
            unpushed="abc\n",
            updates="def Fix\n",
            origin="https://github.com/org/app.git",
            fetch=FetchOutcome.OK,
            history=history,
        )

        snapshot = collector.collect(REPO, DetailLevel.FRESH)

        assert snapshot.path == REPO
        assert snapshot.status == " M app.py\n"
        assert snapshot.unpushed_commits == "abc\n"
        assert snapshot.remote_updates == "def Fix\n"
        assert snapshot.origin_url == "https://github.com/org/app.git"
        assert snapshot.schema_version == CURRENT_SCHEMA
        assert snapshot.commits == tuple(history)
        assert snapshot.languages == {"Python": LanguageStats(1, 10, 2, 3)}

    def test_repository_without_commits(self, fake_git, collector):
        fake_git.add_repo(REPO)
        snapshot = collector.collect(REPO, 1)
        assert snapshot.commits == ()

    def test_fetch_happens_before_unpushed_check(self, fake_git, collector):
        fake_git.add_repo(REPO, origin="https://github.com/org/app.git", fetch=FetchOutcome.OK)
        collector.collect(REPO, DetailLevel.FRESH)

        calls = fake_git.calls_for(REPO)
        assert calls.index("credential_less_fetch") < calls.index("local_only_commits")
        assert calls.index("credential_less_fetch") < calls.index("remote_ahead_commits")

    def test_trailing_separator_is_ignored(self, fake_git, collector):
        fake_git.add_repo(REPO)
        assert collector.collect(REPO + "/", 1).path == REPO

    def test_unreadable_language_tree_is_soft(self, fake_git, store):
        class BrokenLanguages(FakeLanguages):
            def count(self, root):
                raise PermissionError(13, "Permission denied")

        fake_git.add_repo(REPO, status="?? new\n")
        snapshot = FactCollector(fake_git, store, BrokenLanguages()).collect(REPO, 1)
        assert snapshot.languages is None
        assert snapshot.status == "?? new\n"


class TestCachedCollection:
    def test_reuses_cached_history_and_languages(self, fake_git, store, collector):
        cached = RepositorySnapshot(
            path=REPO,
            commits=(make_commit(1),),
            languages={"Rust": LanguageStats(1, 1, 1, 1)},
        )
        store.put(cached)
        fake_git.add_repo(REPO, status=" M lib.rs\n")

        snapshot = collector.collect(REPO, DetailLevel.CACHED)

        assert snapshot.status == " M lib.rs\n"
        assert snapshot.commits == cached.commits
        assert snapshot.languages == cached.languages
        assert "walk_history" not in fake_git.calls_for(REPO)

    def test_no_cache_leaves_details_absent(self, fake_git, collector):
        fake_git.add_repo(REPO, history=[make_commit(1)])
        snapshot = collector.collect(REPO, 0)
        assert snapshot.commits is None
        assert snapshot.languages is None
        assert "walk_history" not in fake_git.calls_for(REPO)

    def test_old_cached_version_is_not_trusted(self, fake_git, store, collector):
        store.put(RepositorySnapshot(
            path=REPO,
            schema_version=SchemaVersion(0, 5, 1),
            commits=(make_commit(1),),
            languages={"Rust": LanguageStats(1, 1, 1, 1)},
        ))
        fake_git.add_repo(REPO)

        snapshot = collector.collect(REPO, 0)
        assert snapshot.commits == (make_commit(1),)
        assert snapshot.languages is None

    def test_oldest_cached_version_keeps_nothing(self, fake_git, store, collector):
        store.put(RepositorySnapshot(
            path=REPO, schema_version=SchemaVersion(0, 3, 0), commits=(make_commit(1),)
        ))
        fake_git.add_repo(REPO)
        assert collector.collect(REPO, 0).commits is None

    def test_corrupt_cache_is_ignored(self, fake_git, store, collector):
        store.snapshots.put(REPO, b"\xc1")
        fake_git.add_repo(REPO)
        snapshot = collector.collect(REPO, 0)
        assert snapshot.commits is None

    def test_without_store(self, fake_git, fake_languages):
        fake_git.add_repo(REPO)
        snapshot = FactCollector(fake_git, languages=fake_languages).collect(REPO)
        assert snapshot.commits is None
        assert snapshot.languages is None


class TestRemoteFailures:
    def test_auth_required_leaves_remote_facts_empty(self, fake_git, collector, caplog):
        fake_git.add_repo(
            REPO,
            status=" M a\n",
            unpushed="abc\n",
            updates="def Fix\n",
            origin="https://github.com/org/private.git",
            fetch=FetchOutcome.AUTH_REQUIRED,
        )

        with caplog.at_level(logging.WARNING, logger="gitstatus.collector"):
            snapshot = collector.collect(REPO, 1)

        assert snapshot.unpushed_commits == ""
        assert snapshot.remote_updates == ""
        assert snapshot.status == " M a\n"
        assert any("authentication" in r.getMessage() for r in caplog.records)

    def test_failed_fetch_uses_stale_refs(self, fake_git, collector):
        fake_git.add_repo(
            REPO,
            unpushed="abc\n",
            origin="https://github.com/org/app.git",
            fetch=FetchOutcome.FAILED,
        )
        assert collector.collect(REPO, 1).unpushed_commits == "abc\n"

    def test_remote_updates_failure_is_soft(self, fake_git, collector):
        fake_git.add_repo(REPO, unpushed="abc\n")

        def fail(path):
            from gitstatus.git import GitCommandError
            raise GitCommandError(["log"], 128, "fatal: bad revision")

        fake_git.remote_ahead_commits = fail
        snapshot = collector.collect(REPO, 1)
        assert snapshot.remote_updates == ""
        assert snapshot.unpushed_commits == "abc\n"


class TestHardFailures:
    def test_broken_repository_raises(self, fake_git, collector):
        fake_git.add_repo(REPO, broken=True)
        with pytest.raises(CollectionError) as exc_info:
            collector.collect(REPO, 1)
        assert exc_info.value.path == REPO
        assert "bad object" in str(exc_info.value)

    def test_missing_git_binary(self, fake_git, collector):
        fake_git.add_repo(REPO)

        def missing(path):
            raise FileNotFoundError(2, "No such file or directory", "git")

        fake_git.status = missing
        with pytest.raises(CollectionError):
            collector.collect(REPO, 1)

    @pytest.mark.parametrize("level", [2, -1, "fresh"])
    def test_invalid_detail_level(self, fake_git, collector, level):
        fake_git.add_repo(REPO)
        with pytest.raises(ConfigurationError):
            collector.collect(REPO, level)
        assert fake_git.calls == []
