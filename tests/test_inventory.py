"""Tests for gitstatus.inventory module."""

import pytest

from conftest import make_commit
from gitstatus.config import ConfigurationError, GitStatusConfig
from gitstatus.discovery import NoRepositoryFoundError
from gitstatus.inventory import Inventory
from gitstatus.store import CacheStore


@pytest.fixture
def workspace(tmp_path):
    """A directory holding repoA (with a nested repo), repoB and a plain dir."""
    root = tmp_path.resolve() / "repos"
    for name in ("repoA", "repoA/nested", "repoB", "plainDir"):
        (root / name).mkdir(parents=True)
    return root


@pytest.fixture
def inventory(tmp_path, workspace, fake_git, fake_languages):
    fake_git.add_repo(workspace / "repoA", status="M a\n", history=[make_commit(1)])
    fake_git.add_repo(workspace / "repoA" / "nested", status="M nested\n")
    fake_git.add_repo(workspace / "repoB", unpushed="abc\ndef\n")
    config = GitStatusConfig(base_path=tmp_path / "home")
    return Inventory(
        config=config,
        git=fake_git,
        store=CacheStore(tmp_path / "db"),
        languages=fake_languages,
    )


class TestCollect:
    def test_collects_and_persists(self, inventory, workspace):
        report = inventory.collect(workspace, detail_level=1)

        assert sorted(s.path for s in report.snapshots) == [
            str(workspace / "repoA"), str(workspace / "repoB"),
        ]
        stored = [s.path for s in inventory.store.iterate()]
        assert stored == [str(workspace / "repoA"), str(workspace / "repoB")]

    def test_nested_repository_is_not_collected(self, inventory, workspace, fake_git):
        inventory.collect(workspace)
        assert fake_git.calls_for(workspace / "repoA" / "nested") == []
        assert inventory.get(workspace / "repoA" / "nested") is None

    def test_failure_does_not_block_persistence(self, inventory, workspace, fake_git):
        fake_git.repos[str(workspace / "repoB")].broken = True

        report = inventory.collect(workspace, detail_level=1)

        assert report.first_error.path == str(workspace / "repoB")
        assert inventory.get(workspace / "repoA").status == "M a\n"
        assert inventory.get(workspace / "repoB") is None

    def test_is_idempotent(self, inventory, workspace):
        inventory.collect(workspace, detail_level=1)
        first = [s for s in inventory.store.iterate()]
        inventory.collect(workspace, detail_level=1)
        assert [s for s in inventory.store.iterate()] == first

    def test_cached_level_reuses_previous_history(self, inventory, workspace, fake_git):
        inventory.collect(workspace, detail_level=1)
        fake_git.repos[str(workspace / "repoA")].history = [make_commit(2), make_commit(1)]

        inventory.collect(workspace, detail_level=0)
        assert inventory.get(workspace / "repoA").commits == (make_commit(1),)

    def test_no_repository(self, inventory, workspace):
        with pytest.raises(NoRepositoryFoundError):
            inventory.collect(workspace / "plainDir")

    def test_invalid_level_before_discovery(self, inventory, workspace, fake_git):
        with pytest.raises(ConfigurationError):
            inventory.collect(workspace, detail_level=3)
        assert fake_git.calls == []

    @pytest.mark.parametrize("workers", [0, -1])
    def test_invalid_worker_count_before_discovery(self, inventory, workspace, fake_git, workers):
        with pytest.raises(ConfigurationError):
            inventory.collect(workspace, max_workers=workers)
        assert fake_git.calls == []

    def test_progress_reported(self, inventory, workspace):
        events = []
        inventory.collect(workspace, on_progress=lambda *e: events.append(e))
        assert len(events) == 2


class TestReadBack:
    def test_get_unknown(self, inventory, workspace):
        assert inventory.get(workspace / "repoB") is None

    def test_get_with_trailing_separator(self, inventory, workspace):
        inventory.collect(workspace)
        assert inventory.get(str(workspace / "repoB") + "/") is not None

    def test_rebuild_and_list_summaries(self, inventory, workspace):
        inventory.collect(workspace)
        summaries = inventory.rebuild_and_list_summaries()

        assert [s.path for s in summaries] == [
            str(workspace / "repoA"), str(workspace / "repoB"),
        ]
        repo_b = summaries[1]
        assert repo_b.unpushed_commits_lines == 2
        assert repo_b.status_lines == 0

    def test_summaries_empty_cache(self, inventory):
        assert inventory.rebuild_and_list_summaries() == []


class TestDefaults:
    def test_builds_store_from_config(self, tmp_path, fake_git):
        config = GitStatusConfig(base_path=tmp_path / "home")
        inventory = Inventory(config=config, git=fake_git)
        assert inventory.store.base_dir == config.database_dir
