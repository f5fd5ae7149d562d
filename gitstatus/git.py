"""
Git collaborator for gitstatus.

Every fact gitstatus knows about a repository comes from a read-only
``git`` invocation made here. Commands never prompt: terminal prompts and
credential helpers are disabled for every call, so a remote that wants a
password fails fast instead of hanging the run.
"""

import enum
import logging
import os
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from gitstatus.models import CommitRecord

logger = logging.getLogger(__name__)

# Prefixes that mean the remote asked for credentials we refused to supply
_AUTH_FAILURE_MARKERS = (
    "authentication failed",
    "could not read username",
    "could not read password",
    "terminal prompts disabled",
    "http basic: access denied",
    "requested url returned error: 401",
    "requested url returned error: 403",
)

_RECORD_SEP = "\x1e"
_FIELD_SEP = "\x1f"
_HISTORY_FORMAT = f"--format={_RECORD_SEP}%H{_FIELD_SEP}%ae{_FIELD_SEP}%ct{_FIELD_SEP}%B{_FIELD_SEP}"

_PRIMARY_BRANCH_CANDIDATES = ("origin/main", "origin/master")


class GitCommandError(Exception):
    """A git command exited non-zero where success was required."""

    def __init__(self, args: Sequence[str], returncode: int, stderr: str):
        self.command = list(args)
        self.returncode = returncode
        self.stderr = stderr.strip()
        super().__init__(
            f"git {' '.join(self.command)} failed ({returncode}): {self.stderr}"
        )


class FetchOutcome(enum.Enum):
    SKIPPED = "skipped"
    OK = "ok"
    AUTH_REQUIRED = "auth_required"
    FAILED = "failed"


def _git_env() -> Dict[str, str]:
    env = dict(os.environ)
    env.update({
        "GIT_TERMINAL_PROMPT": "0",
        "GIT_ASKPASS": "",
        "SSH_ASKPASS": "",
        "LC_ALL": "C",
    })
    return env


def _run_git(
    args: List[str], cwd: Optional[Path] = None, timeout: int = 300
) -> subprocess.CompletedProcess:
    """Run a git command without any chance of an interactive prompt.

    Args:
        args: Git command arguments (without 'git' prefix).
        cwd: Working directory.
        timeout: Command timeout in seconds.

    Returns:
        CompletedProcess result.
    """
    cmd = ["git", "-c", "credential.helper=", "-c", "core.askPass="] + args
    logger.debug("Running: %s (cwd=%s)", " ".join(cmd), cwd)

    return subprocess.run(
        cmd,
        cwd=cwd,
        capture_output=True,
        text=True,
        encoding="utf-8",
        errors="replace",
        timeout=timeout,
        env=_git_env(),
        stdin=subprocess.DEVNULL,
    )


def is_http_url(url: str) -> bool:
    lowered = url.strip().lower()
    return lowered.startswith("http://") or lowered.startswith("https://")


def is_auth_failure(stderr: str) -> bool:
    lowered = stderr.lower()
    return any(marker in lowered for marker in _AUTH_FAILURE_MARKERS)


def parse_history(output: str) -> List[CommitRecord]:
    """Parse ``git log --numstat`` output produced with the history format.

    Binary files count as changed files with no line changes.
    """
    commits: List[CommitRecord] = []

    for chunk in output.split(_RECORD_SEP):
        if not chunk.strip():
            continue

        parts = chunk.split(_FIELD_SEP, 4)
        if len(parts) != 5:
            logger.warning("Skipping unparseable history entry: %r", chunk[:80])
            continue

        commit_hash, email, timestamp, message, numstat = parts
        files_changed = insertions = deletions = 0
        for line in numstat.splitlines():
            fields = line.split("\t", 2)
            if len(fields) != 3:
                continue
            added, removed, _path = fields
            files_changed += 1
            if added.isdigit():
                insertions += int(added)
            if removed.isdigit():
                deletions += int(removed)

        commits.append(CommitRecord(
            hash=commit_hash.strip(),
            author_email=email,
            time=int(timestamp),
            message=message.rstrip("\n"),
            files_changed=files_changed,
            insertions=insertions,
            deletions=deletions,
        ))

    return commits


class GitCollaborator:
    """Read-only access to git working copies.

    Holds only timeouts; safe to share across threads.
    """

    def __init__(self, command_timeout: int = 300, fetch_timeout: int = 60):
        self.command_timeout = command_timeout
        self.fetch_timeout = fetch_timeout

    def _checked(self, args: List[str], path: Path) -> str:
        result = _run_git(args, cwd=path, timeout=self.command_timeout)
        if result.returncode != 0:
            raise GitCommandError(args, result.returncode, result.stderr)
        return result.stdout

    def is_repository_root(self, path: Path) -> bool:
        # The marker check keeps the walk from spawning git in every plain directory
        if not (path / ".git").exists():
            return False
        try:
            result = _run_git(
                ["rev-parse", "--is-inside-work-tree"], cwd=path, timeout=self.command_timeout
            )
        except subprocess.TimeoutExpired:
            logger.warning("Timed out probing %s", path)
            return False
        return result.returncode == 0 and result.stdout.strip() == "true"

    def status(self, path: Path) -> str:
        return self._checked(["status", "--porcelain"], path)

    def local_only_commits(self, path: Path) -> str:
        return self._checked(["rev-list", "--branches", "--not", "--remotes"], path)

    def origin_url(self, path: Path) -> str:
        result = _run_git(
            ["config", "--get", "remote.origin.url"], cwd=path, timeout=self.command_timeout
        )
        # Exit code 1 means the key is unset
        if result.returncode == 1:
            return ""
        if result.returncode != 0:
            raise GitCommandError(
                ["config", "--get", "remote.origin.url"], result.returncode, result.stderr
            )
        return result.stdout.strip()

    def primary_branch(self, path: Path) -> Optional[str]:
        """Resolve the remote-tracking ref of origin's default branch."""
        result = _run_git(
            ["rev-parse", "--abbrev-ref", "origin/HEAD"], cwd=path, timeout=self.command_timeout
        )
        if result.returncode == 0 and result.stdout.strip() not in ("", "origin/HEAD"):
            return result.stdout.strip()

        for candidate in _PRIMARY_BRANCH_CANDIDATES:
            result = _run_git(
                ["rev-parse", "--verify", "--quiet", f"refs/remotes/{candidate}"],
                cwd=path,
                timeout=self.command_timeout,
            )
            if result.returncode == 0:
                return candidate

        return None

    def remote_ahead_commits(self, path: Path) -> str:
        branch = self.primary_branch(path)
        if branch is None:
            logger.debug("%s: no remote primary branch, skipping remote updates", path)
            return ""
        return self._checked(["log", "--oneline", "--no-color", f"..{branch}"], path)

    def credential_less_fetch(self, path: Path, origin_url: Optional[str] = None) -> FetchOutcome:
        """Fetch origin over HTTP(S) without credentials.

        Non-HTTP remotes are not fetched. Failures are reported through the
        outcome rather than raised.
        """
        url = self.origin_url(path) if origin_url is None else origin_url
        if not is_http_url(url):
            return FetchOutcome.SKIPPED

        try:
            result = _run_git(
                ["fetch", "--quiet", "--no-recurse-submodules", "origin"],
                cwd=path,
                timeout=self.fetch_timeout,
            )
        except subprocess.TimeoutExpired:
            logger.warning("%s: fetch timed out after %ss", path, self.fetch_timeout)
            return FetchOutcome.FAILED

        if result.returncode == 0:
            return FetchOutcome.OK
        if is_auth_failure(result.stderr):
            return FetchOutcome.AUTH_REQUIRED

        logger.warning("%s: fetch failed - %s", path, result.stderr.strip())
        return FetchOutcome.FAILED

    def has_head(self, path: Path) -> bool:
        result = _run_git(
            ["rev-parse", "--verify", "--quiet", "HEAD"], cwd=path, timeout=self.command_timeout
        )
        return result.returncode == 0

    def walk_history(self, path: Path) -> List[CommitRecord]:
        """Every commit reachable from HEAD, newest first, with diff stats.

        Merges are diffed against their first parent, root commits against
        the empty tree.
        """
        if not self.has_head(path):
            return []

        output = self._checked(
            [
                "log",
                "--no-color",
                "--no-renames",
                "--numstat",
                "--root",
                "--diff-merges=first-parent",
                _HISTORY_FORMAT,
                "HEAD",
            ],
            path,
        )
        return parse_history(output)
