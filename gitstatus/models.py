"""
Record types for gitstatus.

Snapshots are the full per-repository records kept in the primary cache;
summaries are the compact line-count rollups derived from them. Both carry
the schema version of the code that wrote them.
"""

import enum
import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, NamedTuple, Optional, Tuple, Union

from gitstatus import __version__
from gitstatus.config import ConfigurationError


class SchemaVersion(NamedTuple):
    """Semantic version triple embedded in every persisted record."""

    major: int
    minor: int
    patch: int

    @classmethod
    def parse(cls, text: str) -> "SchemaVersion":
        """Parse ``"X.Y.Z"``; pre-release and build suffixes are ignored.

        Raises:
            ValueError: If the text is not a version triple.
        """
        core = text.strip().split("+", 1)[0].split("-", 1)[0]
        parts = core.split(".")
        if len(parts) != 3:
            raise ValueError(f"Not a semantic version: {text!r}")
        try:
            major, minor, patch = (int(p) for p in parts)
        except ValueError:
            raise ValueError(f"Not a semantic version: {text!r}") from None
        if min(major, minor, patch) < 0:
            raise ValueError(f"Not a semantic version: {text!r}")
        return cls(major, minor, patch)

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


CURRENT_SCHEMA = SchemaVersion.parse(__version__)


class DetailLevel(enum.IntEnum):
    """How much work a collection run does per repository."""

    CACHED = 0
    FRESH = 1

    @classmethod
    def parse(cls, value: Union[int, str, "DetailLevel"]) -> "DetailLevel":
        """Validate a caller-supplied detail level.

        Raises:
            ConfigurationError: For anything other than 0 or 1.
        """
        if isinstance(value, bool):
            raise ConfigurationError(f"Invalid detail level: {value!r}")
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            raise ConfigurationError(
                f"Invalid detail level: {value!r} (must be 0 or 1)"
            ) from None


def canonical_path(path: Union[str, "os.PathLike[str]"]) -> str:
    """Render a path as a cache key: no trailing separator, root kept."""
    text = os.fspath(path)
    stripped = text.rstrip(os.sep)
    if os.altsep:
        stripped = stripped.rstrip(os.altsep)
    return stripped or text[:1]


def count_lines(blob: str) -> int:
    return blob.count("\n")


@dataclass(frozen=True)
class CommitRecord:
    hash: str
    author_email: str
    time: int
    message: str
    files_changed: int
    insertions: int
    deletions: int

    def __str__(self) -> str:
        return f"Hash: {self.hash}, Author Email: {self.author_email}, Message: {self.message}"


@dataclass(frozen=True)
class LanguageStats:
    """Line counts for one language in a working tree."""

    files: int = 0
    code: int = 0
    comments: int = 0
    blanks: int = 0

    @property
    def lines(self) -> int:
        return self.code + self.comments + self.blanks


@dataclass(frozen=True)
class RepositorySnapshot:
    """Everything collected for one repository.

    ``commits`` and ``languages`` are ``None`` when they were not collected
    (or came from a record older than the fields); an empty tuple or mapping
    means they were collected and nothing was found.
    """

    path: str
    origin_url: str = ""
    status: str = ""
    unpushed_commits: str = ""
    remote_updates: str = ""
    schema_version: SchemaVersion = CURRENT_SCHEMA
    commits: Optional[Tuple[CommitRecord, ...]] = None
    languages: Optional[Mapping[str, LanguageStats]] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "path", canonical_path(self.path))
        if self.commits is not None and not isinstance(self.commits, tuple):
            object.__setattr__(self, "commits", tuple(self.commits))
        if self.languages is not None and not isinstance(self.languages, dict):
            object.__setattr__(self, "languages", dict(self.languages))

    @property
    def is_clean(self) -> bool:
        return not self.status

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "origin_url": self.origin_url,
            "status": self.status,
            "unpushed_commits": self.unpushed_commits,
            "remote_updates": self.remote_updates,
            "schema_version": str(self.schema_version),
            "commits": None if self.commits is None else [
                {
                    "hash": c.hash,
                    "author_email": c.author_email,
                    "time": c.time,
                    "message": c.message,
                    "files_changed": c.files_changed,
                    "insertions": c.insertions,
                    "deletions": c.deletions,
                }
                for c in self.commits
            ],
            "languages": None if self.languages is None else {
                name: {
                    "files": s.files,
                    "code": s.code,
                    "comments": s.comments,
                    "blanks": s.blanks,
                }
                for name, s in self.languages.items()
            },
        }


@dataclass(frozen=True)
class RepositorySummary:
    path: str
    origin_url: str
    status_lines: int
    unpushed_commits_lines: int
    remote_updates_lines: int
    schema_version: SchemaVersion = CURRENT_SCHEMA

    @classmethod
    def from_snapshot(cls, snapshot: RepositorySnapshot) -> "RepositorySummary":
        return cls(
            path=snapshot.path,
            origin_url=snapshot.origin_url,
            status_lines=count_lines(snapshot.status),
            unpushed_commits_lines=count_lines(snapshot.unpushed_commits),
            remote_updates_lines=count_lines(snapshot.remote_updates),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "origin_url": self.origin_url,
            "status_lines": self.status_lines,
            "unpushed_commits_lines": self.unpushed_commits_lines,
            "remote_updates_lines": self.remote_updates_lines,
            "schema_version": str(self.schema_version),
        }
