"""
Versioned record encoding for the gitstatus cache.

A record is a stream of msgpack values, one per field, in declaration
order. Newer record shapes only ever append fields, so a record written by
an older release is a strict prefix of what the current shape expects and
reading it as the current shape runs out of data part-way through.

Decoding therefore tries the known shapes newest first. Running out of data
moves on to the next older shape; any other problem (malformed bytes, a
field of the wrong type, leftover data) marks the record as corrupt and is
never retried. Older shapes are upgraded in memory one step at a time, with
the fields they lack set to ``None`` ("not collected"), never to an empty
collection. Nothing here touches storage.

History of shapes:
    0.3.0   path, status, origin_url, unpushed_commits, remote_updates, version
    0.5.1   + commits
    current + languages
"""

import logging
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Sequence, Tuple

import msgpack
from msgpack.exceptions import OutOfData, UnpackException

from gitstatus.models import (
    CommitRecord,
    LanguageStats,
    RepositorySnapshot,
    RepositorySummary,
    SchemaVersion,
)

logger = logging.getLogger(__name__)

# Release that introduced each optional field
COMMITS_SINCE = SchemaVersion(0, 5, 1)
LANGUAGES_SINCE = SchemaVersion(0, 6, 0)


class RecordDecodeError(Exception):
    """Base class for cache records that cannot be read."""


class RecordTruncatedError(RecordDecodeError):
    """The record ended before every field of the shape was read."""


class RecordCorruptedError(RecordDecodeError):
    """The record is malformed; older shapes are not tried."""

    def __init__(self, message: str, key: Optional[str] = None):
        self.key = key
        super().__init__(f"{key}: {message}" if key else message)


# --- Historical shapes ---

class RecordV030(NamedTuple):
    path: str
    status: str
    origin_url: str
    unpushed_commits: str
    remote_updates: str
    app_version: SchemaVersion


class RecordV051(NamedTuple):
    path: str
    status: str
    origin_url: str
    unpushed_commits: str
    remote_updates: str
    app_version: SchemaVersion
    commits: Optional[Tuple[CommitRecord, ...]]


def upgrade_v030_to_v051(record: RecordV030) -> RecordV051:
    return RecordV051(*record, commits=None)


def upgrade_v051_to_current(record: RecordV051) -> RepositorySnapshot:
    return RepositorySnapshot(
        path=record.path,
        origin_url=record.origin_url,
        status=record.status,
        unpushed_commits=record.unpushed_commits,
        remote_updates=record.remote_updates,
        schema_version=record.app_version,
        commits=record.commits,
        languages=None,
    )


# --- Field readers ---

def _as_str(value: Any, name: str) -> str:
    if not isinstance(value, str):
        raise RecordCorruptedError(f"field {name!r} is {type(value).__name__}, expected str")
    return value


def _as_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise RecordCorruptedError(f"field {name!r} is {type(value).__name__}, expected int")
    return value


def _as_version(value: Any, name: str) -> SchemaVersion:
    try:
        return SchemaVersion.parse(_as_str(value, name))
    except ValueError as e:
        raise RecordCorruptedError(f"field {name!r}: {e}") from None


def _as_commits(value: Any, name: str) -> Optional[Tuple[CommitRecord, ...]]:
    if value is None:
        return None
    if not isinstance(value, list):
        raise RecordCorruptedError(f"field {name!r} is {type(value).__name__}, expected list")

    commits = []
    for item in value:
        if not isinstance(item, list) or len(item) != 7:
            raise RecordCorruptedError(f"field {name!r} holds a malformed commit")
        commits.append(CommitRecord(
            hash=_as_str(item[0], "commit.hash"),
            author_email=_as_str(item[1], "commit.author_email"),
            time=_as_int(item[2], "commit.time"),
            message=_as_str(item[3], "commit.message"),
            files_changed=_as_int(item[4], "commit.files_changed"),
            insertions=_as_int(item[5], "commit.insertions"),
            deletions=_as_int(item[6], "commit.deletions"),
        ))
    return tuple(commits)


def _as_languages(value: Any, name: str) -> Optional[Dict[str, LanguageStats]]:
    if value is None:
        return None
    if not isinstance(value, dict):
        raise RecordCorruptedError(f"field {name!r} is {type(value).__name__}, expected map")

    languages = {}
    for language, counts in value.items():
        if not isinstance(counts, list) or len(counts) != 4:
            raise RecordCorruptedError(f"field {name!r} holds malformed counts for {language!r}")
        languages[_as_str(language, "language")] = LanguageStats(
            *(_as_int(c, f"languages.{language}") for c in counts)
        )
    return languages


_Field = Tuple[str, Callable[[Any, str], Any]]

_V030_FIELDS: Tuple[_Field, ...] = (
    ("path", _as_str),
    ("status", _as_str),
    ("origin_url", _as_str),
    ("unpushed_commits", _as_str),
    ("remote_updates", _as_str),
    ("app_version", _as_version),
)
_V051_FIELDS = _V030_FIELDS + (("commits", _as_commits),)
_CURRENT_FIELDS = _V051_FIELDS + (("languages", _as_languages),)

_SUMMARY_FIELDS: Tuple[_Field, ...] = (
    ("path", _as_str),
    ("origin_url", _as_str),
    ("status_lines", _as_int),
    ("unpushed_commits_lines", _as_int),
    ("remote_updates_lines", _as_int),
    ("app_version", _as_version),
)


def _current_from_fields(values: List[Any]) -> RepositorySnapshot:
    (path, status, origin_url, unpushed, updates, version, commits, languages) = values
    return RepositorySnapshot(
        path=path,
        origin_url=origin_url,
        status=status,
        unpushed_commits=unpushed,
        remote_updates=updates,
        schema_version=version,
        commits=commits,
        languages=languages,
    )


class _Shape(NamedTuple):
    name: str
    fields: Tuple[_Field, ...]
    to_current: Callable[[List[Any]], RepositorySnapshot]


# Newest first; decoding walks this chain until a shape fits
SNAPSHOT_SHAPES: Tuple[_Shape, ...] = (
    _Shape("current", _CURRENT_FIELDS, _current_from_fields),
    _Shape(
        "0.5.1",
        _V051_FIELDS,
        lambda values: upgrade_v051_to_current(RecordV051(*values)),
    ),
    _Shape(
        "0.3.0",
        _V030_FIELDS,
        lambda values: upgrade_v051_to_current(upgrade_v030_to_v051(RecordV030(*values))),
    ),
)


# --- Encoding ---

def pack_fields(values: Sequence[Any]) -> bytes:
    """Pack each value as its own msgpack object, back to back."""
    packer = msgpack.Packer(use_bin_type=True)
    return b"".join(packer.pack(v) for v in values)


def _read_fields(data: bytes, fields: Sequence[_Field]) -> List[Any]:
    unpacker = msgpack.Unpacker(raw=False, max_buffer_size=0)
    unpacker.feed(data)

    values = []
    for name, reader in fields:
        try:
            raw = unpacker.unpack()
        except OutOfData:
            raise RecordTruncatedError(f"record ends before field {name!r}") from None
        except (UnpackException, ValueError) as e:
            raise RecordCorruptedError(f"field {name!r} cannot be unpacked: {e}") from None
        values.append(reader(raw, name))

    # Leftover bytes are either garbage or a newer field cut short
    if unpacker.tell() != len(data):
        raise RecordCorruptedError("unexpected data after the last field")
    return values


def encode_snapshot(snapshot: RepositorySnapshot) -> bytes:
    commits = None if snapshot.commits is None else [
        [c.hash, c.author_email, c.time, c.message, c.files_changed, c.insertions, c.deletions]
        for c in snapshot.commits
    ]
    languages = None if snapshot.languages is None else {
        name: [s.files, s.code, s.comments, s.blanks]
        for name, s in snapshot.languages.items()
    }
    return pack_fields([
        snapshot.path,
        snapshot.status,
        snapshot.origin_url,
        snapshot.unpushed_commits,
        snapshot.remote_updates,
        str(snapshot.schema_version),
        commits,
        languages,
    ])


def decode_snapshot(data: bytes) -> RepositorySnapshot:
    """Decode a snapshot record of any known shape.

    Raises:
        RecordCorruptedError: If no shape fits, or the record is malformed.
    """
    for index, shape in enumerate(SNAPSHOT_SHAPES):
        try:
            values = _read_fields(data, shape.fields)
        except RecordTruncatedError:
            logger.debug("Record too short for the %s shape", shape.name)
            continue

        if index:
            logger.warning(
                "Old version of data %s for %s. Run check on it to update the cache.",
                values[5],
                values[0],
            )
        return shape.to_current(values)

    raise RecordCorruptedError("record is shorter than the oldest known shape")


def encode_summary(summary: RepositorySummary) -> bytes:
    return pack_fields([
        summary.path,
        summary.origin_url,
        summary.status_lines,
        summary.unpushed_commits_lines,
        summary.remote_updates_lines,
        str(summary.schema_version),
    ])


def decode_summary(data: bytes) -> RepositorySummary:
    try:
        values = _read_fields(data, _SUMMARY_FIELDS)
    except RecordTruncatedError as e:
        raise RecordCorruptedError(str(e)) from None
    path, origin_url, status_lines, unpushed_lines, updates_lines, version = values
    return RepositorySummary(
        path=path,
        origin_url=origin_url,
        status_lines=status_lines,
        unpushed_commits_lines=unpushed_lines,
        remote_updates_lines=updates_lines,
        schema_version=version,
    )
