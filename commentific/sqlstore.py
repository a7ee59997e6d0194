"""SQLite-backed storage for comments and votes."""

from __future__ import annotations

import calendar
import contextlib
import os
import sqlite3
import uuid
from collections.abc import Iterator, Sequence
from datetime import datetime, timedelta, timezone
from typing import Any

from .errors import NotFoundError, RepositoryError, ValidationError
from .models import Comment, CommentFilter, CommentStats, CommentTree, UpdateCommentRequest, Vote, VoteType
from .repository import CommentRepository, RepositoryProvider

_TIME_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"
_SORTABLE = frozenset({"score", "created_at", "updated_at"})
_COMMENT_COLUMNS = (
    "id",
    "root_id",
    "parent_id",
    "user_id",
    "content",
    "media_url",
    "link_url",
    "upvotes",
    "downvotes",
    "score",
    "depth",
    "path",
    "is_deleted",
    "created_at",
    "updated_at",
)
_SELECT_COMMENTS = "SELECT " + ", ".join(_COMMENT_COLUMNS) + " FROM comments"
_SELECT_VOTES = "SELECT id, comment_id, user_id, vote_type, created_at, updated_at FROM votes"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS comments (
    id TEXT PRIMARY KEY,
    root_id TEXT NOT NULL,
    parent_id TEXT,
    user_id TEXT NOT NULL,
    content TEXT NOT NULL,
    media_url TEXT,
    link_url TEXT,
    upvotes INTEGER NOT NULL DEFAULT 0,
    downvotes INTEGER NOT NULL DEFAULT 0,
    score INTEGER NOT NULL DEFAULT 0,
    depth INTEGER NOT NULL DEFAULT 0,
    path TEXT NOT NULL,
    is_deleted INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_comments_root ON comments (root_id);
CREATE INDEX IF NOT EXISTS idx_comments_user ON comments (user_id);
CREATE INDEX IF NOT EXISTS idx_comments_path ON comments (path);
CREATE TABLE IF NOT EXISTS votes (
    id TEXT PRIMARY KEY,
    comment_id TEXT NOT NULL REFERENCES comments (id) ON DELETE CASCADE,
    user_id TEXT NOT NULL,
    vote_type INTEGER NOT NULL,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (comment_id, user_id)
);
"""


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _encode_time(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(_TIME_FORMAT)


def _decode_time(text: str) -> datetime:
    return datetime.strptime(text, _TIME_FORMAT).replace(tzinfo=timezone.utc)


def _one_month_before(value: datetime) -> datetime:
    year, month = value.year, value.month - 1
    if month == 0:
        year, month = year - 1, 12
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def _range_start(time_range: str, now: datetime) -> datetime | None:
    if time_range == "hour":
        return now - timedelta(hours=1)
    if time_range == "day":
        return now - timedelta(days=1)
    if time_range == "week":
        return now - timedelta(weeks=1)
    if time_range == "month":
        return _one_month_before(now)
    return None


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _placeholders(count: int) -> str:
    return ", ".join("?" * count)


@contextlib.contextmanager
def _db_errors(action: str) -> Iterator[None]:
    try:
        yield
    except sqlite3.Error as exc:
        raise RepositoryError(f"failed to {action}: {exc}") from exc


def _row_to_comment(row: sqlite3.Row) -> Comment:
    return Comment(
        id=row["id"],
        root_id=row["root_id"],
        parent_id=row["parent_id"],
        user_id=row["user_id"],
        content=row["content"],
        media_url=row["media_url"],
        link_url=row["link_url"],
        upvotes=row["upvotes"],
        downvotes=row["downvotes"],
        score=row["score"],
        depth=row["depth"],
        path=row["path"],
        is_deleted=bool(row["is_deleted"]),
        created_at=_decode_time(row["created_at"]),
        updated_at=_decode_time(row["updated_at"]),
    )


def _vote_type(value: int) -> Any:
    try:
        return VoteType(value)
    except ValueError:
        return value


def _row_to_vote(row: sqlite3.Row) -> Vote:
    return Vote(
        id=row["id"],
        comment_id=row["comment_id"],
        user_id=row["user_id"],
        vote_type=_vote_type(row["vote_type"]),
        created_at=_decode_time(row["created_at"]),
        updated_at=_decode_time(row["updated_at"]),
    )


def _order_clause(comment_filter: CommentFilter, prefix: str = "") -> str:
    sort_by = comment_filter.sort_by if comment_filter.sort_by in _SORTABLE else "created_at"
    order = "ASC" if comment_filter.sort_order == "asc" else "DESC"
    return f" ORDER BY {prefix}{sort_by} {order}, {prefix}rowid {order}"


def _paging_clause(comment_filter: CommentFilter, params: list[Any]) -> str:
    clause = ""
    if comment_filter.limit is not None:
        clause += " LIMIT ?"
        params.append(comment_filter.limit)
    if comment_filter.offset is not None:
        if comment_filter.limit is None:
            clause += " LIMIT -1"
        clause += " OFFSET ?"
        params.append(comment_filter.offset)
    return clause


def build_comment_tree(comments: Sequence[Comment]) -> list[CommentTree]:
    """Arrange flat comments into trees; replies whose parent is absent are dropped."""
    nodes = {comment.id: CommentTree(comment=comment) for comment in comments}
    roots: list[CommentTree] = []
    for comment in comments:
        node = nodes[comment.id]
        if comment.parent_id is None:
            roots.append(node)
        elif comment.parent_id in nodes:
            nodes[comment.parent_id].children.append(node)
    return roots


class SQLiteRepository(CommentRepository):
    """Comment repository over an SQLite connection, optionally bound to a transaction."""

    def __init__(self, connection: sqlite3.Connection, in_transaction: bool = False) -> None:
        self._conn = connection
        self._in_tx = in_transaction

    def _fetch_comments(self, query: str, params: Sequence[Any], action: str) -> list[Comment]:
        with _db_errors(action):
            rows = self._conn.execute(query, params).fetchall()
        return [_row_to_comment(row) for row in rows]

    def create_comment(self, comment: Comment) -> Comment:
        if not comment.id:
            comment.id = str(uuid.uuid4())

        if comment.parent_id is not None:
            try:
                parent = self.get_comment_by_id(comment.parent_id)
            except NotFoundError as exc:
                raise NotFoundError(f"failed to get parent comment: {exc}") from exc
            comment.depth = parent.depth + 1
            comment.path = f"{parent.path}.{comment.id}"
            if parent.root_id != comment.root_id:
                raise ValidationError("parent comment belongs to different root")
        else:
            comment.depth = 0
            comment.path = comment.id

        comment.created_at = _now()
        comment.updated_at = _now()
        with _db_errors("create comment"):
            self._conn.execute(
                "INSERT INTO comments (id, root_id, parent_id, user_id, content, media_url, link_url,"
                " depth, path, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    comment.id,
                    comment.root_id,
                    comment.parent_id,
                    comment.user_id,
                    comment.content,
                    comment.media_url,
                    comment.link_url,
                    comment.depth,
                    comment.path,
                    _encode_time(comment.created_at),
                    _encode_time(comment.updated_at),
                ),
            )
        return comment

    def get_comment_by_id(self, comment_id: str) -> Comment:
        with _db_errors("get comment"):
            row = self._conn.execute(
                _SELECT_COMMENTS + " WHERE id = ? AND NOT is_deleted", (comment_id,)
            ).fetchone()
        if row is None:
            raise NotFoundError("comment not found")
        return _row_to_comment(row)

    def update_comment(self, comment_id: str, updates: UpdateCommentRequest) -> None:
        changes = {
            name: value
            for name, value in (
                ("content", updates.content),
                ("media_url", updates.media_url),
                ("link_url", updates.link_url),
            )
            if value is not None
        }
        if not changes:
            return
        changes["updated_at"] = _encode_time(_now())
        assignments = ", ".join(f"{name} = ?" for name in changes)
        with _db_errors("update comment"):
            cursor = self._conn.execute(
                f"UPDATE comments SET {assignments} WHERE id = ? AND NOT is_deleted",
                (*changes.values(), comment_id),
            )
        if cursor.rowcount == 0:
            raise NotFoundError("comment not found or already deleted")

    def delete_comment(self, comment_id: str, user_id: str) -> None:
        with _db_errors("delete comment"):
            cursor = self._conn.execute(
                "UPDATE comments SET is_deleted = 1, updated_at = ?"
                " WHERE id = ? AND user_id = ? AND NOT is_deleted",
                (_encode_time(_now()), comment_id, user_id),
            )
        if cursor.rowcount == 0:
            raise NotFoundError("comment not found, already deleted, or user not authorized")

    def get_comments(self, comment_filter: CommentFilter) -> list[Comment]:
        query = _SELECT_COMMENTS + " WHERE NOT is_deleted"
        params: list[Any] = []
        for column, value, operator in (
            ("root_id", comment_filter.root_id, "="),
            ("user_id", comment_filter.user_id, "="),
            ("parent_id", comment_filter.parent_id, "="),
            ("depth", comment_filter.max_depth, "<="),
        ):
            if value is not None:
                query += f" AND {column} {operator} ?"
                params.append(value)
        query += _order_clause(comment_filter)
        query += _paging_clause(comment_filter, params)
        return self._fetch_comments(query, params, "get comments")

    def get_comments_by_root_id(self, root_id: str, comment_filter: CommentFilter | None) -> list[Comment]:
        if comment_filter is None:
            comment_filter = CommentFilter()
        comment_filter.root_id = root_id
        return self.get_comments(comment_filter)

    def get_comments_by_user_id(self, user_id: str, comment_filter: CommentFilter | None) -> list[Comment]:
        if comment_filter is None:
            comment_filter = CommentFilter()
        comment_filter.user_id = user_id
        return self.get_comments(comment_filter)

    def get_comment_children(self, parent_id: str, max_depth: int) -> list[Comment]:
        try:
            parent = self.get_comment_by_id(parent_id)
        except NotFoundError as exc:
            raise NotFoundError(f"failed to get parent comment: {exc}") from exc
        pattern = _escape_like(parent.path) + ".%"
        return self._fetch_comments(
            _SELECT_COMMENTS
            + " WHERE path LIKE ? ESCAPE '\\' AND NOT is_deleted AND depth <= ?"
            " ORDER BY path, created_at",
            (pattern, parent.depth + max_depth),
            "get comment children",
        )

    def get_comment_tree(self, root_id: str, max_depth: int, sort_by: str) -> list[CommentTree]:
        comment_filter = CommentFilter(root_id=root_id, max_depth=max_depth, sort_by=sort_by)
        return build_comment_tree(self.get_comments(comment_filter))

    def get_comment_path(self, comment_id: str) -> list[Comment]:
        comment = self.get_comment_by_id(comment_id)
        ids = comment.path.split(".")
        return self._fetch_comments(
            _SELECT_COMMENTS
            + f" WHERE id IN ({_placeholders(len(ids))}) AND NOT is_deleted ORDER BY depth",
            ids,
            "get comment path",
        )

    def _refresh_scores(self, comment_ids: list[str] | None, touch: bool) -> None:
        where = ""
        params: list[Any] = []
        if comment_ids is not None:
            where = f" WHERE id IN ({_placeholders(len(comment_ids))})"
            params = list(comment_ids)
        touch_clause = ", updated_at = ?" if touch else ""
        touch_params = [_encode_time(_now())] if touch else []
        self._conn.execute(
            "UPDATE comments SET"
            " upvotes = (SELECT COUNT(*) FROM votes WHERE comment_id = comments.id AND vote_type = 1),"
            " downvotes = (SELECT COUNT(*) FROM votes WHERE comment_id = comments.id AND vote_type = -1)"
            + touch_clause
            + where,
            (*touch_params, *params),
        )
        self._conn.execute("UPDATE comments SET score = upvotes - downvotes" + where, params)

    def create_vote(self, vote: Vote) -> Vote:
        if not vote.id:
            vote.id = str(uuid.uuid4())
        vote.created_at = _now()
        vote.updated_at = _now()
        with _db_errors("create vote"):
            self._conn.execute(
                "INSERT INTO votes (id, comment_id, user_id, vote_type, created_at, updated_at)"
                " VALUES (?, ?, ?, ?, ?, ?)"
                " ON CONFLICT (comment_id, user_id)"
                " DO UPDATE SET vote_type = excluded.vote_type, updated_at = excluded.updated_at",
                (
                    vote.id,
                    vote.comment_id,
                    vote.user_id,
                    int(vote.vote_type),
                    _encode_time(vote.created_at),
                    _encode_time(vote.updated_at),
                ),
            )
            self._refresh_scores([vote.comment_id], touch=False)
        return vote

    def update_vote(self, comment_id: str, user_id: str, vote_type: VoteType) -> None:
        self.create_vote(Vote(comment_id=comment_id, user_id=user_id, vote_type=vote_type))

    def delete_vote(self, comment_id: str, user_id: str) -> None:
        with _db_errors("delete vote"):
            self._conn.execute(
                "DELETE FROM votes WHERE comment_id = ? AND user_id = ?", (comment_id, user_id)
            )
            self._refresh_scores([comment_id], touch=False)

    def get_user_vote(self, comment_id: str, user_id: str) -> Vote | None:
        with _db_errors("get user vote"):
            row = self._conn.execute(
                _SELECT_VOTES + " WHERE comment_id = ? AND user_id = ?", (comment_id, user_id)
            ).fetchone()
        return None if row is None else _row_to_vote(row)

    def get_comment_votes(self, comment_id: str) -> list[Vote]:
        with _db_errors("get comment votes"):
            rows = self._conn.execute(_SELECT_VOTES + " WHERE comment_id = ?", (comment_id,)).fetchall()
        return [_row_to_vote(row) for row in rows]

    def get_comments_with_user_votes(
        self, root_id: str, user_id: str, comment_filter: CommentFilter | None
    ) -> tuple[list[Comment], dict[str, Vote]]:
        columns = ", ".join(f"c.{name} AS {name}" for name in _COMMENT_COLUMNS)
        query = (
            f"SELECT {columns}, v.id AS vote_id, v.vote_type AS vote_type"
            " FROM comments c"
            " LEFT JOIN votes v ON c.id = v.comment_id AND v.user_id = ?"
            " WHERE c.root_id = ? AND NOT c.is_deleted"
        )
        params: list[Any] = [user_id, root_id]
        if comment_filter is not None:
            if comment_filter.max_depth is not None:
                query += " AND c.depth <= ?"
                params.append(comment_filter.max_depth)
            query += _order_clause(comment_filter, "c.")
            query += _paging_clause(comment_filter, params)

        with _db_errors("get comments with votes"):
            rows = self._conn.execute(query, params).fetchall()

        comments: list[Comment] = []
        votes: dict[str, Vote] = {}
        for row in rows:
            comment = _row_to_comment(row)
            comments.append(comment)
            if row["vote_id"] is not None:
                votes[comment.id] = Vote(
                    id=row["vote_id"],
                    comment_id=comment.id,
                    user_id=user_id,
                    vote_type=_vote_type(row["vote_type"]),
                )
        return comments, votes

    def update_comment_scores(self, comment_ids: Sequence[str]) -> None:
        ids = list(comment_ids)
        if not ids:
            return
        with _db_errors("update comment scores"):
            self._refresh_scores(ids, touch=True)

    def get_comment_stats(self, root_id: str) -> CommentStats:
        cutoff = _encode_time(_now() - timedelta(hours=24))
        with _db_errors("get comment stats"):
            row = self._conn.execute(
                "SELECT COUNT(*), COALESCE(SUM(score), 0), COALESCE(MAX(depth), 0),"
                " COUNT(CASE WHEN created_at > ? THEN 1 END)"
                " FROM comments WHERE root_id = ? AND NOT is_deleted",
                (cutoff, root_id),
            ).fetchone()
        return CommentStats(
            root_id=root_id,
            total_count=row[0],
            total_score=row[1],
            max_depth=row[2],
            recent_count=row[3],
        )

    def get_user_comment_count(self, user_id: str) -> int:
        with _db_errors("get user comment count"):
            row = self._conn.execute(
                "SELECT COUNT(*) FROM comments WHERE user_id = ? AND NOT is_deleted", (user_id,)
            ).fetchone()
        return row[0]

    def get_top_comments(self, root_id: str, limit: int, time_range: str) -> list[Comment]:
        query = _SELECT_COMMENTS + " WHERE root_id = ? AND NOT is_deleted"
        params: list[Any] = [root_id]
        start = _range_start(time_range, _now())
        if start is not None:
            query += " AND created_at > ?"
            params.append(_encode_time(start))
        query += " ORDER BY score DESC, created_at DESC LIMIT ?"
        params.append(limit)
        return self._fetch_comments(query, params, "get top comments")

    def purge_deleted_comments(self, older_than: int) -> int:
        cutoff = _encode_time(_now() - timedelta(days=older_than))
        with _db_errors("purge deleted comments"):
            cursor = self._conn.execute(
                "DELETE FROM comments WHERE is_deleted = 1 AND updated_at < ?", (cutoff,)
            )
        return cursor.rowcount

    def recalculate_comment_scores(self) -> None:
        with _db_errors("recalculate scores"):
            self._refresh_scores(None, touch=True)

    def begin_tx(self) -> SQLiteRepository:
        with _db_errors("begin transaction"):
            self._conn.execute("BEGIN")
        return SQLiteRepository(self._conn, in_transaction=True)

    def commit_tx(self) -> None:
        if not self._in_tx:
            raise RepositoryError("no transaction to commit")
        with _db_errors("commit transaction"):
            self._conn.execute("COMMIT")
        self._in_tx = False

    def rollback_tx(self) -> None:
        if not self._in_tx:
            raise RepositoryError("no transaction to rollback")
        with _db_errors("rollback transaction"):
            self._conn.execute("ROLLBACK")
        self._in_tx = False


class SQLiteProvider(RepositoryProvider):
    """Owns an SQLite connection and hands out repositories over it."""

    def __init__(self, database: str | os.PathLike[str] = ":memory:") -> None:
        self._conn = sqlite3.connect(database, isolation_level=None, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")

    @property
    def connection(self) -> sqlite3.Connection:
        """The underlying connection."""
        return self._conn

    def __enter__(self) -> SQLiteProvider:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def get_comment_repository(self) -> SQLiteRepository:
        return SQLiteRepository(self._conn)

    def close(self) -> None:
        self._conn.close()

    def health(self) -> None:
        with _db_errors("reach database"):
            self._conn.execute("SELECT 1").fetchone()

    def migrate(self) -> None:
        with _db_errors("check if tables exist"):
            row = self._conn.execute(
                "SELECT EXISTS (SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'comments')"
            ).fetchone()
        if not row[0]:
            raise RepositoryError("database not migrated: comments table does not exist")

    def create_schema(self) -> None:
        """Create the comments and votes tables if they are missing."""
        with _db_errors("create schema"):
            self._conn.executescript(_SCHEMA)