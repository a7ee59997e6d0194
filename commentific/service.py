"""Business rules for creating, reading, voting on and maintaining comments."""

from __future__ import annotations

import contextlib
import uuid
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, replace

from .errors import CommentificError, NotAuthorizedError, SelfVoteError, ValidationError
from .models import (
    Comment,
    CommentFilter,
    CommentStats,
    CommentTree,
    CreateCommentRequest,
    UpdateCommentRequest,
    Vote,
    VoteRequest,
    VoteType,
)
from .repository import CommentRepository

_MAX_PARENT_DEPTH = 100
_DEFAULT_TREE_DEPTH = 10
_DEFAULT_TOP_LIMIT = 10
_MAX_TOP_LIMIT = 100
_MIN_QUERY_LENGTH = 3
_VALID_TIME_RANGES = frozenset({"hour", "day", "week", "month", "all"})


@dataclass
class CommentServiceConfig:
    """Limits applied by the comment service."""

    max_comment_length: int = 10000
    max_tree_depth: int = 50
    max_batch_size: int = 100
    default_page_size: int = 50
    max_page_size: int = 1000


def is_valid_url(url: str) -> bool:
    """Return True if url is an http or https URL."""
    return url.strip().startswith(("http://", "https://"))


@contextlib.contextmanager
def _prefixed(prefix: str) -> Iterator[None]:
    """Re-raise package errors with a context prefix, keeping their type."""
    try:
        yield
    except CommentificError as exc:
        raise type(exc)(f"{prefix}: {exc}") from exc


def _require(value: str, message: str) -> None:
    if not value:
        raise ValidationError(message)


def _field_error(name: str, tag: str) -> str:
    return (
        f"Key: 'CreateCommentRequest.{name}' Error:"
        f"Field validation for '{name}' failed on the '{tag}' tag"
    )


def _check_urls(media_url: str | None, link_url: str | None) -> None:
    if media_url and not is_valid_url(media_url):
        raise ValidationError("invalid media URL")
    if link_url and not is_valid_url(link_url):
        raise ValidationError("invalid link URL")


class CommentService:
    """Validates requests and applies business rules before touching storage."""

    def __init__(self, repo: CommentRepository, config: CommentServiceConfig | None = None) -> None:
        self._repo = repo
        self._config = config or CommentServiceConfig()

    def _validate_create(self, req: CreateCommentRequest) -> None:
        problems = [
            _field_error(name, "required")
            for name, value in (("RootID", req.root_id), ("UserID", req.user_id))
            if not value
        ]
        if not req.content:
            problems.append(_field_error("Content", "required"))
        elif len(req.content) > self._config.max_comment_length:
            problems.append(_field_error("Content", "max"))
        if problems:
            raise ValidationError("validation failed: " + "\n".join(problems))

    def _clamp_depth(self, max_depth: int) -> int:
        if max_depth <= 0:
            return _DEFAULT_TREE_DEPTH
        return min(max_depth, self._config.max_tree_depth)

    def create_comment(self, req: CreateCommentRequest) -> Comment:
        """Validate a request and store a new comment."""
        self._validate_create(req)
        content = req.content.strip()
        if not content:
            raise ValidationError("comment content cannot be empty")
        _check_urls(req.media_url, req.link_url)

        comment = Comment(
            id=str(uuid.uuid4()),
            root_id=req.root_id,
            parent_id=req.parent_id,
            user_id=req.user_id,
            content=content,
            media_url=req.media_url,
            link_url=req.link_url,
        )

        if req.parent_id is not None:
            with _prefixed("parent comment not found"):
                parent = self._repo.get_comment_by_id(req.parent_id)
            if parent.root_id != req.root_id:
                raise ValidationError("parent comment belongs to different root")
            if parent.depth >= _MAX_PARENT_DEPTH:
                raise ValidationError("maximum comment depth exceeded")

        with _prefixed("failed to create comment"):
            return self._repo.create_comment(comment)

    def get_comment(self, comment_id: str) -> Comment:
        """Return a comment by id."""
        _require(comment_id, "comment ID is required")
        with _prefixed("failed to get comment"):
            return self._repo.get_comment_by_id(comment_id)

    def update_comment(self, comment_id: str, user_id: str, req: UpdateCommentRequest) -> None:
        """Update a comment owned by user_id."""
        _require(comment_id, "comment ID is required")
        _require(user_id, "user ID is required")

        with _prefixed("comment not found"):
            comment = self._repo.get_comment_by_id(comment_id)
        if comment.user_id != user_id:
            raise NotAuthorizedError("user not authorized to update this comment")

        if req.content is not None:
            content = req.content.strip()
            if not content:
                raise ValidationError("comment content cannot be empty")
            if len(content.encode("utf-8")) > self._config.max_comment_length:
                raise ValidationError("comment content too long")
            req = replace(req, content=content)

        _check_urls(req.media_url, req.link_url)
        self._repo.update_comment(comment_id, req)

    def delete_comment(self, comment_id: str, user_id: str) -> None:
        """Soft-delete a comment owned by user_id."""
        _require(comment_id, "comment ID is required")
        _require(user_id, "user ID is required")
        self._repo.delete_comment(comment_id, user_id)

    def get_comments_by_root(self, root_id: str, comment_filter: CommentFilter | None = None) -> list[Comment]:
        """Return comments under a root; fills paging and sort defaults into the filter."""
        _require(root_id, "root ID is required")
        if comment_filter is None:
            comment_filter = CommentFilter()
        if comment_filter.limit is None:
            comment_filter.limit = self._config.default_page_size
        if comment_filter.offset is None:
            comment_filter.offset = 0
        if not comment_filter.sort_by:
            comment_filter.sort_by = "created_at"
        if not comment_filter.sort_order:
            comment_filter.sort_order = "desc"
        comment_filter.limit = min(comment_filter.limit, self._config.max_page_size)
        return self._repo.get_comments_by_root_id(root_id, comment_filter)

    def get_comment_tree(self, root_id: str, max_depth: int = 0, sort_by: str = "") -> list[CommentTree]:
        """Return the comment trees under a root."""
        _require(root_id, "root ID is required")
        return self._repo.get_comment_tree(root_id, self._clamp_depth(max_depth), sort_by or "score")

    def get_comments_by_user(self, user_id: str, comment_filter: CommentFilter | None = None) -> list[Comment]:
        """Return comments written by a user; fills paging defaults into the filter."""
        _require(user_id, "user ID is required")
        if comment_filter is None:
            comment_filter = CommentFilter()
        if comment_filter.limit is None:
            comment_filter.limit = self._config.default_page_size
        if comment_filter.offset is None:
            comment_filter.offset = 0
        return self._repo.get_comments_by_user_id(user_id, comment_filter)

    def vote_comment(self, comment_id: str, user_id: str, vote_type: int) -> None:
        """Record a vote by user_id on someone else's comment."""
        _require(comment_id, "comment ID is required")
        _require(user_id, "user ID is required")
        if vote_type not in (VoteType.UP, VoteType.DOWN):
            raise ValidationError("invalid vote type")

        with _prefixed("comment not found"):
            comment = self._repo.get_comment_by_id(comment_id)
        if comment.user_id == user_id:
            raise SelfVoteError("users cannot vote on their own comments")

        self._repo.update_vote(comment_id, user_id, VoteType(vote_type))

    def remove_vote(self, comment_id: str, user_id: str) -> None:
        """Remove a user's vote from a comment."""
        _require(comment_id, "comment ID is required")
        _require(user_id, "user ID is required")
        self._repo.delete_vote(comment_id, user_id)

    def get_comments_with_user_votes(
        self, root_id: str, user_id: str, comment_filter: CommentFilter | None = None
    ) -> tuple[list[Comment], dict[str, Vote]]:
        """Return comments under a root with the user's votes keyed by comment id."""
        _require(root_id, "root ID is required")
        _require(user_id, "user ID is required")
        if comment_filter is None:
            comment_filter = CommentFilter()
        if comment_filter.limit is None:
            comment_filter.limit = self._config.default_page_size
        return self._repo.get_comments_with_user_votes(root_id, user_id, comment_filter)

    def get_comment_stats(self, root_id: str) -> CommentStats:
        """Return statistics for a root."""
        _require(root_id, "root ID is required")
        return self._repo.get_comment_stats(root_id)

    def get_top_comments(self, root_id: str, limit: int = 0, time_range: str = "") -> list[Comment]:
        """Return the best-scored comments within a time range."""
        _require(root_id, "root ID is required")
        if limit <= 0:
            limit = _DEFAULT_TOP_LIMIT
        limit = min(limit, _MAX_TOP_LIMIT)
        if time_range not in _VALID_TIME_RANGES:
            time_range = "day"
        return self._repo.get_top_comments(root_id, limit, time_range)

    def get_user_comment_count(self, user_id: str) -> int:
        """Return how many comments a user has written."""
        _require(user_id, "user ID is required")
        return self._repo.get_user_comment_count(user_id)

    def search_comments(
        self, root_id: str, query: str, comment_filter: CommentFilter | None = None
    ) -> list[Comment]:
        """Return comments under a root whose content contains query, ignoring case."""
        _require(root_id, "root ID is required")
        _require(query, "search query is required")
        query = query.strip()
        if len(query.encode("utf-8")) < _MIN_QUERY_LENGTH:
            raise ValidationError("search query must be at least 3 characters")

        needle = query.lower()
        comments = self._repo.get_comments_by_root_id(root_id, comment_filter)
        return [comment for comment in comments if needle in comment.content.lower()]

    def purge_old_deleted_comments(self, older_than_days: int) -> int:
        """Permanently remove old soft-deleted comments; returns how many went."""
        if older_than_days < 1:
            raise ValidationError("olderThanDays must be at least 1")
        return self._repo.purge_deleted_comments(older_than_days)

    def recalculate_all_scores(self) -> None:
        """Recount votes and scores for every comment."""
        self._repo.recalculate_comment_scores()

    def get_comment_path(self, comment_id: str) -> list[Comment]:
        """Return the chain of comments leading to comment_id."""
        _require(comment_id, "comment ID is required")
        return self._repo.get_comment_path(comment_id)

    def get_comment_children(self, parent_id: str, max_depth: int = 0) -> list[Comment]:
        """Return the descendants of a comment."""
        _require(parent_id, "parent ID is required")
        return self._repo.get_comment_children(parent_id, self._clamp_depth(max_depth))

    def batch_vote_comments(self, votes: Iterable[VoteRequest], user_id: str) -> None:
        """Apply several votes by one user inside a single transaction."""
        _require(user_id, "user ID is required")
        votes = list(votes)
        if len(votes) > self._config.max_batch_size:
            raise ValidationError(
                f"too many votes in batch, maximum is {self._config.max_batch_size}"
            )

        with _prefixed("failed to begin transaction"):
            tx = self._repo.begin_tx()
        try:
            for vote in votes:
                if vote.user_id != user_id:
                    raise ValidationError("user ID mismatch in vote request")
                with _prefixed("failed to apply vote"):
                    tx.update_vote("", vote.user_id, vote.vote_type)
        except Exception:
            with contextlib.suppress(CommentificError):
                tx.rollback_tx()
            raise
        tx.commit_tx()