"""Abstract storage interface for comments and votes."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence

from .models import Comment, CommentFilter, CommentStats, CommentTree, UpdateCommentRequest, Vote, VoteType


class CommentRepository(ABC):
    """Storage operations for comments and votes.

    Implementations raise NotFoundError for missing comments, NotAuthorizedError
    when ownership checks fail and RepositoryError when the store fails.
    """

    @abstractmethod
    def create_comment(self, comment: Comment) -> Comment:
        """Store a comment and return it with id, depth, path and timestamps set."""

    @abstractmethod
    def get_comment_by_id(self, comment_id: str) -> Comment:
        """Return the comment with the given id."""

    @abstractmethod
    def update_comment(self, comment_id: str, updates: UpdateCommentRequest) -> None:
        """Apply the non-None fields of updates to a comment."""

    @abstractmethod
    def delete_comment(self, comment_id: str, user_id: str) -> None:
        """Soft-delete a comment owned by user_id."""

    @abstractmethod
    def get_comments(self, comment_filter: CommentFilter) -> list[Comment]:
        """Return the comments matching a filter."""

    @abstractmethod
    def get_comments_by_root_id(self, root_id: str, comment_filter: CommentFilter | None) -> list[Comment]:
        """Return the comments under a root."""

    @abstractmethod
    def get_comments_by_user_id(self, user_id: str, comment_filter: CommentFilter | None) -> list[Comment]:
        """Return the comments written by a user."""

    @abstractmethod
    def get_comment_children(self, parent_id: str, max_depth: int) -> list[Comment]:
        """Return the descendants of a comment up to max_depth levels below it."""

    @abstractmethod
    def get_comment_tree(self, root_id: str, max_depth: int, sort_by: str) -> list[CommentTree]:
        """Return the comments under a root arranged as trees."""

    @abstractmethod
    def get_comment_path(self, comment_id: str) -> list[Comment]:
        """Return the chain of comments from the top-level one down to comment_id."""

    @abstractmethod
    def create_vote(self, vote: Vote) -> Vote:
        """Store a vote, replacing any earlier vote by the same user on the same comment."""

    @abstractmethod
    def update_vote(self, comment_id: str, user_id: str, vote_type: VoteType) -> None:
        """Record or change a user's vote on a comment."""

    @abstractmethod
    def delete_vote(self, comment_id: str, user_id: str) -> None:
        """Remove a user's vote from a comment."""

    @abstractmethod
    def get_user_vote(self, comment_id: str, user_id: str) -> Vote | None:
        """Return a user's vote on a comment, or None."""

    @abstractmethod
    def get_comment_votes(self, comment_id: str) -> list[Vote]:
        """Return every vote on a comment."""

    @abstractmethod
    def get_comments_with_user_votes(
        self, root_id: str, user_id: str, comment_filter: CommentFilter | None
    ) -> tuple[list[Comment], dict[str, Vote]]:
        """Return the comments under a root and the user's votes keyed by comment id."""

    @abstractmethod
    def update_comment_scores(self, comment_ids: Sequence[str]) -> None:
        """Recount votes and scores for the given comments."""

    @abstractmethod
    def get_comment_stats(self, root_id: str) -> CommentStats:
        """Return aggregate statistics for a root."""

    @abstractmethod
    def get_user_comment_count(self, user_id: str) -> int:
        """Return how many live comments a user has written."""

    @abstractmethod
    def get_top_comments(self, root_id: str, limit: int, time_range: str) -> list[Comment]:
        """Return the highest-scored comments created within a time range."""

    @abstractmethod
    def purge_deleted_comments(self, older_than: int) -> int:
        """Permanently remove comments soft-deleted more than older_than days ago."""

    @abstractmethod
    def recalculate_comment_scores(self) -> None:
        """Recount votes and scores for every comment."""

    @abstractmethod
    def begin_tx(self) -> CommentRepository:
        """Start a transaction and return a repository bound to it."""

    @abstractmethod
    def commit_tx(self) -> None:
        """Commit the transaction this repository is bound to."""

    @abstractmethod
    def rollback_tx(self) -> None:
        """Roll back the transaction this repository is bound to."""


class RepositoryProvider(ABC):
    """Owns a storage connection and hands out repositories."""

    @abstractmethod
    def get_comment_repository(self) -> CommentRepository:
        """Return a repository using this provider's connection."""

    @abstractmethod
    def close(self) -> None:
        """Close the underlying connection."""

    @abstractmethod
    def health(self) -> None:
        """Raise RepositoryError if the store is unreachable."""

    @abstractmethod
    def migrate(self) -> None:
        """Raise RepositoryError if the schema is missing."""