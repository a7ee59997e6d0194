"""Data types for comments, votes and the requests that act on them."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Mapping


class VoteType(IntEnum):
    """Direction of a vote on a comment."""

    NONE = 0
    UP = 1
    DOWN = -1


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _format_time(value: datetime) -> str:
    text = value.isoformat()
    if value.tzinfo is not None and value.utcoffset() is not None and not value.utcoffset():
        text = text[: -len("+00:00")] + "Z"
    return text


def _object(data: Any) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise ValueError("expected a JSON object")
    return data


def _string(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string")
    return value


def _optional_string(data: Mapping[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"field {key!r} must be a string")
    return value


def _integer(data: Mapping[str, Any], key: str) -> int:
    value = data.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"field {key!r} must be an integer")
    return value


@dataclass
class Comment:
    """A comment attached to a root entity, possibly replying to another comment."""

    id: str = ""
    root_id: str = ""
    user_id: str = ""
    content: str = ""
    parent_id: str | None = None
    media_url: str | None = None
    link_url: str | None = None
    upvotes: int = 0
    downvotes: int = 0
    score: int = 0
    depth: int = 0
    path: str = ""
    is_deleted: bool = False
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON representation of the comment."""
        return {
            "id": self.id,
            "root_id": self.root_id,
            "parent_id": self.parent_id,
            "user_id": self.user_id,
            "content": self.content,
            "media_url": self.media_url,
            "link_url": self.link_url,
            "upvotes": self.upvotes,
            "downvotes": self.downvotes,
            "score": self.score,
            "depth": self.depth,
            "path": self.path,
            "is_deleted": self.is_deleted,
            "created_at": _format_time(self.created_at),
            "updated_at": _format_time(self.updated_at),
        }


@dataclass
class Vote:
    """A user's vote on a comment."""

    comment_id: str = ""
    user_id: str = ""
    vote_type: VoteType = VoteType.NONE
    id: str = ""
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON representation of the vote."""
        return {
            "id": self.id,
            "comment_id": self.comment_id,
            "user_id": self.user_id,
            "vote_type": int(self.vote_type),
            "created_at": _format_time(self.created_at),
            "updated_at": _format_time(self.updated_at),
        }


@dataclass
class CommentTree:
    """A comment together with its replies."""

    comment: Comment
    children: list[CommentTree] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON representation; an empty child list is left out."""
        result: dict[str, Any] = {"comment": self.comment.to_dict()}
        if self.children:
            result["children"] = [child.to_dict() for child in self.children]
        return result


@dataclass
class CreateCommentRequest:
    """Fields supplied when creating a comment."""

    root_id: str = ""
    user_id: str = ""
    content: str = ""
    parent_id: str | None = None
    media_url: str | None = None
    link_url: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> CreateCommentRequest:
        """Build a request from decoded JSON; raises ValueError on wrong types."""
        data = _object(data)
        return cls(
            root_id=_string(data, "root_id"),
            user_id=_string(data, "user_id"),
            content=_string(data, "content"),
            parent_id=_optional_string(data, "parent_id"),
            media_url=_optional_string(data, "media_url"),
            link_url=_optional_string(data, "link_url"),
        )


@dataclass
class UpdateCommentRequest:
    """Fields that may be changed on an existing comment; None means unchanged."""

    content: str | None = None
    media_url: str | None = None
    link_url: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> UpdateCommentRequest:
        """Build a request from decoded JSON; raises ValueError on wrong types."""
        data = _object(data)
        return cls(
            content=_optional_string(data, "content"),
            media_url=_optional_string(data, "media_url"),
            link_url=_optional_string(data, "link_url"),
        )


@dataclass
class VoteRequest:
    """A vote submitted by a user."""

    user_id: str = ""
    vote_type: int = VoteType.NONE

    @classmethod
    def from_dict(cls, data: Any) -> VoteRequest:
        """Build a request from decoded JSON; raises ValueError on wrong types."""
        data = _object(data)
        raw_type = _integer(data, "vote_type")
        try:
            vote_type: int = VoteType(raw_type)
        except ValueError:
            vote_type = raw_type
        return cls(user_id=_string(data, "user_id"), vote_type=vote_type)


@dataclass
class CommentFilter:
    """Criteria, ordering and paging for comment queries."""

    root_id: str | None = None
    user_id: str | None = None
    parent_id: str | None = None
    max_depth: int | None = None
    sort_by: str = ""
    sort_order: str = ""
    limit: int | None = None
    offset: int | None = None


@dataclass
class CommentStats:
    """Aggregate figures for the comments under one root."""

    root_id: str
    total_count: int = 0
    total_score: int = 0
    max_depth: int = 0
    recent_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON representation of the statistics."""
        return {
            "root_id": self.root_id,
            "total_count": self.total_count,
            "total_score": self.total_score,
            "max_depth": self.max_depth,
            "recent_count": self.recent_count,
        }