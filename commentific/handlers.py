"""HTTP request handlers for the comment API, built on werkzeug requests and responses."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from http import HTTPStatus
from typing import Any, Protocol, TypeVar

from werkzeug.wrappers import Request, Response

from .errors import CommentificError, NotAuthorizedError, NotFoundError, SelfVoteError, ValidationError
from .models import CommentFilter, CreateCommentRequest, UpdateCommentRequest, VoteRequest
from .service import CommentService

_INTEGER = re.compile(r"[+-]?[0-9]+")
_DEFAULT_DEPTH = 10
_DEFAULT_TOP_LIMIT = 10


class _FromDict(Protocol):
    @classmethod
    def from_dict(cls, data: Any) -> Any: ...


_T = TypeVar("_T", bound=_FromDict)


def _to_jsonable(value: Any) -> Any:
    """Convert models and containers of models into JSON-ready values."""
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if isinstance(value, dict):
        return {str(key): _to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_jsonable(item) for item in value]
    return value


def _atoi(text: str) -> int | None:
    """Parse a decimal integer with an optional sign, or return None."""
    if _INTEGER.fullmatch(text):
        return int(text)
    return None


@dataclass
class Pagination:
    """Paging metadata attached to list responses."""

    limit: int
    offset: int
    total: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON representation; a zero total is left out."""
        result: dict[str, Any] = {"limit": self.limit, "offset": self.offset}
        if self.total:
            result["total"] = self.total
        return result


@dataclass
class APIResponse:
    """Standard response envelope."""

    success: bool
    data: Any = None
    error: str = ""
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON representation; empty fields are left out."""
        result: dict[str, Any] = {"success": self.success}
        if self.data is not None:
            result["data"] = _to_jsonable(self.data)
        if self.error:
            result["error"] = self.error
        if self.message:
            result["message"] = self.message
        return result


@dataclass
class PaginatedResponse:
    """Response envelope for paged lists."""

    success: bool
    data: Any = None
    pagination: Pagination | None = None
    error: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Return the JSON representation; data is always present."""
        result: dict[str, Any] = {"success": self.success, "data": _to_jsonable(self.data)}
        if self.pagination is not None:
            result["pagination"] = self.pagination.to_dict()
        if self.error:
            result["error"] = self.error
        return result


def get_user_id(request: Request) -> str:
    """Return the caller's user id from the X-User-ID header or the user_id query parameter."""
    return request.headers.get("X-User-ID", "") or request.args.get("user_id", "")


def parse_comment_filter(request: Request) -> CommentFilter:
    """Build a comment filter from query parameters; malformed numbers are ignored."""
    args = request.args
    comment_filter = CommentFilter()
    if limit := args.get("limit", ""):
        comment_filter.limit = _atoi(limit)
    if offset := args.get("offset", ""):
        comment_filter.offset = _atoi(offset)
    if sort_by := args.get("sort_by", ""):
        comment_filter.sort_by = sort_by
    if sort_order := args.get("sort_order", ""):
        comment_filter.sort_order = sort_order
    if max_depth := args.get("max_depth", ""):
        comment_filter.max_depth = _atoi(max_depth)
    if parent_id := args.get("parent_id", ""):
        comment_filter.parent_id = parent_id
    return comment_filter


def _json_response(status: int, payload: Any) -> Response:
    body = json.dumps(_to_jsonable(payload)) + "\n"
    return Response(body, status=int(status), content_type="application/json")


def _error(status: int, message: str) -> Response:
    return _json_response(status, APIResponse(success=False, error=message))


def _success(data: Any) -> Response:
    return _json_response(HTTPStatus.OK, APIResponse(success=True, data=data))


def _message(status: int, message: str, data: Any = None) -> Response:
    return _json_response(status, APIResponse(success=True, data=data, message=message))


def _paginated(data: Any, comment_filter: CommentFilter) -> Response:
    pagination = None
    if comment_filter.limit is not None and comment_filter.offset is not None:
        pagination = Pagination(limit=comment_filter.limit, offset=comment_filter.offset)
    return _json_response(HTTPStatus.OK, PaginatedResponse(success=True, data=data, pagination=pagination))


def _decode(request: Request, model: type[_T]) -> _T | None:
    """Decode the first JSON value of the body into a request model, or return None."""
    try:
        text = request.get_data().decode("utf-8").lstrip()
        data, _ = json.JSONDecoder().raw_decode(text)
        return model.from_dict({} if data is None else data)
    except ValueError:
        return None


class CommentHandler:
    """Turns HTTP requests into comment service calls and JSON responses."""

    def __init__(self, service: CommentService) -> None:
        self._service = service

    def create_comment(self, request: Request) -> Response:
        """Handle POST /comments."""
        req = _decode(request, CreateCommentRequest)
        if req is None:
            return _error(HTTPStatus.BAD_REQUEST, "Invalid JSON format")
        if not req.user_id:
            req.user_id = get_user_id(request)
            if not req.user_id:
                return _error(HTTPStatus.BAD_REQUEST, "User ID is required")
        try:
            comment = self._service.create_comment(req)
        except ValidationError as exc:
            return _error(HTTPStatus.BAD_REQUEST, str(exc))
        except CommentificError as exc:
            return _error(HTTPStatus.INTERNAL_SERVER_ERROR, str(exc))
        return _message(HTTPStatus.CREATED, "Comment created successfully", comment)

    def get_comment(self, request: Request, comment_id: str) -> Response:
        """Handle GET /comments/{id}."""
        if not comment_id:
            return _error(HTTPStatus.BAD_REQUEST, "Comment ID is required")
        try:
            comment = self._service.get_comment(comment_id)
        except NotFoundError:
            return _error(HTTPStatus.NOT_FOUND, "Comment not found")
        except CommentificError as exc:
            return _error(HTTPStatus.INTERNAL_SERVER_ERROR, str(exc))
        return _success(comment)

    def update_comment(self, request: Request, comment_id: str) -> Response:
        """Handle PUT /comments/{id}."""
        user_id = get_user_id(request)
        if not comment_id:
            return _error(HTTPStatus.BAD_REQUEST, "Comment ID is required")
        if not user_id:
            return _error(HTTPStatus.UNAUTHORIZED, "User ID is required")
        req = _decode(request, UpdateCommentRequest)
        if req is None:
            return _error(HTTPStatus.BAD_REQUEST, "Invalid JSON format")
        try:
            self._service.update_comment(comment_id, user_id, req)
        except NotAuthorizedError as exc:
            return _error(HTTPStatus.FORBIDDEN, str(exc))
        except NotFoundError as exc:
            return _error(HTTPStatus.NOT_FOUND, str(exc))
        except CommentificError as exc:
            return _error(HTTPStatus.INTERNAL_SERVER_ERROR, str(exc))
        return _message(HTTPStatus.OK, "Comment updated successfully")

    def delete_comment(self, request: Request, comment_id: str) -> Response:
        """Handle DELETE /comments/{id}."""
        user_id = get_user_id(request)
        if not comment_id:
            return _error(HTTPStatus.BAD_REQUEST, "Comment ID is required")
        if not user_id:
            return _error(HTTPStatus.UNAUTHORIZED, "User ID is required")
        try:
            self._service.delete_comment(comment_id, user_id)
        except NotAuthorizedError as exc:
            return _error(HTTPStatus.FORBIDDEN, str(exc))
        except NotFoundError as exc:
            return _error(HTTPStatus.NOT_FOUND, str(exc))
        except CommentificError as exc:
            return _error(HTTPStatus.INTERNAL_SERVER_ERROR, str(exc))
        return _message(HTTPStatus.OK, "Comment deleted successfully")

    def get_comments_by_root(self, request: Request, root_id: str) -> Response:
        """Handle GET /roots/{root_id}/comments."""
        if not root_id:
            return _error(HTTPStatus.BAD_REQUEST, "Root ID is required")
        comment_filter = parse_comment_filter(request)
        try:
            comments = self._service.get_comments_by_root(root_id, comment_filter)
        except CommentificError as exc:
            return _error(HTTPStatus.INTERNAL_SERVER_ERROR, str(exc))
        return _paginated(comments, comment_filter)

    def get_comment_tree(self, request: Request, root_id: str) -> Response:
        """Handle GET /roots/{root_id}/tree."""
        if not root_id:
            return _error(HTTPStatus.BAD_REQUEST, "Root ID is required")
        max_depth = _DEFAULT_DEPTH
        if text := request.args.get("max_depth", ""):
            parsed = _atoi(text)
            if parsed is not None:
                max_depth = parsed
        sort_by = request.args.get("sort_by", "") or "score"
        try:
            tree = self._service.get_comment_tree(root_id, max_depth, sort_by)
        except CommentificError as exc:
            return _error(HTTPStatus.INTERNAL_SERVER_ERROR, str(exc))
        return _success(tree)

    def get_comments_by_user(self, request: Request, user_id: str) -> Response:
        """Handle GET /users/{user_id}/comments."""
        if not user_id:
            return _error(HTTPStatus.BAD_REQUEST, "User ID is required")
        comment_filter = parse_comment_filter(request)
        try:
            comments = self._service.get_comments_by_user(user_id, comment_filter)
        except CommentificError as exc:
            return _error(HTTPStatus.INTERNAL_SERVER_ERROR, str(exc))
        return _paginated(comments, comment_filter)

    def vote_comment(self, request: Request, comment_id: str) -> Response:
        """Handle POST /comments/{id}/vote."""
        user_id = get_user_id(request)
        if not comment_id:
            return _error(HTTPStatus.BAD_REQUEST, "Comment ID is required")
        if not user_id:
            return _error(HTTPStatus.UNAUTHORIZED, "User ID is required")
        req = _decode(request, VoteRequest)
        if req is None:
            return _error(HTTPStatus.BAD_REQUEST, "Invalid JSON format")
        req.user_id = user_id
        try:
            self._service.vote_comment(comment_id, user_id, req.vote_type)
        except SelfVoteError as exc:
            return _error(HTTPStatus.FORBIDDEN, str(exc))
        except NotFoundError as exc:
            return _error(HTTPStatus.NOT_FOUND, str(exc))
        except CommentificError as exc:
            return _error(HTTPStatus.INTERNAL_SERVER_ERROR, str(exc))
        return _message(HTTPStatus.OK, "Vote recorded successfully")

    def remove_vote(self, request: Request, comment_id: str) -> Response:
        """Handle DELETE /comments/{id}/vote."""
        user_id = get_user_id(request)
        if not comment_id:
            return _error(HTTPStatus.BAD_REQUEST, "Comment ID is required")
        if not user_id:
            return _error(HTTPStatus.UNAUTHORIZED, "User ID is required")
        try:
            self._service.remove_vote(comment_id, user_id)
        except CommentificError as exc:
            return _error(HTTPStatus.INTERNAL_SERVER_ERROR, str(exc))
        return _message(HTTPStatus.OK, "Vote removed successfully")

    def get_comments_with_votes(self, request: Request, root_id: str) -> Response:
        """Handle GET /roots/{root_id}/comments/with-votes."""
        user_id = get_user_id(request)
        if not root_id:
            return _error(HTTPStatus.BAD_REQUEST, "Root ID is required")
        if not user_id:
            return _error(HTTPStatus.UNAUTHORIZED, "User ID is required")
        comment_filter = parse_comment_filter(request)
        try:
            comments, votes = self._service.get_comments_with_user_votes(root_id, user_id, comment_filter)
        except CommentificError as exc:
            return _error(HTTPStatus.INTERNAL_SERVER_ERROR, str(exc))
        return _paginated({"comments": comments, "votes": votes}, comment_filter)

    def get_comment_stats(self, request: Request, root_id: str) -> Response:
        """Handle GET /roots/{root_id}/stats."""
        if not root_id:
            return _error(HTTPStatus.BAD_REQUEST, "Root ID is required")
        try:
            stats = self._service.get_comment_stats(root_id)
        except CommentificError as exc:
            return _error(HTTPStatus.INTERNAL_SERVER_ERROR, str(exc))
        return _success(stats)

    def get_top_comments(self, request: Request, root_id: str) -> Response:
        """Handle GET /roots/{root_id}/top."""
        if not root_id:
            return _error(HTTPStatus.BAD_REQUEST, "Root ID is required")
        limit = _DEFAULT_TOP_LIMIT
        if text := request.args.get("limit", ""):
            parsed = _atoi(text)
            if parsed is not None:
                limit = parsed
        time_range = request.args.get("time_range", "") or "day"
        try:
            comments = self._service.get_top_comments(root_id, limit, time_range)
        except CommentificError as exc:
            return _error(HTTPStatus.INTERNAL_SERVER_ERROR, str(exc))
        return _success(comments)

    def search_comments(self, request: Request, root_id: str) -> Response:
        """Handle GET /roots/{root_id}/search."""
        query = request.args.get("q", "")
        if not root_id:
            return _error(HTTPStatus.BAD_REQUEST, "Root ID is required")
        if not query:
            return _error(HTTPStatus.BAD_REQUEST, "Search query is required")
        comment_filter = parse_comment_filter(request)
        try:
            comments = self._service.search_comments(root_id, query, comment_filter)
        except CommentificError as exc:
            return _error(HTTPStatus.INTERNAL_SERVER_ERROR, str(exc))
        return _success(comments)

    def get_user_comment_count(self, request: Request, user_id: str) -> Response:
        """Handle GET /users/{user_id}/count."""
        if not user_id:
            return _error(HTTPStatus.BAD_REQUEST, "User ID is required")
        try:
            count = self._service.get_user_comment_count(user_id)
        except CommentificError as exc:
            return _error(HTTPStatus.INTERNAL_SERVER_ERROR, str(exc))
        return _success({"user_id": user_id, "count": count})

    def get_comment_path(self, request: Request, comment_id: str) -> Response:
        """Handle GET /comments/{id}/path."""
        if not comment_id:
            return _error(HTTPStatus.BAD_REQUEST, "Comment ID is required")
        try:
            path = self._service.get_comment_path(comment_id)
        except NotFoundError:
            return _error(HTTPStatus.NOT_FOUND, "Comment not found")
        except CommentificError as exc:
            return _error(HTTPStatus.INTERNAL_SERVER_ERROR, str(exc))
        return _success(path)

    def get_comment_children(self, request: Request, comment_id: str) -> Response:
        """Handle GET /comments/{id}/children."""
        if not comment_id:
            return _error(HTTPStatus.BAD_REQUEST, "Comment ID is required")
        max_depth = _DEFAULT_DEPTH
        if text := request.args.get("max_depth", ""):
            parsed = _atoi(text)
            if parsed is not None and parsed > 0:
                max_depth = parsed
        try:
            children = self._service.get_comment_children(comment_id, max_depth)
        except NotFoundError:
            return _error(HTTPStatus.NOT_FOUND, "Comment not found")
        except CommentificError as exc:
            return _error(HTTPStatus.INTERNAL_SERVER_ERROR, str(exc))
        return _success(children)