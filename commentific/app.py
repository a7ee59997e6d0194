"""WSGI application that routes HTTP requests to the comment handlers."""

from __future__ import annotations

import html
import json
from collections.abc import Callable, Iterable
from datetime import datetime
from http import HTTPStatus
from typing import Any

from werkzeug.exceptions import HTTPException
from werkzeug.routing import Map, Rule
from werkzeug.wrappers import Request, Response

from .handlers import CommentHandler
from .service import CommentService

DEFAULT_PREFIX = "/api/v1"
SERVICE_NAME = "commentific"

_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, X-User-ID, Authorization",
    "Access-Control-Max-Age": "86400",
}

# (path below the prefix, HTTP method, handler method name)
_API_ROUTES = (
    ("/comments", "POST", "create_comment"),
    ("/comments/<comment_id>", "GET", "get_comment"),
    ("/comments/<comment_id>", "PUT", "update_comment"),
    ("/comments/<comment_id>", "DELETE", "delete_comment"),
    ("/comments/<comment_id>/path", "GET", "get_comment_path"),
    ("/comments/<comment_id>/children", "GET", "get_comment_children"),
    ("/comments/<comment_id>/vote", "POST", "vote_comment"),
    ("/comments/<comment_id>/vote", "DELETE", "remove_vote"),
    ("/roots/<root_id>/comments", "GET", "get_comments_by_root"),
    ("/roots/<root_id>/comments/with-votes", "GET", "get_comments_with_votes"),
    ("/roots/<root_id>/tree", "GET", "get_comment_tree"),
    ("/roots/<root_id>/stats", "GET", "get_comment_stats"),
    ("/roots/<root_id>/top", "GET", "get_top_comments"),
    ("/roots/<root_id>/search", "GET", "search_comments"),
    ("/users/<user_id>/comments", "GET", "get_comments_by_user"),
    ("/users/<user_id>/count", "GET", "get_user_comment_count"),
)

_DOC_SECTIONS = (
    (
        "Comment Operations",
        (
            ("POST", "/api/v1/comments", "Create a new comment", ""),
            ("GET", "/api/v1/comments/{id}", "Get a specific comment", ""),
            ("PUT", "/api/v1/comments/{id}", "Update a comment (requires ownership)", ""),
            ("DELETE", "/api/v1/comments/{id}", "Delete a comment (requires ownership)", ""),
            (
                "GET",
                "/api/v1/comments/{id}/children",
                "Get child comments (subtree) for a specific comment",
                "Query params: max_depth (default: 10)",
            ),
        ),
    ),
    (
        "Voting Operations",
        (
            ("POST", "/api/v1/comments/{id}/vote", 'Vote on a comment (body: {"vote_type": 1 or -1})', ""),
            ("DELETE", "/api/v1/comments/{id}/vote", "Remove vote from a comment", ""),
        ),
    ),
    (
        "Root-based Operations",
        (
            ("GET", "/api/v1/roots/{root_id}/comments", "Get comments for a specific root (with pagination)", ""),
            ("GET", "/api/v1/roots/{root_id}/tree", "Get hierarchical comment tree", ""),
            ("GET", "/api/v1/roots/{root_id}/stats", "Get comment statistics for a root", ""),
            ("GET", "/api/v1/roots/{root_id}/top", "Get top-rated comments within time range", ""),
            ("GET", "/api/v1/roots/{root_id}/search?q=query", "Search comments within a root", ""),
        ),
    ),
    (
        "User Operations",
        (
            ("GET", "/api/v1/users/{user_id}/comments", "Get comments by a specific user", ""),
            ("GET", "/api/v1/users/{user_id}/count", "Get comment count for a user", ""),
        ),
    ),
)

_QUERY_PARAMETERS = (
    ("limit", "Number of results (default: 50, max: 1000)"),
    ("offset", "Pagination offset"),
    ("sort_by", "Sort field (score, created_at, updated_at)"),
    ("sort_order", "Sort direction (asc, desc)"),
    ("max_depth", "Maximum comment depth for tree operations"),
)

_DOC_STYLE = """
        body { font-family: Arial, sans-serif; margin: 40px; }
        h1 { color: #333; }
        h2 { color: #666; margin-top: 30px; }
        .endpoint { background-color: #f5f5f5; padding: 10px; margin: 10px 0; border-radius: 5px; }
        .method { font-weight: bold; color: #2e7d32; }
        .path { color: #1565c0; }
        code { background-color: #e8e8e8; padding: 2px 5px; border-radius: 3px; }
"""


def build_url_map(prefix: str = DEFAULT_PREFIX, with_health: bool = True, with_docs: bool = True) -> Map:
    """Return the routing table of the API mounted under prefix."""
    base = prefix.rstrip("/")
    rules = [
        Rule(base + path, endpoint=endpoint, methods=[method])
        for path, method, endpoint in _API_ROUTES
    ]
    if with_health:
        rules.append(Rule("/health", endpoint="health", methods=["GET"]))
    if with_docs:
        rules.append(Rule("/", endpoint="docs", methods=["GET"]))
    return Map(rules)


def _json(status: int, payload: Any) -> Response:
    return Response(json.dumps(payload) + "\n", status=int(status), content_type="application/json")


def _rfc3339_now() -> str:
    text = datetime.now().astimezone().isoformat(timespec="seconds")
    return text[: -len("+00:00")] + "Z" if text.endswith("+00:00") else text


def health_check(request: Request) -> Response:
    """Report that the service is running."""
    return _json(
        HTTPStatus.OK,
        {
            "status": "healthy",
            "service": SERVICE_NAME,
            "version": "1.0.0",
            "timestamp": _rfc3339_now(),
        },
    )


def _mounted_health_check(request: Request) -> Response:
    return _json(
        HTTPStatus.OK,
        {
            "status": "healthy",
            "service": SERVICE_NAME,
            "version": "1.0.1",
            "timestamp": "2024-01-01T00:00:00Z",
        },
    )


def _endpoint_html(method: str, path: str, description: str, note: str) -> str:
    parts = [
        '    <div class="endpoint">',
        f'        <span class="method">{method}</span> <span class="path">{html.escape(path)}</span><br>',
        f"        {html.escape(description)}",
    ]
    if note:
        parts.append(f"        <br><small>{html.escape(note)}</small>")
    parts.append("    </div>")
    return "\n".join(parts)


def _documentation_page() -> str:
    lines = [
        "<!DOCTYPE html>",
        "<html>",
        "<head>",
        "    <title>Commentific API</title>",
        f"    <style>{_DOC_STYLE}    </style>",
        "</head>",
        "<body>",
        "    <h1>Commentific API Documentation</h1>",
        "    <p>A production-grade commenting system with infinite hierarchy support.</p>",
        "    <h2>Authentication</h2>",
        "    <p>Include user identification in requests using either:</p>",
        "    <ul>",
        "        <li>Header: <code>X-User-ID: your-user-id</code></li>",
        "        <li>Query parameter: <code>?user_id=your-user-id</code></li>",
        "    </ul>",
    ]
    for title, endpoints in _DOC_SECTIONS:
        lines.append(f"    <h2>{html.escape(title)}</h2>")
        lines.extend(_endpoint_html(*endpoint) for endpoint in endpoints)
    lines.append("    <h2>Query Parameters</h2>")
    lines.append("    <p>Most list endpoints support:</p>")
    lines.append("    <ul>")
    lines.extend(
        f"        <li><code>{name}</code> - {html.escape(text)}</li>" for name, text in _QUERY_PARAMETERS
    )
    lines.append("    </ul>")
    lines.append("    <h2>Health Check</h2>")
    lines.append(_endpoint_html("GET", "/health", "Service health status", ""))
    lines.append("</body>")
    lines.append("</html>")
    return "\n".join(lines)


def api_documentation(request: Request) -> Response:
    """Serve an HTML page describing the API."""
    return Response(_documentation_page(), status=HTTPStatus.OK, content_type="text/html")


class CommentificApp:
    """WSGI application dispatching requests to a CommentHandler."""

    def __init__(
        self,
        service: CommentService,
        url_map: Map | None = None,
        *,
        cors: bool = True,
        health: Callable[[Request], Response] = health_check,
    ) -> None:
        self.url_map = url_map if url_map is not None else build_url_map()
        self._cors = cors
        handler = CommentHandler(service)
        self._views: dict[str, Callable[..., Response]] = {
            endpoint: getattr(handler, endpoint) for _, _, endpoint in _API_ROUTES
        }
        self._views["health"] = health
        self._views["docs"] = api_documentation

    def _with_cors(self, response: Response) -> Response:
        if self._cors:
            response.headers.update(_CORS_HEADERS)
        return response

    def dispatch(self, request: Request) -> Response:
        """Route a request and return the response."""
        adapter = self.url_map.bind_to_environ(request.environ)
        if self._cors and request.method == "OPTIONS" and adapter.allowed_methods():
            return self._with_cors(Response(status=HTTPStatus.OK))
        try:
            endpoint, values = adapter.match()
        except HTTPException as exc:
            return exc.get_response(request.environ)
        return self._with_cors(self._views[endpoint](request, **values))

    def __call__(self, environ: dict[str, Any], start_response: Callable[..., Any]) -> Iterable[bytes]:
        response = self.dispatch(Request(environ))
        return response(environ, start_response)


def create_app(service: CommentService, prefix: str = DEFAULT_PREFIX) -> CommentificApp:
    """Return the standalone application: API, health check, documentation and CORS."""
    return CommentificApp(service, build_url_map(prefix, with_health=True, with_docs=True))


def create_mountable_app(service: CommentService, prefix: str | None = None) -> CommentificApp:
    """Return an application meant to be mounted inside a host application.

    With no prefix the API sits under /api/v1 and a health check is added;
    with a custom prefix only the API routes are served.
    """
    if prefix is None:
        url_map = build_url_map(DEFAULT_PREFIX, with_health=True, with_docs=False)
    else:
        url_map = build_url_map(prefix, with_health=False, with_docs=False)
    return CommentificApp(service, url_map, cors=False, health=_mounted_health_check)