# commentific

A commenting backend with unlimited reply nesting, up/down voting and
scoring, usable as a Python library or served as a JSON HTTP API over WSGI.
Comments are stored in SQLite.

Comments belong to a *root* — any entity of yours, such as a post or a
product — and may reply to other comments of the same root. Each comment
keeps its depth and a materialised path (`parent.path + "." + id`), so whole
threads, subtrees and the chain of ancestors can be read cheaply. Deleting a
comment is a soft delete; deleted comments disappear from every query.

## Installing

```
pip install .
```

For the test suite:

```
pip install ".[test]"
pytest
```

## Running the server

The first time, create the tables:

```
commentific --create-schema
```

After that:

```
commentific
```

Options:

| Option            | Meaning |
|-------------------|---------|
| `--database`      | database path or `sqlite://` URL, overriding `DATABASE_URL` |
| `--port`          | port to listen on, overriding `PORT` |
| `--create-schema` | create the `comments` and `votes` tables if they are missing |

Settings otherwise come from the environment (unset or empty variables take
the default):

| Variable       | Meaning                                   | Default          |
|----------------|-------------------------------------------|------------------|
| `DATABASE_URL` | SQLite file path or `sqlite:///path` URL  | `commentific.db` |
| `PORT`         | port to listen on (all interfaces)        | `8080`           |
| `ENVIRONMENT`  | label logged at start-up                  | `development`    |

If the tables are missing at start-up a warning is logged and the server
runs anyway. `GET /` serves an HTML page describing the API and
`GET /health` reports the service status. The server stops cleanly on
Ctrl-C or SIGTERM.

## HTTP API

Users identify themselves with an `X-User-ID` header or a `user_id` query
parameter.

| Method | Path | Purpose |
|--------|------|---------|
| POST   | `/api/v1/comments` | create a comment |
| GET    | `/api/v1/comments/{id}` | fetch a comment |
| PUT    | `/api/v1/comments/{id}` | edit a comment (owner only) |
| DELETE | `/api/v1/comments/{id}` | soft-delete a comment (owner only) |
| GET    | `/api/v1/comments/{id}/path` | ancestors down to the comment |
| GET    | `/api/v1/comments/{id}/children` | the comment's subtree (`max_depth`, default 10) |
| POST   | `/api/v1/comments/{id}/vote` | vote, body `{"vote_type": 1}` or `-1`; not on your own comment |
| DELETE | `/api/v1/comments/{id}/vote` | withdraw a vote |
| GET    | `/api/v1/roots/{root_id}/comments` | comments of a root |
| GET    | `/api/v1/roots/{root_id}/comments/with-votes` | comments plus the caller's votes |
| GET    | `/api/v1/roots/{root_id}/tree` | nested comment tree (`max_depth`, `sort_by`) |
| GET    | `/api/v1/roots/{root_id}/stats` | count, total score, maximum depth, comments in the last 24 hours |
| GET    | `/api/v1/roots/{root_id}/top` | best comments (`limit`, `time_range`: hour, day, week, month, all) |
| GET    | `/api/v1/roots/{root_id}/search?q=...` | case-insensitive text search, at least 3 characters |
| GET    | `/api/v1/users/{user_id}/comments` | a user's comments |
| GET    | `/api/v1/users/{user_id}/count` | a user's comment count |

List endpoints accept `limit` (default 50, at most 1000), `offset`,
`sort_by` (`score`, `created_at`, `updated_at`), `sort_order` (`asc`,
`desc`), `max_depth` and `parent_id`. Tree depth is capped at 50 and the
top-comments limit at 100.

The API endpoints answer with JSON of the form
`{"success": true, "data": ...}` or `{"success": false, "error": "..."}`;
list endpoints add `"pagination": {"limit": ..., "offset": ...}` when both
were given. Every response of the standalone application carries permissive
CORS headers, and `OPTIONS` requests to known paths are answered directly.

## Using it as a library

```python
from commentific.sqlstore import SQLiteProvider
from commentific.service import CommentService
from commentific.models import CreateCommentRequest, VoteType

provider = SQLiteProvider("comments.db")
provider.create_schema()
service = CommentService(provider.get_comment_repository())

post = service.create_comment(CreateCommentRequest(
    root_id="product-123", user_id="user-456", content="Great product!",
))
reply = service.create_comment(CreateCommentRequest(
    root_id="product-123", parent_id=post.id,
    user_id="user-789", content="Agreed.",
))
service.vote_comment(post.id, "user-789", VoteType.UP)

for node in service.get_comment_tree("product-123", 10, "score"):
    print(node.comment.content, len(node.children))
```

`SQLiteProvider()` with no argument opens an in-memory database, and it can
be used as a context manager to close the connection afterwards.
`CommentService` takes an optional `CommentServiceConfig` to change the
maximum comment length, tree depth, batch size and page sizes.
`commentific.sqlstore.build_comment_tree` arranges a flat list of comments
into `CommentTree` nodes.

Failures raise exceptions from `commentific.errors`: `ValidationError`,
`NotFoundError`, `NotAuthorizedError`, `SelfVoteError` and `RepositoryError`,
all derived from `CommentificError`.

## Embedding in another WSGI application

`commentific.app.create_app(service, prefix)` returns a complete WSGI
application (`CommentificApp`) with the API under `prefix` (default
`/api/v1`), the documentation page, the health check and CORS headers.

`commentific.app.create_mountable_app(service, prefix)` returns an
application without CORS headers or documentation page, for mounting beside
your own routes. With no prefix it serves the API under `/api/v1` plus a
`/health` route; with a prefix it serves only the API routes under it.

`commentific.handlers.CommentHandler` exposes each endpoint as a method
taking a werkzeug `Request` (and the path value), should you prefer to wire
the routes yourself.

## What it does not do

- The only storage included is SQLite. Any other database needs your own
  implementation of `commentific.repository.CommentRepository`.
- There is no migration tool; `--create-schema` (or
  `SQLiteProvider.create_schema()`) creates missing tables and nothing more.
- There is no authentication. The user id in `X-User-ID` or `user_id` is
  trusted as given.