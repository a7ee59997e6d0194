"""Command-line entry point that serves the comment API over HTTP."""

from __future__ import annotations

import argparse
import logging
import os
import signal
import sqlite3
import threading
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass

from werkzeug.serving import make_server

from .app import create_app
from .errors import RepositoryError
from .models import CommentTree
from .service import CommentService
from .sqlstore import SQLiteProvider

DEFAULT_DATABASE_URL = "commentific.db"
DEFAULT_PORT = "8080"
DEFAULT_ENVIRONMENT = "development"
_SQLITE_SCHEME = "sqlite://"

log = logging.getLogger("commentific")


@dataclass
class Config:
    """Settings the server starts with."""

    database_url: str = DEFAULT_DATABASE_URL
    port: str = DEFAULT_PORT
    environment: str = DEFAULT_ENVIRONMENT


def _get_env(environ: Mapping[str, str], key: str, default: str) -> str:
    return environ.get(key) or default


def load_config(environ: Mapping[str, str] | None = None) -> Config:
    """Read settings from the environment; unset or empty variables take defaults."""
    if environ is None:
        environ = os.environ
    return Config(
        database_url=_get_env(environ, "DATABASE_URL", DEFAULT_DATABASE_URL),
        port=_get_env(environ, "PORT", DEFAULT_PORT),
        environment=_get_env(environ, "ENVIRONMENT", DEFAULT_ENVIRONMENT),
    )


def _database_path(database_url: str) -> str:
    """Turn a plain path or an sqlite:// URL into a path sqlite3 can open."""
    if database_url.startswith(_SQLITE_SCHEME):
        rest = database_url[len(_SQLITE_SCHEME):]
        if rest.startswith("/"):
            rest = rest[1:]
        return rest or ":memory:"
    return database_url


def _table_exists(provider: SQLiteProvider, name: str) -> bool:
    try:
        row = provider.connection.execute(
            "SELECT EXISTS (SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?)",
            (name,),
        ).fetchone()
    except sqlite3.Error as exc:
        raise RepositoryError(f"failed to check {name} table: {exc}") from exc
    return bool(row[0])


def check_database_schema(provider: SQLiteProvider) -> None:
    """Raise RepositoryError unless the comments and votes tables exist."""
    for table in ("comments", "votes"):
        if not _table_exists(provider, table):
            raise RepositoryError(f"{table} table does not exist")
    log.info("Database schema check passed")


def setup_database(database_url: str) -> SQLiteProvider:
    """Open the database, check it answers, and warn if the schema is missing."""
    try:
        provider = SQLiteProvider(_database_path(database_url))
    except sqlite3.Error as exc:
        raise RepositoryError(f"failed to open database: {exc}") from exc

    try:
        provider.health()
    except RepositoryError as exc:
        provider.close()
        raise RepositoryError(f"failed to ping database: {exc}") from exc

    log.info("Database connection established")

    try:
        check_database_schema(provider)
    except RepositoryError as exc:
        log.warning("Warning: Database schema check failed: %s", exc)
        log.warning("Create the schema first, for example with --create-schema")

    return provider


def create_comment_service(provider: SQLiteProvider) -> CommentService:
    """Build a comment service over the provider's repository."""
    return CommentService(provider.get_comment_repository())


def print_tree(nodes: Iterable[CommentTree], depth: int = 0) -> None:
    """Print comment trees as an indented outline with scores."""
    indent = "  " * depth
    for node in nodes:
        print(f"{indent}- {node.comment.content} (Score: {node.comment.score})")
        print_tree(node.children, depth + 1)


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="commentific", description="Serve the comment API.")
    parser.add_argument("--database", help="database path or sqlite:// URL (overrides DATABASE_URL)")
    parser.add_argument("--port", help="port to listen on (overrides PORT)")
    parser.add_argument(
        "--create-schema",
        action="store_true",
        help="create the comments and votes tables if they are missing",
    )
    return parser.parse_args(argv)


def _wait_for_signal() -> None:
    stop = threading.Event()

    def _request_stop(signum: int, frame: object) -> None:
        stop.set()

    previous = {
        sig: signal.signal(sig, _request_stop) for sig in (signal.SIGINT, signal.SIGTERM)
    }
    try:
        while not stop.wait(0.5):
            pass
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


def main(argv: Sequence[str] | None = None) -> int:
    """Start the server and run until interrupted; return the exit status."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")
    args = _parse_args(argv)
    log.info("Starting Commentific service...")

    config = load_config()
    if args.database:
        config.database_url = args.database
    if args.port:
        config.port = args.port

    try:
        provider = setup_database(config.database_url)
    except RepositoryError as exc:
        log.critical("Failed to setup database: %s", exc)
        return 1

    try:
        if args.create_schema:
            provider.create_schema()
            check_database_schema(provider)

        app = create_app(create_comment_service(provider))
        try:
            server = make_server("0.0.0.0", int(config.port), app, threaded=True)
        except (OSError, ValueError) as exc:
            log.critical("Server failed to start: %s", exc)
            return 1

        log.info("Starting server on port %s", config.port)
        log.info("Environment: %s", config.environment)
        log.info("API documentation available at: http://localhost:%s/", config.port)
        log.info("Health check available at: http://localhost:%s/health", config.port)

        worker = threading.Thread(target=server.serve_forever, daemon=True)
        worker.start()
        _wait_for_signal()

        log.info("Shutting down server...")
        server.shutdown()
        worker.join(timeout=30)
        server.server_close()
    except RepositoryError as exc:
        log.critical("Failed to prepare database: %s", exc)
        return 1
    finally:
        provider.close()

    log.info("Server shutdown complete")
    return 0