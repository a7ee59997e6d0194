"""Threaded comments with voting and scoring, SQLite storage and a JSON WSGI API."""

__version__ = "1.0.1"

__all__ = ["__version__"]