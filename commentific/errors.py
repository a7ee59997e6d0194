"""Exceptions raised by the comment service and its repositories."""


class CommentificError(Exception):
    """Base class for all errors of this package."""


class ValidationError(CommentificError, ValueError):
    """A request is missing data or holds data that is not allowed."""


class NotFoundError(CommentificError, LookupError):
    """The requested comment does not exist or has been deleted."""


class NotAuthorizedError(CommentificError):
    """The user may not perform the operation on this comment."""


class SelfVoteError(NotAuthorizedError):
    """A user tried to vote on their own comment."""


class RepositoryError(CommentificError):
    """The storage layer failed."""