import pickle

import pytest

from commentific.errors import (
    CommentificError,
    NotAuthorizedError,
    NotFoundError,
    RepositoryError,
    SelfVoteError,
    ValidationError,
)


def test_validation_error_is_value_error():
    err = ValidationError("invalid media URL")
    assert isinstance(err, ValueError)
    assert str(err) == "invalid media URL"


def test_not_found_is_lookup_error():
    err = NotFoundError("comment not found")
    assert isinstance(err, LookupError)
    assert str(err) == "comment not found"


def test_self_vote_is_not_authorized():
    err = SelfVoteError("users cannot vote on their own comments")
    assert isinstance(err, NotAuthorizedError)
    assert "cannot vote on their own" in str(err)


@pytest.mark.parametrize(
    "cls", [ValidationError, NotFoundError, NotAuthorizedError, SelfVoteError, RepositoryError]
)
def test_all_errors_share_base(cls):
    err = cls("boom")
    assert isinstance(err, CommentificError)
    assert err.args == ("boom",)


def test_message_is_preserved():
    assert str(RepositoryError("failed to create comment")) == "failed to create comment"


def test_pickle_round_trip():
    restored = pickle.loads(pickle.dumps(NotFoundError("comment not found")))
    assert type(restored) is NotFoundError
    assert restored.args == ("comment not found",)