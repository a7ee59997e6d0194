from datetime import datetime, timezone

import pytest

from commentific.models import (
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

MOMENT = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _comment(comment_id="c1", parent_id=None):
    return Comment(
        id=comment_id,
        root_id="product-123",
        user_id="user-456",
        content="This is a great product!",
        parent_id=parent_id,
        created_at=MOMENT,
        updated_at=MOMENT,
    )


def test_comment_to_dict_fields():
    data = _comment().to_dict()
    assert data["id"] == "c1"
    assert data["root_id"] == "product-123"
    assert data["parent_id"] is None
    assert data["media_url"] is None
    assert data["is_deleted"] is False
    assert data["created_at"] == "2024-01-01T00:00:00Z"
    assert data["updated_at"] == data["created_at"]


def test_comment_to_dict_key_order_starts_with_id():
    keys = list(_comment().to_dict())
    assert keys[0] == "id"
    assert keys[-1] == "updated_at"


def test_tree_without_children_omits_key():
    tree = CommentTree(comment=_comment())
    assert "children" not in tree.to_dict()


def test_tree_with_children_is_nested():
    child = CommentTree(comment=_comment("c2", parent_id="c1"))
    tree = CommentTree(comment=_comment(), children=[child])
    data = tree.to_dict()
    assert data["children"][0]["comment"]["id"] == "c2"
    assert data["children"][0]["comment"]["parent_id"] == "c1"


def test_create_request_from_dict():
    req = CreateCommentRequest.from_dict(
        {"root_id": "r", "user_id": "u", "content": "hello", "parent_id": None, "link_url": "https://example.com"}
    )
    assert req == CreateCommentRequest(root_id="r", user_id="u", content="hello", link_url="https://example.com")


def test_create_request_missing_fields_are_empty():
    req = CreateCommentRequest.from_dict({"content": "hi"})
    assert req.root_id == ""
    assert req.user_id == ""
    assert req.parent_id is None


@pytest.mark.parametrize("payload", [[], "text", {"content": 5}, {"parent_id": 3}])
def test_create_request_rejects_bad_json(payload):
    with pytest.raises(ValueError):
        CreateCommentRequest.from_dict(payload)


def test_update_request_from_dict_partial():
    req = UpdateCommentRequest.from_dict({"content": "new text"})
    assert req.content == "new text"
    assert req.media_url is None
    assert req.link_url is None


def test_update_request_rejects_wrong_type():
    with pytest.raises(ValueError):
        UpdateCommentRequest.from_dict({"media_url": ["x"]})


def test_vote_request_parses_down_vote():
    req = VoteRequest.from_dict({"user_id": "u", "vote_type": -1})
    assert req.vote_type == VoteType.DOWN
    assert req.user_id == "u"


def test_vote_request_keeps_unknown_integer():
    req = VoteRequest.from_dict({"vote_type": 7})
    assert req.vote_type == 7


@pytest.mark.parametrize("value", [True, 1.5, "1"])
def test_vote_request_rejects_non_integer(value):
    with pytest.raises(ValueError):
        VoteRequest.from_dict({"vote_type": value})


def test_vote_to_dict_uses_integer_type():
    vote = Vote(comment_id="c1", user_id="u", vote_type=VoteType.UP, id="v1", created_at=MOMENT, updated_at=MOMENT)
    data = vote.to_dict()
    assert data["vote_type"] == 1
    assert data["comment_id"] == "c1"
    assert data["created_at"] == "2024-01-01T00:00:00Z"


def test_stats_to_dict_round_trips_values():
    stats = CommentStats(root_id="r", total_count=3, total_score=2, max_depth=1, recent_count=3)
    assert stats.to_dict() == {
        "root_id": "r",
        "total_count": 3,
        "total_score": 2,
        "max_depth": 1,
        "recent_count": 3,
    }


def test_filter_defaults_are_unset():
    f = CommentFilter()
    assert (f.limit, f.offset, f.sort_by, f.sort_order) == (None, None, "", "")