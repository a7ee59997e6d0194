from datetime import timezone

import pytest

from commentific.errors import NotFoundError, RepositoryError, ValidationError
from commentific.models import Comment, CommentFilter, UpdateCommentRequest, VoteType
from commentific.sqlstore import SQLiteProvider, SQLiteRepository, build_comment_tree

OLD_TIME = "2000-01-01T00:00:00.000000Z"


@pytest.fixture
def provider():
    store = SQLiteProvider(":memory:")
    store.create_schema()
    yield store
    store.close()


@pytest.fixture
def repo(provider):
    return provider.get_comment_repository()


def make(repo, root="root-1", user="user-1", content="hello", parent=None):
    return repo.create_comment(Comment(root_id=root, user_id=user, content=content, parent_id=parent))


def age(provider, comment_id, column):
    provider.connection.execute(f"UPDATE comments SET {column} = ? WHERE id = ?", (OLD_TIME, comment_id))


def test_create_root_comment_sets_path_and_depth(repo):
    comment = make(repo)
    assert comment.id
    assert comment.depth == 0
    assert comment.path == comment.id
    stored = repo.get_comment_by_id(comment.id)
    assert stored.content == "hello"
    assert stored.created_at == comment.created_at
    assert stored.created_at.tzinfo == timezone.utc


def test_create_reply_extends_parent_path(repo):
    parent = make(repo)
    child = make(repo, user="user-2", parent=parent.id)
    assert child.depth == parent.depth + 1
    assert child.path == parent.path + "." + child.id
    assert repo.get_comment_by_id(child.id).parent_id == parent.id


def test_reply_to_other_root_is_rejected(repo):
    parent = make(repo)
    with pytest.raises(ValidationError):
        make(repo, root="root-2", parent=parent.id)


def test_reply_to_missing_parent(repo):
    with pytest.raises(NotFoundError) as info:
        make(repo, parent="missing")
    assert str(info.value).startswith("failed to get parent comment")


def test_get_missing_comment(repo):
    with pytest.raises(NotFoundError):
        repo.get_comment_by_id("missing")


def test_update_comment_fields(repo):
    comment = make(repo)
    repo.update_comment(comment.id, UpdateCommentRequest(content="changed", link_url="https://example.com"))
    stored = repo.get_comment_by_id(comment.id)
    assert stored.content == "changed"
    assert stored.link_url == "https://example.com"
    assert stored.media_url is None


def test_update_with_nothing_leaves_comment(repo):
    comment = make(repo)
    repo.update_comment(comment.id, UpdateCommentRequest())
    assert repo.get_comment_by_id(comment.id).updated_at == comment.updated_at


def test_update_missing_comment(repo):
    with pytest.raises(NotFoundError):
        repo.update_comment("missing", UpdateCommentRequest(content="x"))


def test_delete_by_owner_hides_comment(repo):
    comment = make(repo)
    repo.delete_comment(comment.id, comment.user_id)
    with pytest.raises(NotFoundError):
        repo.get_comment_by_id(comment.id)
    with pytest.raises(NotFoundError):
        repo.delete_comment(comment.id, comment.user_id)


def test_delete_by_other_user_fails(repo):
    comment = make(repo)
    with pytest.raises(NotFoundError):
        repo.delete_comment(comment.id, "intruder")
    assert repo.get_comment_by_id(comment.id).id == comment.id


def test_get_comments_sorting_and_paging(repo):
    first = make(repo, content="a")
    second = make(repo, content="b")
    third = make(repo, content="c")
    repo.update_vote(first.id, "voter-1", VoteType.UP)
    repo.update_vote(first.id, "voter-2", VoteType.UP)
    repo.update_vote(second.id, "voter-1", VoteType.DOWN)

    by_score = repo.get_comments(CommentFilter(root_id="root-1", sort_by="score"))
    assert [c.id for c in by_score] == [first.id, third.id, second.id]

    ascending = repo.get_comments(CommentFilter(root_id="root-1", sort_by="score", sort_order="asc"))
    assert [c.id for c in ascending] == [second.id, third.id, first.id]

    page = repo.get_comments(CommentFilter(root_id="root-1", sort_by="score", limit=1, offset=1))
    assert [c.id for c in page] == [third.id]

    skipped = repo.get_comments(CommentFilter(root_id="root-1", sort_by="score", offset=2))
    assert [c.id for c in skipped] == [second.id]


def test_get_comments_filters_by_user_and_root(repo):
    mine = make(repo, user="me")
    make(repo, user="someone")
    make(repo, root="root-2", user="me")
    comment_filter = CommentFilter()
    by_root = repo.get_comments_by_root_id("root-1", comment_filter)
    assert comment_filter.root_id == "root-1"
    assert len(by_root) == 2
    by_user = repo.get_comments_by_user_id("me", CommentFilter(root_id="root-1"))
    assert [c.id for c in by_user] == [mine.id]


def test_children_respect_depth(repo):
    top = make(repo)
    child = make(repo, parent=top.id)
    grandchild = make(repo, parent=child.id)
    all_children = repo.get_comment_children(top.id, 10)
    assert [c.id for c in all_children] == [child.id, grandchild.id]
    shallow = repo.get_comment_children(top.id, 1)
    assert [c.id for c in shallow] == [child.id]


def test_children_of_missing_comment(repo):
    with pytest.raises(NotFoundError):
        repo.get_comment_children("missing", 5)


def test_comment_tree_structure(repo):
    top = make(repo)
    child = make(repo, parent=top.id)
    grandchild = make(repo, parent=child.id)
    other = make(repo)
    trees = repo.get_comment_tree("root-1", 10, "created_at")
    assert {tree.comment.id for tree in trees} == {top.id, other.id}
    top_tree = next(tree for tree in trees if tree.comment.id == top.id)
    assert [node.comment.id for node in top_tree.children] == [child.id]
    assert [node.comment.id for node in top_tree.children[0].children] == [grandchild.id]

    limited = repo.get_comment_tree("root-1", 1, "created_at")
    limited_top = next(tree for tree in limited if tree.comment.id == top.id)
    assert limited_top.children[0].children == []


def test_build_comment_tree_drops_orphans():
    root = Comment(id="a")
    reply = Comment(id="b", parent_id="a")
    orphan = Comment(id="c", parent_id="gone")
    trees = build_comment_tree([root, reply, orphan])
    assert len(trees) == 1
    assert trees[0].comment is root
    assert [node.comment for node in trees[0].children] == [reply]


def test_comment_path(repo):
    top = make(repo)
    child = make(repo, parent=top.id)
    grandchild = make(repo, parent=child.id)
    assert [c.id for c in repo.get_comment_path(grandchild.id)] == [top.id, child.id, grandchild.id]


def test_vote_lifecycle_updates_score(repo):
    comment = make(repo)
    repo.update_vote(comment.id, "voter", VoteType.UP)
    assert repo.get_user_vote(comment.id, "voter").vote_type == VoteType.UP
    stored = repo.get_comment_by_id(comment.id)
    assert (stored.upvotes, stored.downvotes, stored.score) == (1, 0, 1)

    repo.update_vote(comment.id, "voter", VoteType.DOWN)
    votes = repo.get_comment_votes(comment.id)
    assert [v.vote_type for v in votes] == [VoteType.DOWN]
    assert repo.get_comment_by_id(comment.id).score == -1

    repo.delete_vote(comment.id, "voter")
    assert repo.get_user_vote(comment.id, "voter") is None
    assert repo.get_comment_by_id(comment.id).score == 0


def test_vote_on_missing_comment_fails(repo):
    with pytest.raises(RepositoryError):
        repo.update_vote("", "voter", VoteType.UP)


def test_comments_with_user_votes(repo):
    voted = make(repo)
    plain = make(repo)
    repo.update_vote(voted.id, "voter", VoteType.UP)
    repo.update_vote(plain.id, "someone-else", VoteType.UP)
    comments, votes = repo.get_comments_with_user_votes("root-1", "voter", CommentFilter(limit=50))
    assert {c.id for c in comments} == {voted.id, plain.id}
    assert list(votes) == [voted.id]
    assert votes[voted.id].user_id == "voter"
    assert votes[voted.id].vote_type == VoteType.UP


def test_comment_stats(repo, provider):
    top = make(repo)
    child = make(repo, parent=top.id)
    old = make(repo)
    age(provider, old.id, "created_at")
    repo.update_vote(top.id, "voter", VoteType.UP)
    stats = repo.get_comment_stats("root-1")
    created = [top, child, old]
    assert stats.total_count == len(created)
    assert stats.total_score == sum(repo.get_comment_by_id(c.id).score for c in created)
    assert stats.max_depth == child.depth
    assert stats.recent_count == len(created) - 1


def test_user_comment_count(repo):
    make(repo, user="me")
    gone = make(repo, user="me")
    make(repo, user="other")
    repo.delete_comment(gone.id, "me")
    assert repo.get_user_comment_count("me") == 1


def test_top_comments_by_time_range(repo, provider):
    best = make(repo)
    fresh = make(repo)
    old = make(repo)
    age(provider, old.id, "created_at")
    repo.update_vote(best.id, "voter", VoteType.UP)
    repo.update_vote(old.id, "voter", VoteType.UP)
    repo.update_vote(old.id, "voter-2", VoteType.UP)

    recent = repo.get_top_comments("root-1", 10, "day")
    assert [c.id for c in recent] == [best.id, fresh.id]
    everything = repo.get_top_comments("root-1", 10, "all")
    assert [c.id for c in everything] == [old.id, best.id, fresh.id]
    assert len(repo.get_top_comments("root-1", 1, "all")) == 1


def test_purge_deleted_comments(repo, provider):
    keep = make(repo)
    gone = make(repo)
    fresh_deleted = make(repo)
    repo.delete_comment(gone.id, gone.user_id)
    repo.delete_comment(fresh_deleted.id, fresh_deleted.user_id)
    age(provider, gone.id, "updated_at")
    assert repo.purge_deleted_comments(30) == 1
    assert repo.purge_deleted_comments(30) == 0
    assert repo.get_comment_by_id(keep.id).id == keep.id


def test_recalculate_and_update_scores(repo, provider):
    first = make(repo)
    second = make(repo)
    repo.update_vote(first.id, "voter", VoteType.UP)
    repo.update_vote(second.id, "voter", VoteType.DOWN)
    provider.connection.execute("UPDATE comments SET upvotes = 7, downvotes = 7, score = 7")

    repo.update_comment_scores([first.id])
    assert repo.get_comment_by_id(first.id).score == 1
    assert repo.get_comment_by_id(second.id).score == 7

    repo.recalculate_comment_scores()
    assert repo.get_comment_by_id(second.id).score == -1


def test_transaction_rollback_and_commit(repo):
    tx = repo.begin_tx()
    assert isinstance(tx, SQLiteRepository)
    discarded = make(tx)
    tx.rollback_tx()
    with pytest.raises(NotFoundError):
        repo.get_comment_by_id(discarded.id)

    tx = repo.begin_tx()
    kept = make(tx)
    tx.commit_tx()
    assert repo.get_comment_by_id(kept.id).id == kept.id


def test_transaction_misuse(repo):
    with pytest.raises(RepositoryError):
        repo.commit_tx()
    with pytest.raises(RepositoryError):
        repo.rollback_tx()
    tx = repo.begin_tx()
    with pytest.raises(RepositoryError):
        repo.begin_tx()
    tx.rollback_tx()
    with pytest.raises(RepositoryError):
        tx.commit_tx()


def test_migrate_requires_schema():
    with SQLiteProvider(":memory:") as store:
        with pytest.raises(RepositoryError) as info:
            store.migrate()
        assert "comments table does not exist" in str(info.value)
        store.create_schema()
        store.migrate()
        assert store.get_comment_repository().get_user_comment_count("anyone") == 0


def test_health_fails_after_close():
    store = SQLiteProvider(":memory:")
    store.close()
    with pytest.raises(RepositoryError):
        store.health()


def test_file_database_persists(tmp_path):
    path = tmp_path / "comments.db"
    with SQLiteProvider(path) as store:
        store.create_schema()
        comment = make(store.get_comment_repository(), content="kept on disk")
    with SQLiteProvider(path) as store:
        assert store.get_comment_repository().get_comment_by_id(comment.id).content == "kept on disk"