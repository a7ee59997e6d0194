import pytest

from commentific.repository import CommentRepository, RepositoryProvider


def _implementation(base, skip=None):
    namespace = {
        name: (lambda self, *args, _name=name: _name)
        for name in base.__abstractmethods__
        if name != skip
    }
    return type(f"Concrete{base.__name__}", (base,), namespace)


@pytest.mark.parametrize("base", [CommentRepository, RepositoryProvider])
def test_interface_cannot_be_instantiated(base):
    with pytest.raises(TypeError) as excinfo:
        base()
    assert base.__name__ in str(excinfo.value)


@pytest.mark.parametrize("base", [CommentRepository, RepositoryProvider])
def test_complete_implementation_dispatches_every_method(base):
    instance = _implementation(base)()
    for name in base.__abstractmethods__:
        assert getattr(instance, name)() == name


@pytest.mark.parametrize("base", [CommentRepository, RepositoryProvider])
def test_missing_method_is_rejected(base):
    missing = sorted(base.__abstractmethods__)[0]
    with pytest.raises(TypeError) as excinfo:
        _implementation(base, skip=missing)()
    assert missing in str(excinfo.value)


@pytest.mark.parametrize("name", ["begin_tx", "commit_tx", "rollback_tx"])
def test_repository_declares_transaction_methods(name):
    with pytest.raises(TypeError) as direct:
        CommentRepository()
    assert "CommentRepository" in str(direct.value)
    assert name in CommentRepository.__abstractmethods__
    instance = _implementation(CommentRepository)()
    assert getattr(instance, name)() == name
    with pytest.raises(TypeError) as excinfo:
        _implementation(CommentRepository, skip=name)()
    assert name in str(excinfo.value)


def test_provider_declares_repository_factory():
    with pytest.raises(TypeError) as direct:
        RepositoryProvider()
    assert "RepositoryProvider" in str(direct.value)
    assert "get_comment_repository" in RepositoryProvider.__abstractmethods__
    instance = _implementation(RepositoryProvider)()
    assert instance.get_comment_repository() == "get_comment_repository"
    with pytest.raises(TypeError) as excinfo:
        _implementation(RepositoryProvider, skip="get_comment_repository")()
    assert "get_comment_repository" in str(excinfo.value)