import pytest

from tasklist_engine.dispatch import dispatch
from tasklist_engine.domain import ResourceContent, ResourceRequest
from tasklist_engine.errors import ResultKind, StoreError


def test_success_carries_payload(tasklists):
    result = dispatch(tasklists.create, "a@x.com", ResourceContent(name="groceries"))

    assert result.ok
    assert result.kind is ResultKind.SUCCESS
    assert result.payload == "groceries"


@pytest.mark.parametrize(
    "call, kind",
    [
        (lambda w: w.create("a@x.com", ResourceContent()), ResultKind.INVALID_ARGUMENT),
        (lambda w: w.query(ResourceRequest("a@x.com", "missing")), ResultKind.NOT_FOUND),
        (lambda w: w.delete(ResourceRequest("a@x.com", "missing")), ResultKind.NOT_FOUND),
    ],
)
def test_failures_are_classified(tasklists, call, kind):
    result = dispatch(call, tasklists)

    assert not result.ok
    assert result.kind is kind
    assert result.detail


def test_conflict_is_classified(tasklists):
    for _ in range(5):
        tasklists.create("a@x.com", ResourceContent(name="x"))

    result = dispatch(tasklists.create, "a@x.com", ResourceContent(name="x"))
    assert result.kind is ResultKind.CONFLICT


def test_store_error_is_classified_and_logged(caplog):
    def broken():
        raise StoreError("disk on fire")

    result = dispatch(broken)

    assert result.kind is ResultKind.STORE_ERROR
    assert result.detail == "disk on fire"
    assert "store failure" in caplog.text


def test_unclassified_errors_propagate():
    def buggy():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        dispatch(buggy)
