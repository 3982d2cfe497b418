from concurrent.futures import ThreadPoolExecutor

import pytest

from tasklist_engine.domain import ResourceContent, ResourceRequest
from tasklist_engine.errors import Conflict, InvalidArgument, NotFound
from tasklist_engine.tasks import TaskWorker

OWNER = "a@x.com"


@pytest.fixture
def groceries(tasklists):
    return tasklists.create(OWNER, ResourceContent(name="groceries"))


def task(name="milk", body="2 litres", timestamp="2024-05-01"):
    return ResourceContent(name, body, timestamp)


def req(item_key="", list_key="groceries", owner=OWNER):
    return ResourceRequest(owner, list_key, item_key)


def test_create_then_query_round_trips(tasks, groceries):
    assigned = tasks.create(req(), task())

    assert assigned == "milk"
    assert tasks.query(req("milk")) == task()


def test_create_in_missing_list_writes_nothing(tasks, store):
    with pytest.raises(NotFound):
        tasks.create(req(list_key="missing"), task())
    assert store.scan_prefix("task/") == []


def test_create_requires_name(tasks, groceries):
    with pytest.raises(InvalidArgument):
        tasks.create(req(), ResourceContent(body="no name"))


def test_create_requires_list_key(tasks):
    with pytest.raises(InvalidArgument):
        tasks.create(req(list_key=""), task())


def test_duplicate_tasks_get_suffixes(tasks, groceries):
    assert tasks.create(req(), task()) == "milk"
    assert tasks.create(req(), task(body="oat")) == "milk-2"
    assert tasks.create(req(), task(body="soy")) == "milk-3"

    assert tasks.get_all_tasks_name(req()) == ["milk", "milk-2", "milk-3"]
    assert tasks.query(req("milk-2")).body == "oat"


def test_name_budget_exhausted_is_conflict(tasks, groceries):
    for _ in range(5):
        tasks.create(req(), task())
    with pytest.raises(Conflict):
        tasks.create(req(), task())


def test_same_task_name_in_different_lists(tasks, tasklists, groceries):
    tasklists.create(OWNER, ResourceContent(name="hardware"))

    assert tasks.create(req(), task()) == "milk"
    assert tasks.create(req(list_key="hardware"), task()) == "milk"
    assert tasks.get_all_tasks_name(req(list_key="hardware")) == ["milk"]


def test_list_tasks_of_missing_list_is_not_found(tasks):
    with pytest.raises(NotFound):
        tasks.get_all_tasks_name(req(list_key="missing"))


def test_list_tasks_of_empty_list(tasks, groceries):
    assert tasks.get_all_tasks_name(req()) == []


def test_other_owner_cannot_see_tasks(tasks, groceries):
    tasks.create(req(), task())

    with pytest.raises(NotFound):
        tasks.query(req("milk", owner="b@x.com"))
    with pytest.raises(NotFound):
        tasks.get_all_tasks_name(req(owner="b@x.com"))


def test_query_missing_task_is_not_found(tasks, groceries):
    with pytest.raises(NotFound):
        tasks.query(req("eggs"))


def test_revise_partial_update(tasks, groceries):
    tasks.create(req(), task())

    tasks.revise(req("milk"), ResourceContent(body="1 litre"))
    assert tasks.query(req("milk")) == task(body="1 litre")

    tasks.revise(req("milk"), ResourceContent(timestamp="2024-05-02"))
    assert tasks.query(req("milk")) == task(body="1 litre", timestamp="2024-05-02")


def test_revise_rename_is_rejected(tasks, groceries):
    tasks.create(req(), task())

    with pytest.raises(InvalidArgument):
        tasks.revise(req("milk"), ResourceContent(name="cream", body="x"))
    assert tasks.query(req("milk")) == task()


def test_revise_missing_task_is_not_found(tasks, groceries):
    with pytest.raises(NotFound):
        tasks.revise(req("eggs"), ResourceContent(body="12"))


def test_delete_then_query_is_not_found(tasks, groceries):
    tasks.create(req(), task())
    tasks.delete(req("milk"))

    with pytest.raises(NotFound):
        tasks.query(req("milk"))
    with pytest.raises(NotFound):
        tasks.delete(req("milk"))


def test_purge_removes_only_that_list(tasks, tasklists, groceries):
    tasklists.create(OWNER, ResourceContent(name="hardware"))
    tasks.create(req(), task())
    tasks.create(req(), task(name="eggs"))
    tasks.create(req(list_key="hardware"), task(name="nails"))

    tasklists.delete(ResourceRequest(OWNER, "groceries"))
    assert tasks.purge(ResourceRequest(OWNER, "groceries")) == 2

    # a re-created list starts empty
    tasklists.create(OWNER, ResourceContent(name="groceries"))
    assert tasks.get_all_tasks_name(req()) == []
    assert tasks.get_all_tasks_name(req(list_key="hardware")) == ["nails"]


def test_concurrent_partial_revises_both_land(tasks, tasklists, groceries, read_barrier):
    tasks.create(req(), task(body="2 litres", timestamp="t0"))
    racing = TaskWorker(read_barrier(2), tasklists.exists)

    with ThreadPoolExecutor(max_workers=2) as pool:
        futures = [
            pool.submit(racing.revise, req("milk"), ResourceContent(body="1 litre")),
            pool.submit(racing.revise, req("milk"), ResourceContent(timestamp="t1")),
        ]
        for future in futures:
            future.result()

    assert tasks.query(req("milk")) == task(body="1 litre", timestamp="t1")


def test_concurrent_task_creates_get_distinct_keys(store, tasklists, groceries):
    workers = 6
    racing = TaskWorker(store, tasklists.exists, max_attempts=20)

    with ThreadPoolExecutor(max_workers=workers) as pool:
        assigned = list(pool.map(lambda _: racing.create(req(), task()), range(workers)))

    assert len(set(assigned)) == workers
    assert sorted(racing.get_all_tasks_name(req())) == sorted(assigned)
