import logging
from typing import Callable

from tasklist_engine import keys
from tasklist_engine.db import KeyValueStore
from tasklist_engine.domain import TASK, TASKLIST, ResourceContent, ResourceRequest, revise_record
from tasklist_engine.errors import InvalidArgument, NotFound

logger = logging.getLogger(__name__)

ListExists = Callable[[str, str], bool]


class TaskWorker:
    """Task records, scoped to an (owner, task list) pair.

    ``list_exists`` is the only link to the task-list side; it is usually
    ``TaskListWorker.exists`` and is consulted before every task operation.
    """

    def __init__(
        self,
        store: KeyValueStore,
        list_exists: ListExists,
        max_attempts: int = keys.DEFAULT_MAX_ATTEMPTS,
    ):
        self.store = store
        self.list_exists = list_exists
        self.max_attempts = max_attempts

    def _require_list(self, request: ResourceRequest):
        if not self.list_exists(request.owner_key, request.list_key):
            raise NotFound(f"task list {request.list_key!r} not found")

    def get_all_tasks_name(self, request: ResourceRequest) -> list[str]:
        request.validate_for(TASKLIST)
        self._require_list(request)
        rows = self.store.scan_prefix(keys.task_prefix(request.owner_key, request.list_key))
        return [keys.last_segment(key) for key, _ in rows]

    def query(self, request: ResourceRequest) -> ResourceContent:
        request.validate_for(TASK)
        self._require_list(request)
        key = keys.task_key(request.owner_key, request.list_key, request.item_key)
        try:
            raw = self.store.get(key)
        except NotFound:
            raise NotFound(f"task {request.item_key!r} not found") from None
        return ResourceContent.from_record(raw)

    def create(self, request: ResourceRequest, content: ResourceContent) -> str:
        request.validate_for(TASKLIST)
        if content.lose_key():
            raise InvalidArgument("name is required")
        self._require_list(request)

        def claim(key: str, candidate: str) -> bool:
            record = ResourceContent(candidate, content.body, content.timestamp)
            return self.store.put_if_absent(key, record.to_record())

        assigned = keys.claim_unique_key(
            content.name,
            lambda candidate: keys.task_key(request.owner_key, request.list_key, candidate),
            claim,
            self.max_attempts,
        )
        logger.info(
            "task created owner=%s list=%s task=%s",
            request.owner_key,
            request.list_key,
            assigned,
        )
        return assigned

    def revise(self, request: ResourceRequest, content: ResourceContent) -> None:
        request.validate_for(TASK)
        if content.renames(request.item_key):
            raise InvalidArgument("key is immutable via content update")
        self._require_list(request)
        revise_record(
            self.store,
            keys.task_key(request.owner_key, request.list_key, request.item_key),
            content,
            f"task {request.item_key!r} not found",
        )

    def delete(self, request: ResourceRequest) -> None:
        request.validate_for(TASK)
        self._require_list(request)
        key = keys.task_key(request.owner_key, request.list_key, request.item_key)
        try:
            self.store.delete(key)
        except NotFound:
            raise NotFound(f"task {request.item_key!r} not found") from None
        logger.info(
            "task deleted owner=%s list=%s task=%s",
            request.owner_key,
            request.list_key,
            request.item_key,
        )

    def purge(self, request: ResourceRequest) -> int:
        """Remove every task under a list. The list itself may already be gone."""
        request.validate_for(TASKLIST)
        removed = 0
        for key, _ in self.store.scan_prefix(keys.task_prefix(request.owner_key, request.list_key)):
            try:
                self.store.delete(key)
            except NotFound:
                # a concurrent delete got there first
                continue
            removed += 1
        if removed:
            logger.debug(
                "tasks purged owner=%s list=%s count=%d",
                request.owner_key,
                request.list_key,
                removed,
            )
        return removed
