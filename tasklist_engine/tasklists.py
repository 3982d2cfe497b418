"""Task-list records, scoped to one owner.

Records live under ``tasklist/<owner>/<list>``. The worker keeps no state
of its own besides the store handle, so a single instance serves every
request.
"""

import logging

from tasklist_engine import keys
from tasklist_engine.db import KeyValueStore
from tasklist_engine.domain import OWNER, TASKLIST, ResourceContent, ResourceRequest, revise_record
from tasklist_engine.errors import InvalidArgument, NotFound

logger = logging.getLogger(__name__)


class TaskListWorker:
    def __init__(self, store: KeyValueStore, max_attempts: int = keys.DEFAULT_MAX_ATTEMPTS):
        self.store = store
        self.max_attempts = max_attempts

    def get_all_tasklist(self, owner_key: str) -> list[str]:
        ResourceRequest(owner_key).validate_for(OWNER)
        rows = self.store.scan_prefix(keys.tasklist_prefix(owner_key))
        return [keys.last_segment(key) for key, _ in rows]

    def query(self, request: ResourceRequest) -> ResourceContent:
        request.validate_for(TASKLIST)
        key = keys.tasklist_key(request.owner_key, request.list_key)
        try:
            raw = self.store.get(key)
        except NotFound:
            raise NotFound(f"task list {request.list_key!r} not found") from None
        return ResourceContent.from_record(raw)

    def create(self, owner_key: str, content: ResourceContent) -> str:
        ResourceRequest(owner_key).validate_for(OWNER)
        if content.lose_key():
            raise InvalidArgument("name is required")

        def claim(key: str, candidate: str) -> bool:
            record = ResourceContent(candidate, content.body, content.timestamp)
            return self.store.put_if_absent(key, record.to_record())

        assigned = keys.claim_unique_key(
            content.name,
            lambda candidate: keys.tasklist_key(owner_key, candidate),
            claim,
            self.max_attempts,
        )
        logger.info("tasklist created owner=%s list=%s", owner_key, assigned)
        return assigned

    def revise(self, request: ResourceRequest, content: ResourceContent) -> None:
        request.validate_for(TASKLIST)
        if content.renames(request.list_key):
            raise InvalidArgument("key is immutable via content update")
        revise_record(
            self.store,
            keys.tasklist_key(request.owner_key, request.list_key),
            content,
            f"task list {request.list_key!r} not found",
        )

    def delete(self, request: ResourceRequest) -> None:
        request.validate_for(TASKLIST)
        try:
            self.store.delete(keys.tasklist_key(request.owner_key, request.list_key))
        except NotFound:
            raise NotFound(f"task list {request.list_key!r} not found") from None
        logger.info("tasklist deleted owner=%s list=%s", request.owner_key, request.list_key)

    def exists(self, owner_key: str, list_key: str) -> bool:
        if not owner_key or not list_key:
            return False
        try:
            self.store.get(keys.tasklist_key(owner_key, list_key))
        except NotFound:
            return False
        return True
