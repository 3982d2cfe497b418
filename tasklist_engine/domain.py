import json
from dataclasses import dataclass, replace
from typing import Optional

from tasklist_engine.db import KeyValueStore
from tasklist_engine.errors import Conflict, InvalidArgument, NotFound, StoreError

CONTENT_FIELDS = ("name", "body", "timestamp")

# which keys each operation scope needs before the store is touched
OWNER = ("owner_key",)
TASKLIST = ("owner_key", "list_key")
TASK = ("owner_key", "list_key", "item_key")

REVISE_ATTEMPTS = 10


@dataclass(frozen=True)
class ResourceRequest:
    owner_key: str
    list_key: str = ""
    item_key: str = ""

    def validate_for(self, scope: tuple[str, ...]) -> "ResourceRequest":
        for field in scope:
            if not getattr(self, field):
                raise InvalidArgument(f"{field} is required")
        return self


@dataclass
class ResourceContent:
    name: Optional[str] = None
    body: Optional[str] = None
    timestamp: Optional[str] = None

    def __post_init__(self):
        # empty strings and None both mean "absent"
        for f in CONTENT_FIELDS:
            if not getattr(self, f):
                setattr(self, f, None)

    def lose_key(self) -> bool:
        return not self.name

    def renames(self, key: str) -> bool:
        """True when the content carries a name that differs from ``key``."""
        return bool(self.name) and self.name != key

    def merged_into(self, existing: "ResourceContent") -> "ResourceContent":
        # partial update: only non-empty incoming fields overwrite
        changes = {f: getattr(self, f) for f in CONTENT_FIELDS if getattr(self, f)}
        return replace(existing, **changes)

    def to_record(self) -> str:
        return json.dumps(self.as_dict())

    @classmethod
    def from_record(cls, raw: str) -> "ResourceContent":
        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise StoreError(f"corrupt record: {exc}") from exc
        if not isinstance(data, dict):
            raise StoreError("corrupt record: expected an object")
        return cls(**{f: data.get(f) for f in CONTENT_FIELDS})

    def as_dict(self) -> dict:
        return {f: getattr(self, f) or "" for f in CONTENT_FIELDS}


def revise_record(
    store: KeyValueStore,
    key: str,
    content: ResourceContent,
    missing: str,
    attempts: int = REVISE_ATTEMPTS,
) -> ResourceContent:
    """Merge ``content`` into the record at ``key`` as one compare-and-swap.

    A concurrent writer between our read and write makes the swap fail, so
    the record is re-read and merged again; no partial update is lost.
    """
    for _ in range(attempts):
        try:
            raw = store.get(key)
        except NotFound:
            raise NotFound(missing) from None
        merged = content.merged_into(ResourceContent.from_record(raw))
        if store.replace_if(key, raw, merged.to_record()):
            return merged
    raise Conflict(f"record kept changing, gave up after {attempts} attempts")
