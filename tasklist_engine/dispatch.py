import logging
from dataclasses import dataclass
from typing import Any, Callable

from tasklist_engine.errors import ResultKind, StoreError, WorkerError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkerResult:
    kind: ResultKind
    payload: Any = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.kind is ResultKind.SUCCESS


def dispatch(operation: Callable[..., Any], *args, **kwargs) -> WorkerResult:
    """Run one worker operation and classify its outcome.

    Classified failures become results; anything else propagates.
    """
    try:
        payload = operation(*args, **kwargs)
    except StoreError as exc:
        logger.exception("store failure in %s", getattr(operation, "__qualname__", operation))
        return WorkerResult(exc.kind, detail=exc.detail)
    except WorkerError as exc:
        logger.debug("%s -> %s: %s", getattr(operation, "__qualname__", operation), exc.kind.value, exc.detail)
        return WorkerResult(exc.kind, detail=exc.detail)
    return WorkerResult(ResultKind.SUCCESS, payload=payload)
