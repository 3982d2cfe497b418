import logging
from typing import Callable
from urllib.parse import quote, unquote

from tasklist_engine.errors import Conflict

logger = logging.getLogger(__name__)

SEPARATOR = "/"
TASKLIST_NS = "tasklist"
TASK_NS = "task"
USER_NS = "user"
REVOKED_NS = "revoked"

DEFAULT_MAX_ATTEMPTS = 100


def _segment(value: str) -> str:
    # nothing is safe, so the separator can never appear inside a segment
    return quote(value, safe="")


def compose(*segments: str) -> str:
    return SEPARATOR.join(_segment(s) for s in segments)


def prefix(*segments: str) -> str:
    return compose(*segments) + SEPARATOR


def last_segment(key: str) -> str:
    return unquote(key.rsplit(SEPARATOR, 1)[-1])


def tasklist_key(owner_key: str, list_key: str) -> str:
    return compose(TASKLIST_NS, owner_key, list_key)


def tasklist_prefix(owner_key: str) -> str:
    return prefix(TASKLIST_NS, owner_key)


def task_key(owner_key: str, list_key: str, item_key: str) -> str:
    return compose(TASK_NS, owner_key, list_key, item_key)


def task_prefix(owner_key: str, list_key: str) -> str:
    return prefix(TASK_NS, owner_key, list_key)


def user_key(email: str) -> str:
    return compose(USER_NS, email)


def revoked_key(token_id: str) -> str:
    return compose(REVOKED_NS, token_id)


def revoked_prefix() -> str:
    return prefix(REVOKED_NS)


def candidate_name(name: str, attempt: int) -> str:
    """``name`` for the first attempt, then ``name-2``, ``name-3`` ..."""
    if attempt <= 1:
        return name
    return f"{name}-{attempt}"


def claim_unique_key(
    name: str,
    key_for: Callable[[str], str],
    claim: Callable[[str, str], bool],
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> str:
    """Claim the first free key among ``name``, ``name-2``, ``name-3`` ...

    ``claim(key, candidate)`` must be an atomic write-if-absent returning
    False when the key is taken, so two racing creates never share a key.
    Returns the candidate name that was written.
    """
    for attempt in range(1, max_attempts + 1):
        candidate = candidate_name(name, attempt)
        if claim(key_for(candidate), candidate):
            if attempt > 1:
                logger.info("name collision resolved name=%s assigned=%s", name, candidate)
            return candidate
    raise Conflict(f"no free key for {name!r} after {max_attempts} attempts")
