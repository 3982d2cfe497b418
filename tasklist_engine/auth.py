"""Users, passwords and session tokens.

Nothing here is imported by the workers: this module turns credentials
into a verified identity string and the workers only ever see that string.
"""

import base64
import binascii
import hashlib
import hmac
import json
import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import NewType, Optional

import jwt

from tasklist_engine import keys
from tasklist_engine.db import KeyValueStore
from tasklist_engine.errors import Conflict, InvalidArgument, NotFound, StoreError, Unauthorized

logger = logging.getLogger(__name__)

Identity = NewType("Identity", str)

HASH_SCHEME = "pbkdf2_sha256"
TOKEN_ALGORITHM = "HS256"


def hash_password(password: str, iterations: int = 200_000, salt: Optional[str] = None) -> str:
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), iterations)
    return f"{HASH_SCHEME}${iterations}${salt}${digest.hex()}"


def verify_password(password: str, stored: str) -> bool:
    try:
        scheme, iterations, salt, expected = stored.split("$")
        rounds = int(iterations)
    except ValueError:
        return False
    if scheme != HASH_SCHEME:
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), rounds)
    return hmac.compare_digest(digest.hex(), expected)


def parse_basic_credentials(header: Optional[str]) -> tuple[str, str]:
    """Decode an ``Authorization: Basic ...`` header into (email, password)."""
    if not header:
        raise Unauthorized("missing credentials")
    scheme, _, encoded = header.partition(" ")
    if scheme.lower() != "basic" or not encoded:
        raise Unauthorized("expected basic credentials")
    try:
        decoded = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        raise Unauthorized("malformed basic credentials") from None
    email, sep, password = decoded.partition(":")
    if not sep or not email:
        raise Unauthorized("malformed basic credentials")
    return email, password


def parse_bearer_token(header: Optional[str]) -> str:
    if not header:
        raise Unauthorized("missing token")
    scheme, _, token = header.partition(" ")
    if not token:
        # bare token, as the old Authentication header carried it
        return scheme
    if scheme.lower() != "bearer":
        raise Unauthorized("expected bearer token")
    return token.strip()


class UserRegistry:
    def __init__(self, store: KeyValueStore, iterations: int = 200_000):
        self.store = store
        self.iterations = iterations

    def register(self, name: str, email: str, password: str) -> Identity:
        if not name or not email or not password:
            raise InvalidArgument("name, email and passwd are required")
        record = json.dumps(
            {
                "name": name,
                "email": email,
                "password": hash_password(password, self.iterations),
            }
        )
        if not self.store.put_if_absent(keys.user_key(email), record):
            raise Conflict("email already registered")
        logger.info("user registered email=%s", email)
        return Identity(email)

    def authenticate(self, email: str, password: str) -> Identity:
        try:
            raw = self.store.get(keys.user_key(email))
        except NotFound:
            raise Unauthorized("unknown user or wrong password") from None
        try:
            record = json.loads(raw)
        except ValueError as exc:
            raise StoreError(f"corrupt user record: {exc}") from exc
        if not isinstance(record, dict):
            raise StoreError("corrupt user record: expected an object")
        if not verify_password(password, record.get("password", "")):
            raise Unauthorized("unknown user or wrong password")
        return Identity(email)


class SessionAuthority:
    """Mints and checks signed session tokens.

    The signing secret is handed in at construction and lives as long as
    this object, which the app builds at startup.
    """

    def __init__(self, secret: str, store: KeyValueStore, ttl_seconds: int = 3600):
        if not secret:
            raise ValueError("secret is required")
        self._secret = secret
        self.store = store
        self.ttl_seconds = ttl_seconds

    def issue(self, identity: Identity) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": identity,
            "iat": now,
            "exp": now + timedelta(seconds=self.ttl_seconds),
            "jti": uuid.uuid4().hex,
        }
        return jwt.encode(payload, self._secret, algorithm=TOKEN_ALGORITHM)

    def _claims(self, token: str) -> dict:
        try:
            return jwt.decode(
                token,
                self._secret,
                algorithms=[TOKEN_ALGORITHM],
                options={"require": ["sub", "exp", "jti"]},
            )
        except jwt.InvalidTokenError as exc:
            raise Unauthorized(f"invalid token: {exc}") from None

    def _is_revoked(self, token_id: str) -> bool:
        try:
            self.store.get(keys.revoked_key(token_id))
        except NotFound:
            return False
        return True

    def verify(self, token: str) -> Identity:
        claims = self._claims(token)
        if self._is_revoked(claims["jti"]):
            raise Unauthorized("token revoked")
        if not claims["sub"]:
            raise Unauthorized("token carries no identity")
        return Identity(claims["sub"])

    def sweep_revoked(self, now: Optional[int] = None) -> int:
        """Drop revocations whose token has expired anyway."""
        now = int(datetime.now(timezone.utc).timestamp()) if now is None else now
        removed = 0
        for key, expires in self.store.scan_prefix(keys.revoked_prefix()):
            try:
                expired = int(expires) < now
            except ValueError:
                expired = True
            if not expired:
                continue
            try:
                self.store.delete(key)
            except NotFound:
                # another revoke swept it first
                continue
            removed += 1
        if removed:
            logger.debug("expired revocations swept count=%d", removed)
        return removed

    def revoke(self, token: str) -> Identity:
        claims = self._claims(token)
        self.sweep_revoked()
        self.store.put(keys.revoked_key(claims["jti"]), str(claims["exp"]))
        logger.info("session revoked email=%s", claims["sub"])
        return Identity(claims["sub"])
