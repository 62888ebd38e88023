"""Bearer tokens for the admin routes.

Stateless: a token is `<payload>.<signature>`, both base64url without padding.
The payload is compact JSON `{"role": ..., "exp": <unix seconds>}`, signed with
HMAC-SHA256 under the configured secret. Nothing is stored server-side, so a
token stays valid across restarts as long as the secret does.
"""
import base64
import hashlib
import hmac
import json
import time
from collections.abc import Callable

from store.errors import Unauthorized

_DAY_SECONDS = 24 * 60 * 60


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


def password_matches(supplied: str | None, expected: str) -> bool:
    """Constant-time comparison of a login password against the configured one."""
    if supplied is None:
        return False
    return hmac.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8"))


class TokenAuthority:
    def __init__(self, secret: str, ttl_days: int = 7, clock: Callable[[], float] = time.time) -> None:
        self._key = secret.encode("utf-8")
        self.ttl_seconds = ttl_days * _DAY_SECONDS
        self._clock = clock

    def issue(self, role: str = "admin") -> str:
        claims = {"role": role, "exp": int(self._clock()) + self.ttl_seconds}
        payload = _b64encode(json.dumps(claims, separators=(",", ":")).encode("utf-8"))
        return f"{payload}.{self._sign(payload)}"

    def verify(self, token: str | None) -> dict:
        """Return the token's claims. Raises Unauthorized if missing, forged or expired."""
        if not token:
            raise Unauthorized("Not authenticated")
        payload, _, signature = token.partition(".")
        expected = self._sign(payload).encode("utf-8")
        if not payload or not hmac.compare_digest(signature.encode("utf-8"), expected):
            raise Unauthorized("Invalid or expired token")
        try:
            claims = json.loads(_b64decode(payload))
            expires_at = int(claims["exp"])
        except (ValueError, KeyError, TypeError):
            raise Unauthorized("Invalid or expired token")
        if expires_at <= self._clock():
            raise Unauthorized("Invalid or expired token")
        return claims

    def _sign(self, payload: str) -> str:
        return _b64encode(hmac.new(self._key, payload.encode("utf-8"), hashlib.sha256).digest())


def bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an `Authorization: Bearer <token>` header value."""
    if authorization and authorization.startswith("Bearer "):
        return authorization[len("Bearer "):].strip() or None
    return None
