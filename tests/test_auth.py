import pytest

from api.auth import TokenAuthority, bearer_token, password_matches
from store.errors import Unauthorized


class _Clock:
    def __init__(self, now: float) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_issued_token_verifies():
    tokens = TokenAuthority("s3cret", ttl_days=7, clock=_Clock(1_000_000))
    claims = tokens.verify(tokens.issue())
    assert claims["role"] == "admin"
    assert claims["exp"] == 1_000_000 + 7 * 86400


def test_token_expires_after_ttl():
    clock = _Clock(1_000_000)
    tokens = TokenAuthority("s3cret", ttl_days=1, clock=clock)
    token = tokens.issue()
    clock.now += 86400
    with pytest.raises(Unauthorized):
        tokens.verify(token)


def test_token_from_other_secret_is_rejected():
    token = TokenAuthority("one").issue()
    with pytest.raises(Unauthorized):
        TokenAuthority("two").verify(token)


def test_tampered_payload_is_rejected():
    tokens = TokenAuthority("s3cret")
    _, signature = tokens.issue().split(".")
    forged = TokenAuthority("s3cret", ttl_days=365).issue().split(".")[0]
    with pytest.raises(Unauthorized):
        tokens.verify(f"{forged}.{signature}")


@pytest.mark.parametrize("token", [None, "", "garbage", "a.b", "é.ü"])
def test_malformed_tokens_are_rejected(token):
    with pytest.raises(Unauthorized):
        TokenAuthority("s3cret").verify(token)


def test_bearer_token_parsing():
    assert bearer_token("Bearer abc.def") == "abc.def"
    assert bearer_token("Basic abc") is None
    assert bearer_token("Bearer ") is None
    assert bearer_token(None) is None


def test_password_matches():
    assert password_matches("letmein", "letmein")
    assert not password_matches("wrong", "letmein")
    assert not password_matches(None, "letmein")
