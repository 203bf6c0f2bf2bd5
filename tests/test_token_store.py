import time

import jwt

from pkg_api_client.adapters.token_storage import MemoryTokenStorage
from pkg_api_client.application.token_store import TokenStore

SECRET = "test-signing-key-that-is-long-enough-for-hs256"


def test_set_get_clear(token_factory):
    store = TokenStore()
    assert store.get_access_token() is None
    assert store.get_tokens() is None

    access = token_factory()
    store.set_tokens(access, "refresh-1")
    assert store.get_access_token() == access
    assert store.get_refresh_token() == "refresh-1"
    assert store.get_tokens().refresh_token == "refresh-1"

    store.set_tokens("access-2", "refresh-2")
    assert store.get_access_token() == "access-2"
    assert store.get_refresh_token() == "refresh-2"

    store.clear_tokens()
    store.clear_tokens()
    assert store.get_access_token() is None
    assert store.get_refresh_token() is None


def test_custom_keys_and_lifetimes(clock):
    storage = MemoryTokenStorage(clock=clock)
    store = TokenStore(
        storage,
        access_key="acc",
        refresh_key="ref",
        access_max_age=15 * 60,
        refresh_max_age=7 * 86400,
    )
    store.set_tokens("a", "r")
    assert storage.get("acc") == "a"
    assert storage.get("ref") == "r"

    clock.advance(15 * 60)
    assert store.get_access_token() is None
    assert store.get_refresh_token() == "r"


def test_expiring_soon_without_token_or_with_garbage():
    store = TokenStore()
    assert store.is_access_token_expiring_soon()

    store.set_tokens("garbage", "r")
    assert store.is_access_token_expiring_soon()


def test_expiring_soon_threshold(token_factory):
    store = TokenStore()

    store.set_tokens(token_factory(expires_in=3600), "r")
    assert not store.is_access_token_expiring_soon()
    assert store.is_access_token_expiring_soon(threshold=4000)

    store.set_tokens(token_factory(expires_in=120), "r")
    assert store.is_access_token_expiring_soon()
    assert not store.is_access_token_expiring_soon(threshold=60)


def test_expiring_soon_uses_injected_clock(token_factory):
    now = [time.time()]
    store = TokenStore(clock=lambda: now[0])
    store.set_tokens(token_factory(expires_in=1000), "r")
    assert not store.is_access_token_expiring_soon()

    now[0] += 800
    assert store.is_access_token_expiring_soon()


def test_token_without_exp_counts_as_expiring():
    token = jwt.encode({"sub": "user-1", "role": "admin"}, SECRET, algorithm="HS256")
    store = TokenStore()
    store.set_tokens(token, "r")
    assert store.is_access_token_expiring_soon()


def test_get_claims(token_factory):
    store = TokenStore()
    assert store.get_claims() is None
    store.set_tokens(token_factory(role="company"), "r")
    assert store.get_claims().role == "company"
