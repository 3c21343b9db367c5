"""
Tests for socket tokens and the identity callback
"""

from app.models import User
from app.services.identity import upsert_user_from_profile
from app.services.registry import Registry
from app.services.tokens import derive_token, validate_token

def test_token_is_stable_and_cached():
    user = User(id="42")
    token = derive_token(user, secret="s1")

    assert len(token) == 64
    assert user.sock_key == token
    assert derive_token(user, secret="other") == token
    assert derive_token(User(id="42"), secret="s1") == token
    assert derive_token(User(id="42"), secret="s2") != token

def test_validate_token():
    user = User(id="42")
    token = derive_token(user)

    assert validate_token(user, token)
    assert not validate_token(user, token[:-1] + "0" if token[-1] != "0" else token[:-1] + "1")
    assert not validate_token(user, None)
    assert not validate_token(None, token)
    assert not validate_token(user, 12345)

def test_token_never_serialized():
    user = User(id="42")
    derive_token(user)

    assert user.sock_key not in str(user.to_record())
    assert user.sock_key not in str(user.to_client())

def test_profile_creates_user_and_grants_admin():
    registry = Registry()
    profile = {
        "id": "g-1",
        "displayName": "Ann Lee",
        "emails": [{"value": "boss@example.com"}],
        "image": {"url": "https://img.example/ann.png"},
    }
    user, effects = upsert_user_from_profile(registry, profile, ["boss@example.com"])

    assert registry.get_user("g-1") is user
    assert user.admin
    assert user.picture == "https://img.example/ann.png"
    assert effects[0].entity is user

def test_profile_preserves_permissions():
    registry = Registry()
    existing = User(id="g-2", superuser=True, perms={"farmHangouts": True})
    registry.add_user(existing)

    user, _ = upsert_user_from_profile(
        registry, {"id": "g-2", "displayName": "New Name", "emails": ["x@example.com"]}
    )

    assert user is existing
    assert user.display_name == "New Name"
    assert user.emails == ["x@example.com"]
    assert user.superuser
    assert user.has_perm("farmHangouts")
    assert not user.admin
