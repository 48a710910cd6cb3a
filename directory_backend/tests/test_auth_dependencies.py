import pathlib
import sys
from datetime import datetime, timedelta, timezone

import pytest
from fastapi import HTTPException
from jose import jwt


ROOT = pathlib.Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import directory_backend.main as backend_main
from directory_backend.app.entitlements import Actor, ActorRole
from directory_backend.app.routes import dependencies


def _token(subject: str, *, expires_in: timedelta = timedelta(minutes=15)) -> str:
    payload = {"sub": subject, "exp": datetime.now(timezone.utc) + expires_in}
    return jwt.encode(payload, backend_main.JWT_SECRET_KEY, algorithm=backend_main.JWT_ALGORITHM)


def test_missing_cookie_is_rejected():
    with pytest.raises(HTTPException) as excinfo:
        backend_main.get_current_actor(None)

    assert excinfo.value.status_code == 401


def test_invalid_token_is_rejected():
    with pytest.raises(HTTPException) as excinfo:
        backend_main.get_current_actor("not-a-valid-token")

    assert excinfo.value.status_code == 401


def test_expired_token_is_rejected_without_lookup(monkeypatch):
    def _unexpected_lookup(_user_id: str):
        raise AssertionError("get_actor_by_id should not be called for expired tokens")

    monkeypatch.setattr(backend_main, "get_actor_by_id", _unexpected_lookup)

    with pytest.raises(HTTPException):
        backend_main.get_current_actor(_token("42", expires_in=timedelta(minutes=-5)))


def test_valid_token_resolves_actor(monkeypatch):
    actor = Actor(user_id="123", role=ActorRole.ADMIN)
    monkeypatch.setattr(backend_main, "get_actor_by_id", lambda uid: actor if uid == "123" else None)

    assert backend_main.get_current_actor(_token("123")) is actor


def test_unknown_roles_fall_back_to_viewer():
    assert backend_main._role_from_value("SuperAdmin") == ActorRole.SUPERADMIN
    assert backend_main._role_from_value("owner") == ActorRole.VIEWER
    assert backend_main._role_from_value(None) == ActorRole.VIEWER


def test_connect_timeout_parsing():
    assert backend_main._parse_connect_timeout("2.5") == 3
    with pytest.raises(ValueError):
        backend_main._parse_connect_timeout("-1")
    with pytest.raises(ValueError):
        backend_main._parse_connect_timeout("soon")


def test_router_dependency_delegates_to_configured_resolver(monkeypatch):
    actor = Actor(user_id="7", role=ActorRole.EDITOR)
    monkeypatch.setattr(backend_main, "get_actor_by_id", lambda uid: actor)

    assert dependencies.get_current_actor(session_token=_token("7")) is actor
