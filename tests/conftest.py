import pathlib
import sys
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi.testclient import TestClient

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from portal.domain import Actor
from portal.main import create_app
from portal.store import InMemoryStore, store

JWT_SECRET = "jwt_test_secret"


def issue_token(*, subject: str, secret: str = JWT_SECRET, minutes: int = 30, **extra) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": subject,
        "name": f"User {subject}",
        "email": f"{subject}@example.org",
        "exp": int((now + timedelta(minutes=minutes)).timestamp()),
        "iat": int(now.timestamp()),
        "iss": "test-issuer",
        "aud": "test-audience",
    }
    payload.update(extra)
    return jwt.encode(payload, secret, algorithm="HS256")


def seed_account(target: InMemoryStore, actor_id: str, role: str | None = "citizen") -> Actor:
    now = target._utcnow_iso()
    actor = Actor(id=actor_id, display_name=f"User {actor_id}", email=f"{actor_id}@example.org")
    target.accounts_repository.upsert(
        account={
            "account_id": actor.id,
            "name": actor.display_name,
            "email": actor.email,
            "phone": None,
            "role": role,
            "created_at": now,
            "updated_at": now,
        }
    )
    return actor


def seed_service(target: InMemoryStore, service_id: str = "svc_test", title: str = "Birth Certificate") -> dict:
    now = target._utcnow_iso()
    return target.services_repository.upsert(
        service={
            "service_id": service_id,
            "title": title,
            "description": "",
            "requirements": "",
            "processing_time": "5 days",
            "fee": "10.00",
            "created_by": None,
            "created_at": now,
            "updated_at": now,
        }
    )


class AuthenticatedClient:
    """TestClient wrapper that signs ``/api/v1`` requests as ``actor``."""

    def __init__(self, client: TestClient, *, jwt_secret: str):
        self._client = client
        self._jwt_secret = jwt_secret

    def request(self, method: str, url: str, *, actor: str | None = None, **kwargs):
        headers = dict(kwargs.pop("headers", {}) or {})
        if actor is not None and "Authorization" not in headers:
            headers["Authorization"] = f"Bearer {issue_token(subject=actor, secret=self._jwt_secret)}"
        return self._client.request(method, url, headers=headers, **kwargs)

    def __getattr__(self, name: str):
        return getattr(self._client, name)

    def get(self, url: str, **kwargs):
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs):
        return self.request("POST", url, **kwargs)

    def put(self, url: str, **kwargs):
        return self.request("PUT", url, **kwargs)

    def patch(self, url: str, **kwargs):
        return self.request("PATCH", url, **kwargs)

    def delete(self, url: str, **kwargs):
        return self.request("DELETE", url, **kwargs)


@pytest.fixture(autouse=True)
def reset_store(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("JWT_SHARED_SECRET", JWT_SECRET)
    monkeypatch.setenv("JWT_ISSUER", "test-issuer")
    monkeypatch.setenv("JWT_AUDIENCE", "test-audience")
    monkeypatch.setenv("JWT_REQUIRED_CLAIMS", "sub,exp")
    store.reset()
    yield


@pytest.fixture
def client() -> AuthenticatedClient:
    app = create_app()
    base = TestClient(app)
    return AuthenticatedClient(base, jwt_secret=JWT_SECRET)


@pytest.fixture
def portal_store() -> InMemoryStore:
    return InMemoryStore()
