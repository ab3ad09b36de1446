import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["OPENAI_API_KEY"] = ""
os.environ["ANTHROPIC_API_KEY"] = ""
os.environ["DEBUG"] = "false"

from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from app.core.database import Base, SessionLocal, engine, init_db
from main import app


@pytest.fixture(autouse=True)
def _tables():
    init_db()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def register(client, email, role="student", password="secret123"):
    resp = client.post(
        "/api/auth/register",
        json={"name": email.split("@")[0], "email": email, "password": password, "role": role},
    )
    assert resp.status_code == 201, resp.text
    body = resp.json()["data"]
    return {"Authorization": f"Bearer {body['access_token']}"}, body["user"]


@pytest.fixture
def student(client):
    headers, _ = register(client, "alice@example.com")
    return headers


@pytest.fixture
def other_student(client):
    headers, _ = register(client, "bob@example.com")
    return headers


@pytest.fixture
def teacher(client):
    headers, _ = register(client, "carol@example.com", role="teacher")
    return headers


def start_session(client, headers, document_id="doc-1", room_id=None):
    payload = {"document_id": document_id, "document_path": f"/docs/{document_id}.pdf"}
    if room_id:
        payload["room_id"] = room_id
    resp = client.post("/api/sessions", json=payload, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]["id"]


def sample(session_id, score=70.0, ts=None, present=True, distracted=False, **groups):
    payload = {
        "session_id": session_id,
        "engagement_score": score,
        "presence": {"detected": present, "confidence": 0.9, "face_count": 1 if present else 0},
        "distraction": {
            "detected": distracted,
            "type": "phone" if distracted else "none",
            "attention_score": 40.0 if distracted else 90.0,
        },
    }
    if ts is not None:
        payload["timestamp"] = ts.isoformat() if isinstance(ts, datetime) else ts
    payload.update(groups)
    return payload
