import json

import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel, Session, create_engine
from sqlmodel.pool import StaticPool

from agrilog import config
from agrilog.main import app
from agrilog.database import get_session
from agrilog.system_settings import seed_settings
from agrilog.agent import activity_processor
from agrilog.agent.llm_client import LLMUnavailable

PASSWORD = "secret123"

class FakeLLM:
    """Stands in for the provider chain; set `reply` or `unavailable` per test."""

    def __init__(self):
        self.reply = json.dumps({
            "summary": "Planted maize on the north plot.",
            "extractedData": {"crop": "maize", "activityType": "Planting"},
        })
        self.unavailable = False
        self.prompts = []

    def __call__(self, prompt, system=None, is_json=False):
        self.prompts.append(prompt)
        if self.unavailable:
            raise LLMUnavailable("No AI provider configured or reachable")
        return self.reply

@pytest.fixture(autouse=True)
def llm(monkeypatch):
    fake = FakeLLM()
    monkeypatch.setattr(activity_processor, "generate_text", fake)
    return fake

@pytest.fixture(autouse=True)
def upload_dir(monkeypatch, tmp_path):
    path = tmp_path / "uploads"
    monkeypatch.setattr(config, "UPLOAD_DIR", str(path))
    return path

@pytest.fixture(name="session")
def session_fixture():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    SQLModel.metadata.create_all(engine)
    with Session(engine) as session:
        seed_settings(session)
        yield session

@pytest.fixture(name="client")
def client_fixture(session: Session):
    app.dependency_overrides[get_session] = lambda: session
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()

def register(client, role, email, full_name="Test User", **extra):
    body = {
        "email": email,
        "password": PASSWORD,
        "full_name": full_name,
        "phone_number": "0712345678",
        "role": role,
    }
    body.update(extra)
    response = client.post("/auth/register", json=body)
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}

def user_id(client, headers) -> int:
    return client.get("/auth/me", headers=headers).json()["id"]

@pytest.fixture
def farmer(client):
    return register(client, "farmer", "amina@agrilog.org", "Amina Otieno", village_location="Kisumu")

@pytest.fixture
def other_farmer(client):
    return register(client, "farmer", "peter@agrilog.org", "Peter Mwangi", village_location="Nakuru")

@pytest.fixture
def worker(client):
    return register(client, "enumerator", "grace@agrilog.org", "Grace Wanjiru")

@pytest.fixture
def institution(client):
    return register(
        client, "institution", "loans@agrilog.org", "Joseph Kamau", organization_name="Harvest Bank"
    )

@pytest.fixture
def admin(client):
    return register(client, "admin", "root@agrilog.org", "Site Admin")

def log_activity(client, headers, **fields):
    body = {"activity_type": "Planting", "crop": "Maize", "activity_date": "2025-03-01T08:00:00"}
    body.update(fields)
    response = client.post("/farmer/activities", json=body, headers=headers)
    assert response.status_code == 200, response.text
    return response.json()
