"""
Shared fixtures.

The API runs in-process (FastAPI TestClient) against an in-memory
Motor-compatible database installed as `config.db` before any route
module is imported.
"""

import asyncio
import os
import sys
import uuid
from pathlib import Path

os.environ["SCHEDULER_ENABLED"] = "false"
os.environ.setdefault("DB_NAME", "abc_cours_test")

sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest
from mongomock_motor import AsyncMongoMockClient

import config

config.client = AsyncMongoMockClient()
config.db = config.client[config.DB_NAME]

from fastapi.testclient import TestClient

from server import app
from services.permissions import get_preset_permissions

ADMIN_EMAIL = "admin@abc-cours.test"
PROFESSOR_EMAIL = "prof@abc-cours.test"
PASSWORD = "Secret123!"


def run(coro):
    """Run an async DB operation from a sync test."""
    return asyncio.run(coro)


COLLECTIONS = [
    "users", "sessions", "activity_logs", "event_log",
    "families", "students", "subjects", "professors",
    "settlement_notes", "coupon_series", "coupons", "rdvs",
]


async def _drop_all():
    for name in COLLECTIONS:
        await config.db[name].drop()


async def _insert_user(email: str, role: str, is_active: bool = True) -> dict:
    user = {
        "id": str(uuid.uuid4()),
        "email": email,
        "password": config.hash_password(PASSWORD),
        "first_name": role.capitalize(),
        "last_name": "Test",
        "role": role,
        "permissions": get_preset_permissions(role),
        "is_active": is_active,
        "created_at": config.now_iso(),
    }
    await config.db.users.insert_one(user)
    user.pop("_id", None)
    return user


@pytest.fixture(autouse=True)
def clean_db():
    run(_drop_all())
    yield


@pytest.fixture
def db():
    return config.db


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


def login(client, email, password=PASSWORD):
    r = client.post("/api/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.text
    return r.json()["token"]


def auth_h(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_user(client):
    return run(_insert_user(ADMIN_EMAIL, "admin"))


@pytest.fixture
def admin_headers(client, admin_user):
    return auth_h(login(client, ADMIN_EMAIL))


@pytest.fixture
def professor_user(client):
    return run(_insert_user(PROFESSOR_EMAIL, "professor"))


@pytest.fixture
def professor_headers(client, professor_user):
    return auth_h(login(client, PROFESSOR_EMAIL))


# ==================== FACTORIES ====================

def family_payload(**overrides):
    payload = {
        "address": {"street": "12 rue des Lilas", "city": "Paris", "postal_code": "75011"},
        "primary_contact": {
            "first_name": "Marie",
            "last_name": "Dupont",
            "primary_phone": "0612345678",
            "email": "Marie.Dupont@Example.fr",
            "gender": "Mme",
        },
        "source": "Site web",
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def make_family(client, admin_headers):
    def _make(**overrides):
        r = client.post("/api/families", json=family_payload(**overrides), headers=admin_headers)
        assert r.status_code == 201, r.text
        return r.json()["family"]
    return _make


@pytest.fixture
def make_subject(client, admin_headers):
    def _make(name="Mathématiques", category="Scientifique"):
        r = client.post(
            "/api/subjects",
            json={"name": name, "category": category, "description": f"Cours de {name}"},
            headers=admin_headers,
        )
        assert r.status_code == 201, r.text
        return r.json()["subject"]
    return _make


@pytest.fixture
def make_student(client, admin_headers):
    def _make(family_id, first_name="Lucas", **overrides):
        payload = {
            "first_name": first_name,
            "last_name": "Dupont",
            "date_of_birth": "2010-05-14",
            "family_id": family_id,
            "school": {"name": "Collège Voltaire", "level": "college", "grade": "4ème"},
        }
        payload.update(overrides)
        r = client.post("/api/students", json=payload, headers=admin_headers)
        assert r.status_code == 201, r.text
        return r.json()["student"]
    return _make


@pytest.fixture
def make_note(client, admin_headers):
    def _make(family_id, subject_id, student_ids=None, **overrides):
        payload = {
            "family_id": family_id,
            "student_ids": student_ids or [],
            "client_name": "Marie Dupont",
            "payment_method": "card",
            "payment_type": "avance",
            "subjects": [
                {"subject_id": subject_id, "hourly_rate": 45.0, "quantity": 4, "professor_salary": 25.0}
            ],
            "charges": 5.0,
        }
        payload.update(overrides)
        r = client.post("/api/settlement-notes", json=payload, headers=admin_headers)
        assert r.status_code == 201, r.text
        return r.json()
    return _make
