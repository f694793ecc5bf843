"""Fixtures compartilhadas dos testes do PCS."""

import os
from contextlib import contextmanager
from datetime import datetime

import pytest

# main.py exige a chave na importação
os.environ.setdefault("FLASK_SECRET_KEY", "test-secret")

PATIENT_ID = "patient-1"


def make_entry(entry_id, title, category="fundamental", order_index=0, completed=False,
               description=None, patient_id=PATIENT_ID):
    now = datetime(2026, 10, 1, 9, 0)
    return {
        "id": entry_id,
        "patient_id": patient_id,
        "title": title,
        "description": description,
        "category": category,
        "order_index": order_index,
        "is_completed": completed,
        "completed_at": now if completed else None,
        "completed_by": "user-1" if completed else None,
        "created_at": now,
        "updated_at": now,
    }


class InMemoryStore:
    """Mesma interface de db.pcs.PcsStore, guardada em um dict."""

    def __init__(self, entries=None):
        self.rows = {e["id"]: dict(e) for e in entries or []}
        self.logs = []
        self.position_calls = []
        self.fail_list = False
        self.fail_writes = False
        self.fail_positions = False
        self._next_id = 0

    def list_entries(self, patient_id):
        if self.fail_list:
            return None
        return [dict(r) for r in self.rows.values() if r["patient_id"] == patient_id]

    def insert_entry(self, patient_id, title, description, category, order_index):
        if self.fail_writes:
            return None
        self._next_id += 1
        row = make_entry(f"new-{self._next_id}", title, category, order_index,
                         description=description, patient_id=patient_id)
        self.rows[row["id"]] = dict(row)
        return row

    def update_entry(self, entry_id, data):
        if self.fail_writes:
            return False
        self.rows[entry_id].update(data)
        return True

    def delete_entry(self, entry_id):
        if self.fail_writes:
            return False
        return self.rows.pop(entry_id, None) is not None

    def update_positions(self, positions):
        self.position_calls.append(list(positions))
        if self.fail_positions:
            return False
        for entry_id, category, order_index in positions:
            self.rows[entry_id]["category"] = category
            self.rows[entry_id]["order_index"] = order_index
        return True

    def add_change_log(self, patient_id, user_id, action, description):
        self.logs.append({"patient_id": patient_id, "user_id": user_id,
                          "action": action, "description": description})
        return f"log-{len(self.logs)}"

    def list_change_log(self, patient_id, limit=50):
        return []

    def order_of(self, category):
        rows = sorted((r for r in self.rows.values() if r["category"] == category),
                      key=lambda r: r["order_index"])
        return [(r["title"], r["order_index"]) for r in rows]


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def user():
    return {"id": "user-1", "email": "dentista@almare.com", "name": "Ana Souza", "role": "user"}


@pytest.fixture
def fake_cursor(monkeypatch):
    """Substitui get_db_cursor nos blueprints por uma conexão falsa."""
    connection = object()

    @contextmanager
    def _get_db_cursor(commit=False):
        yield connection, None

    import blueprints.auth
    import blueprints.pcs
    import blueprints.patient
    import blueprints.public
    for module in (blueprints.auth, blueprints.pcs, blueprints.patient, blueprints.public):
        monkeypatch.setattr(module, "get_db_cursor", _get_db_cursor)
    return connection


@pytest.fixture
def app():
    from main import create_app
    return create_app({"TESTING": True, "WTF_CSRF_ENABLED": False, "PERMISSION_POLICY": "allow_all"})


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def logged_client(client):
    with client.session_transaction() as sess:
        sess["user_id"] = "user-1"
        sess["user_email"] = "dentista@almare.com"
        sess["user_name"] = "Ana Souza"
        sess["user_role"] = "user"
    return client
