"""
Shared test configuration.

Adds src/ to sys.path so flat modules (api, readiness, goal_sync, ...)
import the same way they do at runtime, and provides an in-memory stand-in
for the hosted platform so handlers can be exercised without network.
"""

import os
import sys
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

_project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
_src_dir = os.path.join(_project_root, "src")

if _src_dir not in sys.path:
    sys.path.insert(0, _src_dir)


NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


def iso(dt):
    return dt.isoformat().replace("+00:00", "Z")


def hours_ago(hours, now=NOW):
    return iso(now - timedelta(hours=hours))


def days_ago(days, now=NOW):
    return iso(now - timedelta(days=days))


# ─── In-memory platform ─────────────────────────────────────


class FakeEntity:
    def __init__(self, client, name):
        self.client = client
        self.name = name

    @property
    def rows(self):
        return self.client.store.setdefault(self.name, [])

    def list(self, sort=None, limit=None):
        return self.filter({}, sort=sort, limit=limit)

    def filter(self, query, sort=None, limit=None):
        self.client.calls.append(("filter", self.name, dict(query or {})))
        rows = [r for r in self.rows if all(r.get(k) == v for k, v in (query or {}).items())]
        if sort:
            key = sort.lstrip("-")
            rows = sorted(rows, key=lambda r: str(r.get(key) or ""), reverse=sort.startswith("-"))
        if limit is not None:
            rows = rows[:limit]
        return [dict(r) for r in rows]

    def get(self, entity_id):
        return next((dict(r) for r in self.rows if r.get("id") == entity_id), None)

    def create(self, data):
        if self.name in self.client.fail_on_create:
            raise RuntimeError(f"{self.name} create failed")
        row = dict(data)
        row.setdefault("id", f"{self.name.lower()}-{len(self.rows) + 1}")
        self.rows.append(row)
        self.client.calls.append(("create", self.name, row))
        return dict(row)

    def update(self, entity_id, data):
        for row in self.rows:
            if row.get("id") == entity_id:
                row.update(data)
                self.client.calls.append(("update", self.name, entity_id, dict(data)))
                return dict(row)
        raise RuntimeError(f"{self.name} {entity_id} not found")

    def delete(self, entity_id):
        before = len(self.rows)
        self.client.store[self.name] = [r for r in self.rows if r.get("id") != entity_id]
        if len(self.rows) == before:
            raise RuntimeError(f"{self.name} {entity_id} not found")
        self.client.calls.append(("delete", self.name, entity_id))


class _FakeEntities:
    def __init__(self, client):
        self._client = client

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        return FakeEntity(self._client, name)


class FakePlatformClient:
    """Shares one store between the user-scoped and service-role views."""

    def __init__(self, user=None, store=None, service=False, shared=None):
        self.user = user
        self.store = store if store is not None else {}
        self.service = service
        shared = shared or {"calls": [], "emails": [], "email_failures": set(), "fail_on_create": set()}
        self._shared = shared
        self.calls = shared["calls"]
        self.sent_emails = shared["emails"]
        self.email_failures = shared["email_failures"]
        self.fail_on_create = shared["fail_on_create"]
        self.entities = _FakeEntities(self)
        self.auth = SimpleNamespace(me=lambda: self.user)
        self.integrations = SimpleNamespace(send_email=self._send_email)

    def entity(self, name):
        return FakeEntity(self, name)

    def as_service_role(self):
        return FakePlatformClient(user=None, store=self.store, service=True, shared=self._shared)

    def _send_email(self, to, subject, body):
        if to in self.email_failures:
            raise RuntimeError("smtp bounce")
        self.sent_emails.append({"to": to, "subject": subject, "body": body})
        return {"ok": True}


@pytest.fixture
def fake_platform():
    def make(user=None, **store):
        return FakePlatformClient(user=user, store={k: list(v) for k, v in store.items()})
    return make
