"""Pytest configuration and shared fixtures.

Makes the project root importable (``import directory`` / ``import api``) and
provides an in-memory stand-in for the hosted data store.
"""

import os
import sys
import uuid

import pytest

# Project root = parent directory of this tests/ folder
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from directory.store import StoreError  # noqa: E402


class FakeStore:
    """Implements the SupabaseStore surface over plain dicts."""

    def __init__(self, tables=None):
        self.tables = {name: [dict(r) for r in rows] for name, rows in (tables or {}).items()}
        self.calls = []

    def _rows(self, table):
        return self.tables.setdefault(table, [])

    @staticmethod
    def _match(row, eq=None, in_=None, is_null=None, gte=None):
        for col, value in (eq or {}).items():
            if row.get(col) != value:
                return False
        for col, values in (in_ or {}).items():
            if row.get(col) not in list(values):
                return False
        for col in is_null or []:
            if row.get(col) is not None:
                return False
        for col, value in (gte or {}).items():
            if row.get(col) is None or row.get(col) < value:
                return False
        return True

    def select(self, table, columns="*", eq=None, in_=None, is_null=None, gte=None, order=None, ascending=True, limit=None, offset=None):
        self.calls.append(("select", table))
        rows = [r for r in self._rows(table) if self._match(r, eq, in_, is_null, gte)]
        if order:
            rows = sorted(rows, key=lambda r: (r.get(order) is None, r.get(order)), reverse=not ascending)
        rows = rows[offset or 0 :]
        if limit is not None:
            rows = rows[:limit]
        if columns and columns != "*":
            keep = [c.strip() for c in columns.split(",")]
            rows = [{c: r.get(c) for c in keep} for r in rows]
        return [dict(r) for r in rows]

    def select_all(self, table, page_size=1000, **filters):
        return self.select(table, **filters)

    def get(self, table, row_id, columns="*"):
        rows = self.select(table, columns=columns, eq={"id": row_id}, limit=1)
        return rows[0] if rows else None

    def count(self, table, columns="id", **filters):
        return len(self.select(table, **filters))

    def insert(self, table, rows):
        payload = [dict(rows)] if isinstance(rows, dict) else [dict(r) for r in rows]
        for row in payload:
            row.setdefault("id", str(uuid.uuid4()))
        self._rows(table).extend(payload)
        self.calls.append(("insert", table))
        return [dict(r) for r in payload]

    def update(self, table, values, *, eq=None, in_=None):
        if not eq and not in_:
            raise StoreError("update without a filter is not allowed")
        updated = []
        for row in self._rows(table):
            if self._match(row, eq, in_):
                row.update(values)
                updated.append(dict(row))
        self.calls.append(("update", table))
        return updated

    def delete(self, table, *, eq=None, in_=None):
        if not eq and not in_:
            raise StoreError("delete without a filter is not allowed")
        self.tables[table] = [r for r in self._rows(table) if not self._match(r, eq, in_)]
        self.calls.append(("delete", table))


COUNTRIES = [
    {"id": "c-my", "name": "Malaysia", "code": "MY"},
    {"id": "c-th", "name": "Thailand", "code": "TH"},
]
STATES = [
    {"id": "s-sel", "name": "Selangor", "code": "SEL", "country_id": "c-my"},
    {"id": "s-bkk", "name": "Bangkok", "code": "BKK", "country_id": "c-th"},
]
CENTER_TYPES = [
    {"id": "t-in", "name": "Inpatient", "description": ""},
    {"id": "t-com", "name": "Community", "description": ""},
    {"id": "t-out", "name": "Outpatient", "description": ""},
    {"id": "t-spec", "name": "Specialist", "description": ""},
    {"id": "t-hosp", "name": "Hospital", "description": ""},
]


def _centre(id, name, lat, lng, **extra):
    row = {
        "id": id,
        "name": name,
        "address": f"{name} Road, 50000 City",
        "latitude": lat,
        "longitude": lng,
        "phone": None,
        "email": None,
        "website": None,
        "services": "Physiotherapy",
        "accessibility": False,
        "country_id": "c-my",
        "state_id": "s-sel",
        "city_id": None,
        "center_type_id": "t-in",
        "active": True,
        "verified": False,
        "created_at": f"2024-01-{id[-2:]}T00:00:00+00:00",
    }
    row.update(extra)
    return row


@pytest.fixture
def centres():
    return [
        # Kuala Lumpur area
        _centre("r-01", "KL Rehab", 3.139, 101.6869, accessibility=True, verified=True),
        _centre("r-02", "Penang Recovery", 5.4141, 100.3288, center_type_id="t-com"),
        _centre("r-03", "Bangkok Care", 13.7563, 100.5018, country_id="c-th", state_id="s-bkk", center_type_id="t-out"),
        _centre("r-04", "No Coords Centre", None, None, address="Address not provided"),
        _centre("r-05", "kl rehab ", 3.15, 101.7),
        _centre("r-06", "Closed Centre", 3.2, 101.6, active=False),
    ]


@pytest.fixture
def store(centres):
    return FakeStore(
        {
            "rehabilitation_centers": centres,
            "countries": COUNTRIES,
            "states": STATES,
            "center_types": CENTER_TYPES,
            "contact_submissions": [],
        }
    )
