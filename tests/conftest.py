"""
Shared test fixtures.

The Supabase double keeps rows per table in memory and applies the
filters the services use (eq, neq, in_, is_, order, range, limit), so
an import followed by a rollback behaves like it would against the
real store.
"""

import os
import sys
from pathlib import Path

# Add project directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

# Settings are read at import time
os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_KEY", "test-anon-key")

import copy
import itertools
import pytest
from unittest.mock import patch
from datetime import datetime, timezone
from typing import Any, Generator, Optional

# ===================
# MOCK SUPABASE CLIENT
# ===================

SERVICE_MODULES = (
    "services.catalog_service",
    "services.import_session_service",
    "services.snapshot_service",
    "services.rollback_service",
    "services.scraping_source_service",
    "services.scraping_job_service",
    "services.price_result_service",
)

SINGLETONS = (
    ("services.catalog_service", "_catalog_service"),
    ("services.import_session_service", "_import_session_service"),
    ("services.import_service", "_import_service"),
    ("services.rollback_service", "_rollback_service"),
    ("services.scraping_source_service", "_scraping_source_service"),
    ("services.scraping_job_service", "_scraping_job_service"),
    ("services.price_result_service", "_price_result_service"),
    ("services.price_scan_service", "_price_scan_service"),
)


class MockSupabaseResponse:
    """Mock Supabase query response."""

    def __init__(self, data: Any = None, count: Optional[int] = None):
        self.data = data if data is not None else []
        self.count = count


def _sort_key(value: Any) -> tuple:
    return (value is None, value if value is not None else 0)


class MockSupabaseQuery:
    """Chainable query against one in-memory table."""

    def __init__(self, client: "MockSupabaseClient", table: str):
        self._client = client
        self._table = table
        self._operation = "select"
        self._payload: Any = None
        self._filters: list = []
        self._order: list = []
        self._range: Optional[tuple[int, int]] = None
        self._limit: Optional[int] = None
        self._count_mode: Optional[str] = None
        self._is_single = False

    # Operations

    def select(self, *args, count: Optional[str] = None, **kwargs):
        self._operation = "select"
        self._count_mode = count
        return self

    def insert(self, data):
        self._operation = "insert"
        self._payload = data
        return self

    def update(self, data):
        self._operation = "update"
        self._payload = data
        return self

    def delete(self):
        self._operation = "delete"
        return self

    # Filters

    def eq(self, column, value):
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column, value):
        self._filters.append(lambda row: row.get(column) != value)
        return self

    def in_(self, column, values):
        allowed = list(values)
        self._filters.append(lambda row: row.get(column) in allowed)
        return self

    def is_(self, column, value):
        if value in (None, "null"):
            self._filters.append(lambda row: row.get(column) is None)
        else:
            self._filters.append(lambda row: row.get(column) == value)
        return self

    def order(self, column, desc: bool = False, **kwargs):
        self._order.append((column, desc))
        return self

    def range(self, start, end):
        self._range = (start, end)
        return self

    def limit(self, count):
        self._limit = count
        return self

    def single(self):
        self._is_single = True
        return self

    # Execution

    def _matches(self, row: dict) -> bool:
        return all(f(row) for f in self._filters)

    def execute(self) -> MockSupabaseResponse:
        self._client.calls.append((self._table, self._operation))
        error = self._client.failures.get((self._table, self._operation))
        if error is not None:
            raise error

        rows = self._client.tables.setdefault(self._table, [])

        if self._operation == "insert":
            payload = self._payload if isinstance(self._payload, list) else [self._payload]
            inserted = []
            for item in payload:
                row = copy.deepcopy(item)
                row.setdefault("id", self._client.next_id(self._table))
                row.setdefault("created_at", _now())
                rows.append(row)
                inserted.append(copy.deepcopy(row))
            return MockSupabaseResponse(data=inserted, count=len(inserted))

        if self._operation == "update":
            updated = []
            for row in rows:
                if self._matches(row):
                    row.update(copy.deepcopy(self._payload))
                    updated.append(copy.deepcopy(row))
            return MockSupabaseResponse(data=updated, count=len(updated))

        if self._operation == "delete":
            removed = [row for row in rows if self._matches(row)]
            self._client.tables[self._table] = [row for row in rows if not self._matches(row)]
            return MockSupabaseResponse(data=copy.deepcopy(removed), count=len(removed))

        selected = [copy.deepcopy(row) for row in rows if self._matches(row)]
        for column, desc in reversed(self._order):
            selected.sort(key=lambda r: _sort_key(r.get(column)), reverse=desc)
        total = len(selected)

        if self._range is not None:
            start, end = self._range
            selected = selected[start:end + 1]
        if self._limit is not None:
            selected = selected[:self._limit]

        count = total if self._count_mode else None
        if self._is_single:
            return MockSupabaseResponse(data=selected[0] if selected else None, count=count)
        return MockSupabaseResponse(data=selected, count=count)


class MockSupabaseClient:
    """In-memory Supabase client."""

    def __init__(self):
        self.tables: dict[str, list[dict]] = {}
        self.failures: dict[tuple[str, str], Exception] = {}
        self.calls: list[tuple[str, str]] = []
        self._ids = itertools.count(1)

    def set_table_data(self, table_name: str, data: list):
        """Replace a table's rows."""
        self.tables[table_name] = copy.deepcopy(data)

    def rows(self, table_name: str) -> list[dict]:
        """Current rows of a table (copies)."""
        return copy.deepcopy(self.tables.get(table_name, []))

    def fail_on(self, table_name: str, operation: str, error: Optional[Exception] = None):
        """Make every `operation` on a table raise."""
        self.failures[(table_name, operation)] = error or Exception(f"{operation} on {table_name} failed")

    def next_id(self, table_name: str) -> str:
        return f"{table_name}-{next(self._ids)}"

    def table(self, name: str) -> MockSupabaseQuery:
        return MockSupabaseQuery(self, name)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ===================
# FIXTURES
# ===================

@pytest.fixture
def mock_supabase() -> MockSupabaseClient:
    """
    Create an in-memory Supabase client.

    Usage:
        def test_something(mock_supabase):
            mock_supabase.set_table_data("normalized_products", [
                {"id": "1", "brand": "Dior", ...}
            ])
    """
    return MockSupabaseClient()


@pytest.fixture
def mock_db(mock_supabase, monkeypatch) -> Generator:
    """
    Patch every service's database client with the mock.

    Service singletons are reset so they pick the mock up.
    """
    for module, attribute in SINGLETONS:
        monkeypatch.setattr(f"{module}.{attribute}", None)

    patchers = [patch("config.database.get_supabase_client", return_value=mock_supabase)]
    patchers += [
        patch(f"{module}.get_supabase_client", return_value=mock_supabase)
        for module in SERVICE_MODULES
    ]
    for patcher in patchers:
        patcher.start()
    try:
        yield mock_supabase
    finally:
        for patcher in reversed(patchers):
            patcher.stop()


@pytest.fixture
def supplier() -> dict:
    """Supplier row used by scans and supplier-scoped imports."""
    return {
        "id": "supplier-1",
        "name": "Parfum Groothandel BV",
        "created_at": "2026-01-05T10:00:00+00:00",
    }


@pytest.fixture
def column_mapping():
    """Mapping matching the sample_rows headers."""
    from models.product import ColumnMapping

    return ColumnMapping(
        brand="Brand",
        product_name="Product",
        wholesale_price="Price",
        variant_size="Size",
        ean="EAN",
    )


@pytest.fixture
def sample_rows() -> list[dict]:
    """Three spreadsheet rows as read from a supplier file."""
    return [
        {"Brand": "Dior", "Product": "Sauvage Eau de Toilette", "Price": "45,50", "Size": "100 ml", "EAN": "3348901250146"},
        {"Brand": "Chanel", "Product": "Bleu de Chanel", "Price": "62.00", "Size": "50ml", "EAN": "3145891073607"},
        {"Brand": "Hugo Boss", "Product": "Boss Bottled", "Price": "€ 29,95", "Size": "200 ML", "EAN": "737052347998"},
    ]


# ===================
# API TEST CLIENT
# ===================

@pytest.fixture
def test_client_with_mock_db(mock_db):
    """
    Create FastAPI test client with mocked database.

    Usage:
        def test_endpoint(test_client_with_mock_db, mock_supabase):
            mock_supabase.set_table_data("import_sessions", [...])
            response = test_client_with_mock_db.get("/api/imports")
    """
    from fastapi.testclient import TestClient
    from main import app

    return TestClient(app)
