"""Pytest configuration and fixtures."""

import itertools
import os
import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest
from httpx import AsyncClient, ASGITransport

os.environ["SUPABASE_URL"] = "https://test.supabase.co"
os.environ["SUPABASE_KEY"] = "test-key"
os.environ.pop("ANTHROPIC_API_KEY", None)

from backend.voiceprint.main import create_app  # noqa: E402
from backend.voiceprint.services.events import EventBus  # noqa: E402
from backend.voiceprint.services.lifecycle import FingerprintLifecycleManager  # noqa: E402
from backend.voiceprint.services.semantic import (  # noqa: E402
    HeuristicSemanticClient,
    SemanticSignatureExtractor,
)
from backend.voiceprint.services.storage import VoiceprintRepository  # noqa: E402

UNIQUE_KEYS = {
    "voiceprint_traits": ("voiceprint_id", "version"),
    "voiceprint_locks": ("voiceprint_id", "category"),
}

_BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)
_sequence = itertools.count()


def _timestamp() -> str:
    # Strictly increasing so ordering by created_at follows insertion order
    return (_BASE_TIME + timedelta(milliseconds=next(_sequence))).isoformat()


class MockSupabaseClient:
    """In-memory stand-in for the Supabase client: tables plus auth."""

    def __init__(self):
        self.auth = Mock()
        self._tables = {}
        self.failing_tables = set()
        self._setup_auth()

    def _setup_auth(self):
        """Tokens map to users: ``Bearer alice`` authenticates as ``user-alice``."""

        def get_user(token):
            if token == "invalid-token":
                raise Exception("invalid JWT")
            mock_user = Mock()
            mock_user.id = f"user-{token}"
            mock_user.email = f"{token}@example.com"
            return Mock(user=mock_user)

        self.auth.get_user.side_effect = get_user

    def rows(self, table_name):
        return self._tables.setdefault(table_name, [])

    def table(self, table_name):
        return MockQuery(self, table_name)


class MockQuery:
    """One query against a mock table, built up by chained calls."""

    def __init__(self, client, name):
        self.client = client
        self.name = name
        self._rows = client.rows(name)
        self._operation = None
        self._payload = None
        self._on_conflict = None
        self._filters = []
        self._order = None
        self._limit = None

    def insert(self, data):
        self._operation, self._payload = "insert", data
        return self

    def upsert(self, data, on_conflict=None):
        self._operation, self._payload, self._on_conflict = "upsert", data, on_conflict
        return self

    def select(self, *columns):
        self._operation = "select"
        return self

    def update(self, data):
        self._operation, self._payload = "update", data
        return self

    def delete(self):
        self._operation = "delete"
        return self

    def eq(self, column, value):
        self._filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column, value):
        self._filters.append(lambda row: row.get(column) != value)
        return self

    def in_(self, column, values):
        values = list(values)
        self._filters.append(lambda row: row.get(column) in values)
        return self

    def lt(self, column, value):
        self._filters.append(lambda row: row.get(column) is not None and row.get(column) < value)
        return self

    def order(self, column, desc=False):
        self._order = (column, desc)
        return self

    def limit(self, count):
        self._limit = count
        return self

    def _matching(self):
        return [row for row in self._rows if all(f(row) for f in self._filters)]

    def _check_unique(self, item):
        keys = UNIQUE_KEYS.get(self.name)
        if keys and any(all(row.get(k) == item.get(k) for k in keys) for row in self._rows):
            raise Exception(f'duplicate key value violates unique constraint "{self.name}_key"')

    def _insert(self, data):
        items = data if isinstance(data, list) else [data]
        result = []
        for item in items:
            # Create a copy to avoid modifying original
            item_copy = dict(item)
            self._check_unique(item_copy)
            item_copy.setdefault("id", str(uuid.uuid4()))
            stamp = _timestamp()
            item_copy.setdefault("created_at", stamp)
            item_copy.setdefault("updated_at", stamp)
            self._rows.append(item_copy)
            result.append(dict(item_copy))
        return result

    def execute(self):
        """Execute the query and return a response with ``.data``."""
        if self.name in self.client.failing_tables:
            raise ConnectionError(f"storage unavailable: {self.name}")

        if self._operation == "insert":
            data = self._insert(self._payload)
        elif self._operation == "upsert":
            keys = self._on_conflict.split(",") if self._on_conflict else ["id"]
            existing = [
                row for row in self._rows
                if all(row.get(k) == self._payload.get(k) for k in keys)
            ]
            if existing:
                existing[0].update(self._payload)
                data = [dict(existing[0])]
            else:
                data = self._insert(self._payload)
        elif self._operation == "update":
            data = []
            for row in self._matching():
                row.update(self._payload)
                data.append(dict(row))
        elif self._operation == "delete":
            doomed = self._matching()
            self._rows[:] = [row for row in self._rows if row not in doomed]
            data = [dict(row) for row in doomed]
        else:
            data = [dict(row) for row in self._matching()]
            if self._order:
                column, desc = self._order
                data.sort(key=lambda row: row.get(column) or "", reverse=desc)
            if self._limit is not None:
                data = data[:self._limit]

        mock_response = Mock()
        mock_response.data = data
        return mock_response


@pytest.fixture
def supabase():
    return MockSupabaseClient()


@pytest.fixture
def repository(supabase):
    return VoiceprintRepository(supabase)


@pytest.fixture
def bus():
    bus = EventBus(debounce_ms=10)
    yield bus
    bus.clear()


@pytest.fixture
def extractor():
    return SemanticSignatureExtractor(HeuristicSemanticClient(), timeout_seconds=1.0)


@pytest.fixture
def lifecycle(repository, bus, extractor):
    return FingerprintLifecycleManager(repository, bus, extractor)


@pytest.fixture
def recorded_events(bus):
    """Every event delivered on ``bus``, as ``(type, payload)`` pairs."""
    events = []
    for event_type in (
        "sample.created",
        "sample.updated",
        "sample.analyzed",
        "voiceProfile.updated",
        "voiceProfile.constraints.changed",
    ):
        bus.subscribe(event_type, lambda t, p: events.append((t, p)))
    return events


@pytest.fixture
def app(supabase):
    """FastAPI app wired to the in-memory client and heuristic semantics."""
    return create_app(client=supabase, semantic_client=HeuristicSemanticClient())


@pytest.fixture
async def client(app):
    """Async HTTP client for testing with auth header."""
    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"Authorization": "Bearer alice"}
    ) as ac:
        yield ac


@pytest.fixture
def sample_texts():
    """Five distinct samples, each comfortably above the minimum corpus size."""
    return [
        "The river ran low that summer. We walked its banks every morning, "
        "counting herons and talking about nothing. My father said the water "
        "remembered every storm. I believed him then, and I believe him now.",

        "I wrote the first draft in a week. It was bad. The second draft took a "
        "month and it was worse, because I had started trying to sound clever. "
        "The third draft was honest, and honest turned out to be enough.",

        "Our town had one bakery, one school, and one argument that never ended. "
        "Nobody remembered how it started. Everyone knew which side they were on. "
        "On Sundays the argument rested, and so did we.",

        "She kept a notebook of overheard sentences. Strangers on trains, waiters, "
        "children at the park. When I asked why, she said that people tell the "
        "truth when they think nobody is writing it down.",

        "Winter came early and stayed late. The snow buried the fences and the "
        "roads, and for three weeks the mail did not come. We read every book in "
        "the house twice. I still think of that winter as a gift.",
    ]
