import copy
from typing import Any, Dict, List

import psycopg2
import pytest
from unittest.mock import MagicMock

from racedata.core.exceptions import DatabaseError
from racedata.ingestion.service import RaceIngestionService


# --- FAKE DATABASE ---

class FakeStore:
    """Committed state shared by every fake connection."""

    def __init__(self):
        self.data = {"tracks": {}, "races": {}, "entries": {}, "winners": {}}
        self.commits = 0
        self.rollbacks = 0


class FakeCursor:
    def __init__(self, statements: List[str]):
        self.statements = statements

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def execute(self, query, params=None):
        self.statements.append(query)


class FakeConnection:
    """
    Mimics psycopg2's `with conn:` block: writes go to a private copy of the
    store, published on a clean exit and discarded when the block raises.
    """

    def __init__(self, store: FakeStore):
        self.store = store
        self.working = None
        self.statements: List[str] = []

    def __enter__(self):
        self.working = copy.deepcopy(self.store.data)
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None:
            self.store.data = self.working
            self.store.commits += 1
        else:
            self.store.rollbacks += 1
        self.working = None
        return False

    def cursor(self, *args, **kwargs):
        return FakeCursor(self.statements)


class FakeDatabaseManager:
    def __init__(self, store: FakeStore):
        self.store = store
        self.available = True
        self.released: List[FakeConnection] = []

    def get_connection(self):
        if not self.available:
            raise psycopg2.OperationalError("connection refused")
        return FakeConnection(self.store)

    def release_connection(self, conn):
        self.released.append(conn)


# --- FAKE REPOSITORIES ---
# They read and write conn.working, so they only see data inside a transaction.

class FakeTrackRepository:
    def get_or_create(self, track: Dict[str, Any], conn: Any = None) -> Dict[str, Any]:
        tracks = conn.working["tracks"]
        if track["code"] not in tracks:
            tracks[track["code"]] = dict(track, id=len(tracks) + 1)
        return tracks[track["code"]]


class FakeRaceRepository:
    def upsert(self, race: Dict[str, Any], conn: Any = None) -> Dict[str, Any]:
        conn.working["races"][race["id"]] = dict(race)
        return conn.working["races"][race["id"]]


class FakeRaceEntryRepository:
    def __init__(self):
        self.fail_for = set()

    def batch_upsert(self, entries: List[Dict[str, Any]], conn: Any = None) -> List[Dict[str, Any]]:
        rows = {}
        for entry in entries:
            if entry["race_id"] in self.fail_for:
                raise DatabaseError(f"Error batch upserting entries: boom for {entry['race_id']}")
            key = (entry["race_id"], entry["horse_number"])
            conn.working["entries"][key] = dict(entry)
            rows[key] = conn.working["entries"][key]
        return list(rows.values())


class FakeRaceWinnerRepository:
    def __init__(self):
        self.fail_for = set()

    def upsert(self, winner: Dict[str, Any], conn: Any = None) -> Dict[str, Any]:
        if winner["race_id"] in self.fail_for:
            raise DatabaseError(f"Error upserting winner for race {winner['race_id']}: check violation")
        conn.working["winners"][winner["race_id"]] = dict(winner)
        return conn.working["winners"][winner["race_id"]]


# --- FIXTURES ---

@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def fake_db_manager(store):
    return FakeDatabaseManager(store)


@pytest.fixture
def fake_repositories():
    return {
        "tracks": FakeTrackRepository(),
        "races": FakeRaceRepository(),
        "entries": FakeRaceEntryRepository(),
        "winners": FakeRaceWinnerRepository(),
    }


@pytest.fixture
def service(fake_db_manager, fake_repositories):
    """RaceIngestionService wired to the in-memory store."""
    return RaceIngestionService(fake_db_manager, **fake_repositories)


@pytest.fixture
def mock_db_manager():
    """
    MagicMock DatabaseManager whose pooled connection hands out a mocked cursor
    through both `with conn:` and `with conn.cursor(...)`.
    """
    manager = MagicMock()
    mock_conn = manager.get_connection.return_value
    mock_conn.__enter__.return_value = mock_conn
    mock_conn.__exit__.return_value = False
    mock_cursor = MagicMock()
    mock_conn.cursor.return_value.__enter__.return_value = mock_cursor
    return manager


@pytest.fixture
def mock_cursor(mock_db_manager):
    """Returns the mocked cursor for assertion verification."""
    return mock_db_manager.get_connection.return_value.cursor.return_value.__enter__.return_value


@pytest.fixture
def aqueduct_race():
    return {
        "race_id": "AQUEDUCT 04-27-25 Race 3",
        "track": "AQUEDUCT",
        "date": "04-27-25",
        "race_number": 3,
        "post_time": "1:10 PM",
        "entries": [
            {"horse_number": 1, "ml": "5/2", "live_odds": "3.5", "will_pay_2": "$42.40", "sharp_percent": "12.5%"},
            {"horse_number": 2, "ml": "8", "live_odds": "9.1", "will_pay_2": "$298.00", "double": "1,204"},
            {"horse_number": 3, "ml": "4", "live_odds": "N/A", "will_pay_2": "$15.80", "x_figure": 88},
        ],
    }


@pytest.fixture
def daily_batch(aqueduct_race):
    return {"source": "daily_sheet_2025-04-27.xlsx", "races": [aqueduct_race]}
