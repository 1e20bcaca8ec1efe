import psycopg2
import pytest
from unittest.mock import MagicMock, patch

from racedata.core.exceptions import DatabaseError
from racedata.repositories.base import savepoint
from racedata.repositories.entries import RaceEntryRepository
from racedata.repositories.races import RaceRepository
from racedata.repositories.tracks import TrackRepository
from racedata.repositories.winners import RaceWinnerRepository


def _queries(mock_cursor):
    return [call[0][0] for call in mock_cursor.execute.call_args_list]


def _entry(horse_number, **fields):
    entry = {"race_id": "AQU_20250427_03", "horse_number": horse_number, "will_pay_2": "$10.00"}
    entry.update(fields)
    return entry


# --- Connection handling ---

def test_pooled_connection_is_released(mock_db_manager, mock_cursor):
    mock_cursor.fetchone.return_value = {"id": 1, "code": "AQU", "name": "AQUEDUCT"}
    repo = TrackRepository(mock_db_manager)

    assert repo.find_by_code("AQU") == {"id": 1, "code": "AQU", "name": "AQUEDUCT"}

    mock_conn = mock_db_manager.get_connection.return_value
    mock_conn.__enter__.assert_called_once()
    mock_db_manager.release_connection.assert_called_once_with(mock_conn)


def test_caller_connection_is_not_committed_or_released(mock_db_manager):
    caller_conn = MagicMock()
    cursor = caller_conn.cursor.return_value.__enter__.return_value
    cursor.fetchone.return_value = None
    repo = RaceRepository(mock_db_manager)

    assert repo.find_by_id("AQU_20250427_03", caller_conn) is None

    mock_db_manager.get_connection.assert_not_called()
    caller_conn.commit.assert_not_called()
    caller_conn.__enter__.assert_not_called()


def test_driver_errors_become_database_errors(mock_db_manager, mock_cursor):
    mock_cursor.execute.side_effect = psycopg2.IntegrityError("duplicate key")
    repo = RaceRepository(mock_db_manager)

    with pytest.raises(DatabaseError, match="upserting race AQU_20250427_03") as exc_info:
        repo.upsert({"id": "AQU_20250427_03", "track_id": 1, "date": "2025-04-27", "race_number": 3})
    assert isinstance(exc_info.value.__cause__, psycopg2.Error)


# --- Tracks ---

def test_get_or_create_inserts_new_track(mock_db_manager, mock_cursor):
    mock_cursor.fetchone.return_value = {"id": 7, "code": "AQU", "name": "AQUEDUCT", "location": None}
    repo = TrackRepository(mock_db_manager)

    track = repo.get_or_create({"code": "AQU", "name": "AQUEDUCT"})

    assert track["id"] == 7
    queries = _queries(mock_cursor)
    assert len(queries) == 1
    assert "ON CONFLICT (code) DO NOTHING" in queries[0]


def test_get_or_create_reselects_existing_track(mock_db_manager, mock_cursor):
    existing = {"id": 3, "code": "AQU", "name": "AQUEDUCT", "location": "Queens"}
    mock_cursor.fetchone.side_effect = [None, existing]
    repo = TrackRepository(mock_db_manager)

    assert repo.get_or_create({"code": "AQU", "name": "Renamed"}) == existing
    queries = _queries(mock_cursor)
    assert "SELECT * FROM tracks WHERE code" in queries[1]
    assert not any("UPDATE" in q for q in queries)


# --- Races ---

def test_race_upsert_params(mock_db_manager, mock_cursor):
    mock_cursor.fetchone.return_value = {"id": "AQU_20250427_03"}
    repo = RaceRepository(mock_db_manager)

    repo.upsert({
        "id": "AQU_20250427_03", "track_id": 7, "date": "2025-04-27",
        "race_number": 3, "post_time": "1:10 PM", "source_file": "sheet.xlsx",
    })

    query, params = mock_cursor.execute.call_args[0]
    assert "ON CONFLICT (id) DO UPDATE" in query
    assert params == ("AQU_20250427_03", 7, "2025-04-27", 3, "1:10 PM", "sheet.xlsx")


def test_race_update_moves_id_last(mock_db_manager, mock_cursor):
    repo = RaceRepository(mock_db_manager)
    repo.update({"id": "AQU_20250427_03", "track_id": 7, "date": "2025-04-27", "race_number": 3})
    params = mock_cursor.execute.call_args[0][1]
    assert params == (7, "2025-04-27", 3, None, None, "AQU_20250427_03")


# --- Entries ---

def test_batch_upsert_splits_new_and_existing(mock_db_manager, mock_cursor):
    mock_cursor.fetchall.return_value = [{"race_id": "AQU_20250427_03", "horse_number": 2}]
    mock_cursor.fetchone.return_value = {"race_id": "AQU_20250427_03", "horse_number": 2}
    repo = RaceEntryRepository(mock_db_manager)

    with patch("racedata.repositories.entries.psycopg2.extras.execute_values") as mock_execute_values:
        mock_execute_values.return_value = [
            {"race_id": "AQU_20250427_03", "horse_number": 1},
            {"race_id": "AQU_20250427_03", "horse_number": 3},
        ]
        rows = repo.batch_upsert([_entry(1), _entry(2), _entry(3)])

    assert len(rows) == 3
    inserted = mock_execute_values.call_args[0][2]
    assert [params[1] for params in inserted] == [1, 3]

    updates = [q for q in _queries(mock_cursor) if q.startswith("UPDATE race_entries")]
    assert len(updates) == 1
    update_params = mock_cursor.execute.call_args_list[-1][0][1]
    assert update_params[-2:] == ("AQU_20250427_03", 2)


def test_batch_upsert_last_duplicate_wins(mock_db_manager, mock_cursor, caplog):
    mock_cursor.fetchall.return_value = []
    repo = RaceEntryRepository(mock_db_manager)

    with patch("racedata.repositories.entries.psycopg2.extras.execute_values") as mock_execute_values:
        mock_execute_values.return_value = [{"race_id": "AQU_20250427_03", "horse_number": 4}]
        repo.batch_upsert([_entry(4, will_pay_2="$1.00"), _entry(4, will_pay_2="$9.00")])

    inserted = mock_execute_values.call_args[0][2]
    assert len(inserted) == 1
    assert "$9.00" in inserted[0]
    assert "Duplicate entry AQU_20250427_03#4" in caplog.text


def test_batch_upsert_empty(mock_db_manager):
    assert RaceEntryRepository(mock_db_manager).batch_upsert([]) == []
    mock_db_manager.get_connection.assert_not_called()


def test_entry_upsert_updates_existing(mock_db_manager, mock_cursor):
    mock_cursor.fetchone.side_effect = [{"id": 1}, {"id": 1, "horse_number": 2}]
    repo = RaceEntryRepository(mock_db_manager)

    repo.upsert(_entry(2))

    queries = _queries(mock_cursor)
    assert queries[0].startswith("SELECT * FROM race_entries")
    assert queries[1].startswith("UPDATE race_entries")


# --- Winners ---

def test_winner_upsert_conflict_target(mock_db_manager, mock_cursor):
    repo = RaceWinnerRepository(mock_db_manager)
    repo.upsert({
        "race_id": "AQU_20250427_03", "winning_horse_number": 2,
        "extraction_method": "summary", "extraction_confidence": "medium",
    })
    query, params = mock_cursor.execute.call_args[0]
    assert "ON CONFLICT (race_id) DO UPDATE" in query
    assert params == ("AQU_20250427_03", 2, None, None, "summary", "medium")


def test_winner_partial_update_filters_columns(mock_db_manager, mock_cursor):
    repo = RaceWinnerRepository(mock_db_manager)
    repo.update("AQU_20250427_03", {"winning_horse_number": 5, "race_id": "hijack"})
    params = mock_cursor.execute.call_args[0][1]
    assert params == (5, "AQU_20250427_03")


def test_winner_partial_update_requires_fields(mock_db_manager):
    with pytest.raises(ValueError):
        RaceWinnerRepository(mock_db_manager).update("AQU_20250427_03", {"unknown": 1})


def test_winner_delete_reports_rowcount(mock_db_manager, mock_cursor):
    mock_cursor.rowcount = 0
    assert RaceWinnerRepository(mock_db_manager).delete_by_race_id("AQU_20250427_03") is False


# --- Savepoints ---

def test_savepoint_rolls_back_and_reraises():
    conn = MagicMock()
    cursor = conn.cursor.return_value.__enter__.return_value

    with pytest.raises(DatabaseError):
        with savepoint(conn, "race_winner"):
            raise DatabaseError("check violation")

    statements = [call[0][0] for call in cursor.execute.call_args_list]
    assert statements == ["SAVEPOINT race_winner", "ROLLBACK TO SAVEPOINT race_winner"]


def test_savepoint_released_on_success():
    conn = MagicMock()
    cursor = conn.cursor.return_value.__enter__.return_value

    with savepoint(conn, "race_winner"):
        pass

    statements = [call[0][0] for call in cursor.execute.call_args_list]
    assert statements == ["SAVEPOINT race_winner", "RELEASE SAVEPOINT race_winner"]
