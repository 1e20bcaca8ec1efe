from typing import Any, Dict, List, Optional

from racedata.repositories.base import BaseRepository


class RaceRepository(BaseRepository):
    """
    Repository for the races table. Race ids are derived from
    (track code, date, race number), so upserting by id is upserting by the
    natural key.
    """

    def find_by_id(self, race_id: str, conn: Any = None) -> Optional[Dict[str, Any]]:
        return self._fetch_one(
            "SELECT * FROM races WHERE id = %s",
            (race_id,), conn, action=f"finding race {race_id}"
        )

    def find_by_natural_key(self, track_id: int, race_date: Any, race_number: int,
                            conn: Any = None) -> Optional[Dict[str, Any]]:
        return self._fetch_one(
            "SELECT * FROM races WHERE track_id = %s AND date = %s AND race_number = %s",
            (track_id, race_date, race_number),
            conn, action=f"finding race track={track_id} date={race_date} number={race_number}"
        )

    def find_by_date_range(self, start_date: Any, end_date: Any, conn: Any = None) -> List[Dict[str, Any]]:
        return self._fetch_all(
            """
            SELECT r.*, t.code AS track_code, t.name AS track_name
            FROM races r
            JOIN tracks t ON r.track_id = t.id
            WHERE r.date >= %s AND r.date <= %s
            ORDER BY r.date, t.code, r.race_number;
            """,
            (start_date, end_date), conn, action=f"finding races between {start_date} and {end_date}"
        )

    def create(self, race: Dict[str, Any], conn: Any = None) -> Dict[str, Any]:
        return self._fetch_one(
            """
            INSERT INTO races (id, track_id, date, race_number, post_time, source_file)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING *;
            """,
            self._params(race), conn, action=f"creating race {race['id']}"
        )

    def update(self, race: Dict[str, Any], conn: Any = None) -> Optional[Dict[str, Any]]:
        return self._fetch_one(
            """
            UPDATE races
            SET track_id = %s, date = %s, race_number = %s, post_time = %s,
                source_file = %s, updated_at = CURRENT_TIMESTAMP
            WHERE id = %s
            RETURNING *;
            """,
            self._params(race)[1:] + (race["id"],), conn, action=f"updating race {race['id']}"
        )

    def upsert(self, race: Dict[str, Any], conn: Any = None) -> Dict[str, Any]:
        """Single-statement insert-or-overwrite keyed on the derived race id."""
        return self._fetch_one(
            """
            INSERT INTO races (id, track_id, date, race_number, post_time, source_file)
            VALUES (%s, %s, %s, %s, %s, %s)
            ON CONFLICT (id) DO UPDATE SET
                track_id = EXCLUDED.track_id,
                date = EXCLUDED.date,
                race_number = EXCLUDED.race_number,
                post_time = EXCLUDED.post_time,
                source_file = EXCLUDED.source_file,
                updated_at = CURRENT_TIMESTAMP
            RETURNING *;
            """,
            self._params(race), conn, action=f"upserting race {race['id']}"
        )

    @staticmethod
    def _params(race: Dict[str, Any]) -> tuple:
        return (
            race["id"],
            race["track_id"],
            race["date"],
            race["race_number"],
            race.get("post_time"),
            race.get("source_file"),
        )
