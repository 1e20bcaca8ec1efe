from typing import Any, Dict, List, Optional

from psycopg2 import sql

from racedata.repositories.base import BaseRepository

UPDATABLE_COLUMNS = (
    "winning_horse_number",
    "winning_payout_2_dollar",
    "winning_payout_1_p3",
    "extraction_method",
    "extraction_confidence",
)


class RaceWinnerRepository(BaseRepository):
    """
    Repository for race_winners. At most one row per race (unique race_id).
    """

    def find_by_race_id(self, race_id: str, conn: Any = None) -> Optional[Dict[str, Any]]:
        return self._fetch_one(
            "SELECT * FROM race_winners WHERE race_id = %s",
            (race_id,), conn, action=f"finding winner for race {race_id}"
        )

    def find_by_date_range(self, start_date: Any, end_date: Any, conn: Any = None) -> List[Dict[str, Any]]:
        return self._fetch_all(
            """
            SELECT rw.* FROM race_winners rw
            JOIN races r ON rw.race_id = r.id
            WHERE r.date >= %s AND r.date <= %s
            ORDER BY r.date, r.race_number;
            """,
            (start_date, end_date), conn, action=f"finding winners between {start_date} and {end_date}"
        )

    def find_by_track(self, track_id: int, conn: Any = None) -> List[Dict[str, Any]]:
        return self._fetch_all(
            """
            SELECT rw.* FROM race_winners rw
            JOIN races r ON rw.race_id = r.id
            WHERE r.track_id = %s
            ORDER BY r.date, r.race_number;
            """,
            (track_id,), conn, action=f"finding winners for track {track_id}"
        )

    def create(self, winner: Dict[str, Any], conn: Any = None) -> Dict[str, Any]:
        row = self._fetch_one(
            """
            INSERT INTO race_winners (
                race_id, winning_horse_number, winning_payout_2_dollar,
                winning_payout_1_p3, extraction_method, extraction_confidence
            ) VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING *;
            """,
            self._params(winner), conn, action=f"creating winner for race {winner['race_id']}"
        )
        self.logger.info("Race winner created for %s: #%s", winner["race_id"], winner["winning_horse_number"])
        return row

    def update(self, race_id: str, fields: Dict[str, Any], conn: Any = None) -> Optional[Dict[str, Any]]:
        """Partial update of the winner row for a race. Unknown keys are ignored."""
        changes = {key: value for key, value in fields.items() if key in UPDATABLE_COLUMNS}
        if not changes:
            raise ValueError("No fields to update")

        query = sql.SQL(
            "UPDATE race_winners SET {assignments}, updated_at = CURRENT_TIMESTAMP "
            "WHERE race_id = %s RETURNING *;"
        ).format(
            assignments=sql.SQL(", ").join(
                sql.SQL("{} = %s").format(sql.Identifier(column)) for column in changes
            )
        )
        return self._fetch_one(
            query, tuple(changes.values()) + (race_id,), conn,
            action=f"updating winner for race {race_id}"
        )

    def upsert(self, winner: Dict[str, Any], conn: Any = None) -> Dict[str, Any]:
        """Atomic insert-or-overwrite on the race_id unique constraint."""
        row = self._fetch_one(
            """
            INSERT INTO race_winners (
                race_id, winning_horse_number, winning_payout_2_dollar,
                winning_payout_1_p3, extraction_method, extraction_confidence
            ) VALUES (%s, %s, %s, %s, %s, %s)
            ON CONFLICT (race_id) DO UPDATE SET
                winning_horse_number = EXCLUDED.winning_horse_number,
                winning_payout_2_dollar = EXCLUDED.winning_payout_2_dollar,
                winning_payout_1_p3 = EXCLUDED.winning_payout_1_p3,
                extraction_method = EXCLUDED.extraction_method,
                extraction_confidence = EXCLUDED.extraction_confidence,
                updated_at = CURRENT_TIMESTAMP
            RETURNING *;
            """,
            self._params(winner), conn, action=f"upserting winner for race {winner['race_id']}"
        )
        self.logger.info("Race winner upserted for %s: #%s", winner["race_id"], winner["winning_horse_number"])
        return row

    def delete_by_race_id(self, race_id: str, conn: Any = None) -> bool:
        deleted = self._execute(
            "DELETE FROM race_winners WHERE race_id = %s",
            (race_id,), conn, action=f"deleting winner for race {race_id}"
        ) > 0
        if deleted:
            self.logger.info("Race winner deleted for %s", race_id)
        return deleted

    @staticmethod
    def _params(winner: Dict[str, Any]) -> tuple:
        return (
            winner["race_id"],
            winner["winning_horse_number"],
            winner.get("winning_payout_2_dollar"),
            winner.get("winning_payout_1_p3"),
            winner["extraction_method"],
            winner["extraction_confidence"],
        )
