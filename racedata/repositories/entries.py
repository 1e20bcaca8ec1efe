from typing import Any, Dict, List, Optional

import psycopg2
import psycopg2.extras

from racedata.repositories.base import BaseRepository

# Columns written for every entry besides the (race_id, horse_number) key
DATA_COLUMNS = (
    "double", "constant", "p3", "correct_p3", "ml", "live_odds", "sharp_percent",
    "action", "double_delta", "p3_delta", "x_figure", "will_pay_2", "will_pay",
    "will_pay_1_p3", "win_pool", "veto_rating", "raw_data", "source_file",
)
INSERT_COLUMNS = ("race_id", "horse_number") + DATA_COLUMNS

INSERT_SQL = f"INSERT INTO race_entries ({', '.join(INSERT_COLUMNS)}) VALUES %s RETURNING *;"
UPDATE_SQL = (
    "UPDATE race_entries SET "
    + ", ".join(f"{column} = %s" for column in DATA_COLUMNS)
    + ", updated_at = CURRENT_TIMESTAMP WHERE race_id = %s AND horse_number = %s RETURNING *;"
)


class RaceEntryRepository(BaseRepository):
    """
    Repository for race_entries, keyed by (race_id, horse_number).
    """

    def find_by_race_id(self, race_id: str, conn: Any = None) -> List[Dict[str, Any]]:
        return self._fetch_all(
            "SELECT * FROM race_entries WHERE race_id = %s ORDER BY horse_number",
            (race_id,), conn, action=f"finding entries for race {race_id}"
        )

    def find_by_natural_key(self, race_id: str, horse_number: int,
                            conn: Any = None) -> Optional[Dict[str, Any]]:
        return self._fetch_one(
            "SELECT * FROM race_entries WHERE race_id = %s AND horse_number = %s",
            (race_id, horse_number), conn, action=f"finding entry {race_id}#{horse_number}"
        )

    def create(self, entry: Dict[str, Any], conn: Any = None) -> Dict[str, Any]:
        placeholders = ", ".join(["%s"] * len(INSERT_COLUMNS))
        return self._fetch_one(
            f"INSERT INTO race_entries ({', '.join(INSERT_COLUMNS)}) VALUES ({placeholders}) RETURNING *;",
            self._insert_params(entry), conn,
            action=f"creating entry {entry['race_id']}#{entry['horse_number']}"
        )

    def update(self, entry: Dict[str, Any], conn: Any = None) -> Optional[Dict[str, Any]]:
        return self._fetch_one(
            UPDATE_SQL, self._update_params(entry), conn,
            action=f"updating entry {entry['race_id']}#{entry['horse_number']}"
        )

    def upsert(self, entry: Dict[str, Any], conn: Any = None) -> Dict[str, Any]:
        existing = self.find_by_natural_key(entry["race_id"], entry["horse_number"], conn)
        if existing:
            return self.update(entry, conn)
        return self.create(entry, conn)

    def batch_upsert(self, entries: List[Dict[str, Any]], conn: Any = None) -> List[Dict[str, Any]]:
        """
        Upserts a batch with one existence probe, one multi-row INSERT for the
        new keys and one UPDATE per existing key. A key repeated within the
        batch keeps its last occurrence.
        """
        by_key: Dict[tuple, Dict[str, Any]] = {}
        for entry in entries:
            key = (entry["race_id"], entry["horse_number"])
            if key in by_key:
                self.logger.warning(f"Duplicate entry {key[0]}#{key[1]} in batch, keeping the last one")
            by_key[key] = entry
        if not by_key:
            return []

        action = f"batch upserting {len(by_key)} entries"
        try:
            with self._cursor(conn) as cursor:
                cursor.execute(
                    "SELECT race_id, horse_number FROM race_entries WHERE (race_id, horse_number) IN %s",
                    (tuple(by_key.keys()),)
                )
                existing = {(row["race_id"], row["horse_number"]) for row in cursor.fetchall()}

                to_insert = [entry for key, entry in by_key.items() if key not in existing]
                to_update = [entry for key, entry in by_key.items() if key in existing]

                results: List[Dict[str, Any]] = []
                if to_insert:
                    inserted = psycopg2.extras.execute_values(
                        cursor, INSERT_SQL,
                        [self._insert_params(entry) for entry in to_insert],
                        fetch=True
                    )
                    results.extend(dict(row) for row in inserted)
                for entry in to_update:
                    cursor.execute(UPDATE_SQL, self._update_params(entry))
                    row = cursor.fetchone()
                    if row:
                        results.append(dict(row))

                self.logger.debug(f"Entries: {len(to_insert)} inserted, {len(to_update)} updated")
                return results
        except psycopg2.Error as exc:
            raise self._fail(action, exc) from exc

    def delete_by_race_id(self, race_id: str, conn: Any = None) -> int:
        deleted = self._execute(
            "DELETE FROM race_entries WHERE race_id = %s",
            (race_id,), conn, action=f"deleting entries for race {race_id}"
        )
        self.logger.info("Deleted %d entries for race %s", deleted, race_id)
        return deleted

    @staticmethod
    def _insert_params(entry: Dict[str, Any]) -> tuple:
        return tuple(entry.get(column) for column in INSERT_COLUMNS)

    @staticmethod
    def _update_params(entry: Dict[str, Any]) -> tuple:
        return tuple(entry.get(column) for column in DATA_COLUMNS) + (entry["race_id"], entry["horse_number"])
