from typing import Any, Dict, List, Optional

from racedata.repositories.base import BaseRepository


class TrackRepository(BaseRepository):
    """
    Repository for the tracks table. A track's identity is its code.
    """

    def find_by_code(self, code: str, conn: Any = None) -> Optional[Dict[str, Any]]:
        return self._fetch_one(
            "SELECT * FROM tracks WHERE code = %s",
            (code,), conn, action=f"finding track by code {code}"
        )

    def find_by_id(self, track_id: int, conn: Any = None) -> Optional[Dict[str, Any]]:
        return self._fetch_one(
            "SELECT * FROM tracks WHERE id = %s",
            (track_id,), conn, action=f"finding track {track_id}"
        )

    def find_all(self, conn: Any = None) -> List[Dict[str, Any]]:
        return self._fetch_all("SELECT * FROM tracks ORDER BY name", None, conn, action="listing tracks")

    def create(self, track: Dict[str, Any], conn: Any = None) -> Dict[str, Any]:
        return self._fetch_one(
            """
            INSERT INTO tracks (code, name, location)
            VALUES (%s, %s, %s)
            RETURNING *;
            """,
            (track["code"], track["name"], track.get("location")),
            conn, action=f"creating track {track['code']}"
        )

    def update(self, track: Dict[str, Any], conn: Any = None) -> Optional[Dict[str, Any]]:
        return self._fetch_one(
            """
            UPDATE tracks
            SET name = %s, location = %s, updated_at = CURRENT_TIMESTAMP
            WHERE code = %s
            RETURNING *;
            """,
            (track["name"], track.get("location"), track["code"]),
            conn, action=f"updating track {track['code']}"
        )

    def upsert(self, track: Dict[str, Any], conn: Any = None) -> Dict[str, Any]:
        return self._fetch_one(
            """
            INSERT INTO tracks (code, name, location)
            VALUES (%s, %s, %s)
            ON CONFLICT (code) DO UPDATE SET
                name = EXCLUDED.name,
                location = COALESCE(EXCLUDED.location, tracks.location),
                updated_at = CURRENT_TIMESTAMP
            RETURNING *;
            """,
            (track["code"], track["name"], track.get("location")),
            conn, action=f"upserting track {track['code']}"
        )

    def get_or_create(self, track: Dict[str, Any], conn: Any = None) -> Dict[str, Any]:
        """
        Returns the existing track for the code, creating it if needed.
        Never modifies an existing row. Safe against a concurrent insert of
        the same code: the losing insert does nothing and the re-select sees
        the winner's row.
        """
        row = self._fetch_one(
            """
            INSERT INTO tracks (code, name, location)
            VALUES (%s, %s, %s)
            ON CONFLICT (code) DO NOTHING
            RETURNING *;
            """,
            (track["code"], track["name"], track.get("location")),
            conn, action=f"creating track {track['code']}"
        )
        if row:
            self.logger.info("Created track %s (%s)", row["code"], row["name"])
            return row
        existing = self.find_by_code(track["code"], conn)
        if existing is None:
            raise self._fail(f"resolving track {track['code']}", LookupError("track vanished after conflict"))
        return existing
