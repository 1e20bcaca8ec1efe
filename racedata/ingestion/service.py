"""
Daily race data ingestion.

Each race is written track -> race -> entries -> winner inside its own
transaction on its own pooled connection. A failing race is rolled back
and reported; the rest of the batch carries on.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import psycopg2

from racedata.core.config import RACE_NUMBER_MAX, RACE_NUMBER_MIN
from racedata.core.database import DatabaseManager
from racedata.core.exceptions import (
    DatabaseError,
    FatalBatchError,
    ValidationError,
    WinnerExtractionFailure,
)
from racedata.ingestion.winners import WinnerExtractor, validate_winner
from racedata.normalization.data import (
    convert_date_format,
    generate_race_id,
    normalize_race_entry,
    validate_race_entry,
    validate_race_number,
)
from racedata.normalization.tracks import extract_track_code, get_standardized_track_name
from racedata.repositories.base import savepoint
from racedata.repositories.entries import RaceEntryRepository
from racedata.repositories.races import RaceRepository
from racedata.repositories.tracks import TrackRepository
from racedata.repositories.winners import RaceWinnerRepository
from racedata.validation.schemas import (
    DailyRaceDataRequest,
    ProcessingResult,
    ProcessingStatistics,
    RaceData,
)


@dataclass
class RacePlan:
    """Everything about one race that can be derived without touching the database."""
    race_id: str
    race_number: int
    track: Dict[str, Any]
    race: Dict[str, Any]
    entries: List[Dict[str, Any]] = field(default_factory=list)
    dropped_entries: int = 0


@dataclass
class RaceOutcome:
    race_id: str
    entries_stored: int
    entries_dropped: int
    winner: Optional[Dict[str, Any]] = None


class RaceIngestionService:
    """
    Orchestrates the ingestion of a validated batch of races.
    """

    def __init__(self, db_manager: DatabaseManager,
                 tracks: Optional[TrackRepository] = None,
                 races: Optional[RaceRepository] = None,
                 entries: Optional[RaceEntryRepository] = None,
                 winners: Optional[RaceWinnerRepository] = None,
                 extractor: Optional[WinnerExtractor] = None) -> None:
        self.db_manager = db_manager
        self.tracks = tracks or TrackRepository(db_manager)
        self.races = races or RaceRepository(db_manager)
        self.entries = entries or RaceEntryRepository(db_manager)
        self.winners = winners or RaceWinnerRepository(db_manager)
        self.extractor = extractor or WinnerExtractor()
        self.logger = logging.getLogger(self.__class__.__name__)

    def process_daily_race_data(self, request: DailyRaceDataRequest) -> ProcessingResult:
        """
        Processes every race of the batch in order, one transaction per race.

        Returns:
            ProcessingResult: success is True when at least one race was committed.
        """
        statistics = ProcessingStatistics()
        processed_races: List[str] = []

        self.logger.info(
            "Starting daily race data processing: source=%s races=%d",
            request.source, len(request.races)
        )

        try:
            for race in request.races:
                self._process_one(race, request.source, request.race_winners, statistics, processed_races)
        except FatalBatchError as exc:
            self.logger.error(f"Fatal error in daily race data processing: {exc}")
            return ProcessingResult(
                success=False,
                message=f"Fatal error: {exc}",
                statistics=statistics,
                processed_races=processed_races,
            )

        success = statistics.races_processed > 0
        message = (
            "Daily race data processed successfully" if success
            else "No races were processed successfully"
        )
        self.logger.info(
            "Daily race data processing completed: processed=%d skipped=%d entries=%d errors=%d",
            statistics.races_processed, statistics.races_skipped,
            statistics.entries_processed, len(statistics.errors)
        )
        return ProcessingResult(
            success=success,
            message=message,
            statistics=statistics,
            processed_races=processed_races,
        )

    def _acquire_connection(self) -> Any:
        try:
            return self.db_manager.get_connection()
        except (psycopg2.Error, ValueError, RuntimeError) as exc:
            raise FatalBatchError(f"Cannot acquire a database connection: {exc}") from exc

    def _process_one(self, race: RaceData, source: str, race_winners: Mapping[str, Any],
                     statistics: ProcessingStatistics, processed_races: List[str]) -> None:
        label = race.race_id or "unknown"
        conn = self._acquire_connection()
        try:
            plan = self.plan_race(race, source)
            label = plan.race_id
            with conn:
                outcome = self._write_race(conn, plan, race_winners)
        except Exception as exc:
            # psycopg2's connection context manager has already rolled back
            statistics.races_skipped += 1
            statistics.errors.append(f"{label}: {exc}")
            self.logger.error(f"Race {label} rolled back: {exc}")
            return
        finally:
            self.db_manager.release_connection(conn)

        statistics.races_processed += 1
        statistics.entries_processed += outcome.entries_stored
        statistics.entries_skipped += outcome.entries_dropped
        processed_races.append(outcome.race_id)
        self.logger.info(
            "Race %s committed: %d entries, winner=%s",
            outcome.race_id, outcome.entries_stored,
            f"#{outcome.winner['winning_horse_number']} ({outcome.winner['extraction_method']})"
            if outcome.winner else "none"
        )

    def plan_race(self, race: RaceData, source: str) -> RacePlan:
        """
        Validates and normalizes one race without any database access.

        Raises:
            ValidationError: on a bad race number, date or an entry list with nothing usable.
        """
        race_number = validate_race_number(race.race_number)
        if race_number is None:
            raise ValidationError(
                f"Race number must be between {RACE_NUMBER_MIN} and {RACE_NUMBER_MAX}, got: {race.race_number}"
            )

        track = {
            "code": extract_track_code(race.track),
            "name": get_standardized_track_name(race.track),
        }
        race_id = generate_race_id(track["code"], race.date, race_number)

        raw_entries = [entry.model_dump() for entry in race.entries]
        valid_entries = [entry for entry in raw_entries if validate_race_entry(entry)]
        if len(valid_entries) < 1:
            raise ValidationError(f"Race must have at least 1 valid entry, got: {len(valid_entries)}")

        return RacePlan(
            race_id=race_id,
            race_number=race_number,
            track=track,
            race={
                "id": race_id,
                "date": convert_date_format(race.date),
                "race_number": race_number,
                "post_time": race.post_time or None,
                "source_file": source,
            },
            entries=[normalize_race_entry(entry, race_id, source) for entry in valid_entries],
            dropped_entries=len(raw_entries) - len(valid_entries),
        )

    def _write_race(self, conn: Any, plan: RacePlan, race_winners: Mapping[str, Any]) -> RaceOutcome:
        track = self.tracks.get_or_create(plan.track, conn)
        self.races.upsert(dict(plan.race, track_id=track["id"]), conn)
        stored_entries = self.entries.batch_upsert(plan.entries, conn)
        winner = self._store_winner(conn, plan, race_winners)
        return RaceOutcome(
            race_id=plan.race_id,
            entries_stored=len(stored_entries),
            entries_dropped=plan.dropped_entries,
            winner=winner,
        )

    def _store_winner(self, conn: Any, plan: RacePlan,
                      race_winners: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        """Resolves and stores the winner. Failures are logged and never fail the race."""
        try:
            candidate = self.extractor.extract_winner(plan.race_id, plan.entries, race_winners, plan.race_number)
            validate_winner(candidate)
            with savepoint(conn, "race_winner"):
                stored = self.winners.upsert(candidate.model_dump(), conn)
        except (WinnerExtractionFailure, ValidationError, DatabaseError) as exc:
            self.logger.warning(f"No winner stored for race {plan.race_id}: {exc}")
            return None
        return stored
