import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import psycopg2
import requests

from racedata.core.database import DatabaseManager
from racedata.core.exceptions import ValidationError
from racedata.core.log_config import setup_logging
from racedata.ingestion.client import IngestionClient
from racedata.ingestion.service import RaceIngestionService
from racedata.validation.validators import validate_daily_race_data

logger = logging.getLogger("Ingest")


def load_batch(path: Path) -> Dict[str, Any]:
    """
    Reads one JSON batch file.

    Raises:
        ValidationError: if the file is missing or is not valid JSON.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ValidationError(f"Cannot read batch file {path}: {e}") from e


def ingest_file(path: Path, service: Optional[RaceIngestionService] = None,
                client: Optional[IngestionClient] = None) -> bool:
    """
    Validates and ingests one batch file, locally through the service or
    remotely through the client. Returns True when at least one race was committed.
    """
    try:
        batch = load_batch(path)
        request = validate_daily_race_data(batch)
    except ValidationError as e:
        for message in e.errors:
            logger.error(f"{path.name}: {message}")
        return False

    if client is not None:
        try:
            body = client.submit(request.model_dump())
        except requests.exceptions.RequestException as e:
            logger.error(f"{path.name}: submission failed: {e}")
            return False
        success = bool(body.get("success"))
        statistics = body.get("statistics", {})
    else:
        result = service.process_daily_race_data(request)
        success = result.success
        statistics = result.statistics.model_dump()

    logger.info(
        f"{path.name}: races processed={statistics.get('races_processed', 0)} "
        f"skipped={statistics.get('races_skipped', 0)} "
        f"entries={statistics.get('entries_processed', 0)}"
    )
    for error in statistics.get("errors", []):
        logger.warning(f"{path.name}: {error}")
    return success


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point for the ingestion CLI.
    """
    parser = argparse.ArgumentParser(description="Daily race data ingestion (JSON batch files)")
    parser.add_argument("files", nargs="+", type=Path, help="Batch files in the daily ingestion format")
    parser.add_argument(
        "--api-url",
        help="Submit through a running API instead of writing to DB_URL directly"
    )
    parser.add_argument(
        "--init-schema",
        action="store_true",
        help="Apply the table definitions before ingesting (local mode only)"
    )
    parser.add_argument("--log-level", default="INFO", help="Logging level")

    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    if args.api_url and args.init_schema:
        parser.error("--init-schema applies to local ingestion only and cannot be combined with --api-url")

    service, client, db_manager = None, None, None
    if args.api_url:
        client = IngestionClient(base_url=args.api_url)
    else:
        db_manager = DatabaseManager()
        if args.init_schema:
            try:
                db_manager.init_schema()
            except (psycopg2.Error, ValueError, OSError) as e:
                logger.error(f"Schema initialization failed: {e}")
                db_manager.close_pool()
                return 1
        service = RaceIngestionService(db_manager)

    total = len(args.files)
    logger.info(f"Job started. Processing {total} file(s).")
    failures = 0
    try:
        for i, path in enumerate(args.files, 1):
            logger.info(f"Progress: [{i}/{total}] {path}")
            if not ingest_file(path, service=service, client=client):
                failures += 1
    finally:
        if db_manager is not None:
            db_manager.close_pool()

    logger.info(f"All jobs completed. {total - failures}/{total} file(s) ingested.")
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
