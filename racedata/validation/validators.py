"""
Request-level validation: shape via pydantic, ranges and formats by hand.
Collects every problem instead of stopping at the first one.
"""
import re
from typing import Any, Dict, List

from pydantic import ValidationError as SchemaError

from racedata.core.config import RACE_NUMBER_MAX, RACE_NUMBER_MIN
from racedata.core.exceptions import ValidationError
from racedata.normalization.data import normalize_numeric
from racedata.validation.schemas import DailyRaceDataRequest, RaceData

REQUEST_DATE_RE = re.compile(r"^\d{1,2}-\d{1,2}-\d{2}$")
DIGITS_RE = re.compile(r"^\d+$")


def _schema_messages(exc: SchemaError, prefix: str = "") -> List[str]:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        path = ".".join(part for part in (prefix, location) if part)
        messages.append(f'"{path}" {error.get("msg", "is invalid")}')
    return messages


def _integer_in_range(value: Any, low: float, high: float) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, str):
        if not DIGITS_RE.match(value.strip()):
            return False
    number = normalize_numeric(value)
    return number is not None and number.is_integer() and low <= number <= high


def _race_messages(race: RaceData, path: str) -> List[str]:
    messages = []
    if not race.race_id.strip():
        messages.append(f'"{path}.race_id" is not allowed to be empty')
    if not race.track.strip():
        messages.append(f'"{path}.track" is not allowed to be empty')
    if not REQUEST_DATE_RE.match(race.date.strip()):
        messages.append(f'"{path}.date" with value "{race.date}" fails to match the M-D-YY pattern')
    if not _integer_in_range(race.race_number, RACE_NUMBER_MIN, RACE_NUMBER_MAX):
        messages.append(
            f'"{path}.race_number" must be an integer between {RACE_NUMBER_MIN} and {RACE_NUMBER_MAX}, '
            f'got {race.race_number!r}'
        )
    if not race.entries:
        messages.append(f'"{path}.entries" must contain at least 1 item')
    for index, entry in enumerate(race.entries):
        # Out-of-range horse numbers are dropped later by the entry filter
        if not _integer_in_range(entry.horse_number, 0, float("inf")):
            messages.append(
                f'"{path}.entries.{index}.horse_number" must be a whole number, got {entry.horse_number!r}'
            )
    return messages


def validate_race_data(data: Dict[str, Any]) -> RaceData:
    """
    Validates a single race payload.

    Raises:
        ValidationError: with every problem found.
    """
    try:
        race = RaceData.model_validate(data)
    except SchemaError as exc:
        messages = _schema_messages(exc)
        raise ValidationError("; ".join(messages), messages) from exc

    messages = _race_messages(race, "race")
    if messages:
        raise ValidationError("; ".join(messages), messages)
    return race


def validate_daily_race_data(data: Any) -> DailyRaceDataRequest:
    """
    Validates the whole ingestion request before any database work.

    Raises:
        ValidationError: with every problem found across all races.
    """
    if not isinstance(data, dict):
        raise ValidationError('"value" must be an object')

    try:
        request = DailyRaceDataRequest.model_validate(data)
    except SchemaError as exc:
        messages = _schema_messages(exc)
        raise ValidationError("; ".join(messages), messages) from exc

    messages = []
    if not request.source.strip():
        messages.append('"source" is not allowed to be empty')
    if not request.races:
        messages.append('"races" must contain at least 1 item')
    for index, race in enumerate(request.races):
        messages.extend(_race_messages(race, f"races.{index}"))

    if messages:
        raise ValidationError("; ".join(messages), messages)
    return request
