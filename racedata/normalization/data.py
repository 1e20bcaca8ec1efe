"""
Pure normalization helpers for inbound race data.

Spreadsheet exports deliver most fields as loosely formatted strings
("$298.00", "107.44%", "FALSE"). Everything here turns such raw values into
either a float, a cleaned display string or None; nothing downstream ever
sees the raw form.
"""
import datetime as dt
import math
import re
from typing import Any, Dict, Mapping, Optional, Union

from racedata.core.config import (
    HORSE_NUMBER_MAX,
    HORSE_NUMBER_MIN,
    RACE_NUMBER_MAX,
    RACE_NUMBER_MIN,
    SENTINEL_VALUES,
    SIGNAL_FIELDS,
    TWO_DIGIT_YEAR_MODE,
    TWO_DIGIT_YEAR_PIVOT,
    TWO_DIGIT_YEAR_WINDOW,
)
from racedata.core.exceptions import InvalidDateFormat

RawValue = Union[int, float, str, None]

SHORT_DATE_RE = re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{2})$")
ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
CURRENCY_RE = re.compile(r"^\$?\d+\.?\d*$")
PERCENTAGE_RE = re.compile(r"^\d+\.?\d*%?$")
NUMERIC_NOISE_RE = re.compile(r"[$,\s]")


def expand_two_digit_year(yy: int, mode: Optional[str] = None,
                          today: Optional[dt.date] = None) -> int:
    """
    Maps a two-digit year onto a full year according to the configured policy.
    """
    mode = mode or TWO_DIGIT_YEAR_MODE
    if mode == "fixed":
        return 2000 + yy if yy < TWO_DIGIT_YEAR_PIVOT else 1900 + yy
    if mode == "sliding":
        today = today or dt.date.today()
        year = (today.year // 100) * 100 + yy
        if year > today.year + TWO_DIGIT_YEAR_WINDOW:
            year -= 100
        return year
    raise ValueError(f"Unknown two-digit year mode: {mode}")


def convert_date_format(date_str: str, mode: Optional[str] = None,
                        today: Optional[dt.date] = None) -> str:
    """
    Converts 'M-D-YY' (or an already normalized 'YYYY-MM-DD') to 'YYYY-MM-DD'.

    Raises:
        InvalidDateFormat: on any other shape, or on a day that does not exist.
    """
    if not date_str or not isinstance(date_str, str):
        raise InvalidDateFormat(f"Invalid date string: {date_str!r}")

    cleaned = date_str.strip()
    match = SHORT_DATE_RE.match(cleaned)
    if match:
        month, day, yy = (int(part) for part in match.groups())
        year = expand_two_digit_year(yy, mode=mode, today=today)
    else:
        match = ISO_DATE_RE.match(cleaned)
        if not match:
            raise InvalidDateFormat(f"Unsupported date format: {date_str}")
        year, month, day = (int(part) for part in match.groups())

    try:
        return dt.date(year, month, day).isoformat()
    except ValueError as exc:
        raise InvalidDateFormat(f"Invalid calendar date: {date_str} ({exc})") from exc


def generate_race_id(track_code: str, date_str: str, race_number: Union[int, str]) -> str:
    """Builds the deterministic race key TRACKCODE_YYYYMMDD_NN."""
    date_part = convert_date_format(date_str).replace("-", "")
    number = str(race_number).strip()
    if isinstance(race_number, float) and race_number.is_integer():
        number = str(int(race_number))
    return f"{track_code}_{date_part}_{number.zfill(2)}"


def is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def normalize_numeric(value: RawValue) -> Optional[float]:
    """
    Strips '$', ',' and whitespace and parses a float.
    Sentinels (SC, N/A, #VALUE!, #DIV/0!, FALSE), blanks and garbage give None.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None

    if isinstance(value, str):
        cleaned = NUMERIC_NOISE_RE.sub("", value)
        if not cleaned or cleaned.upper() in SENTINEL_VALUES:
            return None
        try:
            number = float(cleaned)
        except ValueError:
            return None
        return number if math.isfinite(number) else None

    return None


def normalize_currency(value: RawValue) -> Optional[str]:
    """Keeps currency-looking values as display strings."""
    if isinstance(value, bool) or is_empty(value):
        return None
    if isinstance(value, (int, float)):
        return f"{value:.2f}" if math.isfinite(value) else None
    if isinstance(value, str):
        cleaned = value.strip()
        if "$" in cleaned or CURRENCY_RE.match(cleaned):
            return cleaned
    return None


def normalize_percentage(value: RawValue) -> Optional[str]:
    """Keeps percentage-looking values as display strings."""
    if isinstance(value, bool) or is_empty(value):
        return None
    if isinstance(value, (int, float)):
        return str(value) if math.isfinite(value) else None
    if isinstance(value, str):
        cleaned = value.strip()
        if "%" in cleaned or PERCENTAGE_RE.match(cleaned):
            return cleaned
    return None


def _in_range(value: RawValue, low: int, high: int) -> Optional[int]:
    number = normalize_numeric(value)
    if number is None:
        return None
    return math.floor(number) if low <= number <= high else None


def validate_horse_number(value: RawValue) -> Optional[int]:
    return _in_range(value, HORSE_NUMBER_MIN, HORSE_NUMBER_MAX)


def validate_race_number(value: RawValue, minimum: Optional[int] = None,
                         maximum: Optional[int] = None) -> Optional[int]:
    low = RACE_NUMBER_MIN if minimum is None else minimum
    high = RACE_NUMBER_MAX if maximum is None else maximum
    return _in_range(value, low, high)


def validate_race_entry(entry: Mapping[str, Any]) -> bool:
    """An entry is kept only with a valid horse number and at least one signal value."""
    if validate_horse_number(entry.get("horse_number")) is None:
        return False
    return any(not is_empty(entry.get(field)) for field in SIGNAL_FIELDS)


def _clean_text(value: Any) -> Optional[str]:
    if is_empty(value):
        return None
    return str(value).strip()


def normalize_race_entry(entry: Mapping[str, Any], race_id: str,
                         source_file: Optional[str] = None) -> Dict[str, Any]:
    """Maps one raw entry onto the race_entries column set."""
    return {
        "race_id": race_id,
        "horse_number": validate_horse_number(entry.get("horse_number")),
        "double": normalize_numeric(entry.get("double")),
        "constant": normalize_numeric(entry.get("constant")),
        "p3": normalize_numeric(entry.get("p3")),
        "correct_p3": normalize_numeric(entry.get("correct_p3")),
        "ml": normalize_numeric(entry.get("ml")),
        "live_odds": normalize_numeric(entry.get("live_odds")),
        "sharp_percent": normalize_percentage(entry.get("sharp_percent")),
        "action": normalize_numeric(entry.get("action")),
        "double_delta": normalize_numeric(entry.get("double_delta")),
        "p3_delta": normalize_numeric(entry.get("p3_delta")),
        "x_figure": normalize_numeric(entry.get("x_figure")),
        "will_pay_2": normalize_currency(entry.get("will_pay_2")),
        "will_pay": normalize_currency(entry.get("will_pay")),
        "will_pay_1_p3": normalize_currency(entry.get("will_pay_1_p3")),
        "win_pool": normalize_currency(entry.get("win_pool")),
        "veto_rating": _clean_text(entry.get("veto_rating")),
        "raw_data": _clean_text(entry.get("raw_data")),
        "source_file": source_file or None,
    }
