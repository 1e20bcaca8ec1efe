"""
Winner resolution for a single race.

The upstream feed is a spreadsheet export and does not always declare a
winner, so resolution falls through an ordered list of strategies and
labels the result with how it was obtained:

    header          (high)   winner declared in the race_winners payload
    summary         (medium) entry with the largest $2 will-pay
    cross_reference (low)    same payout comparison, tried last

The summary strategy was meant to read finishing positions, which the feed
does not carry; until it does, summary and cross_reference compute the
same thing and cross_reference is only reached when summary finds nothing.
"""
import logging
import re
from typing import Any, Dict, List, Mapping, Optional

from racedata.core.config import (
    EXTRACTION_CONFIDENCES,
    EXTRACTION_METHODS,
    HORSE_NUMBER_MAX,
    HORSE_NUMBER_MIN,
)
from racedata.core.exceptions import InvalidDateFormat, NoWinnerDeterminable, ValidationError
from racedata.normalization.data import convert_date_format, is_empty, normalize_numeric
from racedata.normalization.tracks import extract_track_code
from racedata.validation.schemas import RaceWinnerRecord

logger = logging.getLogger(__name__)

WINNER_KEY_RE = re.compile(r"^(.+?)\s+(\d{1,2}-\d{1,2}-\d{2})\s+Race\s+(\d+)$", re.IGNORECASE)
LEGACY_KEY_RE = re.compile(r"^race_(\d+)$", re.IGNORECASE)


def winner_key_to_race_id(key: str) -> Optional[str]:
    """
    Converts 'SARATOGA 9-1-25 Race 3' to 'SAR_20250901_03'.
    Returns None when the key does not have that shape.
    """
    match = WINNER_KEY_RE.match(str(key).strip())
    if not match:
        return None
    track_label, date_str, race_number = match.groups()
    try:
        date_part = convert_date_format(date_str).replace("-", "")
    except InvalidDateFormat:
        return None
    return f"{extract_track_code(track_label)}_{date_part}_{race_number.zfill(2)}"


def _as_dict(payload: Any) -> Dict[str, Any]:
    if hasattr(payload, "model_dump"):
        return payload.model_dump()
    return dict(payload)


def find_winner_payload(race_winners: Optional[Mapping[str, Any]], race_id: str,
                        race_number: Optional[int]) -> Optional[Dict[str, Any]]:
    """Picks the payload whose key designates this race, if any."""
    if not race_winners:
        return None

    legacy = None
    for key, payload in race_winners.items():
        key_race_id = winner_key_to_race_id(key)
        if key_race_id == race_id:
            return _as_dict(payload)
        legacy_match = LEGACY_KEY_RE.match(str(key).strip())
        if legacy_match:
            if race_number is not None and int(legacy_match.group(1)) == race_number:
                legacy = _as_dict(payload)
        elif key_race_id is None:
            logger.debug(f"Ignoring unrecognised race_winners key: {key!r}")
    return legacy


def _payout(value: Any) -> Optional[float]:
    """Parses a payout; None when absent, unparseable values included."""
    if is_empty(value):
        return None
    return normalize_numeric(value)


def validate_winner(winner: RaceWinnerRecord) -> RaceWinnerRecord:
    """
    Re-checks a winner candidate regardless of which strategy produced it.

    Raises:
        ValidationError: on the first rule broken.
    """
    number = winner.winning_horse_number
    if not HORSE_NUMBER_MIN <= number <= HORSE_NUMBER_MAX:
        raise ValidationError(
            f"Invalid winner number {number}. Must be between {HORSE_NUMBER_MIN} and {HORSE_NUMBER_MAX}."
        )
    if winner.winning_payout_2_dollar is not None and winner.winning_payout_2_dollar < 0:
        raise ValidationError(f"Invalid payout amount {winner.winning_payout_2_dollar}. Must be positive.")
    if winner.winning_payout_1_p3 is not None and winner.winning_payout_1_p3 < 0:
        raise ValidationError(f"Invalid P3 payout amount {winner.winning_payout_1_p3}. Must be positive.")
    if winner.extraction_method not in EXTRACTION_METHODS:
        raise ValidationError(
            f"Invalid extraction method {winner.extraction_method}. "
            f"Must be one of: {', '.join(EXTRACTION_METHODS)}."
        )
    if winner.extraction_confidence not in EXTRACTION_CONFIDENCES:
        raise ValidationError(
            f"Invalid confidence level {winner.extraction_confidence}. "
            f"Must be one of: {', '.join(EXTRACTION_CONFIDENCES)}."
        )
    return winner


class WinnerExtractor:
    """Resolves the winner of one race from its entries and an optional declared payload."""

    def __init__(self) -> None:
        self.logger = logging.getLogger(self.__class__.__name__)

    def extract_winner(self, race_id: str, entries: List[Dict[str, Any]],
                       race_winners: Optional[Mapping[str, Any]] = None,
                       race_number: Optional[int] = None) -> RaceWinnerRecord:
        """
        Returns the highest-priority winner candidate.

        Raises:
            NoWinnerDeterminable: when there are no entries or no strategy yields a winner.
        """
        if not entries:
            raise NoWinnerDeterminable(f"No entries to determine a winner for race {race_id}")

        payload = find_winner_payload(race_winners, race_id, race_number)
        if payload is not None:
            winner = self._from_header(race_id, entries, payload)
            if winner:
                return winner
            self.logger.warning(f"Declared winner for {race_id} rejected, falling back to payout heuristics")

        for strategy in (self._from_summary, self._from_cross_reference):
            winner = strategy(race_id, entries)
            if winner:
                return winner

        raise NoWinnerDeterminable(f"No winner could be determined for race {race_id}")

    def _from_header(self, race_id: str, entries: List[Dict[str, Any]],
                     payload: Dict[str, Any]) -> Optional[RaceWinnerRecord]:
        number = normalize_numeric(payload.get("winning_horse_number"))
        if number is None or not number.is_integer():
            return None
        number = int(number)
        if not any(entry.get("horse_number") == number for entry in entries):
            return None

        payouts = {}
        for field in ("winning_payout_2_dollar", "winning_payout_1_p3"):
            raw = payload.get(field)
            value = _payout(raw)
            if not is_empty(raw) and (value is None or value < 0):
                return None
            payouts[field] = value

        return RaceWinnerRecord(
            race_id=race_id,
            winning_horse_number=number,
            extraction_method="header",
            extraction_confidence="high",
            **payouts
        )

    def _highest_will_pay(self, entries: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        best, best_payout = None, 0.0
        for entry in entries:
            payout = _payout(entry.get("will_pay_2"))
            if payout is not None and payout > best_payout:
                best, best_payout = entry, payout
        return best

    def _record_for(self, race_id: str, entry: Dict[str, Any], method: str, confidence: str) -> RaceWinnerRecord:
        return RaceWinnerRecord(
            race_id=race_id,
            winning_horse_number=entry["horse_number"],
            winning_payout_2_dollar=_payout(entry.get("will_pay_2")),
            winning_payout_1_p3=_payout(entry.get("will_pay_1_p3")),
            extraction_method=method,
            extraction_confidence=confidence,
        )

    def _from_summary(self, race_id: str, entries: List[Dict[str, Any]]) -> Optional[RaceWinnerRecord]:
        entry = self._highest_will_pay(entries)
        return self._record_for(race_id, entry, "summary", "medium") if entry else None

    def _from_cross_reference(self, race_id: str, entries: List[Dict[str, Any]]) -> Optional[RaceWinnerRecord]:
        entry = self._highest_will_pay(entries)
        return self._record_for(race_id, entry, "cross_reference", "low") if entry else None
