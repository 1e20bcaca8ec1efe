"""
Track code <-> canonical name mapping.
"""
import re

from racedata.core.config import TRACK_MAP


def _clean(track_input: str) -> str:
    return re.sub(r"\s+", " ", str(track_input or "")).strip().upper()


def extract_track_code(track_input: str) -> str:
    """
    Resolves a track code from a full name ("AQUEDUCT"), a code ("AQU") or a
    free-text label whose first word is either ("AQUEDUCT 04-27-25 Race 3").
    Unknown tracks fall back to their first word.
    """
    cleaned = _clean(track_input)

    for code, name in TRACK_MAP.items():
        if name == cleaned:
            return code

    words = cleaned.split(" ")
    first_word = words[0] if words else ""
    if first_word in TRACK_MAP:
        return first_word
    for code, name in TRACK_MAP.items():
        if name == first_word:
            return code

    # Multi-word names embedded in a longer label ("DELAWARE PARK 9-1-25 Race 2")
    for code, name in TRACK_MAP.items():
        if cleaned.startswith(name + " "):
            return code

    return first_word or "UNKNOWN"


def get_standardized_track_name(track_input: str) -> str:
    code = extract_track_code(track_input)
    return TRACK_MAP.get(code, _clean(track_input))
