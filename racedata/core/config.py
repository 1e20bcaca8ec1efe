import os
from pathlib import Path
from dotenv import load_dotenv

env_path = Path(__file__).resolve().parent.parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DB_URL = os.getenv("DB_URL")
DB_POOL_MIN = int(os.getenv("DB_POOL_MIN", "1"))
DB_POOL_MAX = int(os.getenv("DB_POOL_MAX", "10"))

API_KEY = os.getenv("API_KEY")
API_URL = os.getenv("API_URL", "http://127.0.0.1:8000")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

SCHEMA_PATH = Path(__file__).resolve().parent.parent / "db" / "schema.sql"

# --- VALIDATION POLICY ---
# Upstream feeds disagree on the legal race-number range and on how a
# two-digit year maps to a century; both are settled here and nowhere else.
RACE_NUMBER_MIN = int(os.getenv("RACE_NUMBER_MIN", "1"))
RACE_NUMBER_MAX = int(os.getenv("RACE_NUMBER_MAX", "15"))
HORSE_NUMBER_MIN = 1
HORSE_NUMBER_MAX = 16

# "fixed": yy < PIVOT -> 20yy, else 19yy
# "sliding": current century unless the date lands more than WINDOW years ahead
TWO_DIGIT_YEAR_MODE = os.getenv("TWO_DIGIT_YEAR_MODE", "fixed")
TWO_DIGIT_YEAR_PIVOT = int(os.getenv("TWO_DIGIT_YEAR_PIVOT", "50"))
TWO_DIGIT_YEAR_WINDOW = int(os.getenv("TWO_DIGIT_YEAR_WINDOW", "10"))

SENTINEL_VALUES = {"SC", "N/A", "#VALUE!", "#DIV/0!", "FALSE"}

# At least one of these must carry a value for an entry to be stored
SIGNAL_FIELDS = (
    "double", "constant", "p3", "ml", "live_odds", "sharp_percent", "action",
    "double_delta", "p3_delta", "x_figure", "will_pay_2", "will_pay_1_p3", "win_pool",
)

EXTRACTION_METHODS = ("simple_correct", "header", "summary", "cross_reference")
EXTRACTION_CONFIDENCES = ("high", "medium", "low")

TRACK_MAP = {
    "AQU": "AQUEDUCT",
    "AQD": "AQUEDUCT",
    "BEL": "BELMONT",
    "CD": "CHURCHILL",
    "GP": "GULFSTREAM",
    "GPW": "GULFSTREAM",
    "SAR": "SARATOGA",
    "DMR": "DELMAR",
    "DMF": "DELMAR",
    "CNL": "COLONIAL DOWNS",
    "MTH": "MONMOUTH",
    "ELP": "ELLIS PARK",
    "DEL": "DELAWARE PARK",
    "PRX": "PARX",
    "WO": "WOODBINE",
    "KEE": "KEENELAND",
    "SA": "SANTA ANITA",
    "LA": "LOS ALAMITOS",
    "LRL": "LAUREL",
    "PIM": "PIMLICO",
    "KD": "KENTUCKY DOWNS",
    "CBY": "CANTERBURY PARK",
    "GG": "GOLDEN GATE",
    "PEN": "PENN NATIONAL",
    "BAC": "BEYER AVERAGES",
    "TAM": "TAMPA BAY",
    "OP": "OAKLAWN",
    "WOH": "WOODBINE HARNESS",
    "PLAY": "PLAYGROUND"
}
