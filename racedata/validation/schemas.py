"""
Pydantic schemas for the ingestion request and response.
Inbound fields stay loosely typed (number or text); normalization happens
in racedata.normalization before any business logic sees them.
"""
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

RawValue = Optional[Union[int, float, str]]


class RaceEntryData(BaseModel):
    """
    One horse's wagering signals as exported by the upstream spreadsheet.
    Unknown columns are ignored.
    """
    model_config = ConfigDict(extra="ignore")

    horse_number: Union[int, str]
    double: RawValue = None
    constant: RawValue = None
    p3: RawValue = None
    correct_p3: RawValue = None
    ml: RawValue = None
    live_odds: RawValue = None
    sharp_percent: RawValue = None
    action: RawValue = None
    double_delta: RawValue = None
    p3_delta: RawValue = None
    x_figure: RawValue = None
    will_pay_2: RawValue = None
    will_pay: RawValue = None
    will_pay_1_p3: RawValue = None
    win_pool: RawValue = None
    veto_rating: RawValue = None
    raw_data: Optional[str] = None


class RaceData(BaseModel):
    model_config = ConfigDict(extra="forbid")

    race_id: str = Field(..., description="Free-text label from the source, e.g. 'AQUEDUCT 04-27-25 Race 3'.")
    track: str
    date: str = Field(..., description="Race date as M-D-YY.")
    race_number: Union[int, str]
    post_time: Optional[str] = None
    entries: List[RaceEntryData]


class WinnerPayload(BaseModel):
    """
    Winner declared by the source for one race. Kept loose: an unusable
    declaration is rejected by the winner extractor, never by the request.
    """
    model_config = ConfigDict(extra="ignore")

    race_id: Optional[str] = None
    winning_horse_number: RawValue = None
    winning_payout_2_dollar: RawValue = None
    winning_payout_1_p3: RawValue = None


class DailyRaceDataRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    source: str
    races: List[RaceData]
    race_winners: Dict[str, WinnerPayload] = Field(default_factory=dict)


class ProcessingStatistics(BaseModel):
    races_processed: int = 0
    entries_processed: int = 0
    races_skipped: int = 0
    entries_skipped: int = 0
    errors: List[str] = Field(default_factory=list)


class ProcessingResult(BaseModel):
    success: bool
    message: str
    statistics: ProcessingStatistics
    processed_races: List[str] = Field(default_factory=list)


class RaceWinnerRecord(BaseModel):
    """A winner candidate ready for persistence."""
    race_id: str
    winning_horse_number: int
    winning_payout_2_dollar: Optional[float] = None
    winning_payout_1_p3: Optional[float] = None
    extraction_method: str
    extraction_confidence: str
