from datetime import datetime, timezone
from typing import Annotated, Any, Optional

from pydantic import AfterValidator, BaseModel


def _as_utc(value: datetime) -> datetime:
    # SQLite hands timestamps back without an offset; they are stored as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]


class SessionOut(BaseModel):
    session_id: str
    sport: str
    started_utc: UtcDatetime
    stopped_utc: Optional[UtcDatetime]
    notes: Optional[str]
    active_teams: Optional[str]

    class Config:
        from_attributes = True


class RosterOut(BaseModel):
    display_id: str
    team_code: str
    number: int
    first_name: Optional[str]
    last_name: Optional[str]
    full_name: str
    position_offense: Optional[str]
    position_defense: Optional[str]
    grade: str
    height: Optional[str]
    weight: Optional[str]
    is_active: bool
    last_updated_utc: Optional[UtcDatetime]

    class Config:
        from_attributes = True


class LiveStateOut(BaseModel):
    session_id: str
    home_score: int
    away_score: int
    period_or_quarter: Optional[str]
    clock_time: Optional[str]
    clock_running: bool
    possession: Optional[str]
    down: Optional[int]
    distance: Optional[str]
    flag: Optional[bool]
    home_timeouts: Optional[int]
    away_timeouts: Optional[int]
    home_sets: Optional[int]
    away_sets: Optional[int]
    current_set: Optional[int]
    last_updated_utc: Optional[UtcDatetime]

    class Config:
        from_attributes = True


class ActionOut(BaseModel):
    id: int
    session_id: str
    when_utc: UtcDatetime
    user: Optional[str]
    action_type: str
    post_state: dict[str, Any]
    pre_state: Optional[dict[str, Any]]
    undo_of_id: Optional[int]


class ImportLogOut(BaseModel):
    id: int
    level: str
    message: str
    context_json: Optional[str]
    created_utc: Optional[UtcDatetime]

    class Config:
        from_attributes = True
