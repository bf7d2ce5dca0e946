from pydantic import BaseModel
from typing import List


class GroupHours(BaseModel):
    group_id: int
    group_name: str
    hours: float


class WeekHoursSummary(BaseModel):
    week_id: int
    total: float
    groups: List[GroupHours]


class LeaderboardEntry(BaseModel):
    user_id: int
    name: str
    hours: float


class UserHoursResponse(BaseModel):
    user_id: int
    year: int
    hours: float
