from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field


DivisionName = Literal["Division 1", "Division 2", "Division 3", "Division 4", "New"]
RaceType = Literal["qualification", "heat", "final"]
ChangeType = Literal["promotion", "demotion", "division_start", "mid_season_join"]
DriverStatus = Literal["ACTIVE", "INACTIVE", "BANNED"]
RoundStatus = Literal["upcoming", "completed", "cancelled"]


class SeasonCreate(BaseModel):
    id: Optional[str] = Field(default=None, max_length=64)
    name: str = Field(min_length=1, max_length=128)
    start_date: str = ""
    end_date: str = ""
    number_of_rounds: int = Field(default=0, ge=0)


class SeasonUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=128)
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    number_of_rounds: Optional[int] = Field(default=None, ge=0)


class LocationCreate(BaseModel):
    id: Optional[str] = Field(default=None, max_length=64)
    name: str = Field(min_length=1, max_length=128)
    address: str = Field(default="", max_length=256)


class LocationUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=128)
    address: Optional[str] = Field(default=None, max_length=256)


class RoundCreate(BaseModel):
    id: Optional[str] = Field(default=None, max_length=64)
    round_number: int = Field(ge=1)
    date: str = ""
    location: str = Field(default="", max_length=128)
    address: str = Field(default="", max_length=256)
    status: RoundStatus = "upcoming"
    location_id: Optional[str] = None


class RoundUpdate(BaseModel):
    round_number: Optional[int] = Field(default=None, ge=1)
    date: Optional[str] = None
    location: Optional[str] = Field(default=None, max_length=128)
    address: Optional[str] = Field(default=None, max_length=256)
    status: Optional[RoundStatus] = None
    location_id: Optional[str] = None


class DriverCreate(BaseModel):
    id: Optional[str] = Field(default=None, max_length=64)
    name: str = Field(min_length=1, max_length=128)
    division: DivisionName
    email: str = ""
    mobile_number: str = ""
    team_name: str = ""
    status: DriverStatus = "ACTIVE"
    aliases: list[str] = Field(default_factory=list)


class DriverUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=128)
    division: Optional[DivisionName] = None
    email: Optional[str] = None
    mobile_number: Optional[str] = None
    team_name: Optional[str] = None
    status: Optional[DriverStatus] = None
    aliases: Optional[list[str]] = None


class TeamCreate(BaseModel):
    id: Optional[str] = Field(default=None, max_length=64)
    name: str = Field(min_length=1, max_length=128)
    division: str = ""


class TeamUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=128)
    division: Optional[str] = None


class RaceResultUpsert(BaseModel):
    driver_id: str
    race_division: str = Field(min_length=1, max_length=32)
    race_type: RaceType = "qualification"
    final_type: str = Field(default="", max_length=4)
    position: int = Field(default=0, ge=0)
    overall_position: Optional[int] = Field(default=None, ge=1)
    fastest_lap: str = ""
    driver_alias: str = ""
    kart_number: str = ""
    confirmed: bool = False


class PointsUpsert(BaseModel):
    round_id: str
    driver_id: str
    division: str = Field(min_length=1, max_length=32)
    race_division: str = ""
    race_type: RaceType = "qualification"
    final_type: str = Field(default="", max_length=4)
    overall_position: Optional[int] = Field(default=None, ge=1)
    points: float
    note: Optional[str] = None


class PointsUpdate(BaseModel):
    division: Optional[str] = None
    overall_position: Optional[int] = Field(default=None, ge=1)
    points: Optional[float] = None
    note: Optional[str] = None


class CheckInUpsert(BaseModel):
    driver_id: str
    checked_in: bool = True


class DivisionChangeCreate(BaseModel):
    id: Optional[str] = Field(default=None, max_length=128)
    round_id: str
    driver_id: str
    change_type: ChangeType
    from_division: Optional[DivisionName] = None
    to_division: Optional[DivisionName] = None
    division_start: Optional[DivisionName] = None


class PointsFilterIn(BaseModel):
    round_id: Optional[str] = None
    race_division: Optional[str] = None
    driver_division: Optional[str] = None
    race_type: Optional[RaceType] = None
    heat_type: Optional[str] = None
    final_type: Optional[str] = None


class PointsViewRequest(BaseModel):
    filters: PointsFilterIn = Field(default_factory=PointsFilterIn)
    edits: dict[str, float] = Field(default_factory=dict)


class DriverPointsOut(BaseModel):
    key: str
    driver_id: str
    driver_name: str
    round_id: str
    round_number: int
    round_name: str
    race_division: str
    division: Optional[str] = None
    race_type: str
    final_type: str
    position: int
    overall_position: int
    points_position: int
    points: float
    saved: bool
    note: Optional[str] = None


class PointsViewOut(BaseModel):
    rows: list[DriverPointsOut]
    driver_totals: dict[str, float]
