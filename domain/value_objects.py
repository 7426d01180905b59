"""Domain Value Objects"""
from pydantic import BaseModel, Field, validator
from datetime import date, datetime, timedelta
from uuid import UUID
from typing import Optional, Union
from zoneinfo import ZoneInfo

from domain.enums import OccupancyStatus


def normalize_date(value: Union[date, datetime], timezone_name: str = "UTC") -> date:
    """Bring a client-supplied date or datetime to a calendar date in the canonical zone.

    Aware datetimes are converted to the canonical zone before the date part is
    taken, so an evening booking sent with a negative offset does not land a
    day early. Naive datetimes are assumed to already be canonical.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(ZoneInfo(timezone_name))
        return value.date()
    return value


def today_in(timezone_name: str = "UTC") -> date:
    """Current calendar date in the canonical zone"""
    return datetime.now(ZoneInfo(timezone_name)).date()


class DateRange(BaseModel):
    """Half-open stay interval [check_in, check_out)"""
    check_in: date
    check_out: date

    @validator('check_out')
    def check_out_after_check_in(cls, v, values):
        if 'check_in' in values and v <= values['check_in']:
            raise ValueError('Check-out must be after check-in')
        return v

    def days(self):
        current = self.check_in
        while current < self.check_out:
            yield current
            current += timedelta(days=1)

    class Config:
        frozen = True


class CapacityCheck(BaseModel):
    """Outcome of a successful capacity check"""
    room_id: UUID
    bed_count: int
    committed_beds: int
    requested_beds: int
    conflict_count: int

    @property
    def remaining_beds(self) -> int:
        return self.bed_count - self.committed_beds - self.requested_beds

    class Config:
        frozen = True


class RoomAvailability(BaseModel):
    """Committed capacity of a room over a date range"""
    room_id: UUID
    room_number: int
    group: str
    bed_count: int
    period: DateRange
    committed_beds: int
    free_beds: int
    status: OccupancyStatus
    conflict_count: int

    class Config:
        frozen = True


class RoomOccupancy(BaseModel):
    """Physical occupancy of a room on a single day"""
    room_id: UUID
    room_number: int
    group: str
    bed_count: int
    as_of: date
    committed_beds: int
    status: OccupancyStatus

    class Config:
        frozen = True


class DashboardCounts(BaseModel):
    """Fleet-wide snapshot for the dashboard"""
    as_of: date

    # Occupancy
    total_rooms: int = Field(ge=0)
    full_rooms: int = Field(ge=0)
    partial_rooms: int = Field(ge=0)
    free_rooms: int = Field(ge=0)
    occupancy_rate: float = Field(ge=0, le=1)

    # Same-day movements
    reservations_today: int = Field(ge=0)
    pending_check_ins: int = Field(ge=0)
    pending_check_outs: int = Field(ge=0)
    no_shows: int = Field(ge=0)

    # Clients and trends
    active_clients_today: int = Field(ge=0)
    tomorrow_forecast_rate: float = Field(ge=0)
    most_popular_room: Optional[int] = None
    average_stay_days: float = Field(ge=0, default=0.0)

    class Config:
        frozen = True
