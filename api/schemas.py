"""API Schemas - Request and Response DTOs"""
from pydantic import BaseModel, Field
from datetime import date, datetime
from uuid import UUID
from typing import Optional, Union

from domain.enums import RentalMode, OccupancyStatus


# Clients may send plain dates or offset-aware datetimes; the service layer
# normalizes both to the canonical zone.
DateOrDateTime = Union[datetime, date]


# ============================================================================
# RESERVATION SCHEMAS
# ============================================================================

class CreateReservationRequest(BaseModel):
    """Create reservation request DTO"""
    client_id: UUID
    room_id: UUID
    check_in: DateOrDateTime
    check_out: DateOrDateTime
    rental_mode: RentalMode
    bed_count: Optional[int] = Field(None, ge=0)


class EditReservationRequest(BaseModel):
    """Edit reservation request DTO"""
    room_id: Optional[UUID] = None
    check_in: Optional[DateOrDateTime] = None
    check_out: Optional[DateOrDateTime] = None
    rental_mode: Optional[RentalMode] = None
    bed_count: Optional[int] = Field(None, ge=0)


class CheckOutRequest(BaseModel):
    """Check-out request DTO"""
    checkout_date: Optional[DateOrDateTime] = None


class ReservationResponse(BaseModel):
    """Reservation response DTO"""
    reservation_id: UUID
    client_id: UUID
    client_name: Optional[str] = None
    room_id: UUID
    room_number: Optional[int] = None
    check_in: date
    check_out: date
    rental_mode: str
    bed_count: int
    status: str
    checked_in: bool
    checked_out: bool
    created_by: str
    created_at: datetime
    modified_at: datetime
    version: int


# ============================================================================
# ROOM & CLIENT SCHEMAS
# ============================================================================

class CreateRoomRequest(BaseModel):
    """Create room request DTO"""
    number: int = Field(ge=1)
    bed_count: int = Field(ge=1)
    group: str = Field(min_length=1)


class UpdateRoomRequest(BaseModel):
    """Update room request DTO"""
    number: Optional[int] = Field(None, ge=1)
    bed_count: Optional[int] = Field(None, ge=1)
    group: Optional[str] = Field(None, min_length=1)


class RoomResponse(BaseModel):
    """Room response DTO"""
    room_id: UUID
    number: int
    bed_count: int
    group: str
    version: int


class CreateClientRequest(BaseModel):
    """Create client request DTO"""
    name: str = Field(min_length=1, max_length=100)
    document: str = Field(min_length=1, max_length=14)
    phone: str = Field(min_length=1, max_length=11)


class ClientResponse(BaseModel):
    """Client response DTO"""
    client_id: UUID
    name: str
    document: str
    phone: str


# ============================================================================
# AVAILABILITY & OCCUPANCY SCHEMAS
# ============================================================================

class RoomAvailabilityResponse(BaseModel):
    """Room availability response DTO"""
    room_id: UUID
    room_number: int
    group: str
    bed_count: int
    start_date: date
    end_date: date
    committed_beds: int
    free_beds: int
    status: OccupancyStatus
    conflict_count: int


class RoomOccupancyResponse(BaseModel):
    """Room occupancy response DTO"""
    room_id: UUID
    room_number: int
    group: str
    bed_count: int
    as_of: date
    committed_beds: int
    status: OccupancyStatus


class DashboardResponse(BaseModel):
    """Dashboard counts response DTO"""
    as_of: date
    total_rooms: int
    full_rooms: int
    partial_rooms: int
    free_rooms: int
    occupancy_rate: float
    reservations_today: int
    pending_check_ins: int
    pending_check_outs: int
    no_shows: int
    active_clients_today: int
    tomorrow_forecast_rate: float
    most_popular_room: Optional[int] = None
    average_stay_days: float


# ============================================================================
# AUTH SCHEMAS
# ============================================================================

class Token(BaseModel):
    """Token response DTO"""
    access_token: str
    token_type: str


class TokenData(BaseModel):
    """Token payload DTO"""
    username: Optional[str] = None


class UserResponse(BaseModel):
    """User response DTO"""
    user_id: UUID
    username: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: str
    disabled: bool
