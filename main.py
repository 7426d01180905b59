from fastapi import FastAPI, HTTPException, Depends, Response
from uuid import UUID
from datetime import date
from typing import List, Optional
from fastapi.security import OAuth2PasswordRequestForm

from api.schemas import (
    # Reservation
    CreateReservationRequest, EditReservationRequest, CheckOutRequest, ReservationResponse,
    # Rooms & clients
    CreateRoomRequest, UpdateRoomRequest, RoomResponse, CreateClientRequest, ClientResponse,
    # Availability & occupancy
    RoomAvailabilityResponse, RoomOccupancyResponse, DashboardResponse,
    # Auth
    Token, UserResponse
)

from api.dependencies import get_current_active_user, require_admin, fake_users_db, get_user
from infrastructure.security import verify_password, create_access_token
from infrastructure.config import get_settings
from infrastructure.locking import RoomLockRegistry
from infrastructure.logger import configure_logging, get_logger
from domain.auth import User
from domain.exceptions import (
    CapacityExceededError, DomainError, DuplicateError, NotFoundError
)

from application.services import (
    ConflictResolver, ReservationService, OccupancyService, RoomService, ClientService
)
from infrastructure.repositories.in_memory_repositories import (
    InMemoryReservationRepository, InMemoryRoomRepository, InMemoryClientRepository
)
from domain.enums import ReservationStatus, RentalMode, OccupancyStatus

settings = get_settings()
configure_logging()
logger = get_logger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    description="Room and bed allocation with overbooking protection",
    version=settings.API_VERSION
)

# Initialize repositories (singleton for in-memory storage)
reservation_repo = InMemoryReservationRepository()
room_repo = InMemoryRoomRepository()
client_repo = InMemoryClientRepository()

# Shared by every writer so room-level serialization holds across services
room_locks = RoomLockRegistry()


# Dependency injection
def get_conflict_resolver() -> ConflictResolver:
    return ConflictResolver(reservation_repo, room_repo)

def get_reservation_service() -> ReservationService:
    return ReservationService(
        reservation_repo, room_repo, client_repo,
        resolver=get_conflict_resolver(), locks=room_locks, settings=settings
    )

def get_occupancy_service() -> OccupancyService:
    return OccupancyService(reservation_repo, room_repo, settings=settings)

def get_room_service() -> RoomService:
    return RoomService(room_repo, reservation_repo, get_occupancy_service(), room_locks)

def get_client_service() -> ClientService:
    return ClientService(client_repo)


# Error mapping
_STATUS_BY_ERROR = (
    (NotFoundError, 404),
    (CapacityExceededError, 409),
    (DuplicateError, 409),
)

def _to_http_error(error: ValueError) -> HTTPException:
    """Translate a business-rule failure into an HTTP error"""
    status_code = 400
    headers = None
    if isinstance(error, DomainError):
        headers = {"X-Error-Code": error.error_code}
        for error_type, code in _STATUS_BY_ERROR:
            if isinstance(error, error_type):
                status_code = code
                break
    return HTTPException(status_code=status_code, detail=str(error), headers=headers)

# ============================================================================
# HEALTH & ENUM REFERENCE ENDPOINTS
# ============================================================================

@app.get("/api/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "message": "API is running"}

@app.get("/api/enums/reservation-status", tags=["Enum Reference"])
async def get_reservation_statuses():
    """Get all ReservationStatus enum values"""
    return {
        "values": [item.name for item in ReservationStatus],
        "description": "Reservation status values: RESERVED, ACTIVE, FINALIZED, CANCELLED"
    }

@app.get("/api/enums/rental-mode", tags=["Enum Reference"])
async def get_rental_modes():
    """Get all RentalMode enum values"""
    return {
        "values": [item.name for item in RentalMode],
        "description": "Rental mode values: WHOLE_ROOM, BY_BED"
    }

@app.get("/api/enums/occupancy-status", tags=["Enum Reference"])
async def get_occupancy_statuses():
    """Get all OccupancyStatus enum values"""
    return {
        "values": [item.name for item in OccupancyStatus],
        "description": "Occupancy status values: FREE, PARTIAL, FULL"
    }

# ============================================================================
# AUTH ENDPOINTS
# ============================================================================

@app.post("/token", response_model=Token, tags=["Auth"])
async def login_for_access_token(form_data: OAuth2PasswordRequestForm = Depends()):
    user = get_user(fake_users_db, form_data.username)
    if not user or not verify_password(form_data.password, user.hashed_password):
        raise HTTPException(
            status_code=401,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    access_token = create_access_token(data={"sub": user.username, "role": user.role.value})
    return {"access_token": access_token, "token_type": "bearer"}

@app.get("/users/me", response_model=UserResponse, tags=["Auth"])
async def read_users_me(current_user: User = Depends(get_current_active_user)):
    return UserResponse(
        user_id=current_user.user_id,
        username=current_user.username,
        email=current_user.email,
        full_name=current_user.full_name,
        role=current_user.role.value,
        disabled=current_user.disabled
    )

# ============================================================================
# ROOM ENDPOINTS
# ============================================================================

@app.post("/api/rooms", response_model=RoomResponse, status_code=201, tags=["Rooms"])
async def create_room(
    request: CreateRoomRequest,
    service: RoomService = Depends(get_room_service),
    current_user: User = Depends(require_admin)
):
    """Register a new room"""
    try:
        room = await service.create_room(request.number, request.bed_count, request.group)
        return _room_to_response(room)
    except ValueError as e:
        raise _to_http_error(e)

@app.get("/api/rooms", response_model=List[RoomResponse], tags=["Rooms"])
async def list_rooms(
    group: Optional[str] = None,
    min_beds: Optional[int] = None,
    available: Optional[bool] = None,
    service: RoomService = Depends(get_room_service),
    current_user: User = Depends(get_current_active_user)
):
    """List rooms with optional filters"""
    rooms = await service.list_rooms(group=group, min_beds=min_beds, available=available)
    return [_room_to_response(r) for r in rooms]

@app.get("/api/rooms/{room_id}", response_model=RoomResponse, tags=["Rooms"])
async def get_room(
    room_id: UUID,
    service: RoomService = Depends(get_room_service),
    current_user: User = Depends(get_current_active_user)
):
    """Get room by ID"""
    room = await service.get_room(room_id)
    if not room:
        raise HTTPException(status_code=404, detail="Room not found")
    return _room_to_response(room)

@app.put("/api/rooms/{room_id}", response_model=RoomResponse, tags=["Rooms"])
async def update_room(
    room_id: UUID,
    request: UpdateRoomRequest,
    service: RoomService = Depends(get_room_service),
    current_user: User = Depends(require_admin)
):
    """Update room details"""
    try:
        room = await service.update_room(
            room_id, number=request.number, bed_count=request.bed_count, group=request.group
        )
        return _room_to_response(room)
    except ValueError as e:
        raise _to_http_error(e)

@app.delete("/api/rooms/{room_id}", status_code=204, tags=["Rooms"])
async def delete_room(
    room_id: UUID,
    service: RoomService = Depends(get_room_service),
    current_user: User = Depends(require_admin)
):
    """Delete a room with no reserved or active bookings"""
    try:
        await service.delete_room(room_id)
        return Response(status_code=204)
    except ValueError as e:
        raise _to_http_error(e)

@app.get("/api/rooms/{room_id}/availability", response_model=RoomAvailabilityResponse, tags=["Rooms"])
async def get_room_availability(
    room_id: UUID,
    start_date: date,
    end_date: date,
    exclude_reservation_id: Optional[UUID] = None,
    resolver: ConflictResolver = Depends(get_conflict_resolver),
    current_user: User = Depends(get_current_active_user)
):
    """Committed and free beds of a room for a period"""
    try:
        availability = await resolver.room_availability(
            room_id, start_date, end_date, exclude_reservation_id
        )
        return RoomAvailabilityResponse(
            room_id=availability.room_id,
            room_number=availability.room_number,
            group=availability.group,
            bed_count=availability.bed_count,
            start_date=availability.period.check_in,
            end_date=availability.period.check_out,
            committed_beds=availability.committed_beds,
            free_beds=availability.free_beds,
            status=availability.status,
            conflict_count=availability.conflict_count
        )
    except ValueError as e:
        raise _to_http_error(e)

@app.get("/api/rooms/{room_id}/occupancy", response_model=RoomOccupancyResponse, tags=["Rooms"])
async def get_room_occupancy(
    room_id: UUID,
    as_of: Optional[date] = None,
    service: OccupancyService = Depends(get_occupancy_service),
    current_user: User = Depends(get_current_active_user)
):
    """Current physical occupancy of a room"""
    try:
        occupancy = await service.room_occupancy(room_id, as_of)
        return RoomOccupancyResponse(**occupancy.model_dump())
    except ValueError as e:
        raise _to_http_error(e)

# ============================================================================
# CLIENT ENDPOINTS
# ============================================================================

@app.post("/api/clients", response_model=ClientResponse, status_code=201, tags=["Clients"])
async def create_client(
    request: CreateClientRequest,
    service: ClientService = Depends(get_client_service),
    current_user: User = Depends(require_admin)
):
    """Register a new client"""
    try:
        client = await service.create_client(request.name, request.document, request.phone)
        return ClientResponse(**client.model_dump(include={"client_id", "name", "document", "phone"}))
    except ValueError as e:
        raise _to_http_error(e)

@app.get("/api/clients", response_model=List[ClientResponse], tags=["Clients"])
async def list_clients(
    service: ClientService = Depends(get_client_service),
    current_user: User = Depends(get_current_active_user)
):
    """List clients"""
    clients = await service.list_clients()
    return [ClientResponse(**c.model_dump(include={"client_id", "name", "document", "phone"}))
            for c in clients]

@app.get("/api/clients/{client_id}", response_model=ClientResponse, tags=["Clients"])
async def get_client(
    client_id: UUID,
    service: ClientService = Depends(get_client_service),
    current_user: User = Depends(get_current_active_user)
):
    """Get client by ID"""
    client = await service.get_client(client_id)
    if not client:
        raise HTTPException(status_code=404, detail="Client not found")
    return ClientResponse(**client.model_dump(include={"client_id", "name", "document", "phone"}))

# ============================================================================
# RESERVATION ENDPOINTS
# ============================================================================

@app.post("/api/reservations", response_model=ReservationResponse, status_code=201, tags=["Reservations"])
async def create_reservation(
    request: CreateReservationRequest,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(require_admin)
):
    """Create new reservation"""
    try:
        reservation = await service.create_reservation(
            client_id=request.client_id,
            room_id=request.room_id,
            check_in=request.check_in,
            check_out=request.check_out,
            rental_mode=request.rental_mode,
            bed_count=request.bed_count,
            created_by=current_user.username
        )
        return await _reservation_to_response(reservation, service)
    except ValueError as e:
        raise _to_http_error(e)

@app.get("/api/reservations", response_model=List[ReservationResponse], tags=["Reservations"])
async def list_reservations(
    client_id: Optional[UUID] = None,
    room_id: Optional[UUID] = None,
    status: Optional[ReservationStatus] = None,
    min_check_in: Optional[date] = None,
    max_check_out: Optional[date] = None,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """List reservations with filters, newest check-in first"""
    reservations = await service.list_reservations(
        client_id=client_id,
        room_id=room_id,
        status=status,
        min_check_in=min_check_in,
        max_check_out=max_check_out
    )
    return [await _reservation_to_response(r, service) for r in reservations]

@app.get("/api/reservations/{reservation_id}", response_model=ReservationResponse, tags=["Reservations"])
async def get_reservation(
    reservation_id: UUID,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(get_current_active_user)
):
    """Get reservation by ID"""
    reservation = await service.get_reservation(reservation_id)
    if not reservation:
        raise HTTPException(status_code=404, detail="Reservation not found")
    return await _reservation_to_response(reservation, service)

@app.put("/api/reservations/{reservation_id}", response_model=ReservationResponse, tags=["Reservations"])
async def edit_reservation(
    reservation_id: UUID,
    request: EditReservationRequest,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(require_admin)
):
    """Edit reservation details"""
    try:
        reservation = await service.edit_reservation(
            reservation_id=reservation_id,
            room_id=request.room_id,
            check_in=request.check_in,
            check_out=request.check_out,
            rental_mode=request.rental_mode,
            bed_count=request.bed_count
        )
        return await _reservation_to_response(reservation, service)
    except ValueError as e:
        raise _to_http_error(e)

@app.post("/api/reservations/{reservation_id}/check-in", response_model=ReservationResponse, tags=["Reservations"])
async def check_in(
    reservation_id: UUID,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(require_admin)
):
    """Check in guest"""
    try:
        reservation = await service.check_in(reservation_id)
        return await _reservation_to_response(reservation, service)
    except ValueError as e:
        raise _to_http_error(e)

@app.post("/api/reservations/{reservation_id}/check-out", response_model=ReservationResponse, tags=["Reservations"])
async def check_out(
    reservation_id: UUID,
    request: Optional[CheckOutRequest] = None,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(require_admin)
):
    """Check out guest, optionally on an explicit date"""
    try:
        reservation = await service.check_out(
            reservation_id,
            checkout_date=request.checkout_date if request else None
        )
        return await _reservation_to_response(reservation, service)
    except ValueError as e:
        raise _to_http_error(e)

@app.put("/api/reservations/{reservation_id}/status/{target}", response_model=ReservationResponse, tags=["Reservations"])
async def set_reservation_status(
    reservation_id: UUID,
    target: str,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(require_admin)
):
    """Cancel (CANCELLED) or reactivate (RESERVED) a reservation"""
    try:
        reservation = await service.set_status(reservation_id, target)
        return await _reservation_to_response(reservation, service)
    except ValueError as e:
        raise _to_http_error(e)

@app.delete("/api/reservations/{reservation_id}", status_code=204, tags=["Reservations"])
async def delete_reservation(
    reservation_id: UUID,
    service: ReservationService = Depends(get_reservation_service),
    current_user: User = Depends(require_admin)
):
    """Delete a reserved or cancelled reservation"""
    try:
        await service.delete_reservation(reservation_id)
        return Response(status_code=204)
    except ValueError as e:
        raise _to_http_error(e)

# ============================================================================
# OCCUPANCY & DASHBOARD ENDPOINTS
# ============================================================================

@app.get("/api/occupancy", response_model=List[RoomOccupancyResponse], tags=["Occupancy"])
async def list_room_occupancy(
    as_of: Optional[date] = None,
    group: Optional[str] = None,
    status: Optional[OccupancyStatus] = None,
    service: OccupancyService = Depends(get_occupancy_service),
    current_user: User = Depends(get_current_active_user)
):
    """Occupancy of every room, filtered by group and status"""
    occupancies = await service.list_room_occupancy(as_of=as_of, group=group, status=status)
    return [RoomOccupancyResponse(**o.model_dump()) for o in occupancies]

@app.get("/api/dashboard", response_model=DashboardResponse, tags=["Dashboard"])
async def get_dashboard(
    as_of: Optional[date] = None,
    service: OccupancyService = Depends(get_occupancy_service),
    current_user: User = Depends(require_admin)
):
    """Fleet-wide occupancy and same-day movement counts"""
    snapshot = await service.fleet_snapshot(as_of)
    return DashboardResponse(**snapshot.model_dump())

# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def _room_to_response(room) -> RoomResponse:
    """Convert Room entity to RoomResponse"""
    return RoomResponse(
        room_id=room.room_id,
        number=room.number,
        bed_count=room.bed_count,
        group=room.group,
        version=room.version
    )

async def _reservation_to_response(reservation, service: ReservationService) -> ReservationResponse:
    """Convert Reservation entity to ReservationResponse with client and room names"""
    client = await service.client_repo.find_by_id(reservation.client_id)
    room = await service.room_repo.find_by_id(reservation.room_id)
    return ReservationResponse(
        reservation_id=reservation.reservation_id,
        client_id=reservation.client_id,
        client_name=client.name if client else None,
        room_id=reservation.room_id,
        room_number=room.number if room else None,
        check_in=reservation.check_in,
        check_out=reservation.check_out,
        rental_mode=reservation.rental_mode.value,
        bed_count=reservation.bed_count,
        status=reservation.status.value,
        checked_in=reservation.checked_in,
        checked_out=reservation.checked_out,
        created_by=reservation.created_by,
        created_at=reservation.created_at,
        modified_at=reservation.modified_at,
        version=reservation.version
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
