"""Application Services - Business use cases"""
from collections import Counter, defaultdict
from uuid import UUID
from datetime import date, datetime, timedelta
from typing import Awaitable, Callable, List, Optional, Type, TypeVar, Union

from domain.repositories import ReservationRepository, RoomRepository, ClientRepository
from domain.entities import Reservation, Room, Client
from domain.enums import ReservationStatus, RentalMode, OccupancyStatus
from domain.exceptions import (
    CapacityExceededError, ConcurrencyConflictError, DomainError, DuplicateError,
    InvalidDateError, InvalidRequestError, InvalidStateError, NotFoundError
)
from domain.value_objects import (
    CapacityCheck, DashboardCounts, DateRange, RoomAvailability, RoomOccupancy,
    normalize_date, today_in
)
from infrastructure.config import Settings, get_settings
from infrastructure.locking import RoomLockRegistry
from infrastructure.logger import get_logger

logger = get_logger(__name__)

Clock = Callable[[], date]
DateInput = Union[date, datetime]
T = TypeVar("T")

COMMITTING_STATUSES = [ReservationStatus.RESERVED, ReservationStatus.ACTIVE]


def _default_clock(settings: Settings) -> Clock:
    return lambda: today_in(settings.CANONICAL_TIMEZONE)


class ConflictResolver:
    """Overlap detection and remaining bed capacity for a room"""

    def __init__(self, reservation_repo: ReservationRepository, room_repo: RoomRepository):
        self.reservation_repo = reservation_repo
        self.room_repo = room_repo

    async def find_overlaps(
        self,
        room_id: UUID,
        start_date: date,
        end_date: date,
        exclude_reservation_id: Optional[UUID] = None
    ) -> List[Reservation]:
        """Reserved/Active reservations of the room intersecting [start_date, end_date)"""
        if end_date <= start_date:
            raise InvalidDateError("End date must be after start date")
        return await self.reservation_repo.find_overlapping(
            room_id, start_date, end_date, COMMITTING_STATUSES, exclude_reservation_id
        )

    @staticmethod
    def committed_beds(overlaps: List[Reservation], room: Room) -> int:
        """Worst-case beds held by the overlap set across the whole queried range.

        Counted per reservation rather than per day: two by-bed stays that touch
        the range on different days still add up.
        """
        return sum(r.committed_beds(room.bed_count) for r in overlaps)

    async def check_capacity(
        self,
        room: Room,
        start_date: date,
        end_date: date,
        rental_mode: RentalMode,
        requested_beds: int = 0,
        exclude_reservation_id: Optional[UUID] = None
    ) -> CapacityCheck:
        """Raise CapacityExceededError unless the request fits in the room"""
        if rental_mode == RentalMode.BY_BED and requested_beds <= 0:
            raise InvalidRequestError("Bed count must be greater than zero for BY_BED rentals")

        overlaps = await self.find_overlaps(
            room.room_id, start_date, end_date, exclude_reservation_id
        )

        if rental_mode == RentalMode.WHOLE_ROOM:
            if overlaps:
                logger.warning(
                    "Whole-room request for room %s [%s, %s) rejected: %d overlapping reservation(s)",
                    room.number, start_date, end_date, len(overlaps)
                )
                raise CapacityExceededError("Room is already booked for the selected period")
            return CapacityCheck(
                room_id=room.room_id,
                bed_count=room.bed_count,
                committed_beds=0,
                requested_beds=room.bed_count,
                conflict_count=0
            )

        committed = self.committed_beds(overlaps, room)
        if committed + requested_beds > room.bed_count:
            logger.warning(
                "By-bed request for %d bed(s) in room %s [%s, %s) rejected: %d of %d committed",
                requested_beds, room.number, start_date, end_date, committed, room.bed_count
            )
            raise CapacityExceededError(
                "Not enough free beds in this room for the selected period"
            )

        return CapacityCheck(
            room_id=room.room_id,
            bed_count=room.bed_count,
            committed_beds=committed,
            requested_beds=requested_beds,
            conflict_count=len(overlaps)
        )

    async def room_availability(
        self,
        room_id: UUID,
        start_date: date,
        end_date: date,
        exclude_reservation_id: Optional[UUID] = None
    ) -> RoomAvailability:
        """Committed and free beds of a room over [start_date, end_date)"""
        room = await self.room_repo.find_by_id(room_id)
        if not room:
            raise NotFoundError("Room not found")

        overlaps = await self.find_overlaps(room_id, start_date, end_date, exclude_reservation_id)
        committed = self.committed_beds(overlaps, room)

        return RoomAvailability(
            room_id=room.room_id,
            room_number=room.number,
            group=room.group,
            bed_count=room.bed_count,
            period=DateRange(check_in=start_date, check_out=end_date),
            committed_beds=committed,
            free_beds=max(room.bed_count - committed, 0),
            status=OccupancyStatus.classify(committed, room.bed_count),
            conflict_count=len(overlaps)
        )


class ReservationService:
    """Service for the reservation lifecycle.

    Sole writer of reservations. Every capacity-affecting write runs its
    capacity check and its commit while holding the lock of each room it
    touches; a version conflict on commit re-runs the whole unit a bounded
    number of times.
    """

    def __init__(self,
                 repository: ReservationRepository,
                 room_repo: RoomRepository,
                 client_repo: ClientRepository,
                 resolver: Optional[ConflictResolver] = None,
                 locks: Optional[RoomLockRegistry] = None,
                 settings: Optional[Settings] = None,
                 clock: Optional[Clock] = None):
        self.repository = repository
        self.room_repo = room_repo
        self.client_repo = client_repo
        self.settings = settings or get_settings()
        self.resolver = resolver or ConflictResolver(repository, room_repo)
        self.locks = locks or RoomLockRegistry()
        self.clock = clock or _default_clock(self.settings)

    def _normalize(self, value: Optional[DateInput]) -> Optional[date]:
        if value is None:
            return None
        return normalize_date(value, self.settings.CANONICAL_TIMEZONE)

    async def _get_room(self, room_id: UUID) -> Room:
        room = await self.room_repo.find_by_id(room_id)
        if not room:
            raise NotFoundError("Room not found")
        return room

    async def _get_reservation(self, reservation_id: UUID) -> Reservation:
        reservation = await self.repository.find_by_id(reservation_id)
        if not reservation:
            raise NotFoundError("Reservation not found")
        return reservation

    async def _with_conflict_retry(
        self,
        action: str,
        unit: Callable[[], Awaitable[T]],
        exhausted: Type[DomainError] = CapacityExceededError
    ) -> T:
        """Run unit, re-running it after a concurrency conflict"""
        attempts = self.settings.CAPACITY_RETRY_ATTEMPTS + 1
        for attempt in range(1, attempts + 1):
            try:
                return await unit()
            except ConcurrencyConflictError as e:
                logger.warning("Concurrent update during %s (attempt %d/%d): %s",
                               action, attempt, attempts, e)
        raise exhausted(f"Could not {action}: the reservation was changed concurrently")

    async def create_reservation(
        self,
        client_id: UUID,
        room_id: UUID,
        check_in: DateInput,
        check_out: DateInput,
        rental_mode: Union[RentalMode, str],
        bed_count: Optional[int] = None,
        created_by: str = "SYSTEM"
    ) -> Reservation:
        """Create new reservation if the room has capacity for it"""
        client = await self.client_repo.find_by_id(client_id)
        if not client:
            raise NotFoundError("Client not found")
        room = await self._get_room(room_id)

        reservation = Reservation.create(
            client_id=client_id,
            room_id=room_id,
            check_in=self._normalize(check_in),
            check_out=self._normalize(check_out),
            rental_mode=rental_mode,
            bed_count=bed_count,
            today=self.clock(),
            created_by=created_by
        )

        async def unit() -> Reservation:
            async with self.locks.hold(room_id):
                current_room = await self._get_room(room_id)
                await self.resolver.check_capacity(
                    current_room,
                    reservation.check_in,
                    reservation.check_out,
                    reservation.rental_mode,
                    reservation.bed_count
                )
                return await self.repository.save(reservation)

        saved = await self._with_conflict_retry("create reservation", unit)
        logger.info("Reservation %s created for room %s [%s, %s) %s by %s",
                    saved.reservation_id, room.number, saved.check_in, saved.check_out,
                    saved.rental_mode.value, created_by)
        return saved

    async def get_reservation(self, reservation_id: UUID) -> Optional[Reservation]:
        """Get reservation by ID"""
        return await self.repository.find_by_id(reservation_id)

    async def list_reservations(
        self,
        client_id: Optional[UUID] = None,
        room_id: Optional[UUID] = None,
        status: Optional[ReservationStatus] = None,
        min_check_in: Optional[DateInput] = None,
        max_check_out: Optional[DateInput] = None
    ) -> List[Reservation]:
        """List reservations matching all filters, newest check-in first"""
        return await self.repository.find_by_filters(
            client_id=client_id,
            room_id=room_id,
            status=status,
            min_check_in=self._normalize(min_check_in),
            max_check_out=self._normalize(max_check_out)
        )

    async def check_in(self, reservation_id: UUID) -> Reservation:
        """Check in guest"""
        async def unit() -> Reservation:
            reservation = await self._get_reservation(reservation_id)
            reservation.check_in_guest()
            return await self.repository.update(reservation)

        reservation = await self._with_conflict_retry("check in", unit, InvalidStateError)
        logger.info("Reservation %s checked in", reservation_id)
        return reservation

    async def check_out(
        self,
        reservation_id: UUID,
        checkout_date: Optional[DateInput] = None
    ) -> Reservation:
        """Check out guest on checkout_date (default today)"""
        effective = self._normalize(checkout_date)

        async def unit() -> Reservation:
            reservation = await self._get_reservation(reservation_id)
            today = self.clock()
            reservation.check_out_guest(effective or today, today)
            return await self.repository.update(reservation)

        reservation = await self._with_conflict_retry("check out", unit, InvalidStateError)
        logger.info("Reservation %s checked out on %s", reservation_id, reservation.check_out)
        return reservation

    async def set_status(
        self,
        reservation_id: UUID,
        target: Union[ReservationStatus, str]
    ) -> Reservation:
        """Cancel a reservation or reactivate a cancelled one"""
        try:
            target = ReservationStatus(str(getattr(target, "value", target)).upper())
        except ValueError:
            raise InvalidRequestError(f"Invalid status '{target}'. Allowed: CANCELLED, RESERVED")

        if target == ReservationStatus.CANCELLED:
            reservation = await self._with_conflict_retry(
                "cancel reservation",
                lambda: self._cancel(reservation_id),
                InvalidStateError
            )
        elif target == ReservationStatus.RESERVED:
            reservation = await self._with_conflict_retry(
                "reactivate reservation", lambda: self._reactivate(reservation_id)
            )
        else:
            raise InvalidRequestError(
                f"Invalid status '{target.value}'. Allowed: CANCELLED, RESERVED"
            )

        logger.info("Reservation %s moved to %s", reservation_id, reservation.status.value)
        return reservation

    async def _cancel(self, reservation_id: UUID) -> Reservation:
        reservation = await self._get_reservation(reservation_id)
        reservation.cancel()
        return await self.repository.update(reservation)

    async def _reactivate(self, reservation_id: UUID) -> Reservation:
        reservation = await self._get_reservation(reservation_id)
        async with self.locks.hold(reservation.room_id):
            reservation.reactivate()
            room = await self._get_room(reservation.room_id)
            await self.resolver.check_capacity(
                room,
                reservation.check_in,
                reservation.check_out,
                reservation.rental_mode,
                reservation.bed_count,
                exclude_reservation_id=reservation.reservation_id
            )
            return await self.repository.update(reservation)

    async def edit_reservation(
        self,
        reservation_id: UUID,
        room_id: Optional[UUID] = None,
        check_in: Optional[DateInput] = None,
        check_out: Optional[DateInput] = None,
        rental_mode: Optional[Union[RentalMode, str]] = None,
        bed_count: Optional[int] = None
    ) -> Reservation:
        """Edit reservation, re-checking capacity for the resulting stay"""
        new_check_in = self._normalize(check_in)
        new_check_out = self._normalize(check_out)

        async def unit() -> Reservation:
            reservation = await self._get_reservation(reservation_id)
            edited = reservation.edited(
                today=self.clock(),
                room_id=room_id,
                check_in=new_check_in,
                check_out=new_check_out,
                rental_mode=rental_mode,
                bed_count=bed_count
            )

            async with self.locks.hold(reservation.room_id, edited.room_id):
                room = await self._get_room(edited.room_id)
                await self.resolver.check_capacity(
                    room,
                    edited.check_in,
                    edited.check_out,
                    edited.rental_mode,
                    edited.bed_count,
                    exclude_reservation_id=edited.reservation_id
                )
                return await self.repository.update(edited)

        reservation = await self._with_conflict_retry("edit reservation", unit)
        logger.info("Reservation %s edited: room %s [%s, %s) %s/%d",
                    reservation_id, reservation.room_id, reservation.check_in,
                    reservation.check_out, reservation.rental_mode.value, reservation.bed_count)
        return reservation

    async def delete_reservation(self, reservation_id: UUID) -> bool:
        """Delete a reservation that never started"""
        async def unit() -> bool:
            reservation = await self._get_reservation(reservation_id)
            async with self.locks.hold(reservation.room_id):
                current = await self._get_reservation(reservation_id)
                if not current.is_deletable():
                    raise InvalidStateError("Active or finalized reservations cannot be deleted")
                return await self.repository.delete(
                    reservation_id, expected_version=current.version
                )

        deleted = await self._with_conflict_retry("delete reservation", unit, InvalidStateError)
        logger.info("Reservation %s deleted", reservation_id)
        return deleted


class OccupancyService:
    """Current physical occupancy of rooms and the fleet.

    Only ACTIVE reservations count here: this reports who is in the rooms,
    not what is promised to future guests.
    """

    def __init__(self,
                 reservation_repo: ReservationRepository,
                 room_repo: RoomRepository,
                 settings: Optional[Settings] = None,
                 clock: Optional[Clock] = None):
        self.reservation_repo = reservation_repo
        self.room_repo = room_repo
        self.settings = settings or get_settings()
        self.clock = clock or _default_clock(self.settings)

    def _as_of(self, as_of: Optional[DateInput]) -> date:
        if as_of is None:
            return self.clock()
        return normalize_date(as_of, self.settings.CANONICAL_TIMEZONE)

    @staticmethod
    def _occupancy_of(room: Room, reservations: List[Reservation], day: date) -> RoomOccupancy:
        active = [
            r for r in reservations
            if r.room_id == room.room_id
            and r.status == ReservationStatus.ACTIVE
            and r.occupies(day)
        ]
        committed = ConflictResolver.committed_beds(active, room)
        return RoomOccupancy(
            room_id=room.room_id,
            room_number=room.number,
            group=room.group,
            bed_count=room.bed_count,
            as_of=day,
            committed_beds=committed,
            status=OccupancyStatus.classify(committed, room.bed_count)
        )

    async def room_occupancy(self, room_id: UUID, as_of: Optional[DateInput] = None) -> RoomOccupancy:
        """Occupancy of one room on as_of (default today)"""
        room = await self.room_repo.find_by_id(room_id)
        if not room:
            raise NotFoundError("Room not found")
        reservations = await self.reservation_repo.find_by_room(room_id)
        return self._occupancy_of(room, reservations, self._as_of(as_of))

    async def list_room_occupancy(
        self,
        as_of: Optional[DateInput] = None,
        group: Optional[str] = None,
        status: Optional[Union[OccupancyStatus, str]] = None
    ) -> List[RoomOccupancy]:
        """Occupancy of every room, optionally filtered by group and status"""
        day = self._as_of(as_of)
        rooms = await self.room_repo.find_all()
        by_room = defaultdict(list)
        for r in await self.reservation_repo.find_all():
            by_room[r.room_id].append(r)

        results = [self._occupancy_of(room, by_room[room.room_id], day) for room in rooms]

        if group:
            results = [o for o in results if o.group.lower() == group.lower()]
        if status:
            wanted = str(getattr(status, "value", status)).upper()
            results = [o for o in results if o.status.value == wanted]

        return sorted(results, key=lambda o: o.room_number)

    async def fleet_snapshot(self, as_of: Optional[DateInput] = None) -> DashboardCounts:
        """Dashboard counts for as_of (default today)"""
        day = self._as_of(as_of)
        yesterday = day - timedelta(days=1)
        tomorrow = day + timedelta(days=1)
        lookback_start = day - timedelta(days=self.settings.DASHBOARD_LOOKBACK_DAYS)

        rooms = await self.room_repo.find_all()
        reservations = await self.reservation_repo.find_all()
        by_room = defaultdict(list)
        for r in reservations:
            by_room[r.room_id].append(r)

        occupancies = [self._occupancy_of(room, by_room[room.room_id], day) for room in rooms]
        total = len(rooms)
        full = sum(1 for o in occupancies if o.status == OccupancyStatus.FULL)
        partial = sum(1 for o in occupancies if o.status == OccupancyStatus.PARTIAL)

        reserved = ReservationStatus.RESERVED
        active = ReservationStatus.ACTIVE
        entering_today = sum(1 for r in reservations if r.check_in == day and r.status == reserved)
        # Heuristic: only yesterday's arrivals are flagged, older misses are not
        no_shows = sum(1 for r in reservations if r.check_in == yesterday and r.status == reserved)
        pending_check_outs = sum(1 for r in reservations if r.check_out == day and r.status == active)
        active_clients = {r.client_id for r in reservations if r.status == active and r.occupies(day)}
        entering_tomorrow = sum(
            1 for r in reservations if r.check_in == tomorrow and r.status.commits_capacity
        )

        recent = [r for r in reservations if r.check_in >= lookback_start]
        numbers = {room.room_id: room.number for room in rooms}
        popularity = Counter(numbers[r.room_id] for r in recent if r.room_id in numbers)
        most_popular = popularity.most_common(1)[0][0] if popularity else None

        stays = [r.get_nights() for r in recent if r.status == ReservationStatus.FINALIZED]
        average_stay = round(sum(stays) / len(stays), 1) if stays else 0.0

        return DashboardCounts(
            as_of=day,
            total_rooms=total,
            full_rooms=full,
            partial_rooms=partial,
            free_rooms=total - full - partial,
            occupancy_rate=(full + partial) / total if total else 0.0,
            reservations_today=entering_today,
            pending_check_ins=entering_today,
            pending_check_outs=pending_check_outs,
            no_shows=no_shows,
            active_clients_today=len(active_clients),
            tomorrow_forecast_rate=entering_tomorrow / total if total else 0.0,
            most_popular_room=most_popular,
            average_stay_days=average_stay
        )


class RoomService:
    """Service for the room registry"""

    def __init__(self,
                 repository: RoomRepository,
                 reservation_repo: ReservationRepository,
                 occupancy_service: Optional[OccupancyService] = None,
                 locks: Optional[RoomLockRegistry] = None):
        self.repository = repository
        self.reservation_repo = reservation_repo
        self.occupancy_service = occupancy_service or OccupancyService(reservation_repo, repository)
        self.locks = locks or RoomLockRegistry()

    async def _has_committed_reservations(self, room_id: UUID) -> bool:
        reservations = await self.reservation_repo.find_by_room(room_id)
        return any(r.status.commits_capacity for r in reservations)

    async def create_room(self, number: int, bed_count: int, group: str) -> Room:
        """Register a new room"""
        if await self.repository.find_by_number(number):
            raise DuplicateError(f"A room with number {number} already exists")
        room = Room(number=number, bed_count=bed_count, group=group)
        saved = await self.repository.save(room)
        logger.info("Room %s registered with %d bed(s) in group %s", number, bed_count, group)
        return saved

    async def get_room(self, room_id: UUID) -> Optional[Room]:
        """Get room by ID"""
        return await self.repository.find_by_id(room_id)

    async def list_rooms(
        self,
        group: Optional[str] = None,
        min_beds: Optional[int] = None,
        available: Optional[bool] = None
    ) -> List[Room]:
        """List rooms ordered by number"""
        rooms = await self.repository.find_all()
        if group:
            rooms = [r for r in rooms if r.group.lower() == group.lower()]
        if min_beds is not None:
            rooms = [r for r in rooms if r.bed_count >= min_beds]
        if available is not None:
            free_ids = {
                o.room_id for o in await self.occupancy_service.list_room_occupancy()
                if o.status == OccupancyStatus.FREE
            }
            rooms = [r for r in rooms if (r.room_id in free_ids) == available]
        return rooms

    async def update_room(
        self,
        room_id: UUID,
        number: Optional[int] = None,
        bed_count: Optional[int] = None,
        group: Optional[str] = None
    ) -> Room:
        """Change room details; bed count only while nothing is booked"""
        async with self.locks.hold(room_id):
            room = await self.repository.find_by_id(room_id)
            if not room:
                raise NotFoundError("Room not found")

            if number is not None and number != room.number:
                other = await self.repository.find_by_number(number)
                if other and other.room_id != room_id:
                    raise DuplicateError(f"Another room already has number {number}")

            if bed_count is not None and bed_count != room.bed_count:
                if await self._has_committed_reservations(room_id):
                    raise InvalidStateError(
                        "Bed count cannot change while the room has reserved or active bookings"
                    )

            room.update(number=number, bed_count=bed_count, group=group)
            try:
                updated = await self.repository.update(room)
            except ConcurrencyConflictError:
                raise InvalidStateError("Room was changed concurrently, try again")
        logger.info("Room %s updated", updated.number)
        return updated

    async def delete_room(self, room_id: UUID) -> bool:
        """Remove a room without reserved or active bookings"""
        async with self.locks.hold(room_id):
            room = await self.repository.find_by_id(room_id)
            if not room:
                raise NotFoundError("Room not found")
            if await self._has_committed_reservations(room_id):
                raise InvalidStateError(
                    "Cannot delete a room with active reservations or future bookings"
                )
            deleted = await self.repository.delete(room_id)
        logger.info("Room %s deleted", room.number)
        return deleted


class ClientService:
    """Service for the client registry"""

    def __init__(self, repository: ClientRepository):
        self.repository = repository

    async def create_client(self, name: str, document: str, phone: str) -> Client:
        if await self.repository.find_by_document(document):
            raise DuplicateError("A client with this document already exists")
        client = Client(name=name, document=document, phone=phone)
        return await self.repository.save(client)

    async def get_client(self, client_id: UUID) -> Optional[Client]:
        return await self.repository.find_by_id(client_id)

    async def list_clients(self) -> List[Client]:
        return await self.repository.find_all()
