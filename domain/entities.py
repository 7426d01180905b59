"""Domain Entities - Aggregates"""
from pydantic import BaseModel, Field
from uuid import UUID, uuid4
from datetime import datetime, date, timezone
from typing import Optional, Union

from domain.enums import ReservationStatus, RentalMode
from domain.exceptions import InvalidDateError, InvalidRequestError, InvalidStateError


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Room(BaseModel):
    """Room Aggregate Root Entity"""

    room_id: UUID = Field(default_factory=uuid4)
    number: int = Field(ge=1)
    bed_count: int = Field(ge=1)
    group: str = Field(min_length=1)

    created_at: datetime = Field(default_factory=_now)
    modified_at: datetime = Field(default_factory=_now)
    version: int = 1

    class Config:
        from_attributes = True

    def update(
        self,
        number: Optional[int] = None,
        bed_count: Optional[int] = None,
        group: Optional[str] = None
    ) -> None:
        """Change room details"""
        if number is not None:
            if number < 1:
                raise InvalidRequestError("Room number must be positive")
            self.number = number
        if bed_count is not None:
            if bed_count < 1:
                raise InvalidRequestError("Room must hold at least one bed")
            self.bed_count = bed_count
        if group is not None:
            if not group.strip():
                raise InvalidRequestError("Room group must not be blank")
            self.group = group

        self.modified_at = _now()
        self.version += 1


class Client(BaseModel):
    """Client Entity"""

    client_id: UUID = Field(default_factory=uuid4)
    name: str = Field(min_length=1, max_length=100)
    document: str = Field(min_length=1, max_length=14)
    phone: str = Field(min_length=1, max_length=11)

    created_at: datetime = Field(default_factory=_now)
    version: int = 1

    class Config:
        from_attributes = True


class Reservation(BaseModel):
    """Reservation Aggregate Root Entity

    Dates are canonical calendar dates; the stay is the half-open interval
    [check_in, check_out). A WHOLE_ROOM reservation stores bed_count 0 and
    commits every bed of its room.
    """

    # Identity
    reservation_id: UUID = Field(default_factory=uuid4)

    # References to other aggregates
    client_id: UUID
    room_id: UUID

    # Stay
    check_in: date
    check_out: date
    rental_mode: RentalMode
    bed_count: int = Field(ge=0, default=0)

    # Lifecycle
    status: ReservationStatus = ReservationStatus.RESERVED
    checked_in: bool = False
    checked_out: bool = False

    # Metadata
    created_at: datetime = Field(default_factory=_now)
    modified_at: datetime = Field(default_factory=_now)
    created_by: str = "SYSTEM"
    version: int = 1

    class Config:
        from_attributes = True

    # ==================== FACTORY METHOD ====================
    @staticmethod
    def create(
        client_id: UUID,
        room_id: UUID,
        check_in: date,
        check_out: date,
        rental_mode: Union[RentalMode, str],
        bed_count: Optional[int],
        today: date,
        created_by: str = "SYSTEM"
    ) -> "Reservation":
        """Create new reservation with validation"""
        mode = Reservation.coerce_mode(rental_mode)
        beds = Reservation._validate_beds(mode, bed_count)
        Reservation._validate_dates(check_in, check_out, today)

        return Reservation(
            client_id=client_id,
            room_id=room_id,
            check_in=check_in,
            check_out=check_out,
            rental_mode=mode,
            bed_count=beds,
            status=ReservationStatus.RESERVED,
            checked_in=False,
            checked_out=False,
            created_by=created_by
        )

    # ==================== STATE TRANSITION METHODS ====================
    def check_in_guest(self) -> None:
        """Mark guest as checked in"""
        if self.checked_in:
            raise InvalidStateError("Check-in was already recorded for this reservation")
        if self.status != ReservationStatus.RESERVED:
            raise InvalidStateError(
                f"Cannot check in a reservation with status {self.status.value}"
            )

        self._transition(ReservationStatus.ACTIVE)
        self.checked_in = True

    def check_out_guest(self, checkout_date: date, today: date) -> None:
        """Mark guest as checked out on checkout_date, which becomes the exit date"""
        if not self.checked_in:
            raise InvalidStateError("Check-in has not been recorded for this reservation")
        if self.checked_out:
            raise InvalidStateError("Check-out was already recorded for this reservation")
        if self.status != ReservationStatus.ACTIVE:
            raise InvalidStateError(
                f"Cannot check out a reservation with status {self.status.value}"
            )

        if checkout_date < self.check_in:
            raise InvalidDateError("Check-out date cannot be before the check-in date")
        if checkout_date > today:
            raise InvalidDateError("Check-out date cannot be in the future")

        self._transition(ReservationStatus.FINALIZED)
        self.checked_out = True
        self.check_out = checkout_date

    def cancel(self) -> None:
        """Cancel reservation that has not started"""
        if self.checked_in or self.checked_out or self.status in (
            ReservationStatus.ACTIVE, ReservationStatus.FINALIZED
        ):
            raise InvalidStateError(
                "Cannot cancel a reservation that already has a check-in or check-out"
            )
        self._transition(ReservationStatus.CANCELLED)

    def reactivate(self) -> None:
        """Bring a cancelled reservation back to RESERVED"""
        if self.status != ReservationStatus.CANCELLED:
            raise InvalidStateError("Only cancelled reservations can return to RESERVED")

        self._transition(ReservationStatus.RESERVED)
        self.checked_in = False
        self.checked_out = False

    def edited(
        self,
        today: date,
        room_id: Optional[UUID] = None,
        check_in: Optional[date] = None,
        check_out: Optional[date] = None,
        rental_mode: Optional[Union[RentalMode, str]] = None,
        bed_count: Optional[int] = None
    ) -> "Reservation":
        """Validate an edit and return the edited copy; self is left untouched.

        After check-in only the exit date may change.
        """
        if self.status in (ReservationStatus.FINALIZED, ReservationStatus.CANCELLED):
            raise InvalidStateError(
                f"Cannot edit a reservation with status {self.status.value}"
            )

        mode = Reservation.coerce_mode(rental_mode) if rental_mode is not None else None

        if self.checked_in:
            locked = (
                (room_id is not None and room_id != self.room_id)
                or (mode is not None and mode != self.rental_mode)
                or (bed_count is not None and bed_count != self.bed_count)
                or (check_in is not None and check_in != self.check_in)
            )
            if locked:
                raise InvalidStateError("After check-in only the check-out date can change")
            room_id = mode = bed_count = check_in = None

        new_check_in = check_in if check_in is not None else self.check_in
        new_check_out = check_out if check_out is not None else self.check_out

        if check_in is not None:
            if check_in < today:
                raise InvalidDateError("New check-in date cannot be in the past")
            if check_in >= new_check_out:
                raise InvalidDateError("New check-in date must be before the check-out date")
        if check_out is not None and check_out <= new_check_in:
            raise InvalidDateError("New check-out date must be after the check-in date")

        new_mode = mode or self.rental_mode
        if bed_count is None and new_mode == self.rental_mode:
            bed_count = self.bed_count
        new_beds = Reservation._validate_beds(new_mode, bed_count)

        edited = self.model_copy(deep=True)
        edited.room_id = room_id or self.room_id
        edited.check_in = new_check_in
        edited.check_out = new_check_out
        edited.rental_mode = new_mode
        edited.bed_count = new_beds
        edited._touch()
        return edited

    # ==================== QUERY METHODS ====================
    def committed_beds(self, room_bed_count: int) -> int:
        """Beds this reservation holds in a room with room_bed_count beds"""
        if self.rental_mode == RentalMode.WHOLE_ROOM:
            return room_bed_count
        return self.bed_count

    def overlaps(self, start: date, end: date) -> bool:
        """Half-open intersection with [start, end)"""
        return self.check_in < end and self.check_out > start

    def occupies(self, day: date) -> bool:
        return self.check_in <= day < self.check_out

    def is_deletable(self) -> bool:
        return self.status in (ReservationStatus.RESERVED, ReservationStatus.CANCELLED)

    def get_nights(self) -> int:
        return (self.check_out - self.check_in).days

    # ==================== PRIVATE METHODS ====================
    @staticmethod
    def coerce_mode(value: Union[RentalMode, str]) -> RentalMode:
        if isinstance(value, RentalMode):
            return value
        try:
            return RentalMode(str(value).upper())
        except ValueError:
            raise InvalidRequestError(
                f"Invalid rental mode '{value}'. Use WHOLE_ROOM or BY_BED"
            )

    @staticmethod
    def _validate_beds(mode: RentalMode, bed_count: Optional[int]) -> int:
        if mode == RentalMode.WHOLE_ROOM:
            return 0
        if bed_count is None or bed_count <= 0:
            raise InvalidRequestError("Bed count must be greater than zero for BY_BED rentals")
        return bed_count

    @staticmethod
    def _validate_dates(check_in: date, check_out: date, today: date) -> None:
        if check_in < today:
            raise InvalidDateError("Check-in date must be today or later")
        if check_out <= check_in:
            raise InvalidDateError("Check-out date must be after the check-in date")

    def _transition(self, target: ReservationStatus) -> None:
        if not self.status.can_transition_to(target):
            raise InvalidStateError(
                f"Cannot move reservation from {self.status.value} to {target.value}"
            )
        self.status = target
        self._touch()

    def _touch(self) -> None:
        self.modified_at = _now()
        self.version += 1
