"""Domain Enums"""
from enum import Enum


class ReservationStatus(str, Enum):
    RESERVED = "RESERVED"
    ACTIVE = "ACTIVE"
    FINALIZED = "FINALIZED"
    CANCELLED = "CANCELLED"

    def can_transition_to(self, target: "ReservationStatus") -> bool:
        """Check the transition table for self -> target"""
        return target in _TRANSITIONS[self]

    @property
    def commits_capacity(self) -> bool:
        """Reserved and Active reservations hold beds"""
        return self in (ReservationStatus.RESERVED, ReservationStatus.ACTIVE)


# Forward-only, except the explicit CANCELLED -> RESERVED reactivation
_TRANSITIONS = {
    ReservationStatus.RESERVED: {ReservationStatus.ACTIVE, ReservationStatus.CANCELLED},
    ReservationStatus.ACTIVE: {ReservationStatus.FINALIZED},
    ReservationStatus.FINALIZED: set(),
    ReservationStatus.CANCELLED: {ReservationStatus.RESERVED},
}


class RentalMode(str, Enum):
    WHOLE_ROOM = "WHOLE_ROOM"
    BY_BED = "BY_BED"


class OccupancyStatus(str, Enum):
    FREE = "FREE"
    PARTIAL = "PARTIAL"
    FULL = "FULL"

    @classmethod
    def classify(cls, committed_beds: int, bed_count: int) -> "OccupancyStatus":
        """Classify a room by how many of its beds are committed"""
        if committed_beds <= 0:
            return cls.FREE
        if committed_beds < bed_count:
            return cls.PARTIAL
        return cls.FULL


class UserRole(str, Enum):
    ADMIN = "admin"
    STAFF = "staff"
