"""Domain Repository Interfaces"""
from abc import ABC, abstractmethod
from typing import Optional, List
from uuid import UUID
from datetime import date

from domain.entities import Reservation, Room, Client
from domain.enums import ReservationStatus


class RoomRepository(ABC):
    """Repository interface for Room Aggregate"""

    @abstractmethod
    async def save(self, room: Room) -> Room:
        """Save room"""
        pass

    @abstractmethod
    async def find_by_id(self, room_id: UUID) -> Optional[Room]:
        """Find room by ID"""
        pass

    @abstractmethod
    async def find_by_number(self, number: int) -> Optional[Room]:
        """Find room by its unique number"""
        pass

    @abstractmethod
    async def find_all(self) -> List[Room]:
        """Find all rooms ordered by number"""
        pass

    @abstractmethod
    async def update(self, room: Room) -> Room:
        """Update room"""
        pass

    @abstractmethod
    async def delete(self, room_id: UUID) -> bool:
        """Delete room"""
        pass


class ClientRepository(ABC):
    """Repository interface for Client"""

    @abstractmethod
    async def save(self, client: Client) -> Client:
        """Save client"""
        pass

    @abstractmethod
    async def find_by_id(self, client_id: UUID) -> Optional[Client]:
        """Find client by ID"""
        pass

    @abstractmethod
    async def find_by_document(self, document: str) -> Optional[Client]:
        """Find client by document number"""
        pass

    @abstractmethod
    async def find_all(self) -> List[Client]:
        """Find all clients"""
        pass


class ReservationRepository(ABC):
    """Repository interface for Reservation Aggregate"""

    @abstractmethod
    async def save(self, reservation: Reservation) -> Reservation:
        """Save new reservation"""
        pass

    @abstractmethod
    async def find_by_id(self, reservation_id: UUID) -> Optional[Reservation]:
        """Find reservation by ID"""
        pass

    @abstractmethod
    async def find_by_room(self, room_id: UUID) -> List[Reservation]:
        """Find every reservation of a room"""
        pass

    @abstractmethod
    async def find_overlapping(
        self,
        room_id: UUID,
        start_date: date,
        end_date: date,
        statuses: List[ReservationStatus],
        exclude_reservation_id: Optional[UUID] = None
    ) -> List[Reservation]:
        """Find reservations of a room in the given statuses intersecting [start_date, end_date)"""
        pass

    @abstractmethod
    async def find_by_filters(
        self,
        client_id: Optional[UUID] = None,
        room_id: Optional[UUID] = None,
        status: Optional[ReservationStatus] = None,
        min_check_in: Optional[date] = None,
        max_check_out: Optional[date] = None
    ) -> List[Reservation]:
        """Find reservations matching every given filter, newest check-in first"""
        pass

    @abstractmethod
    async def find_all(self) -> List[Reservation]:
        """Find all reservations"""
        pass

    @abstractmethod
    async def update(self, reservation: Reservation) -> Reservation:
        """Update reservation; raises ConcurrencyConflictError on a stale version"""
        pass

    @abstractmethod
    async def delete(self, reservation_id: UUID, expected_version: Optional[int] = None) -> bool:
        """Delete reservation; raises ConcurrencyConflictError when expected_version is stale"""
        pass
