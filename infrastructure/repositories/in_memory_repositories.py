"""In-Memory Repository Implementations

Entities are stored and handed out as copies, so a caller only changes the
store through save/update. Updates are optimistic: the incoming entity must
be exactly one version ahead of the stored one.
"""
from typing import Optional, List, Dict
from uuid import UUID
from datetime import date

from domain.repositories import RoomRepository, ClientRepository, ReservationRepository
from domain.entities import Room, Client, Reservation
from domain.enums import ReservationStatus
from domain.exceptions import ConcurrencyConflictError, NotFoundError


def _check_version(entity_id, stored_version: int, incoming_version: int) -> None:
    if incoming_version != stored_version + 1:
        raise ConcurrencyConflictError(entity_id, incoming_version - 1, stored_version)


class InMemoryRoomRepository(RoomRepository):
    """In-memory implementation of RoomRepository"""

    def __init__(self):
        self._storage: Dict[UUID, Room] = {}

    async def save(self, room: Room) -> Room:
        """Save room to memory"""
        self._storage[room.room_id] = room.model_copy(deep=True)
        return room

    async def find_by_id(self, room_id: UUID) -> Optional[Room]:
        """Find room by ID"""
        room = self._storage.get(room_id)
        return room.model_copy(deep=True) if room else None

    async def find_by_number(self, number: int) -> Optional[Room]:
        """Find room by number"""
        for room in self._storage.values():
            if room.number == number:
                return room.model_copy(deep=True)
        return None

    async def find_all(self) -> List[Room]:
        """Find all rooms ordered by number"""
        rooms = sorted(self._storage.values(), key=lambda r: r.number)
        return [r.model_copy(deep=True) for r in rooms]

    async def update(self, room: Room) -> Room:
        """Update room"""
        stored = self._storage.get(room.room_id)
        if stored is None:
            raise NotFoundError("Room not found")
        _check_version(room.room_id, stored.version, room.version)
        self._storage[room.room_id] = room.model_copy(deep=True)
        return room

    async def delete(self, room_id: UUID) -> bool:
        """Delete room"""
        if room_id in self._storage:
            del self._storage[room_id]
            return True
        return False


class InMemoryClientRepository(ClientRepository):
    """In-memory implementation of ClientRepository"""

    def __init__(self):
        self._storage: Dict[UUID, Client] = {}

    async def save(self, client: Client) -> Client:
        self._storage[client.client_id] = client.model_copy(deep=True)
        return client

    async def find_by_id(self, client_id: UUID) -> Optional[Client]:
        client = self._storage.get(client_id)
        return client.model_copy(deep=True) if client else None

    async def find_by_document(self, document: str) -> Optional[Client]:
        for client in self._storage.values():
            if client.document == document:
                return client.model_copy(deep=True)
        return None

    async def find_all(self) -> List[Client]:
        clients = sorted(self._storage.values(), key=lambda c: c.name)
        return [c.model_copy(deep=True) for c in clients]


class InMemoryReservationRepository(ReservationRepository):
    """In-memory implementation of ReservationRepository"""

    def __init__(self):
        self._storage: Dict[UUID, Reservation] = {}

    async def save(self, reservation: Reservation) -> Reservation:
        """Save reservation to memory"""
        self._storage[reservation.reservation_id] = reservation.model_copy(deep=True)
        return reservation

    async def find_by_id(self, reservation_id: UUID) -> Optional[Reservation]:
        """Find reservation by ID"""
        reservation = self._storage.get(reservation_id)
        return reservation.model_copy(deep=True) if reservation else None

    async def find_by_room(self, room_id: UUID) -> List[Reservation]:
        """Find reservations of a room"""
        return [r.model_copy(deep=True) for r in self._storage.values() if r.room_id == room_id]

    async def find_overlapping(
        self,
        room_id: UUID,
        start_date: date,
        end_date: date,
        statuses: List[ReservationStatus],
        exclude_reservation_id: Optional[UUID] = None
    ) -> List[Reservation]:
        """Find reservations intersecting [start_date, end_date)"""
        return [
            r.model_copy(deep=True) for r in self._storage.values()
            if r.room_id == room_id
            and r.status in statuses
            and r.reservation_id != exclude_reservation_id
            and r.overlaps(start_date, end_date)
        ]

    async def find_by_filters(
        self,
        client_id: Optional[UUID] = None,
        room_id: Optional[UUID] = None,
        status: Optional[ReservationStatus] = None,
        min_check_in: Optional[date] = None,
        max_check_out: Optional[date] = None
    ) -> List[Reservation]:
        """Find reservations matching all filters, newest check-in first"""
        results = []
        for r in self._storage.values():
            if client_id is not None and r.client_id != client_id:
                continue
            if room_id is not None and r.room_id != room_id:
                continue
            if status is not None and r.status != status:
                continue
            if min_check_in is not None and r.check_in < min_check_in:
                continue
            if max_check_out is not None and r.check_out > max_check_out:
                continue
            results.append(r.model_copy(deep=True))
        return sorted(results, key=lambda r: r.check_in, reverse=True)

    async def find_all(self) -> List[Reservation]:
        """Find all reservations"""
        return [r.model_copy(deep=True) for r in self._storage.values()]

    async def update(self, reservation: Reservation) -> Reservation:
        """Update reservation"""
        stored = self._storage.get(reservation.reservation_id)
        if stored is None:
            raise NotFoundError("Reservation not found")
        _check_version(reservation.reservation_id, stored.version, reservation.version)
        self._storage[reservation.reservation_id] = reservation.model_copy(deep=True)
        return reservation

    async def delete(self, reservation_id: UUID, expected_version: Optional[int] = None) -> bool:
        """Delete reservation, only if it is still at expected_version when given"""
        stored = self._storage.get(reservation_id)
        if stored is None:
            return False
        if expected_version is not None and stored.version != expected_version:
            raise ConcurrencyConflictError(reservation_id, expected_version, stored.version)
        del self._storage[reservation_id]
        return True
