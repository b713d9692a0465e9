"""Registry of rooms and the connections present in them."""
from __future__ import annotations

import threading


class RoomRegistry:
    """Tracks which connections are members of which rooms.

    Membership is indexed both by room and by connection so that removing a
    disconnected client only touches the rooms that client was in. A room
    exists only while it has at least one member.

    Operations on unknown rooms or connections are no-ops and never raise.

    Note:
        Connection identifiers are opaque strings owned by the transport.
        The registry never holds the connection objects themselves.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._members_by_room: dict[str, set[str]] = {}
        self._rooms_by_member: dict[str, set[str]] = {}

    def __contains__(self, room_id: object) -> bool:
        with self._lock:
            return room_id in self._members_by_room

    def __len__(self) -> int:
        with self._lock:
            return len(self._members_by_room)

    def get_rooms(self) -> dict[str, frozenset[str]]:
        """Get a snapshot of every room and its members."""
        with self._lock:
            return {
                room_id: frozenset(members)
                for room_id, members in self._members_by_room.items()
            }

    def members(self, room_id: str) -> frozenset[str]:
        """Get the members of a room (empty if the room does not exist)."""
        with self._lock:
            return frozenset(self._members_by_room.get(room_id, ()))

    def rooms_of(self, conn_id: str) -> frozenset[str]:
        """Get the rooms a connection is a member of."""
        with self._lock:
            return frozenset(self._rooms_by_member.get(conn_id, ()))

    def join(self, room_id: str, conn_id: str) -> set[str]:
        """Add a connection to a room, creating the room if needed.

        Joining a room the connection is already in is a no-op.

        Args:
            room_id: Room to join.
            conn_id: Connection joining the room.

        Returns:
            The other members of the room at the time of the join.
        """
        with self._lock:
            members = self._members_by_room.setdefault(room_id, set())
            existing = members - {conn_id}
            members.add(conn_id)
            self._rooms_by_member.setdefault(conn_id, set()).add(room_id)
            return existing

    def leave(self, room_id: str, conn_id: str) -> bool:
        """Remove a connection from a room.

        The room is deleted once its last member leaves.

        Args:
            room_id: Room to leave.
            conn_id: Connection leaving the room.

        Returns:
            If the connection was a member of the room.
        """
        with self._lock:
            members = self._members_by_room.get(room_id)
            if members is None or conn_id not in members:
                return False
            self._discard(room_id, conn_id)
            return True

    def disconnect_all(self, conn_id: str) -> list[tuple[str, int]]:
        """Remove a connection from every room it is a member of.

        Args:
            conn_id: Connection that went away.

        Returns:
            List of `(room_id, remaining)` tuples, one per room the
            connection was removed from, where `remaining` is the number of
            members left. Rooms with zero remaining members were deleted.
        """
        with self._lock:
            rooms = self._rooms_by_member.get(conn_id, set())
            return [
                (room_id, self._discard(room_id, conn_id))
                for room_id in sorted(rooms)
            ]

    def _discard(self, room_id: str, conn_id: str) -> int:
        # Caller must hold the lock. Returns the remaining member count.
        members = self._members_by_room.get(room_id, set())
        members.discard(conn_id)
        remaining = len(members)
        if remaining == 0:
            self._members_by_room.pop(room_id, None)

        rooms = self._rooms_by_member.get(conn_id, set())
        rooms.discard(room_id)
        if len(rooms) == 0:
            self._rooms_by_member.pop(conn_id, None)

        return remaining
