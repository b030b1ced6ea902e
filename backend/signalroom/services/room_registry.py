"""방/사용자 식별 레지스트리

연결마다 user_id를 발급하고 방 멤버십을 관리한다.
모든 변경(join, leave)과 브로드캐스트용 멤버십 조회는 방 단위 Lock으로 직렬화된다.
"""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator

from signalroom.core.exceptions import AlreadyJoined, MissingRoomName
from signalroom.services.connection import Connection

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClientRecord:
    """살아있는 연결 1개의 정보"""

    connection_id: str
    room_name: str
    user_id: str
    connection: Connection = field(compare=False, repr=False)


@dataclass
class _RoomLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class RoomRegistry:
    """방별 멤버십 관리

    Invariant: 방은 멤버가 1명 이상일 때만 존재한다.
    """

    def __init__(self):
        # connection_id -> ClientRecord
        self._clients: dict[str, ClientRecord] = {}
        # room_name -> {user_id -> connection_id} (입장 순서 유지)
        self._rooms: dict[str, dict[str, str]] = {}
        # room_name -> 방 단위 Lock
        self._locks: dict[str, _RoomLock] = {}

    @asynccontextmanager
    async def _room_lock(self, room_name: str) -> AsyncIterator[None]:
        entry = self._locks.get(room_name)
        if entry is None:
            entry = self._locks[room_name] = _RoomLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            # 대기자가 없고 방도 사라졌으면 Lock 정리
            if entry.users == 0 and room_name not in self._rooms:
                self._locks.pop(room_name, None)

    async def join(self, connection: Connection, room_name: str | None) -> str:
        """연결을 방에 등록하고 새 user_id 반환

        Raises:
            MissingRoomName: 방 이름이 비어 있는 경우
            AlreadyJoined: 이미 등록된 연결인 경우
        """
        if room_name is None or not room_name.strip():
            raise MissingRoomName()

        connection_id = connection.connection_id
        if connection_id in self._clients:
            raise AlreadyJoined(connection_id)

        user_id = str(uuid.uuid4())
        async with self._room_lock(room_name):
            if room_name not in self._rooms:
                self._rooms[room_name] = {}
                logger.info(f"Room {room_name} created")
            self._rooms[room_name][user_id] = connection_id
            self._clients[connection_id] = ClientRecord(
                connection_id=connection_id,
                room_name=room_name,
                user_id=user_id,
                connection=connection,
            )

        logger.info(f"User {user_id} joined room {room_name} (connection {connection_id})")
        return user_id

    async def leave(self, connection_id: str) -> ClientRecord | None:
        """연결 제거 (알 수 없는 연결이면 None, 멱등)

        마지막 멤버가 나가면 방도 삭제한다.
        """
        record = self._clients.get(connection_id)
        if record is None:
            return None

        async with self._room_lock(record.room_name):
            # Lock 대기 중 다른 경로로 이미 제거된 경우
            if self._clients.pop(connection_id, None) is None:
                return None

            members = self._rooms.get(record.room_name)
            if members is not None:
                members.pop(record.user_id, None)
                if not members:
                    del self._rooms[record.room_name]
                    logger.info(f"Room {record.room_name} deleted as it is empty")

        logger.info(f"User {record.user_id} left room {record.room_name}")
        return record

    async def members_of(self, room_name: str) -> list[str]:
        """방 멤버 user_id 스냅샷 (입장 순서)"""
        async with self._room_lock(room_name):
            return list(self._rooms.get(room_name, {}))

    async def member_connections(self, room_name: str) -> list[ClientRecord]:
        """브로드캐스트용 멤버 레코드 스냅샷 (입장 순서)"""
        async with self._room_lock(room_name):
            members = self._rooms.get(room_name, {})
            return [self._clients[connection_id] for connection_id in members.values()]

    async def find_member(self, room_name: str, user_id: str) -> ClientRecord | None:
        """방 안에서 user_id에 해당하는 멤버 조회"""
        async with self._room_lock(room_name):
            connection_id = self._rooms.get(room_name, {}).get(user_id)
            if connection_id is None:
                return None
            return self._clients.get(connection_id)

    def get_client(self, connection_id: str) -> ClientRecord | None:
        return self._clients.get(connection_id)

    def has_room(self, room_name: str) -> bool:
        return room_name in self._rooms

    def room_names(self) -> list[str]:
        return list(self._rooms)

    def room_count(self) -> int:
        return len(self._rooms)

    def connection_count(self) -> int:
        return len(self._clients)

    def close(self) -> None:
        """서버 종료 시 전체 상태 정리"""
        logger.info(
            f"Closing room registry ({len(self._rooms)} rooms, {len(self._clients)} connections)"
        )
        self._clients.clear()
        self._rooms.clear()
        self._locks.clear()
