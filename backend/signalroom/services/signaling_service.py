"""WebSocket 시그널링 서비스 - 연결 수명주기 및 메시지 라우팅"""

import logging

from pydantic import BaseModel

from signalroom.core.exceptions import MissingRoomName
from signalroom.core.telemetry import get_signaling_metrics
from signalroom.core.webrtc_config import MISSING_ROOM_MESSAGE, WSErrorCode
from signalroom.schemas.signaling import (
    ErrorMessage,
    RelayMessage,
    UsersMessage,
    WelcomeMessage,
)
from signalroom.services.connection import Connection
from signalroom.services.room_registry import ClientRecord, RoomRegistry

logger = logging.getLogger(__name__)


class SignalingService:
    """방 단위 연결 관리 및 메시지 전달

    RoomRegistry는 서버 시작 시 생성되어 주입된다.
    """

    def __init__(self, registry: RoomRegistry):
        self.registry = registry

    async def connect(self, connection: Connection, room_name: str | None) -> ClientRecord | None:
        """연결 등록: join → welcome → 방 전체에 users 브로드캐스트

        방 이름이 없으면 error envelope을 보내고 연결을 닫은 뒤 None 반환
        """
        try:
            user_id = await self.registry.join(connection, room_name)
        except MissingRoomName:
            logger.info(f"Connection {connection.connection_id} rejected: no room name")
            try:
                await connection.send(ErrorMessage(error=MISSING_ROOM_MESSAGE))
            except Exception as e:
                logger.debug(f"Failed to send error to {connection.connection_id}: {e}")
            await connection.close(code=WSErrorCode.MISSING_ROOM, reason=MISSING_ROOM_MESSAGE)
            return None

        metrics = get_signaling_metrics()
        if metrics:
            metrics.connections_total.add(1)
            metrics.active_connections.add(1)

        record = self.registry.get_client(connection.connection_id)
        await connection.send(
            WelcomeMessage(user_id=user_id, message=f"Welcome to room: {room_name}")
        )
        await self.broadcast_users(room_name)
        return record

    async def disconnect(self, connection_id: str) -> None:
        """연결 해제: leave → 남은 멤버에게 users 브로드캐스트 (방이 삭제됐으면 생략)"""
        record = await self.registry.leave(connection_id)
        if record is None:
            return

        metrics = get_signaling_metrics()
        if metrics:
            metrics.active_connections.add(-1)

        if self.registry.has_room(record.room_name):
            await self.broadcast_users(record.room_name)

    async def broadcast(
        self,
        room_name: str,
        message: BaseModel | dict,
        exclude_user_id: str | None = None,
    ) -> int:
        """방 멤버 전체에게 메시지 전송

        수신자별로 독립적으로 전송하며, 한 명의 실패가 나머지 전송을 막지 않는다.

        Returns:
            전송에 성공한 수신자 수
        """
        delivered = 0
        for member in await self.registry.member_connections(room_name):
            if member.user_id == exclude_user_id:
                continue
            try:
                await member.connection.send(message)
                delivered += 1
            except Exception as e:
                logger.warning(f"Failed to send message to {member.user_id}: {e}")
        return delivered

    async def broadcast_users(self, room_name: str) -> int:
        """현재 방 멤버 목록 브로드캐스트"""
        users = await self.registry.members_of(room_name)
        if not users:
            return 0
        return await self.broadcast(room_name, UsersMessage(users=users))

    async def send_to_user(
        self,
        room_name: str,
        user_id: str,
        message: BaseModel | dict,
    ) -> bool:
        """같은 방의 특정 사용자에게 메시지 전송

        Returns:
            전송 성공 여부 (대상 없음/전송 실패 시 False)
        """
        target = await self.registry.find_member(room_name, user_id)
        if target is None:
            return False

        try:
            await target.connection.send(message)
            return True
        except Exception as e:
            logger.warning(f"Failed to send message to {user_id}: {e}")
            return False

    async def relay(self, sender: ClientRecord, message: RelayMessage) -> bool:
        """offer/answer/ice-candidate를 대상에게 전달

        from은 항상 송신자의 user_id로 덮어쓴다. 대상이 방에 없으면 조용히 버린다.
        """
        stamped = message.model_copy(update={"from_": sender.user_id})
        delivered = await self.send_to_user(sender.room_name, message.target, stamped)

        metrics = get_signaling_metrics()
        if delivered:
            logger.debug(f"Relayed {message.type} from {sender.user_id} to {message.target}")
            if metrics:
                metrics.messages_relayed_total.add(1, {"type": message.type})
        else:
            logger.debug(
                f"Dropped {message.type} from {sender.user_id}: "
                f"target {message.target} not in room {sender.room_name}"
            )
            if metrics:
                metrics.routing_miss_total.add(1, {"type": message.type})
        return delivered

