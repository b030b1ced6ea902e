"""WebSocket 연결 래퍼 - 프레이밍/인코딩만 담당"""

import logging
import uuid
from typing import Protocol

from fastapi import WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from signalroom.core.webrtc_config import WSErrorCode
from signalroom.schemas.signaling import dump_envelope

logger = logging.getLogger(__name__)


class Connection(Protocol):
    """레지스트리와 라우터가 사용하는 연결 인터페이스"""

    connection_id: str

    async def send(self, message: BaseModel | dict) -> None:
        ...

    async def close(self, code: int = WSErrorCode.NORMAL, reason: str = "") -> None:
        ...


class WebSocketConnection:
    """FastAPI WebSocket 1개에 대한 양방향 메시지 채널

    connection_id는 수락 시점에 발급되는 불투명 식별자이며,
    서버 측 모든 연결별 상태는 이 값으로 색인된다.
    """

    def __init__(self, websocket: WebSocket, connection_id: str | None = None):
        self.websocket = websocket
        self.connection_id = connection_id or uuid.uuid4().hex

    async def accept(self) -> None:
        await self.websocket.accept()

    async def send(self, message: BaseModel | dict) -> None:
        """envelope을 JSON 텍스트 프레임으로 전송 (실패 시 예외 전파)"""
        data = dump_envelope(message) if isinstance(message, BaseModel) else message
        await self.websocket.send_json(data)

    async def receive(self) -> str | bytes:
        """다음 프레임 수신 (연결 종료 시 WebSocketDisconnect)"""
        message = await self.websocket.receive()
        if message["type"] == "websocket.disconnect":
            raise WebSocketDisconnect(message.get("code", WSErrorCode.NORMAL), message.get("reason"))
        if message.get("text") is not None:
            return message["text"]
        return message.get("bytes") or b""

    async def close(self, code: int = WSErrorCode.NORMAL, reason: str = "") -> None:
        try:
            await self.websocket.close(code=code, reason=reason)
        except Exception as e:
            # 이미 끊긴 연결
            logger.debug(f"Error closing connection {self.connection_id}: {e}")

    def __repr__(self) -> str:
        return f"WebSocketConnection({self.connection_id})"
