"""WebRTC 시그널링 엔드포인트"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect

from signalroom.api.dependencies import get_room_registry, get_signaling_service
from signalroom.core.config import get_settings
from signalroom.core.webrtc_config import WSErrorCode
from signalroom.handlers.websocket_message_handlers import dispatch_message
from signalroom.schemas.signaling import IceServer, RoomResponse
from signalroom.services.connection import WebSocketConnection
from signalroom.services.room_registry import ClientRecord, RoomRegistry
from signalroom.services.signaling_service import SignalingService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Signaling"])

ws_router = APIRouter(tags=["Signaling"])


# ===== REST 엔드포인트 =====


@router.get("/rooms/{room_name}", response_model=RoomResponse)
async def get_room(
    room_name: str,
    registry: Annotated[RoomRegistry, Depends(get_room_registry)],
):
    """방 멤버 조회"""
    if not registry.has_room(room_name):
        raise HTTPException(status_code=404, detail={"error": "NOT_FOUND", "message": "Room not found"})

    return RoomResponse(room=room_name, users=await registry.members_of(room_name))


@router.get("/ice-servers", response_model=list[IceServer])
async def get_ice_servers():
    """클라이언트용 ICE 서버 설정"""
    return [IceServer(**server) for server in get_settings().ice_servers]


# ===== WebSocket 엔드포인트 =====


@ws_router.websocket("/ws")
@ws_router.websocket("/")
async def websocket_endpoint(
    websocket: WebSocket,
    signaling: Annotated[SignalingService, Depends(get_signaling_service)],
):
    """WebSocket 시그널링 엔드포인트 (방 이름은 ?room= 쿼리로 전달)"""
    room_name = websocket.query_params.get(get_settings().room_query_param)
    connection = WebSocketConnection(websocket)
    await connection.accept()
    logger.info(f"WebSocket connection {connection.connection_id} accepted, room={room_name}")

    try:
        record = await signaling.connect(connection, room_name)
        if record is None:
            return

        await handle_websocket_messages(connection, signaling, record)
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected: connection={connection.connection_id}")
    except Exception as e:
        logger.error(f"WebSocket error on {connection.connection_id}: {e}", exc_info=True)
        await connection.close(code=WSErrorCode.INTERNAL_ERROR, reason="Internal error")
    finally:
        await signaling.disconnect(connection.connection_id)


async def handle_websocket_messages(
    connection: WebSocketConnection,
    signaling: SignalingService,
    sender: ClientRecord,
) -> None:
    """WebSocket 메시지 처리 - 연결별로 한 번에 하나씩 처리"""
    while True:
        raw = await connection.receive()
        await dispatch_message(signaling, sender, raw)
