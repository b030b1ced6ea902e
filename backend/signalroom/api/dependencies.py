"""공유 API dependencies - 엔드포인트 간 중복 제거"""

from typing import Annotated

from fastapi import Depends
from fastapi.requests import HTTPConnection

from signalroom.services.room_registry import RoomRegistry
from signalroom.services.signaling_service import SignalingService


def get_room_registry(connection: HTTPConnection) -> RoomRegistry:
    """lifespan에서 생성된 RoomRegistry"""
    return connection.app.state.room_registry


def get_signaling_service(
    registry: Annotated[RoomRegistry, Depends(get_room_registry)],
) -> SignalingService:
    """SignalingService 의존성"""
    return SignalingService(registry)
