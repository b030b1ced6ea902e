"""pytest 설정 및 공유 fixture

테스트 인프라:
- RoomRegistry / SignalingService
- Fake 연결 (WebSocket 없이 송신 내용 기록)
- FastAPI TestClient (lifespan 포함)
"""

import uuid
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from pydantic import BaseModel

from signalroom.main import app
from signalroom.schemas.signaling import dump_envelope
from signalroom.services.room_registry import RoomRegistry
from signalroom.services.signaling_service import SignalingService


class FakeConnection:
    """송신한 envelope을 wire 형식 dict로 기록하는 연결"""

    def __init__(self, connection_id: str | None = None, fail_on_send: bool = False):
        self.connection_id = connection_id or uuid.uuid4().hex
        self.fail_on_send = fail_on_send
        self.sent: list[dict] = []
        self.closed: tuple[int, str] | None = None

    async def send(self, message) -> None:
        if self.fail_on_send:
            raise ConnectionError("socket is gone")
        self.sent.append(dump_envelope(message) if isinstance(message, BaseModel) else message)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed = (code, reason)

    def of_type(self, message_type: str) -> list[dict]:
        return [m for m in self.sent if m["type"] == message_type]


# ===== 서비스 Fixture =====


@pytest.fixture
def registry() -> RoomRegistry:
    return RoomRegistry()


@pytest.fixture
def signaling(registry: RoomRegistry) -> SignalingService:
    return SignalingService(registry)


@pytest.fixture
def make_connection():
    """FakeConnection 팩토리"""

    def _make(connection_id: str | None = None, fail_on_send: bool = False) -> FakeConnection:
        return FakeConnection(connection_id, fail_on_send)

    return _make


# ===== API Fixture =====


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """FastAPI TestClient (lifespan 실행)"""
    with TestClient(app) as test_client:
        yield test_client
