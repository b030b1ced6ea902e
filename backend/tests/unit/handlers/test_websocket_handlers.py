"""WebSocket 메시지 핸들러 단위 테스트

- RelayHandler: relay 호출, target 누락
- dispatch_message: 알려진 타입, 잘못된 JSON, 서버 전용 타입, 알 수 없는 타입
"""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from signalroom.handlers.websocket_message_handlers import HANDLERS, RelayHandler, dispatch_message
from signalroom.schemas.signaling import AnswerMessage, SignalingMessageType
from signalroom.services.room_registry import ClientRecord


# ===== Test Fixtures =====


@pytest.fixture
def mock_signaling():
    """SignalingService mock"""
    signaling = MagicMock()
    signaling.relay = AsyncMock(return_value=True)
    return signaling


@pytest.fixture
def sender():
    return ClientRecord(connection_id="c1", room_name="demo", user_id="u1", connection=MagicMock())


# ===== RelayHandler =====


@pytest.mark.asyncio
async def test_relay_handler_forwards_message(mock_signaling, sender):
    """target이 있으면 signaling.relay 호출"""
    handler = RelayHandler(SignalingMessageType.ANSWER.value)
    message = AnswerMessage(target="u2", answer={"type": "answer", "sdp": "v=0"})

    await handler.handle(mock_signaling, sender, message)

    mock_signaling.relay.assert_awaited_once_with(sender, message)


@pytest.mark.asyncio
async def test_relay_handler_without_target(mock_signaling, sender):
    """target 누락 시 relay하지 않음"""
    handler = RelayHandler(SignalingMessageType.ANSWER.value)

    await handler.handle(mock_signaling, sender, AnswerMessage(answer={"type": "answer", "sdp": "v=0"}))

    mock_signaling.relay.assert_not_called()


def test_handlers_registry_covers_relay_types():
    assert set(HANDLERS) == {"offer", "answer", "ice-candidate"}


# ===== dispatch_message =====


@pytest.mark.asyncio
async def test_dispatch_known_type(mock_signaling, sender):
    """offer는 relay 핸들러로 전달"""
    # Given
    raw = json.dumps({"type": "offer", "target": "u2", "offer": {"type": "offer", "sdp": "v=0"}})

    # When
    handled = await dispatch_message(mock_signaling, sender, raw)

    # Then
    assert handled is True
    relayed = mock_signaling.relay.call_args[0][1]
    assert relayed.type == "offer"
    assert relayed.target == "u2"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "raw",
    [
        "{not json",
        json.dumps(["offer"]),
        json.dumps({"type": "join", "target": "u2"}),
        json.dumps({"type": "users", "users": []}),
        json.dumps({"type": "offer", "offer": {"type": "offer", "sdp": "v=0"}}),
        json.dumps({"type": "ice-candidate", "target": "u2"}),
    ],
    ids=["invalid-json", "not-object", "unknown-type", "server-only-type", "missing-target", "missing-payload"],
)
async def test_dispatch_drops_invalid_message(mock_signaling, sender, raw):
    """잘못된 메시지는 버리고 연결은 유지 (예외 없음)"""
    handled = await dispatch_message(mock_signaling, sender, raw)

    assert handled is False
    mock_signaling.relay.assert_not_called()
