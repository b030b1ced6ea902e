"""WebSocket 메시지 핸들러 - Strategy Pattern 구현"""

import logging
from typing import Protocol

from signalroom.core.exceptions import ProtocolError
from signalroom.core.telemetry import get_signaling_metrics
from signalroom.schemas.signaling import RelayMessage, SignalingMessageType, parse_inbound
from signalroom.services.room_registry import ClientRecord
from signalroom.services.signaling_service import SignalingService

logger = logging.getLogger(__name__)


class MessageHandler(Protocol):
    """메시지 핸들러 프로토콜"""

    async def handle(
        self,
        signaling: SignalingService,
        sender: ClientRecord,
        message: RelayMessage,
    ) -> None:
        """메시지 처리

        Args:
            signaling: 시그널링 서비스
            sender: 송신 연결 레코드
            message: 검증된 envelope
        """
        ...


class RelayHandler:
    """OFFER/ANSWER/ICE_CANDIDATE 메시지 핸들러 (통합)

    같은 방의 target에게만 1:1로 전달한다.
    """

    def __init__(self, message_type: str):
        """
        Args:
            message_type: "offer", "answer" 또는 "ice-candidate"
        """
        self.message_type = message_type

    async def handle(
        self,
        signaling: SignalingService,
        sender: ClientRecord,
        message: RelayMessage,
    ) -> None:
        if not message.target:
            logger.warning(f"{self.message_type} from {sender.user_id} missing target")
            return

        await signaling.relay(sender, message)


# 핸들러 레지스트리
HANDLERS: dict[str, MessageHandler] = {
    SignalingMessageType.OFFER.value: RelayHandler(SignalingMessageType.OFFER.value),
    SignalingMessageType.ANSWER.value: RelayHandler(SignalingMessageType.ANSWER.value),
    SignalingMessageType.ICE_CANDIDATE.value: RelayHandler(SignalingMessageType.ICE_CANDIDATE.value),
}


async def dispatch_message(
    signaling: SignalingService,
    sender: ClientRecord,
    raw: str | bytes | dict,
) -> bool:
    """raw 메시지를 검증 후 타입에 맞는 핸들러로 디스패치

    잘못된 메시지는 로그만 남기고 버린다 (송신자에게 에러를 보내지 않음).

    Returns:
        핸들러가 실행되었으면 True, 메시지를 버렸으면 False
    """
    try:
        message = parse_inbound(raw)
    except ProtocolError as e:
        logger.warning(f"Dropped message from {sender.user_id}: {e}")
        metrics = get_signaling_metrics()
        if metrics:
            metrics.protocol_errors_total.add(1)
        return False

    handler = HANDLERS.get(message.type)
    if handler is None:
        logger.warning(f"Unknown message type: {message.type}")
        return False

    await handler.handle(signaling, sender, message)
    return True
