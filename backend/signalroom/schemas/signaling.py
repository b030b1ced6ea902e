"""시그널링 envelope Pydantic 스키마

wire 메시지는 type 필드로 구분되는 닫힌 tagged union이다.
수신 즉시 검증하며, 알려진 형태가 아니면 ProtocolError로 거부한다.
"""

import json
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from signalroom.core.exceptions import ProtocolError


class SignalingMessageType(str, Enum):
    """시그널링 메시지 타입"""
    # Server -> Client
    WELCOME = "welcome"
    USERS = "users"
    ERROR = "error"
    # 양방향 (relay 대상)
    OFFER = "offer"
    ANSWER = "answer"
    ICE_CANDIDATE = "ice-candidate"


RELAY_TYPES = frozenset({
    SignalingMessageType.OFFER.value,
    SignalingMessageType.ANSWER.value,
    SignalingMessageType.ICE_CANDIDATE.value,
})


class _Envelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class WelcomeMessage(_Envelope):
    """입장 완료 메시지 (Server -> Client)"""
    type: Literal["welcome"] = "welcome"
    user_id: str = Field(alias="userId")
    message: str | None = None


class UsersMessage(_Envelope):
    """방 참여자 목록 (Server -> Client)"""
    type: Literal["users"] = "users"
    users: list[str]


class ErrorMessage(_Envelope):
    """에러 메시지 (Server -> Client, 이후 연결 종료)"""
    type: Literal["error"] = "error"
    error: str


class _RelayEnvelope(_Envelope):
    # 송신 측은 target만, 수신 측은 from만 의미가 있다
    target: str | None = None
    from_: str | None = Field(default=None, alias="from")


class OfferMessage(_RelayEnvelope):
    """SDP Offer 메시지"""
    type: Literal["offer"] = "offer"
    offer: dict  # RTCSessionDescriptionInit


class AnswerMessage(_RelayEnvelope):
    """SDP Answer 메시지"""
    type: Literal["answer"] = "answer"
    answer: dict  # RTCSessionDescriptionInit


class IceCandidateMessage(_RelayEnvelope):
    """ICE Candidate 메시지"""
    type: Literal["ice-candidate"] = "ice-candidate"
    candidate: dict  # RTCIceCandidateInit


RelayMessage = Union[OfferMessage, AnswerMessage, IceCandidateMessage]

Envelope = Annotated[
    Union[WelcomeMessage, UsersMessage, ErrorMessage, OfferMessage, AnswerMessage, IceCandidateMessage],
    Field(discriminator="type"),
]

_envelope_adapter = TypeAdapter(Envelope)
_KNOWN_TYPES = frozenset(t.value for t in SignalingMessageType)


# ===== 기타 REST 응답 스키마 =====


class IceServer(BaseModel):
    """ICE 서버 설정"""
    urls: str | list[str]
    username: str | None = None
    credential: str | None = None


class RoomResponse(BaseModel):
    """방 정보 응답"""
    room: str
    users: list[str]


# ===== 인코딩 / 디코딩 =====


def parse_envelope(raw: str | bytes | dict) -> Envelope:
    """raw 메시지를 envelope으로 파싱

    Args:
        raw: JSON 텍스트 또는 이미 디코딩된 dict

    Returns:
        검증된 envelope 모델

    Raises:
        ProtocolError: JSON 오류, 알 수 없는 type, 필드 누락
    """
    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ProtocolError(f"Invalid JSON payload: {e}") from e
    else:
        data = raw

    if not isinstance(data, dict):
        raise ProtocolError(f"Envelope must be a JSON object, got {type(data).__name__}")

    msg_type = data.get("type")
    if not isinstance(msg_type, str) or msg_type not in _KNOWN_TYPES:
        raise ProtocolError(f"Unknown message type: {msg_type}")

    try:
        return _envelope_adapter.validate_python(data)
    except ValidationError as e:
        raise ProtocolError(f"Malformed {msg_type} envelope: {e.error_count()} error(s)") from e


def parse_inbound(raw: str | bytes | dict) -> RelayMessage:
    """클라이언트가 서버로 보낸 메시지 파싱

    클라이언트는 offer/answer/ice-candidate만 보낼 수 있고 target이 필수다.
    """
    envelope = parse_envelope(raw)
    if envelope.type not in RELAY_TYPES:
        raise ProtocolError(f"Message type {envelope.type} is not accepted from clients")
    if not envelope.target:
        raise ProtocolError(f"{envelope.type} envelope is missing target")
    return envelope


def dump_envelope(envelope: BaseModel) -> dict:
    """envelope을 wire 형식 dict로 변환 (alias 사용, None 필드 제외)"""
    return envelope.model_dump(by_alias=True, exclude_none=True)
