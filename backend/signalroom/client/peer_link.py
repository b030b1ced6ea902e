"""Peer Link - 원격 참여자 1명과의 협상 상태

상태 전이는 transition(state, event) 순수 함수로만 계산되며,
PeerLink는 현재 상태와 RTCPeerConnection 자원을 보관한다.

    IDLE -> OFFERING | ANSWERING -> CONNECTED -> CLOSED
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from signalroom.core.exceptions import InvalidTransition
from signalroom.core.webrtc_config import TERMINAL_CONNECTION_STATES

logger = logging.getLogger(__name__)


class PeerLinkState(str, Enum):
    """Peer Link 상태"""
    IDLE = "idle"
    OFFERING = "offering"
    ANSWERING = "answering"
    CONNECTED = "connected"
    CLOSED = "closed"


# ===== 이벤트 =====


@dataclass(frozen=True)
class StartOffer:
    """로컬 미디어가 활성화되어 먼저 offer를 보냄"""


@dataclass(frozen=True)
class RemoteOffer:
    description: dict


@dataclass(frozen=True)
class RemoteAnswer:
    description: dict


@dataclass(frozen=True)
class RemoteCandidate:
    candidate: dict


@dataclass(frozen=True)
class ConnectivityChanged:
    """RTCPeerConnection.connectionState 변경"""
    state: str


@dataclass(frozen=True)
class RemoteTrack:
    track: Any


@dataclass(frozen=True)
class CloseLink:
    reason: str = "closed"


LinkEvent = Union[
    StartOffer,
    RemoteOffer,
    RemoteAnswer,
    RemoteCandidate,
    ConnectivityChanged,
    RemoteTrack,
    CloseLink,
]

_NEGOTIATING = frozenset({PeerLinkState.OFFERING, PeerLinkState.ANSWERING})
_OPEN = frozenset({PeerLinkState.OFFERING, PeerLinkState.ANSWERING, PeerLinkState.CONNECTED})


def transition(state: PeerLinkState, event: LinkEvent) -> PeerLinkState:
    """(현재 상태, 이벤트) -> 다음 상태

    Raises:
        InvalidTransition: 현재 상태에서 처리할 수 없는 이벤트
    """
    if state is PeerLinkState.CLOSED or isinstance(event, CloseLink):
        return PeerLinkState.CLOSED

    if isinstance(event, ConnectivityChanged):
        if event.state in TERMINAL_CONNECTION_STATES:
            return PeerLinkState.CLOSED
        if event.state == "connected" and state in _NEGOTIATING:
            return PeerLinkState.CONNECTED
        if state is not PeerLinkState.IDLE:
            return state

    elif state is PeerLinkState.IDLE:
        if isinstance(event, StartOffer):
            return PeerLinkState.OFFERING
        if isinstance(event, RemoteOffer):
            return PeerLinkState.ANSWERING

    elif isinstance(event, RemoteAnswer):
        # answer만으로 연결되지 않음 - connectionState가 결정한다
        if state is PeerLinkState.OFFERING:
            return state

    elif isinstance(event, (RemoteCandidate, RemoteTrack)):
        if state in _OPEN:
            return state

    raise InvalidTransition(state, event)


class PeerLink:
    """원격 참여자 1명과의 RTCPeerConnection 및 협상 상태"""

    def __init__(self, remote_user_id: str, pc):
        """
        Args:
            remote_user_id: 원격 참여자 user_id
            pc: RTCPeerConnection (또는 같은 인터페이스의 객체)
        """
        self.remote_user_id = remote_user_id
        self.pc = pc
        self.state = PeerLinkState.IDLE
        self.local_tracks: list = []
        self._pc_closed = False

    @property
    def closed(self) -> bool:
        return self.state is PeerLinkState.CLOSED

    def apply(self, event: LinkEvent) -> PeerLinkState:
        """이벤트 적용 후 새 상태 반환"""
        previous = self.state
        self.state = transition(previous, event)
        if self.state is not previous:
            logger.debug(
                f"Peer {self.remote_user_id}: {previous.value} -> {self.state.value} "
                f"({type(event).__name__})"
            )
        return self.state

    def attach_tracks(self, tracks: list) -> None:
        """로컬 트랙 전체를 연결에 추가"""
        for track in tracks:
            logger.debug(f"Adding {track.kind} track to peer connection {self.remote_user_id}")
            self.pc.addTrack(track)
            self.local_tracks.append(track)

    async def close(self, reason: str = "closed") -> None:
        """연결 종료 (멱등)"""
        self.apply(CloseLink(reason))
        if self._pc_closed:
            return
        self._pc_closed = True
        self.local_tracks.clear()
        try:
            await self.pc.close()
        except Exception as e:
            logger.warning(f"Error closing peer connection {self.remote_user_id}: {e}")
        logger.info(f"Peer link {self.remote_user_id} closed ({reason})")

    def __repr__(self) -> str:
        return f"PeerLink({self.remote_user_id}, {self.state.value})"
