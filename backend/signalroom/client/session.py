"""시그널링 클라이언트 세션

WebSocket 하나로 방에 접속해 envelope을 순서대로 처리한다.
협상 작업은 NegotiationEngine의 원격 참여자별 mailbox로 넘기므로
수신 루프는 SDP/ICE 처리를 기다리지 않는다.
"""

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from urllib.parse import urlencode

import websockets
from aiortc import RTCPeerConnection
from pydantic import BaseModel

from signalroom.client.config import ClientConfig
from signalroom.client.local_media import CaptureFactory, LocalMedia, MediaKind, default_capture_factory
from signalroom.client.negotiation import NegotiationEngine
from signalroom.client.remote_media import RecorderMediaSink, RemoteMediaSink
from signalroom.core.exceptions import MissingRoomName, ProtocolError
from signalroom.schemas.signaling import (
    AnswerMessage,
    Envelope,
    ErrorMessage,
    IceCandidateMessage,
    OfferMessage,
    UsersMessage,
    WelcomeMessage,
    dump_envelope,
    parse_envelope,
)

logger = logging.getLogger(__name__)


class SignalingSession:
    """방 1개에 대한 클라이언트 세션"""

    def __init__(
        self,
        config: ClientConfig,
        engine: NegotiationEngine | None = None,
        capture_factory: CaptureFactory | None = None,
        sink: RemoteMediaSink | None = None,
        pc_factory: Callable[[], RTCPeerConnection] | None = None,
        on_connection_lost: Callable[[], Awaitable[None] | None] | None = None,
    ):
        self.config = config
        self.user_id: str | None = None
        self.connected_users: list[str] = []
        self.last_error: str | None = None
        self.welcomed = asyncio.Event()

        self._ws = None
        self._on_connection_lost = on_connection_lost
        self.engine = engine or NegotiationEngine(
            self.send,
            pc_factory=pc_factory,
            sink=sink or RecorderMediaSink(config.recording_dir, config.recording_format),
            ice_servers=config.ice_servers,
        )
        self.media = LocalMedia(
            self.engine,
            lambda: list(self.connected_users),
            capture_factory or default_capture_factory(config),
        )

    @property
    def url(self) -> str:
        separator = "&" if "?" in self.config.server_url else "?"
        return f"{self.config.server_url}{separator}{urlencode({'room': self.config.room})}"

    # ===== 연결 =====

    async def run(self) -> None:
        """접속 후 연결이 끊길 때까지 메시지 처리

        Raises:
            MissingRoomName: 방 이름 미설정
        """
        if not self.config.room:
            raise MissingRoomName("Room name is required.")

        try:
            async with websockets.connect(self.url) as ws:
                self._ws = ws
                logger.info(f"Connected to room: {self.config.room}")
                async for raw in ws:
                    await self.handle_raw(raw)
        except websockets.exceptions.ConnectionClosed as e:
            logger.info(f"WebSocket connection closed: {e}")
        except (websockets.exceptions.WebSocketException, OSError) as e:
            logger.error(f"WebSocket connection error: {e}")
        finally:
            self._ws = None
            await self._on_closed()

    async def close(self) -> None:
        if self._ws is not None:
            await self._ws.close()

    async def send(self, envelope: BaseModel) -> None:
        """envelope을 JSON으로 전송"""
        if self._ws is None:
            raise ConnectionError("Not connected to signaling server")
        await self._ws.send(json.dumps(dump_envelope(envelope)))

    async def _on_closed(self) -> None:
        logger.info("WebSocket connection closed.")
        await self.media.stop()
        await self.engine.shutdown()
        self.connected_users = []
        logger.warning("Connection to server lost")

        if self._on_connection_lost is not None:
            result = self._on_connection_lost()
            if asyncio.iscoroutine(result):
                await result

    # ===== 수신 처리 =====

    async def handle_raw(self, raw: str | bytes) -> None:
        try:
            envelope = parse_envelope(raw)
        except ProtocolError as e:
            logger.warning(f"Error parsing WebSocket message: {e}")
            return

        await self.handle_envelope(envelope)

    async def handle_envelope(self, envelope: Envelope) -> None:
        if isinstance(envelope, WelcomeMessage):
            self.user_id = envelope.user_id
            logger.info(f"Connected with user ID: {self.user_id}")
            self.welcomed.set()

        elif isinstance(envelope, UsersMessage):
            await self.handle_user_list(envelope.users)

        elif isinstance(envelope, ErrorMessage):
            logger.error(f"Server error: {envelope.error}")
            self.last_error = envelope.error

        elif not envelope.from_:
            logger.error(f"Received {envelope.type} without sender ID")

        elif isinstance(envelope, OfferMessage):
            self.engine.handle_offer(envelope.from_, envelope.offer)

        elif isinstance(envelope, AnswerMessage):
            self.engine.handle_answer(envelope.from_, envelope.answer)

        elif isinstance(envelope, IceCandidateMessage):
            self.engine.handle_candidate(envelope.from_, envelope.candidate)

    async def handle_user_list(self, users: list[str]) -> None:
        """방 멤버 목록 갱신 (자기 자신 제외)"""
        self.connected_users = [user for user in users if user != self.user_id]
        logger.info(f"Room members: {self.connected_users}")
        await self.engine.handle_members(self.connected_users)

    # ===== 로컬 미디어 =====

    async def share_screen(self) -> None:
        await self.media.start(MediaKind.SCREEN)

    async def share_audio(self) -> None:
        await self.media.start(MediaKind.AUDIO)

    async def stop_sharing(self) -> None:
        await self.media.stop()
