"""로컬 미디어 (화면/오디오 공유) 수명 주기"""

import asyncio
import logging
from collections.abc import Callable, Iterable
from enum import Enum

from aiortc.contrib.media import MediaPlayer

from signalroom.client.config import ClientConfig
from signalroom.client.negotiation import NegotiationEngine
from signalroom.core.exceptions import CaptureError

logger = logging.getLogger(__name__)


class MediaKind(str, Enum):
    """공유 미디어 종류"""
    SCREEN = "screen"
    AUDIO = "audio"


# kind -> .audio / .video 속성을 가진 캡처 객체 (aiortc MediaPlayer 인터페이스)
CaptureFactory = Callable[[MediaKind], object]


def default_capture_factory(config: ClientConfig) -> CaptureFactory:
    """설정 기반 MediaPlayer 캡처 팩토리"""

    def capture(kind: MediaKind) -> MediaPlayer:
        if kind is MediaKind.SCREEN:
            return MediaPlayer(config.screen_source, format=config.screen_format)
        return MediaPlayer(config.audio_source, format=config.audio_format)

    return capture


class LocalMedia:
    """로컬 스트림 1개를 관리하고 협상 엔진에 트랙을 공급"""

    def __init__(
        self,
        engine: NegotiationEngine,
        members: Callable[[], Iterable[str]],
        capture_factory: CaptureFactory,
    ):
        self._engine = engine
        self._members = members
        self._capture_factory = capture_factory
        self._tracks: list = []
        self._generation = 0
        self._pending_stop: asyncio.Task | None = None
        self.kind: MediaKind | None = None

    @property
    def tracks(self) -> list:
        return list(self._tracks)

    @property
    def active(self) -> bool:
        return bool(self._tracks)

    async def start(self, kind: MediaKind) -> None:
        """기존 스트림을 중지하고 새 캡처 시작 후 방 멤버 전원에게 offer

        Raises:
            CaptureError: 캡처 장치를 열 수 없음
        """
        await self.stop()

        try:
            player = self._capture_factory(kind)
        except Exception as e:
            logger.error(f"Error sharing {kind.value}: {e}")
            raise CaptureError(f"Failed to share {kind.value}: {e}") from e

        tracks = [track for track in (player.audio, player.video) if track is not None]
        if not tracks:
            # 트랙 없는 캡처는 예외 traceback이 붙잡지 않도록 참조를 끊어 장치 해제
            del player
            raise CaptureError(f"Failed to share {kind.value}: no tracks available")

        generation = self._generation
        for track in tracks:
            self._observe_ended(track, generation)

        self._tracks = tracks
        self.kind = kind
        self._engine.set_local_tracks(tracks)
        logger.info(f"Sharing {kind.value} with {len(tracks)} track(s)")

        for remote_user_id in self._members():
            self._engine.start_offer(remote_user_id)

    async def stop(self) -> None:
        """로컬 트랙 중지 및 모든 Peer Link 종료 (멱등)"""
        tracks, self._tracks = self._tracks, []
        self._generation += 1
        self.kind = None
        self._engine.set_local_tracks([])

        for track in tracks:
            track.stop()
        if tracks:
            logger.info("Local stream stopped")

        await self._engine.close_all("local media stopped")

    def _observe_ended(self, track, generation: int) -> None:
        @track.on("ended")
        def on_ended():
            # 이미 교체/중지된 스트림의 ended는 무시
            if generation != self._generation:
                return
            logger.info(f"Local {track.kind} track ended")
            self._pending_stop = asyncio.ensure_future(self.stop())
            self._pending_stop.add_done_callback(self._on_stop_done)

    @staticmethod
    def _on_stop_done(task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Error stopping local stream after track ended: {error}", exc_info=error)
