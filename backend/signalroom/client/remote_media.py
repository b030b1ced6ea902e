"""원격 미디어 출력

원격 참여자에게서 받은 트랙을 소비하는 sink.
녹화 디렉토리가 설정되면 트랙마다 MediaRecorder로 파일에 저장하고,
아니면 MediaBlackhole로 프레임만 소비한다.
"""

import logging
from pathlib import Path
from typing import Protocol

from aiortc.contrib.media import MediaBlackhole, MediaRecorder

logger = logging.getLogger(__name__)


class RemoteMediaSink(Protocol):
    """원격 트랙 출력 인터페이스"""

    async def attach(self, remote_user_id: str, track) -> None:
        ...

    async def release(self, remote_user_id: str) -> None:
        ...

    def active_outputs(self) -> list[str]:
        ...


class RecorderMediaSink:
    """aiortc MediaRecorder / MediaBlackhole 기반 sink"""

    def __init__(self, recording_dir: str | None = None, recording_format: str = "webm"):
        self.recording_dir = Path(recording_dir) if recording_dir else None
        self.recording_format = recording_format
        self._outputs: dict[str, list[MediaRecorder | MediaBlackhole]] = {}

    def _create_output(self, remote_user_id: str, kind: str) -> MediaRecorder | MediaBlackhole:
        if self.recording_dir is None:
            return MediaBlackhole()

        self.recording_dir.mkdir(parents=True, exist_ok=True)
        path = self.recording_dir / f"{remote_user_id}-{kind}.{self.recording_format}"
        logger.info(f"Recording {kind} from {remote_user_id} to {path}")
        return MediaRecorder(str(path), format=self.recording_format)

    async def attach(self, remote_user_id: str, track) -> None:
        """트랙 수신 시 출력 생성 및 시작"""
        output = self._create_output(remote_user_id, track.kind)
        output.addTrack(track)
        await output.start()
        self._outputs.setdefault(remote_user_id, []).append(output)
        logger.info(f"Rendering {track.kind} track from {remote_user_id}")

    async def release(self, remote_user_id: str) -> None:
        """원격 참여자의 출력 전체 중지"""
        outputs = self._outputs.pop(remote_user_id, [])
        for output in outputs:
            try:
                await output.stop()
            except Exception as e:
                logger.warning(f"Failed to stop output for {remote_user_id}: {e}")
        if outputs:
            logger.info(f"Released {len(outputs)} output(s) for {remote_user_id}")

    def active_outputs(self) -> list[str]:
        return list(self._outputs)
