"""시그널링 클라이언트 설정"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from signalroom.core.webrtc_config import DEFAULT_ICE_SERVERS


class ClientConfig(BaseSettings):
    """시그널링 클라이언트 설정 (SIGNALROOM_ 접두사 환경변수)"""

    model_config = SettingsConfigDict(
        env_prefix="SIGNALROOM_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # 시그널링 서버
    server_url: str = "ws://localhost:8080/ws"
    room: str = ""

    # ICE 서버
    ice_servers: list[dict] = DEFAULT_ICE_SERVERS

    log_level: str = "INFO"

    # 로컬 캡처 (ffmpeg 입력 - aiortc MediaPlayer)
    screen_source: str = ":0.0"
    screen_format: str = "x11grab"
    audio_source: str = "default"
    audio_format: str = "pulse"

    # 원격 미디어 녹화 (미지정 시 MediaBlackhole)
    recording_dir: str | None = None
    recording_format: str = "webm"


@lru_cache
def get_config() -> ClientConfig:
    """설정 싱글톤 반환"""
    return ClientConfig()
