from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from signalroom.core.webrtc_config import DEFAULT_ICE_SERVERS


class Settings(BaseSettings):
    """시그널링 서버 설정"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # 앱 설정
    app_name: str = "Signalroom"
    app_env: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # 서버 바인딩
    host: str = "0.0.0.0"
    port: int = 8080

    # CORS
    cors_origins: list[str] = ["*"]

    # ICE 서버 (클라이언트에 그대로 전달)
    ice_servers: list[dict] = DEFAULT_ICE_SERVERS

    # 접속 URI에서 방 이름을 읽을 쿼리 파라미터
    room_query_param: str = "room"

    # OpenTelemetry
    otel_enabled: bool = False
    otel_exporter_otlp_endpoint: str = "http://localhost:4317"


@lru_cache
def get_settings() -> Settings:
    """설정 싱글톤 반환"""
    return Settings()
