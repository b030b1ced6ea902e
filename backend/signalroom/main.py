import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from signalroom.api.v1.endpoints.signaling import ws_router
from signalroom.api.v1.router import api_router
from signalroom.core.config import get_settings
from signalroom.core.telemetry import instrument_fastapi, setup_telemetry
from signalroom.services.room_registry import RoomRegistry

# 로깅 설정
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

settings = get_settings()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """애플리케이션 라이프사이클"""
    # 시작 시: 방 레지스트리 생성 및 Telemetry 초기화
    app.state.room_registry = RoomRegistry()
    if settings.otel_enabled:
        setup_telemetry("signalroom-server", "0.1.0", settings.otel_exporter_otlp_endpoint)
    yield
    # 종료 시
    app.state.room_registry.close()
    logger.info("Signaling server shut down")


app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    description="Signalroom - room-scoped WebRTC signaling server",
    lifespan=lifespan,
)

if settings.otel_enabled:
    instrument_fastapi(app)

# CORS 설정
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 라우터 등록
app.include_router(api_router)
app.include_router(ws_router)


@app.get("/health")
async def health_check() -> dict:
    """헬스 체크"""
    return {"status": "ok"}


def serve() -> None:
    """uvicorn으로 서버 실행 (signalroom-server)"""
    logging.getLogger().setLevel(settings.log_level)
    logger.info(f"Signaling server starting on ws://{settings.host}:{settings.port}/ws")
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    serve()
