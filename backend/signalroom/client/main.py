"""시그널링 클라이언트 진입점 (signalroom-client)

사용법:
    signalroom-client --room demo
    signalroom-client --room demo --share screen --record-dir ./recordings
"""

import argparse
import asyncio
import logging
import signal
import sys

from signalroom.client.config import ClientConfig, get_config
from signalroom.client.session import SignalingSession
from signalroom.core.exceptions import CaptureError, MissingRoomName

# 로깅 설정
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Join a signaling room and share local media")
    parser.add_argument("--room", help="방 이름 (기본값: SIGNALROOM_ROOM)")
    parser.add_argument("--server-url", help="시그널링 서버 WebSocket URL")
    parser.add_argument("--share", choices=["screen", "audio"], help="접속 후 공유할 미디어")
    parser.add_argument("--record-dir", help="원격 미디어 녹화 디렉토리")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> ClientConfig:
    """환경변수 설정 위에 CLI 인자 적용"""
    overrides = {
        "room": args.room,
        "server_url": args.server_url,
        "recording_dir": args.record_dir,
    }
    return get_config().model_copy(update={k: v for k, v in overrides.items() if v is not None})


async def main(argv: list[str] | None = None) -> int:
    """메인 함수"""
    args = parse_args(argv)
    config = build_config(args)
    logging.getLogger().setLevel(config.log_level)

    session = SignalingSession(config)
    run_task = asyncio.create_task(session.run())

    def signal_handler():
        logger.info("Shutdown signal received")
        asyncio.ensure_future(session.close())

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    if args.share:
        welcomed = asyncio.create_task(session.welcomed.wait())
        await asyncio.wait({run_task, welcomed}, return_when=asyncio.FIRST_COMPLETED)
        if welcomed.done():
            try:
                if args.share == "screen":
                    await session.share_screen()
                else:
                    await session.share_audio()
            except CaptureError as e:
                logger.error(str(e))
        else:
            welcomed.cancel()

    try:
        await run_task
    except MissingRoomName as e:
        logger.error(str(e))
        return 1

    return 1 if session.last_error else 0


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
