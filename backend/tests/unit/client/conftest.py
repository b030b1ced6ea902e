"""클라이언트 테스트용 fake 객체

네트워크 없이 협상 흐름을 검증하기 위해 RTCPeerConnection, 로컬 트랙,
원격 미디어 sink를 대체한다.
"""

import asyncio

import pytest
from aiortc import RTCSessionDescription

from signalroom.client.negotiation import NegotiationEngine
from signalroom.schemas.signaling import dump_envelope

LOCAL_SDP = "\r\n".join([
    "v=0",
    "o=- 1 1 IN IP4 0.0.0.0",
    "s=-",
    "t=0 0",
    "m=video 9 UDP/TLS/RTP/SAVPF 96",
    "a=mid:0",
    "a=candidate:1 1 udp 2113937151 10.0.0.5 40000 typ host",
    "a=candidate:2 1 udp 1677729535 203.0.113.5 40001 typ srflx raddr 10.0.0.5 rport 40000",
    "",
])

REMOTE_CANDIDATE = {
    "candidate": "candidate:9 1 udp 2113937151 10.0.0.9 50000 typ host",
    "sdpMid": "0",
    "sdpMLineIndex": 0,
}


class FakePeerConnection:
    """RTCPeerConnection 대체 - 호출 기록 및 실패 주입"""

    def __init__(self):
        self.handlers: dict = {}
        self.connectionState = "new"
        self.localDescription = None
        self.remoteDescription = None
        self.tracks: list = []
        self.candidates: list = []
        self.closed = False
        self.fail_on: set[str] = set()
        self.gate: asyncio.Event | None = None
        self.close_gate: asyncio.Event | None = None

    def on(self, event: str):
        def decorator(fn):
            self.handlers[event] = fn
            return fn

        return decorator

    def emit(self, event: str, *args) -> None:
        handler = self.handlers.get(event)
        if handler is not None:
            handler(*args)

    def set_state(self, state: str) -> None:
        self.connectionState = state
        self.emit("connectionstatechange")

    def _check(self, operation: str) -> None:
        if operation in self.fail_on:
            raise RuntimeError(f"{operation} failed")

    def addTrack(self, track):
        self.tracks.append(track)

    async def createOffer(self):
        if self.gate is not None:
            await self.gate.wait()
        self._check("createOffer")
        return RTCSessionDescription(sdp=LOCAL_SDP, type="offer")

    async def createAnswer(self):
        self._check("createAnswer")
        return RTCSessionDescription(sdp=LOCAL_SDP, type="answer")

    async def setLocalDescription(self, description):
        self.localDescription = description

    async def setRemoteDescription(self, description):
        self._check("setRemoteDescription")
        self.remoteDescription = description

    async def addIceCandidate(self, candidate):
        self._check("addIceCandidate")
        self.candidates.append(candidate)

    async def close(self):
        if self.close_gate is not None:
            await self.close_gate.wait()
        if not self.closed:
            self.closed = True
            self.set_state("closed")


class FakeTrack:
    """aiortc MediaStreamTrack 대체 (stop 시 ended 발생)"""

    def __init__(self, kind: str):
        self.kind = kind
        self.stopped = False
        self._ended_handlers: list = []

    def on(self, event: str):
        def decorator(fn):
            if event == "ended":
                self._ended_handlers.append(fn)
            return fn

        return decorator

    def stop(self) -> None:
        if self.stopped:
            return
        self.stopped = True
        for handler in self._ended_handlers:
            handler()


class FakeSink:
    """원격 트랙 출력 기록"""

    def __init__(self):
        self.outputs: dict[str, list] = {}
        self.released: list[str] = []

    async def attach(self, remote_user_id: str, track) -> None:
        self.outputs.setdefault(remote_user_id, []).append(track)

    async def release(self, remote_user_id: str) -> None:
        if self.outputs.pop(remote_user_id, None) is not None:
            self.released.append(remote_user_id)

    def active_outputs(self) -> list[str]:
        return list(self.outputs)


class Outbox:
    """엔진이 전송한 envelope 기록"""

    def __init__(self):
        self.messages: list[dict] = []

    async def send(self, envelope) -> None:
        self.messages.append(dump_envelope(envelope))

    def of_type(self, message_type: str) -> list[dict]:
        return [m for m in self.messages if m["type"] == message_type]


# ===== Fixtures =====


@pytest.fixture
def outbox() -> Outbox:
    return Outbox()


@pytest.fixture
def sink() -> FakeSink:
    return FakeSink()


@pytest.fixture
def pcs() -> list[FakePeerConnection]:
    """엔진이 생성한 fake 연결 (생성 순서)"""
    return []


@pytest.fixture
def pc_factory(pcs):
    """FakePeerConnection 생성 후 pcs에 기록"""

    def factory():
        pc = FakePeerConnection()
        pcs.append(pc)
        return pc

    return factory


@pytest.fixture
async def engine(outbox, sink, pc_factory):
    engine = NegotiationEngine(outbox.send, pc_factory=pc_factory, sink=sink)
    yield engine
    await engine.shutdown()


@pytest.fixture
def make_track():
    """FakeTrack 생성 함수"""
    return FakeTrack


@pytest.fixture
def local_tracks() -> list[FakeTrack]:
    return [FakeTrack("audio"), FakeTrack("video")]


@pytest.fixture
def remote_candidate() -> dict:
    return dict(REMOTE_CANDIDATE)
