"""Peer 협상 엔진

원격 참여자별 mailbox(asyncio.Queue + worker task)로 이벤트를 직렬 처리한다.
- 같은 참여자에 대한 이벤트는 도착 순서대로 하나씩 처리
- 서로 다른 참여자는 독립적으로 진행 (A의 대기가 B를 막지 않음)
- RTCPeerConnection 콜백 이벤트는 발생한 link를 함께 실어 보내고,
  이미 교체/종료된 link의 이벤트는 무시한다
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable

from aiortc import RTCConfiguration, RTCIceServer, RTCPeerConnection, RTCSessionDescription
from pydantic import BaseModel

from signalroom.client.peer_link import (
    ConnectivityChanged,
    LinkEvent,
    PeerLink,
    PeerLinkState,
    RemoteAnswer,
    RemoteCandidate,
    RemoteOffer,
    RemoteTrack,
    StartOffer,
)
from signalroom.client.remote_media import RecorderMediaSink, RemoteMediaSink
from signalroom.core.exceptions import InvalidTransition, NegotiationError
from signalroom.core.webrtc_config import DEFAULT_ICE_SERVERS
from signalroom.schemas.signaling import AnswerMessage, IceCandidateMessage, OfferMessage
from signalroom.utils.ice_parser import ICECandidateParser, extract_candidates

logger = logging.getLogger(__name__)

SendFunc = Callable[[BaseModel], Awaitable[None]]


def create_peer_connection(ice_servers: list[dict] | None = None) -> RTCPeerConnection:
    """ICE 서버 설정으로 RTCPeerConnection 생성"""
    servers = []
    for server in ice_servers if ice_servers is not None else DEFAULT_ICE_SERVERS:
        urls = server["urls"]
        if isinstance(urls, str):
            urls = [urls]
        servers.append(
            RTCIceServer(
                urls=urls,
                username=server.get("username"),
                credential=server.get("credential"),
            )
        )

    return RTCPeerConnection(configuration=RTCConfiguration(iceServers=servers))


def to_session_description(remote_user_id: str, description: dict) -> RTCSessionDescription:
    """{"type", "sdp"} 딕셔너리를 RTCSessionDescription으로 변환"""
    sdp = description.get("sdp") if isinstance(description, dict) else None
    sdp_type = description.get("type") if isinstance(description, dict) else None
    if not sdp or not sdp_type:
        raise NegotiationError(remote_user_id, f"Invalid SDP format: sdp={bool(sdp)}, type={sdp_type}")

    try:
        return RTCSessionDescription(sdp=sdp, type=sdp_type)
    except ValueError as e:
        raise NegotiationError(remote_user_id, str(e)) from e


class NegotiationEngine:
    """원격 참여자별 Peer Link 관리"""

    def __init__(
        self,
        send: SendFunc,
        pc_factory: Callable[[], RTCPeerConnection] | None = None,
        sink: RemoteMediaSink | None = None,
        ice_servers: list[dict] | None = None,
    ):
        """
        Args:
            send: 시그널링 서버로 envelope을 보내는 코루틴 함수
            pc_factory: RTCPeerConnection 생성 함수 (테스트에서 교체)
            sink: 원격 트랙 출력
            ice_servers: pc_factory 미지정 시 사용할 ICE 서버 목록
        """
        self._send = send
        self._pc_factory = pc_factory or (lambda: create_peer_connection(ice_servers))
        self._sink = sink or RecorderMediaSink()
        self._links: dict[str, PeerLink] = {}
        self._mailboxes: dict[str, asyncio.Queue] = {}
        self._workers: dict[str, asyncio.Task] = {}
        self._local_tracks: list = []
        self._shutdown = False

    # ===== 조회 =====

    @property
    def links(self) -> dict[str, PeerLink]:
        return dict(self._links)

    def get_link(self, remote_user_id: str) -> PeerLink | None:
        return self._links.get(remote_user_id)

    @property
    def sink(self) -> RemoteMediaSink:
        return self._sink

    @property
    def has_local_media(self) -> bool:
        return bool(self._local_tracks)

    def set_local_tracks(self, tracks: Iterable) -> None:
        """이후 생성되는 link에 붙일 로컬 트랙 설정"""
        self._local_tracks = list(tracks)

    # ===== 이벤트 입력 =====

    def start_offer(self, remote_user_id: str) -> None:
        self._post(remote_user_id, StartOffer())

    def handle_offer(self, remote_user_id: str, description: dict) -> None:
        self._post(remote_user_id, RemoteOffer(description))

    def handle_answer(self, remote_user_id: str, description: dict) -> None:
        self._post(remote_user_id, RemoteAnswer(description))

    def handle_candidate(self, remote_user_id: str, candidate: dict) -> None:
        self._post(remote_user_id, RemoteCandidate(candidate))

    async def handle_members(self, remote_user_ids: list[str]) -> None:
        """방 멤버 목록 갱신

        - 목록에서 빠진 참여자: link 종료 및 mailbox 정리
        - 새로 나타난 참여자: 로컬 미디어가 있으면 offer 시작
        """
        present = set(remote_user_ids)

        for remote_user_id in list(self._links.keys() | self._mailboxes.keys()):
            if remote_user_id not in present:
                logger.info(f"Peer {remote_user_id} left the room")
                await self._drop_remote(remote_user_id)

        if not self.has_local_media:
            return

        for remote_user_id in remote_user_ids:
            if remote_user_id not in self._links:
                logger.info(f"Creating offer for new user: {remote_user_id}")
                self.start_offer(remote_user_id)

    # ===== 종료 =====

    async def close_link(self, remote_user_id: str, reason: str = "closed") -> None:
        """link 종료 및 원격 출력 해제 (없으면 무시)"""
        link = self._links.pop(remote_user_id, None)
        if link is None:
            return
        try:
            # worker가 취소되어도 연결 종료는 끝까지 진행
            await asyncio.shield(link.close(reason))
        finally:
            await self._sink.release(remote_user_id)

    async def close_all(self, reason: str = "closed") -> None:
        for remote_user_id in list(self._links):
            await self.close_link(remote_user_id, reason)

    async def wait_idle(self) -> None:
        """모든 mailbox에 쌓인 이벤트 처리 완료까지 대기"""
        while True:
            queues = list(self._mailboxes.values())
            await asyncio.gather(*(q.join() for q in queues))
            # 처리 중 새 참여자의 mailbox가 생겼으면 한 번 더 대기
            if len(self._mailboxes) == len(queues):
                return

    async def shutdown(self) -> None:
        """모든 link 종료 및 worker 정리"""
        self._shutdown = True
        await self.close_all("shutdown")
        workers = list(self._workers.values())
        for worker in workers:
            worker.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        self._workers.clear()
        self._mailboxes.clear()

    # ===== mailbox =====

    def _post(self, remote_user_id: str, event: LinkEvent, origin: PeerLink | None = None) -> None:
        if self._shutdown:
            logger.debug(f"Engine shut down, dropping {type(event).__name__} for {remote_user_id}")
            return

        queue = self._mailboxes.get(remote_user_id)
        if queue is None:
            queue = asyncio.Queue()
            self._mailboxes[remote_user_id] = queue
            self._workers[remote_user_id] = asyncio.create_task(
                self._run_mailbox(remote_user_id, queue),
                name=f"mailbox-{remote_user_id}",
            )
        queue.put_nowait((origin, event))

    async def _run_mailbox(self, remote_user_id: str, queue: asyncio.Queue) -> None:
        while True:
            origin, event = await queue.get()
            try:
                await self._process(remote_user_id, origin, event)
            except Exception as e:
                logger.error(
                    f"Error handling {type(event).__name__} for {remote_user_id}: {e}",
                    exc_info=True,
                )
            finally:
                queue.task_done()

    async def _drop_remote(self, remote_user_id: str) -> None:
        await self.close_link(remote_user_id, "left")
        # 교체 중이던 이전 link의 출력은 worker 취소와 무관하게 해제
        await self._sink.release(remote_user_id)
        self._mailboxes.pop(remote_user_id, None)
        worker = self._workers.pop(remote_user_id, None)
        if worker is not None and worker is not asyncio.current_task():
            worker.cancel()

    async def _process(self, remote_user_id: str, origin: PeerLink | None, event: LinkEvent) -> None:
        if origin is not None and self._links.get(remote_user_id) is not origin:
            logger.debug(f"Ignoring {type(event).__name__} from stale link {remote_user_id}")
            return

        if isinstance(event, StartOffer):
            await self._start_offer(remote_user_id)
        elif isinstance(event, RemoteOffer):
            await self._accept_offer(remote_user_id, event)
        elif isinstance(event, RemoteAnswer):
            await self._accept_answer(remote_user_id, event)
        elif isinstance(event, RemoteCandidate):
            await self._add_candidate(remote_user_id, event)
        elif isinstance(event, ConnectivityChanged):
            await self._on_connectivity(origin, event)
        elif isinstance(event, RemoteTrack):
            await self._on_track(origin, event)

    # ===== 전이 처리 =====

    def _new_link(self, remote_user_id: str) -> PeerLink:
        pc = self._pc_factory()
        link = PeerLink(remote_user_id, pc)
        self._links[remote_user_id] = link

        @pc.on("connectionstatechange")
        def on_connection_state_change():
            self._post(remote_user_id, ConnectivityChanged(pc.connectionState), link)

        @pc.on("track")
        def on_track(track):
            self._post(remote_user_id, RemoteTrack(track), link)

        return link

    def _is_current(self, link: PeerLink) -> bool:
        return self._links.get(link.remote_user_id) is link and not link.closed

    async def _start_offer(self, remote_user_id: str) -> None:
        if not self._local_tracks:
            logger.debug(f"No local media, skipping offer to {remote_user_id}")
            return
        if remote_user_id in self._links:
            logger.debug(f"Peer link {remote_user_id} already exists, skipping offer")
            return

        link = self._new_link(remote_user_id)
        link.apply(StartOffer())
        try:
            link.attach_tracks(self._local_tracks)
            offer = await link.pc.createOffer()
            await link.pc.setLocalDescription(offer)
        except Exception as e:
            await self._abort(link, NegotiationError(remote_user_id, f"Error creating offer: {e}"))
            return

        if not self._is_current(link):
            return
        await self._send(OfferMessage(target=remote_user_id, offer=self._describe(link)))
        await self._send_candidates(link)

    async def _accept_offer(self, remote_user_id: str, event: RemoteOffer) -> None:
        if remote_user_id in self._links:
            logger.info(f"Closing existing peer connection for {remote_user_id}")
            await self.close_link(remote_user_id, "replaced")

        link = self._new_link(remote_user_id)
        link.apply(event)
        try:
            await link.pc.setRemoteDescription(to_session_description(remote_user_id, event.description))
            if self._local_tracks:
                link.attach_tracks(self._local_tracks)
            answer = await link.pc.createAnswer()
            await link.pc.setLocalDescription(answer)
        except NegotiationError as e:
            await self._abort(link, e)
            return
        except Exception as e:
            await self._abort(link, NegotiationError(remote_user_id, f"Error handling offer: {e}"))
            return

        if not self._is_current(link):
            return
        await self._send(AnswerMessage(target=remote_user_id, answer=self._describe(link)))
        await self._send_candidates(link)

    async def _accept_answer(self, remote_user_id: str, event: RemoteAnswer) -> None:
        link = self._links.get(remote_user_id)
        if link is None:
            logger.warning(f"Received answer for non-existent peer {remote_user_id}")
            return

        try:
            link.apply(event)
        except InvalidTransition as e:
            logger.warning(f"Dropping answer from {remote_user_id}: {e}")
            return

        try:
            await link.pc.setRemoteDescription(to_session_description(remote_user_id, event.description))
        except NegotiationError as e:
            await self._abort(link, e)
        except Exception as e:
            await self._abort(link, NegotiationError(remote_user_id, f"Error handling answer: {e}"))

    async def _add_candidate(self, remote_user_id: str, event: RemoteCandidate) -> None:
        link = self._links.get(remote_user_id)
        if link is None:
            logger.warning(f"Received ICE candidate for non-existent peer {remote_user_id}")
            return

        try:
            link.apply(event)
        except InvalidTransition as e:
            logger.warning(f"Dropping ICE candidate from {remote_user_id}: {e}")
            return

        candidate = ICECandidateParser.from_init(event.candidate)
        if candidate is None:
            logger.debug(f"Ignoring end-of-candidates or invalid candidate from {remote_user_id}")
            return

        remote_description = link.pc.remoteDescription
        if remote_description is not None and event.candidate["candidate"] in remote_description.sdp:
            logger.debug(f"ICE candidate from {remote_user_id} already in remote description")
            return

        try:
            await link.pc.addIceCandidate(candidate)
        except Exception as e:
            # candidate 하나 실패로 link를 닫지 않음
            logger.error(f"Error adding ICE candidate from {remote_user_id}: {e}")

    async def _on_connectivity(self, link: PeerLink, event: ConnectivityChanged) -> None:
        logger.info(f"Peer {link.remote_user_id} connection state changed to: {event.state}")
        if link.apply(event) is PeerLinkState.CLOSED:
            await self.close_link(link.remote_user_id, event.state)

    async def _on_track(self, link: PeerLink, event: RemoteTrack) -> None:
        try:
            link.apply(event)
        except InvalidTransition as e:
            logger.warning(f"Dropping remote track from {link.remote_user_id}: {e}")
            return
        logger.info(f"Received {event.track.kind} track from peer {link.remote_user_id}")
        await self._sink.attach(link.remote_user_id, event.track)

    async def _abort(self, link: PeerLink, error: NegotiationError) -> None:
        """협상 실패 - 해당 link만 종료"""
        logger.error(f"Negotiation failed: {error}")
        if self._links.get(link.remote_user_id) is link:
            await self.close_link(link.remote_user_id, "negotiation-failed")
        else:
            await link.close("negotiation-failed")

    # ===== 전송 =====

    @staticmethod
    def _describe(link: PeerLink) -> dict:
        description = link.pc.localDescription
        return {"type": description.type, "sdp": description.sdp}

    async def _send_candidates(self, link: PeerLink) -> None:
        """로컬 SDP의 candidate를 ice-candidate 메시지로 전송"""
        for candidate in extract_candidates(link.pc.localDescription.sdp):
            if not self._is_current(link):
                return
            await self._send(IceCandidateMessage(target=link.remote_user_id, candidate=candidate))
