"""시그널링 예외 정의

모든 예외는 발생한 컴포넌트 경계에서 처리되며 서버 프로세스나
클라이언트 세션 밖으로 전파되지 않는다.
"""


class SignalingError(Exception):
    """시그널링 기본 예외"""

    pass


class MissingRoomName(SignalingError):
    """방 이름 없이 접속 (해당 연결은 종료)"""

    def __init__(self, message: str = "Room name is required to connect"):
        super().__init__(message)


class AlreadyJoined(SignalingError):
    """같은 연결로 두 번 join"""

    def __init__(self, connection_id: str):
        self.connection_id = connection_id
        super().__init__(f"Connection {connection_id} already joined a room")


class ProtocolError(SignalingError):
    """잘못된 envelope (JSON 오류, 알 수 없는 type, 필드 누락)

    해당 메시지만 버리고 연결은 유지한다.
    """

    pass


class NegotiationError(SignalingError):
    """SDP/ICE 적용 실패 - 해당 Peer Link만 닫는다"""

    def __init__(self, remote_user_id: str, message: str):
        self.remote_user_id = remote_user_id
        super().__init__(f"[{remote_user_id}] {message}")


class InvalidTransition(SignalingError):
    """현재 Peer Link 상태에서 처리할 수 없는 이벤트"""

    def __init__(self, state, event):
        self.state = state
        self.event = event
        super().__init__(f"{type(event).__name__} is not valid in state {state.value}")


class CaptureError(SignalingError):
    """로컬 미디어 캡처 실패 (사용자에게 노출)"""

    pass
