"""WebRTC 시그널링 관련 상수"""

# 기본 ICE 서버 (STUN만 사용)
# TURN 서버 없이 동작하므로 Symmetric NAT 환경에서는 연결 실패 가능
DEFAULT_ICE_SERVERS = [
    {"urls": "stun:stun.l.google.com:19302"},
]

# 방 이름 없이 접속했을 때 전송하는 에러 메시지
MISSING_ROOM_MESSAGE = "Room name is required to connect"

# 원격 피어 연결을 닫는 연결 상태
TERMINAL_CONNECTION_STATES = frozenset({"disconnected", "failed", "closed"})


# WebSocket 에러 코드
class WSErrorCode:
    """WebSocket close 코드"""
    NORMAL = 1000
    MISSING_ROOM = 4400
    INTERNAL_ERROR = 4500
