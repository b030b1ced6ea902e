"""WebSocket 시그널링 통합 테스트 (TestClient)

- 입장: welcome → users, 두 번째 입장 시 전원에게 users
- relay: offer/answer 전달 및 from 덮어쓰기
- 퇴장: 남은 멤버에게 users
- 방 밖 대상 / 잘못된 메시지는 조용히 버림
- 방 이름 누락: error 후 4400 종료
- REST: health, 방 조회, ICE 서버
"""

import pytest
from starlette.websockets import WebSocketDisconnect

from signalroom.core.webrtc_config import WSErrorCode

OFFER = {"type": "offer", "sdp": "v=0\r\n"}
ANSWER = {"type": "answer", "sdp": "v=0\r\n"}


def join(ws) -> str:
    """welcome 수신 후 user_id 반환"""
    welcome = ws.receive_json()
    assert welcome["type"] == "welcome"
    return welcome["userId"]


# ===== 입장 / 퇴장 =====


def test_first_client_gets_welcome_then_users(client):
    with client.websocket_connect("/ws?room=demo") as ws:
        welcome = ws.receive_json()
        users = ws.receive_json()

    assert welcome["message"] == "Welcome to room: demo"
    assert users == {"type": "users", "users": [welcome["userId"]]}


def test_second_client_updates_everyone(client):
    """B 입장 시 A와 B 모두 [A, B] 수신"""
    with client.websocket_connect("/ws?room=demo") as ws_a:
        user_a = join(ws_a)
        ws_a.receive_json()

        with client.websocket_connect("/ws?room=demo") as ws_b:
            user_b = join(ws_b)

            assert ws_b.receive_json()["users"] == [user_a, user_b]
            assert ws_a.receive_json()["users"] == [user_a, user_b]

        # B 퇴장 후 A에게 [A]
        assert ws_a.receive_json() == {"type": "users", "users": [user_a]}


def test_legacy_root_path_accepted(client):
    with client.websocket_connect("/?room=demo") as ws:
        assert join(ws)


def test_missing_room_closes_with_error(client):
    """방 이름 없이 접속하면 error 후 4400 종료"""
    with client.websocket_connect("/ws") as ws:
        error = ws.receive_json()

        with pytest.raises(WebSocketDisconnect) as exc_info:
            ws.receive_json()

    assert error == {"type": "error", "error": "Room name is required to connect"}
    assert exc_info.value.code == WSErrorCode.MISSING_ROOM


# ===== relay =====


def test_offer_answer_relay_stamps_sender(client):
    """offer는 B에게 from=A로, answer는 A에게 from=B로 전달"""
    with client.websocket_connect("/ws?room=demo") as ws_a:
        user_a = join(ws_a)
        ws_a.receive_json()

        with client.websocket_connect("/ws?room=demo") as ws_b:
            user_b = join(ws_b)
            ws_b.receive_json()
            ws_a.receive_json()

            # When: A → B offer (from 위조 시도 포함)
            ws_a.send_json({"type": "offer", "target": user_b, "from": "mallory", "offer": OFFER})
            relayed_offer = ws_b.receive_json()

            # When: B → A answer
            ws_b.send_json({"type": "answer", "target": user_a, "answer": ANSWER})
            relayed_answer = ws_a.receive_json()

    assert relayed_offer == {"type": "offer", "target": user_b, "from": user_a, "offer": OFFER}
    assert relayed_answer == {"type": "answer", "target": user_a, "from": user_b, "answer": ANSWER}


def test_invalid_and_unroutable_messages_are_dropped(client):
    """잘못된 메시지와 방 밖 대상은 무시되고 연결은 유지"""
    with client.websocket_connect("/ws?room=demo") as ws_a:
        user_a = join(ws_a)
        ws_a.receive_json()

        with client.websocket_connect("/ws?room=other") as ws_other:
            other_user = join(ws_other)
            ws_other.receive_json()

            # Given: 잘못된 JSON, 알 수 없는 타입, 다른 방 대상, 없는 대상
            ws_a.send_text("{broken")
            ws_a.send_json({"type": "join", "room": "demo"})
            ws_a.send_json({"type": "ice-candidate", "target": other_user, "candidate": {"candidate": ""}})
            ws_a.send_json({"type": "ice-candidate", "target": "gone", "candidate": {"candidate": ""}})

            # When: 같은 방에 C 입장
            with client.websocket_connect("/ws?room=demo") as ws_c:
                user_c = join(ws_c)

                # Then: A의 다음 메시지는 users (에러/candidate 없음)
                assert ws_a.receive_json() == {"type": "users", "users": [user_a, user_c]}

                # 연결은 유지되어 relay 가능
                ws_c.receive_json()
                ws_a.send_json({"type": "offer", "target": user_c, "offer": OFFER})
                assert ws_c.receive_json()["from"] == user_a


# ===== REST =====


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_get_room_members(client):
    with client.websocket_connect("/ws?room=demo") as ws:
        user_id = join(ws)

        response = client.get("/api/v1/rooms/demo")

    assert response.status_code == 200
    assert response.json() == {"room": "demo", "users": [user_id]}


def test_get_room_not_found(client):
    response = client.get("/api/v1/rooms/nowhere")

    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "NOT_FOUND"


def test_room_removed_after_last_leave(client):
    with client.websocket_connect("/ws?room=demo") as ws:
        join(ws)
        ws.receive_json()

    assert client.get("/api/v1/rooms/demo").status_code == 404


def test_ice_servers(client):
    response = client.get("/api/v1/ice-servers")

    assert response.status_code == 200
    servers = response.json()
    assert servers
    assert all("urls" in server for server in servers)
