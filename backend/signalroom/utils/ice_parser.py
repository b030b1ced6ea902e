"""ICE candidate 파싱 유틸리티"""

import logging

logger = logging.getLogger(__name__)


class ICECandidateParser:
    """브라우저 ICE candidate 문자열을 aiortc RTCIceCandidate로 파싱하는 유틸리티"""

    @staticmethod
    def parse(candidate_str: str, candidate_dict: dict):
        """브라우저 ICE candidate 문자열을 aiortc RTCIceCandidate로 파싱

        Args:
            candidate_str: "candidate:..." 형식의 문자열
            candidate_dict: sdpMid, sdpMLineIndex 포함 딕셔너리

        Returns:
            RTCIceCandidate 또는 None
        """
        from aiortc import RTCIceCandidate

        # "candidate:" 접두사 제거
        if candidate_str.startswith("candidate:"):
            candidate_str = candidate_str[10:]

        # 기본 필드 파싱: foundation component protocol priority ip port typ type
        parts = candidate_str.split()
        if len(parts) < 8:
            logger.warning(f"Invalid candidate format: {candidate_str[:50]}")
            return None

        try:
            foundation = parts[0]
            component = int(parts[1])
            protocol = parts[2].lower()
            priority = int(parts[3])
            ip = parts[4]
            port = int(parts[5])
            # parts[6]은 "typ"
            candidate_type = parts[7]

            # 선택적 필드 파싱 (raddr, rport, tcptype)
            related_address = None
            related_port = None
            tcp_type = None

            i = 8
            while i < len(parts) - 1:
                if parts[i] == "raddr":
                    related_address = parts[i + 1]
                    i += 2
                elif parts[i] == "rport":
                    related_port = int(parts[i + 1])
                    i += 2
                elif parts[i] == "tcptype":
                    tcp_type = parts[i + 1]
                    i += 2
                else:
                    i += 1

            return RTCIceCandidate(
                component=component,
                foundation=foundation,
                ip=ip,
                port=port,
                priority=priority,
                protocol=protocol,
                type=candidate_type,
                relatedAddress=related_address,
                relatedPort=related_port,
                sdpMid=candidate_dict.get("sdpMid"),
                sdpMLineIndex=candidate_dict.get("sdpMLineIndex"),
                tcpType=tcp_type,
            )
        except (ValueError, IndexError) as e:
            logger.warning(f"Failed to parse candidate: {e}")
            return None

    @staticmethod
    def from_init(candidate: dict):
        """RTCIceCandidateInit 딕셔너리를 RTCIceCandidate로 변환

        빈 candidate 문자열(end-of-candidates)이면 None
        """
        candidate_str = candidate.get("candidate") or ""
        if not candidate_str:
            return None
        return ICECandidateParser.parse(candidate_str, candidate)


def extract_candidates(sdp: str) -> list[dict]:
    """SDP의 a=candidate 라인을 RTCIceCandidateInit 목록으로 추출

    aiortc는 trickle ICE 이벤트를 내지 않으므로, setLocalDescription 이후
    로컬 SDP에 포함된 candidate를 개별 ice-candidate 메시지로 보낼 때 사용한다.
    """
    candidates = []
    section: list[dict] = []
    m_line_index = -1
    mid = None

    def flush():
        # a=mid는 미디어 섹션 안 어디에든 올 수 있으므로 섹션 끝에서 채운다
        for candidate in section:
            candidate["sdpMid"] = mid
        candidates.extend(section)
        section.clear()

    for line in sdp.splitlines():
        line = line.strip()
        if line.startswith("m="):
            flush()
            m_line_index += 1
            mid = None
        elif line.startswith("a=mid:"):
            mid = line[len("a=mid:"):]
        elif line.startswith("a=candidate:") and m_line_index >= 0:
            section.append({
                "candidate": line[len("a="):],
                "sdpMid": None,
                "sdpMLineIndex": m_line_index,
            })
    flush()

    return candidates
