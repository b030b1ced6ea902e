"""WebRTC 시그널링 클라이언트 모듈"""

from .negotiation import NegotiationEngine
from .peer_link import PeerLink, PeerLinkState, transition
from .session import SignalingSession

__all__ = ["NegotiationEngine", "PeerLink", "PeerLinkState", "SignalingSession", "transition"]
