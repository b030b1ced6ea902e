"""Signalroom - 방 단위 WebRTC 시그널링 서버 및 클라이언트"""

__version__ = "0.1.0"
