from signalroom.schemas.signaling import (
    AnswerMessage,
    Envelope,
    ErrorMessage,
    IceCandidateMessage,
    OfferMessage,
    RelayMessage,
    SignalingMessageType,
    UsersMessage,
    WelcomeMessage,
    dump_envelope,
    parse_envelope,
    parse_inbound,
)

__all__ = [
    "AnswerMessage",
    "Envelope",
    "ErrorMessage",
    "IceCandidateMessage",
    "OfferMessage",
    "RelayMessage",
    "SignalingMessageType",
    "UsersMessage",
    "WelcomeMessage",
    "dump_envelope",
    "parse_envelope",
    "parse_inbound",
]
