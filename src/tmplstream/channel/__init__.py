"""
Message channel between callers and the isolated matching worker.
"""

from .client import ComputationChannel, chain, resolved
from .protocol import Message, MessageType, decode, encode, image_payload, request_id_of
from .worker import MatchWorker, build_engine

__all__ = [
    "ComputationChannel",
    "MatchWorker",
    "Message",
    "MessageType",
    "build_engine",
    "chain",
    "decode",
    "encode",
    "image_payload",
    "request_id_of",
    "resolved",
]
