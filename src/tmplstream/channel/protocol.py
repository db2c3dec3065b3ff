"""
Wire format shared by the channel client and the matching worker.

A message travels as one ZeroMQ multipart message. Frame 0 is a UTF-8 JSON
header::

    {"id": 7, "type": "MATCH", "payload": {...}}
    {"id": 7, "type": "MATCH_RESULT", "result": {...}}
    {"id": 7, "type": "ERROR", "error": "..."}

Every ndarray inside ``payload``/``result`` is replaced in the header by a
reference ``{"__buffer__": n, "shape": [...], "dtype": "uint8"}`` and its raw
bytes are sent as frame ``n + 1``. Arrays are copied while encoding, so the
sender may keep mutating its own buffers after the call returns.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Sequence

import numpy as np

BUFFER_KEY = "__buffer__"


class MessageType(str, Enum):
    INIT = "INIT"
    MATCH = "MATCH"
    BATCH_MATCH = "BATCH_MATCH"
    GET_STATS = "GET_STATS"
    CLEAR_CACHE = "CLEAR_CACHE"
    INIT_DONE = "INIT_DONE"
    MATCH_RESULT = "MATCH_RESULT"
    BATCH_MATCH_RESULT = "BATCH_MATCH_RESULT"
    STATS = "STATS"
    ERROR = "ERROR"


REPLY_TYPES = {
    MessageType.INIT: MessageType.INIT_DONE,
    MessageType.MATCH: MessageType.MATCH_RESULT,
    MessageType.BATCH_MATCH: MessageType.BATCH_MATCH_RESULT,
    MessageType.GET_STATS: MessageType.STATS,
    MessageType.CLEAR_CACHE: MessageType.STATS,
}


@dataclass(slots=True)
class Message:
    id: int | None
    type: MessageType
    payload: Any = None
    result: Any = None
    error: str | None = None


def image_payload(data: np.ndarray) -> dict:
    return {"data": data, "width": int(data.shape[1]), "height": int(data.shape[0])}


def encode(message: Message) -> List[bytes]:
    buffers: List[bytes] = []
    header: dict = {"id": message.id, "type": message.type.value}
    if message.payload is not None:
        header["payload"] = _pack(message.payload, buffers)
    if message.result is not None:
        header["result"] = _pack(message.result, buffers)
    if message.error is not None:
        header["error"] = message.error
    return [json.dumps(header).encode("utf-8"), *buffers]


def decode(frames: Sequence[bytes]) -> Message:
    if not frames:
        raise ValueError("empty message")
    try:
        header = json.loads(bytes(frames[0]).decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValueError(f"malformed message header: {exc}") from exc
    if not isinstance(header, dict) or "type" not in header:
        raise ValueError("message header must be an object with a 'type'")

    buffers = frames[1:]
    return Message(
        id=header.get("id"),
        type=MessageType(header["type"]),
        payload=_unpack(header.get("payload"), buffers),
        result=_unpack(header.get("result"), buffers),
        error=header.get("error"),
    )


def request_id_of(frames: Sequence[bytes]) -> int | None:
    """
    Best-effort id extraction for replying to a message that failed to decode.
    """
    try:
        header = json.loads(bytes(frames[0]).decode("utf-8"))
    except (IndexError, UnicodeDecodeError, json.JSONDecodeError):
        return None
    value = header.get("id") if isinstance(header, dict) else None
    return value if isinstance(value, int) else None


def _pack(value: Any, buffers: List[bytes]) -> Any:
    if isinstance(value, np.ndarray):
        array = np.ascontiguousarray(value)
        buffers.append(array.tobytes())
        return {BUFFER_KEY: len(buffers) - 1, "shape": list(array.shape), "dtype": array.dtype.str}
    if isinstance(value, dict):
        return {key: _pack(item, buffers) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_pack(item, buffers) for item in value]
    if isinstance(value, np.generic):
        return value.item()
    return value


def _unpack(value: Any, buffers: Sequence[bytes]) -> Any:
    if isinstance(value, dict):
        if BUFFER_KEY in value:
            index = value[BUFFER_KEY]
            if not (0 <= index < len(buffers)):
                raise ValueError(f"buffer reference {index} out of range")
            array = np.frombuffer(buffers[index], dtype=np.dtype(value["dtype"]))
            return array.reshape(tuple(value["shape"]))
        return {key: _unpack(item, buffers) for key, item in value.items()}
    if isinstance(value, list):
        return [_unpack(item, buffers) for item in value]
    return value


__all__ = [
    "Message",
    "MessageType",
    "REPLY_TYPES",
    "decode",
    "encode",
    "image_payload",
    "request_id_of",
]
