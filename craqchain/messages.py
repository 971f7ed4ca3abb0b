"""Messages exchanged between chain nodes and clients, and their wire form."""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, fields
from typing import Any


@dataclass(frozen=True)
class StreamWriteReq:
    """One piece of a streamed file write."""

    folder: str = ""
    seq: int = 0
    file_name: str = ""
    path: str = ""
    data: bytes = b""


@dataclass(frozen=True)
class WriteAck:
    """Acknowledgement that a version reached the tail."""

    file_name: str = ""
    folder: str = ""
    seq: int = 0


@dataclass(frozen=True)
class VersionQuery:
    """Ask the tail for the committed version of a file."""

    folder: str = ""
    file_name: str = ""


@dataclass(frozen=True)
class VersionResponse:
    """The committed version of a file."""

    folder: str = ""
    seq: int = 0
    file_name: str = ""
    path: str = ""


@dataclass(frozen=True)
class StreamReadReq:
    """Ask a node to stream a file's contents."""

    folder: str = ""
    file_name: str = ""


@dataclass(frozen=True)
class ReadChunk:
    """One piece of a streamed file read."""

    data: bytes = b""


_MESSAGE_TYPES = (StreamWriteReq, WriteAck, VersionQuery, VersionResponse, StreamReadReq, ReadChunk)


def _fits(default: Any, value: Any) -> bool:
    if type(default) is int:
        return isinstance(value, int) and not isinstance(value, bool) and 0 <= value < 2**64
    return isinstance(value, type(default))


def encode(message: Any) -> bytes:
    """Serialise a message to compact JSON; byte fields are base64 text."""
    if type(message) not in _MESSAGE_TYPES:
        raise TypeError(f"not a message: {type(message).__name__}")
    body: dict[str, Any] = {}
    for f in fields(message):
        value = getattr(message, f.name)
        if not _fits(f.default, value):
            raise TypeError(f"field {f.name!r} has an invalid value: {value!r}")
        body[f.name] = base64.b64encode(value).decode("ascii") if isinstance(value, bytes) else value
    return json.dumps(body, sort_keys=True, separators=(",", ":")).encode("utf-8")


def decode(cls: type, payload: bytes) -> Any:
    """Parse a payload produced by encode; raises ValueError if malformed."""
    if cls not in _MESSAGE_TYPES:
        raise TypeError(f"not a message type: {cls!r}")
    raw = json.loads(payload)
    if not isinstance(raw, dict):
        raise ValueError(f"{cls.__name__} payload must be a JSON object")
    values: dict[str, Any] = {}
    for f in fields(cls):
        value = raw.get(f.name)
        if value is None:
            continue
        if isinstance(f.default, bytes):
            try:
                value = base64.b64decode(value, validate=True)
            except (binascii.Error, TypeError, ValueError) as exc:
                raise ValueError(f"field {f.name!r} is not valid base64") from exc
        if not _fits(f.default, value):
            raise ValueError(f"field {f.name!r} has an invalid value: {value!r}")
        values[f.name] = value
    return cls(**values)