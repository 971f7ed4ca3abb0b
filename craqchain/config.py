"""Cluster configuration: node descriptions and the JSON config file."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


@dataclass
class NodeInfo:
    """A chain member as the manager knows it."""

    id: str
    addr: str
    is_head: bool = False
    is_tail: bool = False


@dataclass(frozen=True)
class DBInfo:
    """Where the metadata store lives."""

    addr: str = ""


@dataclass(frozen=True)
class Config:
    """Settings a node reads at start-up."""

    manager: str = ""
    db: DBInfo = field(default_factory=DBInfo)


def _object(value: Any) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError("config section must be a JSON object")
    return {key.casefold(): item for key, item in value.items()}


def _text(obj: dict[str, Any], key: str) -> str:
    value = obj.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"config field {key!r} must be a string")
    return value


def load(path: str | Path) -> Config:
    """Read a JSON configuration file; raises OSError or ValueError."""
    raw = _object(json.loads(Path(path).read_text(encoding="utf-8")))
    db = _object(raw.get("db"))
    return Config(manager=_text(raw, "manager"), db=DBInfo(addr=_text(db, "addr")))