"""Errors that carry an RPC status code."""

from __future__ import annotations

import grpc

__all__ = ["RpcError"]


class RpcError(Exception):
    """A failure that should reach a remote caller with a status code."""

    def __init__(self, code: grpc.StatusCode, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def __str__(self) -> str:
        return self.message

    def __repr__(self) -> str:
        return f"RpcError({self.code.name}, {self.message!r})"