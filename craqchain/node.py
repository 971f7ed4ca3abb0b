"""A chain node: assigns versions at the head, forwards writes, commits at the tail."""

from __future__ import annotations

import logging
import threading
from contextlib import closing
from dataclasses import replace
from functools import partial
from pathlib import Path
from typing import IO, Any, Iterator, Optional

import grpc

from .errors import RpcError
from .messages import StreamWriteReq, VersionQuery, VersionResponse, WriteAck
from .storage import StorageClient, VersionState

__all__ = ["Node", "iter_file_chunks", "CHUNK_SIZE"]

log = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


def _chunks(handle: IO[bytes], chunk_size: int) -> Iterator[bytes]:
    with handle:
        yield from iter(partial(handle.read, chunk_size), b"")


def iter_file_chunks(path: str | Path, chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    """Open a file now and return an iterator over its contents in pieces.

    The file is opened before returning, so a missing file raises at once.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk size must be positive: {chunk_size}")
    return _chunks(open(path, "rb"), chunk_size)


def _failure(context: str, exc: BaseException) -> RpcError:
    return RpcError(grpc.StatusCode.UNKNOWN, f"{context}: {exc}")


class Node:
    """One member of a CRAQ chain."""

    def __init__(
        self,
        node_id: str,
        is_head: bool,
        is_tail: bool,
        storage: StorageClient,
        prev: Optional[Any] = None,
        successor: Optional[Any] = None,
    ) -> None:
        self.node_id = node_id
        self.is_head = is_head
        self.is_tail = is_tail
        self.storage = storage
        self.prev = prev
        self.successor = successor
        self._lock = threading.Lock()

    def handle_write(self, req: StreamWriteReq) -> WriteAck:
        """Store a dirty version, pass it down the chain and mark it clean on ack."""
        if self.is_head:
            latest = self.storage.get_latest(req.folder, req.file_name)
            req = replace(req, seq=latest.seq + 1 if latest is not None else 1)

        with self._lock:
            try:
                self.storage.put(req.seq, req.file_name, req.folder, req.path)
            except Exception as exc:
                raise _failure("Storage Put failed", exc) from exc

        if self.is_tail:
            try:
                self.storage.mark_clean(req.folder, req.file_name, req.seq)
            except Exception as exc:
                raise _failure("MarkClean failed at tail", exc) from exc
            return WriteAck(file_name=req.file_name, folder=req.folder, seq=req.seq)

        try:
            next_ack = self._stream_file_to_next(req)
        except Exception as exc:
            raise _failure("forward Write to successor failed", exc) from exc

        with self._lock:
            try:
                self.storage.mark_clean(next_ack.folder, next_ack.file_name, next_ack.seq)
            except Exception as exc:
                raise _failure("MarkClean after successor ack failed", exc) from exc

        return WriteAck(file_name=next_ack.file_name, folder=next_ack.folder, seq=next_ack.seq)

    def handle_version_query(self, query: VersionQuery) -> VersionResponse:
        """Report the committed version of a file; only the tail may answer."""
        if not self.is_tail:
            raise RpcError(grpc.StatusCode.UNKNOWN, "version query must be handled by tail")

        with self._lock:
            chunk = self.storage.get_latest(query.folder, query.file_name)
            log.info(
                "Tail %s responding to version query for Folder %s File %s",
                self.node_id, query.folder, query.file_name,
            )

        if chunk is None:
            raise RpcError(
                grpc.StatusCode.UNKNOWN,
                f"Folder {query.folder} File {query.file_name} not found at tail",
            )
        if chunk.state is not VersionState.CLEAN:
            raise RpcError(
                grpc.StatusCode.UNKNOWN,
                f"Folder {query.folder} File {query.file_name} at tail is not clean yet",
            )
        return VersionResponse(
            folder=chunk.folder, seq=chunk.seq, file_name=chunk.file_name, path=chunk.path
        )

    def _stream_file_to_next(self, req: StreamWriteReq) -> WriteAck:
        if self.successor is None:
            raise RpcError(grpc.StatusCode.FAILED_PRECONDITION, "node has no successor")
        with closing(iter_file_chunks(req.path)) as chunks:
            requests = (
                StreamWriteReq(
                    folder=req.folder,
                    seq=req.seq,
                    file_name=req.file_name,
                    path=req.path,
                    data=data,
                )
                for data in chunks
            )
            return self.successor.stream_write(requests)