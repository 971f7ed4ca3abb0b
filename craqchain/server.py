"""Request handlers a chain node exposes to clients and its predecessor."""

from __future__ import annotations

import logging
import posixpath
import tempfile
from dataclasses import replace
from pathlib import Path
from typing import BinaryIO, Iterable, Iterator, Optional

import grpc

from .errors import RpcError
from .messages import ReadChunk, StreamReadReq, StreamWriteReq, VersionQuery, VersionResponse, WriteAck
from .node import Node, iter_file_chunks

log = logging.getLogger(__name__)


def _receive(requests: Iterable[StreamWriteReq]) -> Iterator[StreamWriteReq]:
    """Yield incoming requests, turning a broken stream into an RpcError."""
    iterator = iter(requests)
    while True:
        try:
            yield next(iterator)
        except StopIteration:
            return
        except Exception as exc:
            raise RpcError(grpc.StatusCode.INTERNAL, f"failed to receive chunk: {exc}") from exc


def _internal(action: str, exc: Exception) -> RpcError:
    return RpcError(grpc.StatusCode.INTERNAL, f"{action} failed: {exc}")


class NodeServer:
    """Serves writes, reads, listings and version queries for one node."""

    def __init__(self, node: Node, temp_root: Optional[str | Path] = None) -> None:
        self.node = node
        self.temp_root = Path(temp_root if temp_root is not None else tempfile.gettempdir())

    def query_version(self, query: VersionQuery) -> VersionResponse:
        """Answer a version query from the node's committed state."""
        return self.node.handle_version_query(
            VersionQuery(folder=query.folder, file_name=query.file_name)
        )

    def stream_write(self, requests: Iterable[StreamWriteReq]) -> WriteAck:
        """Receive a streamed file into the temporary area and write it through the chain."""
        first: Optional[StreamWriteReq] = None
        handle: Optional[BinaryIO] = None
        try:
            for req in _receive(requests):
                if handle is None:
                    relative = posixpath.normpath(posixpath.join("/", req.folder, req.file_name))
                    target = self.temp_root / relative.lstrip("/")
                    first = replace(req, path=str(target), data=b"")
                    try:
                        target.parent.mkdir(parents=True, exist_ok=True)
                    except OSError as exc:
                        raise _internal("mkdir", exc) from exc
                    try:
                        handle = open(target, "wb")
                    except OSError as exc:
                        raise _internal("file create", exc) from exc
                try:
                    handle.write(req.data)
                except OSError as exc:
                    raise _internal("file write", exc) from exc
        finally:
            if handle is not None:
                handle.close()

        if first is None:
            raise RpcError(grpc.StatusCode.INVALID_ARGUMENT, "no data received")
        try:
            ack = self.node.handle_write(first)
        except Exception as exc:
            raise _internal("HandleWrite", exc) from exc
        log.info("[StreamWrite] ack: Folder=%s File=%s Seq=%d", ack.folder, ack.file_name, ack.seq)
        return ack

    def stream_read(self, request: StreamReadReq) -> Iterator[ReadChunk]:
        """Return an iterator over a file's contents; lookup and open failures raise at once."""
        meta = self.node.storage.get_latest(request.folder, request.file_name)
        if meta is None:
            raise RpcError(
                grpc.StatusCode.NOT_FOUND,
                f"Folder {request.folder} File {request.file_name} not found",
            )
        try:
            chunks = iter_file_chunks(meta.path)
        except OSError as exc:
            raise RpcError(grpc.StatusCode.INTERNAL, f"failed to open chunk file: {exc}") from exc
        return self._send(chunks)

    @staticmethod
    def _send(chunks: Iterator[bytes]) -> Iterator[ReadChunk]:
        try:
            for data in chunks:
                yield ReadChunk(data=data)
        except OSError as exc:
            raise RpcError(grpc.StatusCode.INTERNAL, f"read error: {exc}") from exc
        finally:
            chunks.close()

    def list_files(self, folder: str) -> list[str]:
        """List the files and sub-folders stored under a folder."""
        try:
            return self.node.storage.list_files_in_folder(folder)
        except Exception as exc:
            raise RpcError(grpc.StatusCode.INTERNAL, f"failed to list files: {exc}") from exc