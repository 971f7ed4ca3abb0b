"""gRPC wiring for the manager and chain-node services."""

from __future__ import annotations

import json
from concurrent import futures
from functools import partial
from typing import Any, Callable, Iterable, Iterator, Optional

import grpc

from . import messages
from .config import NodeInfo
from .errors import RpcError
from .manager import Manager
from .messages import ReadChunk, StreamReadReq, StreamWriteReq, VersionQuery, VersionResponse, WriteAck
from .server import NodeServer

MANAGER_SERVICE = "craq.Manager"
NODE_SERVICE = "craq.Node"
DEFAULT_TIMEOUT = 5.0


def _dump(body: Any) -> bytes:
    return json.dumps(body, sort_keys=True, separators=(",", ":")).encode("utf-8")


def _load(payload: bytes) -> dict[str, Any]:
    raw = json.loads(payload)
    if not isinstance(raw, dict):
        raise ValueError("payload must be a JSON object")
    return raw


def _field(raw: dict[str, Any], key: str, kind: type, default: Any) -> Any:
    value = raw.get(key)
    if value is None:
        return default
    if not isinstance(value, kind):
        raise ValueError(f"field {key!r} must be {kind.__name__}")
    return value


def _node_to_wire(node: Optional[NodeInfo]) -> bytes:
    if node is None:
        return _dump({})
    return _dump({"node_id": node.id, "address": node.addr, "is_head": node.is_head, "is_tail": node.is_tail})


def _node_from_wire(payload: bytes) -> NodeInfo:
    raw = _load(payload)
    return NodeInfo(
        id=_field(raw, "node_id", str, ""),
        addr=_field(raw, "address", str, ""),
        is_head=_field(raw, "is_head", bool, False),
        is_tail=_field(raw, "is_tail", bool, False),
    )


def _wrap(key: str) -> Callable[[Any], bytes]:
    return lambda value: _dump({key: value})


def _unwrap(key: str, kind: type, default: Any) -> Callable[[bytes], Any]:
    return lambda payload: _field(_load(payload), key, kind, default)


def _names_from_wire(payload: bytes) -> list[str]:
    value = _field(_load(payload), "file_names", list, [])
    if not all(isinstance(name, str) for name in value):
        raise ValueError("field 'file_names' must be a list of strings")
    return value


def _to_rpc_error(exc: grpc.RpcError) -> RpcError:
    code = exc.code() if callable(getattr(exc, "code", None)) else None
    details = exc.details() if callable(getattr(exc, "details", None)) else str(exc)
    return RpcError(code or grpc.StatusCode.UNKNOWN, details or "")


def _invoke(call: Callable[..., Any], request: Any, timeout: Optional[float]) -> Any:
    try:
        return call(request, timeout=timeout)
    except grpc.RpcError as exc:
        raise _to_rpc_error(exc) from exc


def _guard(handler: Callable[[Any], Any]) -> Callable[[Any, grpc.ServicerContext], Any]:
    def wrapped(request: Any, context: grpc.ServicerContext) -> Any:
        try:
            return handler(request)
        except RpcError as exc:
            context.abort(exc.code, exc.message)

    return wrapped


def _unary(handler: Callable[[Any], Any], deserializer: Callable, serializer: Callable):
    return grpc.unary_unary_rpc_method_handler(
        _guard(handler), request_deserializer=deserializer, response_serializer=serializer
    )


def _start(service: str, handlers: dict[str, Any], address: str) -> tuple[grpc.Server, int]:
    server = grpc.server(futures.ThreadPoolExecutor(max_workers=16))
    server.add_generic_rpc_handlers((grpc.method_handlers_generic_handler(service, handlers),))
    try:
        port = server.add_insecure_port(address)
    except RuntimeError as exc:
        raise OSError(f"failed to listen on {address}: {exc}") from exc
    if port == 0:
        raise OSError(f"failed to listen on {address}")
    server.start()
    return server, port


def serve_manager(manager: Manager, address: str) -> tuple[grpc.Server, int]:
    """Start serving the manager; return the running server and the bound port."""
    node_id = _unwrap("node_id", str, "")
    handlers = {
        "RegisterNode": _unary(
            lambda info: manager.register_node(info.id, info.addr) or {}, _node_from_wire, _dump
        ),
        "GetSuccessor": _unary(manager.get_successor, node_id, _node_to_wire),
        "Heartbeat": _unary(lambda ident: manager.heartbeat(ident) or {}, node_id, _dump),
        "GetWriteHead": _unary(lambda _: manager.get_write_head(), _load, _node_to_wire),
        "GetReadNode": _unary(lambda _: manager.get_read_node(), _load, _node_to_wire),
    }
    return _start(MANAGER_SERVICE, handlers, address)


def serve_node(node_server: NodeServer, address: str) -> tuple[grpc.Server, int]:
    """Start serving a chain node; return the running server and the bound port."""

    def stream_read(request: StreamReadReq, context: grpc.ServicerContext) -> Iterator[ReadChunk]:
        try:
            yield from node_server.stream_read(request)
        except RpcError as exc:
            context.abort(exc.code, exc.message)

    handlers = {
        "StreamWrite": grpc.stream_unary_rpc_method_handler(
            _guard(node_server.stream_write),
            request_deserializer=partial(messages.decode, StreamWriteReq),
            response_serializer=messages.encode,
        ),
        "StreamRead": grpc.unary_stream_rpc_method_handler(
            stream_read,
            request_deserializer=partial(messages.decode, StreamReadReq),
            response_serializer=messages.encode,
        ),
        "ListFiles": _unary(
            node_server.list_files, _unwrap("folder", str, ""), _wrap("file_names")
        ),
        "QueryVersion": _unary(
            node_server.query_version, partial(messages.decode, VersionQuery), messages.encode
        ),
    }
    return _start(NODE_SERVICE, handlers, address)


class _Client:
    """An insecure channel that closes with the context."""

    service = ""

    def __init__(self, address: str) -> None:
        self.address = address
        self._channel = grpc.insecure_channel(address)

    def _method(self, kind: str, name: str, serializer: Callable, deserializer: Callable) -> Any:
        return getattr(self._channel, kind)(
            f"/{self.service}/{name}", request_serializer=serializer, response_deserializer=deserializer
        )

    def __enter__(self):
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the channel."""
        self._channel.close()


class ManagerClient(_Client):
    """Calls the manager service over an insecure channel."""

    service = MANAGER_SERVICE

    def __init__(self, address: str) -> None:
        super().__init__(address)
        unary = partial(self._method, "unary_unary")
        self._register = unary("RegisterNode", _node_to_wire, _load)
        self._successor = unary("GetSuccessor", _wrap("node_id"), _node_from_wire)
        self._heartbeat = unary("Heartbeat", _wrap("node_id"), _load)
        self._write_head = unary("GetWriteHead", _dump, _node_from_wire)
        self._read_node = unary("GetReadNode", _dump, _node_from_wire)

    def register_node(self, node_id: str, address: str, timeout: Optional[float] = DEFAULT_TIMEOUT) -> None:
        """Register a node with the manager."""
        _invoke(self._register, NodeInfo(id=node_id, addr=address), timeout)

    def get_successor(self, node_id: str, timeout: Optional[float] = DEFAULT_TIMEOUT) -> Optional[NodeInfo]:
        """Return the node after node_id, or None if it is the tail."""
        info = _invoke(self._successor, node_id, timeout)
        return info if info.addr else None

    def heartbeat(self, node_id: str, timeout: Optional[float] = DEFAULT_TIMEOUT) -> None:
        """Report that a node is alive."""
        _invoke(self._heartbeat, node_id, timeout)

    def get_write_head(self, timeout: Optional[float] = DEFAULT_TIMEOUT) -> NodeInfo:
        """Return the head of the chain."""
        return _invoke(self._write_head, {}, timeout)

    def get_read_node(self, timeout: Optional[float] = DEFAULT_TIMEOUT) -> NodeInfo:
        """Return a chain member to read from."""
        return _invoke(self._read_node, {}, timeout)

    def close(self) -> None:
        """Close the channel."""
        super().close()


class NodeClient(_Client):
    """Calls a chain node over an insecure channel."""

    service = NODE_SERVICE

    def __init__(self, address: str) -> None:
        super().__init__(address)
        self._stream_write = self._method(
            "stream_unary", "StreamWrite", messages.encode, partial(messages.decode, WriteAck)
        )
        self._stream_read = self._method(
            "unary_stream", "StreamRead", messages.encode, partial(messages.decode, ReadChunk)
        )
        self._list_files = self._method("unary_unary", "ListFiles", _wrap("folder"), _names_from_wire)
        self._query_version = self._method(
            "unary_unary", "QueryVersion", messages.encode, partial(messages.decode, VersionResponse)
        )

    def stream_write(self, requests: Iterable[StreamWriteReq], timeout: Optional[float] = None) -> WriteAck:
        """Stream a file's pieces to the node and return its acknowledgement."""
        return _invoke(self._stream_write, iter(requests), timeout)

    def stream_read(self, request: StreamReadReq, timeout: Optional[float] = None) -> Iterator[ReadChunk]:
        """Return an iterator over a file's pieces; failures raise while iterating."""
        return self._relay(_invoke(self._stream_read, request, timeout))

    @staticmethod
    def _relay(responses: Any) -> Iterator[ReadChunk]:
        try:
            yield from responses
        except grpc.RpcError as exc:
            raise _to_rpc_error(exc) from exc
        finally:
            responses.cancel()

    def list_files(self, folder: str, timeout: Optional[float] = DEFAULT_TIMEOUT) -> list[str]:
        """List files and sub-folders stored under a folder."""
        return _invoke(self._list_files, folder, timeout)

    def query_version(self, query: VersionQuery, timeout: Optional[float] = DEFAULT_TIMEOUT) -> VersionResponse:
        """Ask the node for the committed version of a file."""
        return _invoke(self._query_version, query, timeout)

    def close(self) -> None:
        """Close the channel."""
        super().close()