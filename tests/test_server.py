import grpc
import pytest

from craqchain.errors import RpcError
from craqchain.messages import StreamReadReq, StreamWriteReq, VersionQuery, WriteAck
from craqchain.node import Node
from craqchain.server import NodeServer
from craqchain.storage import CraqStore, StorageError, VersionState


@pytest.fixture
def store():
    with CraqStore(":memory:") as s:
        yield s


@pytest.fixture
def server(store, tmp_path):
    return NodeServer(Node("n1", True, True, store), tmp_path)


class BrokenStore:
    def put(self, seq, file_name, folder, path):
        raise StorageError("broken")

    def mark_clean(self, folder, file_name, seq):
        raise StorageError("broken")

    def get_latest(self, folder, file_name):
        return None

    def list_files_in_folder(self, folder):
        raise StorageError("broken")


def _requests(folder, name, *pieces):
    return [StreamWriteReq(folder=folder, file_name=name, data=p) for p in pieces]


def _broken_stream():
    yield StreamWriteReq(folder="d", file_name="f", data=b"x")
    raise ConnectionError("peer vanished")


def test_stream_write_stores_file(server, store, tmp_path):
    ack = server.stream_write(_requests("docs", "a.txt", b"hello ", b"world"))
    assert ack == WriteAck(file_name="a.txt", folder="docs", seq=1)
    target = tmp_path / "docs" / "a.txt"
    assert target.read_bytes() == b"hello world"
    chunk = store.get_latest("docs", "a.txt")
    assert chunk.path == str(target)
    assert chunk.state is VersionState.CLEAN


def test_stream_write_absolute_folder_stays_under_root(server, store, tmp_path):
    ack = server.stream_write(_requests("/craq/docker", "b", b"x"))
    assert ack == WriteAck(file_name="b", folder="/craq/docker", seq=1)
    target = tmp_path / "craq" / "docker" / "b"
    assert target.read_bytes() == b"x"
    assert store.get_latest("/craq/docker", "b").path == str(target)


def test_stream_write_cannot_escape_root(server, store, tmp_path):
    server.stream_write(_requests("../../outside", "c", b"x"))
    path = store.get_latest("../../outside", "c").path
    assert path.startswith(str(tmp_path))


def test_stream_write_overwrite_increments(server):
    server.stream_write(_requests("d", "f", b"one"))
    ack = server.stream_write(_requests("d", "f", b"two"))
    assert ack.seq == 2


def test_stream_write_empty_stream(server):
    with pytest.raises(RpcError) as info:
        server.stream_write([])
    assert info.value.code == grpc.StatusCode.INVALID_ARGUMENT
    assert str(info.value) == "no data received"


def test_stream_write_broken_stream(server):
    with pytest.raises(RpcError) as info:
        server.stream_write(_broken_stream())
    assert info.value.code == grpc.StatusCode.INTERNAL
    assert str(info.value).startswith("failed to receive chunk")


def test_stream_write_node_failure(tmp_path):
    failing = NodeServer(Node("n1", True, True, BrokenStore()), tmp_path)
    with pytest.raises(RpcError) as info:
        failing.stream_write(_requests("d", "f", b"x"))
    assert info.value.code == grpc.StatusCode.INTERNAL
    assert str(info.value).startswith("HandleWrite failed")


def test_stream_read_round_trip(server):
    content = bytes(range(256)) * 700
    server.stream_write(_requests("d", "big", content[:1000], content[1000:]))
    received = b"".join(c.data for c in server.stream_read(StreamReadReq(folder="d", file_name="big")))
    assert received == content


def test_stream_read_not_found(server):
    with pytest.raises(RpcError) as info:
        server.stream_read(StreamReadReq(folder="d", file_name="none"))
    assert info.value.code == grpc.StatusCode.NOT_FOUND


def test_stream_read_missing_file_on_disk(server, tmp_path):
    server.stream_write(_requests("d", "gone", b"x"))
    (tmp_path / "d" / "gone").unlink()
    with pytest.raises(RpcError) as info:
        server.stream_read(StreamReadReq(folder="d", file_name="gone"))
    assert info.value.code == grpc.StatusCode.INTERNAL


def test_list_files(server):
    server.stream_write(_requests("/craq", "top.txt", b"x"))
    server.stream_write(_requests("/craq/docker", "inner.txt", b"y"))
    assert sorted(server.list_files("/craq")) == ["docker/", "top.txt"]


def test_list_files_failure(tmp_path):
    failing = NodeServer(Node("n1", True, True, BrokenStore()), tmp_path)
    with pytest.raises(RpcError) as info:
        failing.list_files("/craq")
    assert info.value.code == grpc.StatusCode.INTERNAL
    assert str(info.value).startswith("failed to list files")


def test_query_version(server, tmp_path):
    server.stream_write(_requests("d", "v", b"x"))
    resp = server.query_version(VersionQuery(folder="d", file_name="v"))
    assert resp.seq == 1
    assert resp.path == str(tmp_path / "d" / "v")


def test_query_version_on_non_tail(store, tmp_path):
    non_tail = NodeServer(Node("n1", True, False, store), tmp_path)
    with pytest.raises(RpcError) as info:
        non_tail.query_version(VersionQuery(folder="d", file_name="v"))
    assert str(info.value) == "version query must be handled by tail"