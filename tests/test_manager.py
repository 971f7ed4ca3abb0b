import grpc
import pytest

from craqchain.config import NodeInfo
from craqchain.errors import RpcError
from craqchain.manager import Manager


@pytest.fixture
def chain():
    manager = Manager(3)
    manager.register_node("n1", "h1:1")
    manager.register_node("n2", "h2:2")
    manager.register_node("n3", "h3:3")
    return manager


def test_successor_before_finalize_fails():
    manager = Manager(2)
    manager.register_node("n1", "h1:1")
    with pytest.raises(RpcError) as info:
        manager.get_successor("n1")
    assert info.value.code is grpc.StatusCode.FAILED_PRECONDITION


def test_write_head_before_finalize_fails():
    with pytest.raises(RpcError) as info:
        Manager(1).get_write_head()
    assert info.value.code is grpc.StatusCode.FAILED_PRECONDITION


def test_read_node_before_finalize_fails():
    with pytest.raises(RpcError) as info:
        Manager(2).get_read_node()
    assert info.value.code is grpc.StatusCode.FAILED_PRECONDITION


def test_successors_follow_registration_order(chain):
    assert chain.get_successor("n1") == NodeInfo(id="n2", addr="h2:2", is_head=False, is_tail=False)
    assert chain.get_successor("n2") == NodeInfo(id="n3", addr="h3:3", is_head=False, is_tail=True)


def test_tail_and_unknown_have_no_successor(chain):
    assert chain.get_successor("n3") is None
    assert chain.get_successor("ghost") is None


def test_write_head_is_first_node(chain):
    assert chain.get_write_head() == NodeInfo(id="n1", addr="h1:1", is_head=True, is_tail=False)


def test_single_node_chain():
    manager = Manager(1)
    manager.register_node("solo", "h:1")
    assert manager.get_successor("solo") is None
    read = manager.get_read_node()
    assert (read.id, read.is_head, read.is_tail) == ("solo", True, True)


def test_read_node_flags_match_position(chain):
    positions = {"n1": (True, False), "n2": (False, False), "n3": (False, True)}
    seen = set()
    for _ in range(200):
        node = chain.get_read_node()
        assert (node.is_head, node.is_tail) == positions[node.id]
        assert node.addr == {"n1": "h1:1", "n2": "h2:2", "n3": "h3:3"}[node.id]
        seen.add(node.id)
    assert seen == {"n1", "n2", "n3"}


def test_reregistration_keeps_order_and_updates_address():
    manager = Manager(2)
    manager.register_node("n1", "old:1")
    manager.register_node("n1", "new:1")
    manager.register_node("n2", "h2:2")
    head = manager.get_write_head()
    assert (head.id, head.addr) == ("n1", "new:1")
    assert manager.get_successor("n1").id == "n2"


def test_late_registration_extends_order(chain):
    chain.register_node("n4", "h4:4")
    late = chain.get_successor("n3")
    assert (late.id, late.is_tail) == ("n4", False)


def test_heartbeat_marks_alive():
    manager = Manager(2)
    assert manager.is_alive("n9") is False
    manager.heartbeat("n9")
    assert manager.is_alive("n9") is True


def test_registration_marks_alive(chain):
    assert all(chain.is_alive(node_id) for node_id in ("n1", "n2", "n3"))


def test_returned_info_is_a_copy(chain):
    head = chain.get_write_head()
    head.addr = "changed"
    assert chain.get_write_head().addr == "h1:1"