import pytest

from craqchain.messages import (
    ReadChunk,
    StreamReadReq,
    StreamWriteReq,
    VersionQuery,
    VersionResponse,
    WriteAck,
    decode,
    encode,
)


@pytest.mark.parametrize(
    "message",
    [
        StreamWriteReq(folder="/craq/docs", seq=7, file_name="a.txt", path="/tmp/a", data=b"\x00\xffabc"),
        WriteAck(file_name="a.txt", folder="/craq", seq=3),
        VersionQuery(folder="/craq", file_name="a.txt"),
        VersionResponse(folder="/craq", seq=2**64 - 1, file_name="a.txt", path="/tmp/x"),
        StreamReadReq(folder="f", file_name="n"),
        ReadChunk(data=bytes(range(256))),
        ReadChunk(),
        StreamWriteReq(),
    ],
)
def test_round_trip(message):
    assert decode(type(message), encode(message)) == message


def test_encode_is_compact_sorted_json():
    assert encode(VersionQuery(folder="f", file_name="n")) == b'{"file_name":"n","folder":"f"}'


def test_bytes_are_base64():
    assert encode(ReadChunk(data=b"hi")) == b'{"data":"aGk="}'


def test_missing_fields_take_defaults():
    assert decode(StreamWriteReq, b'{"folder":"x"}') == StreamWriteReq(folder="x")


def test_null_fields_take_defaults():
    assert decode(WriteAck, b'{"seq":null,"folder":"d"}') == WriteAck(folder="d")


def test_unknown_fields_ignored():
    assert decode(StreamReadReq, b'{"folder":"a","extra":1}') == StreamReadReq(folder="a")


@pytest.mark.parametrize(
    "payload",
    [
        b"not json",
        b"[1, 2]",
        b'{"seq": "one"}',
        b'{"seq": true}',
        b'{"seq": -1}',
        b'{"folder": 5}',
        b'{"data": 5}',
        b'{"data": "!!!"}',
    ],
)
def test_malformed_payloads(payload):
    cls = StreamWriteReq
    with pytest.raises(ValueError):
        decode(cls, payload)


def test_seq_above_uint64_rejected():
    with pytest.raises(ValueError):
        decode(WriteAck, b'{"seq": 18446744073709551616}')


def test_encode_rejects_non_message():
    with pytest.raises(TypeError):
        encode({"folder": "x"})


def test_encode_rejects_wrong_field_type():
    with pytest.raises(TypeError):
        encode(WriteAck(seq="1"))


def test_decode_rejects_unknown_class():
    with pytest.raises(TypeError):
        decode(dict, b"{}")