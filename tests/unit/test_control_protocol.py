# pylint: disable=missing-module-docstring,missing-function-docstring

import json

from protocol.control import (
    InboundKind,
    classify_text,
    decode_server_text,
    echo_text,
    encode_control,
)


def test_bare_control_words():
    assert classify_text("done").kind == InboundKind.DONE
    assert classify_text(" READY \n").kind == InboundKind.READY


def test_json_control_messages():
    assert classify_text('{"type": "done"}').kind == InboundKind.DONE
    assert classify_text('{"type": "ready"}').kind == InboundKind.READY


def test_other_text_is_diagnostic():
    inbound = classify_text("hello server")
    assert inbound.kind == InboundKind.OTHER
    assert echo_text(inbound.text) == "Echo: hello server"


def test_malformed_json_is_not_an_error():
    assert classify_text("{not json").kind == InboundKind.OTHER
    assert classify_text("[1, 2]").kind == InboundKind.OTHER


def test_encode_control_fields():
    assert json.loads(encode_control("error", stage="synthesis", reason="x")) == {
        "type": "error",
        "stage": "synthesis",
        "reason": "x",
    }


def test_decode_server_messages():
    assert decode_server_text("done").ends_reply
    assert decode_server_text('{"type": "no_audio"}').ends_reply
    assert decode_server_text('{"type": "error", "stage": "reply"}').fields == {"stage": "reply"}

    reply = decode_server_text('{"type": "reply", "text": "hi"}')
    assert reply.msg_type == "reply"
    assert not reply.ends_reply


def test_decode_non_json_text():
    msg = decode_server_text("Echo: ping")
    assert msg.msg_type == "text"
    assert msg.fields == {"text": "Echo: ping"}
    assert not msg.ends_reply
