import pytest
from pydantic import ValidationError

from sandbox.messages import (
    FatalMessage,
    InitMessage,
    ReadyMessage,
    ResultMessage,
    RunMessage,
    decode,
    encode,
)


def test_encode_is_one_json_line() -> None:
    frame = encode(RunMessage(code="print('a\\nb')\n", cap_bytes=4000, generation=3))

    assert frame.endswith(b"\n")
    assert frame.count(b"\n") == 1


def test_decode_selects_message_type() -> None:
    assert isinstance(decode(b'{"type": "init"}\n'), InitMessage)
    assert isinstance(decode('{"type": "ready"}'), ReadyMessage)

    fatal = decode('{"type": "fatal", "error": "boom"}')
    assert isinstance(fatal, FatalMessage)
    assert fatal.error == "boom"

    result = decode(encode(ResultMessage(ok=False, output="x", truncated=True, generation=2)))
    assert isinstance(result, ResultMessage)
    assert result.ok is False
    assert result.truncated is True
    assert result.generation == 2


def test_decode_rejects_unknown_type() -> None:
    with pytest.raises(ValidationError):
        _ = decode('{"type": "shutdown"}')


def test_decode_rejects_missing_payload() -> None:
    with pytest.raises(ValidationError):
        _ = decode('{"type": "fatal"}')


def test_decode_rejects_garbage() -> None:
    with pytest.raises(ValidationError):
        _ = decode("not json at all")


def test_messages_are_immutable() -> None:
    message = RunMessage(code="print(1)")

    with pytest.raises(ValidationError):
        message.code = "print(2)"


def test_negative_generation_rejected() -> None:
    with pytest.raises(ValidationError):
        _ = ResultMessage(ok=True, output="", generation=-1)
