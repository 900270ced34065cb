"""
Message envelopes exchanged between the session controller and the sandbox.

Each message is one JSON object per line; ``type`` selects the payload.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Annotated, Literal, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

TBaseMessage = TypeVar("TBaseMessage", bound="BaseMessage")


class BaseMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    def to_json(self) -> str:
        return self.model_dump_json()

    def to_dict(self) -> dict[str, object]:
        return self.model_dump()

    @classmethod
    def from_json(cls: type[TBaseMessage], data: str) -> TBaseMessage:
        return cls.model_validate_json(data)

    @classmethod
    def from_dict(cls: type[TBaseMessage], data: Mapping[str, object]) -> TBaseMessage:
        return cls.model_validate(data)


class InitMessage(BaseMessage):
    type: Literal["init"] = "init"


class ReadyMessage(BaseMessage):
    type: Literal["ready"] = "ready"


class FatalMessage(BaseMessage):
    type: Literal["fatal"] = "fatal"
    error: str


class RunMessage(BaseMessage):
    type: Literal["run"] = "run"
    code: str
    cap_bytes: int = 16000
    generation: int = Field(default=0, ge=0)


class ResultMessage(BaseMessage):
    type: Literal["result"] = "result"
    ok: bool
    output: str
    truncated: bool = False
    generation: int = Field(default=0, ge=0)


Message = Annotated[
    Union[InitMessage, ReadyMessage, FatalMessage, RunMessage, ResultMessage],
    Field(discriminator="type"),
]

_MESSAGE_ADAPTER: TypeAdapter[Message] = TypeAdapter(Message)


def encode(message: BaseMessage) -> bytes:
    """Frame a message as a single UTF-8 JSON line."""
    return (message.to_json() + "\n").encode("utf-8")


def decode(line: bytes | str) -> Message:
    """Parse one frame. Raises pydantic.ValidationError on malformed input."""
    if isinstance(line, bytes):
        line = line.decode("utf-8")
    return _MESSAGE_ADAPTER.validate_json(line.strip())
