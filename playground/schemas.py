from __future__ import annotations

from collections.abc import Mapping
from typing import Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

TIMEOUT_MS_CHOICES = (1000, 3000, 5000, 10000)
CAP_BYTES_CHOICES = (4000, 16000, 64000)
DEFAULT_TIMEOUT_MS = 3000
DEFAULT_CAP_BYTES = 16000

TBaseSchema = TypeVar("TBaseSchema", bound="BaseSchema")


class BaseSchema(BaseModel):
    def to_json(self) -> str:
        return self.model_dump_json()

    def to_dict(self) -> dict[str, object]:
        return self.model_dump()

    @classmethod
    def from_json(cls: type[TBaseSchema], data: str) -> TBaseSchema:
        return cls.model_validate_json(data)

    @classmethod
    def from_dict(cls: type[TBaseSchema], data: Mapping[str, object]) -> TBaseSchema:
        return cls.model_validate(data)


def check_timeout_ms(value: int) -> int:
    if value not in TIMEOUT_MS_CHOICES:
        raise ValueError(f"timeout_ms must be one of {TIMEOUT_MS_CHOICES}, got {value}")
    return value


def check_cap_bytes(value: int) -> int:
    if value not in CAP_BYTES_CHOICES:
        raise ValueError(f"cap_bytes must be one of {CAP_BYTES_CHOICES}, got {value}")
    return value


class RunOptions(BaseSchema):
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    cap_bytes: int = DEFAULT_CAP_BYTES

    @field_validator("timeout_ms")
    @classmethod
    def timeout_ms_allowed(cls, value: int) -> int:
        return check_timeout_ms(value)

    @field_validator("cap_bytes")
    @classmethod
    def cap_bytes_allowed(cls, value: int) -> int:
        return check_cap_bytes(value)


class RunRequest(BaseSchema):
    model_config = ConfigDict(frozen=True)

    code: str
    timeout_ms: int
    cap_bytes: int
    generation: int = Field(ge=0)


class RunOutcome(BaseSchema):
    kind: Literal["result", "timeout", "cancelled"]
    ok: bool
    output: str
    truncated: bool = False
    generation: int = Field(ge=0)
    runtime_ms: float = 0.0

    @property
    def timed_out(self) -> bool:
        return self.kind == "timeout"

    @property
    def cancelled(self) -> bool:
        return self.kind == "cancelled"

    @classmethod
    def timeout(cls, request: RunRequest, runtime_ms: float) -> RunOutcome:
        return cls(
            kind="timeout",
            ok=False,
            output=f"Timed out after {request.timeout_ms / 1000:g}s",
            generation=request.generation,
            runtime_ms=runtime_ms,
        )

    @classmethod
    def cancelled_by_user(cls, request: RunRequest, runtime_ms: float) -> RunOutcome:
        return cls(
            kind="cancelled",
            ok=False,
            output="Cancelled",
            generation=request.generation,
            runtime_ms=runtime_ms,
        )

    @classmethod
    def worker_error(cls, request: RunRequest, error: str, runtime_ms: float) -> RunOutcome:
        return cls(
            kind="result",
            ok=False,
            output=f"Worker error: {error}",
            generation=request.generation,
            runtime_ms=runtime_ms,
        )
