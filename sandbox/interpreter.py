"""
Interpreter engines hosted by the sandbox child process.

An engine is any object with ``execute(code) -> ExecutionResult``. The child
loads it by dotted path, so alternative engines can be swapped in through
configuration.
"""

from __future__ import annotations

import io
import sys
import traceback
from dataclasses import dataclass
from typing import Protocol

SOURCE_NAME = "<playground>"


@dataclass
class ExecutionResult:
    ok: bool
    stdout: str
    stderr: str


class Interpreter(Protocol):
    def execute(self, code: str) -> ExecutionResult: ...


class _Accumulator(io.StringIO):
    """StringIO that user code cannot close."""

    def close(self) -> None:
        pass


def _format_user_traceback(exc: BaseException) -> str:
    # Skip the engine's own frame so the trace starts in user code.
    tb = exc.__traceback__.tb_next if exc.__traceback__ is not None else None
    return "".join(traceback.format_exception(type(exc), exc, tb))


class PythonInterpreter:
    """Run snippets with ``exec`` in this process, one fresh namespace per call."""

    def execute(self, code: str) -> ExecutionResult:
        stdout = _Accumulator()
        stderr = _Accumulator()
        old_out, old_err = sys.stdout, sys.stderr
        sys.stdout, sys.stderr = stdout, stderr
        ok = True
        try:
            namespace: dict[str, object] = {"__name__": "__main__"}
            exec(compile(code, SOURCE_NAME, "exec"), namespace, namespace)
        except SystemExit as exc:
            if exc.code not in (None, 0):
                ok = False
                stderr.write(f"SystemExit: {exc.code}\n")
        except BaseException as exc:  # noqa: BLE001
            ok = False
            stderr.write(_format_user_traceback(exc))
        finally:
            sys.stdout, sys.stderr = old_out, old_err
        return ExecutionResult(ok=ok, stdout=stdout.getvalue(), stderr=stderr.getvalue())
