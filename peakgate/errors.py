"""Error taxonomy for engine orchestration.

Every failure that reaches a caller identifies the stage that broke
(``spawn``, ``timeout``, ``exit`` or ``parse``) so the orchestrator can tell an
environment problem from an engine-output problem.
"""

from __future__ import annotations

from typing import Sequence

TAIL_CHARS = 2000


def tail(text: str | None, limit: int = TAIL_CHARS) -> str:
    """Return the last ``limit`` characters of ``text``."""
    if not text:
        return ""
    return text[-limit:]


def format_command(command: Sequence[str]) -> str:
    return " ".join(str(part) for part in command)


class EngineError(RuntimeError):
    stage = "engine"


class SpawnFailed(EngineError):
    """The engine binary could not be started (missing or not executable)."""

    stage = "spawn"

    def __init__(self, command: Sequence[str], cause: OSError):
        self.command = list(command)
        self.cause = cause
        super().__init__(f"Failed to spawn {format_command(self.command)}: {cause}")


class ProcessTimeout(EngineError):
    stage = "timeout"

    def __init__(self, command: Sequence[str], timeout: float):
        self.command = list(command)
        self.timeout = timeout
        super().__init__(f"Command timed out after {timeout:g}s: {format_command(self.command)}")


class CommandFailed(EngineError):
    """Non-zero exit. Carries truncated stdout/stderr for diagnosis."""

    stage = "exit"

    def __init__(self, context: str, code: int, stdout: str = "", stderr: str = ""):
        self.context = context
        self.code = code
        self.stdout = tail(stdout)
        self.stderr = tail(stderr)
        super().__init__(
            f"{context} failed (code={code}).\n"
            f"STDERR:\n{self.stderr}\n"
            f"STDOUT:\n{self.stdout}"
        )


class MeasurementFailed(CommandFailed):
    pass


class RenderFailed(CommandFailed):
    pass


class ParseFailed(EngineError):
    stage = "parse"

    def __init__(self, label: str, text: str):
        self.label = label
        self.sample = tail(text, 1000)
        super().__init__(f"Failed to parse {label} from ebur128 output. Output sample:\n{self.sample}")


class InvalidBitDepth(ValueError):
    def __init__(self, value):
        self.value = value
        super().__init__(f"Invalid bit depth: {value!r}")
