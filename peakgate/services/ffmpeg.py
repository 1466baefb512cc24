"""Process runner for the FFmpeg engine.

Every engine invocation goes through a runner object so the measurement and
render helpers never touch ``subprocess`` directly; tests swap in a fake
engine that returns canned diagnostic text.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Protocol, Sequence, Tuple

from .. import settings
from ..errors import CommandFailed, EngineError, ProcessTimeout, SpawnFailed

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessResult:
    code: int
    stdout: str
    stderr: str
    command: Tuple[str, ...] = ()


class Runner(Protocol):
    def run(
        self,
        cmd: str,
        args: Sequence[str],
        cwd: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
        timeout: float = settings.PROCESS_TIMEOUT_S,
    ) -> ProcessResult: ...


def _kill(proc: subprocess.Popen) -> None:
    # no grace period: SIGKILL the whole group so ffmpeg helpers die too
    try:
        if hasattr(os, "killpg"):
            os.killpg(proc.pid, signal.SIGKILL)
        else:
            proc.kill()
    except ProcessLookupError:
        pass


class SubprocessRunner:
    def run(self, cmd, args, cwd=None, env=None, timeout=settings.PROCESS_TIMEOUT_S) -> ProcessResult:
        command = (str(cmd), *(str(a) for a in args))
        logger.debug("exec %s", " ".join(command))
        try:
            proc = subprocess.Popen(
                command,
                cwd=cwd,
                env=dict(env) if env is not None else None,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
                start_new_session=True,
            )
        except OSError as e:
            raise SpawnFailed(command, e) from e
        try:
            stdout, stderr = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            _kill(proc)
            proc.communicate()
            logger.warning("killed after %ss: %s", timeout, " ".join(command))
            raise ProcessTimeout(command, timeout) from None
        return ProcessResult(proc.returncode, stdout or "", stderr or "", command)


_default_runner = SubprocessRunner()


def default_runner() -> SubprocessRunner:
    return _default_runner


def run(cmd, args, cwd=None, env=None, timeout=settings.PROCESS_TIMEOUT_S) -> ProcessResult:
    return _default_runner.run(cmd, args, cwd=cwd, env=env, timeout=timeout)


def require_ok(result: ProcessResult, context: str, error=CommandFailed) -> ProcessResult:
    """Raise ``error`` unless ``result`` exited with code 0."""
    if result.code != 0:
        raise error(context, result.code, result.stdout, result.stderr)
    return result


def engine_available(binary: str, runner: Optional[Runner] = None) -> bool:
    runner = runner or _default_runner
    try:
        result = runner.run(binary, ["-version"], timeout=settings.PROBE_TIMEOUT_S)
    except EngineError:
        return False
    return result.code == 0


def check_ffmpeg(runner: Optional[Runner] = None) -> bool:
    return engine_available(settings.FFMPEG_BIN, runner)


def check_ffprobe(runner: Optional[Runner] = None) -> bool:
    return engine_available(settings.FFPROBE_BIN, runner)


def ffmpeg_version(runner: Optional[Runner] = None) -> str | None:
    runner = runner or _default_runner
    try:
        proc = runner.run(settings.FFMPEG_BIN, ["-version"], timeout=settings.PROBE_TIMEOUT_S)
    except EngineError:
        return None
    if proc.code == 0 and proc.stdout:
        return proc.stdout.splitlines()[0]
    return None


def probe_duration(path: Path, runner: Optional[Runner] = None) -> float | None:
    runner = runner or _default_runner
    proc = runner.run(
        settings.FFPROBE_BIN,
        [
            "-v",
            "error",
            "-show_entries",
            "format=duration",
            "-of",
            "default=noprint_wrappers=1:nokey=1",
            str(path),
        ],
        timeout=settings.PROBE_TIMEOUT_S * 6,
    )
    if proc.code != 0:
        return None
    try:
        return float(proc.stdout.strip())
    except ValueError:
        return None
