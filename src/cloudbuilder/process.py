# process.py
from __future__ import annotations

import os
import shutil
import subprocess
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .errors import ConfigurationError, JobCancelled, ProcessError
from .template import expand_arguments
from .ui.console import get_console

# Seconds between cancellation checks while a child is running.
POLL_SECONDS = 0.5
# Seconds a child gets to exit after terminate() before it is killed.
TERMINATE_GRACE_SECONDS = 10.0
# Characters of output kept in error messages.
OUTPUT_TAIL_CHARS = 4000


@dataclass
class CommandSpec:
    """
    One external tool invocation.

    command_line is a whitespace-separated template, e.g. "checkout {tag}",
    whose tokens are expanded with placeholders.
    """
    command: str
    command_line: str = ""
    working_dir: str | Path = "."
    placeholders: Dict[str, str] = field(default_factory=dict)
    env: Optional[Dict[str, str]] = None

    @property
    def arguments(self) -> List[str]:
        return expand_arguments(self.command_line, self.placeholders)


@dataclass
class CommandResult:
    """Outcome of running a CommandSpec. exit_code is None unless the process exited non-zero."""
    command: str
    arguments: List[str]
    output: bytes = b""
    error: Optional[Exception] = None
    exit_code: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def text(self) -> str:
        return self.output.decode("utf-8", errors="replace")

    def check(self) -> "CommandResult":
        """Raise the captured error, if any."""
        if self.error is not None:
            raise self.error
        return self


def _terminate(proc: subprocess.Popen) -> None:
    proc.terminate()
    try:
        proc.wait(timeout=TERMINATE_GRACE_SECONDS)
    except subprocess.TimeoutExpired:
        proc.kill()


def _communicate(
    proc: subprocess.Popen,
    cancel: Optional[threading.Event],
) -> Tuple[bytes, bool]:
    """Wait for the child, killing it if cancel gets set. Returns (output, cancelled)."""
    if cancel is None:
        out, _ = proc.communicate()
        return out or b"", False

    while True:
        try:
            out, _ = proc.communicate(timeout=POLL_SECONDS)
            return out or b"", False
        except subprocess.TimeoutExpired:
            if cancel.is_set():
                _terminate(proc)
                out, _ = proc.communicate()
                return out or b"", True


def run(spec: CommandSpec, cancel: Optional[threading.Event] = None) -> CommandResult:
    """
    Run one external command and capture its combined output.

    A missing working directory or an unresolvable command is reported as a
    ConfigurationError without spawning anything. A non-zero exit is returned
    as data (exit_code + ProcessError), never raised here.

    Args:
        spec: Command, argument template, working directory and placeholders
        cancel: Optional event; when set, the running child is terminated

    Returns:
        CommandResult
    """
    console = get_console()
    arguments = spec.arguments
    result = CommandResult(command=spec.command, arguments=arguments)

    working_dir = Path(spec.working_dir)
    if not working_dir.is_dir():
        result.error = ConfigurationError(f"working directory does not exist: {working_dir}")
        return result

    executable = shutil.which(spec.command)
    if executable is None:
        result.error = ConfigurationError(f"command not found: {spec.command}")
        return result

    if cancel is not None and cancel.is_set():
        result.error = JobCancelled(f"cancelled before running {spec.command}")
        return result

    env = None
    if spec.env:
        env = os.environ.copy()
        env.update(spec.env)

    console.print_debug(f"exec: {executable} {spec.command_line} (cwd={working_dir})")

    try:
        proc = subprocess.Popen(
            [executable, *arguments],
            cwd=str(working_dir),
            env=env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
        )
    except OSError as e:
        result.error = ProcessError(
            command=spec.command,
            arguments=arguments,
            exit_code=None,
            message=f"failed to start command ({e})",
        )
        console.print_error("Command failed to start", str(result.error))
        return result

    try:
        output, cancelled = _communicate(proc, cancel)
    except OSError as e:
        _terminate(proc)
        result.error = ProcessError(
            command=spec.command,
            arguments=arguments,
            exit_code=None,
            message=f"failed to wait for command ({e})",
        )
        console.print_error("Command failed", str(result.error))
        return result

    result.output = output
    if cancelled:
        result.error = JobCancelled(f"cancelled while running {spec.command}")
        return result

    if proc.returncode != 0:
        result.exit_code = proc.returncode
        result.error = ProcessError(
            command=spec.command,
            arguments=arguments,
            exit_code=proc.returncode,
            message="command exited with a non-zero status",
            output_tail=result.text[-OUTPUT_TAIL_CHARS:],
        )
        console.print_error("Command failed", f"{spec.command} exited with code {proc.returncode}")

    return result
