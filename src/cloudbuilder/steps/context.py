# steps/context.py
from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Callable, Optional

from ..config import WorkerConfig
from ..errors import JobCancelled, StepFailure
from ..process import CommandResult, CommandSpec, run
from ..ui.console import Console, get_console

Runner = Callable[[CommandSpec, Optional[threading.Event]], CommandResult]


@dataclass
class BuildContext:
    """What a build step needs: settings, a process runner and the cancel event."""
    config: WorkerConfig
    runner: Runner = run
    cancel: Optional[threading.Event] = None
    console: Console = field(default_factory=get_console)

    def check_cancelled(self) -> None:
        if self.cancel is not None and self.cancel.is_set():
            raise JobCancelled("job cancelled")

    def run(self, step: str, spec: CommandSpec) -> CommandResult:
        """
        Run one command as a named step.

        Raises:
            JobCancelled: If the worker is stopping
            StepFailure: If the command could not run or exited non-zero
        """
        self.check_cancelled()
        self.console.print_step(step)
        result = self.runner(spec, self.cancel)
        if isinstance(result.error, JobCancelled):
            raise result.error
        if result.error is not None:
            raise StepFailure(step=step, cause=result.error)
        return result
