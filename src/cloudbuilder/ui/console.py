"""Console output formatting utilities for the build worker."""

from __future__ import annotations

import sys
import threading
from typing import Optional


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug
        # the upload producer prints from its own thread
        self._lock = threading.Lock()

    def _emit(self, text: str, err: bool = False) -> None:
        with self._lock:
            print(text, file=sys.stderr if err else sys.stdout, flush=True)

    def print_header(self, title: str) -> None:
        """Print a section header."""
        self._emit(f"\n{title}\n" + "-" * len(title))

    def print_agent_started(
        self,
        api: str,
        jobs: list[str],
        targets: list[str],
        platforms: list[str],
        poll_interval: int,
    ) -> None:
        """Print worker start information."""
        self._emit(
            "\nWORKER STARTED\n"
            f"API: {api}\n"
            f"Jobs: {', '.join(jobs)}\n"
            f"Targets: {', '.join(targets)}\n"
            f"Platforms: {', '.join(platforms)}\n"
            f"Polling every: {poll_interval}s\n"
        )

    def print_job_claimed(self, job_id: str, description: str) -> None:
        """Print job claim message."""
        self._emit(f"\nJOB CLAIMED: {job_id}\n{description}")

    def print_step(self, name: str) -> None:
        """Print step start message."""
        self._emit(f"STEP: {name}")

    def print_status(self, job_id: str, status: str, message: str = "") -> None:
        """Print a reported job status."""
        line = f"STATUS: {status}"
        if message:
            line += f" ({message.splitlines()[0]})"
        self._emit(line)

    def print_upload(self, original_path: str, size: int) -> None:
        """Print upload start message."""
        self._emit(f"UPLOAD: {original_path} ({size} bytes)")

    def print_execution_complete(
        self,
        status: str,
        duration: Optional[float] = None,
    ) -> None:
        """Print execution completion message."""
        text = f"\nEXECUTION COMPLETE\nStatus: {status}"
        if duration is not None:
            text += f"\nDuration: {duration:.1f}s"
        self._emit(text)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        lines = [f"\nERROR: {title}", message]
        if details:
            lines.extend(f"  {detail}" for detail in details)
        if suggestion:
            lines.append(f"\n{suggestion}")
        self._emit("\n".join(lines), err=True)

    def print_warning(self, message: str) -> None:
        """Print warning message."""
        self._emit(f"WARNING: {message}", err=True)

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            with self._lock:
                traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            self._emit(f"Error: {exc}", err=True)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._emit(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            self._emit(f"[DEBUG] {message}", err=True)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
