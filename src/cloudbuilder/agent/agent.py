# agent/agent.py
from __future__ import annotations

import signal
import threading
import time
from typing import Optional

from ..config import Credentials, WorkerConfig
from ..errors import APIError, JobCancelled
from ..ui.console import get_console
from ..upload.client import Uploader
from .api_client import APIClient
from .pipeline import JobOutcome, Pipeline


class Agent:
    """Build worker that polls for jobs and processes them one at a time."""

    def __init__(
        self,
        config: WorkerConfig,
        credentials: Credentials,
        api_client: Optional[APIClient] = None,
        uploader: Optional[Uploader] = None,
    ):
        """
        Initialize agent.

        Args:
            config: Worker configuration
            credentials: API credentials shared by the job and upload clients
            api_client: Optional client override
            uploader: Optional uploader override
        """
        self.config = config
        self.credentials = credentials
        self.api_client = api_client or APIClient(config.api_url, credentials)
        self.uploader = uploader or Uploader(config.api_url, credentials, chunk_size=config.chunk_size)
        self.cancel = threading.Event()

    def install_signal_handlers(self) -> None:
        """Stop gracefully on SIGINT/SIGTERM. Must be called from the main thread."""
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals."""
        console = get_console()
        console.print_info(f"\nReceived signal {signum}, shutting down gracefully...")
        self.cancel.set()

    def load_shared_configuration(self) -> None:
        """Replace the ignore list with the one from the API, keeping the defaults on failure."""
        console = get_console()
        try:
            ignored = self.api_client.fetch_ignored_files()
        except APIError as e:
            console.print_warning(f"using the default ignore list, shared configuration unavailable: {e}")
            return
        self.config = self.config.with_ignored_files(ignored)

    def pipeline(self) -> Pipeline:
        return Pipeline(self.config, self.api_client, self.uploader, cancel=self.cancel)

    def run_once(self) -> Optional[JobOutcome]:
        """
        Process at most one job.

        Returns:
            The outcome, or None when there was nothing to do
        """
        console = get_console()
        start_time = time.time()
        try:
            outcome = self.pipeline().process_next()
        except APIError as e:
            console.print_error(
                "API error",
                str(e),
                suggestion="Check API connectivity and credentials.",
            )
            return None
        except JobCancelled as e:
            console.print_execution_complete(status="cancelled", duration=time.time() - start_time)
            console.print_info(str(e))
            return None
        except Exception as e:
            console.print_execution_complete(status="error", duration=time.time() - start_time)
            console.print_exception(e)
            return None

        if outcome is not None:
            console.print_execution_complete(status=outcome.status.value, duration=time.time() - start_time)
        return outcome

    def run(self, once: bool = False) -> None:
        """Run the agent loop until cancelled (or after one poll with once=True)."""
        console = get_console()
        console.print_agent_started(
            api=self.config.api_url,
            jobs=sorted(j.value for j in self.config.enabled_jobs),
            targets=sorted(t.value for t in self.config.enabled_targets),
            platforms=sorted(p.value for p in self.config.enabled_platforms),
            poll_interval=self.config.poll_interval,
        )
        self.load_shared_configuration()

        while not self.cancel.is_set():
            outcome = self.run_once()
            if once:
                break
            if outcome is None:
                # no job, or the poll failed; wait before the next one
                self.cancel.wait(self.config.poll_interval)

        console.print_info("Worker stopped.")


def run_agent(config: WorkerConfig, credentials: Credentials, once: bool = False) -> None:
    """
    Run the build worker loop.

    Args:
        config: Worker configuration
        credentials: API credentials
        once: Poll a single time and return
    """
    agent = Agent(config, credentials)
    agent.install_signal_handlers()
    agent.run(once=once)
