# agent/pipeline.py
from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Protocol

from ..archive import create_zip_archive
from ..config import WorkerConfig
from ..errors import InvalidJobError, JobCancelled, ValidationError
from ..model import Job, JobStatus, JobType, is_nil
from ..process import run
from ..steps.context import BuildContext, Runner
from ..ui.console import Console, get_console
from ..upload.client import UploadDescriptor, guess_mime
from .procedures import BuildOutput, select_procedure


class JobSource(Protocol):
    def fetch_unclaimed_job(self, enabled_platforms: Iterable, enabled_jobs: Iterable, enabled_targets: Iterable) -> Optional[Job]: ...

    def update_job_status(self, job_id: str, status: JobStatus, message: str = "") -> None: ...


class FileUploader(Protocol):
    def upload(self, d: UploadDescriptor, cancel: Optional[threading.Event] = None) -> None: ...


@dataclass
class JobOutcome:
    job_id: str
    status: JobStatus
    message: str = ""


class JobGuard:
    """
    Held while a claimed job is in flight.

    Leaving the block reports exactly one terminal status: "completed" on a
    normal exit, "error" with the exception message otherwise. Statuses are
    monotonic; nothing is reported after a terminal one. A failing terminal
    report is logged and does not change the job outcome.
    """

    def __init__(self, source: JobSource, job_id: str, console: Optional[Console] = None):
        self.source = source
        self.job_id = job_id
        self.console = console or get_console()
        self.final_status: Optional[JobStatus] = None
        self.final_message = ""

    def __enter__(self) -> "JobGuard":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if self.final_status is None:
            if exc is None:
                self.finish(JobStatus.COMPLETED, "")
            else:
                self.finish(JobStatus.ERROR, str(exc) or type(exc).__name__)
        return False

    def transition(self, status: JobStatus, message: str = "") -> None:
        """
        Report an intermediate status. Failures propagate and abort the job.
        """
        if status.terminal:
            raise ValueError(f"use finish() for terminal status {status.value}")
        if self.final_status is not None:
            return
        self.source.update_job_status(self.job_id, status, message)
        self.console.print_status(self.job_id, status.value, message)

    def finish(self, status: JobStatus, message: str = "") -> None:
        if self.final_status is not None:
            return
        self.final_status = status
        self.final_message = message

        if not self.job_id:
            self.console.print_error("Failed to update job status", "job is nil")
            return
        try:
            self.source.update_job_status(self.job_id, status, message)
        except Exception as e:
            self.console.print_error(
                "Failed to update job status",
                f"could not report {status.value} for job {self.job_id}: {e}",
            )
            return
        self.console.print_status(self.job_id, status.value, message)


def validate_job(job: Job, config: WorkerConfig) -> None:
    """
    Check a job against the locally enabled sets and its payload.

    Raises:
        ValidationError: On the first problem found
    """
    if job.type not in config.enabled_jobs:
        raise ValidationError(f"invalid job type: {job.type.value}")
    if job.target not in config.enabled_targets:
        raise ValidationError(f"invalid job target: {job.target.value}")
    if job.platform not in config.enabled_platforms:
        raise ValidationError(f"invalid job platform: {job.platform.value}")

    if job.type is JobType.RELEASE:
        if job.release is None:
            raise ValidationError(f"no release metadata, required for job type: {job.type.value}")
        if is_nil(job.release.id):
            raise ValidationError("invalid job release id")
        if job.package is not None:
            raise ValidationError("release job must not carry package metadata")
    else:
        if job.package is None:
            raise ValidationError(f"no package metadata, required for job type: {job.type.value}")
        if is_nil(job.package.id):
            raise ValidationError("invalid job package id")
        if job.release is not None:
            raise ValidationError("package job must not carry release metadata")

    select_procedure(job.type, job.target)


class Pipeline:
    """
    Claims and fully processes one job at a time:
    fetch -> validate -> build procedure -> archive? -> upload -> report.
    """

    def __init__(
        self,
        config: WorkerConfig,
        source: JobSource,
        uploader: FileUploader,
        runner: Runner = run,
        cancel: Optional[threading.Event] = None,
        console: Optional[Console] = None,
    ):
        self.config = config
        self.source = source
        self.uploader = uploader
        self.runner = runner
        self.cancel = cancel
        self.console = console or get_console()

    def process_next(self) -> Optional[JobOutcome]:
        """
        Fetch and process at most one job.

        Returns:
            None when no job is available (nothing is reported), else the outcome

        Raises:
            APIError: If fetching fails (no job claimed, nothing reported)
            BuilderError and others: The job failed; its error status has been reported
        """
        try:
            job = self.source.fetch_unclaimed_job(
                self.config.enabled_platforms,
                self.config.enabled_jobs,
                self.config.enabled_targets,
            )
        except InvalidJobError as e:
            with JobGuard(self.source, e.job_id, self.console):
                raise
        if job is None:
            return None
        return self.process_job(job)

    def process_job(self, job: Job) -> JobOutcome:
        self.console.print_job_claimed(job.id, job.describe())
        with JobGuard(self.source, job.id, self.console) as guard:
            self._run(job, guard)
        return JobOutcome(job.id, guard.final_status or JobStatus.COMPLETED, guard.final_message)

    def _check_cancelled(self) -> None:
        if self.cancel is not None and self.cancel.is_set():
            raise JobCancelled("job cancelled")

    def _run(self, job: Job, guard: JobGuard) -> None:
        validate_job(job, self.config)
        procedure = select_procedure(job.type, job.target)

        guard.transition(JobStatus.PROCESSING)
        ctx = BuildContext(config=self.config, runner=self.runner, cancel=self.cancel, console=self.console)
        output = procedure(ctx, job)

        self._check_cancelled()
        archive: Optional[Path] = None
        try:
            if job.archive_requested:
                archive = self._archive(output)
                descriptors = [self._descriptor(job, archive, archive.name, output.archive_file_type)]
            else:
                descriptors = [
                    self._descriptor(job, output.root / rel, rel, output.file_type)
                    for rel in output.files
                ]

            guard.transition(JobStatus.UPLOADING)
            self._upload(descriptors)
        finally:
            if archive is not None and archive.exists():
                archive.unlink()

    def _archive(self, output: BuildOutput) -> Path:
        target = Path(self.config.output_dir) / output.archive_name
        self.console.print_step(f"archive {len(output.files)} files into {target.name}")
        return create_zip_archive(target, output.root, output.files)

    def _descriptor(self, job: Job, path: Path, original_path: str, file_type: str) -> UploadDescriptor:
        return UploadDescriptor(
            entity_id=job.entity_id,
            file_type=file_type,
            mime_type=guess_mime(path),
            target=job.target.value,
            platform=job.platform.value,
            local_path=path,
            original_path=original_path,
        )

    def _upload(self, descriptors: List[UploadDescriptor]) -> None:
        for d in descriptors:
            self._check_cancelled()
            self.uploader.upload(d, self.cancel)
