# agent/procedures.py
from __future__ import annotations

import itertools
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, FrozenSet, List, Sequence, Tuple

from ..archive import list_files_recursive
from ..errors import ValidationError
from ..model import Job, JobType, Platform, Target
from ..steps import git, launchers, signing, unreal
from ..steps.context import BuildContext

# Extra ignore patterns when the project directory itself is the artifact.
PROJECT_TREE_IGNORES = ("/Saved", "/Intermediate", "/DerivedDataCache", "/.vs")


@dataclass
class BuildOutput:
    """Files a build procedure produced, relative to root."""
    root: Path
    files: List[str]
    archive_name: str
    kind: str  # "release" | "package", prefixes the upload file type

    @property
    def archive_file_type(self) -> str:
        return f"{self.kind}-archive"

    @property
    def file_type(self) -> str:
        return f"{self.kind}-file"


Procedure = Callable[[BuildContext, Job], BuildOutput]


def _list(ctx: BuildContext, root: Path, extra_ignores: Sequence[str] = ()) -> List[str]:
    ctx.console.print_step(f"list files in {root}")
    files = list_files_recursive(root, [*ctx.config.ignored_files, *extra_ignores])
    if not files:
        raise FileNotFoundError(f"build produced no files in {root}")
    return files


def _release_archive_name(job: Job) -> str:
    release = job.require_release()
    app = release.app_name or str(release.app_id or release.id)
    return f"{app}-{release.version}-{job.target.value}-{job.platform.value}-{job.configuration}.zip"


def _package_archive_name(job: Job) -> str:
    package = job.require_package()
    return f"{package.name}-{package.release_version}-{job.target.value}-{job.platform.value}-{job.configuration}.zip"


# ---------------------------------------------------------------------
# Release procedures
# ---------------------------------------------------------------------

def release_unreal(ctx: BuildContext, job: Job) -> BuildOutput:
    """Client or server release built with the source engine."""
    release = job.require_release()
    project_dir = ctx.config.project_dir

    git.fetch(ctx, project_dir)
    git.checkout_tag(ctx, project_dir, release.code_version)
    unreal.switch_engine_version(ctx, release.code_version)

    staging_dir = unreal.staging_root(project_dir) / release.version
    cmdline, placeholders = unreal.release_command_line(ctx, job, staging_dir)
    unreal.run_automation_tool(
        ctx, f"build {job.target.value} with Unreal Automation Tool",
        ctx.config.code.automation_tool_path, cmdline, placeholders,
    )

    files = _list(ctx, staging_dir)
    if job.target is Target.CLIENT and job.platform is Platform.WINDOWS:
        signing.sign_files(ctx, staging_dir, files)

    return BuildOutput(root=staging_dir, files=files, archive_name=_release_archive_name(job), kind="release")


def release_editor(ctx: BuildContext, job: Job) -> BuildOutput:
    """Editor (SDK) release built with the marketplace engine."""
    release = job.require_release()
    project_dir = Path(ctx.config.project_dir)

    git.fetch(ctx, project_dir)
    git.checkout_tag(ctx, project_dir, release.code_version)
    unreal.switch_engine_version(ctx, ctx.config.marketplace.version)

    placeholders = {
        "project": str(unreal.project_descriptor(project_dir, ctx.config.project_name)),
        "platform": job.platform.value,
    }
    unreal.run_automation_tool(
        ctx, "build editor with Unreal Automation Tool",
        ctx.config.marketplace.automation_tool_path, unreal.RELEASE_EDITOR_CMDLINE, placeholders,
    )

    files = _list(ctx, project_dir, PROJECT_TREE_IGNORES)
    return BuildOutput(root=project_dir, files=files, archive_name=_release_archive_name(job), kind="release")


def release_launcher(ctx: BuildContext, job: Job) -> BuildOutput:
    out_dir = launchers.build_client_launcher(ctx, job.platform)
    files = _list(ctx, out_dir)
    if job.platform is Platform.WINDOWS:
        signing.sign_files(ctx, out_dir, files)
    return BuildOutput(root=out_dir, files=files, archive_name=_release_archive_name(job), kind="release")


def release_server_launcher(ctx: BuildContext, job: Job) -> BuildOutput:
    out_dir = launchers.build_server_launcher(ctx, job.platform)
    files = _list(ctx, out_dir)
    return BuildOutput(root=out_dir, files=files, archive_name=_release_archive_name(job), kind="release")


def release_pixel_streaming_launcher(ctx: BuildContext, job: Job) -> BuildOutput:
    out_dir = launchers.build_pixel_streaming_launcher(ctx)
    files = _list(ctx, out_dir)
    return BuildOutput(root=out_dir, files=files, archive_name=_release_archive_name(job), kind="release")


# ---------------------------------------------------------------------
# Package procedures
# ---------------------------------------------------------------------

def package_unreal(ctx: BuildContext, job: Job) -> BuildOutput:
    """UGC package (DLC) cooked against an existing release, client or server."""
    package = job.require_package()
    project_dir = ctx.config.project_dir

    git.fetch(ctx, project_dir)
    git.checkout_branch(ctx, project_dir, ctx.config.branch_for(job.configuration))
    git.pull(ctx, project_dir)
    unreal.switch_engine_version(ctx, package.release_version)

    staging_dir = unreal.staging_root(project_dir) / "Packages" / package.name / package.release_version
    cmdline, placeholders = unreal.package_command_line(ctx, job, staging_dir)
    unreal.run_automation_tool(
        ctx, f"cook {job.target.value} package with Unreal Automation Tool",
        ctx.config.code.automation_tool_path, cmdline, placeholders,
    )

    files = _list(ctx, staging_dir)
    return BuildOutput(root=staging_dir, files=files, archive_name=_package_archive_name(job), kind="package")


# ---------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------

PROCEDURES: Dict[Tuple[JobType, Target], Procedure] = {
    (JobType.RELEASE, Target.CLIENT): release_unreal,
    (JobType.RELEASE, Target.SERVER): release_unreal,
    (JobType.RELEASE, Target.EDITOR): release_editor,
    (JobType.RELEASE, Target.LAUNCHER): release_launcher,
    (JobType.RELEASE, Target.SERVER_LAUNCHER): release_server_launcher,
    (JobType.RELEASE, Target.PIXEL_STREAMING_LAUNCHER): release_pixel_streaming_launcher,
    (JobType.PACKAGE, Target.CLIENT): package_unreal,
    (JobType.PACKAGE, Target.SERVER): package_unreal,
}

UNSUPPORTED: FrozenSet[Tuple[JobType, Target]] = frozenset({
    (JobType.PACKAGE, Target.EDITOR),
    (JobType.PACKAGE, Target.LAUNCHER),
    (JobType.PACKAGE, Target.SERVER_LAUNCHER),
    (JobType.PACKAGE, Target.PIXEL_STREAMING_LAUNCHER),
})


def _check_dispatch_table() -> None:
    for combo in itertools.product(JobType, Target):
        handled = combo in PROCEDURES
        rejected = combo in UNSUPPORTED
        if handled == rejected:
            raise RuntimeError(
                f"dispatch table must either handle or reject {combo[0].value}/{combo[1].value}"
            )


_check_dispatch_table()


def select_procedure(job_type: JobType, target: Target) -> Procedure:
    """
    Build procedure for a (type, target) pair.

    Raises:
        ValidationError: If the combination is not supported
    """
    if (job_type, target) in UNSUPPORTED:
        raise ValidationError(f"invalid job target {target.value} for type {job_type.value}")
    return PROCEDURES[(job_type, target)]
