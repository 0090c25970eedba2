# steps/unreal.py
from __future__ import annotations

from pathlib import Path
from typing import Dict, Tuple

from ..errors import ConfigurationError
from ..model import Job, Target
from ..process import CommandSpec
from .context import BuildContext

# ---------------------------------------------------------------------
# Unreal Automation Tool command lines. These are data: the runner
# splits them on whitespace and expands {placeholders} per argument.
# ---------------------------------------------------------------------

RELEASE_CLIENT_CMDLINE = (
    "BuildCookRun -project={project} -noP4 -unrealexe={unrealexe}"
    " -clientconfig={configuration} -platform={platform}"
    " -ini:Game:[/Script/UnrealEd.ProjectPackagingSettings]:BlueprintNativizationMethod=Disabled"
    " -build -cook -unversionedcookedcontent -SkipCookingEditorContent -map={maps}"
    " -pak -compressed -package -createreleaseversion={releaseVersion}"
    " -stage -stagingdirectory={stagingDirectory}"
    " -VeryVerbose -NoCodeSign -BuildMachine -AllowCommandletRendering -utf8output -debuginfo -debug"
)

RELEASE_SERVER_CMDLINE = (
    "BuildCookRun -project={project} -noP4 -unrealexe={unrealexe}"
    " -server -noclient -serverconfig={configuration} -serverplatform={platform}"
    " -build -cook -unversionedcookedcontent -SkipCookingEditorContent -map={maps}"
    " -pak -compressed -package -createreleaseversion={releaseVersion}"
    " -stage -stagingdirectory={stagingDirectory}"
    " -NoCodeSign -BuildMachine -utf8output"
)

RELEASE_EDITOR_CMDLINE = (
    "BuildEditor -project={project} -platform={platform} -notools -BuildMachine -utf8output"
)

PACKAGE_CLIENT_CMDLINE = (
    "BuildCookRun -project={project} -noP4 -unrealexe={unrealexe}"
    " -clientconfig={configuration} -platform={platform}"
    " -cook -unversionedcookedcontent -SkipCookingEditorContent"
    " -DLCName={packageName} -basedonreleaseversion={releaseVersion} -DLCIncludeEngineContent"
    " -pak -compressed -stage -stagingdirectory={stagingDirectory}"
    " -NoCodeSign -BuildMachine -utf8output"
)

PACKAGE_SERVER_CMDLINE = (
    "BuildCookRun -project={project} -noP4 -unrealexe={unrealexe}"
    " -server -noclient -serverconfig={configuration} -serverplatform={platform}"
    " -cook -unversionedcookedcontent -SkipCookingEditorContent"
    " -DLCName={packageName} -basedonreleaseversion={releaseVersion} -DLCIncludeEngineContent"
    " -pak -compressed -stage -stagingdirectory={stagingDirectory}"
    " -NoCodeSign -BuildMachine -utf8output"
)

# Appended to client releases built in the Shipping configuration.
SHIPPING_CLIENT_EXTRA = " -CrashReporter -distribution -prereqs"


def staging_root(project_dir: str | Path) -> Path:
    return Path(project_dir) / "Saved" / "StagedBuilds"


def project_descriptor(project_dir: str | Path, project_name: str) -> Path:
    return Path(project_dir) / f"{project_name}.uproject"


def switch_engine_version(ctx: BuildContext, version: str) -> None:
    """Associate the project with an engine version through Unreal Version Selector."""
    selector = ctx.config.version_selector_path
    if not selector:
        raise ConfigurationError("failed to find engine version selector tool")

    descriptor = project_descriptor(ctx.config.project_dir, ctx.config.project_name)
    ctx.run(
        f"switch engine version to {version}",
        CommandSpec(
            command=selector,
            command_line="-switchversionsilent {project} {version}",
            working_dir=ctx.config.project_dir,
            placeholders={"project": str(descriptor), "version": version},
        ),
    )


def run_automation_tool(
    ctx: BuildContext,
    step: str,
    tool_path: str,
    command_line: str,
    placeholders: Dict[str, str],
) -> None:
    if not tool_path:
        raise ConfigurationError("Unreal Automation Tool path is not configured")
    ctx.run(
        step,
        CommandSpec(
            command=tool_path,
            command_line=command_line,
            working_dir=ctx.config.project_dir,
            placeholders=placeholders,
        ),
    )


def release_command_line(ctx: BuildContext, job: Job, staging_dir: Path) -> Tuple[str, Dict[str, str]]:
    """UAT command line and placeholders for a client or server release."""
    release = job.require_release()

    if job.target is Target.SERVER:
        cmdline = RELEASE_SERVER_CMDLINE
    else:
        cmdline = RELEASE_CLIENT_CMDLINE
        if job.configuration == "Shipping":
            cmdline += SHIPPING_CLIENT_EXTRA

    placeholders = {
        "project": str(project_descriptor(ctx.config.project_dir, ctx.config.project_name)),
        "unrealexe": ctx.config.code.editor_path,
        "configuration": job.configuration,
        "platform": job.platform.value,
        "maps": release.options.maps,
        "releaseVersion": release.version,
        "stagingDirectory": str(staging_dir),
    }
    return cmdline, placeholders


def package_command_line(ctx: BuildContext, job: Job, staging_dir: Path) -> Tuple[str, Dict[str, str]]:
    """UAT command line and placeholders for a UGC (DLC) package build."""
    package = job.require_package()

    cmdline = PACKAGE_SERVER_CMDLINE if job.target is Target.SERVER else PACKAGE_CLIENT_CMDLINE
    placeholders = {
        "project": str(project_descriptor(ctx.config.project_dir, ctx.config.project_name)),
        "unrealexe": ctx.config.code.editor_path,
        "configuration": job.configuration,
        "platform": job.platform.value,
        "packageName": package.name,
        "releaseVersion": package.release_version,
        "stagingDirectory": str(staging_dir),
    }
    return cmdline, placeholders
