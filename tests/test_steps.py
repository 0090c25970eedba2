import itertools
import threading
import uuid
from pathlib import Path

import pytest

from cloudbuilder.agent.procedures import PROCEDURES, UNSUPPORTED, select_procedure
from cloudbuilder.config import EngineSettings
from cloudbuilder.errors import ConfigurationError, JobCancelled, ProcessError, StepFailure, ValidationError
from cloudbuilder.model import Job, JobType, Package, Platform, Release, ReleaseOptions, Target
from cloudbuilder.process import CommandResult, CommandSpec
from cloudbuilder.steps import launchers, signing, unreal
from cloudbuilder.steps.context import BuildContext


class RecordingRunner:
    def __init__(self, error=None):
        self.specs = []
        self.error = error

    def __call__(self, spec, cancel=None):
        self.specs.append(spec)
        return CommandResult(command=spec.command, arguments=spec.arguments, error=self.error)


def context(config, runner=None, cancel=None):
    return BuildContext(config=config, runner=runner or RecordingRunner(), cancel=cancel)


def test_every_combination_is_dispatched_or_rejected():
    for combo in itertools.product(JobType, Target):
        assert (combo in PROCEDURES) != (combo in UNSUPPORTED)


@pytest.mark.parametrize("target", [Target.EDITOR, Target.LAUNCHER, Target.SERVER_LAUNCHER, Target.PIXEL_STREAMING_LAUNCHER])
def test_packages_only_build_unreal_targets(target):
    with pytest.raises(ValidationError):
        select_procedure(JobType.PACKAGE, target)


def test_context_wraps_failures(make_config):
    error = ProcessError("git", ["fetch"], 128, "command exited with a non-zero status")
    ctx = context(make_config(), RecordingRunner(error))

    with pytest.raises(StepFailure) as exc:
        ctx.run("git fetch", CommandSpec("git", "fetch"))
    assert exc.value.exit_code == 128
    assert exc.value.cause is error
    assert str(exc.value).startswith("git fetch failed:")


def test_context_passes_cancellation_through(make_config):
    ctx = context(make_config(), RecordingRunner(JobCancelled("stop")))
    with pytest.raises(JobCancelled):
        ctx.run("git fetch", CommandSpec("git", "fetch"))


def test_context_checks_cancel_before_running(make_config):
    cancel = threading.Event()
    cancel.set()
    runner = RecordingRunner()
    with pytest.raises(JobCancelled):
        context(make_config(), runner, cancel).run("git fetch", CommandSpec("git", "fetch"))
    assert runner.specs == []


def _release_job(configuration="Development", target=Target.CLIENT):
    return Job(
        id="j", type=JobType.RELEASE, target=target, platform=Platform.WINDOWS, configuration=configuration,
        release=Release(id=uuid.uuid4(), version="2.0.0", code_version="v2.0.0", options=ReleaseOptions(maps="/Game/Main")),
    )


def test_shipping_client_adds_distribution_flags(make_config, tmp_path):
    ctx = context(make_config(code=EngineSettings(editor_path="UE")))

    cmdline, _ = unreal.release_command_line(ctx, _release_job("Shipping"), tmp_path)
    assert cmdline.endswith(unreal.SHIPPING_CLIENT_EXTRA)

    cmdline, _ = unreal.release_command_line(ctx, _release_job("Development"), tmp_path)
    assert "-distribution" not in cmdline


def test_server_release_command_line(make_config, tmp_path):
    ctx = context(make_config(code=EngineSettings(editor_path="UE")))
    cmdline, placeholders = unreal.release_command_line(ctx, _release_job(target=Target.SERVER), tmp_path)

    assert "-noclient" in cmdline
    assert placeholders["maps"] == "/Game/Main"
    assert placeholders["project"].endswith("Metaverse.uproject")


def test_package_command_line(make_config, tmp_path):
    ctx = context(make_config())
    job = Job(
        id="j", type=JobType.PACKAGE, target=Target.CLIENT, platform=Platform.LINUX,
        package=Package(id=uuid.uuid4(), name="Island", release_version="2.0.0"),
    )
    cmdline, placeholders = unreal.package_command_line(ctx, job, tmp_path)

    assert "-DLCName={packageName}" in cmdline
    assert placeholders["packageName"] == "Island"
    assert placeholders["releaseVersion"] == "2.0.0"


def test_command_lines_require_job_metadata(make_config, tmp_path):
    ctx = context(make_config(code=EngineSettings(editor_path="UE")))
    release = Job(id="j", type=JobType.RELEASE, target=Target.CLIENT, platform=Platform.WINDOWS)
    package = Job(id="j", type=JobType.PACKAGE, target=Target.CLIENT, platform=Platform.WINDOWS)

    with pytest.raises(ValidationError, match="no release metadata"):
        unreal.release_command_line(ctx, release, tmp_path)
    with pytest.raises(ValidationError, match="no package metadata"):
        unreal.package_command_line(ctx, package, tmp_path)


@pytest.mark.parametrize("job_type, target", [
    (JobType.RELEASE, Target.CLIENT),
    (JobType.RELEASE, Target.EDITOR),
    (JobType.PACKAGE, Target.SERVER),
])
def test_procedures_reject_missing_metadata_before_running(make_config, job_type, target):
    runner = RecordingRunner()
    job = Job(id="j", type=job_type, target=target, platform=Platform.WINDOWS)

    with pytest.raises(ValidationError):
        select_procedure(job_type, target)(context(make_config(), runner), job)
    assert runner.specs == []


def test_switch_engine_version_requires_selector(make_config):
    with pytest.raises(ConfigurationError):
        unreal.switch_engine_version(context(make_config()), "5.3")


def test_switch_engine_version(make_config):
    runner = RecordingRunner()
    cfg = make_config(code=EngineSettings(version_selector_path="UVS"))
    unreal.switch_engine_version(context(cfg, runner), "5.3")

    [spec] = runner.specs
    assert spec.command == "UVS"
    assert spec.arguments[0] == "-switchversionsilent"
    assert spec.arguments[-1] == "5.3"


def test_client_launcher(make_config, tmp_path):
    runner = RecordingRunner()
    cfg = make_config(launcher_wails_path="wails", launcher_source_dir=str(tmp_path))

    out = launchers.build_client_launcher(context(cfg, runner), Platform.MAC)

    assert out == tmp_path / "build" / "bin"
    assert runner.specs[0].arguments == ["build", "-clean", "-platform", "darwin/universal"]


def test_launcher_rejects_mobile_platforms(make_config, tmp_path):
    cfg = make_config(launcher_wails_path="wails", launcher_source_dir=str(tmp_path))
    with pytest.raises(ValidationError):
        launchers.build_client_launcher(context(cfg), Platform.ANDROID)


def test_server_launcher_cross_compiles(make_config, tmp_path):
    runner = RecordingRunner()
    cfg = make_config(server_launcher_source_dir=str(tmp_path))

    out = launchers.build_server_launcher(context(cfg, runner), Platform.WINDOWS)

    assert out == tmp_path / "bin" / "windows-amd64"
    [spec] = runner.specs
    assert spec.env == {"GOOS": "windows", "GOARCH": "amd64", "CGO_ENABLED": "0"}
    assert Path(spec.arguments[3]).name == "server-launcher.exe"


def test_launcher_source_dir_required(make_config):
    with pytest.raises(ConfigurationError, match="PIXEL_STREAMING_LAUNCHER_SOURCE_DIR"):
        launchers.build_pixel_streaming_launcher(context(make_config()))


def test_pixel_streaming_launcher(make_config, tmp_path):
    runner = RecordingRunner()
    cfg = make_config(pixel_streaming_launcher_source_dir=str(tmp_path))

    assert launchers.build_pixel_streaming_launcher(context(cfg, runner)) == tmp_path / "dist"
    assert [s.arguments for s in runner.specs] == [["ci"], ["run", "build"]]


def test_signing_skipped_when_not_configured(make_config, tmp_path, capsys):
    runner = RecordingRunner()
    assert signing.sign_files(context(make_config(), runner), tmp_path, ["a.exe"]) == 0
    assert runner.specs == []
    assert "code signing is not configured" in capsys.readouterr().err
