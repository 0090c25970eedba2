# steps/launchers.py
from __future__ import annotations

from pathlib import Path
from typing import Dict, Tuple

from ..errors import ConfigurationError, ValidationError
from ..model import Platform
from ..process import CommandSpec
from .context import BuildContext

WAILS_PLATFORMS: Dict[Platform, str] = {
    Platform.WINDOWS: "windows/amd64",
    Platform.LINUX: "linux/amd64",
    Platform.MAC: "darwin/universal",
}

GO_TARGETS: Dict[Platform, Tuple[str, str]] = {
    Platform.WINDOWS: ("windows", "amd64"),
    Platform.LINUX: ("linux", "amd64"),
    Platform.MAC: ("darwin", "arm64"),
}

SERVER_LAUNCHER_BINARY = "server-launcher"


def _require_dir(name: str, value: str) -> Path:
    if not value:
        raise ConfigurationError(f"{name} is not configured")
    return Path(value)


def build_client_launcher(ctx: BuildContext, platform: Platform) -> Path:
    """Build the Wails client launcher; returns the directory holding the binaries."""
    if platform not in WAILS_PLATFORMS:
        raise ValidationError(f"launcher builds are not available for platform {platform.value}")
    source = _require_dir("LAUNCHER_SOURCE_DIR", ctx.config.launcher_source_dir)

    ctx.run(
        "wails build",
        CommandSpec(
            command=ctx.config.launcher_wails_path,
            command_line="build -clean -platform {platform}",
            working_dir=source,
            placeholders={"platform": WAILS_PLATFORMS[platform]},
        ),
    )
    return source / "build" / "bin"


def build_server_launcher(ctx: BuildContext, platform: Platform) -> Path:
    """Cross-compile the Go server launcher; returns its output directory."""
    if platform not in GO_TARGETS:
        raise ValidationError(f"server launcher builds are not available for platform {platform.value}")
    source = _require_dir("SERVER_LAUNCHER_SOURCE_DIR", ctx.config.server_launcher_source_dir)

    goos, goarch = GO_TARGETS[platform]
    out_dir = source / "bin" / f"{goos}-{goarch}"
    binary = SERVER_LAUNCHER_BINARY + (".exe" if goos == "windows" else "")

    ctx.run(
        "go build",
        CommandSpec(
            command=ctx.config.go_path,
            command_line="build -trimpath -o {output} .",
            working_dir=source,
            placeholders={"output": str(out_dir / binary)},
            env={"GOOS": goos, "GOARCH": goarch, "CGO_ENABLED": "0"},
        ),
    )
    return out_dir


def build_pixel_streaming_launcher(ctx: BuildContext) -> Path:
    """Install dependencies and build the Pixel Streaming launcher; returns its dist directory."""
    source = _require_dir(
        "PIXEL_STREAMING_LAUNCHER_SOURCE_DIR", ctx.config.pixel_streaming_launcher_source_dir
    )
    npm = ctx.config.npm_path
    ctx.run("npm ci", CommandSpec(command=npm, command_line="ci", working_dir=source))
    ctx.run("npm run build", CommandSpec(command=npm, command_line="run build", working_dir=source))
    return source / "dist"
