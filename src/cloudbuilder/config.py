# config.py
from __future__ import annotations

import os
import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Dict, FrozenSet, Mapping, Optional, Tuple, Type, TypeVar

from .errors import ConfigurationError
from .model import JobType, Platform, Target

E = TypeVar("E", bound=Enum)

DEFAULT_POLL_INTERVAL = 10
DEFAULT_CHUNK_SIZE = 100 * 1024 * 1024  # 100 MiB
DEFAULT_CREDENTIALS_PATH = ".credentials"

# Used until (or unless) the API supplies its own list.
DEFAULT_IGNORED_FILES: Tuple[str, ...] = (
    ".git",
    ".gitignore",
    ".gitattributes",
    ".gitmodules",
    ".gitkeep",
    ".gitlab-ci.yml",
    ".gitlab-ci",
    "/.git",
    ".DS_Store",
    ".idea",
    ".vscode",
    "*.sln",
    "*.suo",
    "*.user",
    "/.idea",
    "Manifest_DebugFiles_Linux.xml",
    "Manifest_NonUFSFiles_Linux.xml",
    "Manifest_UFSFiles.xml",
    "Manifest_DebugFiles_Win64.xml",
    "Manifest_NonUFSFiles_Win64.xml",
    "Manifest_UFSFiles_Win64.xml",
    "MetaverseServer.debug",
    "MetaverseServer.sym",
    "MetaverseServer.pdb",
    "Engine/Extras/GPUDumpViewer/OpenGPUDumpViewer.bat",
    "Engine/Extras/GPUDumpViewer/OpenGPUDumpViewer.sh",
    "Engine/Extras/GPUDumpViewer/GPUDumpViewer.html",
    "Samples/PixelStreaming",
)

DEFAULT_BRANCH_MAPPING: Dict[str, str] = {
    "Debug": "development",
    "DebugGame": "development",
    "Development": "development",
    "Test": "development",
    "Shipping": "development",
}


@dataclass(frozen=True)
class EngineSettings:
    """One Unreal Engine installation (source build or marketplace)."""
    automation_tool_path: str = ""
    version_selector_path: str = ""
    editor_path: str = ""
    version: str = ""


@dataclass(frozen=True)
class CodeSigningSettings:
    tool_path: str = ""
    certificate_path: str = ""
    certificate_password: str = ""

    @property
    def enabled(self) -> bool:
        return bool(self.tool_path and self.certificate_path and self.certificate_password)


@dataclass(frozen=True)
class WorkerConfig:
    """
    Process-wide settings. Built once at startup and never mutated;
    derive a new value with dataclasses.replace() when needed.
    """
    api_url: str
    enabled_jobs: FrozenSet[JobType]
    enabled_targets: FrozenSet[Target]
    enabled_platforms: FrozenSet[Platform]

    project_dir: str = ""
    project_name: str = ""
    code: EngineSettings = field(default_factory=EngineSettings)
    marketplace: EngineSettings = field(default_factory=EngineSettings)

    launcher_wails_path: str = ""
    launcher_source_dir: str = ""
    server_launcher_source_dir: str = ""
    go_path: str = "go"
    pixel_streaming_launcher_source_dir: str = ""
    npm_path: str = "npm"
    git_path: str = "git"

    code_signing: CodeSigningSettings = field(default_factory=CodeSigningSettings)

    branch_mapping: Mapping[str, str] = field(default_factory=lambda: dict(DEFAULT_BRANCH_MAPPING))
    ignored_files: Tuple[str, ...] = DEFAULT_IGNORED_FILES
    poll_interval: int = DEFAULT_POLL_INTERVAL
    chunk_size: int = DEFAULT_CHUNK_SIZE
    output_dir: str = "."

    @property
    def version_selector_path(self) -> str:
        """Source build selector first, marketplace selector as fallback."""
        return self.code.version_selector_path or self.marketplace.version_selector_path

    def branch_for(self, configuration: str) -> str:
        return self.branch_mapping.get(configuration, "development")

    def with_ignored_files(self, ignored_files) -> "WorkerConfig":
        return replace(self, ignored_files=tuple(ignored_files))

    def enables(self, job_type: JobType, target: Target | None = None) -> bool:
        if job_type not in self.enabled_jobs:
            return False
        return target is None or target in self.enabled_targets


class Credentials:
    """
    Login data plus the live API token.

    The token is the only piece of runtime-mutable configuration; it is
    replaced on every login and read by the API and upload clients.
    """

    def __init__(self, email: str, password: str, token: str = ""):
        self.email = email
        self.password = password
        self._token = token
        self._lock = threading.Lock()

    @property
    def token(self) -> str:
        with self._lock:
            return self._token

    @token.setter
    def token(self, value: str) -> None:
        with self._lock:
            self._token = value

    def authorization(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


def _split(value: str) -> list[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


def _parse_enum_set(name: str, value: str, enum_cls: Type[E]) -> FrozenSet[E]:
    if not value:
        raise ConfigurationError(f"required env {name} is not defined")
    out = set()
    for item in _split(value):
        try:
            out.add(enum_cls(item))
        except ValueError:
            allowed = ", ".join(m.value for m in enum_cls)
            raise ConfigurationError(f"{name}: unknown value {item!r} (allowed: {allowed})") from None
    if not out:
        raise ConfigurationError(f"required env {name} is empty")
    return frozenset(out)


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "")
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value


def load_config(env: Optional[Mapping[str, str]] = None) -> WorkerConfig:
    """
    Read WorkerConfig from environment variables.

    Tool paths are only required when an enabled job/target needs them.

    Raises:
        ConfigurationError: If a required setting is missing or invalid
    """
    env = os.environ if env is None else env

    api_url = env.get("API_URL", "").rstrip("/")
    if not api_url:
        raise ConfigurationError("required env API_URL is not defined")

    jobs = _parse_enum_set("ENABLED_JOBS", env.get("ENABLED_JOBS", ""), JobType)
    targets = _parse_enum_set("ENABLED_TARGETS", env.get("ENABLED_TARGETS", ""), Target)
    platforms = _parse_enum_set("ENABLED_PLATFORMS", env.get("ENABLED_PLATFORMS", ""), Platform)

    cfg = WorkerConfig(
        api_url=api_url,
        enabled_jobs=jobs,
        enabled_targets=targets,
        enabled_platforms=platforms,
        project_dir=env.get("UNREAL_PROJECT_DIR", ""),
        project_name=env.get("UNREAL_PROJECT_NAME", ""),
        code=EngineSettings(
            automation_tool_path=env.get("UNREAL_CODE_AUTOMATION_TOOL_PATH", ""),
            version_selector_path=env.get("UNREAL_CODE_VERSION_SELECTOR_PATH", ""),
            editor_path=env.get("UNREAL_CODE_EDITOR_PATH", ""),
        ),
        marketplace=EngineSettings(
            automation_tool_path=env.get("UNREAL_MARKETPLACE_AUTOMATION_TOOL_PATH", ""),
            version_selector_path=env.get("UNREAL_MARKETPLACE_VERSION_SELECTOR_PATH", ""),
            editor_path=env.get("UNREAL_MARKETPLACE_EDITOR_PATH", ""),
            version=env.get("UNREAL_MARKETPLACE_VERSION", ""),
        ),
        launcher_wails_path=env.get("LAUNCHER_WAILS_PATH", ""),
        launcher_source_dir=env.get("LAUNCHER_SOURCE_DIR", ""),
        server_launcher_source_dir=env.get("SERVER_LAUNCHER_SOURCE_DIR", ""),
        go_path=env.get("GO_PATH", "") or "go",
        pixel_streaming_launcher_source_dir=env.get("PIXEL_STREAMING_LAUNCHER_SOURCE_DIR", ""),
        npm_path=env.get("NPM_PATH", "") or "npm",
        git_path=env.get("GIT_PATH", "") or "git",
        code_signing=CodeSigningSettings(
            tool_path=env.get("CODE_SIGNING_TOOL_PATH", ""),
            certificate_path=env.get("CODE_SIGNING_CERTIFICATE_PATH", ""),
            certificate_password=env.get("CODE_SIGNING_CERTIFICATE_PASSWORD", ""),
        ),
        poll_interval=_int(env, "POLL_INTERVAL", DEFAULT_POLL_INTERVAL),
        chunk_size=_int(env, "UPLOAD_CHUNK_SIZE", DEFAULT_CHUNK_SIZE),
        output_dir=env.get("OUTPUT_DIR", "") or ".",
    )
    validate_config(cfg)
    return cfg


def missing_settings(cfg: WorkerConfig) -> list[str]:
    """Names of settings required by the enabled job types/targets but not set."""
    missing: list[str] = []
    release, package = JobType.RELEASE, JobType.PACKAGE
    unreal_targets = {Target.CLIENT, Target.SERVER, Target.EDITOR}

    needs_unreal = package in cfg.enabled_jobs or (
        release in cfg.enabled_jobs and bool(cfg.enabled_targets & unreal_targets)
    )
    needs_code_engine = package in cfg.enabled_jobs or (
        release in cfg.enabled_jobs and bool(cfg.enabled_targets & {Target.CLIENT, Target.SERVER})
    )

    if needs_unreal:
        if not cfg.project_dir:
            missing.append("UNREAL_PROJECT_DIR")
        if not cfg.project_name:
            missing.append("UNREAL_PROJECT_NAME")
        if not cfg.version_selector_path:
            missing.append("UNREAL_CODE_VERSION_SELECTOR_PATH or UNREAL_MARKETPLACE_VERSION_SELECTOR_PATH")
    if needs_code_engine:
        if not cfg.code.automation_tool_path:
            missing.append("UNREAL_CODE_AUTOMATION_TOOL_PATH")
        if not cfg.code.editor_path:
            missing.append("UNREAL_CODE_EDITOR_PATH")
    if cfg.enables(release, Target.EDITOR):
        if not cfg.marketplace.automation_tool_path:
            missing.append("UNREAL_MARKETPLACE_AUTOMATION_TOOL_PATH")
        if not cfg.marketplace.editor_path:
            missing.append("UNREAL_MARKETPLACE_EDITOR_PATH")
        if not cfg.marketplace.version:
            missing.append("UNREAL_MARKETPLACE_VERSION")
    if cfg.enables(release, Target.LAUNCHER):
        if not cfg.launcher_wails_path:
            missing.append("LAUNCHER_WAILS_PATH")
        if not cfg.launcher_source_dir:
            missing.append("LAUNCHER_SOURCE_DIR")
    if cfg.enables(release, Target.SERVER_LAUNCHER) and not cfg.server_launcher_source_dir:
        missing.append("SERVER_LAUNCHER_SOURCE_DIR")
    if cfg.enables(release, Target.PIXEL_STREAMING_LAUNCHER) and not cfg.pixel_streaming_launcher_source_dir:
        missing.append("PIXEL_STREAMING_LAUNCHER_SOURCE_DIR")
    return missing


def signing_expected(cfg: WorkerConfig) -> bool:
    """True when Win64 client/launcher releases are enabled, which get signed if possible."""
    return (
        JobType.RELEASE in cfg.enabled_jobs
        and Platform.WINDOWS in cfg.enabled_platforms
        and bool(cfg.enabled_targets & {Target.CLIENT, Target.LAUNCHER})
    )


def validate_config(cfg: WorkerConfig) -> None:
    missing = missing_settings(cfg)
    if missing:
        raise ConfigurationError("required env not defined: " + ", ".join(missing))


def load_credentials(env: Optional[Mapping[str, str]] = None) -> Credentials:
    """
    Read API credentials from API_EMAIL/API_PASSWORD, falling back to an
    "email:password" file at API_CREDENTIALS_PATH (default ".credentials").
    """
    env = os.environ if env is None else env
    email = env.get("API_EMAIL", "")
    password = env.get("API_PASSWORD", "")
    if email and password:
        return Credentials(email, password)

    path = Path(env.get("API_CREDENTIALS_PATH", "") or DEFAULT_CREDENTIALS_PATH)
    try:
        content = path.read_text(encoding="utf-8").strip()
    except OSError as e:
        raise ConfigurationError(f"no API_EMAIL/API_PASSWORD and cannot read credentials file {path}: {e}") from e

    email, sep, password = content.partition(":")
    if not sep or not email or not password:
        raise ConfigurationError(f"credentials file {path} must contain 'email:password'")
    return Credentials(email, password)
