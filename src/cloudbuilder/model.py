# model.py
from __future__ import annotations

from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .errors import ValidationError


class JobType(str, Enum):
    RELEASE = "release"
    PACKAGE = "package"


class Target(str, Enum):
    CLIENT = "client"
    SERVER = "server"
    EDITOR = "editor"
    LAUNCHER = "launcher"
    SERVER_LAUNCHER = "server-launcher"
    PIXEL_STREAMING_LAUNCHER = "pixel-streaming-launcher"


class Platform(str, Enum):
    WINDOWS = "Win64"
    LINUX = "Linux"
    MAC = "Mac"
    ANDROID = "Android"
    IOS = "IOS"


class JobStatus(str, Enum):
    UNCLAIMED = "unclaimed"
    CLAIMED = "claimed"
    PROCESSING = "processing"
    UPLOADING = "uploading"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.ERROR, JobStatus.CANCELLED)


def is_nil(value: Optional[UUID]) -> bool:
    return value is None or value.int == 0


class _WireModel(BaseModel):
    # the job API speaks camelCase JSON
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ReleaseOptions(_WireModel):
    # files are uploaded one by one unless the job asks for a zip
    archive: bool = False
    maps: str = ""


class Release(_WireModel):
    """Release metadata attached to `release` jobs."""
    id: Optional[UUID] = None
    app_id: Optional[UUID] = None
    app_name: str = ""
    version: str = ""
    code_version: str = ""
    options: ReleaseOptions = Field(default_factory=ReleaseOptions)


class PackageOptions(_WireModel):
    archive: bool = False


class Package(_WireModel):
    """UGC package metadata attached to `package` jobs."""
    id: Optional[UUID] = None
    name: str = ""
    release_version: str = ""
    options: PackageOptions = Field(default_factory=PackageOptions)


class Job(_WireModel):
    """
    A build job as returned by the job API.

    Exactly one of release/package is expected, matching `type`; that is
    checked by the pipeline, not here, so a malformed job can still be
    reported back as failed.
    """
    id: str
    type: JobType
    target: Target
    platform: Platform
    configuration: str = "Development"
    release: Optional[Release] = None
    package: Optional[Package] = None

    @property
    def entity_id(self) -> Optional[UUID]:
        if self.type is JobType.RELEASE and self.release is not None:
            return self.release.id
        if self.type is JobType.PACKAGE and self.package is not None:
            return self.package.id
        return None

    @property
    def archive_requested(self) -> bool:
        if self.type is JobType.RELEASE and self.release is not None:
            return self.release.options.archive
        if self.type is JobType.PACKAGE and self.package is not None:
            return self.package.options.archive
        return False

    def require_release(self) -> Release:
        if self.release is None:
            raise ValidationError(f"job {self.id} has no release metadata")
        return self.release

    def require_package(self) -> Package:
        if self.package is None:
            raise ValidationError(f"job {self.id} has no package metadata")
        return self.package

    def describe(self) -> str:
        return f"{self.type.value}/{self.target.value}/{self.platform.value} ({self.configuration})"
