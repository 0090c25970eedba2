from .model import Job, JobStatus, JobType, Platform, Target
from .process import CommandSpec, CommandResult, run
from .template import expand

__version__ = "0.1.0"

__all__ = ["Job", "JobStatus", "JobType", "Platform", "Target", "CommandSpec", "CommandResult", "run", "expand"]
