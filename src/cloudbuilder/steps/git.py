# steps/git.py
# Git steps for the project checkout. Every git call in the worker goes
# through here, so the command-line templates live in one place.

from __future__ import annotations

from pathlib import Path

from ..process import CommandSpec
from .context import BuildContext


def _git(ctx: BuildContext, step: str, workdir: str | Path, command_line: str, **placeholders: str) -> None:
    ctx.run(
        step,
        CommandSpec(
            command=ctx.config.git_path,
            command_line=command_line,
            working_dir=workdir,
            placeholders=placeholders,
        ),
    )


def fetch(ctx: BuildContext, workdir: str | Path) -> None:
    """Update remote refs and tags."""
    _git(ctx, "git fetch", workdir, "fetch --tags --force")


def checkout_tag(ctx: BuildContext, workdir: str | Path, tag: str) -> None:
    _git(ctx, f"git checkout tag {tag}", workdir, "checkout --force tags/{tag}", tag=tag)


def checkout_branch(ctx: BuildContext, workdir: str | Path, branch: str) -> None:
    _git(ctx, f"git checkout {branch}", workdir, "checkout --force {branch}", branch=branch)


def pull(ctx: BuildContext, workdir: str | Path) -> None:
    _git(ctx, "git pull", workdir, "pull --ff-only")
