# steps/signing.py
from __future__ import annotations

from pathlib import Path
from typing import Sequence

from ..process import CommandSpec
from .context import BuildContext

SIGNABLE_SUFFIXES = (".exe", ".dll")
TIMESTAMP_URL = "http://timestamp.digicert.com"


def sign_files(ctx: BuildContext, root: Path, files: Sequence[str]) -> int:
    """
    Sign Windows executables under root with SignTool.

    Does nothing (and returns 0) when code signing is not configured.

    Returns:
        Number of signed files
    """
    signing = ctx.config.code_signing
    if not signing.enabled:
        ctx.console.print_warning("code signing is not configured, skipping")
        return 0

    signed = 0
    for rel in files:
        if not rel.lower().endswith(SIGNABLE_SUFFIXES):
            continue
        ctx.run(
            f"sign {rel}",
            CommandSpec(
                command=signing.tool_path,
                command_line="sign /f {certificate} /p {password} /fd SHA256 /tr {timestamp} /td SHA256 {file}",
                working_dir=root,
                placeholders={
                    "certificate": signing.certificate_path,
                    "password": signing.certificate_password,
                    "timestamp": TIMESTAMP_URL,
                    "file": str(root / rel),
                },
            ),
        )
        signed += 1
    return signed
