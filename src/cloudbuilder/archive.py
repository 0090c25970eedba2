# archive.py
from __future__ import annotations

import zipfile
from fnmatch import fnmatch
from pathlib import Path
from typing import Iterable, List, Sequence

# ---------------------------------------------------------------------
# Ignore patterns
# ---------------------------------------------------------------------
# Patterns are matched against slash-separated paths relative to the
# staging root:
#   "/.git"            anchored: only <root>/.git (and everything under it)
#   "Samples/Foo"      that relative path anywhere in the tree
#   "*.pdb", ".idea"   any single path component
# A matching directory excludes everything under it.
# ---------------------------------------------------------------------


def _relpath(p: Path, root: Path) -> str:
    return p.relative_to(root).as_posix()


def _matches_pattern(rel: str, pattern: str) -> bool:
    pattern = pattern.strip().replace("\\", "/")
    if not pattern:
        return False

    if pattern.startswith("/"):
        anchored = pattern.strip("/")
        return rel == anchored or rel.startswith(anchored + "/") or fnmatch(rel, anchored)

    pattern = pattern.rstrip("/")
    parts = rel.split("/")
    if "/" not in pattern:
        return any(fnmatch(part, pattern) for part in parts)

    # multi-component pattern: match any contiguous run of components
    width = pattern.count("/") + 1
    for i in range(len(parts) - width + 1):
        if fnmatch("/".join(parts[i:i + width]), pattern):
            return True
    return False


def is_ignored(rel: str, patterns: Iterable[str]) -> bool:
    return any(_matches_pattern(rel, p) for p in patterns)


def list_files_recursive(root: str | Path, ignored: Sequence[str] = ()) -> List[str]:
    """
    List files under root as sorted, slash-separated relative paths,
    skipping anything matched by the ignore patterns. Symlinked directories
    are not followed, so link cycles cannot loop the walk.

    Raises:
        FileNotFoundError: If root is not a directory
    """
    root_p = Path(root)
    if not root_p.is_dir():
        raise FileNotFoundError(f"directory not found: {root_p}")

    out: List[str] = []
    stack = [root_p]
    while stack:
        current = stack.pop()
        for entry in sorted(current.iterdir()):
            rel = _relpath(entry, root_p)
            if is_ignored(rel, ignored):
                continue
            if entry.is_dir():
                if not entry.is_symlink():
                    stack.append(entry)
            elif entry.is_file():
                out.append(rel)
    return sorted(out)


def create_zip_archive(output: str | Path, base_path: str | Path, files: Sequence[str]) -> Path:
    """
    Zip files (relative to base_path) into output.

    Entry names are the forward-slash relative paths. The archive is built
    next to the target and renamed into place when complete.

    Args:
        output: Path of the zip to create
        base_path: Directory the relative file paths are resolved against
        files: Relative paths, as returned by list_files_recursive()

    Returns:
        Path to the created archive
    """
    out = Path(output)
    base = Path(base_path)
    out.parent.mkdir(parents=True, exist_ok=True)
    tmp = out.with_name(out.name + ".tmp")
    try:
        with zipfile.ZipFile(tmp, "w", compression=zipfile.ZIP_DEFLATED, allowZip64=True) as zf:
            for rel in files:
                src = base / rel
                try:
                    zf.write(src, arcname=rel.replace("\\", "/"))
                except OSError as e:
                    raise OSError(f"failed to add file {src} to zip: {e}") from e
        tmp.replace(out)
    finally:
        if tmp.exists():
            tmp.unlink()
    return out
