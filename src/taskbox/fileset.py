# fileset.py
from __future__ import annotations

import hashlib
import io
import os
import tarfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Iterable, List, Sequence, Tuple

from .cache import combine
from .errors import ValidationError
from .format import code_str

if TYPE_CHECKING:
    from .model import Task


@dataclass(frozen=True)
class InputFiles:
    """
    The filtered input fileset of a task.

    digest: opaque content hash, folded into the task's cache key
    paths: relative POSIX paths (files, directories, symlinks), sorted,
           in the order they are archived
    """
    digest: str
    paths: Tuple[str, ...]


def _relpath(p: Path, root: Path) -> str:
    return p.relative_to(root).as_posix()


def _is_excluded(rel: str, excludes: Sequence[PurePosixPath]) -> bool:
    rel_path = PurePosixPath(rel)
    for ex in excludes:
        if rel_path == ex or ex in rel_path.parents:
            return True
    return False


def _hash_file_contents(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


def _walk(start: Path) -> Iterable[Path]:
    # deterministic traversal; symlinks are recorded, not followed
    yield start
    if start.is_dir() and not start.is_symlink():
        for dirpath, dirnames, filenames in os.walk(start):
            dirnames.sort()
            base = Path(dirpath)
            for name in sorted(dirnames + filenames):
                yield base / name


def collect_input_paths(
    source_dir: Path,
    input_paths: Sequence[str],
    excluded_input_paths: Sequence[str] = (),
) -> List[str]:
    root = Path(source_dir).resolve()
    excludes = [PurePosixPath(p) for p in excluded_input_paths]

    seen = set()
    out: List[str] = []
    for pattern in input_paths:
        if ".." in PurePosixPath(pattern).parts:
            raise ValidationError(
                message=f"Input path {code_str(pattern)} leaves the source directory.",
                field_name="input_paths",
                value=pattern,
            )
        start = root / pattern
        if not start.exists() and not start.is_symlink():
            raise ValidationError(
                message=f"Input path {code_str(pattern)} does not exist.",
                field_name="input_paths",
                value=pattern,
            )
        for p in _walk(start):
            rel = _relpath(p, root)
            if rel == "." or rel in seen or _is_excluded(rel, excludes):
                continue
            seen.add(rel)
            out.append(rel)

    return sorted(out)


def hash_input_files(
    source_dir: str | Path,
    input_paths: Sequence[str],
    excluded_input_paths: Sequence[str] = (),
) -> InputFiles:
    """
    Hash the declared input set deterministically:
      - every relative path
      - file contents, symlink targets, and a marker for directories
    """
    root = Path(source_dir).resolve()
    paths = collect_input_paths(root, input_paths, excluded_input_paths)

    digest = ""
    for rel in paths:
        p = root / rel
        digest = combine(digest, rel)
        if p.is_symlink():
            digest = combine(digest, "symlink:" + os.readlink(p))
        elif p.is_dir():
            digest = combine(digest, "directory")
        else:
            digest = combine(digest, "file:" + _hash_file_contents(p))

    return InputFiles(digest=digest, paths=tuple(paths))


def hash_task_inputs(source_dir: str | Path, task: Task) -> InputFiles:
    """Default input hasher used by the runner."""
    if not task.input_paths:
        return InputFiles(digest="", paths=())
    return hash_input_files(source_dir, task.input_paths, task.excluded_input_paths)


def build_archive(source_dir: str | Path, paths: Sequence[str], location: str) -> bytes:
    """
    Tar the given relative paths so that, extracted at the container root,
    they land under `location`.
    """
    root = Path(source_dir).resolve()
    prefix = PurePosixPath(location).relative_to("/")

    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w") as tar:
        for rel in paths:
            arcname = (prefix / rel).as_posix()
            tar.add(str(root / rel), arcname=arcname, recursive=False)
    return buf.getvalue()
