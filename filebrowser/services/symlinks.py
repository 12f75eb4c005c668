from __future__ import annotations

import os
import stat
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import structlog

from .paths import is_path_safe

logger = structlog.get_logger(__name__)


class EntryKind(str, Enum):
    REGULAR = 'regular'
    DIRECTORY = 'directory'
    SAFE_SYMLINK = 'safe_symlink'
    UNSAFE_SYMLINK = 'unsafe_symlink'
    BROKEN_SYMLINK = 'broken_symlink'


@dataclass(frozen=True)
class SymlinkInfo:
    is_symlink: bool
    real_path: Path
    is_broken: bool


@dataclass(frozen=True)
class Classification:
    kind: EntryKind
    path: Path
    target: Path

    @property
    def is_symlink(self) -> bool:
        return self.kind in {EntryKind.SAFE_SYMLINK, EntryKind.UNSAFE_SYMLINK, EntryKind.BROKEN_SYMLINK}


def resolve_symlink_safe(path: str | os.PathLike) -> SymlinkInfo:
    """lstat ``path`` and, for a symlink, try to resolve its final target.

    Never raises for a dangling or looping link; it is reported as broken.
    """
    abs_path = Path(path)
    st = os.lstat(abs_path)
    if not stat.S_ISLNK(st.st_mode):
        return SymlinkInfo(False, abs_path, False)

    try:
        real = os.path.realpath(abs_path, strict=True)
    except OSError as exc:
        logger.warning('broken_symlink', path=str(abs_path), error=exc.strerror or str(exc))
        return SymlinkInfo(True, abs_path, True)
    return SymlinkInfo(True, Path(real), False)


def classify(path: str | os.PathLike, root_real: str) -> Classification:
    info = resolve_symlink_safe(path)
    abs_path = Path(path)
    if info.is_symlink:
        if info.is_broken:
            return Classification(EntryKind.BROKEN_SYMLINK, abs_path, abs_path)
        if not is_path_safe(info.real_path, root_real):
            return Classification(EntryKind.UNSAFE_SYMLINK, abs_path, info.real_path)
        return Classification(EntryKind.SAFE_SYMLINK, abs_path, info.real_path)

    if os.path.isdir(abs_path):
        return Classification(EntryKind.DIRECTORY, abs_path, abs_path)
    return Classification(EntryKind.REGULAR, abs_path, abs_path)
