from __future__ import annotations

import os
import re
import shutil
import stat
import sys
import time
from dataclasses import dataclass
from pathlib import Path

import structlog

from ..errors import ForbiddenRootOperation, InvalidOperation
from .paths import PathResolver

logger = structlog.get_logger(__name__)

_COUNTER_RE = re.compile(r'^(.*?)(?: \((\d+)\))?$')
MAX_NAME_ATTEMPTS = 10_000


def split_counter(name: str) -> tuple[str, int]:
    """Split ``"notes (3)"`` into ``("notes", 4)``: the base and the next counter to try."""
    match = _COUNTER_RE.match(name)
    if match is None or match.group(2) is None:
        return name, 2
    return match.group(1), int(match.group(2)) + 1


def split_extension(name: str) -> tuple[str, str]:
    dot = name.rfind('.')
    if dot <= 0 or dot == len(name) - 1:
        return name, ''
    return name[:dot], name[dot:]


def next_free_name(directory: Path, name: str, keep_extension: bool = False) -> str:
    if not os.path.lexists(directory / name):
        return name

    stem, ext = split_extension(name) if keep_extension else (name, '')
    base, counter = split_counter(stem)
    for _ in range(MAX_NAME_ATTEMPTS):
        candidate = f'{base} ({counter}){ext}'
        if not os.path.lexists(directory / candidate):
            return candidate
        counter += 1
    return f'{base}-{int(time.time() * 1000)}{ext}'


@dataclass(frozen=True)
class MkdirResult:
    path: Path
    name: str


@dataclass(frozen=True)
class DeleteResult:
    path: Path
    target_type: str


class FileOps:
    def __init__(self, resolver: PathResolver):
        self.resolver = resolver

    def mkdir(self, rel: str) -> MkdirResult:
        target = self.resolver.resolve_no_follow(rel)
        if self.resolver.is_root(target):
            raise InvalidOperation('Cannot create the root directory')

        name = next_free_name(target.parent, target.name)
        final = target.parent / name
        os.mkdir(final)
        return MkdirResult(path=final, name=name)

    def rename(self, src_rel: str, dst_rel: str) -> tuple[Path, Path]:
        src = self.resolver.resolve_no_follow(src_rel)
        dst = self.resolver.resolve_no_follow(dst_rel)
        if self.resolver.is_root(src):
            raise ForbiddenRootOperation('Renaming root is forbidden')
        if self.resolver.is_root(dst):
            raise InvalidOperation('Invalid rename target: root')

        os.rename(src, dst)
        return src, dst

    def delete(self, rel: str) -> DeleteResult:
        target = self.resolver.resolve_no_follow(rel)
        if self.resolver.is_root(target):
            raise ForbiddenRootOperation('Deleting root is forbidden')

        st = os.lstat(target)
        if stat.S_ISLNK(st.st_mode):
            os.unlink(target)
            return DeleteResult(target, 'symlink')
        if stat.S_ISDIR(st.st_mode):
            _remove_tree(target)
            return DeleteResult(target, 'directory')
        os.unlink(target)
        return DeleteResult(target, 'file')


def _remove_tree(target: Path) -> None:
    failures: list[BaseException] = []

    def _on_error(func, path, exc) -> None:
        if isinstance(exc, tuple):
            exc = exc[1]
        if isinstance(exc, FileNotFoundError):
            return
        failures.append(exc)
        logger.warning('delete_entry_failed', path=str(path), op=func.__name__, error=str(exc))

    if sys.version_info >= (3, 12):
        shutil.rmtree(target, onexc=_on_error)
    else:
        shutil.rmtree(target, onerror=_on_error)

    if failures and os.path.lexists(target):
        raise failures[0]
