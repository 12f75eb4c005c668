from __future__ import annotations

import os
import stat as stat_mode
import unicodedata
from dataclasses import dataclass, field
from pathlib import Path

import structlog

from ..config import RuntimeConfig
from . import media
from .paths import PathResolver
from .symlinks import EntryKind, classify

logger = structlog.get_logger(__name__)

SORT_KEYS = ('name', 'mtime', 'size')
DEFAULT_LIMIT = 100
MAX_LIMIT = 1000


@dataclass
class FsEntry:
    name: str
    path: str
    is_dir: bool
    size: int = 0
    mtime_ms: float = 0
    mime: str | None = None
    is_symlink: bool = False
    is_broken: bool = False
    is_unsafe: bool = False


@dataclass
class ListingPage:
    path: str
    items: list[FsEntry] = field(default_factory=list)
    page: int = 1
    limit: int = DEFAULT_LIMIT
    total: int = 0
    has_more: bool = False
    sort: str = 'name'
    order: str = 'asc'


@dataclass(frozen=True)
class StatResult:
    path: str
    is_dir: bool
    size: int
    mtime_ms: float


def _to_int(raw, default: int) -> int:
    try:
        return int(float(raw))
    except (TypeError, ValueError, OverflowError):
        return default


def normalize_paging(page=None, limit=None, sort=None, order=None) -> tuple[int, int, str, str]:
    page_num = max(1, _to_int(page, 1) or 1)
    limit_num = min(MAX_LIMIT, max(1, _to_int(limit, DEFAULT_LIMIT) or DEFAULT_LIMIT))
    sort_key = sort if sort in SORT_KEYS else 'name'
    sort_order = 'desc' if order == 'desc' else 'asc'
    return page_num, limit_num, sort_key, sort_order


def _fold(name: str) -> str:
    # Accents and case only break ties, so 'Éclair' sorts with 'e'.
    decomposed = unicodedata.normalize('NFKD', name)
    return ''.join(ch for ch in decomposed if not unicodedata.combining(ch)).casefold()


def _name_key(entry: FsEntry) -> tuple[str, str, str]:
    return _fold(entry.name), entry.name.casefold(), entry.name


_SORT_FUNCS = {
    'name': _name_key,
    'mtime': lambda e: (e.mtime_ms, _name_key(e)),
    'size': lambda e: (e.size, _name_key(e)),
}


def sort_entries(entries: list[FsEntry], sort: str = 'name', order: str = 'asc') -> list[FsEntry]:
    ordered = sorted(entries, key=_SORT_FUNCS[sort], reverse=order == 'desc')
    # Stable: keeps the requested order inside each group.
    return sorted(ordered, key=lambda e: not e.is_dir)


class DirectoryLister:
    def __init__(self, config: RuntimeConfig, resolver: PathResolver):
        self.config = config
        self.resolver = resolver

    def list(self, rel: str, page=None, limit=None, sort=None, order=None) -> ListingPage:
        target = self.resolver.resolve(rel)
        page_num, limit_num, sort_key, sort_order = normalize_paging(page, limit, sort, order)

        ignore = set(self.config.ignore_names)
        with os.scandir(target) as it:
            names = [entry.name for entry in it if entry.name not in ignore]

        items = sort_entries([self._describe(target / name) for name in names], sort_key, sort_order)

        total = len(items)
        start = (page_num - 1) * limit_num
        end = min(start + limit_num, total)
        return ListingPage(
            path=self.resolver.to_api_path(target),
            items=items[start:end] if start < total else [],
            page=page_num,
            limit=limit_num,
            total=total,
            has_more=end < total,
            sort=sort_key,
            order=sort_order,
        )

    def stat(self, rel: str) -> StatResult:
        target = self.resolver.resolve(rel)
        st = os.stat(target)
        return StatResult(
            path=self.resolver.to_api_path(target),
            is_dir=stat_mode.S_ISDIR(st.st_mode),
            size=st.st_size,
            mtime_ms=st.st_mtime * 1000,
        )

    def _describe(self, abs_path: Path) -> FsEntry:
        api_path = self.resolver.to_api_path(abs_path)
        try:
            info = classify(abs_path, self.resolver.root_real)
        except OSError:
            logger.warning('entry_vanished', path=api_path)
            return FsEntry(name=abs_path.name, path=api_path, is_dir=False, is_broken=True)

        if info.kind == EntryKind.BROKEN_SYMLINK:
            return FsEntry(name=abs_path.name, path=api_path, is_dir=False, is_symlink=True, is_broken=True)
        if info.kind == EntryKind.UNSAFE_SYMLINK:
            return FsEntry(name=abs_path.name, path=api_path, is_dir=False, is_symlink=True, is_unsafe=True)

        # Regular entries, directories and in-root symlinks: stat the resolved target.
        try:
            st = os.stat(info.target)
        except OSError:
            logger.warning('entry_vanished', path=api_path)
            return FsEntry(name=abs_path.name, path=api_path, is_dir=False, is_symlink=info.is_symlink, is_broken=True)

        is_dir = stat_mode.S_ISDIR(st.st_mode)
        return FsEntry(
            name=abs_path.name,
            path=api_path,
            is_dir=is_dir,
            size=st.st_size,
            mtime_ms=st.st_mtime * 1000,
            mime=None if is_dir else media.lookup(abs_path.name),
            is_symlink=info.is_symlink,
        )
