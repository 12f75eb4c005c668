from __future__ import annotations

import os
from pathlib import Path

from ..config import RuntimeConfig, is_inside
from ..errors import PathTraversal, ValidationFailed


def normalize_api_path(api_path: str | None) -> str:
    rel = str(api_path or '/').replace('\\', '/')
    if '\x00' in rel:
        raise ValidationFailed('Path contains a NUL byte')
    return rel if rel.startswith('/') else '/' + rel


def is_path_safe(real_path: str | os.PathLike, root_real: str) -> bool:
    return is_inside(os.fspath(real_path), root_real)


class PathResolver:
    """Maps client API paths onto the filesystem without leaving the root.

    Every check is anchored to the realpath of the configured root, so a
    symlinked root directory or a symlinked intermediate directory cannot be
    used to step outside it. ``..`` segments are not blacklisted; they are
    joined normally and caught by the containment check.
    """

    def __init__(self, config: RuntimeConfig):
        self.config = config

    @property
    def root_real(self) -> str:
        return self.config.root_real

    def _combine(self, api_path: str | None) -> str:
        # A leading slash means "relative to root", never OS-absolute.
        return os.path.normpath(os.path.join(self.root_real, '.' + normalize_api_path(api_path)))

    def _ensure_inside(self, real: str) -> None:
        try:
            rel = os.path.relpath(real, self.root_real)
        except ValueError:
            raise PathTraversal()
        if rel == os.pardir or rel.startswith(os.pardir + os.sep) or os.path.isabs(rel):
            raise PathTraversal()

    def resolve(self, api_path: str | None) -> Path:
        combined = self._combine(api_path)
        if os.path.exists(combined):
            real = os.path.realpath(combined)
            self._ensure_inside(real)
            return Path(real)

        parent_real = os.path.realpath(os.path.dirname(combined))
        self._ensure_inside(parent_real)
        return Path(parent_real) / os.path.basename(combined)

    def resolve_no_follow(self, api_path: str | None) -> Path:
        """Resolve without following a symlink at the leaf.

        Only the parent chain is realpath'd and checked, so the returned path
        names the entry itself (e.g. the link, not its target).
        """
        combined = self._combine(api_path)
        if combined == self.root_real:
            return Path(self.root_real)

        parent_real = os.path.realpath(os.path.dirname(combined))
        self._ensure_inside(parent_real)
        return Path(parent_real) / os.path.basename(combined)

    def is_root(self, path: str | os.PathLike) -> bool:
        return os.fspath(path) == self.root_real

    def to_api_path(self, abs_path: str | os.PathLike) -> str:
        rel = os.path.relpath(os.fspath(abs_path), self.root_real)
        if rel == os.curdir:
            return '/'
        return '/' + rel.replace(os.sep, '/').lstrip('/')
