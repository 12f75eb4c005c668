from __future__ import annotations

import math
import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import Forbidden, NotADirectory, ValidationFailed

DEFAULT_ALLOWED_TYPES = 'jpg, jpeg, gif, png, webp, 7z, zip'
SETTINGS_FILE_NAME = '.settings.json'
LOG_LEVELS = ('error', 'warn', 'info', 'debug')


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', env_prefix='FILEBROWSER_')

    app_name: str = 'File Browser'
    host: str = '0.0.0.0'
    port: int = 8080
    root: str = 'data'
    max_upload_mb: int = Field(default=50, ge=1)
    allowed_types: str = DEFAULT_ALLOWED_TYPES
    ignore_names: list[str] = Field(default_factory=lambda: [SETTINGS_FILE_NAME])
    log_level: str = 'info'
    production: bool = False
    expose_root: bool = False
    admin_domain: str = ''
    media_domain: str = ''


def normalize_log_level(value: str | None) -> str:
    level = str(value or '').strip().lower()
    if level == 'warning':
        return 'warn'
    return level if level in LOG_LEVELS else 'info'


def clamp_upload_mb(value: float) -> int:
    if not math.isfinite(value):
        raise ValidationFailed('Upload limit must be a finite number', details={'maxUploadMB': str(value)})
    return min(max(1, int(value)), 1024)


def is_inside(path: str, root: str) -> bool:
    return path == root or path.startswith(root.rstrip(os.sep) + os.sep)


class RuntimeConfig:
    """Live, reconfigurable server state shared by every request.

    The root captured at construction is the confinement boundary for all
    later ``set_root`` calls: a new root must resolve to it or below it.
    """

    def __init__(
        self,
        root: str,
        max_upload_mb: float = 50,
        allowed_types: str = DEFAULT_ALLOWED_TYPES,
        ignore_names: list[str] | None = None,
        theme: str = 'light',
        log_level: str = 'info',
    ):
        initial = Path(root).expanduser().resolve()
        initial.mkdir(parents=True, exist_ok=True)
        self.initial_root = str(initial)
        self.initial_root_real = os.path.realpath(initial)
        self.root = self.initial_root
        self.root_real = self.initial_root_real
        self.max_upload_mb = clamp_upload_mb(max_upload_mb)
        self.allowed_types = allowed_types
        self.ignore_names: list[str] = []
        self.set_ignore_names(ignore_names if ignore_names is not None else [SETTINGS_FILE_NAME])
        self.theme = 'light'
        self.set_theme(theme)
        self.log_level = normalize_log_level(log_level)

    @classmethod
    def from_settings(cls, settings: Settings) -> RuntimeConfig:
        return cls(
            root=settings.root,
            max_upload_mb=settings.max_upload_mb,
            allowed_types=settings.allowed_types,
            ignore_names=list(settings.ignore_names),
            log_level=settings.log_level,
        )

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024

    @property
    def debug_enabled(self) -> bool:
        return self.log_level == 'debug'

    def set_root(self, new_root: str) -> None:
        candidate = os.path.realpath(os.path.abspath(os.path.expanduser(new_root.strip())))
        if not is_inside(candidate, self.initial_root_real):
            raise Forbidden('Root must stay inside the initial root directory', details={'root': new_root})
        if os.path.exists(candidate) and not os.path.isdir(candidate):
            raise NotADirectory('Root must be a directory', details={'root': new_root})

        Path(candidate).mkdir(parents=True, exist_ok=True)
        self.root = candidate
        self.root_real = os.path.realpath(candidate)

    def set_max_upload_mb(self, value: float) -> None:
        self.max_upload_mb = clamp_upload_mb(value)

    def set_allowed_types(self, value: str) -> None:
        self.allowed_types = value

    def set_ignore_names(self, names: list[str]) -> None:
        self.ignore_names = [name for name in names if isinstance(name, str) and name]

    def set_theme(self, value: str) -> None:
        self.theme = 'dark' if str(value or '').lower() == 'dark' else 'light'

    def allowed_extensions(self) -> list[str]:
        return [ext.strip().lower().lstrip('.') for ext in self.allowed_types.split(',') if ext.strip()]
