from __future__ import annotations

from fastapi import Request

from .config import RuntimeConfig, Settings
from .log import ActionLogger
from .services.file_ops import FileOps
from .services.lister import DirectoryLister
from .services.paths import PathResolver
from .services.settings_store import SettingsStore
from .services.upload import UploadPipeline


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_config(request: Request) -> RuntimeConfig:
    return request.app.state.config


def get_resolver(request: Request) -> PathResolver:
    return request.app.state.resolver


def get_lister(request: Request) -> DirectoryLister:
    return request.app.state.lister


def get_file_ops(request: Request) -> FileOps:
    return request.app.state.file_ops


def get_uploads(request: Request) -> UploadPipeline:
    return request.app.state.uploads


def get_settings_store(request: Request) -> SettingsStore:
    return request.app.state.settings_store


def get_actions(request: Request) -> ActionLogger:
    return request.app.state.actions


def action_meta(request: Request) -> dict:
    return {
        'ua': request.headers.get('user-agent', ''),
        'ip': request.client.host if request.client else 'unknown',
        'xff': request.headers.get('x-forwarded-for', ''),
        'host': request.headers.get('x-forwarded-host') or request.headers.get('host', ''),
        'request_id': getattr(request.state, 'request_id', None),
    }


def root_for_display(settings: Settings, config: RuntimeConfig) -> tuple[str, bool]:
    masked = settings.production and not settings.expose_root
    return ('/' if masked else config.root), masked
