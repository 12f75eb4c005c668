from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ..config import RuntimeConfig, Settings, clamp_upload_mb
from ..deps import action_meta, get_actions, get_config, get_settings, get_settings_store, root_for_display
from ..log import ActionLogger
from ..schemas import ConfigOut, ConfigUpdateRequest, HealthResponse
from ..services.settings_store import SettingsDoc, SettingsStore

router = APIRouter(prefix='/api', tags=['config'])


def _config_out(settings: Settings, config: RuntimeConfig, ok: bool | None = None) -> dict:
    root, masked = root_for_display(settings, config)
    out = ConfigOut(
        ok=ok,
        root=root,
        root_masked=masked,
        max_upload_mb=config.max_upload_mb,
        allowed_types=config.allowed_types,
        ignore_names=list(config.ignore_names),
        theme=config.theme,
        admin_domain=settings.admin_domain,
        media_domain=settings.media_domain,
    )
    return out.model_dump(by_alias=True, exclude_none=True)


@router.get('/config')
def read_config(settings: Settings = Depends(get_settings), config: RuntimeConfig = Depends(get_config)):
    return _config_out(settings, config)


@router.post('/config')
def update_config(
    payload: ConfigUpdateRequest,
    request: Request,
    settings: Settings = Depends(get_settings),
    config: RuntimeConfig = Depends(get_config),
    store: SettingsStore = Depends(get_settings_store),
    actions: ActionLogger = Depends(get_actions),
):
    # Everything that can fail runs before the first mutation.
    max_upload_mb = None
    if payload.max_upload_mb is not None and payload.max_upload_mb > 0:
        max_upload_mb = clamp_upload_mb(payload.max_upload_mb)
    if payload.root is not None and payload.root.strip():
        config.set_root(payload.root)
    if max_upload_mb is not None:
        config.set_max_upload_mb(max_upload_mb)
    if payload.allowed_types is not None:
        config.set_allowed_types(payload.allowed_types)
    if payload.ignore_names is not None:
        config.set_ignore_names(payload.ignore_names)
    if payload.theme is not None:
        config.set_theme(payload.theme)

    store.save(config.initial_root, SettingsDoc.from_config(config))
    actions.log(
        'config.update',
        {
            'root': config.root,
            'maxUploadMB': config.max_upload_mb,
            'allowedTypes': config.allowed_types,
            'ignoreNames': config.ignore_names,
            'theme': config.theme,
        },
        action_meta(request),
    )
    return _config_out(settings, config, ok=True)


@router.get('/health', response_model=HealthResponse)
def health(settings: Settings = Depends(get_settings), config: RuntimeConfig = Depends(get_config)):
    root, _ = root_for_display(settings, config)
    return HealthResponse(root=root)
