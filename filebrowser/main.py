from __future__ import annotations

import time
import uuid
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .config import RuntimeConfig, Settings
from .errors import FileBrowserError, InternalError, ValidationFailed, from_os_error
from .log import ActionLogger, configure_logging
from .routers import config as config_router
from .routers import files, fs
from .schemas import ErrorBody, ErrorEnvelope
from .services.file_ops import FileOps
from .services.lister import DirectoryLister
from .services.paths import PathResolver
from .services.settings_store import SettingsStore, apply_settings
from .services.upload import UploadPipeline

logger = structlog.get_logger(__name__)


def _normalize_host(value: str) -> str:
    return value.lower().split(':', 1)[0]


def _error_response(request: Request, exc: FileBrowserError) -> JSONResponse:
    request_id = getattr(request.state, 'request_id', None)
    status = exc.status_code
    log = logger.error if status >= 500 else logger.warning
    log(
        'request_error',
        method=request.method,
        url=str(request.url.path),
        status=status,
        code=exc.code,
        message=exc.message,
        exc_info=(exc.__cause__ or exc) if status >= 500 else False,
    )
    body = ErrorEnvelope(error=ErrorBody(**exc.to_dict()), request_id=request_id)
    headers = {'X-Request-Id': request_id} if request_id else None
    return JSONResponse(body.model_dump(by_alias=True, exclude_none=True), status_code=status, headers=headers)


async def app_error_handler(request: Request, exc: FileBrowserError):
    return _error_response(request, exc)


async def os_error_handler(request: Request, exc: OSError):
    mapped = from_os_error(exc)
    mapped.__cause__ = exc
    return _error_response(request, mapped)


async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = [{'loc': list(err.get('loc', ())), 'msg': err.get('msg', '')} for err in exc.errors()]
    return _error_response(request, ValidationFailed('Invalid request data', details=details))


async def unhandled_exception_handler(request: Request, exc: Exception):
    error = InternalError('Internal server error. Please try again.')
    error.__cause__ = exc
    return _error_response(request, error)


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or Settings()
    configure_logging(settings.log_level)

    config = RuntimeConfig.from_settings(settings)
    store = SettingsStore()
    doc = store.load(config.initial_root)
    if doc is not None:
        apply_settings(config, doc)

    resolver = PathResolver(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info('startup', root=config.root, max_upload_mb=config.max_upload_mb, log_level=config.log_level)
        yield
        logger.info('shutdown')

    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.state.settings = settings
    app.state.config = config
    app.state.settings_store = store
    app.state.resolver = resolver
    app.state.lister = DirectoryLister(config, resolver)
    app.state.file_ops = FileOps(resolver)
    app.state.uploads = UploadPipeline(config, resolver)
    app.state.actions = ActionLogger(debug=config.debug_enabled)

    admin_domain = _normalize_host(settings.admin_domain)
    media_domain = _normalize_host(settings.media_domain)

    @app.middleware('http')
    async def host_gate(request: Request, call_next):
        path = request.url.path
        if (request.method == 'GET' and path == '/api/health') or not (admin_domain or media_domain):
            return await call_next(request)

        host = _normalize_host(request.headers.get('host', ''))
        if media_domain and host == media_domain:
            if request.method != 'GET':
                return JSONResponse({'error': {'code': 'method_not_allowed', 'message': 'Method not allowed'}}, status_code=405)
            if path != '/api/health' and not path.startswith('/files/'):
                return JSONResponse({'error': {'code': 'forbidden', 'message': 'Forbidden'}}, status_code=403)
            return await call_next(request)
        if admin_domain and host == admin_domain:
            return await call_next(request)
        return JSONResponse({'error': {'code': 'not_found', 'message': 'Unknown host'}}, status_code=404)

    @app.middleware('http')
    async def request_context(request: Request, call_next):
        request_id = request.headers.get('x-request-id') or uuid.uuid4().hex
        request.state.request_id = request_id
        structlog.contextvars.bind_contextvars(request_id=request_id)
        start = time.monotonic()
        try:
            response = await call_next(request)
            response.headers['X-Request-Id'] = request_id
            logger.debug(
                'request',
                method=request.method,
                url=str(request.url.path),
                status=response.status_code,
                duration_ms=round((time.monotonic() - start) * 1000, 1),
                ua=request.headers.get('user-agent', ''),
            )
            return response
        finally:
            structlog.contextvars.unbind_contextvars('request_id')

    app.add_exception_handler(FileBrowserError, app_error_handler)
    app.add_exception_handler(OSError, os_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(config_router.router)
    app.include_router(fs.router)
    app.include_router(files.router)
    return app


def run() -> None:
    settings = Settings()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)
