from __future__ import annotations

import asyncio
import errno
import json

from fastapi import APIRouter
from starlette.requests import Request

from filebrowser import main
from filebrowser.errors import Forbidden, InternalError, NotFound, ServerBusy, from_os_error


def _request(path: str) -> Request:
    scope = {
        'type': 'http',
        'http_version': '1.1',
        'method': 'GET',
        'scheme': 'http',
        'path': path,
        'raw_path': path.encode(),
        'query_string': b'',
        'headers': [],
        'client': ('127.0.0.1', 12345),
        'server': ('testserver', 80),
    }
    return Request(scope)


def test_unhandled_exception_handler_response_is_safe():
    request = _request('/api/test-crash')
    response = asyncio.run(main.unhandled_exception_handler(request, RuntimeError('boom at /tmp/private/path')))

    assert response.status_code == 500
    assert json.loads(response.body) == {
        'error': {'code': 'internal_error', 'message': 'Internal server error. Please try again.'}
    }
    assert b'/tmp/private/path' not in response.body


def test_unhandled_exception_in_route_keeps_request_id(make_client):
    client = make_client()
    router = APIRouter()

    @router.get('/api/test-crash')
    def crash():
        raise RuntimeError('unexpected /srv/data path')

    client.app.include_router(router)
    response = client.get('/api/test-crash', headers={'X-Request-Id': 'crash-1'})

    assert response.status_code == 500
    assert response.json()['error']['code'] == 'internal_error'
    assert response.json()['requestId'] == 'crash-1'
    assert '/srv/data' not in response.text


def test_os_errors_map_to_error_classes():
    assert isinstance(from_os_error(FileNotFoundError(errno.ENOENT, 'No such file or directory')), NotFound)
    assert isinstance(from_os_error(PermissionError(errno.EACCES, 'Permission denied')), Forbidden)
    assert isinstance(from_os_error(OSError(errno.EMFILE, 'Too many open files')), ServerBusy)

    unknown = from_os_error(OSError(errno.EXDEV, 'Invalid cross-device link'))
    assert isinstance(unknown, InternalError)
    assert unknown.status_code == 500
    assert unknown.message == 'Invalid cross-device link'
