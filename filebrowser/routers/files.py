from __future__ import annotations

import os
import re
from email.utils import formatdate, parsedate_to_datetime
from pathlib import Path
from typing import Iterator, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import Response, StreamingResponse

from ..deps import get_actions, get_resolver
from ..errors import Forbidden
from ..log import ActionLogger
from ..services import media
from ..services.paths import PathResolver

router = APIRouter(tags=['files'])

CHUNK_SIZE = 64 * 1024
_RANGE_RE = re.compile(r'^bytes=(\d*)-(\d*)$')


def make_etag(size: int, mtime_ms: float) -> str:
    return f'W/"{size}-{int(mtime_ms):x}"'


def _http_date_to_seconds(value: str) -> Optional[float]:
    try:
        return parsedate_to_datetime(value).timestamp()
    except (TypeError, ValueError, IndexError):
        return None


def is_not_modified(request: Request, etag: str, mtime: float) -> bool:
    if request.headers.get('if-none-match') == etag:
        return True
    since = request.headers.get('if-modified-since')
    if since:
        parsed = _http_date_to_seconds(since)
        # HTTP dates have one-second resolution.
        if parsed is not None and parsed >= int(mtime):
            return True
    return False


def range_applies(request: Request, etag: str, mtime: float) -> bool:
    if not request.headers.get('range'):
        return False
    if_range = request.headers.get('if-range')
    if not if_range:
        return True
    parsed = _http_date_to_seconds(if_range)
    if parsed is not None:
        return parsed >= int(mtime)
    return if_range == etag


def parse_range(header: str, size: int) -> Optional[tuple[int, int]]:
    """Parse a single ``bytes=`` range; ``None`` means unsatisfiable."""
    match = _RANGE_RE.match(header.strip())
    if match is None:
        return None
    start_raw, end_raw = match.groups()
    if start_raw == '' and end_raw == '':
        return None
    if start_raw == '':
        suffix = int(end_raw)
        if suffix == 0 or size == 0:
            return None
        return max(0, size - suffix), size - 1

    start = int(start_raw)
    end = int(end_raw) if end_raw else size - 1
    if start > end or end >= size:
        return None
    return start, end


def iter_file(path: Path, start: int, end: int) -> Iterator[bytes]:
    remaining = end - start + 1
    with open(path, 'rb') as handle:
        handle.seek(start)
        while remaining > 0:
            chunk = handle.read(min(CHUNK_SIZE, remaining))
            if not chunk:
                break
            remaining -= len(chunk)
            yield chunk


@router.get('/files/{rel:path}')
def serve_file(
    rel: str,
    request: Request,
    resolver: PathResolver = Depends(get_resolver),
    actions: ActionLogger = Depends(get_actions),
):
    target = resolver.resolve('/' + rel)
    st = os.stat(target)
    if target.is_dir():
        raise Forbidden('Directories cannot be served')

    size = st.st_size
    etag = make_etag(size, st.st_mtime * 1000)
    headers = {
        'ETag': etag,
        'Last-Modified': formatdate(st.st_mtime, usegmt=True),
        'Accept-Ranges': 'bytes',
        'Cache-Control': 'public, max-age=86400',
    }
    media_type = media.lookup(target.name) or 'application/octet-stream'
    api_path = resolver.to_api_path(target)
    meta = {'ua': request.headers.get('user-agent', '')}

    if is_not_modified(request, etag, st.st_mtime):
        return Response(status_code=304, headers=headers)

    if range_applies(request, etag, st.st_mtime):
        bounds = parse_range(request.headers['range'], size)
        if bounds is None:
            headers['Content-Range'] = f'bytes */{size}'
            return Response(status_code=416, headers=headers)
        start, end = bounds
        length = end - start + 1
        headers['Content-Range'] = f'bytes {start}-{end}/{size}'
        headers['Content-Length'] = str(length)
        actions.log('files_serve', {'path': api_path, 'bytes': length, 'range': f'{start}-{end}'}, meta)
        return StreamingResponse(iter_file(target, start, end), status_code=206, media_type=media_type, headers=headers)

    headers['Content-Length'] = str(size)
    actions.log('files_serve', {'path': api_path, 'bytes': size}, meta)
    return StreamingResponse(iter_file(target, 0, size - 1), media_type=media_type, headers=headers)
