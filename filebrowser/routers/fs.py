from __future__ import annotations

import os
from dataclasses import asdict

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import FileResponse
from starlette.datastructures import UploadFile

from ..deps import action_meta, get_actions, get_file_ops, get_lister, get_resolver, get_uploads
from ..errors import InvalidOperation, NotSupported, UnsupportedType
from ..log import ActionLogger
from ..schemas import (
    DeleteRequest,
    FailedUploadOut,
    FsEntryOut,
    ListResponse,
    MkdirRequest,
    MkdirResponse,
    OkResponse,
    RenameRequest,
    StatResponse,
    UploadedFileOut,
    UploadResponse,
)
from ..services import media
from ..services.file_ops import FileOps
from ..services.lister import DirectoryLister
from ..services.paths import PathResolver
from ..services.upload import UploadPipeline

router = APIRouter(prefix='/api/fs', tags=['fs'])


@router.get('/list', response_model=ListResponse)
def list_dir(
    path: str = Query(default='/'),
    page: str = Query(default='1'),
    limit: str = Query(default='100'),
    sort: str = Query(default='name'),
    order: str = Query(default='asc'),
    lister: DirectoryLister = Depends(get_lister),
):
    listing = lister.list(path, page=page, limit=limit, sort=sort, order=order)
    data = asdict(listing)
    data['items'] = [FsEntryOut(**item) for item in data['items']]
    return ListResponse(**data)


@router.get('/stat', response_model=StatResponse)
def stat(path: str = Query(default='/'), lister: DirectoryLister = Depends(get_lister)):
    return StatResponse(**asdict(lister.stat(path)))


@router.get('/download')
def download(
    request: Request,
    path: str = Query(default='/'),
    resolver: PathResolver = Depends(get_resolver),
    actions: ActionLogger = Depends(get_actions),
):
    target = resolver.resolve(path)
    st = os.stat(target)
    if target.is_dir():
        raise NotSupported('Download for directories is not supported')

    actions.log('download', {'path': resolver.to_api_path(target), 'bytes': st.st_size}, action_meta(request))
    return FileResponse(target, filename=target.name)


@router.get('/preview')
def preview(
    request: Request,
    path: str = Query(default='/'),
    resolver: PathResolver = Depends(get_resolver),
    actions: ActionLogger = Depends(get_actions),
):
    target = resolver.resolve(path)
    st = os.stat(target)
    if target.is_dir():
        raise InvalidOperation('Cannot preview a directory')

    mime = media.lookup(target.name)
    if not media.is_image_like(mime):
        raise UnsupportedType('Unsupported preview type', details={'mime': mime})

    actions.log('preview', {'path': resolver.to_api_path(target), 'bytes': st.st_size}, action_meta(request))
    return FileResponse(target, media_type=mime)


@router.post('/mkdir', response_model=MkdirResponse)
def mkdir(
    payload: MkdirRequest,
    request: Request,
    ops: FileOps = Depends(get_file_ops),
    resolver: PathResolver = Depends(get_resolver),
    actions: ActionLogger = Depends(get_actions),
):
    result = ops.mkdir(payload.path)
    api_path = resolver.to_api_path(result.path)
    actions.log('mkdir', {'path': api_path, 'name': result.name}, action_meta(request))
    return MkdirResponse(path=api_path, name=result.name)


@router.post('/rename', response_model=OkResponse)
def rename(
    payload: RenameRequest,
    request: Request,
    ops: FileOps = Depends(get_file_ops),
    resolver: PathResolver = Depends(get_resolver),
    actions: ActionLogger = Depends(get_actions),
):
    src, dst = ops.rename(payload.from_, payload.to)
    actions.log(
        'rename',
        {'from': resolver.to_api_path(src), 'to': resolver.to_api_path(dst)},
        action_meta(request),
    )
    return OkResponse()


@router.post('/delete', response_model=OkResponse)
def delete(
    payload: DeleteRequest,
    request: Request,
    ops: FileOps = Depends(get_file_ops),
    resolver: PathResolver = Depends(get_resolver),
    actions: ActionLogger = Depends(get_actions),
):
    result = ops.delete(payload.path)
    actions.log(
        'delete',
        {'path': resolver.to_api_path(result.path), 'targetType': result.target_type},
        action_meta(request),
    )
    return OkResponse()


@router.post('/upload', response_model=UploadResponse)
async def upload(
    request: Request,
    path: str = Query(default='/'),
    uploads: UploadPipeline = Depends(get_uploads),
    actions: ActionLogger = Depends(get_actions),
):
    # Checked before the body is parsed so oversized requests never touch disk.
    uploads.check_content_length(request.headers.get('content-length'))

    form = await request.form()
    try:
        parts = [part for part in form.getlist('files') if isinstance(part, UploadFile)]
        outcome = await uploads.store(path, parts)
    finally:
        await form.close()

    actions.log(
        'upload',
        {'count': len(outcome.files), 'failed': len(outcome.failed), 'totalBytes': outcome.total_bytes, 'dest': path},
        {'files': [asdict(f) for f in outcome.files], **action_meta(request)},
    )
    return UploadResponse(
        files=[UploadedFileOut(**asdict(f)) for f in outcome.files],
        failed=[FailedUploadOut(**asdict(f)) for f in outcome.failed],
    )
