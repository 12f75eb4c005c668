from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PathRequest(BaseModel):
    path: str = Field(min_length=1)


class MkdirRequest(PathRequest):
    pass


class DeleteRequest(PathRequest):
    pass


class RenameRequest(BaseModel):
    from_: str = Field(alias='from', min_length=1)
    to: str = Field(min_length=1)


class FsEntryOut(CamelModel):
    name: str
    path: str
    is_dir: bool
    size: int
    mtime_ms: float
    mime: Optional[str] = None
    is_symlink: bool = False
    is_broken: bool = False
    is_unsafe: bool = False


class ListResponse(CamelModel):
    path: str
    items: list[FsEntryOut]
    page: int
    limit: int
    total: int
    has_more: bool
    sort: str
    order: str


class StatResponse(CamelModel):
    path: str
    is_dir: bool
    size: int
    mtime_ms: float


class OkResponse(BaseModel):
    ok: bool = True


class MkdirResponse(OkResponse):
    path: str
    name: str


class UploadedFileOut(CamelModel):
    original_name: str
    saved_name: str
    size: int
    api_path: str


class FailedUploadOut(CamelModel):
    original_name: str
    code: str
    message: str


class UploadResponse(OkResponse):
    files: list[UploadedFileOut]
    failed: list[FailedUploadOut] = Field(default_factory=list)


class ConfigUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    root: Optional[str] = None
    max_upload_mb: Optional[float] = Field(default=None, alias='maxUploadMB', allow_inf_nan=False)
    allowed_types: Optional[str] = Field(default=None, alias='allowedTypes')
    ignore_names: Optional[list[str]] = Field(default=None, alias='ignoreNames')
    theme: Optional[str] = Field(default=None, pattern='^(light|dark)$')


class ConfigOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ok: Optional[bool] = None
    root: str
    root_masked: bool = Field(alias='rootMasked')
    max_upload_mb: int = Field(alias='maxUploadMB')
    allowed_types: str = Field(alias='allowedTypes')
    ignore_names: list[str] = Field(alias='ignoreNames')
    theme: str
    admin_domain: str = Field(alias='adminDomain')
    media_domain: str = Field(alias='mediaDomain')


class HealthResponse(OkResponse):
    root: str


class ErrorBody(BaseModel):
    code: str
    message: str
    details: Optional[Any] = None


class ErrorEnvelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    error: ErrorBody
    request_id: Optional[str] = Field(default=None, alias='requestId')
