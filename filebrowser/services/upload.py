from __future__ import annotations

import os
import re
import unicodedata
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import aiofiles
import structlog

from ..config import RuntimeConfig
from ..errors import NotADirectory, PayloadTooLarge
from .file_ops import next_free_name, split_extension
from .paths import PathResolver

logger = structlog.get_logger(__name__)

MAX_FILENAME_LEN = 120
CHUNK_SIZE = 1024 * 1024
_RESERVED = set('<>:"|?*')


class UploadPart(Protocol):
    filename: str | None

    async def read(self, size: int = -1) -> bytes:
        ...


@dataclass(frozen=True)
class UploadedFile:
    original_name: str
    saved_name: str
    size: int
    api_path: str


@dataclass(frozen=True)
class FailedUpload:
    original_name: str
    code: str
    message: str


@dataclass
class UploadOutcome:
    files: list[UploadedFile] = field(default_factory=list)
    failed: list[FailedUpload] = field(default_factory=list)

    @property
    def total_bytes(self) -> int:
        return sum(f.size for f in self.files)


def is_allowed_type(filename: str, allowed: str | list[str] | None) -> bool:
    raw = allowed if isinstance(allowed, list) else str(allowed or '').split(',')
    extensions = [ext.strip().lower().lstrip('.') for ext in raw if ext.strip()]
    if not extensions:
        return True
    dot = filename.rfind('.')
    ext = filename[dot + 1:].lower() if dot >= 0 else ''
    return ext in extensions


def _clean(part: str) -> str:
    kept = []
    for ch in part:
        code = ord(ch)
        if code < 32 or code == 127 or ch in '/\\':
            continue
        kept.append('_' if ch in _RESERVED else ch)
    text = re.sub(r'_+', '_', ''.join(kept))
    text = re.sub(r'\s+', ' ', text).strip()
    return text.strip('.').strip()


def sanitize_filename(raw: str | None) -> str:
    normalized = unicodedata.normalize('NFKC', str(raw or '')).strip()
    name = re.split(r'[\\/]+', normalized)[-1]

    stem, ext = split_extension(name)
    base = _clean(stem)
    ext = _clean(ext)
    if base in {'', '.', '..'}:
        base = 'unnamed'

    candidate = f'{base}.{ext}' if ext else base
    if len(candidate) > MAX_FILENAME_LEN:
        if ext and len(ext) < MAX_FILENAME_LEN - 1:
            keep = MAX_FILENAME_LEN - (len(ext) + 1)
            candidate = f'{base[:max(1, keep)]}.{ext}'
        else:
            candidate = candidate[:MAX_FILENAME_LEN]
    return candidate


class UploadPipeline:
    def __init__(self, config: RuntimeConfig, resolver: PathResolver):
        self.config = config
        self.resolver = resolver

    def check_content_length(self, header: str | None) -> None:
        try:
            declared = int(header or 0)
        except ValueError:
            declared = 0
        if declared and declared > self.config.max_upload_bytes:
            raise PayloadTooLarge(
                f'Payload too large. Limit is {self.config.max_upload_mb}MB',
                details={'limitMB': self.config.max_upload_mb},
            )

    def prepare_destination(self, rel: str) -> Path:
        dest = self.resolver.resolve(rel)
        if dest.exists() and not dest.is_dir():
            raise NotADirectory('Upload destination is not a directory', details={'path': rel})
        dest.mkdir(parents=True, exist_ok=True)
        # Re-resolve now that the directory exists so the leaf is checked too.
        return self.resolver.resolve(rel)

    async def store(self, rel: str, parts: list[UploadPart]) -> UploadOutcome:
        dest = self.prepare_destination(rel)
        outcome = UploadOutcome()
        for part in parts:
            original = part.filename or ''
            name = sanitize_filename(original)
            if not is_allowed_type(name, self.config.allowed_extensions()):
                outcome.failed.append(FailedUpload(original, 'unsupported_type', 'File type is not allowed'))
                continue

            saved = await self._write_part(dest, name, part)
            if saved is None:
                outcome.failed.append(
                    FailedUpload(original, 'payload_too_large', f'File exceeds {self.config.max_upload_mb}MB')
                )
                continue
            name, size = saved
            outcome.files.append(UploadedFile(original, name, size, self.resolver.to_api_path(dest / name)))
        return outcome

    async def _write_part(self, dest: Path, name: str, part: UploadPart) -> tuple[str, int] | None:
        limit = self.config.max_upload_bytes
        while True:
            name = next_free_name(dest, name, keep_extension=True)
            try:
                async with aiofiles.open(dest / name, 'xb') as handle:
                    written = 0
                    while chunk := await part.read(CHUNK_SIZE):
                        written += len(chunk)
                        if written > limit:
                            break
                        await handle.write(chunk)
            except FileExistsError:
                continue
            break

        if written > limit:
            os.unlink(dest / name)
            logger.warning('upload_part_too_large', name=name, limit=limit)
            return None
        return name, written
