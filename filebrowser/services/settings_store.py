from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..config import SETTINGS_FILE_NAME, RuntimeConfig
from ..errors import FileBrowserError

logger = structlog.get_logger(__name__)


class SettingsDoc(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    root: Optional[str] = None
    max_upload_mb: Optional[float] = Field(default=None, alias='maxUploadMB', allow_inf_nan=False)
    allowed_types: Optional[str] = Field(default=None, alias='allowedTypes')
    ignore_names: Optional[list[str]] = Field(default=None, alias='ignoreNames')
    theme: Optional[str] = None

    @classmethod
    def from_config(cls, config: RuntimeConfig) -> SettingsDoc:
        return cls(
            root=config.root,
            max_upload_mb=config.max_upload_mb,
            allowed_types=config.allowed_types,
            ignore_names=list(config.ignore_names),
            theme=config.theme,
        )


def _atomic_write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(prefix=f'.{path.name}.', suffix='.tmp', dir=str(path.parent))
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    except Exception:
        Path(tmp_path).unlink(missing_ok=True)
        raise


class SettingsStore:
    """Reads and writes the ``.settings.json`` sidecar kept in a directory."""

    def __init__(self, file_name: str = SETTINGS_FILE_NAME):
        self.file_name = file_name

    def path_for(self, directory: str | os.PathLike) -> Path:
        return Path(directory) / self.file_name

    def load(self, directory: str | os.PathLike) -> SettingsDoc | None:
        path = self.path_for(directory)
        if not path.is_file():
            return None
        try:
            data = json.loads(path.read_text(encoding='utf-8'))
            if not data:
                return None
            return SettingsDoc.model_validate(data)
        except (OSError, ValueError, ValidationError) as exc:
            logger.warning('settings_load_failed', path=str(path), error=str(exc))
            return None

    def save(self, directory: str | os.PathLike, doc: SettingsDoc) -> None:
        path = self.path_for(directory)
        try:
            _atomic_write_text(path, doc.model_dump_json(by_alias=True, indent=2))
        except OSError as exc:
            logger.warning('settings_save_failed', path=str(path), error=str(exc))


def apply_settings(config: RuntimeConfig, doc: SettingsDoc) -> None:
    """Copy persisted values onto the live config, skipping anything invalid."""
    if doc.root and doc.root.strip():
        try:
            config.set_root(doc.root)
        except FileBrowserError as exc:
            logger.warning('settings_root_rejected', root=doc.root, error=exc.message)
    if doc.max_upload_mb is not None and doc.max_upload_mb > 0:
        config.set_max_upload_mb(doc.max_upload_mb)
    if doc.allowed_types is not None:
        config.set_allowed_types(doc.allowed_types)
    if doc.ignore_names is not None:
        config.set_ignore_names(doc.ignore_names)
    if doc.theme in {'light', 'dark'}:
        config.set_theme(doc.theme)
