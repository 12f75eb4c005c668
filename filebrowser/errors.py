from __future__ import annotations

import errno
from typing import Any


class FileBrowserError(Exception):
    code = 'internal_error'
    status_code = 500

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body: dict[str, Any] = {'code': self.code, 'message': self.message}
        if self.details is not None:
            body['details'] = self.details
        return body


class ValidationFailed(FileBrowserError):
    code = 'validation_error'
    status_code = 400


class NotFound(FileBrowserError):
    code = 'not_found'
    status_code = 404


class IsADirectory(FileBrowserError):
    code = 'is_directory'
    status_code = 400


class NotADirectory(FileBrowserError):
    code = 'not_a_directory'
    status_code = 400


class InvalidOperation(FileBrowserError):
    code = 'invalid_operation'
    status_code = 400


class NotSupported(FileBrowserError):
    code = 'not_supported'
    status_code = 400


class Forbidden(FileBrowserError):
    code = 'forbidden'
    status_code = 403


class PathTraversal(Forbidden):
    def __init__(self, message: str = 'Path traversal detected', details: Any = None):
        super().__init__(message, details)


class ForbiddenRootOperation(FileBrowserError):
    code = 'forbidden_root_operation'
    status_code = 403


class PayloadTooLarge(FileBrowserError):
    code = 'payload_too_large'
    status_code = 413


class UnsupportedType(FileBrowserError):
    code = 'unsupported_type'
    status_code = 415


class ServerBusy(FileBrowserError):
    code = 'server_busy'
    status_code = 503


class InternalError(FileBrowserError):
    pass


_ERRNO_MAP: dict[int, type[FileBrowserError]] = {
    errno.ENOENT: NotFound,
    errno.EISDIR: IsADirectory,
    errno.ENOTDIR: NotADirectory,
    errno.EACCES: Forbidden,
    errno.EPERM: Forbidden,
    errno.EMFILE: ServerBusy,
    errno.ENFILE: ServerBusy,
}


def from_os_error(exc: OSError) -> FileBrowserError:
    error_cls = _ERRNO_MAP.get(exc.errno or 0, InternalError)
    message = exc.strerror or str(exc) or 'Filesystem error'
    return error_cls(message)
