from __future__ import annotations

import mimetypes

mimetypes.add_type('image/webp', '.webp')
mimetypes.add_type('application/x-7z-compressed', '.7z')


def lookup(name: str) -> str | None:
    mime, _ = mimetypes.guess_type(name, strict=False)
    return mime


def is_image_like(mime: str | None) -> bool:
    return bool(mime) and mime.startswith('image/')
