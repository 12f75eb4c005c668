from __future__ import annotations

import asyncio
import io

import pytest

from filebrowser.errors import NotADirectory, PathTraversal, PayloadTooLarge
from filebrowser.services.upload import UploadPipeline, is_allowed_type, sanitize_filename


class FakePart:
    def __init__(self, filename: str | None, data: bytes):
        self.filename = filename
        self._buffer = io.BytesIO(data)

    async def read(self, size: int = -1) -> bytes:
        return self._buffer.read(size)


@pytest.fixture
def pipeline(config, resolver) -> UploadPipeline:
    config.set_allowed_types('')
    return UploadPipeline(config, resolver)


@pytest.mark.parametrize(
    ('raw', 'expected'),
    [
        ('report.pdf', 'report.pdf'),
        ('../../etc/passwd', 'passwd'),
        ('C:\\Users\\me\\photo.png', 'photo.png'),
        ('a<b>c?.txt', 'a_b_c_.txt'),
        ('bad\x00name\x07.txt', 'badname.txt'),
        ('my    file.txt', 'my file.txt'),
        ('\uff46\uff49\uff4c\uff45.txt', 'file.txt'),
        ('', 'unnamed'),
        (None, 'unnamed'),
        ('..', 'unnamed'),
    ],
)
def test_sanitize_filename(raw, expected):
    assert sanitize_filename(raw) == expected


def test_sanitize_filename_caps_length_and_keeps_extension():
    result = sanitize_filename('a' * 200 + '.png')

    assert len(result) == 120
    assert result.endswith('.png')


def test_is_allowed_type():
    assert is_allowed_type('a.PNG', 'png, jpg')
    assert not is_allowed_type('a.txt', 'png, jpg')
    assert not is_allowed_type('noext', 'png')
    assert is_allowed_type('a.txt', '')
    assert is_allowed_type('a.txt', None)
    assert is_allowed_type('a.txt', ['.TXT'])


def test_check_content_length(config, pipeline):
    config.set_max_upload_mb(1)

    pipeline.check_content_length(None)
    pipeline.check_content_length('not-a-number')
    pipeline.check_content_length(str(1024 * 1024))
    with pytest.raises(PayloadTooLarge) as exc:
        pipeline.check_content_length(str(2 * 1024 * 1024))
    assert exc.value.status_code == 413
    assert exc.value.details == {'limitMB': 1}


def test_store_creates_destination_and_renames_on_collision(root, pipeline):
    parts = [FakePart('hello.txt', b'hello'), FakePart('hello.txt', b'again!')]

    outcome = asyncio.run(pipeline.store('/incoming/sub', parts))

    assert outcome.failed == []
    assert [f.saved_name for f in outcome.files] == ['hello.txt', 'hello (2).txt']
    assert [f.api_path for f in outcome.files] == ['/incoming/sub/hello.txt', '/incoming/sub/hello (2).txt']
    assert [f.original_name for f in outcome.files] == ['hello.txt', 'hello.txt']
    assert outcome.total_bytes == 11
    assert (root / 'incoming' / 'sub' / 'hello.txt').read_bytes() == b'hello'
    assert (root / 'incoming' / 'sub' / 'hello (2).txt').read_bytes() == b'again!'


def test_store_never_overwrites_existing_file(root, pipeline):
    (root / 'keep.txt').write_text('original')

    outcome = asyncio.run(pipeline.store('/', [FakePart('keep.txt', b'new')]))

    assert outcome.files[0].saved_name == 'keep (2).txt'
    assert (root / 'keep.txt').read_text() == 'original'


def test_store_sanitizes_hostile_names(root, pipeline):
    outcome = asyncio.run(pipeline.store('/', [FakePart('../../evil.txt', b'x')]))

    assert outcome.files[0].saved_name == 'evil.txt'
    assert (root / 'evil.txt').exists()
    assert not (root.parent / 'evil.txt').exists()


def test_store_rejects_disallowed_types(root, config, pipeline):
    config.set_allowed_types('png')

    outcome = asyncio.run(pipeline.store('/', [FakePart('notes.txt', b'x'), FakePart('pic.PNG', b'y')]))

    assert [f.saved_name for f in outcome.files] == ['pic.PNG']
    [failed] = outcome.failed
    assert (failed.original_name, failed.code) == ('notes.txt', 'unsupported_type')
    assert not (root / 'notes.txt').exists()


def test_store_drops_oversized_part(root, config, pipeline):
    config.set_max_upload_mb(1)
    big = FakePart('big.bin', b'x' * (1024 * 1024 + 1))
    small = FakePart('small.bin', b'ok')

    outcome = asyncio.run(pipeline.store('/', [big, small]))

    assert [f.saved_name for f in outcome.files] == ['small.bin']
    assert [(f.original_name, f.code) for f in outcome.failed] == [('big.bin', 'payload_too_large')]
    assert not (root / 'big.bin').exists()


def test_store_into_escaping_symlink_is_forbidden(root, outside, pipeline, symlink):
    symlink(outside, root / 'out')

    with pytest.raises(PathTraversal):
        asyncio.run(pipeline.store('/out', [FakePart('x.txt', b'x')]))
    with pytest.raises(PathTraversal):
        asyncio.run(pipeline.store('/../elsewhere', [FakePart('x.txt', b'x')]))
    assert sorted(p.name for p in outside.iterdir()) == ['secret.txt']


def test_store_onto_existing_file_raises_not_a_directory(root, pipeline):
    (root / 'report.txt').write_text('keep')

    with pytest.raises(NotADirectory):
        asyncio.run(pipeline.store('/report.txt', [FakePart('x.txt', b'x')]))
    assert (root / 'report.txt').read_text() == 'keep'
